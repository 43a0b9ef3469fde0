from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SlideSpecIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    layout: str | None = None
    title: str | None = None
    blocks: list[dict[str, Any]] = Field(default_factory=list)


class ExportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    presentation_id: str | None = Field(default=None, alias="presentationId")
    workspace: str | None = None
    title: str | None = None
    slides: list[SlideSpecIn] | None = None
    editable_text: bool = Field(default=False, alias="editableText")


class ChartSeriesIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    name: str | None = None
    data: list[float | int | None] = Field(default_factory=list)


class ChartDataIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    labels: list[str] = Field(default_factory=list)
    series: list[ChartSeriesIn] = Field(default_factory=list)
    stacked: bool = False
    show_legend: bool = Field(default=False, alias="showLegend")


class ChartCaptureRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chart_data: ChartDataIn = Field(alias="chartData")
    width: int = Field(default=800, ge=50, le=4000)
    height: int = Field(default=400, ge=50, le=4000)


class ChartCaptureOut(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    image: str
    mime_type: str = Field(default="image/png", serialization_alias="mimeType")


class ErrorOut(BaseModel):
    error: str
    details: str | None = None
