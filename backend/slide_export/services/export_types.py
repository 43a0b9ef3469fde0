from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import quote

from slide_export.config import settings

PDF_MEDIA_TYPE = "application/pdf"
PPTX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"
DEFAULT_FILENAME_STEM = "presentation"

_NON_TOKEN_CHARS = re.compile(r"[^A-Za-z0-9 ._()\[\]-]+")


class OutputFormat(str, Enum):
    PDF = "pdf"
    PPTX = "pptx"

    @property
    def media_type(self) -> str:
        return PDF_MEDIA_TYPE if self is OutputFormat.PDF else PPTX_MEDIA_TYPE

    @property
    def artifact_kind(self) -> str:
        return "pdf" if self is OutputFormat.PDF else "png"


class SlideStage(str, Enum):
    PENDING = "pending"
    NAVIGATING = "navigating"
    WAITING_READY = "waiting_ready"
    STYLING_FOR_EXPORT = "styling_for_export"
    CAPTURING = "capturing"
    DONE = "done"
    FALLBACK_DONE = "fallback_done"


@dataclass(frozen=True)
class RenderParams:
    canvas_width: int = 1920
    canvas_height: int = 1080
    device_scale: float = 1.0
    design_width: int = 881
    design_height: int = 495
    viewport_margin: int = 0

    @classmethod
    def for_format(cls, output_format: OutputFormat) -> "RenderParams":
        scale = settings.pdf_device_scale if output_format is OutputFormat.PDF else settings.pptx_device_scale
        return cls(
            canvas_width=settings.canvas_width,
            canvas_height=settings.canvas_height,
            device_scale=scale,
            design_width=settings.design_width,
            design_height=settings.design_height,
            viewport_margin=settings.viewport_margin,
        )

    @property
    def scale_factor(self) -> float:
        return self.canvas_width / max(1, self.design_width)

    @property
    def viewport(self) -> dict[str, int]:
        return {
            "width": self.canvas_width + self.viewport_margin,
            "height": self.canvas_height + self.viewport_margin,
        }


@dataclass(frozen=True)
class SlideSpec:
    id: str
    layout: str | None = None
    blocks: tuple[dict[str, Any], ...] = ()
    title: str | None = None

    def as_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "layout": self.layout, "blocks": list(self.blocks)}
        if self.title is not None:
            payload["title"] = self.title
        return payload


@dataclass
class ExportJob:
    presentation_id: str | None
    workspace_id: str | None
    title: str | None
    slides: list[SlideSpec]
    output_format: OutputFormat
    render_base_url: str
    params: RenderParams = field(default_factory=RenderParams)
    editable_text: bool = False
    job_id: str = ""


@dataclass
class SlideArtifact:
    slide_id: str
    index: int
    kind: str
    content: bytes | None
    fallback: bool = False
    reason: str | None = None
    stage: SlideStage = SlideStage.DONE

    @property
    def has_content(self) -> bool:
        return bool(self.content)


@dataclass
class ExportResult:
    content: bytes
    media_type: str
    filename: str
    slide_count: int
    fallback_slides: list[str] = field(default_factory=list)

    def headers(self) -> dict[str, str]:
        return {
            "Content-Disposition": content_disposition(self.filename),
            "Content-Length": str(len(self.content)),
            "X-Export-Fallback-Slides": str(len(self.fallback_slides)),
        }


def ascii_filename(filename: str) -> str:
    """Latin-only stand-in for ``filename``, used by clients that ignore ``filename*``."""
    stem, dot, extension = str(filename or "").rpartition(".")
    if not dot:
        stem, extension = extension, ""
    folded = unicodedata.normalize("NFKD", stem).encode("ascii", "ignore").decode("ascii")
    folded = " ".join(_NON_TOKEN_CHARS.sub(" ", folded).split())
    stem = folded or DEFAULT_FILENAME_STEM
    return f"{stem}.{extension}" if extension else stem


def content_disposition(filename: str) -> str:
    """Attachment header that survives non-Latin-1 titles (RFC 6266 / RFC 5987)."""
    fallback = ascii_filename(filename)
    if fallback == filename:
        return f'attachment; filename="{fallback}"'
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"
