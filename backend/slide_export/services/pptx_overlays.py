from __future__ import annotations

from typing import Any

from pptx.dml.color import RGBColor
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.util import Emu, Inches, Pt

# Positions below are authored on a 10in-wide slide and scaled to the deck width.
_REFERENCE_WIDTH = Inches(10)
_FONT_FACE = "Helvetica"
_DARK = "1A1A1A"
_MUTED = "666666"
_BODY = "333333"

_COVER_TYPES = {
    "Cover_TextCenter",
    "Cover_ProductLayout",
    "Cover_LeftImageTextRight",
    "ExcelCenteredCover_Responsive",
}
_CHART_TYPES = {
    "ExcelFullWidthChart_Responsive",
    "ExcelFullWidthChartCategorical_Responsive",
    "ExcelFullWidthChartWithTable_Responsive",
    "ExcelKPIDashboard_Responsive",
    "ExcelComparisonLayout_Responsive",
}
_INSIGHT_TYPES = {"ExcelTrendChart_Responsive", "ExcelPieChart_Responsive"}
_FEATURE_GRID_TYPES = {"ExcelHowItWorks_Responsive"}
_LIST_TYPES = {"Lists_LeftTextRightImage"}
_CARD_TYPES = {"Lists_CardsLayout", "Lists_CardsLayoutRight"}
_TWO_COLUMN_TEXT_TYPES = {"ExcelExperienceFullText_Responsive"}
_BACK_COVER_TYPES = {"BackCover_ThankYouWithImage", "ExcelBackCover_Responsive"}


def _emu(inches: float, scale: float) -> Emu:
    return Emu(int(Inches(inches) * scale))


def _add_text(
    slide,
    text: str | list[str],
    *,
    box: tuple[float, float, float, float],
    scale: float,
    size: float,
    color: str = _DARK,
    bold: bool = False,
    align: PP_ALIGN | None = None,
    anchor: MSO_ANCHOR = MSO_ANCHOR.TOP,
) -> None:
    if isinstance(text, list):
        lines = [f"• {line}" for line in text if str(line).strip()]
    else:
        lines = [str(text)] if str(text).strip() else []
    if not lines:
        return

    x, y, w, h = box
    textbox = slide.shapes.add_textbox(_emu(x, scale), _emu(y, scale), _emu(w, scale), _emu(h, scale))
    text_frame = textbox.text_frame
    text_frame.word_wrap = True
    text_frame.vertical_anchor = anchor
    for idx, line in enumerate(lines):
        paragraph = text_frame.paragraphs[0] if idx == 0 else text_frame.add_paragraph()
        paragraph.text = line
        if align is not None:
            paragraph.alignment = align
        for run in paragraph.runs:
            run.font.name = _FONT_FACE
            run.font.size = Pt(size * scale)
            run.font.bold = bold
            run.font.color.rgb = RGBColor.from_string(color)


def _item_text(item: Any) -> str:
    if isinstance(item, str):
        return item
    if isinstance(item, dict):
        return str(item.get("title") or item.get("text") or "")
    return ""


def _grid(slide, entries: list[dict], *, origin: tuple[float, float], step: tuple[float, float], scale: float,
          width: float, title_size: float, body_size: float, body_offset: float, body_height: float) -> None:
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            continue
        row, col = divmod(index, 2)
        x = origin[0] + col * step[0]
        y = origin[1] + row * step[1]
        if entry.get("title"):
            _add_text(slide, entry["title"], box=(x, y, width, 0.3), scale=scale, size=title_size, bold=True)
        if entry.get("description"):
            _add_text(
                slide,
                entry["description"],
                box=(x, y + body_offset, width, body_height),
                scale=scale,
                size=body_size,
                color=_MUTED,
            )


def add_block_overlay(slide, block: dict[str, Any], *, scale: float) -> None:
    block_type = str(block.get("type") or "")
    props = block.get("props") or {}
    if not isinstance(props, dict):
        return

    title = props.get("title")
    if block_type in _COVER_TYPES:
        if title:
            _add_text(slide, title, box=(1, 2.5, 8, 0.8), scale=scale, size=36, bold=True, align=PP_ALIGN.CENTER)
        body = props.get("paragraph") or props.get("description")
        if body:
            _add_text(slide, body, box=(1.5, 3.5, 7, 0.5), scale=scale, size=14, color=_MUTED, align=PP_ALIGN.CENTER)
    elif block_type in _CHART_TYPES:
        if title:
            _add_text(slide, title, box=(0.6, 0.5, 5, 0.4), scale=scale, size=20)
        caption = props.get("description") or props.get("subtitle")
        if caption:
            _add_text(slide, caption, box=(5.8, 0.5, 3.6, 0.4), scale=scale, size=9, color=_MUTED)
    elif block_type in _INSIGHT_TYPES:
        if title:
            _add_text(slide, title, box=(0.6, 0.5, 5.5, 0.4), scale=scale, size=20)
        insights = props.get("insights")
        if isinstance(insights, list):
            _add_text(slide, [str(row) for row in insights], box=(6.3, 1.5, 3.1, 3), scale=scale, size=9, color=_BODY)
    elif block_type in _FEATURE_GRID_TYPES:
        if title:
            _add_text(slide, title, box=(0.6, 2, 3, 0.6), scale=scale, size=28, anchor=MSO_ANCHOR.MIDDLE)
        if props.get("subtitle"):
            _add_text(slide, props["subtitle"], box=(0.6, 2.7, 3, 0.8), scale=scale, size=10, color=_MUTED)
        features = props.get("features")
        if isinstance(features, list):
            _grid(slide, features, origin=(4, 1.2), step=(3, 2), scale=scale, width=2.8,
                  title_size=14, body_size=10, body_offset=0.35, body_height=1)
    elif block_type in _LIST_TYPES:
        if title:
            _add_text(slide, title, box=(0.4, 0.4, 5, 0.5), scale=scale, size=24)
        items = props.get("items")
        if isinstance(items, list):
            _add_text(slide, [_item_text(row) for row in items], box=(0.4, 1.2, 4.8, 3.5), scale=scale,
                      size=14, color=_BODY)
    elif block_type in _CARD_TYPES:
        if title:
            _add_text(slide, title, box=(0.4, 0.4, 9, 0.5), scale=scale, size=24)
        cards = props.get("cards")
        if isinstance(cards, list):
            _grid(slide, cards, origin=(0.4, 1.5), step=(4.8, 1.8), scale=scale, width=4.4,
                  title_size=16, body_size=11, body_offset=0.4, body_height=0.8)
    elif block_type in _TWO_COLUMN_TEXT_TYPES:
        if title:
            _add_text(slide, title, box=(0.6, 0.6, 9, 0.5), scale=scale, size=24)
        if props.get("leftText"):
            _add_text(slide, props["leftText"], box=(0.6, 1.3, 4.3, 3.5), scale=scale, size=11, color=_BODY)
        if props.get("rightText"):
            _add_text(slide, props["rightText"], box=(5.1, 1.3, 4.3, 3.5), scale=scale, size=11, color=_BODY)
    elif block_type in _BACK_COVER_TYPES:
        _add_text(slide, "Thank You", box=(1, 2.5, 8, 1), scale=scale, size=48, bold=True, align=PP_ALIGN.CENTER)


def add_text_overlays(slide, blocks, *, slide_width: int) -> None:
    """Editable text boxes on top of a captured slide image, one set per block."""
    scale = slide_width / _REFERENCE_WIDTH
    for block in blocks or ():
        if isinstance(block, dict):
            add_block_overlay(slide, block, scale=scale)
