from __future__ import annotations

import io
import logging
import re

from pptx import Presentation
from pptx.dml.color import RGBColor
from pptx.enum.text import MSO_ANCHOR, PP_ALIGN
from pptx.util import Emu, Pt
from pypdf import PdfReader, PdfWriter
from pypdf.annotations import FreeText

from slide_export.config import settings
from slide_export.services.export_errors import AssemblyError
from slide_export.services.export_types import (
    DEFAULT_FILENAME_STEM,
    ExportJob,
    ExportResult,
    OutputFormat,
    RenderParams,
    SlideArtifact,
)
from slide_export.services.pptx_overlays import add_text_overlays

logger = logging.getLogger("slide_export.assembler")

_UNSAFE_FILENAME_CHARS = re.compile(r'[\\/"\r\n\t]+')
_CSS_PX_TO_PT = 72 / 96


def export_filename(title: str | None, extension: str) -> str:
    stem = _UNSAFE_FILENAME_CHARS.sub(" ", str(title or "")).strip()
    return f"{stem or DEFAULT_FILENAME_STEM}.{extension.lstrip('.')}"


def _ordered_artifacts(job: ExportJob, artifacts: list[SlideArtifact]) -> list[SlideArtifact]:
    if not artifacts:
        raise AssemblyError(details="No slides were rendered")
    if len(artifacts) != len(job.slides):
        raise AssemblyError(details=f"Expected {len(job.slides)} slide artifacts, got {len(artifacts)}")

    ordered = sorted(artifacts, key=lambda row: row.index)
    if [row.index for row in ordered] != list(range(len(job.slides))):
        raise AssemblyError(details="Slide artifacts do not cover every slide exactly once")

    expected_kind = job.output_format.artifact_kind
    for row in ordered:
        if row.has_content and row.kind != expected_kind:
            raise AssemblyError(details=f"Slide {row.index + 1} has a {row.kind} artifact, expected {expected_kind}")
    return ordered


def _add_placeholder_pdf_page(writer: PdfWriter, params: RenderParams, ordinal: int) -> None:
    width_pt = params.canvas_width * _CSS_PX_TO_PT
    height_pt = params.canvas_height * _CSS_PX_TO_PT
    writer.add_blank_page(width=width_pt, height=height_pt)
    box_w, box_h = width_pt * 0.4, height_pt * 0.12
    left = (width_pt - box_w) / 2
    bottom = (height_pt - box_h) / 2
    annotation = FreeText(
        text=f"Slide {ordinal}",
        rect=(left, bottom, left + box_w, bottom + box_h),
        font="Arial",
        bold=True,
        font_size="48pt",
        font_color="666666",
        border_color=None,
        background_color="ffffff",
    )
    writer.add_annotation(page_number=len(writer.pages) - 1, annotation=annotation)


def merge_pdf_pages(artifacts: list[SlideArtifact], params: RenderParams) -> bytes:
    """Merge single-page slide PDFs in order.

    A lone captured page is returned untouched. Pages are copied as produced so
    their mediabox stays at the canvas size.
    """
    if len(artifacts) == 1 and artifacts[0].has_content:
        return artifacts[0].content

    writer = PdfWriter()
    for row in artifacts:
        if not row.has_content:
            logger.warning("pdf_placeholder_page slide_id=%s index=%d", row.slide_id, row.index)
            _add_placeholder_pdf_page(writer, params, row.index + 1)
            continue

        reader = PdfReader(io.BytesIO(row.content))
        if not reader.pages:
            _add_placeholder_pdf_page(writer, params, row.index + 1)
            continue
        if len(reader.pages) > 1:
            logger.warning(
                "pdf_extra_pages_dropped slide_id=%s index=%d pages=%d",
                row.slide_id,
                row.index,
                len(reader.pages),
            )
        writer.add_page(reader.pages[0])

    output = io.BytesIO()
    writer.write(output)
    return output.getvalue()


def _find_layout(prs: Presentation, keywords: tuple[str, ...], fallback_index: int) -> int:
    for idx, layout in enumerate(prs.slide_layouts):
        name = str(getattr(layout, "name", "")).lower()
        if all(word in name for word in keywords):
            return idx
    return min(fallback_index, len(prs.slide_layouts) - 1)


def _add_fallback_text(slide, *, ordinal: int, title: str | None, slide_width: int, slide_height: int) -> None:
    label = f"Slide {ordinal}" + (f": {title}" if title else "")
    box_h = int(slide_height * 0.18)
    textbox = slide.shapes.add_textbox(
        Emu(int(slide_width * 0.05)),
        Emu((slide_height - box_h) // 2),
        Emu(int(slide_width * 0.9)),
        Emu(box_h),
    )
    text_frame = textbox.text_frame
    text_frame.word_wrap = True
    text_frame.vertical_anchor = MSO_ANCHOR.MIDDLE
    paragraph = text_frame.paragraphs[0]
    paragraph.text = label
    paragraph.alignment = PP_ALIGN.CENTER
    for run in paragraph.runs:
        run.font.size = Pt(32)
        run.font.color.rgb = RGBColor(0x33, 0x33, 0x33)


def build_pptx_deck(job: ExportJob, artifacts: list[SlideArtifact]) -> bytes:
    params = job.params
    prs = Presentation()
    slide_width = int(settings.pptx_slide_width_emu)
    slide_height = int(round(slide_width * params.canvas_height / max(1, params.canvas_width)))
    prs.slide_width = Emu(slide_width)
    prs.slide_height = Emu(slide_height)

    core = prs.core_properties
    core.title = job.title or "Presentation"
    core.author = settings.pptx_author
    core.subject = settings.pptx_subject

    blank_layout = prs.slide_layouts[_find_layout(prs, ("blank",), 6)]
    for row in artifacts:
        spec = job.slides[row.index]
        slide = prs.slides.add_slide(blank_layout)
        if row.has_content:
            slide.shapes.add_picture(io.BytesIO(row.content), 0, 0, width=prs.slide_width, height=prs.slide_height)
            if job.editable_text and not row.fallback:
                add_text_overlays(slide, spec.blocks, slide_width=slide_width)
            continue
        logger.warning("pptx_text_fallback_slide slide_id=%s index=%d", row.slide_id, row.index)
        _add_fallback_text(slide, ordinal=row.index + 1, title=spec.title, slide_width=slide_width, slide_height=slide_height)

    output = io.BytesIO()
    prs.save(output)
    return output.getvalue()


def assemble(job: ExportJob, artifacts: list[SlideArtifact]) -> ExportResult:
    ordered = _ordered_artifacts(job, artifacts)
    try:
        if job.output_format is OutputFormat.PDF:
            content = merge_pdf_pages(ordered, job.params)
        else:
            content = build_pptx_deck(job, ordered)
    except AssemblyError:
        raise
    except Exception as exc:
        logger.exception("assembly_failed format=%s slides=%d", job.output_format.value, len(ordered))
        raise AssemblyError(details=str(exc)) from exc

    return ExportResult(
        content=content,
        media_type=job.output_format.media_type,
        filename=export_filename(job.title, job.output_format.value),
        slide_count=len(ordered),
        fallback_slides=[row.slide_id for row in ordered if row.fallback],
    )
