"""Tests for PDF merging, PPTX deck building and artifact validation."""

import io

import pytest
from pptx import Presentation
from pptx.enum.shapes import MSO_SHAPE_TYPE
from pypdf import PdfReader

from conftest import make_job, make_pdf, make_png
from slide_export.services.document_assembler import (
    assemble,
    export_filename,
    merge_pdf_pages,
)
from slide_export.services.export_errors import AssemblyError
from slide_export.services.export_types import (
    PDF_MEDIA_TYPE,
    PPTX_MEDIA_TYPE,
    OutputFormat,
    SlideArtifact,
    ascii_filename,
    content_disposition,
)


def _pdf_artifacts(count, *, missing=()):
    return [
        SlideArtifact(
            slide_id=f"slide-{i}",
            index=i,
            kind="pdf",
            content=None if i in missing else make_pdf(width_pt=1000 + i),
            fallback=i in missing,
        )
        for i in range(count)
    ]


def _png_artifacts(count, *, missing=()):
    return [
        SlideArtifact(
            slide_id=f"slide-{i}",
            index=i,
            kind="png",
            content=None if i in missing else make_png(color=(10 * (i + 1), 0, 0)),
            fallback=i in missing,
        )
        for i in range(count)
    ]


class TestExportFilename:
    def test_title_becomes_stem(self):
        assert export_filename("Quarterly Review", "pdf") == "Quarterly Review.pdf"

    def test_missing_title_uses_default(self):
        assert export_filename(None, "pptx") == "presentation.pptx"
        assert export_filename("   ", ".pdf") == "presentation.pdf"

    def test_header_breaking_characters_are_removed(self):
        assert export_filename('a"b/c\nd', "pdf") == "a b c d.pdf"

    def test_unicode_title_gets_ascii_fallback_and_encoded_name(self):
        job = make_job(1, title="Отчёт 2024")

        result = assemble(job, _pdf_artifacts(1))
        disposition = result.headers()["Content-Disposition"]

        assert result.filename == "Отчёт 2024.pdf"
        assert disposition.startswith("attachment; filename=\"2024.pdf\"; filename*=UTF-8''")
        assert disposition.endswith("%D0%9E%D1%82%D1%87%D1%91%D1%82%202024.pdf")
        disposition.encode("latin-1")

    def test_title_without_latin_letters_falls_back_to_default_stem(self):
        assert ascii_filename("日本語.pptx") == "presentation.pptx"
        assert content_disposition("Deck.pdf") == 'attachment; filename="Deck.pdf"'


class TestMergePdf:
    def test_single_page_is_returned_unchanged(self):
        artifacts = _pdf_artifacts(1)
        job = make_job(1)

        merged = merge_pdf_pages(artifacts, job.params)

        assert merged is artifacts[0].content

    def test_pages_keep_slide_order(self):
        job = make_job(4)
        artifacts = list(reversed(_pdf_artifacts(4)))

        result = assemble(job, artifacts)
        reader = PdfReader(io.BytesIO(result.content))

        assert len(reader.pages) == 4
        assert [round(float(page.mediabox.width)) for page in reader.pages] == [1000, 1001, 1002, 1003]

    def test_only_first_page_of_each_capture_is_kept(self):
        job = make_job(2)
        artifacts = _pdf_artifacts(2)
        artifacts[1].content = make_pdf(width_pt=1001, pages=3)

        result = assemble(job, artifacts)

        assert len(PdfReader(io.BytesIO(result.content)).pages) == 2

    def test_missing_content_becomes_placeholder_page(self):
        job = make_job(3)

        result = assemble(job, _pdf_artifacts(3, missing={1}))
        reader = PdfReader(io.BytesIO(result.content))

        assert len(reader.pages) == 3
        placeholder = reader.pages[1]
        assert round(float(placeholder.mediabox.width)) == 1440
        assert round(float(placeholder.mediabox.height)) == 810
        assert placeholder.get("/Annots")
        assert result.fallback_slides == ["slide-1"]


class TestArtifactValidation:
    def test_empty_artifact_list_is_rejected(self):
        with pytest.raises(AssemblyError):
            assemble(make_job(1), [])

    def test_count_mismatch_is_rejected(self):
        with pytest.raises(AssemblyError):
            assemble(make_job(3), _pdf_artifacts(2))

    def test_duplicate_index_is_rejected(self):
        artifacts = _pdf_artifacts(2)
        artifacts[1].index = 0

        with pytest.raises(AssemblyError):
            assemble(make_job(2), artifacts)

    def test_wrong_artifact_kind_is_rejected(self):
        with pytest.raises(AssemblyError):
            assemble(make_job(2, OutputFormat.PPTX), _pdf_artifacts(2))

    def test_unreadable_pdf_is_wrapped(self):
        artifacts = _pdf_artifacts(2)
        artifacts[0].content = b"not a pdf"

        with pytest.raises(AssemblyError):
            assemble(make_job(2), artifacts)


class TestPptxDeck:
    def test_one_full_bleed_picture_per_slide(self):
        job = make_job(3, OutputFormat.PPTX)

        result = assemble(job, _png_artifacts(3))
        prs = Presentation(io.BytesIO(result.content))

        assert result.media_type == PPTX_MEDIA_TYPE
        assert result.filename == "Quarterly Review.pptx"
        assert prs.slide_width == 12192000
        assert prs.slide_height == 6858000
        assert len(prs.slides) == 3
        for slide in prs.slides:
            pictures = [shape for shape in slide.shapes if shape.shape_type == MSO_SHAPE_TYPE.PICTURE]
            assert len(pictures) == 1
            picture = pictures[0]
            assert (picture.left, picture.top) == (0, 0)
            assert (picture.width, picture.height) == (prs.slide_width, prs.slide_height)

    def test_slide_without_image_gets_text_label(self):
        job = make_job(2, OutputFormat.PPTX)

        result = assemble(job, _png_artifacts(2, missing={1}))
        prs = Presentation(io.BytesIO(result.content))
        second = prs.slides[1]

        assert not [shape for shape in second.shapes if shape.shape_type == MSO_SHAPE_TYPE.PICTURE]
        texts = [shape.text_frame.text for shape in second.shapes if shape.has_text_frame]
        assert texts == ["Slide 2: Title 1"]

    def test_core_properties_follow_job_title(self):
        job = make_job(1, OutputFormat.PPTX, title=None)

        result = assemble(job, _png_artifacts(1))
        prs = Presentation(io.BytesIO(result.content))

        assert prs.core_properties.title == "Presentation"
        assert result.filename == "presentation.pptx"

    def test_editable_text_adds_overlays_on_captured_slides(self):
        job = make_job(2, OutputFormat.PPTX, editable_text=True)
        artifacts = _png_artifacts(2)
        artifacts[1].fallback = True

        result = assemble(job, artifacts)
        prs = Presentation(io.BytesIO(result.content))

        first_texts = [shape.text_frame.text for shape in prs.slides[0].shapes if shape.has_text_frame]
        second_texts = [shape.text_frame.text for shape in prs.slides[1].shapes if shape.has_text_frame]
        assert first_texts == ["T0"]
        assert second_texts == []

    def test_pdf_result_metadata(self):
        job = make_job(2)

        result = assemble(job, _pdf_artifacts(2))

        assert result.media_type == PDF_MEDIA_TYPE
        assert result.slide_count == 2
        assert result.headers()["Content-Length"] == str(len(result.content))
        assert result.headers()["Content-Disposition"] == 'attachment; filename="Quarterly Review.pdf"'
