from __future__ import annotations

import asyncio
from typing import Any, Iterable
from uuid import uuid4

from slide_export.config import settings
from slide_export.services.document_assembler import assemble
from slide_export.services.export_errors import ExportTimeoutError, InputError
from slide_export.services.export_trace import ExportTrace
from slide_export.services.export_types import (
    ExportJob,
    ExportResult,
    OutputFormat,
    RenderParams,
    SlideArtifact,
    SlideSpec,
)
from slide_export.services.render_session import (
    BrowserLauncher,
    SessionLimiter,
    acquire_session,
    session_limiter,
)
from slide_export.services.slide_renderer import render_slide


def resolve_render_base_url(host: str | None) -> str:
    """Host of the render target: explicit setting first, else the caller's host."""
    if settings.render_base_url:
        return settings.render_base_url.rstrip("/")
    protocol = "https" if settings.is_production else "http"
    return f"{protocol}://{host or 'localhost:3000'}"


def _coerce_slide(raw: Any) -> SlideSpec:
    if isinstance(raw, SlideSpec):
        return raw
    if hasattr(raw, "model_dump"):
        raw = raw.model_dump()
    if not isinstance(raw, dict) or not raw.get("id"):
        raise InputError("Invalid slide", details="Every slide needs an id")
    blocks = raw.get("blocks") or []
    if not isinstance(blocks, list):
        raise InputError("Invalid slide", details=f"Slide {raw['id']} blocks must be a list")
    return SlideSpec(
        id=str(raw["id"]),
        layout=raw.get("layout"),
        blocks=tuple(row for row in blocks if isinstance(row, dict)),
        title=raw.get("title"),
    )


def build_export_job(
    *,
    presentation_id: str | None,
    workspace: str | None,
    title: str | None,
    slides: Iterable[Any] | None,
    output_format: OutputFormat,
    render_base_url: str,
    editable_text: bool = False,
) -> ExportJob:
    """Validate request data into an ``ExportJob``. Raises ``InputError`` before any browser work."""
    slide_specs = [_coerce_slide(row) for row in (slides or [])]
    if not slide_specs:
        raise InputError()
    return ExportJob(
        presentation_id=presentation_id,
        workspace_id=workspace,
        title=title,
        slides=slide_specs,
        output_format=output_format,
        render_base_url=render_base_url,
        params=RenderParams.for_format(output_format),
        editable_text=editable_text,
        job_id=uuid4().hex[:12],
    )


def job_timeout_seconds(output_format: OutputFormat) -> int:
    if output_format is OutputFormat.PDF:
        return int(settings.pdf_job_timeout_s)
    return int(settings.pptx_job_timeout_s)


async def render_all_slides(
    job: ExportJob,
    trace: ExportTrace,
    *,
    launcher: BrowserLauncher | None = None,
    limiter: SessionLimiter | None = None,
) -> list[SlideArtifact]:
    artifacts: list[SlideArtifact] = []
    async with (limiter or session_limiter).slot():
        async with acquire_session(job.params, launcher=launcher) as session:
            trace.record(stage="session", event_type="session_ready", payload={"slides": len(job.slides)})
            for index, slide in enumerate(job.slides):
                artifacts.append(await render_slide(session, job, index, slide, trace=trace))
    return artifacts


async def run_export(
    job: ExportJob,
    *,
    launcher: BrowserLauncher | None = None,
    limiter: SessionLimiter | None = None,
    timeout_s: float | None = None,
) -> ExportResult:
    """Render every slide of ``job`` in one browser session and assemble the document.

    The rendering phase runs under a hard ceiling. When it expires the session is
    torn down through cancellation and partial artifacts are discarded.
    """
    if not job.slides:
        raise InputError()

    trace = ExportTrace(job.job_id)
    ceiling = job_timeout_seconds(job.output_format) if timeout_s is None else timeout_s
    trace.record(
        stage="job",
        event_type="export_job_start",
        payload={
            "format": job.output_format.value,
            "slides": len(job.slides),
            "presentation_id": job.presentation_id,
            "render_base_url": job.render_base_url,
            "timeout_s": ceiling,
        },
    )

    try:
        artifacts = await asyncio.wait_for(
            render_all_slides(job, trace, launcher=launcher, limiter=limiter),
            timeout=ceiling,
        )
    except asyncio.TimeoutError as exc:
        trace.record(stage="job", event_type="export_job_timeout", payload={"timeout_s": ceiling}, severity="error")
        raise ExportTimeoutError(details=f"Rendering did not finish within {ceiling}s") from exc
    except Exception as exc:
        trace.record(
            stage="job",
            event_type="export_job_failed",
            payload={"error": type(exc).__name__, "message": str(exc)},
            severity="error",
        )
        raise

    result = assemble(job, artifacts)
    trace.record(
        stage="job",
        event_type="export_job_complete",
        payload={
            "bytes": len(result.content),
            "slide_count": result.slide_count,
            "fallback_slides": result.fallback_slides or None,
            **trace.summary(),
        },
    )
    return result
