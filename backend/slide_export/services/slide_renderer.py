from __future__ import annotations

import json
import logging
from time import perf_counter
from urllib.parse import quote, urlencode
from uuid import uuid4

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from slide_export.config import settings
from slide_export.services.export_errors import (
    CaptureError,
    SessionCrashedError,
    SlideRenderError,
    SlideTimeoutError,
)
from slide_export.services.export_styles import build_export_css
from slide_export.services.export_trace import ExportTrace, preview_text
from slide_export.services.export_types import (
    ExportJob,
    OutputFormat,
    SlideArtifact,
    SlideSpec,
    SlideStage,
)
from slide_export.services.fallback_page import build_fallback_html
from slide_export.services.readiness import (
    settle_delay_ms,
    wait_for_fonts,
    wait_for_network_idle,
    wait_for_page_condition,
)
from slide_export.services.render_session import RenderSession

logger = logging.getLogger("slide_export.renderer")

CONTENT_READY_JS = """
(sel) => {
  const root = document.querySelector(sel.root);
  if (root && root.children.length > 0) return true;
  const chart = document.querySelector(sel.chart);
  return !!(chart && chart.children.length > 0);
}
"""

CHART_COUNT_JS = "(sel) => document.querySelectorAll(sel.surface).length"

CHARTS_READY_JS = """
(sel) => Array.from(document.querySelectorAll(sel.surface)).every((svg) => {
  if (svg.children.length === 0) return false;
  const box = svg.getBBox();
  return box.width > 0 && box.height > 0;
})
"""

RESPONSIVE_READY_JS = """
(sel) => Array.from(document.querySelectorAll(sel.responsive)).every(
  (node) => node.offsetWidth > 0 && node.offsetHeight > 0
)
"""

TABLES_READY_JS = """
() => Array.from(document.querySelectorAll('table')).every(
  (table) => table.querySelectorAll('tr').length > 0
)
"""


def _selectors() -> dict[str, str]:
    return {
        "root": settings.root_selector,
        "chart": settings.chart_container_selector,
        "surface": settings.chart_surface_selector,
        "responsive": settings.responsive_container_selector,
    }


def build_render_url(job: ExportJob, index: int, slide: SlideSpec, *, export_key: str) -> str:
    query = {
        "presentationId": job.presentation_id or "",
        "workspace": job.workspace_id or "",
        "slideIndex": str(index),
        "export": "true",
        "exportKey": export_key,
    }
    if settings.inject_mode == "query":
        query["slideData"] = json.dumps(slide.as_payload(), ensure_ascii=False, separators=(",", ":"))
    base = job.render_base_url.rstrip("/")
    path = "/" + settings.editor_path.lstrip("/")
    return f"{base}{path}?{urlencode(query, quote_via=quote)}"


class _Progress:
    def __init__(self, slide: SlideSpec):
        self.slide = slide
        self.stage = SlideStage.PENDING
        self.chart_count = 0

    def advance(self, stage: SlideStage) -> None:
        self.stage = stage


def _record(trace: ExportTrace | None, event_type: str, *, severity: str = "info", **payload) -> None:
    if trace is None:
        logger.log(logging.WARNING if severity != "info" else logging.DEBUG, "%s %s", event_type, payload)
        return
    trace.record(stage="render", event_type=event_type, payload=payload, severity=severity)


async def _navigate(session: RenderSession, job: ExportJob, index: int, slide: SlideSpec) -> None:
    page = session.page
    export_key = uuid4().hex
    if settings.inject_mode != "query":
        await session.slide_data.install(page)
        session.slide_data.publish(export_key, slide)

    url = build_render_url(job, index, slide, export_key=export_key)
    budget_ms = int(settings.navigation_timeout_ms)
    started = perf_counter()
    try:
        await page.goto(url, wait_until="domcontentloaded", timeout=budget_ms)
    except PlaywrightTimeoutError as exc:
        raise SlideTimeoutError(
            f"navigation exceeded {budget_ms}ms", slide_id=slide.id, stage=SlideStage.NAVIGATING.value
        ) from exc

    remaining_ms = max(1, budget_ms - int((perf_counter() - started) * 1000))
    idle = await wait_for_network_idle(page, timeout_ms=remaining_ms)
    if idle.timed_out:
        raise SlideTimeoutError(
            f"network did not settle within {budget_ms}ms", slide_id=slide.id, stage=SlideStage.NAVIGATING.value
        )


async def _wait_until_ready(page, slide: SlideSpec, index: int, progress: _Progress, trace) -> None:
    selectors = _selectors()
    fonts = await wait_for_fonts(page, timeout_ms=settings.content_ready_timeout_ms)
    if fonts.timed_out:
        _record(trace, "slide_fonts_timeout", severity="warning", slide_id=slide.id, slide_index=index)

    content = await wait_for_page_condition(
        page,
        CONTENT_READY_JS,
        arg=selectors,
        timeout_ms=settings.content_ready_timeout_ms,
        label="content_ready",
    )
    if content.timed_out:
        raise SlideTimeoutError(
            f"slide content not ready within {settings.content_ready_timeout_ms}ms",
            slide_id=slide.id,
            stage=SlideStage.WAITING_READY.value,
        )

    progress.chart_count = int(await page.evaluate(CHART_COUNT_JS, selectors) or 0)
    if progress.chart_count:
        for expression, timeout_ms, label in (
            (CHARTS_READY_JS, settings.chart_ready_timeout_ms, "charts_ready"),
            (RESPONSIVE_READY_JS, settings.responsive_ready_timeout_ms, "responsive_ready"),
        ):
            outcome = await wait_for_page_condition(page, expression, arg=selectors, timeout_ms=timeout_ms, label=label)
            if outcome.timed_out:
                _record(
                    trace,
                    "slide_chart_wait_timeout",
                    severity="warning",
                    slide_id=slide.id,
                    slide_index=index,
                    wait=label,
                    chart_count=progress.chart_count,
                )

    tables = await wait_for_page_condition(
        page, TABLES_READY_JS, timeout_ms=settings.table_ready_timeout_ms, label="tables_ready"
    )
    if tables.timed_out:
        _record(trace, "slide_table_wait_timeout", severity="warning", slide_id=slide.id, slide_index=index)


async def capture_page(page, job: ExportJob, slide: SlideSpec) -> bytes:
    params = job.params
    try:
        if job.output_format is OutputFormat.PDF:
            content = await page.pdf(
                width=f"{params.canvas_width}px",
                height=f"{params.canvas_height}px",
                print_background=True,
                margin={"top": "0", "right": "0", "bottom": "0", "left": "0"},
                prefer_css_page_size=False,
            )
        else:
            content = await page.screenshot(
                type="png",
                full_page=False,
                omit_background=False,
                clip={"x": 0, "y": 0, "width": params.canvas_width, "height": params.canvas_height},
            )
    except Exception as exc:
        raise CaptureError(f"capture failed: {exc}", slide_id=slide.id, stage=SlideStage.CAPTURING.value) from exc
    if not content:
        raise CaptureError("capture returned no data", slide_id=slide.id, stage=SlideStage.CAPTURING.value)
    return content


async def _render_and_capture(
    session: RenderSession,
    job: ExportJob,
    index: int,
    slide: SlideSpec,
    progress: _Progress,
    trace: ExportTrace | None,
) -> bytes:
    page = session.page

    progress.advance(SlideStage.NAVIGATING)
    await _navigate(session, job, index, slide)

    progress.advance(SlideStage.WAITING_READY)
    await _wait_until_ready(page, slide, index, progress, trace)

    progress.advance(SlideStage.STYLING_FOR_EXPORT)
    hide_text = job.editable_text and job.output_format is OutputFormat.PPTX
    await page.add_style_tag(content=build_export_css(job.params, hide_text=hide_text))
    delay = settle_delay_ms(progress.chart_count)
    if delay:
        await page.wait_for_timeout(delay)

    progress.advance(SlideStage.CAPTURING)
    return await capture_page(page, job, slide)


async def _fallback_artifact(
    session: RenderSession,
    job: ExportJob,
    index: int,
    slide: SlideSpec,
    *,
    reason: str,
) -> SlideArtifact:
    page = session.page
    html = build_fallback_html(ordinal=index + 1, slide_id=slide.id, params=job.params)
    content: bytes | None
    try:
        await page.set_content(html, wait_until="domcontentloaded", timeout=settings.fallback_timeout_ms)
        content = await capture_page(page, job, slide)
    except Exception as exc:
        if not session.is_alive():
            raise SessionCrashedError(details=f"browser lost while rendering slide {index + 1}") from exc
        logger.error("slide_fallback_capture_failed slide_id=%s index=%d error=%s", slide.id, index, exc)
        content = None

    return SlideArtifact(
        slide_id=slide.id,
        index=index,
        kind=job.output_format.artifact_kind,
        content=content,
        fallback=True,
        reason=reason,
        stage=SlideStage.FALLBACK_DONE,
    )


async def render_slide(
    session: RenderSession,
    job: ExportJob,
    index: int,
    slide: SlideSpec,
    *,
    trace: ExportTrace | None = None,
) -> SlideArtifact:
    """Produce exactly one artifact for ``slide``.

    Failures while navigating, waiting or capturing are contained here and
    replaced by a placeholder capture. Only a lost browser escapes, as
    ``SessionCrashedError``.
    """
    progress = _Progress(slide)
    started = perf_counter()
    try:
        content = await _render_and_capture(session, job, index, slide, progress, trace)
    except SlideRenderError as exc:
        failed_stage, reason = exc.stage, str(exc)
    except Exception as exc:
        failed_stage, reason = progress.stage.value, f"{type(exc).__name__}: {exc}"
    else:
        _record(
            trace,
            "slide_captured",
            slide_id=slide.id,
            slide_index=index,
            chart_count=progress.chart_count,
            bytes=len(content),
            elapsed_ms=int((perf_counter() - started) * 1000),
        )
        return SlideArtifact(
            slide_id=slide.id,
            index=index,
            kind=job.output_format.artifact_kind,
            content=content,
            stage=SlideStage.DONE,
        )

    if not session.is_alive():
        raise SessionCrashedError(details=f"browser lost while rendering slide {index + 1}: {preview_text(reason)}")

    _record(
        trace,
        "slide_fallback",
        severity="warning",
        slide_id=slide.id,
        slide_index=index,
        failed_stage=failed_stage,
        reason=preview_text(reason),
    )
    return await _fallback_artifact(session, job, index, slide, reason=f"{failed_stage}: {reason}")
