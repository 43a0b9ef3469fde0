from __future__ import annotations

import base64
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from slide_export.config import settings
from slide_export.schemas import ChartCaptureOut, ChartCaptureRequest, ExportRequest
from slide_export.services.chart_capture import capture_chart
from slide_export.services.export_errors import ExportError
from slide_export.services.export_pipeline import build_export_job, resolve_render_base_url, run_export
from slide_export.services.export_types import OutputFormat

logger = logging.getLogger("slide_export")

app = FastAPI(title=settings.app_name)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin, "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition", "X-Export-Fallback-Slides"],
)


class _AccessLogPathFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not settings.suppress_health_access_logs:
            return True
        return '"GET /health' not in record.getMessage()


def _configure_runtime_logging() -> None:
    level = getattr(logging, str(settings.log_level).upper(), logging.INFO)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("slide_export").setLevel(level)
    logging.getLogger("slide_export.jobs").setLevel(level)

    if settings.suppress_playwright_debug_logs:
        logging.getLogger("playwright").setLevel(logging.WARNING)
        logging.getLogger("asyncio").setLevel(logging.WARNING)

    access_logger = logging.getLogger("uvicorn.access")
    if settings.suppress_health_access_logs and not any(
        isinstance(row, _AccessLogPathFilter) for row in access_logger.filters
    ):
        access_logger.addFilter(_AccessLogPathFilter())


@app.on_event("startup")
def on_startup():
    _configure_runtime_logging()


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in row.get('loc', ()))}: {row.get('msg')}" for row in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": "Invalid request", "details": details})


@app.exception_handler(ExportError)
async def _export_error_handler(request: Request, exc: ExportError):
    if exc.status_code >= 500:
        logger.error("export_error path=%s error=%s details=%s", request.url.path, exc, exc.details)
    return JSONResponse(status_code=exc.status_code, content=exc.as_payload())


@app.get("/health")
def health():
    return {"status": "ok"}


async def _export(req: ExportRequest, request: Request, output_format: OutputFormat, failure_message: str):
    job = build_export_job(
        presentation_id=req.presentation_id,
        workspace=req.workspace,
        title=req.title,
        slides=req.slides,
        output_format=output_format,
        render_base_url=resolve_render_base_url(request.headers.get("host")),
        editable_text=req.editable_text,
    )
    try:
        result = await run_export(job)
    except ExportError:
        raise
    except Exception as exc:
        logger.exception("export_unexpected_error format=%s job=%s", output_format.value, job.job_id)
        return JSONResponse(status_code=500, content={"error": failure_message, "details": str(exc)})

    return Response(content=result.content, media_type=result.media_type, headers=result.headers())


@app.post(f"{settings.api_prefix}/export-pdf")
async def export_pdf(req: ExportRequest, request: Request):
    return await _export(req, request, OutputFormat.PDF, "Failed to generate PDF")


@app.post(f"{settings.api_prefix}/export-pptx")
async def export_pptx(req: ExportRequest, request: Request):
    return await _export(req, request, OutputFormat.PPTX, "Failed to export PowerPoint presentation")


@app.post(f"{settings.api_prefix}/capture-chart", response_model=ChartCaptureOut, response_model_by_alias=True)
async def capture_chart_image(req: ChartCaptureRequest):
    try:
        image = await capture_chart(req.chart_data.model_dump(by_alias=True), width=req.width, height=req.height)
    except ExportError:
        raise
    except Exception as exc:
        logger.exception("chart_capture_unexpected_error")
        return JSONResponse(status_code=500, content={"error": "Failed to capture chart", "details": str(exc)})
    return ChartCaptureOut(image=base64.b64encode(image).decode("ascii"))
