from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from time import perf_counter
from typing import Any

from slide_export.config import settings

logger = logging.getLogger("slide_export.jobs")


def _safe_json(value: Any) -> str:
    try:
        return json.dumps(value if value is not None else {}, ensure_ascii=False, default=str)
    except Exception:
        return "{}"


def preview_text(text: str | None, limit: int | None = None) -> str:
    raw = str(text or "").replace("\r", " ").replace("\n", " ").strip()
    if not raw:
        return ""
    cap = int(limit or settings.log_preview_chars)
    if len(raw) <= cap:
        return raw
    return raw[:cap].rstrip() + " ..."


def job_log(job_id: str, message: str, *, severity: str = "info", **fields) -> None:
    level = logging.WARNING if severity == "warning" else logging.ERROR if severity == "error" else logging.INFO
    details = " ".join(
        f"{key}={_safe_json(value)}"
        for key, value in fields.items()
        if value is not None
    )
    if details:
        logger.log(level, "job=%s %s | %s", job_id or "n/a", message, details)
    else:
        logger.log(level, "job=%s %s", job_id or "n/a", message)


@dataclass
class TraceEvent:
    ts_ms: int
    stage: str
    event_type: str
    severity: str = "info"
    payload: dict[str, Any] = field(default_factory=dict)


class ExportTrace:
    """In-memory event trace for one export job. Discarded with the job."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        self.started = perf_counter()
        self.events: list[TraceEvent] = []

    def record(
        self,
        *,
        stage: str,
        event_type: str,
        payload: dict[str, Any] | None = None,
        severity: str = "info",
    ) -> None:
        ts_ms = int((perf_counter() - self.started) * 1000)
        data = dict(payload or {})
        self.events.append(TraceEvent(ts_ms=ts_ms, stage=stage, event_type=event_type, severity=severity, payload=data))
        job_log(self.job_id, event_type, severity=severity, stage=stage, **data)

    def warnings(self) -> list[TraceEvent]:
        return [row for row in self.events if row.severity in {"warning", "error"}]

    def summary(self) -> dict[str, Any]:
        return {
            "elapsed_ms": int((perf_counter() - self.started) * 1000),
            "events": len(self.events),
            "warnings": len(self.warnings()),
        }
