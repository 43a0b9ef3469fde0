#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
from pathlib import Path
from urllib.parse import unquote

import requests

DEFAULT_SERVICE_URL = os.getenv("SLIDE_EXPORT_URL", "http://localhost:8000")
DEFAULT_TIMEOUT_S = 360
ENDPOINTS = {
    "pdf": "/api/export-pdf",
    "pptx": "/api/export-pptx",
}


class ExportClientError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Export a slide deck JSON file to PDF or PPTX through the export service.")
    parser.add_argument("deck", type=Path, help="JSON file with a `slides` list (and optional title, presentationId, workspace).")
    parser.add_argument("--format", choices=sorted(ENDPOINTS), default="pdf", help="Output format (default: pdf).")
    parser.add_argument(
        "--url",
        default=DEFAULT_SERVICE_URL,
        help=f"Export service base URL (default: SLIDE_EXPORT_URL or {DEFAULT_SERVICE_URL}).",
    )
    parser.add_argument("--editable-text", action="store_true", help="Add editable text boxes to PPTX slides.")
    parser.add_argument("--timeout", type=int, default=DEFAULT_TIMEOUT_S, help="Request timeout in seconds.")
    parser.add_argument(
        "--out-dir",
        type=Path,
        default=Path("."),
        help="Directory for the exported file (default: current directory).",
    )
    return parser.parse_args(argv)


def _extract_service_error(resp: requests.Response) -> str:
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        detail = payload.get("details")
        return f"{payload['error']}: {detail}" if detail else str(payload["error"])
    text = (resp.text or "").strip()
    return text or f"HTTP {resp.status_code} from export service"


def filename_from_disposition(disposition: str, default: str) -> str:
    """Prefer the RFC 5987 ``filename*`` value, then the quoted ``filename``."""
    for part in (disposition or "").split(";"):
        key, _, value = part.strip().partition("=")
        if key.lower() == "filename*" and value.lower().startswith("utf-8''"):
            return Path(unquote(value[7:])).name or default
    if 'filename="' in disposition:
        return Path(disposition.split('filename="', 1)[1].split('"', 1)[0]).name or default
    return default


def request_export(
    *,
    slides: list[dict],
    output_format: str,
    title: str | None = None,
    presentation_id: str | None = None,
    workspace: str | None = None,
    editable_text: bool = False,
    base_url: str | None = None,
    timeout_s: int = DEFAULT_TIMEOUT_S,
) -> tuple[bytes, str]:
    """Call a running export service and return ``(document_bytes, filename)``."""
    fmt = str(output_format).lower()
    if fmt not in ENDPOINTS:
        raise ValueError(f"Unsupported format: {output_format}")
    payload = {
        "presentationId": presentation_id,
        "workspace": workspace,
        "title": title,
        "slides": slides,
        "editableText": editable_text,
    }
    url = f"{(base_url or DEFAULT_SERVICE_URL).rstrip('/')}{ENDPOINTS[fmt]}"
    resp = requests.post(url, json=payload, timeout=timeout_s)
    if not resp.ok:
        raise ExportClientError(_extract_service_error(resp), status_code=resp.status_code)

    filename = filename_from_disposition(resp.headers.get("Content-Disposition", ""), f"presentation.{fmt}")
    return resp.content, filename


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    if not args.deck.exists():
        print(f"Deck file not found: {args.deck}")
        return 1

    deck = json.loads(args.deck.read_text(encoding="utf-8"))
    slides = deck.get("slides") if isinstance(deck, dict) else deck
    if not slides:
        print(f"No slides in {args.deck}")
        return 1

    meta = deck if isinstance(deck, dict) else {}
    try:
        content, filename = request_export(
            slides=slides,
            output_format=args.format,
            title=meta.get("title"),
            presentation_id=meta.get("presentationId"),
            workspace=meta.get("workspace"),
            editable_text=args.editable_text,
            base_url=args.url,
            timeout_s=args.timeout,
        )
    except (ExportClientError, requests.RequestException) as exc:
        print(f"Export failed: {exc}")
        return 1

    args.out_dir.mkdir(parents=True, exist_ok=True)
    target = args.out_dir / filename
    target.write_bytes(content)
    print(f"Wrote {len(content)} bytes to {target}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
