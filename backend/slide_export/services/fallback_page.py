from __future__ import annotations

import html

from slide_export.services.export_types import RenderParams

FALLBACK_MESSAGE = "Error rendering this slide"


def build_fallback_html(*, ordinal: int, slide_id: str, params: RenderParams) -> str:
    """Inert placeholder page for a slide that could not be captured.

    No scripts and no external resources, so it loads without network access.
    The ordinal and slide id stay visible in the exported document.
    """
    safe_id = html.escape(str(slide_id))
    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>Slide {ordinal}</title>
<style>
  html, body {{
    margin: 0;
    padding: 0;
    width: {params.canvas_width}px;
    height: {params.canvas_height}px;
    overflow: hidden;
    background: white;
    font-family: Arial, Helvetica, sans-serif;
  }}
  .placeholder {{
    width: 100%;
    height: 100%;
    display: flex;
    flex-direction: column;
    align-items: center;
    justify-content: center;
    text-align: center;
  }}
  h1 {{ color: #666666; font-size: 64px; margin: 0 0 24px 0; }}
  p {{ color: #999999; font-size: 28px; margin: 0 0 12px 0; }}
  .slide-id {{ color: #cccccc; font-size: 18px; }}
</style>
</head>
<body>
  <div class="placeholder" data-slide-ordinal="{ordinal}" data-slide-id="{safe_id}">
    <h1>Slide {ordinal}</h1>
    <p>{FALLBACK_MESSAGE}</p>
    <p class="slide-id">Slide ID: {safe_id}</p>
  </div>
</body>
</html>
"""
