from __future__ import annotations

from slide_export.config import settings
from slide_export.services.export_types import RenderParams


def _fmt_scale(value: float) -> str:
    return f"{value:.4f}".rstrip("0").rstrip(".")


def _chrome_rule(selectors: list[str]) -> str:
    if not selectors:
        return ""
    return f"""
{", ".join(selectors)} {{
  display: none !important;
}}"""


def _frame_rule(selector: str, params: RenderParams, scale: str) -> str:
    return f"""
{selector} {{
  width: {params.canvas_width}px !important;
  height: {params.canvas_height}px !important;
  transform: scale({scale}) !important;
  transform-origin: top left !important;
  position: absolute !important;
  top: 0 !important;
  left: 0 !important;
  background: white !important;
  overflow: visible !important;
}}"""


_HIDE_TEXT_RULES = """
h1, h2, h3, h4, h5, h6, p, a, li, ul, ol {{
  visibility: hidden !important;
  opacity: 0 !important;
}}
span:not({chart} *):not(.recharts-wrapper *):not(.recharts-surface *):not(.recharts-legend-wrapper *) {{
  visibility: hidden !important;
  opacity: 0 !important;
}}
{chart}, {chart} *,
.recharts-responsive-container, .recharts-responsive-container *,
.recharts-wrapper, .recharts-wrapper *,
.recharts-surface, .recharts-surface *,
.recharts-legend-wrapper, .recharts-legend-wrapper *,
svg, svg *, text {{
  visibility: visible !important;
  opacity: 1 !important;
}}"""


def build_export_css(params: RenderParams, *, hide_text: bool = False) -> str:
    """Style payload forcing the editor's responsive slide into the export canvas.

    Content authored at the editor's design width is scaled by
    ``canvas_width / design_width`` so it fills the canvas exactly. The payload is
    re-applied after every navigation because the page is reused across slides.
    """
    scale = _fmt_scale(params.scale_factor)
    root = settings.root_selector
    chart = settings.chart_container_selector

    parts = [
        _chrome_rule(settings.chrome_selectors),
        f"""
html, body {{
  overflow: hidden !important;
  margin: 0 !important;
  padding: 0 !important;
  width: {params.canvas_width}px !important;
  height: {params.canvas_height}px !important;
  background: white !important;
  zoom: 1 !important;
}}""",
        _frame_rule(root, params, scale),
        _frame_rule(chart, params, scale),
        f"""
{root} > div {{
  width: {params.design_width}px !important;
  height: {params.design_height}px !important;
  position: relative !important;
  transform: none !important;
}}
{chart} > div {{
  position: relative !important;
  transform: none !important;
}}
* {{
  -webkit-print-color-adjust: exact !important;
  print-color-adjust: exact !important;
  color-adjust: exact !important;
  -webkit-font-smoothing: antialiased !important;
  -moz-osx-font-smoothing: grayscale !important;
}}
table {{
  border-collapse: collapse !important;
}}
th, td {{
  vertical-align: middle !important;
  word-wrap: break-word !important;
  overflow-wrap: break-word !important;
}}
svg {{
  overflow: visible !important;
  display: block !important;
  shape-rendering: geometricPrecision !important;
  text-rendering: geometricPrecision !important;
}}
.recharts-wrapper, {settings.chart_surface_selector} {{
  overflow: visible !important;
}}
{settings.responsive_container_selector} {{
  position: relative !important;
  width: 100% !important;
  height: 100% !important;
}}""",
    ]
    if hide_text:
        parts.append(_HIDE_TEXT_RULES.format(chart=chart))
    return "\n".join(part.strip("\n") for part in parts if part).strip() + "\n"
