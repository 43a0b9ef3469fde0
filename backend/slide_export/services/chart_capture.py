from __future__ import annotations

import json
import logging

from playwright.async_api import Error as PlaywrightError

from slide_export.config import settings
from slide_export.services.export_errors import ExportError
from slide_export.services.export_types import RenderParams
from slide_export.services.readiness import wait_for_page_condition
from slide_export.services.render_session import BrowserLauncher, SessionLimiter, acquire_session, session_limiter

logger = logging.getLogger("slide_export.chart_capture")

CHART_PADDING = 100
CHART_COLORS = ["#4A3AFF", "#C893FD", "#1e40af", "#2563eb"]


class ChartCaptureError(ExportError):
    public_message = "Failed to capture chart"


def build_chart_html(chart_data: dict, *, width: int, height: int) -> str:
    """Standalone page rendering an area chart with React and Recharts.

    The page sets ``window.chartReady`` once the chart has mounted.
    """
    scripts = "\n".join(f'<script src="{url}"></script>' for url in settings.chart_library_urls)
    data_json = json.dumps(chart_data, ensure_ascii=False)
    colors_json = json.dumps(CHART_COLORS)
    return f"""<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
{scripts}
<style>
  body {{
    margin: 0;
    padding: 20px;
    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', 'Roboto', sans-serif;
    background: white;
  }}
  .chart-container {{
    width: {width}px;
    height: {height}px;
    background: white;
    border-radius: 8px;
    padding: 20px;
    box-sizing: border-box;
  }}
</style>
</head>
<body>
<div id="chart-root" class="chart-container"></div>
<script>
  const chartData = {data_json};
  const colors = {colors_json};
  const {{ ResponsiveContainer, AreaChart, Area, XAxis, YAxis, CartesianGrid, Legend }} = Recharts;
  const h = React.createElement;

  function ChartComponent() {{
    const labels = chartData.labels || [];
    const series = chartData.series || [];
    const data = labels.map((label, index) => {{
      const point = {{ name: label }};
      series.forEach((row) => {{ point[row.id || row.name] = (row.data || [])[index]; }});
      return point;
    }});

    React.useEffect(() => {{
      setTimeout(() => {{ window.chartReady = true; }}, 0);
    }}, []);

    const children = [
      h(CartesianGrid, {{ key: 'grid', strokeDasharray: '3 3', stroke: '#e0e0e0' }}),
      h(XAxis, {{ key: 'x', dataKey: 'name', axisLine: false, tickLine: false, tick: {{ fontSize: 12, fill: '#666' }} }}),
      h(YAxis, {{ key: 'y', axisLine: false, tickLine: false, tick: {{ fontSize: 12, fill: '#666' }} }}),
      ...series.map((row, index) => h(Area, {{
        key: row.id || row.name,
        type: 'monotone',
        dataKey: row.id || row.name,
        stackId: chartData.stacked ? '1' : undefined,
        stroke: colors[index % colors.length],
        fill: colors[index % colors.length],
        fillOpacity: 0.6,
        strokeWidth: 2,
        isAnimationActive: false,
      }})),
    ];
    if (chartData.showLegend) {{
      children.push(h(Legend, {{ key: 'legend', verticalAlign: 'bottom', height: 36 }}));
    }}
    return h(ResponsiveContainer, {{ width: '100%', height: '100%' }},
      h(AreaChart, {{ data, margin: {{ top: 20, right: 30, left: 20, bottom: 20 }} }}, children));
  }}

  ReactDOM.createRoot(document.getElementById('chart-root')).render(h(ChartComponent));
</script>
</body>
</html>
"""


async def capture_chart(
    chart_data: dict,
    *,
    width: int,
    height: int,
    launcher: BrowserLauncher | None = None,
    limiter: SessionLimiter | None = None,
) -> bytes:
    params = RenderParams(
        canvas_width=width,
        canvas_height=height,
        device_scale=1.0,
        design_width=width,
        design_height=height,
        viewport_margin=CHART_PADDING,
    )
    async with (limiter or session_limiter).slot():
        async with acquire_session(params, launcher=launcher) as session:
            page = session.page
            try:
                await page.set_content(
                    build_chart_html(chart_data, width=width, height=height),
                    timeout=settings.navigation_timeout_ms,
                )
            except PlaywrightError as exc:
                raise ChartCaptureError(details=f"Chart page failed to load: {exc}") from exc
            ready = await wait_for_page_condition(
                page,
                "() => window.chartReady === true",
                timeout_ms=settings.chart_ready_flag_timeout_ms,
                label="chart_ready_flag",
            )
            if ready.timed_out:
                raise ChartCaptureError(details=f"Chart did not render within {settings.chart_ready_flag_timeout_ms}ms")
            await page.wait_for_timeout(settings.chart_settle_delay_after_ready_ms)

            element = await page.query_selector(".chart-container")
            if element is None:
                raise ChartCaptureError(details="Chart container not found")
            image = await element.screenshot(type="png", omit_background=False)

    logger.info("chart_captured width=%d height=%d bytes=%d", width, height, len(image))
    return image
