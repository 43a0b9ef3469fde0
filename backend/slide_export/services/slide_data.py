from __future__ import annotations

import json
import logging
from urllib.parse import parse_qs, urlparse

from slide_export.services.export_types import SlideSpec

logger = logging.getLogger("slide_export.slide_data")

EXPORT_DATA_GLOBAL = "__EXPORT_SLIDE_DATA__"
SLIDE_DATA_PATH = "/__export__/slide-data"

LOADER_SCRIPT = f"""
(() => {{
  const key = new URLSearchParams(window.location.search).get('exportKey');
  if (!key) return;
  try {{
    const xhr = new XMLHttpRequest();
    xhr.open('GET', '{SLIDE_DATA_PATH}?exportKey=' + encodeURIComponent(key), false);
    xhr.send(null);
    if (xhr.status === 200) window.{EXPORT_DATA_GLOBAL} = JSON.parse(xhr.responseText);
  }} catch (err) {{
    console.warn('export slide data unavailable', err);
  }}
}})();
"""


class SlideDataChannel:
    """Delivers each navigation's slide data to the render target.

    One init script and one route are installed per page. The script fetches
    the payload for the ``exportKey`` in the document URL before page scripts
    run, and the route answers from the single payload currently published.
    """

    def __init__(self):
        self.installed = False
        self._key: str | None = None
        self._body: str | None = None

    async def install(self, page) -> None:
        if self.installed:
            return
        await page.route(f"**{SLIDE_DATA_PATH}*", self.fulfill)
        await page.add_init_script(script=LOADER_SCRIPT)
        self.installed = True

    def publish(self, export_key: str, slide: SlideSpec) -> None:
        self._key = export_key
        self._body = json.dumps(slide.as_payload(), ensure_ascii=False)

    def payload_for(self, export_key: str | None) -> str | None:
        if not export_key or export_key != self._key:
            return None
        return self._body

    async def fulfill(self, route) -> None:
        query = parse_qs(urlparse(route.request.url).query)
        key = (query.get("exportKey") or [None])[0]
        body = self.payload_for(key)
        if body is None:
            logger.warning("slide_data_unknown_key key=%s", key)
            await route.fulfill(status=404, content_type="application/json", body="null")
            return
        await route.fulfill(status=200, content_type="application/json", body=body)
