"""Pytest configuration and shared fakes for the export service tests."""

import io
import re
from contextlib import asynccontextmanager
from urllib.parse import parse_qs, urlparse

import pytest
from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from pypdf import PdfWriter

from slide_export.config import settings
from slide_export.services import slide_renderer
from slide_export.services.export_types import ExportJob, OutputFormat, RenderParams, SlideSpec

# =============================================================================
# Artifact builders
# =============================================================================


def make_pdf(width_pt: float = 1440, height_pt: float = 810, pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=width_pt, height=height_pt)
    output = io.BytesIO()
    writer.write(output)
    return output.getvalue()


def make_png(color=(255, 255, 255), size=(32, 18)) -> bytes:
    output = io.BytesIO()
    Image.new("RGB", size, color).save(output, format="PNG")
    return output.getvalue()


def make_job(count: int = 3, output_format: OutputFormat = OutputFormat.PDF, **overrides) -> ExportJob:
    slides = overrides.pop("slides", None) or [
        SlideSpec(id=f"slide-{i}", layout="title", blocks=({"type": "Cover_TextCenter", "props": {"title": f"T{i}"}},),
                  title=f"Title {i}")
        for i in range(count)
    ]
    job = ExportJob(
        presentation_id="pres-1",
        workspace_id="Team Space",
        title=overrides.pop("title", "Quarterly Review"),
        slides=slides,
        output_format=output_format,
        render_base_url="http://render.test",
        params=overrides.pop("params", RenderParams.for_format(output_format)),
        job_id="job-test",
    )
    for key, value in overrides.items():
        setattr(job, key, value)
    return job


# =============================================================================
# Fake Playwright objects
# =============================================================================

_ORDINAL_RE = re.compile(r'data-slide-ordinal="(\d+)"')


class FakePage:
    """Stands in for a Playwright page.

    ``behaviors`` maps a slide index to a failure mode: ``nav_timeout``,
    ``nav_error``, ``never_ready``, ``charts_never_ready``, ``capture_error``,
    ``fallback_broken``, ``crash_on_nav`` or ``crash_on_ready``.
    ``chart_counts`` maps a slide index to the number of chart surfaces.
    """

    def __init__(self, behaviors=None, chart_counts=None):
        self.behaviors = dict(behaviors or {})
        self.chart_counts = dict(chart_counts or {})
        self.browser = None
        self.urls = []
        self.init_scripts = []
        self.routes = []
        self.styles = []
        self.timeouts = []
        self.set_contents = []
        self.captures = []
        self.current_index = None
        self.fallback_ordinal = None
        self.chart_ready_flag = True

    def _behavior(self):
        if self.current_index is None:
            return None
        return self.behaviors.get(self.current_index)

    def _crash(self):
        if self.browser is not None:
            self.browser.connected = False
        raise PlaywrightError("Target page, context or browser has been closed")

    async def add_init_script(self, script=None, path=None):
        self.init_scripts.append(script)

    async def route(self, url, handler):
        self.routes.append((url, handler))

    async def goto(self, url, wait_until=None, timeout=None):
        self.urls.append(url)
        query = parse_qs(urlparse(url).query)
        self.current_index = int(query["slideIndex"][0])
        self.fallback_ordinal = None
        behavior = self._behavior()
        if behavior == "nav_timeout":
            raise PlaywrightTimeoutError(f"Timeout {timeout}ms exceeded")
        if behavior == "nav_error":
            raise PlaywrightError("net::ERR_CONNECTION_REFUSED")
        if behavior == "crash_on_nav":
            self._crash()

    async def wait_for_load_state(self, state="load", timeout=None):
        return None

    async def evaluate(self, expression, arg=None):
        behavior = self._behavior()
        if "document.fonts" in expression:
            return True
        if "chartReady" in expression:
            return self.chart_ready_flag
        if expression is slide_renderer.CONTENT_READY_JS:
            if behavior == "crash_on_ready":
                self._crash()
            return behavior != "never_ready"
        if expression is slide_renderer.CHART_COUNT_JS:
            return self.chart_counts.get(self.current_index, 0)
        if expression is slide_renderer.CHARTS_READY_JS:
            return behavior != "charts_never_ready"
        return True

    async def add_style_tag(self, content=None, url=None, path=None):
        self.styles.append(content)

    async def wait_for_timeout(self, timeout):
        self.timeouts.append(timeout)

    async def set_content(self, html, wait_until=None, timeout=None):
        self.set_contents.append(html)
        match = _ORDINAL_RE.search(html)
        self.fallback_ordinal = int(match.group(1)) if match else None

    def _capture_fails(self):
        behavior = self._behavior()
        if behavior == "fallback_broken":
            return True
        return behavior == "capture_error" and self.fallback_ordinal is None

    async def pdf(self, **kwargs):
        if self._capture_fails():
            raise PlaywrightError("Printing failed")
        if self.fallback_ordinal is not None:
            data = make_pdf(width_pt=2000 + self.fallback_ordinal)
        else:
            data = make_pdf(width_pt=1000 + self.current_index)
        self.captures.append(data)
        return data

    async def screenshot(self, **kwargs):
        if self._capture_fails():
            raise PlaywrightError("Screenshot failed")
        if self.fallback_ordinal is not None:
            data = make_png(color=(0, 0, min(255, 100 + self.fallback_ordinal)))
        else:
            data = make_png(color=(min(255, 10 * (self.current_index + 1)), 0, 0))
        self.captures.append(data)
        return data

    async def query_selector(self, selector):
        return FakeElement(self) if selector == ".chart-container" else None


class FakeRoute:
    """Intercepted request handed to a page route handler."""

    def __init__(self, url):
        self.request = type("Request", (), {"url": url})()
        self.fulfilled = None

    async def fulfill(self, **kwargs):
        self.fulfilled = kwargs


class FakeElement:
    def __init__(self, page):
        self.page = page

    async def screenshot(self, **kwargs):
        data = make_png(color=(74, 58, 255))
        self.page.captures.append(data)
        return data


class FakeContext:
    def __init__(self, browser, kwargs):
        self.browser = browser
        self.kwargs = kwargs
        self.closed = False

    async def new_page(self):
        return self.browser.page

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, page):
        self.page = page
        page.browser = self
        self.connected = True
        self.closed = False
        self.contexts = []

    def is_connected(self):
        return self.connected and not self.closed

    async def new_context(self, **kwargs):
        context = FakeContext(self, kwargs)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True
        self.connected = False


class FakeLauncher:
    def __init__(self, browser=None, *, fail_with=None):
        self.browser = browser
        self.fail_with = fail_with
        self.launches = 0
        self.shutdowns = 0

    def __call__(self):
        return self._run()

    @asynccontextmanager
    async def _run(self):
        self.launches += 1
        if self.fail_with is not None:
            raise self.fail_with
        try:
            yield self.browser
        finally:
            await self.browser.close()
            self.shutdowns += 1

    @property
    def leaked(self):
        return self.launches != self.shutdowns


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """Shrink every wait so failure paths resolve in milliseconds."""
    monkeypatch.setattr(settings, "navigation_timeout_ms", 200)
    monkeypatch.setattr(settings, "content_ready_timeout_ms", 60)
    monkeypatch.setattr(settings, "chart_ready_timeout_ms", 60)
    monkeypatch.setattr(settings, "responsive_ready_timeout_ms", 60)
    monkeypatch.setattr(settings, "table_ready_timeout_ms", 60)
    monkeypatch.setattr(settings, "chart_ready_flag_timeout_ms", 60)
    monkeypatch.setattr(settings, "poll_interval_ms", 5)
    monkeypatch.setattr(settings, "render_base_url", None)
    monkeypatch.setattr(settings, "inject_mode", "init_script")
    yield


@pytest.fixture
def fake_page():
    return FakePage()


@pytest.fixture
def fake_browser(fake_page):
    return FakeBrowser(fake_page)


@pytest.fixture
def fake_launcher(fake_browser):
    return FakeLauncher(fake_browser)
