"""Tests for browser session acquisition, release and the session limiter."""

import asyncio

import pytest

from conftest import FakeBrowser, FakeLauncher, FakePage
from slide_export.config import settings
from slide_export.services.export_errors import SessionLaunchError
from slide_export.services.export_types import OutputFormat, RenderParams
from slide_export.services.render_session import (
    BASE_BROWSER_ARGS,
    SessionLimiter,
    acquire_session,
    browser_args,
)


@pytest.mark.asyncio
async def test_context_uses_fixed_viewport_and_scale(fake_launcher, fake_browser, fake_page):
    params = RenderParams.for_format(OutputFormat.PPTX)

    async with acquire_session(params, launcher=fake_launcher) as session:
        assert session.page is fake_page
        assert session.is_alive()

    kwargs = fake_browser.contexts[0].kwargs
    assert kwargs["viewport"] == {"width": 1920, "height": 1080}
    assert kwargs["device_scale_factor"] == 2.0
    assert kwargs["user_agent"] == settings.user_agent


@pytest.mark.asyncio
async def test_session_released_when_body_raises(fake_launcher, fake_browser):
    with pytest.raises(RuntimeError):
        async with acquire_session(RenderParams(), launcher=fake_launcher):
            raise RuntimeError("boom")

    assert fake_browser.contexts[0].closed
    assert fake_browser.closed
    assert not fake_launcher.leaked


@pytest.mark.asyncio
async def test_launch_failure_propagates():
    launcher = FakeLauncher(fail_with=SessionLaunchError(details="no chromium"))

    with pytest.raises(SessionLaunchError) as excinfo:
        async with acquire_session(RenderParams(), launcher=launcher):
            pass

    assert excinfo.value.as_payload() == {"error": "Failed to launch render browser", "details": "no chromium"}


@pytest.mark.asyncio
async def test_disconnected_browser_is_not_alive():
    page = FakePage()
    browser = FakeBrowser(page)

    async with acquire_session(RenderParams(), launcher=FakeLauncher(browser)) as session:
        browser.connected = False
        assert not session.is_alive()


def test_extra_browser_args_are_appended_once(monkeypatch):
    monkeypatch.setattr(settings, "browser_extra_args", ["--lang=en-US", "--no-sandbox"])

    args = browser_args()

    assert args[: len(BASE_BROWSER_ARGS)] == list(BASE_BROWSER_ARGS)
    assert args.count("--no-sandbox") == 1
    assert args[-1] == "--lang=en-US"


@pytest.mark.asyncio
async def test_limiter_bounds_concurrent_slots():
    limiter = SessionLimiter(2)
    active = {"now": 0, "peak": 0}

    async def worker():
        async with limiter.slot():
            active["now"] += 1
            active["peak"] = max(active["peak"], active["now"])
            await asyncio.sleep(0.01)
            active["now"] -= 1

    await asyncio.gather(*(worker() for _ in range(5)))

    assert active["peak"] == 2


def test_limiter_defaults_to_settings(monkeypatch):
    monkeypatch.setattr(settings, "max_concurrent_sessions", 3)

    assert SessionLimiter().limit == 3
    assert SessionLimiter(0).limit == 3
