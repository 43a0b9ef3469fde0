from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncContextManager, AsyncIterator, Callable

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from slide_export.config import settings
from slide_export.services.export_errors import SessionLaunchError
from slide_export.services.export_types import RenderParams
from slide_export.services.slide_data import SlideDataChannel

logger = logging.getLogger("slide_export.session")

BASE_BROWSER_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
    "--hide-scrollbars",
    "--font-render-hinting=none",
)

BrowserLauncher = Callable[[], AsyncContextManager[Any]]


def browser_args() -> list[str]:
    args = list(BASE_BROWSER_ARGS)
    for extra in settings.browser_extra_args:
        if extra and extra not in args:
            args.append(extra)
    return args


@asynccontextmanager
async def launch_chromium() -> AsyncIterator[Any]:
    """Start the Playwright driver and a headless Chromium, closing both on exit."""
    try:
        manager = async_playwright()
        playwright = await manager.start()
    except Exception as exc:
        raise SessionLaunchError(details=f"Playwright driver failed to start: {exc}") from exc

    try:
        try:
            browser = await playwright.chromium.launch(
                headless=True,
                args=browser_args(),
                executable_path=settings.browser_executable_path or None,
            )
        except PlaywrightError as exc:
            raise SessionLaunchError(
                details=f"{exc}. Browser may need to be installed: playwright install chromium"
            ) from exc

        try:
            yield browser
        finally:
            try:
                await browser.close()
            except PlaywrightError:
                logger.warning("browser_close_failed", exc_info=True)
    finally:
        await playwright.stop()


@dataclass
class RenderSession:
    browser: Any
    context: Any
    page: Any
    params: RenderParams
    slide_data: SlideDataChannel = field(default_factory=SlideDataChannel)

    def is_alive(self) -> bool:
        try:
            return bool(self.browser.is_connected())
        except Exception:
            return False


@asynccontextmanager
async def acquire_session(
    params: RenderParams,
    *,
    launcher: BrowserLauncher | None = None,
) -> AsyncIterator[RenderSession]:
    """Own one browser for the lifetime of an export job.

    The browser context is created with a fixed viewport, device scale factor and
    user agent so layout does not depend on the host. Everything is closed when
    the block exits, including on exceptions and cancellation.
    """
    launch = launcher or launch_chromium
    async with launch() as browser:
        try:
            context = await browser.new_context(
                viewport=params.viewport,
                device_scale_factor=params.device_scale,
                user_agent=settings.user_agent,
            )
            page = await context.new_page()
        except PlaywrightError as exc:
            raise SessionLaunchError(details=f"Could not open a page: {exc}") from exc

        session = RenderSession(browser=browser, context=context, page=page, params=params)
        logger.info(
            "session_acquired viewport=%sx%s scale=%s",
            params.viewport["width"],
            params.viewport["height"],
            params.device_scale,
        )
        try:
            yield session
        finally:
            try:
                await context.close()
            except PlaywrightError:
                logger.warning("context_close_failed", exc_info=True)
            logger.info("session_released")


class SessionLimiter:
    """Bounds how many browser sessions run at once in this process."""

    def __init__(self, limit: int | None = None):
        self.limit = max(1, int(limit or settings.max_concurrent_sessions))
        self._semaphore: asyncio.Semaphore | None = None

    def _get_semaphore(self) -> asyncio.Semaphore:
        if self._semaphore is None:
            self._semaphore = asyncio.Semaphore(self.limit)
        return self._semaphore

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[None]:
        semaphore = self._get_semaphore()
        async with semaphore:
            yield


session_limiter = SessionLimiter()
