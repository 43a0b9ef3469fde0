from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from time import perf_counter
from typing import Any, Awaitable, Callable

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from slide_export.config import settings

logger = logging.getLogger("slide_export.readiness")


class WaitStatus(str, Enum):
    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class WaitOutcome:
    label: str
    status: WaitStatus
    elapsed_ms: int

    @property
    def ready(self) -> bool:
        return self.status is WaitStatus.READY

    @property
    def timed_out(self) -> bool:
        return self.status is WaitStatus.TIMED_OUT


def _elapsed_ms(started: float) -> int:
    return int((perf_counter() - started) * 1000)


async def await_condition(
    check: Callable[[], Awaitable[Any]],
    *,
    timeout_ms: int,
    poll_interval_ms: int | None = None,
    label: str = "condition",
) -> WaitOutcome:
    """Poll ``check`` until it returns a truthy value or ``timeout_ms`` elapses.

    Timeouts are reported as ``WaitStatus.TIMED_OUT`` instead of raised, whether
    the budget ran out between polls, a single poll overran it, or the check
    itself raised a Playwright timeout. Any other exception from ``check``
    propagates to the caller.
    """
    interval = max(1, int(poll_interval_ms or settings.poll_interval_ms)) / 1000
    started = perf_counter()
    deadline = started + max(0, int(timeout_ms)) / 1000

    while True:
        remaining = deadline - perf_counter()
        if remaining <= 0:
            break
        try:
            result = await asyncio.wait_for(check(), timeout=remaining)
        except (asyncio.TimeoutError, PlaywrightTimeoutError):
            break
        if result:
            return WaitOutcome(label=label, status=WaitStatus.READY, elapsed_ms=_elapsed_ms(started))
        remaining = deadline - perf_counter()
        if remaining <= 0:
            break
        await asyncio.sleep(min(interval, remaining))

    logger.debug("wait_timed_out label=%s timeout_ms=%d", label, timeout_ms)
    return WaitOutcome(label=label, status=WaitStatus.TIMED_OUT, elapsed_ms=_elapsed_ms(started))


async def wait_for_page_condition(
    page,
    expression: str,
    *,
    timeout_ms: int,
    arg: Any = None,
    label: str,
) -> WaitOutcome:
    async def check():
        return await page.evaluate(expression, arg)

    return await await_condition(check, timeout_ms=timeout_ms, label=label)


async def wait_for_network_idle(page, *, timeout_ms: int) -> WaitOutcome:
    async def check():
        await page.wait_for_load_state("networkidle", timeout=timeout_ms)
        return True

    return await await_condition(check, timeout_ms=timeout_ms, label="network_idle")


async def wait_for_fonts(page, *, timeout_ms: int) -> WaitOutcome:
    async def check():
        return await page.evaluate("() => document.fonts.ready.then(() => true)")

    return await await_condition(check, timeout_ms=timeout_ms, label="fonts")


def settle_delay_ms(
    chart_count: int,
    *,
    base_ms: int | None = None,
    chart_ms: int | None = None,
    extra_chart_ms: int | None = None,
    max_ms: int | None = None,
) -> int:
    """Settle delay before capture, scaled by the number of chart surfaces.

    Slides with at most one chart get the base delay. Multi-chart slides start
    at the chart delay and add ``extra_chart_ms`` for every chart beyond two.
    """
    base = settings.base_settle_delay_ms if base_ms is None else base_ms
    chart = settings.chart_settle_delay_ms if chart_ms is None else chart_ms
    extra = settings.extra_chart_settle_delay_ms if extra_chart_ms is None else extra_chart_ms
    cap = settings.max_settle_delay_ms if max_ms is None else max_ms

    count = max(0, int(chart_count))
    if count <= 1:
        delay = base
    else:
        delay = chart + extra * max(0, count - 2)
    return max(0, min(delay, cap))
