"""Readiness waits — each signal is awaited with its own timeout and soft-fails."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

logger = logging.getLogger(__name__)

_FONTS_READY_JS = "() => !document.fonts || document.fonts.status === 'loaded'"

_IMAGES_READY_JS = """() => Array.from(document.images).every(
    img => img.complete && (img.naturalHeight > 0 || !img.currentSrc)
)"""


class WaitStatus(str, Enum):
    MET = "met"
    TIMED_OUT = "timed-out"
    NOT_APPLICABLE = "not-applicable"


@dataclass(frozen=True)
class WaitResult:
    signal: str
    status: WaitStatus
    elapsed_ms: int = 0
    detail: str = ""

    @property
    def degraded(self) -> bool:
        return self.status == WaitStatus.TIMED_OUT

    def describe(self) -> str:
        text = f"{self.signal} wait {self.status.value} after {self.elapsed_ms}ms"
        return f"{text}: {self.detail}" if self.detail else text


async def wait_for_network_idle(page: Page, timeout_ms: int, enabled: bool = True) -> WaitResult:
    if not enabled:
        return WaitResult("network-idle", WaitStatus.NOT_APPLICABLE)
    start = time.monotonic()
    try:
        await page.wait_for_load_state("networkidle", timeout=timeout_ms)
    except PlaywrightError as e:
        # Sites with persistent connections never go idle.
        return _timed_out("network-idle", start, e)
    return WaitResult("network-idle", WaitStatus.MET, _elapsed(start))


async def wait_for_fonts(page: Page, timeout_ms: int, enabled: bool = True) -> WaitResult:
    if not enabled:
        return WaitResult("fonts", WaitStatus.NOT_APPLICABLE)
    start = time.monotonic()
    try:
        await page.wait_for_function(_FONTS_READY_JS, timeout=timeout_ms)
    except PlaywrightError as e:
        return _timed_out("fonts", start, e)
    return WaitResult("fonts", WaitStatus.MET, _elapsed(start))


async def wait_for_images(page: Page, timeout_ms: int, enabled: bool = True) -> WaitResult:
    if not enabled:
        return WaitResult("images", WaitStatus.NOT_APPLICABLE)
    start = time.monotonic()
    try:
        await page.wait_for_function(_IMAGES_READY_JS, timeout=timeout_ms)
    except PlaywrightError as e:
        return _timed_out("images", start, e)
    return WaitResult("images", WaitStatus.MET, _elapsed(start))


def _elapsed(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def _timed_out(signal: str, start: float, error: Exception) -> WaitResult:
    detail = str(error).splitlines()[0] if str(error) else type(error).__name__
    result = WaitResult(signal, WaitStatus.TIMED_OUT, _elapsed(start), detail)
    logger.warning("Degraded determinism: %s", result.describe())
    return result
