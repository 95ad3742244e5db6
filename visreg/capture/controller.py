"""Capture controller — produces one deterministic bitmap for a named target."""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass, field
from typing import Literal

from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from visreg.errors import CaptureError, CaptureTimeoutError, VisregError
from visreg.models.config import HarnessConfig, MaskRect, VariantConfig, ViewportConfig, VisualTarget
from visreg.url_utils import page_url

from .locators import ResolvedTarget, dismiss_consent, resolve_target
from .normalizer import apply_normalization
from .page_log import CaptureLog
from .waits import WaitResult, wait_for_fonts, wait_for_images, wait_for_network_idle

logger = logging.getLogger(__name__)

# Pause media, freeze running CSS animations and cancel pending timers that
# could still mutate layout between stabilization and the snapshot.
_STABILIZE_JS = """() => {
    document.querySelectorAll('video, audio').forEach(media => {
        try { media.pause(); media.currentTime = 0; } catch (e) {}
    });
    document.getAnimations().forEach(anim => {
        try { anim.finish(); } catch (e) { anim.pause(); }
    });
    const highest = window.setTimeout(() => {}, 0);
    for (let id = 0; id <= highest; id++) {
        window.clearTimeout(id);
        window.clearInterval(id);
    }
    window.setTimeout = () => 0;
    window.setInterval = () => 0;
    window.requestAnimationFrame = () => 0;
}"""

_SCROLL_OFFSET_JS = "() => [window.scrollX, window.scrollY]"


@dataclass
class CaptureOptions:
    viewport: ViewportConfig
    wait_for_network_idle: bool = True
    wait_for_fonts: bool = True
    wait_for_images: bool = True
    scroll_into_view: bool = False
    full_page: bool = False
    mask_selectors: list[str] = field(default_factory=list)
    mask_regions: list[MaskRect] = field(default_factory=list)
    scale: Literal["css", "device"] = "css"

    @classmethod
    def for_target(cls, target: VisualTarget, variant: VariantConfig, config: HarnessConfig) -> "CaptureOptions":
        return cls(
            viewport=variant.viewport,
            wait_for_network_idle=target.wait_for_network_idle,
            wait_for_fonts=target.wait_for_fonts,
            wait_for_images=target.wait_for_images,
            scroll_into_view=target.scroll_into_view,
            full_page=target.full_page,
            mask_selectors=list(target.mask_selectors),
            mask_regions=list(target.mask_regions),
            scale=config.screenshot_scale,
        )

    @property
    def pixel_scale(self) -> float:
        return self.viewport.device_scale_factor if self.scale == "device" else 1.0


@dataclass
class Capture:
    image: Image.Image
    mask_rects: list[MaskRect] = field(default_factory=list)
    waits: list[WaitResult] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    console_messages: list[str] = field(default_factory=list)
    url: str = ""

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size


class CaptureController:
    """Navigates, waits, normalizes and snapshots a target.

    The order of the steps is fixed; every readiness wait is independently
    timed and soft, only navigation is a hard failure.
    """

    def __init__(self, config: HarnessConfig):
        self.config = config
        self.waits = config.waits

    async def capture(self, page: Page, target: VisualTarget, options: CaptureOptions) -> Capture:
        """Capture ``target``; any browser failure surfaces as a CaptureError.

        Console output collected before a failure travels on the raised
        error's ``console_messages``.
        """
        url = page_url(self.config.target_url, target.path)
        log = CaptureLog()
        log.attach(page)
        try:
            capture = await self._capture_steps(page, url, target, options)
        except VisregError as e:
            e.console_messages = log.drain()
            raise
        except PlaywrightTimeoutError as e:
            raise _with_console(CaptureTimeoutError(f"Browser timed out capturing {url}: {e}"), log) from e
        except PlaywrightError as e:
            raise _with_console(CaptureError(f"Browser error capturing {url}: {e}"), log) from e
        except BaseException:
            log.drain()
            raise

        capture.console_messages = log.drain()
        logger.debug("Captured %s: %dx%d, %d masks", target.name, capture.image.width, capture.image.height,
                     len(capture.mask_rects))
        return capture

    async def _capture_steps(self, page: Page, url: str, target: VisualTarget, options: CaptureOptions) -> Capture:
        warnings: list[str] = []
        await page.set_viewport_size({"width": options.viewport.width, "height": options.viewport.height})
        await self._navigate(page, url, warnings)

        if self.config.consent_locators:
            await dismiss_consent(page, self.config.consent_locators)

        wait_results = [
            await wait_for_network_idle(page, self.waits.network_idle_timeout_ms, options.wait_for_network_idle),
            await wait_for_fonts(page, self.waits.fonts_timeout_ms, options.wait_for_fonts),
            await wait_for_images(page, self.waits.images_timeout_ms, options.wait_for_images),
        ]
        warnings.extend(w.describe() for w in wait_results if w.degraded)

        if not await apply_normalization(page, self.config.dynamic_selectors):
            warnings.append("style normalization not applied")

        resolved = await resolve_target(page, target.locators) if target.locators else None
        if resolved is not None and options.scroll_into_view:
            await self._scroll_into_view(page, resolved, warnings)

        await self._stabilize(page, warnings)
        png = await self._snapshot(page, resolved, options)
        image = Image.open(io.BytesIO(png)).convert("RGBA")
        # Element snapshots scroll the element into view; measure afterwards.
        mask_rects = await self._resolve_masks(page, resolved, options, image.size, warnings)
        return Capture(image=image, mask_rects=mask_rects, waits=wait_results, warnings=warnings, url=url)

    async def _navigate(self, page: Page, url: str, warnings: list[str]) -> None:
        timeout = self.waits.navigation_timeout_ms
        logger.debug("Navigating to %s", url)
        try:
            response = await page.goto(url, wait_until="domcontentloaded", timeout=timeout)
        except PlaywrightTimeoutError as e:
            raise CaptureTimeoutError(f"Navigation to {url} timed out after {timeout}ms") from e
        except PlaywrightError as e:
            raise CaptureTimeoutError(f"Navigation to {url} failed: {e}") from e
        if response is not None and response.status >= 400:
            warnings.append(f"{url} answered HTTP {response.status}")

    async def _scroll_into_view(self, page: Page, resolved: ResolvedTarget, warnings: list[str]) -> None:
        try:
            await resolved.locator.scroll_into_view_if_needed(timeout=self.waits.snapshot_timeout_ms)
        except PlaywrightError as e:
            warnings.append(f"scroll into view failed: {e}")
            return
        await page.wait_for_timeout(self.waits.scroll_settle_ms)

    async def _stabilize(self, page: Page, warnings: list[str]) -> None:
        try:
            await page.evaluate(_STABILIZE_JS)
        except PlaywrightError as e:
            logger.warning("Could not freeze media/timers: %s", e)
            warnings.append("media and timers not frozen")

    async def _snapshot(self, page: Page, resolved: ResolvedTarget | None, options: CaptureOptions) -> bytes:
        kwargs = {
            "animations": "disabled",
            "caret": "hide",
            "scale": options.scale,
            "mask": [page.locator(s) for s in options.mask_selectors],
            "mask_color": self.config.mask_color,
            "timeout": self.waits.snapshot_timeout_ms,
        }
        try:
            if resolved is not None:
                return await resolved.locator.screenshot(**kwargs)
            return await page.screenshot(full_page=options.full_page, **kwargs)
        except PlaywrightError as e:
            raise CaptureError(f"Snapshot failed: {e}") from e

    async def _resolve_masks(
        self,
        page: Page,
        resolved: ResolvedTarget | None,
        options: CaptureOptions,
        image_size: tuple[int, int],
        warnings: list[str],
    ) -> list[MaskRect]:
        """Convert mask selectors and static regions to rectangles in image pixels."""
        width, height = image_size
        rects: list[MaskRect] = []

        for region in options.mask_regions:
            clipped = region.clipped(width, height)
            if clipped is not None:
                rects.append(clipped)

        if not options.mask_selectors:
            return rects

        try:
            origin_x, origin_y = await self._image_origin(page, resolved, options)
        except PlaywrightError as e:
            warnings.append(f"mask origin unavailable, selector masks skipped: {e}")
            return rects

        scale = options.pixel_scale
        for selector in options.mask_selectors:
            try:
                boxes = [await loc.bounding_box() for loc in await page.locator(selector).all()]
            except PlaywrightError as e:
                warnings.append(f"mask selector '{selector}' failed: {e}")
                continue
            for box in boxes:
                if box is None:
                    continue
                rect = MaskRect(
                    x=math.floor((box["x"] - origin_x) * scale),
                    y=math.floor((box["y"] - origin_y) * scale),
                    width=math.ceil(box["width"] * scale) + 1,
                    height=math.ceil(box["height"] * scale) + 1,
                )
                clipped = rect.clipped(width, height)
                if clipped is not None:
                    rects.append(clipped)
        return rects

    async def _image_origin(
        self, page: Page, resolved: ResolvedTarget | None, options: CaptureOptions
    ) -> tuple[float, float]:
        """Viewport coordinates of the snapshot's top-left pixel."""
        if resolved is not None:
            box = await resolved.locator.bounding_box()
            if box is None:
                raise CaptureError("Target element has no bounding box after snapshot")
            return box["x"], box["y"]
        if options.full_page:
            scroll_x, scroll_y = await page.evaluate(_SCROLL_OFFSET_JS)
            return -scroll_x, -scroll_y
        return 0.0, 0.0


def _with_console(error: VisregError, log: CaptureLog) -> VisregError:
    error.console_messages = log.drain()
    return error
