"""Browser utilities — launches engines and builds deterministic contexts."""

from __future__ import annotations

import logging

from playwright.async_api import Browser, BrowserContext, Playwright
from playwright.async_api import Error as PlaywrightError

from visreg.errors import BrowserLaunchError
from visreg.models.config import VariantConfig

logger = logging.getLogger(__name__)

_CHROMIUM_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--font-render-hinting=none",
    "--disable-skia-runtime-opts",
    "--disable-lcd-text",
    "--force-color-profile=srgb",
    "--hide-scrollbars",
]

# Seed Math.random so generated ids and shuffles repeat between runs.
_DETERMINISM_INIT_SCRIPT = """
(() => {
    let seed = 42;
    Math.random = () => {
        seed = (seed * 16807) % 2147483647;
        return (seed - 1) / 2147483646;
    };
})();
"""


async def launch_browser(playwright: Playwright, browser_name: str, headless: bool = True) -> Browser:
    """Launch the named engine. Raises BrowserLaunchError if it cannot start."""
    try:
        engine = getattr(playwright, browser_name)
    except AttributeError as e:
        raise BrowserLaunchError(f"Unknown browser engine: {browser_name}") from e

    launch_kwargs: dict = {"headless": headless}
    if browser_name == "chromium":
        launch_kwargs["args"] = list(_CHROMIUM_ARGS)
    try:
        browser = await engine.launch(**launch_kwargs)
    except PlaywrightError as e:
        raise BrowserLaunchError(f"Could not launch {browser_name}: {e}") from e
    logger.debug("Launched %s (headless=%s)", browser_name, headless)
    return browser


async def create_context(browser: Browser, variant: VariantConfig) -> BrowserContext:
    """Create a context emulating the variant's viewport and device."""
    viewport = {"width": variant.viewport.width, "height": variant.viewport.height}
    context_kwargs: dict = {
        "viewport": viewport,
        "device_scale_factor": variant.viewport.device_scale_factor,
        "locale": "en-US",
        "timezone_id": "America/New_York",
        "color_scheme": "light",
        "reduced_motion": "reduce",
        "service_workers": "block",
        "extra_http_headers": {
            "Accept-Language": "en-US,en;q=0.9",
        },
    }
    # Firefox rejects is_mobile entirely.
    if variant.browser != "firefox":
        context_kwargs["is_mobile"] = variant.is_mobile
        context_kwargs["has_touch"] = variant.has_touch
    if variant.user_agent:
        context_kwargs["user_agent"] = variant.user_agent

    context = await browser.new_context(**context_kwargs)
    await context.add_init_script(_DETERMINISM_INIT_SCRIPT)
    return context
