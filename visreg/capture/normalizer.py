"""Style normalizer — removes sources of nondeterminism from a rendered page."""

from __future__ import annotations

import logging
from typing import Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

logger = logging.getLogger(__name__)

_BASE_CSS = """
/* Freeze animations and transitions at their final frame */
*, *::before, *::after {
  animation-duration: 0s !important;
  animation-delay: 0s !important;
  animation-iteration-count: 1 !important;
  animation-fill-mode: forwards !important;
  transition-duration: 0s !important;
  transition-delay: 0s !important;
}
*:hover {
  transition: none !important;
}

/* No smooth scrolling */
html, body, * {
  scroll-behavior: auto !important;
}

/* Video frames differ between captures */
video {
  visibility: hidden !important;
}

/* Caret and selection */
* {
  caret-color: transparent !important;
}
::selection {
  background-color: transparent !important;
  color: inherit !important;
}

/* Font smoothing */
* {
  -webkit-font-smoothing: antialiased !important;
  -moz-osx-font-smoothing: grayscale !important;
  text-rendering: geometricPrecision !important;
}

/* Scrollbars */
::-webkit-scrollbar {
  display: none !important;
}
html {
  scrollbar-width: none !important;
}

/* Loading skeletons */
.skeleton, .shimmer, .loading {
  display: none !important;
}

/* Placeholders */
input::placeholder, textarea::placeholder {
  color: #999 !important;
  opacity: 1 !important;
}
"""


def build_normalization_css(dynamic_selectors: Sequence[str]) -> str:
    """Return the fixed style sheet plus one hiding rule per dynamic selector.

    Each selector gets its own rule so an invalid selector only drops itself.
    Selectors matching nothing are harmless no-ops.
    """
    rules = [
        f"{selector} {{ visibility: hidden !important; }}"
        for selector in dynamic_selectors
        if selector.strip()
    ]
    return _BASE_CSS + "\n/* Dynamic content */\n" + "\n".join(rules) + "\n"


async def apply_normalization(page: Page, dynamic_selectors: Sequence[str]) -> bool:
    """Inject the normalization style sheet into the page.

    Returns False (and logs) when injection fails, e.g. because the page
    navigated away; the capture then continues with weaker determinism.
    """
    css = build_normalization_css(dynamic_selectors)
    try:
        await page.add_style_tag(content=css)
    except PlaywrightError as e:
        logger.warning("Style normalization failed, continuing without it: %s", e)
        return False
    logger.debug("Applied normalization CSS (%d dynamic selectors)", len(dynamic_selectors))
    return True
