"""Locator resolution — ordered locator variants with first-match-wins semantics."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page

from visreg.errors import AmbiguousTargetError, TargetNotFoundError
from visreg.models.config import LocatorSpec

logger = logging.getLogger(__name__)


@dataclass
class ResolvedTarget:
    locator: Locator
    spec: LocatorSpec
    selector: str
    attempts: list[dict] = field(default_factory=list)  # [{selector, count}]


async def resolve_target(page: Page, specs: Sequence[LocatorSpec]) -> ResolvedTarget:
    """Resolve an ordered list of locator variants to exactly one visible element.

    The first variant matching at least one element wins; later variants are
    not tried. A winning variant matching several elements is ambiguous
    unless it names an ``nth`` match.
    """
    if not specs:
        raise ValueError("resolve_target needs at least one locator")

    attempts: list[dict] = []
    for spec in specs:
        selector = spec.to_selector()
        try:
            count = await page.locator(selector).count()
        except PlaywrightError as e:
            logger.debug("Locator '%s' failed: %s", selector, e)
            attempts.append({"selector": selector, "count": 0, "error": str(e)})
            continue
        attempts.append({"selector": selector, "count": count})
        if count == 0:
            continue

        if spec.nth is None:
            if count > 1:
                raise AmbiguousTargetError(selector, count)
            locator = page.locator(selector)
        else:
            if spec.nth >= count:
                logger.debug("Locator '%s' has %d matches, nth=%d out of range", selector, count, spec.nth)
                continue
            locator = page.locator(selector).nth(spec.nth)

        if not await locator.is_visible():
            raise TargetNotFoundError(f"Locator '{selector}' matched but the element is not visible")
        logger.debug("Resolved target via '%s' (%d candidates)", selector, count)
        return ResolvedTarget(locator=locator, spec=spec, selector=selector, attempts=attempts)

    tried = ", ".join(a["selector"] for a in attempts)
    raise TargetNotFoundError(f"No locator matched an element (tried: {tried})")


async def dismiss_consent(page: Page, specs: Sequence[LocatorSpec], timeout_ms: int = 2000) -> str | None:
    """Click the first visible consent button, if any. Never raises.

    Returns the selector that was clicked, or None.
    """
    for spec in specs:
        selector = spec.to_selector()
        try:
            locator = page.locator(selector).nth(spec.nth or 0)
            if not await locator.is_visible():
                continue
            await locator.click(timeout=timeout_ms)
            await page.wait_for_timeout(500)
            logger.debug("Dismissed consent banner via '%s'", selector)
            return selector
        except PlaywrightError as e:
            logger.debug("Consent locator '%s' failed: %s", selector, e)
    return None
