"""Capture log — console and page errors collected during one capture only."""

from __future__ import annotations

import logging

from playwright.async_api import Page

logger = logging.getLogger(__name__)


class CaptureLog:
    """Bounded, append-only log scoped to a single capture.

    Listeners are attached with ``attach`` and removed by ``drain``, which may
    be called exactly once. Nothing leaks into the next capture.
    """

    def __init__(self, max_entries: int = 200):
        self.max_entries = max_entries
        self.dropped = 0
        self._entries: list[str] = []
        self._page: Page | None = None
        self._drained = False

    def attach(self, page: Page) -> None:
        if self._drained:
            raise RuntimeError("Capture log already drained")
        self._page = page
        page.on("console", self._on_console)
        page.on("pageerror", self._on_page_error)

    def append(self, entry: str) -> None:
        if self._drained:
            return
        if len(self._entries) >= self.max_entries:
            self.dropped += 1
            return
        self._entries.append(entry)

    def _on_console(self, msg) -> None:
        self.append(f"[{msg.type}] {msg.text}")

    def _on_page_error(self, error) -> None:
        self.append(f"[pageerror] {error}")

    def drain(self) -> list[str]:
        """Detach listeners and hand over the collected entries."""
        if self._drained:
            raise RuntimeError("Capture log already drained")
        self._drained = True
        if self._page is not None:
            self._page.remove_listener("console", self._on_console)
            self._page.remove_listener("pageerror", self._on_page_error)
            self._page = None
        entries = self._entries
        self._entries = []
        if self.dropped:
            entries.append(f"[visreg] {self.dropped} further messages dropped")
        return entries
