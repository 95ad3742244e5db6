"""Exception hierarchy for the visual regression harness."""

from __future__ import annotations


class VisregError(Exception):
    """Base class for all harness errors."""

    #: Browser console output collected before the error, if any.
    console_messages: list[str] = []


# --- Capture -----------------------------------------------------------------


class CaptureError(VisregError):
    """The browser failed to render or snapshot the target."""


class TargetNotFoundError(CaptureError):
    """No locator variant resolved to a visible element."""


class AmbiguousTargetError(CaptureError):
    """A locator variant matched more than one element."""

    def __init__(self, selector: str, count: int):
        super().__init__(f"Locator '{selector}' matched {count} elements, expected exactly one")
        self.selector = selector
        self.count = count


class CaptureTimeoutError(VisregError, TimeoutError):
    """Navigation timed out or the site could not be reached.

    Readiness waits never raise this; only the page navigation itself does.
    """


# --- Baselines ---------------------------------------------------------------


class BaselineNotFoundError(VisregError, LookupError):
    """No baseline has been stored for the key yet (first run)."""


class BaselineExistsError(VisregError):
    """Baseline creation refused because a baseline already exists."""


class BaselineStoreReadOnlyError(VisregError):
    """A write was attempted on a store opened read-only."""


# --- Diff --------------------------------------------------------------------


class DimensionMismatchError(VisregError):
    """Baseline and capture differ in size; no percentage can be computed."""

    def __init__(self, baseline_size: tuple[int, int], capture_size: tuple[int, int]):
        super().__init__(
            f"Dimension mismatch: baseline {baseline_size[0]}x{baseline_size[1]}, "
            f"capture {capture_size[0]}x{capture_size[1]}"
        )
        self.baseline_size = baseline_size
        self.capture_size = capture_size


# --- Reporting ---------------------------------------------------------------


class ExternalResultsError(VisregError):
    """A collaborator's result file could not be read or has an unknown shape."""


# --- Run level ---------------------------------------------------------------


class BrowserLaunchError(VisregError):
    """The browser could not be started at all; the whole run is aborted."""


class SinkConfigError(VisregError):
    """A configured result sink could not be imported or is not a ResultSink."""
