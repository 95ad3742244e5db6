"""Result sinks — forward a finished report to external trackers, best effort."""

from __future__ import annotations

import importlib
import logging
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Sequence

from visreg.errors import SinkConfigError
from visreg.models.outcome import RegressionReport

logger = logging.getLogger(__name__)


class ResultSink(ABC):
    """Something that accepts a finished report (test-case manager, error tracker, ...)."""

    name: str = "sink"

    @abstractmethod
    def send(self, report: RegressionReport, report_path: Path | None) -> None:
        """Deliver the report. Raise on failure; the caller retries."""


def load_sinks(paths: Sequence[str]) -> list[ResultSink]:
    """Import and instantiate sinks named as ``package.module:ClassName``."""
    sinks: list[ResultSink] = []
    for path in paths:
        module_name, _, class_name = path.partition(":")
        if not module_name or not class_name:
            raise SinkConfigError(f"Sink '{path}' must look like 'package.module:ClassName'")
        try:
            sink_cls = getattr(importlib.import_module(module_name), class_name)
        except (ImportError, AttributeError) as e:
            raise SinkConfigError(f"Cannot load sink '{path}': {e}") from e
        if not (isinstance(sink_cls, type) and issubclass(sink_cls, ResultSink)):
            raise SinkConfigError(f"Sink '{path}' is not a ResultSink subclass")
        try:
            sinks.append(sink_cls())
        except TypeError as e:
            raise SinkConfigError(f"Cannot instantiate sink '{path}': {e}") from e
        logger.debug("Registered sink %s", path)
    return sinks


def publish_report(
    sinks: Sequence[ResultSink],
    report: RegressionReport,
    report_path: Path | None = None,
    max_attempts: int = 3,
    backoff_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> dict[str, bool]:
    """Send the report to every sink with bounded retries.

    Never raises: a sink that keeps failing is logged and reported as False
    in the returned ``{sink name: delivered}`` mapping. The backoff doubles
    after every failed attempt.
    """
    delivered: dict[str, bool] = {}
    for sink in sinks:
        delay = backoff_seconds
        delivered[sink.name] = False
        for attempt in range(1, max_attempts + 1):
            try:
                sink.send(report, report_path)
            except Exception as e:
                logger.warning("Sink %s failed (attempt %d/%d): %s", sink.name, attempt, max_attempts, e)
                if attempt < max_attempts:
                    sleep(delay)
                    delay *= 2
                continue
            delivered[sink.name] = True
            logger.info("Published report %s to %s", report.run.run_id, sink.name)
            break
        else:
            logger.error("Giving up on sink %s after %d attempts", sink.name, max_attempts)
    return delivered
