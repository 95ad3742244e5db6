"""External results — folds the functional suite and load-test summaries into a report."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator

from visreg.errors import ExternalResultsError
from visreg.models.outcome import ExternalResult, LoadTestSummary

logger = logging.getLogger(__name__)

# Playwright reports the outcome per test ("expected", ...) and per attempt ("passed", ...).
_STATUS_MAP = {
    "expected": "passed",
    "flaky": "passed",
    "unexpected": "failed",
    "skipped": "skipped",
    "passed": "passed",
    "failed": "failed",
    "timedOut": "failed",
    "interrupted": "failed",
    "pending": "skipped",
}


def _read_json(path: Path) -> dict[str, Any]:
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ExternalResultsError(f"Results file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ExternalResultsError(f"Results file is not valid JSON: {path} ({e})") from e
    if not isinstance(data, dict):
        raise ExternalResultsError(f"Unexpected results format in {path}")
    return data


def _walk_suites(suites: list[dict], titles: tuple[str, ...] = ()) -> Iterator[tuple[tuple[str, ...], dict]]:
    for suite in suites:
        path = titles + ((suite["title"],) if suite.get("title") else ())
        for spec in suite.get("specs", []):
            yield path, spec
        yield from _walk_suites(suite.get("suites", []), path)


def _to_result(titles: tuple[str, ...], spec: dict, test: dict, source: str) -> ExternalResult:
    attempts = test.get("results") or []
    last = attempts[-1] if attempts else {}
    raw_status = test.get("status") or last.get("status") or "skipped"
    status = _STATUS_MAP.get(raw_status, "skipped")

    name = " › ".join(titles + (spec.get("title", ""),))
    if test.get("projectName"):
        name = f"[{test['projectName']}] {name}"

    error = None
    errors = last.get("errors") or test.get("errors") or []
    if last.get("error"):
        error = last["error"].get("message")
    elif errors:
        error = errors[0].get("message")

    duration_ms = last.get("duration", test.get("duration", 0)) or 0
    return ExternalResult(
        name=name,
        status=status,
        duration_seconds=round(duration_ms / 1000, 2),
        source=source,
        error=error,
    )


def parse_playwright_results(path: str | Path, source: str = "functional") -> list[ExternalResult]:
    """Read a Playwright JSON reporter file into ExternalResult records.

    One record per test (spec x project). The duration and error come from
    the last attempt.
    """
    path = Path(path)
    data = _read_json(path)
    if not isinstance(data.get("suites"), list):
        raise ExternalResultsError(f"{path} has no 'suites' list; is it a Playwright JSON report?")

    try:
        results = [
            _to_result(titles, spec, test, source)
            for titles, spec in _walk_suites(data["suites"])
            for test in spec.get("tests", [])
        ]
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ExternalResultsError(f"Malformed Playwright report {path}: {e!r}") from e

    logger.info("Read %d %s results from %s", len(results), source, path)
    return results


def parse_k6_summary(path: str | Path) -> LoadTestSummary:
    """Read the JSON a k6 ``handleSummary`` export writes."""
    path = Path(path)
    data = _read_json(path)
    metrics = data.get("metrics")
    if not isinstance(metrics, dict):
        raise ExternalResultsError(f"{path} has no 'metrics'; is it a k6 summary export?")

    def _value(metric: str, field: str) -> float | None:
        values = metrics.get(metric, {}).get("values", metrics.get(metric, {}))
        value = values.get(field) if isinstance(values, dict) else None
        return float(value) if value is not None else None

    try:
        thresholds: dict[str, bool] = {}
        for metric_name, metric in sorted(metrics.items()):
            for expression, result in (metric.get("thresholds") or {}).items():
                ok = result.get("ok", True) if isinstance(result, dict) else not result
                thresholds[f"{metric_name}: {expression}"] = bool(ok)

        summary = LoadTestSummary(
            source_path=str(path),
            total_requests=int(_value("http_reqs", "count") or 0),
            failed_rate=_value("http_req_failed", "rate") or 0.0,
            avg_duration_ms=_value("http_req_duration", "avg"),
            p95_duration_ms=_value("http_req_duration", "p(95)"),
            max_duration_ms=_value("http_req_duration", "max"),
            thresholds=thresholds,
        )
    except (AttributeError, TypeError, ValueError) as e:
        raise ExternalResultsError(f"Malformed k6 summary {path}: {e!r}") from e

    if not summary.passed:
        logger.warning("Load test breached %d thresholds",
                       sum(1 for ok in thresholds.values() if not ok))
    return summary
