"""Regression report builder — a pure projection of outcomes into a report."""

from __future__ import annotations

import time
from collections import Counter
from typing import Iterable, Optional, Sequence

from visreg.models.outcome import (
    ComparisonOutcome,
    ExternalResult,
    LoadTestSummary,
    OutcomeStatus,
    Regression,
    RegressionReport,
    ReportCounts,
)
from visreg.models.run_context import RunContext


def build_report(
    outcomes: Sequence[ComparisonOutcome],
    run_context: RunContext,
    external_results: Iterable[ExternalResult] = (),
    load_test: Optional[LoadTestSummary] = None,
    regressions: Iterable[Regression] = (),
    run_error: Optional[str] = None,
    generated_at: Optional[str] = None,
) -> RegressionReport:
    """Aggregate per-key outcomes into a report.

    Has no side effects. Building twice from the same inputs yields equal
    reports apart from ``generated_at``, which callers may pin.
    """
    outcomes = list(outcomes)
    return RegressionReport(
        run=run_context,
        generated_at=generated_at or time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        counts=count_outcomes(outcomes),
        outcomes=outcomes,
        external_results=list(external_results),
        load_test=load_test,
        regressions=list(regressions),
        run_error=run_error,
    )


def count_outcomes(outcomes: Sequence[ComparisonOutcome]) -> ReportCounts:
    by_status = Counter(o.status.value for o in outcomes)
    return ReportCounts(
        total=len(outcomes),
        passed=by_status[OutcomeStatus.PASSED.value],
        failed=sum(1 for o in outcomes if o.status.is_failure),
        baseline_created=by_status[OutcomeStatus.BASELINE_CREATED.value],
        by_status={status.value: by_status[status.value] for status in OutcomeStatus},
    )
