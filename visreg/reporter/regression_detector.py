"""Regression detection — compares with the previous run to find new failures."""

from __future__ import annotations

import logging
from typing import Sequence

from visreg.models.outcome import ComparisonOutcome, OutcomeStatus, Regression, RegressionReport

logger = logging.getLogger(__name__)


def detect_regressions(
    previous: RegressionReport, current: Sequence[ComparisonOutcome]
) -> list[Regression]:
    """Find keys that passed in the previous run and fail now.

    Keys are matched by their full label (suite, test, image and variant),
    so a variant that was added since the previous run never counts.
    """
    prev_by_label = {o.key.label: o for o in previous.outcomes}

    regressions = []
    for outcome in current:
        prev = prev_by_label.get(outcome.key.label)
        if prev and prev.status == OutcomeStatus.PASSED and outcome.status.is_failure:
            regressions.append(Regression(
                key_label=outcome.key.label,
                previous_status=prev.status.value,
                current_status=outcome.status.value,
                message=outcome.message,
            ))

    if regressions:
        logger.warning("Detected %d regressions since run %s", len(regressions), previous.run.run_id)
    return regressions
