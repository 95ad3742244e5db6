"""Comparison outcome and report data structures."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from visreg.models.run_context import RunContext


class OutcomeStatus(str, Enum):
    PASSED = "passed"
    FAILED_VISUAL = "failed-visual"
    FAILED_ENVIRONMENT = "failed-environment"
    FAILED_LAYOUT = "failed-layout"
    BASELINE_CREATED = "baseline-created"

    @property
    def is_failure(self) -> bool:
        return self.value.startswith("failed-")


class FailureKind(str, Enum):
    """Refines failed-environment outcomes."""

    ENVIRONMENT = "environment"  # site unreachable, navigation timeout
    CONFIGURATION = "configuration"  # target resolved to 0 or >1 elements
    CAPTURE = "capture"  # render/snapshot failure


class BaselineKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    suite: str
    test_name: str
    variant: str
    image_name: str = "screenshot"

    @property
    def label(self) -> str:
        return f"{self.suite}/{self.test_name}/{self.image_name}@{self.variant}"


class ComparisonOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: BaselineKey
    status: OutcomeStatus
    match: bool = False
    differing_pixels: Optional[int] = None
    difference_ratio: Optional[float] = None
    baseline_path: Optional[str] = None
    actual_path: Optional[str] = None
    diff_path: Optional[str] = None
    failure_kind: Optional[FailureKind] = None
    message: str = ""
    baseline_size: Optional[tuple[int, int]] = None
    capture_size: Optional[tuple[int, int]] = None
    warnings: list[str] = Field(default_factory=list)
    console_messages: list[str] = Field(default_factory=list)
    duration_seconds: float = 0.0


class ExternalResult(BaseModel):
    """A pass/fail record produced by a collaborator (e.g. the functional suite)."""

    name: str
    status: str  # passed, failed, skipped
    duration_seconds: float = 0.0
    source: str = "functional"
    error: Optional[str] = None


class LoadTestSummary(BaseModel):
    """Headline numbers from the load generator's summary artifact."""

    source_path: str = ""
    total_requests: int = 0
    failed_rate: float = 0.0
    avg_duration_ms: Optional[float] = None
    p95_duration_ms: Optional[float] = None
    max_duration_ms: Optional[float] = None
    thresholds: dict[str, bool] = Field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return all(self.thresholds.values())


class Regression(BaseModel):
    key_label: str
    previous_status: str
    current_status: str
    message: str = ""


class ReportCounts(BaseModel):
    total: int = 0
    passed: int = 0
    failed: int = 0
    baseline_created: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)


class RegressionReport(BaseModel):
    run: RunContext
    generated_at: str
    counts: ReportCounts = Field(default_factory=ReportCounts)
    outcomes: list[ComparisonOutcome] = Field(default_factory=list)
    external_results: list[ExternalResult] = Field(default_factory=list)
    load_test: Optional[LoadTestSummary] = None
    regressions: list[Regression] = Field(default_factory=list)
    run_error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.run_error is None and self.counts.failed == 0

    def failures(self) -> list[ComparisonOutcome]:
        return [o for o in self.outcomes if o.status.is_failure]

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")
