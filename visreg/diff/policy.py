"""Pass/fail policy layered on top of raw diff numbers."""

from __future__ import annotations

from dataclasses import dataclass

from visreg.diff.differ import DiffResult
from visreg.models.config import ThresholdPolicy


@dataclass(frozen=True)
class PolicyVerdict:
    passed: bool
    pixel_gate_passed: bool
    ratio_gate_passed: bool
    message: str


def evaluate(diff: DiffResult, policy: ThresholdPolicy) -> PolicyVerdict:
    """Apply the absolute pixel cap and the relative ratio cap.

    Both comparisons are inclusive and both gates must pass. Raising either
    cap can only turn a failure into a pass.
    """
    pixel_ok = diff.differing_pixels <= policy.max_diff_pixels
    ratio_ok = diff.difference_ratio <= policy.max_diff_ratio
    message = (
        f"{diff.differing_pixels} differing pixels ({diff.difference_ratio:.4%}); "
        f"limits {policy.max_diff_pixels} px / {policy.max_diff_ratio:.4%}"
    )
    if not pixel_ok:
        message += "; pixel cap exceeded"
    if not ratio_ok:
        message += "; ratio cap exceeded"
    return PolicyVerdict(
        passed=pixel_ok and ratio_ok,
        pixel_gate_passed=pixel_ok,
        ratio_gate_passed=ratio_ok,
        message=message,
    )
