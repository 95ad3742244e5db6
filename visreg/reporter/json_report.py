"""JSON report output."""

from __future__ import annotations

import json
from pathlib import Path

from visreg.models.outcome import RegressionReport


def generate_json_report(report: RegressionReport, output_path: Path) -> None:
    """Write the machine-readable result file."""
    with open(output_path, "w") as f:
        json.dump(report.to_json_dict(), f, indent=2, default=str)


def load_json_report(path: Path) -> RegressionReport:
    """Read a result file written by ``generate_json_report``."""
    with open(path) as f:
        data = json.load(f)
    return RegressionReport.model_validate(data)
