"""Report generation orchestration."""

from __future__ import annotations

import logging
from pathlib import Path

from visreg.models.outcome import RegressionReport

from .html_report import generate_html_report
from .json_report import generate_json_report, load_json_report

logger = logging.getLogger(__name__)


class Reporter:
    """Writes the configured report formats for a finished run."""

    def __init__(self, report_formats: list[str] | None = None):
        self.report_formats = report_formats or ["html", "json"]

    def write(self, report: RegressionReport, output_dir: Path) -> dict[str, str]:
        """Write all configured formats. Returns format -> file path."""
        output_dir.mkdir(parents=True, exist_ok=True)
        generated = {}
        logger.debug("Report output directory: %s", output_dir)

        # JSON first: it is the artifact CI and the sinks consume.
        if "json" in self.report_formats:
            path = output_dir / f"report_{report.run.run_id}.json"
            generate_json_report(report, path)
            generated["json"] = str(path)
            logger.info("JSON report: %s", path)

        if "html" in self.report_formats:
            path = output_dir / f"report_{report.run.run_id}.html"
            generate_html_report(report, path)
            generated["html"] = str(path)
            logger.info("HTML report: %s", path)

        return generated

    def rebuild(self, json_path: Path, output_dir: Path | None = None) -> dict[str, str]:
        """Regenerate the HTML report from a saved JSON result file."""
        report = load_json_report(json_path)
        out_dir = output_dir or json_path.parent
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / f"report_{report.run.run_id}.html"
        generate_html_report(report, path)
        logger.info("HTML report rebuilt: %s", path)
        return {"html": str(path)}


def find_previous_report(output_dir: Path, exclude_run_id: str | None = None) -> RegressionReport | None:
    """Load the most recent JSON report in ``output_dir``, if any."""
    candidates = sorted(
        (p for p in output_dir.glob("report_*.json") if p.stem != f"report_{exclude_run_id}"),
        key=lambda p: p.stat().st_mtime,
        reverse=True,
    )
    for path in candidates:
        try:
            return load_json_report(path)
        except (OSError, ValueError) as e:
            logger.warning("Skipping unreadable previous report %s: %s", path, e)
    return None
