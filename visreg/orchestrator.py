"""Pipeline orchestrator — coordinates capture, compare, report and publish stages."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from pathlib import Path
from typing import Mapping, Sequence

from visreg.baseline.store import BaselineStore
from visreg.errors import ExternalResultsError
from visreg.maintenance import cleanup_old_artifacts
from visreg.models.config import HarnessConfig
from visreg.models.outcome import ExternalResult, LoadTestSummary, RegressionReport
from visreg.models.run_context import RunContext
from visreg.reporter.builder import build_report
from visreg.reporter.external import parse_k6_summary, parse_playwright_results
from visreg.reporter.regression_detector import detect_regressions
from visreg.reporter.reporter import Reporter, find_previous_report
from visreg.runner import VisualRunner
from visreg.sinks import ResultSink, publish_report

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_ABORTED = 2


def exit_code_for(report: RegressionReport) -> int:
    """0 when every key passed or was created, 1 on any failure, 2 if the run aborted."""
    if report.run_error:
        return EXIT_ABORTED
    if report.counts.failed:
        return EXIT_FAILURES
    return EXIT_OK


class Orchestrator:
    """Coordinates a full visual regression run."""

    def __init__(
        self,
        config: HarnessConfig,
        sinks: Sequence[ResultSink] = (),
        env: Mapping[str, str] | None = None,
    ):
        self.config = config
        self.sinks = list(sinks)
        self.env = env
        self.runs_dir = Path(config.runs_dir)
        self.runs_dir.mkdir(parents=True, exist_ok=True)
        self.report_dir = Path(config.report_output_dir)
        self.store = BaselineStore(Path(config.baselines_dir))

    def run(
        self,
        update_baselines: bool = False,
        functional_results: Path | None = None,
        load_summary: Path | None = None,
    ) -> dict:
        """Execute capture → compare → report → publish."""
        return asyncio.run(self._run_pipeline(update_baselines, functional_results, load_summary))

    async def _run_pipeline(
        self,
        update_baselines: bool,
        functional_results: Path | None,
        load_summary: Path | None,
    ) -> dict:
        start = time.time()
        run_context = RunContext.from_environment(self.config, env=self.env)
        logger.info("=== Starting visual run %s against %s ===", run_context.run_id, run_context.base_url)
        self._write_metadata(run_context)

        if self.config.artifact_retention_days:
            cleanup_old_artifacts(self.runs_dir, self.config.artifact_retention_days)

        # Stage 1: Capture and compare
        logger.info("--- Stage 1: Capture (%s) ---", "update baselines" if update_baselines else "compare")
        runner = VisualRunner(self.config, run_context, self.store, self.runs_dir)
        result = await runner.run(update_baselines=update_baselines)
        logger.info("--- Stage 1 complete: %d outcomes, %d baselines written in %.1fs ---",
                    len(result.outcomes), len(result.committed), result.duration_seconds)

        # Stage 2: Report
        logger.info("--- Stage 2: Report ---")
        external = self._load_external(functional_results)
        load_test = self._load_load_summary(load_summary)
        previous = find_previous_report(self.report_dir, exclude_run_id=run_context.run_id) \
            if self.report_dir.exists() else None
        regressions = detect_regressions(previous, result.outcomes) if previous else []
        report = build_report(
            result.outcomes,
            run_context,
            external_results=external,
            load_test=load_test,
            regressions=regressions,
            run_error=result.aborted_reason,
        )
        reports = Reporter(self.config.report_formats).write(report, self.report_dir)

        # Stage 3: Publish
        delivered: dict[str, bool] = {}
        if self.sinks:
            logger.info("--- Stage 3: Publish to %d sinks ---", len(self.sinks))
            json_path = Path(reports["json"]) if "json" in reports else None
            delivered = publish_report(
                self.sinks, report, json_path,
                max_attempts=self.config.sink_max_attempts,
                backoff_seconds=self.config.sink_backoff_seconds,
            )

        duration = time.time() - start
        logger.info("=== Run complete in %.1fs ===", duration)
        return {
            "run_id": run_context.run_id,
            "duration": round(duration, 2),
            "exit_code": exit_code_for(report),
            "run_error": report.run_error,
            "results": report.counts.model_dump(),
            "regressions": len(regressions),
            "baselines_written": [key.label for key in result.committed],
            "reports": reports,
            "sinks": delivered,
        }

    def rebuild_report(self, json_path: Path) -> dict[str, str]:
        """Regenerate the HTML report from a saved JSON result file."""
        return Reporter(self.config.report_formats).rebuild(json_path)

    def cleanup(self) -> list[Path]:
        return cleanup_old_artifacts(self.runs_dir, self.config.artifact_retention_days)

    def _write_metadata(self, run_context: RunContext) -> None:
        path = self.runs_dir / run_context.run_id / "metadata.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Saving run metadata to %s", path)
        with open(path, "w") as f:
            json.dump(run_context.model_dump(mode="json"), f, indent=2)

    @staticmethod
    def _load_external(path: Path | None) -> list[ExternalResult]:
        if path is None:
            return []
        try:
            return parse_playwright_results(path)
        except ExternalResultsError as e:
            logger.warning("Functional results not included: %s", e)
            return []

    @staticmethod
    def _load_load_summary(path: Path | None) -> LoadTestSummary | None:
        if path is None:
            return None
        try:
            return parse_k6_summary(path)
        except ExternalResultsError as e:
            logger.warning("Load-test summary not included: %s", e)
            return None
