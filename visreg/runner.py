"""Visual runner — captures every target per variant and compares it with its baseline."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from PIL import Image
from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from playwright.async_api import Error as PlaywrightError

from visreg.baseline.store import BaselineStore
from visreg.browser import create_context, launch_browser
from visreg.capture.controller import Capture, CaptureController, CaptureOptions
from visreg.diff.differ import compare
from visreg.diff.policy import evaluate
from visreg.errors import (
    AmbiguousTargetError,
    BaselineExistsError,
    BaselineNotFoundError,
    BrowserLaunchError,
    CaptureError,
    CaptureTimeoutError,
    DimensionMismatchError,
    TargetNotFoundError,
)
from visreg.models.config import HarnessConfig, VariantConfig, VisualTarget
from visreg.models.outcome import BaselineKey, ComparisonOutcome, FailureKind, OutcomeStatus
from visreg.models.run_context import RunContext

logger = logging.getLogger(__name__)


@dataclass
class StagedWrite:
    key: BaselineKey
    image: Image.Image
    mode: Literal["create", "update"]


@dataclass
class RunnerResult:
    outcomes: list[ComparisonOutcome] = field(default_factory=list)
    committed: list[BaselineKey] = field(default_factory=list)
    discarded_writes: int = 0
    aborted_reason: str | None = None
    duration_seconds: float = 0.0


class VisualRunner:
    """Runs the capture → compare → outcome loop, strictly sequentially.

    Baseline writes are staged in memory and only committed to the store
    once every capture of the run has finished. An aborted or cancelled run
    leaves the store exactly as it found it.
    """

    def __init__(
        self,
        config: HarnessConfig,
        run_context: RunContext,
        store: BaselineStore,
        runs_dir: Path,
        controller: CaptureController | None = None,
    ):
        self.config = config
        self.run_context = run_context
        self.store = store
        self.controller = controller or CaptureController(config)
        self.artifacts_dir = runs_dir / run_context.run_id / "artifacts"
        self._pending: dict[BaselineKey, StagedWrite] = {}
        self._started = time.monotonic()
        self._aborted_reason: str | None = None

    async def run(self, update_baselines: bool = False) -> RunnerResult:
        """Capture all targets for all variants, then commit staged baselines."""
        self._started = time.monotonic()
        self._aborted_reason = None
        self._pending.clear()
        outcomes: list[ComparisonOutcome] = []
        mode = "update" if update_baselines else "compare"
        logger.info("Starting visual run %s (%s, %d variants, %d targets)",
                    self.run_context.run_id, mode, len(self.config.variants), len(self.config.targets))

        try:
            async with async_playwright() as p:
                for variant in self.config.variants:
                    targets = [t for t in self.config.targets if t.applies_to(variant.name)]
                    if not targets:
                        continue
                    if self._aborted_reason or self._time_exhausted():
                        outcomes.extend(self._not_captured(variant, targets))
                        continue
                    try:
                        browser = await launch_browser(p, variant.browser, self.config.headless)
                    except BrowserLaunchError as e:
                        logger.error("Aborting run: %s", e)
                        self._aborted_reason = str(e)
                        outcomes.extend(self._not_captured(variant, targets))
                        continue
                    try:
                        outcomes.extend(await self.run_variant(browser, variant, targets, update_baselines))
                    finally:
                        await browser.close()
        except asyncio.CancelledError:
            logger.warning("Run cancelled, discarding %d staged baseline writes", len(self._pending))
            self._pending.clear()
            raise

        result = RunnerResult(outcomes=outcomes)
        if self._aborted_reason:
            result.discarded_writes = len(self._pending)
            result.aborted_reason = self._aborted_reason
            if self._pending:
                logger.warning("Run aborted, discarding %d staged baseline writes", len(self._pending))
                result.outcomes = [self._uncommitted(o) if o.key in self._pending else o for o in outcomes]
            self._pending.clear()
        else:
            result.committed = self.commit()
        result.duration_seconds = round(time.monotonic() - self._started, 2)

        logger.info(
            "Visual run complete: %d outcomes, %d baselines written (%.1fs)",
            len(outcomes), len(result.committed), result.duration_seconds,
        )
        return result

    async def run_variant(
        self,
        browser: Browser,
        variant: VariantConfig,
        targets: list[VisualTarget],
        update_baselines: bool = False,
    ) -> list[ComparisonOutcome]:
        outcomes: list[ComparisonOutcome] = []
        for index, target in enumerate(targets):
            if self._time_exhausted():
                logger.warning("Time limit reached, %d targets of %s not captured",
                               len(targets) - index, variant.name)
                outcomes.extend(self._not_captured(variant, targets[index:]))
                break

            logger.info("Capturing [%d/%d] %s @ %s", index + 1, len(targets), target.name, variant.name)
            start = time.monotonic()
            try:
                context = await create_context(browser, variant)
            except PlaywrightError as e:
                outcome = self._environment_failure(self.key_for(target, variant), FailureKind.ENVIRONMENT,
                                                    e, start)
            else:
                try:
                    outcome = await self._run_target(context, variant, target, update_baselines, start)
                finally:
                    await _close_quietly(context)
            logger.info("[%s] %s (%.1fs)", outcome.status.value.upper(), outcome.key.label,
                        outcome.duration_seconds)
            outcomes.append(outcome)
        return outcomes

    def key_for(self, target: VisualTarget, variant: VariantConfig) -> BaselineKey:
        return BaselineKey(
            suite=self.config.suite,
            test_name=target.name,
            variant=variant.name,
            image_name=target.image_name,
        )

    async def _run_target(
        self,
        context: BrowserContext,
        variant: VariantConfig,
        target: VisualTarget,
        update_baselines: bool,
        start: float,
    ) -> ComparisonOutcome:
        key = self.key_for(target, variant)
        options = CaptureOptions.for_target(target, variant, self.config)
        try:
            page = await context.new_page()
        except PlaywrightError as e:
            return self._environment_failure(key, FailureKind.ENVIRONMENT, e, start)
        try:
            capture = await self.controller.capture(page, target, options)
        except CaptureTimeoutError as e:
            return self._environment_failure(key, FailureKind.ENVIRONMENT, e, start)
        except (TargetNotFoundError, AmbiguousTargetError) as e:
            return self._environment_failure(key, FailureKind.CONFIGURATION, e, start)
        except CaptureError as e:
            return self._environment_failure(key, FailureKind.CAPTURE, e, start)
        finally:
            await _close_quietly(page)

        return self.evaluate_capture(key, target, capture, update_baselines, start)

    def evaluate_capture(
        self,
        key: BaselineKey,
        target: VisualTarget,
        capture: Capture,
        update_baselines: bool = False,
        start: float | None = None,
    ) -> ComparisonOutcome:
        """Turn a capture into an outcome, staging a baseline write if needed."""
        start = time.monotonic() if start is None else start
        common = {
            "key": key,
            "baseline_path": str(self.store.path_for(key)),
            "capture_size": capture.size,
            "warnings": list(capture.warnings),
            "console_messages": list(capture.console_messages),
        }

        if update_baselines:
            self._stage(key, capture.image, "update")
            return ComparisonOutcome(
                status=OutcomeStatus.BASELINE_CREATED,
                match=True,
                actual_path=self._save_artifact(key, "actual", capture.image),
                message="Baseline replaced by explicit update",
                duration_seconds=_elapsed(start),
                **common,
            )

        try:
            baseline = self.store.get(key)
        except BaselineNotFoundError:
            if not self.config.create_missing_baselines:
                return ComparisonOutcome(
                    status=OutcomeStatus.FAILED_ENVIRONMENT,
                    failure_kind=FailureKind.CONFIGURATION,
                    actual_path=self._save_artifact(key, "actual", capture.image),
                    message="No baseline exists and baseline creation is disabled",
                    duration_seconds=_elapsed(start),
                    **common,
                )
            self._stage(key, capture.image, "create")
            return ComparisonOutcome(
                status=OutcomeStatus.BASELINE_CREATED,
                match=True,
                actual_path=self._save_artifact(key, "actual", capture.image),
                message="No baseline existed; capture stored as the new baseline",
                duration_seconds=_elapsed(start),
                **common,
            )

        policy = self.config.thresholds_for(target)
        try:
            diff = compare(baseline, capture.image, capture.mask_rects, policy.pixel_threshold)
        except DimensionMismatchError as e:
            return ComparisonOutcome(
                status=OutcomeStatus.FAILED_LAYOUT,
                actual_path=self._save_artifact(key, "actual", capture.image),
                baseline_size=e.baseline_size,
                message=str(e),
                duration_seconds=_elapsed(start),
                **{**common, "capture_size": e.capture_size},
            )

        verdict = evaluate(diff, policy)
        if verdict.passed:
            return ComparisonOutcome(
                status=OutcomeStatus.PASSED,
                match=True,
                differing_pixels=diff.differing_pixels,
                difference_ratio=diff.difference_ratio,
                baseline_size=baseline.size,
                message=verdict.message,
                duration_seconds=_elapsed(start),
                **common,
            )

        diff_path = None
        if diff.diff_image is not None:
            diff_path = self._save_artifact(key, "diff", diff.diff_image)
        return ComparisonOutcome(
            status=OutcomeStatus.FAILED_VISUAL,
            differing_pixels=diff.differing_pixels,
            difference_ratio=diff.difference_ratio,
            baseline_size=baseline.size,
            actual_path=self._save_artifact(key, "actual", capture.image),
            diff_path=diff_path,
            message=verdict.message,
            duration_seconds=_elapsed(start),
            **common,
        )

    def commit(self) -> list[BaselineKey]:
        """Write all staged baselines to the store.

        Creations never overwrite: a key that gained a baseline since it was
        staged (another run got there first) is skipped.
        """
        written: list[BaselineKey] = []
        run_id = self.run_context.run_id
        for staged in self._pending.values():
            if staged.mode == "update":
                self.store.put(staged.key, staged.image, run_id=run_id)
            else:
                try:
                    self.store.create(staged.key, staged.image, run_id=run_id)
                except BaselineExistsError:
                    logger.warning("Baseline for %s appeared during the run, not overwriting",
                                   staged.key.label)
                    continue
            written.append(staged.key)
        self._pending.clear()
        return written

    @property
    def pending(self) -> list[BaselineKey]:
        return list(self._pending)

    def _stage(self, key: BaselineKey, image: Image.Image, mode: Literal["create", "update"]) -> None:
        self._pending[key] = StagedWrite(key=key, image=image.copy(), mode=mode)
        logger.debug("Staged baseline %s for %s", mode, key.label)

    def _save_artifact(self, key: BaselineKey, kind: str, image: Image.Image) -> str:
        rel = self.store.relative_path(key)
        dest = self.artifacts_dir / rel.parent / f"{rel.stem}.{kind}.png"
        dest.parent.mkdir(parents=True, exist_ok=True)
        image.save(dest, format="PNG")
        return str(dest)

    def _environment_failure(
        self, key: BaselineKey, kind: FailureKind, error: Exception, start: float
    ) -> ComparisonOutcome:
        logger.warning("%s failed (%s): %s", key.label, kind.value, error)
        return ComparisonOutcome(
            key=key,
            status=OutcomeStatus.FAILED_ENVIRONMENT,
            failure_kind=kind,
            baseline_path=str(self.store.path_for(key)),
            message=str(error),
            duration_seconds=_elapsed(start),
            console_messages=list(getattr(error, "console_messages", [])),
        )

    def _uncommitted(self, outcome: ComparisonOutcome) -> ComparisonOutcome:
        """An outcome whose staged baseline was dropped with the aborted run."""
        return outcome.model_copy(update={
            "status": OutcomeStatus.FAILED_ENVIRONMENT,
            "failure_kind": FailureKind.ENVIRONMENT,
            "match": False,
            "message": f"Baseline not written, run aborted: {self._aborted_reason}",
        })

    def _not_captured(self, variant: VariantConfig, targets: list[VisualTarget]) -> list[ComparisonOutcome]:
        reason = self._aborted_reason or "Run time limit reached"
        return [
            ComparisonOutcome(
                key=self.key_for(target, variant),
                status=OutcomeStatus.FAILED_ENVIRONMENT,
                failure_kind=FailureKind.ENVIRONMENT,
                message=f"Not captured: {reason}",
            )
            for target in targets
        ]

    def _time_exhausted(self) -> bool:
        if time.monotonic() - self._started >= self.config.max_execution_time_seconds:
            if self._aborted_reason is None:
                self._aborted_reason = (
                    f"Run time limit of {self.config.max_execution_time_seconds}s reached"
                )
            return True
        return False


def _elapsed(start: float) -> float:
    return round(time.monotonic() - start, 2)


async def _close_quietly(resource: BrowserContext | Page) -> None:
    """Close a page or context; a browser that already went away is not an error."""
    try:
        await resource.close()
    except PlaywrightError as e:
        logger.warning("Could not close %s: %s", type(resource).__name__, e)
