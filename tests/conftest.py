"""Pytest configuration and shared fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image
from playwright.async_api import Browser, BrowserContext, Page

from tests.helpers import png_bytes
from visreg.baseline.store import BaselineStore
from visreg.models.config import (
    HarnessConfig,
    LocatorSpec,
    ThresholdPolicy,
    VariantConfig,
    ViewportConfig,
    VisualTarget,
)
from visreg.models.outcome import BaselineKey, ComparisonOutcome, FailureKind, OutcomeStatus
from visreg.models.run_context import RunContext


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def desktop_variant() -> VariantConfig:
    """A small desktop variant so test images stay tiny."""
    return VariantConfig(name="chromium", viewport=ViewportConfig(width=64, height=48))


@pytest.fixture
def home_target() -> VisualTarget:
    return VisualTarget(name="homepage", path="/", mask_selectors=[".clock"])


@pytest.fixture
def header_target() -> VisualTarget:
    return VisualTarget(
        name="header",
        path="/",
        locators=[
            LocatorSpec(kind="testid", value="site-header"),
            LocatorSpec(kind="css", value="header"),
        ],
    )


@pytest.fixture
def harness_config(tmp_path: Path, desktop_variant: VariantConfig, home_target: VisualTarget) -> HarnessConfig:
    """Create a test harness configuration rooted in tmp_path."""
    return HarnessConfig(
        target_url="https://example.com",
        suite="visual",
        variants=[desktop_variant],
        targets=[home_target],
        thresholds=ThresholdPolicy(pixel_threshold=0.2, max_diff_pixels=100, max_diff_ratio=0.05),
        baselines_dir=str(tmp_path / "baselines"),
        report_output_dir=str(tmp_path / "reports"),
        runs_dir=str(tmp_path / "runs"),
        consent_locators=[],
    )


@pytest.fixture
def temp_config_file(harness_config: HarnessConfig, tmp_path: Path) -> Path:
    config_file = tmp_path / "visreg-config.json"
    harness_config.save(config_file)
    return config_file


@pytest.fixture
def run_context() -> RunContext:
    return RunContext(
        run_id="run_test0001",
        started_at="2024-01-01T00:00:00Z",
        environment="test",
        branch="main",
        commit="abc1234",
        base_url="https://example.com",
        browsers=["chromium"],
    )


# ============================================================================
# Baseline Fixtures
# ============================================================================


@pytest.fixture
def baseline_key() -> BaselineKey:
    return BaselineKey(suite="visual", test_name="homepage", variant="chromium")


@pytest.fixture
def store(tmp_path: Path) -> BaselineStore:
    return BaselineStore(tmp_path / "baselines")


# ============================================================================
# Outcome Fixtures
# ============================================================================


@pytest.fixture
def sample_outcomes() -> list[ComparisonOutcome]:
    """One outcome of every status."""

    def key(name: str) -> BaselineKey:
        return BaselineKey(suite="visual", test_name=name, variant="chromium")

    return [
        ComparisonOutcome(key=key("home"), status=OutcomeStatus.PASSED, match=True,
                          differing_pixels=0, difference_ratio=0.0),
        ComparisonOutcome(key=key("pricing"), status=OutcomeStatus.FAILED_VISUAL,
                          differing_pixels=500, difference_ratio=0.1, message="500 differing pixels"),
        ComparisonOutcome(key=key("footer"), status=OutcomeStatus.FAILED_LAYOUT,
                          baseline_size=(100, 100), capture_size=(100, 120),
                          message="Dimension mismatch: baseline 100x100, capture 100x120"),
        ComparisonOutcome(key=key("header"), status=OutcomeStatus.FAILED_ENVIRONMENT,
                          failure_kind=FailureKind.CONFIGURATION,
                          message="Locator 'header' matched 2 elements, expected exactly one"),
        ComparisonOutcome(key=key("about"), status=OutcomeStatus.BASELINE_CREATED, match=True),
    ]


# ============================================================================
# Playwright Mock Fixtures
# ============================================================================


@pytest.fixture
def mock_page() -> AsyncMock:
    """Create a mock Playwright page."""
    page = AsyncMock(spec=Page)
    page.on = MagicMock()
    page.remove_listener = MagicMock()
    page.locator = MagicMock()
    page.goto = AsyncMock(return_value=None)
    page.set_viewport_size = AsyncMock()
    page.wait_for_load_state = AsyncMock()
    page.wait_for_function = AsyncMock()
    page.wait_for_timeout = AsyncMock()
    page.add_style_tag = AsyncMock()
    page.evaluate = AsyncMock()
    page.screenshot = AsyncMock(return_value=png_bytes(Image.new("RGBA", (64, 48), "white")))
    return page


@pytest.fixture
def mock_context(mock_page: AsyncMock) -> AsyncMock:
    context = AsyncMock(spec=BrowserContext)
    context.new_page = AsyncMock(return_value=mock_page)
    return context


@pytest.fixture
def mock_browser(mock_context: AsyncMock) -> AsyncMock:
    browser = AsyncMock(spec=Browser)
    browser.new_context = AsyncMock(return_value=mock_context)
    return browser

