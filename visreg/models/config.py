"""Configuration models for the visual regression harness."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_DYNAMIC_SELECTORS = [
    ".timestamp",
    ".date-display",
    ".relative-time",
    ".live-count",
    ".user-count",
    ".view-count",
    ".like-count",
    ".notification-badge",
    ".unread-count",
    ".online-indicator",
    ".live-indicator",
    ".analytics-value",
    ".carousel-indicator",
    ".ad-container",
    "[data-dynamic='true']",
    "[data-testid='dynamic-content']",
    "iframe",
    "#intercom-container",
    ".intercom-launcher",
    "#hubspot-messages-iframe-container",
    ".cookie-banner",
    "#onetrust-banner-sdk",
    "#CybotCookiebotDialog",
]


class MaskRect(BaseModel):
    """A rectangle in image pixels excluded from comparison."""

    x: int
    y: int
    width: int = Field(ge=0)
    height: int = Field(ge=0)

    def clipped(self, width: int, height: int) -> "MaskRect | None":
        """Clip to an image of the given size; None if nothing remains."""
        x0 = max(0, self.x)
        y0 = max(0, self.y)
        x1 = min(width, self.x + self.width)
        y1 = min(height, self.y + self.height)
        if x1 <= x0 or y1 <= y0:
            return None
        return MaskRect(x=x0, y=y0, width=x1 - x0, height=y1 - y0)


class LocatorSpec(BaseModel):
    """One way of finding a target element.

    Several specs form an ordered list; the first one that matches wins.
    """

    kind: Literal["css", "text", "role", "testid"] = "css"
    value: str
    name: Optional[str] = None  # accessible name, role locators only
    nth: Optional[int] = Field(default=None, ge=-1)  # -1 = last match

    def to_selector(self) -> str:
        """Render as a Playwright selector string."""
        match self.kind:
            case "css":
                return self.value
            case "text":
                return f"text={self.value}"
            case "testid":
                return f"[data-testid=\"{self.value}\"]"
            case "role":
                if self.name:
                    return f"role={self.value}[name=\"{self.name}\"]"
                return f"role={self.value}"
        raise ValueError(f"Unknown locator kind: {self.kind}")


class ViewportConfig(BaseModel):
    width: int = 1920
    height: int = 1080
    device_scale_factor: float = Field(default=1.0, gt=0)


class VariantConfig(BaseModel):
    """A (browser, viewport/device) combination with its own baselines."""

    name: str = "chromium"
    browser: Literal["chromium", "firefox", "webkit"] = "chromium"
    viewport: ViewportConfig = Field(default_factory=ViewportConfig)
    is_mobile: bool = False
    has_touch: bool = False
    user_agent: Optional[str] = None


class ThresholdPolicy(BaseModel):
    """Per-pixel similarity threshold plus the two pass/fail gates.

    Both gates are inclusive: a comparison passes when
    ``differing_pixels <= max_diff_pixels`` and
    ``difference_ratio <= max_diff_ratio``.
    """

    pixel_threshold: float = Field(default=0.2, ge=0.0, le=1.0)
    max_diff_pixels: int = Field(default=100, ge=0)
    max_diff_ratio: float = Field(default=0.05, ge=0.0, le=1.0)


class WaitConfig(BaseModel):
    """Independent timeouts for each readiness signal (milliseconds)."""

    network_idle_timeout_ms: int = Field(default=5000, ge=0)
    fonts_timeout_ms: int = Field(default=5000, ge=0)
    images_timeout_ms: int = Field(default=10000, ge=0)
    scroll_settle_ms: int = Field(default=500, ge=0)
    navigation_timeout_ms: int = Field(default=15000, gt=0)
    snapshot_timeout_ms: int = Field(default=10000, gt=0)


class VisualTarget(BaseModel):
    """A named region of a page to capture and compare."""

    name: str
    path: str = "/"
    image_name: str = "screenshot"
    locators: list[LocatorSpec] = Field(default_factory=list)  # empty = whole page
    full_page: bool = False
    scroll_into_view: bool = False
    mask_selectors: list[str] = Field(default_factory=list)
    mask_regions: list[MaskRect] = Field(default_factory=list)
    wait_for_network_idle: bool = True
    wait_for_fonts: bool = True
    wait_for_images: bool = True
    variants: Optional[list[str]] = None  # None = every configured variant
    thresholds: Optional[ThresholdPolicy] = None

    @model_validator(mode="after")
    def _check_full_page(self) -> "VisualTarget":
        if self.full_page and self.locators:
            raise ValueError(f"Target '{self.name}': full_page cannot be combined with locators")
        return self

    def applies_to(self, variant_name: str) -> bool:
        return self.variants is None or variant_name in self.variants


class HarnessConfig(BaseModel):
    # Target
    target_url: str
    suite: str = "visual"

    # Variants and targets
    variants: list[VariantConfig] = Field(
        default_factory=lambda: [
            VariantConfig(name="chromium", viewport=ViewportConfig(width=1920, height=1080)),
            VariantConfig(
                name="mobile-chrome",
                viewport=ViewportConfig(width=393, height=851, device_scale_factor=2.75),
                is_mobile=True,
                has_touch=True,
            ),
        ]
    )
    targets: list[VisualTarget] = Field(default_factory=list)

    # Comparison
    thresholds: ThresholdPolicy = Field(default_factory=ThresholdPolicy)
    screenshot_scale: Literal["css", "device"] = "css"

    # Capture stabilization
    waits: WaitConfig = Field(default_factory=WaitConfig)
    dynamic_selectors: list[str] = Field(default_factory=lambda: list(DEFAULT_DYNAMIC_SELECTORS))
    consent_locators: list[LocatorSpec] = Field(
        default_factory=lambda: [
            LocatorSpec(kind="css", value='button:has-text("Accept")', nth=0),
            LocatorSpec(kind="css", value='button:has-text("OK")', nth=0),
            LocatorSpec(kind="css", value='button:has-text("Got it")', nth=0),
            LocatorSpec(kind="css", value='button:has-text("Agree")', nth=0),
            LocatorSpec(kind="testid", value="cookie-accept", nth=0),
        ]
    )
    mask_color: str = "#FF00FF"
    headless: bool = True

    # Baselines
    baselines_dir: str = "./visual-baselines"
    create_missing_baselines: bool = True

    # Execution limits
    max_execution_time_seconds: int = 1800

    # Reporting
    report_output_dir: str = "./visual-regression-report"
    runs_dir: str = "./runs"
    report_formats: list[str] = Field(default_factory=lambda: ["html", "json"])
    environment: str = "test"

    # Sinks: "package.module:ClassName" paths, instantiated without arguments
    sinks: list[str] = Field(default_factory=list)
    sink_max_attempts: int = Field(default=3, ge=1)
    sink_backoff_seconds: float = Field(default=1.0, ge=0)

    # Maintenance
    artifact_retention_days: int = Field(default=7, ge=0)

    @field_validator("target_url")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"target_url must be an http(s) URL, got '{v}'")
        return v.rstrip("/")

    @model_validator(mode="after")
    def _check_unique_names(self) -> "HarnessConfig":
        variant_names = [v.name for v in self.variants]
        if len(set(variant_names)) != len(variant_names):
            raise ValueError("Variant names must be unique")
        keys = [(t.name, t.image_name) for t in self.targets]
        if len(set(keys)) != len(keys):
            raise ValueError("Target name/image_name pairs must be unique")
        return self

    def thresholds_for(self, target: VisualTarget) -> ThresholdPolicy:
        return target.thresholds or self.thresholds

    @classmethod
    def load(cls, path: str | Path) -> "HarnessConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
