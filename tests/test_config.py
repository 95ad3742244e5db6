"""Tests for configuration models and the run context."""

import json

import pytest
from pydantic import ValidationError

from visreg.models.config import HarnessConfig, LocatorSpec, MaskRect, ThresholdPolicy, VisualTarget
from visreg.models.run_context import RunContext


class TestHarnessConfig:
    def test_defaults(self):
        config = HarnessConfig(target_url="https://example.com/")
        assert config.target_url == "https://example.com"
        assert [v.name for v in config.variants] == ["chromium", "mobile-chrome"]
        assert config.thresholds.pixel_threshold == 0.2
        assert config.create_missing_baselines
        assert config.screenshot_scale == "css"

    def test_rejects_non_http_url(self):
        with pytest.raises(ValidationError, match="http"):
            HarnessConfig(target_url="example.com")

    def test_rejects_duplicate_targets(self):
        with pytest.raises(ValidationError, match="unique"):
            HarnessConfig(target_url="https://example.com",
                          targets=[VisualTarget(name="home"), VisualTarget(name="home")])

    def test_same_target_with_different_images_is_fine(self):
        config = HarnessConfig(target_url="https://example.com", targets=[
            VisualTarget(name="home", image_name="hero"),
            VisualTarget(name="home", image_name="footer"),
        ])
        assert len(config.targets) == 2

    def test_rejects_duplicate_variants(self, desktop_variant):
        with pytest.raises(ValidationError, match="unique"):
            HarnessConfig(target_url="https://example.com", variants=[desktop_variant, desktop_variant])

    def test_thresholds_for_prefers_target_override(self, harness_config):
        override = ThresholdPolicy(max_diff_pixels=5)
        assert harness_config.thresholds_for(VisualTarget(name="a", thresholds=override)) is override
        assert harness_config.thresholds_for(VisualTarget(name="b")) is harness_config.thresholds

    def test_save_and_load(self, temp_config_file, harness_config):
        loaded = HarnessConfig.load(temp_config_file)
        assert loaded == harness_config
        assert json.loads(temp_config_file.read_text())["target_url"] == "https://example.com"

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            HarnessConfig.load(tmp_path / "nope.json")


class TestThresholdPolicy:
    @pytest.mark.parametrize("field,value", [
        ("pixel_threshold", 1.5),
        ("pixel_threshold", -0.1),
        ("max_diff_pixels", -1),
        ("max_diff_ratio", 2.0),
    ])
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ValidationError):
            ThresholdPolicy(**{field: value})


class TestVisualTarget:
    def test_full_page_excludes_locators(self):
        with pytest.raises(ValidationError, match="full_page"):
            VisualTarget(name="hero", full_page=True, locators=[LocatorSpec(value=".hero")])

    def test_variant_filter(self):
        target = VisualTarget(name="menu", variants=["mobile-chrome"])
        assert target.applies_to("mobile-chrome")
        assert not target.applies_to("chromium")
        assert VisualTarget(name="home").applies_to("anything")


class TestMaskRect:
    def test_clipped_inside(self):
        assert MaskRect(x=1, y=1, width=2, height=2).clipped(10, 10) == MaskRect(x=1, y=1, width=2, height=2)

    def test_clipped_entirely_outside(self):
        assert MaskRect(x=20, y=0, width=5, height=5).clipped(10, 10) is None


class TestRunContext:
    def test_from_github_actions_environment(self, harness_config):
        env = {
            "CI": "true",
            "GITHUB_SHA": "0123456789abcdef",
            "GITHUB_RUN_ID": "987",
            "GITHUB_REF_NAME": "main",
            "GITHUB_ACTOR": "octocat",
            "VISREG_ENV": "staging",
        }
        ctx = RunContext.from_environment(harness_config, env=env, started_at="2024-01-01T00:00:00Z")

        assert ctx.run_id == "run_987"
        assert ctx.ci
        assert ctx.commit == "0123456"
        assert ctx.branch == "main"
        assert ctx.environment == "staging"
        assert ctx.triggered_by == "octocat"
        assert ctx.base_url == "https://example.com"
        assert ctx.browsers == ["chromium"]

    def test_pull_request_branch_wins(self, harness_config):
        env = {"GITHUB_SHA": "abc1234", "GITHUB_HEAD_REF": "feature/login", "GITHUB_REF_NAME": "12/merge"}
        assert RunContext.from_environment(harness_config, env=env).branch == "feature/login"

    def test_local_run(self, harness_config):
        ctx = RunContext.from_environment(harness_config, env={"GITHUB_SHA": "abc1234"})
        assert not ctx.ci
        assert ctx.branch == "local"
        assert ctx.environment == "test"
        assert ctx.run_id.startswith("run_")

    def test_is_frozen(self, run_context):
        with pytest.raises(ValidationError):
            run_context.run_id = "other"
