"""Tests for the capture controller using a mocked Playwright page."""

from unittest.mock import Mock

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from tests.helpers import make_locator, png_bytes, solid
from visreg.capture.controller import CaptureController, CaptureOptions
from visreg.capture.waits import WaitStatus
from visreg.errors import AmbiguousTargetError, CaptureError, CaptureTimeoutError
from visreg.models.config import LocatorSpec, MaskRect, VariantConfig, ViewportConfig, VisualTarget


def _route(page, locators: dict) -> None:
    page.locator.side_effect = lambda selector: locators.get(selector, make_locator(count=0, visible=False))


@pytest.fixture
def controller(harness_config):
    return CaptureController(harness_config)


@pytest.fixture
def clock_locator():
    return make_locator(count=1, box={"x": 10, "y": 5, "width": 20, "height": 10})


class TestWholePageCapture:
    @pytest.mark.asyncio
    async def test_returns_rgba_capture(self, controller, mock_page, home_target, desktop_variant,
                                        harness_config, clock_locator):
        _route(mock_page, {".clock": clock_locator})
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        capture = await controller.capture(mock_page, home_target, options)

        assert capture.image.mode == "RGBA"
        assert capture.size == (64, 48)
        assert capture.url == "https://example.com/"
        assert [w.status for w in capture.waits] == [WaitStatus.MET] * 3
        assert capture.warnings == []

    @pytest.mark.asyncio
    async def test_steps_run_in_order(self, controller, mock_page, home_target, desktop_variant,
                                      harness_config, clock_locator):
        _route(mock_page, {".clock": clock_locator})
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        await controller.capture(mock_page, home_target, options)

        calls = [c[0] for c in mock_page.mock_calls if c[0] in (
            "set_viewport_size", "goto", "wait_for_load_state", "add_style_tag", "evaluate", "screenshot",
        )]
        assert calls == ["set_viewport_size", "goto", "wait_for_load_state", "add_style_tag", "evaluate", "screenshot"]
        mock_page.goto.assert_awaited_once_with(
            "https://example.com/", wait_until="domcontentloaded", timeout=15000,
        )

    @pytest.mark.asyncio
    async def test_snapshot_options(self, controller, mock_page, home_target, desktop_variant,
                                    harness_config, clock_locator):
        _route(mock_page, {".clock": clock_locator})
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        await controller.capture(mock_page, home_target, options)

        kwargs = mock_page.screenshot.call_args.kwargs
        assert kwargs["animations"] == "disabled"
        assert kwargs["caret"] == "hide"
        assert kwargs["scale"] == "css"
        assert kwargs["full_page"] is False
        assert kwargs["mask"] == [clock_locator]
        assert kwargs["mask_color"] == "#FF00FF"

    @pytest.mark.asyncio
    async def test_mask_selector_resolves_to_rect(self, controller, mock_page, home_target, desktop_variant,
                                                  harness_config, clock_locator):
        _route(mock_page, {".clock": clock_locator})
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        capture = await controller.capture(mock_page, home_target, options)

        assert capture.mask_rects == [MaskRect(x=10, y=5, width=21, height=11)]

    @pytest.mark.asyncio
    async def test_device_scale_multiplies_mask_rects(self, controller, mock_page, home_target,
                                                      harness_config, clock_locator):
        _route(mock_page, {".clock": clock_locator})
        mock_page.screenshot.return_value = png_bytes(solid(128, 96))
        variant = VariantConfig(name="hidpi", viewport=ViewportConfig(width=64, height=48, device_scale_factor=2.0))
        options = CaptureOptions.for_target(home_target, variant, harness_config)
        options.scale = "device"

        capture = await controller.capture(mock_page, home_target, options)

        assert capture.mask_rects == [MaskRect(x=20, y=10, width=41, height=21)]

    @pytest.mark.asyncio
    async def test_static_regions_are_clipped(self, controller, mock_page, desktop_variant, harness_config):
        _route(mock_page, {})
        target = VisualTarget(name="home", mask_regions=[MaskRect(x=50, y=40, width=100, height=100)])
        options = CaptureOptions.for_target(target, desktop_variant, harness_config)

        capture = await controller.capture(mock_page, target, options)

        assert capture.mask_rects == [MaskRect(x=50, y=40, width=14, height=8)]

    @pytest.mark.asyncio
    async def test_full_page_offsets_masks_by_scroll(self, controller, mock_page, desktop_variant,
                                                     harness_config, clock_locator):
        _route(mock_page, {".clock": clock_locator})
        mock_page.evaluate.side_effect = lambda script: [0, 30] if "scrollX" in script else None
        target = VisualTarget(name="home", full_page=True, mask_selectors=[".clock"])
        options = CaptureOptions.for_target(target, desktop_variant, harness_config)

        capture = await controller.capture(mock_page, target, options)

        assert mock_page.screenshot.call_args.kwargs["full_page"] is True
        assert capture.mask_rects == [MaskRect(x=10, y=35, width=21, height=11)]


class TestElementCapture:
    @pytest.mark.asyncio
    async def test_element_snapshot_uses_resolved_locator(self, controller, mock_page, header_target,
                                                          desktop_variant, harness_config):
        header = make_locator(count=1, box={"x": 0, "y": 100, "width": 64, "height": 20})
        header.screenshot.return_value = png_bytes(solid(64, 20))
        _route(mock_page, {'[data-testid="site-header"]': header})
        options = CaptureOptions.for_target(header_target, desktop_variant, harness_config)

        capture = await controller.capture(mock_page, header_target, options)

        assert capture.size == (64, 20)
        header.screenshot.assert_awaited_once()
        mock_page.screenshot.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_masks_are_relative_to_element(self, controller, mock_page, desktop_variant, harness_config):
        header = make_locator(count=1, box={"x": 0, "y": 100, "width": 64, "height": 20})
        header.screenshot.return_value = png_bytes(solid(64, 20))
        badge = make_locator(count=1, box={"x": 10, "y": 105, "width": 5, "height": 5})
        _route(mock_page, {"header": header, ".badge": badge})
        target = VisualTarget(name="header", locators=[LocatorSpec(value="header")], mask_selectors=[".badge"])
        options = CaptureOptions.for_target(target, desktop_variant, harness_config)

        capture = await controller.capture(mock_page, target, options)

        assert capture.mask_rects == [MaskRect(x=10, y=5, width=6, height=6)]

    @pytest.mark.asyncio
    async def test_scroll_into_view_settles(self, controller, mock_page, desktop_variant, harness_config):
        header = make_locator(count=1, box={"x": 0, "y": 0, "width": 64, "height": 20})
        header.screenshot.return_value = png_bytes(solid(64, 20))
        _route(mock_page, {"header": header})
        target = VisualTarget(name="header", locators=[LocatorSpec(value="header")], scroll_into_view=True)
        options = CaptureOptions.for_target(target, desktop_variant, harness_config)

        await controller.capture(mock_page, target, options)

        header.scroll_into_view_if_needed.assert_awaited_once()
        mock_page.wait_for_timeout.assert_any_await(harness_config.waits.scroll_settle_ms)

    @pytest.mark.asyncio
    async def test_ambiguous_target_propagates(self, controller, mock_page, desktop_variant, harness_config):
        _route(mock_page, {"button": make_locator(count=2)})
        target = VisualTarget(name="cta", locators=[LocatorSpec(value="button")])
        options = CaptureOptions.for_target(target, desktop_variant, harness_config)

        with pytest.raises(AmbiguousTargetError):
            await controller.capture(mock_page, target, options)


class TestFailureModes:
    @pytest.mark.asyncio
    async def test_navigation_timeout_is_hard(self, controller, mock_page, home_target, desktop_variant,
                                              harness_config):
        _route(mock_page, {})
        mock_page.goto.side_effect = PlaywrightTimeoutError("Timeout 15000ms exceeded.")
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        with pytest.raises(CaptureTimeoutError) as exc_info:
            await controller.capture(mock_page, home_target, options)
        assert isinstance(exc_info.value, TimeoutError)

    @pytest.mark.asyncio
    async def test_unreachable_site_is_environment_failure(self, controller, mock_page, home_target,
                                                           desktop_variant, harness_config):
        _route(mock_page, {})
        mock_page.goto.side_effect = PlaywrightError("net::ERR_NAME_NOT_RESOLVED")
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        with pytest.raises(CaptureTimeoutError, match="ERR_NAME_NOT_RESOLVED"):
            await controller.capture(mock_page, home_target, options)

    @pytest.mark.asyncio
    async def test_listeners_detached_after_failure(self, controller, mock_page, home_target, desktop_variant,
                                                    harness_config):
        _route(mock_page, {})
        mock_page.goto.side_effect = PlaywrightTimeoutError("timeout")
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        with pytest.raises(CaptureTimeoutError):
            await controller.capture(mock_page, home_target, options)
        assert mock_page.remove_listener.call_count == 2

    @pytest.mark.asyncio
    async def test_snapshot_failure_is_capture_error(self, controller, mock_page, home_target, desktop_variant,
                                                     harness_config):
        _route(mock_page, {})
        mock_page.screenshot.side_effect = PlaywrightError("Target crashed")
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        with pytest.raises(CaptureError, match="Target crashed"):
            await controller.capture(mock_page, home_target, options)

    @pytest.mark.asyncio
    async def test_wait_timeouts_become_warnings(self, controller, mock_page, home_target, desktop_variant,
                                                 harness_config):
        _route(mock_page, {})
        mock_page.wait_for_load_state.side_effect = PlaywrightTimeoutError("Timeout 5000ms exceeded.")
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        capture = await controller.capture(mock_page, home_target, options)

        assert capture.waits[0].status == WaitStatus.TIMED_OUT
        assert any("network-idle" in w for w in capture.warnings)

    @pytest.mark.asyncio
    async def test_http_error_status_is_a_warning(self, controller, mock_page, home_target, desktop_variant,
                                                  harness_config):
        _route(mock_page, {})
        mock_page.goto.return_value = Mock(status=503)
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        capture = await controller.capture(mock_page, home_target, options)

        assert any("HTTP 503" in w for w in capture.warnings)

    @pytest.mark.asyncio
    async def test_normalizer_failure_is_a_warning(self, controller, mock_page, home_target, desktop_variant,
                                                   harness_config):
        _route(mock_page, {})
        mock_page.add_style_tag.side_effect = PlaywrightError("context destroyed")
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        capture = await controller.capture(mock_page, home_target, options)

        assert "style normalization not applied" in capture.warnings

    @pytest.mark.asyncio
    async def test_viewport_error_is_capture_error(self, controller, mock_page, home_target, desktop_variant,
                                                   harness_config):
        _route(mock_page, {})
        mock_page.set_viewport_size.side_effect = PlaywrightError("Target page, context or browser has been closed")
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        with pytest.raises(CaptureError, match="has been closed"):
            await controller.capture(mock_page, home_target, options)

    @pytest.mark.asyncio
    async def test_browser_timeout_outside_navigation(self, controller, mock_page, desktop_variant, harness_config):
        header = make_locator(count=1)
        header.is_visible.side_effect = PlaywrightTimeoutError("Timeout 30000ms exceeded.")
        _route(mock_page, {"header": header})
        target = VisualTarget(name="header", locators=[LocatorSpec(value="header")])
        options = CaptureOptions.for_target(target, desktop_variant, harness_config)

        with pytest.raises(CaptureTimeoutError, match="30000ms"):
            await controller.capture(mock_page, target, options)


class TestConsoleMessages:
    @staticmethod
    def _record_listeners(page) -> dict:
        handlers = {}
        page.on.side_effect = lambda event, handler: handlers.__setitem__(event, handler)
        return handlers

    @pytest.mark.asyncio
    async def test_messages_returned_with_capture(self, controller, mock_page, home_target, desktop_variant,
                                                  harness_config):
        _route(mock_page, {})
        handlers = self._record_listeners(mock_page)
        mock_page.goto.side_effect = lambda *a, **kw: handlers["console"](Mock(type="warning", text="slow"))
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        capture = await controller.capture(mock_page, home_target, options)

        assert capture.console_messages == ["[warning] slow"]

    @pytest.mark.asyncio
    async def test_messages_travel_with_capture_error(self, controller, mock_page, home_target, desktop_variant,
                                                      harness_config):
        _route(mock_page, {})
        handlers = self._record_listeners(mock_page)
        mock_page.add_style_tag.side_effect = lambda **kw: handlers["pageerror"]("ReferenceError: app is not defined")
        mock_page.screenshot.side_effect = PlaywrightError("Target crashed")
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        with pytest.raises(CaptureError) as exc_info:
            await controller.capture(mock_page, home_target, options)

        assert exc_info.value.console_messages == ["[pageerror] ReferenceError: app is not defined"]
        assert mock_page.remove_listener.call_count == 2

    @pytest.mark.asyncio
    async def test_messages_travel_with_navigation_error(self, controller, mock_page, home_target,
                                                         desktop_variant, harness_config):
        _route(mock_page, {})
        handlers = self._record_listeners(mock_page)

        def fail_navigation(*args, **kwargs):
            handlers["console"](Mock(type="error", text="Failed to load resource"))
            raise PlaywrightError("net::ERR_CONNECTION_REFUSED")

        mock_page.goto.side_effect = fail_navigation
        options = CaptureOptions.for_target(home_target, desktop_variant, harness_config)

        with pytest.raises(CaptureTimeoutError) as exc_info:
            await controller.capture(mock_page, home_target, options)

        assert exc_info.value.console_messages == ["[error] Failed to load resource"]
