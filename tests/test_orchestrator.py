"""Tests for the capture orchestrator."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

import numpy as np

from pagestitch_core.compositor import Compositor
from pagestitch_core.config import Config
from pagestitch_core.errors import CaptureTimeoutError, CompositingError, RetryExhaustedError
from pagestitch_core.models import CaptureState, ScrollCheckpoint
from pagestitch_core.orchestrator import CaptureOrchestrator, CaptureRun, plan_segment_count

from mocks.fake_page import FakeTarget, add_stripes, decode_rows, make_document


def test_plan_segment_count():
    assert plan_segment_count(2600, 800) == 4
    assert plan_segment_count(1600, 800) == 2
    assert plan_segment_count(6000, 800) == 8
    assert plan_segment_count(500, 800) == 1

    with pytest.raises(ValueError):
        plan_segment_count(100, 0)


def test_capture_run_records_history():
    run = CaptureRun(target_id=7)
    run.transition(CaptureState.MEASURING)
    run.transition(CaptureState.CAPTURING)
    run.fail(RuntimeError("boom"))

    assert run.state == CaptureState.FAILED
    assert [s for s, _ in run.history] == [
        CaptureState.MEASURING,
        CaptureState.CAPTURING,
        CaptureState.FAILED,
    ]
    assert str(run.error) == "boom"


class TestFullPage:
    """Multi-segment captures against a fake document."""

    @pytest.mark.asyncio
    async def test_four_segments_with_clamped_last_scroll(self, fast_config, tall_page):
        orchestrator = CaptureOrchestrator(fast_config)

        result = await orchestrator.run(tall_page)

        assert tall_page.capture_offsets == [0, 800, 1600, 1800]
        assert result.segments_captured == 4
        assert (result.width, result.height) == (tall_page.width, 2600)
        assert result.degraded is None
        assert np.array_equal(decode_rows(result.encoded_image), tall_page.content)

    @pytest.mark.asyncio
    async def test_striped_rows_at_seam_survive(self, fast_config):
        """Repeating rows across a segment boundary are neither dropped nor duplicated."""
        page = FakeTarget(add_stripes(make_document(2600, seed=5), 600, 1000, period=20), viewport_height=800)

        result = await CaptureOrchestrator(fast_config).run(page)

        assert page.capture_offsets == [0, 800, 1600, 1800]
        assert result.height == 2600
        assert np.array_equal(decode_rows(result.encoded_image), page.content)

    @pytest.mark.asyncio
    async def test_scroll_restored_after_success(self, fast_config):
        page = FakeTarget(make_document(2600), viewport_height=800, scroll_y=450)

        await CaptureOrchestrator(fast_config).run(page)

        assert page.scroll_y == 450
        assert page.scroll_calls[-1] == 450

    @pytest.mark.asyncio
    async def test_height_capped(self, fast_config):
        page = FakeTarget(make_document(7000, width=60, seed=2), viewport_height=800)

        result = await CaptureOrchestrator(fast_config).run(page)

        assert result.height == 6000
        assert result.segments_captured == 8
        assert page.capture_offsets[-1] == 5600
        assert np.array_equal(decode_rows(result.encoded_image), page.content[:6000])

    @pytest.mark.asyncio
    async def test_configured_cap(self, fast_config):
        fast_config.max_capture_height = 1200
        page = FakeTarget(make_document(3000, seed=3), viewport_height=800)

        result = await CaptureOrchestrator(fast_config).run(page)

        assert result.height == 1200
        assert page.capture_offsets == [0, 800]

    @pytest.mark.asyncio
    async def test_jpeg_output(self, fast_config, tall_page):
        result = await CaptureOrchestrator(fast_config).run(tall_page, format="jpg", quality=70)

        assert result.format == "jpeg"
        assert result.encoded_image.startswith(b"\xff\xd8\xff")
        assert result.height == 2600


class TestSingleViewport:

    @pytest.mark.asyncio
    async def test_page_fits_viewport(self, fast_config, short_page):
        compositor = MagicMock(spec=Compositor)
        compositor.composite = AsyncMock()
        orchestrator = CaptureOrchestrator(fast_config, compositor=compositor)

        result = await orchestrator.run(short_page)

        compositor.composite.assert_not_called()
        assert short_page.scroll_calls == []
        assert short_page.capture_calls == 1
        assert (result.width, result.height) == (short_page.width, 900)
        assert result.segments_captured == 1


class TestFailures:

    @pytest.mark.asyncio
    async def test_compositing_failure_carries_first_segment(self, fast_config):
        page = FakeTarget(make_document(2600), viewport_height=800, scroll_y=100)
        compositor = MagicMock(spec=Compositor)
        compositor.composite = AsyncMock(side_effect=RuntimeError("canvas exploded"))

        with pytest.raises(CompositingError) as exc_info:
            await CaptureOrchestrator(fast_config, compositor=compositor).run(page)

        first = exc_info.value.first_segment
        assert first is not None
        assert first.index == 0
        assert np.array_equal(decode_rows(first.image), page.content[:800])
        assert page.scroll_y == 100

    @pytest.mark.asyncio
    async def test_segment_timeout_propagates_and_restores(self, fast_config):
        page = FakeTarget(make_document(2600), viewport_height=800, scroll_y=300, hang_on={2})

        with pytest.raises(CaptureTimeoutError, match="timed out after 0.2 seconds"):
            await CaptureOrchestrator(fast_config).run(page)

        assert page.scroll_y == 300

    @pytest.mark.asyncio
    async def test_document_never_ready(self, fast_config):
        page = FakeTarget(make_document(2600), viewport_height=800, not_ready_measures=10)

        with pytest.raises(RetryExhaustedError):
            await CaptureOrchestrator(fast_config).run(page)

        assert page.measure_calls == fast_config.measure_attempts
        assert page.capture_calls == 0

    @pytest.mark.asyncio
    async def test_restore_failure_is_not_fatal(self, fast_config, tall_page):
        orchestrator = CaptureOrchestrator(fast_config)
        original_scroll_to = orchestrator.scroller.scroll_to
        calls = []

        async def scroll_to(target, offset):
            calls.append(offset)
            if len(calls) > 4:
                raise RuntimeError("page navigated away")
            return await original_scroll_to(target, offset)

        orchestrator.scroller.scroll_to = scroll_to

        result = await orchestrator.run(tall_page)

        assert result.height == 2600
        assert len(calls) == 5

    @pytest.mark.asyncio
    async def test_restore_survives_cancellation(self, fast_config):
        """A deadline firing mid-restore does not abort the restoring scroll."""
        page = FakeTarget(make_document(2600), viewport_height=800, scroll_y=1600)
        orchestrator = CaptureOrchestrator(fast_config)
        original_scroll_to = orchestrator.scroller.scroll_to

        async def slow_scroll_to(target, offset):
            await asyncio.sleep(0.05)
            return await original_scroll_to(target, offset)

        orchestrator.scroller.scroll_to = slow_scroll_to

        task = asyncio.ensure_future(orchestrator._restore(page, ScrollCheckpoint(offset=450)))
        await asyncio.sleep(0.01)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.1)
        assert page.scroll_y == 450


class TestClose:

    def test_close_releases_compositor(self, fast_config):
        compositor = MagicMock(spec=Compositor)

        CaptureOrchestrator(fast_config, compositor=compositor).close()

        compositor.close.assert_called_once_with()

    def test_close_shuts_down_owned_process_pool(self):
        orchestrator = CaptureOrchestrator(Config(compositor_executor="process"))
        pool = orchestrator.compositor._get_executor()

        orchestrator.close()

        assert orchestrator.compositor._executor is None
        with pytest.raises(RuntimeError):
            pool.submit(print)
