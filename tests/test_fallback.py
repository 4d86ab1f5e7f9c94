"""Tests for the fallback supervisor."""

import pytest
from unittest.mock import AsyncMock, MagicMock

import numpy as np

from pagestitch_core.compositor import Compositor
from pagestitch_core.errors import CaptureFailedError, InvalidRequestError
from pagestitch_core.fallback import DEGRADED_FIRST_SEGMENT, DEGRADED_VIEWPORT, FallbackSupervisor
from pagestitch_core.orchestrator import CaptureOrchestrator

from mocks.fake_page import FakeTarget, decode_rows, make_document


def supervisor_for(cfg, compositor=None):
    orchestrator = CaptureOrchestrator(cfg, compositor=compositor)
    return FallbackSupervisor(orchestrator, orchestrator.capturer, cfg)


@pytest.mark.asyncio
async def test_full_page_when_nothing_fails(fast_config, tall_page):
    result = await supervisor_for(fast_config).capture(tall_page)

    assert result.degraded is None
    assert result.height == 2600


@pytest.mark.asyncio
async def test_compositing_failure_returns_first_segment(fast_config, tall_page):
    """Segments were captured but not combined: hand back the first one."""
    compositor = MagicMock(spec=Compositor)
    compositor.composite = AsyncMock(side_effect=RuntimeError("out of memory"))

    result = await supervisor_for(fast_config, compositor).capture(tall_page)

    assert result.degraded == DEGRADED_FIRST_SEGMENT
    assert (result.width, result.height) == (tall_page.width, 800)
    assert np.array_equal(decode_rows(result.encoded_image), tall_page.content[:800])
    # No extra capture was taken for the fallback
    assert tall_page.capture_calls == 4


@pytest.mark.asyncio
async def test_segment_timeout_falls_back_to_viewport(fast_config):
    """Capture #2 hangs: a fresh viewport capture is returned after the restore."""
    page = FakeTarget(make_document(2600), viewport_height=800, scroll_y=300, hang_on={2})

    result = await supervisor_for(fast_config).capture(page)

    assert result.degraded == DEGRADED_VIEWPORT
    assert page.scroll_y == 300
    assert page.capture_calls == 3
    assert (result.width, result.height) == (page.width, 800)
    assert np.array_equal(decode_rows(result.encoded_image), page.content[300:1100])


@pytest.mark.asyncio
async def test_overall_timeout_falls_back_to_viewport(fast_config):
    fast_config.capture_timeout = 5.0
    fast_config.overall_timeout = 0.2
    page = FakeTarget(make_document(2600), viewport_height=800, scroll_y=50, hang_on={1})

    result = await supervisor_for(fast_config).capture(page)

    assert result.degraded == DEGRADED_VIEWPORT
    assert page.scroll_y == 50
    assert np.array_equal(decode_rows(result.encoded_image), page.content[50:850])


@pytest.mark.asyncio
async def test_both_paths_failing_raises(fast_config):
    page = FakeTarget(make_document(2600), viewport_height=800, fail_on={1, 2, 3, 4, 5})

    with pytest.raises(CaptureFailedError, match="Both full page and fallback screenshot capture failed") as exc_info:
        await supervisor_for(fast_config).capture(page)

    assert exc_info.value.original is not None


@pytest.mark.asyncio
async def test_invalid_format_is_not_masked(fast_config, tall_page):
    with pytest.raises(InvalidRequestError):
        await supervisor_for(fast_config).capture(tall_page, format="gif")

    assert tall_page.capture_calls == 0


@pytest.mark.asyncio
async def test_malformed_composite_response_returns_first_segment(fast_config, tall_page, monkeypatch):
    """A broken reply from the compositing context is a compositing failure."""
    monkeypatch.setattr("pagestitch_core.compositor.composite_payload", lambda payload: {})

    result = await supervisor_for(fast_config).capture(tall_page)

    assert result.degraded == DEGRADED_FIRST_SEGMENT
    assert np.array_equal(decode_rows(result.encoded_image), tall_page.content[:800])


def test_close_reaches_compositor(fast_config):
    compositor = MagicMock(spec=Compositor)

    supervisor_for(fast_config, compositor).close()

    compositor.close.assert_called_once_with()
