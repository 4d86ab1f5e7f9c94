"""
Tests for the screenshot service: request handling end to end against
fake targets.
"""

import base64

import numpy as np
import pytest

from pagestitch_core.errors import (
    InvalidRequestError,
    InvalidTargetError,
    TargetNotCapturableError,
    TargetNotReadyError,
)
from pagestitch_core.service import FullPageCapturer, capture_full_page
from pagestitch_core.target import TargetRegistry

from mocks.fake_page import FakeTarget, decode_rows, make_document


@pytest.fixture
def registry(tall_page, short_page):
    registry = TargetRegistry()
    short_page.target_id = 2
    registry.register(tall_page)
    registry.register(short_page)
    return registry


@pytest.fixture
def service(registry, fast_config):
    capturer = FullPageCapturer(registry, fast_config)
    yield capturer
    capturer.close()


class TestCaptureFullPage:

    @pytest.mark.asyncio
    async def test_full_page(self, service, tall_page):
        result = await service.capture_full_page(1)

        assert result.target_id == 1
        assert result.height == 2600
        assert np.array_equal(decode_rows(result.encoded_image), tall_page.content)

    @pytest.mark.asyncio
    async def test_invalid_quality_rejected_before_capture(self, service, tall_page):
        with pytest.raises(InvalidRequestError):
            await service.capture_full_page(1, format="jpeg", quality=101)

        assert tall_page.capture_calls == 0

    @pytest.mark.asyncio
    async def test_unknown_target(self, service):
        with pytest.raises(InvalidTargetError):
            await service.capture_full_page(42)

    @pytest.mark.asyncio
    async def test_system_page_rejected(self, service, tall_page):
        tall_page.url = "about:blank"

        with pytest.raises(TargetNotCapturableError):
            await service.capture_full_page(1)

        assert tall_page.capture_calls == 0

    @pytest.mark.asyncio
    async def test_loading_page_rejected(self, service, tall_page):
        tall_page.ready_state = "interactive"

        with pytest.raises(TargetNotReadyError, match="not ready for capture"):
            await service.capture_full_page(1)

        assert tall_page.capture_calls == 0


class TestHandleRequest:

    @pytest.mark.asyncio
    async def test_success_message(self, service, short_page):
        message = await service.handle_request({"targetId": 2, "correlationId": "abc"})

        assert message["success"] is True
        assert message["resource"] == "screenshot"
        assert message["targetId"] == 2
        assert message["correlationId"] == "abc"
        assert message["format"] == "png"
        assert (message["width"], message["height"]) == (short_page.width, 900)
        assert base64.b64decode(message["imageData"]).startswith(b"\x89PNG")
        assert "degraded" not in message

    @pytest.mark.asyncio
    async def test_degraded_message(self, service, tall_page):
        tall_page.hang_on = {2}

        message = await service.handle_request({"targetId": 1, "format": "jpeg", "quality": 0})

        assert message["success"] is True
        assert message["degraded"] == "viewport"
        assert message["format"] == "jpeg"
        assert message["height"] == 800

    @pytest.mark.asyncio
    async def test_error_message(self, service):
        message = await service.handle_request({"targetId": 1, "format": "gif"}, correlation_id="x1")

        assert message["success"] is False
        assert message["resource"] == "screenshot"
        assert message["targetId"] == 1
        assert message["correlationId"] == "x1"
        assert message["error"]["category"] == "request"
        assert message["error"]["can_retry"] is False

    @pytest.mark.asyncio
    async def test_total_failure_message(self, service, tall_page):
        tall_page.fail_on = set(range(1, 10))

        message = await service.handle_request({"targetId": 1})

        assert message["success"] is False
        assert message["error"]["severity"] == "critical"


@pytest.mark.asyncio
async def test_module_level_capture(fast_config):
    page = FakeTarget(make_document(1700, seed=11), viewport_height=800, target_id="main")

    result = await capture_full_page(page, cfg=fast_config)

    assert result.target_id == "main"
    assert result.height == 1700
    assert np.array_equal(decode_rows(result.encoded_image), page.content)
