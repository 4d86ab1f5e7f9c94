import pytest

from pagestitch_core.config import Config

from mocks.fake_page import FakeTarget, make_document


@pytest.fixture
def fast_config():
    """Config with every wait shortened and compositing done inline"""
    return Config(
        capture_timeout=0.2,
        overall_timeout=5.0,
        settle_delay_ms=0,
        restore_settle_ms=0,
        lazy_media_timeout_ms=0,
        measure_retry_delay=0.0,
        compositor_executor="inline",
    )


@pytest.fixture
def tall_page():
    """2600px document in an 800px viewport"""
    return FakeTarget(make_document(2600), viewport_height=800)


@pytest.fixture
def short_page():
    """Document exactly one viewport tall"""
    return FakeTarget(make_document(900, seed=1), viewport_height=900)
