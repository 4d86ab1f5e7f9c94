"""
pagestitch_core package: full-page screenshots stitched from viewport captures

Usage:
    from pagestitch_core import PlaywrightTarget, capture_full_page

    result = await capture_full_page(PlaywrightTarget(page), format="png")
    open("page.png", "wb").write(result.encoded_image)
"""
from .config import Config, config
from .errors import (
    CaptureError,
    CaptureFailedError,
    CaptureTimeoutError,
    CompositingError,
    InvalidRequestError,
    InvalidTargetError,
    TargetNotCapturableError,
    TargetNotReadyError,
)
from .models import CaptureRequest, CaptureResult, CaptureSegment, CaptureState, PageGeometry
from .target import CaptureTarget, PlaywrightTarget, TargetRegistry
from .dimensions import DimensionProber
from .scrolling import ScrollController
from .capture import SegmentCapturer
from .compositor import Compositor, composite_payload
from .orchestrator import CaptureOrchestrator
from .fallback import FallbackSupervisor
from .service import FullPageCapturer, capture_full_page

__all__ = [
    # Core
    "Config",
    "config",
    "FullPageCapturer",
    "capture_full_page",
    # Pipeline
    "DimensionProber",
    "ScrollController",
    "SegmentCapturer",
    "Compositor",
    "composite_payload",
    "CaptureOrchestrator",
    "FallbackSupervisor",
    # Targets
    "CaptureTarget",
    "PlaywrightTarget",
    "TargetRegistry",
    # Models
    "CaptureRequest",
    "CaptureResult",
    "CaptureSegment",
    "CaptureState",
    "PageGeometry",
    # Errors
    "CaptureError",
    "CaptureFailedError",
    "CaptureTimeoutError",
    "CompositingError",
    "InvalidRequestError",
    "InvalidTargetError",
    "TargetNotCapturableError",
    "TargetNotReadyError",
]
