"""
Capture pipeline exceptions.

Every error carries the pipeline stage it was raised from so the
fallback layer and the error handler can classify it.
"""

from typing import Optional


class CaptureError(Exception):
    """Base class for capture pipeline errors"""
    stage = "capture"


class InvalidRequestError(CaptureError, ValueError):
    """Request parameters are malformed (format, quality, target id)"""
    stage = "request"


class InvalidTargetError(CaptureError):
    """Target id does not resolve to a live document"""
    stage = "target"


class TargetNotCapturableError(CaptureError):
    """Target shows a page that can never be captured (about:, chrome:, ...)"""
    stage = "target"


class MeasurementError(CaptureError):
    """Document geometry could not be read"""
    stage = "measure"


class TargetNotReadyError(MeasurementError):
    """Document is still loading; retrying later may succeed"""
    pass


class ScrollError(CaptureError):
    """Scroll position could not be set or read"""
    stage = "scroll"


class CaptureTimeoutError(CaptureError, TimeoutError):
    """A single viewport capture exceeded its time budget"""
    pass


class InvalidImageError(CaptureError):
    """Captured bitmap is empty, truncated or not PNG/JPEG"""
    pass


class CompositingError(CaptureError):
    """Decoding or drawing the composite failed.

    ``first_segment`` holds the first captured segment so the caller can
    still return a partial result.
    """
    stage = "composite"

    def __init__(self, message: str, first_segment=None):
        super().__init__(message)
        self.first_segment = first_segment


class RetryExhaustedError(CaptureError):
    """All retry attempts have been exhausted"""
    stage = "measure"


class CaptureFailedError(CaptureError):
    """Both the full-page path and the single-viewport fallback failed"""

    def __init__(self, message: str, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original
