"""
Segment Capturer - one viewport bitmap, bounded by a timeout

Each capture races the target against a fixed timeout. A timeout is a
hard failure for that segment; it is not retried in place.
"""

import asyncio
import base64
import binascii
import io
import logging
import time
from typing import Optional, Tuple, Union

from PIL import Image

from .config import Config, SUPPORTED_FORMATS, config as default_config
from .errors import CaptureError, CaptureTimeoutError, InvalidImageError, InvalidRequestError
from .models import CaptureSegment

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JPEG_SIGNATURE = b"\xff\xd8\xff"
MIN_BASE64_LENGTH = 100


def clamp_quality(quality) -> int:
    return max(0, min(100, int(quality)))


def normalize_capture_options(
    format: Optional[str],
    quality: Optional[int],
    cfg: Optional[Config] = None,
) -> Tuple[str, Optional[int]]:
    """
    Resolve the encoder format and quality.

    Quality only applies to JPEG and is always clamped to [0, 100];
    for PNG it is dropped.
    """
    cfg = cfg or default_config
    fmt = (format or cfg.default_format).lower()
    if fmt == "jpg":
        fmt = "jpeg"
    if fmt not in SUPPORTED_FORMATS:
        raise InvalidRequestError(f"Invalid format: {format}. Must be 'png' or 'jpeg'.")
    if fmt != "jpeg":
        return fmt, None
    return fmt, clamp_quality(cfg.default_quality if quality is None else quality)


def decode_capture(raw: Union[bytes, bytearray, str, None]) -> bytes:
    """Accept raw bytes or a ``data:image/...;base64,`` URL and return bytes."""
    if raw is None:
        raise InvalidImageError("Invalid image data received from capture operation")
    if isinstance(raw, (bytes, bytearray)):
        return bytes(raw)
    if not isinstance(raw, str):
        raise InvalidImageError(f"Invalid image data type received from capture operation: {type(raw).__name__}")
    if not raw.startswith("data:image/"):
        raise InvalidImageError("Invalid image format received from capture operation")
    _, _, body = raw.partition(",")
    if not body:
        raise InvalidImageError("Failed to extract base64 data from captured image")
    if len(body) < MIN_BASE64_LENGTH:
        raise InvalidImageError("Captured image data appears to be too small or corrupted")
    try:
        return base64.b64decode(body, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError(f"Captured image is not valid base64: {e}") from e


def inspect_image(data: bytes, expected_format: Optional[str] = None) -> Tuple[str, int, int]:
    """
    Validate an encoded bitmap and return (format, width, height).

    Raises:
        InvalidImageError: empty, unknown signature, or undecodable
    """
    if not data:
        raise InvalidImageError("Captured image is empty")
    if data.startswith(PNG_SIGNATURE):
        fmt = "png"
    elif data.startswith(JPEG_SIGNATURE):
        fmt = "jpeg"
    else:
        raise InvalidImageError("Captured image is neither PNG nor JPEG")
    if expected_format and fmt != expected_format:
        logger.debug(f"Requested {expected_format}, target returned {fmt}")

    try:
        with Image.open(io.BytesIO(data)) as im:
            width, height = im.size
            im.verify()
    except Exception as e:
        raise InvalidImageError(f"Captured image is corrupted: {e}") from e

    if width <= 0 or height <= 0:
        raise InvalidImageError(f"Captured image has no pixels ({width}x{height})")
    return fmt, width, height


class SegmentCapturer:
    """Captures exactly the current viewport of a target."""

    def __init__(self, cfg: Optional[Config] = None):
        self.config = cfg or default_config

    async def capture(
        self,
        target,
        format: Optional[str] = None,
        quality: Optional[int] = None,
        index: int = 0,
        scroll_offset: int = 0,
    ) -> CaptureSegment:
        """
        Capture the visible viewport.

        Returns:
            CaptureSegment with validated, encoded bytes

        Raises:
            CaptureTimeoutError: target did not answer within capture_timeout
            InvalidImageError: target returned an unusable bitmap
            CaptureError: any other capture failure
        """
        fmt, q = normalize_capture_options(format, quality, self.config)
        timeout = self.config.capture_timeout

        try:
            raw = await asyncio.wait_for(target.capture_viewport(fmt, q), timeout=timeout)
        except asyncio.TimeoutError:
            raise CaptureTimeoutError(f"Screenshot capture timed out after {timeout:g} seconds") from None
        except CaptureError:
            raise
        except Exception as e:
            if "permission" in str(e).lower():
                raise CaptureError(
                    f"Permission denied: Cannot capture screenshot of target {getattr(target, 'target_id', '?')}"
                ) from e
            raise CaptureError(f"Failed to capture screenshot: {e}") from e

        data = decode_capture(raw)
        actual_fmt, width, height = inspect_image(data, fmt)

        logger.debug(f"Segment {index} at offset {scroll_offset}: {width}x{height} {actual_fmt}, {len(data)} bytes")
        return CaptureSegment(
            index=index,
            scroll_offset=scroll_offset,
            image=data,
            format=actual_fmt,
            width=width,
            height=height,
            captured_at=time.time(),
        )
