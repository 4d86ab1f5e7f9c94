"""
Fallback Supervisor - always hand back some image when one can be had

Degradation order:
    1. full-page composite
    2. first captured segment, when only compositing failed
    3. a fresh single-viewport capture, on any other failure
Only when the viewport capture fails as well does the request fail.
"""

import asyncio
import logging
from typing import Optional

from .capture import SegmentCapturer
from .config import Config, config as default_config
from .errors import (
    CaptureError,
    CaptureFailedError,
    CaptureTimeoutError,
    CompositingError,
    InvalidRequestError,
)
from .models import CaptureResult
from .orchestrator import CaptureOrchestrator

logger = logging.getLogger(__name__)

DEGRADED_FIRST_SEGMENT = "first_segment"
DEGRADED_VIEWPORT = "viewport"


class FallbackSupervisor:
    """Wraps the orchestrator with an overall timeout and two fallbacks."""

    def __init__(
        self,
        orchestrator: Optional[CaptureOrchestrator] = None,
        capturer: Optional[SegmentCapturer] = None,
        cfg: Optional[Config] = None,
    ):
        self.config = cfg or default_config
        self.capturer = capturer or SegmentCapturer(self.config)
        self.orchestrator = orchestrator or CaptureOrchestrator(self.config, capturer=self.capturer)

    async def capture(self, target, format: Optional[str] = None, quality: Optional[int] = None) -> CaptureResult:
        """
        Capture ``target`` as a full page, degrading instead of failing.

        Returns:
            CaptureResult; ``degraded`` names the fallback used, if any

        Raises:
            InvalidRequestError: format or quality rejected
            CaptureFailedError: the viewport fallback failed too
        """
        target_id = getattr(target, "target_id", None)
        timeout = self.config.overall_timeout

        try:
            return await asyncio.wait_for(self.orchestrator.run(target, format, quality), timeout=timeout)
        except InvalidRequestError:
            raise
        except CompositingError as e:
            if e.first_segment is not None:
                logger.warning(f"Target {target_id}: {e}; returning first segment only")
                return CaptureResult.from_segment(
                    e.first_segment, target_id=target_id, degraded=DEGRADED_FIRST_SEGMENT
                )
            error = e
        except CaptureError as e:
            error = e
        except asyncio.TimeoutError:
            error = CaptureTimeoutError(f"Full page capture timed out after {timeout:g} seconds")
        except Exception as e:
            error = e

        logger.warning(f"Full page capture failed for target {target_id}, falling back to viewport: {error}")
        try:
            segment = await self.capturer.capture(target, format, quality)
        except Exception as fallback_error:
            logger.error(f"Fallback screenshot failed for target {target_id}: {fallback_error}")
            raise CaptureFailedError(
                f"Both full page and fallback screenshot capture failed: {fallback_error}",
                original=error,
            ) from fallback_error

        return CaptureResult.from_segment(segment, target_id=target_id, degraded=DEGRADED_VIEWPORT)

    def close(self) -> None:
        self.orchestrator.close()
