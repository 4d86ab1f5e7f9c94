"""
Capture Orchestrator - measure, scroll, capture, composite, restore

One ``CaptureRun`` is created per request and carries that request's
state; nothing is shared between concurrent captures. The original
scroll position is restored on every exit path, including cancellation
by the overall timeout.
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from .capture import SegmentCapturer, normalize_capture_options
from .compositor import Compositor
from .config import Config, config as default_config
from .dimensions import DimensionProber
from .errors import CompositingError
from .models import (
    AlignmentOptions,
    CaptureResult,
    CaptureSegment,
    CaptureState,
    CompositeRequest,
    PageGeometry,
    ScrollCheckpoint,
)
from .scrolling import ScrollController

logger = logging.getLogger(__name__)


def plan_segment_count(target_height: int, viewport_height: int) -> int:
    if viewport_height <= 0:
        raise ValueError(f"viewport_height must be positive, got {viewport_height}")
    return max(1, math.ceil(target_height / viewport_height))


@dataclass
class CaptureRun:
    """State of one capture request"""
    target_id: Any
    state: Optional[CaptureState] = None
    history: List[Tuple[CaptureState, float]] = field(default_factory=list)
    geometry: Optional[PageGeometry] = None
    target_height: int = 0
    checkpoint: Optional[ScrollCheckpoint] = None
    segments: List[CaptureSegment] = field(default_factory=list)
    error: Optional[BaseException] = None
    started_at: float = field(default_factory=time.time)

    def transition(self, state: CaptureState) -> None:
        previous = self.state.value if self.state else "start"
        self.state = state
        self.history.append((state, time.time()))
        logger.debug(f"Target {self.target_id}: {previous} -> {state.value}")

    def fail(self, error: BaseException) -> None:
        self.error = error
        self.transition(CaptureState.FAILED)

    @property
    def elapsed(self) -> float:
        return time.time() - self.started_at


class CaptureOrchestrator:
    """
    Drives a full-page capture through its states.

    Example:
        orchestrator = CaptureOrchestrator()
        result = await orchestrator.run(target, format="png")
    """

    def __init__(
        self,
        cfg: Optional[Config] = None,
        prober: Optional[DimensionProber] = None,
        scroller: Optional[ScrollController] = None,
        capturer: Optional[SegmentCapturer] = None,
        compositor: Optional[Compositor] = None,
    ):
        self.config = cfg or default_config
        self.prober = prober or DimensionProber(self.config)
        self.scroller = scroller or ScrollController(self.config)
        self.capturer = capturer or SegmentCapturer(self.config)
        self.compositor = compositor or Compositor(self.config)

    async def run(self, target, format: Optional[str] = None, quality: Optional[int] = None) -> CaptureResult:
        """
        Capture the whole document of ``target`` as one image.

        Raises:
            CompositingError: segments were captured but could not be
                combined; ``first_segment`` is attached
            CaptureError: measuring, scrolling or capturing failed
        """
        fmt, q = normalize_capture_options(format, quality, self.config)
        run = CaptureRun(target_id=getattr(target, "target_id", None))

        try:
            result = await self._run(run, target, fmt, q)
        except BaseException as e:
            run.fail(e)
            raise

        run.transition(CaptureState.DONE)
        logger.info(
            f"Captured target {run.target_id}: {result.width}x{result.height} {result.format} "
            f"from {result.segments_captured} segment(s) in {run.elapsed:.2f}s"
        )
        return result

    async def _run(self, run: CaptureRun, target, fmt: str, quality: Optional[int]) -> CaptureResult:
        run.transition(CaptureState.MEASURING)
        geometry = await self.prober.measure(target)
        run.geometry = geometry
        run.target_height = min(geometry.full_height, self.config.max_capture_height)
        if geometry.full_height > self.config.max_capture_height:
            logger.info(
                f"Document is {geometry.full_height}px, capping capture at {self.config.max_capture_height}px"
            )

        if run.target_height <= geometry.viewport_height:
            run.transition(CaptureState.CAPTURING)
            segment = await self.capturer.capture(target, fmt, quality)
            return CaptureResult.from_segment(segment, target_id=run.target_id)

        run.checkpoint = ScrollCheckpoint(offset=await self.scroller.get_position(target))
        try:
            await self._capture_segments(run, target, fmt, quality)

            if len(run.segments) == 1:
                return CaptureResult.from_segment(run.segments[0], target_id=run.target_id)

            run.transition(CaptureState.COMPOSITING)
            composite = await self._composite(run, fmt, quality)
        finally:
            run.transition(CaptureState.RESTORING_SCROLL)
            await self._restore(target, run.checkpoint)

        return CaptureResult(
            encoded_image=composite.image,
            format=composite.format,
            width=composite.width,
            height=composite.height,
            target_id=run.target_id,
            segments_captured=len(run.segments),
        )

    async def _capture_segments(self, run: CaptureRun, target, fmt: str, quality: Optional[int]) -> None:
        viewport_height = run.geometry.viewport_height
        count = plan_segment_count(run.target_height, viewport_height)
        logger.debug(f"Target {run.target_id}: {count} segments for {run.target_height}px")

        last_offset = -1
        for i in range(count):
            requested = i * viewport_height
            if requested >= run.target_height:
                break

            run.transition(CaptureState.SCROLLING)
            actual = await self.scroller.scroll_to(target, requested)
            if actual <= last_offset:
                logger.warning(
                    f"Target {run.target_id}: scroll to {requested} stopped at {actual}, document ends early"
                )
                break

            run.transition(CaptureState.SETTLING)
            await self.scroller.await_settle(target)

            run.transition(CaptureState.CAPTURING)
            segment = await self.capturer.capture(target, fmt, quality, index=i, scroll_offset=actual)
            run.segments.append(segment)
            last_offset = actual

    async def _composite(self, run: CaptureRun, fmt: str, quality: Optional[int]):
        request = CompositeRequest(
            segments=list(run.segments),
            target_height=run.target_height,
            viewport_height=run.geometry.viewport_height,
            format=fmt,
            quality=quality,
            alignment=AlignmentOptions.from_config(self.config),
        )
        try:
            return await self.compositor.composite(request)
        except CompositingError as e:
            e.first_segment = run.segments[0]
            raise
        except Exception as e:
            raise CompositingError(f"Failed to composite screenshots: {e}", first_segment=run.segments[0]) from e

    async def _restore(self, target, checkpoint: Optional[ScrollCheckpoint]) -> None:
        if checkpoint is None:
            return
        # Shielded so a deadline firing mid-restore still lets the scroll land
        restore = asyncio.ensure_future(self.scroller.scroll_to(target, checkpoint.offset))
        try:
            await asyncio.shield(restore)
            if self.config.restore_settle_ms > 0:
                await asyncio.sleep(self.config.restore_settle_ms / 1000.0)
        except asyncio.CancelledError:
            logger.warning(f"Cancelled while restoring scroll position to {checkpoint.offset}; restore continues")
            raise
        except Exception as e:
            logger.warning(f"Failed to restore scroll position to {checkpoint.offset}: {e}")

    def close(self) -> None:
        """Release the compositor's worker pool, if it created one."""
        self.compositor.close()
