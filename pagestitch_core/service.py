"""
Full-page screenshot service.

Entry point for screenshot requests: validate the request, resolve the
target, check that the document can be captured, then run the capture
under the fallback supervisor.

Example:
    registry = TargetRegistry()
    registry.register(PlaywrightTarget(page, target_id=1))
    capturer = FullPageCapturer(registry)

    message = await capturer.handle_request({"targetId": 1, "format": "jpeg", "quality": 80})
"""

import logging
from typing import Any, Dict, Optional, Union

from .capture import SegmentCapturer
from .compositor import Compositor
from .config import Config, config as default_config
from .config_logger import log_all_config
from .dimensions import DimensionProber
from .error_handler import create_error_response, format_error_for_logging
from .errors import CaptureError, TargetNotCapturableError, TargetNotReadyError
from .fallback import FallbackSupervisor
from .models import CaptureRequest, CaptureResult
from .orchestrator import CaptureOrchestrator
from .scrolling import ScrollController
from .target import CaptureTarget, PlaywrightTarget, TargetRegistry

logger = logging.getLogger(__name__)


class FullPageCapturer:
    """Serves screenshot requests for the targets in a registry."""

    def __init__(
        self,
        registry: Optional[TargetRegistry] = None,
        cfg: Optional[Config] = None,
        compositor: Optional[Compositor] = None,
    ):
        self.config = cfg or default_config
        self.registry = registry or TargetRegistry()
        self.capturer = SegmentCapturer(self.config)
        self.compositor = compositor or Compositor(self.config)
        self.orchestrator = CaptureOrchestrator(
            self.config,
            prober=DimensionProber(self.config),
            scroller=ScrollController(self.config),
            capturer=self.capturer,
            compositor=self.compositor,
        )
        self.supervisor = FallbackSupervisor(self.orchestrator, self.capturer, self.config)
        log_all_config(logger, self.config)

    async def preflight(self, target: CaptureTarget) -> None:
        """Reject targets that cannot be captured right now."""
        info = await target.describe()
        if info.is_system_page:
            raise TargetNotCapturableError(f"Cannot capture screenshots of system pages ({info.url})")
        if not info.is_loaded:
            raise TargetNotReadyError(
                f"Target {target.target_id} is not ready for capture (state: {info.ready_state})"
            )

    async def capture_full_page(
        self,
        target_id: Any,
        format: Optional[str] = None,
        quality: Optional[int] = None,
    ) -> CaptureResult:
        """
        Capture the full document of a registered target.

        Raises:
            InvalidRequestError: malformed target id, format or quality
            InvalidTargetError: target id is not registered
            TargetNotCapturableError: target shows a browser system page
            TargetNotReadyError: document is still loading
            CaptureFailedError: neither full page nor viewport could be captured
        """
        request = CaptureRequest(target_id=target_id, format=format, quality=quality)
        request.validate()
        target = self.registry.resolve(request.target_id)
        await self.preflight(target)

        logger.info(f"Capturing full page of target {request.target_id} as {request.format or self.config.default_format}")
        result = await self.supervisor.capture(target, request.format, request.quality)
        result.target_id = request.target_id
        if result.degraded:
            logger.warning(f"Target {request.target_id}: returned degraded screenshot ({result.degraded})")
        return result

    async def handle_request(
        self,
        request: Union[CaptureRequest, Dict[str, Any]],
        correlation_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Serve one request and return the response message.

        Failures are reported in the message rather than raised.
        """
        if isinstance(request, dict):
            correlation_id = correlation_id or request.get("correlationId")
            request = CaptureRequest.from_dict(request)

        try:
            result = await self.capture_full_page(request.target_id, request.format, request.quality)
        except CaptureError as e:
            logger.warning(format_error_for_logging(e, context=e.stage))
            response = create_error_response(e, context=e.stage, include_stacktrace=self.config.enable_debug)
        except Exception as e:
            logger.exception(f"Unexpected error capturing target {request.target_id}: {e}")
            response = create_error_response(e, context="capture", include_stacktrace=self.config.enable_debug)
        else:
            response = {"success": True, **result.to_message(correlation_id)}
            if result.degraded:
                response["degraded"] = result.degraded
            return response

        response["targetId"] = request.target_id
        if correlation_id is not None:
            response["correlationId"] = correlation_id
        return response

    def close(self) -> None:
        self.supervisor.close()


async def capture_full_page(
    target: Any,
    format: Optional[str] = None,
    quality: Optional[int] = None,
    cfg: Optional[Config] = None,
) -> CaptureResult:
    """
    Capture the full document of a single target.

    ``target`` may be a CaptureTarget or a Playwright async Page.
    """
    if not isinstance(target, CaptureTarget):
        target = PlaywrightTarget(target)
    registry = TargetRegistry()
    registry.register(target)
    capturer = FullPageCapturer(registry, cfg)
    try:
        return await capturer.capture_full_page(target.target_id, format, quality)
    finally:
        capturer.close()
