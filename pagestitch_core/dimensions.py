"""
Dimension Prober - document height and viewport size

Full height is the maximum of every height signal the document exposes,
so pages with an unusual box model (body not scrolling, html taller than
body, ...) are still measured correctly.
"""

import logging
from typing import Optional

from .config import Config, config as default_config
from .errors import MeasurementError, TargetNotReadyError
from .models import PageGeometry
from .retry import execute_with_retry

logger = logging.getLogger(__name__)

MEASURE_SCRIPT = """
() => {
    const body = document.body;
    const html = document.documentElement;
    if (!body || !html) return null;

    const fullHeight = Math.max(
        body.scrollHeight || 0,
        body.offsetHeight || 0,
        body.clientHeight || 0,
        html.clientHeight || 0,
        html.scrollHeight || 0,
        html.offsetHeight || 0
    );

    return {
        fullHeight: fullHeight,
        viewportHeight: window.innerHeight || html.clientHeight || 0,
        viewportWidth: window.innerWidth || html.clientWidth || 0
    };
}
"""


def parse_geometry(raw) -> PageGeometry:
    """Turn the measure script's result into PageGeometry.

    Raises TargetNotReadyError when the document has no body yet or
    reports an empty viewport.
    """
    if raw is None:
        raise TargetNotReadyError("Document is not ready: no body element")
    if not isinstance(raw, dict):
        raise MeasurementError(f"Unexpected geometry result: {raw!r}")

    try:
        full_height = int(round(float(raw.get("fullHeight") or 0)))
        viewport_height = int(round(float(raw.get("viewportHeight") or 0)))
        viewport_width = int(round(float(raw.get("viewportWidth") or 0)))
    except (TypeError, ValueError) as e:
        raise MeasurementError(f"Malformed geometry result: {raw!r}") from e

    if viewport_height <= 0 or viewport_width <= 0:
        raise TargetNotReadyError(
            f"Document is not ready: viewport is {viewport_width}x{viewport_height}"
        )

    return PageGeometry(
        full_height=max(full_height, viewport_height),
        viewport_height=viewport_height,
        viewport_width=viewport_width,
    )


class DimensionProber:
    """Measures PageGeometry inside the target document."""

    def __init__(self, cfg: Optional[Config] = None):
        self.config = cfg or default_config

    async def _measure_once(self, target) -> PageGeometry:
        try:
            raw = await target.evaluate(MEASURE_SCRIPT)
        except Exception as e:
            raise MeasurementError(f"Failed to measure document: {e}") from e
        return parse_geometry(raw)

    async def measure(self, target) -> PageGeometry:
        """
        Measure the document, retrying while it reports "not ready".

        Returns:
            PageGeometry

        Raises:
            MeasurementError: script failed or returned garbage
            RetryExhaustedError: document never became ready
        """
        geometry = await execute_with_retry(
            self._measure_once,
            target,
            max_attempts=self.config.measure_attempts,
            initial_delay=self.config.measure_retry_delay,
            retryable_exceptions=(TargetNotReadyError,),
        )
        logger.debug(
            f"Target {getattr(target, 'target_id', '?')}: document {geometry.full_height}px, "
            f"viewport {geometry.viewport_width}x{geometry.viewport_height}"
        )
        return geometry
