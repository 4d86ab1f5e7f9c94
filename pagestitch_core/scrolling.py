"""
Scroll Controller - move the document and wait for it to settle

Scrolling is instantaneous (no smooth animation) so capture timing is
deterministic. After each scroll the controller waits a minimum delay,
then gives every lazily loaded image or frame a short, independent
timeout to finish.
"""

import asyncio
import logging
from typing import Optional

from .config import Config, config as default_config
from .errors import ScrollError

logger = logging.getLogger(__name__)

SCROLL_POSITION_SCRIPT = "() => window.pageYOffset || document.documentElement.scrollTop || 0"

SCROLL_TO_SCRIPT = """
(y) => {
    window.scrollTo({ top: y, left: 0, behavior: 'instant' });
    return window.pageYOffset || document.documentElement.scrollTop || 0;
}
"""

# Resolves with the number of media elements that did not finish in time
LAZY_MEDIA_SCRIPT = """
(timeoutMs) => {
    const media = document.querySelectorAll(
        'img[loading="lazy"], img[data-src], iframe[loading="lazy"]'
    );
    const waits = Array.from(media).map(el => {
        if (el.tagName === 'IMG' && el.complete) return Promise.resolve(0);
        return new Promise(resolve => {
            const done = () => resolve(0);
            el.addEventListener('load', done, { once: true });
            el.addEventListener('error', done, { once: true });
            setTimeout(() => resolve(1), timeoutMs);
        });
    });
    return Promise.all(waits).then(r => r.reduce((a, b) => a + b, 0));
}
"""


class ScrollController:
    """Sets and reads the vertical scroll offset of a target."""

    def __init__(self, cfg: Optional[Config] = None):
        self.config = cfg or default_config

    async def get_position(self, target) -> int:
        try:
            value = await target.evaluate(SCROLL_POSITION_SCRIPT)
        except Exception as e:
            raise ScrollError(f"Failed to read scroll position: {e}") from e
        try:
            return int(round(float(value or 0)))
        except (TypeError, ValueError):
            return 0

    async def scroll_to(self, target, offset: int) -> int:
        """
        Scroll to ``offset`` and return the offset the document actually reached.

        Browsers clamp the last scroll to ``fullHeight - viewportHeight``,
        so the returned value can be smaller than requested.
        """
        offset = max(0, int(offset))
        try:
            actual = await target.evaluate(SCROLL_TO_SCRIPT, offset)
        except Exception as e:
            raise ScrollError(f"Failed to scroll to {offset}: {e}") from e
        if actual is None:
            return offset
        try:
            return int(round(float(actual)))
        except (TypeError, ValueError):
            return offset

    async def await_settle(self, target, min_delay_ms: Optional[int] = None) -> int:
        """
        Wait at least ``min_delay_ms``, then for outstanding lazy media.

        Returns:
            Number of media elements still pending when their timeout hit.
        """
        delay_ms = self.config.settle_delay_ms if min_delay_ms is None else min_delay_ms
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000.0)

        per_item_ms = max(0, int(self.config.lazy_media_timeout_ms))
        # Every element has its own timer in the page; this bounds the round trip
        budget = per_item_ms / 1000.0 + 1.0
        try:
            pending = await asyncio.wait_for(target.evaluate(LAZY_MEDIA_SCRIPT, per_item_ms), timeout=budget)
        except asyncio.TimeoutError:
            logger.warning(f"Lazy media wait exceeded {budget:.1f}s, capturing anyway")
            return -1
        except Exception as e:
            raise ScrollError(f"Settle wait failed: {e}") from e

        try:
            pending = int(pending or 0)
        except (TypeError, ValueError):
            pending = 0
        if pending:
            logger.debug(f"{pending} lazy media element(s) still loading after {per_item_ms}ms")
        return pending
