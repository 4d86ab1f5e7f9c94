"""
Capture targets - the documents a screenshot can be taken of.

A target exposes three capabilities to the pipeline: run a script in the
document, capture the visible viewport, and describe its current state.
``PlaywrightTarget`` implements them on top of a Playwright async Page.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from .errors import InvalidTargetError

logger = logging.getLogger(__name__)

SYSTEM_URL_PREFIXES = ("about:", "chrome:", "chrome-extension:", "moz-extension:", "devtools:")

READY_STATE_SCRIPT = "() => document.readyState"


@dataclass
class TargetInfo:
    """Snapshot of a target's navigation state"""
    url: str
    ready_state: str

    @property
    def is_system_page(self) -> bool:
        return self.url.startswith(SYSTEM_URL_PREFIXES)

    @property
    def is_loaded(self) -> bool:
        return self.ready_state == "complete"


class CaptureTarget(ABC):
    """A live document that can be measured, scrolled and captured"""

    target_id: Any = None

    @abstractmethod
    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run ``script`` (a JS function expression) in the document"""

    @abstractmethod
    async def capture_viewport(self, format: str, quality: Optional[int]) -> Union[bytes, str]:
        """Encoded bitmap of exactly what is visible right now"""

    @abstractmethod
    async def describe(self) -> TargetInfo:
        """Current URL and document ready state"""


class PlaywrightTarget(CaptureTarget):
    """
    Capture target backed by a Playwright async ``Page``.

    Example:
        async with async_playwright() as p:
            browser = await p.chromium.launch(headless=True)
            page = await browser.new_page(viewport={"width": 1280, "height": 800})
            await page.goto(url, wait_until="networkidle")
            target = PlaywrightTarget(page, target_id=1)
    """

    def __init__(self, page, target_id: Any = None):
        self.page = page
        self.target_id = target_id if target_id is not None else id(page)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        if arg is None:
            return await self.page.evaluate(script)
        return await self.page.evaluate(script, arg)

    async def capture_viewport(self, format: str, quality: Optional[int]) -> bytes:
        options: Dict[str, Any] = {"type": format, "full_page": False, "scale": "css"}
        if format == "jpeg" and quality is not None:
            options["quality"] = quality
        return await self.page.screenshot(**options)

    async def describe(self) -> TargetInfo:
        try:
            ready_state = await self.page.evaluate(READY_STATE_SCRIPT)
        except Exception as e:
            logger.debug(f"readyState probe failed for target {self.target_id}: {e}")
            ready_state = "unknown"
        return TargetInfo(url=self.page.url or "", ready_state=str(ready_state))


class TargetRegistry:
    """Maps request target ids to live capture targets"""

    def __init__(self):
        self._targets: Dict[Any, CaptureTarget] = {}

    def register(self, target: CaptureTarget) -> CaptureTarget:
        self._targets[target.target_id] = target
        logger.debug(f"Registered capture target {target.target_id}")
        return target

    def resolve(self, target_id: Any) -> CaptureTarget:
        try:
            return self._targets[target_id]
        except KeyError:
            raise InvalidTargetError(
                f"Target with ID {target_id} not found or is not accessible. "
                f"It may have been closed or does not exist."
            ) from None
