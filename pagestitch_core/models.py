"""Data models for the full-page capture pipeline"""

import base64
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .config import SUPPORTED_FORMATS
from .errors import InvalidRequestError


@dataclass
class PageGeometry:
    """Document and viewport size in CSS pixels, measured per request"""
    full_height: int
    viewport_height: int
    viewport_width: int


@dataclass
class ScrollCheckpoint:
    """Scroll offset saved before orchestration; restored on every exit path"""
    offset: int
    taken_at: float = field(default_factory=time.time)


@dataclass
class CaptureSegment:
    """One viewport bitmap and the scroll offset it was taken at"""
    index: int
    scroll_offset: int
    image: bytes
    format: str
    width: int
    height: int
    captured_at: float = field(default_factory=time.time)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "scrollOffset": self.scroll_offset,
            "image": base64.b64encode(self.image).decode("ascii"),
            "format": self.format,
            "width": self.width,
            "height": self.height,
            "capturedAt": self.captured_at,
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CaptureSegment":
        return cls(
            index=int(data["index"]),
            scroll_offset=int(data["scrollOffset"]),
            image=base64.b64decode(data["image"]),
            format=data.get("format", "png"),
            width=int(data.get("width", 0)),
            height=int(data.get("height", 0)),
            captured_at=float(data.get("capturedAt", 0.0)),
        )


@dataclass
class AlignmentOptions:
    """Bounded overlap search around each nominal segment boundary"""
    search_window: int = 150
    band_height: int = 100
    match_threshold: float = 4.0
    min_texture: float = 2.0

    @classmethod
    def from_config(cls, cfg) -> "AlignmentOptions":
        return cls(
            search_window=cfg.overlap_search_window,
            band_height=cfg.overlap_band_height,
            match_threshold=cfg.overlap_match_threshold,
            min_texture=cfg.overlap_min_texture,
        )


@dataclass
class CompositeRequest:
    """Input to the compositor"""
    segments: List[CaptureSegment]
    target_height: int
    viewport_height: int
    format: str = "png"
    quality: Optional[int] = None
    alignment: AlignmentOptions = field(default_factory=AlignmentOptions)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize for hand-off to another execution context"""
        return {
            "segments": [s.to_payload() for s in self.segments],
            "targetHeight": self.target_height,
            "viewportHeight": self.viewport_height,
            "format": self.format,
            "quality": self.quality,
            "alignment": {
                "searchWindow": self.alignment.search_window,
                "bandHeight": self.alignment.band_height,
                "matchThreshold": self.alignment.match_threshold,
                "minTexture": self.alignment.min_texture,
            },
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "CompositeRequest":
        align = data.get("alignment") or {}
        return cls(
            segments=[CaptureSegment.from_payload(s) for s in data["segments"]],
            target_height=int(data["targetHeight"]),
            viewport_height=int(data["viewportHeight"]),
            format=data.get("format", "png"),
            quality=data.get("quality"),
            alignment=AlignmentOptions(
                search_window=int(align.get("searchWindow", 150)),
                band_height=int(align.get("bandHeight", 100)),
                match_threshold=float(align.get("matchThreshold", 4.0)),
                min_texture=float(align.get("minTexture", 2.0)),
            ),
        )


@dataclass
class SegmentPlacement:
    """Where a segment ended up in the composite"""
    index: int
    placement: int
    source_top: int
    drawn_height: int
    aligned: bool = False


@dataclass
class CompositeResult:
    """Output of the compositor"""
    image: bytes
    format: str
    width: int
    height: int
    layout: List[SegmentPlacement] = field(default_factory=list)


@dataclass
class CaptureRequest:
    """Screenshot request as delivered by the command layer"""
    target_id: Any
    format: Optional[str] = None
    quality: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CaptureRequest":
        target_id = data.get("targetId", data.get("target_id", data.get("tabId")))
        return cls(target_id=target_id, format=data.get("format"), quality=data.get("quality"))

    def validate(self) -> None:
        """Reject malformed parameters before any browser work is done"""
        if self.target_id is None or (isinstance(self.target_id, str) and not self.target_id.strip()):
            raise InvalidRequestError("Target ID is required")
        if isinstance(self.target_id, bool) or (isinstance(self.target_id, int) and self.target_id < 0):
            raise InvalidRequestError(
                f"Invalid target ID: {self.target_id}. Target ID must be a non-negative integer or a name."
            )
        if self.format is not None:
            fmt = str(self.format).lower()
            if fmt == "jpg":
                fmt = "jpeg"
            if fmt not in SUPPORTED_FORMATS:
                raise InvalidRequestError(f"Invalid format: {self.format}. Must be 'png' or 'jpeg'.")
            self.format = fmt
        if self.quality is not None:
            if isinstance(self.quality, bool) or not isinstance(self.quality, int) or not 0 <= self.quality <= 100:
                raise InvalidRequestError(
                    f"Invalid quality: {self.quality}. Quality must be an integer between 0 and 100."
                )


@dataclass
class CaptureResult:
    """Final output; ``encoded_image`` is the only artifact handed back"""
    encoded_image: bytes
    format: str
    width: int
    height: int
    target_id: Any = None
    segments_captured: int = 1
    degraded: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def image_data(self) -> str:
        return base64.b64encode(self.encoded_image).decode("ascii")

    @classmethod
    def from_segment(cls, segment: CaptureSegment, target_id=None, degraded=None, segments_captured=1):
        return cls(
            encoded_image=segment.image,
            format=segment.format,
            width=segment.width,
            height=segment.height,
            target_id=target_id,
            segments_captured=segments_captured,
            degraded=degraded,
        )

    def to_message(self, correlation_id: Optional[str] = None) -> Dict[str, Any]:
        message = {
            "resource": "screenshot",
            "targetId": self.target_id,
            "imageData": self.image_data,
            "format": self.format,
            "width": self.width,
            "height": self.height,
            "timestamp": int(self.timestamp * 1000),
        }
        if correlation_id is not None:
            message["correlationId"] = correlation_id
        return message


class CaptureState(Enum):
    """Orchestration states for a single capture request"""
    MEASURING = "measuring"
    SCROLLING = "scrolling"
    SETTLING = "settling"
    CAPTURING = "capturing"
    COMPOSITING = "compositing"
    RESTORING_SCROLL = "restoring_scroll"
    DONE = "done"
    FAILED = "failed"
