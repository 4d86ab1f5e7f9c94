#!/usr/bin/env python3
from dataclasses import dataclass
import os
from dotenv import load_dotenv

load_dotenv()

SUPPORTED_FORMATS = ("png", "jpeg")


@dataclass
class Config:
    """Capture pipeline configuration"""
    # Hard ceiling for the stitched image; applied before segment planning
    max_capture_height: int = int(os.getenv("PAGESTITCH_MAX_CAPTURE_HEIGHT", "6000"))

    # Timeouts (seconds)
    capture_timeout: float = float(os.getenv("PAGESTITCH_CAPTURE_TIMEOUT", "10"))
    overall_timeout: float = float(os.getenv("PAGESTITCH_OVERALL_TIMEOUT", "30"))

    # Settle waits (milliseconds)
    settle_delay_ms: int = int(os.getenv("PAGESTITCH_SETTLE_DELAY_MS", "300"))
    restore_settle_ms: int = int(os.getenv("PAGESTITCH_RESTORE_SETTLE_MS", "100"))
    lazy_media_timeout_ms: int = int(os.getenv("PAGESTITCH_LAZY_MEDIA_TIMEOUT_MS", "1000"))

    # Output defaults
    default_format: str = os.getenv("PAGESTITCH_DEFAULT_FORMAT", "png").lower()
    default_quality: int = int(os.getenv("PAGESTITCH_DEFAULT_QUALITY", "90"))

    # Overlap alignment between adjacent segments
    overlap_search_window: int = int(os.getenv("PAGESTITCH_OVERLAP_SEARCH_WINDOW", "150"))
    overlap_band_height: int = int(os.getenv("PAGESTITCH_OVERLAP_BAND_HEIGHT", "100"))
    overlap_match_threshold: float = float(os.getenv("PAGESTITCH_OVERLAP_MATCH_THRESHOLD", "4.0"))
    overlap_min_texture: float = float(os.getenv("PAGESTITCH_OVERLAP_MIN_TEXTURE", "2.0"))

    # Dimension probing ("document not ready" is retried)
    measure_attempts: int = int(os.getenv("PAGESTITCH_MEASURE_ATTEMPTS", "3"))
    measure_retry_delay: float = float(os.getenv("PAGESTITCH_MEASURE_RETRY_DELAY", "0.2"))

    # Where compositing runs: "thread", "process" or "inline"
    compositor_executor: str = os.getenv("PAGESTITCH_COMPOSITOR_EXECUTOR", "thread").lower()

    enable_debug: bool = os.getenv("PAGESTITCH_DEBUG", "false").lower() in ["true", "1", "yes"]

    def __post_init__(self):
        self.default_format = (self.default_format or "png").lower()
        if self.default_format == "jpg":
            self.default_format = "jpeg"
        if self.default_format not in SUPPORTED_FORMATS:
            self.default_format = "png"
        self.default_quality = max(0, min(100, int(self.default_quality)))


config = Config()
