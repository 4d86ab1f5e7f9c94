"""
Configuration Logger - Centralized config mapping and logging

Single source of truth for the capture pipeline's environment variables
and the values currently in effect.
"""

import logging
from typing import Any, Dict, Optional

from .config import Config, config as default_config


def get_all_config_variables(cfg: Optional[Config] = None) -> Dict[str, Any]:
    """
    Get all configuration variables with their env names and current values.

    Args:
        cfg: Config instance (module-level config if None)

    Returns:
        Dict mapping env variable names to their current values
    """
    cfg = cfg or default_config
    return {
        # Limits
        "PAGESTITCH_MAX_CAPTURE_HEIGHT": cfg.max_capture_height,

        # Timeouts
        "PAGESTITCH_CAPTURE_TIMEOUT": cfg.capture_timeout,
        "PAGESTITCH_OVERALL_TIMEOUT": cfg.overall_timeout,
        "PAGESTITCH_SETTLE_DELAY_MS": cfg.settle_delay_ms,
        "PAGESTITCH_RESTORE_SETTLE_MS": cfg.restore_settle_ms,
        "PAGESTITCH_LAZY_MEDIA_TIMEOUT_MS": cfg.lazy_media_timeout_ms,

        # Output
        "PAGESTITCH_DEFAULT_FORMAT": cfg.default_format,
        "PAGESTITCH_DEFAULT_QUALITY": cfg.default_quality,

        # Alignment
        "PAGESTITCH_OVERLAP_SEARCH_WINDOW": cfg.overlap_search_window,
        "PAGESTITCH_OVERLAP_BAND_HEIGHT": cfg.overlap_band_height,
        "PAGESTITCH_OVERLAP_MATCH_THRESHOLD": cfg.overlap_match_threshold,
        "PAGESTITCH_OVERLAP_MIN_TEXTURE": cfg.overlap_min_texture,

        # Probing
        "PAGESTITCH_MEASURE_ATTEMPTS": cfg.measure_attempts,
        "PAGESTITCH_MEASURE_RETRY_DELAY": cfg.measure_retry_delay,

        "PAGESTITCH_COMPOSITOR_EXECUTOR": cfg.compositor_executor,
        "PAGESTITCH_DEBUG": cfg.enable_debug,
    }


def log_all_config(logger: logging.Logger, cfg: Optional[Config] = None) -> None:
    """
    Log all configuration variables at DEBUG level.

    Called once when a capture service starts.
    """
    if not logger.isEnabledFor(logging.DEBUG):
        return
    for name, value in get_all_config_variables(cfg).items():
        logger.debug(f"{name}={value}")
