"""
User-Friendly Error Handler.

Converts capture errors into helpful messages with actionable suggestions.
"""

from typing import Dict, Optional
import logging

from .errors import (
    CaptureTimeoutError,
    InvalidRequestError,
    InvalidTargetError,
    TargetNotCapturableError,
    TargetNotReadyError,
)

logger = logging.getLogger(__name__)


def format_user_friendly_error(
    error: Exception,
    context: str = "general",
    technical_details: Optional[str] = None
) -> Dict:
    """
    Convert technical error to user-friendly message.

    Args:
        error: The exception that occurred
        context: Pipeline stage where error occurred (e.g., "measure", "composite")
        technical_details: Additional technical information

    Returns:
        Dictionary with user-friendly error information:
        {
            "message": str,          # User-friendly message
            "suggestion": str,       # Actionable suggestion
            "technical": str,        # Technical details
            "severity": str,         # "critical", "error", "warning"
            "can_retry": bool        # Whether retry might help
        }
    """
    error_str = str(error)

    for pattern, friendly_error in ERROR_MAPPINGS.items():
        if pattern.lower() in error_str.lower():
            result = friendly_error.copy()
            result["technical"] = technical_details or error_str
            logger.debug(f"Mapped error to user-friendly: {result['message']}")
            return result

    return {
        "message": "An unexpected error occurred while capturing the screenshot",
        "suggestion": "Check the technical logs or try again",
        "technical": technical_details or error_str,
        "severity": "error",
        "can_retry": True
    }


# Error mappings: pattern -> user-friendly info (first match wins)
ERROR_MAPPINGS = {
    # Request validation
    "invalid format": {
        "message": "Unsupported image format",
        "suggestion": "Use 'png' or 'jpeg'",
        "severity": "warning",
        "can_retry": False
    },
    "invalid quality": {
        "message": "Image quality is out of range",
        "suggestion": "Pass an integer between 0 and 100",
        "severity": "warning",
        "can_retry": False
    },
    "target id": {
        "message": "The request does not name a valid target",
        "suggestion": "Pass the id of an open tab or page",
        "severity": "warning",
        "can_retry": False
    },

    # Target state
    "not found or is not accessible": {
        "message": "The target page is not open",
        "suggestion": "It may have been closed; reopen it and try again",
        "severity": "error",
        "can_retry": False
    },
    "system pages": {
        "message": "Browser system pages cannot be captured",
        "suggestion": "Navigate to a regular web page first",
        "severity": "warning",
        "can_retry": False
    },
    "not ready": {
        "message": "The page has not finished loading",
        "suggestion": "Wait for the page to load and try again",
        "severity": "warning",
        "can_retry": True
    },

    # Total failure (checked before the generic timeout pattern)
    "both full page and fallback": {
        "message": "No screenshot could be taken",
        "suggestion": "Make sure the page is visible and responsive, then try again",
        "severity": "critical",
        "can_retry": True
    },

    # Capture
    "timed out": {
        "message": "The browser took too long to return a screenshot",
        "suggestion": "The page may be busy; try again",
        "severity": "warning",
        "can_retry": True
    },
    "permission denied": {
        "message": "Not allowed to capture this page",
        "suggestion": "Check the browser's screenshot permissions for this page",
        "severity": "error",
        "can_retry": False
    },
    "corrupted": {
        "message": "The browser returned an unusable image",
        "suggestion": "Try again",
        "severity": "error",
        "can_retry": True
    },
    "target closed": {
        "message": "The browser was closed during the capture",
        "suggestion": "Reopen the page and run the capture again",
        "severity": "error",
        "can_retry": True
    },

    # Pipeline stages
    "composite": {
        "message": "Screenshot segments could not be combined",
        "suggestion": "A partial screenshot was returned; try again for the full page",
        "severity": "warning",
        "can_retry": True
    },
    "scroll": {
        "message": "The page could not be scrolled",
        "suggestion": "The page may block scrolling; a viewport screenshot is still possible",
        "severity": "warning",
        "can_retry": True
    },
    "measure": {
        "message": "The page size could not be determined",
        "suggestion": "Wait for the page to load and try again",
        "severity": "error",
        "can_retry": True
    },
}


def get_error_category(error: Exception) -> str:
    """
    Categorize error type.

    Returns:
        Category name: "request", "target", "timeout", "image", "browser", "unknown"
    """
    error_str = str(error).lower()

    if any(k in error_str for k in ["invalid format", "invalid quality", "target id"]):
        return "request"
    elif any(k in error_str for k in ["not found", "system pages", "not ready"]):
        return "target"
    elif any(k in error_str for k in ["timeout", "timed out"]):
        return "timeout"
    elif any(k in error_str for k in ["image", "composite", "corrupted"]):
        return "image"
    elif any(k in error_str for k in ["browser", "scroll", "measure", "permission"]):
        return "browser"
    else:
        return "unknown"


def should_retry_error(error: Exception) -> bool:
    """
    Determine if repeating the same request might succeed.

    Rejected requests and uncapturable targets never change on their own;
    a loading document does. Everything else follows the message mapping.
    """
    if isinstance(error, (InvalidRequestError, InvalidTargetError, TargetNotCapturableError)):
        return False
    if isinstance(error, (TargetNotReadyError, CaptureTimeoutError)):
        return True
    friendly = format_user_friendly_error(error)
    return friendly.get("can_retry", False)


def format_error_for_logging(error: Exception, context: str = "") -> str:
    """
    Format error for structured logging.

    Args:
        error: The exception
        context: Additional context

    Returns:
        Formatted error string for logs
    """
    friendly = format_user_friendly_error(error, context)

    lines = [
        f"❌ {friendly['message']}",
        f"💡 {friendly['suggestion']}",
        f"🔧 Technical: {friendly['technical']}"
    ]

    if context:
        lines.insert(0, f"📍 Context: {context}")

    return "\n".join(lines)


def create_error_response(
    error: Exception,
    context: str = "",
    include_stacktrace: bool = False
) -> Dict:
    """
    Create standardized error response for the command layer.

    Args:
        error: The exception
        context: Where the error occurred
        include_stacktrace: Whether to include full stacktrace

    Returns:
        Standardized error response dictionary
    """
    import traceback

    friendly = format_user_friendly_error(error, context)

    response = {
        "success": False,
        "resource": "screenshot",
        "error": {
            "message": friendly["message"],
            "suggestion": friendly["suggestion"],
            "severity": friendly["severity"],
            "can_retry": should_retry_error(error),
            "category": get_error_category(error),
            "stage": getattr(error, "stage", context or "unknown"),
            "detail": str(error),
        }
    }

    if include_stacktrace:
        response["error"]["stacktrace"] = traceback.format_exc()
        response["error"]["technical_details"] = friendly["technical"]

    return response
