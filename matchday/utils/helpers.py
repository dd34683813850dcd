"""
Utility helper functions for safe data handling.
"""
from datetime import datetime, timezone
from typing import Any, Optional


def safe_strip(value: Any) -> str:
    """
    Safely strip whitespace from a value, handling None.

    Args:
        value: Any value to strip

    Returns:
        Stripped string or empty string if None
    """
    if value is None:
        return ""
    return str(value).strip()


def safe_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """
    Safely convert value to int, handling None and invalid values.

    Args:
        value: Any value to convert
        default: Returned when conversion fails

    Returns:
        Integer or default
    """
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def utc_now() -> datetime:
    """
    Current UTC time as a naive datetime.

    The store keeps naive UTC values, and event documents append "Z".
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)
