"""
Helper Utilities Module
Common utility functions used across the application.
"""

import random
import string
import threading
import time
import uuid
from datetime import datetime
from typing import Any, List, Optional

import pytz
from dateutil import parser as date_parser


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, matching the database columns."""
    return datetime.now(pytz.UTC).replace(tzinfo=None)


def utcnow_iso() -> str:
    """Current UTC time as an ISO 8601 string with offset."""
    return datetime.now(pytz.UTC).isoformat()


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO 8601 timestamp string.

    Args:
        value: Timestamp string

    Returns:
        datetime object or None if parsing fails
    """
    if not value:
        return None

    try:
        return date_parser.parse(value)
    except (ValueError, TypeError, OverflowError):
        return None


def new_id(prefix: str) -> str:
    """Generate a prefixed random identifier, e.g. ``tbl_3f2a...``."""
    return f"{prefix}_{uuid.uuid4().hex}"


def random_suffix(length: int = 6) -> str:
    """Short lowercase alphanumeric suffix."""
    alphabet = string.ascii_lowercase + string.digits
    return ''.join(random.choice(alphabet) for _ in range(length))


_clock_lock = threading.Lock()
_last_millis = 0


def monotonic_millis() -> int:
    """Wall clock milliseconds that never go backwards within this process."""
    global _last_millis
    with _clock_lock:
        now = int(time.time() * 1000)
        if now <= _last_millis:
            now = _last_millis + 1
        _last_millis = now
        return now


def chunk_list(lst: List[Any], chunk_size: int) -> List[List[Any]]:
    """
    Split a list into chunks of specified size.

    Args:
        lst: List to chunk
        chunk_size: Size of each chunk

    Returns:
        List of chunks
    """
    return [lst[i:i + chunk_size] for i in range(0, len(lst), chunk_size)]


def sanitize_string(text: Optional[str], max_length: int = None) -> Optional[str]:
    """
    Sanitize string for database storage.

    Args:
        text: Text to sanitize
        max_length: Maximum length (truncate if exceeded)

    Returns:
        Sanitized string
    """
    if text is None:
        return None

    text = text.replace('\x00', '')

    if max_length and len(text) > max_length:
        text = text[:max_length - 3] + '...'

    return text


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO format a datetime, passing None through."""
    return value.isoformat() if value else None
