#!/usr/bin/env python3
"""
Utility functions shared by the normalization pipeline and its collaborators.

Includes text cleaning, feed date parsing, duration parsing/formatting, URL
validation and the retry helper used by the fetcher.
"""

from asyncio import sleep
from calendar import timegm
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from math import isfinite
from typing import Optional
import re
from urllib.parse import urlparse

from feedparser.datetimes import _parse_date as feedparser_parse_date

from config import get_logger
from models import PublishDate

logger = get_logger("utils")

_TAG_RE = re.compile(r'<[^>]*>')

# Minimal entity set; &amp; is decoded last so "&amp;lt;" becomes "&lt;"
_ENTITIES = (("&lt;", "<"), ("&gt;", ">"), ("&amp;", "&"))


def clean_text(text: Optional[str]) -> str:
    """Strip markup tags, decode &lt; &gt; &amp; and trim surrounding whitespace."""
    if not text:
        return ""
    stripped = _TAG_RE.sub('', str(text))
    for entity, char in _ENTITIES:
        stripped = stripped.replace(entity, char)
    return stripped.strip()


def parse_feed_date(date_text: Optional[str]) -> PublishDate:
    """Parse an RSS (RFC 822) or ISO 8601 date into a PublishDate.

    Unparseable or missing text yields an unknown PublishDate instead of an error.
    """
    raw = (date_text or "").strip()
    if not raw:
        return PublishDate(None, "")
    parsers = (
        _parse_with_email_utils,
        _parse_with_isoformat,
        _parse_with_feedparser,
        _parse_with_custom_formats,
    )
    for parser in parsers:
        dt = parser(raw)
        if dt is not None:
            return PublishDate(dt, raw)
    logger.debug(f"Unparseable date '{raw}'")
    return PublishDate(None, raw)


def _as_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _parse_with_email_utils(date_str: str) -> Optional[datetime]:
    try:
        dt = parsedate_to_datetime(date_str)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None
    return _as_utc(dt) if dt else None


def _parse_with_isoformat(date_str: str) -> Optional[datetime]:
    value = date_str
    if value.endswith(('Z', 'z')):
        value = value[:-1] + '+00:00'
    try:
        return _as_utc(datetime.fromisoformat(value))
    except ValueError:
        return None


def _parse_with_feedparser(date_str: str) -> Optional[datetime]:
    try:
        time_struct = feedparser_parse_date(date_str)
        if time_struct:
            return datetime.fromtimestamp(timegm(time_struct), tz=timezone.utc)
    except (ValueError, TypeError, OverflowError, OSError):
        return None
    return None


def _parse_with_custom_formats(date_str: str) -> Optional[datetime]:
    custom_formats = [
        "%d %b %Y %H:%M:%S %z",
        "%d %b %Y %H:%M:%S %Z",
        "%d %b %Y %H:%M:%S",
        "%Y-%m-%d %H:%M:%S",
        "%Y-%m-%d",
    ]
    for fmt in custom_formats:
        try:
            return _as_utc(datetime.strptime(date_str, fmt))
        except ValueError:
            continue
    return None


def parse_duration_text(text: Optional[str]) -> Optional[int]:
    """Parse an iTunes-style duration (SS, MM:SS or HH:MM:SS) into milliseconds.

    Malformed text (non-numeric parts, wrong segment count) returns None.
    """
    if text is None:
        return None
    parts = str(text).strip().split(':')
    if not 1 <= len(parts) <= 3:
        return None
    if not all(part.strip().isdecimal() for part in parts):
        return None
    seconds = 0
    try:
        for part in parts:
            seconds = seconds * 60 + int(part)
    except ValueError:
        return None
    return seconds * 1000


def parse_seconds_attribute(value: Optional[str]) -> Optional[int]:
    """Parse a numeric seconds attribute (e.g. media:content duration) into milliseconds."""
    if value is None:
        return None
    try:
        seconds = float(str(value).strip())
    except ValueError:
        return None
    if not isfinite(seconds) or seconds < 0:
        return None
    return int(seconds) * 1000


def parse_length(value) -> Optional[int]:
    """Parse a byte length; anything non-numeric or negative is unknown."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    text = str(value).strip()
    if not text.isdecimal():
        return None
    try:
        return int(text)
    except ValueError:
        return None


def format_duration(milliseconds: Optional[int]) -> str:
    """Format a duration in milliseconds as H:MM:SS or M:SS ("--" when absent).

    Args:
        milliseconds: Duration in milliseconds

    Returns:
        Formatted duration string (e.g., "1:02:03", "4:05")
    """
    if not milliseconds or milliseconds <= 0:
        return "--"

    seconds = int(milliseconds // 1000)
    minutes = seconds // 60
    hours = minutes // 60

    if hours > 0:
        return f"{hours}:{minutes % 60:02d}:{seconds % 60:02d}"
    return f"{minutes}:{seconds % 60:02d}"


def validate_url(url: str) -> bool:
    """Validate if a string is a properly formatted URL.

    Args:
        url: The URL string to validate

    Returns:
        True if the URL appears to be valid, False otherwise
    """
    if not url or not isinstance(url, str):
        return False

    url = url.strip()
    if not url or any(ch.isspace() for ch in url):
        return False

    try:
        parsed = urlparse(url)
        host = parsed.hostname
    except ValueError:
        return False
    if parsed.scheme not in ('http', 'https') or not host:
        return False
    return '.' in host or host == 'localhost'


class RetryHelper:
    """Helper class for implementing retry logic with exponential backoff."""

    def __init__(self, max_retries: int = 0, base_delay: float = 0.5, max_delay: float = 10.0):
        """Initialize the retry helper.

        Args:
            max_retries: Maximum number of retry attempts
            base_delay: Base delay in seconds for exponential backoff
            max_delay: Maximum delay in seconds between retries
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay

    def calculate_delay(self, attempt: int) -> float:
        """Calculate the delay for a given retry attempt (0-based)."""
        delay = self.base_delay * (2 ** attempt)
        return min(delay, self.max_delay)

    async def sleep_for_attempt(self, attempt: int):
        """Sleep for the calculated delay for the given attempt."""
        delay = self.calculate_delay(attempt)
        if delay > 0:
            logger.debug(f"Retry delay: sleeping for {delay:.2f} seconds")
            await sleep(delay)
