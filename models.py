#!/usr/bin/env python3
"""
Value types for the combined episode feed.

Episodes are created fresh on every aggregation pass and never mutated;
feed sources come from configuration and are read-only to the normalization
pipeline.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

UNKNOWN_DATE_DISPLAY = "--"


class FeedFormat(str, Enum):
    """Format a feed source declares in configuration."""
    XML = "xml"
    JSON = "json"
    AUTO = "auto"

    @classmethod
    def from_config(cls, value: Optional[str]) -> "FeedFormat":
        """Map configuration values ("rss", "xml", "json", ...) to a FeedFormat."""
        normalized = (value or "").strip().lower()
        if normalized in ("rss", "xml", "atom"):
            return cls.XML
        if normalized == "json":
            return cls.JSON
        return cls.AUTO


class TitleStyle(str, Enum):
    """How the provenance label is composed into episode titles."""
    PREFIXED = "prefixed"
    BARE = "bare"


@dataclass(frozen=True)
class FeedSource:
    """One upstream feed, identified by its label (usually a country)."""

    label: str
    url: str
    declared_format: FeedFormat = FeedFormat.AUTO
    requires_proxy: bool = False
    feed_id: str = ""
    name: str = ""

    def __post_init__(self):
        if not self.label or not self.label.strip():
            raise ValueError("Feed source label must not be empty")
        if not self.url or not self.url.strip():
            raise ValueError(f"Feed source '{self.label}' has no url")


@dataclass(frozen=True)
class PublishDate:
    """A publish timestamp that may be unknown.

    ``value`` is None when the feed's date text could not be parsed; ``raw``
    keeps the original text for display and diagnostics.
    """

    value: Optional[datetime] = None
    raw: str = ""

    @property
    def known(self) -> bool:
        return self.value is not None

    def sort_key(self) -> tuple:
        """Key for descending sorts where unknown dates end up last."""
        if self.value is None:
            return (0, 0.0)
        return (1, self.value.timestamp())

    def display(self) -> str:
        """Date as shown next to an episode (YYYY-MM-DD, or -- when unknown)."""
        if self.value is None:
            return UNKNOWN_DATE_DISPLAY
        return self.value.astimezone(timezone.utc).strftime("%Y-%m-%d")


@dataclass(frozen=True)
class Enclosure:
    url: str
    mime_type: str = "audio/mpeg"
    length_bytes: Optional[int] = None


@dataclass(frozen=True)
class RawFields:
    """Fields pulled out of a single feed item before an Episode is built.

    Strings default to "" and optional values to None; extraction never fails,
    absence is represented.
    """

    title: str = ""
    link: str = ""
    description: str = ""
    pub_date_text: str = ""
    enclosure_url: Optional[str] = None
    enclosure_type: str = ""
    enclosure_length: Optional[int] = None
    duration_ms: Optional[int] = None


@dataclass(frozen=True)
class Episode:
    """The latest playable episode of one feed source."""

    source_label: str
    title: str
    raw_title: str
    link: str
    description: str
    published_at: PublishDate
    enclosure: Enclosure
    duration_ms: Optional[int] = None

    @property
    def prefixed_title(self) -> str:
        return format_prefixed_title(self.source_label, self.raw_title)

    @property
    def audio_url(self) -> str:
        return self.enclosure.url


def format_prefixed_title(label: str, title: str) -> str:
    """Compose the "[<label>] <title>" form used by the combined feed."""
    return f"[{label}] {title}"


__all__ = [
    "FeedFormat",
    "TitleStyle",
    "FeedSource",
    "PublishDate",
    "Enclosure",
    "RawFields",
    "Episode",
    "format_prefixed_title",
    "UNKNOWN_DATE_DISPLAY",
]
