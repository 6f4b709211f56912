#!/usr/bin/env python3
"""
Episode normalization.

Turns the raw body of one feed source into the canonical Episode for that
source's latest entry, or into a NormalizationFailure explaining why the
source produced nothing. This is the boundary of the normalization pipeline:
parser errors never propagate past ``normalize``.
"""

from typing import Optional, Union
import xml.etree.ElementTree as ET

from config import get_logger
from detector import JsonFeed, UnknownFeed, XmlFeed, sniff
from errors import FailureReason, NormalizationFailure
from extractor import extract_from_json_item, extract_from_xml_item
from models import Enclosure, Episode, FeedFormat, FeedSource, RawFields, TitleStyle, format_prefixed_title
from utils import parse_feed_date

logger = get_logger("normalizer")

NormalizationResult = Union[Episode, NormalizationFailure]

DEFAULT_ENCLOSURE_TYPE = "audio/mpeg"


def _xml_item_is_empty(item: ET.Element) -> bool:
    return len(item) == 0 and not item.attrib and not (item.text or "").strip()


def _raw_fields_for(detected) -> Union[RawFields, str]:
    """Extract fields from the latest item of a detected feed.

    Returns a detail string instead of RawFields when the item is malformed.
    """
    if isinstance(detected, XmlFeed):
        item = detected.items[0]
        if _xml_item_is_empty(item):
            return "first <item> has no content"
        return extract_from_xml_item(item)
    if isinstance(detected, JsonFeed):
        if not detected.items:
            return "items list is empty"
        item = detected.items[0]
        if not isinstance(item, dict):
            return f"first item is a {type(item).__name__}, not an object"
        if not item:
            return "first item is an empty object"
        return extract_from_json_item(item)
    raise TypeError(f"Unsupported feed variant: {type(detected).__name__}")


def _build_episode(source_label: str, fields: RawFields, title_style: TitleStyle) -> Episode:
    title = fields.title
    if title_style == TitleStyle.PREFIXED:
        title = format_prefixed_title(source_label, fields.title)
    return Episode(
        source_label=source_label,
        title=title,
        raw_title=fields.title,
        link=fields.link,
        description=fields.description,
        published_at=parse_feed_date(fields.pub_date_text),
        enclosure=Enclosure(
            url=fields.enclosure_url,
            mime_type=fields.enclosure_type or DEFAULT_ENCLOSURE_TYPE,
            length_bytes=fields.enclosure_length,
        ),
        duration_ms=fields.duration_ms,
    )


def normalize(
    source_label: str,
    raw: Union[str, bytes, None],
    *,
    hint: Optional[str] = None,
    title_style: TitleStyle = TitleStyle.PREFIXED,
) -> NormalizationResult:
    """Normalize one source's feed body into its latest Episode.

    Args:
        source_label: Label of the originating feed source.
        raw: Feed body as fetched.
        hint: Optional declared format, content type or URL for detection.
        title_style: PREFIXED gives "[<label>] <title>", BARE keeps the title.

    Returns:
        An Episode, or a NormalizationFailure tagged UnrecognizedFormat,
        NoAudioFound or MalformedItem. An empty label is a MalformedItem.
    """
    if not source_label or not str(source_label).strip():
        return NormalizationFailure(str(source_label or ""), FailureReason.MALFORMED_ITEM, "empty source label")

    try:
        detected = sniff(raw, hint)
        if isinstance(detected, UnknownFeed):
            return NormalizationFailure(source_label, FailureReason.UNRECOGNIZED_FORMAT, detected.detail)

        fields = _raw_fields_for(detected)
        if isinstance(fields, str):
            return NormalizationFailure(source_label, FailureReason.MALFORMED_ITEM, fields)
        if not fields.enclosure_url:
            return NormalizationFailure(source_label, FailureReason.NO_AUDIO_FOUND, fields.title)

        return _build_episode(source_label, fields, title_style)
    except Exception as e:
        logger.exception(f"Unexpected error normalizing feed for {source_label}: {e}")
        return NormalizationFailure(source_label, FailureReason.MALFORMED_ITEM, str(e))


def _hint_for(source: FeedSource, content_type: Optional[str]) -> Optional[str]:
    if source.declared_format != FeedFormat.AUTO:
        return source.declared_format.value
    return content_type or source.url


def normalize_source(
    source: FeedSource,
    raw: Union[str, bytes, None],
    content_type: Optional[str] = None,
    title_style: TitleStyle = TitleStyle.PREFIXED,
) -> NormalizationResult:
    """Normalize a fetched body for a configured FeedSource.

    The declared format wins as detection hint; for "auto" sources the
    observed content type (or the URL) is used instead.
    """
    return normalize(
        source.label,
        raw,
        hint=_hint_for(source, content_type),
        title_style=title_style,
    )


__all__ = ["normalize", "normalize_source", "NormalizationResult"]
