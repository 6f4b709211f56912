#!/usr/bin/env python3
"""
Feed format detection.

Classifies raw feed bodies as RSS XML, the JSON "items" API shape, or unknown.
Detection is structural: the body must parse and have the expected shape.
A hint (declared format, content type or URL) only changes which parse is
attempted first.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union
import json
import re
import xml.etree.ElementTree as ET

from defusedxml import DefusedXmlException
from defusedxml.ElementTree import ParseError, fromstring as safe_fromstring

from config import get_logger

logger = get_logger("detector")

_XML_DECL_ENCODING_RE = re.compile(r'^(<\?xml[^>]*?)\s+encoding\s*=\s*["\'][^"\']*["\']')


class Format(str, Enum):
    XML = "xml"
    JSON = "json"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class XmlFeed:
    """An RSS document: the <channel> element and its <item> children in feed order."""
    channel: ET.Element
    items: List[ET.Element]
    format: Format = field(default=Format.XML, init=False)


@dataclass(frozen=True)
class JsonFeed:
    """A JSON document whose top-level object carries an ``items`` list."""
    document: Dict[str, Any]
    items: List[Any]
    format: Format = field(default=Format.JSON, init=False)


@dataclass(frozen=True)
class UnknownFeed:
    """Neither shape matched; ``detail`` says why for logging."""
    detail: str = ""
    format: Format = field(default=Format.UNKNOWN, init=False)


DetectedFeed = Union[XmlFeed, JsonFeed, UnknownFeed]


def _to_text(raw: Union[str, bytes, None]) -> str:
    if raw is None:
        return ""
    if isinstance(raw, bytes):
        return raw.decode('utf-8', errors='replace')
    return str(raw)


def _xml_payload(raw: Union[str, bytes]) -> bytes:
    """Prepare a body for ElementTree.

    Bytes keep their declared encoding. Text has already been decoded, so its
    declaration's encoding is dropped and the text re-encoded as UTF-8.
    """
    if isinstance(raw, bytes):
        return raw.lstrip(b'\xef\xbb\xbf \t\r\n')
    text = raw.lstrip('\ufeff \t\r\n')
    text = _XML_DECL_ENCODING_RE.sub(r'\1', text, count=1)
    return text.encode('utf-8')


def _try_xml(raw: Union[str, bytes]) -> DetectedFeed:
    try:
        root = safe_fromstring(_xml_payload(raw))
    except ParseError as e:
        return UnknownFeed(f"XML parse error: {e}")
    except DefusedXmlException as e:
        return UnknownFeed(f"XML entity declarations are not accepted: {e!r}")
    if root.tag != 'rss':
        return UnknownFeed(f"XML root is <{root.tag}>, not <rss>")
    channel = root.find('channel')
    if channel is None:
        return UnknownFeed("RSS document has no <channel>")
    items = channel.findall('item')
    if not items:
        return UnknownFeed("RSS channel has no <item>")
    return XmlFeed(channel=channel, items=items)


def _try_json(raw: Union[str, bytes]) -> DetectedFeed:
    text = _to_text(raw).lstrip('\ufeff')
    try:
        document = json.loads(text)
    except (json.JSONDecodeError, ValueError) as e:
        return UnknownFeed(f"JSON parse error: {e}")
    if not isinstance(document, dict):
        return UnknownFeed("JSON document is not an object")
    items = document.get('items')
    if not isinstance(items, list):
        return UnknownFeed("JSON document has no items list")
    return JsonFeed(document=document, items=items)


def _hint_prefers_json(hint: Optional[str]) -> bool:
    if not hint:
        return False
    lowered = str(hint).strip().lower()
    return 'json' in lowered


def sniff(raw: Union[str, bytes, None], hint: Optional[str] = None) -> DetectedFeed:
    """Parse a feed body once and return the matching tagged variant.

    Args:
        raw: Feed body as text or bytes.
        hint: Optional declared format, content type or URL; a JSON hint makes
              the JSON parse run first.

    Never raises: malformed input of either shape yields UnknownFeed.
    """
    if raw is None or not _to_text(raw).strip():
        return UnknownFeed("empty body")

    attempts = (_try_json, _try_xml) if _hint_prefers_json(hint) else (_try_xml, _try_json)
    details = []
    for attempt in attempts:
        try:
            detected = attempt(raw)
        except (ValueError, TypeError, RecursionError) as e:
            detected = UnknownFeed(f"{attempt.__name__}: {e}")
        if not isinstance(detected, UnknownFeed):
            return detected
        details.append(detected.detail)
    logger.debug(f"Unrecognized feed body: {details}")
    return UnknownFeed("; ".join(details))


def detect(raw: Union[str, bytes, None], hint: Optional[str] = None) -> Format:
    """Classify a feed body as Format.XML, Format.JSON or Format.UNKNOWN."""
    return sniff(raw, hint).format


__all__ = ["Format", "XmlFeed", "JsonFeed", "UnknownFeed", "DetectedFeed", "sniff", "detect"]
