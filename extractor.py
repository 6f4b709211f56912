#!/usr/bin/env python3
"""
Field extraction for single feed items.

Pulls title, link, description, publish date text, audio enclosure and
duration out of one RSS <item> element or one JSON API item. Extraction never
fails: missing fields come back as "" or None.

Audio URL resolution for RSS items, first match wins:
  1. <enclosure> whose type mentions audio
  2. media:content (also inside media:group) typed or marked as audio
  3. any <enclosure> whose URL ends in a known audio extension
  4. an audio link embedded in the description/content text
"""

from math import isfinite
from typing import Any, Iterator, List, Optional, Tuple
from urllib.parse import urlparse
import re
import xml.etree.ElementTree as ET

from bs4 import BeautifulSoup

from config import get_logger
from models import RawFields
from utils import clean_text, parse_duration_text, parse_length, parse_seconds_attribute

logger = get_logger("extractor")

ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"
CONTENT_NS = "http://purl.org/rss/1.0/modules/content/"
DC_NS = "http://purl.org/dc/elements/1.1/"
MEDIA_NS_PREFIX = "http://search.yahoo.com/mrss"

AUDIO_EXTENSIONS = {
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".wav": "audio/wav",
}
DEFAULT_AUDIO_TYPE = "audio/mpeg"

_AUDIO_URL_RE = re.compile(
    r'https?://[^\s"\'<>]+?\.(?:mp3|m4a|wav)(?:\?[^\s"\'<>]*)?(?=[\s"\'<>]|$)',
    re.IGNORECASE,
)


def _split_tag(tag: Any) -> Tuple[str, str]:
    """Return (namespace, local name) for an ElementTree tag."""
    if not isinstance(tag, str):
        return "", ""
    if tag.startswith('{'):
        ns, _, local = tag[1:].partition('}')
        return ns, local
    return "", tag


def _is_media(element: ET.Element, local_name: str) -> bool:
    ns, local = _split_tag(element.tag)
    return local == local_name and ns.startswith(MEDIA_NS_PREFIX)


def _element_text(element: Optional[ET.Element]) -> str:
    if element is None:
        return ""
    return "".join(element.itertext())


def _child_text(item: ET.Element, tag: str) -> str:
    return _element_text(item.find(tag))


def has_audio_extension(url: Optional[str]) -> bool:
    if not url:
        return False
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return False
    return path.endswith(tuple(AUDIO_EXTENSIONS))


def guess_audio_type(url: str) -> str:
    try:
        path = urlparse(url).path.lower()
    except ValueError:
        return DEFAULT_AUDIO_TYPE
    for extension, mime_type in AUDIO_EXTENSIONS.items():
        if path.endswith(extension):
            return mime_type
    return DEFAULT_AUDIO_TYPE


def _media_contents(item: ET.Element) -> Iterator[ET.Element]:
    for element in item.iter():
        if _is_media(element, 'content'):
            yield element


def _is_audio_media(element: ET.Element) -> bool:
    media_type = (element.get('type') or '').lower()
    medium = (element.get('medium') or '').lower()
    return 'audio' in media_type or medium == 'audio'


def _free_text_fields(item: ET.Element) -> List[str]:
    texts = [
        _child_text(item, 'description'),
        _child_text(item, f'{{{CONTENT_NS}}}encoded'),
        _child_text(item, f'{{{ITUNES_NS}}}summary'),
    ]
    return [text for text in texts if text]


def find_audio_url_in_text(text: str) -> Optional[str]:
    """Find an audio URL embedded in free text or HTML.

    Links and <audio>/<source> elements are checked first, then a plain-text
    pattern match over the whole text.
    """
    if not text:
        return None
    if '<' in text:
        soup = BeautifulSoup(text, 'html.parser')
        for tag in soup.find_all(['a', 'audio', 'source']):
            for attr in ('href', 'src'):
                value = tag.get(attr)
                if isinstance(value, str):
                    value = value.strip()
                    if value.startswith(('http://', 'https://')) and has_audio_extension(value):
                        return value
    match = _AUDIO_URL_RE.search(text)
    if match:
        return match.group(0)
    return None


class _AudioMatch:
    """Audio URL resolved from an item, with whatever metadata came with it."""

    def __init__(self, url: str, mime_type: str, length: Optional[int] = None,
                 duration_ms: Optional[int] = None, strategy: str = ""):
        self.url = url
        self.mime_type = mime_type
        self.length = length
        self.duration_ms = duration_ms
        self.strategy = strategy


def _resolve_audio(item: ET.Element) -> Optional[_AudioMatch]:
    enclosures = item.findall('enclosure')

    for enclosure in enclosures:
        url = (enclosure.get('url') or '').strip()
        enclosure_type = (enclosure.get('type') or '').strip()
        if url and 'audio' in enclosure_type.lower():
            return _AudioMatch(url, enclosure_type, parse_length(enclosure.get('length')), strategy="enclosure")

    for media in _media_contents(item):
        url = (media.get('url') or '').strip()
        if url and _is_audio_media(media):
            media_type = (media.get('type') or '').strip()
            if 'audio' not in media_type.lower():
                media_type = guess_audio_type(url)
            return _AudioMatch(
                url,
                media_type,
                parse_length(media.get('fileSize')),
                parse_seconds_attribute(media.get('duration')),
                strategy="media:content",
            )

    for enclosure in enclosures:
        url = (enclosure.get('url') or '').strip()
        if has_audio_extension(url):
            enclosure_type = (enclosure.get('type') or '').strip() or guess_audio_type(url)
            return _AudioMatch(url, enclosure_type, parse_length(enclosure.get('length')), strategy="enclosure-extension")

    for text in _free_text_fields(item):
        url = find_audio_url_in_text(text)
        if url:
            return _AudioMatch(url, guess_audio_type(url), strategy="text-scan")

    return None


def _resolve_xml_duration(item: ET.Element, audio: Optional[_AudioMatch]) -> Optional[int]:
    if audio and audio.duration_ms is not None:
        return audio.duration_ms
    for media in _media_contents(item):
        duration_ms = parse_seconds_attribute(media.get('duration'))
        if duration_ms is not None:
            return duration_ms
    duration_element = item.find(f'{{{ITUNES_NS}}}duration')
    if duration_element is None:
        duration_element = item.find('duration')
    if duration_element is not None:
        return parse_duration_text(_element_text(duration_element))
    return None


def extract_from_xml_item(item: ET.Element) -> RawFields:
    """Extract RawFields from an RSS <item> element."""
    description = (
        _child_text(item, 'description')
        or _child_text(item, f'{{{CONTENT_NS}}}encoded')
        or _child_text(item, f'{{{ITUNES_NS}}}summary')
    )
    pub_date_text = _child_text(item, 'pubDate') or _child_text(item, f'{{{DC_NS}}}date')

    audio = _resolve_audio(item)
    if audio:
        logger.debug(f"Resolved audio via {audio.strategy}: {audio.url}")

    return RawFields(
        title=clean_text(_child_text(item, 'title')),
        link=_child_text(item, 'link').strip(),
        description=clean_text(description),
        pub_date_text=pub_date_text.strip(),
        enclosure_url=audio.url if audio else None,
        enclosure_type=audio.mime_type if audio else "",
        enclosure_length=audio.length if audio else None,
        duration_ms=_resolve_xml_duration(item, audio),
    )


def _json_str(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        return ""
    return str(value)


def _json_duration(item: dict) -> Optional[int]:
    duration = item.get('duration')
    candidates = [
        duration.get('totalMilliseconds') if isinstance(duration, dict) else None,
        item.get('durationMilliseconds'),
    ]
    for candidate in candidates:
        if isinstance(candidate, bool) or candidate is None:
            continue
        try:
            number = float(candidate)
            if not isfinite(number):
                continue
            value = int(number)
        except (TypeError, ValueError, OverflowError):
            continue
        if value >= 0:
            return value
    return None


def _json_audio_asset(item: dict) -> Optional[dict]:
    assets = item.get('assets')
    if not isinstance(assets, list):
        return None
    for asset in assets:
        if isinstance(asset, dict) and asset.get('kind') == 'Audio':
            return asset
    return None


def extract_from_json_item(item: Any) -> RawFields:
    """Extract RawFields from one element of a JSON feed's ``items`` list."""
    if not isinstance(item, dict):
        return RawFields()

    asset = _json_audio_asset(item)
    url = _json_str(asset.get('url')).strip() if asset else ""
    enclosure_type = ""
    if url:
        declared = _json_str(asset.get('mimeType') or asset.get('contentType')).strip()
        if declared:
            enclosure_type = declared
        else:
            audio_format = _json_str(asset.get('format')).strip().lower()
            enclosure_type = AUDIO_EXTENSIONS.get(f".{audio_format}", guess_audio_type(url))

    return RawFields(
        title=clean_text(_json_str(item.get('title'))),
        link=_json_str(item.get('link') or item.get('url')).strip(),
        description=clean_text(_json_str(item.get('description'))),
        pub_date_text=_json_str(item.get('publishTime') or item.get('pubDate') or item.get('published')).strip(),
        enclosure_url=url or None,
        enclosure_type=enclosure_type,
        enclosure_length=parse_length(asset.get('fileSize')) if url else None,
        duration_ms=_json_duration(item),
    )


__all__ = [
    "extract_from_xml_item",
    "extract_from_json_item",
    "find_audio_url_in_text",
    "has_audio_extension",
    "guess_audio_type",
]
