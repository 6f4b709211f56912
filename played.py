#!/usr/bin/env python3
"""
Played-episode bookkeeping.

Episodes have no identity across aggregation passes, so played state is keyed
by a reversible encoding of label, title, displayed date and audio URL. The
history is a small JSON list of keys kept on local disk.
"""

from base64 import urlsafe_b64decode, urlsafe_b64encode
from typing import Iterable, List, Optional, Set, Tuple
import json
import os
import re
import tempfile

from config import get_logger
from models import Episode

logger = get_logger("played")

PLAYED_MARKER = "✓ "
KEY_SEPARATOR = "::"

_IDENTIFIER_RE = re.compile(
    r'(?P<label>.*?)::(?P<title>.*)::(?P<date>\d{4}-\d{2}-\d{2}|--)::(?P<url>.*)\Z',
    re.DOTALL,
)


def strip_played_marker(title: str) -> str:
    if title.startswith(PLAYED_MARKER):
        return title[len(PLAYED_MARKER):]
    return title


def episode_identifier(episode: Episode) -> str:
    """The "<label>::<title>::<date>::<audio url>" string behind an episode key."""
    return KEY_SEPARATOR.join((
        episode.source_label,
        strip_played_marker(episode.raw_title),
        episode.published_at.display(),
        episode.audio_url,
    ))


def episode_key(episode: Episode) -> str:
    """Deterministic, reversible played-history key for an episode."""
    encoded = urlsafe_b64encode(episode_identifier(episode).encode('utf-8')).decode('ascii')
    return encoded.rstrip('=')


def decode_episode_key(key: str) -> Tuple[str, str, str, str]:
    """Reverse episode_key into (label, title, displayed date, audio url).

    Raises:
        ValueError: If the key is not a valid episode key.
    """
    padded = key + '=' * (-len(key) % 4)
    try:
        identifier = urlsafe_b64decode(padded.encode('ascii')).decode('utf-8')
    except (UnicodeError, ValueError) as e:
        raise ValueError(f"Invalid episode key: {key}") from e
    # Titles and URLs (IPv6 hosts) may contain "::"; the date field anchors the split
    match = _IDENTIFIER_RE.match(identifier)
    if not match or not match.group('label') or not match.group('url'):
        raise ValueError(f"Invalid episode key: {key}")
    return match.group('label'), match.group('title'), match.group('date'), match.group('url')


class PlayedHistory:
    """JSON-file backed set of played episode keys."""

    def __init__(self, history_path: str):
        self.history_path = history_path
        self._keys: Optional[List[str]] = None

    def _load(self) -> List[str]:
        if self._keys is not None:
            return self._keys
        keys: List[str] = []
        if os.path.exists(self.history_path):
            try:
                with open(self.history_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                if isinstance(data, list):
                    keys = [str(k) for k in data if isinstance(k, str) and k]
                else:
                    logger.warning(f"Played history at {self.history_path} is not a list; starting empty")
            except (OSError, json.JSONDecodeError) as e:
                logger.warning(f"Error reading played history from {self.history_path}: {e}")
        self._keys = keys
        return keys

    def _save(self, keys: List[str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.history_path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix='.played-', suffix='.json', dir=directory)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(keys, f, indent=2)
            os.replace(tmp_path, self.history_path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        self._keys = keys

    def keys(self) -> Set[str]:
        return set(self._load())

    def count(self) -> int:
        return len(self._load())

    def is_played(self, episode_or_key) -> bool:
        key = episode_or_key if isinstance(episode_or_key, str) else episode_key(episode_or_key)
        return key in self._load()

    def mark_played(self, episode_or_key) -> bool:
        """Record an episode (or key) as played; returns False if it already was."""
        key = episode_or_key if isinstance(episode_or_key, str) else episode_key(episode_or_key)
        keys = list(self._load())
        if key in keys:
            return False
        keys.append(key)
        self._save(keys)
        logger.info(f"Marked episode as played ({len(keys)} in history)")
        return True

    def clear(self) -> int:
        """Forget every played episode; returns how many were cleared."""
        cleared = self.count()
        self._save([])
        logger.info(f"Cleared {cleared} played episode{'s' if cleared != 1 else ''} from history")
        return cleared

    def unplayed(self, episodes: Iterable[Episode]) -> List[Episode]:
        """Episodes not yet played, in their given order (the play-all queue)."""
        played = self.keys()
        return [episode for episode in episodes if episode_key(episode) not in played]


__all__ = [
    "PlayedHistory",
    "episode_key",
    "episode_identifier",
    "decode_episode_key",
    "strip_played_marker",
    "PLAYED_MARKER",
]
