#!/usr/bin/env python3
"""
Combined feed publisher.

Renders the aggregated episode list as an RSS 2.0 podcast feed (feedgen, with
the podcast extension for itunes:duration) and as an HTML listing with an audio
player per episode (Jinja2). Also renders the fallback error feed served when
the feeds configuration cannot be loaded.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from feedgen.feed import FeedGenerator
from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import Config, get_logger
from models import Episode
from played import PLAYED_MARKER, PlayedHistory, episode_key
from telemetry import trace_span
from utils import format_duration

logger = get_logger("publisher")

FEED_PATH = "/combined-feed.xml"


class CombinedFeedPublisher:
    """Renders episodes into the combined RSS document and the HTML listing."""

    def __init__(self, settings: Config):
        self.settings = settings
        self.base_url = settings.SITE_URL.rstrip('/')
        self.env = Environment(
            loader=FileSystemLoader(settings.TEMPLATES_PATH),
            autoescape=select_autoescape(['html', 'xml']),
        )

    def _sanitize_xml_string(self, text: Optional[str]) -> str:
        """Sanitize a string for XML output by removing control characters and NULL bytes."""
        if not text:
            return ''
        if isinstance(text, bytes):
            text = text.decode('utf-8', errors='ignore')
        # Remove control characters (0x00-0x1F) except tab (0x09), newline (0x0A), carriage return (0x0D)
        return ''.join(
            char for char in text
            if char in ('\t', '\n', '\r') or (ord(char) >= 32 and ord(char) != 0x7F)
        )

    def _new_feed(self, title: str, description: str, feed_url: str) -> FeedGenerator:
        fg = FeedGenerator()
        fg.load_extension('podcast')
        fg.id(self._sanitize_xml_string(feed_url))
        fg.title(self._sanitize_xml_string(title))
        fg.link(href=self._sanitize_xml_string(feed_url), rel='alternate')
        fg.description(self._sanitize_xml_string(description) or ' ')
        fg.language(self.settings.LANGUAGE)
        fg.generator('GlobalRadioNews Combined Feed')
        fg.lastBuildDate(datetime.now(timezone.utc))
        return fg

    def _add_episode(self, fg: FeedGenerator, episode: Episode) -> None:
        fe = fg.add_entry(order='append')
        title = self._sanitize_xml_string(episode.title) or episode.audio_url
        fe.title(title)
        link = self._sanitize_xml_string(episode.link).strip()
        if link:
            fe.link(href=link)
        description = self._sanitize_xml_string(episode.description)
        if description:
            fe.description(description)
        if episode.published_at.known:
            fe.pubDate(episode.published_at.value)
        audio_url = self._sanitize_xml_string(episode.audio_url)
        length = episode.enclosure.length_bytes
        fe.enclosure(audio_url, str(length if length is not None else 0), episode.enclosure.mime_type)
        fe.guid(audio_url, permalink=False)
        if episode.duration_ms:
            fe.podcast.itunes_duration(format_duration(episode.duration_ms))

    @trace_span(
        "publisher.render_rss",
        tracer_name="publisher",
        attr_from_args=lambda self, episodes, feed_url=None: {"feed.episodes": len(episodes)},
    )
    def render_rss(self, episodes: List[Episode], feed_url: Optional[str] = None) -> str:
        """Render the combined RSS document, one item per episode in the given order.

        An empty episode list still yields a complete channel without items.
        """
        feed_url = feed_url or f"{self.base_url}{FEED_PATH}"
        fg = self._new_feed(
            f"{self.settings.TITLE} - Latest Episodes",
            self.settings.DESCRIPTION,
            feed_url,
        )
        for episode in episodes:
            try:
                self._add_episode(fg, episode)
            except ValueError as e:
                logger.warning(f"Skipping episode from {episode.source_label} in combined feed: {e}")
        logger.info(f"Rendered combined feed with {len(episodes)} episodes")
        return fg.rss_str(pretty=True).decode('utf-8')

    def render_error_feed(self, message: str = "", feed_url: Optional[str] = None) -> str:
        """Render the channel-only feed served when configuration cannot be loaded."""
        feed_url = feed_url or f"{self.base_url}{FEED_PATH}"
        description = "Configuration file error. Please check the feeds configuration file."
        if message:
            logger.error(f"Serving error feed: {message}")
        fg = self._new_feed(f"{self.settings.TITLE} - Configuration Error", description, feed_url)
        return fg.rss_str(pretty=True).decode('utf-8')

    def episode_rows(self, episodes: Iterable[Episode], history: Optional[PlayedHistory] = None) -> List[Dict[str, Any]]:
        """Display rows for listings: played marker, date and duration resolved."""
        played_keys = history.keys() if history else set()
        rows = []
        for episode in episodes:
            key = episode_key(episode)
            played = key in played_keys
            title = episode.raw_title or 'Untitled'
            rows.append({
                "key": key,
                "label": episode.source_label,
                "title": f"{PLAYED_MARKER}{title}" if played else title,
                "feed_title": episode.title,
                "link": episode.link,
                "description": episode.description,
                "date": episode.published_at.display(),
                "duration": format_duration(episode.duration_ms),
                "audio_url": episode.audio_url,
                "mime_type": episode.enclosure.mime_type,
                "played": played,
            })
        return rows

    @trace_span("publisher.render_html", tracer_name="publisher")
    def render_html(self, episodes: List[Episode], history: Optional[PlayedHistory] = None) -> str:
        """Render the HTML listing of the combined feed."""
        rows = self.episode_rows(episodes, history)
        template = self.env.get_template('episodes.html')
        return template.render(
            title=self.settings.TITLE,
            description=self.settings.DESCRIPTION,
            feed_url=FEED_PATH,
            episodes=rows,
            played_count=sum(1 for row in rows if row["played"]),
            load_error=self.settings.load_error,
            generated_at=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M UTC"),
        )


__all__ = ["CombinedFeedPublisher", "FEED_PATH"]
