#!/usr/bin/env python3
"""
Combined Radio News Feed Orchestrator

Runs one aggregation pass over the configured podcast feeds:
1. Fetch every source concurrently (direct, then through the feed proxy)
2. Normalize each body into that source's latest episode
3. Aggregate the episodes newest-first, dropping sources that failed
4. Render the result as RSS, an HTML listing or a console listing

Also serves the combined feed, the listing and the feed proxy over HTTP, and
manages the local played-episode history.
"""

import argparse
import asyncio
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from aiohttp import web

from aggregator import aggregate, partition_results
from config import Config, get_logger
from errors import NormalizationFailure
from fetcher import FeedFetcher
from models import Episode, FeedSource, TitleStyle
from normalizer import normalize_source
from played import PlayedHistory, decode_episode_key
from proxy import FeedProxy
from publisher import CombinedFeedPublisher, FEED_PATH
from telemetry import init_telemetry, trace_span
from utils import format_duration

logger = get_logger("orchestrator")
init_telemetry("radio-news-orchestrator")


@dataclass
class PassReport:
    """Outcome of one aggregation pass."""
    episodes: List[Episode] = field(default_factory=list)
    failures: List[NormalizationFailure] = field(default_factory=list)
    unreachable: List[FeedSource] = field(default_factory=list)


class CombinedFeedOrchestrator:
    """Wires fetching, normalization, aggregation and rendering together."""

    def __init__(self, settings: Config, title_style: TitleStyle = TitleStyle.PREFIXED) -> None:
        self.settings = settings
        self.title_style = title_style
        self.fetcher = FeedFetcher(settings)
        self.publisher = CombinedFeedPublisher(settings)
        self.history = PlayedHistory(settings.PLAYED_HISTORY_PATH)
        self.proxy = FeedProxy(settings)

    @trace_span("run_pass", tracer_name="orchestrator")
    async def run_pass(self, sources: Optional[List[FeedSource]] = None) -> PassReport:
        """Fetch, normalize and aggregate the combined feed sources."""
        sources = self.settings.feed_sources() if sources is None else sources
        fetched = await self.fetcher.fetch_all(sources)
        fetched_labels = {result.source.label for result in fetched}

        results = [
            normalize_source(result.source, result.body, result.content_type, self.title_style)
            for result in fetched
        ]
        report = PassReport(
            episodes=aggregate(results),
            failures=partition_results(results)[1],
            unreachable=[s for s in sources if s.label not in fetched_labels],
        )
        logger.info(
            f"Aggregation pass: {len(report.episodes)} episodes, "
            f"{len(report.failures)} normalization failures, {len(report.unreachable)} unreachable"
        )
        return report

    async def build_feed(self, feed_url: Optional[str] = None) -> str:
        """Render the combined RSS document, or the error feed if configuration failed."""
        if self.settings.load_error:
            return self.publisher.render_error_feed(self.settings.load_error, feed_url)
        report = await self.run_pass()
        return self.publisher.render_rss(report.episodes, feed_url)

    async def queue(self) -> List[Episode]:
        """Unplayed episodes in play order."""
        report = await self.run_pass()
        return self.history.unplayed(report.episodes)

    def check_status(self, report: Optional[PassReport] = None) -> dict:
        """Configuration summary plus the per-source outcome of a pass."""
        status = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'config': self.settings.get_config_summary(),
            'played_episodes': self.history.count(),
            'sources': {},
        }
        if report is not None:
            sources: Dict[str, str] = {}
            for episode in report.episodes:
                sources[episode.source_label] = 'ok'
            for failure in report.failures:
                sources[failure.source_label] = failure.reason.value
            for source in report.unreachable:
                sources[source.label] = 'FetchFailed'
            status['sources'] = sources
        healthy = not self.settings.load_error and bool(report is None or report.episodes)
        status['overall_status'] = 'healthy' if healthy else 'issues_detected'
        return status

    def print_status(self, status: dict):
        """Print formatted status information."""
        cfg = status['config']
        print(f"\n📊 Radio News Feed Status")
        print(f"⏰ {status['timestamp']}")
        print(f"🏥 Overall: {status['overall_status'].upper()}")
        print(f"\n⚙️  Config: {cfg['feeds_config_path']}")
        if cfg['load_error']:
            print(f"   ❌ {cfg['load_error']}")
        print(f"   📻 Feeds: {cfg['feed_count']} ({cfg['combined_source_count']} in combined feed)")
        print(f"   ⏱️  Timeout: {cfg['podcast_timeout_ms']} ms")
        print(f"   ✓ Played: {status['played_episodes']}")
        if status['sources']:
            print(f"\n📡 Sources:")
            for label, outcome in status['sources'].items():
                marker = '✅' if outcome == 'ok' else '⚠️ '
                print(f"   {marker} {label}: {outcome}")

    def print_episodes(self, episodes: List[Episode]):
        """Print episodes with date, duration and played marker."""
        if not episodes:
            print("No episodes available.")
            return
        for row in self.publisher.episode_rows(episodes, self.history):
            print(f"{row['date']:>10}  {row['duration']:>8}  [{row['label']}] {row['title']}")
            print(f"{'':>20}  {row['audio_url']}")
            print(f"{'':>20}  key: {row['key']}")

    # HTTP handlers

    async def handle_feed(self, request: web.Request) -> web.Response:
        xml = await self.build_feed(str(request.url))
        return web.Response(
            text=xml,
            content_type='application/rss+xml',
            charset='utf-8',
            headers={'Cache-Control': f"max-age={self.settings.FEED_CACHE_TIME}"},
        )

    async def handle_index(self, request: web.Request) -> web.Response:
        episodes: List[Episode] = []
        if not self.settings.load_error:
            episodes = (await self.run_pass()).episodes
        html = self.publisher.render_html(episodes, self.history)
        return web.Response(text=html, content_type='text/html', charset='utf-8')

    async def handle_health(self, request: web.Request) -> web.Response:
        return web.json_response({
            'status': 'error' if self.settings.load_error else 'ok',
            'sources': len(self.settings.feed_sources()),
            'played_episodes': self.history.count(),
        })

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get(FEED_PATH, self.handle_feed)
        app.router.add_get('/', self.handle_index)
        app.router.add_get('/healthz', self.handle_health)
        app.router.add_route('*', '/proxy', self.proxy.handle)
        return app


def main():
    """Main entry point."""

    parser = argparse.ArgumentParser(description='Combined Radio News Feed')
    parser.add_argument('mode', choices=['combined', 'list', 'queue', 'mark-played', 'clear-history', 'status', 'serve'],
                        help='Operation mode')
    parser.add_argument('key', nargs='?',
                        help='Episode key for mark-played')
    parser.add_argument('--config', type=str,
                        help='Feeds configuration file (YAML or JSON)')
    parser.add_argument('--output', '-o', type=str,
                        help='Write the combined feed to this file instead of stdout')
    parser.add_argument('--bare-titles', action='store_true',
                        help='Do not prefix episode titles with the source label')
    parser.add_argument('--host', type=str, help='Bind address for serve mode')
    parser.add_argument('--port', type=int, help='Port for serve mode')

    args = parser.parse_args()

    settings = Config(args.config)
    title_style = TitleStyle.BARE if args.bare_titles else TitleStyle.PREFIXED
    orchestrator = CombinedFeedOrchestrator(settings, title_style)

    try:
        if args.mode == 'combined':
            xml = asyncio.run(orchestrator.build_feed())
            if args.output:
                with open(args.output, 'w', encoding='utf-8') as f:
                    f.write(xml)
                logger.info(f"Wrote combined feed to {args.output}")
            else:
                print(xml)
            sys.exit(1 if settings.load_error else 0)

        elif args.mode == 'list':
            report = asyncio.run(orchestrator.run_pass())
            orchestrator.print_episodes(report.episodes)

        elif args.mode == 'queue':
            episodes = asyncio.run(orchestrator.queue())
            if not episodes and orchestrator.history.count():
                print(f"All episodes have been played already ({orchestrator.history.count()} in history). "
                      f"Clear history to play again.")
            for position, episode in enumerate(episodes, 1):
                print(f"{position:>2}. [{episode.source_label}] {episode.raw_title} "
                      f"({format_duration(episode.duration_ms)})  {episode.audio_url}")

        elif args.mode == 'mark-played':
            if not args.key:
                parser.error("mark-played requires an episode key")
            try:
                label, title, date, _ = decode_episode_key(args.key)
            except ValueError as e:
                parser.error(str(e))
            logger.info(f"Marking [{label}] {title} ({date}) as played")
            added = orchestrator.history.mark_played(args.key)
            print("Marked as played" if added else "Already marked as played")

        elif args.mode == 'clear-history':
            cleared = orchestrator.history.clear()
            print(f"{cleared} played episode{'s' if cleared != 1 else ''} cleared from history")

        elif args.mode == 'status':
            report = None if settings.load_error else asyncio.run(orchestrator.run_pass())
            orchestrator.print_status(orchestrator.check_status(report))

        elif args.mode == 'serve':
            host = args.host or settings.SERVER_HOST
            port = args.port or settings.SERVER_PORT
            logger.info(f"🌐 Serving combined feed on http://{host}:{port}{FEED_PATH}")
            web.run_app(orchestrator.create_app(), host=host, port=port, print=None)

    except KeyboardInterrupt:
        logger.info("👋 Shutting down")
    except OSError as e:
        logger.error(f"💥 {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
