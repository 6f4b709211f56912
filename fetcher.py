#!/usr/bin/env python3
"""
Podcast feed fetcher.

Retrieves the raw body of every configured feed source concurrently. Each
source has its own timeout and candidate URL list (direct, then through the
feed proxy), so a slow or failing upstream never holds up the others. Only
successful bodies are returned; failures are logged here and never reach
the normalization pipeline.
"""

from asyncio import wait_for, TimeoutError, Semaphore, gather
from dataclasses import dataclass
from typing import List, Optional, Set
from urllib.parse import quote, urlparse

from aiohttp import ClientError, ClientSession, ClientTimeout

from config import Config, get_logger
from models import FeedFormat, FeedSource
from telemetry import init_telemetry, trace_span
from utils import RetryHelper

logger = get_logger("fetcher")
init_telemetry("radio-news-fetcher")

HTTP_OK = 200

XML_ACCEPT = "application/rss+xml, application/xml, text/xml"
JSON_ACCEPT = "application/json"


@dataclass(frozen=True)
class FetchResult:
    """A successfully retrieved feed body."""
    source: FeedSource
    body: bytes
    content_type: str = ""
    via_proxy: bool = False


def accept_header(declared_format: FeedFormat) -> str:
    if declared_format == FeedFormat.JSON:
        return JSON_ACCEPT
    if declared_format == FeedFormat.XML:
        return XML_ACCEPT
    return f"{XML_ACCEPT}, {JSON_ACCEPT}, */*"


def build_proxy_url(endpoint: str, feed_url: str) -> str:
    """Append the encoded feed URL to a proxy endpoint.

    Endpoints ending in "=" (e.g. "http://host/proxy?url=") get the URL appended
    as-is; otherwise a ``url`` query parameter is added.
    """
    encoded = quote(feed_url, safe='')
    if endpoint.endswith('='):
        return f"{endpoint}{encoded}"
    separator = '&' if '?' in endpoint else '?'
    return f"{endpoint}{separator}url={encoded}"


def _summarize_url(url: str) -> str:
    """Scheme and host only, for logging."""
    try:
        parsed = urlparse(url)
        if parsed.scheme and parsed.hostname:
            return f"{parsed.scheme}://{parsed.hostname}"
    except ValueError:
        return url
    return url


class FeedFetcher:
    """Concurrent, timeout-bounded retrieval of feed bodies."""

    def __init__(self, settings: Config) -> None:
        self.settings = settings
        self.timeout_seconds = settings.podcast_timeout_seconds
        self.retry_helper = RetryHelper(max_retries=settings.FETCH_RETRIES, base_delay=settings.RETRY_DELAY_BASE)
        self._proxy_warning_labels: Set[str] = set()

    def _candidate_urls(self, source: FeedSource) -> List[tuple]:
        """Return (url, via_proxy) pairs in the order they should be tried."""
        endpoint = self.settings.PROXY_ENDPOINT
        if source.requires_proxy:
            if endpoint:
                return [(build_proxy_url(endpoint, source.url), True)]
            if source.label not in self._proxy_warning_labels:
                logger.warning(f"Feed {source.label} requires the proxy but no proxy endpoint is configured; fetching directly")
                self._proxy_warning_labels.add(source.label)
            return [(source.url, False)]
        candidates = [(source.url, False)]
        if endpoint:
            candidates.append((build_proxy_url(endpoint, source.url), True))
        return candidates

    def _format_client_error(self, error: ClientError) -> str:
        """Describe aiohttp client errors with any available status/errno."""
        parts: List[str] = [error.__class__.__name__]
        status = getattr(error, 'status', None)
        if status is not None:
            parts.append(f"status={status}")
        os_error = getattr(error, 'os_error', None)
        if os_error is not None:
            errno = getattr(os_error, 'errno', None)
            if errno is not None:
                parts.append(f"errno={errno}")
        message = str(error)
        if message:
            parts.append(message)
        return " ".join(parts)

    async def _fetch_url(self, session: ClientSession, url: str, source: FeedSource, via_proxy: bool = False) -> Optional[FetchResult]:
        """Perform one GET; returns None for non-200 or empty responses."""
        headers = {
            'User-Agent': self.settings.USER_AGENT,
            'Accept': accept_header(source.declared_format),
        }
        async with session.get(url, headers=headers, timeout=ClientTimeout(total=self.timeout_seconds)) as response:
            if response.status != HTTP_OK:
                logger.warning(f"HTTP {response.status} fetching {source.label} from {_summarize_url(url)}")
                return None
            body = await response.read()
            if not body:
                logger.warning(f"Empty response fetching {source.label} from {_summarize_url(url)}")
                return None
            return FetchResult(
                source=source,
                body=body,
                content_type=response.headers.get('Content-Type', ''),
                via_proxy=via_proxy,
            )

    @trace_span(
        "fetch_source",
        tracer_name="fetcher",
        attr_from_args=lambda self, source, session: {
            "feed.label": source.label,
            "feed.url": source.url,
        },
    )
    async def fetch_source(self, source: FeedSource, session: ClientSession) -> Optional[FetchResult]:
        """Fetch one source, trying each candidate URL with retries.

        Returns None when every candidate fails or times out.
        """
        max_retries = self.settings.FETCH_RETRIES
        for url, via_proxy in self._candidate_urls(source):
            for attempt in range(max_retries + 1):
                try:
                    result = await wait_for(
                        self._fetch_url(session, url, source, via_proxy),
                        timeout=self.timeout_seconds,
                    )
                    if result is not None:
                        route = "proxy" if via_proxy else "direct"
                        logger.info(f"Fetched {source.label} ({len(result.body)} bytes, {route})")
                        return result
                    break
                except TimeoutError:
                    logger.warning(
                        f"Timeout fetching {source.label} from {_summarize_url(url)} "
                        f"(attempt {attempt + 1}/{max_retries + 1}, timeout={self.timeout_seconds}s)"
                    )
                except ClientError as e:
                    logger.warning(
                        f"Error fetching {source.label} from {_summarize_url(url)} "
                        f"(attempt {attempt + 1}/{max_retries + 1}): {self._format_client_error(e)}"
                    )
                if attempt < max_retries:
                    await self.retry_helper.sleep_for_attempt(attempt)
        logger.error(f"All fetch attempts failed for {source.label}")
        return None

    @trace_span(
        "fetch_all",
        tracer_name="fetcher",
        attr_from_args=lambda self, sources: {"feed.count": len(sources)},
    )
    async def fetch_all(self, sources: List[FeedSource]) -> List[FetchResult]:
        """Fetch all sources concurrently, returning successes in source order."""
        if not sources:
            return []
        logger.info(f"Fetching {len(sources)} feeds (timeout {self.timeout_seconds}s each)")

        async with ClientSession() as session:
            semaphore = Semaphore(self.settings.FETCH_CONCURRENCY)

            async def fetch_with_semaphore(source: FeedSource):
                async with semaphore:
                    return await self.fetch_source(source, session)

            outcomes = await gather(*(fetch_with_semaphore(s) for s in sources), return_exceptions=True)

        results: List[FetchResult] = []
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, FetchResult):
                results.append(outcome)
            elif isinstance(outcome, BaseException):
                logger.error(f"Unexpected error fetching {source.label}: {outcome!r}")
        logger.info(f"Fetched {len(results)}/{len(sources)} feeds")
        return results


__all__ = ["FeedFetcher", "FetchResult", "accept_header", "build_proxy_url"]
