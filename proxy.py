#!/usr/bin/env python3
"""
Feed proxy for browser clients.

Fetches an allow-listed feed URL on behalf of a browser that cannot read it
directly because of cross-origin restrictions, and returns the upstream body
after a basic XML/JSON well-formedness check.

Response contract:
  403  request Origin/Referer is not allowed
  200  OPTIONS preflight
  405  any other non-GET method
  400  missing or invalid ``url`` parameter
  403  no allowed domains configured, or the URL's domain is not allowed
  500  transport failure
  <upstream status>  upstream answered with anything but 200
  204  upstream body is empty
  422  body claims to be XML/JSON but does not parse
  200  upstream body with a normalized content type
"""

from asyncio import TimeoutError
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Dict, Iterable, Optional, Tuple
from urllib.parse import urlparse
import json
import time
from aiohttp import ClientError, ClientSession, ClientTimeout, web
from defusedxml import DefusedXmlException
from defusedxml.ElementTree import ParseError, fromstring as safe_fromstring

from config import Config, get_logger
from telemetry import trace_span
from utils import validate_url

logger = get_logger("proxy")

PROXY_CACHE_SECONDS = 300
PROXY_CONNECT_TIMEOUT = 10
UPSTREAM_ACCEPT = "application/rss+xml, application/xml, text/xml, application/json, */*"
ALWAYS_ALLOWED_ORIGIN_HOSTS = ("localhost", "127.0.0.1")


def host_matches(host: str, allowed: Iterable[str]) -> bool:
    """True if host equals an allowed entry or is one of its subdomains."""
    host = (host or "").lower().rstrip('.')
    if not host:
        return False
    for entry in allowed:
        entry = (entry or "").lower().strip().rstrip('.')
        if not entry:
            continue
        if host == entry or host.endswith('.' + entry):
            return True
    return False


def _hostname(value: str) -> str:
    """Hostname of a URL, or the value itself when it is a bare host."""
    value = (value or "").strip()
    if '://' not in value:
        return value.split('/')[0].split(':')[0].lower()
    try:
        return (urlparse(value).hostname or "").lower()
    except ValueError:
        return ""


class FeedProxy:
    """aiohttp handler implementing the feed proxy."""

    def __init__(self, settings: Config):
        self.settings = settings

    def _allowed_origin_hosts(self, request: web.Request) -> list:
        hosts = [_hostname(request.host)]
        hosts.extend(ALWAYS_ALLOWED_ORIGIN_HOSTS)
        hosts.extend(_hostname(origin) for origin in self.settings.ALLOWED_ORIGINS)
        return [h for h in hosts if h]

    def _cors_headers(self, origin: str) -> Dict[str, str]:
        return {
            'Access-Control-Allow-Origin': origin or '*',
            'Access-Control-Allow-Methods': 'GET, OPTIONS',
            'Access-Control-Allow-Headers': 'Content-Type, Accept',
        }

    def _text(self, status: int, message: str, headers: Optional[Dict[str, str]] = None) -> web.Response:
        return web.Response(status=status, text=message, headers=headers or {})

    async def _fetch_upstream(self, url: str) -> Tuple[int, bytes, str]:
        """GET the upstream URL; returns (status, body, content type).

        Raises aiohttp.ClientError or asyncio.TimeoutError on transport failure.
        """
        headers = {
            'User-Agent': self.settings.PROXY_USER_AGENT,
            'Accept': UPSTREAM_ACCEPT,
            'Accept-Language': 'en-US,en;q=0.9',
            'Cache-Control': 'no-cache',
        }
        timeout = ClientTimeout(total=self.settings.PROXY_TIMEOUT, connect=PROXY_CONNECT_TIMEOUT)
        async with ClientSession(timeout=timeout) as session:
            async with session.get(
                url,
                headers=headers,
                allow_redirects=True,
                max_redirects=self.settings.PROXY_MAX_REDIRECTS,
            ) as response:
                body = await response.read()
                return response.status, body, response.headers.get('Content-Type', '')

    def _validate_body(self, body: bytes, content_type: str) -> Tuple[Optional[str], str]:
        """Check well-formedness; returns (error message or None, response content type)."""
        response_type = content_type or 'application/xml'
        stripped = body.lstrip(b'\xef\xbb\xbf \t\r\n')

        if 'xml' in response_type.lower() or stripped.startswith(b'<?xml'):
            try:
                safe_fromstring(stripped)
            except ParseError as e:
                return f"Invalid XML: {e}", response_type
            except DefusedXmlException as e:
                return f"Invalid XML: entity declarations are not accepted ({e!r})", response_type
            response_type = 'application/xml; charset=utf-8'

        if 'json' in response_type.lower() or stripped.startswith((b'{', b'[')):
            try:
                json.loads(stripped.decode('utf-8', errors='replace'))
            except json.JSONDecodeError as e:
                return f"Invalid JSON: {e.msg}", response_type
            response_type = 'application/json; charset=utf-8'

        return None, response_type

    @trace_span(
        "proxy.handle",
        tracer_name="proxy",
        attr_from_args=lambda self, request: {"http.method": request.method},
    )
    async def handle(self, request: web.Request) -> web.Response:
        origin = request.headers.get('Origin') or request.headers.get('Referer') or ''
        if origin and not host_matches(_hostname(origin), self._allowed_origin_hosts(request)):
            logger.warning(f"Rejected proxy request from origin {origin}")
            return self._text(403, 'Access denied: Invalid origin')

        cors = self._cors_headers(origin)

        if request.method == 'OPTIONS':
            return web.Response(status=200, headers=cors)
        if request.method != 'GET':
            return self._text(405, 'Method not allowed', cors)

        feed_url = request.query.get('url', '').strip()
        if not feed_url:
            return self._text(400, 'URL parameter is required', cors)
        if not validate_url(feed_url):
            return self._text(400, 'Invalid URL provided', cors)

        allowed_domains = self.settings.ALLOWED_DOMAINS
        if not allowed_domains:
            logger.warning("Proxy request rejected: no allowed domains configured")
            return self._text(403, 'No allowed domains configured', cors)

        domain = _hostname(feed_url)
        if not host_matches(domain, allowed_domains):
            logger.warning(f"Proxy request rejected for domain {domain}")
            return self._text(403, f'Domain not allowed: {domain}', cors)

        started = time.monotonic()
        try:
            status, body, content_type = await self._fetch_upstream(feed_url)
        except (ClientError, TimeoutError) as e:
            detail = str(e) or e.__class__.__name__
            logger.error(f"Proxy error for {feed_url}: {detail}")
            return self._text(500, f'Failed to fetch feed: {detail}', cors)

        if status != 200:
            logger.warning(f"Upstream returned HTTP {status} for {feed_url}")
            return self._text(status, f'HTTP Error: {status}', cors)

        if not body:
            return web.Response(status=204, headers=cors)

        error, response_type = self._validate_body(body, content_type)
        if error:
            logger.warning(f"Proxy rejected body from {feed_url}: {error}")
            return self._text(422, error, cors)

        expires = datetime.now(timezone.utc) + timedelta(seconds=PROXY_CACHE_SECONDS)
        headers = dict(cors)
        headers.update({
            'Cache-Control': f'public, max-age={PROXY_CACHE_SECONDS}',
            'Expires': format_datetime(expires, usegmt=True),
            'Content-Type': response_type,
        })
        if request.query.get('debug') == '1':
            headers['X-Proxy-URL'] = feed_url
            headers['X-Proxy-Status'] = str(status)
            headers['X-Proxy-Time'] = datetime.now(timezone.utc).isoformat(timespec='seconds')

        logger.info(f"Proxied {feed_url} ({len(body)} bytes in {time.monotonic() - started:.2f}s)")
        return web.Response(status=200, body=body, headers=headers)


__all__ = ["FeedProxy", "host_matches"]
