# newsdigest/rss_client.py
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

import feedparser
import httpx

from . import config as app_config
from .cache import TTLCache
from .errors import FetchError
from .helpers import generate_cache_key, strip_html, truncate_text, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeedEntry:
    title: str
    synopsis: str
    link: Optional[str]
    published_at: Optional[datetime]


@dataclass(frozen=True)
class FetchedFeed:
    title: str
    link: Optional[str]
    entries: Tuple[FeedEntry, ...]
    fetched_at: datetime = field(default_factory=utcnow)


def _normalize_datetime(dt_input: Any) -> Optional[datetime]:
    if not dt_input:
        return None

    if isinstance(dt_input, datetime):
        if dt_input.tzinfo is None:
            return dt_input.replace(tzinfo=timezone.utc)
        return dt_input

    if isinstance(dt_input, tuple): # feedparser's *_parsed values are time.struct_time (UTC)
        try:
            dt_tuple_list = list(dt_input[:6])
            while len(dt_tuple_list) < 6:
                dt_tuple_list.append(0)
            return datetime(*dt_tuple_list, tzinfo=timezone.utc)
        except (TypeError, ValueError):
            return None

    if isinstance(dt_input, str):
        try:
            if dt_input.endswith('Z'):
                parsed_date = datetime.fromisoformat(dt_input[:-1] + '+00:00')
            else:
                parsed_date = datetime.fromisoformat(dt_input)
        except ValueError:
            return None
        if parsed_date.tzinfo is None:
            parsed_date = parsed_date.replace(tzinfo=timezone.utc)
        return parsed_date

    return None


def _entry_content(entry: Any) -> str:
    """Text-only synopsis of a feedparser entry: summary, description, then full content."""
    for key in ("summary", "description"):
        text = strip_html(entry.get(key))
        if text:
            return text
    for content_block in entry.get("content") or []:
        text = strip_html(content_block.get("value"))
        if text:
            return text
    return ""


def _entry_published(entry: Any) -> Optional[datetime]:
    for key in ("published_parsed", "updated_parsed", "published", "updated"):
        normalized = _normalize_datetime(entry.get(key))
        if normalized:
            return normalized
    return None


class FeedFetcher:
    """
    Downloads and parses remote RSS/Atom feeds into `FetchedFeed` objects.
    Results are kept in the shared TTL cache keyed by the URL fingerprint.
    """

    def __init__(
        self,
        cache: TTLCache,
        max_articles: int = app_config.MAX_ARTICLES,
        timeout_seconds: float = app_config.FEED_TIMEOUT_SECONDS,
        max_redirects: int = app_config.FEED_MAX_REDIRECTS,
        max_feed_size_bytes: int = app_config.MAX_FEED_SIZE_BYTES,
        synopsis_max_length: int = app_config.SYNOPSIS_MAX_LENGTH,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cache = cache
        self.max_articles = max_articles
        self.timeout_seconds = timeout_seconds
        self.max_redirects = max_redirects
        self.max_feed_size_bytes = max_feed_size_bytes
        self.synopsis_max_length = synopsis_max_length
        self._transport = transport

    async def fetch(self, url: str, use_cache: bool = True) -> FetchedFeed:
        """
        Returns the shaped feed for `url`. With `use_cache=False` the cache is not
        consulted and the network is always hit; the fresh result still replaces
        the cached copy.
        """
        cache_key = generate_cache_key(url)
        if use_cache:
            cached_feed = self.cache.get(cache_key)
            if cached_feed is not None:
                logger.info(f"RSS_CLIENT: Feed served from cache: {url}")
                return cached_feed

        start_time = time.monotonic()
        logger.info(f"RSS_CLIENT: Fetching feed: {url}")
        raw_content = await self._download(url)
        parsed = await asyncio.to_thread(feedparser.parse, raw_content)

        if not parsed.entries and (parsed.bozo or not parsed.get("version")):
            bozo_reason = parsed.get("bozo_exception")
            logger.error(f"RSS_CLIENT: Malformed feed content at {url}: {bozo_reason}")
            raise FetchError(f"Malformed feed content at {url}", original_error=bozo_reason)

        result = self._shape(url, parsed)
        self.cache.set(cache_key, result)

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(f"RSS_CLIENT: Feed processed: {url}. Entries: {len(result.entries)}. Duration: {duration_ms}ms")
        return result

    async def _download(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True,
                max_redirects=self.max_redirects,
                headers={"User-Agent": app_config.USER_AGENT},
                transport=self._transport,
            ) as client:
                async with client.stream("GET", url) as response:
                    response.raise_for_status()
                    declared_length = response.headers.get("Content-Length")
                    if declared_length and declared_length.isdigit() and int(declared_length) > self.max_feed_size_bytes:
                        self._reject_oversized(url, int(declared_length))
                    body = bytearray()
                    async for chunk in response.aiter_bytes():
                        body.extend(chunk)
                        if len(body) > self.max_feed_size_bytes:
                            self._reject_oversized(url, len(body))
        except httpx.TimeoutException as e:
            logger.error(f"RSS_CLIENT: Timeout fetching {url}: {e}")
            raise FetchError(f"Timed out fetching feed {url}", original_error=e) from e
        except httpx.TooManyRedirects as e:
            logger.error(f"RSS_CLIENT: Too many redirects for {url}")
            raise FetchError(f"Too many redirects fetching feed {url}", original_error=e) from e
        except httpx.HTTPStatusError as e:
            logger.error(f"RSS_CLIENT: HTTP {e.response.status_code} fetching {url}")
            raise FetchError(f"Feed server returned HTTP {e.response.status_code} for {url}", original_error=e) from e
        except httpx.HTTPError as e:
            logger.error(f"RSS_CLIENT: Connection failure fetching {url}: {e}")
            raise FetchError(f"Could not connect to feed {url}", original_error=e) from e
        return bytes(body)

    def _reject_oversized(self, url: str, size: int) -> None:
        # Raised mid-stream; leaving the stream context closes the connection
        logger.error(f"RSS_CLIENT: Feed {url} exceeds size limit (at least {size} bytes)")
        raise FetchError(f"Feed {url} is larger than {self.max_feed_size_bytes} bytes")

    def _shape(self, url: str, parsed: Any) -> FetchedFeed:
        entries: List[FeedEntry] = []
        for entry in parsed.entries:
            if len(entries) >= self.max_articles:
                break
            synopsis = _entry_content(entry)
            if not synopsis:
                continue
            entries.append(FeedEntry(
                title=(entry.get("title") or "").strip() or "Untitled",
                synopsis=truncate_text(synopsis, self.synopsis_max_length),
                link=entry.get("link"),
                published_at=_entry_published(entry),
            ))

        feed_title = parsed.feed.get("title") or "RSS Feed"
        return FetchedFeed(title=feed_title, link=parsed.feed.get("link") or url, entries=tuple(entries))
