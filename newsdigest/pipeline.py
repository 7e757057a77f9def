# newsdigest/pipeline.py
"""
Feed processing pipeline: fetch -> per-article translate -> summarize.

Failures are contained at the smallest possible unit. A translation or summary
error degrades one article, an unexpected error drops one article, and a feed
that cannot be fetched contributes nothing to a digest. Only the top-level fetch
of a single `process_feed` call propagates to the caller.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from . import config as app_config
from .errors import AppError, ErrorKind
from .helpers import generate_cache_key
from .rss_client import FeedEntry, FeedFetcher
from .summarizer import SummarizationAdapter
from .translator import TranslationAdapter

logger = logging.getLogger(__name__)

# A stage that fails with one of these kinds is switched off for the rest of the feed run.
STAGE_FATAL_KINDS = frozenset({ErrorKind.AUTH, ErrorKind.QUOTA_EXCEEDED, ErrorKind.NOT_CONFIGURED})

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class ProcessedArticle:
    original_title: str
    translated_title: str
    original_content: str
    translated_content: str
    summary: str
    link: Optional[str]
    published_at: Optional[datetime]
    feed_title: Optional[str] = None
    summarized: bool = False

    @property
    def article_id(self) -> str:
        return self.link or generate_cache_key(f"{self.feed_title}:{self.original_title}", prefix="article")


@dataclass
class ProcessedFeed:
    feed_url: str
    feed_title: str
    feed_link: Optional[str]
    articles: List[ProcessedArticle] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class FeedFailure:
    feed_url: str
    code: str
    message: str


@dataclass
class Digest:
    articles: List[ProcessedArticle]
    feeds_processed: int
    feed_errors: List[FeedFailure] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class _Stages:
    translate: bool
    summarize: bool


class FeedProcessor:
    def __init__(
        self,
        fetcher: FeedFetcher,
        translator: TranslationAdapter,
        summarizer: SummarizationAdapter,
        target_lang: str = app_config.TRANSLATION_TARGET_LANG,
        max_entries: int = app_config.PIPELINE_MAX_ENTRIES,
        max_feeds: int = app_config.DIGEST_MAX_FEEDS,
        default_max_articles: int = app_config.MAX_ARTICLES,
        summary_placeholder: str = app_config.SUMMARY_PLACEHOLDER,
    ):
        self.fetcher = fetcher
        self.translator = translator
        self.summarizer = summarizer
        self.target_lang = target_lang
        self.max_entries = max_entries
        self.max_feeds = max_feeds
        self.default_max_articles = default_max_articles
        self.summary_placeholder = summary_placeholder

    def services_used(self, translate: bool = True, summarize: bool = True) -> dict:
        return {
            "translation": translate and self.translator.is_configured(),
            "summarization": summarize and self.summarizer.is_configured(),
        }

    async def process_feed(
        self,
        url: str,
        translate: bool = True,
        summarize: bool = True,
        *,
        use_cache: bool = False,
        identity: Optional[str] = None,
    ) -> ProcessedFeed:
        """
        Runs the full pipeline for one feed. Raises FetchError if the feed itself
        cannot be retrieved or parsed; every other failure is absorbed per article.
        """
        start_time = time.monotonic()
        logger.info(f"PIPELINE: Processing feed {url} (translate={translate}, summarize={summarize}, user={identity})")
        fetched = await self.fetcher.fetch(url, use_cache=use_cache)

        stages = _Stages(
            translate=translate and self.translator.is_configured(),
            summarize=summarize and self.summarizer.is_configured(),
        )
        result = ProcessedFeed(feed_url=url, feed_title=fetched.title, feed_link=fetched.link)

        for entry in fetched.entries[: self.max_entries]:
            try:
                article = await self._process_entry(entry, fetched.title, stages, result.warnings, url, identity)
            except Exception as e:
                logger.error(f"PIPELINE: Article processing failed for '{entry.title[:60]}' ({entry.link}) in {url}, user={identity}: {e}", exc_info=True)
                result.warnings.append(f"Article '{entry.title[:60]}' could not be processed and was skipped")
                continue
            result.articles.append(article)

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(f"PIPELINE: Finished {url}. Articles: {len(result.articles)}, warnings: {len(result.warnings)}, duration: {duration_ms}ms")
        return result

    async def _process_entry(
        self,
        entry: FeedEntry,
        feed_title: str,
        stages: _Stages,
        warnings: List[str],
        url: str,
        identity: Optional[str],
    ) -> ProcessedArticle:
        translated_title = entry.title
        translated_content = entry.synopsis

        if stages.translate:
            title_result = await self.translator.try_translate(entry.title, self.target_lang)
            content_result = None
            if title_result.ok and entry.synopsis:
                content_result = await self.translator.try_translate(entry.synopsis, self.target_lang)
            failure = title_result.error or (content_result.error if content_result is not None else None)
            if failure is None:
                translated_title = title_result.value.text
                if content_result is not None:
                    translated_content = content_result.value.text
            else:
                self._stage_failed("translate", failure, entry, stages, warnings, url, identity)

        summary = self.summary_placeholder
        summarized = False
        if stages.summarize:
            summary_result = await self.summarizer.try_summarize(translated_title, translated_content)
            if summary_result.ok:
                summary = summary_result.value
                summarized = True
            else:
                self._stage_failed("summarize", summary_result.error, entry, stages, warnings, url, identity)

        return ProcessedArticle(
            original_title=entry.title,
            translated_title=translated_title,
            original_content=entry.synopsis,
            translated_content=translated_content,
            summary=summary,
            link=entry.link,
            published_at=entry.published_at,
            feed_title=feed_title,
            summarized=summarized,
        )

    def _stage_failed(
        self,
        stage: str,
        error: AppError,
        entry: FeedEntry,
        stages: _Stages,
        warnings: List[str],
        url: str,
        identity: Optional[str],
    ) -> None:
        logger.warning(f"PIPELINE: {stage} failed for '{entry.title[:60]}' in {url}, user={identity}: [{error.code}] {error.message}")
        warnings.append(f"{stage} failed for '{entry.title[:60]}': {error.message}")
        if error.kind in STAGE_FATAL_KINDS:
            setattr(stages, stage, False)
            logger.warning(f"PIPELINE: Disabling {stage} for the rest of {url} after {error.kind.value} error")
            warnings.append(f"{stage} disabled for remaining articles: {error.message}")

    async def build_digest(
        self,
        feed_urls: Iterable[str],
        translate: bool = True,
        summarize: bool = True,
        max_articles: Optional[int] = None,
        identity: Optional[str] = None,
    ) -> Digest:
        """
        Processes up to `max_feeds` feeds concurrently and merges their articles,
        newest first, capped at `max_articles`.
        """
        urls = list(feed_urls)[: self.max_feeds]
        services = self.services_used(translate, summarize)
        # Untransformed output is identical to the plain fetch, so it may come from the cache.
        use_cache = not (services["translation"] or services["summarization"])

        outcomes = await asyncio.gather(
            *(self._digest_feed(url, translate, summarize, use_cache, identity) for url in urls)
        )

        articles: List[ProcessedArticle] = []
        feed_errors: List[FeedFailure] = []
        warnings: List[str] = []
        for processed, failure in outcomes:
            if failure is not None:
                feed_errors.append(failure)
                continue
            articles.extend(processed.articles)
            warnings.extend(processed.warnings)

        articles.sort(key=lambda article: article.published_at or _OLDEST, reverse=True)
        limit = max_articles if max_articles and max_articles > 0 else self.default_max_articles
        return Digest(
            articles=articles[:limit],
            feeds_processed=len(urls) - len(feed_errors),
            feed_errors=feed_errors,
            warnings=warnings,
        )

    async def _digest_feed(
        self,
        url: str,
        translate: bool,
        summarize: bool,
        use_cache: bool,
        identity: Optional[str],
    ) -> Tuple[Optional[ProcessedFeed], Optional[FeedFailure]]:
        try:
            processed = await self.process_feed(url, translate, summarize, use_cache=use_cache, identity=identity)
            return processed, None
        except AppError as e:
            logger.error(f"PIPELINE: Feed {url} failed for user={identity}: [{e.code}] {e.message}")
            return None, FeedFailure(feed_url=url, code=e.code, message=e.message)
        except Exception as e:
            logger.error(f"PIPELINE: Unexpected error for feed {url}, user={identity}: {e}", exc_info=True)
            return None, FeedFailure(feed_url=url, code="INTERNAL_ERROR", message="Feed processing failed")
