# newsdigest/routers/news_routes.py
import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from ..auth import AuthContext
from ..dependencies import get_feed_processor, get_fetcher, get_user_service, require_user
from ..errors import AppError
from ..helpers import create_response
from ..pipeline import FeedProcessor
from ..rss_client import FeedFetcher
from ..schemas import ProcessNewsRequest, article_to_wire, entry_to_wire
from ..security import validate_feed_url
from ..user_service import UserDataService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/news",
    tags=["news"]
)


@router.get("")
async def get_news_digest(
    request: Request,
    translate: Optional[bool] = Query(None),
    summarize: Optional[bool] = Query(None),
    max_articles: Optional[int] = Query(None, alias="maxArticles", ge=1, le=50),
    auth: AuthContext = Depends(require_user),
    service: UserDataService = Depends(get_user_service),
    processor: FeedProcessor = Depends(get_feed_processor),
):
    """
    Personalized digest over the user's active subscriptions. Query parameters
    override the stored preferences for this request only.
    """
    user_id = auth.identity.id
    profile = await asyncio.to_thread(service.get_or_create_profile, auth.identity)
    feeds = await asyncio.to_thread(service.list_feeds, user_id)

    preferences = profile.preferences or {}
    translate = preferences.get("auto_translate", True) if translate is None else translate
    summarize = preferences.get("auto_summarize", True) if summarize is None else summarize
    max_articles = max_articles or preferences.get("max_articles") or request.app.state.settings.max_articles

    feed_urls: List[str] = [feed.rss_url for feed in feeds]
    using_defaults = not feed_urls
    if using_defaults:
        feed_urls = list(request.app.state.settings.default_feed_urls)
        logger.info(f"NEWS_ROUTES: User {user_id} has no active feeds, using defaults")

    digest = await processor.build_digest(
        feed_urls,
        translate=translate,
        summarize=summarize,
        max_articles=max_articles,
        identity=user_id,
    )
    return create_response(
        True,
        data=[article_to_wire(article) for article in digest.articles],
        count=len(digest.articles),
        feedsProcessed=digest.feeds_processed,
        feedErrors=[{"feedUrl": f.feed_url, "code": f.code, "message": f.message} for f in digest.feed_errors],
        warnings=digest.warnings,
        defaultFeeds=using_defaults,
        servicesUsed=processor.services_used(translate, summarize),
    )


@router.post("/process")
async def process_feed(
    payload: ProcessNewsRequest,
    request: Request,
    auth: AuthContext = Depends(require_user),
    service: UserDataService = Depends(get_user_service),
    processor: FeedProcessor = Depends(get_feed_processor),
):
    """Runs one feed through the pipeline and saves every generated summary for the caller."""
    rss_url = validate_feed_url(payload.rss_url, request.app.state.settings.allowed_feed_domains)
    user_id = auth.identity.id
    processed = await processor.process_feed(rss_url, payload.translate, payload.summarize, identity=user_id)

    warnings = list(processed.warnings)
    saved_count = 0
    for article in processed.articles:
        if not article.summarized:
            continue
        try:
            await asyncio.to_thread(
                service.save_summary,
                user_id,
                article.article_id,
                article.summary,
                article.translated_title,
                article.link,
            )
            saved_count += 1
        except AppError as e:
            logger.warning(f"NEWS_ROUTES: Could not save summary for {article.link}, user={user_id}: [{e.code}] {e.message}")
            warnings.append(f"Summary for '{article.original_title[:60]}' was not saved")

    return create_response(
        True,
        data=[article_to_wire(article) for article in processed.articles],
        count=len(processed.articles),
        feed={"url": rss_url, "title": processed.feed_title, "link": processed.feed_link},
        savedSummaries=saved_count,
        warnings=warnings,
        servicesUsed=processor.services_used(payload.translate, payload.summarize),
    )


@router.get("/feed")
async def get_plain_feed(
    request: Request,
    url: str = Query(..., min_length=1),
    auth: AuthContext = Depends(require_user),
    fetcher: FeedFetcher = Depends(get_fetcher),
):
    """The feed as published, without translation or summaries. Served from the cache when fresh."""
    rss_url = validate_feed_url(url, request.app.state.settings.allowed_feed_domains)
    feed = await fetcher.fetch(rss_url, use_cache=True)
    return create_response(
        True,
        data=[entry_to_wire(entry) for entry in feed.entries],
        count=len(feed.entries),
        feed={"url": rss_url, "title": feed.title, "link": feed.link},
        fetchedAt=feed.fetched_at.isoformat().replace("+00:00", "Z"),
    )
