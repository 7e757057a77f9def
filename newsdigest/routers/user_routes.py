# newsdigest/routers/user_routes.py
import asyncio
import logging

from fastapi import APIRouter, Depends, Query, Request

from ..auth import AuthContext
from ..dependencies import get_user_service, require_user
from ..helpers import create_response
from ..schemas import (
    AddFeedRequest,
    FeedResponse,
    HistoryEntryResponse,
    MarkReadRequest,
    ProfileResponse,
    ProfileUpdateRequest,
    SavedSummaryResponse,
    dump_record,
    dump_records,
)
from ..security import validate_feed_url
from ..user_service import UserDataService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/user",
    tags=["user"]
)


# --- Profile ---
@router.get("/profile")
def get_profile(auth: AuthContext = Depends(require_user), service: UserDataService = Depends(get_user_service)):
    profile = service.get_or_create_profile(auth.identity)
    return create_response(True, data=dump_record(ProfileResponse, profile))


@router.put("/profile")
def update_profile(
    payload: ProfileUpdateRequest,
    auth: AuthContext = Depends(require_user),
    service: UserDataService = Depends(get_user_service),
):
    profile = service.update_profile(auth.identity, payload.to_updates())
    return create_response(True, data=dump_record(ProfileResponse, profile), message="Profile updated")


@router.get("/dashboard")
def get_dashboard(auth: AuthContext = Depends(require_user), service: UserDataService = Depends(get_user_service)):
    dashboard = service.get_dashboard(auth.identity)
    history = dashboard["history"]
    data = {
        "profile": dump_record(ProfileResponse, dashboard["profile"]),
        "feeds": dump_records(FeedResponse, dashboard["feeds"]),
        "recentHistory": dump_records(HistoryEntryResponse, history),
        "recentSummaries": dump_records(SavedSummaryResponse, dashboard["summaries"]),
        "stats": {
            "totalFeeds": len(dashboard["feeds"]),
            "recentReads": len(history),
            "likedArticles": sum(1 for entry in history if entry.liked),
            "recentSummaries": len(dashboard["summaries"]),
        },
    }
    return create_response(True, data=data)


@router.delete("/account")
async def delete_account(
    request: Request,
    auth: AuthContext = Depends(require_user),
    service: UserDataService = Depends(get_user_service),
):
    """Deletes all user data, then the identity itself when the provider allows it."""
    user_id = auth.identity.id
    deleted = await asyncio.to_thread(service.delete_user_data, user_id)
    identity_deleted = await request.app.state.identity_provider.delete_identity(user_id)
    logger.info(f"USER_ROUTES: Account deleted for user {user_id}. Identity removed at provider: {identity_deleted}")
    return create_response(
        True,
        data={"deleted": deleted, "identityDeleted": identity_deleted},
        message="Account deleted",
    )


# --- Feeds ---
@router.get("/feeds")
def list_feeds(auth: AuthContext = Depends(require_user), service: UserDataService = Depends(get_user_service)):
    feeds = service.list_feeds(auth.identity.id)
    return create_response(True, data=dump_records(FeedResponse, feeds), count=len(feeds))


@router.post("/feeds", status_code=201)
def add_feed(
    payload: AddFeedRequest,
    request: Request,
    auth: AuthContext = Depends(require_user),
    service: UserDataService = Depends(get_user_service),
):
    rss_url = validate_feed_url(payload.rss_url, request.app.state.settings.allowed_feed_domains)
    feed = service.add_feed(auth.identity.id, rss_url, payload.custom_name)
    return create_response(True, data=dump_record(FeedResponse, feed), message="RSS feed added")


@router.delete("/feeds/{feed_id}")
def remove_feed(
    feed_id: int,
    auth: AuthContext = Depends(require_user),
    service: UserDataService = Depends(get_user_service),
):
    feed = service.remove_feed(auth.identity.id, feed_id)
    return create_response(True, data=dump_record(FeedResponse, feed), message="RSS feed removed")


@router.post("/feeds/{feed_id}/restore")
def restore_feed(
    feed_id: int,
    auth: AuthContext = Depends(require_user),
    service: UserDataService = Depends(get_user_service),
):
    feed = service.restore_feed(auth.identity.id, feed_id)
    return create_response(True, data=dump_record(FeedResponse, feed), message="RSS feed restored")


# --- Reading history ---
@router.get("/history")
def get_history(
    limit: int = Query(50, ge=1, le=200),
    auth: AuthContext = Depends(require_user),
    service: UserDataService = Depends(get_user_service),
):
    history = service.list_history(auth.identity.id, limit=limit)
    return create_response(True, data=dump_records(HistoryEntryResponse, history), count=len(history))


@router.post("/history/read")
def mark_read(
    payload: MarkReadRequest,
    auth: AuthContext = Depends(require_user),
    service: UserDataService = Depends(get_user_service),
):
    entry = service.mark_read(auth.identity.id, payload.article_url, payload.liked)
    return create_response(True, data=dump_record(HistoryEntryResponse, entry))


# --- Saved summaries ---
@router.get("/summaries")
def get_summaries(
    limit: int = Query(20, ge=1, le=100),
    auth: AuthContext = Depends(require_user),
    service: UserDataService = Depends(get_user_service),
):
    summaries = service.list_summaries(auth.identity.id, limit=limit)
    return create_response(True, data=dump_records(SavedSummaryResponse, summaries), count=len(summaries))
