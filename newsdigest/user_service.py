# newsdigest/user_service.py
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from . import config as app_config
from .auth import Identity
from .database import FeedSubscription, Profile, ReadingHistoryEntry, SavedSummary, db_session_scope
from .errors import DataServiceError, DuplicateError, NotFoundError, ValidationError
from .helpers import utcnow

logger = logging.getLogger(__name__)

ALLOWED_PROFILE_FIELDS = ("display_name", "preferences", "settings")

_MISSING_TABLE_MARKERS = ("no such table", "does not exist", "undefinedtable", "schema cache")


def _is_missing_table(error: SQLAlchemyError) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in _MISSING_TABLE_MARKERS)


class UserDataService:
    """
    Identity-scoped CRUD over profiles, feed subscriptions, reading history and
    saved summaries. Every query filters on `user_id`; nothing is shared between
    identities.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # --- Profiles ---
    def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            with db_session_scope(self._session_factory) as db:
                return db.query(Profile).filter(Profile.user_id == user_id).first()
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error fetching profile for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to fetch user profile", code="PROFILE_FETCH_ERROR", original_error=e) from e

    def create_profile(self, identity: Identity, preferences: Optional[dict] = None, settings: Optional[dict] = None) -> Profile:
        metadata = identity.user_metadata or {}
        email_name = identity.email.split("@")[0] if identity.email else None
        profile = Profile(
            user_id=identity.id,
            email=identity.email,
            display_name=metadata.get("full_name") or email_name or "User",
            avatar_url=metadata.get("avatar_url"),
            preferences={**app_config.DEFAULT_PREFERENCES, **(preferences or {})},
            settings={**app_config.DEFAULT_SETTINGS, **(settings or {})},
        )
        try:
            with db_session_scope(self._session_factory) as db:
                db.add(profile)
                db.flush()
        except IntegrityError:
            logger.info(f"USER_SERVICE: Profile already exists for user {identity.id}")
            existing = self.get_profile(identity.id)
            if existing is None:
                raise DataServiceError("Failed to create user profile", code="PROFILE_CREATE_ERROR")
            return existing
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error creating profile for user {identity.id}: {e}", exc_info=True)
            raise DataServiceError("Failed to create user profile", code="PROFILE_CREATE_ERROR", original_error=e) from e

        logger.info(f"USER_SERVICE: Profile created for user {identity.id} (profile ID {profile.id})")
        return profile

    def get_or_create_profile(self, identity: Identity) -> Profile:
        profile = self.get_profile(identity.id)
        if profile is None:
            profile = self.create_profile(identity)
        return profile

    def update_profile(self, identity: Identity, updates: Dict[str, Any]) -> Profile:
        """
        Applies a partial update. Only display_name, preferences and settings are
        writable; preferences and settings are merged key by key.
        """
        filtered = {key: value for key, value in updates.items() if key in ALLOWED_PROFILE_FIELDS and value is not None}
        if not filtered:
            raise ValidationError(
                "No valid fields to update",
                code="NO_VALID_FIELDS",
                details={"allowedFields": list(ALLOWED_PROFILE_FIELDS)},
            )

        self.get_or_create_profile(identity)
        try:
            with db_session_scope(self._session_factory) as db:
                profile = db.query(Profile).filter(Profile.user_id == identity.id).first()
                if "display_name" in filtered:
                    profile.display_name = filtered["display_name"]
                if "preferences" in filtered:
                    profile.preferences = {**(profile.preferences or {}), **filtered["preferences"]}
                if "settings" in filtered:
                    profile.settings = {**(profile.settings or {}), **filtered["settings"]}
                profile.updated_at = utcnow()
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error updating profile for user {identity.id}: {e}", exc_info=True)
            raise DataServiceError("Failed to update user profile", code="PROFILE_UPDATE_ERROR", original_error=e) from e

        logger.info(f"USER_SERVICE: Profile updated for user {identity.id}. Fields: {list(filtered)}")
        return profile

    # --- Feed subscriptions ---
    def list_feeds(self, user_id: str, active_only: bool = True) -> List[FeedSubscription]:
        try:
            with db_session_scope(self._session_factory) as db:
                query = db.query(FeedSubscription).filter(FeedSubscription.user_id == user_id)
                if active_only:
                    query = query.filter(FeedSubscription.active.is_(True))
                return query.order_by(FeedSubscription.created_at.desc(), FeedSubscription.id.desc()).all()
        except (OperationalError, ProgrammingError) as e:
            if _is_missing_table(e):
                logger.warning(f"USER_SERVICE: Feeds table not found, returning empty data for user {user_id}")
                return []
            logger.error(f"USER_SERVICE: Error fetching feeds for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to fetch RSS feeds", code="FEEDS_FETCH_ERROR", original_error=e) from e
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error fetching feeds for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to fetch RSS feeds", code="FEEDS_FETCH_ERROR", original_error=e) from e

    def add_feed(self, user_id: str, rss_url: str, custom_name: Optional[str] = None) -> FeedSubscription:
        """
        Subscribes the user to `rss_url`. Any existing row for the same URL, active
        or not, makes this a duplicate; removed feeds are brought back with
        `restore_feed`.
        """
        try:
            with db_session_scope(self._session_factory) as db:
                existing = db.query(FeedSubscription).filter(
                    FeedSubscription.user_id == user_id,
                    FeedSubscription.rss_url == rss_url,
                ).first()
                if existing is not None:
                    raise self._duplicate_feed_error(existing)

                feed = FeedSubscription(
                    user_id=user_id,
                    rss_url=rss_url,
                    custom_name=(custom_name or "").strip() or urlsplit(rss_url).hostname or rss_url,
                    active=True,
                )
                db.add(feed)
                db.flush()
        except IntegrityError as e:
            logger.info(f"USER_SERVICE: Duplicate feed insert for user {user_id}: {rss_url}")
            raise DuplicateError("RSS feed already exists for this user", code="FEED_ALREADY_EXISTS", original_error=e) from e
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error adding feed {rss_url} for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to add RSS feed", code="FEED_ADD_ERROR", original_error=e) from e

        logger.info(f"USER_SERVICE: Feed added for user {user_id}: {rss_url} (feed ID {feed.id})")
        return feed

    @staticmethod
    def _duplicate_feed_error(existing: FeedSubscription) -> DuplicateError:
        if existing.active:
            message = "RSS feed already exists for this user"
        else:
            message = "RSS feed was previously removed; restore it instead of adding it again"
        return DuplicateError(
            message,
            code="FEED_ALREADY_EXISTS",
            details={"feedId": existing.id, "active": existing.active},
        )

    def remove_feed(self, user_id: str, feed_id: int) -> FeedSubscription:
        """Soft delete. Removing an already inactive feed succeeds unchanged."""
        try:
            with db_session_scope(self._session_factory) as db:
                feed = db.query(FeedSubscription).filter(
                    FeedSubscription.user_id == user_id,
                    FeedSubscription.id == feed_id,
                ).first()
                if feed is None:
                    raise NotFoundError("RSS feed not found", code="FEED_NOT_FOUND")
                if not feed.active:
                    logger.info(f"USER_SERVICE: Feed {feed_id} already inactive for user {user_id}")
                    return feed
                feed.active = False
                feed.updated_at = utcnow()
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error removing feed {feed_id} for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to remove RSS feed", code="FEED_REMOVE_ERROR", original_error=e) from e

        logger.info(f"USER_SERVICE: Feed {feed_id} removed for user {user_id}")
        return feed

    def restore_feed(self, user_id: str, feed_id: int) -> FeedSubscription:
        try:
            with db_session_scope(self._session_factory) as db:
                feed = db.query(FeedSubscription).filter(
                    FeedSubscription.user_id == user_id,
                    FeedSubscription.id == feed_id,
                ).first()
                if feed is None:
                    raise NotFoundError("RSS feed not found", code="FEED_NOT_FOUND")
                if not feed.active:
                    feed.active = True
                    feed.updated_at = utcnow()
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error restoring feed {feed_id} for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to restore RSS feed", code="FEED_RESTORE_ERROR", original_error=e) from e

        logger.info(f"USER_SERVICE: Feed {feed_id} restored for user {user_id}")
        return feed

    # --- Reading history ---
    def mark_read(self, user_id: str, article_url: str, liked: bool = False) -> ReadingHistoryEntry:
        """Upsert on (user, article URL): a repeat mark refreshes read_at and liked."""
        try:
            with db_session_scope(self._session_factory) as db:
                entry = ReadingHistoryEntry(user_id=user_id, article_url=article_url, read_at=utcnow(), liked=liked)
                db.add(entry)
                db.flush()
            return entry
        except IntegrityError:
            logger.debug(f"USER_SERVICE: Article already in history for user {user_id}, updating: {article_url}")
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error adding to reading history for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to add to reading history", code="MARK_READ_ERROR", original_error=e) from e

        try:
            with db_session_scope(self._session_factory) as db:
                entry = db.query(ReadingHistoryEntry).filter(
                    ReadingHistoryEntry.user_id == user_id,
                    ReadingHistoryEntry.article_url == article_url,
                ).first()
                if entry is None:
                    raise DataServiceError("Failed to update reading history", code="MARK_READ_ERROR")
                entry.read_at = utcnow()
                entry.liked = liked
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error updating reading history for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to update reading history", code="MARK_READ_ERROR", original_error=e) from e
        return entry

    def list_history(self, user_id: str, limit: int = 50) -> List[ReadingHistoryEntry]:
        try:
            with db_session_scope(self._session_factory) as db:
                return (
                    db.query(ReadingHistoryEntry)
                    .filter(ReadingHistoryEntry.user_id == user_id)
                    .order_by(ReadingHistoryEntry.read_at.desc(), ReadingHistoryEntry.id.desc())
                    .limit(limit)
                    .all()
                )
        except (OperationalError, ProgrammingError) as e:
            if _is_missing_table(e):
                logger.warning(f"USER_SERVICE: Reading history table not found, returning empty data for user {user_id}")
                return []
            logger.error(f"USER_SERVICE: Error fetching reading history for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to fetch reading history", code="HISTORY_FETCH_ERROR", original_error=e) from e
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error fetching reading history for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to fetch reading history", code="HISTORY_FETCH_ERROR", original_error=e) from e

    # --- Saved summaries ---
    def save_summary(
        self,
        user_id: str,
        article_id: str,
        summary: str,
        article_title: Optional[str] = None,
        article_url: Optional[str] = None,
    ) -> SavedSummary:
        try:
            with db_session_scope(self._session_factory) as db:
                saved = SavedSummary(
                    user_id=user_id,
                    article_id=article_id,
                    summary=summary,
                    article_title=article_title,
                    article_url=article_url,
                )
                db.add(saved)
                db.flush()
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error saving summary for user {user_id}, article {article_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to save summary", code="SUMMARY_SAVE_ERROR", original_error=e) from e

        logger.info(f"USER_SERVICE: Summary saved for user {user_id}, article {article_id} (summary ID {saved.id})")
        return saved

    def list_summaries(self, user_id: str, limit: int = 20) -> List[SavedSummary]:
        try:
            with db_session_scope(self._session_factory) as db:
                return (
                    db.query(SavedSummary)
                    .filter(SavedSummary.user_id == user_id)
                    .order_by(SavedSummary.created_at.desc(), SavedSummary.id.desc())
                    .limit(limit)
                    .all()
                )
        except (OperationalError, ProgrammingError) as e:
            if _is_missing_table(e):
                logger.warning(f"USER_SERVICE: User summaries table not found, returning empty data for user {user_id}")
                return []
            logger.error(f"USER_SERVICE: Error fetching summaries for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to fetch summaries", code="SUMMARIES_FETCH_ERROR", original_error=e) from e
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error fetching summaries for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to fetch summaries", code="SUMMARIES_FETCH_ERROR", original_error=e) from e

    # --- Aggregates ---
    def get_dashboard(self, identity: Identity) -> Dict[str, Any]:
        profile = self.get_or_create_profile(identity)
        feeds = self.list_feeds(identity.id)
        recent_history = self.list_history(identity.id, limit=10)
        recent_summaries = self.list_summaries(identity.id, limit=5)
        return {
            "profile": profile,
            "feeds": feeds,
            "history": recent_history,
            "summaries": recent_summaries,
        }

    def delete_user_data(self, user_id: str) -> Dict[str, int]:
        """Deletes everything owned by the user: summaries, history, feeds, then the profile."""
        deleted: Dict[str, int] = {}
        try:
            with db_session_scope(self._session_factory) as db:
                for table_name, model in (
                    ("user_summaries", SavedSummary),
                    ("reading_history", ReadingHistoryEntry),
                    ("user_feeds", FeedSubscription),
                    ("profiles", Profile),
                ):
                    deleted[table_name] = db.query(model).filter(model.user_id == user_id).delete(synchronize_session=False)
        except SQLAlchemyError as e:
            logger.error(f"USER_SERVICE: Error deleting data for user {user_id}: {e}", exc_info=True)
            raise DataServiceError("Failed to delete user data", code="ACCOUNT_DELETE_ERROR", original_error=e) from e

        logger.info(f"USER_SERVICE: User data deleted for user {user_id}: {deleted}")
        return deleted
