# newsdigest/database.py
import logging
import os
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session as SQLAlchemySession, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql import func

from .helpers import utcnow

logger = logging.getLogger(__name__)

Base = declarative_base()


def make_engine(database_url: str) -> Engine:
    if not database_url.startswith("sqlite"):
        return create_engine(database_url, pool_pre_ping=True)
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session would see its own empty database
        return create_engine(database_url, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(
        database_url,
        connect_args={
            "check_same_thread": False,
            "timeout": 15
        }
    )


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def db_session_scope(session_factory: sessionmaker) -> Generator[SQLAlchemySession, None, None]:
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


# --- Database Models ---
class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, unique=True, index=True, nullable=False)
    email = Column(String, nullable=True)
    display_name = Column(String, nullable=True)
    avatar_url = Column(String, nullable=True)
    preferences = Column(JSON, nullable=False, default=dict)
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Profile(id={self.id}, user_id='{self.user_id}', email='{self.email}')>"


class FeedSubscription(Base):
    __tablename__ = "user_feeds"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    rss_url = Column(String, nullable=False)
    custom_name = Column(String, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "rss_url", name="uq_user_feeds_user_url"),
    )

    def __repr__(self):
        return f"<FeedSubscription(id={self.id}, user_id='{self.user_id}', rss_url='{self.rss_url}', active={self.active})>"


class ReadingHistoryEntry(Base):
    __tablename__ = "reading_history"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    article_url = Column(String, nullable=False)
    read_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    liked = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("user_id", "article_url", name="uq_reading_history_user_url"),
    )

    def __repr__(self):
        return f"<ReadingHistoryEntry(id={self.id}, user_id='{self.user_id}', article_url='{self.article_url}')>"


class SavedSummary(Base):
    __tablename__ = "user_summaries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    article_id = Column(String, nullable=False)
    article_title = Column(String, nullable=True)
    article_url = Column(String, nullable=True)
    summary = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True)

    def __repr__(self):
        return f"<SavedSummary(id={self.id}, user_id='{self.user_id}', text_start='{self.summary[:50]}...')>"


def _ensure_sqlite_directory(database_url: str) -> None:
    if database_url.startswith("sqlite:///./"):
        db_file_path = database_url.replace("sqlite:///./", "")
    elif database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
        db_file_path = database_url.replace("sqlite:///", "/")
    else:
        return
    db_dir = os.path.dirname(db_file_path)
    if db_dir and not os.path.exists(db_dir):
        try:
            os.makedirs(db_dir, exist_ok=True)
            logger.info(f"DATABASE: Created directory '{db_dir}' for SQLite database.")
        except OSError as e:
            logger.error(f"DATABASE: Error creating directory '{db_dir}': {e}. Database might fail to create if path is invalid.")


def create_db_and_tables(engine: Engine) -> None:
    logger.info("DATABASE: Attempting to create database tables...")
    _ensure_sqlite_directory(str(engine.url))
    Base.metadata.create_all(bind=engine)
    logger.info("DATABASE: Database tables created successfully (if they didn't exist).")
