"""Shared test fixtures for newsdigest tests."""

import pytest
from fastapi.testclient import TestClient

from newsdigest.auth import IdentityProvider
from newsdigest.cache import TTLCache
from newsdigest.config import Settings
from newsdigest.database import create_db_and_tables, make_engine, make_session_factory
from newsdigest.main_api import create_app
from newsdigest.rss_client import FeedFetcher
from newsdigest.security import RateLimiter
from newsdigest.summarizer import SummarizationAdapter
from newsdigest.translator import TranslationAdapter
from newsdigest.user_service import UserDataService

from support import (
    BBC_URL,
    TECH_URL,
    FakeClock,
    FakeLLM,
    deepl_upstream,
    feed_upstream,
    identity_upstream,
    make_rss,
    numbered_items,
)

DEEPL_TEST_KEY = "test-deepl-key:fx"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return TTLCache(default_ttl=300, clock=clock)


@pytest.fixture
def engine():
    # StaticPool keeps a single in-memory SQLite database for the whole test
    engine = make_engine("sqlite://")
    create_db_and_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def user_service(session_factory):
    return UserDataService(session_factory)


@pytest.fixture
def feeds():
    return feed_upstream({
        BBC_URL: make_rss(numbered_items("world", 3, first_day=1), title="BBC World"),
        TECH_URL: make_rss(numbered_items("tech", 3, first_day=10), title="TechCrunch"),
    })


@pytest.fixture
def deepl():
    return deepl_upstream()


@pytest.fixture
def identity():
    return identity_upstream()


@pytest.fixture
def llm():
    return FakeLLM()


@pytest.fixture
def settings():
    return Settings(
        app_env="test",
        database_url="sqlite://",
        deepl_api_key=DEEPL_TEST_KEY,
        supabase_url="https://auth.example.test",
        supabase_anon_key="anon-key-for-tests",
        supabase_service_key=None,
        cors_origins=["http://localhost:3000"],
        rate_limit_max=100,
        default_feed_urls=[BBC_URL],
    )


@pytest.fixture
def app(settings, engine, cache, feeds, deepl, identity, llm):
    return create_app(
        settings,
        engine=engine,
        cache=cache,
        fetcher=FeedFetcher(cache, max_articles=settings.max_articles, transport=feeds.transport),
        translator=TranslationAdapter(api_key=DEEPL_TEST_KEY, api_url=None, transport=deepl.transport),
        summarizer=SummarizationAdapter(llm=llm),
        identity_provider=IdentityProvider(
            url=settings.supabase_url,
            anon_key=settings.supabase_anon_key,
            service_key=None,
            transport=identity.transport,
        ),
        rate_limiter=RateLimiter(settings.rate_limit_window_seconds, settings.rate_limit_max),
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
