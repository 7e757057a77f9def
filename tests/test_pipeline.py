import httpx
import pytest
from langchain_google_genai.chat_models import GoogleAuthenticationError

from newsdigest import config as app_config
from newsdigest.errors import FetchError
from newsdigest.pipeline import FeedProcessor
from newsdigest.rss_client import FeedFetcher
from newsdigest.summarizer import SummarizationAdapter
from newsdigest.translator import TranslationAdapter

from support import (
    BBC_URL,
    GUARDIAN_URL,
    TECH_URL,
    FakeLLM,
    Upstream,
    deepl_upstream,
    feed_upstream,
    make_item,
    make_rss,
    numbered_items,
)

KEY = "test-deepl-key:fx"


def make_processor(cache, feeds, deepl=None, llm=None):
    translator = TranslationAdapter(
        api_key=KEY if deepl is not None else None,
        api_url=None,
        transport=deepl.transport if deepl is not None else None,
    )
    summarizer = SummarizationAdapter(api_key=None, llm=llm)
    return FeedProcessor(FeedFetcher(cache, transport=feeds.transport), translator, summarizer)


async def test_process_feed_translates_and_summarizes(cache):
    feeds = feed_upstream({BBC_URL: make_rss(numbered_items("world", 2), title="BBC World")})
    processor = make_processor(cache, feeds, deepl_upstream(), FakeLLM(response="Podsumowanie."))

    result = await processor.process_feed(BBC_URL)

    assert result.feed_title == "BBC World"
    article = result.articles[0]
    assert article.original_title == "world story 0"
    assert article.translated_title == "PL:world story 0"
    assert article.translated_content == "PL:Body of world story 0."
    assert article.summary == "Podsumowanie."
    assert article.summarized is True
    assert result.warnings == []


async def test_only_first_five_entries_are_processed(cache):
    feeds = feed_upstream({BBC_URL: make_rss(numbered_items("world", 6))})
    processor = make_processor(cache, feeds)
    result = await processor.process_feed(BBC_URL)
    assert len(result.articles) == 5


async def test_unconfigured_providers_yield_placeholder_without_network(cache):
    feeds = feed_upstream({BBC_URL: make_rss(numbered_items("world", 2))})
    never_called = Upstream(lambda request: pytest.fail("translation provider must not be called"))
    translator = TranslationAdapter(api_key=None, transport=never_called.transport)
    processor = FeedProcessor(FeedFetcher(cache, transport=feeds.transport), translator, SummarizationAdapter(api_key=None))

    result = await processor.process_feed(BBC_URL)

    assert all(article.summary == app_config.SUMMARY_PLACEHOLDER for article in result.articles)
    assert all(article.translated_title == article.original_title for article in result.articles)
    assert never_called.calls == 0
    assert processor.services_used() == {"translation": False, "summarization": False}


async def test_failing_article_does_not_affect_the_others(cache):
    items = [
        make_item("fine first", "ok body", "https://example.com/1", "2024-01-03T10:00:00Z"),
        make_item("boom story", "bad body", "https://example.com/2", "2024-01-02T10:00:00Z"),
        make_item("explode story", "worse body", "https://example.com/3", "2024-01-01T10:00:00Z"),
        make_item("fine last", "ok body", "https://example.com/4", "2023-12-31T10:00:00Z"),
    ]
    feeds = feed_upstream({BBC_URL: make_rss(items)})
    processor = make_processor(cache, feeds, deepl_upstream(), FakeLLM())

    result = await processor.process_feed(BBC_URL)

    titles = [article.original_title for article in result.articles]
    # translation failure keeps originals; an unexpected error drops the article
    assert titles == ["fine first", "boom story", "fine last"]
    degraded = result.articles[1]
    assert degraded.translated_title == "boom story"
    assert degraded.translated_content == "bad body"
    assert result.articles[0].translated_title == "PL:fine first"
    assert result.articles[2].translated_title == "PL:fine last"
    assert len(result.warnings) == 2


async def test_summary_failure_uses_placeholder(cache):
    feeds = feed_upstream({BBC_URL: make_rss(numbered_items("world", 2))})
    processor = make_processor(cache, feeds, llm=FakeLLM(response=""))
    result = await processor.process_feed(BBC_URL)
    assert [article.summary for article in result.articles] == [app_config.SUMMARY_PLACEHOLDER] * 2
    assert len(result.warnings) == 2


async def test_quota_failure_disables_stage_for_rest_of_feed(cache):
    feeds = feed_upstream({BBC_URL: make_rss(numbered_items("world", 4))})
    quota = Upstream(lambda request: httpx.Response(456, text="quota"))
    processor = make_processor(cache, feeds, deepl=quota)

    result = await processor.process_feed(BBC_URL)

    assert quota.calls == 1
    assert len(result.articles) == 4
    assert all(article.translated_title == article.original_title for article in result.articles)


async def test_summarization_auth_failure_disables_stage_for_rest_of_feed(cache):
    feeds = feed_upstream({BBC_URL: make_rss(numbered_items("world", 4))})
    llm = FakeLLM(error=GoogleAuthenticationError("Error calling model 'gemini' (UNAUTHENTICATED): 401 UNAUTHENTICATED"))
    processor = make_processor(cache, feeds, llm=llm)

    result = await processor.process_feed(BBC_URL)

    assert len(llm.prompts) == 1
    assert [article.summary for article in result.articles] == [app_config.SUMMARY_PLACEHOLDER] * 4


async def test_process_feed_bypasses_cache(cache):
    feeds = feed_upstream({BBC_URL: make_rss(numbered_items("world", 1))})
    processor = make_processor(cache, feeds)
    await processor.process_feed(BBC_URL)
    await processor.process_feed(BBC_URL)
    assert feeds.calls == 2


async def test_feed_fetch_failure_propagates(cache):
    processor = make_processor(cache, feed_upstream({}))
    with pytest.raises(FetchError):
        await processor.process_feed(BBC_URL)


async def test_digest_merges_sorts_and_caps(cache):
    feeds = feed_upstream({
        BBC_URL: make_rss(numbered_items("world", 3, first_day=1)),
        TECH_URL: make_rss(numbered_items("tech", 2, first_day=10)),
    })
    processor = make_processor(cache, feeds, llm=FakeLLM())

    digest = await processor.build_digest([BBC_URL, TECH_URL, GUARDIAN_URL], max_articles=3)

    assert [article.original_title for article in digest.articles] == [
        "tech story 1",
        "tech story 0",
        "world story 2",
    ]
    assert digest.feeds_processed == 2
    assert [failure.feed_url for failure in digest.feed_errors] == [GUARDIAN_URL]


async def test_digest_defaults_to_configured_article_cap(cache):
    feeds = feed_upstream({
        BBC_URL: make_rss(numbered_items("world", 5, first_day=1)),
        TECH_URL: make_rss(numbered_items("tech", 5, first_day=10)),
    })
    processor = make_processor(cache, feeds)
    digest = await processor.build_digest([BBC_URL, TECH_URL])
    assert len(digest.articles) == app_config.MAX_ARTICLES


async def test_digest_without_transforms_reads_through_cache(cache):
    feeds = feed_upstream({BBC_URL: make_rss(numbered_items("world", 2))})
    processor = make_processor(cache, feeds)
    await processor.build_digest([BBC_URL], translate=False, summarize=False)
    await processor.build_digest([BBC_URL], translate=False, summarize=False)
    assert feeds.calls == 1


async def test_digest_processes_at_most_five_feeds(cache):
    urls = [f"https://feeds.bbci.co.uk/news/{i}/rss.xml" for i in range(7)]
    feeds = feed_upstream({url: make_rss(numbered_items(f"f{i}", 1)) for i, url in enumerate(urls)})
    processor = make_processor(cache, feeds)
    digest = await processor.build_digest(urls)
    assert feeds.calls == 5
    assert digest.feeds_processed == 5
