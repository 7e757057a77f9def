import pytest

from newsdigest.errors import ForbiddenDomainError, RateLimitError, ValidationError
from newsdigest.security import RateLimiter, validate_feed_url


def test_limit_is_per_key_and_resets_with_the_window(clock):
    limiter = RateLimiter(window_seconds=60, max_requests=2, clock=clock)
    assert limiter.hit("user:a") == 1
    assert limiter.hit("user:a") == 0
    with pytest.raises(RateLimitError) as exc_info:
        limiter.hit("user:a")
    assert exc_info.value.retry_after == 60
    assert limiter.hit("user:b") == 1

    clock.advance(60)
    assert limiter.hit("user:a") == 1


def test_expired_windows_are_dropped_on_later_hits(clock):
    limiter = RateLimiter(window_seconds=60, max_requests=5, clock=clock)
    for n in range(100):
        limiter.hit(f"ip:10.0.0.{n}")
    assert limiter.tracked_keys() == 100

    clock.advance(61)
    limiter.hit("ip:10.0.1.1")

    assert limiter.tracked_keys() == 1


def test_sweep_keeps_live_windows(clock):
    limiter = RateLimiter(window_seconds=60, max_requests=5, clock=clock)
    limiter.hit("user:old")
    clock.advance(30)
    limiter.hit("user:new")
    clock.advance(30)

    assert limiter.sweep() == 1
    assert limiter.tracked_keys() == 1
    assert limiter.hit("user:new") == 3


def test_feed_url_allow_list():
    allowed = ["bbci.co.uk", "techcrunch.com"]
    assert validate_feed_url(" https://feeds.bbci.co.uk/news/rss.xml ", allowed) == "https://feeds.bbci.co.uk/news/rss.xml"
    with pytest.raises(ForbiddenDomainError):
        validate_feed_url("https://notbbci.co.uk/rss", allowed)
    with pytest.raises(ValidationError):
        validate_feed_url("ftp://techcrunch.com/feed", allowed)
