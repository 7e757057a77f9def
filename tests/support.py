"""Fakes and builders shared by the test modules."""

import asyncio
import json
from typing import Callable, Dict, Iterable, List, Optional

import httpx

BBC_URL = "https://feeds.bbci.co.uk/news/world/rss.xml"
TECH_URL = "https://techcrunch.com/feed/"
GUARDIAN_URL = "https://www.theguardian.com/world/rss"


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Upstream:
    """httpx.MockTransport that records every request it serves."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []
        self._handler = handler
        self.transport = httpx.MockTransport(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._handler(request)

    @property
    def calls(self) -> int:
        return len(self.requests)


def make_item(title: str, description: Optional[str], link: str, pub_date: str) -> Dict[str, Optional[str]]:
    return {"title": title, "description": description, "link": link, "pub_date": pub_date}


def make_rss(items: Iterable[Dict[str, Optional[str]]], title: str = "Test Feed", link: str = "https://example.com/") -> bytes:
    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0"><channel>',
        f"<title>{title}</title><link>{link}</link><description>Test</description>",
    ]
    for item in items:
        parts.append("<item>")
        parts.append(f"<title>{item['title']}</title>")
        parts.append(f"<link>{item['link']}</link>")
        if item.get("description") is not None:
            parts.append(f"<description>{item['description']}</description>")
        parts.append(f"<pubDate>{item['pub_date']}</pubDate>")
        parts.append("</item>")
    parts.append("</channel></rss>")
    return "".join(parts).encode("utf-8")


def numbered_items(prefix: str, count: int, first_day: int = 1) -> List[Dict[str, Optional[str]]]:
    return [
        make_item(
            f"{prefix} story {i}",
            f"Body of {prefix} story {i}.",
            f"https://example.com/{prefix}/{i}",
            f"2024-01-{first_day + i:02d}T10:00:00Z",
        )
        for i in range(count)
    ]


def feed_upstream(feeds: Dict[str, bytes]) -> Upstream:
    def handler(request: httpx.Request) -> httpx.Response:
        body = feeds.get(str(request.url))
        if body is None:
            return httpx.Response(404, text="not found")
        return httpx.Response(200, content=body, headers={"Content-Type": "application/rss+xml"})

    return Upstream(handler)


def deepl_upstream(fail_marker: str = "boom", explode_marker: str = "explode") -> Upstream:
    """
    Translates by prefixing "PL:". Text containing `fail_marker` gets a 503,
    text containing `explode_marker` raises a non-HTTP error inside the client.
    """
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/v2/usage":
            return httpx.Response(200, json={"character_count": 1200, "character_limit": 500000})
        if request.url.path == "/v2/languages":
            return httpx.Response(200, json=[{"language": "PL", "name": "Polish"}, {"language": "DE", "name": "German"}])
        text = json.loads(request.content)["text"][0]
        if explode_marker in text:
            raise RuntimeError("unexpected translator failure")
        if fail_marker in text:
            return httpx.Response(503, text="unavailable")
        return httpx.Response(200, json={"translations": [{"detected_source_language": "EN", "text": f"PL:{text}"}]})

    return Upstream(handler)


USERS = {
    "good-token": {"id": "user-1", "email": "alice@example.com", "user_metadata": {"full_name": "Alice Example"}},
    "other-token": {"id": "user-2", "email": "bob@example.com", "user_metadata": {}},
}


def identity_upstream() -> Upstream:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "DELETE":
            return httpx.Response(200, json={})
        token = request.headers.get("Authorization", "").replace("Bearer ", "")
        user = USERS.get(token)
        if user is None:
            return httpx.Response(401, json={"msg": "invalid JWT"})
        return httpx.Response(200, json=user)

    return Upstream(handler)


class FakeLLM:
    """Stands in for the Gemini client: an object with an async `ainvoke`."""

    def __init__(self, response="Krótkie podsumowanie artykułu.", error: Optional[BaseException] = None, delay: float = 0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.prompts: List[str] = []

    async def ainvoke(self, prompt):
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


def auth_headers(token: str = "good-token") -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
