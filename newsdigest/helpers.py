# newsdigest/helpers.py
import hashlib
import html
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

_PLACEHOLDER_KEYS = {"your_deepl_key_here", "your_gemini_key_here", "your_openai_key_here"}
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_url(url: str) -> str:
    """
    Canonical form used for cache fingerprints: trimmed, lower-case scheme and
    host, no fragment. Path and query are kept as-is.
    """
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, ""))


def generate_cache_key(url: str, prefix: str = "rss") -> str:
    digest = hashlib.md5(normalize_url(url).encode("utf-8")).hexdigest()
    return f"{prefix}:{digest}"


def strip_html(text: Optional[str]) -> str:
    if not text:
        return ""
    return _WS_RE.sub(" ", html.unescape(_TAG_RE.sub(" ", text))).strip()


def truncate_text(text: Optional[str], max_length: int = 200) -> Optional[str]:
    if not text or len(text) <= max_length:
        return text
    return text[:max_length].strip() + "..."


def is_api_key_configured(api_key: Optional[str]) -> bool:
    return bool(api_key) and api_key not in _PLACEHOLDER_KEYS and len(api_key) > 10


def create_response(
    success: bool,
    data: Any = None,
    error: Optional[Dict[str, Any]] = None,
    **metadata: Any,
) -> Dict[str, Any]:
    """Builds the standard response envelope."""
    body: Dict[str, Any] = {
        "success": success,
        "timestamp": utcnow().isoformat().replace("+00:00", "Z"),
        **metadata,
    }
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    return body
