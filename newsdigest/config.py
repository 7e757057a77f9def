# newsdigest/config.py
import os
import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv() # Load environment variables from .env file

logger = logging.getLogger(__name__)


def _int_from_env(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, default))
    except ValueError:
        logger.warning(f"CONFIG: Invalid {name} in .env. Using default {default}.")
        return default


def _float_from_env(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, default))
    except ValueError:
        logger.warning(f"CONFIG: Invalid {name} in .env. Using default {default}.")
        return default


def _list_from_env(name: str, default: List[str]) -> List[str]:
    """
    Reads a list either as a JSON array or as a comma-separated string.
    Falls back to `default` when the variable is unset or unparseable.
    """
    raw = os.getenv(name, "")
    if raw.strip().startswith("[") and raw.strip().endswith("]"):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"CONFIG: {name} in .env ('{raw}') is not valid JSON. Falling back to defaults.")
            return list(default)
        if not isinstance(parsed, list):
            logger.warning(f"CONFIG: {name} from .env (JSON) did not parse as a list. Falling back to defaults.")
            return list(default)
        return [str(item).strip() for item in parsed if str(item).strip()]
    if raw:
        return [item.strip() for item in raw.split(",") if item.strip()]
    return list(default)


# --- Environment ---
PORT = _int_from_env("PORT", 3000)
APP_ENV = os.getenv("APP_ENV", "development").lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# --- Database Configuration ---
SQLITE_DB_SUBDIR = "data"
SQLITE_DB_FILE = "newsdigest.db"
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///./{SQLITE_DB_SUBDIR}/{SQLITE_DB_FILE}")

# --- Translation (DeepL) ---
DEEPL_API_KEY = os.getenv("DEEPL_API_KEY")
DEEPL_API_URL = os.getenv("DEEPL_API_URL")  # derived from the key type when unset
TRANSLATION_TARGET_LANG = os.getenv("TRANSLATION_TARGET_LANG", "PL").upper()

# --- Summarization (Gemini via langchain) ---
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
DEFAULT_SUMMARY_MODEL_NAME = os.getenv("DEFAULT_SUMMARY_MODEL_NAME", "gemini-1.5-flash-latest")
SUMMARY_LANGUAGE = os.getenv("SUMMARY_LANGUAGE", "Polish")
SUMMARY_MAX_OUTPUT_TOKENS = _int_from_env("SUMMARY_MAX_OUTPUT_TOKENS", 256)
SUMMARY_TIMEOUT_SECONDS = _float_from_env("SUMMARY_TIMEOUT_SECONDS", 30.0)

# --- Identity provider (Supabase auth) ---
SUPABASE_URL = (os.getenv("SUPABASE_URL") or "").rstrip("/")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY")
AUTH_TIMEOUT_SECONDS = _float_from_env("AUTH_TIMEOUT_SECONDS", 10.0)

# --- HTTP surface ---
CORS_ORIGINS = _list_from_env(
    "CORS_ORIGINS",
    ["https://yourdomain.com"] if APP_ENV == "production" else ["http://localhost:3000"],
)
RATE_LIMIT_WINDOW_SECONDS = _int_from_env("RATE_LIMIT_WINDOW_SECONDS", 15 * 60)
RATE_LIMIT_MAX = _int_from_env("RATE_LIMIT_MAX", 50 if APP_ENV == "production" else 100)

# --- Feed behaviour ---
CACHE_TTL = _int_from_env("CACHE_TTL", 300)
MAX_ARTICLES = _int_from_env("MAX_ARTICLES", 6)
MAX_TEXT_LENGTH = _int_from_env("MAX_TEXT_LENGTH", 1000)
MAX_FEED_SIZE_BYTES = _int_from_env("MAX_FEED_SIZE_BYTES", 5 * 1024 * 1024)
FEED_TIMEOUT_SECONDS = _float_from_env("FEED_TIMEOUT_SECONDS", 10.0)
FEED_MAX_REDIRECTS = _int_from_env("FEED_MAX_REDIRECTS", 5)
SYNOPSIS_MAX_LENGTH = 200
PIPELINE_MAX_ENTRIES = 5
DIGEST_MAX_FEEDS = 5

ALLOWED_FEED_DOMAINS = _list_from_env(
    "ALLOWED_FEED_DOMAINS",
    [
        "feeds.bbci.co.uk",
        "rss.cnn.com",
        "feeds.reuters.com",
        "www.theguardian.com",
        "techcrunch.com",
    ],
)
DEFAULT_FEED_URLS = _list_from_env("DEFAULT_FEED_URLS", ["https://feeds.bbci.co.uk/news/world/rss.xml"])

USER_AGENT = "Mozilla/5.0 (compatible; newsdigest/1.0; +https://github.com/newsdigest)"

SUMMARY_PLACEHOLDER = "Summary unavailable"

# Default AI Prompt
DEFAULT_SUMMARY_PROMPT = os.getenv("DEFAULT_SUMMARY_PROMPT", """You are a helpful assistant that writes short, objective summaries of news articles.
Write a summary of 2-3 sentences of the article below, in {language}.
Keep only the most important information.

Title: {title}
Content: {content}

Summary:""")

# Default profile values for newly created users
DEFAULT_PREFERENCES = {
    "language": "pl",
    "max_articles": MAX_ARTICLES,
    "auto_translate": True,
    "auto_summarize": True,
    "max_translation_length": MAX_TEXT_LENGTH,
}
DEFAULT_SETTINGS = {
    "theme": "light",
    "notifications": True,
}


@dataclass
class Settings:
    """
    Runtime settings handed to the app factory. Defaults mirror the module-level
    values loaded from the environment, so `Settings()` is the production config
    and tests override only what they need.
    """
    app_env: str = APP_ENV
    database_url: str = DATABASE_URL
    deepl_api_key: Optional[str] = DEEPL_API_KEY
    deepl_api_url: Optional[str] = DEEPL_API_URL
    translation_target_lang: str = TRANSLATION_TARGET_LANG
    gemini_api_key: Optional[str] = GEMINI_API_KEY
    summary_model_name: str = DEFAULT_SUMMARY_MODEL_NAME
    summary_language: str = SUMMARY_LANGUAGE
    summary_max_output_tokens: int = SUMMARY_MAX_OUTPUT_TOKENS
    summary_timeout_seconds: float = SUMMARY_TIMEOUT_SECONDS
    supabase_url: str = SUPABASE_URL
    supabase_anon_key: Optional[str] = SUPABASE_ANON_KEY
    supabase_service_key: Optional[str] = SUPABASE_SERVICE_KEY
    auth_timeout_seconds: float = AUTH_TIMEOUT_SECONDS
    cors_origins: List[str] = field(default_factory=lambda: list(CORS_ORIGINS))
    rate_limit_window_seconds: int = RATE_LIMIT_WINDOW_SECONDS
    rate_limit_max: int = RATE_LIMIT_MAX
    cache_ttl: int = CACHE_TTL
    max_articles: int = MAX_ARTICLES
    max_text_length: int = MAX_TEXT_LENGTH
    max_feed_size_bytes: int = MAX_FEED_SIZE_BYTES
    feed_timeout_seconds: float = FEED_TIMEOUT_SECONDS
    feed_max_redirects: int = FEED_MAX_REDIRECTS
    allowed_feed_domains: List[str] = field(default_factory=lambda: list(ALLOWED_FEED_DOMAINS))
    default_feed_urls: List[str] = field(default_factory=lambda: list(DEFAULT_FEED_URLS))

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


if not DEEPL_API_KEY:
    logger.warning("CONFIG: DEEPL_API_KEY environment variable is not set. Translation will be disabled.")
if not GEMINI_API_KEY:
    logger.warning("CONFIG: GEMINI_API_KEY environment variable is not set. Summaries will be disabled.")

logger.info(f"CONFIG LOADED: APP_ENV: {APP_ENV}")
logger.info(f"CONFIG LOADED: DATABASE_URL: {DATABASE_URL}")
logger.info(f"CONFIG LOADED: DEEPL_API_KEY Set: {'Yes' if DEEPL_API_KEY else 'NO'}")
logger.info(f"CONFIG LOADED: GEMINI_API_KEY Set: {'Yes' if GEMINI_API_KEY else 'NO'}")
logger.info(f"CONFIG LOADED: SUPABASE_URL Set: {'Yes' if SUPABASE_URL else 'NO'}")
logger.info(f"CONFIG LOADED: ALLOWED_FEED_DOMAINS: {ALLOWED_FEED_DOMAINS}")
logger.info(f"CONFIG LOADED: DEFAULT_FEED_URLS: {DEFAULT_FEED_URLS}")
logger.info(f"CONFIG LOADED: MAX_ARTICLES: {MAX_ARTICLES}, CACHE_TTL: {CACHE_TTL}s")
