# newsdigest/translator.py
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from . import config as app_config
from .errors import (
    AppError,
    AuthError,
    BadRequestError,
    NotConfiguredError,
    QuotaExceededError,
    RateLimitError,
    Result,
    TranslationError,
    UpstreamUnavailableError,
    ValidationError,
)
from .helpers import is_api_key_configured

logger = logging.getLogger(__name__)

DEEPL_FREE_API_URL = "https://api-free.deepl.com"
DEEPL_PRO_API_URL = "https://api.deepl.com"

# Served by /api/translate/languages when the provider is not reachable
FALLBACK_LANGUAGES: List[Dict[str, str]] = [
    {"language": "BG", "name": "Bulgarian"},
    {"language": "CS", "name": "Czech"},
    {"language": "DA", "name": "Danish"},
    {"language": "DE", "name": "German"},
    {"language": "EL", "name": "Greek"},
    {"language": "EN-GB", "name": "English (British)"},
    {"language": "EN-US", "name": "English (American)"},
    {"language": "ES", "name": "Spanish"},
    {"language": "FI", "name": "Finnish"},
    {"language": "FR", "name": "French"},
    {"language": "HU", "name": "Hungarian"},
    {"language": "IT", "name": "Italian"},
    {"language": "JA", "name": "Japanese"},
    {"language": "NL", "name": "Dutch"},
    {"language": "PL", "name": "Polish"},
    {"language": "PT-PT", "name": "Portuguese"},
    {"language": "RO", "name": "Romanian"},
    {"language": "RU", "name": "Russian"},
    {"language": "SK", "name": "Slovak"},
    {"language": "SV", "name": "Swedish"},
    {"language": "UK", "name": "Ukrainian"},
    {"language": "ZH", "name": "Chinese"},
]


@dataclass(frozen=True)
class Translation:
    text: str
    detected_source_lang: Optional[str]
    target_lang: str


class TranslationAdapter:
    """
    Thin wrapper over the DeepL REST API. Whether the adapter is usable is decided
    once, at construction, from the API key.
    """

    def __init__(
        self,
        api_key: Optional[str] = app_config.DEEPL_API_KEY,
        api_url: Optional[str] = app_config.DEEPL_API_URL,
        max_text_length: int = app_config.MAX_TEXT_LENGTH,
        default_target_lang: str = app_config.TRANSLATION_TARGET_LANG,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self.max_text_length = max_text_length
        self.default_target_lang = default_target_lang
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._configured = is_api_key_configured(api_key)
        if api_url:
            self.api_url = api_url.rstrip("/")
        elif api_key and api_key.endswith(":fx"):
            self.api_url = DEEPL_FREE_API_URL
        else:
            self.api_url = DEEPL_PRO_API_URL

        if self._configured:
            logger.info(f"TRANSLATOR: DeepL translation service initialized ({self.api_url}).")
        else:
            logger.warning("TRANSLATOR: DeepL API key not configured. Translation disabled.")

    def is_configured(self) -> bool:
        return self._configured

    def validate_text(self, text: Any) -> str:
        if not isinstance(text, str) or not text.strip():
            raise ValidationError("Text is required for translation", code="INVALID_TEXT")
        if len(text) > self.max_text_length:
            raise ValidationError(
                f"Text too long for translation (max {self.max_text_length} characters)",
                code="TEXT_TOO_LONG",
            )
        return text

    async def translate(self, text: str, target_lang: Optional[str] = None, source_lang: Optional[str] = None) -> Translation:
        if not self._configured:
            raise NotConfiguredError("Translation service not configured", code="TRANSLATION_NOT_CONFIGURED")
        self.validate_text(text)

        target_lang = (target_lang or self.default_target_lang).upper()
        payload: Dict[str, Any] = {"text": [text], "target_lang": target_lang}
        if source_lang:
            payload["source_lang"] = source_lang.upper()

        start_time = time.monotonic()
        logger.debug(f"TRANSLATOR: Translating {len(text)} chars ({source_lang or 'auto'} -> {target_lang})")
        body = await self._request("POST", "/v2/translate", json=payload)

        translations = body.get("translations") or []
        if not translations:
            raise TranslationError("Translation provider returned no translations")
        first = translations[0]
        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.debug(f"TRANSLATOR: Translation completed. {len(text)} -> {len(first.get('text', ''))} chars in {duration_ms}ms")
        return Translation(
            text=first.get("text", ""),
            detected_source_lang=first.get("detected_source_language"),
            target_lang=target_lang,
        )

    async def try_translate(self, text: str, target_lang: Optional[str] = None, source_lang: Optional[str] = None) -> Result[Translation]:
        try:
            return Result.success(await self.translate(text, target_lang, source_lang))
        except AppError as e:
            return Result.failure(e)

    async def get_usage(self) -> Optional[Dict[str, Any]]:
        if not self._configured:
            return None
        try:
            usage = await self._request("GET", "/v2/usage")
        except AppError as e:
            logger.error(f"TRANSLATOR: Failed to get DeepL usage: {e.message}")
            return None
        logger.debug(f"TRANSLATOR: DeepL usage retrieved: {usage}")
        return usage

    async def get_languages(self) -> List[Dict[str, str]]:
        if not self._configured:
            return FALLBACK_LANGUAGES
        try:
            languages = await self._request("GET", "/v2/languages", params={"type": "target"})
        except AppError as e:
            logger.warning(f"TRANSLATOR: Failed to get DeepL languages, using fallback list: {e.message}")
            return FALLBACK_LANGUAGES
        return [{"language": item.get("language"), "name": item.get("name")} for item in languages]

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        headers = {"Authorization": f"DeepL-Auth-Key {self._api_key}"}
        try:
            async with httpx.AsyncClient(base_url=self.api_url, timeout=self.timeout_seconds, transport=self._transport) as client:
                response = await client.request(method, path, headers=headers, **kwargs)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise self._map_status_error(e) from e
        except httpx.HTTPError as e:
            logger.error(f"TRANSLATOR: Network error calling DeepL {path}: {e}")
            raise UpstreamUnavailableError("Could not connect to translation provider", original_error=e) from e
        except ValueError as e:
            raise TranslationError("Translation provider returned invalid JSON", original_error=e) from e

    @staticmethod
    def _map_status_error(e: httpx.HTTPStatusError) -> AppError:
        status = e.response.status_code
        logger.error(f"TRANSLATOR: DeepL HTTP {status}: {e.response.text[:200]}")
        if status in (401, 403):
            return AuthError("Invalid DeepL API key", original_error=e)
        if status == 456:
            return QuotaExceededError("DeepL translation quota exceeded", original_error=e)
        if status == 429:
            return RateLimitError("Too many requests to DeepL", original_error=e)
        if status == 400:
            return BadRequestError("Invalid translation parameters", original_error=e)
        if status >= 500:
            return UpstreamUnavailableError("Translation provider unavailable", original_error=e)
        return TranslationError(original_error=e)
