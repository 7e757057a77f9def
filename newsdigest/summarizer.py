# newsdigest/summarizer.py
import asyncio
import logging
import time
from typing import Any, Optional

from google.genai import errors as genai_errors
from langchain_core.exceptions import (
    ModelAPIError,
    ModelAuthenticationError,
    ModelConnectionError,
    ModelPermissionDeniedError,
    ModelRateLimitError,
    ModelTimeoutError,
)
from langchain_core.prompts import PromptTemplate
from langchain_google_genai import GoogleGenerativeAI

from . import config as app_config
from .errors import (
    AppError,
    AuthError,
    EmptyResponseError,
    NotConfiguredError,
    ProviderTimeoutError,
    QuotaExceededError,
    RateLimitError,
    Result,
    SummarizationError,
    UpstreamUnavailableError,
    ValidationError,
)
from .helpers import is_api_key_configured

logger = logging.getLogger(__name__)


# --- LLM Initialization ---
def initialize_llm(
    api_key: str,
    model_name: str,
    temperature: float = 0.3,
    max_output_tokens: int = app_config.SUMMARY_MAX_OUTPUT_TOKENS,
    timeout_seconds: float = app_config.SUMMARY_TIMEOUT_SECONDS,
) -> Optional[GoogleGenerativeAI]:
    """
    Initializes a GoogleGenerativeAI LLM instance.
    """
    try:
        llm = GoogleGenerativeAI(
            model=model_name,
            google_api_key=api_key,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            timeout=timeout_seconds,
            max_retries=1,
        )
        logger.info(f"SUMMARIZER: Initialized LLM {model_name} with max_output_tokens: {max_output_tokens}")
        return llm
    except Exception as e:
        logger.error(f"SUMMARIZER: Error initializing LLM {model_name}: {e}", exc_info=True)
        return None


def get_summarization_prompt_template(custom_prompt_str: Optional[str] = None) -> PromptTemplate:
    """
    Returns the PromptTemplate for summarization.
    A custom prompt is used only if it carries all of {title}, {content} and {language}.
    """
    required = ("{title}", "{content}", "{language}")
    if custom_prompt_str and all(placeholder in custom_prompt_str for placeholder in required):
        template_str = custom_prompt_str
    else:
        if custom_prompt_str:
            logger.warning("SUMMARIZER: Custom summary prompt is missing placeholders. Using default prompt.")
        template_str = app_config.DEFAULT_SUMMARY_PROMPT
    return PromptTemplate(template=template_str, input_variables=["title", "content", "language"])


def _find_provider_error(e: BaseException) -> Optional[genai_errors.APIError]:
    """First google-genai APIError in the exception chain, if any."""
    seen = set()
    while e is not None and id(e) not in seen:
        seen.add(id(e))
        if isinstance(e, genai_errors.APIError):
            return e
        e = e.__cause__ or e.__context__
    return None


def _map_llm_error(e: BaseException) -> AppError:
    if isinstance(e, (asyncio.TimeoutError, ModelTimeoutError)):
        return ProviderTimeoutError("Timed out while generating summary", original_error=e)

    provider_error = _find_provider_error(e)
    status = int(provider_error.code) if provider_error is not None and provider_error.code else None
    message = str(e) if provider_error is None or provider_error is e else f"{e} {provider_error}"

    if isinstance(e, ModelRateLimitError) or status == 429:
        if "quota" in message.lower():
            return QuotaExceededError("Summarization API quota exceeded", original_error=e)
        return RateLimitError("Summarization API rate limit reached", original_error=e)
    if isinstance(e, (ModelAuthenticationError, ModelPermissionDeniedError)) or status in (401, 403):
        return AuthError("Invalid summarization API key", original_error=e)
    # an invalid key comes back as 400 INVALID_ARGUMENT
    if "API key not valid" in message or "API_KEY_INVALID" in message:
        return AuthError("Invalid summarization API key", original_error=e)
    if isinstance(e, (ModelAPIError, ModelConnectionError)) or (status is not None and status >= 500):
        return UpstreamUnavailableError("Summarization provider unavailable", original_error=e)
    return SummarizationError(original_error=e)


class SummarizationAdapter:
    """
    Produces 2-3 sentence summaries in a fixed language through a single LLM
    completion. `llm` is any object with an async `ainvoke(prompt)`; when it is
    not given, a Gemini model is built from the API key.
    """

    def __init__(
        self,
        api_key: Optional[str] = app_config.GEMINI_API_KEY,
        model_name: str = app_config.DEFAULT_SUMMARY_MODEL_NAME,
        language: str = app_config.SUMMARY_LANGUAGE,
        max_output_tokens: int = app_config.SUMMARY_MAX_OUTPUT_TOKENS,
        timeout_seconds: float = app_config.SUMMARY_TIMEOUT_SECONDS,
        llm: Any = None,
        custom_prompt: Optional[str] = None,
    ):
        self.model_name = model_name
        self.language = language
        self.timeout_seconds = timeout_seconds
        self._prompt_template = get_summarization_prompt_template(custom_prompt)
        if llm is None and is_api_key_configured(api_key):
            llm = initialize_llm(api_key, model_name, max_output_tokens=max_output_tokens, timeout_seconds=timeout_seconds)
        self._llm = llm

        if self._llm is None:
            logger.warning("SUMMARIZER: Summarization LLM not configured. Summaries disabled.")

    def is_configured(self) -> bool:
        return self._llm is not None

    async def summarize(self, title: Optional[str], content: Optional[str]) -> str:
        if self._llm is None:
            raise NotConfiguredError("Summary service not configured", code="SUMMARIZATION_NOT_CONFIGURED")
        if not (title and title.strip()) and not (content and content.strip()):
            raise ValidationError("No content provided for summarization", code="EMPTY_CONTENT")

        formatted_prompt = await self._prompt_template.aformat(
            title=title or "(no title)",
            content=content or "(no content)",
            language=self.language,
        )
        start_time = time.monotonic()
        try:
            response_obj = await asyncio.wait_for(self._llm.ainvoke(formatted_prompt), timeout=self.timeout_seconds)
        except Exception as e:
            mapped = _map_llm_error(e)
            logger.error(f"SUMMARIZER: Summary generation failed ({mapped.code}): {e}")
            raise mapped from e

        summary = response_obj if isinstance(response_obj, str) else getattr(response_obj, "content", None) or getattr(response_obj, "text", "")
        summary = (summary or "").strip()
        if not summary:
            logger.warning(f"SUMMARIZER: Empty summary received from LLM for '{(title or '')[:60]}'")
            raise EmptyResponseError()

        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.debug(f"SUMMARIZER: Summary generated ({len(summary)} chars) in {duration_ms}ms")
        return summary

    async def try_summarize(self, title: Optional[str], content: Optional[str]) -> Result[str]:
        try:
            return Result.success(await self.summarize(title, content))
        except AppError as e:
            return Result.failure(e)
