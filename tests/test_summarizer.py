import pytest
from google.genai import errors as genai_errors
from langchain_google_genai.chat_models import (
    ChatGoogleGenerativeAIError,
    GoogleAuthenticationError,
    GooglePermissionDeniedError,
    GoogleRateLimitError,
)

from newsdigest.errors import (
    AuthError,
    EmptyResponseError,
    ErrorKind,
    NotConfiguredError,
    ProviderTimeoutError,
    QuotaExceededError,
    RateLimitError,
    SummarizationError,
    UpstreamUnavailableError,
    ValidationError,
)
from newsdigest.summarizer import SummarizationAdapter

from support import FakeLLM


async def test_summary_is_stripped_and_prompt_carries_inputs():
    llm = FakeLLM(response="  Two sentences about the story.  ")
    adapter = SummarizationAdapter(llm=llm, language="Polish")

    summary = await adapter.summarize("Storm hits coast", "Heavy rain was reported.")

    assert summary == "Two sentences about the story."
    assert "Storm hits coast" in llm.prompts[0]
    assert "Heavy rain was reported." in llm.prompts[0]
    assert "Polish" in llm.prompts[0]


async def test_message_like_response_is_accepted():
    class Message:
        content = "From a chat model."

    adapter = SummarizationAdapter(llm=FakeLLM(response=Message()))
    assert await adapter.summarize("Title", None) == "From a chat model."


async def test_unconfigured_adapter_raises_not_configured():
    adapter = SummarizationAdapter(api_key=None)
    assert adapter.is_configured() is False
    with pytest.raises(NotConfiguredError):
        await adapter.summarize("Title", "Content")


async def test_title_or_content_required():
    llm = FakeLLM()
    with pytest.raises(ValidationError):
        await SummarizationAdapter(llm=llm).summarize("", "  ")
    assert llm.prompts == []


async def test_empty_completion_raises_empty_response():
    with pytest.raises(EmptyResponseError) as exc_info:
        await SummarizationAdapter(llm=FakeLLM(response="   ")).summarize("Title", "Content")
    assert exc_info.value.kind == ErrorKind.EMPTY_RESPONSE


async def test_slow_completion_times_out():
    adapter = SummarizationAdapter(llm=FakeLLM(delay=1.0), timeout_seconds=0.01)
    with pytest.raises(ProviderTimeoutError):
        await adapter.summarize("Title", "Content")


def _google_error(error_class, code, status, message):
    return error_class(code, {"error": {"code": code, "message": message, "status": status}})


def _chained(error, cause):
    try:
        raise error from cause
    except Exception as e:
        return e


@pytest.mark.parametrize("provider_error, expected", [
    (_google_error(genai_errors.ClientError, 429, "RESOURCE_EXHAUSTED", "You exceeded your current quota."), QuotaExceededError),
    (_google_error(genai_errors.ClientError, 429, "RESOURCE_EXHAUSTED", "Resource has been exhausted."), RateLimitError),
    (_google_error(genai_errors.ClientError, 403, "PERMISSION_DENIED", "Permission denied."), AuthError),
    (_google_error(genai_errors.ClientError, 400, "INVALID_ARGUMENT", "API key not valid. Please pass a valid API key."), AuthError),
    (_google_error(genai_errors.ServerError, 503, "UNAVAILABLE", "The model is overloaded."), UpstreamUnavailableError),
    (GoogleAuthenticationError("Error calling model 'gemini' (UNAUTHENTICATED): 401 UNAUTHENTICATED"), AuthError),
    (GooglePermissionDeniedError("Error calling model 'gemini' (PERMISSION_DENIED): 403"), AuthError),
    (GoogleRateLimitError("Error calling model 'gemini' (RESOURCE_EXHAUSTED): 429 RESOURCE_EXHAUSTED"), RateLimitError),
    (RuntimeError("something else"), SummarizationError),
])
async def test_provider_error_mapping(provider_error, expected):
    adapter = SummarizationAdapter(llm=FakeLLM(error=provider_error))
    with pytest.raises(expected) as exc_info:
        await adapter.summarize("Title", "Content")
    assert exc_info.value.original_error is provider_error


async def test_status_is_read_from_wrapped_provider_error():
    quota = _google_error(genai_errors.ClientError, 429, "RESOURCE_EXHAUSTED", "Quota exceeded for requests per day.")
    wrapped = _chained(ChatGoogleGenerativeAIError("Error calling model 'gemini'"), quota)

    result = await SummarizationAdapter(llm=FakeLLM(error=wrapped)).try_summarize("Title", "Content")

    assert result.kind == ErrorKind.QUOTA_EXCEEDED


async def test_try_summarize_returns_result():
    error = GoogleAuthenticationError("Error calling model 'gemini' (UNAUTHENTICATED): 401 UNAUTHENTICATED")
    adapter = SummarizationAdapter(llm=FakeLLM(error=error))
    result = await adapter.try_summarize("Title", "Content")
    assert not result.ok
    assert result.kind == ErrorKind.AUTH
