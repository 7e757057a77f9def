# newsdigest/errors.py
"""
Error taxonomy shared by the adapters, the data service and the HTTP layer.

Every error carries an `ErrorKind` (what went wrong), the HTTP status it maps to
at the boundary and a machine-readable `code` for the response envelope.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NO_AUTH = "no_auth"
    INVALID_TOKEN = "invalid_token"
    FORBIDDEN_DOMAIN = "forbidden_domain"
    NOT_FOUND = "not_found"
    DUPLICATE = "duplicate"
    NOT_CONFIGURED = "not_configured"
    AUTH = "auth"
    QUOTA_EXCEEDED = "quota_exceeded"
    RATE_LIMIT = "rate_limit"
    BAD_REQUEST = "bad_request"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"
    TIMEOUT = "timeout"
    EMPTY_RESPONSE = "empty_response"
    FETCH = "fetch"
    TRANSLATION = "translation"
    SUMMARIZATION = "summarization"
    DATASTORE = "datastore"
    INTERNAL = "internal"


class AppError(Exception):
    kind = ErrorKind.INTERNAL
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        code: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        details: Optional[dict] = None,
    ) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)
        if code:
            self.code = code
        self.original_error = original_error
        self.details = details

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(code={self.code!r}, message={self.message!r})>"


class ValidationError(AppError):
    kind = ErrorKind.VALIDATION
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid input data"


class NoAuthError(AppError):
    kind = ErrorKind.NO_AUTH
    status_code = 401
    code = "NO_AUTH_HEADER"
    default_message = "No authorization header provided"


class InvalidTokenError(AppError):
    kind = ErrorKind.INVALID_TOKEN
    status_code = 401
    code = "INVALID_TOKEN"
    default_message = "Invalid or expired token"


class ForbiddenDomainError(AppError):
    kind = ErrorKind.FORBIDDEN_DOMAIN
    status_code = 403
    code = "DOMAIN_NOT_ALLOWED"
    default_message = "Feed domain is not allowed"


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class DuplicateError(AppError):
    kind = ErrorKind.DUPLICATE
    status_code = 409
    code = "DUPLICATE"
    default_message = "Resource already exists"


class NotConfiguredError(AppError):
    kind = ErrorKind.NOT_CONFIGURED
    status_code = 503
    code = "SERVICE_NOT_CONFIGURED"
    default_message = "Service is not configured"


class AuthError(AppError):
    """The provider rejected our credential."""
    kind = ErrorKind.AUTH
    status_code = 401
    code = "PROVIDER_AUTH_ERROR"
    default_message = "Invalid provider API key"


class QuotaExceededError(AppError):
    kind = ErrorKind.QUOTA_EXCEEDED
    status_code = 429
    code = "QUOTA_EXCEEDED"
    default_message = "Provider usage quota exceeded"


class RateLimitError(AppError):
    kind = ErrorKind.RATE_LIMIT
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    default_message = "Too many requests. Please try again later."

    def __init__(self, message: Optional[str] = None, *, retry_after: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class BadRequestError(AppError):
    kind = ErrorKind.BAD_REQUEST
    status_code = 400
    code = "PROVIDER_BAD_REQUEST"
    default_message = "Invalid request parameters for provider"


class UpstreamUnavailableError(AppError):
    kind = ErrorKind.UPSTREAM_UNAVAILABLE
    status_code = 503
    code = "UPSTREAM_UNAVAILABLE"
    default_message = "Upstream service unavailable"


class ProviderTimeoutError(AppError):
    kind = ErrorKind.TIMEOUT
    status_code = 503
    code = "UPSTREAM_TIMEOUT"
    default_message = "Upstream service timed out"


class FetchError(AppError):
    kind = ErrorKind.FETCH
    status_code = 502
    code = "FEED_FETCH_ERROR"
    default_message = "Failed to fetch RSS feed"


class TranslationError(AppError):
    kind = ErrorKind.TRANSLATION
    status_code = 500
    code = "TRANSLATION_ERROR"
    default_message = "Translation failed"


class SummarizationError(AppError):
    kind = ErrorKind.SUMMARIZATION
    status_code = 500
    code = "SUMMARIZATION_ERROR"
    default_message = "Summary generation failed"


class EmptyResponseError(SummarizationError):
    kind = ErrorKind.EMPTY_RESPONSE
    code = "EMPTY_SUMMARY"
    default_message = "Summary generation returned an empty response"


class DataServiceError(AppError):
    kind = ErrorKind.DATASTORE
    status_code = 500
    code = "DATASTORE_ERROR"
    default_message = "Datastore operation failed"


class InternalError(AppError):
    pass


@dataclass
class Result(Generic[T]):
    """Outcome of an adapter call: either `value` or `error`, never both."""
    value: Optional[T] = None
    error: Optional[AppError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error is not None else None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: AppError) -> "Result[T]":
        return cls(error=error)
