# newsdigest/dependencies.py
import logging
from typing import Optional

from fastapi import Depends, Header, Request

from .auth import ANONYMOUS, AuthContext, IdentityProvider, extract_bearer_token
from .errors import AppError, InvalidTokenError
from .pipeline import FeedProcessor
from .rss_client import FeedFetcher
from .security import RateLimiter
from .translator import TranslationAdapter
from .user_service import UserDataService

logger = logging.getLogger(__name__)


# --- Service accessors (populated by create_app) ---
def get_fetcher(request: Request) -> FeedFetcher:
    return request.app.state.fetcher


def get_translator(request: Request) -> TranslationAdapter:
    return request.app.state.translator


def get_feed_processor(request: Request) -> FeedProcessor:
    return request.app.state.feed_processor


def get_user_service(request: Request) -> UserDataService:
    return request.app.state.user_service


def get_identity_provider(request: Request) -> IdentityProvider:
    return request.app.state.identity_provider


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


# --- Auth gate ---
def _client_key(request: Request) -> str:
    return f"ip:{request.client.host if request.client else 'unknown'}"


async def get_auth_context(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> AuthContext:
    """
    Verifies the bearer token. Rejected tokens count against the client
    address, and an address out of allowance is refused before the identity
    provider is contacted.
    """
    token = extract_bearer_token(authorization)
    limiter = get_rate_limiter(request)
    failure_key = f"auth-failed:{_client_key(request)}"
    limiter.check(failure_key)
    try:
        identity = await get_identity_provider(request).verify(token)
    except InvalidTokenError:
        limiter.hit(failure_key)
        raise
    context = AuthContext(identity=identity, token=token)
    request.state.auth = context
    return context


async def get_optional_auth_context(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> AuthContext:
    """Same as get_auth_context but resolves to anonymous instead of failing."""
    if not authorization:
        return ANONYMOUS
    try:
        return await get_auth_context(request, authorization)
    except AppError as e:
        logger.debug(f"AUTH: Optional auth fell back to anonymous: [{e.code}] {e.message}")
        return ANONYMOUS


def require_user(request: Request, auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
    """Authenticated and within the per-identity rate limit."""
    get_rate_limiter(request).hit(f"user:{auth.identity.id}")
    return auth


def optional_user(request: Request, auth: AuthContext = Depends(get_optional_auth_context)) -> AuthContext:
    key = _client_key(request) if auth.is_anonymous else f"user:{auth.identity.id}"
    get_rate_limiter(request).hit(key)
    return auth
