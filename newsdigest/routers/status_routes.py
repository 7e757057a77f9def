# newsdigest/routers/status_routes.py
import logging
import os
import platform
import resource
import time

from fastapi import APIRouter, Depends, Request

from ..auth import AuthContext
from ..dependencies import optional_user
from ..errors import NotFoundError
from ..helpers import create_response

logger = logging.getLogger(__name__)

router = APIRouter(tags=["status"])


def _uptime_seconds(request: Request) -> int:
    return int(time.monotonic() - request.app.state.started_at)


def _max_rss_kb() -> int:
    # ru_maxrss is kilobytes on Linux
    return resource.getrusage(resource.RUSAGE_SELF).ru_maxrss


@router.get("/health")
async def health_check(request: Request):
    settings = request.app.state.settings
    return create_response(
        True,
        status="OK",
        uptime=_uptime_seconds(request),
        environment=settings.app_env,
        memory={"maxRssKb": _max_rss_kb()},
        cache=request.app.state.cache.stats(),
    )


@router.get("/api/status")
async def service_status(request: Request, auth: AuthContext = Depends(optional_user)):
    """
    Which providers are configured and the cache state. Production responses
    carry only the flags and counts.
    """
    state = request.app.state
    services = {
        "translation": state.translator.is_configured(),
        "summarization": state.summarizer.is_configured(),
        "authentication": state.identity_provider.configured,
    }
    cache_stats = state.cache.stats()

    if state.settings.is_production:
        return create_response(True, data={"services": services, "cache": {"keys": cache_stats["keys"]}})

    data = {
        "services": services,
        "cache": cache_stats,
        "authenticated": not auth.is_anonymous,
        "limits": {
            "maxArticles": state.settings.max_articles,
            "maxTextLength": state.settings.max_text_length,
            "cacheTtl": state.settings.cache_ttl,
            "rateLimitMax": state.settings.rate_limit_max,
            "rateLimitWindowSeconds": state.settings.rate_limit_window_seconds,
        },
        "allowedDomains": state.settings.allowed_feed_domains,
    }
    return create_response(True, data=data)


@router.get("/api/metrics")
async def metrics(request: Request):
    if request.app.state.settings.is_production:
        raise NotFoundError("Route not found")

    return create_response(
        True,
        data={
            "uptime": _uptime_seconds(request),
            "pid": os.getpid(),
            "memory": {"maxRssKb": _max_rss_kb()},
            "python": platform.python_version(),
            "cache": request.app.state.cache.stats(),
        },
    )
