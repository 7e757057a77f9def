# newsdigest/routers/translation_routes.py
import asyncio
import logging

from fastapi import APIRouter, Depends

from ..auth import AuthContext
from ..dependencies import get_translator, get_user_service, require_user
from ..errors import NotConfiguredError, UpstreamUnavailableError
from ..helpers import create_response
from ..schemas import TranslateRequest
from ..translator import TranslationAdapter
from ..user_service import UserDataService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/translate",
    tags=["translation"]
)

_ECHOED_PREFERENCES = ("language", "auto_translate", "max_translation_length")


@router.post("")
async def translate_text(
    payload: TranslateRequest,
    auth: AuthContext = Depends(require_user),
    translator: TranslationAdapter = Depends(get_translator),
):
    # Length is checked first so oversized text never reaches the provider
    translator.validate_text(payload.text)
    translation = await translator.translate(payload.text, payload.target_lang, payload.source_lang)
    logger.info(f"TRANSLATION_ROUTES: Translated {len(payload.text)} chars for user {auth.identity.id}")
    return create_response(
        True,
        data={
            "originalText": payload.text,
            "translatedText": translation.text,
            "detectedSourceLang": translation.detected_source_lang,
            "targetLang": translation.target_lang,
        },
    )


@router.get("/usage")
async def translation_usage(
    auth: AuthContext = Depends(require_user),
    translator: TranslationAdapter = Depends(get_translator),
    service: UserDataService = Depends(get_user_service),
):
    """Provider usage counters plus the caller's translation preferences."""
    if not translator.is_configured():
        raise NotConfiguredError("Translation service not configured", code="TRANSLATION_NOT_CONFIGURED")
    usage = await translator.get_usage()
    if usage is None:
        raise UpstreamUnavailableError("Could not retrieve translation usage")

    profile = await asyncio.to_thread(service.get_or_create_profile, auth.identity)
    stored = profile.preferences or {}
    preferences = {key: stored.get(key) for key in _ECHOED_PREFERENCES}
    return create_response(True, data={"usage": usage, "preferences": preferences})


@router.get("/languages")
async def translation_languages(
    auth: AuthContext = Depends(require_user),
    translator: TranslationAdapter = Depends(get_translator),
):
    languages = await translator.get_languages()
    return create_response(True, data=languages, count=len(languages))
