# newsdigest/schemas.py
from pydantic import AliasChoices, BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from .pipeline import ProcessedArticle
from .rss_client import FeedEntry


# --- Request Models ---
class AddFeedRequest(BaseModel):
    rss_url: str = Field(..., alias="rssUrl", min_length=1)
    custom_name: Optional[str] = Field(default=None, alias="customName", max_length=200)

    class Config:
        populate_by_name = True


class MarkReadRequest(BaseModel):
    article_url: str = Field(..., alias="articleUrl", min_length=1)
    liked: bool = False

    class Config:
        populate_by_name = True


class PreferencesUpdate(BaseModel):
    language: Optional[str] = None
    max_articles: Optional[int] = Field(default=None, ge=1, le=50)
    auto_translate: Optional[bool] = None
    auto_summarize: Optional[bool] = None
    max_translation_length: Optional[int] = Field(default=None, ge=1)


class SettingsUpdate(BaseModel):
    theme: Optional[str] = None
    notifications: Optional[bool] = None


class ProfileUpdateRequest(BaseModel):
    """
    Partial profile update. Fields other than display_name, preferences and
    settings are ignored; nested objects are merged into the stored values.
    """
    display_name: Optional[str] = Field(default=None, max_length=100)
    preferences: Optional[PreferencesUpdate] = None
    settings: Optional[SettingsUpdate] = None

    def to_updates(self) -> Dict[str, Any]:
        updates: Dict[str, Any] = {}
        if self.display_name is not None:
            updates["display_name"] = self.display_name
        if self.preferences is not None:
            updates["preferences"] = self.preferences.model_dump(exclude_none=True)
        if self.settings is not None:
            updates["settings"] = self.settings.model_dump(exclude_none=True)
        return updates


class ProcessNewsRequest(BaseModel):
    rss_url: str = Field(..., validation_alias=AliasChoices("rssUrl", "articleUrl", "rss_url"), min_length=1)
    translate: bool = True
    summarize: bool = True


class TranslateRequest(BaseModel):
    text: str
    target_lang: Optional[str] = Field(default=None, alias="targetLang")
    source_lang: Optional[str] = Field(default=None, alias="sourceLang")

    class Config:
        populate_by_name = True


# --- Record Responses ---
class ProfileResponse(BaseModel):
    id: int
    user_id: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    preferences: Dict[str, Any] = {}
    settings: Dict[str, Any] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class FeedResponse(BaseModel):
    id: int
    user_id: str
    rss_url: str
    custom_name: str
    active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class HistoryEntryResponse(BaseModel):
    id: int
    article_url: str
    read_at: Optional[datetime] = None
    liked: bool

    class Config:
        from_attributes = True


class SavedSummaryResponse(BaseModel):
    id: int
    article_id: str
    article_title: Optional[str] = None
    article_url: Optional[str] = None
    summary: str
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# --- Article Responses (camelCase on the wire) ---
class ArticleResponse(BaseModel):
    original_title: str = Field(alias="originalTitle")
    translated_title: str = Field(alias="translatedTitle")
    original_content: str = Field(alias="originalContent")
    translated_content: str = Field(alias="translatedContent")
    summary: str
    link: Optional[str] = None
    published_at: Optional[datetime] = Field(default=None, alias="publishedAt")
    feed_title: Optional[str] = Field(default=None, alias="feedTitle")

    class Config:
        populate_by_name = True


class FeedEntryResponse(BaseModel):
    title: str
    content: str
    link: Optional[str] = None
    published_at: Optional[datetime] = Field(default=None, alias="publishedAt")

    class Config:
        populate_by_name = True


def dump_record(model: type, obj: Any) -> Dict[str, Any]:
    return model.model_validate(obj).model_dump(mode="json")


def dump_records(model: type, objs: List[Any]) -> List[Dict[str, Any]]:
    return [dump_record(model, obj) for obj in objs]


def article_to_wire(article: ProcessedArticle) -> Dict[str, Any]:
    return ArticleResponse(
        original_title=article.original_title,
        translated_title=article.translated_title,
        original_content=article.original_content,
        translated_content=article.translated_content,
        summary=article.summary,
        link=article.link,
        published_at=article.published_at,
        feed_title=article.feed_title,
    ).model_dump(by_alias=True, mode="json")


def entry_to_wire(entry: FeedEntry) -> Dict[str, Any]:
    return FeedEntryResponse(
        title=entry.title,
        content=entry.synopsis,
        link=entry.link,
        published_at=entry.published_at,
    ).model_dump(by_alias=True, mode="json")
