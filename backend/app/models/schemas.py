from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Any, Dict, List, Optional

from backend.app.services.utils import is_http_url


class ServiceName(str, Enum):
    SHOPEE = "shopee"
    PINTEREST = "pinterest"
    TIKTOK = "tiktok"
    YOUTUBE = "youtube"
    META = "meta"


class MediaSelection(BaseModel):
    """One downloadable asset: a primary URL plus lower-ranked alternates."""
    model_config = ConfigDict(populate_by_name=True)

    url: str
    fallback_urls: List[str] = Field(default_factory=list, alias="fallbackUrls")
    file_name: Optional[str] = Field(None, alias="fileName")
    content_type: Optional[str] = Field(None, alias="contentType")
    quality_label: Optional[str] = Field(None, alias="qualityLabel")

    @field_validator("url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        value = (value or "").strip()
        if not is_http_url(value):
            raise ValueError(f"media url is not a valid http(s) URL: {value!r}")
        return value

    @model_validator(mode="after")
    def _dedupe_fallbacks(self):
        seen = {self.url}
        cleaned = []
        for candidate in self.fallback_urls:
            candidate = (candidate or "").strip()
            if candidate and candidate not in seen:
                seen.add(candidate)
                cleaned.append(candidate)
        self.fallback_urls = cleaned
        return self


class ResolveResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    service: ServiceName
    title: Optional[str] = None
    description: Optional[str] = None
    thumbnail: Optional[str] = None
    share_url: Optional[str] = Field(None, alias="shareUrl")
    video: Optional[MediaSelection] = None
    audio: Optional[MediaSelection] = None
    page_props: Optional[Dict[str, Any]] = Field(None, alias="pageProps")
    extras: Dict[str, Any] = Field(default_factory=dict)
    link_hash: Optional[str] = Field(None, alias="linkHash")


class StoredLinkData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    link: str
    service: Optional[str] = None
    caption: Optional[str] = None
    description: Optional[str] = None
    title: Optional[str] = None
    resolved_at: float = Field(..., alias="resolvedAt")


class ResolveRequest(BaseModel):
    link: str


class ErrorResponse(BaseModel):
    error: str


class KeywordResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    link_hash: str = Field(..., alias="linkHash")
    service: Optional[str] = None
    keywords: List[str] = []
    caption_snippet: str = Field("", alias="captionSnippet")
