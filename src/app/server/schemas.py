"""Pydantic response/request models for the server APIs."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "ApiKeyRequest",
    "ConfigStatusResponse",
    "DefaultPageSummary",
    "HistoryItemResponse",
    "HistoryResponse",
    "PageCreateRequest",
    "PageResponse",
    "PageUpdateRequest",
    "PreviewRequest",
    "RecentHistoryResponse",
    "SettingsPayload",
    "SettingsUpdateRequest",
    "UploadRequest",
    "ValidateFullRequest",
    "ValidatePageRequest",
]


class ApiKeyRequest(BaseModel):
    api_key: str = Field(..., alias="apiKey", min_length=1)


class PageCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    page_url: str = Field(..., alias="pageUrl", min_length=1)
    is_default: bool = Field(False, alias="isDefault")


class PageUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    is_default: Optional[bool] = Field(None, alias="isDefault")


class ValidatePageRequest(BaseModel):
    page_url: str = Field(..., alias="pageUrl", min_length=1)
    api_key: Optional[str] = Field(None, alias="apiKey")


class ValidateFullRequest(BaseModel):
    api_key: str = Field(..., alias="apiKey", min_length=1)
    page_url: str = Field(..., alias="pageUrl", min_length=1)


class UploadRequest(BaseModel):
    markdown: str = Field(..., min_length=1)
    page_config_id: Optional[str] = Field(None, alias="pageConfigId")
    title: Optional[str] = None


class PreviewRequest(BaseModel):
    markdown: str = ""


class SettingsUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    autoOpenNotion: Optional[bool] = None
    autoClearInput: Optional[bool] = None
    maxFileSize: Optional[int] = Field(None, ge=1048576)


class SettingsPayload(BaseModel):
    autoOpenNotion: bool
    autoClearInput: bool
    maxFileSize: int


class PageResponse(BaseModel):
    id: str
    name: str
    pageId: str
    url: Optional[str] = None
    isDefault: bool
    createdAt: str
    updatedAt: Optional[str] = None


class DefaultPageSummary(BaseModel):
    id: str
    name: str
    pageId: str


class ConfigStatusResponse(BaseModel):
    configured: bool
    hasApiKey: bool
    pageCount: int
    defaultPage: Optional[DefaultPageSummary] = None


class HistoryItemResponse(BaseModel):
    id: str
    title: str
    pageConfigId: Optional[str]
    pageConfigName: str
    notionPageId: Optional[str] = None
    notionUrl: Optional[str] = None
    status: str
    error: Optional[str] = None
    createdAt: str


class HistoryResponse(BaseModel):
    history: List[HistoryItemResponse]
    total: int


class RecentHistoryResponse(BaseModel):
    history: List[HistoryItemResponse]
