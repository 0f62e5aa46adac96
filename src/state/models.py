from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

__all__ = [
    "HISTORY_LIMIT",
    "DEFAULT_SETTINGS",
    "HistoryStatus",
    "PageConfig",
    "HistoryRecord",
    "default_document",
]

HISTORY_LIMIT = 100

DEFAULT_SETTINGS: Dict[str, Any] = {
    "autoOpenNotion": False,
    "autoClearInput": True,
    "maxFileSize": 10 * 1024 * 1024,
}


class HistoryStatus(str, Enum):
    success = "success"
    failed = "failed"


@dataclass
class PageConfig:
    """A destination Notion page new uploads are created under."""

    id: str
    name: str
    page_id: str
    created_at: str
    url: Optional[str] = None
    is_default: bool = False
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "pageId": self.page_id,
            "url": self.url,
            "isDefault": self.is_default,
            "createdAt": self.created_at,
        }
        if self.updated_at:
            data["updatedAt"] = self.updated_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageConfig":
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or ""),
            page_id=str(data.get("pageId") or ""),
            created_at=str(data.get("createdAt") or ""),
            url=data.get("url"),
            is_default=bool(data.get("isDefault")),
            updated_at=data.get("updatedAt"),
        )


@dataclass
class HistoryRecord:
    """One upload attempt. ``page_config_id`` may dangle once the page is deleted."""

    id: str
    title: str
    page_config_id: Optional[str]
    status: HistoryStatus
    created_at: str
    notion_page_id: Optional[str] = None
    notion_url: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "pageConfigId": self.page_config_id,
            "notionPageId": self.notion_page_id,
            "notionUrl": self.notion_url,
            "status": self.status.value,
            "error": self.error,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryRecord":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            page_config_id=data.get("pageConfigId"),
            status=HistoryStatus(data.get("status") or HistoryStatus.failed.value),
            created_at=str(data.get("createdAt") or ""),
            notion_page_id=data.get("notionPageId"),
            notion_url=data.get("notionUrl"),
            error=data.get("error"),
        )


def default_document() -> Dict[str, Any]:
    return {
        "config": {"apiKey": None, "defaultPageId": None},
        "pages": [],
        "history": [],
        "settings": dict(DEFAULT_SETTINGS),
    }
