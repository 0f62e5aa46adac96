from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence

import httpx
from notion_client import APIResponseError, Client
from notion_client.errors import HTTPResponseError, RequestTimeoutError

from core.errors import RemoteServiceError

__all__ = [
    "MAX_BLOCKS_PER_REQUEST",
    "ERROR_MESSAGES",
    "NotionPublisher",
    "NotionUser",
    "PageInfo",
    "PublishedPage",
    "chunk_blocks",
    "format_error",
]

# Notion rejects more than 100 children per create/append call
MAX_BLOCKS_PER_REQUEST = 100

ERROR_MESSAGES: Dict[str, str] = {
    "unauthorized": "Invalid API key. Please check your Notion integration token.",
    "object_not_found": "Page not found. Please check if the page exists and is shared with your integration.",
    "rate_limited": "Too many requests. Please wait a moment and try again.",
    "validation_error": "Invalid request format. Please check your input.",
    "internal_server_error": "Notion server error. Please try again later.",
    "service_unavailable": "Notion service is temporarily unavailable. Please try again later.",
}

_SDK_ERRORS = (APIResponseError, HTTPResponseError, RequestTimeoutError, httpx.HTTPError)


@dataclass
class NotionUser:
    id: str
    name: Optional[str]
    type: Optional[str]
    avatar_url: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "type": self.type, "avatarUrl": self.avatar_url}


@dataclass
class PageInfo:
    id: str
    title: str
    url: Optional[str]
    created_time: Optional[str] = None
    last_edited_time: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "createdTime": self.created_time,
            "lastEditedTime": self.last_edited_time,
        }


@dataclass
class PublishedPage:
    id: str
    url: Optional[str]
    title: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "url": self.url, "title": self.title}


def chunk_blocks(blocks: Sequence[dict], size: int = MAX_BLOCKS_PER_REQUEST) -> Iterator[List[dict]]:
    if size <= 0:
        raise ValueError("size must be positive")
    for start in range(0, len(blocks), size):
        yield list(blocks[start : start + size])


def format_error(exc: BaseException) -> RemoteServiceError:
    """Translate an SDK failure into a RemoteServiceError with a user facing message."""
    raw_code = getattr(exc, "code", None) or getattr(exc, "status", None)
    # APIErrorCode is a str Enum; compare by value
    code = getattr(raw_code, "value", raw_code)
    code = str(code) if code is not None else None
    message = str(exc) or "Unknown error occurred"
    friendly = ERROR_MESSAGES.get(code or "", message)
    return RemoteServiceError(friendly, code=code)


def _extract_title(page: Dict[str, Any]) -> str:
    props = page.get("properties") or {}
    for key in ("title", "Name"):
        prop = props.get(key) or {}
        items = prop.get("title") or []
        if items and isinstance(items[0], dict) and items[0].get("plain_text"):
            return str(items[0]["plain_text"])
    return "Untitled"


class NotionPublisher:
    """Wrapper over the Notion SDK for the handful of calls uploads need.

    Every SDK failure leaves as RemoteServiceError; nothing is retried.
    """

    def __init__(self, token: str, *, client: Any = None, timeout_ms: Optional[int] = None) -> None:
        if client is None:
            kwargs: Dict[str, Any] = {"auth": token}
            if timeout_ms:
                kwargs["timeout_ms"] = timeout_ms
            client = Client(**kwargs)
        self.client = client

    def validate_api_key(self) -> NotionUser:
        try:
            res = self.client.users.me()
        except _SDK_ERRORS as exc:
            raise format_error(exc) from exc
        return NotionUser(
            id=str(res.get("id") or ""),
            name=res.get("name"),
            type=res.get("type"),
            avatar_url=res.get("avatar_url"),
        )

    def validate_page_access(self, page_id: str) -> PageInfo:
        try:
            res = self.client.pages.retrieve(page_id=page_id)
        except _SDK_ERRORS as exc:
            raise format_error(exc) from exc
        return PageInfo(
            id=str(res.get("id") or page_id),
            title=_extract_title(res),
            url=res.get("url"),
            created_time=res.get("created_time"),
            last_edited_time=res.get("last_edited_time"),
        )

    def create_page(self, parent_id: str, title: str, blocks: Sequence[dict]) -> PublishedPage:
        """Create ``title`` under ``parent_id``; the first batch rides along with the create call."""
        initial = list(blocks[:MAX_BLOCKS_PER_REQUEST])
        remaining = list(blocks[MAX_BLOCKS_PER_REQUEST:])
        try:
            res = self.client.pages.create(
                parent={"page_id": parent_id},
                properties={"title": [{"text": {"content": title}}]},
                children=initial,
            )
        except _SDK_ERRORS as exc:
            raise format_error(exc) from exc
        page_id = str(res.get("id") or "")
        print(f"[notion] created page id={page_id} blocks={len(initial)}")
        if remaining:
            self.append_blocks(page_id, remaining)
        return PublishedPage(id=page_id, url=res.get("url"), title=title)

    def append_blocks(self, page_id: str, blocks: Sequence[dict]) -> int:
        """Append in order, one call per batch. Returns the number of calls made."""
        calls = 0
        for batch in chunk_blocks(blocks):
            try:
                self.client.blocks.children.append(block_id=page_id, children=batch)
            except _SDK_ERRORS as exc:
                raise format_error(exc) from exc
            calls += 1
            print(f"[notion] appended batch={calls} size={len(batch)} page={page_id}")
        return calls
