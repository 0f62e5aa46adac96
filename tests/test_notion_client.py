from __future__ import annotations

import sys
from enum import Enum
from pathlib import Path
from types import SimpleNamespace

import httpx
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from core.errors import RemoteServiceError  # type: ignore
from integrations.notion import (  # type: ignore
    MAX_BLOCKS_PER_REQUEST,
    NotionPublisher,
    chunk_blocks,
    format_error,
)
from integrations.notion.client import ERROR_MESSAGES  # type: ignore


class DummyClient:
    def __init__(self, fail_on_append: int | None = None) -> None:
        self.calls: list[tuple[str, dict]] = []
        self.fail_on_append = fail_on_append
        self.pages = SimpleNamespace(create=self._create, retrieve=self._retrieve)
        self.blocks = SimpleNamespace(children=SimpleNamespace(append=self._append))
        self.users = SimpleNamespace(me=self._me)

    def _create(self, **kwargs):
        self.calls.append(("create", kwargs))
        return {"id": "new-page", "url": "https://www.notion.so/new-page"}

    def _append(self, **kwargs):
        self.calls.append(("append", kwargs))
        appends = sum(1 for name, _ in self.calls if name == "append")
        if self.fail_on_append == appends:
            raise httpx.ConnectError("connection reset")
        return {"results": []}

    def _retrieve(self, **kwargs):
        self.calls.append(("retrieve", kwargs))
        return {
            "id": kwargs["page_id"],
            "url": "https://www.notion.so/parent",
            "created_time": "2024-01-01T00:00:00.000Z",
            "last_edited_time": "2024-01-02T00:00:00.000Z",
            "properties": {"title": {"title": [{"plain_text": "Parent"}]}},
        }

    def _me(self):
        return {"id": "user-1", "name": "Bot", "type": "bot", "avatar_url": None}


def _blocks(n: int) -> list[dict]:
    return [{"type": "paragraph", "paragraph": {"rich_text": [], "n": i}} for i in range(n)]


def _ns(call) -> list[int]:
    return [b["paragraph"]["n"] for b in call[1]["children"]]


def test_chunk_blocks_sizes() -> None:
    assert [len(c) for c in chunk_blocks(_blocks(250))] == [100, 100, 50]
    assert list(chunk_blocks([])) == []
    with pytest.raises(ValueError):
        list(chunk_blocks(_blocks(3), 0))


def test_create_page_batches_250_blocks_in_three_calls() -> None:
    client = DummyClient()
    page = NotionPublisher("secret_x", client=client).create_page("parent", "Title", _blocks(250))
    assert [name for name, _ in client.calls] == ["create", "append", "append"]
    create = client.calls[0][1]
    assert create["parent"] == {"page_id": "parent"}
    assert create["properties"]["title"][0]["text"]["content"] == "Title"
    assert [len(call[1]["children"]) for call in client.calls] == [100, 100, 50]
    assert all(call[1]["block_id"] == "new-page" for call in client.calls[1:])
    order = [n for call in client.calls for n in _ns(call)]
    assert order == list(range(250))
    assert page.id == "new-page" and page.url.endswith("new-page") and page.title == "Title"


def test_create_page_small_document_single_call() -> None:
    client = DummyClient()
    NotionPublisher("secret_x", client=client).create_page("parent", "T", _blocks(MAX_BLOCKS_PER_REQUEST))
    assert [name for name, _ in client.calls] == ["create"]


def test_create_page_empty_blocks() -> None:
    client = DummyClient()
    NotionPublisher("secret_x", client=client).create_page("parent", "T", [])
    assert client.calls[0][1]["children"] == []


def test_append_failure_surfaces_and_stops() -> None:
    client = DummyClient(fail_on_append=1)
    with pytest.raises(RemoteServiceError) as exc:
        NotionPublisher("secret_x", client=client).create_page("parent", "T", _blocks(300))
    assert "connection reset" in exc.value.message
    assert [name for name, _ in client.calls] == ["create", "append"]


def test_validate_page_access_reads_title() -> None:
    info = NotionPublisher("secret_x", client=DummyClient()).validate_page_access("abc")
    assert info.title == "Parent"
    assert info.to_dict()["lastEditedTime"] == "2024-01-02T00:00:00.000Z"


def test_validate_page_access_untitled() -> None:
    client = DummyClient()
    client.pages.retrieve = lambda **kw: {"id": kw["page_id"], "properties": {}}
    assert NotionPublisher("secret_x", client=client).validate_page_access("abc").title == "Untitled"


def test_validate_api_key_returns_user() -> None:
    user = NotionPublisher("secret_x", client=DummyClient()).validate_api_key()
    assert user.to_dict() == {"id": "user-1", "name": "Bot", "type": "bot", "avatarUrl": None}


class FakeAPIError(Exception):
    def __init__(self, code, message: str) -> None:
        super().__init__(message)
        self.code = code


class FakeCode(str, Enum):
    ObjectNotFound = "object_not_found"


@pytest.mark.parametrize("code", sorted(ERROR_MESSAGES))
def test_format_error_known_codes(code: str) -> None:
    err = format_error(FakeAPIError(code, "raw message"))
    assert isinstance(err, RemoteServiceError)
    assert err.message == ERROR_MESSAGES[code]
    assert err.code == code


def test_format_error_enum_code() -> None:
    err = format_error(FakeAPIError(FakeCode.ObjectNotFound, "raw"))
    assert err.message == ERROR_MESSAGES["object_not_found"]


def test_format_error_unknown_code_keeps_remote_message() -> None:
    err = format_error(FakeAPIError("conflict_error", "Conflict occurred while saving"))
    assert err.message == "Conflict occurred while saving"
    assert err.code == "conflict_error"
