import json
import random
import sys
import threading
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from core.crypto import SecretCipher  # type: ignore
from core.errors import CryptoFormatError, ValidationError  # type: ignore
from state import HISTORY_LIMIT, HistoryStatus, Store  # type: ignore

PAGE_A = "a" * 32
PAGE_B = "b" * 32
PAGE_C = "c" * 32


@pytest.fixture()
def store(tmp_path: Path) -> Store:
    return Store(tmp_path / "db.json", SecretCipher("test-secret")).init()


def _defaults(store: Store) -> list:
    return [p.id for p in store.list_pages() if p.is_default]


def _pointer(store: Store):
    return json.loads(store.path.read_text(encoding="utf-8"))["config"]["defaultPageId"]


def test_init_writes_default_document(tmp_path: Path) -> None:
    s = Store(tmp_path / "nested" / "db.json", SecretCipher("x")).init()
    doc = json.loads(s.path.read_text(encoding="utf-8"))
    assert doc["config"] == {"apiKey": None, "defaultPageId": None}
    assert doc["pages"] == [] and doc["history"] == []
    assert doc["settings"] == {"autoOpenNotion": False, "autoClearInput": True, "maxFileSize": 10485760}


def test_use_before_init_raises(tmp_path: Path) -> None:
    s = Store(tmp_path / "db.json", SecretCipher("x"))
    with pytest.raises(RuntimeError):
        s.list_pages()


def test_older_file_is_filled_with_defaults(tmp_path: Path) -> None:
    path = tmp_path / "db.json"
    path.write_text(json.dumps({"pages": [], "settings": {"autoOpenNotion": True}}), encoding="utf-8")
    s = Store(path, SecretCipher("x")).init()
    assert s.get_settings() == {"autoOpenNotion": True, "autoClearInput": True, "maxFileSize": 10485760}
    assert s.query_history() == []


def test_secret_is_encrypted_at_rest(store: Store) -> None:
    assert store.get_secret_credential() is None
    assert not store.has_secret_credential()
    store.set_secret_credential("secret_abc123")
    raw = store.path.read_text(encoding="utf-8")
    assert "secret_abc123" not in raw
    assert store.has_secret_credential()
    assert store.get_secret_credential() == "secret_abc123"
    store.set_secret_credential(None)
    assert store.get_secret_credential() is None
    assert json.loads(store.path.read_text(encoding="utf-8"))["config"]["apiKey"] is None


def test_first_page_becomes_default(store: Store) -> None:
    first = store.add_page("Inbox", PAGE_A)
    second = store.add_page("Notes", PAGE_B, url="https://notion.so/x")
    assert first.is_default and not second.is_default
    assert _defaults(store) == [first.id]
    assert _pointer(store) == first.id
    assert store.get_default_page().id == first.id
    assert store.get_page(second.id).url == "https://notion.so/x"


def test_explicit_default_demotes_previous(store: Store) -> None:
    first = store.add_page("Inbox", PAGE_A)
    second = store.add_page("Notes", PAGE_B, is_default=True)
    assert _defaults(store) == [second.id]
    assert _pointer(store) == second.id
    assert not store.get_page(first.id).is_default


def test_update_page_unknown_returns_none(store: Store) -> None:
    assert store.update_page("missing", name="x") is None


def test_update_page_rejects_unknown_fields(store: Store) -> None:
    page = store.add_page("Inbox", PAGE_A)
    with pytest.raises(ValidationError):
        store.update_page(page.id, colour="red")


def test_update_page_merges_and_moves_default(store: Store) -> None:
    first = store.add_page("Inbox", PAGE_A)
    second = store.add_page("Notes", PAGE_B)
    updated = store.update_page(second.id, name="Renamed", is_default=True)
    assert updated.name == "Renamed"
    assert updated.updated_at
    assert updated.page_id == PAGE_B
    assert _defaults(store) == [second.id]
    assert _pointer(store) == second.id
    assert store.get_page(first.id).updated_at is None


def test_update_cannot_leave_pages_without_default(store: Store) -> None:
    first = store.add_page("Inbox", PAGE_A)
    store.add_page("Notes", PAGE_B)
    store.update_page(first.id, is_default=False)
    assert _defaults(store) == [first.id]


def test_delete_default_promotes_first_remaining(store: Store) -> None:
    # the promoted page is simply the first one left in stored order
    a = store.add_page("A", PAGE_A)
    b = store.add_page("B", PAGE_B)
    c = store.add_page("C", PAGE_C, is_default=True)
    assert store.delete_page(c.id) is True
    assert _defaults(store) == [a.id]
    assert _pointer(store) == a.id
    assert [p.id for p in store.list_pages()] == [a.id, b.id]


def test_delete_non_default_keeps_default(store: Store) -> None:
    a = store.add_page("A", PAGE_A)
    b = store.add_page("B", PAGE_B)
    assert store.delete_page(b.id)
    assert _defaults(store) == [a.id]


def test_delete_last_page_clears_pointer(store: Store) -> None:
    a = store.add_page("A", PAGE_A)
    assert store.delete_page(a.id)
    assert store.list_pages() == []
    assert store.get_default_page() is None
    assert _pointer(store) is None


def test_delete_unknown_is_soft_failure(store: Store) -> None:
    assert store.delete_page("missing") is False


def test_exactly_one_default_after_random_operations(store: Store) -> None:
    rng = random.Random(1234)
    for step in range(300):
        pages = store.list_pages()
        op = rng.choice(["add", "add", "update", "delete"])
        if op == "add" or not pages:
            store.add_page(f"p{step}", PAGE_A, is_default=rng.random() < 0.3)
        elif op == "update":
            target = rng.choice(pages)
            store.update_page(target.id, is_default=rng.choice([True, False, None]))
        else:
            store.delete_page(rng.choice(pages).id)
        pages = store.list_pages()
        if pages:
            defaults = [p.id for p in pages if p.is_default]
            assert len(defaults) == 1
            assert _pointer(store) == defaults[0]
        else:
            assert _pointer(store) is None


def test_history_is_newest_first_and_capped(store: Store) -> None:
    for i in range(HISTORY_LIMIT + 1):
        store.append_history(f"doc {i}", "cfg", HistoryStatus.success, notion_page_id=f"n{i}")
    records = store.query_history(limit=1000)
    assert len(records) == HISTORY_LIMIT
    assert records[0].title == f"doc {HISTORY_LIMIT}"
    assert records[-1].title == "doc 1"
    assert all(r.title != "doc 0" for r in records)
    doc = json.loads(store.path.read_text(encoding="utf-8"))
    assert len(doc["history"]) == HISTORY_LIMIT


def test_history_record_fields_follow_status(store: Store) -> None:
    ok = store.append_history("ok", "cfg", "success", notion_page_id="n1", notion_url="u", error="ignored")
    bad = store.append_history("bad", "cfg", HistoryStatus.failed, notion_page_id="n2", error="boom")
    assert ok.error is None and ok.notion_url == "u"
    assert bad.notion_page_id is None and bad.notion_url is None and bad.error == "boom"
    assert ok.id != bad.id and ok.created_at


def test_history_search_is_case_insensitive_before_limit(store: Store) -> None:
    for i in range(10):
        store.append_history(f"Weekly Report {i}" if i % 2 else f"notes {i}", None, "success")
    found = store.query_history(limit=3, search="REPORT")
    assert [r.title for r in found] == ["Weekly Report 9", "Weekly Report 7", "Weekly Report 5"]
    assert store.query_history(search="nothing") == []


def test_history_survives_page_deletion(store: Store) -> None:
    page = store.add_page("A", PAGE_A)
    store.append_history("doc", page.id, "success")
    store.delete_page(page.id)
    assert store.query_history()[0].page_config_id == page.id


def test_settings_merge(store: Store) -> None:
    merged = store.merge_settings({"autoOpenNotion": True})
    assert merged == {"autoOpenNotion": True, "autoClearInput": True, "maxFileSize": 10485760}
    store.merge_settings({"maxFileSize": 2 * 1024 * 1024})
    assert store.get_settings()["maxFileSize"] == 2 * 1024 * 1024
    assert store.get_settings()["autoOpenNotion"] is True


@pytest.mark.parametrize(
    "partial",
    [
        {"theme": "dark"},
        {"autoOpenNotion": "yes"},
        {"maxFileSize": 10},
        {"maxFileSize": True},
    ],
)
def test_settings_rejects_bad_input(store: Store, partial: dict) -> None:
    with pytest.raises(ValidationError):
        store.merge_settings(partial)
    assert store.get_settings()["maxFileSize"] == 10485760


def test_failed_write_keeps_previous_state(store: Store, monkeypatch: pytest.MonkeyPatch) -> None:
    page = store.add_page("A", PAGE_A)

    def broken_write(_data):
        raise OSError("disk full")

    monkeypatch.setattr(store, "_write", broken_write)
    with pytest.raises(OSError):
        store.add_page("B", PAGE_B, is_default=True)
    assert [p.id for p in store.list_pages()] == [page.id]
    assert store.get_default_page().id == page.id


def test_state_reloads_from_disk(store: Store) -> None:
    store.set_secret_credential("secret_abc")
    page = store.add_page("A", PAGE_A)
    store.append_history("doc", page.id, "failed", error="nope")
    again = Store(store.path, SecretCipher("test-secret")).init()
    assert again.get_secret_credential() == "secret_abc"
    assert again.get_default_page().id == page.id
    assert again.query_history()[0].error == "nope"


def test_concurrent_adds_do_not_lose_updates(store: Store) -> None:
    def worker(n: int) -> None:
        for i in range(10):
            store.add_page(f"{n}-{i}", PAGE_A, is_default=(i % 3 == 0))

    threads = [threading.Thread(target=worker, args=(n,)) for n in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    pages = store.list_pages()
    assert len(pages) == 50
    assert len([p for p in pages if p.is_default]) == 1


def test_status_projection(store: Store) -> None:
    assert store.status() == {"configured": False, "hasApiKey": False, "pageCount": 0, "defaultPage": None}
    page = store.add_page("A", PAGE_A)
    store.set_secret_credential("secret_abc")
    status = store.status()
    assert status["configured"] is True
    assert status["defaultPage"] == {"id": page.id, "name": "A", "pageId": PAGE_A}


@pytest.mark.parametrize("token", ["abc", "AAAA:BBBB"])
def test_corrupted_secret_raises_on_read(store: Store, token: str) -> None:
    doc = json.loads(store.path.read_text(encoding="utf-8"))
    doc["config"]["apiKey"] = token
    store.path.write_text(json.dumps(doc), encoding="utf-8")
    reopened = Store(store.path, SecretCipher("test-secret")).init()
    assert reopened.has_secret_credential() is True
    with pytest.raises(CryptoFormatError):
        reopened.get_secret_credential()
