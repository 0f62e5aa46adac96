from __future__ import annotations
import copy
import json
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from core.crypto import SecretCipher
from core.errors import ValidationError
from .models import (
    DEFAULT_SETTINGS,
    HISTORY_LIMIT,
    HistoryRecord,
    HistoryStatus,
    PageConfig,
    default_document,
)

__all__ = ["Store"]

_PAGE_FIELDS = {"name": "name", "page_id": "pageId", "url": "url", "is_default": "isDefault"}
MIN_MAX_FILE_SIZE = 1024 * 1024


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


class Store:
    """Owner of the on-disk JSON document (config, pages, history, settings).

    Every mutation takes ``self._lock``, edits a deep copy of the document,
    writes it through a temp file and only then publishes the copy as the new
    snapshot, so a failed write leaves the previous state in place. Readers
    use the current snapshot without locking.

    Invariants kept here rather than by callers:
    - exactly one page is default whenever at least one page exists, and
      ``config.defaultPageId`` points at it
    - history is newest-first and holds at most ``HISTORY_LIMIT`` records
    """

    def __init__(self, path: Path | str, cipher: SecretCipher) -> None:
        self.path = Path(path)
        self.cipher = cipher
        self._lock = threading.Lock()
        self._data: Optional[Dict[str, Any]] = None

    # ---- lifecycle ----

    def init(self) -> "Store":
        with self._lock:
            if self._data is not None:
                return self
            data = self._load()
            if data is None:
                data = default_document()
                self._write(data)
                print(f"[store] created {self.path}")
            self._data = data
        return self

    @property
    def initialized(self) -> bool:
        return self._data is not None

    def _load(self) -> Optional[Dict[str, Any]]:
        if not self.path.exists():
            return None
        with self.path.open("r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            return None
        data = default_document()
        for key in ("config", "settings"):
            if isinstance(raw.get(key), dict):
                data[key].update(raw[key])
        for key in ("pages", "history"):
            if isinstance(raw.get(key), list):
                data[key] = raw[key]
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        tmp.replace(self.path)

    def _snapshot(self) -> Dict[str, Any]:
        data = self._data
        if data is None:
            raise RuntimeError("Store.init() must be called before use")
        return data

    def _mutate(self, fn: Callable[[Dict[str, Any]], Any]) -> Any:
        """Run ``fn`` on a draft copy; a None/False result means nothing to persist."""
        with self._lock:
            draft = copy.deepcopy(self._snapshot())
            result = fn(draft)
            if result is None or result is False:
                return result
            self._write(draft)
            self._data = draft
        return result

    # ---- API key ----

    def get_secret_credential(self) -> Optional[str]:
        return self.cipher.decrypt(self._snapshot()["config"].get("apiKey"))

    def set_secret_credential(self, value: Optional[str]) -> None:
        token = self.cipher.encrypt(value)

        def apply(doc: Dict[str, Any]) -> bool:
            doc["config"]["apiKey"] = token
            return True

        self._mutate(apply)

    def has_secret_credential(self) -> bool:
        return bool(self._snapshot()["config"].get("apiKey"))

    # ---- pages ----

    def list_pages(self) -> List[PageConfig]:
        return [PageConfig.from_dict(p) for p in self._snapshot()["pages"]]

    def get_page(self, config_id: str) -> Optional[PageConfig]:
        for p in self._snapshot()["pages"]:
            if p.get("id") == config_id:
                return PageConfig.from_dict(p)
        return None

    def get_default_page(self) -> Optional[PageConfig]:
        for p in self._snapshot()["pages"]:
            if p.get("isDefault"):
                return PageConfig.from_dict(p)
        return None

    @staticmethod
    def _promote(doc: Dict[str, Any], config_id: Optional[str]) -> None:
        for p in doc["pages"]:
            p["isDefault"] = p.get("id") == config_id
        doc["config"]["defaultPageId"] = config_id

    def add_page(
        self,
        name: str,
        page_id: str,
        url: Optional[str] = None,
        is_default: bool = False,
    ) -> PageConfig:
        page = PageConfig(
            id=_new_id(),
            name=name,
            page_id=page_id,
            url=url or None,
            is_default=bool(is_default),
            created_at=_now(),
        )

        def apply(doc: Dict[str, Any]) -> PageConfig:
            if page.is_default or not doc["pages"]:
                page.is_default = True
                doc["pages"].append(page.to_dict())
                self._promote(doc, page.id)
            else:
                doc["pages"].append(page.to_dict())
            return page

        return self._mutate(apply)

    def update_page(self, config_id: str, **fields: Any) -> Optional[PageConfig]:
        unknown = set(fields) - set(_PAGE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown page fields: {', '.join(sorted(unknown))}")

        def apply(doc: Dict[str, Any]) -> Optional[PageConfig]:
            target = next((p for p in doc["pages"] if p.get("id") == config_id), None)
            if target is None:
                return None
            for attr, key in _PAGE_FIELDS.items():
                if attr == "is_default" or attr not in fields or fields[attr] is None:
                    continue
                target[key] = fields[attr]
            target["updatedAt"] = _now()
            # is_default=False is ignored; the default only moves by promoting another page
            if fields.get("is_default"):
                self._promote(doc, config_id)
            return PageConfig.from_dict(target)

        return self._mutate(apply)

    def delete_page(self, config_id: str) -> bool:
        def apply(doc: Dict[str, Any]) -> bool:
            index = next((i for i, p in enumerate(doc["pages"]) if p.get("id") == config_id), -1)
            if index < 0:
                return False
            removed = doc["pages"].pop(index)
            if not doc["pages"]:
                doc["config"]["defaultPageId"] = None
            elif removed.get("isDefault"):
                # first remaining in stored order; arbitrary but kept stable
                self._promote(doc, doc["pages"][0]["id"])
            return True

        return self._mutate(apply)

    # ---- history ----

    def append_history(
        self,
        title: str,
        page_config_id: Optional[str],
        status: HistoryStatus | str,
        *,
        notion_page_id: Optional[str] = None,
        notion_url: Optional[str] = None,
        error: Optional[str] = None,
    ) -> HistoryRecord:
        status = HistoryStatus(status)
        ok = status is HistoryStatus.success
        record = HistoryRecord(
            id=_new_id(),
            title=title,
            page_config_id=page_config_id,
            status=status,
            created_at=_now(),
            notion_page_id=notion_page_id if ok else None,
            notion_url=notion_url if ok else None,
            error=None if ok else (error or "Unknown error"),
        )

        def apply(doc: Dict[str, Any]) -> HistoryRecord:
            doc["history"].insert(0, record.to_dict())
            del doc["history"][HISTORY_LIMIT:]
            return record

        return self._mutate(apply)

    def query_history(self, limit: int = 50, search: str = "") -> List[HistoryRecord]:
        limit = max(1, min(int(limit), HISTORY_LIMIT))
        needle = (search or "").strip().lower()
        out: List[HistoryRecord] = []
        for raw in self._snapshot()["history"]:
            if needle and needle not in str(raw.get("title") or "").lower():
                continue
            out.append(HistoryRecord.from_dict(raw))
            if len(out) >= limit:
                break
        return out

    # ---- settings ----

    def get_settings(self) -> Dict[str, Any]:
        return dict(self._snapshot()["settings"])

    def merge_settings(self, partial: Dict[str, Any]) -> Dict[str, Any]:
        updates = dict(partial or {})
        unknown = set(updates) - set(DEFAULT_SETTINGS)
        if unknown:
            raise ValidationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        for key in ("autoOpenNotion", "autoClearInput"):
            if key in updates and not isinstance(updates[key], bool):
                raise ValidationError(f"{key} must be a boolean")
        if "maxFileSize" in updates:
            size = updates["maxFileSize"]
            if isinstance(size, bool) or not isinstance(size, int) or size < MIN_MAX_FILE_SIZE:
                raise ValidationError(f"maxFileSize must be an integer >= {MIN_MAX_FILE_SIZE}")

        def apply(doc: Dict[str, Any]) -> Dict[str, Any]:
            doc["settings"].update(updates)
            return dict(doc["settings"])

        return self._mutate(apply)

    # ---- projections ----

    def status(self) -> Dict[str, Any]:
        has_key = self.has_secret_credential()
        pages = self._snapshot()["pages"]
        default = self.get_default_page()
        return {
            "configured": has_key and len(pages) > 0,
            "hasApiKey": has_key,
            "pageCount": len(pages),
            "defaultPage": (
                {"id": default.id, "name": default.name, "pageId": default.page_id}
                if default
                else None
            ),
        }
