"""Structured results returned by upload routines."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from integrations.notion import PublishedPage
from state import HistoryRecord

__all__ = ["UploadResult"]


@dataclass
class UploadResult:
    page: PublishedPage
    history: HistoryRecord
    stats: Dict[str, int] = field(default_factory=dict)
    block_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"success": True, "page": self.page.to_dict(), "stats": dict(self.stats)}
