"""Persistent JSON store for configuration, pages, history and settings."""

from .models import HISTORY_LIMIT, HistoryRecord, HistoryStatus, PageConfig  # noqa: F401
from .store import Store  # noqa: F401
