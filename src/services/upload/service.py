from __future__ import annotations

from pathlib import PurePath
from typing import Callable, Optional

from core.errors import AppError, NotFoundError, ValidationError
from core.validators import DEFAULT_MAX_SIZE, markdown_stats, validate_markdown
from integrations.notion import NotionPublisher, extract_title, markdown_to_blocks
from integrations.notion.markdown import RICH_TEXT_LIMIT
from state import HistoryStatus, PageConfig, Store
from .results import UploadResult

__all__ = [
    "ALLOWED_EXTENSIONS",
    "PublisherFactory",
    "publish_markdown",
    "read_upload",
    "resolve_target_page",
]

ALLOWED_EXTENSIONS = (".md", ".txt")

PublisherFactory = Callable[[str], NotionPublisher]


def resolve_target_page(store: Store, page_config_id: Optional[str] = None) -> PageConfig:
    if page_config_id:
        page = store.get_page(page_config_id)
        if page is None:
            raise NotFoundError("Page configuration not found")
        return page
    page = store.get_default_page()
    if page is None:
        raise ValidationError("No target page configured. Please add a page configuration first.")
    return page


def read_upload(filename: Optional[str], payload: bytes) -> str:
    """Decode an uploaded ``.md``/``.txt`` file."""
    if not filename:
        raise ValidationError("No file uploaded")
    if PurePath(filename.lower()).suffix not in ALLOWED_EXTENSIONS:
        raise ValidationError("Invalid file type. Only .md and .txt files are allowed.")
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ValidationError("File is not valid UTF-8 text") from exc


def publish_markdown(
    store: Store,
    markdown: str,
    *,
    page_config_id: Optional[str] = None,
    title: Optional[str] = None,
    publisher_factory: PublisherFactory = NotionPublisher,
) -> UploadResult:
    """Convert ``markdown`` and publish it as a child of the target page.

    Input problems (size, target, conversion) raise before anything is
    recorded. Once publishing starts every outcome lands in history: a failure
    is recorded with its message and then re-raised to the caller, whatever
    its type.
    """
    max_size = int(store.get_settings().get("maxFileSize") or DEFAULT_MAX_SIZE)
    validate_markdown(markdown, max_size)
    target = resolve_target_page(store, page_config_id)
    page_title = (title or "").strip()[:RICH_TEXT_LIMIT] or extract_title(markdown)
    blocks = markdown_to_blocks(markdown)

    try:
        token = store.get_secret_credential()
        if not token:
            raise ValidationError("Notion API key is not configured", code="API_KEY_MISSING")
        publisher = publisher_factory(token)
        page = publisher.create_page(target.page_id, page_title, blocks)
    except Exception as exc:
        message = exc.message if isinstance(exc, AppError) else str(exc)
        code = exc.code if isinstance(exc, AppError) else type(exc).__name__
        store.append_history(page_title, target.id, HistoryStatus.failed, error=message or None)
        print(f"[upload] failed title={page_title!r} target={target.id} code={code}: {message}")
        raise

    record = store.append_history(
        page_title,
        target.id,
        HistoryStatus.success,
        notion_page_id=page.id,
        notion_url=page.url,
    )
    print(f"[upload] published title={page_title!r} page={page.id} blocks={len(blocks)}")
    return UploadResult(page=page, history=record, stats=markdown_stats(markdown), block_count=len(blocks))
