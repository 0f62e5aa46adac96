from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

SRC_ROOT = Path(__file__).resolve().parents[2]
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from fastapi import FastAPI, File, Form, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.config import Config, load_config, validate_config
from core.crypto import SecretCipher
from core.errors import AppError, RemoteServiceError, ValidationError
from core.validators import extract_page_id, is_valid_api_key_format
from integrations.notion import NotionPublisher, preview
from services.upload import publish_markdown, read_upload
from state import HistoryRecord, PageConfig, Store
from .schemas import (
    ApiKeyRequest,
    ConfigStatusResponse,
    HistoryResponse,
    PageCreateRequest,
    PageResponse,
    PageUpdateRequest,
    PreviewRequest,
    RecentHistoryResponse,
    SettingsUpdateRequest,
    UploadRequest,
    ValidateFullRequest,
    ValidatePageRequest,
)

APP_VERSION = "1.0.0"
API_KEY_FORMAT_ERROR = 'Invalid API key format. Notion API keys should start with "secret_" or "ntn_".'
PAGE_ID_ERROR = "Invalid Notion page URL or ID. Please provide a valid Notion page link."

PublisherFactory = Callable[[str], NotionPublisher]


def _error(status_code: int, message: str, code: str, **extra: Any) -> JSONResponse:
    body: Dict[str, Any] = {"success": False, "error": message, "code": code}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


def _page_payload(page: PageConfig) -> Dict[str, Any]:
    return PageResponse(**page.to_dict()).model_dump()


def _history_payload(records: List[HistoryRecord], pages: List[PageConfig]) -> List[Dict[str, Any]]:
    names = {p.id: p.name for p in pages}
    items = []
    for record in records:
        data = record.to_dict()
        data["pageConfigName"] = names.get(record.page_config_id or "", "Unknown Page")
        items.append(data)
    return items


def create_app(
    cfg: Optional[Config] = None,
    store: Optional[Store] = None,
    publisher_factory: Optional[PublisherFactory] = None,
) -> FastAPI:
    """Build the API around an explicitly constructed store.

    The store is initialised on startup; tests may pass a pre-built store and
    a fake publisher factory.
    """
    cfg = cfg or load_config()
    if store is None:
        store = Store(cfg.db_path, SecretCipher(cfg.secret_key))
    if publisher_factory is None:
        def publisher_factory(token: str) -> NotionPublisher:
            return NotionPublisher(token, timeout_ms=cfg.notion_timeout_ms)

    app = FastAPI(title="Markdown to Notion", version=APP_VERSION)
    app.state.config = cfg
    app.state.store = store
    app.state.publisher_factory = publisher_factory

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins or ["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def _startup() -> None:
        for warning in validate_config(cfg):
            print(f"[server] warn: {warning}")
        store.init()

    @app.exception_handler(AppError)
    async def _app_error(_: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            print(f"[server] error code={exc.code}: {exc.message}")
        return _error(exc.status_code, exc.message, exc.code)

    @app.exception_handler(RequestValidationError)
    async def _request_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(x) for x in first.get("loc", ()) if x != "body")
        msg = first.get("msg", "Invalid request")
        return _error(400, f"{loc}: {msg}" if loc else msg, "VALIDATION_ERROR")

    def _stored_publisher() -> NotionPublisher:
        token = store.get_secret_credential()
        if not token:
            raise ValidationError("Notion API key is not configured", code="API_KEY_MISSING")
        return publisher_factory(token)

    # ---- health ----

    @app.get("/api/health")
    async def health() -> Dict[str, str]:
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": APP_VERSION,
        }

    # ---- config ----

    @app.get("/api/config/status", response_model=ConfigStatusResponse)
    async def config_status() -> Dict[str, Any]:
        return store.status()

    @app.post("/api/config/api-key")
    async def save_api_key(payload: ApiKeyRequest):
        api_key = payload.api_key.strip()
        if not is_valid_api_key_format(api_key):
            return _error(400, "Invalid API key format", "VALIDATION_ERROR")
        try:
            await asyncio.to_thread(publisher_factory(api_key).validate_api_key)
        except RemoteServiceError as exc:
            return _error(400, exc.message, exc.code)
        await asyncio.to_thread(store.set_secret_credential, api_key)
        return {"success": True, "message": "API key saved successfully"}

    @app.get("/api/config/pages")
    async def list_pages() -> Dict[str, Any]:
        return {"pages": [_page_payload(p) for p in store.list_pages()]}

    @app.post("/api/config/pages")
    async def add_page(payload: PageCreateRequest):
        page_id = extract_page_id(payload.page_url)
        if not page_id:
            return _error(400, "Invalid Notion page URL or ID", "VALIDATION_ERROR")
        publisher = _stored_publisher()
        try:
            info = await asyncio.to_thread(publisher.validate_page_access, page_id)
        except RemoteServiceError as exc:
            return _error(400, exc.message, exc.code)
        page = await asyncio.to_thread(
            store.add_page, payload.name, page_id, info.url, payload.is_default
        )
        return {"success": True, "page": _page_payload(page)}

    @app.put("/api/config/pages/{config_id}")
    async def update_page(config_id: str, payload: PageUpdateRequest):
        page = await asyncio.to_thread(
            store.update_page, config_id, name=payload.name, is_default=payload.is_default
        )
        if page is None:
            return _error(404, "Page configuration not found", "NOT_FOUND")
        return {"success": True, "page": _page_payload(page)}

    @app.delete("/api/config/pages/{config_id}")
    async def delete_page(config_id: str):
        deleted = await asyncio.to_thread(store.delete_page, config_id)
        if not deleted:
            return _error(404, "Page configuration not found", "NOT_FOUND")
        return {"success": True, "message": "Page configuration deleted"}

    # ---- validate ----

    @app.post("/api/validate/api-key")
    async def validate_api_key(payload: ApiKeyRequest):
        if not is_valid_api_key_format(payload.api_key):
            return _error(400, API_KEY_FORMAT_ERROR, "VALIDATION_ERROR")
        try:
            user = await asyncio.to_thread(publisher_factory(payload.api_key.strip()).validate_api_key)
        except RemoteServiceError as exc:
            return _error(400, exc.message, exc.code)
        return {"success": True, "user": user.to_dict()}

    @app.post("/api/validate/page")
    async def validate_page(payload: ValidatePageRequest):
        page_id = extract_page_id(payload.page_url)
        if not page_id:
            return _error(400, PAGE_ID_ERROR, "VALIDATION_ERROR")
        publisher = publisher_factory(payload.api_key.strip()) if payload.api_key else _stored_publisher()
        try:
            info = await asyncio.to_thread(publisher.validate_page_access, page_id)
        except RemoteServiceError as exc:
            return _error(400, exc.message, exc.code)
        return {"success": True, "pageId": page_id, "page": info.to_dict()}

    @app.post("/api/validate/full")
    async def validate_full(payload: ValidateFullRequest):
        if not is_valid_api_key_format(payload.api_key):
            return _error(400, API_KEY_FORMAT_ERROR, "VALIDATION_ERROR", step="api-key-format")
        publisher = publisher_factory(payload.api_key.strip())
        try:
            user = await asyncio.to_thread(publisher.validate_api_key)
        except RemoteServiceError as exc:
            return _error(400, exc.message, exc.code, step="api-key-validation")
        page_id = extract_page_id(payload.page_url)
        if not page_id:
            return _error(400, "Invalid Notion page URL or ID.", "VALIDATION_ERROR", step="page-id-extraction")
        try:
            info = await asyncio.to_thread(publisher.validate_page_access, page_id)
        except RemoteServiceError as exc:
            return _error(400, exc.message, exc.code, step="page-access")
        return {"success": True, "user": user.to_dict(), "pageId": page_id, "page": info.to_dict()}

    # ---- upload ----

    @app.post("/api/upload")
    async def upload(payload: UploadRequest) -> Dict[str, Any]:
        result = await asyncio.to_thread(
            publish_markdown,
            store,
            payload.markdown,
            page_config_id=payload.page_config_id,
            title=payload.title,
            publisher_factory=publisher_factory,
        )
        return result.to_dict()

    @app.post("/api/upload/file")
    async def upload_file(
        file: Optional[UploadFile] = File(None),
        pageConfigId: Optional[str] = Form(None),
        title: Optional[str] = Form(None),
    ) -> Dict[str, Any]:
        if file is None:
            raise ValidationError("No file uploaded")
        markdown = read_upload(file.filename, await file.read())
        result = await asyncio.to_thread(
            publish_markdown,
            store,
            markdown,
            page_config_id=pageConfigId or None,
            title=title,
            publisher_factory=publisher_factory,
        )
        return result.to_dict()

    @app.post("/api/upload/preview")
    async def upload_preview(payload: PreviewRequest) -> Dict[str, Any]:
        return preview(payload.markdown)

    # ---- history & settings ----

    @app.get("/api/history", response_model=HistoryResponse)
    async def history(
        limit: int = Query(50, ge=1, le=100),
        search: str = Query(""),
    ) -> Dict[str, Any]:
        records = store.query_history(limit, search)
        items = _history_payload(records, store.list_pages())
        return {"history": items, "total": len(items)}

    @app.get("/api/history/recent", response_model=RecentHistoryResponse)
    async def recent_history(limit: int = Query(5, ge=1, le=10)) -> Dict[str, Any]:
        records = store.query_history(limit)
        return {"history": _history_payload(records, store.list_pages())}

    @app.get("/api/settings")
    async def get_settings() -> Dict[str, Any]:
        return {"settings": store.get_settings()}

    @app.put("/api/settings")
    async def update_settings(payload: SettingsUpdateRequest) -> Dict[str, Any]:
        updates = payload.model_dump(exclude_none=True)
        settings = await asyncio.to_thread(store.merge_settings, updates)
        return {"success": True, "settings": settings}

    return app


app = create_app()

__all__ = ["app", "create_app", "APP_VERSION"]
