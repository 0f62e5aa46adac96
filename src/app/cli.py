from __future__ import annotations
import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

SRC_ROOT = Path(__file__).resolve().parents[1]
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from core.config import Config, load_config, validate_config
from core.crypto import SecretCipher, generate_secret_key
from core.errors import AppError, ValidationError
from core.validators import extract_page_id, is_valid_api_key_format
from integrations.notion import NotionPublisher
from services.upload import publish_markdown, read_upload
from state import Store


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Publish Markdown files as Notion pages")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_serve = sub.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", default=None, help="Bind address (default: HOST or localhost)")
    p_serve.add_argument("--port", type=int, default=None, help="Port (default: PORT or 3000)")
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    sub.add_parser("gen-secret", help="Print a random value for SECRET_KEY")

    p_key = sub.add_parser("set-key", help="Store the Notion integration token (encrypted)")
    p_key.add_argument("api_key", help="Token starting with secret_ or ntn_")
    p_key.add_argument("--skip-check", action="store_true", help="Do not call users.me before saving")

    p_pages = sub.add_parser("pages", help="Manage destination pages")
    pages_sub = p_pages.add_subparsers(dest="pages_cmd", required=True)
    pages_sub.add_parser("list", help="List configured pages")
    p_add = pages_sub.add_parser("add", help="Add a destination page")
    p_add.add_argument("name")
    p_add.add_argument("page_url", help="Notion page URL, UUID or 32-char id")
    p_add.add_argument("--default", action="store_true", help="Make it the default page")
    p_add.add_argument("--skip-check", action="store_true", help="Do not verify page access")
    p_def = pages_sub.add_parser("default", help="Make a page the default")
    p_def.add_argument("id")
    p_del = pages_sub.add_parser("delete", help="Delete a page configuration")
    p_del.add_argument("id")

    p_up = sub.add_parser("upload", help="Publish a .md/.txt file")
    p_up.add_argument("file")
    p_up.add_argument("--page", default=None, help="Page configuration id (default page otherwise)")
    p_up.add_argument("--title", default=None, help="Page title (first heading otherwise)")

    p_hist = sub.add_parser("history", help="Show upload history")
    p_hist.add_argument("--limit", type=int, default=20)
    p_hist.add_argument("--search", default="")

    p_set = sub.add_parser("settings", help="Show or change settings")
    p_set.add_argument("--set", action="append", default=[], metavar="KEY=VALUE", help="e.g. autoOpenNotion=true")
    return parser.parse_args(argv)


def _open_store(cfg: Config) -> Store:
    return Store(cfg.db_path, SecretCipher(cfg.secret_key)).init()


def _publisher(cfg: Config, token: str) -> NotionPublisher:
    return NotionPublisher(token, timeout_ms=cfg.notion_timeout_ms)


def _parse_setting(raw: str) -> tuple[str, Any]:
    key, sep, value = raw.partition("=")
    if not sep or not key.strip():
        raise ValidationError(f"Expected KEY=VALUE, got {raw!r}")
    value = value.strip()
    if value.lower() in {"true", "false"}:
        return key.strip(), value.lower() == "true"
    try:
        return key.strip(), int(value)
    except ValueError:
        return key.strip(), value


def _print_json(data: Dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(data, ensure_ascii=False, indent=2) + "\n")


def run(args: argparse.Namespace, cfg: Config) -> int:
    if args.cmd == "serve":
        import uvicorn

        for warning in validate_config(cfg):
            print(f"[warn] {warning}")
        uvicorn.run(
            "app.server.app:app",
            host=args.host or cfg.host,
            port=args.port or cfg.port,
            reload=args.reload,
            app_dir=str(SRC_ROOT),
            log_level=cfg.log_level.lower(),
        )
        return 0
    if args.cmd == "gen-secret":
        print(generate_secret_key())
        return 0

    store = _open_store(cfg)
    if args.cmd == "set-key":
        key = args.api_key.strip()
        if not is_valid_api_key_format(key):
            raise ValidationError('Invalid API key format. Notion API keys should start with "secret_" or "ntn_".')
        if not args.skip_check:
            user = _publisher(cfg, key).validate_api_key()
            print(f"[set-key] token belongs to {user.name or user.id} ({user.type})")
        store.set_secret_credential(key)
        print("[set-key] saved")
    elif args.cmd == "pages":
        if args.pages_cmd == "list":
            for i, page in enumerate(store.list_pages(), 1):
                mark = "*" if page.is_default else " "
                print(f"{mark} {i:02d}. {page.name} (id={page.id} page={page.page_id})")
        elif args.pages_cmd == "add":
            page_id = extract_page_id(args.page_url)
            if not page_id:
                raise ValidationError("Invalid Notion page URL or ID")
            url = None
            if not args.skip_check:
                token = store.get_secret_credential()
                if not token:
                    raise ValidationError("Notion API key is not configured")
                info = _publisher(cfg, token).validate_page_access(page_id)
                url = info.url
            page = store.add_page(args.name, page_id, url=url, is_default=args.default)
            print(f"[pages] added {page.name} id={page.id} default={page.is_default}")
        elif args.pages_cmd == "default":
            if store.update_page(args.id, is_default=True) is None:
                print(f"[pages] not found: {args.id}")
                return 1
            print(f"[pages] default -> {args.id}")
        elif args.pages_cmd == "delete":
            if not store.delete_page(args.id):
                print(f"[pages] not found: {args.id}")
                return 1
            print(f"[pages] deleted {args.id}")
    elif args.cmd == "upload":
        path = Path(args.file)
        markdown = read_upload(path.name, path.read_bytes())
        result = publish_markdown(
            store,
            markdown,
            page_config_id=args.page,
            title=args.title,
            publisher_factory=lambda token: _publisher(cfg, token),
        )
        print(f"[upload] {result.page.title} -> {result.page.url}")
    elif args.cmd == "history":
        for record in store.query_history(args.limit, args.search):
            where = record.notion_url or record.error or ""
            print(f"{record.created_at}  {record.status.value:<7}  {record.title}  {where}")
    elif args.cmd == "settings":
        if args.set:
            updates = dict(_parse_setting(raw) for raw in args.set)
            _print_json(store.merge_settings(updates))
        else:
            _print_json(store.get_settings())
    return 0


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    cfg = load_config()
    try:
        code = run(args, cfg)
    except AppError as exc:
        print(f"[error] {exc.message}", file=sys.stderr)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
