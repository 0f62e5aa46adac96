from __future__ import annotations

import re
from typing import Dict, Optional

from core.errors import ValidationError

__all__ = [
    "extract_page_id",
    "is_valid_api_key_format",
    "validate_markdown",
    "markdown_stats",
    "DEFAULT_MAX_SIZE",
]

DEFAULT_MAX_SIZE = 10 * 1024 * 1024

_RAW_ID_RE = re.compile(r"^[a-f0-9]{32}$", re.IGNORECASE)
_UUID_RE = re.compile(
    r"^[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}$",
    re.IGNORECASE,
)
# notion.so/<workspace>/<Title-Words>-<32 hex>
_URL_RE = re.compile(r"notion\.so/(?:[^/]+/)?(?:[^-]+-)*([a-f0-9]{32})", re.IGNORECASE)
_TRAILING_HEX_RE = re.compile(r"([a-f0-9]{32})(?:\?|$)", re.IGNORECASE)
_API_KEY_RE = re.compile(r"^(secret_|ntn_)[a-zA-Z0-9]+$")


def extract_page_id(value: object) -> Optional[str]:
    """Return the 32-hex Notion page id found in ``value`` or None.

    Accepts a raw id, a dashed UUID, a notion.so link, or any string ending in
    a 32-hex run (optionally followed by a query string). Case is preserved.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if _RAW_ID_RE.match(text):
        return text
    if _UUID_RE.match(text):
        return text.replace("-", "")
    m = _URL_RE.search(text)
    if m:
        return m.group(1)
    m = _TRAILING_HEX_RE.search(text)
    if m:
        return m.group(1)
    return None


def is_valid_api_key_format(api_key: object) -> bool:
    # Internal integration tokens start with "secret_" (legacy) or "ntn_"
    if not isinstance(api_key, str) or not api_key:
        return False
    return bool(_API_KEY_RE.match(api_key.strip()))


def _mb(size: int) -> str:
    return f"{size / 1024 / 1024:.2f}MB"


def validate_markdown(markdown: object, max_size: int = DEFAULT_MAX_SIZE) -> None:
    if not isinstance(markdown, str) or not markdown:
        raise ValidationError("Markdown content is required")
    trimmed = markdown.strip()
    if not trimmed:
        raise ValidationError("Markdown content cannot be empty")
    size = len(trimmed.encode("utf-8"))
    if size > max_size:
        raise ValidationError(
            f"Content size ({_mb(size)}) exceeds maximum allowed size ({_mb(max_size)})"
        )


def markdown_stats(markdown: Optional[str]) -> Dict[str, int]:
    if not markdown:
        return {"chars": 0, "lines": 0, "words": 0}
    return {
        "chars": len(markdown),
        "lines": len(markdown.split("\n")),
        "words": len(markdown.split()),
    }
