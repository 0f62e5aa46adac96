"""Markdown → Notion block conversion on top of mistune's AST."""

from __future__ import annotations
from typing import Any, Dict, List, Optional

import mistune

from core.errors import ConversionError
from core.validators import markdown_stats
from .client import MAX_BLOCKS_PER_REQUEST, chunk_blocks

__all__ = ["markdown_to_blocks", "extract_title", "preview", "DEFAULT_TITLE", "RICH_TEXT_LIMIT"]

DEFAULT_TITLE = "New Markdown Page"
TITLE_MAX_CHARS = 50
# Notion caps a single rich_text content string at 2000 characters
RICH_TEXT_LIMIT = 2000

_parser = mistune.create_markdown(
    renderer=None,
    plugins=["strikethrough", "table", "task_lists", "url"],
)

_LANGUAGE_ALIASES = {
    "": "plain text",
    "text": "plain text",
    "txt": "plain text",
    "plaintext": "plain text",
    "sh": "shell",
    "zsh": "shell",
    "console": "shell",
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "python3": "python",
    "rb": "ruby",
    "rs": "rust",
    "yml": "yaml",
    "md": "markdown",
    "cpp": "c++",
    "cs": "c#",
    "csharp": "c#",
    "kt": "kotlin",
    "golang": "go",
    "dockerfile": "docker",
    "ps1": "powershell",
    "objc": "objective-c",
    "proto": "protobuf",
}

_NOTION_LANGUAGES = {
    "abap", "arduino", "bash", "basic", "c", "clojure", "coffeescript", "c++", "c#",
    "css", "dart", "diff", "docker", "elixir", "elm", "erlang", "flow", "fortran",
    "f#", "gherkin", "glsl", "go", "graphql", "groovy", "haskell", "html", "java",
    "javascript", "json", "julia", "kotlin", "latex", "less", "lisp", "livescript",
    "lua", "makefile", "markdown", "markup", "matlab", "mermaid", "nix",
    "objective-c", "ocaml", "pascal", "perl", "php", "plain text", "powershell",
    "prolog", "protobuf", "python", "r", "reason", "ruby", "rust", "sass", "scala",
    "scheme", "scss", "shell", "sql", "swift", "typescript", "vb.net", "verilog",
    "vhdl", "visual basic", "webassembly", "xml", "yaml",
}


def _language(info: Optional[str]) -> str:
    name = (info or "").strip().split(" ")[0].lower()
    name = _LANGUAGE_ALIASES.get(name, name)
    return name if name in _NOTION_LANGUAGES else "plain text"


def _text(content: str, annotations: Optional[Dict[str, bool]] = None, link: Optional[str] = None) -> Dict[str, Any]:
    item: Dict[str, Any] = {"type": "text", "text": {"content": content}}
    if link:
        item["text"]["link"] = {"url": link}
    if annotations:
        item["annotations"] = dict(annotations)
    return item


def _inline(nodes: List[Dict[str, Any]], annotations: Optional[Dict[str, bool]] = None, link: Optional[str] = None) -> List[Dict[str, Any]]:
    annotations = annotations or {}
    items: List[Dict[str, Any]] = []
    for node in nodes:
        ntype = node.get("type", "")
        if ntype == "text":
            raw = node.get("raw", "")
            if raw:
                items.append(_text(raw, annotations, link))
        elif ntype in ("strong", "emphasis", "strikethrough"):
            flag = {"strong": "bold", "emphasis": "italic", "strikethrough": "strikethrough"}[ntype]
            items.extend(_inline(node.get("children", []), {**annotations, flag: True}, link))
        elif ntype == "codespan":
            items.append(_text(node.get("raw", ""), {**annotations, "code": True}, link))
        elif ntype == "link":
            url = node.get("attrs", {}).get("url") or None
            items.extend(_inline(node.get("children", []), annotations, url))
        elif ntype == "image":
            url = node.get("attrs", {}).get("url") or None
            alt = "".join(c.get("raw", "") for c in node.get("children", [])) or url or ""
            items.append(_text(alt, annotations, url))
        elif ntype in ("softbreak", "linebreak"):
            items.append(_text("\n", annotations, link))
        else:
            raw = node.get("raw", "")
            if raw:
                items.append(_text(raw, annotations, link))
    return _split_long(items)


def _split_long(items: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for item in items:
        content = item["text"]["content"]
        if len(content) <= RICH_TEXT_LIMIT:
            out.append(item)
            continue
        for start in range(0, len(content), RICH_TEXT_LIMIT):
            piece = dict(item)
            piece["text"] = {**item["text"], "content": content[start : start + RICH_TEXT_LIMIT]}
            out.append(piece)
    return out


def _plain(content: str) -> List[Dict[str, Any]]:
    return _split_long([_text(content)]) if content else []


def _block(block_type: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"object": "block", "type": block_type, block_type: payload}


def _list_items(node: Dict[str, Any]) -> List[Dict[str, Any]]:
    ordered = node.get("attrs", {}).get("ordered", False)
    blocks: List[Dict[str, Any]] = []
    for item in node.get("children", []):
        inline_nodes: List[Dict[str, Any]] = []
        nested: List[Dict[str, Any]] = []
        for child in item.get("children", []):
            ctype = child.get("type", "")
            if ctype in ("block_text", "paragraph"):
                if inline_nodes:
                    inline_nodes.append({"type": "softbreak"})
                inline_nodes.extend(child.get("children", []))
            elif ctype != "blank_line":
                nested.extend(_node_to_blocks(child))
        payload: Dict[str, Any] = {"rich_text": _inline(inline_nodes)}
        if item.get("type") == "task_list_item":
            block_type = "to_do"
            payload["checked"] = bool(item.get("attrs", {}).get("checked"))
        else:
            block_type = "numbered_list_item" if ordered else "bulleted_list_item"
        if nested:
            payload["children"] = nested
        blocks.append(_block(block_type, payload))
    return blocks


def _table(node: Dict[str, Any]) -> List[Dict[str, Any]]:
    rows: List[List[Dict[str, Any]]] = []
    has_header = False
    for section in node.get("children", []):
        stype = section.get("type", "")
        if stype == "table_head":
            has_header = True
            rows.append(section.get("children", []))
        elif stype == "table_body":
            for row in section.get("children", []):
                rows.append(row.get("children", []))
    if not rows:
        return []
    width = max(len(r) for r in rows)
    table_rows = []
    for cells in rows:
        converted = [_inline(cell.get("children", [])) for cell in cells]
        converted.extend([] for _ in range(width - len(converted)))
        table_rows.append(_block("table_row", {"cells": converted}))
    return [
        _block(
            "table",
            {
                "table_width": width,
                "has_column_header": has_header,
                "has_row_header": False,
                "children": table_rows,
            },
        )
    ]


def _node_to_blocks(node: Dict[str, Any]) -> List[Dict[str, Any]]:
    ntype = node.get("type", "")

    if ntype == "heading":
        level = min(max(int(node.get("attrs", {}).get("level", 1)), 1), 3)
        return [_block(f"heading_{level}", {"rich_text": _inline(node.get("children", []))})]

    if ntype == "paragraph":
        children = node.get("children", [])
        if len(children) == 1 and children[0].get("type") == "image":
            url = children[0].get("attrs", {}).get("url")
            if url:
                return [_block("image", {"type": "external", "external": {"url": url}})]
        return [_block("paragraph", {"rich_text": _inline(children)})]

    if ntype == "list":
        return _list_items(node)

    if ntype == "block_quote":
        inline_nodes: List[Dict[str, Any]] = []
        for child in node.get("children", []):
            if child.get("type") in ("paragraph", "block_text"):
                if inline_nodes:
                    inline_nodes.append({"type": "softbreak"})
                inline_nodes.extend(child.get("children", []))
        return [_block("quote", {"rich_text": _inline(inline_nodes)})]

    if ntype == "block_code":
        raw = node.get("raw", "").rstrip("\n")
        return [
            _block(
                "code",
                {"language": _language(node.get("attrs", {}).get("info")), "rich_text": _plain(raw)},
            )
        ]

    if ntype == "thematic_break":
        return [_block("divider", {})]

    if ntype == "table":
        return _table(node)

    if ntype == "blank_line":
        return []

    raw = (node.get("raw") or "").strip()
    if raw:
        return [_block("paragraph", {"rich_text": _plain(raw)})]
    return []


def _split_table(block: Dict[str, Any]) -> List[Dict[str, Any]]:
    payload = block["table"]
    rows = payload["children"]
    if len(rows) <= MAX_BLOCKS_PER_REQUEST:
        return [block]
    header = rows[:1] if payload.get("has_column_header") else []
    settings = {k: v for k, v in payload.items() if k != "children"}
    return [
        _block("table", {**settings, "children": header + batch})
        for batch in chunk_blocks(rows[len(header) :], MAX_BLOCKS_PER_REQUEST - len(header))
    ]


def _fit_block(block: Dict[str, Any]) -> List[Dict[str, Any]]:
    btype = block["type"]
    if btype == "table":
        return _split_table(block)
    payload = block[btype]
    overflow: List[Dict[str, Any]] = []
    if payload.get("children"):
        children = _fit(payload["children"])
        payload["children"] = children[:MAX_BLOCKS_PER_REQUEST]
        # extra nested blocks follow the parent as siblings
        overflow = children[MAX_BLOCKS_PER_REQUEST:]
    rich_text = payload.get("rich_text")
    if rich_text is None or len(rich_text) <= MAX_BLOCKS_PER_REQUEST:
        return [block] + overflow
    settings = {k: v for k, v in payload.items() if k not in ("rich_text", "children")}
    pieces = [_block(btype, {**settings, "rich_text": batch}) for batch in chunk_blocks(rich_text)]
    if payload.get("children"):
        pieces[-1][btype]["children"] = payload["children"]
    return pieces + overflow


def _fit(blocks: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep every nested array within the 100 items Notion accepts."""
    out: List[Dict[str, Any]] = []
    for block in blocks:
        out.extend(_fit_block(block))
    return out


def markdown_to_blocks(markdown: Optional[str]) -> List[Dict[str, Any]]:
    if not markdown or not isinstance(markdown, str):
        return []
    try:
        tokens = _parser(markdown)
    except Exception as exc:
        raise ConversionError(f"Failed to convert markdown: {exc}") from exc
    if not isinstance(tokens, list):
        raise ConversionError("Failed to convert markdown: parser returned no tokens")
    blocks: List[Dict[str, Any]] = []
    for node in tokens:
        blocks.extend(_node_to_blocks(node))
    return _fit(blocks)


def extract_title(markdown: Optional[str]) -> str:
    """First ``#``/``##`` heading, else the first non-empty line (truncated)."""
    if not markdown or not isinstance(markdown, str):
        return DEFAULT_TITLE
    lines = markdown.split("\n")
    for line in lines:
        s = line.strip()
        if s.startswith("# "):
            return s[2:].strip()[:RICH_TEXT_LIMIT]
        if s.startswith("## "):
            return s[3:].strip()[:RICH_TEXT_LIMIT]
    for line in lines:
        s = line.strip()
        if s:
            return s[:TITLE_MAX_CHARS] + "..." if len(s) > TITLE_MAX_CHARS else s
    return DEFAULT_TITLE


def preview(markdown: Optional[str]) -> Dict[str, Any]:
    stats: Dict[str, Any] = dict(markdown_stats(markdown))
    stats["blocks"] = len(markdown_to_blocks(markdown)) if markdown else 0
    return {"title": extract_title(markdown), "stats": stats}
