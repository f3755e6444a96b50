"""Markdown stringifier: GenericNode tree to extended markdown text"""

import json
import re
from typing import Any, Optional

import yaml

from adfmd.core.annotations import coerce_value, span_annotation
from adfmd.core.models import GenericNode
from adfmd.core.social import token_spans


ALWAYS_ESCAPE = set("\\`*_[]<>~|")
LINE_START_RE = re.compile(r"^([ \t]*)([#+=-])", re.MULTILINE)
ORDERED_START_RE = re.compile(r"^([ \t]*\d+)([.)])", re.MULTILINE)
ENTITY_RE = re.compile(r"&(?=#?\w+;)")
BARE_HEADER_VALUE_RE = re.compile(r"[^\s\"'=]+")
BACKTICKS_RE = re.compile(r"`+")


# --- escaping ---

def _social_escapes(text: str) -> set[int]:
    """Offsets to backslash-escape so literal text never re-parses as a social token."""
    positions: set[int] = set()
    for kind, start, end in token_spans(text):
        raw = text[start:end]
        if kind == "date" and not raw.startswith("{"):
            positions.update(start + i for i, ch in enumerate(raw) if ch == "-")
        elif kind not in ("inlineCard", "mediaReference"):   # `[` is always escaped
            positions.add(start)
    return positions


def escape_text(text: str) -> str:
    """Escape markdown syntax and social token triggers in literal text."""
    social = _social_escapes(text)
    escaped = "".join(
        f"\\{ch}" if ch in ALWAYS_ESCAPE or i in social else ch
        for i, ch in enumerate(text)
    )
    escaped = ENTITY_RE.sub(r"\\&", escaped)
    escaped = LINE_START_RE.sub(r"\1\\\2", escaped)
    return ORDERED_START_RE.sub(r"\1\\\2", escaped)


def code_span(text: str) -> str:
    longest = max((len(m) for m in BACKTICKS_RE.findall(text)), default=0)
    fence = "`" * (longest + 1)
    pad = " " if text.startswith("`") or text.endswith("`") or (
        text.startswith(" ") and text.endswith(" ") and text.strip()) else ""
    return f"{fence}{pad}{text}{pad}{fence}"


def _destination(url: str) -> str:
    if re.search(r"[\s()<>]", url):
        return "<" + url.replace("<", "%3C").replace(">", "%3E") + ">"
    return url


def _title(title: Optional[str]) -> str:
    if not title:
        return ""
    return ' "' + title.replace("\\", "\\\\").replace('"', '\\"') + '"'


# --- inlines ---

def _delimit(marker: str, inner: str) -> str:
    """Wrap inner in marker, keeping surrounding whitespace outside the delimiters."""
    core = inner.strip(" \t\n")
    if not core:
        return inner
    lead = inner[:len(inner) - len(inner.lstrip(" \t\n"))]
    trail = inner[len(inner.rstrip(" \t\n")):]
    return f"{lead}{marker}{core}{marker}{trail}"


def render_inlines(nodes: list[GenericNode], table: bool = False) -> str:
    return "".join(_inline(n, table) for n in nodes)


def _inline(node: GenericNode, table: bool) -> str:
    kind = node.kind
    if kind in ("text", "escape"):
        text = escape_text(node.text or "")
        return text.replace("\n", " ") if table else text
    if kind == "raw":
        return node.text or ""
    if kind == "break":
        return "<br>" if table else "\\\n"
    if kind == "inlineCode":
        span = code_span(node.text or "")
        return span.replace("|", "\\|") if table else span
    inner = render_inlines(node.children, table)
    if kind == "strong":
        return _delimit("**", inner)
    if kind == "emphasis":
        return _delimit("*", inner)
    if kind == "delete":
        return _delimit("~~", inner)
    if kind == "link":
        href = node.attributes.get("href", "")
        return f"[{inner}]({_destination(href)}{_title(node.attributes.get('title'))})"
    if kind == "image":
        src = node.attributes.get("src", "")
        alt = escape_text(node.attributes.get("alt") or "")
        return f"![{alt}]({_destination(src)}{_title(node.attributes.get('title'))})"
    if kind == "span":
        comments = span_annotation(node.attributes.get("marks") or [])
        return f"{comments[0]}{inner}{comments[1]}" if comments else inner
    if kind == "html":
        return node.text or ""
    return escape_text(node.plain_text())


# --- blocks ---

def container_height(node: GenericNode) -> int:
    """Number of container levels at and below node."""
    below = max((container_height(c) for c in node.children), default=0)
    return below + 1 if node.kind == "container" else below


def _header_value(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if not isinstance(value, str) or '"' in value or "\n" in value:
        return None
    if BARE_HEADER_VALUE_RE.fullmatch(value) and coerce_value(value) == value:
        return value
    return f'"{value}"'


def fence_header(attrs: dict) -> str:
    """`key=value` fence header; falls back to `attrs='{json}'` when a value cannot be written bare or quoted."""
    parts = []
    for key, value in attrs.items():
        formatted = _header_value(value)
        if formatted is None:
            payload = json.dumps(attrs, ensure_ascii=False).replace("'", "\\u0027")
            return f"attrs='{payload}'"
        parts.append(f"{key}={formatted}")
    return " ".join(parts)


def _indent_item(marker: str, body: str) -> str:
    if not body:
        return marker.rstrip()
    pad = " " * len(marker)
    first, *rest = body.split("\n")
    return marker + first + "".join("\n" + (pad + line if line else "") for line in rest)


def _list(node: GenericNode, alternate: bool) -> str:
    ordered = node.attributes.get("ordered")
    start = node.attributes.get("start")
    start = 1 if start is None else start
    bullet, delim = ("*", ")") if alternate else ("-", ".")
    loose = any(len(item.children) > 1 for item in node.children)
    items = []
    for n, item in enumerate(node.children):
        marker = f"{start + n}{delim} " if ordered else f"{bullet} "
        body = render_blocks(item.children if item.kind == "listItem" else [item])
        items.append(_indent_item(marker, body))
    return ("\n\n" if loose else "\n").join(items)


def _table(node: GenericNode) -> str:
    rows = [[render_inlines(cell.children, table=True).strip() for cell in row.children]
            for row in node.children]
    width = max(len(r) for r in rows)
    rows = [r + [""] * (width - len(r)) for r in rows]
    lines = ["| " + " | ".join(rows[0]) + " |", "|" + "|".join([" --- "] * width) + "|"]
    lines += ["| " + " | ".join(r) + " |" for r in rows[1:]]
    return "\n".join(lines)


def _code(node: GenericNode) -> str:
    text = node.text or ""
    longest = max((len(m) for m in BACKTICKS_RE.findall(text)), default=0)
    fence = "`" * max(3, longest + 1)
    info = " ".join(p for p in (node.attributes.get("lang"), node.attributes.get("meta")) if p)
    return f"{fence}{info}\n{text}\n{fence}" if text else f"{fence}{info}\n{fence}"


def _container(node: GenericNode) -> str:
    ticks = "~" * (2 + container_height(node))
    header = fence_header(node.attributes.get("attrs") or {})
    opener = f"{ticks}{node.attributes['nodeType']}" + (f" {header}" if header else "")
    if node.attributes["nodeType"] == "mediaGroup":
        body = node.attributes.get("raw", "")
    else:
        body = render_blocks(node.children)
    return f"{opener}\n{body}\n{ticks}" if body else f"{opener}\n{ticks}"


def _block(node: GenericNode, previous: Optional[GenericNode]) -> str:
    kind = node.kind
    if kind == "paragraph":
        return render_inlines(node.children)
    if kind == "heading":
        text = render_inlines(node.children).replace("\\\n", " ").replace("\n", " ").strip()
        if text.endswith("#") and not text.endswith("\\#"):
            text = text[:-1] + "\\#"
        return ("#" * node.attributes.get("depth", 1) + " " + text).rstrip()
    if kind == "list":
        alternate = (previous is not None and previous.kind == "list"
                     and previous.attributes.get("ordered") == node.attributes.get("ordered"))
        return _list(node, alternate)
    if kind == "blockquote":
        inner = render_blocks(node.children)
        return "\n".join(f"> {line}" if line else ">" for line in inner.split("\n"))
    if kind == "code":
        return _code(node)
    if kind == "thematicBreak":
        return "***"
    if kind == "table":
        return _table(node) if node.children else ""
    if kind == "container":
        return _container(node)
    if kind in ("html", "raw"):
        return node.text or ""
    return escape_text(node.plain_text())


def render_blocks(nodes: list[GenericNode]) -> str:
    parts = []
    previous = None
    for node in nodes:
        text = _block(node, previous)
        if text:
            parts.append(text)
        previous = node
    return "\n\n".join(parts)


def stringify(root: GenericNode, frontmatter: dict[str, Any] = None) -> str:
    """Render a GenericNode root as markdown; an empty tree renders as an empty string."""
    body = render_blocks(root.children)
    if frontmatter:
        header = yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True)
        body = f"---\n{header}---" + (f"\n\n{body}" if body else "")
    return f"{body}\n" if body else ""
