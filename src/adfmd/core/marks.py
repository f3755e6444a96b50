"""Mark resolution: flattening nested inline formatting into marked leaves"""

from typing import Any, Optional

from adfmd.core.models import GenericNode


# Generic inline wrapper kind -> mark type
MARK_KINDS: dict[str, str] = {
    "strong":     "strong",
    "emphasis":   "em",
    "delete":     "strike",
    "inlineCode": "code",
    "link":       "link",
}

# Inline target nodes that carry marks besides text
MARKABLE_TYPES = {"text", "mention", "emoji", "status", "date", "inlineCard"}


def mark_for(node: GenericNode) -> Optional[dict[str, Any]]:
    """Return the mark a generic wrapper node contributes, or None."""
    mark_type = MARK_KINDS.get(node.kind)
    if mark_type is None:
        return None
    if mark_type == "link":
        attrs = {"href": node.attributes.get("href", "")}
        if node.attributes.get("title"):
            attrs["title"] = node.attributes["title"]
        return {"type": "link", "attrs": attrs}
    return {"type": mark_type}


def add_mark(marks: list[dict], mark: dict) -> list[dict]:
    """Return marks with mark appended, keeping `code` exclusive and types unique."""
    if any(m["type"] == "code" for m in marks):
        return marks
    if mark["type"] == "code":
        return [mark]
    if any(m["type"] == mark["type"] for m in marks):
        return marks
    return marks + [mark]


def wrap_with_mark(nodes: list[dict], mark: dict) -> list[dict]:
    """Apply an enclosing mark to already-built inline nodes, in place."""
    for node in nodes:
        if node.get("type") not in MARKABLE_TYPES:
            continue
        marks = add_mark(node.get("marks", []), mark)
        if marks:
            node["marks"] = marks
    return nodes


def same_marks(a: dict, b: dict) -> bool:
    return a.get("marks", []) == b.get("marks", [])


def merge_text_nodes(nodes: list[dict]) -> list[dict]:
    """Join adjacent text nodes with identical marks and drop empty ones."""
    merged: list[dict] = []
    for node in nodes:
        if node.get("type") == "text":
            if not node.get("text"):
                continue
            prev = merged[-1] if merged else None
            if prev is not None and prev.get("type") == "text" and same_marks(prev, node):
                prev["text"] += node["text"]
                continue
        merged.append(node)
    return merged
