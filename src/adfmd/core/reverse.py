"""Reverse schema tree builder: ADF document to a GenericNode tree ready for stringifying"""

import re
from typing import Any, Callable

from adfmd.core.annotations import SPAN_MARK_TYPES, generate_annotation
from adfmd.core.models import ConversionContext, GenericNode
from adfmd.core.social import STATUS_COLORS, timestamp_to_date
from adfmd.errors import SchemaMappingError


EMOJI_NAME_RE = re.compile(r"[a-zA-Z0-9_+-]+")

WRAPPER_KINDS = {"strong": "strong", "em": "emphasis", "strike": "delete"}

Item = tuple[GenericNode, list[dict]]


def _comment(node_type: str, attrs: dict) -> list[GenericNode]:
    comment = generate_annotation(node_type, attrs)
    return [GenericNode("html", text=comment)] if comment else []


class ReverseBuilder:
    """Map target-schema nodes back to markup-level nodes, emitting annotations for attributes markup cannot carry."""

    def __init__(self, ctx: ConversionContext):
        self.ctx = ctx
        self._handlers: dict[str, Callable[[dict], list[GenericNode]]] = {
            "paragraph":    self._paragraph,
            "heading":      self._heading,
            "bulletList":   self._list,
            "orderedList":  self._list,
            "listItem":     self._list_item,
            "blockquote":   self._blockquote,
            "codeBlock":    self._code_block,
            "rule":         lambda node: [GenericNode("thematicBreak")],
            "panel":        self._container,
            "expand":       self._container,
            "nestedExpand": self._container,
            "mediaSingle":  self._media_single,
            "mediaGroup":   self._media_group,
            "media":        lambda node: [GenericNode("paragraph", children=[self._image(node)])],
            "table":        self._table,
            "blockCard":    self._block_card,
        }

    def build(self, doc: dict[str, Any]) -> GenericNode:
        return GenericNode("root", children=self.blocks(doc.get("content") or []))

    def _unknown(self, node: dict, inline: bool = False) -> list[GenericNode]:
        node_type = node.get("type") if isinstance(node, dict) else type(node).__name__
        message = f"no markup for {node_type!r}"
        if self.ctx.strict:
            raise SchemaMappingError(message, stage="reverse")
        if not self.ctx.preserve_unknown_nodes:
            self.ctx.warn("reverse", f"{message}, dropped")
            return []
        self.ctx.warn("reverse", f"{message}, kept as placeholder")
        text = GenericNode("text", text=f"[Unknown node: {node_type}]")
        return [text] if inline else [GenericNode("paragraph", children=[text])]

    # --- blocks ---

    def blocks(self, nodes: list[dict]) -> list[GenericNode]:
        out: list[GenericNode] = []
        for node in nodes:
            handler = self._handlers.get(node.get("type")) if isinstance(node, dict) else None
            out.extend(handler(node) if handler else self._unknown(node))
        return out

    def _paragraph(self, node: dict) -> list[GenericNode]:
        self._block_marks(node)
        return _comment("paragraph", node.get("attrs")) + [
            GenericNode("paragraph", children=self.inlines(node.get("content") or []))]

    def _heading(self, node: dict) -> list[GenericNode]:
        self._block_marks(node)
        attrs = node.get("attrs") or {}
        depth = min(max(int(attrs.get("level", 1)), 1), 6)
        return _comment("heading", attrs) + [
            GenericNode("heading", {"depth": depth}, self.inlines(node.get("content") or []))]

    def _block_marks(self, node: dict) -> None:
        for mark in node.get("marks") or []:
            self.ctx.warn("reverse", f"block mark {mark.get('type')!r} on {node['type']} has no markup, dropped")

    def _list(self, node: dict) -> list[GenericNode]:
        attrs = node.get("attrs") or {}
        generic = {"ordered": node["type"] == "orderedList"}
        if generic["ordered"]:
            order = attrs.get("order")
            generic["start"] = int(order) if order is not None else 1
        return _comment(node["type"], attrs) + [
            GenericNode("list", generic, self.blocks(node.get("content") or []))]

    def _list_item(self, node: dict) -> list[GenericNode]:
        if node.get("attrs"):
            self.ctx.warn("reverse", "listItem attributes have no markup position, dropped")
        return [GenericNode("listItem", children=self.blocks(node.get("content") or []))]

    def _blockquote(self, node: dict) -> list[GenericNode]:
        return [GenericNode("blockquote", children=self.blocks(node.get("content") or []))]

    def _code_block(self, node: dict) -> list[GenericNode]:
        attrs = node.get("attrs") or {}
        text = "".join(c.get("text", "") for c in node.get("content") or [])
        return _comment("codeBlock", attrs) + [
            GenericNode("code", {"lang": attrs.get("language"), "meta": None}, text=text)]

    def _container(self, node: dict) -> list[GenericNode]:
        """panel / expand / nestedExpand as a tilde fence; extra attributes ride in a preceding annotation."""
        node_type = node["type"]
        attrs = node.get("attrs") or {}
        if node_type == "panel":
            header = {"type": attrs.get("panelType") or "info"}
        else:
            header = {"title": attrs["title"]} if attrs.get("title") is not None else {}
        container = GenericNode(
            "container",
            {"nodeType": node_type, "attrs": header},
            self.blocks(node.get("content") or []),
        )
        return _comment(node_type, attrs) + [container]

    def _image(self, media: dict) -> GenericNode:
        attrs = media.get("attrs") or {}
        return GenericNode("image", {"src": f"media:{attrs.get('id', '')}", "alt": attrs.get("alt") or ""})

    def _media_single(self, node: dict) -> list[GenericNode]:
        media = [c for c in node.get("content") or [] if c.get("type") == "media"]
        if not media or not (media[0].get("attrs") or {}).get("id"):
            self.ctx.warn("reverse", "mediaSingle without a media id, dropped")
            return []
        comments = _comment("mediaSingle", node.get("attrs")) + _comment("media", media[0].get("attrs"))
        return comments + [GenericNode("paragraph", children=[self._image(media[0])])]

    def _media_group(self, node: dict) -> list[GenericNode]:
        lines = []
        for media in node.get("content") or []:
            attrs = media.get("attrs") or {}
            if media.get("type") != "media" or not attrs.get("id"):
                self.ctx.warn("reverse", "mediaGroup entry without a media id, dropped")
                continue
            line = f"![{attrs.get('alt') or ''}](media:{attrs['id']})"
            comment = generate_annotation("media", attrs)
            lines.append(f"{line} {comment}" if comment else line)
        container = GenericNode(
            "container",
            {"nodeType": "mediaGroup", "attrs": {}, "raw": "\n".join(lines)},
        )
        return _comment("mediaGroup", node.get("attrs")) + [container]

    def _table(self, node: dict) -> list[GenericNode]:
        rows = []
        for row in node.get("content") or []:
            if not isinstance(row, dict):
                self._unknown(row)
                continue
            cells = []
            for cell in row.get("content") or []:
                if not isinstance(cell, dict):
                    self._unknown(cell)
                    continue
                cell_type = cell.get("type")
                inline = [GenericNode("html", {"inline": True}, text=c.text)
                          for c in _comment(cell_type, cell.get("attrs"))]
                cells.append(GenericNode(
                    "tableCell",
                    {"header": cell_type == "tableHeader"},
                    inline + self._cell_inlines(cell.get("content") or []),
                ))
            rows.append(GenericNode("tableRow", children=cells))
        if not rows:
            return []
        return _comment("table", node.get("attrs")) + [GenericNode("table", children=rows)]

    def _cell_inlines(self, blocks: list[dict]) -> list[GenericNode]:
        """Flatten cell blocks to one inline run; paragraphs are joined by breaks."""
        out: list[GenericNode] = []
        for i, block in enumerate(blocks):
            if not isinstance(block, dict):
                out.extend(self._unknown(block, inline=True))
                continue
            if i:
                out.append(GenericNode("break"))
            if block.get("type") == "paragraph":
                out.extend(self.inlines(block.get("content") or []))
            else:
                self.ctx.warn("reverse", f"{block.get('type')!r} inside a table cell flattened to text")
                out.append(GenericNode("text", text=plain_text(block)))
        return out

    def _block_card(self, node: dict) -> list[GenericNode]:
        url = (node.get("attrs") or {}).get("url")
        if not url:
            return self._unknown(node)
        return [GenericNode("paragraph", children=[GenericNode("raw", text=f"[{url}](card:{url})")])]

    # --- inlines ---

    def inlines(self, nodes: list[dict]) -> list[GenericNode]:
        items: list[Item] = []
        for node in nodes:
            leaf = self._leaf(node)
            if leaf is not None:
                items.append((leaf, self._wrapping_marks(node) if isinstance(node, dict) else []))
        return self._nest(items)

    def _leaf(self, node: dict):
        node_type = node.get("type") if isinstance(node, dict) else None
        attrs = (node.get("attrs") or {}) if isinstance(node, dict) else {}
        if node_type == "text":
            text = node.get("text", "")
            if any(isinstance(m, dict) and m.get("type") == "code" for m in node.get("marks") or []):
                return GenericNode("inlineCode", text=text)
            return GenericNode("text", text=text)
        if node_type == "hardBreak":
            return GenericNode("break")
        if node_type == "mention" and attrs.get("id"):
            return GenericNode("raw", text=f"{{user:{attrs['id']}}}")
        if node_type == "emoji":
            name = str(attrs.get("shortName") or "").strip(":")
            if EMOJI_NAME_RE.fullmatch(name):
                return GenericNode("raw", text=f":{name}:")
            return GenericNode("text", text=attrs.get("text") or name)
        if node_type == "date" and attrs.get("timestamp") is not None:
            try:
                return GenericNode("raw", text=f"{{date:{timestamp_to_date(attrs['timestamp'])}}}")
            except (TypeError, ValueError, OverflowError):
                self.ctx.warn("reverse", f"invalid date timestamp {attrs['timestamp']!r}")
                return GenericNode("text", text=str(attrs["timestamp"]))
        if node_type == "status":
            text = str(attrs.get("text", ""))
            color = attrs.get("color") if attrs.get("color") in STATUS_COLORS else "neutral"
            if "}" in text or "|" in text:
                self.ctx.warn("reverse", f"status text {text!r} cannot be written as a token")
                return GenericNode("text", text=text)
            return GenericNode("raw", text=f"{{status:{text}|color:{color}}}")
        if node_type == "inlineCard" and attrs.get("url"):
            return GenericNode("raw", text=f"[{attrs['url']}](card:{attrs['url']})")
        if node_type == "media" and attrs.get("id"):
            return self._image(node)
        unknown = self._unknown(node, inline=True)
        return unknown[0] if unknown else None

    def _wrapping_marks(self, node: dict) -> list[dict]:
        """Marks that become wrappers around the leaf, inner first; span marks fold into one."""
        marks: list[dict] = []
        span: list[dict] = []
        for mark in node.get("marks") or []:
            if not isinstance(mark, dict):
                continue
            mark_type = mark.get("type")
            if mark_type == "code":
                continue
            if mark_type in WRAPPER_KINDS or mark_type == "link":
                marks.append(mark)
            elif mark_type in SPAN_MARK_TYPES:
                span.append(mark)
            else:
                self.ctx.warn("reverse", f"mark {mark_type!r} has no markup, dropped")
        if span:
            marks.append({"type": "_span", "marks": span})
        return marks

    def _nest(self, items: list[Item]) -> list[GenericNode]:
        """Rebuild wrapper nesting, letting each wrapper cover the longest run of leaves sharing it."""
        out: list[GenericNode] = []
        i = 0
        while i < len(items):
            leaf, marks = items[i]
            if not marks:
                out.append(leaf)
                i += 1
                continue
            best, best_len = None, 0
            for mark in reversed(marks):
                run = 1
                while i + run < len(items) and mark in items[i + run][1]:
                    run += 1
                if run > best_len:
                    best, best_len = mark, run
            group = [(l, [m for m in ms if m != best]) for l, ms in items[i:i + best_len]]
            out.append(self._wrap(best, self._nest(group)))
            i += best_len
        return out

    def _wrap(self, mark: dict, children: list[GenericNode]) -> GenericNode:
        if mark["type"] == "link":
            attrs = mark.get("attrs") or {}
            return GenericNode("link", {"href": attrs.get("href", ""), "title": attrs.get("title")}, children)
        if mark["type"] == "_span":
            return GenericNode("span", {"marks": mark["marks"]}, children)
        return GenericNode(WRAPPER_KINDS[mark["type"]], children=children)


def plain_text(node: Any) -> str:
    """All text in a schema subtree, block-separated by newlines."""
    if isinstance(node, list):
        return "\n".join(t for t in (plain_text(n) for n in node) if t)
    if not isinstance(node, dict):
        return ""
    if node.get("type") == "text":
        return node.get("text", "")
    inline = node.get("type") in ("paragraph", "heading")
    parts = [plain_text(c) for c in node.get("content") or []]
    return ("" if inline else "\n").join(p for p in parts if p)
