"""Forward schema tree builder: resolved GenericNode tree to an ADF document"""

import re
from typing import Any, Callable

from loguru import logger

from adfmd.core.annotations import apply_annotations, parse_annotation
from adfmd.core.marks import MARK_KINDS, mark_for, merge_text_nodes, wrap_with_mark
from adfmd.core.models import ConversionContext, GenericNode, SocialToken, empty_document
from adfmd.core.social import scan_social_tokens
from adfmd.errors import SchemaMappingError


MEDIA_URL_RE = re.compile(r"^(?:adf:)?media:(.+)$")
CARD_URL_RE = re.compile(r"^card:(.+)$")
MEDIA_COMMENT_RE = re.compile(r"^[ \t]*(<!--\s*adf:media\b.*?-->)", re.DOTALL)
COMMENT_RE = re.compile(r"^\s*<!--.*?-->\s*$", re.DOTALL)
BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)

# Nodes the schema requires to hold at least one block
NON_EMPTY_TYPES = {"listItem", "tableCell", "tableHeader"}

Block = dict[str, Any]


def _paragraph(content: list[dict], attrs: dict = None) -> Block:
    node: Block = {"type": "paragraph", "content": content}
    if attrs:
        node["attrs"] = attrs
    return node


def _media(media_id: str, alt: str = "") -> Block:
    attrs = {"id": media_id, "type": "file", "collection": ""}
    if alt:
        attrs["alt"] = alt
    return {"type": "media", "attrs": attrs}


def _media_single(media_id: str, alt: str = "") -> Block:
    return {"type": "mediaSingle", "attrs": {"layout": "center"}, "content": [_media(media_id, alt)]}


def _is_blank_inline(node: dict) -> bool:
    return node.get("type") == "text" and not node.get("text", "").strip()


def prune_empty_paragraphs(nodes: list[Block]) -> list[Block]:
    """Drop paragraphs holding nothing but whitespace text, recursively."""
    out = []
    for node in nodes:
        if node.get("type") == "paragraph":
            if all(_is_blank_inline(c) for c in node.get("content", [])):
                continue
        elif "content" in node:
            node["content"] = prune_empty_paragraphs(node["content"])
            if node["type"] in NON_EMPTY_TYPES and not node["content"]:
                node["content"] = [_paragraph([])]
        out.append(node)
    return out


class TreeBuilder:
    """Map a resolved GenericNode tree to target-schema nodes.

    Mark and social token resolution happen on the way down; annotations
    attached by the annotation processor are merged onto the node they
    name, directly or through an alias.
    """

    def __init__(self, ctx: ConversionContext):
        self.ctx = ctx
        self._block_handlers: dict[str, Callable[[GenericNode], list[Block]]] = {
            "heading":       self._heading,
            "paragraph":     self._paragraph,
            "list":          self._list,
            "listItem":      self._list_item,
            "blockquote":    self._blockquote,
            "table":         self._table,
            "code":          self._code,
            "thematicBreak": self._rule,
            "html":          self._html,
            "container":     self._container,
            "frontmatter":   lambda node: [],
        }

    def build(self, root: GenericNode) -> dict[str, Any]:
        doc = empty_document()
        doc["content"] = prune_empty_paragraphs(self.blocks(root.children))
        return doc

    # --- helpers ---

    def _apply(self, node: GenericNode, node_type: str, attrs: dict) -> dict:
        for ann in apply_annotations(node_type, attrs, node.annotations):
            self.ctx.warn("annotations", f"{ann.raw} does not apply to {node_type}, ignored")
        return attrs

    def _unknown(self, kind: str, inline: bool = False) -> list[Block]:
        message = f"no mapping for {kind!r}"
        if self.ctx.strict:
            raise SchemaMappingError(message)
        if not self.ctx.preserve_unknown_nodes:
            self.ctx.warn("build", f"{message}, dropped")
            return []
        self.ctx.warn("build", f"{message}, kept as placeholder")
        text = {"type": "text", "text": f"[Unknown node: {kind}]"}
        return [text] if inline else [_paragraph([text])]

    # --- blocks ---

    def blocks(self, nodes: list[GenericNode]) -> list[Block]:
        out: list[Block] = []
        for node in nodes:
            handler = self._block_handlers.get(node.kind)
            out.extend(handler(node) if handler else self._unknown(node.kind))
        return out

    def _heading(self, node: GenericNode) -> list[Block]:
        level = min(max(int(node.attributes.get("depth", 1)), 1), 6)
        attrs = self._apply(node, "heading", {"level": level})
        content = [c for c in self.inlines(node.children) if c["type"] != "mediaSingle"]
        return [{"type": "heading", "attrs": attrs, "content": content}]

    def _paragraph(self, node: GenericNode) -> list[Block]:
        """Paragraph, split around media blocks; a lone media image is promoted in its place."""
        inline = self.inlines(node.children)
        media = [c for c in inline if c["type"] == "mediaSingle"]
        attrs: dict = {}
        leftover = apply_annotations("paragraph", attrs, node.annotations)

        if len(media) == 1 and all(c is media[0] or _is_blank_inline(c) or c["type"] == "hardBreak"
                                   for c in inline):
            single = media[0]
            media_id = single["content"][0]["attrs"]["id"]
            leftover = apply_annotations("mediaSingle", single["attrs"], leftover)
            leftover = apply_annotations("media", single["content"][0]["attrs"], leftover)
            single["content"][0]["attrs"]["id"] = media_id
            if attrs:
                single["attrs"].update(attrs)
            for ann in leftover:
                self.ctx.warn("annotations", f"{ann.raw} does not apply to mediaSingle, ignored")
            return [single]

        for ann in leftover:
            self.ctx.warn("annotations", f"{ann.raw} does not apply to paragraph, ignored")
        out: list[Block] = []
        run: list[dict] = []
        for item in inline:
            if item["type"] == "mediaSingle":
                if run:
                    out.append(_paragraph(run, dict(attrs)))
                    run = []
                out.append(item)
            else:
                run.append(item)
        if run or not out:
            out.append(_paragraph(run, attrs))
        return out

    def _list(self, node: GenericNode) -> list[Block]:
        if node.attributes.get("ordered"):
            node_type = "orderedList"
            start = node.attributes.get("start", 1)
            attrs = {"order": start} if start != 1 else {}
        else:
            node_type = "bulletList"
            attrs = {}
        self._apply(node, node_type, attrs)
        out: Block = {"type": node_type, "content": self.blocks(node.children)}
        if attrs:
            out["attrs"] = attrs
        return [out]

    def _list_item(self, node: GenericNode) -> list[Block]:
        attrs = self._apply(node, "listItem", {})
        out: Block = {"type": "listItem", "content": self.blocks(node.children)}
        if attrs:
            out["attrs"] = attrs
        return [out]

    def _blockquote(self, node: GenericNode) -> list[Block]:
        self._apply(node, "blockquote", {})
        return [{"type": "blockquote", "content": self.blocks(node.children)}]

    def _table(self, node: GenericNode) -> list[Block]:
        attrs = self._apply(node, "table", {"isNumberColumnEnabled": False, "layout": "default"})
        rows = []
        for row in node.children:
            cells = []
            for cell in row.children:
                cell_type = "tableHeader" if cell.attributes.get("header") else "tableCell"
                cell_attrs = self._apply(cell, cell_type, {})
                built: Block = {"type": cell_type, "content": self._paragraph(GenericNode("paragraph", children=cell.children))}
                if cell_attrs:
                    built["attrs"] = cell_attrs
                cells.append(built)
            rows.append({"type": "tableRow", "content": cells})
        return [{"type": "table", "attrs": attrs, "content": rows}]

    def _code(self, node: GenericNode) -> list[Block]:
        attrs = {}
        if node.attributes.get("lang"):
            attrs["language"] = node.attributes["lang"]
        self._apply(node, "codeBlock", attrs)
        out: Block = {"type": "codeBlock"}
        if attrs:
            out["attrs"] = attrs
        out["content"] = [{"type": "text", "text": node.text}] if node.text else []
        return [out]

    def _rule(self, node: GenericNode) -> list[Block]:
        return [{"type": "rule"}]

    def _html(self, node: GenericNode) -> list[Block]:
        text = node.text or ""
        ann = parse_annotation(text)
        if ann is not None:
            self.ctx.warn("annotations", f"unattached annotation dropped: {ann.raw}")
            return []
        if COMMENT_RE.match(text):
            logger.debug("html comment dropped")
            return []
        if not self.ctx.preserve_unknown_nodes:
            self.ctx.warn("build", "html block dropped")
            return []
        return [_paragraph([{"type": "text", "text": f"[HTML: {text}]"}])]

    # --- containers ---

    def _container(self, node: GenericNode) -> list[Block]:
        node_type = node.attributes["nodeType"]
        header = dict(node.attributes.get("attrs") or {})
        if node_type == "panel":
            attrs = {"panelType": header.pop("type", "info")}
            attrs.update(header)
            attrs = self._apply(node, "panel", attrs)
            return [{"type": "panel", "attrs": attrs, "content": self.blocks(node.children)}]
        if node_type in ("expand", "nestedExpand"):
            attrs = {}
            if "title" in header:
                attrs["title"] = str(header.pop("title"))
            attrs.update(header)
            attrs = self._apply(node, node_type, attrs)
            return [{"type": node_type, "attrs": attrs, "content": self.blocks(node.children)}]
        if node_type == "mediaSingle":
            return self._container_media_single(node, header)
        if node_type == "mediaGroup":
            attrs = self._apply(node, "mediaGroup", header)
            out: Block = {"type": "mediaGroup", "content": self._media_from_raw(node.attributes.get("raw", ""))}
            if attrs:
                out["attrs"] = attrs
            return [out]
        return self._unknown(node_type)

    def _container_media_single(self, node: GenericNode, header: dict) -> list[Block]:
        attrs = {"layout": header.pop("layout", "center")}
        attrs.update(header)
        media = []
        for block in self.blocks(node.children):
            if block["type"] == "mediaSingle":
                media.extend(block["content"])
            elif block["type"] == "media":
                media.append(block)
        if not media:
            media = self._media_from_raw(node.attributes.get("raw", ""))
        if not media:
            self.ctx.warn("build", "mediaSingle block without a media reference, kept as content")
            return self.blocks(node.children)
        leftover = apply_annotations("mediaSingle", attrs, node.annotations)
        for item in media:
            media_id = item["attrs"]["id"]
            apply_annotations("media", item["attrs"], leftover)
            item["attrs"]["id"] = media_id
        return [{"type": "mediaSingle", "attrs": attrs, "content": media[:1]}]

    def _media_from_raw(self, raw: str) -> list[Block]:
        """media nodes for every `![alt](media:ID)` in raw text, with trailing `adf:media` comments applied."""
        media = []
        segments = scan_social_tokens(raw, self.ctx.emoji_resolver)
        for i, seg in enumerate(segments):
            if not (isinstance(seg, SocialToken) and seg.kind == "mediaReference"):
                continue
            node = seg.to_node()
            nxt = segments[i + 1] if i + 1 < len(segments) else None
            if isinstance(nxt, str) and (m := MEDIA_COMMENT_RE.match(nxt)):
                ann = parse_annotation(m.group(1), self.ctx)
                if ann is not None:
                    apply_annotations("media", node["attrs"], [ann])
                    node["attrs"]["id"] = seg.attrs["id"]
            media.append(node)
        return media

    # --- inlines ---

    def inlines(self, nodes: list[GenericNode]) -> list[dict]:
        out: list[dict] = []
        for node in nodes:
            out.extend(self._inline(node))
        return merge_text_nodes(out)

    def _inline(self, node: GenericNode) -> list[dict]:
        kind = node.kind
        if kind == "text":
            return self._text(node.text or "")
        if kind == "escape":
            return [{"type": "text", "text": node.text or ""}]
        if kind == "break":
            return [{"type": "hardBreak"}]
        if kind == "inlineCode":
            return [{"type": "text", "text": node.text, "marks": [{"type": "code"}]}] if node.text else []
        if kind == "link" and (card := CARD_URL_RE.match(node.attributes.get("href", ""))):
            return [{"type": "inlineCard", "attrs": {"url": card.group(1)}}]
        if kind in MARK_KINDS:
            return wrap_with_mark(self.inlines(node.children), mark_for(node))
        if kind == "span":
            built = self.inlines(node.children)
            for mark in node.attributes.get("marks", []):
                wrap_with_mark(built, mark)
            return built
        if kind == "image":
            return self._image(node)
        if kind == "html":
            return self._inline_html(node)
        return self._unknown(kind, inline=True)

    def _text(self, text: str) -> list[dict]:
        out = []
        for seg in scan_social_tokens(text, self.ctx.emoji_resolver):
            if isinstance(seg, str):
                out.append({"type": "text", "text": seg})
            elif seg.kind == "mediaReference":
                out.append(_media_single(seg.attrs["id"], seg.attrs.get("alt", "")))
            else:
                out.append(seg.to_node())
        return out

    def _image(self, node: GenericNode) -> list[dict]:
        """`media:` images become mediaSingle; other images degrade to link-marked alt text."""
        src = node.attributes.get("src", "")
        alt = node.attributes.get("alt") or ""
        m = MEDIA_URL_RE.match(src)
        if m:
            return [_media_single(m.group(1), alt)]
        link = {"type": "link", "attrs": {"href": src}}
        if node.attributes.get("title"):
            link["attrs"]["title"] = node.attributes["title"]
        text = alt or src
        return [{"type": "text", "text": text, "marks": [link]}] if text else []

    def _inline_html(self, node: GenericNode) -> list[dict]:
        text = node.text or ""
        if BR_RE.fullmatch(text.strip()):
            return [{"type": "hardBreak"}]
        ann = parse_annotation(text)
        if ann is not None:
            self.ctx.warn("annotations", f"unpaired inline annotation dropped: {ann.raw}")
            return []
        if COMMENT_RE.match(text):
            return []
        if not self.ctx.preserve_unknown_nodes:
            self.ctx.warn("build", f"inline html {text!r} dropped")
            return []
        return [{"type": "text", "text": text}]
