"""markdown-it tokenization and adaptation of the syntax tree into GenericNode trees"""

import re

from markdown_it import MarkdownIt
from markdown_it.tree import SyntaxTreeNode
from mdit_py_plugins.front_matter import front_matter_plugin

from adfmd.core.fences import normalize_fences
from adfmd.core.models import GenericNode


COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
SPAN_START_RE = re.compile(r"^\s*<!--\s*adf:[a-zA-Z]")


def make_parser(preset: str = "gfm-like", frontmatter: bool = True) -> MarkdownIt:
    """Build a MarkdownIt instance for the given preset name.

    `text_join` is disabled so backslash escapes and entities stay separate
    tokens; the social scanner must not see them as token syntax.
    """
    md = MarkdownIt(preset, options_update={"linkify": False})
    md.disable("text_join", ignoreInvalid=True)
    if frontmatter:
        md.use(front_matter_plugin)
    return md


def _position(node: SyntaxTreeNode):
    return tuple(node.map) if node.map else None


def _merge_text(nodes: list[GenericNode]) -> list[GenericNode]:
    """Join adjacent plain text nodes so token patterns see whole runs."""
    merged: list[GenericNode] = []
    for n in nodes:
        if n.kind == "text" and merged and merged[-1].kind == "text" and not merged[-1].attributes:
            merged[-1].text += n.text
        else:
            merged.append(n)
    return merged


class MarkdownAdapter:
    """Parse markdown with markdown-it and convert the SyntaxTreeNode tree to GenericNodes."""

    def __init__(self, parser: MarkdownIt):
        self.parser = parser

    def parse(self, text: str) -> GenericNode:
        tokens = self.parser.parse(normalize_fences(text))
        root = SyntaxTreeNode(tokens)
        return GenericNode("root", children=self._blocks(root.children))

    def parse_inline(self, text: str) -> list[GenericNode]:
        """Parse a single inline run (no block structure)."""
        root = SyntaxTreeNode(self.parser.parseInline(text))
        if not root.children:
            return []
        return self._inlines(root.children[0].children)

    # --- blocks ---

    def _blocks(self, nodes: list[SyntaxTreeNode]) -> list[GenericNode]:
        out: list[GenericNode] = []
        for node in nodes:
            out.extend(self._block(node))
        return self._join_span_paragraphs(out)

    def _block(self, node: SyntaxTreeNode) -> list[GenericNode]:
        pos = _position(node)
        t = node.type
        if t == "paragraph":
            return [GenericNode("paragraph", children=self._inline_of(node), position=pos)]
        if t == "heading":
            depth = int(node.tag[1:]) if node.tag[1:].isdigit() else 1
            return [GenericNode("heading", {"depth": depth}, self._inline_of(node), position=pos)]
        if t in ("bullet_list", "ordered_list"):
            attrs = {"ordered": t == "ordered_list"}
            if t == "ordered_list":
                attrs["start"] = int(node.attrs.get("start", 1))
            return [GenericNode("list", attrs, self._blocks(node.children), position=pos)]
        if t == "list_item":
            return [GenericNode("listItem", children=self._blocks(node.children), position=pos)]
        if t == "blockquote":
            return [GenericNode("blockquote", children=self._blocks(node.children), position=pos)]
        if t == "table":
            return [GenericNode("table", children=self._table_rows(node), position=pos)]
        if t in ("fence", "code_block"):
            return [self._code(node)]
        if t == "hr":
            return [GenericNode("thematicBreak", position=pos)]
        if t == "html_block":
            return self._html_block(node)
        if t == "front_matter":
            return [GenericNode("frontmatter", text=node.content, position=pos)]
        return [GenericNode(t, text=node.content or None, position=pos)]

    def _inline_of(self, node: SyntaxTreeNode) -> list[GenericNode]:
        if node.children and node.children[0].type == "inline":
            return self._inlines(node.children[0].children)
        return []

    def _code(self, node: SyntaxTreeNode) -> GenericNode:
        content = node.content
        if content.endswith("\n"):
            content = content[:-1]
        attrs = {"lang": None, "meta": None}
        if node.type == "fence":
            lang, _, meta = (node.info or "").strip().partition(" ")
            attrs = {"lang": lang or None, "meta": meta.strip() or None}
        return GenericNode("code", attrs, text=content, position=_position(node))

    def _table_rows(self, node: SyntaxTreeNode) -> list[GenericNode]:
        rows = []
        for section in node.children:       # thead / tbody
            for tr in section.children:
                cells = [
                    GenericNode(
                        "tableCell",
                        {"header": cell.type == "th", "align": _align(cell)},
                        self._inline_of(cell),
                        position=_position(cell),
                    )
                    for cell in tr.children
                ]
                rows.append(GenericNode("tableRow", children=cells, position=_position(tr)))
        return rows

    def _html_block(self, node: SyntaxTreeNode) -> list[GenericNode]:
        """Split comment-only blocks per comment; re-parse span-led blocks as paragraphs."""
        content = node.content.rstrip("\n")
        pos = _position(node)
        if not COMMENT_RE.sub("", content).strip():
            comments = COMMENT_RE.findall(content)
            return [GenericNode("html", text=c, position=pos) for c in comments] or [
                GenericNode("html", text=content, position=pos)]
        if SPAN_START_RE.match(content):
            return [GenericNode(
                "paragraph", {"fromHtml": True}, self.parse_inline(content.strip()), position=pos)]
        return [GenericNode("html", text=content, position=pos)]

    def _join_span_paragraphs(self, nodes: list[GenericNode]) -> list[GenericNode]:
        """Rejoin a re-parsed span line with the paragraph lines that directly follow it."""
        out: list[GenericNode] = []
        for n in nodes:
            prev = out[-1] if out else None
            if (n.kind == "paragraph" and prev is not None and prev.attributes.get("fromHtml")
                    and prev.position and n.position and prev.position[1] == n.position[0]):
                prev.children = _merge_text(prev.children + [GenericNode("text", text="\n")] + n.children)
                prev.position = (prev.position[0], n.position[1])
                continue
            out.append(n)
        for n in out:
            n.attributes.pop("fromHtml", None)
        return out

    # --- inlines ---

    def _inlines(self, nodes: list[SyntaxTreeNode]) -> list[GenericNode]:
        return _merge_text([self._inline(n) for n in nodes])

    def _inline(self, node: SyntaxTreeNode) -> GenericNode:
        t = node.type
        if t == "text":
            return GenericNode("text", text=node.content)
        if t == "text_special":
            return GenericNode("escape", text=node.content)
        if t == "softbreak":
            return GenericNode("text", text="\n")
        if t == "hardbreak":
            return GenericNode("break")
        if t == "code_inline":
            return GenericNode("inlineCode", text=node.content)
        if t in ("strong", "em", "s"):
            kind = {"strong": "strong", "em": "emphasis", "s": "delete"}[t]
            return GenericNode(kind, children=self._inlines(node.children))
        if t == "link":
            attrs = {"href": node.attrs.get("href", ""), "title": node.attrs.get("title")}
            return GenericNode("link", attrs, self._inlines(node.children))
        if t == "image":
            attrs = {"src": node.attrs.get("src", ""), "alt": node.content or "", "title": node.attrs.get("title")}
            return GenericNode("image", attrs)
        if t == "html_inline":
            return GenericNode("html", {"inline": True}, text=node.content)
        return GenericNode(t, text=node.content or None)


def _align(cell: SyntaxTreeNode):
    style = cell.attrs.get("style", "")
    return style.split(":", 1)[1] if style.startswith("text-align:") else None


def parse_markdown(text: str, parser: MarkdownIt = None) -> GenericNode:
    """Parse markdown text into a GenericNode root."""
    return MarkdownAdapter(parser or make_parser()).parse(text)
