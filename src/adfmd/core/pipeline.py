"""Conversion engine: orchestrates parse -> annotations -> fences -> build, and the reverse path"""

import asyncio
from contextlib import contextmanager
from typing import Any, Optional

import yaml
from loguru import logger

from adfmd.config import Settings
from adfmd.core.annotations import process_annotations
from adfmd.core.builder import TreeBuilder
from adfmd.core.emoji import resolve_emoji
from adfmd.core.fences import resolve_fences
from adfmd.core.models import (
    CONTAINER_KINDS,
    ConversionContext,
    ConversionResult,
    EmojiResolver,
    GenericNode,
    empty_document,
)
from adfmd.core.parse import MarkdownAdapter, make_parser
from adfmd.core.reverse import ReverseBuilder, plain_text
from adfmd.core.stringify import stringify
from adfmd.errors import ConversionError, FrontmatterParseError, InputError


EXTENSION_INLINE_TYPES = ("mention", "emoji", "date", "status", "inlineCard")
TABLE_TYPES = ("table", "tableRow", "tableHeader", "tableCell")


@contextmanager
def _stage(name: str):
    """Re-raise any non-ConversionError failure as a ConversionError naming the stage."""
    try:
        yield
    except ConversionError:
        raise
    except Exception as e:
        raise ConversionError(f"{name}: {e}", stage=name) from e


def _pop_frontmatter(root: GenericNode) -> Optional[str]:
    """Remove a leading frontmatter node and return its YAML text."""
    if root.children and root.children[0].kind == "frontmatter":
        return root.children.pop(0).text or ""
    return None


def load_frontmatter(text: Optional[str]) -> dict[str, Any]:
    """Parse frontmatter YAML; raises FrontmatterParseError when it is invalid or not a mapping."""
    if text is None:
        return {}
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise FrontmatterParseError(f"Invalid YAML frontmatter: {e}") from e
    if not isinstance(data, dict):
        raise FrontmatterParseError(f"Invalid YAML frontmatter: expected a mapping, got {type(data).__name__}")
    return data


def fallback_document(markup: str) -> dict[str, Any]:
    """Whole input as a single paragraph."""
    doc = empty_document()
    doc["content"] = [{"type": "paragraph", "content": [{"type": "text", "text": markup}]}]
    return doc


def document_stats(document: dict[str, Any]) -> dict[str, Any]:
    """Node counts and feature flags for an ADF document; the doc root itself is not counted."""
    stats = {"node_count": 0, "block_count": 0, "container_count": 0, "max_depth": 0,
             "has_tables": False, "has_extensions": False}
    stack = [(node, 1) for node in document.get("content") or []]
    while stack:
        node, depth = stack.pop()
        if not isinstance(node, dict):
            continue
        node_type = node.get("type")
        stats["node_count"] += 1
        stats["max_depth"] = max(stats["max_depth"], depth)
        if depth == 1:
            stats["block_count"] += 1
        if node_type in CONTAINER_KINDS:
            stats["container_count"] += 1
        if node_type in TABLE_TYPES:
            stats["has_tables"] = True
        if node_type in CONTAINER_KINDS or node_type in EXTENSION_INLINE_TYPES:
            stats["has_extensions"] = True
        stack.extend((child, depth + 1) for child in node.get("content") or [])
    count = stats["node_count"]
    stats["complexity"] = "simple" if count < 10 else "moderate" if count < 50 else "complex"
    return stats


class ConversionEngine:
    """Bidirectional markdown <-> ADF converter.

    Every call builds its own context; an engine can be shared between
    threads and tasks. In strict mode typed ConversionErrors propagate;
    otherwise each call returns a structurally valid result and records
    what went wrong as warnings.
    """

    def __init__(self, settings: Settings = None, emoji_resolver: EmojiResolver = None):
        self.settings = settings or Settings()
        self.emoji_resolver = emoji_resolver or resolve_emoji
        self._adapter = MarkdownAdapter(make_parser(self.settings.parser_config, self.settings.frontmatter))
        self._fragment_adapter = MarkdownAdapter(make_parser(self.settings.parser_config, frontmatter=False))

    def _context(self) -> ConversionContext:
        return ConversionContext(
            strict=self.settings.strict,
            preserve_unknown_nodes=self.settings.preserve_unknown_nodes,
            nesting_lookahead=self.settings.nesting_lookahead,
            emoji_resolver=self.emoji_resolver,
        )

    def _with_strict(self, strict: bool) -> "ConversionEngine":
        if self.settings.strict == strict:
            return self
        return ConversionEngine(self.settings.model_copy(update={"strict": strict}), self.emoji_resolver)

    # --- inspection ---

    def get_stats(self, markup: str) -> dict[str, Any]:
        """Statistics for the document markup converts to. Never raises."""
        result = self._with_strict(False).convert_result(markup)
        stats = document_stats(result.document)
        stats["has_frontmatter"] = bool(result.frontmatter)
        stats["warning_count"] = len(result.warnings)
        return stats

    def validate(self, markup: str) -> dict[str, Any]:
        """Check markup under strict rules, returning {"valid", "errors", "warnings"} instead of raising.

        Errors are what a strict conversion raises; warnings are what a
        lenient conversion records besides those errors.
        """
        try:
            result = self._with_strict(True).convert_result(markup)
        except ConversionError as e:
            error = f"{e.stage}: {e}"
            lenient = self._with_strict(False).convert_result(markup)
            return {"valid": False, "errors": [error], "warnings": [w for w in lenient.warnings if w != error]}
        return {"valid": True, "errors": [], "warnings": list(result.warnings)}

    # --- forward ---

    def convert(self, markup: str) -> dict[str, Any]:
        """Markdown to an ADF document."""
        return self.convert_result(markup).document

    def convert_result(self, markup: str) -> ConversionResult:
        """Markdown to an ADF document plus frontmatter and warnings."""
        ctx = self._context()
        empty = self._check_input(markup, ctx)
        if empty is not None:
            return empty
        try:
            root = self._parse(markup)
            frontmatter = self._frontmatter(_pop_frontmatter(root), ctx)
            return self._finish(root, frontmatter, ctx)
        except ConversionError as e:
            return self._recover(markup, e, ctx)

    async def convert_async(self, markup: str) -> dict[str, Any]:
        """Like convert, but frontmatter YAML is parsed off the event loop."""
        ctx = self._context()
        empty = self._check_input(markup, ctx)
        if empty is not None:
            return empty.document
        try:
            root = self._parse(markup)
            frontmatter = await asyncio.to_thread(self._frontmatter, _pop_frontmatter(root), ctx)
            return self._finish(root, frontmatter, ctx).document
        except ConversionError as e:
            return self._recover(markup, e, ctx).document

    def _check_input(self, markup: Any, ctx: ConversionContext) -> Optional[ConversionResult]:
        """Empty result for blank input, InputError in strict mode for non-strings and empty strings."""
        if not isinstance(markup, str):
            if ctx.strict:
                raise InputError(f"expected markup text, got {type(markup).__name__}")
            ctx.warn("input", f"expected markup text, got {type(markup).__name__}")
            return ConversionResult(document=empty_document(), warnings=ctx.warnings)
        if markup == "" and ctx.strict:
            raise InputError("empty markup")
        if not markup.strip():
            return ConversionResult(document=empty_document(), warnings=ctx.warnings)
        return None

    def _parse(self, markup: str) -> GenericNode:
        with _stage("parse"):
            return self._adapter.parse(markup)

    def _parse_fragment(self, text: str, ctx: ConversionContext) -> list[GenericNode]:
        """Parse a container's inner text; annotations inside it are attached here."""
        fragment = self._fragment_adapter.parse(text)
        process_annotations(fragment, ctx)
        return fragment.children

    def _frontmatter(self, text: Optional[str], ctx: ConversionContext) -> dict[str, Any]:
        try:
            return load_frontmatter(text)
        except FrontmatterParseError as e:
            if ctx.strict:
                raise
            ctx.report(e)
            return {}

    def _finish(self, root: GenericNode, frontmatter: dict, ctx: ConversionContext) -> ConversionResult:
        with _stage("annotations"):
            process_annotations(root, ctx)
        with _stage("fences"):
            passes = resolve_fences(root, lambda text: self._parse_fragment(text, ctx), ctx)
        with _stage("build"):
            document = TreeBuilder(ctx).build(root)
        logger.debug("converted {} block(s) after {} fence pass(es)", len(document["content"]), passes)
        return ConversionResult(document=document, warnings=ctx.warnings, frontmatter=frontmatter)

    def _recover(self, markup: str, error: ConversionError, ctx: ConversionContext) -> ConversionResult:
        if ctx.strict:
            raise error
        ctx.report(error)
        logger.bind(stage=error.stage).warning("falling back to a single paragraph")
        return ConversionResult(document=fallback_document(markup), warnings=ctx.warnings)

    # --- reverse ---

    def convert_reverse(self, tree: dict[str, Any], frontmatter: dict[str, Any] = None) -> str:
        """ADF document to markdown; frontmatter, when given, is written as a YAML header."""
        ctx = self._context()
        if not isinstance(tree, dict) or tree.get("type") != "doc" or not isinstance(tree.get("content", []), list):
            if ctx.strict:
                raise InputError("expected an ADF document with type 'doc'")
            ctx.warn("input", "not an ADF document, writing its plain text")
            return plain_text(tree if isinstance(tree, (dict, list)) else [])
        try:
            with _stage("reverse"):
                root = ReverseBuilder(ctx).build(tree)
            with _stage("stringify"):
                return stringify(root, frontmatter)
        except ConversionError as e:
            if ctx.strict:
                raise
            ctx.report(e)
            return plain_text(tree.get("content") or [])


def convert(markup: str, settings: Settings = None, **overrides) -> dict[str, Any]:
    """One-shot forward conversion; keyword overrides are Settings fields."""
    return ConversionEngine(settings or Settings(**overrides)).convert(markup)


def convert_reverse(tree: dict[str, Any], settings: Settings = None, **overrides) -> str:
    """One-shot reverse conversion; keyword overrides are Settings fields."""
    return ConversionEngine(settings or Settings(**overrides)).convert_reverse(tree)
