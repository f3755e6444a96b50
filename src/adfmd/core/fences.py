"""Container fence resolution: `~~~panel`, `~~~expand` and media blocks to container nodes"""

import json
import re
from typing import Callable, Optional

from loguru import logger

from adfmd.core.annotations import coerce_value
from adfmd.core.models import CONTAINER_KINDS, ConversionContext, FenceBlock, GenericNode
from adfmd.errors import FenceResolutionExhausted


MAX_PASSES = 5

_KINDS = "|".join(CONTAINER_KINDS)
CONTAINER_OPEN_RE = re.compile(rf"^([ \t]*)(~{{3,}})({_KINDS})(?![\w])(.*)$")
TILDE_CLOSE_RE = re.compile(r"^([ \t]*)(~{3,})[ \t]*$")
CODE_FENCE_RE = re.compile(r"^[ \t]*(`{3,}|~{3,})(.*)$")
INNER_OPEN_RE = re.compile(rf"^[ \t]*(?:~{{3,}}|`{{3,}})(?:{_KINDS})(?![\w])", re.MULTILINE)
INNER_CLOSE_RE = re.compile(r"^[ \t]*~{3,}[ \t]*$", re.MULTILINE)
TEXT_FENCE_RE = re.compile(rf"^~{{3,}}({_KINDS})([^\n]*)\n([\s\S]*?)\n~{{3,}}$")
HEADER_ATTR_RE = re.compile(r"""(\w+)=("[^"]*"|'[^']*'|[^"'\s]+)""")

ABSORBABLE_KINDS = {"paragraph", "container"}

ParseInner = Callable[[str], list[GenericNode]]


# --- pre-parse nesting normaliser ---

def normalize_fences(text: str) -> str:
    """Lengthen balanced container fences so every enclosing fence outlasts what it wraps.

    CommonMark ends a fence at the first bare closer at least as long as the
    opener, which would cut an outer `~~~expand` at the closer of a nested
    `~~~panel`. Innermost pairs get three tildes, each enclosing level one
    more. Unbalanced openers and the bodies of ordinary code fences are left as-is.
    """
    lines = text.split("\n")
    stack: list[list[int]] = []              # [opener line, tallest child]
    pairs: list[tuple[int, int, int]] = []   # (opener line, closer line, height)
    code_fence: Optional[str] = None

    for i, line in enumerate(lines):
        fence = CODE_FENCE_RE.match(line)
        if code_fence is not None:
            if (fence and fence.group(1)[0] == code_fence[0]
                    and len(fence.group(1)) >= len(code_fence) and not fence.group(2).strip()):
                code_fence = None
            continue
        if CONTAINER_OPEN_RE.match(line):
            stack.append([i, 0])
            continue
        if TILDE_CLOSE_RE.match(line) and stack:
            start, tallest = stack.pop()
            pairs.append((start, i, tallest + 1))
            if stack:
                stack[-1][1] = max(stack[-1][1], tallest + 1)
            continue
        if fence and not (fence.group(1)[0] == "`" and "`" in fence.group(2)):
            code_fence = fence.group(1)

    for start, end, height in pairs:
        ticks = "~" * (2 + height)
        opener = CONTAINER_OPEN_RE.match(lines[start])
        lines[start] = f"{opener.group(1)}{ticks}{opener.group(3)}{opener.group(4)}"
        lines[end] = TILDE_CLOSE_RE.match(lines[end]).group(1) + ticks
    return "\n".join(lines)


# --- header parsing ---

def parse_fence_header(header: str, ctx: ConversionContext = None) -> dict:
    """Parse `key=value key="quoted value"` pairs; `attrs='{json}'` is merged in."""
    attrs: dict = {}
    for key, raw in HEADER_ATTR_RE.findall(header or ""):
        if raw[0] in "\"'":
            value = raw[1:-1]
        else:
            value = coerce_value(raw)
        if key == "attrs":
            try:
                extra = json.loads(value)
            except (json.JSONDecodeError, TypeError):
                extra = None
            if isinstance(extra, dict):
                attrs.update(extra)
                continue
            if ctx is not None:
                ctx.warn("fences", f"invalid attrs JSON in fence header: {value!r}")
        attrs[key] = value
    return attrs


# --- detection ---

def _is_open_ended(inner: str) -> bool:
    """True when an inner fence swallowed the closer meant for this container."""
    return len(INNER_OPEN_RE.findall(inner)) > len(INNER_CLOSE_RE.findall(inner))


def detect_fence(node: GenericNode, ctx: ConversionContext = None) -> Optional[FenceBlock]:
    """Return a FenceBlock if node is container syntax on either detection surface."""
    if node.kind == "code":
        lang = node.attributes.get("lang")
        if lang not in CONTAINER_KINDS:
            return None
        return FenceBlock(lang, parse_fence_header(node.attributes.get("meta") or "", ctx), node.text or "")
    if node.kind != "paragraph" or not node.children or any(c.kind != "text" for c in node.children):
        return None
    m = TEXT_FENCE_RE.match(node.plain_text().strip())
    if m is None:
        return None
    return FenceBlock(m.group(1), parse_fence_header(m.group(2), ctx), m.group(3))


def fence_to_container(
    block: FenceBlock,
    parse_inner: ParseInner,
    annotations: list = None,
    ) -> GenericNode:
    """Fold a FenceBlock into a container node whose children come from its parsed inner text."""
    attrs = {
        "nodeType": block.node_type,
        "attrs": block.attributes,
        "openEnded": _is_open_ended(block.inner_text),
    }
    if block.node_type in ("mediaGroup", "mediaSingle"):
        attrs["raw"] = block.inner_text
    children = [] if block.node_type == "mediaGroup" else parse_inner(block.inner_text)
    return GenericNode("container", attrs, children, annotations=list(annotations or []))


def literal_fence(node: GenericNode) -> GenericNode:
    """Render unresolved container syntax back as a plain-text paragraph."""
    if node.kind == "code":
        header = " ".join(p for p in (node.attributes.get("lang"), node.attributes.get("meta")) if p)
        text = f"~~~{header}\n{node.text or ''}\n~~~"
    else:
        text = node.plain_text()
    return GenericNode("paragraph", children=[GenericNode("text", text=text)],
                       position=node.position, annotations=node.annotations)


# --- fixed-point resolution ---

def _resolve_pass(node: GenericNode, parse_inner: ParseInner, ctx: ConversionContext) -> int:
    """Replace every container fence at one syntactic layer. Newly built children are not visited."""
    replaced = 0
    for i, child in enumerate(node.children):
        block = detect_fence(child, ctx)
        if block is not None:
            node.children[i] = fence_to_container(block, parse_inner, child.annotations)
            replaced += 1
        else:
            replaced += _resolve_pass(child, parse_inner, ctx)
    return replaced


def _exhaust(node: GenericNode) -> int:
    """Turn fences still unresolved after the pass cap into literal text."""
    left = 0
    for i, child in enumerate(node.children):
        if detect_fence(child) is not None:
            node.children[i] = literal_fence(child)
            left += 1
        else:
            left += _exhaust(child)
    return left


def resolve_fences(root: GenericNode, parse_inner: ParseInner, ctx: ConversionContext) -> int:
    """Resolve container fences to a fixed point, at most MAX_PASSES passes. Returns passes run."""
    passes = 0
    while passes < MAX_PASSES:
        passes += 1
        replaced = _resolve_pass(root, parse_inner, ctx)
        logger.debug("fence pass {}: {} container(s) resolved", passes, replaced)
        if replaced == 0:
            break
    else:
        left = _exhaust(root)
        if left:
            ctx.report(FenceResolutionExhausted(
                f"{left} container fence(s) nested deeper than {MAX_PASSES} levels left as text"))
    consolidate_siblings(root, ctx.nesting_lookahead)
    return passes


# --- heuristic nesting consolidation ---

def consolidate_siblings(node: GenericNode, lookahead: int) -> None:
    """Pull the blocks following an open-ended panel/expand back inside it.

    Only containers whose own closer was swallowed by an inner fence absorb,
    up to `lookahead` siblings. A run of same-kind containers always stays
    a run of siblings.
    """
    children = node.children
    i = 0
    while i < len(children):
        child = children[i]
        if (child.kind == "container" and child.attributes.get("openEnded")
                and child.attributes["nodeType"] in ("panel", "expand")):
            kind = child.attributes["nodeType"]
            taken = 0
            while taken < lookahead and i + 1 < len(children):
                nxt = children[i + 1]
                if nxt.kind == "container" and nxt.attributes.get("nodeType") == kind:
                    break
                if nxt.kind not in ABSORBABLE_KINDS:
                    break
                child.children.append(children.pop(i + 1))
                taken += 1
            child.attributes["openEnded"] = False
        consolidate_siblings(child, lookahead)
        i += 1
