"""Annotation comments: parsing, target resolution, span collapsing and regeneration"""

import json
import re
from typing import Any, Optional

from adfmd.core.models import Annotation, AttrValue, ConversionContext, GenericNode
from adfmd.errors import AnnotationParseError


ANNOTATION_RE = re.compile(r"^<!--\s*adf:([a-zA-Z][a-zA-Z0-9]*)(?:\s+(.*?))?\s*-->$", re.DOTALL)
CLOSING_RE = re.compile(r"^<!--\s*/adf:([a-zA-Z][a-zA-Z0-9]*)\s*-->$")
LEGACY_ATTRS_RE = re.compile(r"attrs='(.*)'", re.DOTALL)
QUOTED_ATTR_RE = re.compile(r"""(\w+)\s*=\s*(?:"([^"]*)"|'([^']*)')""")
BARE_ATTR_RE = re.compile(r"""(\w+)\s*=\s*([^\s"']+)""")
INT_RE = re.compile(r"-?\d+")
FLOAT_RE = re.compile(r"-?\d+\.\d+")
KEY_RE = re.compile(r"\w+")

# Processing directives that share the syntax but carry no attributes
DIRECTIVE_KINDS = {"inlineCard", "blockCard"}
# Parents that are themselves the target of annotations inside them
CONTENT_PARENTS = {"heading", "paragraph", "tableCell"}
ALIASES: dict[str, tuple[str, ...]] = {
    "cell":   ("tableCell", "tableHeader"),
    "header": ("tableHeader",),
}

# Attributes the markup syntax already carries
IMPLIED_ATTRS: dict[str, set[str]] = {
    "heading":      {"level"},
    "panel":        {"panelType"},
    "codeBlock":    {"language"},
    "orderedList":  {"order"},
    "media":        {"alt", "id"},
    "expand":       {"title"},
    "nestedExpand": {"title"},
}
DEFAULT_ATTRS: dict[str, dict[str, Any]] = {
    "table":       {"isNumberColumnEnabled": False, "layout": "default"},
    "media":       {"type": "file", "collection": ""},
    "mediaSingle": {"layout": "center"},
}

SPAN_KIND = "text"
SPAN_MARK_TYPES = ("underline", "textColor", "backgroundColor", "subsup")


# --- parsing ---

def coerce_value(value: str) -> AttrValue:
    """Return bool or number when value parses unambiguously as one, else value."""
    if value == "true":
        return True
    if value == "false":
        return False
    if INT_RE.fullmatch(value):
        return int(value)
    if FLOAT_RE.fullmatch(value):
        return float(value)
    return value


def parse_attribute_string(body: str, ctx: ConversionContext = None) -> dict[str, AttrValue]:
    """Parse `k="v" k2=v2` pairs, or the legacy `attrs='{json}'` form.

    Quoted pairs win over bare pairs with the same key. Legacy JSON that
    does not parse to an object is kept as a single `attrs` string.
    """
    body = (body or "").strip()
    legacy = LEGACY_ATTRS_RE.fullmatch(body)
    if legacy:
        literal = legacy.group(1)
        try:
            parsed = json.loads(literal)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        if ctx is not None:
            ctx.report(AnnotationParseError(f"invalid attrs JSON {literal!r}, kept as a string"))
        return {"attrs": literal}

    attrs: dict[str, AttrValue] = {}
    for m in QUOTED_ATTR_RE.finditer(body):
        value = m.group(2) if m.group(2) is not None else m.group(3)
        attrs[m.group(1)] = coerce_value(value)
    for key, value in BARE_ATTR_RE.findall(QUOTED_ATTR_RE.sub(" ", body)):
        attrs.setdefault(key, coerce_value(value))
    return attrs


def parse_annotation(raw: str, ctx: ConversionContext = None) -> Optional[Annotation]:
    """Parse one comment; None if it is not an annotation."""
    raw = raw.strip()
    closing = CLOSING_RE.match(raw)
    if closing:
        return Annotation(closing.group(1), raw=raw, closing=True)
    m = ANNOTATION_RE.match(raw)
    if m is None or m.group(1) in DIRECTIVE_KINDS:
        return None
    return Annotation(m.group(1), parse_attribute_string(m.group(2), ctx), raw=raw)


def _as_annotation(node: GenericNode, ctx: ConversionContext = None) -> Optional[Annotation]:
    if node.kind != "html" or not node.text:
        return None
    return parse_annotation(node.text, ctx)


def span_marks(attributes: dict[str, AttrValue]) -> list[dict]:
    """Marks encoded by span annotation attributes."""
    marks = []
    if attributes.get("underline") is True:
        marks.append({"type": "underline"})
    for key in ("textColor", "backgroundColor"):
        if attributes.get(key):
            marks.append({"type": key, "attrs": {"color": str(attributes[key])}})
    if attributes.get("subsup") in ("sub", "sup"):
        marks.append({"type": "subsup", "attrs": {"type": attributes["subsup"]}})
    return marks


# --- forward: attach and strip ---

def _find_closer(children: list[GenericNode], start: int, kind: str) -> Optional[int]:
    depth = 0
    for j in range(start, len(children)):
        ann = _as_annotation(children[j])
        if ann is None or ann.target_kind != kind:
            continue
        if not ann.closing:
            depth += 1
        elif depth == 0:
            return j
        else:
            depth -= 1
    return None


def _collapse_spans(node: GenericNode) -> None:
    """Fold inline `open, inner..., close` annotation runs into span nodes carrying marks."""
    children = node.children
    out: list[GenericNode] = []
    i = 0
    while i < len(children):
        child = children[i]
        ann = _as_annotation(child)
        if ann is not None and not ann.closing and child.attributes.get("inline"):
            j = _find_closer(children, i + 1, ann.target_kind)
            if j is not None:
                out.append(GenericNode(
                    "span",
                    {"kind": ann.target_kind, "marks": span_marks(ann.attributes)},
                    children[i + 1:j],
                ))
                i = j + 1
                continue
        out.append(child)
        i += 1
    node.children = out
    for child in out:
        _collapse_spans(child)


def _resolve_target(
    parent: GenericNode,
    anns: list[Optional[Annotation]],
    i: int,
    is_root: bool,
    ) -> Optional[GenericNode]:
    """Parent if content-bearing, else next then previous non-annotation sibling, else non-root parent."""
    if parent.kind in CONTENT_PARENTS:
        return parent
    for j in range(i + 1, len(anns)):
        if anns[j] is None:
            return parent.children[j]
    for j in range(i - 1, -1, -1):
        if anns[j] is None:
            return parent.children[j]
    return None if is_root else parent


def _attach(node: GenericNode, ctx: ConversionContext, is_root: bool) -> None:
    anns = [_as_annotation(c, ctx) for c in node.children]
    consumed: set[int] = set()
    for i, ann in enumerate(anns):
        if ann is None:
            continue
        if ann.closing:
            consumed.add(i)
            continue
        target = _resolve_target(node, anns, i, is_root)
        if target is None:
            ctx.warn("annotations", f"no target for {ann.raw}")
            continue
        target.annotations.append(ann)
        consumed.add(i)
    node.children = [c for i, c in enumerate(node.children) if i not in consumed]
    for child in node.children:
        _attach(child, ctx, is_root=False)


def process_annotations(root: GenericNode, ctx: ConversionContext) -> None:
    """Collapse span annotations, then attach block annotations to their targets and strip them."""
    _collapse_spans(root)
    _attach(root, ctx, is_root=True)


def annotation_matches(ann: Annotation, node_type: str) -> bool:
    return ann.target_kind == node_type or node_type in ALIASES.get(ann.target_kind, ())


def apply_annotations(node_type: str, attrs: dict, annotations: list[Annotation]) -> list[Annotation]:
    """Merge matching annotations into attrs; return those that did not match node_type."""
    unmatched = []
    for ann in annotations:
        if annotation_matches(ann, node_type):
            attrs.update(ann.attributes)
        else:
            unmatched.append(ann)
    return unmatched


# --- reverse: regenerate ---

def significant_attributes(node_type: str, attrs: dict) -> dict:
    """Drop attributes implied by markup syntax or equal to the schema default."""
    implied = IMPLIED_ATTRS.get(node_type, set())
    defaults = DEFAULT_ATTRS.get(node_type, {})
    return {
        k: v for k, v in (attrs or {}).items()
        if k not in implied and v is not None
        and not (k in defaults and type(defaults[k]) is type(v) and defaults[k] == v)
    }


def _needs_json(key: str, value: Any) -> bool:
    """True when `key="value"` would not parse back to the same key and value."""
    if not KEY_RE.fullmatch(key):
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return False
    if isinstance(value, float):
        return not FLOAT_RE.fullmatch(repr(value))
    if isinstance(value, str):
        return any(s in value for s in ('"', "\n", "--")) or coerce_value(value) != value
    return True


def _format_value(value: AttrValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return repr(value)
    return str(value)


def format_annotation(kind: str, attrs: dict, closing: bool = False) -> str:
    """Serialize an annotation comment, using the JSON form only when pairs would be lossy."""
    if closing:
        return f"<!-- /adf:{kind} -->"
    if not attrs:
        return f"<!-- adf:{kind} -->"
    if any(_needs_json(k, v) for k, v in attrs.items()):
        payload = json.dumps(attrs, ensure_ascii=False).replace("'", "\\u0027").replace(">", "\\u003e").replace("--", "-\\u002d")
        return f"<!-- adf:{kind} attrs='{payload}' -->"
    pairs = " ".join(f'{k}="{_format_value(v)}"' for k, v in attrs.items())
    return f"<!-- adf:{kind} {pairs} -->"


def generate_annotation(node_type: str, attrs: dict) -> Optional[str]:
    """Annotation comment for the significant attributes of a node, or None."""
    significant = significant_attributes(node_type, attrs)
    if not significant:
        return None
    return format_annotation(node_type, significant)


def span_annotation(marks: list[dict]) -> Optional[tuple[str, str]]:
    """Opening and closing span comments for marks markdown cannot express."""
    attrs: dict[str, AttrValue] = {}
    for mark in marks:
        mark_attrs = mark.get("attrs") or {}
        if mark["type"] == "underline":
            attrs["underline"] = True
        elif mark["type"] in ("textColor", "backgroundColor") and mark_attrs.get("color"):
            attrs[mark["type"]] = mark_attrs["color"]
        elif mark["type"] == "subsup" and mark_attrs.get("type") in ("sub", "sup"):
            attrs["subsup"] = mark_attrs["type"]
    if not attrs:
        return None
    return format_annotation(SPAN_KIND, attrs), format_annotation(SPAN_KIND, {}, closing=True)
