"""Unit tests for core/reverse.py"""

import pytest

from adfmd.core.models import ConversionContext
from adfmd.core.reverse import ReverseBuilder, plain_text
from adfmd.errors import SchemaMappingError


def _doc(*content):
    return {"version": 1, "type": "doc", "content": list(content)}


def _para(*inline):
    return {"type": "paragraph", "content": list(inline)}


def _text(text, *marks):
    node = {"type": "text", "text": text}
    if marks:
        node["marks"] = list(marks)
    return node


def _reverse(*content, **ctx_opts):
    ctx = ConversionContext(**ctx_opts)
    return ReverseBuilder(ctx).build(_doc(*content)), ctx


# --- blocks ---

def test_reverse_heading_with_annotation():
    root, _ = _reverse({"type": "heading", "attrs": {"level": 2, "id": "x"}, "content": [_text("T")]})
    comment, heading = root.children
    assert comment.kind == "html"
    assert comment.text == '<!-- adf:heading id="x" -->'
    assert heading.attributes == {"depth": 2}


def test_reverse_ordered_list_start():
    item = {"type": "listItem", "content": [_para(_text("a"))]}
    root, _ = _reverse({"type": "orderedList", "attrs": {"order": 4}, "content": [item]})
    (lst,) = root.children
    assert lst.attributes == {"ordered": True, "start": 4}


def test_reverse_ordered_list_start_zero():
    item = {"type": "listItem", "content": [_para(_text("a"))]}
    root, _ = _reverse({"type": "orderedList", "attrs": {"order": 0}, "content": [item]})
    (lst,) = root.children
    assert lst.attributes == {"ordered": True, "start": 0}


def test_reverse_list_item_attrs_dropped_with_warning():
    item = {"type": "listItem", "attrs": {"localId": "1"}, "content": [_para(_text("a"))]}
    _, ctx = _reverse({"type": "bulletList", "content": [item]})
    assert any("listItem" in w for w in ctx.warnings)


def test_reverse_panel_container():
    root, _ = _reverse({"type": "panel", "attrs": {"panelType": "note"}, "content": [_para(_text("x"))]})
    (container,) = root.children
    assert container.attributes == {"nodeType": "panel", "attrs": {"type": "note"}}


def test_reverse_media_single():
    media = {"type": "media", "attrs": {"id": "abc", "type": "file", "collection": "", "alt": "pic"}}
    root, _ = _reverse({"type": "mediaSingle", "attrs": {"layout": "center"}, "content": [media]})
    (para,) = root.children
    (image,) = para.children
    assert image.attributes == {"src": "media:abc", "alt": "pic"}


def test_reverse_media_single_without_id_dropped():
    root, ctx = _reverse({"type": "mediaSingle", "content": []})
    assert root.children == []
    assert ctx.warnings


# --- inlines ---

def test_reverse_social_leaves():
    root, _ = _reverse(_para(
        {"type": "mention", "attrs": {"id": "alice"}},
        {"type": "emoji", "attrs": {"shortName": ":smile:"}},
        {"type": "date", "attrs": {"timestamp": "1703462400000"}},
        {"type": "status", "attrs": {"text": "Done", "color": "green"}},
        {"type": "inlineCard", "attrs": {"url": "https://x.y"}},
    ))
    assert [n.text for n in root.children[0].children] == [
        "{user:alice}", ":smile:", "{date:2023-12-25}", "{status:Done|color:green}", "[https://x.y](card:https://x.y)",
    ]


def test_reverse_status_with_brace_falls_back_to_text():
    root, ctx = _reverse(_para({"type": "status", "attrs": {"text": "a}b", "color": "red"}}))
    (leaf,) = root.children[0].children
    assert leaf.kind == "text"
    assert ctx.warnings


def test_reverse_code_mark():
    root, _ = _reverse(_para(_text("x", {"type": "code"})))
    (leaf,) = root.children[0].children
    assert leaf.kind == "inlineCode"


def test_reverse_nests_shared_marks():
    """A wrapper shared by adjacent leaves is emitted once around both."""
    strong, em = {"type": "strong"}, {"type": "em"}
    root, _ = _reverse(_para(_text("a", strong), _text("b", strong, em)))
    (wrapper,) = root.children[0].children
    assert wrapper.kind == "strong"
    assert [c.kind for c in wrapper.children] == ["text", "emphasis"]


def test_reverse_span_marks():
    root, _ = _reverse(_para(_text("u", {"type": "underline"})))
    (span,) = root.children[0].children
    assert span.kind == "span"
    assert span.attributes == {"marks": [{"type": "underline"}]}


def test_reverse_unsupported_mark_dropped():
    root, ctx = _reverse(_para(_text("x", {"type": "annotation", "attrs": {"id": "1"}})))
    assert root.children[0].children[0].kind == "text"
    assert ctx.warnings


# --- unknown nodes ---

def test_reverse_unknown_placeholder():
    root, ctx = _reverse({"type": "mystery"})
    assert root.children[0].plain_text() == "[Unknown node: mystery]"
    assert ctx.warnings


def test_reverse_unknown_dropped():
    root, _ = _reverse({"type": "mystery"}, preserve_unknown_nodes=False)
    assert root.children == []


def test_reverse_unknown_strict():
    with pytest.raises(SchemaMappingError):
        _reverse({"type": "mystery"}, strict=True)


def test_reverse_non_dict_inline_placeholder():
    """A malformed inline entry becomes a placeholder; its siblings still reverse."""
    root, ctx = _reverse(_para(_text("a"), "junk", _text("b", {"type": "strong"})))
    (para,) = root.children
    assert para.plain_text() == "a[Unknown node: str]b"
    assert ctx.warnings == ["reverse: no markup for 'str', kept as placeholder"]


def test_reverse_table_skips_malformed_rows_and_cells():
    cell = {"type": "tableCell", "content": [_para(_text("x"))]}
    root, ctx = _reverse({"type": "table", "content": ["junk", {"type": "tableRow", "content": [cell, 7]}]})
    table = root.children[-1]
    assert table.kind == "table"
    (row,) = table.children
    (only,) = row.children
    assert only.plain_text() == "x"
    assert len(ctx.warnings) == 2


def test_plain_text():
    doc = _doc(_para(_text("a"), _text("b")), {"type": "heading", "content": [_text("c")]})
    assert plain_text(doc["content"]) == "ab\nc"
