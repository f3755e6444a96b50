"""Unit tests for core/stringify.py"""

from adfmd.core.models import GenericNode
from adfmd.core.stringify import code_span, escape_text, fence_header, stringify


def _text(text):
    return GenericNode("text", text=text)


def _para(*children):
    return GenericNode("paragraph", children=list(children))


def _root(*children):
    return GenericNode("root", children=list(children))


# --- escaping ---

def test_escape_text_markdown_syntax():
    assert escape_text("a*b_c") == "a\\*b\\_c"
    assert escape_text("# not a heading") == "\\# not a heading"


def test_escape_text_social_tokens():
    """Literal token syntax is escaped so it never parses back as a token."""
    assert escape_text("{user:x}") == "\\{user:x}"
    assert escape_text(":smile:") == "\\:smile:"
    assert escape_text("2023-12-25") == "2023\\-12\\-25"


def test_escape_text_plain_untouched():
    assert escape_text("Hello, world.") == "Hello, world."


def test_code_span_backticks():
    assert code_span("x") == "`x`"
    assert code_span("a`b") == "``a`b``"


# --- fence headers ---

def test_fence_header_bare_and_quoted():
    assert fence_header({"type": "info"}) == "type=info"
    assert fence_header({"title": "Hello world"}) == 'title="Hello world"'
    assert fence_header({"title": "42"}) == 'title="42"'


def test_fence_header_json_fallback():
    expected = "attrs='" + '{"title": "say \\"hi\\""}' + "'"
    assert fence_header({"title": 'say "hi"'}) == expected


# --- blocks ---

def test_stringify_empty():
    assert stringify(_root()) == ""


def test_stringify_heading_and_paragraph():
    heading = GenericNode("heading", {"depth": 2}, [_text("Title")])
    assert stringify(_root(heading, _para(_text("Body")))) == "## Title\n\nBody\n"


def test_stringify_marks():
    strong = GenericNode("strong", children=[_text("a"), GenericNode("emphasis", children=[_text("b")])])
    assert stringify(_root(_para(strong))) == "**a*b***\n"


def test_stringify_consecutive_lists_alternate_markers():
    def bullet(text):
        item = GenericNode("listItem", children=[_para(_text(text))])
        return GenericNode("list", {"ordered": False}, [item])
    assert stringify(_root(bullet("a"), bullet("b"))) == "- a\n\n* b\n"


def test_stringify_ordered_list_start():
    items = [GenericNode("listItem", children=[_para(_text(t))]) for t in ("a", "b")]
    lst = GenericNode("list", {"ordered": True, "start": 3}, items)
    assert stringify(_root(lst)) == "3. a\n4. b\n"


def test_stringify_code_block():
    code = GenericNode("code", {"lang": "python", "meta": None}, text="print(1)")
    assert stringify(_root(code)) == "```python\nprint(1)\n```\n"


def test_stringify_nested_containers_lengthen_outer_fence():
    inner = GenericNode("container", {"nodeType": "expand", "attrs": {"title": "In"}}, [_para(_text("x"))])
    outer = GenericNode("container", {"nodeType": "panel", "attrs": {"type": "info"}}, [inner])
    assert stringify(_root(outer)) == '~~~~panel type=info\n~~~expand title=In\nx\n~~~\n~~~~\n'


def test_stringify_table():
    def row(*cells, header=False):
        return GenericNode("tableRow", children=[
            GenericNode("tableCell", {"header": header}, [_text(c)]) for c in cells])
    table = GenericNode("table", children=[row("a", "b", header=True), row("1", "2")])
    assert stringify(_root(table)) == "| a | b |\n| --- | --- |\n| 1 | 2 |\n"


def test_stringify_table_break_as_br():
    cell = GenericNode("tableCell", {"header": True}, [_text("x"), GenericNode("break"), _text("y")])
    table = GenericNode("table", children=[GenericNode("tableRow", children=[cell])])
    assert stringify(_root(table)).startswith("| x<br>y |")


def test_stringify_thematic_break():
    assert stringify(_root(GenericNode("thematicBreak"))) == "***\n"


def test_stringify_frontmatter():
    assert stringify(_root(_para(_text("Hello"))), {"title": "X"}) == "---\ntitle: X\n---\n\nHello\n"
