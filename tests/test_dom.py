"""Tests for the snapshot document view: parsing, selectors and layout defaults."""

import pytest

from ghostcell.core import StructureError
from ghostcell.page.dom import DocumentView, HtmlDocument, Rect, parse_html, parse_offset_top, select, select_one

HTML = """
<div id="app" class="shell">
  <ul class="list">
    <li class="item first"><span>one</span></li>
    <li class="item"><b><span>two</span></b></li>
    <li class="other" data-kind="x">three<br>four</li>
  </ul>
  <input type="text" name="q">
  <textarea class="inputarea"></textarea>
</div>
"""


def test_text_concatenates_descendants() -> None:
    root = parse_html(HTML)
    li = select(root, "li.other")[0]
    assert li.text == "threefour"
    assert [c.tag for c in li.children] == ["br"]


def test_void_tags_do_not_swallow_siblings() -> None:
    root = parse_html(HTML)
    textarea = select_one(root, "textarea")
    assert textarea is not None
    assert textarea.parent is not None
    assert textarea.parent.get("id") == "app"


def test_select_by_tag_class_and_id() -> None:
    root = parse_html(HTML)
    assert len(select(root, "li")) == 3
    assert len(select(root, "li.item")) == 2
    assert len(select(root, ".item.first")) == 1
    assert select(root, "#app")[0].has_class("shell")
    assert select(root, "div#app.shell")[0].tag == "div"


def test_select_by_attribute() -> None:
    root = parse_html(HTML)
    assert [el.text for el in select(root, "li[data-kind]")] == ["threefour"]
    assert len(select(root, "li[data-kind=x]")) == 1
    assert len(select(root, 'li[data-kind="y"]')) == 0
    assert len(select(root, "input[name='q']")) == 1


def test_descendant_and_child_combinators() -> None:
    root = parse_html(HTML)
    assert [el.text for el in select(root, "li span")] == ["one", "two"]
    assert [el.text for el in select(root, "li > span")] == ["one"]
    assert [el.text for el in select(root, "ul > li > b > span")] == ["two"]


def test_selector_list_keeps_document_order_without_duplicates() -> None:
    root = parse_html(HTML)
    found = select(root, "li.other, li.item, li")
    assert [el.text for el in found] == ["one", "two", "threefour"]


def test_select_is_scoped_to_root() -> None:
    root = parse_html(HTML)
    second = select(root, "li")[1]
    assert [el.text for el in select(second, "span")] == ["two"]
    assert select_one(second, "li") is None


def test_unsupported_selector_raises() -> None:
    root = parse_html(HTML)
    with pytest.raises(ValueError):
        select(root, "> li")
    with pytest.raises(ValueError):
        select(root, "li >")


def test_html_document_is_a_document_view() -> None:
    doc = HtmlDocument(HTML, url="http://example.test/")
    assert isinstance(doc, DocumentView)
    assert doc.url == "http://example.test/"


def test_layout_defaults() -> None:
    doc = HtmlDocument(HTML)
    li = doc.query("li")
    textarea = doc.query("textarea")
    assert li is not None and textarea is not None
    assert doc.bounding_rect(li) == Rect()
    assert doc.selection_range(textarea) == (0, 0)
    assert doc.selection_range(li) is None
    assert doc.computed_top(li) == "auto"


def test_injected_layout() -> None:
    doc = HtmlDocument(HTML)
    li = doc.query("li")
    textarea = doc.query("textarea")
    assert li is not None and textarea is not None

    doc.set_rect(li, Rect(left=10, top=20, width=30, height=5))
    doc.set_selection(textarea, 4)
    assert doc.bounding_rect(li).right == 40
    assert doc.bounding_rect(li).bottom == 25
    assert doc.selection_range(textarea) == (4, 4)

    doc.set_selection(textarea, 2, 6)
    assert doc.selection_range(textarea) == (2, 6)


def test_computed_top_reads_inline_style() -> None:
    doc = HtmlDocument('<div class="view-line" style="height: 19px; top: 38px;"></div>')
    line = doc.query(".view-line")
    assert line is not None
    assert doc.computed_top(line) == "38px"


def test_parse_offset_top() -> None:
    assert parse_offset_top("0px") == 0.0
    assert parse_offset_top("19px") == 19.0
    assert parse_offset_top("12.5px") == 12.5


@pytest.mark.parametrize("value", ["auto", "19", "1em", "-3px", ""])
def test_parse_offset_top_rejects_other_formats(value: str) -> None:
    with pytest.raises(StructureError):
        parse_offset_top(value)
