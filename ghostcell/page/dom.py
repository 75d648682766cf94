"""Host document view: element tree, selector queries and layout geometry.

Adapters never touch a live browser. They read the page through the
`DocumentView` capability, which any "queryable + measurable" object can
satisfy. `HtmlDocument` is the implementation over HTML snapshots: markup is
parsed with the standard-library HTML parser, while geometry and native
selection offsets (which markup alone cannot provide) come from an injectable
layout.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from html.parser import HTMLParser
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict

from ghostcell.core import StructureError

_VOID_TAGS = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)


class Rect(BaseModel):
    """A bounding client rectangle, in CSS pixels."""

    model_config = ConfigDict(frozen=True)

    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def right(self) -> float:
        return self.left + self.width

    @property
    def bottom(self) -> float:
        return self.top + self.height


class Element:
    """A node of the parsed document tree."""

    def __init__(self, tag: str, attrs: dict[str, str] | None = None, parent: Element | None = None) -> None:
        self.tag = tag.lower()
        self.attrs: dict[str, str] = dict(attrs or {})
        self.parent = parent
        self.contents: list[Element | str] = []

    @property
    def children(self) -> list[Element]:
        return [c for c in self.contents if isinstance(c, Element)]

    @property
    def classes(self) -> list[str]:
        return self.attrs.get("class", "").split()

    def has_class(self, name: str) -> bool:
        return name in self.classes

    def get(self, name: str, default: str | None = None) -> str | None:
        return self.attrs.get(name, default)

    @property
    def text(self) -> str:
        """Concatenated text of all descendants, like DOM `textContent`."""
        parts: list[str] = []
        stack: list[Element | str] = [self]
        while stack:
            node = stack.pop()
            if isinstance(node, str):
                parts.append(node)
            else:
                stack.extend(reversed(node.contents))
        return "".join(parts)

    def iter_descendants(self) -> Iterator[Element]:
        """Yield every descendant element in document order."""
        stack = list(reversed(self.children))
        while stack:
            el = stack.pop()
            yield el
            stack.extend(reversed(el.children))

    def __repr__(self) -> str:
        cls = ".".join(self.classes)
        return f"<{self.tag}{'.' + cls if cls else ''}>"


# --- Selectors ---------------------------------------------------------------

_COMPOUND_RE = re.compile(r"([a-zA-Z][\w-]*|\*)?((?:[.#][\w-]+|\[[^\]]*\])*)")
_PART_RE = re.compile(r"\.([\w-]+)|#([\w-]+)|\[\s*([\w-]+)\s*(?:=\s*(\"[^\"]*\"|'[^']*'|[^\]\s]+)\s*)?\]")


@dataclass(frozen=True)
class _Compound:
    tag: str | None
    classes: tuple[str, ...]
    ident: str | None
    attrs: tuple[tuple[str, str | None], ...]

    def matches(self, el: Element) -> bool:
        if self.tag is not None and el.tag != self.tag:
            return False
        if self.ident is not None and el.attrs.get("id") != self.ident:
            return False
        if self.classes:
            own = el.classes
            if any(c not in own for c in self.classes):
                return False
        for name, value in self.attrs:
            if name not in el.attrs:
                return False
            if value is not None and el.attrs[name] != value:
                return False
        return True


def _compound(tag: str | None, parts: str) -> _Compound:
    classes: list[str] = []
    ident: str | None = None
    attrs: list[tuple[str, str | None]] = []
    for m in _PART_RE.finditer(parts):
        cls, hash_id, attr_name, attr_value = m.groups()
        if cls:
            classes.append(cls)
        elif hash_id:
            ident = hash_id
        elif attr_name:
            if attr_value is not None and attr_value[:1] in {'"', "'"}:
                attr_value = attr_value[1:-1]
            attrs.append((attr_name, attr_value))
    return _Compound(
        tag=None if tag in (None, "*") else tag.lower(),
        classes=tuple(classes),
        ident=ident,
        attrs=tuple(attrs),
    )


def _parse_selector(selector: str) -> list[tuple[str, _Compound]]:
    """Parse one complex selector into (combinator, compound) steps, left to right."""
    steps: list[tuple[str, _Compound]] = []
    combinator = ""
    text = selector.strip()
    pos = 0
    while pos < len(text):
        ch = text[pos]
        if ch.isspace():
            if steps and not combinator:
                combinator = " "
            pos += 1
            continue
        if ch == ">":
            if not steps:
                raise ValueError(f"Unsupported selector: {selector!r}")
            combinator = ">"
            pos += 1
            continue
        m = _COMPOUND_RE.match(text, pos)
        if m is None or m.end() == pos:
            raise ValueError(f"Unsupported selector: {selector!r}")
        steps.append((combinator, _compound(m.group(1), m.group(2))))
        combinator = ""
        pos = m.end()
    if not steps or combinator:
        raise ValueError(f"Unsupported selector: {selector!r}")
    return steps


def _match_from(el: Element, steps: list[tuple[str, _Compound]], i: int) -> bool:
    combinator, compound = steps[i]
    if not compound.matches(el):
        return False
    if i == 0:
        return True
    if combinator == ">":
        return el.parent is not None and _match_from(el.parent, steps, i - 1)
    ancestor = el.parent
    while ancestor is not None:
        if _match_from(ancestor, steps, i - 1):
            return True
        ancestor = ancestor.parent
    return False


def select(root: Element, selector: str) -> list[Element]:
    """Return descendants of `root` matching `selector`, in document order."""
    compiled = [_parse_selector(part) for part in selector.split(",")]
    return [
        el
        for el in root.iter_descendants()
        if any(_match_from(el, steps, len(steps) - 1) for steps in compiled)
    ]


def select_one(root: Element, selector: str) -> Element | None:
    matches = select(root, selector)
    return matches[0] if matches else None


# --- Document view -------------------------------------------------------------


@runtime_checkable
class DocumentView(Protocol):
    """Read-only capability over the host page: query + measure."""

    url: str

    def query_all(self, selector: str, root: Element | None = None) -> list[Element]:
        """Return all elements matching `selector` under `root` (default: whole document)."""
        ...

    def query(self, selector: str, root: Element | None = None) -> Element | None:
        """Return the first element matching `selector`, or None."""
        ...

    def bounding_rect(self, element: Element) -> Rect:
        """Return the element's rendered bounding rectangle."""
        ...

    def computed_top(self, element: Element) -> str:
        """Return the element's computed CSS `top` value."""
        ...

    def selection_range(self, element: Element) -> tuple[int, int] | None:
        """Return the native (selection_start, selection_end) of an input, if any."""
        ...


class _TreeBuilder(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.root = Element("#document")
        self._stack: list[Element] = [self.root]

    def _append(self, tag: str, attrs: list[tuple[str, str | None]]) -> Element:
        parent = self._stack[-1]
        el = Element(tag, {k: v if v is not None else "" for k, v in attrs}, parent=parent)
        parent.contents.append(el)
        return el

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        el = self._append(tag, attrs)
        if el.tag not in _VOID_TAGS:
            self._stack.append(el)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self._append(tag, attrs)

    def handle_endtag(self, tag: str) -> None:
        tag = tag.lower()
        for i in range(len(self._stack) - 1, 0, -1):
            if self._stack[i].tag == tag:
                del self._stack[i:]
                return

    def handle_data(self, data: str) -> None:
        self._stack[-1].contents.append(data)


def parse_html(html: str) -> Element:
    """Parse markup into an element tree rooted at a synthetic document node."""
    builder = _TreeBuilder()
    builder.feed(html)
    builder.close()
    return builder.root


def _inline_style(element: Element) -> dict[str, str]:
    style: dict[str, str] = {}
    for decl in element.attrs.get("style", "").split(";"):
        name, sep, value = decl.partition(":")
        if sep:
            style[name.strip().lower()] = value.strip()
    return style


class HtmlDocument:
    """`DocumentView` over an HTML snapshot.

    Without a layout engine every rect is all-zero and a `<textarea>` reports
    a collapsed selection at 0, matching what a layout-less browser engine
    reports. Tests and replays inject real measurements with `set_rect` and
    `set_selection`.
    """

    def __init__(self, html: str, *, url: str = "") -> None:
        self.url = url
        self.root = parse_html(html)
        self._rects: dict[Element, Rect] = {}
        self._selections: dict[Element, tuple[int, int]] = {}

    @property
    def body(self) -> Element:
        return select_one(self.root, "body") or self.root

    def query_all(self, selector: str, root: Element | None = None) -> list[Element]:
        return select(root or self.root, selector)

    def query(self, selector: str, root: Element | None = None) -> Element | None:
        return select_one(root or self.root, selector)

    def set_rect(self, element: Element, rect: Rect) -> None:
        self._rects[element] = rect

    def set_selection(self, element: Element, start: int, end: int | None = None) -> None:
        self._selections[element] = (start, start if end is None else end)

    def bounding_rect(self, element: Element) -> Rect:
        return self._rects.get(element, Rect())

    def computed_top(self, element: Element) -> str:
        return _inline_style(element).get("top", "auto")

    def selection_range(self, element: Element) -> tuple[int, int] | None:
        if element in self._selections:
            return self._selections[element]
        if element.tag in {"textarea", "input"}:
            return (0, 0)
        return None


_OFFSET_TOP_RE = re.compile(r"^([0-9.]+)px$")


def parse_offset_top(value: str) -> float:
    """Parse a CSS pixel offset such as ``"19px"``."""
    m = _OFFSET_TOP_RE.match(value)
    if m is None:
        raise StructureError(f"Unexpected format of CSS `top` attribute: {value!r}")
    return float(m.group(1))
