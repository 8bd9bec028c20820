"""生成 HTML を扱うための軽量な要素木。

ブラウザ DOM のうち、ブリッジが必要とする範囲だけを持つ。親への参照、
id 検索、祖先探索、フォーム値、要素の除去と置換、HTML への再直列化。
"""

from __future__ import annotations

import html
from collections.abc import Callable, Iterator
from html.parser import HTMLParser

VOID_ELEMENTS: frozenset[str] = frozenset(
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
        "source",
        "track",
        "wbr",
    }
)
RAW_TEXT_ELEMENTS: frozenset[str] = frozenset({"script", "style"})
FORM_VALUE_ELEMENTS: frozenset[str] = frozenset({"input", "select", "textarea", "button", "option"})


class TextNode:
    """要素間のテキスト。"""

    __slots__ = ("text", "parent")

    def __init__(self, text: str) -> None:
        self.text = text
        self.parent: Element | None = None

    def to_html(self, *, raw: bool = False) -> str:
        return self.text if raw else html.escape(self.text, quote=False)


class CommentNode:
    """HTML コメント。直列化時にそのまま戻す。"""

    __slots__ = ("text", "parent")

    def __init__(self, text: str) -> None:
        self.text = text
        self.parent: Element | None = None

    def to_html(self, *, raw: bool = False) -> str:
        del raw
        return f"<!--{self.text}-->"


class Element:
    """属性と子ノードを持つ要素。"""

    __slots__ = ("tag", "attributes", "children", "parent", "_live_value")

    def __init__(self, tag: str, attributes: dict[str, str | None] | None = None) -> None:
        self.tag = tag.lower()
        self.attributes: dict[str, str | None] = dict(attributes or {})
        self.children: list[Element | TextNode | CommentNode] = []
        self.parent: Element | None = None
        self._live_value: str | None = None

    def __repr__(self) -> str:
        return f"<Element {self.tag} id={self.id!r}>"

    @property
    def id(self) -> str | None:
        return self.attributes.get("id")

    def get_attribute(self, name: str) -> str | None:
        return self.attributes.get(name)

    def has_attribute(self, name: str) -> bool:
        return name in self.attributes

    def set_attribute(self, name: str, value: str | None) -> None:
        self.attributes[name] = value

    def append(self, node: Element | TextNode | CommentNode) -> None:
        node.parent = self
        self.children.append(node)

    def remove(self) -> None:
        """親から自身を取り外す。"""
        parent = self.parent
        if parent is not None and self in parent.children:
            parent.children.remove(self)
        self.parent = None

    def replace_with(self, node: Element) -> None:
        """親の同じ位置を node に置き換える。"""
        parent = self.parent
        if parent is None:
            return
        index = parent.children.index(self)
        parent.children[index] = node
        node.parent = parent
        self.parent = None

    def iter(self) -> Iterator[Element]:
        """自身を含む子孫要素を文書順に返す。"""
        yield self
        for child in self.children:
            if isinstance(child, Element):
                yield from child.iter()

    def descendants(self) -> Iterator[Element]:
        iterator = self.iter()
        next(iterator)
        yield from iterator

    def find_by_id(self, element_id: str) -> Element | None:
        return next((element for element in self.descendants() if element.id == element_id), None)

    def find_all(self, tag: str) -> list[Element]:
        return [element for element in self.descendants() if element.tag == tag]

    def closest(self, predicate: Callable[[Element], bool], *, stop: Element | None = None) -> Element | None:
        """自身から stop の手前まで祖先をたどり、条件を満たす最初の要素を返す。"""
        current: Element | None = self
        while current is not None and current is not stop:
            if predicate(current):
                return current
            current = current.parent
        return None

    @property
    def text_content(self) -> str:
        parts: list[str] = []
        for child in self.children:
            if isinstance(child, TextNode):
                parts.append(child.text)
            elif isinstance(child, Element):
                parts.append(child.text_content)
        return "".join(parts)

    @property
    def inner_text(self) -> str:
        """script と style を除いた表示テキスト。"""
        if self.tag in RAW_TEXT_ELEMENTS:
            return ""
        parts: list[str] = []
        for child in self.children:
            if isinstance(child, TextNode):
                parts.append(child.text)
            elif isinstance(child, Element):
                parts.append(child.inner_text)
        return "".join(parts)

    @property
    def value(self) -> str:
        """フォーム部品の現在値。クライアントから反映された値を優先する。"""
        if self._live_value is not None:
            return self._live_value
        if self.tag == "textarea":
            return self.text_content
        if self.tag == "select":
            options = self.find_all("option")
            selected = next((option for option in options if option.has_attribute("selected")), None)
            chosen = selected or (options[0] if options else None)
            return chosen.value if chosen is not None else ""
        if self.tag == "option":
            attribute = self.get_attribute("value")
            return attribute if attribute is not None else self.text_content.strip()
        return self.get_attribute("value") or ""

    @value.setter
    def value(self, new_value: str) -> None:
        self._live_value = new_value

    def inner_html(self) -> str:
        raw = self.tag in RAW_TEXT_ELEMENTS
        return "".join(child.to_html(raw=raw) for child in self.children)

    def to_html(self, *, raw: bool = False) -> str:
        del raw
        attributes = "".join(
            f" {name}" if value is None else f' {name}="{html.escape(value, quote=True)}"'
            for name, value in self.attributes.items()
        )
        if self.tag in VOID_ELEMENTS:
            return f"<{self.tag}{attributes}>"
        return f"<{self.tag}{attributes}>{self.inner_html()}</{self.tag}>"


class _FragmentBuilder(HTMLParser):
    def __init__(self, root: Element) -> None:
        super().__init__(convert_charrefs=True)
        self._stack: list[Element] = [root]

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        element = Element(tag, dict(attrs))
        self._stack[-1].append(element)
        if element.tag not in VOID_ELEMENTS:
            self._stack.append(element)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self._stack[-1].append(Element(tag, dict(attrs)))

    def handle_endtag(self, tag: str) -> None:
        tag = tag.lower()
        for depth in range(len(self._stack) - 1, 0, -1):
            if self._stack[depth].tag == tag:
                del self._stack[depth:]
                return

    def handle_data(self, data: str) -> None:
        if data:
            self._stack[-1].append(TextNode(data))

    def handle_comment(self, data: str) -> None:
        self._stack[-1].append(CommentNode(data))


def parse_fragment(markup: str, *, root: Element | None = None) -> Element:
    """HTML 断片を root 要素の子として構築して返す。

    閉じタグの欠けた途中までのストリームも、開いている要素を閉じた形で扱う。
    """
    container = root if root is not None else Element("div")
    builder = _FragmentBuilder(container)
    builder.feed(markup)
    builder.close()
    return container
