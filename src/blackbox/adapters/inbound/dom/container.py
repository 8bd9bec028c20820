"""生成コンテンツを描画する領域。イベント委譲と変更監視を提供する。"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from uuid import uuid4

from blackbox.adapters.inbound.dom.document import Element, parse_fragment

NODE_ID_ATTRIBUTE = "data-node-id"

EventListener = Callable[["DomEvent"], None]
MutationCallback = Callable[[Sequence[Element]], None]


@dataclass(frozen=True, slots=True)
class UploadedFile:
    """ファイル選択部品から渡されたテキストファイル。"""

    name: str
    content: str


@dataclass(slots=True)
class DomEvent:
    """コンテナへ配送される UI イベント。"""

    type: str
    target: Element
    key: str | None = None
    file: UploadedFile | None = None
    default_prevented: bool = field(default=False, init=False)

    def prevent_default(self) -> None:
        self.default_prevented = True


class ContentContainer:
    """1 つのウィンドウ内容領域。識別子はインスタンスごとに一意。"""

    def __init__(self) -> None:
        """空の領域を作る。"""
        self.container_id = uuid4().hex
        self.root = Element("div", {"class": "w-full h-full overflow-y-auto"})
        self.executed_scripts: list[str] = []
        self._listeners: dict[str, list[EventListener]] = {}
        self._observers: list[MutationCallback] = []

    @property
    def listener_count(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def add_event_listener(self, event_type: str, listener: EventListener) -> None:
        self._listeners.setdefault(event_type, []).append(listener)

    def remove_event_listener(self, event_type: str, listener: EventListener) -> None:
        listeners = self._listeners.get(event_type, [])
        if listener in listeners:
            listeners.remove(listener)

    def observe(self, callback: MutationCallback) -> Callable[[], None]:
        """子孫への要素追加を監視し、切断用の関数を返す。"""
        self._observers.append(callback)

        def disconnect() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return disconnect

    def set_inner_html(self, markup: str) -> None:
        """内容を差し替え、追加された全要素を監視者へ通知する。"""
        for child in self.root.children:
            child.parent = None
        self.root.children.clear()
        parse_fragment(markup, root=self.root)
        added = list(self.root.descendants())
        for observer in list(self._observers):
            observer(added)

    def dispatch_event(self, event: DomEvent) -> DomEvent:
        for listener in list(self._listeners.get(event.type, [])):
            listener(event)
        return event

    def find_node(self, node_id: str) -> Element | None:
        """inner_html(with_node_ids=True) で振った番号から要素を引く。"""
        if not node_id.isdigit():
            return None
        index = int(node_id)
        return next(
            (element for position, element in enumerate(self.root.descendants()) if position == index),
            None,
        )

    def find_by_id(self, element_id: str) -> Element | None:
        return self.root.find_by_id(element_id)

    def inner_html(self, *, with_node_ids: bool = False) -> str:
        """現在の内容を返す。with_node_ids ならクライアント参照用の番号を付ける。"""
        if not with_node_ids:
            return self.root.inner_html()
        elements = list(self.root.descendants())
        previous = [element.attributes.get(NODE_ID_ATTRIBUTE) for element in elements]
        for position, element in enumerate(elements):
            element.set_attribute(NODE_ID_ATTRIBUTE, str(position))
        try:
            return self.root.inner_html()
        finally:
            for element, value in zip(elements, previous, strict=True):
                if value is None:
                    element.attributes.pop(NODE_ID_ATTRIBUTE, None)
                else:
                    element.set_attribute(NODE_ID_ATTRIBUTE, value)
