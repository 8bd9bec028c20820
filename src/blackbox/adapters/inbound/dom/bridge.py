"""生成 HTML に埋め込まれたシグナルをインタラクションへ戻すブリッジ。

クリック対象、端末履歴キー、ファイル選択、状態更新とシステムコマンドの
センチネル要素、インライン script の再実行を 1 つのコンテナ上で扱う。
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from blackbox.adapters.inbound.dom.container import ContentContainer, DomEvent, UploadedFile
from blackbox.adapters.inbound.dom.document import FORM_VALUE_ELEMENTS, Element, TextNode
from blackbox.adapters.inbound.dom.terminal_history import TerminalHistoryNavigator
from blackbox.domain.entities.interaction import ELEMENT_LABEL_MAX_CHARS, InteractionRecord

_LOG = logging.getLogger(__name__)

INTERACTION_ID_ATTRIBUTE = "data-interaction-id"
STATE_UPDATE_ELEMENT_ID = "terminal-state-update"
SYSTEM_COMMAND_ELEMENT_ID = "system-command"
TERMINAL_INPUT_ELEMENT_ID = "terminal_input"
FILE_UPLOAD_ELEMENT_ID = "file-upload"
DEFAULT_INTERACTION_TYPE = "generic_click"


class SignalDecodeError(ValueError):
    """状態更新シグナルの payload が解釈できない場合の例外。"""


@dataclass(frozen=True, slots=True)
class StateUpdateSignal:
    """生成 HTML から通知された VFS とパスの更新。"""

    vfs: Mapping[str, Any] | None = None
    path: tuple[str, ...] | None = None


class ContentBridge:
    """コンテナに観測者とリスナーを登録し、シグナルをコールバックへ渡す。"""

    def __init__(
        self,
        *,
        on_interact: Callable[[InteractionRecord], None],
        on_state_update: Callable[[StateUpdateSignal], None] | None = None,
        on_system_command: Callable[[str], None] | None = None,
        on_file_upload: Callable[[UploadedFile], None] | None = None,
        app_context: str | None = None,
        terminal_history: Sequence[str] = (),
    ) -> None:
        """コールバックと初期コンテキストを受け取る。"""
        self._on_interact = on_interact
        self._on_state_update = on_state_update
        self._on_system_command = on_system_command
        self._on_file_upload = on_file_upload
        self.app_context = app_context
        self._navigator = TerminalHistoryNavigator(terminal_history)
        self._container: ContentContainer | None = None
        self._disconnect_observer: Callable[[], None] | None = None
        self._rendered_markup: str | None = None
        self._scripts_executed = False

    @property
    def container(self) -> ContentContainer | None:
        return self._container

    @property
    def navigator(self) -> TerminalHistoryNavigator:
        return self._navigator

    def attach(self, container: ContentContainer) -> None:
        """コンテナへ登録する。別のコンテナに付いていれば先に外す。"""
        if self._container is container:
            return
        self.detach()
        self._container = container
        container.add_event_listener("click", self._handle_click)
        container.add_event_listener("keydown", self._handle_keydown)
        container.add_event_listener("change", self._handle_change)
        self._disconnect_observer = container.observe(self._handle_added_elements)
        self._rendered_markup = None
        self._scripts_executed = False

    def detach(self) -> None:
        """登録したリスナーと観測者をすべて解除する。"""
        container = self._container
        if container is None:
            return
        container.remove_event_listener("click", self._handle_click)
        container.remove_event_listener("keydown", self._handle_keydown)
        container.remove_event_listener("change", self._handle_change)
        if self._disconnect_observer is not None:
            self._disconnect_observer()
        self._disconnect_observer = None
        self._container = None

    def sync_terminal_history(self, terminal_history: Sequence[str]) -> None:
        self._navigator.sync(terminal_history)

    def content_updated(self, markup: str, *, is_loading: bool) -> None:
        """内容の変化を反映し、ロード完了後に script を 1 度だけ再実行する。"""
        container = self._require_container()
        if markup != self._rendered_markup:
            self._rendered_markup = markup
            self._scripts_executed = False
            container.set_inner_html(markup)
        if not is_loading and not self._scripts_executed:
            self._scripts_executed = True
            self._reexecute_scripts(container)

    def _handle_click(self, event: DomEvent) -> None:
        container = self._require_container()
        target = event.target.closest(
            lambda element: element.get_attribute(INTERACTION_ID_ATTRIBUTE) is not None,
            stop=container.root,
        )
        if target is None:
            return
        event.prevent_default()

        value = target.get_attribute("data-interaction-value")
        value_from = target.get_attribute("data-value-from")
        if value_from is not None:
            values = []
            for source_id in value_from.split(","):
                source = container.find_by_id(source_id.strip())
                values.append(source.value if source is not None else "")
            value = ",".join(values)

        label = target.inner_text
        if not label.strip() and target.tag in FORM_VALUE_ELEMENTS:
            label = target.value
        self._on_interact(
            InteractionRecord(
                id=target.get_attribute(INTERACTION_ID_ATTRIBUTE) or "",
                kind=target.get_attribute("data-interaction-type") or DEFAULT_INTERACTION_TYPE,
                value=value,
                element_kind=target.tag,
                element_label=label.strip()[:ELEMENT_LABEL_MAX_CHARS],
                app_context=self.app_context,
            )
        )

    def _handle_keydown(self, event: DomEvent) -> None:
        if event.target.id != TERMINAL_INPUT_ELEMENT_ID or event.key is None:
            return
        displayed = self._navigator.handle_key(event.key)
        if displayed is None:
            return
        event.prevent_default()
        event.target.value = displayed

    def _handle_change(self, event: DomEvent) -> None:
        if event.target.id != FILE_UPLOAD_ELEMENT_ID:
            return
        if event.file is not None and self._on_file_upload is not None:
            self._on_file_upload(event.file)

    def _handle_added_elements(self, added: Sequence[Element]) -> None:
        for element in added:
            if element.id == STATE_UPDATE_ELEMENT_ID and self._on_state_update is not None:
                try:
                    signal = decode_state_update(element)
                except SignalDecodeError as exc:
                    _LOG.warning("failed to parse state update signal: %s", exc)
                else:
                    if signal.vfs is not None or signal.path is not None:
                        self._on_state_update(signal)
                element.remove()
            command = element.get_attribute("data-command")
            if element.id == SYSTEM_COMMAND_ELEMENT_ID and self._on_system_command is not None and command:
                self._on_system_command(command)
                element.remove()

    def _reexecute_scripts(self, container: ContentContainer) -> None:
        for old_script in container.root.find_all("script"):
            source = old_script.text_content
            new_script = Element("script")
            new_script.append(TextNode(source))
            old_script.replace_with(new_script)
            container.executed_scripts.append(source)

    def _require_container(self) -> ContentContainer:
        if self._container is None:
            raise RuntimeError("ContentBridge がコンテナに接続されていません。")
        return self._container


def decode_state_update(element: Element) -> StateUpdateSignal:
    """data-vfs と data-path の JSON を解釈する。"""
    raw_vfs = element.get_attribute("data-vfs")
    raw_path = element.get_attribute("data-path")
    try:
        vfs = json.loads(raw_vfs) if raw_vfs else None
        path = json.loads(raw_path) if raw_path else None
    except json.JSONDecodeError as exc:
        raise SignalDecodeError(f"JSON として解釈できません: {exc}") from exc
    if vfs is not None and not isinstance(vfs, dict):
        raise SignalDecodeError("data-vfs は object である必要があります。")
    if path is not None and (
        not isinstance(path, list) or any(not isinstance(segment, str) for segment in path)
    ):
        raise SignalDecodeError("data-path は文字列配列である必要があります。")
    return StateUpdateSignal(vfs=vfs, path=tuple(path) if path is not None else None)
