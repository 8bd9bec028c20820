"""デスクトップセッションの操作 → 生成 → 描画ループを実行するユースケース。"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Mapping, Sequence
from contextlib import aclosing
from dataclasses import dataclass, replace
from uuid import uuid4

from blackbox.adapters.inbound.dom.bridge import (
    FILE_UPLOAD_ELEMENT_ID,
    TERMINAL_INPUT_ELEMENT_ID,
    ContentBridge,
    StateUpdateSignal,
)
from blackbox.adapters.inbound.dom.container import ContentContainer, DomEvent, UploadedFile
from blackbox.adapters.outbound.in_memory_components import InMemorySnapshotStore
from blackbox.application.use_cases.content_generation_stream import (
    ContentGenerationStream,
    GenerationFailure,
)
from blackbox.domain.entities.interaction import AppDefinition, InteractionRecord
from blackbox.domain.entities.response_cache import ResponseCache
from blackbox.domain.services import session_transitions as transitions
from blackbox.domain.services.app_catalog import (
    DEFAULT_APP_CATALOG,
    NOTES_APP_ID,
    TERMINAL_APP_ID,
    initial_path_for,
    require_app,
)
from blackbox.domain.services.interaction_builder import (
    InteractionTurn,
    build_app_open_record,
    build_interaction_turn,
)
from blackbox.domain.services.settings_form import SettingsDraft, validate_settings_draft
from blackbox.domain.services.snapshot_codec import (
    SnapshotFormatError,
    decode_snapshot,
    encode_snapshot,
)
from blackbox.domain.services.virtual_file_system import write_path
from blackbox.domain.value_objects.session_state import (
    DEFAULT_MAX_HISTORY_LENGTH,
    MAX_HISTORY_LENGTH_LIMIT,
    SessionState,
)
from blackbox.ports.outbound.content_model_port import ContentModelPort
from blackbox.ports.outbound.snapshot_store_port import SnapshotStorePort

_LOG = logging.getLogger(__name__)

CLOSE_APP_COMMAND = "close_app"
FILE_UPLOADED_INTERACTION_ID = "terminal_file_uploaded"
NOTEPAD_TEXTAREA_ID = "notepad-textarea"
NOTEPAD_SAVE_INTERACTION_IDS: frozenset[str] = frozenset(
    {"notepad_save", "notepad_save_and_close", "notepad_save_and_new"}
)


class DesktopSessionNotFoundError(KeyError):
    """指定セッションが存在しない場合の例外。"""


class ContentNodeNotFoundError(KeyError):
    """クリック対象の要素が描画領域に存在しない場合の例外。"""


class SnapshotNotFoundError(KeyError):
    """読み込むスナップショットが保存されていない場合の例外。"""


class UnsavedChangesError(RuntimeError):
    """未保存の編集があるままアプリを閉じようとした場合の例外。"""


class NoActiveAppError(ValueError):
    """アプリが起動していない状態でインタラクションを送った場合の例外。"""


@dataclass(frozen=True, slots=True)
class GenerationTurn:
    """開始済みの 1 ターン。stream_turn で内容を受け取る。"""

    session_id: str
    turn_id: int
    interaction_history: tuple[InteractionRecord, ...]
    current_path: tuple[str, ...]
    cached_content: str | None = None

    @property
    def from_cache(self) -> bool:
        return self.cached_content is not None


@dataclass(slots=True)
class _SessionContext:
    """内部セッション状態。"""

    state: SessionState
    cache: ResponseCache
    container: ContentContainer
    bridge: ContentBridge | None = None
    turn_id: int = 0
    pending_turn: GenerationTurn | None = None
    editor_baseline_captured: bool = False
    last_failure: GenerationFailure | None = None


class DesktopSessionUseCase:
    """セッション単位で状態・キャッシュ・描画領域を保持し、生成ターンを進める。"""

    def __init__(
        self,
        *,
        content_model: ContentModelPort,
        snapshot_store: SnapshotStorePort | None = None,
        catalog: Sequence[AppDefinition] = DEFAULT_APP_CATALOG,
        max_history_length: int = DEFAULT_MAX_HISTORY_LENGTH,
        max_sessions: int = 200,
    ) -> None:
        """依存と制約を初期化する。"""
        if max_sessions < 1:
            raise ValueError("max_sessions は 1 以上である必要があります。")
        if not 0 <= max_history_length <= MAX_HISTORY_LENGTH_LIMIT:
            raise ValueError(
                f"max_history_length は 0 以上 {MAX_HISTORY_LENGTH_LIMIT} 以下である必要があります。"
            )
        self._content_model = content_model
        self._snapshot_store = snapshot_store if snapshot_store is not None else InMemorySnapshotStore()
        self._catalog = tuple(catalog)
        self._max_history_length = max_history_length
        self._max_sessions = max_sessions
        self._sessions: dict[str, _SessionContext] = {}

    @property
    def catalog(self) -> tuple[AppDefinition, ...]:
        return self._catalog

    def create_session(self) -> str:
        """新しいデスクトップセッションを作成して session_id を返す。"""
        if len(self._sessions) >= self._max_sessions:
            self._evict_oldest_session()

        session_id = str(uuid4())
        session = _SessionContext(
            state=SessionState.initial(max_history_length=self._max_history_length),
            cache=ResponseCache(),
            container=ContentContainer(),
        )
        bridge = ContentBridge(
            on_interact=lambda record: self.submit_interaction(session_id, record),
            on_state_update=lambda signal: self.apply_state_update(session_id, signal),
            on_system_command=lambda command: self.run_system_command(session_id, command),
            on_file_upload=lambda file: self.upload_file(session_id, file.name, file.content),
        )
        bridge.attach(session.container)
        session.bridge = bridge
        self._sessions[session_id] = session
        return session_id

    def get_state(self, session_id: str) -> SessionState:
        return self._require_session(session_id).state

    def last_failure(self, session_id: str) -> GenerationFailure | None:
        """直近ターンの失敗要約を返す。成功していれば None。"""
        return self._require_session(session_id).last_failure

    def open_app(self, session_id: str, app_id: str) -> GenerationTurn:
        """アプリを起動し、起動インタラクションで最初の画面を生成する。"""
        session = self._require_session(session_id)
        app = require_app(app_id, self._catalog)
        initial_path = initial_path_for(app)
        record = build_app_open_record(app, initial_path=initial_path, vfs=session.state.vfs)

        self._abandon_turn(session)
        session.state = transitions.open_app(session.state, app, initial_path, (record,))
        session.editor_baseline_captured = False
        return self._start_turn(
            session,
            session_id,
            InteractionTurn(
                interaction_history=(record,),
                current_path=initial_path,
                terminal_history=session.state.terminal_history,
            ),
        )

    def close_app(
        self,
        session_id: str,
        *,
        editor_buffer: str | None = None,
        confirmed: bool = False,
    ) -> SessionState:
        """デスクトップへ戻る。メモ帳に未保存の変更があれば確認を求める。"""
        session = self._require_session(session_id)
        state = session.state
        if state.active_app_id == NOTES_APP_ID and not confirmed:
            buffer = editor_buffer if editor_buffer is not None else self._editor_value(session)
            if (
                buffer is not None
                and state.editor_baseline is not None
                and buffer != state.editor_baseline
            ):
                raise UnsavedChangesError("保存されていない変更があります。破棄して閉じる場合は確認してください。")

        self._abandon_turn(session)
        session.state = transitions.close_app(session.state)
        session.editor_baseline_captured = False
        self._render(session)
        return session.state

    def submit_interaction(self, session_id: str, record: InteractionRecord) -> GenerationTurn:
        """インタラクションを履歴へ積み、次の画面生成を開始する。"""
        session = self._require_session(session_id)
        if session.state.active_app is None:
            raise NoActiveAppError("アプリが起動していません。")
        if record.app_context is None:
            record = replace(record, app_context=session.state.active_app_id)
        self._abandon_turn(session)
        return self._start_turn(session, session_id, build_interaction_turn(session.state, record))

    def click(
        self,
        session_id: str,
        node_id: str,
        *,
        field_values: Mapping[str, str] | None = None,
    ) -> GenerationTurn | None:
        """描画済み要素のクリックをブリッジへ配送する。

        field_values は要素 id ごとの入力値で、クリック前に反映する。
        ターンが始まった場合はそれを返す。
        """
        session = self._require_session(session_id)
        if session.state.active_app is None:
            raise ContentNodeNotFoundError(f"アプリが起動していないため要素がありません: {node_id}")
        self._apply_field_values(session, field_values)
        target = session.container.find_node(node_id)
        if target is None:
            raise ContentNodeNotFoundError(f"要素が存在しません: {node_id}")
        turn_before = session.turn_id
        session.container.dispatch_event(DomEvent(type="click", target=target))
        if session.turn_id == turn_before:
            return None
        return session.pending_turn

    def press_terminal_key(self, session_id: str, key: str) -> str | None:
        """端末入力欄へキーを送り、表示すべき値を返す。対象外なら None。"""
        session = self._require_session(session_id)
        if session.state.active_app is None:
            return None
        terminal_input = session.container.find_by_id(TERMINAL_INPUT_ELEMENT_ID)
        if terminal_input is None:
            return None
        event = session.container.dispatch_event(DomEvent(type="keydown", target=terminal_input, key=key))
        if not event.default_prevented:
            return None
        return terminal_input.value

    def select_file(self, session_id: str, file: UploadedFile) -> GenerationTurn | None:
        """#file-upload の change イベントとしてファイルを渡す。"""
        session = self._require_session(session_id)
        if session.state.active_app is None:
            return None
        file_input = session.container.find_by_id(FILE_UPLOAD_ELEMENT_ID)
        if file_input is None:
            return self.upload_file(session_id, file.name, file.content)
        turn_before = session.turn_id
        session.container.dispatch_event(DomEvent(type="change", target=file_input, file=file))
        if session.turn_id == turn_before:
            return None
        return session.pending_turn

    def upload_file(self, session_id: str, name: str, content: str) -> GenerationTurn:
        """現在パスへファイルを書き込み、アップロード完了イベントを送る。"""
        session = self._require_session(session_id)
        if session.state.active_app is None:
            raise NoActiveAppError("アプリが起動していません。")
        file_name = name.strip()
        if not file_name or "/" in file_name:
            raise ValueError(f"ファイル名が不正です: {name!r}")
        new_vfs = write_path(session.state.vfs, (*session.state.current_path, file_name), content)
        session.state = transitions.replace_state(session.state, vfs=new_vfs)
        record = InteractionRecord(
            id=FILE_UPLOADED_INTERACTION_ID,
            kind="system_event",
            value=f'File "{file_name}" uploaded successfully.',
            element_kind="system",
            element_label="File Upload",
            app_context=TERMINAL_APP_ID,
            vfs=new_vfs,
        )
        return self.submit_interaction(session_id, record)

    def apply_state_update(self, session_id: str, signal: StateUpdateSignal) -> SessionState:
        """生成 HTML から通知された VFS とパスを状態へ取り込む。"""
        session = self._require_session(session_id)
        fields: dict[str, object] = {}
        if signal.vfs is not None:
            fields["vfs"] = dict(signal.vfs)
        if signal.path is not None:
            fields["current_path"] = signal.path
        if fields:
            session.state = transitions.replace_state(session.state, **fields)
        return session.state

    def run_system_command(self, session_id: str, command: str) -> SessionState:
        """生成 HTML から要求されたシステムコマンドを実行する。"""
        if command == CLOSE_APP_COMMAND:
            return self.close_app(session_id, confirmed=True)
        _LOG.debug("ignored unknown system command: session_id=%s command=%s", session_id, command)
        return self.get_state(session_id)

    def toggle_parameters(self, session_id: str) -> SessionState:
        session = self._require_session(session_id)
        self._abandon_turn(session)
        session.state = transitions.toggle_parameters(session.state)
        session.editor_baseline_captured = False
        self._render(session)
        return session.state

    def settings_draft(self, session_id: str) -> SettingsDraft:
        return SettingsDraft.from_state(self.get_state(session_id))

    def apply_settings(self, session_id: str, draft: SettingsDraft) -> SessionState:
        """下書きを検証して一括適用する。不正なら何も変更しない。"""
        session = self._require_session(session_id)
        settings = validate_settings_draft(draft)
        if not settings.statefulness_enabled:
            session.cache.clear()
        state = transitions.update_settings(
            session.state,
            max_history_length=settings.max_history_length,
            statefulness=settings.statefulness_enabled,
            quiet_mode=settings.quiet_mode_enabled,
        )
        session.state = transitions.update_terminal_settings(
            state,
            color_scheme=settings.terminal_color_scheme,
            font_size=settings.terminal_font_size,
        )
        return session.state

    def clear_history(self, session_id: str) -> SessionState:
        """インタラクション履歴と端末履歴を消去し、キャッシュも破棄する。"""
        session = self._require_session(session_id)
        session.state = transitions.clear_history(session.state)
        session.cache.clear()
        return session.state

    def cached_entry_count(self, session_id: str) -> int:
        return len(self._require_session(session_id).cache)

    def save_snapshot(self, session_id: str) -> None:
        self._snapshot_store.save(encode_snapshot(self.get_state(session_id)))

    def has_saved_snapshot(self) -> bool:
        return self._snapshot_store.load() is not None

    def clear_snapshot(self) -> None:
        self._snapshot_store.clear()

    def load_snapshot(self, session_id: str) -> GenerationTurn | None:
        """保存済みの状態を初期状態に重ねて復元する。

        アプリが起動中で履歴があれば、その履歴で画面を再生成する。
        """
        session = self._require_session(session_id)
        payload = self._snapshot_store.load()
        if payload is None:
            raise SnapshotNotFoundError("保存済みのスナップショットがありません。")
        try:
            fields = decode_snapshot(payload, catalog=self._catalog)
            restored = transitions.replace_state(
                SessionState.initial(max_history_length=self._max_history_length),
                is_parameters_open=False,
                **fields,
            )
        except SnapshotFormatError:
            raise
        except ValueError as exc:
            raise SnapshotFormatError(str(exc)) from exc

        self._abandon_turn(session)
        session.state = restored
        session.editor_baseline_captured = False
        if restored.active_app is None or not restored.interaction_history:
            self._render(session)
            return None
        return self._start_turn(
            session,
            session_id,
            InteractionTurn(
                interaction_history=restored.interaction_history,
                current_path=restored.current_path,
                terminal_history=restored.terminal_history,
            ),
        )

    async def stream_turn(self, session_id: str) -> AsyncIterator[str]:
        """保留中のターンを実行し、到着したチャンクを返す。

        より新しいターンが始まると次のチャンクで打ち切り、上流も閉じる。
        """
        session = self._require_session(session_id)
        turn = session.pending_turn
        if turn is None:
            return
        session.pending_turn = None
        if turn.cached_content is not None:
            if self._is_current(session, turn):
                yield turn.cached_content
            return

        state = session.state
        generation = ContentGenerationStream(
            self._content_model,
            turn.interaction_history,
            max_history_length=state.max_history_length,
            quiet_mode=state.quiet_mode_enabled,
            catalog=self._catalog,
        )
        completed = False
        try:
            async with aclosing(aiter(generation)) as chunks:
                async for chunk in chunks:
                    if not self._is_current(session, turn):
                        _LOG.debug(
                            "turn superseded: session_id=%s turn_id=%d", session_id, turn.turn_id
                        )
                        return
                    session.state = transitions.append_chunk(session.state, chunk)
                    yield chunk
            completed = True
        finally:
            if self._is_current(session, turn):
                self._finish_turn(session, turn, generation.failure, completed=completed)

    async def drain_turn(self, session_id: str) -> SessionState:
        """保留中のターンを最後まで実行して状態を返す。"""
        async with aclosing(self.stream_turn(session_id)) as chunks:
            async for _ in chunks:
                pass
        return self.get_state(session_id)

    def rendered_content(self, session_id: str, *, with_node_ids: bool = False) -> str:
        """描画領域の現在の HTML を返す。ロード中は受信済みの生テキスト。"""
        session = self._require_session(session_id)
        state = session.state
        if state.is_parameters_open or state.active_app is None:
            return ""
        if state.is_loading:
            return state.content
        return session.container.inner_html(with_node_ids=with_node_ids)

    def executed_scripts(self, session_id: str) -> tuple[str, ...]:
        """再実行対象としてクライアントへ渡す script 本文を返す。"""
        return tuple(self._require_session(session_id).container.executed_scripts)

    def _start_turn(
        self,
        session: _SessionContext,
        session_id: str,
        turn: InteractionTurn,
    ) -> GenerationTurn:
        session.turn_id += 1
        session.last_failure = None
        state = transitions.begin_interaction(
            session.state,
            turn.interaction_history,
            turn.current_path,
            turn.terminal_history,
        )
        cached = session.cache.lookup(state.current_path) if state.statefulness_enabled else None
        generation_turn = GenerationTurn(
            session_id=session_id,
            turn_id=session.turn_id,
            interaction_history=state.interaction_history,
            current_path=state.current_path,
            cached_content=cached,
        )
        session.pending_turn = generation_turn
        session.state = state
        self._render(session)
        if cached is None:
            return generation_turn

        _LOG.info("serving cached content: session_id=%s key=%s", session_id, state.cache_key)
        session.state = transitions.resolve_from_cache(state, cached)
        self._render(session)
        if self._is_current(session, generation_turn):
            self._capture_editor_baseline(session)
        return generation_turn

    def _finish_turn(
        self,
        session: _SessionContext,
        turn: GenerationTurn,
        failure: GenerationFailure | None,
        *,
        completed: bool,
    ) -> None:
        if failure is not None:
            session.last_failure = failure
            session.state = transitions.fail_stream(session.state, failure.message, failure.fragment)
        else:
            session.state = transitions.complete_stream(session.state)
        self._render(session)
        if not self._is_current(session, turn):
            return

        state = session.state
        if completed and failure is None and state.statefulness_enabled and turn.current_path:
            rendered = session.container.inner_html()
            if rendered and session.cache.store(turn.current_path, rendered):
                _LOG.debug("cached content: session_id=%s key=%s", turn.session_id, state.cache_key)
        self._capture_editor_baseline(session)

    def _render(self, session: _SessionContext) -> None:
        bridge = self._require_bridge(session)
        state = session.state
        bridge.app_context = state.active_app_id
        bridge.sync_terminal_history(state.terminal_history)
        bridge.content_updated(state.content, is_loading=state.is_loading)

    def _capture_editor_baseline(self, session: _SessionContext) -> None:
        """メモ帳の本文を未保存判定の基準として記録する。"""
        state = session.state
        if state.active_app_id != NOTES_APP_ID:
            session.editor_baseline_captured = False
            return
        if state.is_loading or not state.content:
            return
        textarea = session.container.find_by_id(NOTEPAD_TEXTAREA_ID)
        if textarea is None:
            return
        latest = state.interaction_history[0] if state.interaction_history else None
        saved = (
            latest is not None
            and latest.app_context == NOTES_APP_ID
            and latest.id in NOTEPAD_SAVE_INTERACTION_IDS
        )
        if session.editor_baseline_captured and not saved:
            return
        session.state = transitions.set_editor_baseline(state, textarea.value)
        session.editor_baseline_captured = True

    def _editor_value(self, session: _SessionContext) -> str | None:
        textarea = session.container.find_by_id(NOTEPAD_TEXTAREA_ID)
        return textarea.value if textarea is not None else None

    def _apply_field_values(
        self,
        session: _SessionContext,
        field_values: Mapping[str, str] | None,
    ) -> None:
        for element_id, value in (field_values or {}).items():
            element = session.container.find_by_id(element_id)
            if element is not None:
                element.value = value

    def _abandon_turn(self, session: _SessionContext) -> None:
        """実行中のターンを打ち切り、ロード表示を解除する。"""
        session.turn_id += 1
        session.pending_turn = None
        if session.state.is_loading:
            session.state = transitions.complete_stream(session.state)

    def _is_current(self, session: _SessionContext, turn: GenerationTurn) -> bool:
        return session.turn_id == turn.turn_id

    def _require_session(self, session_id: str) -> _SessionContext:
        session = self._sessions.get(session_id)
        if session is None:
            raise DesktopSessionNotFoundError(f"session_id が存在しません: {session_id}")
        return session

    def _require_bridge(self, session: _SessionContext) -> ContentBridge:
        if session.bridge is None:
            raise RuntimeError("セッションにブリッジが接続されていません。")
        return session.bridge

    def _evict_oldest_session(self) -> None:
        """最大セッション数超過時に最古セッションを削除する。"""
        oldest_session_id = next(iter(self._sessions))
        oldest = self._sessions.pop(oldest_session_id)
        if oldest.bridge is not None:
            oldest.bridge.detach()
