"""デスクトップ操作ループで扱うインタラクションエンティティ。"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, replace
from typing import Any

ELEMENT_LABEL_MAX_CHARS = 75


@dataclass(frozen=True, slots=True)
class AppDefinition:
    """デスクトップに並ぶ模擬アプリの定義。"""

    id: str
    name: str
    icon: str
    color: str

    def __post_init__(self) -> None:
        """最低限の整合性を検証する。"""
        if not self.id:
            raise ValueError("id は空にできません。")
        if not self.name:
            raise ValueError("name は空にできません。")


@dataclass(frozen=True, slots=True)
class InteractionRecord:
    """ユーザー操作またはシステムイベント 1 件分の記録。"""

    id: str
    kind: str
    element_kind: str
    element_label: str = ""
    app_context: str | None = None
    value: str | None = None
    vfs: Mapping[str, Any] | None = None
    terminal_history: tuple[str, ...] | None = None
    path: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        """最低限の整合性を検証し、表示ラベルを正規化する。"""
        if not self.id:
            raise ValueError("id は空にできません。")
        if not self.kind:
            raise ValueError("kind は空にできません。")
        label = self.element_label.strip()[:ELEMENT_LABEL_MAX_CHARS]
        if label != self.element_label:
            object.__setattr__(self, "element_label", label)
        if self.terminal_history is not None and not isinstance(self.terminal_history, tuple):
            object.__setattr__(self, "terminal_history", tuple(self.terminal_history))
        if self.path is not None and not isinstance(self.path, tuple):
            object.__setattr__(self, "path", tuple(self.path))

    def with_context(
        self,
        *,
        vfs: Mapping[str, Any] | None = None,
        path: Sequence[str] | None = None,
        terminal_history: Sequence[str] | None = None,
    ) -> InteractionRecord:
        """VFS・パス・端末履歴を刻印した複製を返す。"""
        return replace(
            self,
            vfs=vfs if vfs is not None else self.vfs,
            path=tuple(path) if path is not None else self.path,
            terminal_history=(
                tuple(terminal_history) if terminal_history is not None else self.terminal_history
            ),
        )

    def to_payload(self, *, include_vfs: bool = True) -> dict[str, Any]:
        """JSON 化可能な dict を返す。None の項目は含めない。"""
        payload: dict[str, Any] = {
            "id": self.id,
            "kind": self.kind,
            "value": self.value,
            "element_kind": self.element_kind,
            "element_label": self.element_label,
            "app_context": self.app_context,
        }
        if include_vfs:
            payload["vfs"] = self.vfs
        payload["terminal_history"] = (
            list(self.terminal_history) if self.terminal_history is not None else None
        )
        payload["path"] = list(self.path) if self.path is not None else None
        return {key: value for key, value in payload.items() if value is not None}

    @classmethod
    def from_payload(cls, payload: Mapping[str, object]) -> InteractionRecord:
        """to_payload 形式の dict から復元する。"""
        interaction_id = payload.get("id")
        kind = payload.get("kind")
        if not isinstance(interaction_id, str) or not isinstance(kind, str):
            raise ValueError("interaction payload に id と kind が必要です。")
        vfs = payload.get("vfs")
        terminal_history = payload.get("terminal_history")
        path = payload.get("path")
        value = payload.get("value")
        app_context = payload.get("app_context")
        return cls(
            id=interaction_id,
            kind=kind,
            element_kind=str(payload.get("element_kind", "")),
            element_label=str(payload.get("element_label", "")),
            app_context=app_context if isinstance(app_context, str) else None,
            value=value if isinstance(value, str) else None,
            vfs=vfs if isinstance(vfs, Mapping) else None,
            terminal_history=(
                tuple(str(item) for item in terminal_history)
                if isinstance(terminal_history, list)
                else None
            ),
            path=tuple(str(item) for item in path) if isinstance(path, list) else None,
        )
