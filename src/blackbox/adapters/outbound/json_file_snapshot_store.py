"""JSON ファイルにスナップショットを保存するアダプタ。"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from blackbox.ports.outbound.snapshot_store_port import SnapshotStorePort

_LOG = logging.getLogger(__name__)
DEFAULT_SNAPSHOT_PATH = Path.home() / ".blackbox_os" / "snapshot.json"
DEFAULT_SNAPSHOT_KEY = "blackbox_os_state"


class JsonFileSnapshotStore(SnapshotStorePort):
    """1 つの JSON ファイル内の 1 キーへ payload を読み書きする。"""

    def __init__(self, path: Path | str = DEFAULT_SNAPSHOT_PATH, *, key: str = DEFAULT_SNAPSHOT_KEY) -> None:
        """保存先ファイルとキー名を受け取る。"""
        self._path = Path(path)
        self._key = key

    def load(self) -> Mapping[str, object] | None:
        payload = self._read_all().get(self._key)
        return payload if isinstance(payload, dict) else None

    def save(self, payload: Mapping[str, object]) -> None:
        entries = self._read_all()
        entries[self._key] = dict(payload)
        self._write_all(entries)

    def clear(self) -> None:
        entries = self._read_all()
        if entries.pop(self._key, None) is not None:
            self._write_all(entries)

    def _read_all(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            with self._path.open("r", encoding="utf-8") as file:
                entries = json.load(file)
        except json.JSONDecodeError:
            _LOG.warning("snapshot file is not valid JSON, ignoring: path=%s", self._path)
            return {}
        return entries if isinstance(entries, dict) else {}

    def _write_all(self, entries: Mapping[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        temporary_path = self._path.with_suffix(self._path.suffix + ".tmp")
        with temporary_path.open("w", encoding="utf-8") as file:
            json.dump(entries, file, ensure_ascii=False, indent=2)
        temporary_path.replace(self._path)
