"""入れ子 dict で表す仮想ファイルシステムのパス操作。

VFS は ``dict[str, dict | str]`` の木で、葉がファイル内容、内部節点が
ディレクトリを表す。書き込みは毎回深いコピーを返し、以前の版を変更しない。
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from typing import Any

VfsNode = Mapping[str, Any] | str

_SEED_FILE_SYSTEM: dict[str, Any] = {
    "home": {
        "user": {
            "documents": {
                "report.txt": "This is a sample report file.",
            },
            "notes.txt": "Pentesting notes...",
        },
    },
    "etc": {
        "shadow": (
            "root:$6$salt$hacker:18635:0:99999:7:::\n"
            "user:$6$salt$pleasentry:18635:0:99999:7:::\n"
            "guest::18635:0:99999:7:::\n"
        ),
    },
}


class VfsPathNotFoundError(KeyError):
    """指定パスが VFS に存在しない場合の例外。"""


class VfsPathError(ValueError):
    """ファイルをディレクトリとして扱おうとした場合の例外。"""


def seed_file_system() -> dict[str, Any]:
    """セッション開始時の初期 VFS を新しいコピーで返す。"""
    return copy.deepcopy(_SEED_FILE_SYSTEM)


def read_path(vfs: Mapping[str, Any], path: Sequence[str]) -> VfsNode:
    """パス上の節点を返す。ディレクトリはコピーを返す。"""
    node: VfsNode = vfs
    for index, segment in enumerate(path):
        if not isinstance(node, Mapping) or segment not in node:
            joined = "/".join(path[: index + 1])
            raise VfsPathNotFoundError(f"パスが存在しません: /{joined}")
        node = node[segment]
    if isinstance(node, Mapping):
        return copy.deepcopy(dict(node))
    return node


def write_path(vfs: Mapping[str, Any], path: Sequence[str], content: VfsNode) -> dict[str, Any]:
    """パスに content を書き込んだ新しい VFS を返す。

    途中のディレクトリが無ければ空ディレクトリとして作成する。
    """
    if not path:
        if not isinstance(content, Mapping):
            raise VfsPathError("ルートにはディレクトリのみ書き込めます。")
        return copy.deepcopy(dict(content))

    new_vfs: dict[str, Any] = copy.deepcopy(dict(vfs))
    current = new_vfs
    for index, segment in enumerate(path[:-1]):
        child = current.get(segment)
        if child is None:
            child = {}
            current[segment] = child
        elif not isinstance(child, dict):
            joined = "/".join(path[: index + 1])
            raise VfsPathError(f"ファイルの下には書き込めません: /{joined}")
        current = child

    current[path[-1]] = copy.deepcopy(content) if isinstance(content, Mapping) else content
    return new_vfs


def list_directory(vfs: Mapping[str, Any], path: Sequence[str]) -> tuple[str, ...]:
    """ディレクトリ直下の名前をソートして返す。"""
    node = read_path(vfs, path)
    if not isinstance(node, Mapping):
        raise VfsPathError(f"ディレクトリではありません: /{'/'.join(path)}")
    return tuple(sorted(node))
