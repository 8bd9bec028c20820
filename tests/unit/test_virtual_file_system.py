import pytest

from blackbox.domain.services.virtual_file_system import (
    VfsPathError,
    VfsPathNotFoundError,
    list_directory,
    read_path,
    seed_file_system,
    write_path,
)


def test_seed_contains_expected_files() -> None:
    vfs = seed_file_system()

    assert read_path(vfs, ("home", "user", "documents", "report.txt")) == "This is a sample report file."
    assert read_path(vfs, ("home", "user", "notes.txt")) == "Pentesting notes..."
    assert "root:" in read_path(vfs, ("etc", "shadow"))


def test_seed_returns_independent_copies() -> None:
    first = seed_file_system()
    first["home"]["user"]["notes.txt"] = "changed"

    assert read_path(seed_file_system(), ("home", "user", "notes.txt")) == "Pentesting notes..."


def test_write_creates_parents_without_touching_original() -> None:
    original = seed_file_system()

    updated = write_path(original, ("tmp", "logs", "a.txt"), "hello")

    assert read_path(updated, ("tmp", "logs", "a.txt")) == "hello"
    assert "tmp" not in original
    assert read_path(updated, ("home", "user", "notes.txt")) == "Pentesting notes..."


def test_written_versions_share_no_nodes() -> None:
    original = seed_file_system()
    directory = {"inner.txt": "x"}

    updated = write_path(original, ("home", "user", "dir"), directory)
    directory["inner.txt"] = "mutated"
    updated["home"]["user"]["notes.txt"] = "edited in new version"

    assert read_path(updated, ("home", "user", "dir", "inner.txt")) == "x"
    assert read_path(original, ("home", "user", "notes.txt")) == "Pentesting notes..."


def test_read_of_directory_returns_copy() -> None:
    vfs = seed_file_system()

    node = read_path(vfs, ("home", "user"))
    node["notes.txt"] = "changed through read result"

    assert read_path(vfs, ("home", "user", "notes.txt")) == "Pentesting notes..."


def test_read_missing_segment_raises_not_found() -> None:
    with pytest.raises(VfsPathNotFoundError):
        read_path(seed_file_system(), ("home", "nobody"))


def test_read_through_file_raises_not_found() -> None:
    with pytest.raises(VfsPathNotFoundError):
        read_path(seed_file_system(), ("home", "user", "notes.txt", "deeper"))


def test_write_through_file_is_rejected() -> None:
    original = seed_file_system()

    with pytest.raises(VfsPathError):
        write_path(original, ("home", "user", "notes.txt", "child"), "x")


def test_write_with_empty_path_replaces_root() -> None:
    replaced = write_path(seed_file_system(), (), {"only": "file"})

    assert replaced == {"only": "file"}
    with pytest.raises(VfsPathError):
        write_path(seed_file_system(), (), "not a directory")


def test_list_directory_returns_sorted_names() -> None:
    vfs = seed_file_system()

    assert list_directory(vfs, ("home", "user")) == ("documents", "notes.txt")
    assert list_directory(vfs, ()) == ("etc", "home")
    with pytest.raises(VfsPathError):
        list_directory(vfs, ("home", "user", "notes.txt"))
