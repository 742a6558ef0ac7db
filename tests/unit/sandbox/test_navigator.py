"""
boxsafe — unit tests for the workspace navigator

File: tests/unit/sandbox/test_navigator.py

Purpose
- Validate list/read/write/mkdir/delete/stat results and their error shape.

What this test file should cover
- Byte-exact write/read round trip (property).
- Idempotent directory creation.
- Size ceiling, missing parents, non-recursive delete of a non-empty directory.
- Boundary violations surface as ``OperationError`` values, never exceptions.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from boxsafe.sandbox.navigator import (
    DirectoryCreateResult,
    DirectoryListing,
    EntryKind,
    FileReadResult,
    FileWriteResult,
    MetadataResult,
    Navigator,
    NavigatorOperation,
    OperationError,
)


def test_write_then_read_returns_same_content(tmp_path: Path) -> None:
    navigator = Navigator(tmp_path)

    written = navigator.write_file("notes/a.txt", "héllo\n", create_dirs=True)
    read = navigator.read_file("notes/a.txt")

    assert isinstance(written, FileWriteResult)
    assert written.created is True
    assert written.path == "notes/a.txt"
    assert isinstance(read, FileReadResult)
    assert read.content == "héllo\n"
    assert read.size == len("héllo\n".encode())


def test_write_without_parent_fails_unless_create_dirs(tmp_path: Path) -> None:
    navigator = Navigator(tmp_path)

    result = navigator.write_file("missing/a.txt", "x")

    assert isinstance(result, OperationError)
    assert result.operation is NavigatorOperation.WRITE
    assert "parent directory does not exist" in result.error
    assert not (tmp_path / "missing").exists()


def test_append_extends_existing_file(tmp_path: Path) -> None:
    navigator = Navigator(tmp_path)
    navigator.write_file("log.txt", "one\n")

    appended = navigator.write_file("log.txt", "two\n", append=True)

    assert isinstance(appended, FileWriteResult)
    assert appended.created is False
    assert (tmp_path / "log.txt").read_text(encoding="utf-8") == "one\ntwo\n"


def test_create_directory_twice_reports_created_then_not(tmp_path: Path) -> None:
    navigator = Navigator(tmp_path)

    first = navigator.create_directory("a/b/c", recursive=True)
    second = navigator.create_directory("a/b/c", recursive=True)

    assert isinstance(first, DirectoryCreateResult)
    assert isinstance(second, DirectoryCreateResult)
    assert (first.created, second.created) == (True, False)


def test_create_directory_non_recursive_needs_parent(tmp_path: Path) -> None:
    result = Navigator(tmp_path).create_directory("x/y", recursive=False)

    assert isinstance(result, OperationError)
    assert "parent directory does not exist" in result.error


def test_read_rejects_files_over_the_ceiling(tmp_path: Path) -> None:
    (tmp_path / "big.bin").write_bytes(b"x" * 64)
    navigator = Navigator(tmp_path, max_file_size=16)

    result = navigator.read_file("big.bin")

    assert isinstance(result, OperationError)
    assert "file too large" in result.error


def test_read_rejects_directories(tmp_path: Path) -> None:
    (tmp_path / "pkg").mkdir()

    result = Navigator(tmp_path).read_file("pkg")

    assert isinstance(result, OperationError)
    assert result.operation is NavigatorOperation.READ
    assert "path is a directory" in result.error


def test_append_to_missing_file_is_rejected(tmp_path: Path) -> None:
    result = Navigator(tmp_path).write_file("absent.log", "x", append=True, create_dirs=True)

    assert isinstance(result, OperationError)
    assert "append requires an existing file" in result.error
    assert not (tmp_path / "absent.log").exists()


def test_tilde_names_are_plain_workspace_entries(tmp_path: Path) -> None:
    navigator = Navigator(tmp_path)
    (tmp_path / "~").mkdir()

    draft = navigator.write_file("~draft.txt", "x")
    nested = navigator.write_file("~/a.txt", "y")

    assert isinstance(draft, FileWriteResult)
    assert isinstance(nested, FileWriteResult)
    assert (tmp_path / "~draft.txt").read_text(encoding="utf-8") == "x"
    assert (tmp_path / "~" / "a.txt").read_text(encoding="utf-8") == "y"


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_list_directory_keeps_entries_that_cannot_be_stat_ed(tmp_path: Path) -> None:
    (tmp_path / "real.txt").write_text("r", encoding="utf-8")
    os.symlink(tmp_path / "gone", tmp_path / "dangling")

    listing = Navigator(tmp_path).list_directory(".")

    assert isinstance(listing, DirectoryListing)
    by_name = {entry.name: entry for entry in listing.entries}
    assert set(by_name) == {"dangling", "real.txt"}
    dangling = by_name["dangling"]
    assert dangling.kind is EntryKind.FILE
    assert (dangling.size, dangling.mtime, dangling.readable, dangling.writable) == (
        None,
        None,
        None,
        None,
    )
    assert by_name["real.txt"].size == 1


def test_list_directory_puts_directories_first(tmp_path: Path) -> None:
    (tmp_path / "b.txt").write_text("b", encoding="utf-8")
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    (tmp_path / "zdir").mkdir()

    listing = Navigator(tmp_path).list_directory(".")

    assert isinstance(listing, DirectoryListing)
    assert [entry.name for entry in listing.entries] == ["zdir", "a.txt", "b.txt"]
    assert listing.entries[0].kind is EntryKind.DIRECTORY
    assert listing.entries[0].size is None
    assert listing.entries[1].size == 1
    assert listing.to_dict()["total"] == 3


def test_delete_non_empty_directory_requires_recursive(tmp_path: Path) -> None:
    navigator = Navigator(tmp_path)
    navigator.write_file("pkg/mod.py", "x = 1\n", create_dirs=True)

    refused = navigator.delete("pkg")
    removed = navigator.delete("pkg", recursive=True)

    assert isinstance(refused, OperationError)
    assert "directory not empty" in refused.error
    assert not isinstance(removed, OperationError)
    assert removed.kind is EntryKind.DIRECTORY
    assert not (tmp_path / "pkg").exists()


def test_delete_refuses_workspace_root(tmp_path: Path) -> None:
    result = Navigator(tmp_path).delete(".", recursive=True)

    assert isinstance(result, OperationError)
    assert "workspace root" in result.error
    assert tmp_path.exists()


@pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
def test_delete_symlink_removes_link_not_target(tmp_path: Path) -> None:
    (tmp_path / "target.txt").write_text("keep", encoding="utf-8")
    (tmp_path / "alias").symlink_to(tmp_path / "target.txt")

    result = Navigator(tmp_path).delete("alias")

    assert not isinstance(result, OperationError)
    assert not (tmp_path / "alias").exists()
    assert (tmp_path / "target.txt").read_text(encoding="utf-8") == "keep"


def test_get_metadata_for_file(tmp_path: Path) -> None:
    (tmp_path / "data.json").write_text("{}", encoding="utf-8")

    meta = Navigator(tmp_path).get_metadata("data.json")

    assert isinstance(meta, MetadataResult)
    assert meta.kind is EntryKind.FILE
    assert meta.size == 2
    assert meta.readable is True


def test_every_operation_reports_boundary_violations_as_values(tmp_path: Path) -> None:
    workspace = tmp_path / "ws"
    workspace.mkdir()
    navigator = Navigator(workspace)

    results = [
        navigator.list_directory(".."),
        navigator.read_file("../x"),
        navigator.write_file("../x", "data"),
        navigator.create_directory("../x"),
        navigator.delete("../x"),
        navigator.get_metadata("../x"),
    ]

    assert all(isinstance(result, OperationError) for result in results)
    assert all("outside workspace boundary" in result.error for result in results)
    assert not (tmp_path / "x").exists()


@settings(max_examples=60, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(content=st.text(max_size=512))
def test_write_read_round_trip_is_byte_exact(tmp_path: Path, content: str) -> None:
    navigator = Navigator(tmp_path)

    navigator.write_file("roundtrip.txt", content)
    read = navigator.read_file("roundtrip.txt")

    assert isinstance(read, FileReadResult)
    assert read.content == content
    assert (tmp_path / "roundtrip.txt").read_bytes() == content.encode("utf-8")
