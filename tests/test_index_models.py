"""Tests for index value types and file-type classification."""

from __future__ import annotations

import pytest

from chatstudio.index.icons import icon_for, is_indexed_file, is_project_file
from chatstudio.index.models import MEMBER_KINDS, IndexSnapshot, SymbolEntry, SymbolKind


def _entry(key: str, kind: SymbolKind = SymbolKind.METHOD, path: str = "/src/A.cs") -> SymbolEntry:
    return SymbolEntry(display_key=key, kind=kind, source_path=path, description=f"S.P.C.{key}")


def test_lookup_returns_first_entry_in_index_order() -> None:
    first = _entry("Run", path="/src/A.cs")
    second = _entry("Run", path="/src/B.cs")
    snapshot = IndexSnapshot(entries=(first, _entry("Stop"), second))

    assert snapshot.lookup("Run") is first
    assert snapshot.lookup("run") is None
    assert snapshot.keys() == ["Run", "Stop", "Run"]


def test_file_and_member_keys_are_split_by_kind() -> None:
    snapshot = IndexSnapshot(
        entries=(
            _entry("A.cs", SymbolKind.FILE),
            _entry("Run"),
            _entry("Mode", SymbolKind.ENUM),
            _entry("README.md", SymbolKind.FILE, path="/README.md"),
        )
    )

    assert snapshot.file_keys() == ["A.cs", "README.md"]
    assert snapshot.member_keys() == ["Run", "Mode"]
    assert len(snapshot) == 4


def test_empty_snapshot_is_falsey() -> None:
    assert not IndexSnapshot()
    assert list(IndexSnapshot()) == []


def test_member_kinds_exclude_files() -> None:
    assert SymbolKind.FILE not in MEMBER_KINDS
    assert SymbolKind.EVENT in MEMBER_KINDS
    assert _entry("A.cs", SymbolKind.FILE).is_file
    assert not _entry("Run").is_file


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("Worker.cs", "cs"),
        ("site.css", "css"),
        ("App.config", "config"),
        ("App.csproj", "vs"),
        ("Tools.vbproj", "vs"),
        ("Sample.sln", "sln"),
        ("Properties", "folder"),
        ("method", "method"),
        ("image.png", None),
    ],
)
def test_icon_for_classifies_names(name: str, expected: str | None) -> None:
    assert icon_for(name) == expected


def test_indexed_and_project_files_ignore_case() -> None:
    assert is_indexed_file("Worker.CS")
    assert not is_indexed_file("notes.txt")
    assert is_project_file("App.CsProj")
    assert not is_project_file("Worker.cs")
