"""Tests for project-tree enumeration and index builds."""

from __future__ import annotations

import threading
from pathlib import Path

import pytest

from chatstudio.index.builder import IndexRefresher, SymbolIndex, SymbolIndexBuilder
from chatstudio.index.models import IndexSnapshot, SymbolEntry, SymbolKind
from chatstudio.index.parser import Declaration, DeclarationParseError
from chatstudio.index.workspace import FileSystemWorkspace, ItemKind, ProjectItem, ProjectNode

EXPECTED_KEYS = [
    "Item.cs",
    "Describe",
    "README.md",
    "Helper.cs",
    "Twice",
    "Worker.cs",
    "Worker",
    "Count",
    "DoWork",
    "Mode",
    "Finished",
]


class _StaticTree:
    def __init__(self, projects: list[ProjectNode], solution_name: str = "Demo") -> None:
        self._projects = projects
        self.solution_name = solution_name

    def projects(self) -> list[ProjectNode]:
        return self._projects


class _FakeParser:
    def __init__(self, declarations: dict[str, list[Declaration]]) -> None:
        self._declarations = declarations

    def parse(self, source_text: str) -> list[Declaration]:
        if source_text == "broken":
            raise DeclarationParseError("cannot parse")
        return self._declarations.get(source_text, [])


def _file(name: str) -> ProjectItem:
    return ProjectItem(name=name, kind=ItemKind.FILE, path=Path("/repo") / name)


def test_workspace_enumerates_projects_and_skips_build_output(csharp_workspace: Path) -> None:
    workspace = FileSystemWorkspace(csharp_workspace)

    (project,) = workspace.projects()

    assert workspace.solution_name == "Sample"
    assert project.name == "App"
    names = [item.name for item in project.items]
    assert "bin" not in names
    assert names == ["App.csproj", "Models", "notes.txt", "README.md", "Tools", "Worker.cs"]
    tools = next(item for item in project.items if item.name == "Tools")
    assert tools.kind is ItemKind.SUBPROJECT
    models = next(item for item in project.items if item.name == "Models")
    assert models.kind is ItemKind.FOLDER
    assert [child.name for child in models.children] == ["Item.cs"]


def test_workspace_without_project_files_is_a_single_project(tmp_path: Path) -> None:
    (tmp_path / "Loose.cs").write_text("class Loose { }\n", encoding="utf-8")

    (project,) = FileSystemWorkspace(tmp_path).projects()

    assert project.name == tmp_path.name
    assert [item.name for item in project.items] == ["Loose.cs"]


def test_workspace_rejects_missing_directory(tmp_path: Path) -> None:
    with pytest.raises(NotADirectoryError):
        FileSystemWorkspace(tmp_path / "missing")


def test_build_indexes_files_then_their_members(csharp_workspace: Path) -> None:
    workspace = FileSystemWorkspace(csharp_workspace)

    snapshot = SymbolIndexBuilder(lambda: workspace).build()

    assert snapshot is not None
    assert snapshot.keys() == EXPECTED_KEYS
    do_work = snapshot.lookup("DoWork")
    assert do_work is not None
    assert do_work.kind is SymbolKind.METHOD
    assert do_work.description == "Sample.App.Worker.DoWork"
    assert do_work.icon_key == "method"
    assert do_work.source_path == str(csharp_workspace.resolve() / "App" / "Worker.cs")
    twice = snapshot.lookup("Twice")
    assert twice is not None and twice.description == "Sample.App.Helper.Twice"
    readme = snapshot.lookup("README.md")
    assert readme is not None
    assert readme.description == readme.source_path
    assert readme.icon_key == "md"


def test_rebuilds_of_unchanged_tree_are_stable(csharp_workspace: Path) -> None:
    builder = SymbolIndexBuilder(lambda: FileSystemWorkspace(csharp_workspace))

    first = builder.build()
    second = builder.build()

    assert first is not None and second is not None
    assert first is not second
    assert first.file_keys() == second.file_keys()
    assert first.member_keys() == second.member_keys()


def test_rebuild_reflects_files_added_since_last_build(csharp_workspace: Path) -> None:
    builder = SymbolIndexBuilder(lambda: FileSystemWorkspace(csharp_workspace))
    before = builder.build()
    (csharp_workspace / "App" / "Bar.cs").write_text("class Bar { void Ping() { } }\n", encoding="utf-8")

    after = builder.build()

    assert before is not None and after is not None
    assert before.lookup("Ping") is None
    assert after.lookup("Ping") is not None


def test_unreadable_and_unparsable_files_are_skipped() -> None:
    tree = _StaticTree([ProjectNode(name="Core", items=(_file("Broken.cs"), _file("Gone.cs"), _file("Good.cs")))])
    sources = {"/repo/Broken.cs": "broken", "/repo/Good.cs": "good"}

    def _reader(path: str) -> str:
        try:
            return sources[path]
        except KeyError:
            raise FileNotFoundError(path) from None

    parser = _FakeParser({"good": [Declaration(SymbolKind.METHOD, "Run", "void Run() { }", "Good")]})
    snapshot = SymbolIndexBuilder(lambda: tree, parser=parser, reader=_reader).build()

    assert snapshot is not None
    assert snapshot.keys() == ["Good.cs", "Run"]
    run = snapshot.lookup("Run")
    assert run is not None and run.description == "Demo.Core.Good.Run"


def test_non_source_files_are_not_read() -> None:
    tree = _StaticTree([ProjectNode(name="Web", items=(_file("site.css"), _file("logo.png")))])

    def _reader(path: str) -> str:
        raise AssertionError(f"unexpected read of {path}")

    snapshot = SymbolIndexBuilder(lambda: tree, parser=_FakeParser({}), reader=_reader).build()

    assert snapshot is not None
    assert snapshot.keys() == ["site.css"]


def test_build_without_workspace_returns_none() -> None:
    assert SymbolIndexBuilder(lambda: None).build() is None


def test_refresher_publishes_and_keeps_last_snapshot_when_workspace_closes() -> None:
    trees = [_StaticTree([ProjectNode(name="Core", items=(_file("notes.md"),))]), None]
    index = SymbolIndex()
    refresher = IndexRefresher(
        SymbolIndexBuilder(lambda: trees.pop(0), parser=_FakeParser({})),
        index,
    )

    published = refresher.rebuild()
    assert published is not None
    assert index.current is published

    assert refresher.rebuild() is None
    assert index.current is published


def test_refresher_ignores_trigger_while_building() -> None:
    started = threading.Event()
    release = threading.Event()

    class _SlowBuilder:
        def build(self) -> IndexSnapshot:
            started.set()
            release.wait(timeout=5)
            return IndexSnapshot(entries=(SymbolEntry("a.md", SymbolKind.FILE, "/a.md", "/a.md"),))

    index = SymbolIndex()
    refresher = IndexRefresher(_SlowBuilder(), index)  # type: ignore[arg-type]
    results: list[IndexSnapshot | None] = []
    worker = threading.Thread(target=lambda: results.append(refresher.rebuild()))
    worker.start()
    assert started.wait(timeout=5)

    assert refresher.is_building
    assert refresher.rebuild() is None

    release.set()
    worker.join(timeout=5)
    assert results and results[0] is not None
    assert index.current is results[0]
    assert not refresher.is_building
