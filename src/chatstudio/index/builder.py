"""Builds symbol index snapshots from a project tree."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import PurePath
from typing import Callable, Iterable

from ..utils.file_io import read_text
from .icons import METHOD_ICON_SOURCE, SOURCE_EXTENSION, icon_for, is_indexed_file
from .models import IndexSnapshot, SymbolEntry, SymbolKind
from .parser import CSharpDeclarationParser, DeclarationParser
from .workspace import ItemKind, ProjectItem, ProjectTree

__all__ = ["SymbolIndexBuilder", "SymbolIndex", "IndexRefresher", "WorkspaceProvider", "SourceReader"]

LOGGER = logging.getLogger(__name__)

WorkspaceProvider = Callable[[], ProjectTree | None]
SourceReader = Callable[[str], str]


class SymbolIndexBuilder:
    """Walks every project of the open workspace and produces a full snapshot.

    Each call to :meth:`build` starts from scratch; nothing is merged with a
    previous snapshot. Files that cannot be read or parsed contribute no
    entries and the walk continues.
    """

    def __init__(
        self,
        workspace_provider: WorkspaceProvider,
        *,
        parser: DeclarationParser | None = None,
        reader: SourceReader | None = None,
    ) -> None:
        self._workspace_provider = workspace_provider
        self._parser = parser or CSharpDeclarationParser()
        self._reader = reader or read_text

    def build(self) -> IndexSnapshot | None:
        """Return a new snapshot, or ``None`` when no workspace is open."""

        workspace = self._workspace_provider()
        if workspace is None:
            return None
        solution_name = workspace.solution_name
        entries: list[SymbolEntry] = []
        for project in workspace.projects():
            self._collect(project.items, solution_name, project.name, entries)
        return IndexSnapshot(entries=tuple(entries))

    def _collect(
        self,
        items: Iterable[ProjectItem],
        solution_name: str,
        project_name: str,
        entries: list[SymbolEntry],
    ) -> None:
        for item in items:
            if item.kind is ItemKind.FILE:
                if is_indexed_file(item.name):
                    entries.extend(self._index_file(item, solution_name, project_name))
            else:
                # Sub-project members stay attributed to the enclosing project.
                self._collect(item.children, solution_name, project_name, entries)

    def _index_file(self, item: ProjectItem, solution_name: str, project_name: str) -> list[SymbolEntry]:
        path = str(item.path)
        file_entry = SymbolEntry(
            display_key=item.name,
            kind=SymbolKind.FILE,
            source_path=path,
            description=path,
            icon_key=icon_for(item.name),
        )
        if PurePath(item.name).suffix != SOURCE_EXTENSION:
            return [file_entry]
        try:
            declarations = self._parser.parse(self._reader(path))
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            LOGGER.debug("Skipping %s during indexing: %s", path, exc)
            return []
        member_icon = icon_for(METHOD_ICON_SOURCE)
        members = [
            SymbolEntry(
                display_key=declaration.identifier,
                kind=declaration.kind,
                source_path=path,
                description=f"{solution_name}.{project_name}.{declaration.container}.{declaration.identifier}",
                icon_key=member_icon,
            )
            for declaration in declarations
        ]
        return [file_entry, *members]


class SymbolIndex:
    """Reference cell holding the most recently published snapshot.

    Readers take :attr:`current` once and iterate over that value; a rebuild
    replaces the reference in a single assignment and never touches a
    published snapshot.
    """

    def __init__(self, snapshot: IndexSnapshot | None = None) -> None:
        self._snapshot = snapshot

    @property
    def current(self) -> IndexSnapshot | None:
        return self._snapshot

    def publish(self, snapshot: IndexSnapshot) -> None:
        self._snapshot = snapshot


class IndexRefresher:
    """Runs builds and publishes their results, refusing to start a second concurrent build."""

    def __init__(self, builder: SymbolIndexBuilder, index: SymbolIndex) -> None:
        self._builder = builder
        self._index = index
        self._lock = threading.Lock()

    @property
    def index(self) -> SymbolIndex:
        return self._index

    @property
    def is_building(self) -> bool:
        return self._lock.locked()

    def rebuild(self) -> IndexSnapshot | None:
        """Build and publish a snapshot; returns ``None`` if skipped or no workspace is open."""

        if not self._lock.acquire(blocking=False):
            LOGGER.debug("Index rebuild already in progress; ignoring trigger")
            return None
        try:
            started = time.perf_counter()
            snapshot = self._builder.build()
            if snapshot is None:
                LOGGER.debug("No workspace open; index left unchanged")
                return None
            self._index.publish(snapshot)
            LOGGER.debug(
                "Index rebuilt with %d entries (%d files) in %.1f ms",
                len(snapshot),
                len(snapshot.file_keys()),
                (time.perf_counter() - started) * 1000.0,
            )
            return snapshot
        finally:
            self._lock.release()
