"""Project-tree enumeration consumed by the symbol index builder."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Protocol, Sequence

from .icons import is_project_file

__all__ = [
    "ItemKind",
    "ProjectItem",
    "ProjectNode",
    "ProjectTree",
    "FileSystemWorkspace",
]

LOGGER = logging.getLogger(__name__)
_IGNORED_DIRECTORIES = frozenset({"bin", "obj", ".git", ".vs", "node_modules", "packages", "__pycache__"})


class ItemKind(Enum):
    FILE = "file"
    FOLDER = "folder"
    SUBPROJECT = "subproject"


@dataclass(slots=True, frozen=True)
class ProjectItem:
    """A node of a project tree tagged with its kind."""

    name: str
    kind: ItemKind
    path: Path
    children: tuple["ProjectItem", ...] = ()


@dataclass(slots=True, frozen=True)
class ProjectNode:
    name: str
    items: tuple[ProjectItem, ...]


class ProjectTree(Protocol):
    """Enumerates the projects of an open workspace."""

    @property
    def solution_name(self) -> str:  # pragma: no cover - protocol stub
        ...

    def projects(self) -> Iterable[ProjectNode]:  # pragma: no cover - protocol stub
        ...


class FileSystemWorkspace:
    """Treats a directory as a solution and its project-file directories as projects.

    The tree is enumerated afresh on every call to :meth:`projects` so that each
    index rebuild sees the current state of the disk.
    """

    def __init__(self, root: Path | str) -> None:
        resolved = Path(root).expanduser().resolve()
        if not resolved.is_dir():
            raise NotADirectoryError(f"Workspace root is not a directory: {resolved}")
        self._root = resolved

    @property
    def root(self) -> Path:
        return self._root

    @property
    def solution_name(self) -> str:
        solutions = sorted(self._root.glob("*.sln"))
        if solutions:
            return solutions[0].stem
        return self._root.name

    def projects(self) -> list[ProjectNode]:
        project_dirs = list(self._find_project_dirs(self._root))
        if not project_dirs:
            project_dirs = [self._root]
        return [
            ProjectNode(name=_project_name(directory), items=tuple(self._enumerate(directory)))
            for directory in project_dirs
        ]

    def _find_project_dirs(self, directory: Path) -> Iterable[Path]:
        if _has_project_file(directory):
            yield directory
            return
        for child in _sorted_children(directory):
            if child.is_dir() and child.name not in _IGNORED_DIRECTORIES:
                yield from self._find_project_dirs(child)

    def _enumerate(self, directory: Path) -> Iterable[ProjectItem]:
        for child in _sorted_children(directory):
            if child.is_dir():
                if child.name in _IGNORED_DIRECTORIES:
                    continue
                kind = ItemKind.SUBPROJECT if _has_project_file(child) else ItemKind.FOLDER
                yield ProjectItem(
                    name=child.name,
                    kind=kind,
                    path=child,
                    children=tuple(self._enumerate(child)),
                )
            elif child.is_file():
                yield ProjectItem(name=child.name, kind=ItemKind.FILE, path=child)


def _sorted_children(directory: Path) -> Sequence[Path]:
    try:
        return sorted(directory.iterdir(), key=lambda path: path.name.casefold())
    except OSError as exc:
        LOGGER.debug("Unable to list %s: %s", directory, exc)
        return []


def _has_project_file(directory: Path) -> bool:
    return any(child.is_file() and is_project_file(child.name) for child in _sorted_children(directory))


def _project_name(directory: Path) -> str:
    for child in _sorted_children(directory):
        if child.is_file() and is_project_file(child.name):
            return child.stem
    return directory.name
