"""File-type classification shared by the indexer and the suggestion popups."""

from __future__ import annotations

from pathlib import PurePath

__all__ = [
    "INDEXED_EXTENSIONS",
    "PROJECT_FILE_EXTENSIONS",
    "SOURCE_EXTENSION",
    "METHOD_ICON_SOURCE",
    "icon_for",
    "is_indexed_file",
    "is_project_file",
]

INDEXED_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".config",
        ".cs",
        ".css",
        ".html",
        ".js",
        ".json",
        ".md",
        ".sql",
        ".ts",
        ".vb",
        ".xml",
        ".xaml",
    }
)
PROJECT_FILE_EXTENSIONS: frozenset[str] = frozenset(
    {
        ".csproj",
        ".vbproj",
        ".vcxproj",
        ".fsproj",
        ".pyproj",
        ".jsproj",
        ".sqlproj",
        ".wixproj",
        ".njsproj",
        ".shproj",
    }
)
SOURCE_EXTENSION = ".cs"
METHOD_ICON_SOURCE = "method"


def icon_for(name: str) -> str | None:
    """Return the icon key for a file name, or ``None`` for unrecognized types.

    ``METHOD_ICON_SOURCE`` is a synthetic name used for class members.
    """

    if name == METHOD_ICON_SOURCE:
        return "method"
    extension = PurePath(name).suffix
    if not extension:
        return "folder"
    if extension == ".sln":
        return "sln"
    if extension in PROJECT_FILE_EXTENSIONS:
        return "vs"
    if extension not in INDEXED_EXTENSIONS:
        return None
    return extension.lstrip(".")


def is_indexed_file(name: str) -> bool:
    return PurePath(name).suffix.lower() in INDEXED_EXTENSIONS


def is_project_file(name: str) -> bool:
    return PurePath(name).suffix.lower() in PROJECT_FILE_EXTENSIONS
