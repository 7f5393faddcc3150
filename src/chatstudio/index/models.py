"""Value types for the project symbol index."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Mapping, Sequence

__all__ = ["SymbolKind", "SymbolEntry", "IndexSnapshot", "MEMBER_KINDS"]


class SymbolKind(Enum):
    """Kinds of entries the index can hold."""

    FILE = "file"
    METHOD = "method"
    CONSTRUCTOR = "constructor"
    PROPERTY = "property"
    ENUM = "enum"
    DELEGATE = "delegate"
    EVENT = "event"

    @property
    def is_member(self) -> bool:
        return self is not SymbolKind.FILE


MEMBER_KINDS: frozenset[SymbolKind] = frozenset(kind for kind in SymbolKind if kind.is_member)


@dataclass(slots=True, frozen=True)
class SymbolEntry:
    """A single indexed file or class member.

    ``display_key`` is the bare file name for files and the unqualified member
    name for members. ``description`` is the full path for files and
    ``solution.project.class.member`` for members.
    """

    display_key: str
    kind: SymbolKind
    source_path: str
    description: str
    icon_key: str | None = None

    @property
    def is_file(self) -> bool:
        return self.kind is SymbolKind.FILE


@dataclass(slots=True, frozen=True)
class IndexSnapshot:
    """Immutable, ordered result of one index rebuild."""

    entries: tuple[SymbolEntry, ...] = ()
    built_at: float = field(default_factory=time.time)
    _by_key: Mapping[str, SymbolEntry] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        by_key: dict[str, SymbolEntry] = {}
        for entry in self.entries:
            by_key.setdefault(entry.display_key, entry)
        object.__setattr__(self, "_by_key", by_key)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[SymbolEntry]:
        return iter(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def lookup(self, key: str) -> SymbolEntry | None:
        """Return the first entry in index order whose display key equals ``key``."""

        return self._by_key.get(key)

    def keys(self) -> Sequence[str]:
        return [entry.display_key for entry in self.entries]

    def file_keys(self) -> Sequence[str]:
        return [entry.display_key for entry in self.entries if entry.is_file]

    def member_keys(self) -> Sequence[str]:
        return [entry.display_key for entry in self.entries if not entry.is_file]
