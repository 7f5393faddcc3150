"""Expands command and reference placeholders in raw request text."""

from __future__ import annotations

import logging
import re
from typing import Callable, List, Mapping, Optional, Sequence, Tuple

from ..index.builder import SourceReader, SymbolIndex
from ..index.models import IndexSnapshot, SymbolEntry
from ..index.parser import CSharpDeclarationParser, DeclarationParser
from ..utils.file_io import read_text
from .commands import CommandEntry

__all__ = ["PlaceholderResolver", "COMMAND_TRIGGER", "REFERENCE_TRIGGER"]

LOGGER = logging.getLogger(__name__)

COMMAND_TRIGGER = "/"
REFERENCE_TRIGGER = "#"

_COMMAND_PATTERN = re.compile(re.escape(COMMAND_TRIGGER) + r"(\w+)")
# File keys carry dots ("Foo.cs"), so the token may include them; trailing
# punctuation is trimmed during lookup.
_REFERENCE_PATTERN = re.compile(re.escape(REFERENCE_TRIGGER) + r"([\w.\-]+)")
_TRAILING_PUNCTUATION = ".-"

Segment = Tuple[str, bool]
Substitution = Callable[[re.Match], Optional[Tuple[str, int]]]
Stage = Callable[[List[Segment]], List[Segment]]


class PlaceholderResolver:
    """Rewrites request text in two fixed stages.

    Every command placeholder is replaced before any reference placeholder is
    looked at. Substituted text is closed to later stages: a reference token
    revealed by a command text stays as typed, and file contents inserted for
    a reference are never scanned again.
    """

    def __init__(
        self,
        commands: Sequence[CommandEntry],
        index: SymbolIndex,
        *,
        parser: DeclarationParser | None = None,
        reader: SourceReader | None = None,
    ) -> None:
        self._commands: Mapping[str, CommandEntry] = {command.name: command for command in commands}
        self._index = index
        self._parser = parser or CSharpDeclarationParser()
        self._reader = reader or read_text
        self._stages: tuple[tuple[str, Stage], ...] = (
            ("commands", self._command_stage),
            ("references", self._reference_stage),
        )

    @property
    def stage_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self._stages)

    def resolve(self, text: str) -> str:
        """Return ``text`` with every known placeholder substituted.

        Read errors while loading referenced files propagate to the caller.
        """

        segments: List[Segment] = [(text, True)]
        for _name, stage in self._stages:
            segments = stage(segments)
        return _join(segments)

    def _command_stage(self, segments: List[Segment]) -> List[Segment]:
        def _substitute(match: re.Match[str]) -> tuple[str, int] | None:
            command = self._commands.get(match.group(1))
            if command is None:
                return None
            return command.resolved_text, match.end()

        return _apply(segments, COMMAND_TRIGGER, _COMMAND_PATTERN, _substitute)

    def _reference_stage(self, segments: List[Segment]) -> List[Segment]:
        snapshot = self._index.current
        if not snapshot:
            return segments
        contents: dict[str, str] = {}

        def _substitute(match: re.Match[str]) -> tuple[str, int] | None:
            entry = _lookup(snapshot, match.group(1))
            if entry is None:
                return None
            key = entry.display_key
            if key not in contents:
                contents[key] = self._load(entry)
            return contents[key], match.start(1) + len(key)

        return _apply(segments, REFERENCE_TRIGGER, _REFERENCE_PATTERN, _substitute)

    def _load(self, entry: SymbolEntry) -> str:
        text = self._reader(entry.source_path)
        if entry.is_file:
            return text
        for declaration in self._parser.parse(text):
            if declaration.identifier == entry.display_key:
                return declaration.text
        LOGGER.debug("Member %s no longer present in %s", entry.display_key, entry.source_path)
        return ""


def _apply(
    segments: List[Segment],
    trigger: str,
    pattern: re.Pattern[str],
    substitute: Substitution,
) -> List[Segment]:
    """Substitute matches inside open segments; substituted text is closed."""

    result: List[Segment] = []
    for text, is_open in segments:
        if not is_open or trigger not in text:
            result.append((text, is_open))
            continue
        position = 0
        for match in pattern.finditer(text):
            replacement = substitute(match)
            if replacement is None:
                continue
            value, end = replacement
            if match.start() > position:
                result.append((text[position : match.start()], True))
            result.append((value, False))
            position = end
        if position < len(text):
            result.append((text[position:], True))
    return result


def _join(segments: List[Segment]) -> str:
    return "".join(part for part, _ in segments)


def _lookup(snapshot: IndexSnapshot, token: str) -> SymbolEntry | None:
    candidate = token
    while candidate:
        entry = snapshot.lookup(candidate)
        if entry is not None:
            return entry
        if candidate[-1] not in _TRAILING_PUNCTUATION:
            return None
        candidate = candidate[:-1]
    return None
