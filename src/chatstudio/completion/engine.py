"""Trigger-driven suggestion popups for the request editor."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol, Sequence

from ..index.builder import SymbolIndex
from ..index.models import IndexSnapshot
from .commands import CommandEntry
from .resolver import COMMAND_TRIGGER, REFERENCE_TRIGGER

__all__ = ["PopupKind", "Suggestion", "SuggestionPopup", "SuggestionEngine", "PopupFactory"]

LOGGER = logging.getLogger(__name__)


class PopupKind(Enum):
    COMMANDS = "commands"
    REFERENCES = "references"


@dataclass(slots=True, frozen=True)
class Suggestion:
    """One row of a popup; ``key`` is the text inserted when it is committed."""

    key: str
    payload: str
    description: str
    icon_key: str | None


class SuggestionPopup(Protocol):
    """Contract a visual popup must satisfy to be driven by :class:`SuggestionEngine`."""

    @property
    def is_active(self) -> bool:  # pragma: no cover - protocol stub
        ...

    def open(self, suggestions: Sequence[Suggestion]) -> None:  # pragma: no cover - protocol stub
        ...

    def commit(self) -> Suggestion | None:  # pragma: no cover - protocol stub
        """Insert the highlighted suggestion into the editor and close."""

    def close(self) -> None:  # pragma: no cover - protocol stub
        ...


PopupFactory = Callable[[PopupKind], SuggestionPopup]


class SuggestionEngine:
    """Opens the command popup on ``/`` and the reference popup on ``#``.

    The two popups are independent. Nothing here stops both from being open
    at once; the editor only ever delivers one trigger per keystroke.
    """

    def __init__(
        self,
        commands: Sequence[CommandEntry],
        index: SymbolIndex,
        popup_factory: PopupFactory,
    ) -> None:
        self._commands = tuple(commands)
        self._index = index
        self._popup_factory = popup_factory
        self._popups: dict[PopupKind, SuggestionPopup] = {}

    def command_suggestions(self) -> list[Suggestion]:
        return [
            Suggestion(
                key=command.name,
                payload=command.resolved_text,
                description=command.resolved_text,
                icon_key=command.icon_key,
            )
            for command in self._commands
        ]

    @staticmethod
    def reference_suggestions(snapshot: IndexSnapshot | None) -> list[Suggestion]:
        if not snapshot:
            return []
        return [
            Suggestion(
                key=entry.display_key,
                payload=entry.source_path,
                description=entry.description,
                icon_key=entry.icon_key,
            )
            for entry in snapshot
        ]

    def is_open(self, kind: PopupKind) -> bool:
        popup = self._popups.get(kind)
        return popup is not None and popup.is_active

    def handle_text_entered(self, text: str) -> SuggestionPopup | None:
        """React to text that has just been inserted; returns the popup opened, if any."""

        if text == COMMAND_TRIGGER:
            return self._open(PopupKind.COMMANDS, self.command_suggestions())
        if text == REFERENCE_TRIGGER:
            suggestions = self.reference_suggestions(self._index.current)
            if not suggestions:
                LOGGER.debug("Index is empty; reference popup suppressed")
                return None
            return self._open(PopupKind.REFERENCES, suggestions)
        return None

    def handle_text_entering(self, text: str) -> list[Suggestion]:
        """React to text about to be inserted.

        A first character that is not alphanumeric commits the highlighted
        suggestion of every open popup before the character lands in the text.
        """

        committed: list[Suggestion] = []
        if not text or text[0].isalnum():
            return committed
        for kind in PopupKind:
            popup = self._popups.get(kind)
            if popup is None or not popup.is_active:
                continue
            suggestion = popup.commit()
            if suggestion is not None:
                committed.append(suggestion)
        return committed

    def close_all(self) -> None:
        for popup in list(self._popups.values()):
            if popup.is_active:
                popup.close()
        self._popups.clear()

    def _open(self, kind: PopupKind, suggestions: Sequence[Suggestion]) -> SuggestionPopup:
        previous = self._popups.get(kind)
        if previous is not None and previous.is_active:
            previous.close()
        popup = self._popup_factory(kind)
        popup.open(suggestions)
        self._popups[kind] = popup
        return popup
