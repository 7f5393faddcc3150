"""Request commands, placeholder resolution and suggestion popups."""

from .commands import COMMAND_NAMES, CommandEntry, build_command_set
from .engine import PopupKind, Suggestion, SuggestionEngine, SuggestionPopup
from .resolver import COMMAND_TRIGGER, REFERENCE_TRIGGER, PlaceholderResolver

__all__ = [
    "COMMAND_NAMES",
    "COMMAND_TRIGGER",
    "REFERENCE_TRIGGER",
    "CommandEntry",
    "PlaceholderResolver",
    "PopupKind",
    "Suggestion",
    "SuggestionEngine",
    "SuggestionPopup",
    "build_command_set",
]
