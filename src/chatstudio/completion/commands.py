"""The fixed set of request commands offered after the command trigger."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

__all__ = ["CommandEntry", "COMMAND_NAMES", "DEFAULT_COMMAND_TEXTS", "build_command_set"]


@dataclass(slots=True, frozen=True)
class CommandEntry:
    name: str
    resolved_text: str
    icon_key: str


# Registration order is the order shown in the popup.
COMMAND_NAMES: tuple[str, ...] = (
    "Complete",
    "Add_Tests",
    "Find_Bugs",
    "Optimize",
    "Explain",
    "Add_Comments",
    "Add_Summary",
    "Translate",
    "Custom_Before",
    "Custom_After",
    "Custom_Replace",
)

DEFAULT_COMMAND_TEXTS: Mapping[str, str] = {
    "Complete": "Please complete the following code:",
    "Add_Tests": "Create unit tests for the following code:",
    "Find_Bugs": "Find bugs in the following code:",
    "Optimize": "Optimize the following code:",
    "Explain": "Explain the following code:",
    "Add_Comments": "Add a comment line above each relevant line of the following code:",
    "Add_Summary": "Write a documentation summary for the following code:",
    "Translate": "Translate the following text to English:",
    "Custom_Before": "",
    "Custom_After": "",
    "Custom_Replace": "",
}

_ICON_KEYS: Mapping[str, str] = {
    "Complete": "complete",
    "Add_Tests": "addTests",
    "Find_Bugs": "findBugs",
    "Optimize": "optimize",
    "Explain": "explain",
    "Add_Comments": "addComments",
    "Add_Summary": "addSummary",
    "Translate": "translate",
    "Custom_Before": "customBefore",
    "Custom_After": "customAfter",
    "Custom_Replace": "customReplace",
}


def build_command_set(overrides: Mapping[str, str] | None = None) -> Sequence[CommandEntry]:
    """Build the immutable command set, taking each command's text from ``overrides`` when configured."""

    configured = overrides or {}
    return tuple(
        CommandEntry(
            name=name,
            resolved_text=configured.get(name, DEFAULT_COMMAND_TEXTS[name]),
            icon_key=_ICON_KEYS[name],
        )
        for name in COMMAND_NAMES
    )
