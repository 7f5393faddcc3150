"""Text preprocessing applied to outgoing requests and incoming increments."""

from __future__ import annotations

import re
from typing import Iterable

__all__ = ["minify_text", "remove_sequences", "split_option_list", "is_line_break"]

_HORIZONTAL_WS = re.compile(r"[ \t\f\v]+")


def minify_text(text: str) -> str:
    """Collapse redundant whitespace while keeping one statement per line."""

    lines = (_HORIZONTAL_WS.sub(" ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def remove_sequences(text: str, sequences: Iterable[str]) -> str:
    """Remove every literal occurrence of each sequence, in the given order."""

    for sequence in sequences:
        if sequence:
            text = text.replace(sequence, "")
    return text


def split_option_list(value: str | Iterable[str] | None) -> list[str]:
    """Split a comma separated option value, dropping empty entries."""

    if value is None:
        return []
    if isinstance(value, str):
        parts = value.split(",")
    else:
        parts = list(value)
    return [part for part in parts if part]


def is_line_break(text: str) -> bool:
    """Return ``True`` when ``text`` is non-empty and holds nothing but line breaks."""

    return bool(text) and not text.strip("\r\n")
