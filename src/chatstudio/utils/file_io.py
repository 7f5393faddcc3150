"""Reading workspace sources and writing configuration files."""

from __future__ import annotations

import codecs
import contextlib
import locale
import os
import tempfile
from pathlib import Path

__all__ = ["read_text", "decode_source", "write_text"]

# Longest marks first: the UTF-32 LE mark begins with the UTF-16 LE one.
_BYTE_ORDER_MARKS: tuple[tuple[bytes, str], ...] = (
    (codecs.BOM_UTF32_LE, "utf-32-le"),
    (codecs.BOM_UTF32_BE, "utf-32-be"),
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)


def read_text(
    path: Path | str,
    *,
    encoding: str | None = None,
    errors: str = "strict",
    normalize_newlines: bool = False,
) -> str:
    """Read a source file as it is on disk.

    Line endings are kept unless ``normalize_newlines`` is set, so inserted
    file contents and declaration spans match the original bytes.
    """

    raw = Path(path).read_bytes()
    text = raw.decode(encoding, errors=errors) if encoding else decode_source(raw, errors=errors)
    if normalize_newlines and "\r" in text:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
    return text


def decode_source(raw: bytes, *, errors: str = "strict") -> str:
    """Decode ``raw`` using its byte order mark, else the first encoding that fits.

    Files without a mark are tried as UTF-8, then in the locale's preferred
    encoding; latin-1 accepts anything that is left.
    """

    for mark, codec in _BYTE_ORDER_MARKS:
        if raw.startswith(mark):
            return raw[len(mark) :].decode(codec, errors=errors)
    candidates = dict.fromkeys(("utf-8", locale.getpreferredencoding(False) or "utf-8"))
    for codec in candidates:
        try:
            return raw.decode(codec)
        except UnicodeDecodeError:
            continue
    return raw.decode("latin-1", errors=errors)


def write_text(path: Path | str, content: str, *, encoding: str = "utf-8") -> Path:
    """Replace ``path`` with ``content`` in one step, creating parent directories."""

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    descriptor, tmp_name = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(descriptor, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except Exception:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise
    return target
