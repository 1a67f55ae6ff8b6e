"""Writable property source backed by a flat ``key=value`` text file."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple, Union

from ..core.transaction import AbstractMutablePropertySource
from ..core.types import PropertyEntry, TransactionContext

logger = logging.getLogger(__name__)

_ESCAPES = {"t": "\t", "n": "\n", "r": "\r", "f": "\f"}


def unescape(text: str) -> str:
    """Resolve backslash escapes, including ``\\uXXXX``."""
    out: List[str] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch != "\\" or i + 1 >= len(text):
            out.append(ch)
            i += 1
            continue
        nxt = text[i + 1]
        if nxt == "u" and i + 6 <= len(text):
            try:
                out.append(chr(int(text[i + 2:i + 6], 16)))
                i += 6
                continue
            except ValueError:
                pass
        out.append(_ESCAPES.get(nxt, nxt))
        i += 2
    return "".join(out)


def escape(text: str, is_key: bool = False) -> str:
    """Escape a key or value for writing."""
    out: List[str] = []
    for i, ch in enumerate(text):
        if ch == "\\":
            out.append("\\\\")
        elif ch == "\t":
            out.append("\\t")
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\f":
            out.append("\\f")
        elif ch in "=:#!" and (is_key or i == 0):
            out.append("\\" + ch)
        elif ch == " " and (is_key or i == 0):
            out.append("\\ ")
        else:
            out.append(ch)
    return "".join(out)


def _logical_lines(text: str) -> List[Tuple[int, str]]:
    """Join continuation lines; yields (line number, logical line)."""
    lines: List[Tuple[int, str]] = []
    buffer: Optional[str] = None
    start = 0
    for line_num, raw in enumerate(text.splitlines(), 1):
        line = raw.lstrip() if buffer is not None else raw
        if buffer is None:
            stripped = line.lstrip()
            if not stripped or stripped[0] in "#!":
                continue
            start = line_num
            line = stripped
        trailing = len(line) - len(line.rstrip("\\"))
        if trailing % 2 == 1:
            buffer = (buffer or "") + line[:-1]
            continue
        lines.append((start, (buffer or "") + line))
        buffer = None
    if buffer is not None:
        lines.append((start, buffer))
    return lines


def _split_line(line: str) -> Tuple[str, str]:
    i = 0
    while i < len(line):
        ch = line[i]
        if ch == "\\":
            i += 2
            continue
        if ch in "=:" or ch.isspace():
            break
        i += 1
    key = line[:i]
    rest = line[i:].lstrip(" \t\f")
    if rest[:1] in ("=", ":"):
        rest = rest[1:].lstrip(" \t\f")
    return unescape(key), unescape(rest)


def parse_properties(text: str) -> Dict[str, Tuple[str, int]]:
    """Parse properties text into ``{key: (value, line number)}``.

    Blank lines and lines starting with ``#`` or ``!`` are ignored. Keys and
    values are separated by ``=``, ``:`` or whitespace; a trailing backslash
    continues the logical line.
    """
    result: Dict[str, Tuple[str, int]] = {}
    for line_num, line in _logical_lines(text):
        key, value = _split_line(line)
        result[key] = (value, line_num)
    return result


def format_properties(properties: Mapping[str, str], header: Optional[str] = None) -> str:
    lines = []
    if header:
        lines.append(f"# {header}")
    for key in sorted(properties):
        lines.append(f"{escape(key, is_key=True)}={escape(properties[key])}")
    return "\n".join(lines) + "\n"


class PropertiesFilePropertySource(AbstractMutablePropertySource):
    """Flat ``key=value`` UTF-8 file, rewritten whole on every commit.

    Each entry carries the line it was read from as ``line`` metadata.
    ``_<key>.<meta>`` lines are stored like any other key and written back.

    Args:
        path: File location. A missing file reads as empty and is created on
            the first commit.
        ordinal: Default priority.
        name: Source name, ``properties:<file name>`` by default.
    """

    HEADER = "Written by strata on {timestamp}"

    def __init__(
        self,
        path: Union[str, Path],
        ordinal: int = 100,
        name: Optional[str] = None,
        **kwargs,
    ):
        self.path = Path(path)
        super().__init__(name or f"properties:{self.path.name}", ordinal, **kwargs)
        self._cache: Optional[Dict[str, Tuple[str, int]]] = None
        self._values: Dict[str, str] = {}
        self._cache_lock = threading.Lock()

    def _entries(self) -> Dict[str, Tuple[str, int]]:
        cache = self._cache
        if cache is None:
            cache = self.reload()
        return cache

    def reload(self) -> Dict[str, Tuple[str, int]]:
        """Re-read the file, replacing the cached content."""
        if not self.path.exists():
            entries: Dict[str, Tuple[str, int]] = {}
        else:
            with open(self.path, "r", encoding="utf-8") as f:
                entries = parse_properties(f.read())
        values = {k: v for k, (v, _) in entries.items()}
        with self._cache_lock:
            self._cache = entries
            self._values = values
        logger.debug("Loaded %d properties from %s", len(entries), self.path)
        return entries

    def properties(self) -> Mapping[str, str]:
        if self._cache is None:
            self.reload()
        return MappingProxyType(self._values)

    def get(self, key: str) -> Optional[PropertyEntry]:
        entry = super().get(key)
        if entry is None:
            return None
        line = self._entries().get(self._raw_key(key))
        if line is None:
            return entry
        return replace(entry, metadata={**entry.metadata, "line": str(line[1])})

    def get_all(self) -> Dict[str, PropertyEntry]:
        lines = self._entries()
        result = super().get_all()
        for key, entry in result.items():
            line = lines.get(self._raw_key(key))
            if line is not None:
                result[key] = replace(entry, metadata={**entry.metadata, "line": str(line[1])})
        return result

    def commit_internal(self, transaction: TransactionContext) -> None:
        current = dict(self.reload())
        merged = {k: v for k, (v, _) in current.items()}
        for key in transaction.removed_properties:
            merged.pop(key, None)
        merged.update(transaction.added_properties)
        header = self.HEADER.format(timestamp=datetime.now(timezone.utc).isoformat())
        text = format_properties(merged, header)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        self.reload()
