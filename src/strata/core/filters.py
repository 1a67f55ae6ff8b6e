"""Filters applied to resolved values before they are returned."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Pattern, Protocol, runtime_checkable

from .types import PropertyEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class PropertyFilter(Protocol):
    """Post-merge filter: may veto (return None) or transform a value."""

    def filter_property(self, entry: PropertyEntry) -> Optional[PropertyEntry]:
        ...


@dataclass(frozen=True)
class Filter:
    """Filter including/excluding configuration keys by regular expression.

    Attributes:
        include_regex: Keys not matching this pattern are vetoed.
        exclude_regex: Keys matching this pattern are vetoed.
    """

    include_regex: Optional[Pattern[str]] = None
    exclude_regex: Optional[Pattern[str]] = None

    @staticmethod
    def from_dict(d: Optional[Dict[str, Any]]) -> Optional["Filter"]:
        """Create a Filter from a dictionary specification.

        Args:
            d: Dictionary with ``include_regex`` and/or ``exclude_regex``.

        Returns:
            Filter instance or None if d is None/empty.
        """
        if not d:
            return None
        include = d.get("include_regex")
        exclude = d.get("exclude_regex")
        return Filter(
            include_regex=re.compile(include) if isinstance(include, str) else None,
            exclude_regex=re.compile(exclude) if isinstance(exclude, str) else None,
        )

    def filter_property(self, entry: PropertyEntry) -> Optional[PropertyEntry]:
        if should_include_key(entry.key, self):
            return entry
        return None


class ValueFilter:
    """Adapts a plain callable ``(entry) -> entry | None`` to a filter."""

    def __init__(self, func: Callable[[PropertyEntry], Optional[PropertyEntry]], name: Optional[str] = None):
        self.func = func
        self.name = name or getattr(func, "__name__", type(func).__name__)

    def filter_property(self, entry: PropertyEntry) -> Optional[PropertyEntry]:
        return self.func(entry)

    def __repr__(self) -> str:
        return f"ValueFilter({self.name})"


def should_include_key(key: str, flt: Optional[Filter]) -> bool:
    """Check if a key should be included based on filter.

    Args:
        key: Configuration key.
        flt: Filter to apply (None means include all).

    Returns:
        True if key should be included, False otherwise.
    """
    if flt is None:
        return True
    if flt.include_regex and not flt.include_regex.search(key):
        return False
    if flt.exclude_regex and flt.exclude_regex.search(key):
        return False
    return True


def apply_filters(
    entry: Optional[PropertyEntry],
    filters: Iterable[PropertyFilter],
) -> Optional[PropertyEntry]:
    """Run filters in registration order; a veto stops the chain."""
    filtered = entry
    for flt in filters:
        if filtered is None:
            break
        result = flt.filter_property(filtered)
        if result is None:
            logger.debug("Filter %r removed entry %s", flt, filtered.key)
        elif result.value != filtered.value:
            logger.debug("Filter %r changed entry %s", flt, filtered.key)
        filtered = result
    return filtered
