"""Effective priority of property sources and their total order."""

from __future__ import annotations

import logging
from typing import Iterable, List, Tuple

from .source import PropertySource

logger = logging.getLogger(__name__)

# A source may report its own ordinal under this key.
ORDINAL_KEY = "_source.ordinal"


def ordinal_of(source: PropertySource, ordinal_key: str = ORDINAL_KEY) -> int:
    """Compute the effective ordinal of a source.

    Precedence: an explicitly assigned ordinal, then an integer stored under
    ``ordinal_key`` in the source itself, then the source's default ordinal.
    A reserved value that does not parse as an integer is logged and ignored.
    """
    explicit = getattr(source, "explicit_ordinal", None)
    if explicit is not None:
        return int(explicit)

    try:
        entry = source.get(ordinal_key)
    except Exception as e:
        logger.warning(
            "Failed to read %s from property source %s: %s", ordinal_key, source.name, e
        )
        entry = None
    if entry is not None and entry.value is not None:
        try:
            return int(entry.value.strip())
        except ValueError:
            logger.warning(
                "Configured ordinal of property source %s is not an integer: %r",
                source.name,
                entry.value,
            )

    return int(getattr(source, "ordinal", 0) or 0)


def source_sort_key(source: PropertySource, ordinal_key: str = ORDINAL_KEY) -> Tuple[int, str]:
    """Sort key for descending ordinal, ties broken by ascending name."""
    return -ordinal_of(source, ordinal_key), source.name


def sort_sources(
    sources: Iterable[PropertySource], ordinal_key: str = ORDINAL_KEY
) -> List[PropertySource]:
    """Return sources ordered from highest to lowest priority."""
    return sorted(sources, key=lambda s: source_sort_key(s, ordinal_key))
