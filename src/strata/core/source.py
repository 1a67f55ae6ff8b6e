"""Source protocol and base implementations for property sources."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Protocol, runtime_checkable

from .types import PropertyEntry, TransactionContext

logger = logging.getLogger(__name__)


@runtime_checkable
class PropertySource(Protocol):
    """Protocol defining the interface for property sources.

    All sources must implement this protocol to take part in resolution.
    ``name`` is unique within one resolution context; ``ordinal`` is the
    default priority, higher values override lower ones.
    """

    name: str
    ordinal: int

    def get(self, key: str) -> Optional[PropertyEntry]:
        """Get a single entry by key.

        Args:
            key: Configuration key to retrieve.

        Returns:
            Entry if key exists, None otherwise.
        """
        ...

    def get_all(self) -> Dict[str, PropertyEntry]:
        """Get a snapshot of all entries of this source.

        Returns:
            Dictionary of key to entry.
        """
        ...

    def is_scannable(self) -> bool:
        """Whether this source takes part in full-snapshot enumeration."""
        ...


@runtime_checkable
class MutablePropertySource(PropertySource, Protocol):
    """A property source whose content can be changed in transactions."""

    def is_writable(self, key_pattern: str) -> bool:
        ...

    def is_removable(self, key_pattern: str) -> bool:
        ...

    def start_transaction(self, transaction_id: str) -> None:
        ...

    def put(self, transaction_id: str, key: str, value: str) -> "MutablePropertySource":
        ...

    def put_all(self, transaction_id: str, properties: Mapping[str, str]) -> "MutablePropertySource":
        ...

    def remove(self, transaction_id: str, *keys: str) -> "MutablePropertySource":
        ...

    def commit_transaction(self, transaction_id: str) -> None:
        ...

    def rollback_transaction(self, transaction_id: str) -> None:
        ...

    def get_transaction(self, transaction_id: str) -> Optional["TransactionContext"]:
        ...


def metadata_for(key: str, properties: Mapping[str, str]) -> Dict[str, str]:
    """Collect the ``_<key>.<meta>`` entries describing ``key``."""
    start = f"_{key}."
    return {
        k[len(start):]: v
        for k, v in properties.items()
        if k.startswith(start) and len(k) > len(start)
    }


def metadata_index(properties: Mapping[str, str]) -> Dict[str, Dict[str, str]]:
    """Group all ``_<key>.<meta>`` entries by the key they describe.

    Same result as calling ``metadata_for`` for every key, in one pass. An
    entry such as ``_a.b.unit`` describes both ``a`` and ``a.b``.
    """
    index: Dict[str, Dict[str, str]] = {}
    for k, v in properties.items():
        if not k.startswith("_"):
            continue
        rest = k[1:]
        dot = rest.find(".")
        while dot >= 0:
            if dot + 1 < len(rest):
                index.setdefault(rest[:dot], {})[rest[dot + 1:]] = v
            dot = rest.find(".", dot + 1)
    return index


class BasePropertySource(ABC):
    """Base class for property sources backed by a flat string map.

    Subclasses provide ``properties()``; lookups, metadata collection,
    prefixes and ordinal handling are implemented here.
    """

    def __init__(
        self,
        name: str,
        ordinal: int = 0,
        *,
        prefix: Optional[str] = None,
        scannable: bool = True,
    ):
        if not name:
            raise ValueError("Property source name must not be empty")
        self.name = name
        self.ordinal = ordinal
        self.prefix = prefix
        self.scannable = scannable
        self.explicit_ordinal: Optional[int] = None

    @abstractmethod
    def properties(self) -> Mapping[str, str]:
        """Raw key/value pairs of this source, without prefix."""

    def set_ordinal(self, ordinal: Optional[int]) -> None:
        """Assign an ordinal that takes precedence over any other setting."""
        self.explicit_ordinal = ordinal

    def _unprefixed(self, key: str) -> Optional[str]:
        if not self.prefix:
            return key
        if key.startswith(self.prefix):
            return key[len(self.prefix):]
        return None

    def get(self, key: str) -> Optional[PropertyEntry]:
        raw_key = self._unprefixed(key)
        if raw_key is None:
            return None
        props = self.properties()
        if raw_key not in props:
            return None
        return PropertyEntry(
            key=key,
            value=props[raw_key],
            source=self.name,
            metadata=metadata_for(raw_key, props),
        )

    def get_all(self) -> Dict[str, PropertyEntry]:
        props = self.properties()
        index = metadata_index(props)
        prefix = self.prefix or ""
        return {
            prefix + k: PropertyEntry(
                key=prefix + k,
                value=v,
                source=self.name,
                metadata=index.get(k, {}),
            )
            for k, v in props.items()
        }

    def is_scannable(self) -> bool:
        return self.scannable

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BasePropertySource):
            return NotImplemented
        return type(self) is type(other) and self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(name={self.name!r}, ordinal={self.ordinal}, "
            f"explicit_ordinal={self.explicit_ordinal}, prefix={self.prefix!r}, "
            f"scannable={self.scannable})"
        )


class MapPropertySource(BasePropertySource):
    """In-memory property source over a plain dictionary."""

    def __init__(
        self,
        name: str,
        data: Optional[Mapping[str, str]] = None,
        ordinal: int = 0,
        **kwargs,
    ):
        super().__init__(name, ordinal, **kwargs)
        self._data: Dict[str, str] = dict(data or {})

    def properties(self) -> Mapping[str, str]:
        return MappingProxyType(self._data)
