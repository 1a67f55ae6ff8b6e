"""Type definitions for the Strata configuration system."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Set, Union


@dataclass(frozen=True)
class PropertyEntry:
    """A raw configuration value with its provenance.

    Attributes:
        key: Configuration key.
        value: Final string form of the value prior to conversion.
        source: Name of the source this value came from.
        metadata: Additional data about the value (line number, format...).
    """

    key: str
    value: Optional[str]
    source: str
    metadata: Mapping[str, str] = field(default_factory=dict)

    @staticmethod
    def of(key: str, value: Optional[str], source: str, **metadata: str) -> "PropertyEntry":
        return PropertyEntry(key=key, value=value, source=source, metadata=dict(metadata))

    def with_value(self, value: Optional[str]) -> "PropertyEntry":
        """Return a copy of this entry carrying another value."""
        return replace(self, value=value)


@dataclass(frozen=True)
class ConfigChange:
    """Represents a pending change to configuration.

    Attributes:
        op: Operation type ('set' or 'unset').
        key: Configuration key being changed.
        value: New value (None for unset operations).
    """

    op: str  # "set" | "unset"
    key: str
    value: Optional[str] = None


class TransactionState(Enum):
    NOT_STARTED = "not_started"
    STARTED = "started"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in (TransactionState.COMMITTED, TransactionState.ROLLED_BACK)


def new_transaction_id() -> str:
    return str(uuid.uuid4())


class TransactionContext:
    """Staged additions and removals of one transaction against one source.

    Additions and removals of the same key resolve by operation order: the
    last ``put`` or ``remove`` of a key wins.
    """

    def __init__(self, transaction_id: str):
        if not transaction_id:
            raise ValueError("transaction_id must not be empty")
        self.transaction_id = transaction_id
        self.started_at = datetime.now(timezone.utc)
        self.state = TransactionState.STARTED
        self._added: Dict[str, str] = {}
        self._removed: Set[str] = set()

    @property
    def added_properties(self) -> Dict[str, str]:
        return dict(self._added)

    @property
    def removed_properties(self) -> Set[str]:
        return set(self._removed)

    def put(self, key: str, value: str) -> None:
        self._removed.discard(key)
        self._added[key] = value

    def put_all(self, properties: Mapping[str, str]) -> None:
        for key, value in properties.items():
            self.put(key, value)

    def remove_all(self, keys) -> None:
        for key in keys:
            self._added.pop(key, None)
            self._removed.add(key)

    @property
    def is_empty(self) -> bool:
        return not self._added and not self._removed

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TransactionContext):
            return NotImplemented
        return self.transaction_id == other.transaction_id

    def __hash__(self) -> int:
        return hash(self.transaction_id)

    def __repr__(self) -> str:
        return (
            f"TransactionContext(transaction_id={self.transaction_id!r}, "
            f"state={self.state.name}, added={self._added!r}, "
            f"removed={sorted(self._removed)!r})"
        )


# ---- Target type descriptors ----

@dataclass(frozen=True)
class Scalar:
    """A plain target type such as ``int`` or ``bool``."""

    kind: str

    @property
    def shape(self) -> "TypeDescriptor":
        return self

    def __str__(self) -> str:
        return self.kind


@dataclass(frozen=True)
class Wrapper:
    """A parametrized single-argument type, e.g. optional-of-T or list-of-T."""

    kind: str
    inner: "TypeDescriptor"

    @property
    def shape(self) -> "TypeDescriptor":
        return Wrapper(self.kind, ANY)

    def __str__(self) -> str:
        return f"{self.kind}[{self.inner}]"


@dataclass(frozen=True)
class MapOf:
    """A mapping type with key and value descriptors."""

    key: "TypeDescriptor"
    value: "TypeDescriptor"

    @property
    def shape(self) -> "TypeDescriptor":
        return MapOf(ANY, ANY)

    def __str__(self) -> str:
        return f"map[{self.key}, {self.value}]"


TypeDescriptor = Union[Scalar, Wrapper, MapOf]

ANY = Scalar("any")
STRING = Scalar("string")
BOOL = Scalar("bool")
BYTE = Scalar("byte")
SHORT = Scalar("short")
INT = Scalar("int")
LONG = Scalar("long")
FLOAT = Scalar("float")
DOUBLE = Scalar("double")
DECIMAL = Scalar("decimal")

OPTIONAL = "optional"
LIST = "list"
SET = "set"
TUPLE = "tuple"

_PYTHON_TYPES: Dict[type, Scalar] = {
    str: STRING,
    bool: BOOL,
    int: LONG,
    float: DOUBLE,
    Decimal: DECIMAL,
}


def optional_of(inner: Any) -> Wrapper:
    return Wrapper(OPTIONAL, as_descriptor(inner))


def list_of(inner: Any) -> Wrapper:
    return Wrapper(LIST, as_descriptor(inner))


def set_of(inner: Any) -> Wrapper:
    return Wrapper(SET, as_descriptor(inner))


def tuple_of(inner: Any) -> Wrapper:
    return Wrapper(TUPLE, as_descriptor(inner))


def map_of(key: Any, value: Any) -> MapOf:
    return MapOf(as_descriptor(key), as_descriptor(value))


def as_descriptor(target: Any) -> TypeDescriptor:
    """Normalize a Python builtin type or a descriptor to a descriptor.

    Raises:
        TypeError: If ``target`` is neither a descriptor nor a known type.
    """
    if isinstance(target, (Scalar, Wrapper, MapOf)):
        return target
    if isinstance(target, type) and target in _PYTHON_TYPES:
        return _PYTHON_TYPES[target]
    raise TypeError(f"Unsupported target type: {target!r}")
