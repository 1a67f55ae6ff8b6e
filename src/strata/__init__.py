"""Strata - Layered configuration resolution.

Merge prioritized property sources into an immutable resolution context,
convert raw values to typed ones and write changes back to mutable sources
in transactions.
"""

from .core.builder import ContextBuilder
from .core.context import ResolutionContext
from .core.environment import Environment
from .core.exceptions import ConfigurationError, ConversionError, StrataError
from .core.mutable import MutableConfiguration
from .core.source import MapPropertySource, PropertySource
from .core.types import (
    BOOL,
    BYTE,
    DECIMAL,
    DOUBLE,
    FLOAT,
    INT,
    LONG,
    SHORT,
    STRING,
    PropertyEntry,
    list_of,
    map_of,
    optional_of,
    set_of,
    tuple_of,
)

__all__ = [
    "BOOL",
    "BYTE",
    "DECIMAL",
    "DOUBLE",
    "FLOAT",
    "INT",
    "LONG",
    "SHORT",
    "STRING",
    "ConfigurationError",
    "ContextBuilder",
    "ConversionError",
    "Environment",
    "MapPropertySource",
    "MutableConfiguration",
    "PropertyEntry",
    "PropertySource",
    "ResolutionContext",
    "StrataError",
    "list_of",
    "map_of",
    "optional_of",
    "set_of",
    "tuple_of",
]
