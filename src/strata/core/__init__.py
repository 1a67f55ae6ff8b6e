from .builder import ContextBuilder
from .combination import (
    AdaptiveCombinationPolicy,
    CollectingPolicy,
    CombinationPolicy,
    OverridingPolicy,
    PolicyRegistry,
)
from .context import ResolutionContext
from .conversion import NO_VALUE, ConversionContext, ConverterRegistry
from .environment import Environment
from .exceptions import (
    BackendCommitFailure,
    ConfigurationError,
    ConversionError,
    SourceFailure,
    StrataError,
)
from .filters import Filter, PropertyFilter, ValueFilter
from .mutable import (
    ApplyAllPolicy,
    ChangePropagationPolicy,
    MostSignificantOnlyPolicy,
    MutableConfiguration,
    NamePatternPolicy,
    ReadOnlyPolicy,
    SelectivePolicy,
    StoreResult,
)
from .ordinal import ORDINAL_KEY, ordinal_of
from .source import BasePropertySource, MapPropertySource, MutablePropertySource, PropertySource
from .transaction import AbstractMutablePropertySource
from .types import PropertyEntry, TransactionContext, TransactionState

__all__ = [
    "AbstractMutablePropertySource",
    "AdaptiveCombinationPolicy",
    "ApplyAllPolicy",
    "BackendCommitFailure",
    "BasePropertySource",
    "ChangePropagationPolicy",
    "CollectingPolicy",
    "CombinationPolicy",
    "ConfigurationError",
    "ContextBuilder",
    "ConversionContext",
    "ConversionError",
    "ConverterRegistry",
    "Environment",
    "Filter",
    "MapPropertySource",
    "MostSignificantOnlyPolicy",
    "MutableConfiguration",
    "MutablePropertySource",
    "NO_VALUE",
    "NamePatternPolicy",
    "ORDINAL_KEY",
    "OverridingPolicy",
    "PolicyRegistry",
    "PropertyEntry",
    "PropertyFilter",
    "PropertySource",
    "ReadOnlyPolicy",
    "ResolutionContext",
    "SelectivePolicy",
    "SourceFailure",
    "StoreResult",
    "StrataError",
    "TransactionContext",
    "TransactionState",
    "ValueFilter",
    "ordinal_of",
]
