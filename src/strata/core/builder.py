"""Fluent builder staging the parts of a resolution context."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .combination import DEFAULT_OVERRIDING_POLICY, CombinationPolicy
from .context import ResolutionContext
from .conversion import Converter
from .converters import default_converters
from .exceptions import ConfigurationError
from .filters import PropertyFilter
from .ordinal import ORDINAL_KEY, source_sort_key
from .source import PropertySource
from .types import TypeDescriptor, as_descriptor

logger = logging.getLogger(__name__)

SourceRef = Union[PropertySource, str]


class ContextBuilder:
    """Mutable staging area for a ResolutionContext.

    Staged sources are kept from highest to lowest priority. New sources are
    inserted at the position their ordinal gives them; the priority
    operations move single sources explicitly and ``build()`` takes the
    staged order as is. Once built, every mutator raises ConfigurationError.

    Example:
        >>> ctx = (ContextBuilder()
        ...        .add_default_property_converters()
        ...        .add_property_sources(MapPropertySource("defaults", {"a": "1"}))
        ...        .build())
    """

    def __init__(
        self,
        context: Optional[ResolutionContext] = None,
        ordinal_key: str = ORDINAL_KEY,
    ):
        self._sources: List[PropertySource] = []
        self._filters: List[PropertyFilter] = []
        self._converters: Dict[TypeDescriptor, List[Converter]] = {}
        self._policy: CombinationPolicy = DEFAULT_OVERRIDING_POLICY
        self._ordinal_key = ordinal_key
        self._built = False
        if context is not None:
            self.with_context(context)

    def _check_not_built(self) -> None:
        if self._built:
            raise ConfigurationError("Context already built, create a new builder")

    # ---- Sources ----
    @property
    def property_sources(self) -> Tuple[PropertySource, ...]:
        return tuple(self._sources)

    def get_property_source(self, name: str) -> Optional[PropertySource]:
        for source in self._sources:
            if source.name == name:
                return source
        return None

    def add_property_sources(self, *sources: PropertySource) -> "ContextBuilder":
        """Stage sources; a source whose name is already staged is ignored."""
        self._check_not_built()
        for source in sources:
            if self.get_property_source(source.name) is not None:
                logger.debug("Property source %s already registered, ignored", source.name)
                continue
            key = source_sort_key(source, self._ordinal_key)
            index = len(self._sources)
            for i, staged in enumerate(self._sources):
                if key < source_sort_key(staged, self._ordinal_key):
                    index = i
                    break
            self._sources.insert(index, source)
        return self

    def remove_property_sources(self, *sources: SourceRef) -> "ContextBuilder":
        """Unstage sources given as instances or names; unknown ones are ignored."""
        self._check_not_built()
        names = {s if isinstance(s, str) else s.name for s in sources}
        self._sources = [s for s in self._sources if s.name not in names]
        return self

    def add_default_property_sources(self, args: Optional[Sequence[str]] = None) -> "ContextBuilder":
        """Stage the process environment and command line arguments.

        Args:
            args: Command line arguments, ``sys.argv[1:]`` by default.
        """
        from ..sources import CLIPropertySource, EnvironmentPropertySource

        return self.add_property_sources(
            EnvironmentPropertySource(), CLIPropertySource(args)
        )

    def sort_property_sources(
        self, key: Optional[Callable[[PropertySource], Any]] = None
    ) -> "ContextBuilder":
        """Re-sort staged sources, by ordinal and name unless ``key`` is given."""
        self._check_not_built()
        self._sources.sort(key=key or (lambda s: source_sort_key(s, self._ordinal_key)))
        return self

    def _index_of(self, source: SourceRef) -> int:
        name = source if isinstance(source, str) else source.name
        for i, staged in enumerate(self._sources):
            if staged.name == name:
                return i
        raise ConfigurationError(f"Property source not registered: {name}")

    def increase_priority(self, source: SourceRef) -> "ContextBuilder":
        self._check_not_built()
        i = self._index_of(source)
        if i > 0:
            self._sources[i - 1], self._sources[i] = self._sources[i], self._sources[i - 1]
        return self

    def decrease_priority(self, source: SourceRef) -> "ContextBuilder":
        self._check_not_built()
        i = self._index_of(source)
        if i < len(self._sources) - 1:
            self._sources[i + 1], self._sources[i] = self._sources[i], self._sources[i + 1]
        return self

    def highest_priority(self, source: SourceRef) -> "ContextBuilder":
        self._check_not_built()
        self._sources.insert(0, self._sources.pop(self._index_of(source)))
        return self

    def lowest_priority(self, source: SourceRef) -> "ContextBuilder":
        self._check_not_built()
        self._sources.append(self._sources.pop(self._index_of(source)))
        return self

    # ---- Filters ----
    @property
    def property_filters(self) -> Tuple[PropertyFilter, ...]:
        return tuple(self._filters)

    def add_property_filters(self, *filters: PropertyFilter) -> "ContextBuilder":
        self._check_not_built()
        for flt in filters:
            if flt not in self._filters:
                self._filters.append(flt)
        return self

    def remove_property_filters(self, *filters: PropertyFilter) -> "ContextBuilder":
        self._check_not_built()
        self._filters = [f for f in self._filters if f not in filters]
        return self

    # ---- Converters ----
    @property
    def property_converters(self) -> Dict[TypeDescriptor, Tuple[Converter, ...]]:
        return {t: tuple(c) for t, c in self._converters.items()}

    def add_property_converters(self, target: Any, *converters: Converter) -> "ContextBuilder":
        """Append converters to the chain of ``target``, ignoring duplicates."""
        self._check_not_built()
        chain = self._converters.setdefault(as_descriptor(target), [])
        for converter in converters:
            if converter in chain:
                logger.warning("Converter ignored, already registered: %r", converter)
                continue
            chain.append(converter)
        return self

    def remove_property_converters(self, target: Any, *converters: Converter) -> "ContextBuilder":
        """Remove converters of ``target``, or its whole chain when none are given."""
        self._check_not_built()
        descriptor = as_descriptor(target)
        if not converters:
            self._converters.pop(descriptor, None)
        elif descriptor in self._converters:
            self._converters[descriptor] = [
                c for c in self._converters[descriptor] if c not in converters
            ]
        return self

    def add_default_property_converters(self) -> "ContextBuilder":
        for target, converters in default_converters().items():
            self.add_property_converters(target, *converters)
        return self

    # ---- Policy ----
    @property
    def combination_policy(self) -> CombinationPolicy:
        return self._policy

    def set_combination_policy(self, policy: CombinationPolicy) -> "ContextBuilder":
        self._check_not_built()
        if policy is None:
            raise ConfigurationError("Combination policy must not be None")
        self._policy = policy
        return self

    # ---- Seeding and build ----
    def with_context(self, context: ResolutionContext) -> "ContextBuilder":
        """Stage everything ``context`` holds, keeping its source order."""
        self._check_not_built()
        for source in context.property_sources:
            if self.get_property_source(source.name) is None:
                self._sources.append(source)
        self.add_property_filters(*context.property_filters)
        for target, converters in context.property_converters.items():
            self.add_property_converters(target, *converters)
        self._policy = context.combination_policy
        return self

    def build(self) -> ResolutionContext:
        """Freeze the staged parts into a ResolutionContext.

        Raises:
            ConfigurationError: If this builder was already built.
        """
        self._check_not_built()
        self._built = True
        return ResolutionContext(
            sources=list(self._sources),
            converters={t: list(c) for t, c in self._converters.items()},
            filters=list(self._filters),
            policy=self._policy,
            ordinal_key=self._ordinal_key,
            ordered=True,
        )

    def __repr__(self) -> str:
        names = ", ".join(s.name for s in self._sources)
        return f"ContextBuilder(sources=[{names}], built={self._built})"
