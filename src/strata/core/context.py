"""Immutable resolution context merging all registered sources."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .combination import DEFAULT_OVERRIDING_POLICY, CombinationPolicy, fold
from .conversion import NO_VALUE, ConversionContext, Converter, ConverterRegistry, formats_of
from .exceptions import ConversionError, SourceFailure
from .filters import PropertyFilter, apply_filters
from .ordinal import ORDINAL_KEY, ordinal_of, sort_sources
from .source import PropertySource
from .types import PropertyEntry, TypeDescriptor, as_descriptor

logger = logging.getLogger(__name__)


class _SourceView:
    """One source as seen by a single evaluation pass.

    Failures of the wrapped source are logged and read as "no value". When a
    snapshot is given, lookups are served from it instead of the source.
    """

    def __init__(
        self,
        source: PropertySource,
        snapshot: Optional[Mapping[str, PropertyEntry]] = None,
        ordinal_key: str = ORDINAL_KEY,
    ):
        self.source = source
        self.name = source.name
        self._snapshot = snapshot
        self._ordinal_key = ordinal_key
        self._ordinal: Optional[int] = None

    @property
    def ordinal(self) -> int:
        """Effective ordinal of the wrapped source, computed on first use."""
        if self._ordinal is None:
            self._ordinal = ordinal_of(self.source, self._ordinal_key)
        return self._ordinal

    def get(self, key: str) -> Optional[PropertyEntry]:
        if self._snapshot is not None:
            return self._snapshot.get(key)
        try:
            return self.source.get(key)
        except Exception as e:
            logger.warning("%s", SourceFailure(self.name, f"get({key!r})", e))
            return None

    def get_all(self) -> Dict[str, PropertyEntry]:
        if self._snapshot is not None:
            return dict(self._snapshot)
        return snapshot_of(self.source)

    def is_scannable(self) -> bool:
        if self._snapshot is not None:
            return True
        return _is_scannable(self.source)


def snapshot_of(source: PropertySource) -> Dict[str, PropertyEntry]:
    """Full snapshot of a source; a failing source yields an empty snapshot."""
    try:
        return dict(source.get_all())
    except Exception as e:
        logger.warning("%s", SourceFailure(source.name, "get_all()", e))
        return {}


def _is_scannable(source: PropertySource) -> bool:
    try:
        return bool(source.is_scannable())
    except Exception as e:
        logger.warning("%s", SourceFailure(source.name, "is_scannable()", e))
        return False


class ResolutionContext:
    """Frozen aggregate of sources, converters, filters and a combination policy.

    Sources are held from highest to lowest priority. Values are resolved by
    folding the sources weakest first through the combination policy, then
    passing the result through the filters in registration order.

    Instances never change after construction and may be shared between
    threads without coordination.
    """

    def __init__(
        self,
        sources: Iterable[PropertySource] = (),
        converters: Optional[Mapping[Any, Iterable[Converter]]] = None,
        filters: Iterable[PropertyFilter] = (),
        policy: Optional[CombinationPolicy] = None,
        *,
        ordinal_key: str = ORDINAL_KEY,
        ordered: bool = False,
    ):
        """Initialize a ResolutionContext.

        Args:
            sources: Property sources. Unless ``ordered`` is set they are
                sorted by descending ordinal, ties broken by name.
            converters: Converters per target type, in chain order.
            filters: Filters applied after merging, in order.
            policy: Combination policy; defaults to overriding.
            ordinal_key: Reserved key a source may report its ordinal under.
            ordered: Take ``sources`` as already ordered by priority.
        """
        source_list = list(sources) if ordered else sort_sources(sources, ordinal_key)
        self._sources: Tuple[PropertySource, ...] = tuple(source_list)
        self._ascending: Tuple[PropertySource, ...] = tuple(reversed(source_list))
        self._filters: Tuple[PropertyFilter, ...] = tuple(filters)
        self._policy: CombinationPolicy = policy or DEFAULT_OVERRIDING_POLICY
        self._ordinal_key = ordinal_key
        self._registry = ConverterRegistry(converters)
        logger.info(
            "Resolution context with %d property sources, %d filters, %d converter targets, policy %r",
            len(self._sources),
            len(self._filters),
            len(self._registry.as_mapping()),
            self._policy,
        )

    # ---- Structure ----
    @property
    def property_sources(self) -> Tuple[PropertySource, ...]:
        return self._sources

    def get_property_source(self, name: str) -> Optional[PropertySource]:
        for source in self._sources:
            if source.name == name:
                return source
        return None

    @property
    def property_filters(self) -> Tuple[PropertyFilter, ...]:
        return self._filters

    @property
    def combination_policy(self) -> CombinationPolicy:
        return self._policy

    @property
    def ordinal_key(self) -> str:
        return self._ordinal_key

    @property
    def property_converters(self) -> Dict[TypeDescriptor, Tuple[Converter, ...]]:
        return self._registry.as_mapping()

    def converters_for(self, target: Any) -> List[Converter]:
        return self._registry.converters_for(target)

    # ---- Raw access ----
    def _resolve(self, key: str, views: Iterable[_SourceView]) -> Optional[PropertyEntry]:
        entry = fold(key, views, self._policy)
        if entry is None or entry.value is None:
            return None
        entry = apply_filters(entry, self._filters)
        if entry is None or entry.value is None:
            return None
        return entry

    def get_entry(self, key: str) -> Optional[PropertyEntry]:
        """Resolve ``key`` across all sources, with provenance.

        Returns:
            The resolved entry, or None if no source defines the key or a
            filter vetoed it.
        """
        if key is None:
            raise ValueError("Key must not be None")
        views = [_SourceView(s, ordinal_key=self._ordinal_key) for s in self._ascending]
        return self._resolve(key, views)

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        entry = self.get_entry(key)
        if entry is None:
            return default
        return entry.value

    def get_all_entries(self) -> Dict[str, PropertyEntry]:
        """Resolve every key of every scannable source.

        Non-scannable sources still take part in the fold of each key through
        point lookups, but never contribute keys of their own.
        """
        views: List[_SourceView] = []
        keys = set()
        for source in self._ascending:
            if _is_scannable(source):
                snapshot = snapshot_of(source)
                keys.update(snapshot)
                views.append(_SourceView(source, snapshot, self._ordinal_key))
            else:
                views.append(_SourceView(source, ordinal_key=self._ordinal_key))
        result: Dict[str, PropertyEntry] = {}
        for key in sorted(keys):
            entry = self._resolve(key, views)
            if entry is not None:
                result[key] = entry
        return result

    def get_all(self) -> Dict[str, str]:
        return {k: e.value for k, e in self.get_all_entries().items()}

    # ---- Typed access ----
    def convert(self, raw: str, target: Any, key: Optional[str] = None) -> Any:
        """Run the conversion chain of ``target`` on ``raw``.

        Returns:
            The converted value, or None if no converter succeeded.
        """
        return self._registry.convert(raw, target, key=key, context=self)

    def get_typed(self, key: str, target: Any, default: Any = None) -> Any:
        """Resolve ``key`` and convert it to ``target``.

        Args:
            key: Configuration key.
            target: Type descriptor or Python type (``int``, ``bool``...).
            default: Returned when the key is absent.

        Raises:
            ConversionError: If the value is present but no converter could
                convert it.
            ConfigurationError: If no converter is registered for ``target``.
        """
        descriptor = as_descriptor(target)
        raw = self.get(key)
        if raw is None:
            return default
        ctx = ConversionContext(target=descriptor, registry=self._registry, key=key, context=self)
        result = self._registry.run_chain(raw, ctx)
        if result is None:
            formats = formats_of(self._registry.converters_for(descriptor))
            raise ConversionError(key, descriptor, raw, formats)
        if result is NO_VALUE:
            return default
        return result

    # ---- Diagnostics ----
    def describe(self) -> str:
        """Render sources, filters, converters and policy as a text table."""
        lines = ["Property Sources", "----------------"]
        if not self._sources:
            lines.append("No property sources loaded.")
        else:
            lines.append(
                f"{'NAME':<40} {'TYPE':<28} {'ORDINAL':>8} {'SCANNABLE':<10} {'SIZE':>6} STATE"
            )
            for source in self._sources:
                scannable = _is_scannable(source)
                size = str(len(snapshot_of(source))) if scannable else "-"
                state = "OK"
                try:
                    source.get_all() if scannable else source.get(self._ordinal_key)
                except Exception as e:
                    state = f"ERROR: {e}"
                lines.append(
                    f"{_fit(source.name, 40)} {_fit(type(source).__name__, 28)} "
                    f"{ordinal_of(source, self._ordinal_key):>8} {str(scannable):<10} {size:>6} {state}"
                )
        lines += ["", "Property Filters", "----------------"]
        if not self._filters:
            lines.append("No property filters loaded.")
        for flt in self._filters:
            lines.append(_fit(repr(flt).replace("\n", " "), 80))
        lines += ["", "Property Converters", "-------------------"]
        for target, convs in sorted(self._registry.as_mapping().items(), key=lambda i: str(i[0])):
            for converter in convs:
                formats = ", ".join(formats_of([converter]))
                lines.append(f"{_fit(str(target), 28)} {_fit(repr(converter), 28)} {formats}".rstrip())
        lines += ["", f"Combination Policy: {self._policy!r}"]
        return "\n".join(lines)

    def __repr__(self) -> str:
        names = ", ".join(s.name for s in self._sources)
        return f"ResolutionContext(sources=[{names}], policy={self._policy!r})"


def _fit(text: str, width: int) -> str:
    if len(text) <= width:
        return text.ljust(width)
    return text[: width - 1] + "~"
