"""Policies deciding how values of successive sources are merged."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, Optional, Protocol, runtime_checkable

from .exceptions import ConfigurationError
from .source import PropertySource
from .types import PropertyEntry

logger = logging.getLogger(__name__)


@runtime_checkable
class CombinationPolicy(Protocol):
    """Merges the value of the next source into the accumulated value.

    ``collect`` is called once per source, weakest source first, so the final
    call is made with the strongest source.
    """

    def collect(
        self,
        current: Optional[PropertyEntry],
        key: str,
        source: PropertySource,
    ) -> Optional[PropertyEntry]:
        ...


class OverridingPolicy:
    """A source defining the key replaces the accumulated value.

    Args:
        allow_removal: When True, an entry whose value is None removes the
            accumulated value. By default such entries are ignored and the
            policy never deletes.
    """

    def __init__(self, allow_removal: bool = False):
        self.allow_removal = allow_removal

    def collect(
        self,
        current: Optional[PropertyEntry],
        key: str,
        source: PropertySource,
    ) -> Optional[PropertyEntry]:
        entry = source.get(key)
        if entry is None:
            return current
        if entry.value is None and not self.allow_removal:
            return current
        if entry.value is None:
            return None
        return entry

    def __repr__(self) -> str:
        return f"OverridingPolicy(allow_removal={self.allow_removal})"


DEFAULT_OVERRIDING_POLICY = OverridingPolicy()


class CollectingPolicy:
    """Joins the values of all sources defining the key.

    A source may choose the separator joining its value to the ones before
    with an ``_<key>.item-separator`` entry.
    """

    def __init__(self, separator: str = ","):
        self.separator = separator

    def collect(
        self,
        current: Optional[PropertyEntry],
        key: str,
        source: PropertySource,
    ) -> Optional[PropertyEntry]:
        entry = source.get(key)
        if entry is None or entry.value is None:
            return current
        if current is None or current.value is None:
            return entry
        separator = self.separator
        custom = source.get(f"_{key}.item-separator")
        if custom is not None and custom.value:
            separator = custom.value
        metadata = dict(current.metadata)
        metadata.update(entry.metadata)
        return PropertyEntry(
            key=key,
            value=current.value + separator + entry.value,
            source=entry.source,
            metadata=metadata,
        )

    def __repr__(self) -> str:
        return f"CollectingPolicy(separator={self.separator!r})"


class PolicyRegistry:
    """Named combination policies available to adaptive resolution.

    Names are case-insensitive. ``override`` and ``collect`` are always
    registered.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._policies: Dict[str, CombinationPolicy] = {
            "override": DEFAULT_OVERRIDING_POLICY,
            "collect": CollectingPolicy(),
        }

    def register(self, name: str, policy: CombinationPolicy) -> None:
        with self._lock:
            policies = dict(self._policies)
            policies[name.lower()] = policy
            self._policies = policies

    def lookup(self, name: str) -> Optional[CombinationPolicy]:
        return self._policies.get(name.strip().lower())

    def names(self):
        return sorted(self._policies)


class AdaptiveCombinationPolicy:
    """Chooses the combination policy per key and per source.

    The source being folded may name the policy combining its value with the
    weaker sources' values in an ``_<key>.combination-policy`` entry. Keys
    starting with ``_`` are always overridden.

    Args:
        registry: Named policies to choose from.
        strict: When True an unknown policy name raises ConfigurationError;
            otherwise the error is logged and the overriding policy is used.
    """

    def __init__(self, registry: Optional[PolicyRegistry] = None, strict: bool = False):
        self.registry = registry or PolicyRegistry()
        self.strict = strict

    def _policy_for(self, key: str, source: PropertySource) -> CombinationPolicy:
        if key.startswith("_"):
            return DEFAULT_OVERRIDING_POLICY
        selector = source.get(f"_{key}.combination-policy")
        if selector is None or not selector.value:
            return DEFAULT_OVERRIDING_POLICY
        policy = self.registry.lookup(selector.value)
        if policy is not None:
            logger.debug(
                "Using combination policy %r for key %s from %s",
                selector.value,
                key,
                source.name,
            )
            return policy
        if self.strict:
            raise ConfigurationError(
                f"Unknown combination policy {selector.value!r} for key {key!r} "
                f"in property source {source.name!r}"
            )
        logger.error(
            "Unknown combination policy %r for key %s in %s, using overriding policy",
            selector.value,
            key,
            source.name,
        )
        return DEFAULT_OVERRIDING_POLICY

    def collect(
        self,
        current: Optional[PropertyEntry],
        key: str,
        source: PropertySource,
    ) -> Optional[PropertyEntry]:
        return self._policy_for(key, source).collect(current, key, source)

    def __repr__(self) -> str:
        return f"AdaptiveCombinationPolicy(policies={self.registry.names()}, strict={self.strict})"


def fold(
    key: str,
    sources_ascending: Iterable[PropertySource],
    policy: CombinationPolicy,
) -> Optional[PropertyEntry]:
    """Fold the values of ``key`` over sources, weakest source first."""
    current: Optional[PropertyEntry] = None
    for source in sources_ascending:
        current = policy.collect(current, key, source)
    return current
