"""Writable view over a resolution context and change propagation policies."""

from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from .context import ResolutionContext
from .exceptions import BackendCommitFailure, ConfigurationError
from .source import MutablePropertySource
from .types import ConfigChange, new_transaction_id

logger = logging.getLogger(__name__)

Targets = List[Tuple[MutablePropertySource, List[ConfigChange]]]


def accepts(source: MutablePropertySource, change: ConfigChange) -> bool:
    """Whether ``source`` can apply ``change``."""
    if change.op == "set":
        return source.is_writable(change.key)
    return source.is_removable(change.key)


class ChangePropagationPolicy(Protocol):
    """Decides which mutable sources receive which part of a change set.

    Attributes:
        fail_fast: When True the first failing source aborts ``store()``;
            otherwise failures are logged and reported in the StoreResult.
    """

    fail_fast: bool

    def targets(
        self, sources: Sequence[MutablePropertySource], changes: Sequence[ConfigChange]
    ) -> Targets:
        """Return (source, changes) pairs in the order they are applied."""
        ...


class ApplyAllPolicy:
    """Every mutable source receives every change it accepts."""

    def __init__(self, fail_fast: bool = True):
        self.fail_fast = fail_fast

    def candidates(self, sources: Sequence[MutablePropertySource]) -> List[MutablePropertySource]:
        return list(sources)

    def targets(
        self, sources: Sequence[MutablePropertySource], changes: Sequence[ConfigChange]
    ) -> Targets:
        result: Targets = []
        for source in self.candidates(sources):
            accepted = [c for c in changes if accepts(source, c)]
            if accepted:
                result.append((source, accepted))
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}(fail_fast={self.fail_fast})"


class SelectivePolicy(ApplyAllPolicy):
    """Only the named sources receive changes."""

    def __init__(self, *names: str, fail_fast: bool = True):
        super().__init__(fail_fast)
        self.names = frozenset(names)

    def candidates(self, sources: Sequence[MutablePropertySource]) -> List[MutablePropertySource]:
        return [s for s in sources if s.name in self.names]

    def __repr__(self) -> str:
        return f"SelectivePolicy({sorted(self.names)!r}, fail_fast={self.fail_fast})"


class NamePatternPolicy(ApplyAllPolicy):
    """Sources whose name matches a regular expression receive changes."""

    def __init__(self, pattern: str, fail_fast: bool = True):
        super().__init__(fail_fast)
        self.pattern = re.compile(pattern)

    def candidates(self, sources: Sequence[MutablePropertySource]) -> List[MutablePropertySource]:
        return [s for s in sources if self.pattern.search(s.name)]

    def __repr__(self) -> str:
        return f"NamePatternPolicy({self.pattern.pattern!r}, fail_fast={self.fail_fast})"


class MostSignificantOnlyPolicy(ApplyAllPolicy):
    """Each change goes to the highest priority source accepting it."""

    def targets(
        self, sources: Sequence[MutablePropertySource], changes: Sequence[ConfigChange]
    ) -> Targets:
        by_source: Dict[str, List[ConfigChange]] = {}
        for change in changes:
            for source in sources:
                if accepts(source, change):
                    by_source.setdefault(source.name, []).append(change)
                    break
        return [(s, by_source[s.name]) for s in sources if s.name in by_source]


class ReadOnlyPolicy(ApplyAllPolicy):
    """No source receives changes."""

    def targets(
        self, sources: Sequence[MutablePropertySource], changes: Sequence[ConfigChange]
    ) -> Targets:
        return []


@dataclass(frozen=True)
class StoreResult:
    """Outcome of ``MutableConfiguration.store()``.

    Attributes:
        transaction_id: Id of the transaction used on every source.
        applied: Names of the sources that committed.
        failed: Errors of the sources that did not, by source name.
    """

    transaction_id: Optional[str]
    applied: Tuple[str, ...] = ()
    failed: Mapping[str, Exception] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


class MutableConfiguration:
    """Stages changes and stores them to the mutable sources of a context.

    Reads always reflect the committed state of the sources; staged changes
    become visible only after ``store()``.

    Args:
        context: Resolution context whose mutable sources receive changes.
        policy: Change propagation policy, ``ApplyAllPolicy`` by default.
        auto_commit: Store after every ``put``/``put_all``/``remove``.
    """

    def __init__(
        self,
        context: ResolutionContext,
        policy: Optional[ChangePropagationPolicy] = None,
        auto_commit: bool = False,
    ):
        self.context = context
        self.policy = policy or ApplyAllPolicy()
        self.auto_commit = auto_commit
        self._changes: List[ConfigChange] = []
        # transactions left open by a failed commit, by source name
        self._failed: Dict[str, Tuple[MutablePropertySource, str]] = {}
        self._lock = threading.RLock()

    # ---- Introspection ----
    @property
    def mutable_sources(self) -> List[MutablePropertySource]:
        """Mutable sources of the context, highest priority first."""
        return [s for s in self.context.property_sources if isinstance(s, MutablePropertySource)]

    @property
    def pending_changes(self) -> Tuple[ConfigChange, ...]:
        return tuple(self._changes)

    def sources_that_can_write(self, key: str) -> List[MutablePropertySource]:
        return [s for s in self.mutable_sources if s.is_writable(key)]

    def sources_that_can_remove(self, key: str) -> List[MutablePropertySource]:
        return [s for s in self.mutable_sources if s.is_removable(key)]

    def sources_that_know(self, key: str) -> List[MutablePropertySource]:
        return [s for s in self.mutable_sources if s.get(key) is not None]

    def is_writable(self, key: str) -> bool:
        """Whether the policy routes a write of ``key`` to any source."""
        return bool(self.policy.targets(self.mutable_sources, [ConfigChange("set", key, "")]))

    def is_removable(self, key: str) -> bool:
        return bool(self.policy.targets(self.mutable_sources, [ConfigChange("unset", key)]))

    def is_existing(self, key: str) -> bool:
        return bool(self.sources_that_know(key))

    # ---- Reads ----
    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        return self.context.get(key, default)

    def get_all(self) -> Dict[str, str]:
        return self.context.get_all()

    def get_typed(self, key: str, target: Any, default: Any = None) -> Any:
        return self.context.get_typed(key, target, default)

    # ---- Staging ----
    def put(self, key: str, value: Any) -> "MutableConfiguration":
        """Stage ``key=value``.

        Raises:
            ConfigurationError: If no mutable source accepts the key.
        """
        if not self.is_writable(key):
            raise ConfigurationError(f"No mutable property source accepts key {key}")
        with self._lock:
            self._changes.append(ConfigChange(op="set", key=key, value=str(value)))
        if self.auto_commit:
            self.store()
        return self

    def put_all(self, properties: Mapping[str, Any]) -> "MutableConfiguration":
        for key in properties:
            if not self.is_writable(key):
                raise ConfigurationError(f"No mutable property source accepts key {key}")
        with self._lock:
            for key, value in properties.items():
                self._changes.append(ConfigChange(op="set", key=key, value=str(value)))
        if self.auto_commit:
            self.store()
        return self

    def remove(self, *keys: str) -> "MutableConfiguration":
        for key in keys:
            if not self.is_removable(key):
                raise ConfigurationError(f"No mutable property source can remove key {key}")
        with self._lock:
            self._changes.extend(ConfigChange(op="unset", key=k) for k in keys)
        if self.auto_commit:
            self.store()
        return self

    def rollback(self) -> None:
        """Discard all staged changes."""
        with self._lock:
            self._changes.clear()
            self._discard_failed()

    def _discard_failed(self) -> None:
        """Roll back the transactions a failed commit left open on sources."""
        for name, (source, transaction_id) in list(self._failed.items()):
            del self._failed[name]
            try:
                source.rollback_transaction(transaction_id)
            except ConfigurationError as e:
                logger.debug("Transaction %s on %s already finished: %s", transaction_id, name, e)
            else:
                logger.info("Rolled back failed transaction %s on %s", transaction_id, name)

    # ---- Store ----
    def store(self) -> StoreResult:
        """Propagate staged changes to the sources chosen by the policy.

        Every target source gets the same transaction id. Staged changes are
        cleared only if every target committed. A transaction left open by a
        failed commit is rolled back by the next ``store()`` or ``rollback()``,
        which then stages the pending changes afresh.

        Raises:
            BackendCommitFailure: With a fail-fast policy, when a source fails
                to commit. Its transaction stays open on that source.
            ConfigurationError: With a fail-fast policy, when a source rejects
                a change.
        """
        with self._lock:
            self._discard_failed()
            changes = list(self._changes)
            if not changes:
                return StoreResult(transaction_id=None)
            targets = self.policy.targets(self.mutable_sources, changes)
            if not targets:
                logger.warning("No property source selected by %r, changes not stored", self.policy)
                return StoreResult(transaction_id=None)
            transaction_id = new_transaction_id()
            applied: List[str] = []
            failed: Dict[str, Exception] = {}
            for source, subset in targets:
                try:
                    self._apply(source, transaction_id, subset)
                except (ConfigurationError, BackendCommitFailure) as e:
                    if isinstance(e, BackendCommitFailure):
                        self._failed[source.name] = (source, transaction_id)
                    if applied:
                        logger.error(
                            "Store %s failed on %s after committing to %s",
                            transaction_id,
                            source.name,
                            ", ".join(applied),
                        )
                    if self.policy.fail_fast:
                        raise
                    logger.error("Store %s failed on %s: %s", transaction_id, source.name, e)
                    failed[source.name] = e
                    continue
                applied.append(source.name)
            if not failed:
                self._changes.clear()
            return StoreResult(transaction_id, tuple(applied), failed)

    commit = store

    @staticmethod
    def _apply(
        source: MutablePropertySource, transaction_id: str, changes: Iterable[ConfigChange]
    ) -> None:
        source.start_transaction(transaction_id)
        try:
            for change in changes:
                if change.op == "set":
                    source.put(transaction_id, change.key, change.value)
                else:
                    source.remove(transaction_id, change.key)
        except ConfigurationError:
            source.rollback_transaction(transaction_id)
            raise
        source.commit_transaction(transaction_id)

    def __repr__(self) -> str:
        return (
            f"MutableConfiguration(policy={self.policy!r}, auto_commit={self.auto_commit}, "
            f"pending={len(self._changes)})"
        )
