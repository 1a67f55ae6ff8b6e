"""Transactional base for writable property sources."""

from __future__ import annotations

import logging
import threading
from abc import abstractmethod
from collections import OrderedDict
from typing import Dict, Mapping, Optional, Tuple

from .exceptions import BackendCommitFailure, ConfigurationError
from .source import BasePropertySource
from .types import TransactionContext, TransactionState

logger = logging.getLogger(__name__)


class AbstractMutablePropertySource(BasePropertySource):
    """Property source whose content changes through transactions.

    Each transaction stages its writes in its own TransactionContext; readers
    never see staged values. Commits of one source run one at a time, so a
    backend rewrite always completes before the next transaction is applied.

    Subclasses implement ``properties()`` and ``commit_internal()``.
    Staged keys are stored without the source prefix. The ids of the last
    ``finished_history`` finished transactions are remembered.
    """

    finished_history = 1024

    def __init__(
        self,
        name: str,
        ordinal: int = 0,
        *,
        prefix: Optional[str] = None,
        scannable: bool = True,
        writable: bool = True,
        removable: bool = True,
    ):
        super().__init__(name, ordinal, prefix=prefix, scannable=scannable)
        self.writable = writable
        self.removable = removable
        self._transactions: Dict[str, TransactionContext] = {}
        self._finished: "OrderedDict[str, TransactionState]" = OrderedDict()
        self._lock = threading.Lock()
        self._commit_lock = threading.Lock()

    @abstractmethod
    def commit_internal(self, transaction: TransactionContext) -> None:
        """Apply the staged changes of ``transaction`` to the backend."""

    def is_writable(self, key_pattern: str) -> bool:
        return self.writable and self._unprefixed(key_pattern) is not None

    def is_removable(self, key_pattern: str) -> bool:
        return self.removable and self._unprefixed(key_pattern) is not None

    # ---- Transaction lifecycle ----
    def start_transaction(self, transaction_id: str) -> None:
        """Begin a transaction; starting an open one again does nothing.

        Raises:
            ConfigurationError: If the id belongs to a finished transaction.
        """
        with self._lock:
            if transaction_id in self._transactions:
                return
            if transaction_id in self._finished:
                raise ConfigurationError(
                    f"Transaction {transaction_id} already "
                    f"{self._finished[transaction_id].value.replace('_', ' ')}"
                )
            self._transactions[transaction_id] = TransactionContext(transaction_id)
        logger.debug("Started transaction %s on %s", transaction_id, self.name)

    def get_transaction(self, transaction_id: str) -> Optional[TransactionContext]:
        return self._transactions.get(transaction_id)

    @property
    def open_transactions(self) -> Tuple[str, ...]:
        """Ids of the transactions started and not yet finished."""
        with self._lock:
            return tuple(self._transactions)

    def _require(self, transaction_id: str) -> TransactionContext:
        transaction = self._transactions.get(transaction_id)
        if transaction is not None:
            return transaction
        state = self._finished.get(transaction_id)
        if state is not None:
            raise ConfigurationError(
                f"Transaction {transaction_id} already {state.value.replace('_', ' ')}"
            )
        raise ConfigurationError(f"Unknown transaction: {transaction_id}")

    def _raw_key(self, key: str) -> str:
        raw = self._unprefixed(key)
        return key if raw is None else raw

    def put(self, transaction_id: str, key: str, value: str) -> "AbstractMutablePropertySource":
        if not self.is_writable(key):
            raise ConfigurationError(f"Key {key} is not writable in property source {self.name}")
        self._require(transaction_id).put(self._raw_key(key), value)
        return self

    def put_all(
        self, transaction_id: str, properties: Mapping[str, str]
    ) -> "AbstractMutablePropertySource":
        transaction = self._require(transaction_id)
        for key in properties:
            if not self.is_writable(key):
                raise ConfigurationError(f"Key {key} is not writable in property source {self.name}")
        transaction.put_all({self._raw_key(k): v for k, v in properties.items()})
        return self

    def remove(self, transaction_id: str, *keys: str) -> "AbstractMutablePropertySource":
        transaction = self._require(transaction_id)
        for key in keys:
            if not self.is_removable(key):
                raise ConfigurationError(f"Key {key} is not removable in property source {self.name}")
        transaction.remove_all(self._raw_key(k) for k in keys)
        return self

    def commit_transaction(self, transaction_id: str) -> None:
        """Apply a transaction to the backend.

        Raises:
            ConfigurationError: If the transaction is unknown or finished.
            BackendCommitFailure: If the backend write failed. The transaction
                stays open with its staged changes.
        """
        with self._commit_lock:
            transaction = self._require(transaction_id)
            try:
                self.commit_internal(transaction)
            except Exception as e:
                logger.error(
                    "Commit of transaction %s on %s failed: %s", transaction_id, self.name, e
                )
                raise BackendCommitFailure(self.name, transaction_id, str(e)) from e
            self._finish(transaction, TransactionState.COMMITTED)
        logger.info(
            "Committed transaction %s on %s: %d added, %d removed",
            transaction_id,
            self.name,
            len(transaction.added_properties),
            len(transaction.removed_properties),
        )

    def rollback_transaction(self, transaction_id: str) -> None:
        """Discard a transaction's staged changes without touching the backend."""
        with self._commit_lock:
            transaction = self._require(transaction_id)
            self._finish(transaction, TransactionState.ROLLED_BACK)
        logger.debug("Rolled back transaction %s on %s", transaction_id, self.name)

    def _finish(self, transaction: TransactionContext, state: TransactionState) -> None:
        with self._lock:
            if self._transactions.pop(transaction.transaction_id, None) is None:
                self._require(transaction.transaction_id)
            transaction.state = state
            self._finished[transaction.transaction_id] = state
            while len(self._finished) > self.finished_history:
                self._finished.popitem(last=False)
