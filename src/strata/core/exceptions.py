"""Error taxonomy for the Strata configuration system."""

from __future__ import annotations

from typing import Any, Optional, Sequence


class StrataError(Exception):
    """Base class for all errors raised by Strata."""


class ConfigurationError(StrataError):
    """Programming or setup error surfaced immediately to the caller.

    Raised for unknown transaction ids, builders mutated after ``build()``,
    target types without any registered converter and invalid setup files.
    """


class ConversionError(StrataError, ValueError):
    """No converter produced a value for a present raw value.

    Attributes:
        key: Configuration key being converted (may be None).
        target: Requested target type descriptor.
        value: Raw string value that could not be converted.
        formats: Input formats the tried converters accept.
    """

    def __init__(
        self,
        key: Optional[str],
        target: Any,
        value: Optional[str],
        formats: Sequence[str] = (),
    ):
        self.key = key
        self.target = target
        self.value = value
        self.formats = tuple(formats)
        message = f"Cannot convert value {value!r} of key {key!r} to type {target}"
        if self.formats:
            message += f", supported formats: {', '.join(self.formats)}"
        super().__init__(message)


class BackendCommitFailure(StrataError):
    """Writing a committed transaction to a backend failed.

    The transaction's staged state is preserved so the commit can be retried.

    Attributes:
        source_name: Name of the mutable source whose backend failed.
        transaction_id: Id of the transaction that stays pending.
    """

    def __init__(self, source_name: str, transaction_id: Optional[str], message: str):
        self.source_name = source_name
        self.transaction_id = transaction_id
        super().__init__(f"{source_name}: {message}")


class SourceFailure(StrataError):
    """A single source failed during lookup or enumeration.

    Only used to describe the failure in log records; resolution recovers
    locally and continues with the remaining sources.
    """

    def __init__(self, source_name: str, operation: str, cause: BaseException):
        self.source_name = source_name
        self.operation = operation
        self.cause = cause
        super().__init__(f"Source {source_name!r} failed during {operation}: {cause}")
