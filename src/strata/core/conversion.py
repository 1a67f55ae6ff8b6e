"""Conversion chain turning raw strings into typed values."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from .exceptions import ConfigurationError
from .types import STRING, TypeDescriptor, as_descriptor

if TYPE_CHECKING:
    from .context import ResolutionContext

logger = logging.getLogger(__name__)

Converter = Callable[[str, "ConversionContext"], Any]


class _NoValue:
    """Marker for a successful conversion whose result is None."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_VALUE"


NO_VALUE = _NoValue()


def formats_of(converters: Iterable[Converter]) -> List[str]:
    """Input formats advertised by converters through a ``formats`` attribute."""
    result: List[str] = []
    for converter in converters:
        for fmt in getattr(converter, "formats", ()):
            if fmt not in result:
                result.append(fmt)
    return result


@dataclass(frozen=True)
class ConversionContext:
    """Information passed to every converter of a chain.

    Attributes:
        target: Target type of the current conversion.
        registry: Registry used to re-enter the chain for inner types.
        key: Key whose value is converted, if known.
        context: Resolution context the value was read from, if any.
    """

    target: TypeDescriptor
    registry: "ConverterRegistry"
    key: Optional[str] = None
    context: Optional["ResolutionContext"] = None

    def narrowed(self, target: Any) -> "ConversionContext":
        return replace(self, target=as_descriptor(target))

    def convert(self, raw: str, target: Any) -> Any:
        """Run the chain for ``target`` on a segment of the current value."""
        return self.registry.run_chain(raw, self.narrowed(target))

    def lookup(self, key: str) -> Optional[str]:
        """Read a related key (e.g. ``_<key>.item-separator``) from the context."""
        if self.context is None:
            return None
        return self.context.get(key)


class ConverterRegistry:
    """Ordered converters per target type.

    Inserts copy the affected tuple under a lock; lookups read without
    locking and always see a complete, registration-ordered tuple.
    """

    def __init__(self, converters: Optional[Mapping[Any, Iterable[Converter]]] = None):
        self._lock = threading.Lock()
        self._converters: Dict[TypeDescriptor, Tuple[Converter, ...]] = {}
        for target, convs in (converters or {}).items():
            self.register(target, *convs)

    def register(self, target: Any, *converters: Converter) -> None:
        descriptor = as_descriptor(target)
        with self._lock:
            current = list(self._converters.get(descriptor, ()))
            for converter in converters:
                if converter in current:
                    logger.warning("Converter ignored, already registered: %r", converter)
                    continue
                current.append(converter)
            self._converters[descriptor] = tuple(current)

    def unregister(self, target: Any, *converters: Converter) -> None:
        """Remove the given converters, or all converters when none are given."""
        descriptor = as_descriptor(target)
        with self._lock:
            if not converters:
                self._converters.pop(descriptor, None)
                return
            remaining = tuple(
                c for c in self._converters.get(descriptor, ()) if c not in converters
            )
            self._converters[descriptor] = remaining

    def converters_for(self, target: Any) -> List[Converter]:
        """Converters for ``target``, followed by those for its shape."""
        descriptor = as_descriptor(target)
        result = list(self._converters.get(descriptor, ()))
        shape = descriptor.shape
        if shape != descriptor:
            result.extend(self._converters.get(shape, ()))
        return result

    def is_supported(self, target: Any) -> bool:
        return bool(self.converters_for(target))

    def as_mapping(self) -> Dict[TypeDescriptor, Tuple[Converter, ...]]:
        return dict(self._converters)

    def run_chain(self, raw: str, ctx: ConversionContext) -> Any:
        """Invoke converters for ``ctx.target`` until one yields a value.

        Returns:
            The first non-None result (``NO_VALUE`` when a converter
            produced None as a legitimate value), or None if no converter
            succeeded.

        Raises:
            ConfigurationError: If no converter is registered for the target
                and the target is not a string.
        """
        chain = self.converters_for(ctx.target)
        if not chain:
            if ctx.target == STRING:
                return raw
            raise ConfigurationError(f"No converter registered for type {ctx.target}")
        for converter in chain:
            try:
                result = converter(raw, ctx)
            except ConfigurationError:
                raise
            except Exception:
                logger.debug(
                    "Converter %r failed to convert %r to %s",
                    converter,
                    raw,
                    ctx.target,
                    exc_info=True,
                )
                continue
            if result is not None:
                return result
        return None

    def convert(
        self,
        raw: str,
        target: Any,
        key: Optional[str] = None,
        context: Optional["ResolutionContext"] = None,
    ) -> Any:
        """Convert ``raw`` to ``target``; None if no converter succeeded."""
        ctx = ConversionContext(
            target=as_descriptor(target), registry=self, key=key, context=context
        )
        result = self.run_chain(raw, ctx)
        return None if result is NO_VALUE else result
