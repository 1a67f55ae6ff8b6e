"""Built-in converters for scalar and parametrized target types."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from .conversion import NO_VALUE, ConversionContext, Converter, ConverterRegistry
from .types import (
    ANY,
    BOOL,
    BYTE,
    DECIMAL,
    DOUBLE,
    FLOAT,
    INT,
    LIST,
    LONG,
    OPTIONAL,
    SET,
    SHORT,
    STRING,
    TUPLE,
    MapOf,
    TypeDescriptor,
    Wrapper,
)

logger = logging.getLogger(__name__)


_MIN_TOKENS = ("MIN", "MIN_VALUE")
_MAX_TOKENS = ("MAX", "MAX_VALUE")


def _sentinel(raw: str) -> Optional[str]:
    token = raw.strip().upper()
    if token in _MIN_TOKENS:
        return "min"
    if token in _MAX_TOKENS:
        return "max"
    return None


class _BaseConverter:
    formats: Tuple[str, ...] = ()

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and vars(self) == vars(other)

    def __hash__(self) -> int:
        return hash(type(self))

    def __repr__(self) -> str:
        return type(self).__name__


class StringConverter(_BaseConverter):
    formats = ("<text>",)

    def __call__(self, raw: str, ctx: ConversionContext) -> Any:
        return raw


class BooleanConverter(_BaseConverter):
    formats = ("true", "yes", "y", "on", "1", "false", "no", "n", "off", "0")

    TRUE_VALUES = frozenset({"true", "yes", "y", "on", "1"})
    FALSE_VALUES = frozenset({"false", "no", "n", "off", "0"})

    def __call__(self, raw: str, ctx: ConversionContext) -> Any:
        token = raw.strip().lower()
        if token in self.TRUE_VALUES:
            return True
        if token in self.FALSE_VALUES:
            return False
        return None


_INTEGER_BOUNDS: Dict[TypeDescriptor, Tuple[int, int]] = {
    BYTE: (-(2 ** 7), 2 ** 7 - 1),
    SHORT: (-(2 ** 15), 2 ** 15 - 1),
    INT: (-(2 ** 31), 2 ** 31 - 1),
    LONG: (-(2 ** 63), 2 ** 63 - 1),
}


def parse_integer(raw: str) -> int:
    """Parse decimal, hexadecimal (``0x``/``#``) and octal (leading ``0``) integers."""
    text = raw.strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text[:2].lower() == "0x":
        return sign * int(text[2:], 16)
    if text.startswith("#"):
        return sign * int(text[1:], 16)
    if len(text) > 1 and text.startswith("0"):
        return sign * int(text[1:], 8)
    return sign * int(text, 10)


class IntegerConverter(_BaseConverter):
    """Converts to a bounded integer type; out-of-range values do not convert.

    Accepts the case-insensitive tokens MIN/MIN_VALUE and MAX/MAX_VALUE for
    the bounds of the type.
    """

    formats = ("<int>", "0x<hex>", "#<hex>", "0<octal>", "MIN_VALUE", "MAX_VALUE")

    def __init__(self, kind: TypeDescriptor):
        self.kind = kind
        self.min_value, self.max_value = _INTEGER_BOUNDS[kind]

    def __call__(self, raw: str, ctx: ConversionContext) -> Any:
        bound = _sentinel(raw)
        if bound == "min":
            return self.min_value
        if bound == "max":
            return self.max_value
        value = parse_integer(raw)
        if not self.min_value <= value <= self.max_value:
            logger.debug("Value %s out of range for %s", value, self.kind)
            return None
        return value

    def __hash__(self) -> int:
        return hash((type(self), self.kind))

    def __repr__(self) -> str:
        return f"IntegerConverter({self.kind})"


_FLOAT_BOUNDS: Dict[TypeDescriptor, Tuple[float, float]] = {
    # smallest positive and largest finite value, as for Java's MIN_VALUE/MAX_VALUE
    FLOAT: (1.401298464324817e-45, 3.4028234663852886e38),
    DOUBLE: (5e-324, 1.7976931348623157e308),
}


class FloatConverter(_BaseConverter):
    formats = ("<float>", "NaN", "Infinity", "-Infinity", "MIN_VALUE", "MAX_VALUE")

    def __init__(self, kind: TypeDescriptor):
        self.kind = kind
        self.min_value, self.max_value = _FLOAT_BOUNDS[kind]

    def __call__(self, raw: str, ctx: ConversionContext) -> Any:
        bound = _sentinel(raw)
        if bound == "min":
            return self.min_value
        if bound == "max":
            return self.max_value
        text = raw.strip()
        body = text.lstrip("+-")
        if body[:2].lower() == "0x" or body.startswith("#"):
            return float(parse_integer(text))
        return float(text)

    def __hash__(self) -> int:
        return hash((type(self), self.kind))

    def __repr__(self) -> str:
        return f"FloatConverter({self.kind})"


class DecimalConverter(_BaseConverter):
    formats = ("<decimal>",)

    def __call__(self, raw: str, ctx: ConversionContext) -> Any:
        try:
            return Decimal(raw.strip())
        except InvalidOperation:
            return None


def split_items(value: str, separator: str = ",") -> List[str]:
    """Split on unescaped separators; ``\\<separator>`` is a literal separator.

    Items are stripped of surrounding whitespace. An empty value has no items.
    """
    if not value.strip():
        return []
    items: List[str] = []
    current: List[str] = []
    i = 0
    while i < len(value):
        if value.startswith("\\" + separator, i):
            current.append(separator)
            i += len(separator) + 1
        elif value.startswith("\\\\", i):
            current.append("\\")
            i += 2
        elif value.startswith(separator, i):
            items.append("".join(current).strip())
            current = []
            i += len(separator)
        else:
            current.append(value[i])
            i += 1
    items.append("".join(current).strip())
    return items


def split_map_entry(entry: str, separator: str = "::") -> Tuple[str, str]:
    """Split ``key::value`` (optionally in brackets); no separator maps to itself."""
    text = entry.strip()
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]
    index = text.find(separator)
    if index < 0:
        return text.strip(), text.strip()
    return text[:index].strip(), text[index + len(separator):].strip()


def _item_separator(ctx: ConversionContext, default: str = ",") -> str:
    if ctx.key:
        custom = ctx.lookup(f"_{ctx.key}.item-separator")
        if custom:
            return custom
    return default


class OptionalConverter(_BaseConverter):
    """optional-of-T: blank values and failed inner conversions yield None."""

    formats = ("<empty>", "<T>")

    def __call__(self, raw: str, ctx: ConversionContext) -> Any:
        target = ctx.target
        if not isinstance(target, Wrapper) or target.kind != OPTIONAL:
            return None
        if not raw.strip():
            return NO_VALUE
        result = ctx.convert(raw, target.inner)
        if result is None:
            logger.debug("Optional value %r not convertible to %s", raw, target.inner)
            return NO_VALUE
        return result


class CollectionConverter(_BaseConverter):
    """list/set/tuple-of-T over separator-delimited items."""

    formats = ("<T>,<T>,...",)

    _FACTORIES = {LIST: list, SET: set, TUPLE: tuple}

    def __call__(self, raw: str, ctx: ConversionContext) -> Any:
        target = ctx.target
        if not isinstance(target, Wrapper) or target.kind not in self._FACTORIES:
            return None
        items = []
        for item in split_items(raw, _item_separator(ctx)):
            if target.inner in (ANY, STRING):
                items.append(item)
                continue
            converted = ctx.convert(item, target.inner)
            if converted is None:
                logger.debug("Item %r not convertible to %s", item, target.inner)
                return None
            items.append(None if converted is NO_VALUE else converted)
        return self._FACTORIES[target.kind](items)


class MapConverter(_BaseConverter):
    """map-of-K,V over ``k::v`` entries separated like list items."""

    formats = ("<K>::<V>,<K>::<V>,...",)

    def __call__(self, raw: str, ctx: ConversionContext) -> Any:
        target = ctx.target
        if not isinstance(target, MapOf):
            return None
        entry_separator = "::"
        if ctx.key:
            entry_separator = ctx.lookup(f"_{ctx.key}.map-entry-separator") or entry_separator
        result: Dict[Any, Any] = {}
        for item in split_items(raw, _item_separator(ctx)):
            raw_key, raw_value = split_map_entry(item, entry_separator)
            key = self._convert(raw_key, target.key, ctx)
            value = self._convert(raw_value, target.value, ctx)
            if key is None or value is None:
                return None
            result[None if key is NO_VALUE else key] = None if value is NO_VALUE else value
        return result

    @staticmethod
    def _convert(raw: str, target: TypeDescriptor, ctx: ConversionContext) -> Any:
        if target in (ANY, STRING):
            return raw
        return ctx.convert(raw, target)


def default_converters() -> Dict[TypeDescriptor, List[Converter]]:
    """The converters registered by ``add_default_property_converters``."""
    converters: Dict[TypeDescriptor, List[Converter]] = {
        STRING: [StringConverter()],
        BOOL: [BooleanConverter()],
        DECIMAL: [DecimalConverter()],
        Wrapper(OPTIONAL, ANY): [OptionalConverter()],
        MapOf(ANY, ANY): [MapConverter()],
    }
    for kind in _INTEGER_BOUNDS:
        converters[kind] = [IntegerConverter(kind)]
    for kind in _FLOAT_BOUNDS:
        converters[kind] = [FloatConverter(kind)]
    for kind in (LIST, SET, TUPLE):
        converters[Wrapper(kind, ANY)] = [CollectionConverter()]
    return converters


def register_default_converters(registry: ConverterRegistry) -> ConverterRegistry:
    for target, convs in default_converters().items():
        registry.register(target, *convs)
    return registry
