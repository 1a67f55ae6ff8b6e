"""Unit tests for the resolution context."""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional

import pytest

from strata.core.builder import ContextBuilder
from strata.core.context import ResolutionContext
from strata.core.exceptions import ConfigurationError, ConversionError
from strata.core.filters import Filter, ValueFilter
from strata.core.source import MapPropertySource
from strata.core.types import BOOL, INT, PropertyEntry
from strata.sources.properties_file import PropertiesFilePropertySource


class BrokenSource:
    """Source failing on every call."""

    def __init__(self, name: str = "broken", ordinal: int = 1000):
        self.name = name
        self.ordinal = ordinal

    def get(self, key: str) -> Optional[PropertyEntry]:
        raise RuntimeError("backend down")

    def get_all(self) -> Dict[str, PropertyEntry]:
        raise RuntimeError("backend down")

    def is_scannable(self) -> bool:
        return True


def build(*sources, **kwargs) -> ResolutionContext:
    builder = ContextBuilder().add_default_property_converters().add_property_sources(*sources)
    for flt in kwargs.get("filters", ()):
        builder.add_property_filters(flt)
    return builder.build()


class TestResolution:
    """Test suite for single-key and bulk resolution."""

    def test_override_law(self):
        """Test the higher ordinal wins."""
        a = MapPropertySource("a", {"k": "a"}, ordinal=0)
        b = MapPropertySource("b", {"k": "b"}, ordinal=10)
        assert build(a, b).get("k") == "b"

    def test_override_law_swapped(self):
        """Test swapping ordinals swaps the winner."""
        a = MapPropertySource("a", {"k": "a"}, ordinal=10)
        b = MapPropertySource("b", {"k": "b"}, ordinal=0)
        assert build(a, b).get("k") == "a"

    def test_missing_key(self):
        ctx = build(MapPropertySource("a", {"k": "a"}))
        assert ctx.get("missing") is None
        assert ctx.get("missing", "fallback") == "fallback"

    def test_entry_has_provenance(self):
        ctx = build(MapPropertySource("a", {"k": "a", "_k.format": "plain"}))
        entry = ctx.get_entry("k")
        assert entry.source == "a"
        assert entry.metadata == {"format": "plain"}

    def test_tie_broken_by_name(self):
        """Test equal ordinals are ordered by name, independent of registration order."""
        b = MapPropertySource("b", {"k": "b"}, ordinal=5)
        a = MapPropertySource("a", {"k": "a"}, ordinal=5)
        ctx1 = build(b, a)
        ctx2 = build(a, b)
        assert [s.name for s in ctx1.property_sources] == ["a", "b"]
        assert [s.name for s in ctx2.property_sources] == ["a", "b"]
        assert ctx1.get("k") == ctx2.get("k") == "a"

    def test_determinism(self):
        """Test repeated evaluation returns identical results."""
        ctx = build(
            MapPropertySource("x", {"k": "x", "a": "1"}, ordinal=3),
            MapPropertySource("y", {"k": "y", "b": "2"}, ordinal=3),
            MapPropertySource("z", {"k": "z"}, ordinal=1),
        )
        first = ctx.get_all()
        for _ in range(5):
            assert ctx.get_all() == first
            assert ctx.get("k") == first["k"] == "x"

    def test_consistency_law(self):
        """Test every key of get_all resolves to the same value with get."""
        ctx = build(
            MapPropertySource("low", {"a": "1", "b": "2", "c": "3"}, ordinal=1),
            MapPropertySource("mid", {"b": "20", "d": "40"}, ordinal=5),
            MapPropertySource("hidden", {"c": "300", "e": "500"}, ordinal=9, scannable=False),
        )
        snapshot = ctx.get_all()
        for key, value in snapshot.items():
            assert ctx.get(key) == value
        assert snapshot["c"] == "300"

    def test_non_scannable_source_not_enumerated(self):
        ctx = build(
            MapPropertySource("hidden", {"only": "x"}, ordinal=9, scannable=False),
            MapPropertySource("visible", {"k": "v"}, ordinal=1),
        )
        assert ctx.get("only") == "x"
        assert "only" not in ctx.get_all()
        assert ctx.get_all() == {"k": "v"}

    def test_end_to_end_scenario(self, tmp_path):
        """Test environment over file sources."""
        props = tmp_path / "app.properties"
        props.write_text("HOME=/f\nDB_URL=jdbc:x\n")
        env = MapPropertySource("env", {"HOME": "/h"}, ordinal=500)
        file_source = PropertiesFilePropertySource(props, ordinal=100, name="file")
        ctx = build(env, file_source)

        assert ctx.get("HOME") == "/h"
        assert ctx.get("DB_URL") == "jdbc:x"
        all_values = ctx.get_all()
        assert all_values["HOME"] == "/h"
        assert all_values["DB_URL"] == "jdbc:x"

    def test_failing_source_is_skipped(self, caplog):
        """Test a throwing source is logged and treated as having no value."""
        ctx = build(BrokenSource(), MapPropertySource("ok", {"k": "v"}))
        with caplog.at_level(logging.WARNING):
            assert ctx.get("k") == "v"
            assert ctx.get_all() == {"k": "v"}
        assert "backend down" in caplog.text

    def test_reserved_ordinal_key(self):
        low = MapPropertySource("low", {"_source.ordinal": "900", "k": "low"}, ordinal=1)
        high = MapPropertySource("high", {"k": "high"}, ordinal=100)
        ctx = build(low, high)
        assert ctx.get("k") == "low"

    def test_explicit_ordinal_wins(self):
        low = MapPropertySource("low", {"_source.ordinal": "900", "k": "low"}, ordinal=1)
        low.set_ordinal(0)
        high = MapPropertySource("high", {"k": "high"}, ordinal=100)
        assert build(low, high).get("k") == "high"

    def test_sources_sorted_without_builder(self):
        ctx = ResolutionContext([
            MapPropertySource("low", {"k": "low"}, ordinal=1),
            MapPropertySource("high", {"k": "high"}, ordinal=2),
        ])
        assert [s.name for s in ctx.property_sources] == ["high", "low"]
        assert ctx.get_property_source("low").ordinal == 1
        assert ctx.get_property_source("nope") is None

    def test_large_snapshot(self):
        data = {f"k{i}": str(i) for i in range(5000)}
        data.update({f"_k{i}.unit": "ms" for i in range(0, 5000, 2)})
        ctx = build(MapPropertySource("big", data))
        start = time.perf_counter()
        entries = ctx.get_all_entries()
        elapsed = time.perf_counter() - start
        assert len(entries) == 7500
        assert entries["k2"].metadata == {"unit": "ms"}
        assert entries["k3"].metadata == {}
        assert elapsed < 5

    def test_key_none_rejected(self):
        with pytest.raises(ValueError):
            build().get_entry(None)


class RecordingPolicy:
    """Overriding policy remembering what each source reported."""

    def __init__(self):
        self.seen = []

    def collect(self, current, key, source):
        self.seen.append((source.name, source.is_scannable(), source.ordinal))
        entry = source.get(key)
        return current if entry is None else entry


class TestPolicySourceView:
    """Test suite for what combination policies see of a source."""

    def make(self, policy):
        return (
            ContextBuilder()
            .add_property_sources(
                MapPropertySource("s", {"k": "v", "_source.ordinal": "50"}, ordinal=1),
                MapPropertySource("n", {"k": "w"}, ordinal=0, scannable=False),
            )
            .set_combination_policy(policy)
            .build()
        )

    def test_point_lookup(self):
        policy = RecordingPolicy()
        assert self.make(policy).get("k") == "v"
        assert policy.seen == [("n", False, 0), ("s", True, 50)]

    def test_snapshot(self):
        policy = RecordingPolicy()
        self.make(policy).get_all()
        assert set(policy.seen) == {("n", False, 0), ("s", True, 50)}


class TestFilters:
    """Test suite for post-merge filters."""

    def test_filter_veto(self):
        veto = ValueFilter(lambda e: None if e.key == "secret" else e, name="hide")
        ctx = build(MapPropertySource("a", {"secret": "x", "k": "v"}), filters=[veto])
        assert ctx.get("secret") is None
        assert ctx.get_all() == {"k": "v"}

    def test_filter_transform(self):
        upper = ValueFilter(lambda e: e.with_value(e.value.upper()))
        ctx = build(MapPropertySource("a", {"k": "v"}), filters=[upper])
        assert ctx.get("k") == "V"
        assert ctx.get_entry("k").source == "a"

    def test_filters_run_in_order(self):
        first = ValueFilter(lambda e: e.with_value(e.value + "1"))
        second = ValueFilter(lambda e: e.with_value(e.value + "2"))
        ctx = build(MapPropertySource("a", {"k": "v"}), filters=[first, second])
        assert ctx.get("k") == "v12"

    def test_regex_filter(self):
        import re

        flt = Filter(include_regex=re.compile(r"^app\."))
        ctx = build(MapPropertySource("a", {"app.name": "n", "other": "o"}), filters=[flt])
        assert ctx.get_all() == {"app.name": "n"}


class TestTypedAccess:
    """Test suite for typed access through the conversion chain."""

    def test_converter_chain_law(self):
        """Test the first non-None converter result wins."""
        ctx = (
            ContextBuilder()
            .add_property_sources(MapPropertySource("a", {"k": "anything"}))
            .add_property_converters(INT, lambda raw, ctx: None, lambda raw, ctx: 42)
            .build()
        )
        assert ctx.get_typed("k", INT) == 42

    def test_all_converters_fail_raises(self):
        ctx = (
            ContextBuilder()
            .add_property_sources(MapPropertySource("a", {"k": "anything"}))
            .add_property_converters(INT, lambda raw, ctx: None)
            .build()
        )
        with pytest.raises(ConversionError) as excinfo:
            ctx.get_typed("k", INT)
        assert "'k'" in str(excinfo.value)
        assert "int" in str(excinfo.value)
        assert excinfo.value.key == "k"

    def test_error_lists_supported_formats(self):
        ctx = build(MapPropertySource("a", {"flag": "maybe"}))
        with pytest.raises(ConversionError) as excinfo:
            ctx.get_typed("flag", BOOL)
        assert "true" in excinfo.value.formats
        assert "supported formats: true, yes" in str(excinfo.value)

    def test_absent_value_returns_default(self):
        ctx = build(MapPropertySource("a", {}))
        assert ctx.get_typed("k", int) is None
        assert ctx.get_typed("k", int, default=3) == 3

    def test_missing_converter_is_configuration_error(self):
        ctx = ContextBuilder().add_property_sources(MapPropertySource("a", {"k": "1"})).build()
        with pytest.raises(ConfigurationError):
            ctx.get_typed("k", INT)

    def test_string_without_converters(self):
        ctx = ContextBuilder().add_property_sources(MapPropertySource("a", {"k": "1"})).build()
        assert ctx.get_typed("k", str) == "1"

    def test_python_types(self):
        ctx = build(MapPropertySource("a", {"n": "7", "b": "on", "f": "1.5"}))
        assert ctx.get_typed("n", int) == 7
        assert ctx.get_typed("b", bool) is True
        assert ctx.get_typed("f", float) == 1.5


class TestDescribe:
    def test_describe_lists_parts(self):
        ctx = build(MapPropertySource("defaults", {"k": "v"}, ordinal=7), BrokenSource())
        text = ctx.describe()
        assert "defaults" in text
        assert "broken" in text
        assert "ERROR" in text
        assert "OverridingPolicy" in text
        assert "IntegerConverter(int)" in text
        assert "0x<hex>" in text
