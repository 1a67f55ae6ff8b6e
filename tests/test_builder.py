"""Unit tests for the context builder."""

from __future__ import annotations

import pytest

from strata.core.builder import ContextBuilder
from strata.core.combination import CollectingPolicy
from strata.core.exceptions import ConfigurationError
from strata.core.filters import ValueFilter
from strata.core.source import MapPropertySource
from strata.core.types import BOOL, INT


def names(sources):
    return [s.name for s in sources]


def builder_source(name: str) -> MapPropertySource:
    return MapPropertySource(name, {})


def staged_abcd() -> ContextBuilder:
    return ContextBuilder().add_property_sources(
        MapPropertySource("c", {"k": "c"}, ordinal=20),
        MapPropertySource("a", {"k": "a"}, ordinal=40),
        MapPropertySource("d", {"k": "d"}, ordinal=10),
        MapPropertySource("b", {"k": "b"}, ordinal=30),
    )


class TestContextBuilder:
    """Test suite for ContextBuilder."""

    def test_sources_inserted_by_ordinal(self):
        assert names(staged_abcd().property_sources) == ["a", "b", "c", "d"]

    def test_duplicate_source_ignored(self):
        builder = ContextBuilder().add_property_sources(
            MapPropertySource("a", {"k": "1"}),
            MapPropertySource("a", {"k": "2"}),
        )
        assert len(builder.property_sources) == 1
        assert builder.build().get("k") == "1"

    def test_remove_sources(self):
        builder = staged_abcd().remove_property_sources("b", builder_source("c"))
        assert names(builder.property_sources) == ["a", "d"]

    def test_increase_priority(self):
        builder = staged_abcd().increase_priority("c")
        assert names(builder.property_sources) == ["a", "c", "b", "d"]

    def test_increase_priority_of_first_is_noop(self):
        builder = staged_abcd().increase_priority("a")
        assert names(builder.property_sources) == ["a", "b", "c", "d"]

    def test_decrease_priority(self):
        builder = staged_abcd().decrease_priority("a")
        assert names(builder.property_sources) == ["b", "a", "c", "d"]

    def test_highest_and_lowest_priority(self):
        builder = staged_abcd().highest_priority("d")
        assert names(builder.property_sources) == ["d", "a", "b", "c"]
        builder.lowest_priority("a")
        assert names(builder.property_sources) == ["d", "b", "c", "a"]

    def test_reordering_is_kept_by_build(self):
        ctx = staged_abcd().highest_priority("d").build()
        assert names(ctx.property_sources) == ["d", "a", "b", "c"]
        assert ctx.get("k") == "d"

    def test_unknown_source_in_reordering(self):
        with pytest.raises(ConfigurationError, match="not registered"):
            staged_abcd().increase_priority("zzz")

    def test_sort_property_sources(self):
        builder = staged_abcd().highest_priority("d").sort_property_sources()
        assert names(builder.property_sources) == ["a", "b", "c", "d"]

    def test_sort_with_custom_key(self):
        builder = staged_abcd().sort_property_sources(key=lambda s: s.name)
        assert names(builder.property_sources) == ["a", "b", "c", "d"]
        builder.sort_property_sources(key=lambda s: s.ordinal)
        assert names(builder.property_sources) == ["d", "c", "b", "a"]

    def test_build_twice_fails(self):
        builder = ContextBuilder()
        builder.build()
        with pytest.raises(ConfigurationError, match="already built"):
            builder.build()

    @pytest.mark.parametrize(
        "mutate",
        [
            lambda b: b.add_property_sources(MapPropertySource("x", {})),
            lambda b: b.remove_property_sources("a"),
            lambda b: b.add_property_filters(ValueFilter(lambda e: e)),
            lambda b: b.remove_property_filters(),
            lambda b: b.add_property_converters(INT, lambda r, c: 1),
            lambda b: b.remove_property_converters(INT),
            lambda b: b.add_default_property_converters(),
            lambda b: b.set_combination_policy(CollectingPolicy()),
            lambda b: b.increase_priority("a"),
            lambda b: b.lowest_priority("a"),
            lambda b: b.sort_property_sources(),
        ],
    )
    def test_mutators_fail_after_build(self, mutate):
        builder = ContextBuilder().add_property_sources(MapPropertySource("a", {"k": "v"}))
        ctx = builder.build()
        with pytest.raises(ConfigurationError):
            mutate(builder)
        assert names(ctx.property_sources) == ["a"]

    def test_context_is_independent_of_staging_list(self):
        builder = ContextBuilder().add_property_sources(MapPropertySource("a", {"k": "v"}))
        ctx = builder.build()
        builder._sources.append(MapPropertySource("b", {"k": "w"}))
        assert names(ctx.property_sources) == ["a"]
        assert ctx.get("k") == "v"

    def test_converters(self):
        builder = ContextBuilder().add_default_property_converters()
        assert BOOL in builder.property_converters
        builder.remove_property_converters(BOOL)
        assert BOOL not in builder.property_converters

    def test_remove_single_converter(self):
        first, second = (lambda r, c: 1), (lambda r, c: 2)
        builder = ContextBuilder().add_property_converters(INT, first, second)
        builder.remove_property_converters(INT, first)
        assert builder.property_converters[INT] == (second,)

    def test_filters(self):
        flt = ValueFilter(lambda e: e)
        builder = ContextBuilder().add_property_filters(flt, flt)
        assert builder.property_filters == (flt,)
        builder.remove_property_filters(flt)
        assert builder.property_filters == ()

    def test_null_policy_rejected(self):
        with pytest.raises(ConfigurationError):
            ContextBuilder().set_combination_policy(None)

    def test_with_context(self):
        policy = CollectingPolicy()
        base = staged_abcd().highest_priority("d").set_combination_policy(policy).build()
        ctx = (
            ContextBuilder(base)
            .add_property_sources(MapPropertySource("e", {"k": "e"}, ordinal=100))
            .build()
        )
        assert names(ctx.property_sources) == ["e", "d", "a", "b", "c"]
        assert ctx.combination_policy is policy

    def test_default_sources(self, monkeypatch):
        monkeypatch.setenv("STRATA_TEST_HOME", "/h")
        ctx = (
            ContextBuilder()
            .add_default_property_sources(["--STRATA_TEST_HOME=/cli", "--verbose"])
            .build()
        )
        assert names(ctx.property_sources) == ["cli", "environment"]
        assert ctx.get("STRATA_TEST_HOME") == "/cli"
        assert ctx.get("verbose") == "true"
