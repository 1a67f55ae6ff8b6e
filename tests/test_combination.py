"""Unit tests for ordinals and combination policies."""

from __future__ import annotations

import logging

import pytest

from strata.core.builder import ContextBuilder
from strata.core.combination import (
    AdaptiveCombinationPolicy,
    CollectingPolicy,
    OverridingPolicy,
    PolicyRegistry,
    fold,
)
from strata.core.exceptions import ConfigurationError
from strata.core.ordinal import ORDINAL_KEY, ordinal_of, sort_sources
from strata.core.source import MapPropertySource


def context(policy, *sources):
    return ContextBuilder().add_property_sources(*sources).set_combination_policy(policy).build()


class TestOrdinal:
    """Test suite for the ordinal resolver."""

    def test_default_ordinal(self):
        assert ordinal_of(MapPropertySource("a", {})) == 0
        assert ordinal_of(MapPropertySource("a", {}, ordinal=12)) == 12

    def test_reserved_key(self):
        source = MapPropertySource("a", {ORDINAL_KEY: " 250 "}, ordinal=12)
        assert ordinal_of(source) == 250

    def test_custom_reserved_key(self):
        source = MapPropertySource("a", {"priority": "3"}, ordinal=12)
        assert ordinal_of(source, "priority") == 3
        assert ordinal_of(source) == 12

    def test_explicit_ordinal_first(self):
        source = MapPropertySource("a", {ORDINAL_KEY: "250"}, ordinal=12)
        source.set_ordinal(-5)
        assert ordinal_of(source) == -5

    def test_unparseable_reserved_value(self, caplog):
        source = MapPropertySource("a", {ORDINAL_KEY: "high"}, ordinal=12)
        with caplog.at_level(logging.WARNING):
            assert ordinal_of(source) == 12
        assert "not an integer" in caplog.text

    def test_sort_order(self):
        sources = [
            MapPropertySource("c", {}, ordinal=1),
            MapPropertySource("b", {}, ordinal=5),
            MapPropertySource("a", {}, ordinal=1),
        ]
        assert [s.name for s in sort_sources(sources)] == ["b", "a", "c"]


class TestOverridingPolicy:
    def test_carries_value_forward(self):
        low = MapPropertySource("low", {"k": "1"})
        high = MapPropertySource("high", {"other": "2"})
        entry = fold("k", [low, high], OverridingPolicy())
        assert entry.value == "1"
        assert entry.source == "low"

    def test_none_value_ignored_by_default(self):
        low = MapPropertySource("low", {"k": "1"})
        high = MapPropertySource("high", {"k": None})
        assert fold("k", [low, high], OverridingPolicy()).value == "1"

    def test_none_value_removes_when_allowed(self):
        low = MapPropertySource("low", {"k": "1"})
        high = MapPropertySource("high", {"k": None})
        assert fold("k", [low, high], OverridingPolicy(allow_removal=True)) is None


class TestCollectingPolicy:
    def test_joins_weakest_first(self):
        ctx = context(
            CollectingPolicy(),
            MapPropertySource("low", {"k": "1"}, ordinal=1),
            MapPropertySource("high", {"k": "2"}, ordinal=2),
        )
        assert ctx.get("k") == "1,2"
        assert ctx.get_all()["k"] == "1,2"

    def test_source_separator(self):
        ctx = context(
            CollectingPolicy(),
            MapPropertySource("low", {"k": "1"}, ordinal=1),
            MapPropertySource("high", {"k": "2", "_k.item-separator": ";"}, ordinal=2),
        )
        assert ctx.get("k") == "1;2"


class TestAdaptivePolicy:
    """Test suite for per-key policy selection."""

    def test_defaults_to_overriding(self):
        ctx = context(
            AdaptiveCombinationPolicy(),
            MapPropertySource("low", {"k": "a"}, ordinal=1),
            MapPropertySource("high", {"k": "b"}, ordinal=2),
        )
        assert ctx.get("k") == "b"

    def test_source_selects_policy(self):
        ctx = context(
            AdaptiveCombinationPolicy(),
            MapPropertySource("low", {"k": "a"}, ordinal=1),
            MapPropertySource("high", {"k": "b", "_k.combination-policy": "COLLECT"}, ordinal=2),
        )
        assert ctx.get("k") == "a,b"
        assert ctx.get("_k.combination-policy") == "COLLECT"

    def test_registered_policy(self):
        class Keep:
            def collect(self, current, key, source):
                return current or source.get(key)

        registry = PolicyRegistry()
        registry.register("keep-first", Keep())
        ctx = context(
            AdaptiveCombinationPolicy(registry),
            MapPropertySource("low", {"k": "a"}, ordinal=1),
            MapPropertySource("high", {"k": "b", "_k.combination-policy": "keep-first"}, ordinal=2),
        )
        assert ctx.get("k") == "a"
        assert "keep-first" in registry.names()

    def test_unknown_policy_falls_back(self, caplog):
        ctx = context(
            AdaptiveCombinationPolicy(),
            MapPropertySource("low", {"k": "a"}, ordinal=1),
            MapPropertySource("high", {"k": "b", "_k.combination-policy": "nope"}, ordinal=2),
        )
        with caplog.at_level(logging.ERROR):
            assert ctx.get("k") == "b"
        assert "Unknown combination policy" in caplog.text

    def test_unknown_policy_strict(self):
        ctx = context(
            AdaptiveCombinationPolicy(strict=True),
            MapPropertySource("low", {"k": "a"}, ordinal=1),
            MapPropertySource("high", {"k": "b", "_k.combination-policy": "nope"}, ordinal=2),
        )
        with pytest.raises(ConfigurationError, match="nope"):
            ctx.get("k")
