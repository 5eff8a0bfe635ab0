"""Tests for placeholder expansion and wildcard aggregation."""

import json

import pytest

from config_sync.errors import ResolutionFailure
from config_sync.resolver import ValueResolver, is_pattern, simple_match
from config_sync.snapshot import Snapshot


@pytest.fixture
def resolver() -> ValueResolver:
    return ValueResolver(fallback={"HOME": "/home/app", "db.host": "env-host"})


class TestSimpleMatch:
    def test_star_matches_any_run(self) -> None:
        assert simple_match("app.user.hobby.*", "app.user.hobby.a")
        assert simple_match("app.user.hobby.*", "app.user.hobby.")
        assert simple_match("*.port", "db.port")
        assert simple_match("a*c*e", "abcde")

    def test_other_glob_characters_are_literal(self) -> None:
        assert simple_match("tags[*]", "tags[0]")
        assert not simple_match("a?c", "abc")
        assert not simple_match("app.user.*", "other.user.a")

    def test_literal_pattern_is_equality(self) -> None:
        assert simple_match("a.b", "a.b")
        assert not simple_match("a.b", "a.bc")
        assert not is_pattern("a.b")
        assert is_pattern("a.*")


class TestResolve:
    def test_plain_value_unchanged(self, resolver) -> None:
        assert resolver.resolve("plain", Snapshot({})) == "plain"

    def test_snapshot_wins_over_fallback(self, resolver) -> None:
        snapshot = Snapshot({"db.host": "snap-host"})
        assert resolver.resolve("jdbc://${db.host}/x", snapshot) == "jdbc://snap-host/x"

    def test_fallback_then_default(self, resolver) -> None:
        assert resolver.resolve("${HOME}/logs", Snapshot({})) == "/home/app/logs"
        assert resolver.resolve("${missing:42}", Snapshot({})) == "42"
        assert resolver.resolve("${missing:}", Snapshot({})) == ""

    def test_missing_required_placeholder_raises(self, resolver) -> None:
        with pytest.raises(ResolutionFailure) as excinfo:
            resolver.resolve("${missing}", Snapshot({}))
        assert excinfo.value.key == "missing"

    def test_lenient_leaves_placeholder(self, resolver) -> None:
        assert resolver.resolve("x=${missing}", Snapshot({}), strict=False) == "x=${missing}"

    def test_expansion_is_not_recursive(self, resolver) -> None:
        snapshot = Snapshot({"a": "${b}", "b": "1"})
        assert resolver.resolve("${a}", snapshot) == "${b}"

    def test_placeholder_keys(self) -> None:
        assert ValueResolver.placeholder_keys("${a}-${b:x}") == ["a", "b"]


class TestAggregate:
    def test_aggregate_builds_json_object(self, resolver) -> None:
        snapshot = Snapshot({
            "app.user.hobby.a": "1",
            "app.title": "t",
            "app.user.hobby.b": "2",
        })

        value = resolver.aggregate("app.user.hobby.*", snapshot)

        assert value == '{"app.user.hobby.a":"1","app.user.hobby.b":"2"}'

    def test_members_are_resolved_and_json_embedded(self, resolver) -> None:
        snapshot = Snapshot({
            "m.list": "[1, 2]",
            "m.ref": "${base}/x",
            "base": "root",
        })

        value = json.loads(resolver.aggregate("m.*", snapshot))

        assert value == {"m.list": [1, 2], "m.ref": "root/x"}

    def test_no_match_gives_empty_object(self, resolver) -> None:
        assert resolver.aggregate("none.*", Snapshot({"a": "1"})) == "{}"
