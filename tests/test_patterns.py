"""Tests for wildcard key patterns."""

import pytest

from envpocket.vault.patterns import compile_pattern, has_wildcards, matches


class TestPatternMatching:
    """Shell-style * and ? over whole keys."""

    @pytest.mark.parametrize("text,pattern,expected", [
        ("v1", "v?", True),
        ("v10", "v?", False),
        ("app-dev-1", "app-*-?", True),
        ("app-prod-1", "app-*-?", True),
        ("db-dev-1", "app-*-?", False),
        ("app-dev-10", "app-*-?", False),
        ("test-1", "test-*", True),
        ("test-", "test-*", True),
        ("prod-1", "test-*", False),
    ])
    def test_wildcards(self, text, pattern, expected):
        assert matches(text, pattern) is expected

    def test_star_matches_everything(self):
        matcher = compile_pattern("*")
        assert matcher.matches("")
        assert matcher.matches("anything at all")

    def test_match_is_anchored(self):
        matcher = compile_pattern("dev-*")
        assert matcher.matches("dev-api")
        assert not matcher.matches("my-dev-api")
        assert not compile_pattern("dev").matches("dev-api")

    @pytest.mark.parametrize("pattern,literal,lookalike", [
        ("a.b", "a.b", "axb"),
        ("a+b", "a+b", "aab"),
        ("[ab]", "[ab]", "a"),
        ("x(1)", "x(1)", "x1"),
        ("^start$", "^start$", "start"),
        ("a|b", "a|b", "a"),
        ("c\\d", "c\\d", "c1"),
        ("{1,2}", "{1,2}", "1"),
    ])
    def test_regex_metacharacters_are_literal(self, pattern, literal, lookalike):
        matcher = compile_pattern(pattern)
        assert matcher.matches(literal)
        assert not matcher.matches(lookalike)

    def test_question_mark_matches_exactly_one(self):
        matcher = compile_pattern("k??")
        assert matcher.matches("kab")
        assert not matcher.matches("ka")
        assert not matcher.matches("kabc")

    def test_empty_pattern_matches_only_empty(self):
        matcher = compile_pattern("")
        assert matcher.matches("")
        assert not matcher.matches("a")

    def test_matcher_keeps_source_pattern(self):
        assert compile_pattern("api-*").pattern == "api-*"


class TestHasWildcards:

    @pytest.mark.parametrize("text,expected", [
        ("plain-key", False),
        ("key-*", True),
        ("key-?", True),
        ("", False),
        ("a.b+c", False),
    ])
    def test_detection(self, text, expected):
        assert has_wildcards(text) is expected
