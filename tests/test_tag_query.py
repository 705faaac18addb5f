"""Tests for the tag query language."""

import pytest

from sweep.exceptions import InvalidToken
from sweep.tag_query import (
    AND,
    LPAREN,
    MAX_NESTING,
    NOT,
    OR,
    RPAREN,
    TAG,
    And,
    Not,
    Or,
    Tag,
    TagQuery,
    eval_tag_query,
    evaluate,
    parse,
    tokenize,
)

TAGS = {"foo", "bar", "baz"}


class RecordingTags:
    """Tag container recording every membership test."""

    def __init__(self, tags):
        self.tags = set(tags)
        self.checked = []

    def __contains__(self, tag):
        self.checked.append(tag)
        return tag in self.tags


class TestTokenize:
    """Tests for tokenization."""

    def test_operators_and_tags(self):
        tokens = tokenize("!a&(b|c)")
        assert [token.kind for token in tokens] == [NOT, TAG, AND, LPAREN, TAG, OR, TAG, RPAREN]
        assert [token.text for token in tokens] == ["!", "a", "&", "(", "b", "|", "c", ")"]

    def test_positions(self):
        tokens = tokenize("  web & db")
        assert [(token.text, token.position) for token in tokens] == [
            ("web", 2), ("&", 6), ("db", 8),
        ]

    def test_whitespace_only(self):
        assert tokenize(" \t\n ") == []


class TestParse:
    """Tests for parsing into an expression tree."""

    def test_single_tag(self):
        assert parse("foo") == Tag("foo")

    def test_precedence(self):
        """Test that ! binds tighter than &, which binds tighter than |."""
        assert parse("a | b & !c") == Or(Tag("a"), And(Tag("b"), Not(Tag("c"))))

    def test_left_associative(self):
        assert parse("a & b & c") == And(And(Tag("a"), Tag("b")), Tag("c"))
        assert parse("a | b | c") == Or(Or(Tag("a"), Tag("b")), Tag("c"))

    def test_parentheses(self):
        assert parse("(a | b) & c") == And(Or(Tag("a"), Tag("b")), Tag("c"))

    def test_double_negation(self):
        assert parse("!!a") == Not(Not(Tag("a")))

    def test_whitespace_insensitive(self):
        assert parse("foo&!(bar|biz)") == parse("  foo &  ! ( bar | biz ) ")

    @pytest.mark.parametrize("query", [
        "",
        "   ",
        "foo &",
        "| foo",
        "foo & | bar",
        "(foo",
        "foo)",
        "()",
        "foo bar",
        "!",
        "foo & (bar | )",
    ])
    def test_malformed_queries(self, query):
        """Test that every malformed query is an error, never a silent no-match."""
        with pytest.raises(InvalidToken):
            parse(query)

    def test_error_names_fragment_and_position(self):
        with pytest.raises(InvalidToken) as exc_info:
            parse("foo & | bar")

        error = exc_info.value
        assert error.position == 6
        assert error.fragment.startswith("|")
        assert "position 6" in str(error)

    def test_unmatched_closing_paren(self):
        with pytest.raises(InvalidToken, match="unmatched '\\)'"):
            parse("foo)")

    def test_unmatched_opening_paren(self):
        with pytest.raises(InvalidToken, match="unmatched '\\('") as exc_info:
            parse("foo & (bar")
        assert exc_info.value.position == 6

    def test_empty_expression(self):
        with pytest.raises(InvalidToken, match="empty expression"):
            parse("")

    def test_nesting_limit(self):
        parse("(" * MAX_NESTING + "foo" + ")" * MAX_NESTING)

        with pytest.raises(InvalidToken, match="nested too deeply") as exc_info:
            parse("(" * 2000 + "foo" + ")" * 2000)
        assert exc_info.value.position == MAX_NESTING


class TestEvaluate:
    """Tests for evaluation against a tag set."""

    def test_reference_equalities(self):
        """Test the reference queries against {foo, bar, baz}."""
        assert eval_tag_query("foo", TAGS) is True
        assert eval_tag_query("foo | biz", TAGS) is True
        assert eval_tag_query("foo & biz", TAGS) is False
        assert eval_tag_query("foo & (bar | biz)", TAGS) is True
        assert eval_tag_query("foo & !(bar | biz)", TAGS) is False

    def test_exact_membership(self):
        """Test that tags match exactly, not by prefix or case."""
        assert eval_tag_query("fo", TAGS) is False
        assert eval_tag_query("FOO", TAGS) is False

    def test_empty_tag_set(self):
        assert eval_tag_query("foo", set()) is False
        assert eval_tag_query("!foo", set()) is True

    def test_and_short_circuits(self):
        """Test that the right operand of & is skipped when the left is false."""
        tags = RecordingTags({"bar"})
        assert evaluate(parse("foo & bar"), tags) is False
        assert tags.checked == ["foo"]

    def test_or_short_circuits(self):
        """Test that the right operand of | is skipped when the left is true."""
        tags = RecordingTags({"foo"})
        assert evaluate(parse("foo | bar"), tags) is True
        assert tags.checked == ["foo"]

    def test_no_short_circuit_when_undecided(self):
        tags = RecordingTags({"foo", "bar"})
        assert evaluate(parse("foo & bar"), tags) is True
        assert tags.checked == ["foo", "bar"]

    def test_long_negation_chain(self):
        assert eval_tag_query("!" * 3000 + "foo", TAGS) is True
        assert eval_tag_query("!" * 3001 + "foo", TAGS) is False

    def test_long_operator_chains(self):
        assert eval_tag_query(" & ".join(["foo"] * 3000), TAGS) is True
        assert eval_tag_query(" | ".join(["biz"] * 3000 + ["bar"]), TAGS) is True
        assert eval_tag_query(" & ".join(["foo"] * 3000 + ["biz"]), TAGS) is False


class TestTagQuery:
    """Tests for the compiled TagQuery wrapper."""

    def test_matches(self):
        query = TagQuery("web & !staging")
        assert query.matches({"web", "prod"})
        assert not query.matches({"web", "staging"})
        assert not query.matches(set())

    def test_source(self):
        query = TagQuery("db | cache")
        assert str(query) == "db | cache"
        assert repr(query) == "TagQuery('db | cache')"
        assert query.tree == Or(Tag("db"), Tag("cache"))

    def test_invalid_query_fails_at_construction(self):
        with pytest.raises(InvalidToken):
            TagQuery("db |")
