"""Unit tests for SQL token highlighting."""

from pypgsense.core.models import SqlCandidateGroup, StringFragment
from pypgsense.infrastructure.chunking.tokens import (
    classify_sql_token,
    highlight_candidates,
    tokenize_sql,
)


class TestClassifySqlToken:
    """Tests for classify_sql_token."""

    def test_token_types(self):
        """Test each token class."""
        assert classify_sql_token("SELECT") == "keyword"
        assert classify_sql_token("from") == "keyword"
        assert classify_sql_token("'abc'") == "string"
        assert classify_sql_token("42") == "number"
        assert classify_sql_token(">=") == "operator"
        assert classify_sql_token(",") == "operator"
        assert classify_sql_token("users") == "variable"


class TestTokenizeSql:
    """Tests for tokenize_sql."""

    def test_tokens_with_offsets(self):
        """Test that tokens carry offsets into the tokenized text."""
        tokens = tokenize_sql("SELECT id FROM t WHERE n = 'x''y'")

        values = [(t.value, t.type) for t in tokens]
        assert values == [
            ("SELECT", "keyword"),
            ("id", "variable"),
            ("FROM", "keyword"),
            ("t", "variable"),
            ("WHERE", "keyword"),
            ("n", "variable"),
            ("=", "operator"),
            ("'x''y'", "string"),
        ]
        assert tokens[2].start == 10


class TestHighlightCandidates:
    """Tests for mapping tokens back into host source."""

    def test_offsets_are_shifted_per_fragment(self):
        """Test that every token offset indexes the host source."""
        source = 'q = "SELECT a " + "FROM t"'
        group = SqlCandidateGroup(
            parts=[
                StringFragment(start_offset=5, text="SELECT a "),
                StringFragment(start_offset=19, text="FROM t"),
            ],
            content="SELECT a \nFROM t",
        )

        tokens = highlight_candidates([group])

        assert [t.value for t in tokens] == ["SELECT", "a", "FROM", "t"]
        for token in tokens:
            assert source[token.start : token.start + len(token.value)] == token.value

    def test_no_groups(self):
        """Test that nothing is produced without candidates."""
        assert highlight_candidates([]) == []
