"""Unit tests for the SQL-likeness heuristic."""

import pytest

from pypgsense.infrastructure.chunking.classifier import MIN_SQL_LENGTH, looks_like_sql


class TestLooksLikeSql:
    """Tests for looks_like_sql."""

    @pytest.mark.parametrize(
        "text",
        [
            "SELECT * FROM users",
            "select id\n  from orders where total > 10",
            "INSERT INTO logs VALUES (1)",
            "UPDATE users SET name = 'x'",
            "DELETE FROM sessions WHERE expired",
            "WITH recent AS (SELECT 1) SELECT * FROM recent",
            "CREATE TABLE widgets (id int)",
        ],
    )
    def test_accepts_sql(self, text):
        """Test typical statements are recognized."""
        assert looks_like_sql(text) is True

    @pytest.mark.parametrize(
        "text",
        [
            "hello world, nothing to see",
            "select",
            "SELECT 1",
            "drop it like it's hot",
        ],
    )
    def test_rejects_prose_and_fragments(self, text):
        """Test that short strings and keyword-less prose are rejected."""
        assert looks_like_sql(text) is False

    def test_minimum_length_counts_collapsed_whitespace(self):
        """Test that whitespace runs are collapsed before the length check."""
        assert MIN_SQL_LENGTH == 10
        assert looks_like_sql("drop\n\n\n\n   t") is False
        assert looks_like_sql("drop table t") is True

    def test_opener_must_be_whole_word(self):
        """Test that openers embedded in other words do not count."""
        assert looks_like_sql("selection from the catalogue") is False

    def test_prose_with_keywords_is_accepted(self):
        """Test that the heuristic favours recall over precision."""
        assert looks_like_sql("Please select an option from the menu below") is True
