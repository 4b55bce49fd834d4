"""Unit tests for the SQL statement boundary scanner."""

import pytest

from pypgsense.core.models import Document, StatementSpan
from pypgsense.infrastructure.chunking.sql import (
    SqlStatementChunker,
    has_executable_sql,
    read_dollar_tag,
    skip_leading_trivia,
    split_raw_segments,
    split_statements,
    strip_comments,
)


def contents(source: str) -> list[str]:
    return [span.content for span in split_statements(source)]


class TestBasicSplitting:
    """Tests for splitting on top-level terminators."""

    def test_two_statements(self):
        """Test that each terminator ends a statement and is kept in it."""
        assert contents("SELECT 1; SELECT 2;") == ["SELECT 1;", "SELECT 2;"]

    def test_trailing_statement_without_terminator(self):
        """Test that end of input flushes the last statement."""
        assert contents("SELECT 1;\nSELECT 2") == ["SELECT 1;", "SELECT 2"]

    def test_offsets_index_the_source(self):
        """Test that content_start/content_end slice the source to the content."""
        source = "  SELECT 1;\n\n  UPDATE t SET a = 1;  \n"
        for span in split_statements(source):
            assert source[span.content_start : span.content_end] == span.content

    def test_whitespace_only_input(self):
        """Test that blank input yields nothing."""
        assert split_statements("   \n\t ") == []
        assert split_statements("") == []

    def test_lone_terminators_are_dropped(self):
        """Test that empty statements between terminators are discarded."""
        assert contents(";;; SELECT 1;;") == ["SELECT 1;"]


class TestQuoting:
    """Tests for terminators hidden inside quotes."""

    def test_semicolon_in_single_quotes(self):
        """Test that a quoted semicolon does not split."""
        assert contents("SELECT 'a;b'; SELECT 2;") == ["SELECT 'a;b';", "SELECT 2;"]

    def test_doubled_single_quote_does_not_close(self):
        """Test the '' escape inside a string literal."""
        assert contents("SELECT 'it''s; fine'; SELECT 2;") == [
            "SELECT 'it''s; fine';",
            "SELECT 2;",
        ]

    def test_semicolon_in_double_quoted_identifier(self):
        """Test that a quoted identifier may contain a semicolon."""
        assert contents('SELECT "we;ird" FROM t; SELECT 2;') == [
            'SELECT "we;ird" FROM t;',
            "SELECT 2;",
        ]

    def test_unterminated_quote_runs_to_end(self):
        """Test that an unclosed quote swallows the rest of the input."""
        assert contents("SELECT 'abc; SELECT 2;") == ["SELECT 'abc; SELECT 2;"]


class TestComments:
    """Tests for line and block comments."""

    def test_semicolon_in_line_comment(self):
        """Test that a commented-out terminator is ignored and leading comments are trimmed."""
        assert contents("SELECT 1; -- a;b\nSELECT 2;") == ["SELECT 1;", "SELECT 2;"]

    def test_nested_block_comment(self):
        """Test that block comments nest and hide terminators."""
        source = "/* outer /* inner; */ still; */ SELECT 1; SELECT 2;"
        assert contents(source) == ["SELECT 1;", "SELECT 2;"]

    def test_comment_only_segment_is_discarded(self):
        """Test that a segment with only comments and a terminator produces nothing."""
        assert contents("-- just a note\n;\n/* block */;") == []

    def test_trailing_comment_stays_in_statement(self):
        """Test that a comment after the statement body belongs to the next segment."""
        assert contents("SELECT 1; -- done") == ["SELECT 1;"]

    def test_comment_inside_statement_is_kept(self):
        """Test that only leading comments are trimmed."""
        assert contents("SELECT /* cols */ 1;") == ["SELECT /* cols */ 1;"]


class TestDollarQuoting:
    """Tests for PostgreSQL dollar-quoted bodies."""

    def test_function_body_with_semicolons(self):
        """Test that a $$ body keeps its inner terminators."""
        source = (
            "CREATE FUNCTION f() RETURNS int AS $$ BEGIN RETURN 1; END; $$ LANGUAGE plpgsql;\n"
            "SELECT f();"
        )
        assert contents(source) == [
            "CREATE FUNCTION f() RETURNS int AS $$ BEGIN RETURN 1; END; $$ LANGUAGE plpgsql;",
            "SELECT f();",
        ]

    def test_tagged_body_ignores_other_tags(self):
        """Test that $body$ only closes on $body$."""
        source = "SELECT $body$ a; $$ b; $body$; SELECT 2;"
        assert contents(source) == ["SELECT $body$ a; $$ b; $body$;", "SELECT 2;"]

    def test_positional_parameter_is_not_a_tag(self):
        """Test that $1 followed by a non-tag character is an ordinary character."""
        assert contents("SELECT $1; SELECT 2;") == ["SELECT $1;", "SELECT 2;"]

    def test_dollar_inside_identifier_is_not_a_tag(self):
        """Test that identifiers containing $ do not open a dollar-quoted block."""
        source = "SELECT a$b$c FROM t; SELECT 2;"
        assert contents(source) == ["SELECT a$b$c FROM t;", "SELECT 2;"]


class TestSegments:
    """Tests for the raw segment tiling."""

    @pytest.mark.parametrize(
        "source",
        [
            "SELECT 1; SELECT 'x;y'; -- c\n SELECT 3",
            "/* a; */ SELECT $$;$$;  ",
            ";;",
        ],
    )
    def test_segments_tile_the_source(self, source):
        """Test that raw segments are contiguous and cover the whole input."""
        segments = list(split_raw_segments(source))
        assert segments[0][0] == 0
        assert segments[-1][1] == len(source)
        for (_, end), (start, _) in zip(segments, segments[1:], strict=False):
            assert end == start

    def test_spans_are_ordered_and_disjoint(self):
        """Test that statement spans never overlap."""
        spans = split_statements("SELECT 1; SELECT 2; SELECT 3;")
        for first, second in zip(spans, spans[1:], strict=False):
            assert first.content_end <= second.content_start


class TestHelpers:
    """Tests for the scanner's helper functions."""

    def test_read_dollar_tag(self):
        """Test valid and invalid dollar tag openers."""
        assert read_dollar_tag("$$ body $$", 0) == "$$"
        assert read_dollar_tag("x $fn_1$ body", 2) == "$fn_1$"
        assert read_dollar_tag("$1 + 2", 0) is None
        assert read_dollar_tag("$open", 0) is None

    def test_strip_comments(self):
        """Test that line and nested block comments are removed."""
        assert strip_comments("a -- b\nc /* d /* e */ f */ g") == "a \nc  g"

    def test_has_executable_sql(self):
        """Test detection of comment-only chunks."""
        assert has_executable_sql("SELECT 1;") is True
        assert has_executable_sql("-- note\n;") is False
        assert has_executable_sql("/* x */ ;  ") is False

    def test_skip_leading_trivia(self):
        """Test that whitespace and comments before the first token are skipped."""
        source = "  -- c\n /* b */ SELECT"
        assert source[skip_leading_trivia(source, 0, len(source)) :] == "SELECT"


class TestSqlStatementChunker:
    """Tests for the chunker wrapper."""

    def test_supported_extensions(self):
        """Test that only .sql files are handled."""
        assert SqlStatementChunker().supported_extensions == [".sql"]

    def test_process_yields_statement_spans(self):
        """Test that process() splits the document content."""
        doc = Document(uri="q.sql", content="SELECT 1; SELECT 2;")

        spans = list(SqlStatementChunker().process(doc))

        assert len(spans) == 2
        assert all(isinstance(span, StatementSpan) for span in spans)
        assert spans[1].content == "SELECT 2;"
