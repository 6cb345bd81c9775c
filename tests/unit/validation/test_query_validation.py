"""
Tests for standard-tier query validation.

Tests the length limit and the denylist patterns.
"""

import pytest

from src.remotedb.core.validation import find_violation, validate_query

MAX_LENGTH = 8192


class TestQueryLength:
    """Test the length limit."""

    def test_query_at_limit_passes(self) -> None:
        query = "SELECT 1" + " " * 56
        assert len(query) == 64
        assert validate_query(query, 64) is True

    def test_query_over_limit_fails(self) -> None:
        query = "SELECT 1" + " " * 57
        assert validate_query(query, 64) is False
        assert find_violation(query, 64) == "too_long"

    def test_length_counted_in_bytes(self) -> None:
        """Multi-byte characters count by their UTF-8 size."""
        query = "SELECT 'é'"  # 10 characters, 11 bytes
        assert validate_query(query, 11) is True
        assert validate_query(query, 10) is False


class TestDenylist:
    """Test the destructive statement and comment patterns."""

    @pytest.mark.parametrize("query", [
        "SELECT * FROM scores",
        "INSERT INTO scores (player, score) VALUES ('alice', 10)",
        "UPDATE scores SET score = 11 WHERE player = 'alice'",
        "DELETE FROM scores WHERE id = 3",
        "SELECT * FROM drop_log",
        "SELECT 'create' AS word",
        "SELECT 10 - 2",
        "SELECT '/' AS slash, '*' AS star",
    ])
    def test_allowed_queries(self, query: str) -> None:
        assert validate_query(query, MAX_LENGTH) is True

    @pytest.mark.parametrize("query", [
        "SELECT 1; DROP TABLE x",
        "SELECT 1;DROP TABLE x",
        "select 1;   drop table x",
        "SELECT 1;\n\tDrOp TABLE x",
        "SELECT 1; ALTER TABLE scores ADD COLUMN x INT",
        "SELECT 1; CREATE TABLE x (id INT)",
        "SELECT 1; TRUNCATE scores",
    ])
    def test_destructive_statements_rejected(self, query: str) -> None:
        assert validate_query(query, MAX_LENGTH) is False
        assert find_violation(query, MAX_LENGTH) == "destructive_statement"

    @pytest.mark.parametrize("query", [
        "SELECT * FROM scores -- trailing",
        "SELECT * FROM users WHERE name = 'admin'--",
        "--",
    ])
    def test_line_comments_rejected(self, query: str) -> None:
        assert find_violation(query, MAX_LENGTH) == "line_comment"

    @pytest.mark.parametrize("query", [
        "SELECT /* hidden */ 1",
        "SELECT 1 /**/",
    ])
    def test_block_comments_rejected(self, query: str) -> None:
        assert find_violation(query, MAX_LENGTH) == "block_comment"

    def test_block_comment_spanning_lines_not_caught(self) -> None:
        """The comment pattern matches within one line only, a known limit of the denylist."""
        assert find_violation("SELECT 1 /* spans\nlines */", MAX_LENGTH) is None

    def test_leading_destructive_statement_not_caught(self) -> None:
        """Only statements after a separator are denied; this is a known limit of the denylist."""
        assert validate_query("DROP TABLE scores", MAX_LENGTH) is True

    def test_length_checked_first(self) -> None:
        assert find_violation("SELECT 1; DROP TABLE x", 5) == "too_long"
