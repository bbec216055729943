"""Unit tests for the dialect-aware search SQL constructs."""

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from planet_core.domain.models import Message
from planet_core.domain.search_sql import (
    fulltext_match,
    regconfig,
    trigram_match,
    trigram_score,
)
from planet_core.domain.text import like_pattern


def _compile(clause, dialect) -> str:
    return str(select(Message.id).where(clause).compile(dialect=dialect))


class TestTrigramMatch:
    """Tests for trigram_match compilation."""

    def test_postgresql_uses_index_operators_only(self):
        """Test that both arms are operators the gin_trgm_ops index supports."""
        clause = trigram_match(Message.searchable_text, "swim", 0.3, like_pattern("swim"))

        sql = _compile(clause, postgresql.dialect())

        assert "<%% messages.searchable_text" in sql
        assert "messages.searchable_text LIKE" in sql
        assert "position(" not in sql

    def test_other_dialects_call_registered_function(self):
        clause = trigram_match(Message.searchable_text, "swim", 0.3, like_pattern("swim"))

        sql = _compile(clause, sqlite.dialect())

        assert "planet_trgm_match(messages.searchable_text, ?, ?, ?)" in sql


class TestFulltext:
    """Tests for the full-text constructs."""

    def test_postgresql_uses_literal_config(self):
        clause = fulltext_match(Message.searchable_text, "beach", regconfig("simple"))

        sql = _compile(clause, postgresql.dialect())

        assert "to_tsvector('simple'::regconfig, messages.searchable_text)" in sql
        assert "plainto_tsquery('simple'::regconfig" in sql

    def test_postgresql_word_similarity(self):
        sql = str(
            select(trigram_score(Message.searchable_text, "swim")).compile(
                dialect=postgresql.dialect()
            )
        )

        assert "word_similarity(" in sql
