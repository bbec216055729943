"""Dialect-aware SQL constructs for message search.

On PostgreSQL these compile to the native text search and pg_trgm
operators so the GIN indexes on ``messages.searchable_text`` are used.
Everywhere else they compile to plain function calls; the SQLite engine
gets matching implementations from ``install_sqlite_functions``.
"""

from sqlalchemy import Boolean, Float, literal_column
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.expression import FunctionElement


def regconfig(name: str):
    """Render a text search configuration as an inline ``regconfig`` literal.

    The index expression uses a literal config, so queries must as well for
    the planner to match it.
    """
    return literal_column(f"'{name}'::regconfig")


class fulltext_match(FunctionElement):
    """``document`` matches every word of ``query``."""

    type = Boolean()
    name = "fulltext_match"
    inherit_cache = True


class fulltext_rank(FunctionElement):
    """Relevance of ``document`` for ``query``."""

    type = Float()
    name = "fulltext_rank"
    inherit_cache = True


class trigram_match(FunctionElement):
    """``document`` matches the LIKE ``pattern`` or ``query`` is trigram-similar to part of it.

    Arguments: document, query, threshold, pattern (see ``text.like_pattern``).
    """

    type = Boolean()
    name = "trigram_match"
    inherit_cache = True


class trigram_score(FunctionElement):
    """Word similarity of ``query`` within ``document``."""

    type = Float()
    name = "trigram_score"
    inherit_cache = True


def _args(element, compiler, **kw) -> list[str]:
    return [compiler.process(clause, **kw) for clause in element.clauses]


@compiles(fulltext_match)
def _fulltext_match_default(element, compiler, **kw):
    document, query, _config = _args(element, compiler, **kw)
    return f"planet_fts_match({document}, {query})"


@compiles(fulltext_match, "postgresql")
def _fulltext_match_pg(element, compiler, **kw):
    document, query, config = _args(element, compiler, **kw)
    return f"to_tsvector({config}, {document}) @@ plainto_tsquery({config}, {query})"


@compiles(fulltext_rank)
def _fulltext_rank_default(element, compiler, **kw):
    document, query, _config = _args(element, compiler, **kw)
    return f"planet_fts_rank({document}, {query})"


@compiles(fulltext_rank, "postgresql")
def _fulltext_rank_pg(element, compiler, **kw):
    document, query, config = _args(element, compiler, **kw)
    return f"ts_rank(to_tsvector({config}, {document}), plainto_tsquery({config}, {query}))"


@compiles(trigram_match)
def _trigram_match_default(element, compiler, **kw):
    document, query, threshold, pattern = _args(element, compiler, **kw)
    return f"planet_trgm_match({document}, {query}, {threshold}, {pattern})"


@compiles(trigram_match, "postgresql")
def _trigram_match_pg(element, compiler, **kw):
    # Threshold comes from pg_trgm.word_similarity_threshold, set per transaction.
    # Both arms are gin_trgm_ops operators, so the OR stays an index scan.
    clauses = list(element.clauses)
    document = compiler.process(clauses[0], **kw)
    query = compiler.process(clauses[1], **kw)
    pattern = compiler.process(clauses[3], **kw)
    # A literal % must be doubled for format/pyformat drivers such as psycopg
    percent = "%%" if compiler.dialect.paramstyle in ("format", "pyformat") else "%"
    return f"({query} <{percent} {document} OR {document} LIKE {pattern})"


@compiles(trigram_score)
def _trigram_score_default(element, compiler, **kw):
    document, query = _args(element, compiler, **kw)
    return f"planet_word_similarity({query}, {document})"


@compiles(trigram_score, "postgresql")
def _trigram_score_pg(element, compiler, **kw):
    document, query = _args(element, compiler, **kw)
    return f"word_similarity({query}, {document})"
