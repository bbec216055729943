"""Text normalization and matching helpers for message search.

The database does the heavy lifting in production (tsvector and pg_trgm).
These helpers build the derived ``searchable_text`` column and provide the
pure-Python matching used by the SQLite functions installed for local
development and tests, so both dialects agree on what a hit is.
"""

import math
import re
import unicodedata
from functools import lru_cache
from typing import Any, Optional

_WORD_RE = re.compile(r"\w+", re.UNICODE)
_SPACE_RE = re.compile(r"\s+")


def normalize_text(value: Optional[str]) -> str:
    """NFKC-normalize, lowercase and collapse whitespace."""
    if not value:
        return ""
    normalized = unicodedata.normalize("NFKC", value).lower()
    return _SPACE_RE.sub(" ", normalized).strip()


def build_searchable_text(
    body: Optional[str],
    file_metadata: Optional[dict[str, Any]] = None,
    system_metadata: Optional[dict[str, Any]] = None,
) -> Optional[str]:
    """Build the derived search column for a message.

    Concatenates the body, the attachment's original file name and the
    system event reason.

    Returns:
        Normalized text, or None when there is nothing to index.
    """
    parts = [body or ""]
    if file_metadata:
        parts.append(str(file_metadata.get("original_name") or ""))
    if system_metadata:
        parts.append(str(system_metadata.get("reason") or ""))

    text = normalize_text(" ".join(p for p in parts if p))
    return text or None


def tokenize(value: Optional[str]) -> list[str]:
    """Split text into lowercase word tokens (the 'simple' text search config)."""
    return _WORD_RE.findall(normalize_text(value))


def fulltext_match(document: Optional[str], query: Optional[str]) -> bool:
    """Every query token must appear in the document (plainto_tsquery semantics)."""
    query_tokens = tokenize(query)
    if not query_tokens:
        return False
    doc_tokens = set(tokenize(document))
    return all(token in doc_tokens for token in query_tokens)


def fulltext_rank(document: Optional[str], query: Optional[str]) -> float:
    """Frequency based rank, normalized by document length like ts_rank."""
    query_tokens = set(tokenize(query))
    doc_tokens = tokenize(document)
    if not query_tokens or not doc_tokens:
        return 0.0
    hits = sum(1 for token in doc_tokens if token in query_tokens)
    return hits / (1.0 + math.log(len(doc_tokens)))


def trigrams(value: Optional[str]) -> set[str]:
    """Extract pg_trgm style trigrams.

    Each word is padded with two spaces in front and one behind before
    being cut into three-character windows.
    """
    result: set[str] = set()
    for word in tokenize(value):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            result.add(padded[i:i + 3])
    return result


def trigram_similarity(left: Optional[str], right: Optional[str]) -> float:
    """Jaccard similarity of the two trigram sets (pg_trgm ``similarity``)."""
    a = trigrams(left)
    b = trigrams(right)
    if not a or not b:
        return 0.0
    return len(a & b) / len(a | b)


def word_similarity(query: Optional[str], document: Optional[str]) -> float:
    """Share of the query's trigrams found in the document.

    Approximates pg_trgm ``word_similarity``: a short query that occurs
    inside a long message still scores high.
    """
    q = trigrams(query)
    if not q:
        return 0.0
    d = trigrams(document)
    return len(q & d) / len(q)


def like_pattern(query: Optional[str]) -> str:
    """Substring LIKE pattern for ``query`` with ``\\``, ``%`` and ``_`` escaped.

    Backslash is the default LIKE escape character on PostgreSQL, and the
    pattern form lets the pg_trgm GIN index serve substring matches.
    """
    needle = normalize_text(query)
    escaped = needle.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


@lru_cache(maxsize=256)
def _like_regex(pattern: str) -> re.Pattern:
    parts = []
    chars = iter(pattern)
    for char in chars:
        if char == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def matches_like(document: Optional[str], pattern: Optional[str]) -> bool:
    """Evaluate a LIKE ``pattern`` (backslash escapes) against ``document``."""
    if document is None or not pattern:
        return False
    return _like_regex(pattern).fullmatch(document) is not None


def contains_text(document: Optional[str], query: Optional[str]) -> bool:
    """Case-insensitive substring check on normalized text, as the LIKE arm sees it."""
    if not normalize_text(query):
        return False
    return matches_like(normalize_text(document), like_pattern(query))
