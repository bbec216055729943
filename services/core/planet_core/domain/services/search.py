"""Message search.

Two strategies run against the derived ``searchable_text`` column:

1. full text: every query word must occur (tsvector / plainto_tsquery),
   ranked by ts_rank;
2. trigram: the query occurs as a substring (an escaped LIKE pattern) or
   is trigram-similar to part of the message, ranked by word similarity.
   This catches partial words and languages the text search
   configuration does not tokenize well.

Full-text hits come first, trigram-only hits fill the remaining slots.
Soft-deleted and redacted messages never match.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session as DBSession

from planet_core.config import Settings, get_settings
from planet_core.domain.errors import ForbiddenError
from planet_core.domain.models import READABLE_STATUSES, Message, PlanetUser, User, UserRole
from planet_core.domain.search_sql import (
    fulltext_match,
    fulltext_rank,
    regconfig,
    trigram_match,
    trigram_score,
)
from planet_core.domain.text import build_searchable_text, like_pattern, normalize_text
from planet_core.observability import get_logger

logger = get_logger(__name__)

MAX_LIMIT = 100
MAX_QUERY_LENGTH = 200


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class SearchHit:
    """A ranked search result."""

    message_id: int
    planet_id: int
    score: float
    matched_by: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "planet_id": self.planet_id,
            "score": self.score,
            "matched_by": self.matched_by,
            "created_at": self.created_at.isoformat(),
        }


# =============================================================================
# SERVICE
# =============================================================================


class SearchIndexCoordinator:
    """Runs message searches and maintains the search column."""

    def __init__(self, db: DBSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def search(
        self,
        query: str,
        planet_id: Optional[int] = None,
        limit: Optional[int] = None,
        actor_id: Optional[int] = None,
    ) -> list[SearchHit]:
        """Search live messages.

        Args:
            query: Free text.
            planet_id: Restrict to one conversation.
            limit: Maximum number of hits (clamped to MAX_LIMIT).
            actor_id: Searching identity. Non-admins only see conversations
                they are an active or muted member of.

        Returns:
            Hits ordered full-text first, then by score and recency.

        Raises:
            ForbiddenError: If the actor is unknown or not a member of
                ``planet_id``.
        """
        text = normalize_text(query)[:MAX_QUERY_LENGTH]
        if not text:
            return []

        limit = limit or self.settings.search_default_limit
        limit = max(1, min(limit, MAX_LIMIT))

        conditions = [
            Message.deleted_at.is_(None),
            Message.searchable_text.is_not(None),
        ]
        if planet_id is not None:
            conditions.append(Message.planet_id == planet_id)
        scope = self._membership_scope(actor_id, planet_id)
        if scope is not None:
            conditions.append(Message.planet_id.in_(scope))

        self._prepare_session()
        config = regconfig(self.settings.search_text_config)

        rank = fulltext_rank(Message.searchable_text, text, config).label("score")
        fts_stmt = (
            select(Message.id, Message.planet_id, Message.created_at, rank)
            .where(*conditions, fulltext_match(Message.searchable_text, text, config))
            .order_by(rank.desc(), Message.created_at.desc(), Message.id.desc())
            .limit(limit)
        )
        hits = [
            SearchHit(
                message_id=row.id,
                planet_id=row.planet_id,
                score=float(row.score or 0.0),
                matched_by="fulltext",
                created_at=row.created_at,
            )
            for row in self.db.execute(fts_stmt)
        ]

        if len(hits) < limit:
            seen = {hit.message_id for hit in hits}
            similarity = trigram_score(Message.searchable_text, text).label("score")
            trgm_stmt = (
                select(Message.id, Message.planet_id, Message.created_at, similarity)
                .where(
                    *conditions,
                    trigram_match(
                        Message.searchable_text,
                        text,
                        self.settings.search_trigram_threshold,
                        like_pattern(text),
                    ),
                )
                .order_by(similarity.desc(), Message.created_at.desc(), Message.id.desc())
                .limit(limit + len(seen))
            )
            for row in self.db.execute(trgm_stmt):
                if row.id in seen:
                    continue
                hits.append(
                    SearchHit(
                        message_id=row.id,
                        planet_id=row.planet_id,
                        score=float(row.score or 0.0),
                        matched_by="trigram",
                        created_at=row.created_at,
                    )
                )
                if len(hits) >= limit:
                    break

        logger.debug(
            "Message search",
            planet_id=planet_id,
            actor_id=actor_id,
            hit_count=len(hits),
        )
        return hits

    def reindex(self, batch_size: int = 500, after_id: int = 0) -> dict[str, int]:
        """Rebuild ``searchable_text`` for one batch of messages.

        Meant for bulk maintenance from the worker. Call repeatedly with the
        returned ``last_id`` until ``processed`` is 0.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        messages = (
            self.db.query(Message)
            .filter(Message.id > after_id)
            .order_by(Message.id.asc())
            .limit(batch_size)
            .all()
        )

        updated = 0
        for message in messages:
            if message.is_redacted:
                expected = None
            else:
                expected = build_searchable_text(
                    message.body, message.file_metadata, message.system_metadata
                )
            if message.searchable_text != expected:
                message.searchable_text = expected
                updated += 1

        self.db.flush()
        return {
            "processed": len(messages),
            "updated": updated,
            "last_id": messages[-1].id if messages else after_id,
        }

    def _membership_scope(self, actor_id: Optional[int], planet_id: Optional[int]):
        """Subquery of visible conversation ids, or None for no restriction."""
        if actor_id is None:
            return None

        actor = self.db.get(User, actor_id)
        if actor is None or actor.deleted_at is not None:
            raise ForbiddenError("Unknown actor", actor_id)
        if actor.role == UserRole.ADMIN:
            return None

        if planet_id is not None:
            membership = (
                self.db.query(PlanetUser)
                .filter_by(planet_id=planet_id, user_id=actor_id)
                .first()
            )
            if membership is None or membership.status not in READABLE_STATUSES:
                raise ForbiddenError(
                    f"Identity {actor_id} is not a member of conversation {planet_id}",
                    actor_id,
                )
            return None

        return select(PlanetUser.planet_id).where(
            PlanetUser.user_id == actor_id,
            PlanetUser.status.in_(READABLE_STATUSES),
        )

    def _prepare_session(self) -> None:
        if self.db.get_bind().dialect.name != "postgresql":
            return
        # Scoped to the current transaction
        self.db.execute(
            select(
                func.set_config(
                    "pg_trgm.word_similarity_threshold",
                    str(self.settings.search_trigram_threshold),
                    True,
                )
            )
        )
