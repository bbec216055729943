"""Per-user read state for conversations.

Each (conversation, identity) pair has one high-water mark: the id of the
newest message the identity has read. Message ids are monotonic, so
"unread" is simply "live, from someone else, and above the mark".

The mark is written with a single upsert that keeps the larger of the
stored and the new value, so concurrent receipts for the same pair can
neither collide on the unique constraint nor move the mark backwards.
"""

from typing import Any, Optional

from sqlalchemy import case, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session as DBSession

from planet_core.config import Settings, get_settings
from planet_core.domain.errors import ForbiddenError, NotFoundError
from planet_core.domain.models import (
    READABLE_STATUSES,
    Message,
    Planet,
    PlanetReadState,
    PlanetUser,
    utcnow,
)
from planet_core.observability import get_logger

logger = get_logger(__name__)

# Dialect insert constructs with ON CONFLICT support, and their two-argument max
_UPSERT_DIALECTS = {
    "postgresql": (postgresql.insert, func.greatest),
    "sqlite": (sqlite.insert, func.max),
}


class ReadTracker:
    """Read receipts and unread counts."""

    def __init__(self, db: DBSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def unread_count(self, planet_id: int, user_id: int) -> int:
        """Number of unread live messages from others, capped at ``unread_count_cap``.

        The count runs over a LIMITed subquery so its cost is bounded by the
        cap, not by the length of the conversation.
        """
        mark = self._mark(planet_id, user_id)
        cap = self.settings.unread_count_cap

        unread = (
            select(Message.id)
            .where(
                Message.planet_id == planet_id,
                Message.id > mark,
                Message.sender_id != user_id,
                Message.deleted_at.is_(None),
            )
            .limit(cap)
            .subquery()
        )
        return self.db.execute(select(func.count()).select_from(unread)).scalar() or 0

    def unread_summary(self, user_id: int) -> list[dict[str, Any]]:
        """Read state of every conversation ``user_id`` can read.

        Returns:
            One entry per active or muted membership, ordered by conversation
            id, with the mark, the capped unread count and the number of
            live messages.
        """
        rows = self.db.execute(
            select(
                Planet.id,
                Planet.name,
                PlanetReadState.last_read_message_id,
                PlanetReadState.last_read_at,
            )
            .join(PlanetUser, PlanetUser.planet_id == Planet.id)
            .outerjoin(
                PlanetReadState,
                (PlanetReadState.planet_id == Planet.id)
                & (PlanetReadState.user_id == user_id),
            )
            .where(
                PlanetUser.user_id == user_id,
                PlanetUser.status.in_(READABLE_STATUSES),
            )
            .order_by(Planet.id)
        ).all()
        if not rows:
            return []

        totals = dict(
            self.db.execute(
                select(Message.planet_id, func.count(Message.id))
                .where(
                    Message.planet_id.in_([row.id for row in rows]),
                    Message.deleted_at.is_(None),
                )
                .group_by(Message.planet_id)
            ).all()
        )

        return [
            {
                "planet_id": row.id,
                "planet_name": row.name,
                "last_read_message_id": row.last_read_message_id,
                "last_read_at": row.last_read_at,
                "unread_count": self.unread_count(row.id, user_id),
                "total_messages": totals.get(row.id, 0),
            }
            for row in rows
        ]

    def mark_read(
        self, planet_id: int, user_id: int, through_message_id: int
    ) -> PlanetReadState:
        """Advance the read mark to ``through_message_id``. Never moves backwards.

        Raises:
            NotFoundError: If the message is not in this conversation.
            ForbiddenError: If the identity is not an active or muted member.
        """
        message = self.db.get(Message, through_message_id)
        if message is None or message.planet_id != planet_id:
            raise NotFoundError(
                f"Message {through_message_id} not found in conversation {planet_id}",
                through_message_id,
            )

        self._require_member(planet_id, user_id)
        return self._advance_mark(planet_id, user_id, through_message_id)

    def mark_all_read(self, planet_id: int, user_id: int) -> dict[str, Any]:
        """Move the read mark to the newest live message of the conversation.

        Returns:
            Dict with the resulting ``last_read_message_id`` (None for an
            empty conversation) and ``marked_count``, the unread count that
            was cleared (capped like ``unread_count``).

        Raises:
            ForbiddenError: If the identity is not an active or muted member.
        """
        self._require_member(planet_id, user_id)

        newest = self.db.execute(
            select(func.max(Message.id)).where(
                Message.planet_id == planet_id,
                Message.deleted_at.is_(None),
            )
        ).scalar()
        if newest is None:
            return {
                "planet_id": planet_id,
                "user_id": user_id,
                "last_read_message_id": None,
                "marked_count": 0,
            }

        marked = self.unread_count(planet_id, user_id)
        state = self._advance_mark(planet_id, user_id, newest)

        logger.info(
            "Conversation marked read",
            planet_id=planet_id,
            user_id=user_id,
            last_read_message_id=state.last_read_message_id,
            marked_count=marked,
        )
        return {
            "planet_id": planet_id,
            "user_id": user_id,
            "last_read_message_id": state.last_read_message_id,
            "marked_count": marked,
        }

    def is_read(self, planet_id: int, user_id: int, message_id: int) -> bool:
        """Whether ``user_id`` has read ``message_id``. Own messages count as read."""
        message = self.db.get(Message, message_id)
        if message is None or message.planet_id != planet_id:
            raise NotFoundError(f"Message {message_id} not found", message_id)
        if message.sender_id == user_id:
            return True
        return message_id <= self._mark(planet_id, user_id)

    def read_by(self, planet_id: int, message_id: int) -> list[int]:
        """Identities whose read mark covers ``message_id``."""
        stmt = (
            select(PlanetReadState.user_id)
            .where(
                PlanetReadState.planet_id == planet_id,
                PlanetReadState.last_read_message_id >= message_id,
            )
            .order_by(PlanetReadState.user_id)
        )
        return list(self.db.execute(stmt).scalars().all())

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _require_member(self, planet_id: int, user_id: int) -> None:
        membership = (
            self.db.query(PlanetUser)
            .filter_by(planet_id=planet_id, user_id=user_id)
            .first()
        )
        if membership is None or membership.status not in READABLE_STATUSES:
            raise ForbiddenError(
                f"Identity {user_id} is not a member of conversation {planet_id}", user_id
            )

    def _advance_mark(
        self, planet_id: int, user_id: int, message_id: int
    ) -> PlanetReadState:
        dialect = self.db.get_bind().dialect.name
        if dialect not in _UPSERT_DIALECTS:
            raise RuntimeError(f"Read marks are not supported on dialect '{dialect}'")
        insert, greatest = _UPSERT_DIALECTS[dialect]

        stmt = insert(PlanetReadState).values(
            planet_id=planet_id,
            user_id=user_id,
            last_read_message_id=message_id,
            last_read_at=utcnow(),
        )
        advanced = stmt.excluded.last_read_message_id > PlanetReadState.last_read_message_id
        stmt = stmt.on_conflict_do_update(
            index_elements=["planet_id", "user_id"],
            set_={
                "last_read_message_id": greatest(
                    PlanetReadState.last_read_message_id,
                    stmt.excluded.last_read_message_id,
                ),
                "last_read_at": case(
                    (advanced, stmt.excluded.last_read_at),
                    else_=PlanetReadState.last_read_at,
                ),
            },
        )
        self.db.execute(stmt)

        return self.db.execute(
            select(PlanetReadState)
            .where(
                PlanetReadState.planet_id == planet_id,
                PlanetReadState.user_id == user_id,
            )
            .execution_options(populate_existing=True)
        ).scalar_one()

    def _mark(self, planet_id: int, user_id: int) -> int:
        stmt = select(PlanetReadState.last_read_message_id).where(
            PlanetReadState.planet_id == planet_id,
            PlanetReadState.user_id == user_id,
        )
        return self.db.execute(stmt).scalar() or 0
