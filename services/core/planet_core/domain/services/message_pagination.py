"""Keyset pagination over conversation messages.

Pages are ordered by ``(created_at, id)``, newest first by default, and the
cursor holds the position of the row at the edge of the page. Because the
predicate is strictly "beyond the cursor", rows inserted after the first
page was fetched can never shift later pages: a traversal returns every
pre-existing live message exactly once.

Pages after the first also carry a ``prev_cursor`` that walks back towards
the start of the traversal, returning the preceding page in the same order.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import and_, distinct, func, or_, select
from sqlalchemy.orm import Session as DBSession

from planet_core.config import Settings
from planet_core.domain.errors import NotFoundError
from planet_core.domain.models import MESSAGE_TYPES, Message, MessageType
from planet_core.domain.pagination import (
    DEFAULT_CURSOR_LIMIT,
    Cursor,
    CursorPaginatedResult,
    CursorPaginationParams,
)
from planet_core.domain.services.read_tracker import ReadTracker

DEFAULT_CONTEXT_SIZE = 10
MAX_CONTEXT_SIZE = 50
DIRECTIONS = ("desc", "asc")


@dataclass
class MessageFilter:
    """Optional narrowing of a message listing.

    Attributes:
        types: Only these message types
        sender_id: Only messages from this identity
        include_system: Include system messages
        since: Only messages created at or after this time
        until: Only messages created before this time
    """

    types: Optional[Sequence[str]] = None
    sender_id: Optional[int] = None
    include_system: bool = True
    since: Optional[datetime] = None
    until: Optional[datetime] = None


class MessagePaginationEngine:
    """Read-only listing of live messages."""

    def __init__(self, db: DBSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings

    def list(
        self,
        planet_id: int,
        filter: Optional[MessageFilter] = None,
        cursor: Optional[str] = None,
        limit: int = DEFAULT_CURSOR_LIMIT,
        direction: str = "desc",
    ) -> CursorPaginatedResult[Message]:
        """Return one page of live messages.

        Args:
            planet_id: Conversation to list.
            filter: Optional narrowing; soft-deleted rows are always excluded.
            cursor: ``next_cursor`` or ``prev_cursor`` of another page.
            limit: Page size, clamped to the allowed range.
            direction: ``desc`` for newest first, ``asc`` for oldest first.
                Keep it the same for every page of one traversal.

        Raises:
            InvalidCursorError: If the cursor cannot be decoded.
            ValueError: If the direction or a filter value is invalid.
        """
        if direction not in DIRECTIONS:
            raise ValueError(f"direction must be one of {DIRECTIONS}, got '{direction}'")

        params = CursorPaginationParams(limit=limit, cursor=cursor)
        position = params.decode_cursor()
        backward = position is not None and position.backward
        newest_first = (direction == "desc") != backward

        stmt = select(Message).where(
            Message.planet_id == planet_id,
            Message.deleted_at.is_(None),
        )
        stmt = self._apply_filter(stmt, filter)

        if position is not None:
            stmt = stmt.where(self._beyond(position, newest_first))

        if newest_first:
            stmt = stmt.order_by(Message.created_at.desc(), Message.id.desc())
        else:
            stmt = stmt.order_by(Message.created_at.asc(), Message.id.asc())
        # One extra row tells whether another page exists
        stmt = stmt.limit(params.limit + 1)
        items = list(self.db.execute(stmt).scalars().all())

        has_extra = len(items) > params.limit
        items = items[:params.limit]
        if backward:
            items.reverse()

        if backward:
            more_after, more_before = True, has_extra
        else:
            more_after, more_before = has_extra, position is not None

        next_cursor = prev_cursor = None
        if items and more_after:
            last = items[-1]
            next_cursor = Cursor(created_at=last.created_at, id=last.id).encode()
        if items and more_before:
            first = items[0]
            prev_cursor = Cursor(
                created_at=first.created_at, id=first.id, backward=True
            ).encode()

        return CursorPaginatedResult(
            items=items, next_cursor=next_cursor, prev_cursor=prev_cursor
        )

    def list_around(
        self,
        planet_id: int,
        message_id: int,
        context_size: int = DEFAULT_CONTEXT_SIZE,
    ) -> dict:
        """Jump to a message: the anchor plus live neighbours on both sides.

        Returns:
            Dict with ``anchor``, ``before`` (older) and ``after`` (newer),
            all oldest first.

        Raises:
            NotFoundError: If the anchor is missing, deleted, or belongs to
                another conversation.
        """
        context_size = max(1, min(context_size, MAX_CONTEXT_SIZE))

        anchor = self.db.get(Message, message_id)
        if anchor is None or anchor.planet_id != planet_id or anchor.deleted_at is not None:
            raise NotFoundError(f"Message {message_id} not found", message_id)

        base = select(Message).where(
            Message.planet_id == planet_id,
            Message.deleted_at.is_(None),
        )
        position = Cursor(created_at=anchor.created_at, id=anchor.id)
        older = (
            base.where(self._beyond(position, newest_first=True))
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(context_size)
        )
        newer = (
            base.where(self._beyond(position, newest_first=False))
            .order_by(Message.created_at.asc(), Message.id.asc())
            .limit(context_size)
        )

        before = list(self.db.execute(older).scalars().all())
        before.reverse()
        after = list(self.db.execute(newer).scalars().all())

        return {"anchor": anchor, "before": before, "after": after}

    def stats(self, planet_id: int, user_id: Optional[int] = None) -> dict[str, Any]:
        """Summary of the live messages of a conversation.

        Returns:
            Dict with ``total_messages``, ``oldest_message_at``,
            ``newest_message_at``, the sorted distinct ``message_types`` and,
            when ``user_id`` is given, that identity's capped ``unread_count``.
        """
        live = (Message.planet_id == planet_id, Message.deleted_at.is_(None))

        total, oldest, newest = self.db.execute(
            select(
                func.count(Message.id),
                func.min(Message.created_at),
                func.max(Message.created_at),
            ).where(*live)
        ).one()
        types = self.db.execute(select(distinct(Message.type)).where(*live)).scalars().all()

        unread = None
        if user_id is not None:
            unread = ReadTracker(self.db, self.settings).unread_count(planet_id, user_id)

        return {
            "planet_id": planet_id,
            "total_messages": total,
            "oldest_message_at": oldest,
            "newest_message_at": newest,
            "message_types": sorted(types),
            "unread_count": unread,
        }

    @staticmethod
    def _beyond(position: Cursor, newest_first: bool):
        """Rows strictly after ``position`` in the given traversal order."""
        if newest_first:
            return or_(
                Message.created_at < position.created_at,
                and_(Message.created_at == position.created_at, Message.id < position.id),
            )
        return or_(
            Message.created_at > position.created_at,
            and_(Message.created_at == position.created_at, Message.id > position.id),
        )

    @staticmethod
    def _apply_filter(stmt, filter: Optional[MessageFilter]):
        if filter is None:
            return stmt
        if filter.types:
            unknown = sorted(set(filter.types) - set(MESSAGE_TYPES))
            if unknown:
                raise ValueError(
                    f"Unknown message types: {', '.join(unknown)}. "
                    f"Allowed: {', '.join(MESSAGE_TYPES)}"
                )
            stmt = stmt.where(Message.type.in_(list(filter.types)))
        if not filter.include_system:
            stmt = stmt.where(Message.type != MessageType.SYSTEM)
        if filter.sender_id is not None:
            stmt = stmt.where(Message.sender_id == filter.sender_id)
        if filter.since is not None:
            stmt = stmt.where(Message.created_at >= filter.since)
        if filter.until is not None:
            stmt = stmt.where(Message.created_at < filter.until)
        return stmt
