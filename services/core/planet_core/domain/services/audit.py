"""Audit log service for Planet Core.

Append-only record of moderation and erasure actions. Entries carry ids
without foreign keys so they survive account erasure.
"""

from typing import Optional

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session as DBSession

from planet_core.domain.models import AuditLog, utcnow
from planet_core.domain.pagination import Cursor

VALID_ACTORS = {"user", "admin", "system"}
VALID_RESULTS = {"ok", "error"}


class AuditService:
    """Service for audit log operations."""

    def __init__(self, db: DBSession):
        self.db = db

    def create_entry(
        self,
        actor: str,
        action_type: str,
        result: str,
        actor_id: Optional[int] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        request_json: Optional[dict] = None,
        response_json: Optional[dict] = None,
        error_detail: Optional[str] = None,
    ) -> AuditLog:
        """Create a new audit log entry.

        Args:
            actor: Who performed the action (user, admin, system).
            action_type: Dotted action name, e.g. "account.erase".
            result: ok or error.
            actor_id: Identity that performed the action, if any.
            entity_type: Type of the affected entity.
            entity_id: Id of the affected entity.
            request_json: Action input.
            response_json: Action outcome.
            error_detail: Error text for failed actions.

        Raises:
            ValueError: If actor or result is invalid.
        """
        if actor not in VALID_ACTORS:
            raise ValueError(f"actor must be one of {VALID_ACTORS}, got '{actor}'")
        if result not in VALID_RESULTS:
            raise ValueError(f"result must be one of {VALID_RESULTS}, got '{result}'")

        entry = AuditLog(
            ts=utcnow(),
            actor=actor,
            actor_id=actor_id,
            action_type=action_type,
            result=result,
            entity_type=entity_type,
            entity_id=entity_id,
            request_json=request_json,
            response_json=response_json,
            error_detail=error_detail,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def list_entries(
        self,
        action_type: Optional[str] = None,
        entity_type: Optional[str] = None,
        entity_id: Optional[int] = None,
        limit: int = 50,
        cursor: Optional[str] = None,
    ) -> tuple[list[AuditLog], Optional[str]]:
        """List entries newest first.

        Returns:
            Tuple of (entries, next cursor or None).
        """
        stmt = select(AuditLog)
        if action_type:
            stmt = stmt.where(AuditLog.action_type == action_type)
        if entity_type:
            stmt = stmt.where(AuditLog.entity_type == entity_type)
        if entity_id is not None:
            stmt = stmt.where(AuditLog.entity_id == entity_id)

        if cursor:
            position = Cursor.decode(cursor)
            stmt = stmt.where(
                or_(
                    AuditLog.ts < position.created_at,
                    and_(AuditLog.ts == position.created_at, AuditLog.id < position.id),
                )
            )

        stmt = stmt.order_by(AuditLog.ts.desc(), AuditLog.id.desc()).limit(limit + 1)
        entries = list(self.db.execute(stmt).scalars().all())

        next_cursor = None
        if len(entries) > limit:
            entries = entries[:limit]
            last = entries[-1]
            next_cursor = Cursor(created_at=last.ts, id=last.id).encode()

        return entries, next_cursor
