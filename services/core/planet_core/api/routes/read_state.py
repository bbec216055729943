"""Read state API routes.

Provides endpoints for:
- GET /planets/unread - Read state of every conversation of the current actor
- GET /planets/{planet_id}/unread - Unread count for the current actor
- POST /planets/{planet_id}/read - Advance the current actor's read mark
- POST /planets/{planet_id}/read-all - Mark the whole conversation as read
"""

from fastapi import APIRouter

from planet_core.api.deps import AppSettings, CurrentActor, DBSession
from planet_core.api.schemas.account import (
    MarkAllReadResponse,
    MarkReadRequest,
    ReadStateResponse,
    UnreadCountResponse,
    UnreadSummaryItem,
    UnreadSummaryResponse,
)
from planet_core.domain.services.content_store import ContentStore
from planet_core.domain.services.read_tracker import ReadTracker

router = APIRouter(prefix="/planets", tags=["read-state"])


@router.get("/unread", response_model=UnreadSummaryResponse)
async def get_unread_summary(
    actor: CurrentActor,
    db: DBSession,
    settings: AppSettings,
):
    """Unread counts across the conversations the actor can read."""
    summary = ReadTracker(db, settings).unread_summary(actor.id)
    return UnreadSummaryResponse(items=[UnreadSummaryItem(**entry) for entry in summary])


@router.get("/{planet_id}/unread", response_model=UnreadCountResponse)
async def get_unread_count(
    planet_id: int,
    actor: CurrentActor,
    db: DBSession,
    settings: AppSettings,
):
    """Unread messages from others, capped."""
    ContentStore(db, settings).check_read_access(planet_id, actor.id)
    count = ReadTracker(db, settings).unread_count(planet_id, actor.id)
    return UnreadCountResponse(planet_id=planet_id, unread_count=count)


@router.post("/{planet_id}/read", response_model=ReadStateResponse)
async def mark_read(
    planet_id: int,
    request: MarkReadRequest,
    actor: CurrentActor,
    db: DBSession,
    settings: AppSettings,
):
    """Mark everything up to ``message_id`` as read. The mark never moves back."""
    state = ReadTracker(db, settings).mark_read(planet_id, actor.id, request.message_id)
    db.commit()
    return ReadStateResponse(
        planet_id=state.planet_id,
        user_id=state.user_id,
        last_read_message_id=state.last_read_message_id,
        last_read_at=state.last_read_at,
    )


@router.post("/{planet_id}/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    planet_id: int,
    actor: CurrentActor,
    db: DBSession,
    settings: AppSettings,
):
    """Move the read mark to the newest live message."""
    result = ReadTracker(db, settings).mark_all_read(planet_id, actor.id)
    db.commit()
    return MarkAllReadResponse(**result)
