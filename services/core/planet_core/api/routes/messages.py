"""Message API routes.

Provides endpoints for:
- GET /planets/{planet_id}/messages - Page through live messages in either direction
- GET /planets/{planet_id}/stats - Totals and time span of live messages
- GET /planets/{planet_id}/messages/{message_id}/context - Jump to a message
- POST /planets/{planet_id}/messages - Post a message
- PATCH /messages/{message_id} - Edit a message
- DELETE /messages/{message_id} - Soft-delete a message
- POST /messages/{message_id}/restore - Undo a soft delete
"""

from datetime import datetime
from typing import Annotated, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from planet_core.api.deps import AppSettings, CurrentActor, DBSession, Publisher, RequestCtx
from planet_core.api.schemas.message import (
    EditMessageRequest,
    MessageContextResponse,
    MessageListResponse,
    MessageResponse,
    MessageStatsResponse,
    SendMessageRequest,
)
from planet_core.domain.models import Message
from planet_core.domain.services.content_store import ContentStore
from planet_core.domain.services.message_pagination import (
    MessageFilter,
    MessagePaginationEngine,
)
from planet_core.observability import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["messages"])


def get_content_store(db: DBSession, settings: AppSettings) -> ContentStore:
    """Get the content store."""
    return ContentStore(db, settings)


ContentStoreDep = Annotated[ContentStore, Depends(get_content_store)]


def message_event_payload(message: Message) -> dict:
    return {
        "message_id": message.id,
        "planet_id": message.planet_id,
        "sender_id": message.sender_id,
        "version": message.version,
    }


@router.get(
    "/planets/{planet_id}/messages",
    response_model=MessageListResponse,
    summary="List messages",
    description="Cursor-paginated live messages of a conversation, newest first by default.",
)
async def list_messages(
    planet_id: int,
    actor: CurrentActor,
    db: DBSession,
    store: ContentStoreDep,
    cursor: Optional[str] = Query(None, description="next_cursor or prev_cursor of another page"),
    limit: int = Query(50, ge=1, le=100, description="Number of results per page"),
    direction: Literal["desc", "asc"] = Query("desc", description="Newest or oldest first"),
    types: Optional[list[str]] = Query(None, description="Only these message types"),
    sender_id: Optional[int] = Query(None, description="Only messages from this identity"),
    include_system: bool = Query(True, description="Include system messages"),
    since: Optional[datetime] = Query(None, description="Created at or after"),
    until: Optional[datetime] = Query(None, description="Created before"),
):
    """List messages with keyset pagination over (created_at, id)."""
    store.check_read_access(planet_id, actor.id)

    try:
        page = MessagePaginationEngine(db).list(
            planet_id,
            filter=MessageFilter(
                types=types,
                sender_id=sender_id,
                include_system=include_system,
                since=since,
                until=until,
            ),
            cursor=cursor,
            limit=limit,
            direction=direction,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    return MessageListResponse(
        items=[MessageResponse.model_validate(m) for m in page.items],
        next_cursor=page.next_cursor,
        prev_cursor=page.prev_cursor,
        has_more=page.has_more,
        has_previous=page.has_previous,
    )


@router.get(
    "/planets/{planet_id}/stats",
    response_model=MessageStatsResponse,
    summary="Get conversation message stats",
)
async def get_message_stats(
    planet_id: int,
    actor: CurrentActor,
    db: DBSession,
    settings: AppSettings,
    store: ContentStoreDep,
):
    """Live message totals, time span, types and the actor's unread count."""
    store.check_read_access(planet_id, actor.id)

    stats = MessagePaginationEngine(db, settings).stats(planet_id, user_id=actor.id)
    return MessageStatsResponse(**stats)


@router.get(
    "/planets/{planet_id}/messages/{message_id}/context",
    response_model=MessageContextResponse,
    summary="Get message context",
)
async def get_message_context(
    planet_id: int,
    message_id: int,
    actor: CurrentActor,
    db: DBSession,
    store: ContentStoreDep,
    size: int = Query(10, ge=1, le=50, description="Messages on each side"),
):
    """Return a message with up to ``size`` live messages before and after it."""
    store.check_read_access(planet_id, actor.id)

    context = MessagePaginationEngine(db).list_around(planet_id, message_id, size)
    return MessageContextResponse(
        anchor=MessageResponse.model_validate(context["anchor"]),
        before=[MessageResponse.model_validate(m) for m in context["before"]],
        after=[MessageResponse.model_validate(m) for m in context["after"]],
    )


@router.post(
    "/planets/{planet_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a message",
)
async def post_message(
    planet_id: int,
    request: SendMessageRequest,
    actor: CurrentActor,
    db: DBSession,
    store: ContentStoreDep,
    publisher: Publisher,
    ctx: RequestCtx,
):
    """Append a message as the current actor."""
    try:
        message = store.append(
            planet_id=planet_id,
            sender_id=actor.id,
            body=request.body,
            type=request.type,
            reply_to_message_id=request.reply_to_message_id,
            file_metadata=request.file_metadata,
            system_metadata=request.system_metadata,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    db.commit()
    publisher.publish("message.created", message_event_payload(message))
    logger.info("Message posted", context=ctx, message_id=message.id)
    return MessageResponse.model_validate(message)


@router.patch(
    "/messages/{message_id}",
    response_model=MessageResponse,
    summary="Edit a message",
)
async def edit_message(
    message_id: int,
    request: EditMessageRequest,
    actor: CurrentActor,
    db: DBSession,
    store: ContentStoreDep,
    publisher: Publisher,
):
    """Edit a text message within the edit window."""
    try:
        message = store.edit(
            message_id,
            request.body,
            editor_id=actor.id,
            expected_version=request.expected_version,
        )
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    db.commit()
    publisher.publish("message.edited", message_event_payload(message))
    return MessageResponse.model_validate(message)


@router.delete(
    "/messages/{message_id}",
    response_model=MessageResponse,
    summary="Delete a message",
)
async def delete_message(
    message_id: int,
    actor: CurrentActor,
    db: DBSession,
    store: ContentStoreDep,
    publisher: Publisher,
    reason: Optional[str] = Query(None, max_length=500),
    redact: bool = Query(False, description="Also clear the message content"),
):
    """Soft-delete a message. Deleting twice is a no-op."""
    message = store.soft_delete(message_id, actor.id, reason=reason, redact=redact)

    db.commit()
    publisher.publish("message.deleted", message_event_payload(message))
    return MessageResponse.model_validate(message)


@router.post(
    "/messages/{message_id}/restore",
    response_model=MessageResponse,
    summary="Restore a deleted message",
)
async def restore_message(
    message_id: int,
    actor: CurrentActor,
    db: DBSession,
    store: ContentStoreDep,
    publisher: Publisher,
):
    """Undo a soft delete within the restore window."""
    message = store.restore(message_id, actor.id)

    db.commit()
    publisher.publish("message.restored", message_event_payload(message))
    return MessageResponse.model_validate(message)
