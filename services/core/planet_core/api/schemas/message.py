"""Message API schemas."""

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

MessageTypeLiteral = Literal["text", "image", "video", "file", "system"]


class SendMessageRequest(BaseModel):
    """Request schema for posting a message."""

    body: Optional[str] = Field(
        default=None,
        max_length=10000,
        description="The message text (required for text messages)",
    )
    type: MessageTypeLiteral = Field(default="text")
    reply_to_message_id: Optional[int] = None
    file_metadata: Optional[dict[str, Any]] = Field(
        default=None,
        description="Attachment reference returned by file storage",
    )
    system_metadata: Optional[dict[str, Any]] = None


class EditMessageRequest(BaseModel):
    """Request schema for editing a message."""

    body: str = Field(..., min_length=1, max_length=10000)
    expected_version: Optional[int] = Field(
        default=None,
        description="Reject the edit if the message changed since this version",
    )


class MessageResponse(BaseModel):
    """Response schema for a message."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    planet_id: int
    sender_id: int
    type: str
    status: str
    body: Optional[str] = None
    file_metadata: Optional[dict[str, Any]] = None
    system_metadata: Optional[dict[str, Any]] = None
    reply_to_message_id: Optional[int] = None
    is_edited: bool
    edited_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None
    is_redacted: bool
    version: int
    created_at: datetime


class MessageListResponse(BaseModel):
    """One page of messages in the requested order."""

    items: list[MessageResponse]
    next_cursor: Optional[str] = None
    prev_cursor: Optional[str] = None
    has_more: bool = False
    has_previous: bool = False


class MessageContextResponse(BaseModel):
    """A message with its surrounding messages, oldest first."""

    anchor: MessageResponse
    before: list[MessageResponse]
    after: list[MessageResponse]


class MessageStatsResponse(BaseModel):
    """Summary of the live messages of a conversation."""

    planet_id: int
    total_messages: int
    oldest_message_at: Optional[datetime] = None
    newest_message_at: Optional[datetime] = None
    message_types: list[str]
    unread_count: Optional[int] = None
