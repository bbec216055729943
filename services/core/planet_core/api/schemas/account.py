"""Account, read state and erasure API schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


class DeleteAccountRequest(BaseModel):
    """Request schema for erasing an account."""

    confirmation_text: str = Field(..., description='Must be exactly "DELETE"')
    delete_all_data: bool = Field(
        default=True,
        description="Also redact the content of messages the account wrote",
    )
    reason: Optional[str] = Field(default=None, max_length=500)

    @field_validator("confirmation_text")
    @classmethod
    def validate_confirmation(cls, v: str) -> str:
        if v != "DELETE":
            raise ValueError('confirmation_text must be "DELETE"')
        return v


class DeleteAccountResponse(BaseModel):
    """Erasure result, or the queued job when erasure runs on the worker."""

    status: str
    report: Optional[dict[str, Any]] = None
    job_id: Optional[str] = None


class DeletionImpactResponse(BaseModel):
    """Counts of records an erasure would touch."""

    user_id: int
    already_erased: bool
    is_system: bool
    sentinel_id: int
    counts: dict[str, int]
    total_impacted_records: int


class ComplianceResponse(BaseModel):
    """Post-erasure compliance check."""

    user_id: int
    compliant: bool
    remaining_personal_data: list[str]
    issues: list[str]


class UnreadCountResponse(BaseModel):
    planet_id: int
    unread_count: int


class MarkReadRequest(BaseModel):
    message_id: int = Field(..., ge=1)


class ReadStateResponse(BaseModel):
    planet_id: int
    user_id: int
    last_read_message_id: int
    last_read_at: datetime


class MarkAllReadResponse(BaseModel):
    planet_id: int
    user_id: int
    last_read_message_id: Optional[int] = None
    marked_count: int


class UnreadSummaryItem(BaseModel):
    """Read state of one conversation for the current actor."""

    planet_id: int
    planet_name: str
    last_read_message_id: Optional[int] = None
    last_read_at: Optional[datetime] = None
    unread_count: int
    total_messages: int


class UnreadSummaryResponse(BaseModel):
    items: list[UnreadSummaryItem]
