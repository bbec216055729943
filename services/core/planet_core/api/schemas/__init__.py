"""API schemas."""

from planet_core.api.schemas.account import (
    ComplianceResponse,
    DeleteAccountRequest,
    DeleteAccountResponse,
    DeletionImpactResponse,
    MarkAllReadResponse,
    MarkReadRequest,
    ReadStateResponse,
    UnreadCountResponse,
    UnreadSummaryItem,
    UnreadSummaryResponse,
)
from planet_core.api.schemas.message import (
    EditMessageRequest,
    MessageContextResponse,
    MessageListResponse,
    MessageResponse,
    MessageStatsResponse,
    SendMessageRequest,
)
from planet_core.api.schemas.search import SearchHitResponse, SearchResponse

__all__ = [
    "ComplianceResponse",
    "DeleteAccountRequest",
    "DeleteAccountResponse",
    "DeletionImpactResponse",
    "EditMessageRequest",
    "MarkAllReadResponse",
    "MarkReadRequest",
    "MessageContextResponse",
    "MessageListResponse",
    "MessageResponse",
    "MessageStatsResponse",
    "ReadStateResponse",
    "SearchHitResponse",
    "SearchResponse",
    "SendMessageRequest",
    "UnreadCountResponse",
    "UnreadSummaryItem",
    "UnreadSummaryResponse",
]
