"""Search API schemas."""

from datetime import datetime

from pydantic import BaseModel


class SearchHitResponse(BaseModel):
    """A single search hit."""

    message_id: int
    planet_id: int
    score: float
    matched_by: str
    created_at: datetime


class SearchResponse(BaseModel):
    """Response schema for message search."""

    query: str
    hits: list[SearchHitResponse]
