"""Search API routes.

Provides endpoints for:
- GET /search - Ranked message search, optionally within one conversation
"""

from typing import Optional

from fastapi import APIRouter, Query

from planet_core.api.deps import AppSettings, CurrentActor, DBSession
from planet_core.api.schemas.search import SearchHitResponse, SearchResponse
from planet_core.domain.services.search import MAX_QUERY_LENGTH, SearchIndexCoordinator

router = APIRouter(prefix="/search", tags=["search"])


@router.get(
    "",
    response_model=SearchResponse,
    summary="Search messages",
    description="Full-text hits first, then partial (trigram) matches. Deleted messages are excluded.",
)
async def search_messages(
    actor: CurrentActor,
    db: DBSession,
    settings: AppSettings,
    q: str = Query(..., max_length=MAX_QUERY_LENGTH, description="Search text"),
    planet_id: Optional[int] = Query(None, description="Restrict to one conversation"),
    limit: int = Query(20, ge=1, le=100),
):
    """Search messages visible to the current actor."""
    hits = SearchIndexCoordinator(db, settings).search(
        q, planet_id=planet_id, limit=limit, actor_id=actor.id
    )
    return SearchResponse(
        query=q,
        hits=[SearchHitResponse(**hit.to_dict()) for hit in hits],
    )
