"""Account lifecycle API routes.

Provides endpoints for:
- GET /accounts/{account_id}/deletion-impact - What an erasure would touch
- DELETE /accounts/{account_id} - Erase an account (self or admin)
- GET /accounts/{account_id}/compliance - Verify an erasure (admin)
- POST /accounts/{account_id}/ban - Ban an account (admin)
- POST /accounts/{account_id}/unban - Lift a ban (admin)
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from planet_core.api.deps import AppSettings, CurrentActor, DBSession, Publisher, RequestCtx
from planet_core.api.schemas.account import (
    ComplianceResponse,
    DeleteAccountRequest,
    DeleteAccountResponse,
    DeletionImpactResponse,
)
from planet_core.domain.models import User, UserRole
from planet_core.domain.services.anonymization import AnonymizationEngine
from planet_core.domain.services.identity import IdentityService
from planet_core.infrastructure.events import enqueue_account_erasure

router = APIRouter(prefix="/accounts", tags=["accounts"])


class BanRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class BanResponse(BaseModel):
    user_id: int
    is_banned: bool
    ban_reason: Optional[str] = None


def require_self_or_admin(actor: User, account_id: int) -> None:
    if actor.id != account_id and actor.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the account owner or an admin can do this",
        )


def require_admin(actor: User) -> None:
    if actor.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )


@router.get(
    "/{account_id}/deletion-impact",
    response_model=DeletionImpactResponse,
    summary="Analyze deletion impact",
)
async def get_deletion_impact(account_id: int, actor: CurrentActor, db: DBSession):
    """Count the records an erasure of this account would delete or reassign."""
    require_self_or_admin(actor, account_id)
    return DeletionImpactResponse(**AnonymizationEngine(db).analyze_deletion_impact(account_id))


@router.delete(
    "/{account_id}",
    response_model=DeleteAccountResponse,
    summary="Erase an account",
    description=(
        "Deletes personal data and reassigns service data to the deleted-user "
        "placeholder. Requires confirmation_text \"DELETE\"."
    ),
)
async def delete_account(
    account_id: int,
    request: DeleteAccountRequest,
    actor: CurrentActor,
    db: DBSession,
    settings: AppSettings,
    publisher: Publisher,
    ctx: RequestCtx,
):
    """Erase an account inline, or queue it on the worker when configured."""
    require_self_or_admin(actor, account_id)
    actor_id = actor.id

    if settings.erase_async:
        job_id = enqueue_account_erasure(
            account_id,
            actor_id,
            request.delete_all_data,
            request.reason,
            settings=settings,
        )
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=DeleteAccountResponse(status="queued", job_id=job_id).model_dump(),
        )

    report = AnonymizationEngine(db).erase_account(
        account_id,
        actor_id=actor_id,
        delete_all_data=request.delete_all_data,
        reason=request.reason,
        context=ctx,
    )
    publisher.publish("account.erased", {"sentinel_id": report.sentinel_id})
    return DeleteAccountResponse(status="erased", report=report.to_dict())


@router.get(
    "/{account_id}/compliance",
    response_model=ComplianceResponse,
    summary="Validate erasure compliance",
)
async def get_compliance(account_id: int, actor: CurrentActor, db: DBSession):
    """Report personal data or references an erased account left behind."""
    require_admin(actor)
    return ComplianceResponse(**AnonymizationEngine(db).validate_compliance(account_id))


@router.post("/{account_id}/ban", response_model=BanResponse, summary="Ban an account")
async def ban_account(
    account_id: int,
    request: BanRequest,
    actor: CurrentActor,
    db: DBSession,
):
    """Ban an account until explicitly unbanned."""
    require_admin(actor)
    user = IdentityService(db).ban(account_id, reason=request.reason)
    db.commit()
    return BanResponse(user_id=user.id, is_banned=user.is_banned, ban_reason=user.ban_reason)


@router.post("/{account_id}/unban", response_model=BanResponse, summary="Lift a ban")
async def unban_account(account_id: int, actor: CurrentActor, db: DBSession):
    require_admin(actor)
    user = IdentityService(db).unban(account_id)
    db.commit()
    return BanResponse(user_id=user.id, is_banned=user.is_banned, ban_reason=user.ban_reason)
