"""Account erasure with referential integrity.

Erasing an identity removes its personal data (profile, notifications,
read state, contact details) and reassigns every service record that
pointed at it (messages, memberships, uploads, moderation references) to
the sentinel identity matching its former role. The identity row stays
behind as a scrubbed tombstone so the erasure itself is idempotent.

Everything happens in a single transaction: the engine commits on success
and rolls back on any failure, leaving no partially erased identity.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from sqlalchemy import ColumnElement, delete, func, select, update
from sqlalchemy.orm import Session as DBSession

from planet_core.domain.errors import AlreadyErasedError, ForbiddenError, NotFoundError
from planet_core.domain.models import (
    ERASED_DISPLAY_NAME,
    FileUpload,
    MembershipStatus,
    Message,
    Notification,
    PlanetReadState,
    PlanetUser,
    Profile,
    TravelUser,
    User,
    UserRole,
    utcnow,
)
from planet_core.domain.services.audit import AuditService
from planet_core.domain.services.sentinel import (
    SentinelIdentityResolver,
    is_sentinel,
    sentinel_for_role,
)
from planet_core.observability import RequestContext, get_logger

logger = get_logger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class DeletionReport:
    """Outcome of an account erasure."""

    user_id: int
    sentinel_id: int
    already_erased: bool = False
    deleted_personal_data: dict[str, int] = field(
        default_factory=lambda: {"profile": 0, "notifications": 0, "read_states": 0}
    )
    anonymized_data: dict[str, int] = field(
        default_factory=lambda: {
            "messages": 0,
            "message_deletions": 0,
            "planet_users": 0,
            "travel_users": 0,
            "file_uploads": 0,
            "invitations": 0,
            "moderation_refs": 0,
        }
    )
    redacted_messages: int = 0

    @property
    def total_records(self) -> int:
        return (
            sum(self.deleted_personal_data.values())
            + sum(self.anonymized_data.values())
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "sentinel_id": self.sentinel_id,
            "already_erased": self.already_erased,
            "deleted_personal_data": dict(self.deleted_personal_data),
            "anonymized_data": dict(self.anonymized_data),
            "redacted_messages": self.redacted_messages,
            "total_records": self.total_records,
        }


# =============================================================================
# ENGINE
# =============================================================================


class AnonymizationEngine:
    """Erases identities and keeps the reference graph intact."""

    def __init__(self, db: DBSession):
        self.db = db

    def erase_account(
        self,
        identity_id: int,
        actor_id: Optional[int] = None,
        delete_all_data: bool = True,
        reason: Optional[str] = None,
        strict: bool = False,
        context: Optional[RequestContext] = None,
    ) -> DeletionReport:
        """Erase an identity and commit.

        Running it again for an erased identity sweeps up any reference
        that still points at it and reports what it found, which is nothing
        after a complete erasure.

        Args:
            identity_id: Identity to erase.
            actor_id: Identity requesting the erasure (itself or an admin).
            delete_all_data: Also redact the content of authored messages.
            reason: Stored on the tombstone and in the audit log.
            strict: Raise AlreadyErasedError instead of sweeping again.
            context: Request context for logging.

        Returns:
            DeletionReport with per-category counts.

        Raises:
            ForbiddenError: If ``identity_id`` is a sentinel.
            NotFoundError: If the identity does not exist.
            AlreadyErasedError: If already erased and ``strict`` is set.
        """
        if is_sentinel(identity_id):
            raise ForbiddenError("System identities cannot be erased", identity_id)

        try:
            report = self._erase(identity_id, actor_id, delete_all_data, reason, strict)
            self.db.commit()
        except Exception:
            self.db.rollback()
            logger.error(
                "Account erasure failed, rolled back",
                context=context,
                exc_info=True,
                identity_id=identity_id,
            )
            raise

        logger.info(
            "Account erased",
            context=context,
            identity_id=identity_id,
            sentinel_id=report.sentinel_id,
            already_erased=report.already_erased,
            total_records=report.total_records,
        )
        return report

    def analyze_deletion_impact(self, identity_id: int) -> dict[str, Any]:
        """Count the records an erasure of ``identity_id`` would touch.

        Raises:
            NotFoundError: If the identity does not exist.
        """
        user = self._get_user(identity_id)
        counts = self._reference_counts(identity_id)
        counts["profile"] = self._count(Profile, Profile.user_id == identity_id)
        counts["notifications"] = self._count(Notification, Notification.user_id == identity_id)
        counts["read_states"] = self._count(PlanetReadState, PlanetReadState.user_id == identity_id)

        return {
            "user_id": identity_id,
            "already_erased": user.deleted_at is not None,
            "is_system": is_sentinel(identity_id),
            "sentinel_id": sentinel_for_role(user.erased_role or user.role),
            "counts": counts,
            "total_impacted_records": sum(counts.values()),
        }

    def validate_compliance(self, identity_id: int) -> dict[str, Any]:
        """Check that an erased identity left no personal data or references.

        Raises:
            NotFoundError: If the identity does not exist.
        """
        user = self._get_user(identity_id)
        remaining: list[str] = []
        issues: list[str] = []

        if user.deleted_at is None:
            issues.append("identity is not erased")
        for attr in ("email", "phone", "avatar_url", "provider", "provider_user_id"):
            if getattr(user, attr) is not None:
                remaining.append(f"users.{attr}")

        if self._count(Profile, Profile.user_id == identity_id):
            remaining.append("profiles")
        if self._count(Notification, Notification.user_id == identity_id):
            remaining.append("notifications")
        if self._count(PlanetReadState, PlanetReadState.user_id == identity_id):
            remaining.append("planet_read_states")

        for name, count in self._reference_counts(identity_id).items():
            if count:
                issues.append(f"{count} {name} still reference identity {identity_id}")

        return {
            "user_id": identity_id,
            "compliant": not remaining and not issues,
            "remaining_personal_data": remaining,
            "issues": issues,
        }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _erase(
        self,
        identity_id: int,
        actor_id: Optional[int],
        delete_all_data: bool,
        reason: Optional[str],
        strict: bool,
    ) -> DeletionReport:
        user = (
            self.db.query(User)
            .filter(User.id == identity_id)
            .with_for_update()
            .first()
        )
        if user is None:
            raise NotFoundError(f"Identity {identity_id} not found", identity_id)

        already_erased = user.deleted_at is not None
        if already_erased and strict:
            raise AlreadyErasedError(f"Identity {identity_id} has been erased", identity_id)

        SentinelIdentityResolver(self.db).ensure_sentinels()
        prior_role = user.erased_role or user.role
        sentinel_id = sentinel_for_role(prior_role)
        report = DeletionReport(
            user_id=identity_id,
            sentinel_id=sentinel_id,
            already_erased=already_erased,
        )
        self.db.flush()

        # Personal data
        personal = report.deleted_personal_data
        personal["profile"] = self._delete(Profile, Profile.user_id == identity_id)
        personal["notifications"] = self._delete(
            Notification, Notification.user_id == identity_id
        )
        personal["read_states"] = self._delete(
            PlanetReadState, PlanetReadState.user_id == identity_id
        )

        # Content redaction happens while the rows still carry the author
        if delete_all_data:
            report.redacted_messages = self._update(
                Message,
                (Message.sender_id == identity_id) & Message.is_redacted.is_(False),
                body=None,
                original_body=None,
                file_metadata=None,
                system_metadata=None,
                searchable_text=None,
                is_redacted=True,
                version=Message.version + 1,
            )

        # Service data
        anonymized = report.anonymized_data
        anonymized["messages"] = self._update(
            Message,
            Message.sender_id == identity_id,
            sender_id=sentinel_id,
            version=Message.version + 1,
        )
        anonymized["message_deletions"] = self._update(
            Message,
            Message.deleted_by == identity_id,
            deleted_by=sentinel_id,
            version=Message.version + 1,
        )
        anonymized["planet_users"] = self._update(
            PlanetUser,
            PlanetUser.user_id == identity_id,
            user_id=sentinel_id,
            status=MembershipStatus.LEFT,
        )
        anonymized["invitations"] = self._update(
            PlanetUser, PlanetUser.invited_by == identity_id, invited_by=sentinel_id
        )
        anonymized["travel_users"] = self._update(
            TravelUser,
            TravelUser.user_id == identity_id,
            user_id=sentinel_id,
            status=MembershipStatus.LEFT,
        )
        anonymized["file_uploads"] = self._update(
            FileUpload, FileUpload.user_id == identity_id, user_id=sentinel_id
        )
        anonymized["moderation_refs"] = self._update(
            User, User.deleted_by == identity_id, deleted_by=sentinel_id
        )

        # Bulk statements bypass the identity map
        self.db.expire_all()

        if not already_erased:
            self._scrub(user, actor_id, reason)

        AuditService(self.db).create_entry(
            actor=self._audit_actor(identity_id, actor_id),
            actor_id=actor_id,
            action_type="account.erase",
            result="ok",
            entity_type="user",
            entity_id=identity_id,
            request_json={"delete_all_data": delete_all_data, "reason": reason},
            response_json=report.to_dict(),
        )
        return report

    def _scrub(self, user: User, actor_id: Optional[int], reason: Optional[str]) -> None:
        now = utcnow()
        user.erased_role = user.role
        user.display_name = ERASED_DISPLAY_NAME
        user.email = None
        user.phone = None
        user.avatar_url = None
        user.provider = None
        user.provider_user_id = None
        user.is_banned = False
        user.ban_reason = None
        user.banned_at = None
        user.deleted_at = now
        # A self-deletion must not leave a reference to the erased row
        user.deleted_by = actor_id if actor_id != user.id else None
        user.deletion_reason = reason
        user.updated_at = now
        self.db.flush()

    def _audit_actor(self, identity_id: int, actor_id: Optional[int]) -> str:
        if actor_id is None:
            return "system"
        if actor_id == identity_id:
            return "user"
        actor = self.db.get(User, actor_id)
        if actor is not None and actor.role == UserRole.ADMIN:
            return "admin"
        return "user"

    def _get_user(self, identity_id: int) -> User:
        user = self.db.get(User, identity_id)
        if user is None:
            raise NotFoundError(f"Identity {identity_id} not found", identity_id)
        return user

    def _reference_counts(self, identity_id: int) -> dict[str, int]:
        return {
            "messages": self._count(Message, Message.sender_id == identity_id),
            "message_deletions": self._count(Message, Message.deleted_by == identity_id),
            "planet_users": self._count(PlanetUser, PlanetUser.user_id == identity_id),
            "invitations": self._count(PlanetUser, PlanetUser.invited_by == identity_id),
            "travel_users": self._count(TravelUser, TravelUser.user_id == identity_id),
            "file_uploads": self._count(FileUpload, FileUpload.user_id == identity_id),
            "moderation_refs": self._count(User, User.deleted_by == identity_id),
        }

    def _count(self, model, condition: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(model).where(condition)
        return self.db.execute(stmt).scalar() or 0

    def _delete(self, model, condition: ColumnElement[bool]) -> int:
        stmt = delete(model).where(condition).execution_options(synchronize_session=False)
        return self.db.execute(stmt).rowcount or 0

    def _update(self, model, condition: ColumnElement[bool], **values: Any) -> int:
        stmt = (
            update(model)
            .where(condition)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount or 0
