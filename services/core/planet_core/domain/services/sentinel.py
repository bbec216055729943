"""Sentinel identity resolution.

Erased identities are replaced everywhere by one of two fixed placeholder
identities: ``SENTINEL_USER_ID`` for ordinary accounts and
``SENTINEL_ADMIN_ID`` for accounts that held an elevated role. The
placeholders are created once at bootstrap and are never deleted.
"""

from typing import Iterable, Optional

from sqlalchemy.orm import Session as DBSession

from planet_core.domain.errors import UnknownIdentityError
from planet_core.domain.models import (
    SENTINEL_ADMIN_ID,
    SENTINEL_USER_ID,
    SENTINEL_USERS,
    User,
    UserRole,
    utcnow,
)
from planet_core.observability import get_logger

logger = get_logger(__name__)

SENTINEL_IDS = frozenset(SENTINEL_USERS)


def is_sentinel(identity_id: Optional[int]) -> bool:
    return identity_id in SENTINEL_IDS


def sentinel_for_role(role: Optional[str]) -> int:
    """Pick the placeholder for an identity that held ``role``.

    Hosts moderate their travel groups, so they map to the admin sentinel
    together with admins.
    """
    if role in (UserRole.ADMIN, UserRole.HOST):
        return SENTINEL_ADMIN_ID
    return SENTINEL_USER_ID


class SentinelIdentityResolver:
    """Maps identity ids to the id that should be displayed or referenced."""

    def __init__(self, db: DBSession):
        self.db = db

    def ensure_sentinels(self) -> list[int]:
        """Create missing sentinel rows. Safe to run any number of times.

        Returns:
            Ids of the sentinels that were created by this call.
        """
        created = []
        for sentinel_id, attrs in SENTINEL_USERS.items():
            if self.db.get(User, sentinel_id) is not None:
                continue
            now = utcnow()
            self.db.add(
                User(
                    id=sentinel_id,
                    display_name=attrs["display_name"],
                    role=attrs["role"],
                    is_system=True,
                    created_at=now,
                    updated_at=now,
                )
            )
            created.append(sentinel_id)

        if created:
            self.db.flush()
            logger.info("Created sentinel identities", sentinel_ids=created)
        return created

    def resolve(self, identity_id: int) -> int:
        """Resolve one identity id.

        Returns:
            ``identity_id`` for live identities and sentinels, the matching
            sentinel for erased identities.

        Raises:
            UnknownIdentityError: If the id never existed.
        """
        if is_sentinel(identity_id):
            return identity_id

        user = self.db.get(User, identity_id)
        if user is None:
            raise UnknownIdentityError(f"Identity {identity_id} not found", identity_id)
        return self._resolve_user(user)

    def resolve_many(self, identity_ids: Iterable[int]) -> dict[int, int]:
        """Resolve a batch of ids with a single query.

        Raises:
            UnknownIdentityError: If any id never existed.
        """
        wanted = set(identity_ids)
        result = {i: i for i in wanted if is_sentinel(i)}
        pending = wanted - result.keys()
        if not pending:
            return result

        users = self.db.query(User).filter(User.id.in_(pending)).all()
        for user in users:
            result[user.id] = self._resolve_user(user)

        missing = pending - {u.id for u in users}
        if missing:
            first = min(missing)
            raise UnknownIdentityError(f"Identity {first} not found", first)
        return result

    @staticmethod
    def _resolve_user(user: User) -> int:
        if user.deleted_at is None:
            return user.id
        return sentinel_for_role(user.erased_role or user.role)
