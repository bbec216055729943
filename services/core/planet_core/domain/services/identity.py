"""Identity management service for Planet Core.

Creation, lookup and moderation (ban/unban) of identities. Erasure lives
in the anonymization engine.
"""

from typing import Optional

from sqlalchemy.orm import Session as DBSession

from planet_core.domain.errors import AlreadyErasedError, ForbiddenError, NotFoundError
from planet_core.domain.models import User, UserRole, utcnow
from planet_core.domain.services.sentinel import is_sentinel

VALID_ROLES = {UserRole.USER, UserRole.HOST, UserRole.ADMIN}
MAX_DISPLAY_NAME_LENGTH = 100


class IdentityService:
    """Service for identity management operations."""

    def __init__(self, db: DBSession):
        """Initialize the identity service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def create_user(
        self,
        display_name: str,
        provider: Optional[str] = None,
        provider_user_id: Optional[str] = None,
        role: str = UserRole.USER,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        avatar_url: Optional[str] = None,
    ) -> User:
        """Create a new identity.

        Raises:
            ValueError: If validation fails or the provider pair is taken.
        """
        if not display_name or len(display_name.strip()) == 0:
            raise ValueError("display_name must not be empty")
        if len(display_name.strip()) > MAX_DISPLAY_NAME_LENGTH:
            raise ValueError(
                f"display_name must not exceed {MAX_DISPLAY_NAME_LENGTH} characters"
            )
        if role not in VALID_ROLES:
            raise ValueError(f"role must be one of {VALID_ROLES}, got '{role}'")
        if (provider is None) != (provider_user_id is None):
            raise ValueError("provider and provider_user_id must be given together")

        if provider is not None:
            existing = (
                self.db.query(User)
                .filter_by(provider=provider, provider_user_id=provider_user_id)
                .first()
            )
            if existing is not None:
                raise ValueError(
                    f"identity '{provider_user_id}' already exists for provider '{provider}'"
                )

        now = utcnow()
        user = User(
            display_name=display_name.strip(),
            provider=provider,
            provider_user_id=provider_user_id,
            role=role,
            email=email,
            phone=phone,
            avatar_url=avatar_url,
            created_at=now,
            updated_at=now,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def get_user(self, user_id: int) -> User:
        """Get an identity by id, erased tombstones included.

        Raises:
            NotFoundError: If the identity does not exist.
        """
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"Identity {user_id} not found", user_id)
        return user

    def ban(self, user_id: int, reason: Optional[str] = None) -> User:
        """Ban an identity. Bans have no expiry."""
        user = self._get_mutable(user_id)
        user.is_banned = True
        user.ban_reason = reason
        user.banned_at = utcnow()
        self.db.flush()
        return user

    def unban(self, user_id: int) -> User:
        user = self._get_mutable(user_id)
        user.is_banned = False
        user.ban_reason = None
        user.banned_at = None
        self.db.flush()
        return user

    def _get_mutable(self, user_id: int) -> User:
        if is_sentinel(user_id):
            raise ForbiddenError("System identities cannot be modified", user_id)
        user = self.get_user(user_id)
        if user.deleted_at is not None:
            raise AlreadyErasedError(f"Identity {user_id} has been erased", user_id)
        return user
