"""Unit tests for the identity service."""

import pytest

from planet_core.domain.errors import AlreadyErasedError, ForbiddenError, NotFoundError
from planet_core.domain.models import SENTINEL_USER_ID, utcnow
from planet_core.domain.services.identity import IdentityService
from planet_core.domain.services.sentinel import SentinelIdentityResolver
from tests.factories import create_user


class TestCreateUser:
    """Tests for IdentityService.create_user."""

    def test_create_user(self, db_session):
        """Test creating an identity with a social login."""
        service = IdentityService(db_session)

        user = service.create_user(
            "  Jiwoo  ",
            provider="kakao",
            provider_user_id="k-1",
            email="jiwoo@example.com",
        )

        assert user.id is not None
        assert user.display_name == "Jiwoo"
        assert user.role == "user"
        assert user.is_system is False
        assert user.deleted_at is None

    def test_empty_display_name(self, db_session):
        with pytest.raises(ValueError, match="empty"):
            IdentityService(db_session).create_user("   ")

    def test_display_name_too_long(self, db_session):
        with pytest.raises(ValueError, match="exceed"):
            IdentityService(db_session).create_user("x" * 101)

    def test_invalid_role(self, db_session):
        with pytest.raises(ValueError, match="role"):
            IdentityService(db_session).create_user("Jiwoo", role="superuser")

    def test_provider_pair_must_be_complete(self, db_session):
        with pytest.raises(ValueError, match="together"):
            IdentityService(db_session).create_user("Jiwoo", provider="kakao")

    def test_duplicate_provider_identity(self, db_session):
        service = IdentityService(db_session)
        service.create_user("Jiwoo", provider="kakao", provider_user_id="k-1")

        with pytest.raises(ValueError, match="already exists"):
            service.create_user("Other", provider="kakao", provider_user_id="k-1")


class TestGetAndBan:
    """Tests for lookup and moderation."""

    def test_get_user_includes_tombstones(self, db_session):
        user = create_user(db_session, deleted_at=utcnow())

        assert IdentityService(db_session).get_user(user.id).id == user.id

    def test_get_missing_user(self, db_session):
        with pytest.raises(NotFoundError):
            IdentityService(db_session).get_user(999)

    def test_ban_and_unban(self, db_session):
        user = create_user(db_session)
        service = IdentityService(db_session)

        banned = service.ban(user.id, reason="spam")
        assert banned.is_banned is True
        assert banned.ban_reason == "spam"
        assert banned.banned_at is not None

        unbanned = service.unban(user.id)
        assert unbanned.is_banned is False
        assert unbanned.ban_reason is None
        assert unbanned.banned_at is None

    def test_cannot_ban_erased_identity(self, db_session):
        user = create_user(db_session, deleted_at=utcnow())

        with pytest.raises(AlreadyErasedError):
            IdentityService(db_session).ban(user.id)

    def test_cannot_ban_sentinel(self, db_session):
        create_user(db_session)
        SentinelIdentityResolver(db_session).ensure_sentinels()

        with pytest.raises(ForbiddenError):
            IdentityService(db_session).ban(SENTINEL_USER_ID)
