"""Content store for conversation messages.

Owns every write to ``messages`` and ``planet_users``. Messages are never
physically removed: deletion sets ``deleted_at`` and optionally redacts
the content, so reply chains and pagination positions stay stable.

All methods flush; committing is left to the caller's session scope.
"""

from datetime import timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session as DBSession
from sqlalchemy.orm.exc import StaleDataError

from planet_core.config import Settings, get_settings
from planet_core.domain.errors import (
    AlreadyDeletedError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from planet_core.domain.models import (
    MEMBERSHIP_STATUSES,
    MESSAGE_TYPES,
    READABLE_STATUSES,
    MembershipStatus,
    Message,
    MessageType,
    Planet,
    PlanetUser,
    PlanetUserRole,
    User,
    UserRole,
    utcnow,
)
from planet_core.domain.services.sentinel import is_sentinel
from planet_core.domain.text import build_searchable_text
from planet_core.observability import get_logger

logger = get_logger(__name__)

MAX_BODY_LENGTH = 10000
PLANET_ROLES = {PlanetUserRole.PARTICIPANT, PlanetUserRole.CREATOR, PlanetUserRole.ADMIN}
MODERATOR_ROLES = {PlanetUserRole.CREATOR, PlanetUserRole.ADMIN}


class ContentStore:
    """Message and membership writes."""

    def __init__(self, db: DBSession, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    # -------------------------------------------------------------------------
    # Messages
    # -------------------------------------------------------------------------

    def append(
        self,
        planet_id: int,
        sender_id: int,
        body: Optional[str],
        type: str = MessageType.TEXT,
        reply_to_message_id: Optional[int] = None,
        file_metadata: Optional[dict[str, Any]] = None,
        system_metadata: Optional[dict[str, Any]] = None,
    ) -> Message:
        """Append a message to a conversation.

        Args:
            planet_id: Target conversation.
            sender_id: Sending identity; must be an active member.
            body: Message text. Required for text messages.
            type: One of text, image, video, file, system.
            reply_to_message_id: Live message in the same conversation.
            file_metadata: Opaque attachment reference from file storage.
            system_metadata: Structured payload of system messages.

        Returns:
            The persisted message, with its id assigned.

        Raises:
            ValueError: If the body or type is invalid.
            NotFoundError: If the conversation, sender or reply target is missing.
            ForbiddenError: If the sender may not post here.
        """
        if type not in MESSAGE_TYPES:
            raise ValueError(f"type must be one of {MESSAGE_TYPES}, got '{type}'")
        if type == MessageType.TEXT and (not body or not body.strip()):
            raise ValueError("body must not be empty")
        if body is not None and len(body) > MAX_BODY_LENGTH:
            raise ValueError(f"body must not exceed {MAX_BODY_LENGTH} characters")

        if self.db.get(Planet, planet_id) is None:
            raise NotFoundError(f"Conversation {planet_id} not found", planet_id)

        sender = self.db.get(User, sender_id)
        if sender is None:
            raise NotFoundError(f"Identity {sender_id} not found", sender_id)
        if sender.is_system or sender.deleted_at is not None or sender.is_banned:
            raise ForbiddenError(f"Identity {sender_id} cannot send messages", sender_id)

        membership = self._membership(planet_id, sender_id)
        if membership is None or membership.status != MembershipStatus.ACTIVE:
            raise ForbiddenError(
                f"Identity {sender_id} is not an active member of conversation {planet_id}",
                sender_id,
            )

        if reply_to_message_id is not None:
            target = self.db.get(Message, reply_to_message_id)
            if target is None or target.planet_id != planet_id or target.deleted_at is not None:
                raise NotFoundError(
                    f"Reply target {reply_to_message_id} not found", reply_to_message_id
                )

        now = utcnow()
        message = Message(
            planet_id=planet_id,
            sender_id=sender_id,
            type=type,
            status="sent",
            body=body,
            file_metadata=file_metadata,
            system_metadata=system_metadata,
            searchable_text=build_searchable_text(body, file_metadata, system_metadata),
            reply_to_message_id=reply_to_message_id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(message)
        self.db.flush()

        logger.info(
            "Message appended",
            message_id=message.id,
            planet_id=planet_id,
            sender_id=sender_id,
            message_type=type,
        )
        return message

    def edit(
        self,
        message_id: int,
        new_body: str,
        editor_id: int,
        expected_version: Optional[int] = None,
    ) -> Message:
        """Replace the body of a text message.

        The first edit keeps the original body. The search column is
        rebuilt in the same transaction.

        Raises:
            NotFoundError: If the message does not exist.
            AlreadyDeletedError: If the message is soft-deleted.
            ForbiddenError: If the editor is not the sender, the message is not
                text, or the edit window has passed.
            ConflictError: If ``expected_version`` is stale.
        """
        if not new_body or not new_body.strip():
            raise ValueError("body must not be empty")
        if len(new_body) > MAX_BODY_LENGTH:
            raise ValueError(f"body must not exceed {MAX_BODY_LENGTH} characters")

        message = self._get_for_update(message_id)
        if message.deleted_at is not None:
            raise AlreadyDeletedError(f"Message {message_id} is deleted", message_id)
        if message.sender_id != editor_id:
            raise ForbiddenError("Only the sender can edit a message", message_id)
        if message.type != MessageType.TEXT:
            raise ForbiddenError("Only text messages can be edited", message_id)

        window = timedelta(seconds=self.settings.message_edit_window_seconds)
        if utcnow() - message.created_at > window:
            raise ForbiddenError("Edit window has passed", message_id)

        if expected_version is not None and message.version != expected_version:
            raise ConflictError(
                f"Message {message_id} changed (version {message.version})", message_id
            )

        if message.original_body is None:
            message.original_body = message.body
        message.body = new_body
        message.is_edited = True
        message.edited_at = utcnow()
        message.searchable_text = build_searchable_text(
            new_body, message.file_metadata, message.system_metadata
        )
        self._flush(message_id)

        logger.info("Message edited", message_id=message_id, version=message.version)
        return message

    def soft_delete(
        self,
        message_id: int,
        actor_id: int,
        reason: Optional[str] = None,
        redact: bool = False,
        strict: bool = False,
    ) -> Message:
        """Soft-delete a message.

        Deleting an already deleted message is a no-op unless ``strict``.

        Args:
            message_id: Message to delete.
            actor_id: The sender, a global admin, or a conversation moderator.
            reason: Optional moderation note.
            redact: Also clear the content and attachment reference.
            strict: Raise instead of returning on repeated deletes.

        Raises:
            NotFoundError: If the message does not exist.
            ForbiddenError: If the actor may not delete it.
            AlreadyDeletedError: If already deleted and ``strict`` is set.
        """
        message = self._get_for_update(message_id)
        self._check_moderation_rights(message, actor_id)

        if message.deleted_at is not None:
            if strict:
                raise AlreadyDeletedError(f"Message {message_id} is deleted", message_id)
            return message

        message.deleted_at = utcnow()
        message.deleted_by = actor_id
        message.deletion_reason = reason
        if redact:
            redact_message(message)
        self._flush(message_id)

        logger.info(
            "Message deleted",
            message_id=message_id,
            planet_id=message.planet_id,
            actor_id=actor_id,
            redacted=redact,
        )
        return message

    def restore(self, message_id: int, actor_id: int) -> Message:
        """Undo a soft delete within the restore window.

        Raises:
            NotFoundError: If the message does not exist.
            ForbiddenError: If the actor may not restore it, the message was
                redacted, or the window has passed.
        """
        message = self._get_for_update(message_id)
        self._check_moderation_rights(message, actor_id)

        if message.deleted_at is None:
            return message
        if message.is_redacted:
            raise ForbiddenError("Redacted messages cannot be restored", message_id)

        window = timedelta(hours=self.settings.message_restore_window_hours)
        if utcnow() - message.deleted_at > window:
            raise ForbiddenError("Restore window has passed", message_id)

        message.deleted_at = None
        message.deleted_by = None
        message.deletion_reason = None
        self._flush(message_id)

        logger.info("Message restored", message_id=message_id, actor_id=actor_id)
        return message

    def get(self, message_id: int, include_deleted: bool = True) -> Message:
        """Direct lookup by id. Deleted messages are returned by default.

        Raises:
            NotFoundError: If the message does not exist (or is deleted and
                ``include_deleted`` is False).
        """
        message = self.db.get(Message, message_id)
        if message is None or (not include_deleted and message.deleted_at is not None):
            raise NotFoundError(f"Message {message_id} not found", message_id)
        return message

    # -------------------------------------------------------------------------
    # Memberships
    # -------------------------------------------------------------------------

    def add_member(
        self,
        planet_id: int,
        user_id: int,
        role: str = PlanetUserRole.PARTICIPANT,
        status: str = MembershipStatus.ACTIVE,
        invited_by: Optional[int] = None,
    ) -> PlanetUser:
        """Add an identity to a conversation, or reactivate its membership.

        Raises:
            ValueError: If role or status is invalid.
            NotFoundError: If the conversation or identity is missing.
            ForbiddenError: If the identity is a sentinel or erased.
        """
        if role not in PLANET_ROLES:
            raise ValueError(f"role must be one of {PLANET_ROLES}, got '{role}'")
        if status not in MEMBERSHIP_STATUSES:
            raise ValueError(f"status must be one of {MEMBERSHIP_STATUSES}, got '{status}'")

        if self.db.get(Planet, planet_id) is None:
            raise NotFoundError(f"Conversation {planet_id} not found", planet_id)
        user = self.db.get(User, user_id)
        if user is None:
            raise NotFoundError(f"Identity {user_id} not found", user_id)
        if is_sentinel(user_id) or user.deleted_at is not None:
            raise ForbiddenError(f"Identity {user_id} cannot join conversations", user_id)

        membership = self._membership(planet_id, user_id)
        if membership is None:
            membership = PlanetUser(
                planet_id=planet_id,
                user_id=user_id,
                role=role,
                status=status,
                invited_by=invited_by,
                joined_at=utcnow(),
            )
            self.db.add(membership)
        else:
            membership.role = role
            membership.status = status

        self.db.flush()
        return membership

    def set_member_status(self, planet_id: int, user_id: int, status: str) -> PlanetUser:
        """Change a membership status (mute, leave, re-activate).

        Raises:
            ValueError: If the status is invalid.
            NotFoundError: If there is no such membership.
        """
        if status not in MEMBERSHIP_STATUSES:
            raise ValueError(f"status must be one of {MEMBERSHIP_STATUSES}, got '{status}'")

        membership = self._membership(planet_id, user_id)
        if membership is None:
            raise NotFoundError(
                f"Identity {user_id} is not a member of conversation {planet_id}", user_id
            )
        membership.status = status
        self.db.flush()
        return membership

    def check_read_access(self, planet_id: int, actor_id: int) -> None:
        """Active or muted members and global admins may read a conversation.

        Invited and departed members see nothing, the same rule search uses.

        Raises:
            NotFoundError: If the conversation does not exist.
            ForbiddenError: If the actor may not read it.
        """
        if self.db.get(Planet, planet_id) is None:
            raise NotFoundError(f"Conversation {planet_id} not found", planet_id)

        actor = self.db.get(User, actor_id)
        if actor is not None and actor.role == UserRole.ADMIN and actor.deleted_at is None:
            return
        membership = self._membership(planet_id, actor_id)
        if membership is None or membership.status not in READABLE_STATUSES:
            raise ForbiddenError(
                f"Identity {actor_id} is not a member of conversation {planet_id}", actor_id
            )

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _membership(self, planet_id: int, user_id: int) -> Optional[PlanetUser]:
        return (
            self.db.query(PlanetUser)
            .filter_by(planet_id=planet_id, user_id=user_id)
            .first()
        )

    def _get_for_update(self, message_id: int) -> Message:
        message = (
            self.db.query(Message)
            .filter(Message.id == message_id)
            .with_for_update()
            .first()
        )
        if message is None:
            raise NotFoundError(f"Message {message_id} not found", message_id)
        return message

    def _check_moderation_rights(self, message: Message, actor_id: int) -> None:
        if message.sender_id == actor_id and not is_sentinel(actor_id):
            return

        actor = self.db.get(User, actor_id)
        if actor is None or actor.deleted_at is not None or actor.is_system:
            raise ForbiddenError("Actor cannot moderate this message", message.id)
        if actor.role == UserRole.ADMIN:
            return

        membership = self._membership(message.planet_id, actor_id)
        if (
            membership is not None
            and membership.role in MODERATOR_ROLES
            and membership.status == MembershipStatus.ACTIVE
        ):
            return

        raise ForbiddenError("Actor cannot moderate this message", message.id)

    def _flush(self, message_id: int) -> None:
        try:
            self.db.flush()
        except StaleDataError as e:
            raise ConflictError(f"Message {message_id} was modified concurrently", message_id) from e


def redact_message(message: Message) -> None:
    """Clear the content of a message, keeping the row and its position."""
    message.body = None
    message.original_body = None
    message.file_metadata = None
    message.system_metadata = None
    message.searchable_text = None
    message.is_redacted = True
