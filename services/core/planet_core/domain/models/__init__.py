"""Domain models for Planet Core.

SQLAlchemy ORM models for identities, conversations (planets), their
messages and the personal data that hangs off an identity. Deletion is
modelled with nullable ``deleted_at`` timestamps throughout.
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
    literal_column,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (columns are stored in UTC)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# SENTINELS
# =============================================================================

SENTINEL_USER_ID = -1
SENTINEL_ADMIN_ID = -2

SENTINEL_USERS = {
    SENTINEL_USER_ID: {"display_name": "Deleted user", "role": "user"},
    SENTINEL_ADMIN_ID: {"display_name": "Deleted admin", "role": "admin"},
}

# Shown instead of an erased identity's name
ERASED_DISPLAY_NAME = "Deleted user"


# =============================================================================
# ENUMS
# =============================================================================


class UserRole(str):
    """Global identity role values."""

    USER = "user"
    HOST = "host"
    ADMIN = "admin"


class MessageType(str):
    """Message type values."""

    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    FILE = "file"
    SYSTEM = "system"


class MessageStatus(str):
    """Delivery status values."""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class PlanetType(str):
    """Conversation type values."""

    GROUP = "group"
    DIRECT = "direct"
    ANNOUNCEMENT = "announcement"


class PlanetUserRole(str):
    """Role inside a conversation."""

    PARTICIPANT = "participant"
    CREATOR = "creator"
    ADMIN = "admin"


class MembershipStatus(str):
    """Membership status values."""

    ACTIVE = "active"
    INVITED = "invited"
    MUTED = "muted"
    LEFT = "left"


class TravelUserRole(str):
    """Role inside a travel group."""

    PARTICIPANT = "participant"
    HOST = "host"


class NotificationType(str):
    """Notification type values."""

    MESSAGE = "message"
    MENTION = "mention"
    REPLY = "reply"
    BANNED = "banned"
    SYSTEM = "system"


class AuditActor(str):
    """Audit actor values."""

    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"


class AuditResult(str):
    """Audit result values."""

    OK = "ok"
    ERROR = "error"


MESSAGE_TYPES = ("text", "image", "video", "file", "system")
MEMBERSHIP_STATUSES = ("active", "invited", "muted", "left")
# Memberships that may read, search and track a conversation
READABLE_STATUSES = ("active", "muted")


# =============================================================================
# IDENTITIES
# =============================================================================


class User(Base):
    """An identity: a real account or one of the sentinel placeholders."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Personal data, scrubbed on erasure
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # Social login identity
    provider: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    provider_user_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    role: Mapped[str] = mapped_column(
        Enum("user", "host", "admin", name="user_role_enum"),
        nullable=False,
        default="user",
    )
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ban_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    banned_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_by: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )
    deletion_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # Role held at erasure time, picks the sentinel references resolve to
    erased_role: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("provider", "provider_user_id", name="uq_user_provider"),
        Index("idx_user_deleted", "deleted_at"),
    )

    # Relationships
    profile: Mapped[Optional["Profile"]] = relationship(back_populates="user")

    @property
    def is_erased(self) -> bool:
        return self.deleted_at is not None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


class Profile(Base):
    """Optional profile details. Strictly personal data."""

    __tablename__ = "profiles"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=False, unique=True
    )
    nickname: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    birth_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)
    occupation: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    user: Mapped["User"] = relationship(back_populates="profile")


# =============================================================================
# TRAVELS AND PLANETS
# =============================================================================


class Travel(Base):
    """A travel group; planets may belong to one."""

    __tablename__ = "travels"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    members: Mapped[list["TravelUser"]] = relationship(back_populates="travel")


class TravelUser(Base):
    """Membership of an identity in a travel group."""

    __tablename__ = "travel_users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    travel_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("travels.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    role: Mapped[str] = mapped_column(
        Enum("participant", "host", name="travel_user_role_enum"),
        nullable=False,
        default="participant",
    )
    status: Mapped[str] = mapped_column(
        Enum(*MEMBERSHIP_STATUSES, name="travel_user_status_enum"),
        nullable=False,
        default="active",
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        # Only real identities are unique; sentinels may hold many rows
        Index(
            "uq_travel_user_live",
            "travel_id",
            "user_id",
            unique=True,
            postgresql_where=text("user_id > 0"),
            sqlite_where=text("user_id > 0"),
        ),
        Index("idx_travel_user_user", "user_id"),
    )

    travel: Mapped["Travel"] = relationship(back_populates="members")


class Planet(Base):
    """A conversation."""

    __tablename__ = "planets"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(
        Enum("group", "direct", "announcement", name="planet_type_enum"),
        nullable=False,
        default="group",
    )
    travel_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("travels.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    members: Mapped[list["PlanetUser"]] = relationship(back_populates="planet")


class PlanetUser(Base):
    """Membership of an identity in a conversation."""

    __tablename__ = "planet_users"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    planet_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("planets.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    role: Mapped[str] = mapped_column(
        Enum("participant", "creator", "admin", name="planet_user_role_enum"),
        nullable=False,
        default="participant",
    )
    status: Mapped[str] = mapped_column(
        Enum(*MEMBERSHIP_STATUSES, name="planet_user_status_enum"),
        nullable=False,
        default="active",
    )
    invited_by: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )
    joined_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index(
            "uq_planet_user_live",
            "planet_id",
            "user_id",
            unique=True,
            postgresql_where=text("user_id > 0"),
            sqlite_where=text("user_id > 0"),
        ),
        Index("idx_planet_user_user", "user_id"),
    )

    planet: Mapped["Planet"] = relationship(back_populates="members")


# =============================================================================
# MESSAGES
# =============================================================================


class Message(Base):
    """A message in a conversation. Rows are never physically deleted."""

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    planet_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("planets.id"), nullable=False
    )
    sender_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)

    type: Mapped[str] = mapped_column(
        Enum(*MESSAGE_TYPES, name="message_type_enum"), nullable=False, default="text"
    )
    status: Mapped[str] = mapped_column(
        Enum("sent", "delivered", "read", "failed", name="message_status_enum"),
        nullable=False,
        default="sent",
    )

    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    original_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_metadata: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    system_metadata: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    searchable_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Weak reference, the target may be soft-deleted later
    reply_to_message_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    edited_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    deleted_by: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("users.id"), nullable=True
    )
    deletion_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_redacted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        Index("idx_msg_sender", "sender_id"),
        Index("idx_msg_deleted_by", "deleted_by"),
    )

    __mapper_args__ = {"version_id_col": version}

    sender: Mapped["User"] = relationship(foreign_keys=[sender_id])

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


_LIVE_MESSAGES = Message.deleted_at.is_(None)

# Keyset pagination: newest first, id breaks timestamp ties
Index(
    "idx_msg_planet_time",
    Message.planet_id,
    Message.created_at.desc(),
    Message.id.desc(),
    postgresql_where=_LIVE_MESSAGES,
    sqlite_where=_LIVE_MESSAGES,
)
Index(
    "idx_msg_planet_type_time",
    Message.planet_id,
    Message.type,
    Message.created_at.desc(),
    Message.id.desc(),
    postgresql_where=_LIVE_MESSAGES,
    sqlite_where=_LIVE_MESSAGES,
)
Index(
    "idx_msg_search_tsv",
    func.to_tsvector(literal_column("'simple'::regconfig"), Message.searchable_text),
    postgresql_using="gin",
    postgresql_where=_LIVE_MESSAGES,
).ddl_if(dialect="postgresql")
Index(
    "idx_msg_search_trgm",
    Message.searchable_text,
    postgresql_using="gin",
    postgresql_ops={"searchable_text": "gin_trgm_ops"},
    postgresql_where=_LIVE_MESSAGES,
).ddl_if(dialect="postgresql")


class PlanetReadState(Base):
    """Per-user read high-water mark for a conversation."""

    __tablename__ = "planet_read_states"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    planet_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("planets.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    last_read_message_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    last_read_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("planet_id", "user_id", name="uq_read_state"),
        Index("idx_read_state_user", "user_id"),
    )


# =============================================================================
# PERSONAL DATA AND UPLOADS
# =============================================================================


class Notification(Base):
    """Notification addressed to one identity."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    type: Mapped[str] = mapped_column(
        Enum(
            "message", "mention", "reply", "banned", "system",
            name="notification_type_enum",
        ),
        nullable=False,
    )
    title: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    related_message_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_notification_user", "user_id", "created_at"),)


class FileUpload(Base):
    """Uploaded file record; the blob itself lives in external storage."""

    __tablename__ = "file_uploads"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, ForeignKey("users.id"), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(512), nullable=False)
    original_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    mime_type: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    size_bytes: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_file_upload_user", "user_id"),)


# =============================================================================
# AUDIT
# =============================================================================


class AuditLog(Base):
    """Append-only audit log. No foreign keys so entries outlive erasure."""

    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    ts: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    actor: Mapped[str] = mapped_column(
        Enum("user", "admin", "system", name="audit_actor_enum"), nullable=False
    )
    actor_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    action_type: Mapped[str] = mapped_column(String(128), nullable=False)

    entity_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    request_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    response_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    result: Mapped[str] = mapped_column(
        Enum("ok", "error", name="audit_result_enum"), nullable=False
    )
    error_detail: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_audit_ts", "ts"),
        Index("idx_audit_action", "action_type"),
        Index("idx_audit_entity", "entity_type", "entity_id"),
    )
