"""Initial planet chat schema

Revision ID: 001
Revises:
Create Date: 2026-10-19

Creates:
- users (with sentinel rows -1 / -2)
- profiles
- travels, travel_users
- planets, planet_users
- messages (keyset, full-text and trigram indexes)
- planet_read_states
- notifications
- file_uploads
- audit_log

Requires the pg_trgm extension for the trigram index.
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MEMBERSHIP_STATUSES = ("active", "invited", "muted", "left")


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pg_trgm")

    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("display_name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("avatar_url", sa.String(512), nullable=True),
        sa.Column("provider", sa.String(32), nullable=True),
        sa.Column("provider_user_id", sa.String(128), nullable=True),
        sa.Column(
            "role",
            sa.Enum("user", "host", "admin", name="user_role_enum"),
            nullable=False,
            server_default="user",
        ),
        sa.Column("is_system", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_banned", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("ban_reason", sa.Text, nullable=True),
        sa.Column("banned_at", sa.DateTime, nullable=True),
        sa.Column("deleted_at", sa.DateTime, nullable=True),
        sa.Column("deleted_by", sa.BigInteger, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("deletion_reason", sa.Text, nullable=True),
        sa.Column("erased_role", sa.String(16), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("provider", "provider_user_id", name="uq_user_provider"),
    )
    op.create_index("idx_user_deleted", "users", ["deleted_at"])

    # Sentinel identities
    op.execute(
        "INSERT INTO users (id, display_name, role, is_system) VALUES "
        "(-1, 'Deleted user', 'user', true), "
        "(-2, 'Deleted admin', 'admin', true) "
        "ON CONFLICT (id) DO NOTHING"
    )

    # Profiles table
    op.create_table(
        "profiles",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "user_id", sa.BigInteger, sa.ForeignKey("users.id"), nullable=False, unique=True
        ),
        sa.Column("nickname", sa.String(50), nullable=True),
        sa.Column("bio", sa.Text, nullable=True),
        sa.Column("birth_year", sa.Integer, nullable=True),
        sa.Column("gender", sa.String(16), nullable=True),
        sa.Column("occupation", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # Travels
    op.create_table(
        "travels",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "travel_users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("travel_id", sa.BigInteger, sa.ForeignKey("travels.id"), nullable=False),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "role",
            sa.Enum("participant", "host", name="travel_user_role_enum"),
            nullable=False,
            server_default="participant",
        ),
        sa.Column(
            "status",
            sa.Enum(*MEMBERSHIP_STATUSES, name="travel_user_status_enum"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("joined_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "uq_travel_user_live",
        "travel_users",
        ["travel_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("user_id > 0"),
    )
    op.create_index("idx_travel_user_user", "travel_users", ["user_id"])

    # Planets
    op.create_table(
        "planets",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column(
            "type",
            sa.Enum("group", "direct", "announcement", name="planet_type_enum"),
            nullable=False,
            server_default="group",
        ),
        sa.Column("travel_id", sa.BigInteger, sa.ForeignKey("travels.id"), nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_table(
        "planet_users",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("planet_id", sa.BigInteger, sa.ForeignKey("planets.id"), nullable=False),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "role",
            sa.Enum("participant", "creator", "admin", name="planet_user_role_enum"),
            nullable=False,
            server_default="participant",
        ),
        sa.Column(
            "status",
            sa.Enum(*MEMBERSHIP_STATUSES, name="planet_user_status_enum"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("invited_by", sa.BigInteger, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("joined_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index(
        "uq_planet_user_live",
        "planet_users",
        ["planet_id", "user_id"],
        unique=True,
        postgresql_where=sa.text("user_id > 0"),
    )
    op.create_index("idx_planet_user_user", "planet_users", ["user_id"])

    # Messages
    op.create_table(
        "messages",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("planet_id", sa.BigInteger, sa.ForeignKey("planets.id"), nullable=False),
        sa.Column("sender_id", sa.BigInteger, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "type",
            sa.Enum("text", "image", "video", "file", "system", name="message_type_enum"),
            nullable=False,
            server_default="text",
        ),
        sa.Column(
            "status",
            sa.Enum("sent", "delivered", "read", "failed", name="message_status_enum"),
            nullable=False,
            server_default="sent",
        ),
        sa.Column("body", sa.Text, nullable=True),
        sa.Column("original_body", sa.Text, nullable=True),
        sa.Column("file_metadata", sa.JSON, nullable=True),
        sa.Column("system_metadata", sa.JSON, nullable=True),
        sa.Column("searchable_text", sa.Text, nullable=True),
        sa.Column("reply_to_message_id", sa.BigInteger, nullable=True),
        sa.Column("is_edited", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("edited_at", sa.DateTime, nullable=True),
        sa.Column("deleted_at", sa.DateTime, nullable=True),
        sa.Column("deleted_by", sa.BigInteger, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("deletion_reason", sa.Text, nullable=True),
        sa.Column("is_redacted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_msg_sender", "messages", ["sender_id"])
    op.create_index("idx_msg_deleted_by", "messages", ["deleted_by"])
    op.create_index(
        "idx_msg_planet_time",
        "messages",
        ["planet_id", sa.text("created_at DESC"), sa.text("id DESC")],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )
    op.create_index(
        "idx_msg_planet_type_time",
        "messages",
        ["planet_id", "type", sa.text("created_at DESC"), sa.text("id DESC")],
        postgresql_where=sa.text("deleted_at IS NULL"),
    )
    op.execute(
        "CREATE INDEX idx_msg_search_tsv ON messages "
        "USING gin (to_tsvector('simple'::regconfig, searchable_text)) "
        "WHERE deleted_at IS NULL"
    )
    op.execute(
        "CREATE INDEX idx_msg_search_trgm ON messages "
        "USING gin (searchable_text gin_trgm_ops) "
        "WHERE deleted_at IS NULL"
    )

    # Read state
    op.create_table(
        "planet_read_states",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("planet_id", sa.BigInteger, sa.ForeignKey("planets.id"), nullable=False),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("last_read_message_id", sa.BigInteger, nullable=False),
        sa.Column("last_read_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("planet_id", "user_id", name="uq_read_state"),
    )
    op.create_index("idx_read_state_user", "planet_read_states", ["user_id"])

    # Notifications
    op.create_table(
        "notifications",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "message", "mention", "reply", "banned", "system",
                name="notification_type_enum",
            ),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=True),
        sa.Column("body", sa.Text, nullable=True),
        sa.Column("related_message_id", sa.BigInteger, nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_notification_user", "notifications", ["user_id", "created_at"])

    # File uploads
    op.create_table(
        "file_uploads",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("storage_key", sa.String(512), nullable=False),
        sa.Column("original_name", sa.String(255), nullable=True),
        sa.Column("mime_type", sa.String(128), nullable=True),
        sa.Column("size_bytes", sa.BigInteger, nullable=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_file_upload_user", "file_uploads", ["user_id"])

    # Audit log (no foreign keys)
    op.create_table(
        "audit_log",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("ts", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column(
            "actor",
            sa.Enum("user", "admin", "system", name="audit_actor_enum"),
            nullable=False,
        ),
        sa.Column("actor_id", sa.BigInteger, nullable=True),
        sa.Column("action_type", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=True),
        sa.Column("entity_id", sa.BigInteger, nullable=True),
        sa.Column("request_json", sa.JSON, nullable=True),
        sa.Column("response_json", sa.JSON, nullable=True),
        sa.Column(
            "result",
            sa.Enum("ok", "error", name="audit_result_enum"),
            nullable=False,
        ),
        sa.Column("error_detail", sa.Text, nullable=True),
    )
    op.create_index("idx_audit_ts", "audit_log", ["ts"])
    op.create_index("idx_audit_action", "audit_log", ["action_type"])
    op.create_index("idx_audit_entity", "audit_log", ["entity_type", "entity_id"])


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("file_uploads")
    op.drop_table("notifications")
    op.drop_table("planet_read_states")
    op.drop_table("messages")
    op.drop_table("planet_users")
    op.drop_table("planets")
    op.drop_table("travel_users")
    op.drop_table("travels")
    op.drop_table("profiles")
    op.drop_table("users")

    # Drop enums
    op.execute("DROP TYPE IF EXISTS audit_result_enum")
    op.execute("DROP TYPE IF EXISTS audit_actor_enum")
    op.execute("DROP TYPE IF EXISTS notification_type_enum")
    op.execute("DROP TYPE IF EXISTS message_status_enum")
    op.execute("DROP TYPE IF EXISTS message_type_enum")
    op.execute("DROP TYPE IF EXISTS planet_user_status_enum")
    op.execute("DROP TYPE IF EXISTS planet_user_role_enum")
    op.execute("DROP TYPE IF EXISTS planet_type_enum")
    op.execute("DROP TYPE IF EXISTS travel_user_status_enum")
    op.execute("DROP TYPE IF EXISTS travel_user_role_enum")
    op.execute("DROP TYPE IF EXISTS user_role_enum")
