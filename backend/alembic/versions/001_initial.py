"""Initial schema: users, preferences, subscriptions, content catalog, mood sessions, schedules, sent logs

Revision ID: 001
Revises:
Create Date: 2026-09-14

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("locale", sa.String(16), nullable=False, server_default="en"),
        sa.Column("timezone", sa.String(64), nullable=False, server_default="UTC"),
        sa.Column("is_subscriber", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_locale", "users", ["locale"], unique=False)
    op.create_index("ix_users_is_subscriber", "users", ["is_subscriber"], unique=False)

    op.create_table(
        "notification_preferences",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("frequency", sa.SmallInteger(), nullable=False, server_default="2"),
        sa.Column("quiet_start", sa.Time(), nullable=False, server_default="22:00:00"),
        sa.Column("quiet_end", sa.Time(), nullable=False, server_default="08:00:00"),
        sa.Column("allow_push", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("frequency >= 1 AND frequency <= 4", name="ck_notification_preferences_frequency"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "subscriptions",
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("original_transaction_id", sa.String(128), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="lapsed"),
        sa.Column("renews_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("last_verified_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("user_id"),
        sa.UniqueConstraint("original_transaction_id"),
    )
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"], unique=False)
    op.create_index("ix_subscriptions_renews_at", "subscriptions", ["renews_at"], unique=False)

    op.create_table(
        "affirmation_categories",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("locale", sa.String(16), nullable=False, server_default="en"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key", "locale", name="uq_affirmation_categories_key_locale"),
    )
    op.create_index("ix_affirmation_categories_is_active", "affirmation_categories", ["is_active"], unique=False)

    op.create_table(
        "affirmations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("locale", sa.String(16), nullable=False, server_default="en"),
        sa.Column("intensity", sa.SmallInteger(), nullable=False, server_default="1"),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("intensity >= 1 AND intensity <= 3", name="ck_affirmations_intensity"),
        sa.ForeignKeyConstraint(["category_id"], ["affirmation_categories.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_affirmations_category_locale_active",
        "affirmations",
        ["category_id", "locale", "is_active"],
        unique=False,
    )

    op.create_table(
        "device_tokens",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("token", sa.String(255), nullable=False),
        sa.Column("bundle_id", sa.String(200), nullable=False),
        sa.Column("platform", sa.String(16), nullable=False, server_default="ios"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("token"),
    )
    op.create_index("ix_device_tokens_user_id", "device_tokens", ["user_id"], unique=False)
    op.create_index("ix_device_tokens_is_active", "device_tokens", ["is_active"], unique=False)

    op.create_table(
        "mood_sessions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="active"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("frequency_per_day", sa.SmallInteger(), nullable=False, server_default="2"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "frequency_per_day >= 1 AND frequency_per_day <= 4", name="ck_mood_sessions_frequency_per_day"
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["category_id"], ["affirmation_categories.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_mood_sessions_ends_at", "mood_sessions", ["ends_at"], unique=False)
    op.create_index("ix_mood_sessions_user_status", "mood_sessions", ["user_id", "status"], unique=False)
    op.create_index(
        "uq_mood_sessions_user_active",
        "mood_sessions",
        ["user_id"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )

    op.create_table(
        "notification_schedules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("mood_session_id", sa.Integer(), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("payload_ref", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="scheduled"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("next_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["mood_session_id"], ["mood_sessions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["payload_ref"], ["affirmations.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_notification_schedules_mood_session_id", "notification_schedules", ["mood_session_id"], unique=False
    )
    op.create_index(
        "ix_notification_schedules_user_scheduled_status",
        "notification_schedules",
        ["user_id", "scheduled_at", "status"],
        unique=False,
    )
    op.create_index(
        "ix_notification_schedules_status_scheduled",
        "notification_schedules",
        ["status", "scheduled_at"],
        unique=False,
    )

    op.create_table(
        "sent_logs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("schedule_id", sa.Integer(), nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("delivery_id", sa.String(128), nullable=True),
        sa.Column("result", sa.String(32), nullable=False),
        sa.Column("error_code", sa.String(64), nullable=True),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="1"),
        sa.ForeignKeyConstraint(["schedule_id"], ["notification_schedules.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sent_logs_schedule_id", "sent_logs", ["schedule_id"], unique=False)
    op.create_index("ix_sent_logs_sent_at", "sent_logs", ["sent_at"], unique=False)
    op.create_index("ix_sent_logs_result", "sent_logs", ["result"], unique=False)

    op.create_table(
        "content_usage",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("affirmation_id", sa.Integer(), nullable=False),
        sa.Column("schedule_entry_id", sa.Integer(), nullable=True),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["affirmation_id"], ["affirmations.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["schedule_entry_id"], ["notification_schedules.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_content_usage_user_id", "content_usage", ["user_id"], unique=False)
    op.create_index("ix_content_usage_schedule_entry_id", "content_usage", ["schedule_entry_id"], unique=False)
    op.create_index(
        "ix_content_usage_user_affirmation", "content_usage", ["user_id", "affirmation_id"], unique=False
    )

    op.create_table(
        "analytics_events",
        sa.Column("id", sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(64), nullable=True),
        sa.Column("name", sa.String(64), nullable=False),
        sa.Column("props", sa.JSON(), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_analytics_events_user_id", "analytics_events", ["user_id"], unique=False)
    op.create_index("ix_analytics_events_name", "analytics_events", ["name"], unique=False)
    op.create_index("ix_analytics_events_ts", "analytics_events", ["ts"], unique=False)


def downgrade() -> None:
    op.drop_table("analytics_events")
    op.drop_table("content_usage")
    op.drop_table("sent_logs")
    op.drop_table("notification_schedules")
    op.drop_index("uq_mood_sessions_user_active", table_name="mood_sessions")
    op.drop_table("mood_sessions")
    op.drop_table("device_tokens")
    op.drop_table("affirmations")
    op.drop_table("affirmation_categories")
    op.drop_table("subscriptions")
    op.drop_table("notification_preferences")
    op.drop_table("users")
