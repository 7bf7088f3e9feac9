"""Initial lifecycle schema: quests, instances, signups, squads, audit, notifications

Revision ID: 7c1e0a9b4d21
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "7c1e0a9b4d21"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JsonDoc = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    """Create every lifecycle table."""
    op.create_table(
        "quests",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("creator_id", sa.BigInteger(), nullable=True),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column("review_status", sa.String(30), nullable=False, server_default="pending_review"),
        sa.Column("previous_status", sa.String(30), nullable=True),
        sa.Column("priority_flag", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("revision_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paused_reason", sa.Text(), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_reason", sa.Text(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_reason", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_quests_review_status", "quests", ["review_status"])
    op.create_index("ix_quests_status", "quests", ["status"])

    op.create_table(
        "quest_instances",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "quest_id", sa.Integer(),
            sa.ForeignKey("quests.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column("previous_status", sa.String(30), nullable=True),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("target_squad_size", sa.Integer(), nullable=True),
        sa.Column("current_signup_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("warm_up_min_ready_pct", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("paused_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paused_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_reason", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    op.create_index("ix_instances_quest", "quest_instances", ["quest_id"])
    op.create_index("ix_instances_status_date", "quest_instances", ["status", "scheduled_date"])

    op.create_table(
        "quest_signups",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "instance_id", sa.Integer(),
            sa.ForeignKey("quest_instances.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="pending"),
        _timestamp("created_at"),
        sa.UniqueConstraint("instance_id", "user_id", name="uq_signups_instance_user"),
    )

    op.create_table(
        "quest_squads",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "instance_id", sa.Integer(),
            sa.ForeignKey("quest_instances.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("status", sa.String(30), nullable=False, server_default="draft"),
        sa.Column("warming_up_since", sa.DateTime(timezone=True), nullable=True),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("invite_code", sa.String(20), nullable=True, unique=True),
        sa.Column("theme_tags", JsonDoc, nullable=False),
        sa.Column("commitment_style", sa.String(20), nullable=False, server_default="casual"),
        sa.Column("org_code", sa.String(50), nullable=True),
        sa.Column("rules", sa.Text(), nullable=True),
        sa.Column("role_rotation_mode", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("lfc_listing_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("application_prompts", JsonDoc, nullable=False),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_by", sa.BigInteger(), nullable=True),
        sa.Column("approval_notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_squads_instance", "quest_squads", ["instance_id"])

    op.create_table(
        "squad_members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "squad_id", sa.Integer(),
            sa.ForeignKey("quest_squads.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("role", sa.String(30), nullable=False, server_default="member"),
        sa.Column("status", sa.String(30), nullable=False, server_default="active"),
        sa.Column("readiness_confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("removed_reason", sa.Text(), nullable=True),
        sa.UniqueConstraint("squad_id", "user_id", name="uq_squad_members_squad_user"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("actor_id", sa.BigInteger(), nullable=False),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("target_table", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(100), nullable=True),
        sa.Column("before_snapshot", JsonDoc, nullable=True),
        sa.Column("after_snapshot", JsonDoc, nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("security_sensitive", sa.Boolean(), nullable=False, server_default=sa.false()),
        _timestamp("created_at"),
    )
    op.create_index("ix_audit_log_actor_time", "audit_log", ["actor_id", "created_at"])
    op.create_index(
        "ix_audit_log_target", "audit_log", ["target_table", "target_id", "created_at"]
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger(), nullable=False),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("payload", JsonDoc, nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("created_at"),
    )
    op.create_index("ix_notifications_user_time", "notifications", ["user_id", "created_at"])


def downgrade() -> None:
    """Drop every lifecycle table, children first."""
    op.drop_index("ix_notifications_user_time", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_audit_log_target", table_name="audit_log")
    op.drop_index("ix_audit_log_actor_time", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("squad_members")
    op.drop_index("ix_squads_instance", table_name="quest_squads")
    op.drop_table("quest_squads")
    op.drop_table("quest_signups")
    op.drop_index("ix_instances_status_date", table_name="quest_instances")
    op.drop_index("ix_instances_quest", table_name="quest_instances")
    op.drop_table("quest_instances")
    op.drop_index("ix_quests_status", table_name="quests")
    op.drop_index("ix_quests_review_status", table_name="quests")
    op.drop_table("quests")
