"""
questboard.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- quests            — Creator-submitted quest templates under admin review
- quest_instances   — One dated occurrence of a quest
- quest_signups     — Participant signups per instance (notification audience)
- quest_squads      — Sub-groups of participants within an instance
- squad_members     — Squad membership; removal is a status, never a delete
- audit_log         — Append-only trail of every lifecycle mutation
- notifications     — In-app notifications written by the default notifier
"""

from __future__ import annotations

import enum
from datetime import date, datetime, time

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests).
JsonDoc = JSON().with_variant(JSONB(), "postgresql")


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Questboard ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class QuestStatus(enum.StrEnum):
    """Publication lifecycle of a quest template."""
    DRAFT = "draft"
    OPEN = "open"
    PAUSED = "paused"
    CLOSED = "closed"
    CANCELLED = "cancelled"
    REVOKED = "revoked"
    COMPLETED = "completed"
    DELETED = "deleted"


class ReviewStatus(enum.StrEnum):
    """Admin review state of a quest template."""
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    CHANGES_REQUESTED = "changes_requested"


class InstanceStatus(enum.StrEnum):
    """Execution lifecycle of a scheduled instance."""
    DRAFT = "draft"
    RECRUITING = "recruiting"
    LOCKED = "locked"
    LIVE = "live"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ARCHIVED = "archived"


class SignupStatus(enum.StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DROPPED = "dropped"


class SquadStatus(enum.StrEnum):
    """Squad formation and warm-up lifecycle."""
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    WARMING_UP = "warming_up"
    READY_FOR_REVIEW = "ready_for_review"
    APPROVED = "approved"
    ACTIVE = "active"
    COMPLETED = "completed"


class MemberRole(enum.StrEnum):
    MEMBER = "member"
    LEADER = "leader"


class MemberStatus(enum.StrEnum):
    ACTIVE = "active"
    REMOVED = "removed"


class AuditAction(enum.StrEnum):
    """Categories of lifecycle mutations recorded in audit_log."""
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    STATUS_CHANGE = "STATUS_CHANGE"
    REVIEW = "REVIEW"
    REVOKE = "REVOKE"
    SOFT_DELETE = "SOFT_DELETE"
    BULK_STATUS = "BULK_STATUS"
    BULK_FORCE_STATUS = "BULK_FORCE_STATUS"
    LEADERSHIP_TRANSFER = "LEADERSHIP_TRANSFER"
    ARCHIVE = "ARCHIVE"
    REACTIVATE = "REACTIVATE"
    RENAME = "RENAME"
    SETTINGS_UPDATE = "SETTINGS_UPDATE"
    INVITE_CODE_REGENERATE = "INVITE_CODE_REGENERATE"
    MEMBER_REMOVE = "MEMBER_REMOVE"
    READINESS_CONFIRM = "READINESS_CONFIRM"
    NOTIFY_FAILED = "NOTIFY_FAILED"


def _status_column(enum_cls: type[enum.StrEnum]) -> Enum:
    """Store a StrEnum by value in a plain VARCHAR, validated on the Python side."""
    return Enum(
        enum_cls,
        native_enum=False,
        length=30,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


# ---------------------------------------------------------------------------
# Quests: creator-submitted templates
# ---------------------------------------------------------------------------
class Quest(Base):
    __tablename__ = "quests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    creator_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    status: Mapped[QuestStatus] = mapped_column(
        _status_column(QuestStatus), default=QuestStatus.DRAFT, nullable=False
    )
    review_status: Mapped[ReviewStatus] = mapped_column(
        _status_column(ReviewStatus), default=ReviewStatus.PENDING_REVIEW, nullable=False
    )
    previous_status: Mapped[QuestStatus | None] = mapped_column(
        _status_column(QuestStatus), default=None
    )
    priority_flag: Mapped[bool] = mapped_column(Boolean, default=False)
    admin_notes: Mapped[str | None] = mapped_column(Text, default=None)
    revision_count: Mapped[int] = mapped_column(Integer, default=0)
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    paused_reason: Mapped[str | None] = mapped_column(Text, default=None)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    revoked_reason: Mapped[str | None] = mapped_column(Text, default=None)
    cancelled_reason: Mapped[str | None] = mapped_column(Text, default=None)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    deleted_reason: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    instances: Mapped[list[QuestInstance]] = relationship(back_populates="quest")

    __table_args__ = (
        Index("ix_quests_review_status", "review_status"),
        Index("ix_quests_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Quest id={self.id} status={self.status} review={self.review_status}>"


# ---------------------------------------------------------------------------
# QuestInstance: one scheduled occurrence
# ---------------------------------------------------------------------------
class QuestInstance(Base):
    """A dated, timed occurrence of a quest.

    ``scheduled_date`` + ``start_time`` are wall-clock values in the
    configured event timezone (see :class:`~questboard.config.LifecycleTuning`).
    """
    __tablename__ = "quest_instances"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    quest_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("quests.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[InstanceStatus] = mapped_column(
        _status_column(InstanceStatus), default=InstanceStatus.DRAFT, nullable=False
    )
    previous_status: Mapped[InstanceStatus | None] = mapped_column(
        _status_column(InstanceStatus), default=None
    )
    scheduled_date: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, default=0)
    target_squad_size: Mapped[int | None] = mapped_column(Integer, default=None)
    current_signup_count: Mapped[int] = mapped_column(Integer, default=0)
    warm_up_min_ready_pct: Mapped[int] = mapped_column(Integer, default=100)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    paused_reason: Mapped[str | None] = mapped_column(Text, default=None)
    cancelled_reason: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    quest: Mapped[Quest] = relationship(back_populates="instances")
    squads: Mapped[list[Squad]] = relationship(back_populates="instance")

    __table_args__ = (
        Index("ix_instances_quest", "quest_id"),
        Index("ix_instances_status_date", "status", "scheduled_date"),
    )

    def __repr__(self) -> str:
        return f"<QuestInstance id={self.id} status={self.status} date={self.scheduled_date}>"


# ---------------------------------------------------------------------------
# QuestSignup: who is enrolled in an instance
# ---------------------------------------------------------------------------
class QuestSignup(Base):
    __tablename__ = "quest_signups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    instance_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("quest_instances.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[SignupStatus] = mapped_column(
        _status_column(SignupStatus), default=SignupStatus.PENDING, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("instance_id", "user_id", name="uq_signups_instance_user"),
    )

    def __repr__(self) -> str:
        return f"<QuestSignup instance={self.instance_id} user={self.user_id} {self.status}>"


# ---------------------------------------------------------------------------
# Squad: participants grouped within an instance
# ---------------------------------------------------------------------------
class Squad(Base):
    """A squad and its governance settings.

    ``archived_at`` is deliberately independent of ``status`` so that
    reactivating restores whatever status the squad had.
    """
    __tablename__ = "quest_squads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    instance_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("quest_instances.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[SquadStatus] = mapped_column(
        _status_column(SquadStatus), default=SquadStatus.DRAFT, nullable=False
    )
    warming_up_since: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    invite_code: Mapped[str | None] = mapped_column(String(20), unique=True, default=None)

    # Settings
    theme_tags: Mapped[list] = mapped_column(JsonDoc, default=list)
    commitment_style: Mapped[str] = mapped_column(String(20), default="casual")
    org_code: Mapped[str | None] = mapped_column(String(50), default=None)
    rules: Mapped[str | None] = mapped_column(Text, default=None)
    role_rotation_mode: Mapped[str] = mapped_column(String(20), default="manual")
    lfc_listing_enabled: Mapped[bool] = mapped_column(Boolean, default=False)
    application_prompts: Mapped[list] = mapped_column(JsonDoc, default=list)

    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    approved_by: Mapped[int | None] = mapped_column(BigInteger, default=None)
    approval_notes: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    instance: Mapped[QuestInstance] = relationship(back_populates="squads")
    members: Mapped[list[SquadMember]] = relationship(
        back_populates="squad", order_by="SquadMember.id"
    )

    __table_args__ = (
        Index("ix_squads_instance", "instance_id"),
    )

    def __repr__(self) -> str:
        return f"<Squad id={self.id} name={self.name!r} status={self.status}>"


# ---------------------------------------------------------------------------
# SquadMember: membership rows (history preserved)
# ---------------------------------------------------------------------------
class SquadMember(Base):
    __tablename__ = "squad_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    squad_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("quest_squads.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    role: Mapped[MemberRole] = mapped_column(
        _status_column(MemberRole), default=MemberRole.MEMBER, nullable=False
    )
    status: Mapped[MemberStatus] = mapped_column(
        _status_column(MemberStatus), default=MemberStatus.ACTIVE, nullable=False
    )
    readiness_confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    removed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    removed_reason: Mapped[str | None] = mapped_column(Text, default=None)

    squad: Mapped[Squad] = relationship(back_populates="members")

    __table_args__ = (
        UniqueConstraint("squad_id", "user_id", name="uq_squad_members_squad_user"),
    )

    def __repr__(self) -> str:
        return f"<SquadMember squad={self.squad_id} user={self.user_id} {self.role}/{self.status}>"


# ---------------------------------------------------------------------------
# AuditLogEntry: append-only audit trail
# ---------------------------------------------------------------------------
class AuditLogEntry(Base):
    __tablename__ = "audit_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JsonDoc, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JsonDoc, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    security_sensitive: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_audit_log_actor_time", "actor_id", "created_at"),
        Index("ix_audit_log_target", "target_table", "target_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<AuditLogEntry id={self.id} actor={self.actor_id} action={self.action}>"


# ---------------------------------------------------------------------------
# Notification: in-app notifications
# ---------------------------------------------------------------------------
class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    payload: Mapped[dict] = mapped_column(JsonDoc, default=dict)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_notifications_user_time", "user_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification id={self.id} user={self.user_id} kind={self.kind!r}>"
