"""
questboard.services.squad_service — Squad Formation, Warm-up & Governance
==========================================================================

Status moves follow :data:`~questboard.engine.state_graph.SQUAD_GRAPH`:

    draft → confirmed → warming_up → ready_for_review → approved → active → completed

``warming_up_since`` is stamped on entering warm-up and cleared on leaving
it.  Members confirm readiness during warm-up; once the instance's
``warm_up_min_ready_pct`` is reached the squad moves itself to
``ready_for_review``.

Governance edits (leadership, archive, rename, settings, invite code,
member removal) are each their own audited transaction.  Archive is a
timestamp, not a status, so reactivating leaves the status untouched.
"""

from __future__ import annotations

import logging
import secrets
import string
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy import func, select
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import Session

from questboard.config import DEFAULT_TUNING, LifecycleTuning
from questboard.constants import (
    INVITE_CODE_PREFIX,
    KIND_SQUAD_APPROVED,
    KIND_SQUAD_REMOVED,
    KIND_SQUAD_WARM_UP,
    MAX_THEME_TAGS,
    THEME_TAGS,
)
from questboard.database.models import (
    AuditAction,
    InstanceStatus,
    MemberRole,
    MemberStatus,
    QuestInstance,
    Squad,
    SquadMember,
    SquadStatus,
)
from questboard.engine.clock import utcnow
from questboard.engine.results import Failure, FailureKind, Result, Success
from questboard.engine.state_graph import SQUAD_GRAPH
from questboard.engine.warmup import (
    MemberSnapshot,
    ReadinessSummary,
    SquadHealth,
    is_ready_for_review,
    readiness_summary,
    squad_health,
)
from questboard.services.audit import (
    UpdateOutcome,
    conditional_update_status,
    log_action,
    row_to_dict,
)
from questboard.services.instance_service import signed_up_user_ids
from questboard.services.notifier import DatabaseNotifier, Notifier, PendingNotice, dispatch

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

TABLE = "quest_squads"
MEMBER_TABLE = "squad_members"
ENTITY = "squad"

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 6
_INVITE_CODE_ATTEMPTS = 5

# Squads are only formed while an instance is still gathering people.
FORMABLE_INSTANCE_STATES = (InstanceStatus.RECRUITING, InstanceStatus.LOCKED)

Step = Callable[[Session, Squad, datetime], "Failure | list[PendingNotice]"]


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------
class SquadSettings(BaseModel):
    """Partial squad settings update.  Unset fields are left alone."""

    model_config = ConfigDict(extra="forbid")

    theme_tags: list[str] | None = None
    commitment_style: Literal["casual", "ritual", "quest-based"] | None = None
    org_code: str | None = Field(default=None, max_length=50)
    rules: str | None = Field(default=None, max_length=4000)
    role_rotation_mode: Literal["manual", "per_quest", "monthly"] | None = None
    lfc_listing_enabled: bool | None = None
    application_prompts: list[str] | None = Field(default=None, max_length=5)

    @field_validator("theme_tags")
    @classmethod
    def _known_tags(cls, tags: list[str] | None) -> list[str] | None:
        if tags is None:
            return None
        cleaned: list[str] = []
        for tag in tags:
            tag = tag.strip().lower()
            if tag not in THEME_TAGS:
                raise ValueError(f"unknown theme tag '{tag}'")
            if tag not in cleaned:
                cleaned.append(tag)
        if len(cleaned) > MAX_THEME_TAGS:
            raise ValueError(f"at most {MAX_THEME_TAGS} theme tags allowed")
        return cleaned


# Settings columns that may be cleared back to NULL.
_NULLABLE_SETTINGS = frozenset({"org_code", "rules"})


def _validation_failure(exc: ValidationError) -> Failure:
    errors = [
        {"loc": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]
    message = "; ".join(f"{e['loc']}: {e['msg']}" if e["loc"] else e["msg"] for e in errors)
    return Failure(FailureKind.INVALID_SETTINGS, message, {"errors": errors})


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def generate_invite_code() -> str:
    """``SQD-XXXXXX`` with six uppercase letters/digits."""
    suffix = "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))
    return f"{INVITE_CODE_PREFIX}-{suffix}"


def _unique_invite_code(session: Session) -> str:
    for _ in range(_INVITE_CODE_ATTEMPTS):
        code = generate_invite_code()
        taken = session.scalar(select(Squad.id).where(Squad.invite_code == code))
        if taken is None:
            return code
    raise RuntimeError("Could not generate a unique invite code")


def _active_members(squad: Squad) -> list[SquadMember]:
    return [m for m in squad.members if m.status == MemberStatus.ACTIVE]


def _find_member(squad: Squad, user_id: int) -> SquadMember | None:
    return next((m for m in _active_members(squad) if m.user_id == user_id), None)


def _snapshots(squad: Squad) -> list[MemberSnapshot]:
    return [MemberSnapshot(m.status, m.readiness_confirmed_at) for m in squad.members]


def _member_notice(squad: Squad, kind: str, title: str, body: str) -> list[PendingNotice]:
    recipients = [m.user_id for m in _active_members(squad)]
    return [PendingNotice(
        user_ids=recipients,
        kind=kind,
        payload={"title": title, "body": body, "squad_id": squad.id},
    )]


def _lock_squad(session: Session, squad: Squad) -> None:
    """Row-lock *squad* and drop its cached members so they are re-read under the lock."""
    session.execute(select(Squad.id).where(Squad.id == squad.id).with_for_update())
    session.expire(squad)


def _active_leader_count(session: Session, squad_id: int) -> int:
    return session.scalar(
        select(func.count(SquadMember.id)).where(
            SquadMember.squad_id == squad_id,
            SquadMember.role == MemberRole.LEADER,
            SquadMember.status == MemberStatus.ACTIVE,
        )
    )


def _last_leader(squad: Squad, user_id: int) -> Failure:
    return Failure(
        FailureKind.LAST_LEADER,
        f"User {user_id} is the only leader of squad {squad.id}; transfer leadership first",
        {"user_id": user_id},
    )


def _detach(session: Session, squad: Squad) -> Squad:
    session.refresh(squad)
    squad.members  # noqa: B018  load before the session closes
    session.expunge(squad)
    return squad


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_squad(engine: Engine, squad_id: int) -> Squad | None:
    with Session(engine, expire_on_commit=False) as session:
        squad = session.get(Squad, squad_id)
        if squad is None:
            return None
        return _detach(session, squad)


def health(
    engine: Engine, squad_id: int, tuning: LifecycleTuning = DEFAULT_TUNING
) -> tuple[SquadHealth, ReadinessSummary] | None:
    """Derived health and readiness counts, or ``None`` if the squad is missing."""
    squad = get_squad(engine, squad_id)
    if squad is None:
        return None
    snapshots = _snapshots(squad)
    return squad_health(snapshots, tuning), readiness_summary(snapshots)


# ---------------------------------------------------------------------------
# Status step
# ---------------------------------------------------------------------------
def _apply_transition(
    session: Session,
    squad: Squad,
    target: SquadStatus | str,
    now: datetime,
    *,
    actor_id: int,
    notes: str | None = None,
) -> Failure | list[PendingNotice]:
    current = squad.status
    try:
        new = SquadStatus(target)
    except ValueError:
        return Failure.invalid_transition(ENTITY, current, str(target))

    if squad.archived_at is not None:
        return Failure(
            FailureKind.INVALID_TRANSITION,
            f"Squad {squad.id} is archived; reactivate it first",
            {"current": str(current), "target": str(new), "archived": True},
        )
    edge = SQUAD_GRAPH.edge(current, new)
    if edge is None:
        return Failure.invalid_transition(ENTITY, current, new)

    fields: dict[str, Any] = {}
    if new == SquadStatus.WARMING_UP:
        fields["warming_up_since"] = now
    elif current == SquadStatus.WARMING_UP:
        fields["warming_up_since"] = None
    if new == SquadStatus.APPROVED:
        fields.update(approved_at=now, approved_by=actor_id, approval_notes=notes)

    before = row_to_dict(squad)
    outcome = conditional_update_status(session, Squad, squad.id, current, new, fields)
    if outcome == UpdateOutcome.NOT_FOUND:
        return Failure.not_found(ENTITY, squad.id)
    if outcome == UpdateOutcome.CONFLICT:
        return Failure.concurrent_modification(ENTITY, squad.id, current)

    session.refresh(squad)
    log_action(
        session,
        actor_id=actor_id,
        action=AuditAction.STATUS_CHANGE,
        target_table=TABLE,
        target_id=squad.id,
        before=before,
        after=row_to_dict(squad),
        reason=notes,
    )
    logger.info("Squad %s: %s → %s by actor=%s", squad.id, current, new, actor_id)

    if not edge.notify_subjects:
        return []
    if new == SquadStatus.WARMING_UP:
        return _member_notice(
            squad, KIND_SQUAD_WARM_UP,
            f"Warm-up started: {squad.name}",
            "Your squad is warming up. Confirm you're ready so the organizers can approve it.",
        )
    if new == SquadStatus.APPROVED:
        return _member_notice(
            squad, KIND_SQUAD_APPROVED,
            f"Squad approved: {squad.name}",
            notes or "Your squad has been approved. See you at the quest!",
        )
    return []


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------
def _run(
    engine: Engine,
    squad_id: int,
    step: Step,
    *,
    actor_id: int,
    expected_status: SquadStatus | str | None = None,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> Result[Squad]:
    with Session(engine, expire_on_commit=False) as session:
        squad = session.get(Squad, squad_id)
        if squad is None:
            return Failure.not_found(ENTITY, squad_id)
        if expected_status is not None and squad.status != expected_status:
            return Failure.concurrent_modification(ENTITY, squad_id, str(expected_status))

        try:
            outcome = step(session, squad, now or utcnow())
            if isinstance(outcome, Failure):
                session.rollback()
                return outcome
            session.commit()
        except (IntegrityError, DataError) as exc:
            session.rollback()
            logger.error("Squad %s update failed: %s", squad_id, exc)
            return Failure.persistence(exc)

        _detach(session, squad)

    dispatch(
        engine, notifier or DatabaseNotifier(engine), outcome,
        actor_id=actor_id, target_table=TABLE, target_id=squad_id,
    )
    return Success(squad)


# ---------------------------------------------------------------------------
# Formation
# ---------------------------------------------------------------------------
def create_squad(
    engine: Engine,
    instance_id: int,
    *,
    actor_id: int,
    name: str,
    member_ids: list[int],
    leader_id: int | None = None,
) -> Result[Squad]:
    """Form a draft squad from signed-up users.

    The instance must be recruiting or locked, and every member needs a
    pending or confirmed signup on it.  *leader_id* defaults to the first
    member and must be one of *member_ids*.
    """
    if not name or not name.strip():
        return Failure(FailureKind.INVALID_SETTINGS, "Squad name cannot be empty")
    members = list(dict.fromkeys(member_ids))
    if not members:
        return Failure(FailureKind.INVALID_SETTINGS, "A squad needs at least one member")
    leader = leader_id if leader_id is not None else members[0]
    if leader not in members:
        return Failure(
            FailureKind.NOT_A_MEMBER,
            f"User {leader} is not in the member list",
            {"user_id": leader},
        )

    with Session(engine, expire_on_commit=False) as session:
        instance = session.get(QuestInstance, instance_id)
        if instance is None:
            return Failure.not_found("instance", instance_id)
        if instance.status not in FORMABLE_INSTANCE_STATES:
            return Failure.invalid_transition("instance", instance.status, "squad formation")
        signed_up = set(signed_up_user_ids(session, [instance_id]))
        strangers = [uid for uid in members if uid not in signed_up]
        if strangers:
            return Failure(
                FailureKind.NOT_A_MEMBER,
                f"User {strangers[0]} has no active signup on instance {instance_id}",
                {"user_ids": strangers},
            )
        squad = Squad(
            instance_id=instance_id,
            name=name.strip(),
            invite_code=_unique_invite_code(session),
        )
        squad.members = [
            SquadMember(
                user_id=uid,
                role=MemberRole.LEADER if uid == leader else MemberRole.MEMBER,
            )
            for uid in members
        ]
        try:
            session.add(squad)
            session.flush()
            log_action(
                session,
                actor_id=actor_id,
                action=AuditAction.CREATE,
                target_table=TABLE,
                target_id=squad.id,
                after={**row_to_dict(squad), "members": members, "leader": leader},
            )
            session.commit()
        except (IntegrityError, DataError) as exc:
            session.rollback()
            logger.error("Creating squad for instance %s failed: %s", instance_id, exc)
            return Failure.persistence(exc)
        _detach(session, squad)

    logger.info("Squad %s formed on instance %s with %d member(s)", squad.id, instance_id, len(members))
    return Success(squad)


# ---------------------------------------------------------------------------
# Status operations
# ---------------------------------------------------------------------------
def transition(
    engine: Engine, squad_id: int, target: SquadStatus | str, *, actor_id: int, **kwargs
) -> Result[Squad]:
    def step(session: Session, squad: Squad, now: datetime):
        return _apply_transition(session, squad, target, now, actor_id=actor_id)
    return _run(engine, squad_id, step, actor_id=actor_id, **kwargs)


def confirm(engine: Engine, squad_id: int, *, actor_id: int, **kwargs) -> Result[Squad]:
    """draft → confirmed."""
    return transition(engine, squad_id, SquadStatus.CONFIRMED, actor_id=actor_id, **kwargs)


def start_warm_up(engine: Engine, squad_id: int, *, actor_id: int, **kwargs) -> Result[Squad]:
    return transition(engine, squad_id, SquadStatus.WARMING_UP, actor_id=actor_id, **kwargs)


def approve_squad(
    engine: Engine, squad_id: int, *, actor_id: int, notes: str | None = None, **kwargs
) -> Result[Squad]:
    """ready_for_review → approved, recording who approved it."""
    notes = notes.strip() if notes and notes.strip() else None

    def step(session: Session, squad: Squad, now: datetime):
        return _apply_transition(
            session, squad, SquadStatus.APPROVED, now, actor_id=actor_id, notes=notes
        )
    return _run(engine, squad_id, step, actor_id=actor_id, **kwargs)


def activate(engine: Engine, squad_id: int, *, actor_id: int, **kwargs) -> Result[Squad]:
    return transition(engine, squad_id, SquadStatus.ACTIVE, actor_id=actor_id, **kwargs)


def complete(engine: Engine, squad_id: int, *, actor_id: int, **kwargs) -> Result[Squad]:
    return transition(engine, squad_id, SquadStatus.COMPLETED, actor_id=actor_id, **kwargs)


def confirm_readiness(
    engine: Engine, squad_id: int, user_id: int, **kwargs
) -> Result[Squad]:
    """A member confirms they're ready.

    When the share of ready active members reaches the instance's
    ``warm_up_min_ready_pct`` the squad advances to ``ready_for_review``
    in the same transaction.  Confirming twice is a no-op.
    """
    def step(session: Session, squad: Squad, now: datetime):
        if squad.status != SquadStatus.WARMING_UP:
            return Failure(
                FailureKind.INVALID_TRANSITION,
                f"Squad {squad.id} is '{squad.status}', not warming up",
                {"current": str(squad.status)},
            )
        member = _find_member(squad, user_id)
        if member is None:
            return Failure(
                FailureKind.NOT_A_MEMBER,
                f"User {user_id} is not an active member of squad {squad.id}",
                {"user_id": user_id},
            )
        if member.readiness_confirmed_at is not None:
            return []

        member.readiness_confirmed_at = now
        session.flush()
        log_action(
            session,
            actor_id=user_id,
            action=AuditAction.READINESS_CONFIRM,
            target_table=MEMBER_TABLE,
            target_id=member.id,
            after=row_to_dict(member),
        )

        summary = readiness_summary(_snapshots(squad))
        instance = session.get(QuestInstance, squad.instance_id)
        min_pct = instance.warm_up_min_ready_pct if instance is not None else 100
        logger.debug(
            "Squad %s readiness %d/%d (need %d%%)", squad.id, summary.ready, summary.total, min_pct
        )
        if not is_ready_for_review(summary, min_pct):
            return []
        return _apply_transition(
            session, squad, SquadStatus.READY_FOR_REVIEW, now, actor_id=user_id
        )
    return _run(engine, squad_id, step, actor_id=user_id, **kwargs)


# ---------------------------------------------------------------------------
# Governance
# ---------------------------------------------------------------------------
def transfer_leadership(
    engine: Engine, squad_id: int, new_leader_id: int, *, actor_id: int, **kwargs
) -> Result[Squad]:
    """Make *new_leader_id* the sole leader; previous leaders become members."""
    def step(session: Session, squad: Squad, now: datetime):
        _lock_squad(session, squad)
        target = _find_member(squad, new_leader_id)
        if target is None:
            return Failure(
                FailureKind.NOT_A_MEMBER,
                f"User {new_leader_id} is not an active member of squad {squad.id}",
                {"user_id": new_leader_id},
            )
        previous = [m.user_id for m in _active_members(squad) if m.role == MemberRole.LEADER]
        for member in _active_members(squad):
            member.role = MemberRole.LEADER if member is target else MemberRole.MEMBER
        session.flush()
        log_action(
            session,
            actor_id=actor_id,
            action=AuditAction.LEADERSHIP_TRANSFER,
            target_table=TABLE,
            target_id=squad.id,
            before={"leaders": previous},
            after={"leaders": [new_leader_id]},
        )
        logger.info("Squad %s leadership %s → %s", squad.id, previous, new_leader_id)
        return []
    return _run(engine, squad_id, step, actor_id=actor_id, **kwargs)


def archive(
    engine: Engine, squad_id: int, *, actor_id: int, reason: str | None = None, **kwargs
) -> Result[Squad]:
    """Hide a squad from active counts without touching its status."""
    def step(session: Session, squad: Squad, now: datetime):
        if squad.archived_at is not None:
            return Failure(FailureKind.INVALID_TRANSITION, f"Squad {squad.id} is already archived")
        before = row_to_dict(squad)
        outcome = conditional_update_status(
            session, Squad, squad.id, squad.status, squad.status,
            {"archived_at": now}, also_expect={"archived_at": None},
        )
        if outcome == UpdateOutcome.CONFLICT:
            return Failure.concurrent_modification(ENTITY, squad.id, before["status"])
        if outcome == UpdateOutcome.NOT_FOUND:
            return Failure.not_found(ENTITY, squad.id)
        session.refresh(squad)
        log_action(
            session,
            actor_id=actor_id,
            action=AuditAction.ARCHIVE,
            target_table=TABLE,
            target_id=squad.id,
            before=before,
            after=row_to_dict(squad),
            reason=reason,
        )
        return []
    return _run(engine, squad_id, step, actor_id=actor_id, **kwargs)


def reactivate(engine: Engine, squad_id: int, *, actor_id: int, **kwargs) -> Result[Squad]:
    """Clear ``archived_at``; the squad keeps the status it had."""
    def step(session: Session, squad: Squad, now: datetime):
        if squad.archived_at is None:
            return Failure(FailureKind.INVALID_TRANSITION, f"Squad {squad.id} is not archived")
        before = row_to_dict(squad)
        outcome = conditional_update_status(
            session, Squad, squad.id, squad.status, squad.status,
            {"archived_at": None}, also_require=[Squad.archived_at.is_not(None)],
        )
        if outcome == UpdateOutcome.CONFLICT:
            return Failure.concurrent_modification(ENTITY, squad.id, before["status"])
        if outcome == UpdateOutcome.NOT_FOUND:
            return Failure.not_found(ENTITY, squad.id)
        session.refresh(squad)
        log_action(
            session,
            actor_id=actor_id,
            action=AuditAction.REACTIVATE,
            target_table=TABLE,
            target_id=squad.id,
            before=before,
            after=row_to_dict(squad),
        )
        return []
    return _run(engine, squad_id, step, actor_id=actor_id, **kwargs)


def rename(engine: Engine, squad_id: int, name: str, *, actor_id: int, **kwargs) -> Result[Squad]:
    cleaned = (name or "").strip()
    if not cleaned:
        return Failure(FailureKind.INVALID_SETTINGS, "Squad name cannot be empty")
    if len(cleaned) > 100:
        return Failure(FailureKind.INVALID_SETTINGS, "Squad name must be 100 characters or fewer")

    def step(session: Session, squad: Squad, now: datetime):
        before = {"name": squad.name}
        squad.name = cleaned
        session.flush()
        log_action(
            session,
            actor_id=actor_id,
            action=AuditAction.RENAME,
            target_table=TABLE,
            target_id=squad.id,
            before=before,
            after={"name": cleaned},
        )
        return []
    return _run(engine, squad_id, step, actor_id=actor_id, **kwargs)


def update_settings(
    engine: Engine,
    squad_id: int,
    settings: SquadSettings | dict[str, Any],
    *,
    actor_id: int,
    **kwargs,
) -> Result[Squad]:
    """Apply a partial settings update.  Invalid input writes nothing."""
    if not isinstance(settings, SquadSettings):
        try:
            settings = SquadSettings.model_validate(settings)
        except ValidationError as exc:
            return _validation_failure(exc)

    changes = {
        key: value
        for key, value in settings.model_dump(exclude_unset=True).items()
        if value is not None or key in _NULLABLE_SETTINGS
    }

    def step(session: Session, squad: Squad, now: datetime):
        before = {key: getattr(squad, key) for key in changes}
        for key, value in changes.items():
            setattr(squad, key, value)
        session.flush()
        log_action(
            session,
            actor_id=actor_id,
            action=AuditAction.SETTINGS_UPDATE,
            target_table=TABLE,
            target_id=squad.id,
            before=before,
            after=changes,
        )
        return []
    return _run(engine, squad_id, step, actor_id=actor_id, **kwargs)


def regenerate_invite_code(engine: Engine, squad_id: int, *, actor_id: int, **kwargs) -> Result[Squad]:
    """Replace the invite code; the old one stops working immediately."""
    def step(session: Session, squad: Squad, now: datetime):
        before = {"invite_code": squad.invite_code}
        squad.invite_code = _unique_invite_code(session)
        session.flush()
        log_action(
            session,
            actor_id=actor_id,
            action=AuditAction.INVITE_CODE_REGENERATE,
            target_table=TABLE,
            target_id=squad.id,
            before=before,
            after={"invite_code": squad.invite_code},
        )
        return []
    return _run(engine, squad_id, step, actor_id=actor_id, **kwargs)


def remove_member(
    engine: Engine,
    squad_id: int,
    user_id: int,
    *,
    actor_id: int,
    reason: str | None = None,
    **kwargs,
) -> Result[Squad]:
    """Mark a member removed.  The only active leader cannot be removed."""
    reason = reason.strip() if reason and reason.strip() else None

    def step(session: Session, squad: Squad, now: datetime):
        _lock_squad(session, squad)
        member = _find_member(squad, user_id)
        if member is None:
            return Failure(
                FailureKind.NOT_A_MEMBER,
                f"User {user_id} is not an active member of squad {squad.id}",
                {"user_id": user_id},
            )
        removing_leader = member.role == MemberRole.LEADER
        if removing_leader and _active_leader_count(session, squad.id) <= 1:
            return _last_leader(squad, user_id)

        before = row_to_dict(member)
        outcome = conditional_update_status(
            session, SquadMember, member.id, MemberStatus.ACTIVE, MemberStatus.REMOVED,
            {"removed_at": now, "removed_reason": reason},
        )
        if outcome == UpdateOutcome.CONFLICT:
            return Failure.concurrent_modification("squad member", member.id, MemberStatus.ACTIVE)
        if outcome == UpdateOutcome.NOT_FOUND:
            return Failure.not_found("squad member", member.id)
        if removing_leader and _active_leader_count(session, squad.id) == 0:
            return _last_leader(squad, user_id)
        session.refresh(member)
        log_action(
            session,
            actor_id=actor_id,
            action=AuditAction.MEMBER_REMOVE,
            target_table=MEMBER_TABLE,
            target_id=member.id,
            before=before,
            after=row_to_dict(member),
            reason=reason,
        )
        logger.info("Removed user %s from squad %s", user_id, squad.id)

        body = f"You have been removed from the squad {squad.name}."
        if reason:
            body += f"\n\nReason: {reason}"
        return [PendingNotice(
            user_ids=[user_id],
            kind=KIND_SQUAD_REMOVED,
            payload={"title": f"Squad update: {squad.name}", "body": body, "squad_id": squad.id},
        )]
    return _run(engine, squad_id, step, actor_id=actor_id, **kwargs)
