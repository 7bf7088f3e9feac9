"""
questboard.services.quest_service — Quest Review & Publication Lifecycle
=========================================================================

Two status fields move independently on a quest template:

* ``review_status`` — the admin review loop (see ``REVIEW_GRAPH``).
* ``status`` — publication (see ``QUEST_GRAPH``).

Every operation here runs one step inside :func:`_run`:
  1. Load the quest (and check the caller's ``expected_status``)
  2. Validate against the graph and the reason rule
  3. Conditional write keyed on the observed status
  4. Append the audit row in the same transaction
  5. Commit, then notify the creator (and, on revoke, enrolled users)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime, time
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import Session

from questboard.constants import (
    KIND_QUEST_REVOKED,
    KIND_QUEST_STATUS,
    QUEST_STATUS_MESSAGES,
    REVIEW_KINDS,
    REVIEW_MESSAGES,
)
from questboard.database.models import (
    AuditAction,
    Quest,
    QuestInstance,
    QuestSignup,
    QuestStatus,
    ReviewStatus,
    SignupStatus,
)
from questboard.engine.clock import utcnow
from questboard.engine.results import Failure, FailureKind, Result, Success
from questboard.engine.state_graph import QUEST_GRAPH, REVIEW_GRAPH
from questboard.services.audit import (
    UpdateOutcome,
    conditional_update_status,
    is_blank,
    log_action,
    row_to_dict,
)
from questboard.services.instance_service import signed_up_user_ids
from questboard.services.notifier import DatabaseNotifier, Notifier, PendingNotice, dispatch

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

TABLE = "quests"
ENTITY = "quest"

REVIEW_TARGETS: dict[str, ReviewStatus] = {
    "approve": ReviewStatus.APPROVED,
    "reject": ReviewStatus.REJECTED,
    "request_changes": ReviewStatus.CHANGES_REQUESTED,
}

# A quest must be live in one of these to take new instances.
SCHEDULABLE_STATUSES = frozenset({QuestStatus.OPEN, QuestStatus.CLOSED, QuestStatus.PAUSED})

Step = Callable[[Session, Quest, datetime], "Failure | list[PendingNotice]"]


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_quest(engine: Engine, quest_id: int) -> Quest | None:
    with Session(engine, expire_on_commit=False) as session:
        quest = session.get(Quest, quest_id)
        if quest is not None:
            session.expunge(quest)
        return quest


def _instance_ids(session: Session, quest_id: int) -> list[int]:
    return list(session.scalars(
        select(QuestInstance.id).where(QuestInstance.quest_id == quest_id)
    ).all())


def active_signup_count(session: Session, quest_id: int) -> int:
    """Non-dropped signups across every instance of the quest."""
    return session.scalar(
        select(func.count(QuestSignup.id))
        .join(QuestInstance, QuestInstance.id == QuestSignup.instance_id)
        .where(
            QuestInstance.quest_id == quest_id,
            QuestSignup.status != SignupStatus.DROPPED,
        )
    ) or 0


# ---------------------------------------------------------------------------
# Notices
# ---------------------------------------------------------------------------
def _creator_notice(
    quest: Quest, kind: str, message: str, *, note: str | None = None, note_label: str = "Reason"
) -> list[PendingNotice]:
    if quest.creator_id is None:
        return []
    body = f'Your quest "{quest.title}" {message}.'
    if note:
        body += f"\n\n{note_label}: {note}"
    return [PendingNotice(
        user_ids=[quest.creator_id],
        kind=kind,
        payload={"title": f"Quest Update: {quest.title}", "body": body, "quest_id": quest.id},
    )]


# ---------------------------------------------------------------------------
# Status step
# ---------------------------------------------------------------------------
def _status_fields(quest: Quest, new: QuestStatus, reason: str | None, now: datetime) -> dict:
    current = quest.status
    fields: dict = {"previous_status": current}
    if new == QuestStatus.PAUSED:
        fields.update(paused_at=now, paused_reason=reason)
    elif current == QuestStatus.PAUSED:
        fields.update(paused_at=None, paused_reason=None)
    if new == QuestStatus.OPEN and quest.published_at is None:
        fields["published_at"] = now
    elif new == QuestStatus.CANCELLED:
        fields["cancelled_reason"] = reason
    elif new == QuestStatus.REVOKED:
        fields.update(revoked_at=now, revoked_reason=reason)
    elif new == QuestStatus.DELETED:
        fields.update(deleted_at=now, deleted_reason=reason)
    return fields


def _apply_status(
    session: Session,
    quest: Quest,
    target: QuestStatus,
    now: datetime,
    *,
    actor_id: int,
    reason: str | None = None,
    action: AuditAction = AuditAction.STATUS_CHANGE,
    security_sensitive: bool = False,
) -> Failure | list[PendingNotice]:
    current = quest.status
    edge = QUEST_GRAPH.edge(current, target)
    if edge is None:
        return Failure.invalid_transition(ENTITY, current, target)
    if edge.requires_reason and is_blank(reason):
        return Failure.missing_reason(ENTITY, target)

    reason = reason.strip() if reason else None
    before = row_to_dict(quest)
    outcome = conditional_update_status(
        session, Quest, quest.id, current, target, _status_fields(quest, target, reason, now)
    )
    if outcome == UpdateOutcome.NOT_FOUND:
        return Failure.not_found(ENTITY, quest.id)
    if outcome == UpdateOutcome.CONFLICT:
        return Failure.concurrent_modification(ENTITY, quest.id, current)

    session.refresh(quest)
    log_action(
        session,
        actor_id=actor_id,
        action=action,
        target_table=TABLE,
        target_id=quest.id,
        before=before,
        after=row_to_dict(quest),
        reason=reason,
        security_sensitive=security_sensitive,
    )
    logger.info("Quest %s: %s → %s by actor=%s", quest.id, current, target, actor_id)

    notices: list[PendingNotice] = []
    if edge.notify_actor:
        kind = KIND_QUEST_REVOKED if target == QuestStatus.REVOKED else KIND_QUEST_STATUS
        notices += _creator_notice(quest, kind, QUEST_STATUS_MESSAGES[target], note=reason)
    if edge.notify_subjects:
        enrolled = signed_up_user_ids(session, _instance_ids(session, quest.id))
        if quest.creator_id is not None:
            enrolled = [u for u in enrolled if u != quest.creator_id]
        body = f'The quest "{quest.title}" {QUEST_STATUS_MESSAGES[target]}.'
        if reason:
            body += f"\n\nReason: {reason}"
        notices.append(PendingNotice(
            user_ids=enrolled,
            kind=KIND_QUEST_REVOKED if target == QuestStatus.REVOKED else KIND_QUEST_STATUS,
            payload={"title": f"Quest Update: {quest.title}", "body": body, "quest_id": quest.id},
        ))
    return notices


# ---------------------------------------------------------------------------
# Review step
# ---------------------------------------------------------------------------
def _apply_review(
    session: Session,
    quest: Quest,
    target: ReviewStatus,
    now: datetime,
    *,
    actor_id: int,
    admin_notes: str | None = None,
    publish: bool = False,
) -> Failure | list[PendingNotice]:
    current = quest.review_status
    if not REVIEW_GRAPH.can_transition(current, target):
        return Failure.invalid_transition("quest review", current, target)

    extra: dict = {}
    also_expect = None
    if target != ReviewStatus.PENDING_REVIEW:
        extra.update(admin_notes=admin_notes, revision_count=(quest.revision_count or 0) + 1)
    if publish:
        if not QUEST_GRAPH.can_transition(quest.status, QuestStatus.OPEN):
            return Failure.invalid_transition(ENTITY, quest.status, QuestStatus.OPEN)
        extra.update(_status_fields(quest, QuestStatus.OPEN, None, now))
        extra["status"] = QuestStatus.OPEN
        also_expect = {"status": quest.status}

    before = row_to_dict(quest)
    outcome = conditional_update_status(
        session, Quest, quest.id, current, target, extra,
        status_attr="review_status", also_expect=also_expect,
    )
    if outcome == UpdateOutcome.NOT_FOUND:
        return Failure.not_found(ENTITY, quest.id)
    if outcome == UpdateOutcome.CONFLICT:
        return Failure.concurrent_modification(ENTITY, quest.id, current)

    session.refresh(quest)
    log_action(
        session,
        actor_id=actor_id,
        action=AuditAction.REVIEW,
        target_table=TABLE,
        target_id=quest.id,
        before=before,
        after=row_to_dict(quest),
        reason=admin_notes,
    )
    logger.info(
        "Quest %s review: %s → %s by actor=%s%s",
        quest.id, current, target, actor_id, " (published)" if publish else "",
    )

    decision = next((k for k, v in REVIEW_TARGETS.items() if v == target), None)
    if decision is None:
        return []
    return _creator_notice(
        quest, REVIEW_KINDS[decision], REVIEW_MESSAGES[decision],
        note=admin_notes, note_label="Admin notes",
    )


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------
def _run(
    engine: Engine,
    quest_id: int,
    step: Step,
    *,
    actor_id: int,
    expected_status: QuestStatus | str | None = None,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> Result[Quest]:
    with Session(engine, expire_on_commit=False) as session:
        quest = session.get(Quest, quest_id)
        if quest is None:
            return Failure.not_found(ENTITY, quest_id)
        if expected_status is not None and quest.status != expected_status:
            return Failure.concurrent_modification(ENTITY, quest_id, str(expected_status))

        try:
            outcome = step(session, quest, now or utcnow())
            if isinstance(outcome, Failure):
                session.rollback()
                return outcome
            session.commit()
        except (IntegrityError, DataError) as exc:
            session.rollback()
            logger.error("Quest %s update failed: %s", quest_id, exc)
            return Failure.persistence(exc)

        session.refresh(quest)
        session.expunge(quest)

    dispatch(
        engine, notifier or DatabaseNotifier(engine), outcome,
        actor_id=actor_id, target_table=TABLE, target_id=quest_id,
    )
    return Success(quest)


def _status_op(
    engine: Engine,
    quest_id: int,
    target: QuestStatus,
    *,
    actor_id: int,
    reason: str | None = None,
    action: AuditAction = AuditAction.STATUS_CHANGE,
    security_sensitive: bool = False,
    **kwargs,
) -> Result[Quest]:
    def step(session: Session, quest: Quest, now: datetime):
        return _apply_status(
            session, quest, target, now,
            actor_id=actor_id, reason=reason, action=action,
            security_sensitive=security_sensitive,
        )
    return _run(engine, quest_id, step, actor_id=actor_id, **kwargs)


# ---------------------------------------------------------------------------
# Review operations
# ---------------------------------------------------------------------------
def _review_op(
    engine: Engine,
    quest_id: int,
    decision: str,
    *,
    actor_id: int,
    admin_notes: str | None = None,
    publish: bool = False,
    **kwargs,
) -> Result[Quest]:
    notes = admin_notes.strip() if admin_notes and admin_notes.strip() else None

    def step(session: Session, quest: Quest, now: datetime):
        return _apply_review(
            session, quest, REVIEW_TARGETS[decision], now,
            actor_id=actor_id, admin_notes=notes, publish=publish,
        )
    return _run(engine, quest_id, step, actor_id=actor_id, **kwargs)


def approve(
    engine: Engine, quest_id: int, *, actor_id: int,
    admin_notes: str | None = None, publish: bool = False, **kwargs,
) -> Result[Quest]:
    """Approve a pending quest; ``publish=True`` also opens it for signups."""
    return _review_op(
        engine, quest_id, "approve",
        actor_id=actor_id, admin_notes=admin_notes, publish=publish, **kwargs,
    )


def reject(
    engine: Engine, quest_id: int, *, actor_id: int, admin_notes: str | None = None, **kwargs
) -> Result[Quest]:
    return _review_op(engine, quest_id, "reject", actor_id=actor_id, admin_notes=admin_notes, **kwargs)


def request_changes(
    engine: Engine, quest_id: int, *, actor_id: int, admin_notes: str | None = None, **kwargs
) -> Result[Quest]:
    return _review_op(
        engine, quest_id, "request_changes", actor_id=actor_id, admin_notes=admin_notes, **kwargs
    )


def submit_for_review(engine: Engine, quest_id: int, *, actor_id: int, **kwargs) -> Result[Quest]:
    """Creator resubmits after ``changes_requested``."""
    def step(session: Session, quest: Quest, now: datetime):
        return _apply_review(session, quest, ReviewStatus.PENDING_REVIEW, now, actor_id=actor_id)
    return _run(engine, quest_id, step, actor_id=actor_id, **kwargs)


def publish(engine: Engine, quest_id: int, *, actor_id: int, **kwargs) -> Result[Quest]:
    """Open an already-approved draft quest for signups."""
    def step(session: Session, quest: Quest, now: datetime):
        if quest.review_status != ReviewStatus.APPROVED:
            return Failure(
                FailureKind.INVALID_TRANSITION,
                f"Quest {quest.id} must be approved before publishing "
                f"(review status is '{quest.review_status}')",
                {"review_status": str(quest.review_status)},
            )
        if quest.status != QuestStatus.DRAFT:
            return Failure.invalid_transition(ENTITY, quest.status, QuestStatus.OPEN)
        return _apply_status(session, quest, QuestStatus.OPEN, now, actor_id=actor_id)
    return _run(engine, quest_id, step, actor_id=actor_id, **kwargs)


# ---------------------------------------------------------------------------
# Publication operations
# ---------------------------------------------------------------------------
def pause(
    engine: Engine, quest_id: int, *, actor_id: int, reason: str | None = None, **kwargs
) -> Result[Quest]:
    return _status_op(engine, quest_id, QuestStatus.PAUSED, actor_id=actor_id, reason=reason, **kwargs)


def resume(engine: Engine, quest_id: int, *, actor_id: int, **kwargs) -> Result[Quest]:
    """paused → open.  Anything else is an invalid transition."""
    def step(session: Session, quest: Quest, now: datetime):
        if quest.status != QuestStatus.PAUSED:
            return Failure.invalid_transition(ENTITY, quest.status, "resume")
        return _apply_status(session, quest, QuestStatus.OPEN, now, actor_id=actor_id)
    return _run(engine, quest_id, step, actor_id=actor_id, **kwargs)


def cancel(engine: Engine, quest_id: int, *, actor_id: int, reason: str, **kwargs) -> Result[Quest]:
    return _status_op(
        engine, quest_id, QuestStatus.CANCELLED, actor_id=actor_id, reason=reason, **kwargs
    )


def close(engine: Engine, quest_id: int, *, actor_id: int, **kwargs) -> Result[Quest]:
    return _status_op(engine, quest_id, QuestStatus.CLOSED, actor_id=actor_id, **kwargs)


def reopen(engine: Engine, quest_id: int, *, actor_id: int, **kwargs) -> Result[Quest]:
    """closed → open."""
    def step(session: Session, quest: Quest, now: datetime):
        if quest.status != QuestStatus.CLOSED:
            return Failure.invalid_transition(ENTITY, quest.status, "reopen")
        return _apply_status(session, quest, QuestStatus.OPEN, now, actor_id=actor_id)
    return _run(engine, quest_id, step, actor_id=actor_id, **kwargs)


def complete(engine: Engine, quest_id: int, *, actor_id: int, **kwargs) -> Result[Quest]:
    return _status_op(engine, quest_id, QuestStatus.COMPLETED, actor_id=actor_id, **kwargs)


def revoke(engine: Engine, quest_id: int, *, actor_id: int, reason: str, **kwargs) -> Result[Quest]:
    """Pull a quest for cause.  Creator and every enrolled user are told why."""
    return _status_op(
        engine, quest_id, QuestStatus.REVOKED,
        actor_id=actor_id, reason=reason,
        action=AuditAction.REVOKE, security_sensitive=True, **kwargs,
    )


def delete(engine: Engine, quest_id: int, *, actor_id: int, reason: str, **kwargs) -> Result[Quest]:
    """Soft-delete a cancelled or revoked quest.  The row is kept."""
    def step(session: Session, quest: Quest, now: datetime):
        if is_blank(reason):
            return Failure.missing_reason(ENTITY, QuestStatus.DELETED)
        if QUEST_GRAPH.can_transition(quest.status, QuestStatus.DELETED):
            active = active_signup_count(session, quest.id)
            if active:
                return Failure(
                    FailureKind.HAS_ACTIVE_SIGNUPS,
                    f"Quest {quest.id} still has {active} active signup(s)",
                    {"active_signups": active},
                )
        return _apply_status(
            session, quest, QuestStatus.DELETED, now,
            actor_id=actor_id, reason=reason,
            action=AuditAction.SOFT_DELETE, security_sensitive=True,
        )
    return _run(engine, quest_id, step, actor_id=actor_id, **kwargs)


# ---------------------------------------------------------------------------
# Non-status edits
# ---------------------------------------------------------------------------
def toggle_priority_flag(engine: Engine, quest_id: int, *, actor_id: int) -> Result[Quest]:
    def step(session: Session, quest: Quest, now: datetime):
        before = row_to_dict(quest)
        quest.priority_flag = not quest.priority_flag
        session.flush()
        log_action(
            session,
            actor_id=actor_id,
            action=AuditAction.UPDATE,
            target_table=TABLE,
            target_id=quest.id,
            before=before,
            after=row_to_dict(quest),
        )
        return []
    return _run(engine, quest_id, step, actor_id=actor_id)


def schedule_instance(
    engine: Engine,
    quest_id: int,
    *,
    actor_id: int,
    scheduled_date: date,
    start_time: time,
    capacity: int = 0,
    target_squad_size: int | None = None,
    warm_up_min_ready_pct: int = 100,
    title: str | None = None,
) -> Result[QuestInstance]:
    """Create a draft instance of an approved, published quest."""
    with Session(engine, expire_on_commit=False) as session:
        quest = session.get(Quest, quest_id)
        if quest is None:
            return Failure.not_found(ENTITY, quest_id)
        if quest.review_status != ReviewStatus.APPROVED or quest.status not in SCHEDULABLE_STATUSES:
            return Failure(
                FailureKind.INVALID_TRANSITION,
                f"Quest {quest_id} cannot be scheduled while "
                f"'{quest.status}' / '{quest.review_status}'",
                {"status": str(quest.status), "review_status": str(quest.review_status)},
            )

        instance = QuestInstance(
            quest_id=quest.id,
            title=title or quest.title,
            scheduled_date=scheduled_date,
            start_time=start_time,
            capacity=capacity,
            target_squad_size=target_squad_size,
            warm_up_min_ready_pct=warm_up_min_ready_pct,
        )
        try:
            session.add(instance)
            session.flush()
            log_action(
                session,
                actor_id=actor_id,
                action=AuditAction.CREATE,
                target_table="quest_instances",
                target_id=instance.id,
                after=row_to_dict(instance),
            )
            session.commit()
        except (IntegrityError, DataError) as exc:
            session.rollback()
            logger.error("Scheduling quest %s failed: %s", quest_id, exc)
            return Failure.persistence(exc)

        session.refresh(instance)
        session.expunge(instance)
    logger.info("Quest %s scheduled instance %s for %s", quest_id, instance.id, scheduled_date)
    return Success(instance)
