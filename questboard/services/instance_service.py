"""
questboard.services.instance_service — Instance Execution Lifecycle
====================================================================

draft → recruiting → locked → live → completed, with pause / cancel /
archive side branches (see :data:`~questboard.engine.state_graph.INSTANCE_GRAPH`).

Every transition:
  1. Load the instance and its observed status
  2. Check the graph, the reason rule and (for resume) the stored
     pre-pause status
  3. Conditional write keyed on the observed status
  4. Append the audit row in the same transaction
  5. Commit, then notify signed-up users where the edge says so

Expected failures come back as :class:`~questboard.engine.results.Failure`
values; nothing here raises for them.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import Session

from questboard.constants import (
    INSTANCE_NOTICES,
    KIND_INSTANCE_CANCELLED,
    KIND_INSTANCE_PAUSED,
    KIND_INSTANCE_RESUMED,
)
from questboard.database.models import (
    AuditAction,
    InstanceStatus,
    QuestInstance,
    QuestSignup,
    SignupStatus,
)
from questboard.engine.clock import utcnow
from questboard.engine.results import Failure, Result, Success
from questboard.engine.state_graph import INSTANCE_GRAPH, PAUSABLE_INSTANCE_STATES
from questboard.services.audit import (
    UpdateOutcome,
    conditional_update_status,
    is_blank,
    log_action,
    row_to_dict,
)
from questboard.services.notifier import DatabaseNotifier, Notifier, PendingNotice, dispatch

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

TABLE = "quest_instances"
ENTITY = "instance"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
def get_instance(engine: Engine, instance_id: int) -> QuestInstance | None:
    with Session(engine, expire_on_commit=False) as session:
        instance = session.get(QuestInstance, instance_id)
        if instance is not None:
            session.expunge(instance)
        return instance


def signed_up_user_ids(session: Session, instance_ids: list[int]) -> list[int]:
    """Users with a pending or confirmed signup on any of *instance_ids*."""
    if not instance_ids:
        return []
    rows = session.scalars(
        select(QuestSignup.user_id).where(
            QuestSignup.instance_id.in_(instance_ids),
            QuestSignup.status.in_([SignupStatus.PENDING, SignupStatus.CONFIRMED]),
        )
    ).all()
    return sorted(set(rows))


def resume_target(instance: QuestInstance) -> InstanceStatus:
    """The exact status a paused instance returns to."""
    return instance.previous_status or InstanceStatus.RECRUITING


# ---------------------------------------------------------------------------
# Core transition step (shared with the bulk coordinator)
# ---------------------------------------------------------------------------
def _coerce_status(value: InstanceStatus | str) -> InstanceStatus | None:
    try:
        return InstanceStatus(value)
    except ValueError:
        return None


def _status_fields(
    current: InstanceStatus, target: InstanceStatus, reason: str | None, now: datetime
) -> dict:
    fields: dict = {}
    if target == InstanceStatus.PAUSED:
        fields.update(paused_at=now, paused_reason=reason, previous_status=current)
    elif current == InstanceStatus.PAUSED:
        fields.update(paused_at=None, paused_reason=None, previous_status=None)
    if target == InstanceStatus.CANCELLED:
        fields["cancelled_reason"] = reason
    return fields


def _notice_for(
    instance: QuestInstance,
    current: InstanceStatus,
    target: InstanceStatus,
    recipients: list[int],
    reason: str | None,
) -> PendingNotice | None:
    if target == InstanceStatus.PAUSED:
        kind = KIND_INSTANCE_PAUSED
    elif target == InstanceStatus.CANCELLED:
        kind = KIND_INSTANCE_CANCELLED
    elif current == InstanceStatus.PAUSED:
        kind = KIND_INSTANCE_RESUMED
    else:
        return None
    title_prefix, fallback = INSTANCE_NOTICES[kind]
    return PendingNotice(
        user_ids=recipients,
        kind=kind,
        payload={
            "title": f"{title_prefix}: {instance.title}",
            "body": reason or fallback,
            "instance_id": instance.id,
            "status": target.value,
        },
    )


def apply_transition(
    session: Session,
    instance: QuestInstance,
    target: InstanceStatus | str,
    *,
    actor_id: int,
    reason: str | None = None,
    now: datetime | None = None,
    enforce_graph: bool = True,
    audit_action: AuditAction = AuditAction.STATUS_CHANGE,
) -> Failure | list[PendingNotice]:
    """Validate and write one instance transition inside *session*.

    Returns the notices to send after commit, or a :class:`Failure`.  The
    caller owns the transaction.  ``enforce_graph=False`` is the bulk
    force-override: legality is skipped, the reason rule and the
    conditional write are not.  A forced pause still has to start from a
    pausable status so that resume has somewhere to go back to.
    """
    current = instance.status
    new = _coerce_status(target)
    if new is None:
        return Failure.invalid_transition(ENTITY, current, str(target))

    edge = INSTANCE_GRAPH.edge(current, new)
    if enforce_graph:
        if edge is None:
            return Failure.invalid_transition(ENTITY, current, new)
        if current == InstanceStatus.PAUSED and new != InstanceStatus.CANCELLED:
            expected = resume_target(instance)
            if new != expected:
                return Failure.invalid_transition(ENTITY, current, new)
        if edge.requires_reason and is_blank(reason):
            return Failure.missing_reason(ENTITY, new)
    else:
        if new == InstanceStatus.PAUSED and current not in PAUSABLE_INSTANCE_STATES:
            # A pause must remember a status that resume can return to.
            return Failure.invalid_transition(ENTITY, current, new)
        if is_blank(reason):
            return Failure.missing_reason(ENTITY, new)

    reason = reason.strip() if reason else None
    now = now or utcnow()
    before = row_to_dict(instance)

    outcome = conditional_update_status(
        session, QuestInstance, instance.id, current, new,
        _status_fields(current, new, reason, now),
    )
    if outcome == UpdateOutcome.NOT_FOUND:
        return Failure.not_found(ENTITY, instance.id)
    if outcome == UpdateOutcome.CONFLICT:
        return Failure.concurrent_modification(ENTITY, instance.id, current)

    session.refresh(instance)
    log_action(
        session,
        actor_id=actor_id,
        action=audit_action,
        target_table=TABLE,
        target_id=instance.id,
        before=before,
        after=row_to_dict(instance),
        reason=reason,
        security_sensitive=not enforce_graph,
    )
    logger.info(
        "Instance %s: %s → %s by actor=%s", instance.id, current, new, actor_id
    )

    notify_subjects = edge.notify_subjects if edge is not None else new in (
        InstanceStatus.PAUSED, InstanceStatus.CANCELLED
    )
    if not notify_subjects:
        return []
    notice = _notice_for(
        instance, current, new, signed_up_user_ids(session, [instance.id]), reason
    )
    return [notice] if notice is not None else []


# ---------------------------------------------------------------------------
# Single-instance entry point
# ---------------------------------------------------------------------------
def transition(
    engine: Engine,
    instance_id: int,
    target: InstanceStatus | str,
    *,
    actor_id: int,
    reason: str | None = None,
    expected_status: InstanceStatus | str | None = None,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> Result[QuestInstance]:
    """Move one instance to *target*.

    *expected_status* is the status the operator was looking at; if the
    row has moved on since, the call fails with ``concurrent_modification``
    before any write.
    """
    with Session(engine, expire_on_commit=False) as session:
        instance = session.get(QuestInstance, instance_id)
        if instance is None:
            return Failure.not_found(ENTITY, instance_id)
        if expected_status is not None and instance.status != expected_status:
            return Failure.concurrent_modification(ENTITY, instance_id, str(expected_status))

        try:
            outcome = apply_transition(
                session, instance, target, actor_id=actor_id, reason=reason, now=now
            )
            if isinstance(outcome, Failure):
                session.rollback()
                return outcome
            session.commit()
        except (IntegrityError, DataError) as exc:
            session.rollback()
            logger.error("Instance %s transition failed: %s", instance_id, exc)
            return Failure.persistence(exc)

        session.refresh(instance)
        session.expunge(instance)

    dispatch(
        engine, notifier or DatabaseNotifier(engine), outcome,
        actor_id=actor_id, target_table=TABLE, target_id=instance_id,
    )
    return Success(instance)


# ---------------------------------------------------------------------------
# Named operations
# ---------------------------------------------------------------------------
def pause(
    engine: Engine, instance_id: int, *, actor_id: int, reason: str, **kwargs
) -> Result[QuestInstance]:
    """Pause a recruiting/locked/live instance; remembers where it was."""
    return transition(
        engine, instance_id, InstanceStatus.PAUSED, actor_id=actor_id, reason=reason, **kwargs
    )


def resume(engine: Engine, instance_id: int, *, actor_id: int, **kwargs) -> Result[QuestInstance]:
    """Return a paused instance to the exact status it was paused from."""
    instance = get_instance(engine, instance_id)
    if instance is None:
        return Failure.not_found(ENTITY, instance_id)
    if instance.status != InstanceStatus.PAUSED:
        return Failure.invalid_transition(ENTITY, instance.status, "resume")
    kwargs.setdefault("expected_status", InstanceStatus.PAUSED)
    return transition(
        engine, instance_id, resume_target(instance), actor_id=actor_id, **kwargs
    )


def cancel(
    engine: Engine, instance_id: int, *, actor_id: int, reason: str, **kwargs
) -> Result[QuestInstance]:
    return transition(
        engine, instance_id, InstanceStatus.CANCELLED, actor_id=actor_id, reason=reason, **kwargs
    )


def archive(engine: Engine, instance_id: int, *, actor_id: int, **kwargs) -> Result[QuestInstance]:
    return transition(engine, instance_id, InstanceStatus.ARCHIVED, actor_id=actor_id, **kwargs)


def open_recruiting(
    engine: Engine, instance_id: int, *, actor_id: int, **kwargs
) -> Result[QuestInstance]:
    return transition(engine, instance_id, InstanceStatus.RECRUITING, actor_id=actor_id, **kwargs)


def lock(engine: Engine, instance_id: int, *, actor_id: int, **kwargs) -> Result[QuestInstance]:
    return transition(engine, instance_id, InstanceStatus.LOCKED, actor_id=actor_id, **kwargs)


def go_live(engine: Engine, instance_id: int, *, actor_id: int, **kwargs) -> Result[QuestInstance]:
    return transition(engine, instance_id, InstanceStatus.LIVE, actor_id=actor_id, **kwargs)


def complete(engine: Engine, instance_id: int, *, actor_id: int, **kwargs) -> Result[QuestInstance]:
    return transition(engine, instance_id, InstanceStatus.COMPLETED, actor_id=actor_id, **kwargs)
