"""
questboard.services.audit — Conditional Writes & Audit Trail
=============================================================

The two persistence operations every lifecycle service needs:

* :func:`conditional_update_status` — compare-and-swap on ``status``.
  ``UPDATE … SET status=:new WHERE id=:id AND status=:expected`` so two
  operators acting on the same stale read cannot both win.
* :func:`log_action` — append one ``audit_log`` row inside the same
  transaction as the write it describes.

Every mutation follows the pattern:
  1. Open a session
  2. Read the "before" snapshot
  3. Conditional write
  4. Write audit_log with before/after
  5. Commit
  6. Dispatch notifications (after commit, never rolled back)
"""

from __future__ import annotations

import enum
import logging
from datetime import date, datetime, time
from typing import Any

from sqlalchemy import Engine, select, update
from sqlalchemy.orm import Session

from questboard.database.models import AuditAction, AuditLogEntry

logger = logging.getLogger(__name__)


class UpdateOutcome(enum.StrEnum):
    APPLIED = "applied"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------
def row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, (datetime, date, time)):
            val = val.isoformat()
        elif isinstance(val, enum.Enum):
            val = val.value
        result[col.name] = val
    return result


# ---------------------------------------------------------------------------
# Conditional status update
# ---------------------------------------------------------------------------
def conditional_update_status(
    session: Session,
    model_cls: type,
    entity_id: int,
    expected_status: Any,
    new_status: Any,
    extra_fields: dict[str, Any] | None = None,
    *,
    status_attr: str = "status",
    also_expect: dict[str, Any] | None = None,
    also_require: list[Any] | None = None,
) -> UpdateOutcome:
    """Set *status_attr* to *new_status* only if it still equals *expected_status*.

    Runs inside the caller's transaction; the caller commits.  Objects
    already loaded in *session* are expired on success so the next
    attribute access reads the new values.

    *also_expect* adds further equality guards, for updates that move two
    status columns at once.
    *also_require* takes arbitrary column predicates, such as
    ``Squad.archived_at.is_not(None)``.
    """
    column = getattr(model_cls, status_attr)
    values = {status_attr: new_status, **(extra_fields or {})}
    guards = [model_cls.id == entity_id, column == expected_status]
    guards += [getattr(model_cls, k) == v for k, v in (also_expect or {}).items()]
    guards += list(also_require or ())
    stmt = (
        update(model_cls)
        .where(*guards)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    rowcount = session.execute(stmt).rowcount
    if rowcount == 1:
        session.expire_all()
        return UpdateOutcome.APPLIED

    exists = session.scalar(select(model_cls.id).where(model_cls.id == entity_id))
    if exists is None:
        return UpdateOutcome.NOT_FOUND
    logger.info(
        "Conditional update lost race: %s id=%s expected %s=%s",
        model_cls.__tablename__, entity_id, status_attr, expected_status,
    )
    return UpdateOutcome.CONFLICT


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------
def log_action(
    session: Session,
    *,
    actor_id: int,
    action: AuditAction | str,
    target_table: str,
    target_id: int | str | None,
    before: dict | None = None,
    after: dict | None = None,
    reason: str | None = None,
    security_sensitive: bool = False,
) -> None:
    """Insert a row into audit_log within the current transaction."""
    session.add(AuditLogEntry(
        actor_id=actor_id,
        action=str(action),
        target_table=target_table,
        target_id=str(target_id) if target_id is not None else None,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
        security_sensitive=security_sensitive,
    ))
    if security_sensitive:
        logger.warning(
            "Security-sensitive action %s on %s/%s by actor=%s",
            action, target_table, target_id, actor_id,
        )


def annotate_delivery_failure(
    engine: Engine,
    *,
    actor_id: int,
    target_table: str,
    target_id: int | str | None,
    kind: str,
    error: str,
) -> None:
    """Record that notifications for an already-committed change failed."""
    with Session(engine) as session:
        log_action(
            session,
            actor_id=actor_id,
            action=AuditAction.NOTIFY_FAILED,
            target_table=target_table,
            target_id=target_id,
            after={"kind": kind, "error": error},
        )
        session.commit()


def audit_trail(engine: Engine, target_table: str, target_id: int | str) -> list[AuditLogEntry]:
    """All audit rows for one entity, oldest first."""
    with Session(engine, expire_on_commit=False) as session:
        rows = session.scalars(
            select(AuditLogEntry)
            .where(
                AuditLogEntry.target_table == target_table,
                AuditLogEntry.target_id == str(target_id),
            )
            .order_by(AuditLogEntry.id)
        ).all()
        session.expunge_all()
        return list(rows)


def is_blank(reason: str | None) -> bool:
    return reason is None or not reason.strip()
