"""
questboard.services.bulk_service — Bulk Instance Transitions
=============================================================

Applies one target status to many instances in a single transaction.

By default every instance goes through exactly the validation the
single-instance path uses (graph, reason rule, resume target,
conditional write).  Items that fail are reported and left untouched;
the rest commit together.

``force=True`` is the explicit operator override: graph legality is
skipped, but a reason is still mandatory, the write is still conditional
on the observed status, and every forced row is audited as
``BULK_FORCE_STATUS`` with ``security_sensitive`` set.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import DataError, IntegrityError
from sqlalchemy.orm import Session

from questboard.database.models import AuditAction, InstanceStatus, QuestInstance
from questboard.engine.clock import utcnow
from questboard.engine.results import Failure, FailureKind
from questboard.services.instance_service import ENTITY, TABLE, apply_transition
from questboard.services.notifier import DatabaseNotifier, Notifier, PendingNotice, dispatch

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BulkRejection:
    instance_id: int
    kind: FailureKind
    message: str


@dataclass(slots=True)
class BulkReport:
    """Per-item outcome of one bulk call."""

    target: str
    forced: bool = False
    succeeded: list[int] = field(default_factory=list)
    rejected: list[BulkRejection] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.rejected) + len(self.skipped)

    @property
    def partial(self) -> bool:
        return bool(self.succeeded) and bool(self.rejected)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "forced": self.forced,
            "succeeded": list(self.succeeded),
            "rejected": [
                {"instance_id": r.instance_id, "kind": r.kind.value, "message": r.message}
                for r in self.rejected
            ],
            "skipped": list(self.skipped),
        }


def bulk_transition(
    engine: Engine,
    instance_ids: Iterable[int],
    target: InstanceStatus | str,
    *,
    actor_id: int,
    reason: str | None = None,
    status_filter: Iterable[InstanceStatus | str] | None = None,
    force: bool = False,
    notifier: Notifier | None = None,
    now: datetime | None = None,
) -> BulkReport:
    """Move every instance in *instance_ids* to *target*.

    *status_filter*, when given, limits the call to instances currently in
    one of those statuses; others are reported as skipped rather than
    rejected.
    """
    ids = list(dict.fromkeys(instance_ids))
    allowed = {InstanceStatus(s) for s in status_filter} if status_filter else None
    report = BulkReport(target=str(target), forced=force)
    audit_action = AuditAction.BULK_FORCE_STATUS if force else AuditAction.BULK_STATUS
    now = now or utcnow()
    pending: list[tuple[int, list[PendingNotice]]] = []

    if force:
        logger.warning(
            "Forced bulk transition of %d instance(s) to %s by actor=%s", len(ids), target, actor_id
        )

    with Session(engine, expire_on_commit=False) as session:
        for instance_id in ids:
            instance = session.get(QuestInstance, instance_id)
            if instance is None:
                failure = Failure.not_found(ENTITY, instance_id)
                report.rejected.append(BulkRejection(instance_id, failure.kind, failure.message))
                continue
            if allowed is not None and instance.status not in allowed:
                report.skipped.append(instance_id)
                continue

            savepoint = session.begin_nested()
            try:
                outcome = apply_transition(
                    session, instance, target,
                    actor_id=actor_id, reason=reason, now=now,
                    enforce_graph=not force, audit_action=audit_action,
                )
            except (IntegrityError, DataError) as exc:
                savepoint.rollback()
                outcome = Failure.persistence(exc)

            if isinstance(outcome, Failure):
                if savepoint.is_active:
                    savepoint.rollback()
                report.rejected.append(BulkRejection(instance_id, outcome.kind, outcome.message))
                continue
            savepoint.commit()
            report.succeeded.append(instance_id)
            pending.append((instance_id, outcome))

        session.commit()

    logger.info(
        "Bulk %s → %s: %d succeeded, %d rejected, %d skipped",
        "force" if force else "transition", target,
        len(report.succeeded), len(report.rejected), len(report.skipped),
    )

    sender = notifier or DatabaseNotifier(engine)
    for instance_id, notices in pending:
        dispatch(
            engine, sender, notices,
            actor_id=actor_id, target_table=TABLE, target_id=instance_id,
        )
    return report
