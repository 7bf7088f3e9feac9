"""
questboard.services.attention_service — Attention Board
========================================================

Loads instance and squad snapshots and hands them to the pure
:func:`~questboard.engine.attention.compute_flag`.  Archived squads are
left out of every count.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from questboard.config import DEFAULT_TUNING, LifecycleTuning
from questboard.database.models import InstanceStatus, QuestInstance, Squad
from questboard.engine.attention import (
    AttentionFlag,
    InstanceSnapshot,
    SquadWarmUpState,
    compute_flag,
)
from questboard.engine.clock import utcnow
from questboard.engine.warmup import MemberSnapshot, readiness_summary

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

# Instances an operator can still act on.
BOARD_STATUSES = (
    InstanceStatus.DRAFT,
    InstanceStatus.RECRUITING,
    InstanceStatus.LOCKED,
    InstanceStatus.LIVE,
    InstanceStatus.PAUSED,
)


@dataclass(frozen=True, slots=True)
class BoardEntry:
    instance_id: int
    title: str
    status: InstanceStatus
    squad_count: int
    flag: AttentionFlag | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "instance_id": self.instance_id,
            "title": self.title,
            "status": self.status.value,
            "squad_count": self.squad_count,
            "flag": self.flag.to_dict() if self.flag else None,
        }


def _instance_snapshot(instance: QuestInstance) -> InstanceSnapshot:
    return InstanceSnapshot(
        status=instance.status,
        scheduled_date=instance.scheduled_date,
        start_time=instance.start_time,
        current_signup_count=instance.current_signup_count,
        capacity=instance.capacity,
        target_squad_size=instance.target_squad_size,
    )


def _warm_up_state(squad: Squad) -> SquadWarmUpState:
    summary = readiness_summary(
        MemberSnapshot(m.status, m.readiness_confirmed_at) for m in squad.members
    )
    return SquadWarmUpState(
        status=squad.status,
        warming_up_since=squad.warming_up_since,
        ready_count=summary.ready,
        total_members=summary.total,
    )


def _live_squads(session: Session, instance_ids: list[int]) -> dict[int, list[Squad]]:
    """Non-archived squads with members preloaded, grouped by instance."""
    grouped: dict[int, list[Squad]] = defaultdict(list)
    if not instance_ids:
        return grouped
    squads = session.scalars(
        select(Squad)
        .where(Squad.instance_id.in_(instance_ids), Squad.archived_at.is_(None))
        .options(selectinload(Squad.members))
        .order_by(Squad.id)
    ).all()
    for squad in squads:
        grouped[squad.instance_id].append(squad)
    return grouped


def _entry(
    instance: QuestInstance, squads: list[Squad], now: datetime, tuning: LifecycleTuning
) -> BoardEntry:
    flag = compute_flag(
        _instance_snapshot(instance),
        len(squads),
        [_warm_up_state(s) for s in squads],
        now=now,
        tuning=tuning,
    )
    return BoardEntry(instance.id, instance.title, instance.status, len(squads), flag)


def flag_for_instance(
    engine: Engine,
    instance_id: int,
    *,
    now: datetime | None = None,
    tuning: LifecycleTuning = DEFAULT_TUNING,
) -> BoardEntry | None:
    """Current attention entry for one instance, or ``None`` if it doesn't exist."""
    with Session(engine) as session:
        instance = session.get(QuestInstance, instance_id)
        if instance is None:
            return None
        squads = _live_squads(session, [instance_id])[instance_id]
        return _entry(instance, squads, now or utcnow(), tuning)


def attention_board(
    engine: Engine,
    *,
    now: datetime | None = None,
    tuning: LifecycleTuning = DEFAULT_TUNING,
    flagged_only: bool = False,
    statuses: tuple[InstanceStatus, ...] = BOARD_STATUSES,
) -> list[BoardEntry]:
    """One entry per actionable instance, soonest first."""
    now = now or utcnow()
    with Session(engine) as session:
        instances = session.scalars(
            select(QuestInstance)
            .where(QuestInstance.status.in_(statuses))
            .order_by(QuestInstance.scheduled_date, QuestInstance.start_time, QuestInstance.id)
        ).all()
        squads = _live_squads(session, [i.id for i in instances])
        entries = [_entry(i, squads.get(i.id, []), now, tuning) for i in instances]

    if flagged_only:
        entries = [e for e in entries if e.flag is not None]
    logger.debug("Attention board: %d instance(s), %d flagged",
                 len(entries), sum(1 for e in entries if e.flag))
    return entries
