"""
questboard.engine.warmup — Squad warm-up readiness & health
============================================================

Pure derivations over squad member snapshots.  Health is never stored;
it is recomputed from ``readiness_confirmed_at`` every time it is shown.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from questboard.config import DEFAULT_TUNING, LifecycleTuning
from questboard.database.models import MemberStatus

__all__ = [
    "MemberSnapshot",
    "ReadinessSummary",
    "SquadHealth",
    "is_ready_for_review",
    "readiness_summary",
    "squad_health",
]


class SquadHealth(enum.StrEnum):
    HEALTHY = "healthy"
    WARNING = "warning"
    AT_RISK = "at_risk"


@dataclass(frozen=True, slots=True)
class MemberSnapshot:
    """The slice of a SquadMember row the readiness maths needs."""

    status: MemberStatus
    readiness_confirmed_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ReadinessSummary:
    ready: int
    total: int

    @property
    def ratio(self) -> float:
        return self.ready / self.total if self.total else 0.0

    @property
    def percent(self) -> float:
        return round(self.ratio * 100, 1)


def readiness_summary(members: Iterable[MemberSnapshot]) -> ReadinessSummary:
    """Count confirmed vs. total among *active* members; removed ones are ignored."""
    active = [m for m in members if m.status == MemberStatus.ACTIVE]
    ready = sum(1 for m in active if m.readiness_confirmed_at is not None)
    return ReadinessSummary(ready=ready, total=len(active))


def squad_health(
    members: Iterable[MemberSnapshot],
    tuning: LifecycleTuning = DEFAULT_TUNING,
) -> SquadHealth:
    """``healthy`` at ≥80% confirmed, ``warning`` at ≥50%, else ``at_risk``.

    A squad with no active members is ``at_risk``.
    """
    ratio = readiness_summary(members).ratio
    if ratio >= tuning.health_healthy_ratio:
        return SquadHealth.HEALTHY
    if ratio >= tuning.health_warning_ratio:
        return SquadHealth.WARNING
    return SquadHealth.AT_RISK


def is_ready_for_review(summary: ReadinessSummary, min_ready_pct: int) -> bool:
    """Whether warm-up has gathered enough confirmations to go to admin review."""
    if summary.total == 0:
        return False
    return summary.ready * 100 >= summary.total * min_ready_pct
