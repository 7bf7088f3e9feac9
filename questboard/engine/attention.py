"""
questboard.engine.attention — Instance attention flags
=======================================================

Pure inference: one instance snapshot plus its squads' warm-up states in,
at most one :class:`AttentionFlag` out.  No DB I/O, no clock reads — the
caller passes ``now`` — so identical inputs always give identical output.

Several conditions are often true at once; operators need one actionable
signal, so the rules are evaluated in a fixed priority order and the first
match wins:

  past event → pending review → stalled warm-up → warming up →
  ready for squad → underfilled → starting soon → ready to go
"""

from __future__ import annotations

import enum
import math
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, time

from questboard.config import DEFAULT_TUNING, LifecycleTuning
from questboard.database.models import InstanceStatus, SquadStatus
from questboard.engine.clock import event_start, hours_between

__all__ = [
    "AttentionFlag",
    "FlagSeverity",
    "FlagType",
    "InstanceSnapshot",
    "SquadWarmUpState",
    "compute_flag",
    "squad_ready_threshold",
]


class FlagType(enum.StrEnum):
    SQUAD_PENDING_REVIEW = "squad_pending_review"
    SQUAD_WARMUP_STALLED = "squad_warmup_stalled"
    SQUAD_WARMING_UP = "squad_warming_up"
    READY_FOR_SQUAD = "ready_for_squad"
    UNDERFILLED = "underfilled"
    STARTING_SOON = "starting_soon"
    READY_TO_GO = "ready_to_go"


class FlagSeverity(enum.StrEnum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True, slots=True)
class AttentionFlag:
    type: FlagType
    severity: FlagSeverity
    message: str
    short_label: str

    def to_dict(self) -> dict[str, str]:
        return {
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "short_label": self.short_label,
        }


@dataclass(frozen=True, slots=True)
class InstanceSnapshot:
    """Read-only view of the instance columns the engine looks at."""

    status: InstanceStatus
    scheduled_date: date
    start_time: time
    current_signup_count: int | None = 0
    capacity: int = 0
    target_squad_size: int | None = None


@dataclass(frozen=True, slots=True)
class SquadWarmUpState:
    status: SquadStatus
    warming_up_since: datetime | None = None
    ready_count: int = 0
    total_members: int = 0


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'s' if n != 1 else ''}"


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def squad_ready_threshold(
    target_squad_size: int | None, tuning: LifecycleTuning = DEFAULT_TUNING
) -> int:
    """Signups needed before an instance is worth forming squads for."""
    size = target_squad_size or tuning.default_target_squad_size
    return math.ceil(size * tuning.squad_ready_ratio)


# ---------------------------------------------------------------------------
# Warm-up signals (evaluated before any capacity signal)
# ---------------------------------------------------------------------------
def _warm_up_flag(
    states: Sequence[SquadWarmUpState], now: datetime, tuning: LifecycleTuning
) -> AttentionFlag | None:
    pending = [s for s in states if s.status == SquadStatus.READY_FOR_REVIEW]
    if pending:
        return AttentionFlag(
            FlagType.SQUAD_PENDING_REVIEW,
            FlagSeverity.WARNING,
            f"{_plural(len(pending), 'squad')} ready for admin approval",
            "Needs Review",
        )

    warming = [s for s in states if s.status == SquadStatus.WARMING_UP]
    stalled = [
        s for s in warming
        if s.warming_up_since is not None
        and hours_between(s.warming_up_since, now) > tuning.warmup_stall_hours
    ]
    if stalled:
        hours = _round_half_up(tuning.warmup_stall_hours)
        return AttentionFlag(
            FlagType.SQUAD_WARMUP_STALLED,
            FlagSeverity.ERROR,
            f"{_plural(len(stalled), 'squad')} stuck in warm-up for {hours}+ hours",
            "Stalled",
        )

    if warming:
        ready = sum(s.ready_count for s in warming)
        total = sum(s.total_members for s in warming)
        return AttentionFlag(
            FlagType.SQUAD_WARMING_UP,
            FlagSeverity.INFO,
            f"{_plural(len(warming), 'squad')} warming up ({ready}/{total} members ready)",
            "Warming Up",
        )
    return None


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------
def compute_flag(
    instance: InstanceSnapshot,
    squad_count: int,
    squad_states: Sequence[SquadWarmUpState] = (),
    *,
    now: datetime,
    tuning: LifecycleTuning = DEFAULT_TUNING,
) -> AttentionFlag | None:
    """Derive the single most urgent flag for *instance*, or ``None``."""
    signups = instance.current_signup_count or 0
    threshold = squad_ready_threshold(instance.target_squad_size, tuning)
    starts_at = event_start(instance.scheduled_date, instance.start_time, tuning.event_timezone)
    hours_until_start = hours_between(now, starts_at)
    minutes_until_start = _round_half_up(hours_until_start * 60)

    # 1. Past events are not actionable
    if hours_until_start < 0 and instance.status != InstanceStatus.COMPLETED:
        return None

    # 2. Squad warm-up
    if squad_states:
        flag = _warm_up_flag(squad_states, now, tuning)
        if flag is not None:
            return flag

    status = instance.status

    # 3. Enough interest, no squads yet
    if status == InstanceStatus.RECRUITING and signups >= threshold and squad_count == 0:
        return AttentionFlag(
            FlagType.READY_FOR_SQUAD,
            FlagSeverity.WARNING,
            f"{signups} users signed up — ready to form squads",
            "Ready for squad",
        )

    # 4. About to start with almost nobody
    if (
        status == InstanceStatus.RECRUITING
        and 0 < hours_until_start < tuning.underfilled_window_hours
        and signups < tuning.underfilled_min_signups
    ):
        return AttentionFlag(
            FlagType.UNDERFILLED,
            FlagSeverity.ERROR,
            f"Only {signups} users, starts in {minutes_until_start} minutes",
            "Underfilled",
        )

    # 5. Locked and about to start
    if (
        status == InstanceStatus.LOCKED
        and 0 < hours_until_start < tuning.starting_soon_hours
        and squad_count > 0
    ):
        return AttentionFlag(
            FlagType.STARTING_SOON,
            FlagSeverity.INFO,
            f"Starting in {minutes_until_start} minutes",
            "Starting soon",
        )

    # 6. All good
    if status == InstanceStatus.LOCKED and squad_count > 0 and signups >= threshold:
        return AttentionFlag(
            FlagType.READY_TO_GO,
            FlagSeverity.SUCCESS,
            f"All set with {_plural(squad_count, 'squad')} formed",
            "Ready",
        )

    return None
