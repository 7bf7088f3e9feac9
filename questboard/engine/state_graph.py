"""
questboard.engine.state_graph — Declarative legal-transition tables
===================================================================

One :class:`StateGraph` per status field.  Every lifecycle service asks
the graph before writing, so the legality rules live in exactly one
place.  Edges carry their own preconditions:

* ``requires_reason`` — the call must supply a non-blank reason.
* ``requires_confirmation_phrase`` — the operator must retype the action
  name before the call is made.  The caller surface enforces this; the
  core only publishes the flag.
* ``notify_actor`` / ``notify_subjects`` — who hears about the change.
"""

from __future__ import annotations

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Generic, TypeVar

from questboard.database.models import (
    InstanceStatus,
    QuestStatus,
    ReviewStatus,
    SquadStatus,
)

S = TypeVar("S", bound=enum.StrEnum)

__all__ = [
    "Edge",
    "INSTANCE_GRAPH",
    "QUEST_GRAPH",
    "REVIEW_GRAPH",
    "SQUAD_GRAPH",
    "StateGraph",
]


@dataclass(frozen=True, slots=True)
class Edge(Generic[S]):
    """One legal ``source → target`` move and its preconditions."""

    source: S
    target: S
    requires_reason: bool = False
    requires_confirmation_phrase: bool = False
    notify_actor: bool = False
    notify_subjects: bool = False


class StateGraph(Generic[S]):
    """Immutable transition table over one StrEnum."""

    def __init__(self, name: str, states: type[S], edges: Iterable[Edge[S]]) -> None:
        self.name = name
        self.states = states
        self._edges: dict[tuple[S, S], Edge[S]] = {}
        for edge in edges:
            key = (edge.source, edge.target)
            if key in self._edges:
                raise ValueError(f"{name}: duplicate edge {edge.source} → {edge.target}")
            self._edges[key] = edge

        # Every state must appear as a key, terminal states with no targets.
        self._targets: dict[S, frozenset[S]] = {
            state: frozenset(t for (s, t) in self._edges if s == state)
            for state in states
        }

    def can_transition(self, current: S | str, target: S | str) -> bool:
        return (self._coerce(current), self._coerce(target)) in self._edges

    def edge(self, current: S | str, target: S | str) -> Edge[S] | None:
        return self._edges.get((self._coerce(current), self._coerce(target)))

    def targets(self, current: S | str) -> frozenset[S]:
        """All states reachable in one step from *current*."""
        return self._targets.get(self._coerce(current), frozenset())

    def sources(self, target: S | str) -> frozenset[S]:
        """All states from which *target* is reachable in one step."""
        t = self._coerce(target)
        return frozenset(s for (s, tt) in self._edges if tt == t)

    def is_terminal(self, state: S | str) -> bool:
        return not self.targets(state)

    def _coerce(self, value: S | str) -> S | None:
        try:
            return self.states(value)
        except ValueError:
            return None

    def __repr__(self) -> str:
        return f"<StateGraph {self.name} edges={len(self._edges)}>"


def _fan_in(
    sources: Iterable[S], target: S, **flags: bool
) -> list[Edge[S]]:
    return [Edge(source, target, **flags) for source in sources]


# ---------------------------------------------------------------------------
# Quest publication status
# ---------------------------------------------------------------------------
_Q = QuestStatus

QUEST_GRAPH: StateGraph[QuestStatus] = StateGraph(
    "quest",
    QuestStatus,
    [
        Edge(_Q.DRAFT, _Q.OPEN, notify_actor=True),
        Edge(_Q.OPEN, _Q.CLOSED, notify_actor=True),
        Edge(_Q.CLOSED, _Q.OPEN, notify_actor=True),
        Edge(_Q.CLOSED, _Q.COMPLETED, notify_actor=True),
        *_fan_in([_Q.OPEN, _Q.CLOSED], _Q.PAUSED, notify_actor=True),
        Edge(_Q.PAUSED, _Q.OPEN, notify_actor=True),
        *_fan_in(
            [_Q.OPEN, _Q.PAUSED, _Q.CLOSED], _Q.CANCELLED,
            requires_reason=True, notify_actor=True,
        ),
        *_fan_in(
            [_Q.DRAFT, _Q.OPEN, _Q.PAUSED, _Q.CLOSED], _Q.REVOKED,
            requires_reason=True, requires_confirmation_phrase=True,
            notify_actor=True, notify_subjects=True,
        ),
        *_fan_in(
            [_Q.CANCELLED, _Q.REVOKED], _Q.DELETED,
            requires_reason=True, requires_confirmation_phrase=True,
        ),
    ],
)

# ---------------------------------------------------------------------------
# Quest review status
# ---------------------------------------------------------------------------
_R = ReviewStatus

REVIEW_GRAPH: StateGraph[ReviewStatus] = StateGraph(
    "quest review",
    ReviewStatus,
    [
        Edge(_R.PENDING_REVIEW, _R.APPROVED, notify_actor=True),
        Edge(_R.PENDING_REVIEW, _R.REJECTED, notify_actor=True),
        Edge(_R.PENDING_REVIEW, _R.CHANGES_REQUESTED, notify_actor=True),
        Edge(_R.CHANGES_REQUESTED, _R.PENDING_REVIEW),
    ],
)

# ---------------------------------------------------------------------------
# Instance execution status
# ---------------------------------------------------------------------------
_I = InstanceStatus
PAUSABLE_INSTANCE_STATES = (_I.RECRUITING, _I.LOCKED, _I.LIVE)

INSTANCE_GRAPH: StateGraph[InstanceStatus] = StateGraph(
    "instance",
    InstanceStatus,
    [
        Edge(_I.DRAFT, _I.RECRUITING),
        Edge(_I.RECRUITING, _I.LOCKED),
        Edge(_I.LOCKED, _I.LIVE),
        Edge(_I.LIVE, _I.COMPLETED),
        *_fan_in(PAUSABLE_INSTANCE_STATES, _I.PAUSED, requires_reason=True, notify_subjects=True),
        *[Edge(_I.PAUSED, state, notify_subjects=True) for state in PAUSABLE_INSTANCE_STATES],
        *_fan_in(
            [*PAUSABLE_INSTANCE_STATES, _I.PAUSED], _I.CANCELLED,
            requires_reason=True, notify_subjects=True,
        ),
        *_fan_in([_I.CANCELLED, _I.COMPLETED], _I.ARCHIVED),
    ],
)

# ---------------------------------------------------------------------------
# Squad formation / warm-up status
# ---------------------------------------------------------------------------
_S = SquadStatus

SQUAD_GRAPH: StateGraph[SquadStatus] = StateGraph(
    "squad",
    SquadStatus,
    [
        Edge(_S.DRAFT, _S.CONFIRMED),
        Edge(_S.CONFIRMED, _S.WARMING_UP, notify_subjects=True),
        Edge(_S.WARMING_UP, _S.READY_FOR_REVIEW),
        Edge(_S.READY_FOR_REVIEW, _S.APPROVED, notify_subjects=True),
        Edge(_S.APPROVED, _S.ACTIVE),
        Edge(_S.ACTIVE, _S.COMPLETED),
    ],
)
