"""
questboard.engine.results — Typed lifecycle results
====================================================

Every lifecycle operation returns either :class:`Success` or
:class:`Failure`; expected conditions are never raised.  The
:class:`FailureKind` tag names exactly which precondition failed so the
caller can render a precise message.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

__all__ = ["Failure", "FailureKind", "Result", "Success"]


class FailureKind(enum.StrEnum):
    INVALID_TRANSITION = "invalid_transition"
    MISSING_REASON = "missing_reason"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    PERSISTENCE_FAILURE = "persistence_failure"
    NOT_FOUND = "not_found"
    NOT_A_MEMBER = "not_a_member"
    LAST_LEADER = "last_leader"
    INVALID_SETTINGS = "invalid_settings"
    HAS_ACTIVE_SIGNUPS = "has_active_signups"


@dataclass(frozen=True, slots=True)
class Success(Generic[T]):
    """A transition that was durably committed."""

    value: T
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True, slots=True)
class Failure:
    """A transition that did not apply.  Nothing was written."""

    kind: FailureKind
    message: str
    detail: dict[str, Any] = field(default_factory=dict)
    ok: bool = field(default=False, init=False)

    # -- constructors -------------------------------------------------------
    @classmethod
    def invalid_transition(cls, entity: str, current: str, target: str) -> Failure:
        return cls(
            FailureKind.INVALID_TRANSITION,
            f"Cannot transition {entity} from '{current}' to '{target}'",
            {"current": str(current), "target": str(target)},
        )

    @classmethod
    def missing_reason(cls, entity: str, target: str) -> Failure:
        return cls(
            FailureKind.MISSING_REASON,
            f"A reason is required to move {entity} to '{target}'",
            {"target": str(target)},
        )

    @classmethod
    def concurrent_modification(cls, entity: str, entity_id: int, expected: str) -> Failure:
        return cls(
            FailureKind.CONCURRENT_MODIFICATION,
            f"{entity.capitalize()} {entity_id} is no longer '{expected}'; "
            "refresh and try again",
            {"id": entity_id, "expected": str(expected)},
        )

    @classmethod
    def not_found(cls, entity: str, entity_id: int) -> Failure:
        return cls(
            FailureKind.NOT_FOUND,
            f"{entity.capitalize()} {entity_id} not found",
            {"id": entity_id},
        )

    @classmethod
    def persistence(cls, exc: Exception) -> Failure:
        return cls(FailureKind.PERSISTENCE_FAILURE, str(exc))


Result = Success[T] | Failure
