"""
questboard.services.notifier — Notification Collaborator
=========================================================

The lifecycle services decide *who* hears about a change and *when*;
delivery belongs to a :class:`Notifier`.  The default
:class:`DatabaseNotifier` writes in-app ``notifications`` rows; email or
push transports can implement the same protocol.

Dispatch is fire-and-forget relative to the transition: it runs only
after the state change has committed, and a delivery failure is logged
and annotated in the audit log instead of undoing the change.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from sqlalchemy import Engine
from sqlalchemy.orm import Session

from questboard.database.models import Notification
from questboard.services.audit import annotate_delivery_failure

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, user_ids: list[int], kind: str, payload: dict[str, Any]) -> None:
        """Deliver one notification of *kind* to every user in *user_ids*."""


class DatabaseNotifier:
    """Writes one ``notifications`` row per recipient.

    *payload* must carry ``title`` and ``body``; everything else is kept
    as structured payload for the client.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def notify(self, user_ids: list[int], kind: str, payload: dict[str, Any]) -> None:
        if not user_ids:
            return
        extra = {k: v for k, v in payload.items() if k not in ("title", "body")}
        with Session(self._engine) as session:
            session.add_all(
                Notification(
                    user_id=user_id,
                    kind=kind,
                    title=payload["title"],
                    body=payload["body"],
                    payload=extra,
                )
                for user_id in user_ids
            )
            session.commit()
        logger.debug("Notified %d user(s) kind=%s", len(user_ids), kind)


@dataclass(slots=True)
class PendingNotice:
    """A notification decided inside a transaction, sent after commit."""

    user_ids: list[int]
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)


def dispatch(
    engine: Engine,
    notifier: Notifier,
    notices: Iterable[PendingNotice],
    *,
    actor_id: int,
    target_table: str,
    target_id: int | str | None,
) -> int:
    """Send *notices*; return how many failed.

    Failures are recorded as ``NOTIFY_FAILED`` audit rows against the
    entity whose transition triggered them.
    """
    failed = 0
    for notice in notices:
        recipients = sorted(set(notice.user_ids))
        if not recipients:
            continue
        try:
            notifier.notify(recipients, notice.kind, notice.payload)
        except Exception as exc:
            failed += 1
            logger.exception(
                "Notification delivery failed: kind=%s %s/%s", notice.kind, target_table, target_id
            )
            annotate_delivery_failure(
                engine,
                actor_id=actor_id,
                target_table=target_table,
                target_id=target_id,
                kind=notice.kind,
                error=str(exc),
            )
    return failed
