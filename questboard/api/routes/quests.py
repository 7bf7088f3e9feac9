"""
questboard.api.routes.quests — Quest review & publication endpoints
====================================================================
"""

from __future__ import annotations

from datetime import date, time
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

from questboard.api.deps import (
    get_actor_id,
    get_current_admin,
    get_engine,
    get_session,
    require_phrase,
    unwrap,
)
from questboard.constants import CONFIRM_DELETE, CONFIRM_REVOKE
from questboard.database.models import Quest, QuestStatus, ReviewStatus
from questboard.services import quest_service
from questboard.services.audit import audit_trail, row_to_dict

router = APIRouter(
    prefix="/admin/quests", tags=["quests"], dependencies=[Depends(get_current_admin)]
)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class ReviewAction(BaseModel):
    action: Literal["approve", "reject", "request_changes"]
    admin_notes: str | None = None
    publish: bool = False


class StatusAction(BaseModel):
    action: Literal["pause", "resume", "cancel", "close", "reopen", "complete"]
    reason: str | None = None
    expected_status: QuestStatus | None = None


class DangerAction(BaseModel):
    reason: str
    confirm: str
    expected_status: QuestStatus | None = None


class InstanceCreate(BaseModel):
    scheduled_date: date
    start_time: time
    capacity: int = Field(default=0, ge=0)
    target_squad_size: int | None = Field(default=None, ge=1)
    warm_up_min_ready_pct: int = Field(default=100, ge=1, le=100)
    title: str | None = None


_REVIEW_OPS = {
    "approve": quest_service.approve,
    "reject": quest_service.reject,
    "request_changes": quest_service.request_changes,
}


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------
@router.get("")
def list_quests(
    review_status: ReviewStatus | None = Query(default=None),
    status: QuestStatus | None = Query(default=None),
    session: Session = Depends(get_session),
):
    stmt = select(Quest).order_by(Quest.priority_flag.desc(), Quest.created_at, Quest.id)
    if review_status is not None:
        stmt = stmt.where(Quest.review_status == review_status)
    if status is not None:
        stmt = stmt.where(Quest.status == status)
    return [row_to_dict(q) for q in session.scalars(stmt).all()]


@router.get("/{quest_id}")
def get_quest(quest_id: int, engine: Engine = Depends(get_engine)):
    quest = quest_service.get_quest(engine, quest_id)
    if quest is None:
        raise HTTPException(404, f"Quest not found: {quest_id}")
    return row_to_dict(quest)


@router.get("/{quest_id}/audit")
def get_quest_audit(quest_id: int, engine: Engine = Depends(get_engine)):
    return [row_to_dict(entry) for entry in audit_trail(engine, quest_service.TABLE, quest_id)]


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------
@router.post("/{quest_id}/review")
def review_quest(
    quest_id: int,
    body: ReviewAction,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    if body.publish and body.action != "approve":
        raise HTTPException(422, "Only an approval can publish")
    kwargs = {"publish": True} if body.publish else {}
    result = _REVIEW_OPS[body.action](
        engine, quest_id, actor_id=actor_id, admin_notes=body.admin_notes, **kwargs
    )
    return row_to_dict(unwrap(result))


@router.post("/{quest_id}/submit")
def submit_quest(
    quest_id: int, engine: Engine = Depends(get_engine), actor_id: int = Depends(get_actor_id)
):
    return row_to_dict(unwrap(quest_service.submit_for_review(engine, quest_id, actor_id=actor_id)))


@router.post("/{quest_id}/publish")
def publish_quest(
    quest_id: int, engine: Engine = Depends(get_engine), actor_id: int = Depends(get_actor_id)
):
    return row_to_dict(unwrap(quest_service.publish(engine, quest_id, actor_id=actor_id)))


# ---------------------------------------------------------------------------
# Publication status
# ---------------------------------------------------------------------------
@router.post("/{quest_id}/status")
def change_quest_status(
    quest_id: int,
    body: StatusAction,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    kwargs: dict = {"actor_id": actor_id, "expected_status": body.expected_status}
    if body.action in ("pause", "cancel"):
        kwargs["reason"] = body.reason
    op = getattr(quest_service, body.action)
    return row_to_dict(unwrap(op(engine, quest_id, **kwargs)))


@router.post("/{quest_id}/revoke")
def revoke_quest(
    quest_id: int,
    body: DangerAction,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    require_phrase(body.confirm, CONFIRM_REVOKE)
    result = quest_service.revoke(
        engine, quest_id, actor_id=actor_id, reason=body.reason,
        expected_status=body.expected_status,
    )
    return row_to_dict(unwrap(result))


@router.post("/{quest_id}/delete")
def delete_quest(
    quest_id: int,
    body: DangerAction,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    require_phrase(body.confirm, CONFIRM_DELETE)
    result = quest_service.delete(
        engine, quest_id, actor_id=actor_id, reason=body.reason,
        expected_status=body.expected_status,
    )
    return row_to_dict(unwrap(result))


@router.post("/{quest_id}/priority")
def toggle_priority(
    quest_id: int, engine: Engine = Depends(get_engine), actor_id: int = Depends(get_actor_id)
):
    return row_to_dict(unwrap(quest_service.toggle_priority_flag(engine, quest_id, actor_id=actor_id)))


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------
@router.post("/{quest_id}/instances", status_code=201)
def schedule_instance(
    quest_id: int,
    body: InstanceCreate,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    result = quest_service.schedule_instance(
        engine, quest_id, actor_id=actor_id, **body.model_dump()
    )
    return row_to_dict(unwrap(result))
