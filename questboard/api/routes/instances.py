"""
questboard.api.routes.instances — Instance lifecycle & attention endpoints
===========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from questboard.api.deps import (
    get_actor_id,
    get_config,
    get_current_admin,
    get_engine,
    require_phrase,
    unwrap,
)
from questboard.config import QuestboardConfig
from questboard.constants import CONFIRM_BULK_CANCEL
from questboard.database.engine import run_db
from questboard.database.models import InstanceStatus
from questboard.services import attention_service, bulk_service, instance_service
from questboard.services.audit import audit_trail, row_to_dict

router = APIRouter(
    prefix="/admin/instances", tags=["instances"], dependencies=[Depends(get_current_admin)]
)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class TransitionRequest(BaseModel):
    target: InstanceStatus
    reason: str | None = None
    expected_status: InstanceStatus | None = None


class ReasonRequest(BaseModel):
    reason: str | None = None
    expected_status: InstanceStatus | None = None


class BulkRequest(BaseModel):
    instance_ids: list[int] = Field(min_length=1)
    target: InstanceStatus
    reason: str | None = None
    status_filter: list[InstanceStatus] | None = None
    force: bool = False
    confirm: str | None = None


# ---------------------------------------------------------------------------
# Attention board
# ---------------------------------------------------------------------------
@router.get("/attention")
async def get_attention_board(
    flagged_only: bool = Query(default=False),
    engine: Engine = Depends(get_engine),
    config: QuestboardConfig = Depends(get_config),
):
    entries = await run_db(
        attention_service.attention_board,
        engine,
        tuning=config.lifecycle,
        flagged_only=flagged_only,
    )
    return [entry.to_dict() for entry in entries]


@router.post("/bulk")
def bulk_transition(
    body: BulkRequest,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    if body.target == InstanceStatus.CANCELLED:
        require_phrase(body.confirm, CONFIRM_BULK_CANCEL)
    report = bulk_service.bulk_transition(
        engine,
        body.instance_ids,
        body.target,
        actor_id=actor_id,
        reason=body.reason,
        status_filter=body.status_filter,
        force=body.force,
    )
    return report.to_dict()


# ---------------------------------------------------------------------------
# Single instance
# ---------------------------------------------------------------------------
@router.get("/{instance_id}")
def get_instance(
    instance_id: int,
    engine: Engine = Depends(get_engine),
    config: QuestboardConfig = Depends(get_config),
):
    entry = attention_service.flag_for_instance(engine, instance_id, tuning=config.lifecycle)
    instance = instance_service.get_instance(engine, instance_id)
    if entry is None or instance is None:
        raise HTTPException(404, f"Instance not found: {instance_id}")
    return {**row_to_dict(instance), "attention": entry.to_dict()}


@router.get("/{instance_id}/audit")
def get_instance_audit(instance_id: int, engine: Engine = Depends(get_engine)):
    return [row_to_dict(e) for e in audit_trail(engine, instance_service.TABLE, instance_id)]


@router.post("/{instance_id}/transition")
def transition_instance(
    instance_id: int,
    body: TransitionRequest,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    result = instance_service.transition(
        engine, instance_id, body.target,
        actor_id=actor_id, reason=body.reason, expected_status=body.expected_status,
    )
    return row_to_dict(unwrap(result))


@router.post("/{instance_id}/pause")
def pause_instance(
    instance_id: int,
    body: ReasonRequest,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    result = instance_service.pause(
        engine, instance_id, actor_id=actor_id, reason=body.reason,
        expected_status=body.expected_status,
    )
    return row_to_dict(unwrap(result))


@router.post("/{instance_id}/resume")
def resume_instance(
    instance_id: int, engine: Engine = Depends(get_engine), actor_id: int = Depends(get_actor_id)
):
    return row_to_dict(unwrap(instance_service.resume(engine, instance_id, actor_id=actor_id)))


@router.post("/{instance_id}/cancel")
def cancel_instance(
    instance_id: int,
    body: ReasonRequest,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    result = instance_service.cancel(
        engine, instance_id, actor_id=actor_id, reason=body.reason,
        expected_status=body.expected_status,
    )
    return row_to_dict(unwrap(result))
