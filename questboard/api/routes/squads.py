"""
questboard.api.routes.squads — Squad warm-up & governance endpoints
====================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import Engine

from questboard.api.deps import (
    get_actor_id,
    get_config,
    get_current_admin,
    get_engine,
    unwrap,
)
from questboard.config import QuestboardConfig
from questboard.database.models import Squad, SquadStatus
from questboard.services import squad_service
from questboard.services.audit import row_to_dict
from questboard.services.squad_service import SquadSettings

router = APIRouter(
    prefix="/admin/squads", tags=["squads"], dependencies=[Depends(get_current_admin)]
)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class SquadCreate(BaseModel):
    instance_id: int
    name: str
    member_ids: list[int] = Field(min_length=1)
    leader_id: int | None = None


class SquadTransition(BaseModel):
    target: SquadStatus
    expected_status: SquadStatus | None = None


class ApproveRequest(BaseModel):
    notes: str | None = None


class UserRef(BaseModel):
    user_id: int


class RenameRequest(BaseModel):
    name: str


class ReasonRequest(BaseModel):
    reason: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _squad_dict(squad: Squad) -> dict:
    data = row_to_dict(squad)
    data["members"] = [row_to_dict(m) for m in squad.members]
    return data


# ---------------------------------------------------------------------------
# Formation & status
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_squad(
    body: SquadCreate,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    result = squad_service.create_squad(
        engine, body.instance_id,
        actor_id=actor_id, name=body.name, member_ids=body.member_ids, leader_id=body.leader_id,
    )
    return _squad_dict(unwrap(result))


@router.get("/{squad_id}")
def get_squad(
    squad_id: int,
    engine: Engine = Depends(get_engine),
    config: QuestboardConfig = Depends(get_config),
):
    squad = squad_service.get_squad(engine, squad_id)
    if squad is None:
        raise HTTPException(404, f"Squad not found: {squad_id}")
    health, summary = squad_service.health(engine, squad_id, config.lifecycle)
    return {
        **_squad_dict(squad),
        "health": health.value,
        "readiness": {"ready": summary.ready, "total": summary.total, "percent": summary.percent},
    }


@router.post("/{squad_id}/transition")
def transition_squad(
    squad_id: int,
    body: SquadTransition,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    result = squad_service.transition(
        engine, squad_id, body.target, actor_id=actor_id, expected_status=body.expected_status
    )
    return _squad_dict(unwrap(result))


@router.post("/{squad_id}/approve")
def approve_squad(
    squad_id: int,
    body: ApproveRequest,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    return _squad_dict(unwrap(squad_service.approve_squad(
        engine, squad_id, actor_id=actor_id, notes=body.notes
    )))


@router.post("/{squad_id}/readiness")
def confirm_readiness(squad_id: int, body: UserRef, engine: Engine = Depends(get_engine)):
    return _squad_dict(unwrap(squad_service.confirm_readiness(engine, squad_id, body.user_id)))


# ---------------------------------------------------------------------------
# Governance
# ---------------------------------------------------------------------------
@router.post("/{squad_id}/leader")
def transfer_leadership(
    squad_id: int,
    body: UserRef,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    return _squad_dict(unwrap(squad_service.transfer_leadership(
        engine, squad_id, body.user_id, actor_id=actor_id
    )))


@router.post("/{squad_id}/archive")
def archive_squad(
    squad_id: int,
    body: ReasonRequest,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    return _squad_dict(unwrap(squad_service.archive(
        engine, squad_id, actor_id=actor_id, reason=body.reason
    )))


@router.post("/{squad_id}/reactivate")
def reactivate_squad(
    squad_id: int, engine: Engine = Depends(get_engine), actor_id: int = Depends(get_actor_id)
):
    return _squad_dict(unwrap(squad_service.reactivate(engine, squad_id, actor_id=actor_id)))


@router.post("/{squad_id}/rename")
def rename_squad(
    squad_id: int,
    body: RenameRequest,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    return _squad_dict(unwrap(squad_service.rename(engine, squad_id, body.name, actor_id=actor_id)))


@router.patch("/{squad_id}/settings")
def update_settings(
    squad_id: int,
    body: SquadSettings,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    return _squad_dict(unwrap(squad_service.update_settings(
        engine, squad_id, body, actor_id=actor_id
    )))


@router.post("/{squad_id}/invite-code")
def regenerate_invite_code(
    squad_id: int, engine: Engine = Depends(get_engine), actor_id: int = Depends(get_actor_id)
):
    return _squad_dict(unwrap(squad_service.regenerate_invite_code(
        engine, squad_id, actor_id=actor_id
    )))


@router.post("/{squad_id}/members/{user_id}/remove")
def remove_member(
    squad_id: int,
    user_id: int,
    body: ReasonRequest,
    engine: Engine = Depends(get_engine),
    actor_id: int = Depends(get_actor_id),
):
    return _squad_dict(unwrap(squad_service.remove_member(
        engine, squad_id, user_id, actor_id=actor_id, reason=body.reason
    )))
