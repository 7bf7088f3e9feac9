"""
tests/test_api_routes.py — FastAPI Route Integration Tests
============================================================
Admin API routes exercised through the FastAPI TestClient against the
in-memory database.

These tests verify:
- Auth guards on admin endpoints
- Lifecycle failures mapped to HTTP status codes
- Confirmation phrases on destructive actions
- Health endpoint availability
"""

from __future__ import annotations

from datetime import timedelta

import jwt
import pytest

from questboard.api.deps import JWT_ALGORITHM, JWT_SECRET
from questboard.database.models import InstanceStatus, QuestStatus, ReviewStatus


@pytest.fixture
def non_admin_token():
    return jwt.encode(
        {"sub": "67890", "username": "RegularUser", "is_admin": False},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ===========================================================================
# Health endpoint
# ===========================================================================
class TestHealthEndpoint:
    def test_health_returns_ok(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


# ===========================================================================
# Auth guards: admin endpoints reject unauthenticated/non-admin callers
# ===========================================================================
class TestAdminAuthGuards:
    ADMIN_GET_ENDPOINTS = [
        "/api/admin/quests",
        "/api/admin/quests/1",
        "/api/admin/instances/attention",
        "/api/admin/instances/1",
        "/api/admin/squads/1",
    ]

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_no_token_returns_401(self, client, endpoint):
        assert client.get(endpoint).status_code == 401

    @pytest.mark.parametrize("endpoint", ADMIN_GET_ENDPOINTS)
    def test_non_admin_returns_403(self, client, non_admin_token, endpoint):
        assert client.get(endpoint, headers=_auth(non_admin_token)).status_code == 403

    def test_invalid_token_returns_401(self, client):
        resp = client.get("/api/admin/quests", headers=_auth("not-a-real-token"))
        assert resp.status_code == 401

    def test_token_without_numeric_subject_cannot_act(self, client, factory):
        from conftest import make_admin_token

        qid = factory.quest()
        resp = client.post(
            f"/api/admin/quests/{qid}/review",
            json={"action": "approve"},
            headers=_auth(make_admin_token(sub="not-a-number")),
        )
        assert resp.status_code == 401


# ===========================================================================
# Quest review & publication
# ===========================================================================
class TestQuestRoutes:
    def test_approve_and_publish(self, client, admin_token, factory):
        qid = factory.quest()
        resp = client.post(
            f"/api/admin/quests/{qid}/review",
            json={"action": "approve", "admin_notes": "Great route", "publish": True},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["review_status"] == "approved"
        assert data["status"] == "open"

        audit = client.get(f"/api/admin/quests/{qid}/audit", headers=_auth(admin_token)).json()
        assert [(row["action"], row["actor_id"]) for row in audit] == [("REVIEW", 99999)]

    def test_publish_only_with_approve(self, client, admin_token, factory):
        qid = factory.quest()
        resp = client.post(
            f"/api/admin/quests/{qid}/review",
            json={"action": "reject", "publish": True},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 422

    def test_invalid_transition_is_409(self, client, admin_token, factory):
        qid = factory.quest(review_status=ReviewStatus.REJECTED)
        resp = client.post(
            f"/api/admin/quests/{qid}/review", json={"action": "approve"}, headers=_auth(admin_token)
        )
        assert resp.status_code == 409
        detail = resp.json()["detail"]
        assert detail["kind"] == "invalid_transition"
        assert detail["current"] == "rejected"

    def test_missing_quest_is_404(self, client, admin_token):
        resp = client.post(
            "/api/admin/quests/404/review", json={"action": "approve"}, headers=_auth(admin_token)
        )
        assert resp.status_code == 404
        assert resp.json()["detail"]["kind"] == "not_found"

    def test_list_filters_by_review_status(self, client, admin_token, factory):
        pending = factory.quest()
        factory.quest(review_status=ReviewStatus.APPROVED, status=QuestStatus.OPEN)
        resp = client.get(
            "/api/admin/quests", params={"review_status": "pending_review"}, headers=_auth(admin_token)
        )
        assert [q["id"] for q in resp.json()] == [pending]

    def test_cancel_without_reason_is_422(self, client, admin_token, factory):
        qid = factory.quest(review_status=ReviewStatus.APPROVED, status=QuestStatus.OPEN)
        resp = client.post(
            f"/api/admin/quests/{qid}/status", json={"action": "cancel"}, headers=_auth(admin_token)
        )
        assert resp.status_code == 422
        assert resp.json()["detail"]["kind"] == "missing_reason"

    def test_stale_expected_status_is_409(self, client, admin_token, factory):
        qid = factory.quest(review_status=ReviewStatus.APPROVED, status=QuestStatus.OPEN)
        resp = client.post(
            f"/api/admin/quests/{qid}/status",
            json={"action": "close", "expected_status": "paused"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 409
        assert resp.json()["detail"]["kind"] == "concurrent_modification"

    def test_revoke_requires_phrase(self, client, admin_token, factory):
        qid = factory.quest(review_status=ReviewStatus.APPROVED, status=QuestStatus.OPEN)
        url = f"/api/admin/quests/{qid}/revoke"

        resp = client.post(url, json={"reason": "Unsafe", "confirm": "revoke"}, headers=_auth(admin_token))
        assert resp.status_code == 422
        assert "REVOKE" in resp.json()["detail"]

        resp = client.post(url, json={"reason": "Unsafe", "confirm": "REVOKE"}, headers=_auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["status"] == "revoked"
        audit = client.get(f"/api/admin/quests/{qid}/audit", headers=_auth(admin_token)).json()
        assert audit[0]["security_sensitive"] is True

    def test_delete_with_active_signups_is_409(self, client, admin_token, factory):
        qid = factory.quest(review_status=ReviewStatus.APPROVED, status=QuestStatus.CANCELLED)
        factory.signups(factory.instance(qid), [10])
        resp = client.post(
            f"/api/admin/quests/{qid}/delete",
            json={"reason": "Duplicate", "confirm": "DELETE"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 409
        assert resp.json()["detail"]["active_signups"] == 1

    def test_schedule_instance(self, client, admin_token, factory):
        qid = factory.quest(review_status=ReviewStatus.APPROVED, status=QuestStatus.OPEN)
        resp = client.post(
            f"/api/admin/quests/{qid}/instances",
            json={"scheduled_date": "2026-06-01", "start_time": "18:30:00", "capacity": 12},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 201
        assert resp.json()["status"] == "draft"
        assert resp.json()["capacity"] == 12


# ===========================================================================
# Instances
# ===========================================================================
class TestInstanceRoutes:
    def test_pause_and_resume(self, client, admin_token, factory):
        iid = factory.instance(status=InstanceStatus.LOCKED)
        resp = client.post(
            f"/api/admin/instances/{iid}/pause", json={"reason": "Storm"}, headers=_auth(admin_token)
        )
        assert resp.status_code == 200
        assert resp.json()["previous_status"] == "locked"

        resp = client.post(f"/api/admin/instances/{iid}/resume", headers=_auth(admin_token))
        assert resp.json()["status"] == "locked"

    def test_pause_without_reason_is_422(self, client, admin_token, factory):
        iid = factory.instance()
        resp = client.post(f"/api/admin/instances/{iid}/pause", json={}, headers=_auth(admin_token))
        assert resp.status_code == 422
        assert resp.json()["detail"]["kind"] == "missing_reason"

    def test_get_instance_includes_attention(self, client, admin_token, factory):
        iid = factory.instance(starts_in=timedelta(days=3650), current_signup_count=6)
        resp = client.get(f"/api/admin/instances/{iid}", headers=_auth(admin_token))
        assert resp.status_code == 200
        assert resp.json()["attention"]["flag"]["type"] == "ready_for_squad"

    def test_attention_board(self, client, admin_token, factory):
        flagged = factory.instance(starts_in=timedelta(days=3650), current_signup_count=6)
        factory.instance(status=InstanceStatus.DRAFT, starts_in=timedelta(days=3650))
        resp = client.get(
            "/api/admin/instances/attention", params={"flagged_only": "true"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert [e["instance_id"] for e in resp.json()] == [flagged]

    def test_bulk_cancel_requires_phrase(self, client, admin_token, factory):
        ids = [factory.instance(), factory.instance()]
        body = {"instance_ids": ids, "target": "cancelled", "reason": "Venue closed"}

        resp = client.post("/api/admin/instances/bulk", json=body, headers=_auth(admin_token))
        assert resp.status_code == 422

        resp = client.post(
            "/api/admin/instances/bulk", json={**body, "confirm": "CANCEL"}, headers=_auth(admin_token)
        )
        assert resp.status_code == 200
        assert resp.json()["succeeded"] == ids

    def test_bulk_reports_partial_results(self, client, admin_token, factory):
        ok = factory.instance()
        draft = factory.instance(status=InstanceStatus.DRAFT)
        resp = client.post(
            "/api/admin/instances/bulk",
            json={"instance_ids": [ok, draft], "target": "locked"},
            headers=_auth(admin_token),
        )
        report = resp.json()
        assert report["succeeded"] == [ok]
        assert report["rejected"][0]["kind"] == "invalid_transition"


# ===========================================================================
# Squads
# ===========================================================================
class TestSquadRoutes:
    def test_create_and_read(self, client, admin_token, factory):
        iid = factory.instance()
        factory.signups(iid, [4, 5, 6])
        resp = client.post(
            "/api/admin/squads",
            json={"instance_id": iid, "name": "Night Owls", "member_ids": [4, 5, 6]},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 201
        sid = resp.json()["id"]

        resp = client.get(f"/api/admin/squads/{sid}", headers=_auth(admin_token))
        data = resp.json()
        assert data["health"] == "at_risk"
        assert data["readiness"] == {"ready": 0, "total": 3, "percent": 0.0}
        assert [m["role"] for m in data["members"]] == ["leader", "member", "member"]

    def test_create_on_cancelled_instance_is_409(self, client, admin_token, factory):
        iid = factory.instance(status=InstanceStatus.CANCELLED)
        factory.signups(iid, [4])
        resp = client.post(
            "/api/admin/squads",
            json={"instance_id": iid, "name": "Night Owls", "member_ids": [4]},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 409
        assert resp.json()["detail"]["kind"] == "invalid_transition"

    def test_removing_last_leader_is_409(self, client, admin_token, factory):
        sid = factory.squad(factory.instance())
        resp = client.post(
            f"/api/admin/squads/{sid}/members/1/remove", json={}, headers=_auth(admin_token)
        )
        assert resp.status_code == 409
        assert resp.json()["detail"]["kind"] == "last_leader"

    def test_settings_validation(self, client, admin_token, factory):
        sid = factory.squad(factory.instance())
        resp = client.patch(
            f"/api/admin/squads/{sid}/settings",
            json={"theme_tags": ["knitting"]},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 422

        resp = client.patch(
            f"/api/admin/squads/{sid}/settings",
            json={"theme_tags": ["Music"], "rules": "Be on time"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 200
        assert resp.json()["theme_tags"] == ["music"]

    def test_archive_then_transition_is_409(self, client, admin_token, factory):
        sid = factory.squad(factory.instance())
        assert client.post(
            f"/api/admin/squads/{sid}/archive", json={"reason": "Quiet"}, headers=_auth(admin_token)
        ).status_code == 200
        resp = client.post(
            f"/api/admin/squads/{sid}/transition", json={"target": "confirmed"},
            headers=_auth(admin_token),
        )
        assert resp.status_code == 409
