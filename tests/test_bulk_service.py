"""
tests/test_bulk_service.py — Bulk Transition Tests
===================================================
"""

from __future__ import annotations

from questboard.constants import KIND_INSTANCE_CANCELLED, KIND_INSTANCE_PAUSED
from questboard.database.models import AuditAction, InstanceStatus, QuestInstance
from questboard.engine.results import FailureKind
from questboard.services import instance_service
from questboard.services.audit import audit_trail
from questboard.services.bulk_service import bulk_transition


def _status(factory, iid):
    return factory.get(QuestInstance, iid).status


def _actions(engine, iid):
    return [e.action for e in audit_trail(engine, "quest_instances", iid)]


class TestPerItemValidation:
    def test_mixed_batch(self, db_engine, factory, notifier):
        recruiting = factory.instance()
        locked = factory.instance(status=InstanceStatus.LOCKED)
        draft = factory.instance(status=InstanceStatus.DRAFT)
        factory.signups(recruiting, [10, 11])

        report = bulk_transition(
            db_engine, [recruiting, locked, draft, 999, recruiting], InstanceStatus.PAUSED,
            actor_id=1, reason="Storm front", notifier=notifier,
        )

        assert report.succeeded == [recruiting, locked]
        assert [(r.instance_id, r.kind) for r in report.rejected] == [
            (draft, FailureKind.INVALID_TRANSITION),
            (999, FailureKind.NOT_FOUND),
        ]
        assert report.total == 4
        assert report.partial

        assert _status(factory, recruiting) == InstanceStatus.PAUSED
        assert _status(factory, locked) == InstanceStatus.PAUSED
        assert _status(factory, draft) == InstanceStatus.DRAFT
        assert _actions(db_engine, recruiting) == [AuditAction.BULK_STATUS]
        assert _actions(db_engine, draft) == []

        assert notifier.recipients(KIND_INSTANCE_PAUSED) == [10, 11]

    def test_missing_reason_rejects_every_item(self, db_engine, factory):
        ids = [factory.instance(), factory.instance()]
        report = bulk_transition(db_engine, ids, InstanceStatus.CANCELLED, actor_id=1, reason=" ")
        assert report.succeeded == []
        assert {r.kind for r in report.rejected} == {FailureKind.MISSING_REASON}
        assert not report.partial
        assert all(_status(factory, i) == InstanceStatus.RECRUITING for i in ids)

    def test_status_filter_skips(self, db_engine, factory):
        recruiting = factory.instance()
        locked = factory.instance(status=InstanceStatus.LOCKED)
        report = bulk_transition(
            db_engine, [recruiting, locked], InstanceStatus.LOCKED,
            actor_id=1, status_filter=[InstanceStatus.RECRUITING],
        )
        assert report.succeeded == [recruiting]
        assert report.skipped == [locked]
        assert report.rejected == []

    def test_resume_must_match_previous_status(self, db_engine, factory):
        was_locked = factory.instance(status=InstanceStatus.LOCKED)
        was_live = factory.instance(status=InstanceStatus.LIVE)
        for iid in (was_locked, was_live):
            instance_service.pause(db_engine, iid, actor_id=1, reason="Break")

        report = bulk_transition(db_engine, [was_locked, was_live], InstanceStatus.LOCKED, actor_id=1)

        assert report.succeeded == [was_locked]
        assert report.rejected[0].instance_id == was_live
        assert _status(factory, was_live) == InstanceStatus.PAUSED

    def test_bulk_cancel_notifies_each_instance(self, db_engine, factory, notifier):
        a = factory.instance()
        b = factory.instance()
        factory.signups(a, [10])
        factory.signups(b, [20, 21])
        report = bulk_transition(
            db_engine, [a, b], InstanceStatus.CANCELLED,
            actor_id=1, reason="Venue closed", notifier=notifier,
        )
        assert report.succeeded == [a, b]
        assert notifier.kinds() == [KIND_INSTANCE_CANCELLED] * 2
        assert [ids for ids, _, _ in notifier.sent] == [[10], [20, 21]]
        assert factory.get(QuestInstance, a).cancelled_reason == "Venue closed"


class TestForce:
    def test_force_skips_graph_and_flags_audit(self, db_engine, factory):
        draft = factory.instance(status=InstanceStatus.DRAFT)
        report = bulk_transition(
            db_engine, [draft], InstanceStatus.LIVE,
            actor_id=1, reason="Data repair after import", force=True,
        )
        assert report.forced
        assert report.succeeded == [draft]
        assert _status(factory, draft) == InstanceStatus.LIVE

        (entry,) = audit_trail(db_engine, "quest_instances", draft)
        assert entry.action == AuditAction.BULK_FORCE_STATUS
        assert entry.security_sensitive is True
        assert entry.reason == "Data repair after import"

    def test_force_still_requires_reason(self, db_engine, factory):
        draft = factory.instance(status=InstanceStatus.DRAFT)
        report = bulk_transition(db_engine, [draft], InstanceStatus.LIVE, actor_id=1, force=True)
        assert report.rejected[0].kind == FailureKind.MISSING_REASON
        assert _status(factory, draft) == InstanceStatus.DRAFT

    def test_forced_pause_needs_a_pausable_status(self, db_engine, factory):
        draft = factory.instance(status=InstanceStatus.DRAFT)
        paused = factory.instance(status=InstanceStatus.LOCKED)
        instance_service.pause(db_engine, paused, actor_id=1, reason="Break")

        report = bulk_transition(
            db_engine, [draft, paused], InstanceStatus.PAUSED,
            actor_id=1, reason="Freeze everything", force=True,
        )

        assert report.succeeded == []
        assert {r.kind for r in report.rejected} == {FailureKind.INVALID_TRANSITION}
        assert _status(factory, draft) == InstanceStatus.DRAFT
        assert factory.get(QuestInstance, paused).previous_status == InstanceStatus.LOCKED

    def test_forced_pause_can_be_resumed(self, db_engine, factory):
        live = factory.instance(status=InstanceStatus.LIVE)
        report = bulk_transition(
            db_engine, [live], InstanceStatus.PAUSED,
            actor_id=1, reason="Freeze everything", force=True,
        )
        assert report.succeeded == [live]

        result = instance_service.resume(db_engine, live, actor_id=1)
        assert result.ok
        assert result.value.status == InstanceStatus.LIVE

    def test_unknown_target_rejected_even_when_forced(self, db_engine, factory):
        iid = factory.instance()
        report = bulk_transition(
            db_engine, [iid], "exploded", actor_id=1, reason="oops", force=True
        )
        assert report.rejected[0].kind == FailureKind.INVALID_TRANSITION


class TestReport:
    def test_to_dict(self, db_engine, factory):
        iid = factory.instance()
        report = bulk_transition(db_engine, [iid, 404], InstanceStatus.LOCKED, actor_id=1)
        assert report.to_dict() == {
            "target": "locked",
            "forced": False,
            "succeeded": [iid],
            "rejected": [
                {"instance_id": 404, "kind": "not_found", "message": "Instance 404 not found"},
            ],
            "skipped": [],
        }
