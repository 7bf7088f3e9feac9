"""
tests/test_attention_service.py — Attention Board Tests
========================================================
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from questboard.database.models import InstanceStatus, SquadStatus
from questboard.engine.attention import FlagType
from questboard.services import attention_service

NOW = datetime(2026, 3, 14, 12, 0, tzinfo=UTC)


class TestFlagForInstance:
    def test_archived_squads_are_ignored(self, db_engine, factory):
        iid = factory.instance(current_signup_count=6)
        factory.squad(
            iid, status=SquadStatus.WARMING_UP,
            warming_up_since=NOW - timedelta(hours=2), archived_at=NOW,
        )
        entry = attention_service.flag_for_instance(db_engine, iid, now=NOW)
        assert entry.squad_count == 0
        assert entry.flag.type == FlagType.READY_FOR_SQUAD

    def test_stalled_squad(self, db_engine, factory):
        iid = factory.instance()
        factory.squad(iid, status=SquadStatus.WARMING_UP, warming_up_since=NOW - timedelta(hours=30))
        entry = attention_service.flag_for_instance(db_engine, iid, now=NOW)
        assert entry.flag.type == FlagType.SQUAD_WARMUP_STALLED

    def test_warming_up_counts_removed_members_out(self, db_engine, factory):
        iid = factory.instance()
        factory.squad(
            iid, members=[1, 2, 3], ready=[1], status=SquadStatus.WARMING_UP,
            warming_up_since=NOW - timedelta(hours=1),
        )
        entry = attention_service.flag_for_instance(db_engine, iid, now=NOW)
        assert entry.flag.message == "1 squad warming up (1/3 members ready)"

    def test_missing_instance(self, db_engine):
        assert attention_service.flag_for_instance(db_engine, 404, now=NOW) is None


class TestBoard:
    def test_board_lists_actionable_instances_soonest_first(self, db_engine, factory):
        later = factory.instance(starts_in=timedelta(days=5), current_signup_count=6)
        sooner = factory.instance(starts_in=timedelta(minutes=90), current_signup_count=1)
        factory.instance(status=InstanceStatus.CANCELLED)
        quiet = factory.instance(status=InstanceStatus.DRAFT, starts_in=timedelta(days=1))

        board = attention_service.attention_board(db_engine, now=NOW)

        assert [e.instance_id for e in board] == [sooner, quiet, later]
        flags = {e.instance_id: e.flag.type if e.flag else None for e in board}
        assert flags == {
            sooner: FlagType.UNDERFILLED,
            quiet: None,
            later: FlagType.READY_FOR_SQUAD,
        }

    def test_flagged_only(self, db_engine, factory):
        factory.instance(status=InstanceStatus.DRAFT)
        flagged = factory.instance(current_signup_count=8)
        board = attention_service.attention_board(db_engine, now=NOW, flagged_only=True)
        assert [e.instance_id for e in board] == [flagged]
        assert board[0].to_dict()["flag"]["type"] == "ready_for_squad"

    def test_pending_review_beats_capacity(self, db_engine, factory):
        iid = factory.instance(status=InstanceStatus.LOCKED, current_signup_count=6)
        factory.squad(iid, status=SquadStatus.READY_FOR_REVIEW)
        factory.squad(iid, members=[4, 5], status=SquadStatus.APPROVED)
        (entry,) = attention_service.attention_board(db_engine, now=NOW)
        assert entry.squad_count == 2
        assert entry.flag.type == FlagType.SQUAD_PENDING_REVIEW
