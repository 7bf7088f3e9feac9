"""
tests/test_state_graph.py — Transition Table Tests
===================================================
"""

from __future__ import annotations

import itertools

import pytest

from questboard.database.models import InstanceStatus, QuestStatus, ReviewStatus, SquadStatus
from questboard.engine.state_graph import (
    INSTANCE_GRAPH,
    QUEST_GRAPH,
    REVIEW_GRAPH,
    SQUAD_GRAPH,
    Edge,
    StateGraph,
)


class TestGraphConstruction:
    def test_duplicate_edge_rejected(self):
        with pytest.raises(ValueError, match="duplicate edge"):
            StateGraph(
                "dup",
                SquadStatus,
                [Edge(SquadStatus.DRAFT, SquadStatus.CONFIRMED)] * 2,
            )

    @pytest.mark.parametrize("graph", [QUEST_GRAPH, REVIEW_GRAPH, INSTANCE_GRAPH, SQUAD_GRAPH])
    def test_every_state_has_an_entry(self, graph):
        for state in graph.states:
            assert isinstance(graph.targets(state), frozenset)

    def test_unknown_state_is_never_legal(self):
        assert not INSTANCE_GRAPH.can_transition("recruiting", "exploded")
        assert not INSTANCE_GRAPH.can_transition("nonsense", "paused")
        assert INSTANCE_GRAPH.targets("nonsense") == frozenset()

    def test_accepts_plain_strings(self):
        assert INSTANCE_GRAPH.can_transition("recruiting", "locked")


class TestQuestGraph:
    @pytest.mark.parametrize("source", [QuestStatus.OPEN, QuestStatus.CLOSED])
    def test_pause_only_from_open_or_closed(self, source):
        assert QUEST_GRAPH.can_transition(source, QuestStatus.PAUSED)

    def test_pause_sources_exact(self):
        assert QUEST_GRAPH.sources(QuestStatus.PAUSED) == {QuestStatus.OPEN, QuestStatus.CLOSED}

    def test_resume_only_to_open(self):
        assert QUEST_GRAPH.targets(QuestStatus.PAUSED) == {
            QuestStatus.OPEN, QuestStatus.CANCELLED, QuestStatus.REVOKED,
        }

    @pytest.mark.parametrize("terminal", [
        QuestStatus.CANCELLED, QuestStatus.REVOKED, QuestStatus.COMPLETED, QuestStatus.DELETED,
    ])
    def test_revoke_not_from_closed_out_states(self, terminal):
        assert not QUEST_GRAPH.can_transition(terminal, QuestStatus.REVOKED)

    def test_cancel_requires_reason(self):
        for source in QUEST_GRAPH.sources(QuestStatus.CANCELLED):
            assert QUEST_GRAPH.edge(source, QuestStatus.CANCELLED).requires_reason

    def test_revoke_flags(self):
        edge = QUEST_GRAPH.edge(QuestStatus.OPEN, QuestStatus.REVOKED)
        assert edge.requires_reason
        assert edge.requires_confirmation_phrase
        assert edge.notify_actor and edge.notify_subjects

    def test_delete_only_after_cancel_or_revoke(self):
        assert QUEST_GRAPH.sources(QuestStatus.DELETED) == {
            QuestStatus.CANCELLED, QuestStatus.REVOKED,
        }
        assert QUEST_GRAPH.is_terminal(QuestStatus.DELETED)
        assert QUEST_GRAPH.is_terminal(QuestStatus.COMPLETED)


class TestReviewGraph:
    def test_decisions_only_from_pending(self):
        for target in (ReviewStatus.APPROVED, ReviewStatus.REJECTED, ReviewStatus.CHANGES_REQUESTED):
            assert REVIEW_GRAPH.sources(target) == {ReviewStatus.PENDING_REVIEW}

    def test_resubmit_after_changes_requested(self):
        assert REVIEW_GRAPH.can_transition(
            ReviewStatus.CHANGES_REQUESTED, ReviewStatus.PENDING_REVIEW
        )
        assert not REVIEW_GRAPH.can_transition(ReviewStatus.REJECTED, ReviewStatus.PENDING_REVIEW)


class TestInstanceGraph:
    FORWARD = [
        InstanceStatus.DRAFT,
        InstanceStatus.RECRUITING,
        InstanceStatus.LOCKED,
        InstanceStatus.LIVE,
        InstanceStatus.COMPLETED,
    ]

    def test_forward_path(self):
        for a, b in itertools.pairwise(self.FORWARD):
            assert INSTANCE_GRAPH.can_transition(a, b)

    def test_no_backwards_moves(self):
        for a, b in itertools.pairwise(self.FORWARD):
            assert not INSTANCE_GRAPH.can_transition(b, a)

    def test_draft_cannot_pause(self):
        assert not INSTANCE_GRAPH.can_transition(InstanceStatus.DRAFT, InstanceStatus.PAUSED)

    def test_pause_and_cancel_require_reason(self):
        assert INSTANCE_GRAPH.edge(InstanceStatus.LIVE, InstanceStatus.PAUSED).requires_reason
        assert INSTANCE_GRAPH.edge(InstanceStatus.PAUSED, InstanceStatus.CANCELLED).requires_reason

    def test_archived_is_terminal(self):
        assert INSTANCE_GRAPH.is_terminal(InstanceStatus.ARCHIVED)
        assert INSTANCE_GRAPH.sources(InstanceStatus.ARCHIVED) == {
            InstanceStatus.CANCELLED, InstanceStatus.COMPLETED,
        }


class TestSquadGraph:
    def test_linear(self):
        order = list(SquadStatus)
        for a, b in itertools.product(order, order):
            expected = order.index(b) == order.index(a) + 1
            assert SQUAD_GRAPH.can_transition(a, b) is expected
