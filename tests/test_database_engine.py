"""
tests/test_database_engine.py — Engine & Async Helper Tests
============================================================
"""

from __future__ import annotations

import asyncio

import pytest
from sqlalchemy import create_engine, inspect

from questboard.database.engine import create_db_engine, init_db, run_db


class TestCreateEngine:
    def test_requires_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        with pytest.raises(RuntimeError, match="DATABASE_URL is not set"):
            create_db_engine()


class TestInitDb:
    def test_creates_lifecycle_tables(self):
        engine = create_engine("sqlite://")
        init_db(engine)
        tables = set(inspect(engine).get_table_names())
        assert {"quests", "quest_instances", "quest_squads", "squad_members"} <= tables

    def test_is_idempotent(self, db_engine):
        init_db(db_engine)
        assert "quest_signups" in inspect(db_engine).get_table_names()


class TestRunDb:
    def test_runs_sync_function_in_thread(self, db_engine, factory):
        from questboard.services.quest_service import get_quest

        qid = factory.quest(title="Night Market")
        quest = asyncio.run(run_db(get_quest, db_engine, qid))
        assert quest.title == "Night Market"
