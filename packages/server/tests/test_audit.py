"""
Tests for the audit sinks.
"""

from __future__ import annotations

import uuid

import pytest
from sqlmodel import select
from structlog.testing import capture_logs

from solacedesk.core.audit import AUDIT_ACTIONS, DatabaseAuditSink, NullAuditSink, record_safely
from solacedesk.core.config import get_settings
from solacedesk.models.audit_log import AuditLog

from conftest import FailingAuditSink


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


async def audit_rows(session_factory) -> list[AuditLog]:
    async with session_factory() as session:
        result = await session.execute(select(AuditLog))
        return list(result.scalars().all())


class TestDatabaseAuditSink:
    @pytest.mark.asyncio
    async def test_writes_row(self, session_factory, fresh_settings):
        sink = DatabaseAuditSink(session_factory)
        actor = uuid.uuid4()

        await sink.record("ticket.assign", actor, "room", "r1", {"target_id": "u2"})

        rows = await audit_rows(session_factory)
        assert len(rows) == 1
        assert rows[0].action == "ticket.assign"
        assert rows[0].actor_id == actor
        assert rows[0].target_id == "r1"
        assert rows[0].payload == {"target_id": "u2"}

    @pytest.mark.asyncio
    async def test_disabled_by_settings(self, session_factory, fresh_settings, monkeypatch):
        monkeypatch.setenv("SD_AUDIT_ENABLED", "false")
        get_settings.cache_clear()
        sink = DatabaseAuditSink(session_factory)

        await sink.record("member.join", uuid.uuid4(), "room", "r1")

        assert await audit_rows(session_factory) == []

    @pytest.mark.asyncio
    async def test_unknown_action_warns_but_writes(self, session_factory, fresh_settings):
        sink = DatabaseAuditSink(session_factory)
        with capture_logs() as logs:
            await sink.record("room.archive", None, "room", "r1")
        assert logs[0]["event"] == "audit.unknown_action"
        assert len(await audit_rows(session_factory)) == 1


class TestRecordSafely:
    @pytest.mark.asyncio
    async def test_failure_is_logged_not_raised(self):
        with capture_logs() as logs:
            await record_safely(FailingAuditSink(), "member.join", uuid.uuid4(), "room", "r1")
        assert logs[0]["event"] == "audit.write_failed"
        assert logs[0]["log_level"] == "error"

    @pytest.mark.asyncio
    async def test_null_sink(self):
        await record_safely(NullAuditSink(), "member.join", None, "room", "r1")


def test_known_actions():
    assert {"ticket.assign", "ownership.transfer", "member.join", "room.delete"} <= AUDIT_ACTIONS
