"""Tests for the risk state, clinician action and audit MCP tools."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastmcp import Client

from tipscompass.core.server.app import create_app


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _payload(result) -> dict:
    return json.loads(result.content[0].text)


@pytest.fixture
def client(compass_repository, audit_logger):
    mcp = create_app(repository_override=compass_repository, audit_logger_override=audit_logger)
    return Client(mcp)


class TestRiskTools:
    def test_get_risk_state(self, client, compass_repository):
        compass_repository.merge_risk_state("p1", {
            "level": "yellow",
            "reasons": ["Possible hepatic encephalopathy"],
            "last_checkin_date": "2026-02-01",
        })

        async def _check():
            async with client:
                data = _payload(await client.call_tool("get_risk_state", {"patient_id": "p1"}))
                assert data["status"] == "ok"
                assert data["risk_state"]["level"] == "yellow"
                assert data["risk_state"]["lastCheckInDate"] == "2026-02-01"

                missing = _payload(await client.call_tool("get_risk_state", {"patient_id": "p2"}))
                assert missing["status"] == "not_found"
        _run(_check())

    def test_list_with_level_filter(self, client, compass_repository):
        compass_repository.merge_risk_state("p1", {"level": "red", "last_checkin_date": "2026-02-01"})
        compass_repository.merge_risk_state("p2", {"level": "green", "last_checkin_date": "2026-02-02"})

        async def _check():
            async with client:
                data = _payload(await client.call_tool("list_risk_states", {"level": "red"}))
                assert data["count"] == 1
                assert data["risk_states"][0]["patientId"] == "p1"

                everyone = _payload(await client.call_tool("list_risk_states", {}))
                assert everyone["count"] == 2

                bad = _payload(await client.call_tool("list_risk_states", {"level": "amber"}))
                assert bad["status"] == "error"
        _run(_check())

    def test_annotation_before_first_checkin(self, client, compass_repository):
        async def _check():
            async with client:
                data = _payload(await client.call_tool(
                    "annotate_risk_state", {"patient_id": "p-new", "note": "call tomorrow"}
                ))
                assert data["status"] == "not_found"

                missing = _payload(await client.call_tool("get_risk_state", {"patient_id": "p-new"}))
                assert missing["status"] == "not_found"
                everyone = _payload(await client.call_tool("list_risk_states", {}))
                assert everyone["count"] == 0
        _run(_check())

    def test_annotation_survives_new_checkin(self, client, compass_repository, checkin_record):
        async def _check():
            async with client:
                await client.call_tool(
                    "submit_checkin", {"record": checkin_record(date="2026-01-31")}
                )
                saved = _payload(await client.call_tool(
                    "annotate_risk_state",
                    {"patient_id": "patient_001", "note": "  Discussed diet.  "},
                ))
                assert saved["status"] == "saved"
                await client.call_tool("submit_checkin", {"record": checkin_record(fever=True)})
                data = _payload(await client.call_tool(
                    "get_risk_state", {"patient_id": "patient_001"}
                ))
                assert data["risk_state"]["level"] == "red"
                assert data["risk_state"]["clinicianNote"] == "Discussed diet."
        _run(_check())


class TestClinicianActionTools:
    def test_create_toggle_and_list(self, client):
        async def _check():
            async with client:
                created = _payload(await client.call_tool(
                    "create_clinician_action",
                    {"patient_id": "p1", "action_type": "ed_referral", "details": "GI bleed"},
                ))
                assert created["status"] == "saved"
                action = created["action"]
                assert action["severity"] == "urgent"
                assert action["title"] == "ED referral"

                await client.call_tool(
                    "create_clinician_action", {"patient_id": "p1", "action_type": "call"}
                )
                updated = _payload(await client.call_tool(
                    "set_clinician_action_status",
                    {"action_id": action["id"], "status": "done"},
                ))
                assert updated["status"] == "updated"

                listed = _payload(await client.call_tool(
                    "list_clinician_actions", {"patient_id": "p1"}
                ))
                assert listed["open"] == 1
                assert listed["done"] == 1
        _run(_check())

    def test_validation_errors(self, client):
        async def _check():
            async with client:
                bad_type = _payload(await client.call_tool(
                    "create_clinician_action", {"patient_id": "p1", "action_type": "visit"}
                ))
                assert bad_type["status"] == "error"

                bad_status = _payload(await client.call_tool(
                    "set_clinician_action_status", {"action_id": "x", "status": "closed"}
                ))
                assert bad_status["status"] == "error"

                missing = _payload(await client.call_tool(
                    "set_clinician_action_status", {"action_id": "x", "status": "done"}
                ))
                assert missing["status"] == "not_found"
        _run(_check())


class TestAuditTools:
    def test_summary_counts_failures(self, client, audit_logger):
        audit_logger.log_risk_evaluation("on_checkin_write", status="success")
        audit_logger.log_risk_evaluation(
            "on_checkin_write", status="failure", error_type="RepositoryError"
        )

        async def _check():
            async with client:
                data = _payload(await client.call_tool("audit_summary", {"days": 1}))
                assert data["total_events"] == 2
                assert data["failures"] == 1
                assert data["by_action"] == {"risk_evaluation": {"failure": 1, "success": 1}}
                assert {e["status"] for e in data["recent_events"]} == {"success", "failure"}
        _run(_check())

    def test_prune(self, client, audit_logger, compass_db):
        audit_logger.log_risk_evaluation("on_checkin_write")
        with compass_db.transaction() as conn:
            conn.execute(
                "INSERT INTO audit_log (id, timestamp, action, status) "
                "VALUES ('old', '2020-01-01T00:00:00+00:00', 'risk_evaluation', 'success')"
            )

        async def _check():
            async with client:
                bad = _payload(await client.call_tool("prune_audit_log", {"older_than_days": 0}))
                assert bad["status"] == "error"
                data = _payload(await client.call_tool("prune_audit_log", {"older_than_days": 30}))
                assert data["events_deleted"] == 1
        _run(_check())
        assert audit_logger.count_events() == 1
