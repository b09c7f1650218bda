"""Integration tests for the Medly symptom-log MCP server."""

from __future__ import annotations

import asyncio
import json

import pytest
from fastmcp import Client

from medly.core.llm.providers.mock import MockProvider
from medly.core.server.app import create_app


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio required)."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _payload(result):
    """Parse the JSON body of a tool result."""
    blocks = getattr(result, "content", result)
    return json.loads(blocks[0].text)


ALL_EXPECTED_TOOLS = [
    "health_check",
    "log_symptom",
    "delete_symptom_log",
    "import_symptom_logs",
    "symptom_pattern_card",
    "review_recent_logs",
    "search_health_references",
    "health_chat",
    "check_text_for_pii",
    "audit_summary",
]

REVIEW_ANSWER = "## What your logs show\n- Cramps were logged twice."


@pytest.fixture
def provider():
    return MockProvider(REVIEW_ANSWER)


@pytest.fixture
def client(provider):
    """Create an MCP client connected to a fresh server with a mock backend."""
    mcp = create_app(provider_override=provider)
    return Client(mcp)


def test_server_starts_and_lists_tools(client):
    """Server should start and expose all registered tools."""
    async def _check():
        async with client:
            tools = await client.list_tools()
            tool_names = [t.name for t in tools]
            for expected in ALL_EXPECTED_TOOLS:
                assert expected in tool_names, f"Missing tool: {expected}"
    _run(_check())


def test_health_check_returns_ok(client):
    async def _check():
        async with client:
            return _payload(await client.call_tool("health_check", {}))

    status = _run(_check())
    assert status["status"] == "ok"
    assert status["llm_provider"] == "mock"
    assert status["storage_persistent"] is False
    assert status["contracts_loaded"] == 5
    assert status["kb_documents"] > 0
    assert status["logs_stored"] == 0


class TestLogTools:
    def test_log_then_review(self, client):
        async def _check():
            async with client:
                await client.call_tool("log_symptom", {
                    "symptom_type": "Cramps", "severity": 7, "cycle_phase": "Menstrual",
                    "notes": "Called Dr. Smith at 555-123-4567",
                })
                await client.call_tool("log_symptom", {"symptom_type": "Cramps", "severity": 5})
                return _payload(await client.call_tool("review_recent_logs", {"days": 3}))

        review = _run(_check())
        assert review["status"] == "ok"
        assert review["entries_reviewed"] == 2
        assert review["statistics"]["total_days"] == 1
        assert review["statistics"]["max_severity_overall"] == 7
        assert review["primary_concerns"] == ["Cramps"]
        assert "555-123-4567" not in json.dumps(review)
        assert review["summary"].startswith("## What your logs show")

    def test_invalid_severity_rejected(self, client):
        async def _check():
            async with client:
                return _payload(await client.call_tool(
                    "log_symptom", {"symptom_type": "Cramps", "severity": 11}
                ))

        assert _run(_check())["status"] == "error"

    def test_invalid_phase_rejected(self, client):
        async def _check():
            async with client:
                return _payload(await client.call_tool(
                    "log_symptom", {"symptom_type": "Cramps", "severity": 4, "cycle_phase": "spring"}
                ))

        assert _run(_check())["status"] == "error"

    def test_emergency_language_flagged(self, client):
        async def _check():
            async with client:
                return _payload(await client.call_tool("log_symptom", {
                    "symptom_type": "Bleeding", "severity": 9, "notes": "very heavy bleeding",
                }))

        saved = _run(_check())
        assert saved["status"] == "saved"
        assert saved["emergency_alert"] is True
        assert "emergency" in saved["message"]

    def test_pattern_card(self, client):
        async def _check():
            async with client:
                empty = _payload(await client.call_tool("symptom_pattern_card", {}))
                await client.call_tool("log_symptom", {
                    "symptom_type": "Headache", "severity": 6, "tags": ["Poor sleep"],
                })
                full = _payload(await client.call_tool("symptom_pattern_card", {"days": 30}))
                return empty, full

        empty, full = _run(_check())
        assert empty["status"] == "no_data"
        assert empty["pattern_card"]["time_window_days"] == 0
        assert full["status"] == "ok"
        assert full["logs_analyzed"] == 1
        assert full["pattern_card"]["context_tags"]["top_tags"] == [{"tag": "Poor sleep", "count": 1}]

    def test_import_upgrades_old_records(self, client):
        async def _check():
            async with client:
                imported = _payload(await client.call_tool("import_symptom_logs", {"records": [
                    {"id": "old-1", "name": "Nausea", "intensity": 4, "timestamp": 1767225600000},
                    {"id": "bad", "symptom_type": "Nausea", "severity": 2, "schema_version": 99},
                ]}))
                review = _payload(await client.call_tool("review_recent_logs", {"days": 1}))
                return imported, review

        imported, review = _run(_check())
        assert imported["imported"] == 1
        assert imported["skipped"] == 1
        assert imported["logs_stored"] == 1
        assert review["entries_reviewed"] == 1
        assert review["primary_concerns"] == ["Nausea"]

    def test_delete_is_audited(self, client):
        async def _check():
            async with client:
                saved = _payload(await client.call_tool(
                    "log_symptom", {"symptom_type": "Nausea", "severity": 3}
                ))
                first = _payload(await client.call_tool(
                    "delete_symptom_log", {"log_id": saved["log_id"]}
                ))
                second = _payload(await client.call_tool(
                    "delete_symptom_log", {"log_id": saved["log_id"]}
                ))
                audit = _payload(await client.call_tool("audit_summary", {}))
                return first, second, audit

        first, second, audit = _run(_check())
        assert first["status"] == "deleted"
        assert second["status"] == "not_found"
        actions = [e["action"] for e in audit["recent_events"]]
        assert "data_delete" in actions
        assert "tool_invocation" in actions


class TestKnowledgeTools:
    def test_search_with_synonyms(self, client):
        async def _check():
            async with client:
                return _payload(await client.call_tool(
                    "search_health_references", {"query": "period", "top_n": 3}
                ))

        found = _run(_check())
        assert found["status"] == "ok"
        assert 0 < len(found["results"]) <= 3

    def test_no_results(self, client):
        async def _check():
            async with client:
                return _payload(await client.call_tool(
                    "search_health_references", {"query": "zzqx"}
                ))

        assert _run(_check())["status"] == "no_results"


class TestChatTools:
    def test_review_chat_turn(self, client, provider):
        async def _check():
            async with client:
                await client.call_tool("log_symptom", {"symptom_type": "Cramps", "severity": 7})
                await client.call_tool("log_symptom", {"symptom_type": "Cramps", "severity": 5})
                reply = _payload(await client.call_tool(
                    "health_chat", {"message": "review my last 3 days", "thread_id": "t1"}
                ))
                audit = _payload(await client.call_tool("audit_summary", {}))
                return reply, audit

        reply, audit = _run(_check())
        assert reply["intent"] == "review_recent"
        assert reply["content"] == REVIEW_ANSWER
        assert reply["statistics"]["total_days"] == 1
        assert [ref["id"] for ref in reply["references"]] == reply["citations"]
        assert "COMPUTED_STATISTICS:" in provider.last_system_message
        # The mock backend never counts as a disclosure.
        assert audit["llm_disclosures"] == 0
        assert "generation" in [e["action"] for e in audit["recent_events"]]

    def test_audit_filtered_to_thread(self, client):
        async def _check():
            async with client:
                await client.call_tool("log_symptom", {"symptom_type": "Cramps", "severity": 6})
                await client.call_tool(
                    "health_chat", {"message": "review my last 3 days", "thread_id": "t9"}
                )
                scoped = _payload(await client.call_tool(
                    "audit_summary", {"action": "generation", "thread_id": "t9"}
                ))
                other = _payload(await client.call_tool("audit_summary", {"thread_id": "nope"}))
                bad = _payload(await client.call_tool("audit_summary", {"action": "read"}))
                return scoped, other, bad

        scoped, other, bad = _run(_check())
        assert [e["thread_id"] for e in scoped["recent_events"]] == ["t9"]
        assert scoped["recent_events"][0]["action"] == "generation"
        assert scoped["events_by_action"]["tool_invocation"] >= 1
        assert other["recent_events"] == []
        assert bad["status"] == "error"

    def test_greeting(self, client):
        async def _check():
            async with client:
                return _payload(await client.call_tool("health_chat", {"message": "hello"}))

        reply = _run(_check())
        assert reply["is_medical"] is False
        assert reply["statistics"] is None

    def test_chat_message_redacted_before_generation(self, client, provider):
        async def _check():
            async with client:
                await client.call_tool("health_chat", {
                    "message": "My doctor said call 555-123-4567 about my cramps",
                })

        _run(_check())
        assert "555-123-4567" not in provider.last_user_message
        assert "[PHONE]" in provider.last_user_message

    def test_check_text_for_pii(self, client):
        async def _check():
            async with client:
                return _payload(await client.call_tool(
                    "check_text_for_pii", {"text": "email me at jane@example.com"}
                ))

        checked = _run(_check())
        assert checked["safe"] is False
        assert checked["warnings"]
        assert checked["redacted"] == "email me at [EMAIL]"
