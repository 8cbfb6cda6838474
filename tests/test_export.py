"""Tests for export functionality."""

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from history_hub.backends.local import LocalLogSource
from history_hub.core import Conversation, Message, PaginationInfo, SessionList, Session
from history_hub.export import (
    conversation_to_json,
    conversation_to_markdown,
    session_list_to_dict,
)
from history_hub.server import app


@pytest.fixture
def sample_conversation():
    session = Session(
        id="session-abc",
        source="local",
        created_at=datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc),
        updated_at=datetime(2025, 1, 15, 11, 0, 0, tzinfo=timezone.utc),
        message_count=3,
        project_id="local_Users/test/dev/myapp",
        project_name="Users/test/dev/myapp",
        title="Fix authentication bug",
    )
    messages = [
        Message(
            id="m1",
            role="user",
            content="Fix the login bug in auth.ts",
            timestamp=datetime(2025, 1, 15, 10, 0, 0, tzinfo=timezone.utc),
        ),
        Message(
            id="m2",
            role="assistant",
            content="I'll fix the authentication bug. Here's the change:\n\n```typescript\nconst token = await validateToken(input);\n```",
            timestamp=datetime(2025, 1, 15, 10, 0, 30, tzinfo=timezone.utc),
        ),
        Message(
            id="m3",
            role="user",
            content="Looks good, thanks!",
            timestamp=datetime(2025, 1, 15, 10, 1, 0, tzinfo=timezone.utc),
        ),
    ]
    return Conversation(id="session-abc", source="local", session=session, messages=messages)


NOW = datetime(2025, 1, 15, 14, 0, 0, tzinfo=timezone.utc)


class TestMarkdownExport:
    def test_includes_session_title(self, sample_conversation):
        result = conversation_to_markdown(sample_conversation, NOW)
        assert result.startswith("# Fix authentication bug\n")

    def test_includes_metadata(self, sample_conversation):
        result = conversation_to_markdown(sample_conversation, NOW)
        assert "**Project:** Users/test/dev/myapp" in result
        assert "**Source:** local" in result
        assert "**Created:** 2025-01-15T10:00:00.000Z" in result
        assert "**Updated:** 2025-01-15T11:00:00.000Z (3h ago)" in result
        assert "**Messages:** 3" in result

    def test_includes_messages_with_roles(self, sample_conversation):
        result = conversation_to_markdown(sample_conversation, NOW)
        assert "## User (2025-01-15 10:00)" in result
        assert "## Assistant (2025-01-15 10:00)" in result
        assert "Fix the login bug" in result
        assert result.index("Fix the login bug") < result.index("Looks good")

    def test_preserves_code_fences(self, sample_conversation):
        result = conversation_to_markdown(sample_conversation, NOW)
        assert "```typescript" in result

    def test_untitled_falls_back_to_id(self, sample_conversation):
        sample_conversation.session.title = None
        sample_conversation.session.project_name = None
        result = conversation_to_markdown(sample_conversation, NOW)
        assert result.startswith("# session-abc\n")
        assert "**Project:**" not in result

    def test_empty_messages(self, sample_conversation):
        sample_conversation.messages = []
        result = conversation_to_markdown(sample_conversation, NOW)
        assert "# Fix authentication bug" in result
        assert "## " not in result


class TestJsonExport:
    def test_includes_session_metadata(self, sample_conversation):
        data = json.loads(conversation_to_json(sample_conversation))
        assert data["id"] == "session-abc"
        assert data["source"] == "local"
        assert data["session"]["title"] == "Fix authentication bug"
        assert data["session"]["project_name"] == "Users/test/dev/myapp"
        assert data["session"]["message_count"] == 3

    def test_includes_messages(self, sample_conversation):
        data = json.loads(conversation_to_json(sample_conversation))
        assert [m["id"] for m in data["messages"]] == ["m1", "m2", "m3"]
        assert data["messages"][1]["role"] == "assistant"
        assert set(data["messages"][0]) == {"id", "role", "content", "timestamp"}

    def test_timestamps_are_utc_iso(self, sample_conversation):
        data = json.loads(conversation_to_json(sample_conversation))
        assert data["session"]["created_at"] == "2025-01-15T10:00:00.000Z"
        assert data["messages"][1]["timestamp"] == "2025-01-15T10:00:30.000Z"

    def test_non_ascii_preserved(self, sample_conversation):
        sample_conversation.messages[0].content = "Überprüfe die Anmeldung"
        assert "Überprüfe" in conversation_to_json(sample_conversation)


def test_session_list_includes_pagination(sample_conversation):
    result = session_list_to_dict(SessionList(
        sessions=[sample_conversation.session],
        pagination=PaginationInfo(total_count=3, limit=1, offset=0),
        sources_searched=["local"],
    ))
    assert result["pagination"] == {"total_count": 3, "limit": 1, "offset": 0, "has_more": True}
    assert result["sessions"][0]["updated_at"] == "2025-01-15T11:00:00.000Z"
    assert result["sources_searched"] == ["local"]


@pytest.fixture(autouse=True)
def reset_source_cache():
    import history_hub.server as srv
    srv._sources = None
    yield
    srv._sources = None


@pytest.mark.asyncio
async def test_export_md_endpoint(tmp_projects_dir):
    with patch("history_hub.server.get_sources", return_value=[LocalLogSource(tmp_projects_dir)]):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/api/export/session1?format=md")
            assert resp.status_code == 200
            assert "text/markdown" in resp.headers.get("content-type", "")
            assert 'filename="session1.md"' in resp.headers["content-disposition"]
            assert "# session1" in resp.text
            assert "API integration with payment gateway" in resp.text


@pytest.mark.asyncio
async def test_export_json_endpoint(tmp_projects_dir):
    with patch("history_hub.server.get_sources", return_value=[LocalLogSource(tmp_projects_dir)]):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/api/export/session1?format=json")
            assert resp.status_code == 200
            assert "application/json" in resp.headers.get("content-type", "")
            data = json.loads(resp.text)
            assert data["id"] == "session1"
            assert [m["id"] for m in data["messages"]] == ["msg1", "msg2"]


@pytest.mark.asyncio
async def test_export_not_found(tmp_projects_dir):
    with patch("history_hub.server.get_sources", return_value=[LocalLogSource(tmp_projects_dir)]):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/api/export/nonexistent")
            assert resp.status_code == 404


@pytest.mark.asyncio
async def test_export_pages_through_long_conversations(tmp_projects_dir):
    with (
        patch("history_hub.server.get_sources", return_value=[LocalLogSource(tmp_projects_dir)]),
        patch("history_hub.server.EXPORT_PAGE_SIZE", 1),
    ):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            resp = await client.get("/api/export/session1?format=json")
            assert resp.status_code == 200
            data = json.loads(resp.text)
            assert [m["id"] for m in data["messages"]] == ["msg1", "msg2"]
            assert data["session"]["message_count"] == 2
