"""Shared test fixtures for history-hub."""

import json
import os
from datetime import datetime

import httpx
import pytest

from history_hub.client import RemoteClient


def _record(session_id, uuid, record_type, content, timestamp, **extra):
    data = {
        "parentUuid": None,
        "isSidechain": False,
        "userType": "external",
        "cwd": "/Users/test/project",
        "sessionId": session_id,
        "version": "1.0.33",
        "type": record_type,
        "message": {"role": record_type, "content": content},
        "uuid": uuid,
        "timestamp": timestamp,
    }
    data.update(extra)
    return data


def _write_jsonl(path, lines, mtime=None):
    """Write records (dicts or raw strings) one per line, optionally setting mtime."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        "\n".join(line if isinstance(line, str) else json.dumps(line) for line in lines),
        encoding="utf-8",
    )
    if mtime is not None:
        ts = datetime.fromisoformat(mtime.replace("Z", "+00:00")).timestamp()
        os.utime(path, (ts, ts))
    return path


@pytest.fixture
def record():
    return _record


@pytest.fixture
def write_jsonl():
    return _write_jsonl


@pytest.fixture
def tmp_projects_dir(tmp_path):
    """Two projects, one session each.

    session1 (Users/test/project1): user + assistant records mentioning "API"
    on 2025-06-30. session2 (Users/test/project2): one record on 2025-06-29.
    File mtimes match the last record so date pruning sees realistic values.
    """
    projects = tmp_path / "projects"

    _write_jsonl(
        projects / "Users-test-project1" / "session1.jsonl",
        [
            _record("session1", "msg1", "user", "API integration with payment gateway",
                    "2025-06-30T10:00:00.000Z", cwd="/Users/test/project1"),
            _record("session1", "msg2", "assistant",
                    "I can help you with API integration for the payment gateway.",
                    "2025-06-30T10:01:00.000Z", cwd="/Users/test/project1"),
        ],
        mtime="2025-06-30T10:01:00Z",
    )
    _write_jsonl(
        projects / "Users-test-project2" / "session2.jsonl",
        [
            _record("session2", "msg3", "user", "Database schema design for user management",
                    "2025-06-29T15:00:00.000Z", cwd="/Users/test/project2"),
        ],
        mtime="2025-06-29T15:00:00Z",
    )
    return projects


@pytest.fixture
def tmp_rich_projects_dir(tmp_path):
    """One project whose session mixes record types, block content and bad lines."""
    projects = tmp_path / "projects"
    project_dir = projects / "-Users-testuser-dev-myapp"

    lines = [
        # Out of order on disk: assistant reply first.
        _record("session-001", "uuid-002", "assistant", [
            {"type": "text", "text": "I'll refactor the auth module."},
            {"type": "tool_use", "id": "toolu_001", "name": "Read", "input": {"file_path": "/src/auth.ts"}},
        ], "2025-01-20T10:00:30Z"),
        _record("session-001", "uuid-001", "user", "Help me refactor the auth module",
                "2025-01-20T10:00:00Z"),
        "{not json",
        "",
        json.dumps(["a", "list", "line"]),
        # Summary lines carry no timestamp.
        json.dumps({"type": "summary", "summary": "Refactored auth"}),
        _record("session-001", "uuid-003", "system", "Conversation compacted",
                "2025-01-20T10:02:00Z"),
        _record("session-001", "uuid-004", "result", "Task finished",
                "2025-01-20T10:03:00Z"),
        _record("session-001", "uuid-005", "progress", "hook running",
                "2025-01-20T10:03:30Z"),
        _record("session-001", "uuid-006", "human", [
            {"type": "text", "text": "Now split it into separate files"},
        ], "2025-01-20T10:05:00Z"),
    ]
    _write_jsonl(project_dir / "session-001.jsonl", lines, mtime="2025-01-20T10:05:00Z")
    return projects


class MockAPI:
    """Queue of canned responses served through httpx.MockTransport."""

    def __init__(self) -> None:
        self.responses: list = []
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, object] = {}

    def enqueue(self, response) -> None:
        """Queue an httpx.Response or an exception instance to raise."""
        self.responses.append(response)

    def route(self, path: str, payload) -> None:
        """Always answer ``path`` with ``payload`` as JSON (200)."""
        self.routes[path] = payload

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path in self.routes and not self.responses:
            return httpx.Response(200, json=self.routes[request.url.path], request=request)
        if not self.responses:
            return httpx.Response(500, json={"error": "No mocked response queued"}, request=request)

        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        response.request = request
        return response


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def mock_api():
    return MockAPI()


@pytest.fixture
def sleeps():
    return SleepRecorder()


@pytest.fixture
def make_client(mock_api, sleeps):
    """Build a RemoteClient wired to the mock API with instant sleeps."""

    def factory(org_id: str | None = "org-1", request_delay: float = 0.0) -> RemoteClient:
        return RemoteClient(
            "sk-ant-test-key",
            org_id,
            base_url="https://claude.test",
            request_delay=request_delay,
            transport=httpx.MockTransport(mock_api.handler),
            sleep=sleeps,
        )

    return factory
