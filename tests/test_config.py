"""Tests for environment configuration and source wiring."""

from pathlib import Path

import pytest

from history_hub.backends import close_sources, get_sources
from history_hub.backends.local import LocalLogSource
from history_hub.backends.remote import RemoteApiSource
from history_hub.config import get_claude_code_path, get_remote_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("HISTORY_HUB_CLAUDE_PATH", "CLAUDE_SESSION_KEY", "CLAUDE_ORG_ID", "CLAUDE_WEB_ENABLED"):
        monkeypatch.delenv(name, raising=False)


def test_claude_code_path_default():
    assert get_claude_code_path() == Path.home() / ".claude" / "projects"


def test_claude_code_path_override(monkeypatch, tmp_path):
    monkeypatch.setenv("HISTORY_HUB_CLAUDE_PATH", str(tmp_path))
    assert get_claude_code_path() == tmp_path


def test_remote_disabled_without_key():
    assert get_remote_settings() is None


def test_remote_settings_from_env(monkeypatch):
    monkeypatch.setenv("CLAUDE_SESSION_KEY", "sk-ant-123")
    monkeypatch.setenv("CLAUDE_ORG_ID", "org-9")

    settings = get_remote_settings()

    assert settings.session_key == "sk-ant-123"
    assert settings.org_id == "org-9"


def test_blank_org_id_means_discover(monkeypatch):
    monkeypatch.setenv("CLAUDE_SESSION_KEY", "sk-ant-123")
    monkeypatch.setenv("CLAUDE_ORG_ID", "")
    assert get_remote_settings().org_id is None


@pytest.mark.parametrize("value", ["false", "FALSE", "0", " false "])
def test_remote_explicitly_disabled(monkeypatch, value):
    monkeypatch.setenv("CLAUDE_SESSION_KEY", "sk-ant-123")
    monkeypatch.setenv("CLAUDE_WEB_ENABLED", value)
    assert get_remote_settings() is None


@pytest.mark.parametrize("value", ["true", "1", ""])
def test_remote_enabled_values(monkeypatch, value):
    monkeypatch.setenv("CLAUDE_SESSION_KEY", "sk-ant-123")
    monkeypatch.setenv("CLAUDE_WEB_ENABLED", value)
    assert get_remote_settings() is not None


def test_get_sources_local_only():
    sources = get_sources()
    assert len(sources) == 1
    assert isinstance(sources[0], LocalLogSource)


@pytest.mark.asyncio
async def test_get_sources_with_remote(monkeypatch, tmp_path):
    monkeypatch.setenv("HISTORY_HUB_CLAUDE_PATH", str(tmp_path))
    monkeypatch.setenv("CLAUDE_SESSION_KEY", "sk-ant-123")

    sources = get_sources()

    assert [s.source_type for s in sources] == ["local", "remote"]
    assert isinstance(sources[1], RemoteApiSource)
    assert sources[0].get_base_path() == tmp_path
    await close_sources(sources)
