"""Environment-driven configuration for local paths and the remote API."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

_DISABLE_VALUES = ("false", "0")


@dataclass
class RemoteSettings:
    session_key: str
    org_id: Optional[str] = None


def get_claude_code_path() -> Path:
    """Return the path to Claude Code's projects directory."""
    env = os.environ.get("HISTORY_HUB_CLAUDE_PATH")
    if env:
        return Path(env)

    return Path.home() / ".claude" / "projects"


def get_remote_settings() -> RemoteSettings | None:
    """Return claude.ai credentials, or None if the remote source is disabled.

    The remote source needs CLAUDE_SESSION_KEY. CLAUDE_WEB_ENABLED=false (or 0)
    turns it off even when a key is present.
    """
    session_key = os.environ.get("CLAUDE_SESSION_KEY")
    if not session_key:
        return None

    enabled = os.environ.get("CLAUDE_WEB_ENABLED", "").strip().lower()
    if enabled in _DISABLE_VALUES:
        return None

    return RemoteSettings(
        session_key=session_key,
        org_id=os.environ.get("CLAUDE_ORG_ID") or None,
    )
