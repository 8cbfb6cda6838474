"""Unified search over Claude Code logs and claude.ai conversations."""

__version__ = "0.1.0"
