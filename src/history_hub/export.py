"""Serialize query results and export conversations to Markdown and JSON."""

import json
from datetime import datetime
from typing import Any, Optional

from .core import (
    Conversation,
    Message,
    PaginationInfo,
    Project,
    ProjectList,
    SearchResponse,
    SearchResult,
    Session,
    SessionList,
)
from .dates import format_instant, time_ago


def _instant(value: Optional[datetime]) -> Optional[str]:
    return format_instant(value) if value else None


def project_to_dict(project: Project) -> dict[str, Any]:
    return {
        "id": project.id,
        "name": project.name,
        "path": project.path,
        "source": project.source,
        "session_count": project.session_count,
        "message_count": project.message_count,
        "last_activity": _instant(project.last_activity),
    }


def session_to_dict(session: Session) -> dict[str, Any]:
    return {
        "id": session.id,
        "source": session.source,
        "project_id": session.project_id,
        "project_name": session.project_name,
        "title": session.title,
        "created_at": _instant(session.created_at),
        "updated_at": _instant(session.updated_at),
        "message_count": session.message_count,
    }


def message_to_dict(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "role": message.role,
        "content": message.content,
        "timestamp": _instant(message.timestamp),
    }


def conversation_to_dict(conversation: Conversation) -> dict[str, Any]:
    return {
        "id": conversation.id,
        "source": conversation.source,
        "session": session_to_dict(conversation.session),
        "messages": [message_to_dict(m) for m in conversation.messages],
    }


def search_result_to_dict(result: SearchResult) -> dict[str, Any]:
    return {
        "source": result.source,
        "session_id": result.session_id,
        "message_id": result.message_id,
        "snippet": result.snippet,
        "timestamp": _instant(result.timestamp),
        "score": result.score,
    }


def pagination_to_dict(pagination: PaginationInfo) -> dict[str, Any]:
    return {
        "total_count": pagination.total_count,
        "limit": pagination.limit,
        "offset": pagination.offset,
        "has_more": pagination.has_more,
    }


def project_list_to_dict(project_list: ProjectList) -> dict[str, Any]:
    return {
        "projects": [project_to_dict(p) for p in project_list.projects],
        "sources_searched": list(project_list.sources_searched),
    }


def session_list_to_dict(session_list: SessionList) -> dict[str, Any]:
    return {
        "sessions": [session_to_dict(s) for s in session_list.sessions],
        "pagination": pagination_to_dict(session_list.pagination),
        "sources_searched": list(session_list.sources_searched),
    }


def search_response_to_dict(response: SearchResponse) -> dict[str, Any]:
    return {
        "results": [search_result_to_dict(r) for r in response.results],
        "sources_searched": list(response.sources_searched),
    }


def conversation_to_markdown(conversation: Conversation, now: Optional[datetime] = None) -> str:
    """Export a conversation page as clean Markdown."""
    session = conversation.session
    lines = [f"# {session.title or session.id}", ""]

    if session.project_name:
        lines.append(f"**Project:** {session.project_name}")
    lines.append(f"**Source:** {conversation.source}")
    lines.append(f"**Created:** {format_instant(session.created_at)}")
    lines.append(f"**Updated:** {format_instant(session.updated_at)} ({time_ago(session.updated_at, now)})")
    lines.append(f"**Messages:** {session.message_count}")
    lines.extend(["", "---", ""])

    for msg in conversation.messages:
        role_label = msg.role.capitalize()
        ts = f" ({msg.timestamp.strftime('%Y-%m-%d %H:%M')})"
        lines.append(f"## {role_label}{ts}")
        lines.append("")
        lines.append(msg.content)
        lines.extend(["", "---", ""])

    return "\n".join(lines)


def conversation_to_json(conversation: Conversation) -> str:
    """Export a conversation page as structured JSON."""
    return json.dumps(conversation_to_dict(conversation), indent=2, ensure_ascii=False)
