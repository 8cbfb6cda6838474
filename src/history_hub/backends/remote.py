"""claude.ai conversation backend.

Remote conversations have no project hierarchy, so they are grouped under one
virtual project. Listing endpoints return summaries only; message bodies
require one detail request per conversation.

Summary: {"uuid", "name", "created_at", "updated_at", ...}
Detail:  summary fields plus "chat_messages": [{"uuid", "sender", "text",
         "content": [blocks], "created_at", ...}]
"""

import logging
from typing import Any

from ..client import RemoteClient
from ..core import DEFAULT_ROLES, REMOTE, Conversation, Message, Project, SearchResult, Session
from ..dates import EPOCH, date_bounds, parse_iso
from ..snippets import build_snippet
from ..source import ConversationSource, GetConversationOptions, ListSessionsOptions, SearchOptions

logger = logging.getLogger(__name__)

PROJECT_ID = "remote_conversations"
PROJECT_NAME = "Claude.ai Conversations"


class RemoteApiSource(ConversationSource):
    """Source backed by the claude.ai web API."""

    source_type = REMOTE

    def __init__(self, client: RemoteClient):
        self.client = client

    def is_available(self) -> bool:
        return self.client.is_available()

    async def aclose(self) -> None:
        await self.client.aclose()

    async def list_projects(self) -> list[Project]:
        summaries = await self._fetch_summaries()
        if summaries is None:
            return []

        last_activity = max((s.updated_at for s in summaries), default=EPOCH)
        return [Project(
            id=PROJECT_ID,
            name=PROJECT_NAME,
            source=REMOTE,
            session_count=len(summaries),
            message_count=0,  # unknown without fetching every conversation
            last_activity=last_activity,
        )]

    async def list_sessions(self, options: ListSessionsOptions) -> list[Session]:
        if options.project_path:
            return []
        if options.project_id and options.project_id != PROJECT_ID:
            return []

        sessions = await self._fetch_summaries()
        if not sessions:
            return []

        start, end = date_bounds(options.start_date, options.end_date, options.timezone)
        if start:
            sessions = [s for s in sessions if s.updated_at >= start]
        if end:
            sessions = [s for s in sessions if s.created_at <= end]

        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions[options.offset:options.offset + options.limit]

    async def get_conversation(self, options: GetConversationOptions) -> Conversation | None:
        allowed = set(options.message_types or DEFAULT_ROLES)

        org_id = await self.client.get_organization_id()
        if not org_id:
            return None

        detail = await self.client.fetch_api(
            f"/api/organizations/{org_id}/chat_conversations/{options.session_id}"
        )
        if not isinstance(detail, dict):
            return None

        session = _to_session(detail)
        if session is None:
            logger.warning("Malformed conversation detail for %s", options.session_id)
            return None

        messages = [m for m in _to_messages(detail) if m.role in allowed]
        messages.sort(key=lambda m: m.timestamp)
        session.message_count = len(messages)

        return Conversation(
            id=session.id,
            source=REMOTE,
            session=session,
            messages=messages[options.offset:options.offset + options.limit],
        )

    async def search(self, options: SearchOptions) -> list[SearchResult]:
        if options.project_path:
            return []
        if options.project_id and options.project_id != PROJECT_ID:
            return []

        org_id = await self.client.get_organization_id()
        if not org_id:
            return []

        # Server-side filtering narrows candidates; bodies still need a
        # detail fetch per conversation.
        listing = await self.client.fetch_api(
            f"/api/organizations/{org_id}/chat_conversations",
            params={"search": options.query},
        )
        if not isinstance(listing, list):
            return []

        start, end = date_bounds(options.start_date, options.end_date, options.timezone)
        results: list[SearchResult] = []

        for summary in filter(None, map(_to_session, listing)):
            if len(results) >= options.limit:
                break
            if start and summary.updated_at < start:
                continue
            if end and summary.created_at > end:
                continue

            detail = await self.client.fetch_api(
                f"/api/organizations/{org_id}/chat_conversations/{summary.id}"
            )
            if not isinstance(detail, dict):
                continue

            for message in _to_messages(detail):
                if len(results) >= options.limit:
                    break
                snippet = build_snippet(message.content, options.query)
                if snippet is None:
                    continue
                results.append(SearchResult(
                    source=REMOTE,
                    session_id=summary.id,
                    message_id=message.id,
                    snippet=snippet,
                    timestamp=message.timestamp,
                ))

        results.sort(key=lambda r: r.timestamp, reverse=True)
        return results[:options.limit]

    # ── Private helpers ──────────────────────────────────────────────

    async def _fetch_summaries(self) -> list[Session] | None:
        """Return every conversation as a Session, or None if unreachable."""
        org_id = await self.client.get_organization_id()
        if not org_id:
            return None

        listing = await self.client.fetch_api(f"/api/organizations/{org_id}/chat_conversations")
        if not isinstance(listing, list):
            return None

        return [s for s in map(_to_session, listing) if s is not None]


def _to_session(summary: Any) -> Session | None:
    """Convert a conversation summary or detail; None if malformed."""
    if not isinstance(summary, dict) or not summary.get("uuid"):
        return None

    created = parse_iso(summary.get("created_at"))
    updated = parse_iso(summary.get("updated_at")) or created
    if created is None or updated is None:
        return None

    return Session(
        id=str(summary["uuid"]),
        source=REMOTE,
        project_id=PROJECT_ID,
        project_name=PROJECT_NAME,
        title=summary.get("name") or None,
        created_at=created,
        updated_at=max(created, updated),
        message_count=0,
    )


def _to_messages(detail: dict) -> list[Message]:
    messages = []
    for raw in detail.get("chat_messages") or []:
        if not isinstance(raw, dict) or not raw.get("uuid"):
            continue
        timestamp = parse_iso(raw.get("created_at"))
        if timestamp is None:
            continue
        messages.append(Message(
            id=str(raw["uuid"]),
            role="user" if raw.get("sender") == "human" else "assistant",
            content=extract_message_text(raw),
            timestamp=timestamp,
        ))
    return messages


def extract_message_text(message: dict) -> str:
    """Return a message's text, falling back to its text blocks."""
    text = message.get("text")
    if isinstance(text, str) and text:
        return text

    blocks = message.get("content")
    if isinstance(blocks, list):
        return " ".join(
            str(block["text"])
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text" and block.get("text")
        )
    return ""
