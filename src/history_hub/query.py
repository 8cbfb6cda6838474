"""Fan queries out to every eligible source and merge the answers.

This module only talks to ``ConversationSource``. A source that raises is
logged and contributes nothing; the only error a caller sees is
``InvalidQueryError`` for bad input.
"""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from .core import (
    LOCAL,
    REMOTE,
    ROLES,
    Conversation,
    PaginationInfo,
    ProjectList,
    SearchResponse,
    SessionList,
)
from .source import ConversationSource, GetConversationOptions, ListSessionsOptions, SearchOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")

SOURCE_FILTERS = ("local", "remote", "all")

# Lookup order for get_conversation without a hint: local is cheaper.
SOURCE_PREFERENCE = (LOCAL, REMOTE)


class InvalidQueryError(ValueError):
    """Raised when a caller supplies missing or invalid query parameters."""


def select_sources(sources: list[ConversationSource], source: str = "all") -> list[ConversationSource]:
    """Return the available sources matching the ``source`` filter."""
    _check_source_filter(source)
    return [
        s for s in sources
        if s.is_available() and (source == "all" or s.source_type == source)
    ]


async def list_projects(sources: list[ConversationSource], source: str = "all") -> ProjectList:
    """List projects from every eligible source, most recently active first."""
    active = select_sources(sources, source)
    per_source = await _fan_out(active, lambda s: s.list_projects())

    projects = [p for batch in per_source for p in batch]
    projects.sort(key=lambda p: p.last_activity, reverse=True)
    return ProjectList(projects=projects, sources_searched=[s.source_type for s in active])


async def list_sessions(
    sources: list[ConversationSource],
    *,
    source: str = "all",
    project_path: str | None = None,
    project_id: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    timezone: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> SessionList:
    """List sessions across sources with global pagination.

    Each source is asked for ``offset + limit`` sessions from the top, because
    an item's global rank depends on how the sources interleave, plus one
    lookahead row so ``has_more`` holds even when a single source answers.
    ``total_count`` is therefore a lower bound once a source is truncated.
    """
    _check_page(limit, offset)
    active = select_sources(sources, source)

    options = ListSessionsOptions(
        project_path=project_path,
        project_id=project_id,
        start_date=start_date,
        end_date=end_date,
        timezone=timezone,
        limit=offset + limit + 1,
        offset=0,
    )
    per_source = await _fan_out(active, lambda s: s.list_sessions(options))

    sessions = [s for batch in per_source for s in batch]
    sessions.sort(key=lambda s: s.updated_at, reverse=True)

    return SessionList(
        sessions=sessions[offset:offset + limit],
        pagination=PaginationInfo(total_count=len(sessions), limit=limit, offset=offset),
        sources_searched=[s.source_type for s in active],
    )


async def get_conversation(
    sources: list[ConversationSource],
    session_id: str,
    *,
    source: str | None = None,
    message_types: list[str] | None = None,
    limit: int = 100,
    offset: int = 0,
) -> Conversation | None:
    """Return the first source's copy of a conversation, or None.

    With a ``source`` hint only that source is asked. Otherwise sources are
    tried in ``SOURCE_PREFERENCE`` order.
    """
    if not session_id or not session_id.strip():
        raise InvalidQueryError("sessionId is required")
    if source is not None and source not in SOURCE_PREFERENCE:
        raise InvalidQueryError(f"Unknown source: {source}")
    for role in message_types or []:
        if role not in ROLES:
            raise InvalidQueryError(f"Unknown message type: {role}")
    _check_page(limit, offset)

    options = GetConversationOptions(
        session_id=session_id,
        message_types=list(message_types or []),
        limit=limit,
        offset=offset,
    )

    if source is not None:
        candidates = [s for s in sources if s.source_type == source]
    else:
        candidates = sorted(sources, key=_preference)

    for candidate in candidates:
        if not candidate.is_available():
            continue
        try:
            conversation = await candidate.get_conversation(options)
        except Exception as e:
            logger.warning("get_conversation failed for %s: %s", candidate.source_type, e)
            continue
        if conversation is not None:
            return conversation

    return None


async def search_conversations(
    sources: list[ConversationSource],
    query: str,
    *,
    source: str = "all",
    project_path: str | None = None,
    project_id: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    timezone: str | None = None,
    limit: int = 30,
) -> SearchResponse:
    """Search every eligible source and merge matches, newest first."""
    if not query or not query.strip():
        raise InvalidQueryError("Search query is required")
    _check_page(limit, 0)
    active = select_sources(sources, source)

    options = SearchOptions(
        query=query,
        project_path=project_path,
        project_id=project_id,
        start_date=start_date,
        end_date=end_date,
        timezone=timezone,
        limit=limit,
    )
    per_source = await _fan_out(active, lambda s: s.search(options))

    results = [r for batch in per_source for r in batch]
    results.sort(key=lambda r: r.timestamp, reverse=True)
    return SearchResponse(results=results[:limit], sources_searched=[s.source_type for s in active])


# ── Private helpers ──────────────────────────────────────────────


async def _fan_out(
    sources: list[ConversationSource],
    call: Callable[[ConversationSource], Awaitable[list[T]]],
) -> list[list[T]]:
    """Run ``call`` against every source concurrently, isolating failures."""

    async def isolated(source: ConversationSource) -> list[T]:
        try:
            return await call(source)
        except Exception as e:
            logger.warning("Source %s failed: %s", source.source_type, e, exc_info=True)
            return []

    return list(await asyncio.gather(*(isolated(s) for s in sources)))


def _preference(source: ConversationSource) -> int:
    try:
        return SOURCE_PREFERENCE.index(source.source_type)
    except ValueError:
        return len(SOURCE_PREFERENCE)


def _check_source_filter(source: str) -> None:
    if source not in SOURCE_FILTERS:
        raise InvalidQueryError(f"Unknown source filter: {source}")


def _check_page(limit: int, offset: int) -> None:
    if limit < 1:
        raise InvalidQueryError("limit must be at least 1")
    if offset < 0:
        raise InvalidQueryError("offset must not be negative")
