"""FastAPI web server for history-hub."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response

from . import query
from .backends import close_sources, get_sources
from .export import (
    conversation_to_dict,
    conversation_to_json,
    conversation_to_markdown,
    project_list_to_dict,
    search_response_to_dict,
    session_list_to_dict,
)
from .query import InvalidQueryError
from .source import ConversationSource

logger = logging.getLogger(__name__)

# Messages fetched per request when exporting a whole conversation
EXPORT_PAGE_SIZE = 500
EXPORT_ROLES = ["user", "assistant", "system"]

# Source cache (populated on first request)
_sources: list[ConversationSource] | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Close cached sources on shutdown."""
    global _sources
    yield
    if _sources is not None:
        await close_sources(_sources)
        _sources = None
        logger.info("Sources closed")


app = FastAPI(title="history-hub", version="0.1.0", lifespan=lifespan)


def _get_sources() -> list[ConversationSource]:
    """Lazily initialize and cache sources."""
    global _sources
    if _sources is None:
        _sources = get_sources()
        logger.info("Configured sources: %s", [s.source_type for s in _sources])
    return _sources


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/sources")
async def get_sources_status():
    """Return configured sources and whether each is currently reachable."""
    return [{"type": s.source_type, "available": s.is_available()} for s in _get_sources()]


@app.get("/api/projects")
async def get_projects(
    source: str = Query("all", description="Filter by source: local, remote or all"),
):
    """Return projects from every source, most recently active first."""
    try:
        result = await query.list_projects(_get_sources(), source)
    except InvalidQueryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return project_list_to_dict(result)


@app.get("/api/sessions")
async def get_sessions(
    source: str = Query("all", description="Filter by source: local, remote or all"),
    project_path: str | None = Query(None, description="Filter by project path"),
    project_id: str | None = Query(None, description="Filter by project ID"),
    start_date: str | None = Query(None, description="ISO timestamp or YYYY-MM-DD"),
    end_date: str | None = Query(None, description="ISO timestamp or YYYY-MM-DD"),
    timezone: str | None = Query(None, description="IANA timezone, defaults to the system zone"),
    limit: int = Query(50),
    offset: int = Query(0),
):
    """Return one page of sessions merged across sources."""
    try:
        result = await query.list_sessions(
            _get_sources(),
            source=source,
            project_path=project_path,
            project_id=project_id,
            start_date=start_date,
            end_date=end_date,
            timezone=timezone,
            limit=limit,
            offset=offset,
        )
    except InvalidQueryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return session_list_to_dict(result)


@app.get("/api/conversation/{session_id:path}")
async def get_conversation(
    session_id: str,
    source: str | None = Query(None, description="Source hint: local or remote"),
    message_types: list[str] | None = Query(None, description="Roles to include"),
    limit: int = Query(100),
    offset: int = Query(0),
):
    """Return one page of a conversation's messages."""
    try:
        conversation = await query.get_conversation(
            _get_sources(),
            session_id,
            source=source,
            message_types=message_types,
            limit=limit,
            offset=offset,
        )
    except InvalidQueryError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if conversation is None:
        return {"error": "Conversation not found", "session_id": session_id}
    return conversation_to_dict(conversation)


@app.get("/api/search")
async def search(
    query_text: str | None = Query(None, alias="query", description="Search terms"),
    source: str = Query("all", description="Filter by source: local, remote or all"),
    project_path: str | None = Query(None),
    project_id: str | None = Query(None),
    start_date: str | None = Query(None),
    end_date: str | None = Query(None),
    timezone: str | None = Query(None),
    limit: int = Query(30),
):
    """Search message content across sources."""
    try:
        result = await query.search_conversations(
            _get_sources(),
            query_text or "",
            source=source,
            project_path=project_path,
            project_id=project_id,
            start_date=start_date,
            end_date=end_date,
            timezone=timezone,
            limit=limit,
        )
    except InvalidQueryError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return search_response_to_dict(result)


@app.get("/api/export/{session_id:path}")
async def export_conversation(
    session_id: str,
    format: str = Query("md", description="Export format: md or json"),
    source: str | None = Query(None, description="Source hint: local or remote"),
):
    """Export a conversation as Markdown or JSON."""
    try:
        conversation = await _load_full_conversation(session_id, source)
    except InvalidQueryError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")

    title = conversation.session.title or conversation.id
    safe_title = "".join(c if c.isalnum() or c in "-_ " else "" for c in title)[:50] or "conversation"

    if format == "json":
        return Response(
            content=conversation_to_json(conversation),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{safe_title}.json"'},
        )
    return Response(
        content=conversation_to_markdown(conversation),
        media_type="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{safe_title}.md"'},
    )


async def _load_full_conversation(session_id: str, source: str | None):
    """Fetch every message of a conversation, ``EXPORT_PAGE_SIZE`` at a time."""
    sources = _get_sources()
    conversation = await query.get_conversation(
        sources, session_id, source=source, message_types=EXPORT_ROLES, limit=EXPORT_PAGE_SIZE
    )
    if conversation is None:
        return None

    page = conversation.messages
    while len(page) == EXPORT_PAGE_SIZE:
        # Later pages come from whichever source answered the first one.
        following = await query.get_conversation(
            sources,
            session_id,
            source=conversation.source,
            message_types=EXPORT_ROLES,
            limit=EXPORT_PAGE_SIZE,
            offset=len(conversation.messages),
        )
        if following is None:
            break
        page = following.messages
        conversation.messages.extend(page)

    return conversation
