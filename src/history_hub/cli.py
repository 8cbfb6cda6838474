"""CLI entry point for history-hub."""

import asyncio
import json
import logging

import click
import uvicorn

from . import query
from .backends import close_sources, get_sources
from .export import (
    conversation_to_dict,
    conversation_to_markdown,
    project_list_to_dict,
    search_response_to_dict,
    session_list_to_dict,
)
from .query import InvalidQueryError

SOURCE_CHOICE = click.Choice(["local", "remote", "all"])
HINT_CHOICE = click.Choice(["local", "remote"])
ROLE_CHOICE = click.Choice(["user", "assistant", "system"])


def _run(operation):
    """Run ``operation(sources)`` on a fresh event loop and close the sources."""

    async def runner():
        sources = get_sources()
        try:
            return await operation(sources)
        finally:
            await close_sources(sources)

    try:
        return asyncio.run(runner())
    except InvalidQueryError as e:
        raise click.UsageError(str(e))


def _echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


def _date_options(f):
    f = click.option("--timezone", "tz", default=None, help="IANA timezone, defaults to the system zone.")(f)
    f = click.option("--end-date", default=None, help="ISO timestamp or YYYY-MM-DD.")(f)
    f = click.option("--start-date", default=None, help="ISO timestamp or YYYY-MM-DD.")(f)
    return f


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
def main(verbose: bool):
    """Browse Claude Code logs and claude.ai conversations in one place."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.option("--port", default=8080, help="Port to serve on.")
@click.option("--host", default="127.0.0.1", help="Host to bind to.")
def serve(port: int, host: str):
    """Start the HTTP API."""
    click.echo(f"Starting history-hub on http://{host}:{port}")
    uvicorn.run("history_hub.server:app", host=host, port=port, reload=False)


@main.command()
@click.option("--source", type=SOURCE_CHOICE, default="all", show_default=True)
def projects(source: str):
    """List projects, most recently active first."""
    result = _run(lambda sources: query.list_projects(sources, source))
    _echo_json(project_list_to_dict(result))


@main.command()
@click.option("--source", type=SOURCE_CHOICE, default="all", show_default=True)
@click.option("--project-path", default=None, help="Exact project path (local).")
@click.option("--project-id", default=None, help="Project ID.")
@_date_options
@click.option("--limit", default=50, show_default=True)
@click.option("--offset", default=0, show_default=True)
def sessions(source, project_path, project_id, start_date, end_date, tz, limit, offset):
    """List sessions, newest first."""
    result = _run(lambda sources: query.list_sessions(
        sources,
        source=source,
        project_path=project_path,
        project_id=project_id,
        start_date=start_date,
        end_date=end_date,
        timezone=tz,
        limit=limit,
        offset=offset,
    ))
    _echo_json(session_list_to_dict(result))


@main.command()
@click.argument("session_id")
@click.option("--source", type=HINT_CHOICE, default=None, help="Only look in this source.")
@click.option("--type", "message_types", type=ROLE_CHOICE, multiple=True, help="Roles to include (repeatable).")
@click.option("--limit", default=100, show_default=True)
@click.option("--offset", default=0, show_default=True)
@click.option("--markdown", is_flag=True, help="Print Markdown instead of JSON.")
def show(session_id, source, message_types, limit, offset, markdown):
    """Show one conversation."""
    conversation = _run(lambda sources: query.get_conversation(
        sources,
        session_id,
        source=source,
        message_types=list(message_types),
        limit=limit,
        offset=offset,
    ))
    if conversation is None:
        _echo_json({"error": "Conversation not found", "session_id": session_id})
    elif markdown:
        click.echo(conversation_to_markdown(conversation))
    else:
        _echo_json(conversation_to_dict(conversation))


@main.command()
@click.argument("text")
@click.option("--source", type=SOURCE_CHOICE, default="all", show_default=True)
@click.option("--project-path", default=None, help="Exact project path (local).")
@click.option("--project-id", default=None, help="Project ID.")
@_date_options
@click.option("--limit", default=30, show_default=True)
def search(text, source, project_path, project_id, start_date, end_date, tz, limit):
    """Search message content across sources."""
    result = _run(lambda sources: query.search_conversations(
        sources,
        text,
        source=source,
        project_path=project_path,
        project_id=project_id,
        start_date=start_date,
        end_date=end_date,
        timezone=tz,
        limit=limit,
    ))
    _echo_json(search_response_to_dict(result))
