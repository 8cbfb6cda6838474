"""Build the configured conversation sources."""

import logging

from ..client import RemoteClient
from ..config import get_remote_settings
from ..source import ConversationSource
from .local import LocalLogSource
from .remote import RemoteApiSource

logger = logging.getLogger(__name__)


def get_sources() -> list[ConversationSource]:
    """Return the local source plus the remote one when credentials are set."""
    sources: list[ConversationSource] = [LocalLogSource()]

    settings = get_remote_settings()
    if settings is not None:
        sources.append(RemoteApiSource(RemoteClient(settings.session_key, settings.org_id)))
    else:
        logger.info("CLAUDE_SESSION_KEY not set or remote disabled; using local logs only")

    return sources


async def close_sources(sources: list[ConversationSource]) -> None:
    """Release network resources held by remote sources."""
    for source in sources:
        if isinstance(source, RemoteApiSource):
            await source.aclose()
