"""Abstract base class for conversation sources."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from .core import Conversation, Project, SearchResult, Session, SourceType


@dataclass
class ListSessionsOptions:
    project_path: Optional[str] = None
    project_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    timezone: Optional[str] = None  # IANA name; system zone when omitted
    limit: int = 50
    offset: int = 0


@dataclass
class GetConversationOptions:
    session_id: str
    message_types: list[str] = field(default_factory=list)  # empty means user + assistant
    limit: int = 100
    offset: int = 0


@dataclass
class SearchOptions:
    query: str
    project_path: Optional[str] = None
    project_id: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    timezone: Optional[str] = None
    limit: int = 30


class ConversationSource(ABC):
    """Base class for conversation stores.

    Each store (local Claude Code logs, the claude.ai API) implements this
    interface so the query layer can fan requests out without knowing which
    concrete store it is talking to. Not-found is reported as None or an empty
    list, never as an exception.
    """

    source_type: SourceType

    @abstractmethod
    def is_available(self) -> bool:
        """Return True if this source can currently be queried."""
        ...

    @abstractmethod
    async def list_projects(self) -> list[Project]:
        """Return all projects with conversation history."""
        ...

    @abstractmethod
    async def list_sessions(self, options: ListSessionsOptions) -> list[Session]:
        """Return one page of sessions, newest first."""
        ...

    @abstractmethod
    async def get_conversation(self, options: GetConversationOptions) -> Conversation | None:
        """Return one page of a conversation's messages, or None if unknown."""
        ...

    @abstractmethod
    async def search(self, options: SearchOptions) -> list[SearchResult]:
        """Return up to ``options.limit`` matches, newest first."""
        ...
