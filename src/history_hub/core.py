"""Core data models for history-hub."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

SourceType = Literal["local", "remote"]

LOCAL: SourceType = "local"
REMOTE: SourceType = "remote"

ROLES = ("user", "assistant", "system")
DEFAULT_ROLES = ("user", "assistant")


@dataclass
class Project:
    """A project/folder that owns conversation sessions."""

    id: str  # "local_Users/alice/dev/app" | "remote_conversations"
    name: str
    source: SourceType
    session_count: int
    message_count: int
    last_activity: datetime
    path: Optional[str] = None  # local only


@dataclass
class Session:
    """A single conversation, unique within its source."""

    id: str
    source: SourceType
    created_at: datetime
    updated_at: datetime
    message_count: int
    project_id: Optional[str] = None
    project_name: Optional[str] = None
    title: Optional[str] = None  # remote conversations may be named


@dataclass
class Message:
    """A single message within a conversation."""

    id: str
    role: str  # "user" | "assistant" | "system"
    content: str
    timestamp: datetime


@dataclass
class Conversation:
    """A session plus one page of its messages, oldest first."""

    id: str
    source: SourceType
    session: Session
    messages: list[Message] = field(default_factory=list)


@dataclass
class SearchResult:
    """A substring match inside one message."""

    source: SourceType
    session_id: str
    message_id: str
    snippet: str
    timestamp: datetime
    score: Optional[float] = None  # reserved for ranking


@dataclass
class PaginationInfo:
    total_count: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total_count


@dataclass
class ProjectList:
    projects: list[Project]
    sources_searched: list[SourceType]


@dataclass
class SessionList:
    sessions: list[Session]
    pagination: PaginationInfo
    sources_searched: list[SourceType]


@dataclass
class SearchResponse:
    results: list[SearchResult]
    sources_searched: list[SourceType]
