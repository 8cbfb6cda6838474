"""Claude Code log backend.

Reads conversation logs from the ~/.claude/projects/ directory tree:

    <root>/<encoded-project>/<session-id>.jsonl

Project directory names encode the project path with "-" in place of "/"
(-Users-alice-dev-app -> Users/alice/dev/app). Every line of a session file is
an independent JSON record; lines that fail to parse are skipped.

Record types:
- "user" / "human": user messages.
- "assistant": model responses.
- "system": system notices.
- "result": terminal result records, reported with role "system".
- anything else ("summary", "progress", ...): counted and searched, never
  returned as a conversation message.

Content is either a plain string or a list of typed blocks.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from ..config import get_claude_code_path
from ..core import DEFAULT_ROLES, LOCAL, Conversation, Message, Project, SearchResult, Session
from ..dates import EPOCH, date_bounds, parse_iso
from ..snippets import build_snippet
from ..source import ConversationSource, GetConversationOptions, ListSessionsOptions, SearchOptions

logger = logging.getLogger(__name__)

FILE_BATCH_SIZE = 10
PROJECT_ID_PREFIX = "local_"

_ROLE_BY_TYPE = {
    "user": "user",
    "human": "user",
    "assistant": "assistant",
    "system": "system",
    "result": "system",
}


@dataclass
class _Record:
    """One parsed JSONL line."""

    data: dict
    timestamp: datetime

    @property
    def role(self) -> str | None:
        return _ROLE_BY_TYPE.get(self.data.get("type", ""))

    @property
    def uuid(self) -> str:
        return str(self.data.get("uuid", ""))


class LocalLogSource(ConversationSource):
    """Source backed by Claude Code's local JSONL logs."""

    source_type = LOCAL

    def __init__(self, base_path: Path | None = None):
        self._base_path = base_path

    def get_base_path(self) -> Path:
        return self._base_path or get_claude_code_path()

    def is_available(self) -> bool:
        # A missing directory just means no history yet.
        return True

    async def list_projects(self) -> list[Project]:
        return await asyncio.to_thread(self._scan_projects)

    async def list_sessions(self, options: ListSessionsOptions) -> list[Session]:
        return await asyncio.to_thread(self._scan_sessions, options)

    async def get_conversation(self, options: GetConversationOptions) -> Conversation | None:
        return await asyncio.to_thread(self._load_conversation, options)

    async def search(self, options: SearchOptions) -> list[SearchResult]:
        start, end = date_bounds(options.start_date, options.end_date, options.timezone)
        candidates = await asyncio.to_thread(
            self._collect_files, options.project_path, options.project_id
        )

        results: list[SearchResult] = []
        for i in range(0, len(candidates), FILE_BATCH_SIZE):
            if len(results) >= options.limit:
                break
            batch = candidates[i:i + FILE_BATCH_SIZE]
            batch_results = await asyncio.gather(*(
                asyncio.to_thread(self._search_file, path, options.query, start, end)
                for path in batch
            ))
            for file_results in batch_results:
                results.extend(file_results)

        results.sort(key=lambda r: r.timestamp, reverse=True)
        return results[:options.limit]

    # ── Private helpers ──────────────────────────────────────────────

    def _project_dirs(self) -> Iterator[tuple[Path, str]]:
        """Yield (directory, decoded project path) pairs in name order."""
        base = self.get_base_path()
        if not base.is_dir():
            return
        try:
            entries = sorted(base.iterdir())
        except OSError as e:
            logger.warning("Failed to list %s: %s", base, e)
            return
        for project_dir in entries:
            if project_dir.is_dir():
                yield project_dir, decode_project_path(project_dir.name)

    def _scan_projects(self) -> list[Project]:
        """Group session files by decoded project path.

        ``message_count`` counts timestamped records only, so ``summary`` lines
        and other untimed records are left out, matching session counts.
        """
        projects: dict[str, dict] = {}

        for project_dir, decoded in self._project_dirs():
            info = projects.setdefault(decoded, {
                "session_ids": set(),
                "message_count": 0,
                "last_activity": EPOCH,
            })
            for log_file in project_dir.glob("*.jsonl"):
                info["session_ids"].add(log_file.stem)
                try:
                    mtime = _mtime(log_file)
                except OSError as e:
                    logger.warning("Failed to stat %s: %s", log_file, e)
                    continue
                info["last_activity"] = max(info["last_activity"], mtime)
                info["message_count"] += len(read_records(log_file))

        return [
            Project(
                id=PROJECT_ID_PREFIX + decoded,
                name=decoded,
                path=decoded,
                source=LOCAL,
                session_count=len(info["session_ids"]),
                message_count=info["message_count"],
                last_activity=info["last_activity"],
            )
            for decoded, info in projects.items()
        ]

    def _scan_sessions(self, options: ListSessionsOptions) -> list[Session]:
        start, end = date_bounds(options.start_date, options.end_date, options.timezone)
        sessions = []

        for project_dir, decoded in self._project_dirs():
            if not _project_matches(decoded, options.project_path, options.project_id):
                continue

            for log_file in sorted(project_dir.glob("*.jsonl")):
                records = read_records(log_file)
                if not records:
                    continue

                session_start = min(r.timestamp for r in records)
                session_end = max(r.timestamp for r in records)
                if start and session_end < start:
                    continue
                if end and session_start > end:
                    continue

                sessions.append(Session(
                    id=log_file.stem,
                    source=LOCAL,
                    project_id=PROJECT_ID_PREFIX + decoded,
                    project_name=decoded,
                    created_at=session_start,
                    updated_at=session_end,
                    message_count=len(records),
                ))

        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions[options.offset:options.offset + options.limit]

    def _load_conversation(self, options: GetConversationOptions) -> Conversation | None:
        allowed = set(options.message_types or DEFAULT_ROLES)
        if "/" in options.session_id or "\\" in options.session_id:
            return None

        for project_dir, decoded in self._project_dirs():
            log_file = project_dir / f"{options.session_id}.jsonl"
            if not log_file.is_file():
                continue

            records = read_records(log_file)
            messages = [
                Message(
                    id=record.uuid,
                    role=record.role,
                    content=extract_content(record.data),
                    timestamp=record.timestamp,
                )
                for record in records
                if record.role in allowed
            ]
            messages.sort(key=lambda m: m.timestamp)

            if records:
                created = min(r.timestamp for r in records)
                updated = max(r.timestamp for r in records)
            else:
                created = updated = _mtime(log_file)

            session = Session(
                id=options.session_id,
                source=LOCAL,
                project_id=PROJECT_ID_PREFIX + decoded,
                project_name=decoded,
                created_at=created,
                updated_at=updated,
                message_count=len(messages),
            )
            return Conversation(
                id=options.session_id,
                source=LOCAL,
                session=session,
                messages=messages[options.offset:options.offset + options.limit],
            )

        return None

    def _collect_files(self, project_path: str | None, project_id: str | None) -> list[Path]:
        files = []
        for project_dir, decoded in self._project_dirs():
            if _project_matches(decoded, project_path, project_id):
                files.extend(sorted(project_dir.glob("*.jsonl")))
        return files

    def _search_file(
        self,
        path: Path,
        query: str,
        start: datetime | None,
        end: datetime | None,
    ) -> list[SearchResult]:
        if _outside_range(path, start, end):
            return []

        results = []
        for record in read_records(path, start, end):
            snippet = build_snippet(extract_content(record.data), query)
            if snippet is None:
                continue
            results.append(SearchResult(
                source=LOCAL,
                session_id=str(record.data.get("sessionId") or path.stem),
                message_id=record.uuid,
                snippet=snippet,
                timestamp=record.timestamp,
            ))
        return results


def decode_project_path(dir_name: str) -> str:
    """Decode a project directory name: -Users-alice-app -> Users/alice/app."""
    decoded = dir_name.replace("-", "/")
    if decoded.startswith("/"):
        decoded = decoded[1:]
    return decoded


def extract_content(data: dict) -> str:
    """Flatten a record's message content into plain text.

    Text blocks contribute their text; any other block contributes its JSON
    form so tool calls stay searchable.
    """
    message = data.get("message")
    if not isinstance(message, dict):
        return ""
    content = message.get("content")

    if isinstance(content, str):
        return content

    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text" and block.get("text"):
                parts.append(str(block["text"]))
            else:
                parts.append(json.dumps(block, separators=(",", ":"), ensure_ascii=False))
        return " ".join(parts)

    return ""


def read_records(
    path: Path,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[_Record]:
    """Parse a session's JSONL file, keeping records inside [start, end].

    Blank lines, undecodable bytes, bad JSON and records without a usable
    timestamp are skipped one line at a time.
    """
    records = []

    try:
        with path.open("rb") as f:
            for line_num, raw in enumerate(f, 1):
                try:
                    line = raw.decode("utf-8").strip()
                except UnicodeDecodeError as e:
                    logger.debug("Undecodable line at %s:%d: %s", path, line_num, e)
                    continue
                if not line:
                    continue
                try:
                    data = json.loads(line)
                except json.JSONDecodeError as e:
                    logger.debug("Bad JSON at %s:%d: %s", path, line_num, e)
                    continue
                if not isinstance(data, dict):
                    continue

                timestamp = parse_iso(data.get("timestamp"))
                if timestamp is None:
                    logger.debug("No timestamp at %s:%d", path, line_num)
                    continue
                if start and timestamp < start:
                    continue
                if end and timestamp > end:
                    continue

                records.append(_Record(data=data, timestamp=timestamp))
    except OSError as e:
        logger.warning("Failed to read JSONL %s: %s", path, e)

    return records


def _project_matches(decoded: str, project_path: str | None, project_id: str | None) -> bool:
    if project_path and decoded != project_path:
        return False
    if project_id and PROJECT_ID_PREFIX + decoded != project_id:
        return False
    return True


def _mtime(path: Path) -> datetime:
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def _outside_range(path: Path, start: datetime | None, end: datetime | None) -> bool:
    """Return True if the file's timestamps rule out any record in [start, end].

    File times only approximate record times, so a stat failure never skips.
    """
    if start is None and end is None:
        return False

    try:
        stat = path.stat()
    except OSError:
        return False

    modified = stat.st_mtime
    created = getattr(stat, "st_birthtime", modified)
    oldest = datetime.fromtimestamp(min(created, modified), tz=timezone.utc)
    newest = datetime.fromtimestamp(modified, tz=timezone.utc)

    if end and oldest > end:
        return True
    if start and newest < start:
        return True
    return False
