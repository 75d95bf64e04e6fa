"""
Session transcript parsing.

Session logs are append-only JSONL files written by the host chat
application, one event per line:

    {"type": "message", "timestamp": "2026-01-05T10:00:00Z",
     "message": {"role": "user", "content": [{"type": "text", "text": "..."}],
                 "model": "...", "usage": {"input": 10, "output": 20, ...}}}

Only text content blocks are kept; tool calls, tool results and images are
dropped. Malformed lines are logged and skipped so that one bad write
cannot hide the rest of a session.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Dict, Any

from ..core.errors import StorageError

logger = logging.getLogger(__name__)

SPEAKER_LABELS = {"user": "User", "assistant": "Assistant"}


@dataclass
class TokenStats:
    """Aggregated token usage and cost"""
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_write_tokens: int = 0
    total_tokens: int = 0
    input_cost: float = 0.0
    output_cost: float = 0.0
    cache_read_cost: float = 0.0
    cache_write_cost: float = 0.0
    total_cost: float = 0.0
    message_count: int = 0

    @property
    def cache_hit_rate(self) -> float:
        """Share of prompt tokens served from cache"""
        total_input = self.input_tokens + self.cache_read_tokens
        if total_input == 0:
            return 0.0
        return self.cache_read_tokens / total_input

    def add(self, other: 'TokenStats') -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cache_read_tokens += other.cache_read_tokens
        self.cache_write_tokens += other.cache_write_tokens
        self.total_tokens += other.total_tokens
        self.input_cost += other.input_cost
        self.output_cost += other.output_cost
        self.cache_read_cost += other.cache_read_cost
        self.cache_write_cost += other.cache_write_cost
        self.total_cost += other.total_cost
        self.message_count += other.message_count

    @classmethod
    def from_usage(cls, usage: Dict[str, Any]) -> 'TokenStats':
        """Build from one message's `usage` object"""
        cost = usage.get("cost") or {}
        return cls(
            input_tokens=int(usage.get("input") or 0),
            output_tokens=int(usage.get("output") or 0),
            cache_read_tokens=int(usage.get("cacheRead") or 0),
            cache_write_tokens=int(usage.get("cacheWrite") or 0),
            total_tokens=int(usage.get("totalTokens") or 0),
            input_cost=float(cost.get("input") or 0.0),
            output_cost=float(cost.get("output") or 0.0),
            cache_read_cost=float(cost.get("cacheRead") or 0.0),
            cache_write_cost=float(cost.get("cacheWrite") or 0.0),
            total_cost=float(cost.get("total") or 0.0),
            message_count=1,
        )


@dataclass
class Message:
    """One chat message from a session log"""
    role: str
    text: str
    timestamp: Optional[str] = None
    model: Optional[str] = None
    usage: Optional[TokenStats] = None


@dataclass
class Transcript:
    """
    A parsed session.

    Attributes:
        session_id: File stem of the session log
        messages: All "message" events in file order (text may be empty)
        token_stats: Usage summed over every message that reported usage
    """
    session_id: str
    messages: List[Message] = field(default_factory=list)
    token_stats: TokenStats = field(default_factory=TokenStats)
    path: Optional[Path] = None

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def first_timestamp(self) -> Optional[str]:
        for message in self.messages:
            if message.timestamp:
                return message.timestamp
        return None

    @property
    def last_timestamp(self) -> Optional[str]:
        for message in reversed(self.messages):
            if message.timestamp:
                return message.timestamp
        return None

    def render(self) -> str:
        """
        Plain-text rendering of every text message, for LLM prompts.

        Roles other than user and assistant keep their own (uppercased) name.
        """
        lines = []
        for message in self.messages:
            if not message.text:
                continue
            speaker = SPEAKER_LABELS.get(message.role) or (message.role or "unknown").upper()
            lines.append(f"{speaker}: {message.text}")
        return "\n\n".join(lines)


def extract_text(content: Any) -> str:
    """Join the text blocks of a message's content"""
    if isinstance(content, str):
        return content.strip()
    if not isinstance(content, list):
        return ""

    parts = []
    for block in content:
        if isinstance(block, dict) and block.get("type") == "text":
            text = block.get("text")
            if isinstance(text, str) and text:
                parts.append(text)
    return "\n".join(parts).strip()


def parse_lines(lines, session_id: str) -> Transcript:
    """Parse an iterable of JSONL lines into a Transcript"""
    transcript = Transcript(session_id=session_id)

    for line_no, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping malformed line {line_no} in {session_id}: {e}")
            continue
        if not isinstance(event, dict) or event.get("type") != "message":
            continue

        body = event.get("message")
        if not isinstance(body, dict):
            continue

        usage = None
        if isinstance(body.get("usage"), dict):
            usage = TokenStats.from_usage(body["usage"])
            transcript.token_stats.add(usage)

        transcript.messages.append(Message(
            role=str(body.get("role") or ""),
            text=extract_text(body.get("content")),
            timestamp=event.get("timestamp"),
            model=body.get("model"),
            usage=usage,
        ))

    return transcript


def load_transcript(path: Path) -> Transcript:
    """
    Read one session log.

    Raises:
        StorageError: If the file cannot be read
    """
    path = Path(path)
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            transcript = parse_lines(f, path.stem)
    except OSError as e:
        raise StorageError(f"Cannot read session {path}: {e}") from e
    transcript.path = path
    return transcript


def session_file_size(path: Path) -> int:
    """
    Current size of a session log in bytes.

    Raises:
        StorageError: If the file vanished or cannot be stat-ed
    """
    try:
        return Path(path).stat().st_size
    except OSError as e:
        raise StorageError(f"Cannot stat session {path}: {e}") from e


def discover_sessions(sessions_dir: Path) -> List[Path]:
    """
    List session logs, sorted by name.

    Deleted sessions (".deleted" in the name) and macOS resource forks
    ("._" prefix) are ignored.
    """
    sessions_dir = Path(sessions_dir)
    if not sessions_dir.is_dir():
        logger.info(f"Sessions directory does not exist: {sessions_dir}")
        return []

    return sorted(
        path for path in sessions_dir.glob("*.jsonl")
        if path.is_file()
        and ".deleted" not in path.name
        and not path.name.startswith("._")
    )
