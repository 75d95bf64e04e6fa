"""
Data models for Profundo

Chunks and cursors are frozen: once produced they never change, and every
cursor store call hands back a fresh record instead of mutating state the
caller holds.
"""

import hashlib
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, date
from enum import Enum
from typing import Optional, List, Dict, Any

import numpy as np


LEARNING_KINDS = ("topic", "decision", "fact", "action_item", "summary")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO8601 timestamp (with optional trailing Z), or None"""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


def timestamp_date(value: Optional[str]) -> Optional[date]:
    """Calendar date of an ISO8601 timestamp"""
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


@dataclass(frozen=True)
class Chunk:
    """
    One user+assistant exchange from a session transcript.

    Attributes:
        session_id: Source session (transcript file stem)
        position: 0-based sequence number within the session
        text: "User: ...\\n\\nAssistant: ..." rendering of the exchange
        timestamp: Timestamp of the user message that opened the turn
    """
    session_id: str
    position: int
    text: str
    timestamp: str

    @property
    def char_length(self) -> int:
        return len(self.text)

    @property
    def chunk_id(self) -> str:
        """Deterministic content hash used to detect already-stored chunks"""
        content = f"{self.session_id}|{self.position}|{self.timestamp}|{self.text[:100]}"
        return hashlib.sha256(content.encode()).hexdigest()[:16]


@dataclass
class EmbeddedChunk:
    """A chunk plus its vector and the model that produced it"""
    chunk: Chunk
    vector: np.ndarray
    model: str
    row_id: Optional[int] = None
    created_at: Optional[str] = None

    @property
    def dim(self) -> int:
        return int(self.vector.shape[0])


@dataclass(frozen=True)
class Cursor:
    """
    Progress marker for one transcript source.

    position is the next position to process (everything before it is done).
    generation is bumped by every reset; version by every persisted change.
    """
    source: str
    position: int = 0
    timestamp: Optional[str] = None
    generation: int = 0
    version: int = 0
    file_size: Optional[int] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        del data["source"]
        return data

    @classmethod
    def from_dict(cls, source: str, data: Dict[str, Any]) -> 'Cursor':
        return cls(
            source=source,
            position=int(data.get("position", 0)),
            timestamp=data.get("timestamp"),
            generation=int(data.get("generation", 0)),
            version=int(data.get("version", 0)),
            file_size=data.get("file_size"),
            updated_at=data.get("updated_at"),
        )


@dataclass
class LearningRecord:
    """One structured insight extracted from a session by a harvest run"""
    kind: str
    text: str
    session_id: str
    timestamp: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    harvest_id: str = ""
    harvested_at: str = ""
    model: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)
    record_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def __post_init__(self):
        if self.kind not in LEARNING_KINDS:
            raise ValueError(
                f"Invalid learning kind '{self.kind}'. Must be one of: {list(LEARNING_KINDS)}"
            )

    @property
    def date(self) -> Optional[date]:
        return timestamp_date(self.timestamp)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'LearningRecord':
        kwargs = {
            "kind": data["kind"],
            "text": data["text"],
            "session_id": data["session_id"],
            "timestamp": data.get("timestamp"),
            "tags": list(data.get("tags") or []),
            "harvest_id": data.get("harvest_id", ""),
            "harvested_at": data.get("harvested_at", ""),
            "model": data.get("model", ""),
            "metadata": dict(data.get("metadata") or {}),
        }
        if data.get("record_id"):
            kwargs["record_id"] = data["record_id"]
        return cls(**kwargs)


@dataclass
class Query:
    """A single recall request"""
    text: str
    expansions: List[str] = field(default_factory=list)
    k: int = 5
    since: Optional[date] = None
    until: Optional[date] = None
    threshold: Optional[float] = None
    include_learnings: bool = True

    def __post_init__(self):
        if self.k < 1:
            raise ValueError(f"k must be at least 1, got {self.k}")
        if self.since and self.until and self.since > self.until:
            raise ValueError(f"since ({self.since}) is after until ({self.until})")

    @property
    def texts(self) -> List[str]:
        """Query text followed by any expansion terms"""
        return [self.text] + [term for term in self.expansions if term and term != self.text]


class Origin(Enum):
    CHUNK = "chunk"
    LEARNING = "learning"


@dataclass
class ResultItem:
    """One entry of a fused recall result"""
    rank: int
    score: float
    raw_score: float
    origin: Origin
    chunk: Optional[Chunk] = None
    learning: Optional[LearningRecord] = None

    @property
    def timestamp(self) -> Optional[str]:
        if self.origin is Origin.CHUNK:
            return self.chunk.timestamp
        return self.learning.timestamp

    @property
    def session_id(self) -> str:
        if self.origin is Origin.CHUNK:
            return self.chunk.session_id
        return self.learning.session_id

    @property
    def text(self) -> str:
        if self.origin is Origin.CHUNK:
            return self.chunk.text
        return self.learning.text
