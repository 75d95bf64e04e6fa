"""
Persistent cursor state for incremental indexing and harvesting.

Stores, per session, the next position to process. A no-op embed run
reads the cursors, sees nothing new, and makes zero provider calls.

CS Concept: **Watermarking** - tracking progress through an append-only
stream. Similar to Kafka consumer offsets: the watermark only moves
forward, except when a consumer explicitly rewinds to replay everything.

File format:
    {"format": 1,
     "sources": {"<session_id>": {"position": 3, "timestamp": "...",
                                  "generation": 0, "version": 7,
                                  "file_size": 1234, "updated_at": "..."}}}
"""

import json
import logging
import os
import tempfile
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional

from ..core.errors import InvariantViolation, StorageError
from ..core.models import Cursor

logger = logging.getLogger(__name__)

STATE_FORMAT = 1


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CursorStore:
    """
    Cursor records for every transcript source, persisted as one JSON file.

    Each change is written with a temp file + fsync + rename, so a crash
    leaves either the old file or the new one, never a torn write.

    Args:
        state_file: Path to the JSON state file (e.g. <memory_dir>/.profundo-cursor)

    Example:
        with CursorStore(paths.cursor_path) as cursors:
            cursor = cursors.read("session-a")      # None on first run
            cursor = cursors.advance("session-a", 1, timestamp="...")
    """

    def __init__(self, state_file: Path):
        self.state_file = Path(state_file)
        self._cursors: Dict[str, Cursor] = {}
        self._dirty = False
        self._load()

    def __enter__(self) -> 'CursorStore':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.flush()

    def _load(self) -> None:
        """Load state from JSON file; a corrupt file is an error, never a reset"""
        if not self.state_file.exists():
            logger.debug(f"No existing cursor state at {self.state_file}")
            return

        try:
            with open(self.state_file) as f:
                data = json.load(f)
            sources = data["sources"]
            self._cursors = {
                source: Cursor.from_dict(source, record)
                for source, record in sources.items()
            }
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError, AttributeError) as e:
            raise StorageError(f"Corrupt cursor state {self.state_file}: {e}") from e

        logger.debug(f"Loaded {len(self._cursors)} cursors from {self.state_file}")

    def _save(self) -> None:
        """Atomically replace the state file"""
        data = {
            "format": STATE_FORMAT,
            "sources": {
                source: cursor.to_dict()
                for source, cursor in sorted(self._cursors.items())
            },
        }
        tmp_path = None
        try:
            self.state_file.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.state_file.name}.", suffix=".tmp",
                dir=str(self.state_file.parent),
            )
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.state_file)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise StorageError(f"Cannot write cursor state {self.state_file}: {e}") from e

        self._dirty = False

    def _store(self, cursor: Cursor) -> Cursor:
        self._cursors[cursor.source] = cursor
        self._dirty = True
        self._save()
        return cursor

    def flush(self) -> None:
        """Write any pending change (every mutator already saves)"""
        if self._dirty:
            self._save()

    def read(self, source: str) -> Optional[Cursor]:
        """Current cursor for source, or None if it was never processed"""
        return self._cursors.get(source)

    def advance(
        self,
        source: str,
        position: int,
        timestamp: Optional[str] = None,
        file_size: Optional[int] = None,
    ) -> Cursor:
        """
        Move a cursor forward.

        Args:
            source: Session id
            position: New next-position; equal to the current one is allowed
                (records a new file_size without progress)
            timestamp: Timestamp of the last processed item
            file_size: Size of the session log when it was processed

        Returns:
            The persisted Cursor

        Raises:
            InvariantViolation: If position is behind the current cursor
        """
        current = self._cursors.get(source) or Cursor(source=source)
        if position < current.position:
            raise InvariantViolation(
                f"Cursor for {source} cannot move backwards "
                f"({current.position} -> {position}); use reset for a full reprocess"
            )

        cursor = replace(
            current,
            position=position,
            timestamp=timestamp if timestamp is not None else current.timestamp,
            file_size=file_size if file_size is not None else current.file_size,
            version=current.version + 1,
            updated_at=_now(),
        )
        return self._store(cursor)

    def reset(self, source: str) -> Cursor:
        """Rewind a cursor to the origin and start a new generation"""
        current = self._cursors.get(source) or Cursor(source=source)
        cursor = Cursor(
            source=source,
            position=0,
            timestamp=None,
            generation=current.generation + 1,
            version=current.version + 1,
            file_size=None,
            updated_at=_now(),
        )
        logger.info(f"Reset cursor for {source} (generation {cursor.generation})")
        return self._store(cursor)

    def all(self) -> Dict[str, Cursor]:
        """All cursors by source"""
        return dict(self._cursors)

    def __len__(self) -> int:
        return len(self._cursors)
