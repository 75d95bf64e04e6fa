"""
Append-only learnings log (learnings.jsonl).

One LearningRecord per line. Records are never rewritten: re-harvesting a
session appends records with a new harvest_id, and readers take the most
recent harvest of each session as current.
"""

import json
import logging
import os
from collections import OrderedDict
from pathlib import Path
from typing import Dict, Iterator, List, Optional

from ..core.errors import StorageError
from ..core.models import LearningRecord

logger = logging.getLogger(__name__)


class LearningsLog:
    """Reader/writer for the learnings JSONL file"""

    def __init__(self, path: Path):
        self.path = Path(path)

    def append(self, records: List[LearningRecord]) -> None:
        """Durably append one harvest's records"""
        if not records:
            return
        payload = "".join(json.dumps(r.to_dict(), ensure_ascii=False) + "\n" for r in records)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
        except OSError as e:
            raise StorageError(f"Cannot append to learnings log {self.path}: {e}") from e
        logger.debug(f"Appended {len(records)} records to {self.path}")

    def __iter__(self) -> Iterator[LearningRecord]:
        """All records in file order; malformed lines are skipped"""
        if not self.path.exists():
            return
        try:
            with open(self.path, encoding="utf-8") as f:
                for line_no, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        yield LearningRecord.from_dict(json.loads(line))
                    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                        logger.warning(f"Skipping malformed learnings line {line_no}: {e}")
        except OSError as e:
            raise StorageError(f"Cannot read learnings log {self.path}: {e}") from e

    def latest(self) -> List[LearningRecord]:
        """Records of the most recent harvest of each session, in file order"""
        by_session: Dict[str, "OrderedDict[str, List[LearningRecord]]"] = {}
        for record in self:
            harvests = by_session.setdefault(record.session_id, OrderedDict())
            harvests.setdefault(record.harvest_id, []).append(record)
            harvests.move_to_end(record.harvest_id)

        current = []
        for harvests in by_session.values():
            current.extend(next(reversed(harvests.values())))
        return current

    def search(self, query: Optional[str] = None, limit: int = 10) -> List[LearningRecord]:
        """
        Current records matching query, from the `limit` most recent sessions.

        Matching is a case-insensitive substring test over text and tags.
        """
        records = self.latest()
        if query:
            needle = query.lower()
            records = [
                r for r in records
                if needle in r.text.lower() or any(needle in tag.lower() for tag in r.tags)
            ]

        newest: Dict[str, str] = {}
        for record in records:
            key = record.timestamp or record.harvested_at or ""
            newest[record.session_id] = max(newest.get(record.session_id, ""), key)
        keep = set(sorted(newest, key=lambda s: newest[s], reverse=True)[:limit])

        return sorted(
            (r for r in records if r.session_id in keep),
            key=lambda r: newest[r.session_id],
            reverse=True,
        )
