"""
Harvest run: extract learnings from every session that grew enough.

A session is harvested when it has never been harvested and has at least
min_messages messages, or when it gained at least min_messages messages
since its last harvest. Failures are per session: one session's bad
answer never stops the others, and a failed session's cursor stays put so
the next run retries it.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import List, Optional

from ..core.config import Paths
from ..core.errors import ExtractionError, ProfundoError, ProviderError, StorageError
from ..core.lock import workspace_lock
from ..core.models import Cursor, timestamp_date
from ..rag.index_state import CursorStore
from ..rag.session import Transcript, discover_sessions, load_transcript, session_file_size
from .extractor import HarvestExtractor
from .learnings import LearningsLog

logger = logging.getLogger(__name__)


@dataclass
class SessionFailure:
    session_id: str
    error: ProfundoError

    @property
    def reason(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


@dataclass
class HarvestReport:
    harvested: List[str] = field(default_factory=list)
    records_written: int = 0
    skipped: int = 0
    failures: List[SessionFailure] = field(default_factory=list)


def is_eligible(transcript: Transcript, cursor: Optional[Cursor], min_messages: int) -> bool:
    """Whether a session has enough new messages to harvest"""
    already = cursor.position if cursor else 0
    return transcript.message_count >= already + min_messages


class HarvestRunner:
    """
    Runs the extractor over eligible sessions and appends to the log.

    Args:
        paths: Workspace paths
        extractor: Harvest extractor
        min_messages: Minimum (new) messages for a session to qualify
    """

    def __init__(self, paths: Paths, extractor: HarvestExtractor, min_messages: int = 4):
        self.paths = paths
        self.extractor = extractor
        self.min_messages = min_messages
        self.log = LearningsLog(paths.learnings_path)

    def run(self, since: Optional[date] = None) -> HarvestReport:
        """
        Harvest all eligible sessions.

        Args:
            since: Skip sessions that started before this day

        Raises:
            AlreadyRunning: Another run holds the workspace lock
            InvariantViolation: Never absorbed
        """
        report = HarvestReport()
        with workspace_lock(self.paths.lock_path), \
                CursorStore(self.paths.harvest_cursor_path) as cursors:
            for path in discover_sessions(self.paths.sessions_dir):
                self._harvest_path(path, cursors, since, report)

        logger.info(
            f"Harvest finished: {len(report.harvested)} harvested, {report.skipped} skipped, "
            f"{len(report.failures)} failed"
        )
        return report

    def _harvest_path(self, path: Path, cursors: CursorStore,
                      since: Optional[date], report: HarvestReport) -> None:
        session_id = path.stem
        try:
            transcript = load_transcript(path)
        except StorageError as e:
            logger.error(f"Cannot harvest {session_id}: {e}")
            report.failures.append(SessionFailure(session_id, e))
            return

        started = timestamp_date(transcript.first_timestamp)
        if since is not None and started is not None and started < since:
            report.skipped += 1
            return

        if not is_eligible(transcript, cursors.read(session_id), self.min_messages):
            report.skipped += 1
            return

        try:
            records = self.extractor.extract(transcript)
        except (ExtractionError, ProviderError) as e:
            logger.error(f"Harvest failed for {session_id}: {e}")
            report.failures.append(SessionFailure(session_id, e))
            return

        try:
            file_size = session_file_size(path)
        except StorageError as e:
            logger.error(f"Cannot harvest {session_id}: {e}")
            report.failures.append(SessionFailure(session_id, e))
            return

        self.log.append(records)
        cursors.advance(
            session_id,
            transcript.message_count,
            timestamp=transcript.last_timestamp,
            file_size=file_size,
        )
        report.harvested.append(session_id)
        report.records_written += len(records)
