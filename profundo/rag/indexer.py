"""
Embed run: bring the vector store up to date with the session logs.

For each session the run resumes from its cursor, chunks only the new
exchanges, embeds them, and for every chunk in order: appends it to the
store, then advances the cursor past it. Store-before-cursor means a crash
between the two steps leaves an entry the cursor has not yet counted; the
next run re-chunks it, finds it already stored (by chunk_id) and only moves
the cursor. No duplicate is ever written.

Embedding requests run on a small thread pool, but results are consumed
strictly in submission order, so the cursor never skips over a chunk whose
request failed.
"""

import logging
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from itertools import islice
from pathlib import Path
from typing import Iterable, Iterator, List

from ..core.config import Paths
from ..core.errors import ProfundoError, ProviderError, StorageError
from ..core.lock import workspace_lock
from ..core.models import Chunk, Cursor, EmbeddedChunk
from .chunker import TurnChunker
from .embeddings import EmbeddingClient
from .index_state import CursorStore
from .session import discover_sessions, load_transcript, session_file_size
from .store import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class SourceFailure:
    """Where and why one source stopped"""
    source: str
    position: int
    error: ProfundoError

    @property
    def reason(self) -> str:
        return f"{type(self.error).__name__}: {self.error}"


@dataclass
class EmbedReport:
    sessions_seen: int = 0
    sessions_unchanged: int = 0
    chunks_embedded: int = 0
    chunks_already_stored: int = 0
    failures: List[SourceFailure] = field(default_factory=list)
    halted: bool = False


def _batched(chunks: Iterable[Chunk], size: int) -> Iterator[List[Chunk]]:
    iterator = iter(chunks)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


class _SourceHalted(Exception):
    """Internal: a source stopped on a provider failure (already reported)"""

    def __init__(self, error: ProviderError):
        super().__init__(str(error))
        self.error = error


class Indexer:
    """
    Incremental indexer over a sessions directory.

    Args:
        paths: Workspace paths
        store: Vector store
        embedder: Embedding client; its model id tags every stored vector
        batch_size: Chunks per embedding request
        concurrency: Embedding requests in flight
    """

    def __init__(
        self,
        paths: Paths,
        store: VectorStore,
        embedder: EmbeddingClient,
        batch_size: int = 32,
        concurrency: int = 4,
    ):
        self.paths = paths
        self.store = store
        self.embedder = embedder
        self.chunker = TurnChunker()
        self.batch_size = batch_size
        self.concurrency = max(1, concurrency)

    def run(self, full: bool = False) -> EmbedReport:
        """
        Index every session log.

        Args:
            full: Re-embed everything: reset each cursor and drop the
                session's stored entries for the current model first

        Raises:
            AlreadyRunning: Another run holds the workspace lock
            InvariantViolation: Never absorbed
        """
        report = EmbedReport()
        sessions = discover_sessions(self.paths.sessions_dir)
        logger.info(f"Found {len(sessions)} session files in {self.paths.sessions_dir}")

        with workspace_lock(self.paths.lock_path), \
                CursorStore(self.paths.cursor_path) as cursors, \
                ThreadPoolExecutor(max_workers=self.concurrency) as pool:
            for path in sessions:
                report.sessions_seen += 1
                try:
                    self._index_session(path, cursors, pool, full, report)
                except _SourceHalted as halted:
                    if halted.error.retryable:
                        logger.error("Provider unavailable, stopping the embed run")
                        report.halted = True
                        break
                except StorageError as e:
                    position = (cursors.read(path.stem) or Cursor(path.stem)).position
                    logger.error(f"Cannot index {path.stem} at position {position}: {e}")
                    report.failures.append(SourceFailure(path.stem, position, e))

        logger.info(
            f"Embed finished: {report.chunks_embedded} chunks embedded, "
            f"{report.chunks_already_stored} already stored, {len(report.failures)} failures"
        )
        return report

    def _index_session(self, path: Path, cursors: CursorStore, pool: ThreadPoolExecutor,
                       full: bool, report: EmbedReport) -> None:
        session_id = path.stem
        model = self.embedder.model_id
        file_size = session_file_size(path)

        if full:
            self.store.delete_source(session_id, model=model)
            cursors.reset(session_id)

        cursor = cursors.read(session_id)
        if cursor is not None and cursor.file_size == file_size:
            report.sessions_unchanged += 1
            return

        transcript = load_transcript(path)
        start = cursor.position if cursor else 0
        chunks = self.chunker.chunk(transcript, start=start)

        in_flight = deque()

        def submit(batch: List[Chunk]):
            new = [c for c in batch if not self.store.contains(c.chunk_id, model)]
            future = pool.submit(self.embedder.embed_batch, [c.text for c in new]) if new else None
            in_flight.append((batch, new, future))

        batches = _batched(chunks, self.batch_size)
        position = start
        try:
            for batch in islice(batches, self.concurrency):
                submit(batch)

            while in_flight:
                batch, new, future = in_flight.popleft()
                try:
                    vectors = future.result() if future is not None else []
                except ProviderError as e:
                    logger.error(f"Embedding failed for {session_id} at position {batch[0].position}: {e}")
                    report.failures.append(SourceFailure(session_id, batch[0].position, e))
                    raise _SourceHalted(e) from e

                embedded = {c.chunk_id: v for c, v in zip(new, vectors)}
                for chunk in batch:
                    vector = embedded.get(chunk.chunk_id)
                    if vector is None:
                        report.chunks_already_stored += 1
                    else:
                        self.store.append(EmbeddedChunk(chunk=chunk, vector=vector, model=model))
                        report.chunks_embedded += 1
                    position = chunk.position + 1
                    cursors.advance(session_id, position, timestamp=chunk.timestamp)

                next_batch = next(batches, None)
                if next_batch is not None:
                    submit(next_batch)
        finally:
            for _, _, future in in_flight:
                if future is not None:
                    future.cancel()

        cursors.advance(session_id, position, file_size=file_size)
        logger.debug(f"Indexed {session_id} up to position {position}")
