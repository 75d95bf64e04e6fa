"""
Unit tests for recall over chunks and learnings.
"""

from datetime import date

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from profundo.core.models import LearningRecord, Origin, Query
from profundo.harvest.learnings import LearningsLog
from profundo.providers.openrouter import ChatClient
from profundo.rag.embeddings import EmbeddingClient
from profundo.rag.expansion import QueryExpander
from profundo.rag.indexer import Indexer
from profundo.rag.retriever import Retriever
from profundo.rag.store import VectorStore
from conftest import FakeOpenAI, session_event, write_session


def topic_vector(text):
    text = text.lower()
    if "postgres" in text or "database" in text:
        return [1.0, 0.0, 0.0]
    if "garden" in text:
        return [0.0, 1.0, 0.0]
    return [0.0, 0.0, 1.0]


def index_sessions(paths, fake):
    write_session(paths.sessions_dir, "db-session", [
        session_event("user", "should we move postgres to a managed host?", "2026-01-05T10:00:00Z"),
        session_event("assistant", "yes, managed postgres saves ops time", "2026-01-05T10:00:10Z"),
    ])
    write_session(paths.sessions_dir, "garden-session", [
        session_event("user", "when do I plant the garden tomatoes?", "2026-01-07T09:00:00Z"),
        session_event("assistant", "after the last frost", "2026-01-07T09:00:10Z"),
    ])
    embedder = EmbeddingClient(fake, model="m")
    Indexer(paths, VectorStore(paths.db_path), embedder, concurrency=1).run()
    return embedder


class TestRetriever:
    """Tests for Retriever.recall."""

    def test_finds_semantically_matching_chunk(self, paths):
        fake = FakeOpenAI(vector_for=topic_vector)
        embedder = index_sessions(paths, fake)
        retriever = Retriever(VectorStore(paths.db_path), embedder)

        results = retriever.recall(Query(text="database hosting", k=1, threshold=0.3))
        assert len(results) == 1
        assert results[0].origin is Origin.CHUNK
        assert results[0].session_id == "db-session"
        assert abs(results[0].raw_score - 1.0) < 1e-6

    def test_threshold_excludes_unrelated(self, paths):
        fake = FakeOpenAI(vector_for=topic_vector)
        embedder = index_sessions(paths, fake)
        retriever = Retriever(VectorStore(paths.db_path), embedder)
        results = retriever.recall(Query(text="postgres", k=5, threshold=0.3))
        assert [r.session_id for r in results] == ["db-session"]

    def test_date_filter(self, paths):
        fake = FakeOpenAI(vector_for=topic_vector)
        embedder = index_sessions(paths, fake)
        retriever = Retriever(VectorStore(paths.db_path), embedder)
        results = retriever.recall(Query(text="postgres", k=5, since=date(2026, 1, 6)))
        assert all(r.session_id == "garden-session" for r in results)

    def test_learnings_participate(self, paths):
        fake = FakeOpenAI(vector_for=topic_vector)
        embedder = index_sessions(paths, fake)
        log = LearningsLog(paths.learnings_path)
        log.append([LearningRecord(kind="decision", text="Move postgres to a managed host",
                                   session_id="db-session", timestamp="2026-01-05T10:00:00Z",
                                   harvest_id="h1")])
        retriever = Retriever(VectorStore(paths.db_path), embedder, learnings=log)

        results = retriever.recall(Query(text="postgres", k=5, threshold=0.3))
        assert {r.origin for r in results} == {Origin.CHUNK, Origin.LEARNING}

        results = retriever.recall(Query(text="postgres", k=5, threshold=0.3, include_learnings=False))
        assert {r.origin for r in results} == {Origin.CHUNK}

    def test_expansion_terms_are_searched(self, paths):
        fake = FakeOpenAI(vector_for=topic_vector, respond=lambda messages: '["vegetable garden"]')
        embedder = index_sessions(paths, fake)
        retriever = Retriever(VectorStore(paths.db_path), embedder,
                              expander=QueryExpander(ChatClient(fake, model="c")))

        expansions = retriever.expand("growing tomatoes")
        assert expansions == ["vegetable garden"]
        results = retriever.recall(Query(text="growing tomatoes", expansions=expansions, k=1, threshold=0.5))
        assert results[0].session_id == "garden-session"

    def test_expansion_failure_falls_back(self, paths):
        fake = FakeOpenAI(respond=lambda messages: "not json")
        retriever = Retriever(VectorStore(paths.db_path), EmbeddingClient(fake),
                              expander=QueryExpander(ChatClient(fake, model="c")))
        assert retriever.expand("anything") == []
