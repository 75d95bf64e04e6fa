"""
Unit tests for the data models.
"""

import pytest
from dataclasses import FrozenInstanceError
from datetime import date

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from profundo.core.models import Chunk, Cursor, LearningRecord, Query


class TestChunk:
    """Tests for Chunk identity."""

    def test_chunk_id_is_deterministic(self):
        """Same content always hashes to the same id."""
        a = Chunk("s1", 0, "User: hi\n\nAssistant: hello", "2026-01-05T10:00:00Z")
        b = Chunk("s1", 0, "User: hi\n\nAssistant: hello", "2026-01-05T10:00:00Z")
        assert a.chunk_id == b.chunk_id

    def test_chunk_id_depends_on_position(self):
        """Identical text at another position is a different chunk."""
        a = Chunk("s1", 0, "same", "2026-01-05T10:00:00Z")
        b = Chunk("s1", 1, "same", "2026-01-05T10:00:00Z")
        assert a.chunk_id != b.chunk_id

    def test_chunk_is_frozen(self):
        """Chunks cannot be mutated."""
        chunk = Chunk("s1", 0, "text", "")
        with pytest.raises(FrozenInstanceError):
            chunk.text = "other"

    def test_char_length(self):
        assert Chunk("s1", 0, "abcd", "").char_length == 4


class TestCursor:
    """Tests for Cursor serialization."""

    def test_round_trip(self):
        """to_dict/from_dict preserve every field."""
        cursor = Cursor("s1", position=3, timestamp="t", generation=2, version=5, file_size=10)
        assert Cursor.from_dict("s1", cursor.to_dict()) == cursor


class TestLearningRecord:
    """Tests for LearningRecord validation."""

    def test_rejects_unknown_kind(self):
        with pytest.raises(ValueError):
            LearningRecord(kind="opinion", text="x", session_id="s1")

    def test_date_from_timestamp(self):
        record = LearningRecord(kind="fact", text="x", session_id="s1",
                                timestamp="2026-01-05T23:00:00Z")
        assert record.date == date(2026, 1, 5)

    def test_from_dict_keeps_record_id(self):
        record = LearningRecord(kind="fact", text="x", session_id="s1")
        assert LearningRecord.from_dict(record.to_dict()).record_id == record.record_id


class TestQuery:
    """Tests for Query validation."""

    def test_k_must_be_positive(self):
        with pytest.raises(ValueError):
            Query(text="q", k=0)

    def test_since_after_until_rejected(self):
        with pytest.raises(ValueError):
            Query(text="q", since=date(2026, 2, 1), until=date(2026, 1, 1))

    def test_texts_deduplicates_query(self):
        """Expansion equal to the query is not searched twice."""
        query = Query(text="q", expansions=["q", "other", ""])
        assert query.texts == ["q", "other"]
