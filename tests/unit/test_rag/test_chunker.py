"""
Unit tests for the turn chunker.
"""

import json
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from profundo.rag.chunker import TurnChunker
from profundo.rag.session import parse_lines
from conftest import conversation, session_event


def transcript_of(events, session_id="s1"):
    return parse_lines([json.dumps(e) for e in events], session_id)


class TestTurnChunker:
    """Tests for turn-pair chunking."""

    def test_one_chunk_per_exchange(self):
        chunks = list(TurnChunker().chunk(transcript_of(conversation("2026-01-05", 3))))
        assert [c.position for c in chunks] == [0, 1, 2]
        assert chunks[0].text == "User: question 0\n\nAssistant: answer 0"
        assert chunks[0].timestamp == "2026-01-05T10:00:00Z"
        assert all(c.session_id == "s1" for c in chunks)

    def test_deterministic(self):
        events = conversation("2026-01-05", 4)
        first = list(TurnChunker().chunk(transcript_of(events)))
        second = list(TurnChunker().chunk(transcript_of(events)))
        assert first == second
        assert [c.chunk_id for c in first] == [c.chunk_id for c in second]

    def test_consecutive_messages_merge(self):
        events = [
            session_event("user", "part one", "2026-01-05T10:00:00Z"),
            session_event("user", "part two", "2026-01-05T10:00:01Z"),
            session_event("assistant", "reply a", "2026-01-05T10:00:02Z"),
            session_event("assistant", "reply b", "2026-01-05T10:00:03Z"),
        ]
        chunks = list(TurnChunker().chunk(transcript_of(events)))
        assert len(chunks) == 1
        assert chunks[0].text == "User: part one\n\npart two\n\nAssistant: reply a\n\nreply b"

    def test_unanswered_final_turn_is_held_back(self):
        events = conversation("2026-01-05", 2) + [
            session_event("user", "still waiting", "2026-01-05T18:00:00Z"),
        ]
        chunks = list(TurnChunker().chunk(transcript_of(events)))
        assert len(chunks) == 2

        events.append(session_event("assistant", "here you go", "2026-01-05T18:00:10Z"))
        chunks = list(TurnChunker().chunk(transcript_of(events)))
        assert len(chunks) == 3
        assert chunks[2].text == "User: still waiting\n\nAssistant: here you go"

    def test_leading_assistant_messages_ignored(self):
        events = [session_event("assistant", "welcome", "2026-01-05T09:00:00Z")]
        events += conversation("2026-01-05", 1)
        chunks = list(TurnChunker().chunk(transcript_of(events)))
        assert len(chunks) == 1
        assert "welcome" not in chunks[0].text

    def test_tool_only_messages_skipped(self):
        events = [
            session_event("user", "run it", "2026-01-05T10:00:00Z"),
            session_event("assistant", [{"type": "toolCall", "name": "x"}], "2026-01-05T10:00:01Z"),
            session_event("assistant", "done", "2026-01-05T10:00:02Z"),
        ]
        chunks = list(TurnChunker().chunk(transcript_of(events)))
        assert chunks[0].text == "User: run it\n\nAssistant: done"

    def test_restart_yields_suffix(self):
        transcript = transcript_of(conversation("2026-01-05", 5))
        full = list(TurnChunker().chunk(transcript))
        assert list(TurnChunker().chunk(transcript, start=2)) == full[2:]
        assert list(TurnChunker().chunk(transcript, start=9)) == []

    def test_negative_start_rejected(self):
        with pytest.raises(ValueError):
            list(TurnChunker().chunk(transcript_of([]), start=-1))

    def test_empty_transcript(self):
        assert list(TurnChunker().chunk(transcript_of([]))) == []
