"""
Unit tests for the harvest extractor.
"""

import json
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from profundo.core.errors import ExtractionError
from profundo.harvest.extractor import HarvestExtractor, window_text
from profundo.harvest.prompts import strip_code_fences
from profundo.providers.openrouter import ChatClient
from profundo.rag.session import parse_lines
from conftest import FakeOpenAI, conversation

ANSWER = {
    "topics": ["postgres", "hosting"],
    "decisions": ["Use managed postgres"],
    "facts_learned": ["User prefers low-ops setups"],
    "action_items": ["Migrate staging first"],
    "summary": "Planned the database move.",
}


def transcript(turns=2, session_id="s1"):
    return parse_lines([json.dumps(e) for e in conversation("2026-01-05", turns)], session_id)


def extractor_answering(content, max_chars=50000):
    fake = FakeOpenAI(respond=lambda messages: content)
    return HarvestExtractor(ChatClient(fake, model="chat-model"), max_chars=max_chars), fake


class TestStripCodeFences:
    """Tests for fence stripping."""

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fences('```\n[1]\n```  ') == "[1]"

    def test_no_fence(self):
        assert strip_code_fences('  {"a": 1} ') == '{"a": 1}'


class TestWindowText:
    """Tests for deterministic truncation."""

    def test_short_text_untouched(self):
        assert window_text("abc", 10) == "abc"

    def test_keeps_head_and_tail(self):
        text = "H" * 50 + "M" * 100 + "T" * 50
        windowed = window_text(text, 100)
        assert windowed.startswith("H" * 50)
        assert windowed.endswith("T" * 50)
        assert "M" not in windowed
        assert "100 characters omitted" in windowed
        assert window_text(text, 100) == windowed


class TestHarvestExtractor:
    """Tests for extraction into learning records."""

    def test_builds_records_of_every_kind(self):
        extractor, _ = extractor_answering(json.dumps(ANSWER))
        records = extractor.extract(transcript())

        kinds = [r.kind for r in records]
        assert kinds == ["topic", "topic", "decision", "fact", "action_item", "summary"]
        assert len({r.harvest_id for r in records}) == 1
        assert all(r.session_id == "s1" for r in records)
        assert all(r.model == "chat-model" for r in records)
        assert records[0].timestamp == "2026-01-05T10:00:00Z"
        assert records[2].tags == ["postgres", "hosting"]
        assert records[-1].metadata["message_count"] == 4

    def test_fenced_answer_accepted(self):
        extractor, _ = extractor_answering("```json\n" + json.dumps(ANSWER) + "\n```")
        assert len(extractor.extract(transcript())) == 6

    def test_prompt_contains_transcript(self):
        extractor, fake = extractor_answering(json.dumps(ANSWER))
        extractor.extract(transcript())
        user_prompt = fake.chat.completions.calls[0]["messages"][1]["content"]
        assert "User: question 0" in user_prompt
        assert "Assistant: answer 1" in user_prompt

    def test_unparsable_answer(self):
        extractor, _ = extractor_answering("Sure! Here are the learnings: ...")
        with pytest.raises(ExtractionError) as exc_info:
            extractor.extract(transcript())
        assert exc_info.value.raw_response.startswith("Sure!")

    def test_wrong_shape_answer(self):
        extractor, _ = extractor_answering(json.dumps({"topics": "postgres", "summary": "x"}))
        with pytest.raises(ExtractionError):
            extractor.extract(transcript())

    def test_non_object_answer(self):
        extractor, _ = extractor_answering("[1, 2]")
        with pytest.raises(ExtractionError):
            extractor.extract(transcript())

    def test_empty_answer(self):
        extractor, _ = extractor_answering("")
        with pytest.raises(ExtractionError):
            extractor.extract(transcript())

    def test_long_transcript_is_windowed(self):
        extractor, fake = extractor_answering(json.dumps(ANSWER), max_chars=200)
        extractor.extract(transcript(turns=40))
        user_prompt = fake.chat.completions.calls[0]["messages"][1]["content"]
        assert "characters omitted" in user_prompt
        assert "question 39" in user_prompt
