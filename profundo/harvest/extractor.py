"""
Harvest extractor: transcript -> structured learning records.

The chat model is asked for one JSON object per session. The response is
validated with pydantic before any record is built, so a malformed answer
fails the whole session instead of writing half a harvest.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError

from ..core.errors import ExtractionError
from ..core.models import LearningRecord
from ..providers.openrouter import ChatClient
from ..rag.session import Transcript
from .prompts import HARVEST_PROMPT, OMISSION_MARKER, SYSTEM_PROMPT, strip_code_fences

logger = logging.getLogger(__name__)

DEFAULT_MAX_CHARS = 50000


class ExtractedLearnings(BaseModel):
    """Shape of the model's JSON answer."""
    topics: List[str] = Field(default_factory=list)
    decisions: List[str] = Field(default_factory=list)
    facts_learned: List[str] = Field(default_factory=list)
    action_items: List[str] = Field(default_factory=list)
    summary: str


def window_text(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """
    Bound text to roughly max_chars.

    Long transcripts keep the first and last half of the budget around an
    omission marker: the opening states the goal, the end holds the outcome.
    """
    if len(text) <= max_chars:
        return text
    head_chars = max_chars // 2
    tail_chars = max_chars - head_chars
    omitted = len(text) - head_chars - tail_chars
    return text[:head_chars] + OMISSION_MARKER.format(omitted=omitted) + text[-tail_chars:]


def _clean(items: List[str]) -> List[str]:
    return [item.strip() for item in items if item and item.strip()]


class HarvestExtractor:
    """
    Extracts learning records from one transcript per call.

    Args:
        chat: Chat client (provider errors propagate as ProviderError)
        model: Chat model id, recorded on every record
        max_chars: Transcript window sent to the model
    """

    def __init__(self, chat: ChatClient, model: Optional[str] = None,
                 max_chars: int = DEFAULT_MAX_CHARS):
        self.chat = chat
        self.model = model or chat.model
        self.max_chars = max_chars

    def parse(self, response: str) -> ExtractedLearnings:
        """
        Parse and validate a raw model answer.

        Raises:
            ExtractionError: Not JSON, or not the expected shape
        """
        payload = strip_code_fences(response)
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            raise ExtractionError(f"Response is not valid JSON: {e}", raw_response=response) from e
        if not isinstance(data, dict):
            raise ExtractionError(
                f"Expected a JSON object, got {type(data).__name__}", raw_response=response
            )
        try:
            return ExtractedLearnings.model_validate(data)
        except ValidationError as e:
            raise ExtractionError(
                f"Response does not match the learnings schema: {e.error_count()} errors",
                raw_response=response,
            ) from e

    def extract(self, transcript: Transcript) -> List[LearningRecord]:
        """
        Harvest one session.

        Returns:
            Records of one new harvest_id (summary last); [] if the model
            found nothing

        Raises:
            ProviderError: The chat call failed
            ExtractionError: Empty, unparsable or invalid response
        """
        text = transcript.render()
        if not text:
            raise ExtractionError(f"Session {transcript.session_id} has no text to harvest")

        prompt = HARVEST_PROMPT + window_text(text, self.max_chars)
        response = self.chat.complete(SYSTEM_PROMPT, prompt, model=self.model)
        extracted = self.parse(response)

        harvest_id = uuid.uuid4().hex[:12]
        harvested_at = datetime.now(timezone.utc).isoformat()
        topics = _clean(extracted.topics)

        def record(kind: str, value: str, tags=None, metadata=None) -> LearningRecord:
            return LearningRecord(
                kind=kind,
                text=value,
                session_id=transcript.session_id,
                timestamp=transcript.first_timestamp,
                tags=list(tags or []),
                harvest_id=harvest_id,
                harvested_at=harvested_at,
                model=self.model,
                metadata=metadata or {},
            )

        records = [record("topic", topic) for topic in topics]
        records += [record("decision", d, topics) for d in _clean(extracted.decisions)]
        records += [record("fact", f, topics) for f in _clean(extracted.facts_learned)]
        records += [record("action_item", a, topics) for a in _clean(extracted.action_items)]

        summary = extracted.summary.strip()
        if summary:
            records.append(record("summary", summary, topics, {
                "message_count": transcript.message_count,
                "cost": round(transcript.token_stats.total_cost, 6),
            }))

        logger.info(
            f"Extracted {len(records)} records from {transcript.session_id} "
            f"(harvest {harvest_id})"
        )
        return records
