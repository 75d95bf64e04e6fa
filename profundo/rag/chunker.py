"""
Turn chunker for session transcripts.

Splits a transcript into one chunk per user+assistant exchange. A single
exchange is the natural unit of meaning in an assistant chat: the question
and the answer that resolves it.

Turn assembly:
    1. Consecutive user messages merge into one prompt
    2. Consecutive assistant messages merge into one reply
    3. Assistant messages before the first user message are ignored
    4. A trailing prompt with no reply yet is held back; it is emitted on a
       later run once the reply has been appended to the log

CS Concept: The chunker is a **generator** - chunks are produced lazily, so
resuming from a cursor never materializes the already-indexed prefix as
Chunk objects, and restarting at position p yields exactly the suffix of a
full run.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

from ..core.models import Chunk
from .session import Transcript

logger = logging.getLogger(__name__)


@dataclass
class _Turn:
    user_parts: List[str] = field(default_factory=list)
    assistant_parts: List[str] = field(default_factory=list)
    timestamp: Optional[str] = None

    @property
    def answered(self) -> bool:
        return bool(self.assistant_parts)

    def render(self) -> str:
        user = "\n\n".join(self.user_parts)
        assistant = "\n\n".join(self.assistant_parts)
        return f"User: {user}\n\nAssistant: {assistant}"


class TurnChunker:
    """
    Groups transcript messages into turn-pair chunks.

    Example:
        chunker = TurnChunker()
        for chunk in chunker.chunk(transcript, start=cursor.position):
            ...
    """

    def _turns(self, transcript: Transcript) -> Iterator[_Turn]:
        """Yield completed turns in order; the unanswered tail is withheld"""
        current: Optional[_Turn] = None

        for message in transcript.messages:
            if not message.text:
                continue

            if message.role == "user":
                if current is not None and current.answered:
                    yield current
                    current = None
                if current is None:
                    current = _Turn(timestamp=message.timestamp)
                current.user_parts.append(message.text)

            elif message.role == "assistant":
                if current is None:
                    continue
                current.assistant_parts.append(message.text)

        if current is not None and current.answered:
            yield current
        elif current is not None:
            logger.debug(f"Holding back unanswered final turn in {transcript.session_id}")

    def chunk(self, transcript: Transcript, start: int = 0) -> Iterator[Chunk]:
        """
        Yield chunks with position >= start.

        Args:
            transcript: Parsed session
            start: First position to yield (a cursor's next position)
        """
        if start < 0:
            raise ValueError(f"start must be non-negative, got {start}")

        for position, turn in enumerate(self._turns(transcript)):
            if position < start:
                continue
            yield Chunk(
                session_id=transcript.session_id,
                position=position,
                text=turn.render(),
                timestamp=turn.timestamp or "",
            )
