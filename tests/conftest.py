"""
Shared fixtures: session log writers and fake provider clients.

The fakes mimic the parts of the openai SDK client Profundo uses
(embeddings.create and chat.completions.create), so adapters are tested
end to end without network access.
"""

import hashlib
import json
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Callable, Dict, List, Optional

import numpy as np
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from profundo.core.config import Paths


def hashed_vector(text: str, dim: int = 8) -> List[float]:
    """Deterministic pseudo-embedding for a text"""
    digest = hashlib.sha256(text.encode()).digest()
    return [((b / 255.0) * 2.0) - 1.0 for b in digest[:dim]]


class FakeEmbeddings:
    def __init__(self, vector_for: Callable[[str], List[float]], fail_with: Optional[List] = None):
        self.vector_for = vector_for
        self.calls: List[List[str]] = []
        self.fail_with = list(fail_with or [])

    def create(self, model: str, input: List[str]):
        self.calls.append(list(input))
        if self.fail_with:
            error = self.fail_with.pop(0)
            if error is not None:
                raise error
        data = [
            SimpleNamespace(index=i, embedding=list(self.vector_for(text)))
            for i, text in enumerate(input)
        ]
        # Providers may return items out of order; index is authoritative
        return SimpleNamespace(data=list(reversed(data)))


class FakeCompletions:
    def __init__(self, respond: Callable[[List[Dict]], Optional[str]]):
        self.respond = respond
        self.calls: List[Dict] = []

    def create(self, model: str, messages: List[Dict], temperature: float = 0.3):
        self.calls.append({"model": model, "messages": messages, "temperature": temperature})
        content = self.respond(messages)
        if isinstance(content, Exception):
            raise content
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeOpenAI:
    """Stand-in for openai.OpenAI"""

    def __init__(self, vector_for=None, respond=None, embed_failures=None):
        self.embeddings = FakeEmbeddings(vector_for or hashed_vector, embed_failures)
        self.chat = SimpleNamespace(completions=FakeCompletions(respond or (lambda messages: "{}")))


def session_event(role: str, text, timestamp: str, model: Optional[str] = None,
                  usage: Optional[Dict] = None) -> Dict:
    content = text if not isinstance(text, str) else [{"type": "text", "text": text}]
    message = {"role": role, "content": content}
    if model:
        message["model"] = model
    if usage:
        message["usage"] = usage
    return {"type": "message", "timestamp": timestamp, "message": message}


def write_session(sessions_dir: Path, session_id: str, events: List[Dict], append: bool = False) -> Path:
    """Write (or append) events as a JSONL session log"""
    sessions_dir.mkdir(parents=True, exist_ok=True)
    path = sessions_dir / f"{session_id}.jsonl"
    with open(path, "a" if append else "w") as f:
        for event in events:
            f.write(json.dumps(event) + "\n")
    return path


def conversation(day: str, turns: int, start_hour: int = 10, prefix: str = "") -> List[Dict]:
    """`turns` user/assistant exchanges on the given day"""
    events = []
    for i in range(turns):
        ts = f"{day}T{start_hour + i:02d}:00:00Z"
        events.append(session_event("user", f"{prefix}question {i}", ts))
        events.append(session_event("assistant", f"{prefix}answer {i}", ts.replace(":00:00Z", ":00:30Z")))
    return events


@pytest.fixture
def paths(tmp_path) -> Paths:
    return Paths(sessions_dir=tmp_path / "sessions", memory_dir=tmp_path / "memory")


@pytest.fixture
def fake_openai():
    return FakeOpenAI()


@pytest.fixture
def no_sleep():
    delays = []
    return delays.append, delays


def unit(vec) -> np.ndarray:
    return np.asarray(vec, dtype=np.float32)
