"""
Core module for Profundo
Contains configuration, storage primitives, errors and model definitions
"""

from .config import Config, Paths
from .database import SQLiteDatabase
from .errors import (
    ProfundoError, ProviderError, ExtractionError,
    InvariantViolation, StorageError, AlreadyRunning,
)
from .models import (
    Chunk, EmbeddedChunk, Cursor, LearningRecord, Query, Origin, ResultItem,
)

__all__ = [
    'Config', 'Paths', 'SQLiteDatabase',
    'ProfundoError', 'ProviderError', 'ExtractionError',
    'InvariantViolation', 'StorageError', 'AlreadyRunning',
    'Chunk', 'EmbeddedChunk', 'Cursor', 'LearningRecord', 'Query', 'Origin', 'ResultItem',
]
