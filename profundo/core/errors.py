"""
Error taxonomy for Profundo.

Every failure the engine reports is one of these types, so callers can
decide whether to retry, skip a session, or stop:

- ProviderError: remote embedding/chat service failed (may be retryable)
- ExtractionError: the chat model answered, but not in the expected shape
- InvariantViolation: a bug or corrupted state (cursor moving backwards,
  comparing vectors from different models). Never absorbed.
- StorageError: reading or writing local state failed
- AlreadyRunning: another embed/harvest run holds the workspace lock
"""

from typing import Optional


class ProfundoError(Exception):
    """Base class for all Profundo errors."""


class ProviderError(ProfundoError):
    """
    A remote provider call failed.

    Attributes:
        retryable: True for transient failures (network, timeout, 429, 5xx)
        attempts: How many attempts were made before giving up
        status_code: HTTP status if the provider returned one
    """

    def __init__(
        self,
        message: str,
        retryable: bool = False,
        attempts: int = 1,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.retryable = retryable
        self.attempts = attempts
        self.status_code = status_code

    def __str__(self) -> str:
        base = super().__str__()
        kind = "retryable" if self.retryable else "permanent"
        if self.attempts > 1:
            return f"{base} ({kind}, after {self.attempts} attempts)"
        return f"{base} ({kind})"


class ExtractionError(ProfundoError):
    """The text-generation provider returned something we could not parse."""

    def __init__(self, message: str, raw_response: Optional[str] = None):
        super().__init__(message)
        self.raw_response = raw_response


class InvariantViolation(ProfundoError):
    """An internal invariant was broken. Always fatal to the current operation."""


class StorageError(ProfundoError):
    """On-disk state could not be read or written."""


class AlreadyRunning(ProfundoError):
    """Another indexing or harvest run holds the workspace lock."""

    def __init__(self, lock_path):
        super().__init__(
            f"Another Profundo run is already active (lock held: {lock_path})"
        )
        self.lock_path = lock_path
