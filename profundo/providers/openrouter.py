"""
OpenAI-compatible provider access (OpenRouter by default).

Both the embedding adapter and the harvest extractor talk to the provider
through the `openai` SDK. The SDK's own retry loop is disabled so that
one RetryPolicy owns the whole attempt budget, and every failure leaves
this module as a ProviderError carrying a retryable flag.

CS Concept: **Exponential backoff** - wait base * factor^attempt between
attempts (capped), so a struggling provider sees load drop off quickly
instead of a thundering herd of immediate retries.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

import openai
from openai import OpenAI

from ..core.config import Config
from ..core.errors import ExtractionError, ProviderError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STATUS_CODES = frozenset([408, 409, 429])


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff for one synchronous request"""
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    exponential_base: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts}")

    def delay(self, attempt: int) -> float:
        """Seconds to wait after the given 0-based failed attempt"""
        return min(self.base_delay * (self.exponential_base ** attempt), self.max_delay)

    @classmethod
    def from_config(cls, config: Config) -> 'RetryPolicy':
        return cls(
            max_attempts=int(config.get("max_attempts", 3)),
            base_delay=float(config.get("backoff_base", 1.0)),
            max_delay=float(config.get("backoff_max", 30.0)),
        )


def to_provider_error(e: Exception) -> Optional[ProviderError]:
    """
    Translate an SDK exception into a ProviderError.

    Returns None for exceptions that are not provider failures (programming
    errors), which callers must let propagate untouched.
    """
    if isinstance(e, ProviderError):
        return e
    if isinstance(e, (openai.APITimeoutError, openai.APIConnectionError)):
        return ProviderError(f"Provider unreachable: {e}", retryable=True)
    if isinstance(e, openai.APIStatusError):
        status = e.status_code
        retryable = status in RETRYABLE_STATUS_CODES or status >= 500
        return ProviderError(
            f"Provider returned HTTP {status}: {e.message}",
            retryable=retryable,
            status_code=status,
        )
    if isinstance(e, openai.APIError):
        return ProviderError(f"Provider error: {e}", retryable=False)
    return None


def call_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy = RetryPolicy(),
    operation_name: str = "provider request",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run operation, retrying transient provider failures.

    Args:
        operation: Zero-argument callable performing one request
        policy: Attempt budget and backoff schedule
        operation_name: Label used in log messages and errors
        sleep: Injected for tests

    Raises:
        ProviderError: Non-retryable failure, or retryable failure after the
            budget is exhausted (retryable=True, attempts=max_attempts)
    """
    for attempt in range(policy.max_attempts):
        try:
            return operation()
        except Exception as e:
            error = to_provider_error(e)
            if error is None:
                raise
            if not error.retryable:
                raise ProviderError(
                    f"{operation_name} failed: {error.args[0]}",
                    retryable=False,
                    attempts=attempt + 1,
                    status_code=error.status_code,
                ) from e
            if attempt + 1 >= policy.max_attempts:
                raise ProviderError(
                    f"{operation_name} failed: {error.args[0]}",
                    retryable=True,
                    attempts=policy.max_attempts,
                    status_code=error.status_code,
                ) from e

            delay = policy.delay(attempt)
            logger.warning(
                f"{operation_name} failed (attempt {attempt + 1}/{policy.max_attempts}), "
                f"retrying in {delay:.1f}s: {error.args[0]}"
            )
            sleep(delay)

    raise AssertionError("unreachable")


def create_client(config: Config) -> OpenAI:
    """
    Build an OpenAI SDK client pointed at the configured provider.

    Raises:
        ProviderError: If no API key is configured
    """
    client = OpenAI(
        api_key=config.get_api_key(),
        base_url=config.base_url,
        timeout=float(config.get("request_timeout", 60.0)),
        max_retries=0,
    )
    logger.info(f"Initialized provider client: {config.base_url}")
    return client


class ChatClient:
    """
    Text-generation client for single-shot system+user prompts.

    Args:
        client: OpenAI SDK client (or anything with chat.completions.create)
        model: Default model id
        temperature: Sampling temperature
        retry_policy: Attempt budget for each completion
    """

    def __init__(
        self,
        client,
        model: str = "deepseek/deepseek-v3.2",
        temperature: float = 0.3,
        retry_policy: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.retry_policy = retry_policy
        self._sleep = sleep

    def complete(self, system: str, user: str, model: Optional[str] = None) -> str:
        """
        Send one chat completion and return the assistant text.

        Raises:
            ProviderError: Request failed
            ExtractionError: Provider answered with no content
        """
        model = model or self.model

        def request():
            return self.client.chat.completions.create(
                model=model,
                temperature=self.temperature,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
            )

        response = call_with_retry(
            request, self.retry_policy, f"Chat completion ({model})", sleep=self._sleep
        )

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content or not content.strip():
            raise ExtractionError(f"Empty response from {model}", raw_response=content)
        return content
