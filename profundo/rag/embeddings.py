"""
Embedding client adapter.

Turns chunk text into float32 vectors through the provider's /embeddings
endpoint. The adapter never silently drops a chunk: a response with the
wrong number of vectors, or vectors of the wrong dimension, fails the whole
request instead of shifting every later vector onto the wrong chunk.
"""

import logging
import time
from typing import Callable, List, Optional

import numpy as np

from ..core.errors import ProviderError
from ..providers.openrouter import RetryPolicy, call_with_retry

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "openai/text-embedding-3-small"


class EmbeddingClient:
    """
    Generates embeddings through an OpenAI-compatible client.

    Args:
        client: OpenAI SDK client (or anything with embeddings.create)
        model: Embedding model id; stored with every vector
        batch_size: Max texts per provider request
        retry_policy: Attempt budget for each request
    """

    def __init__(
        self,
        client,
        model: str = DEFAULT_EMBEDDING_MODEL,
        batch_size: int = 100,
        retry_policy: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], None] = time.sleep,
    ):
        if batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {batch_size}")
        self.client = client
        self.model = model
        self.batch_size = batch_size
        self.retry_policy = retry_policy
        self.dimensions: Optional[int] = None
        self._sleep = sleep

    @property
    def model_id(self) -> str:
        return self.model

    def embed(self, text: str) -> np.ndarray:
        """Embed a single text"""
        return self.embed_batch([text])[0]

    def embed_batch(self, texts: List[str]) -> List[np.ndarray]:
        """
        Embed texts, preserving input order.

        Returns:
            One float32 vector per input text

        Raises:
            ProviderError: Request failed or the response did not match
        """
        vectors: List[np.ndarray] = []
        for start in range(0, len(texts), self.batch_size):
            vectors.extend(self._embed_request(texts[start:start + self.batch_size]))
        return vectors

    def _embed_request(self, texts: List[str]) -> List[np.ndarray]:
        if not texts:
            return []

        response = call_with_retry(
            lambda: self.client.embeddings.create(model=self.model, input=texts),
            self.retry_policy,
            f"Embedding request ({len(texts)} texts)",
            sleep=self._sleep,
        )

        data = sorted(response.data, key=lambda item: item.index)
        if len(data) != len(texts):
            raise ProviderError(
                f"Embedding response has {len(data)} vectors for {len(texts)} inputs",
                retryable=False,
            )

        vectors = [np.asarray(item.embedding, dtype=np.float32) for item in data]
        for vector in vectors:
            if vector.ndim != 1 or vector.shape[0] == 0:
                raise ProviderError("Embedding response contains an empty vector", retryable=False)
            if self.dimensions is None:
                self.dimensions = int(vector.shape[0])
                logger.info(f"Embedding model {self.model} returns {self.dimensions}-dim vectors")
            elif vector.shape[0] != self.dimensions:
                raise ProviderError(
                    f"Embedding dimension changed: expected {self.dimensions}, "
                    f"got {vector.shape[0]}",
                    retryable=False,
                )

        logger.debug(f"Embedded {len(texts)} texts with {self.model}")
        return vectors
