"""
Brute-force cosine ranking over the vector store.

Complexity: O(n * d) to score n stored vectors of dimension d, plus
O(n log k) for top-k selection with a k-sized min-heap. The heap root is
always the weakest of the current top k, so each new candidate is compared
against it once and pushed out or kept in O(log k).

Ordering of equal scores: the more recent chunk first, then the one stored
most recently.
"""

import heapq
import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, List, Optional, Sequence

import numpy as np

from ..core.errors import InvariantViolation
from ..core.models import EmbeddedChunk, parse_timestamp
from .store import VectorStore

logger = logging.getLogger(__name__)


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """
    Cosine of the angle between two vectors, clipped to [-1, 1].

    Returns 0.0 when either vector has zero norm.

    Raises:
        InvariantViolation: If the vectors have different dimensions
    """
    if a.shape != b.shape:
        raise InvariantViolation(
            f"Cannot compare vectors of different dimensions: {a.shape} vs {b.shape}"
        )
    norm = float(np.linalg.norm(a)) * float(np.linalg.norm(b))
    if norm == 0.0:
        return 0.0
    score = float(np.dot(a.astype(np.float64), b.astype(np.float64))) / norm
    return max(-1.0, min(1.0, score))


def _recency(item: EmbeddedChunk) -> float:
    parsed = parse_timestamp(item.chunk.timestamp)
    return parsed.timestamp() if parsed else float("-inf")


@dataclass
class ScoredChunk:
    item: EmbeddedChunk
    score: float


def top_k(
    query_vectors: Sequence[np.ndarray],
    items: Iterable[EmbeddedChunk],
    k: int,
    threshold: Optional[float] = None,
) -> List[ScoredChunk]:
    """
    Select the k best items by max cosine over the query vectors.

    Args:
        query_vectors: The query and any expansion vectors
        items: Candidates, all from the same embedding model as the queries
        k: Result count
        threshold: Drop items scoring below this

    Returns:
        Best first
    """
    if k < 1 or not query_vectors:
        return []

    heap = []
    for seq, item in enumerate(items):
        score = max(cosine_similarity(q, item.vector) for q in query_vectors)
        if threshold is not None and score < threshold:
            continue
        stored = item.row_id if item.row_id is not None else seq
        key = (score, _recency(item), stored)
        if len(heap) < k:
            heapq.heappush(heap, (key, seq, item))
        elif key > heap[0][0]:
            heapq.heapreplace(heap, (key, seq, item))

    ranked = sorted(heap, key=lambda entry: entry[0], reverse=True)
    return [ScoredChunk(item=item, score=key[0]) for key, _, item in ranked]


class SimilarityRanker:
    """
    Scores a query against every stored vector of the same embedding model.

    Vectors stored under other model ids are never read, so switching models
    can only ever return fewer results, not wrong ones.
    """

    def __init__(self, store: VectorStore):
        self.store = store

    def rank(
        self,
        query_vectors: Sequence[np.ndarray],
        model: str,
        k: int,
        since: Optional[date] = None,
        until: Optional[date] = None,
        threshold: Optional[float] = None,
    ) -> List[ScoredChunk]:
        candidates = self.store.scan_all(model=model, since=since, until=until)
        results = top_k(query_vectors, candidates, k, threshold=threshold)
        logger.debug(f"Ranked {model} vectors: {len(results)} results (k={k})")
        return results
