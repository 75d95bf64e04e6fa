"""
Recall: semantic search over indexed sessions and harvested learnings.

Pipeline:
    query (+ expansions) -> embeddings -> cosine top-k over stored chunks
                         -> token overlap over current learnings
                         -> per-source normalisation -> fused top-k

Recall never takes the workspace lock; it reads a consistent snapshot of
the store while an embed run may be appending.
"""

import logging
from typing import List, Optional

from ..core.models import LearningRecord, Query, ResultItem
from ..harvest.learnings import LearningsLog
from .embeddings import EmbeddingClient
from .expansion import QueryExpander
from .fusion import fuse, match_learnings
from .ranker import SimilarityRanker
from .store import VectorStore

logger = logging.getLogger(__name__)


class Retriever:
    """
    Answers recall queries.

    Args:
        store: Vector store to scan
        embedder: Must use the same model the store was indexed with
        learnings: Learnings log, or None to search conversations only
        expander: Optional query expander used by expand()
        fusion_policy: "minmax" or "rank"
    """

    def __init__(
        self,
        store: VectorStore,
        embedder: EmbeddingClient,
        learnings: Optional[LearningsLog] = None,
        expander: Optional[QueryExpander] = None,
        fusion_policy: str = "minmax",
    ):
        self.store = store
        self.embedder = embedder
        self.learnings = learnings
        self.expander = expander
        self.fusion_policy = fusion_policy
        self.ranker = SimilarityRanker(store)

    def expand(self, text: str) -> List[str]:
        if self.expander is None:
            return []
        return self.expander.expand(text)

    def _learning_candidates(self, query: Query) -> List[LearningRecord]:
        if self.learnings is None or not query.include_learnings:
            return []
        candidates = []
        for record in self.learnings.latest():
            day = record.date
            if query.since and (day is None or day < query.since):
                continue
            if query.until and (day is None or day > query.until):
                continue
            candidates.append(record)
        return candidates

    def recall(self, query: Query) -> List[ResultItem]:
        """
        Run one query.

        Raises:
            ProviderError: The query could not be embedded
        """
        texts = query.texts
        vectors = self.embedder.embed_batch(texts)

        chunks = self.ranker.rank(
            vectors,
            model=self.embedder.model_id,
            k=query.k,
            since=query.since,
            until=query.until,
            threshold=query.threshold,
        )
        learnings = match_learnings(texts, self._learning_candidates(query), query.k)

        results = fuse(chunks, learnings, query.k, policy=self.fusion_policy)
        logger.info(
            f"Recall '{query.text[:50]}': {len(chunks)} chunks, "
            f"{len(learnings)} learnings -> {len(results)} results"
        )
        return results
