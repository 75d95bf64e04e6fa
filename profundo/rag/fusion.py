"""
Result fusion: conversation chunks + harvested learnings in one ranking.

The two sources score on different scales (cosine similarity vs. token
overlap), so each source is normalised on its own before merging:

- minmax: (s - min) / (max - min) within the source; a source whose
  scores are all equal maps every item to 1.0
- rank:   1 / rank within the source (equal scores share a rank)

Both policies are monotonic: raising one item's raw score never lowers its
normalised score, and items of the other source are unaffected, so the
item can only move up relative to unchanged items.
"""

import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..core.models import LearningRecord, Origin, ResultItem, parse_timestamp
from .ranker import ScoredChunk

logger = logging.getLogger(__name__)

FUSION_POLICIES = ("minmax", "rank")

STOPWORDS = frozenset([
    "a", "an", "and", "are", "as", "at", "be", "by", "did", "do", "for", "from",
    "how", "i", "in", "is", "it", "me", "my", "of", "on", "or", "that", "the",
    "this", "to", "was", "we", "what", "when", "where", "which", "who", "why",
    "with", "you",
])

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def tokenize(text: str) -> set:
    """Lowercase word tokens without stopwords"""
    return {t for t in _TOKEN_RE.findall(text.lower()) if t not in STOPWORDS}


def overlap_score(query_tokens: set, record: LearningRecord) -> float:
    """Fraction of query tokens that appear in the record's text or tags"""
    if not query_tokens:
        return 0.0
    record_tokens = tokenize(record.text)
    for tag in record.tags:
        record_tokens |= tokenize(tag)
    return len(query_tokens & record_tokens) / len(query_tokens)


def match_learnings(
    query_texts: Sequence[str],
    records: Iterable[LearningRecord],
    k: int,
) -> List[Tuple[LearningRecord, float]]:
    """
    Score learning records against the query and its expansions.

    Each record scores the best overlap over all query texts; records with
    no overlap are dropped.

    Returns:
        Up to k (record, score) pairs, best first
    """
    token_sets = [tokenize(text) for text in query_texts]
    token_sets = [tokens for tokens in token_sets if tokens]
    if not token_sets:
        return []

    matches = []
    for record in records:
        score = max(overlap_score(tokens, record) for tokens in token_sets)
        if score > 0:
            matches.append((record, score))

    matches.sort(key=lambda m: (m[1], _recency(m[0].timestamp)), reverse=True)
    return matches[:k]


def normalise(scores: Sequence[float], policy: str = "minmax") -> List[float]:
    """Normalise one source's raw scores into [0, 1]"""
    if policy not in FUSION_POLICIES:
        raise ValueError(f"Unknown fusion policy '{policy}'. Must be one of: {list(FUSION_POLICIES)}")
    if not scores:
        return []

    if policy == "minmax":
        low, high = min(scores), max(scores)
        if high == low:
            return [1.0 for _ in scores]
        return [(s - low) / (high - low) for s in scores]

    # Competition ranking: 1 + number of strictly higher scores
    ordered = sorted(scores, reverse=True)
    first_rank: Dict[float, int] = {}
    for index, score in enumerate(ordered, start=1):
        first_rank.setdefault(score, index)
    return [1.0 / first_rank[s] for s in scores]


def _recency(timestamp: Optional[str]) -> float:
    parsed = parse_timestamp(timestamp)
    return parsed.timestamp() if parsed else float("-inf")


def fuse(
    chunks: Sequence[ScoredChunk],
    learnings: Sequence[Tuple[LearningRecord, float]],
    k: int,
    policy: str = "minmax",
) -> List[ResultItem]:
    """
    Merge both sources into one list of at most k ResultItems.

    Order: higher fused score, then more recent timestamp, then
    conversation chunks before learnings.
    """
    chunk_scores = normalise([c.score for c in chunks], policy)
    learning_scores = normalise([score for _, score in learnings], policy)

    candidates = []
    for scored, fused in zip(chunks, chunk_scores):
        candidates.append((
            (-fused, -_recency(scored.item.chunk.timestamp), 0),
            ResultItem(rank=0, score=fused, raw_score=scored.score,
                       origin=Origin.CHUNK, chunk=scored.item.chunk),
        ))
    for (record, raw), fused in zip(learnings, learning_scores):
        candidates.append((
            (-fused, -_recency(record.timestamp), 1),
            ResultItem(rank=0, score=fused, raw_score=raw,
                       origin=Origin.LEARNING, learning=record),
        ))

    candidates.sort(key=lambda c: c[0])
    results = [item for _, item in candidates[:k]]
    for rank, item in enumerate(results, start=1):
        item.rank = rank
    return results
