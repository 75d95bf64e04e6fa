"""
Token usage and cost statistics across session logs.

Session totals are bucketed by the day the session started; per-model
totals are summed from individual assistant messages, since one session
can switch models midway.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, Optional, Tuple

from ..core.errors import StorageError
from ..core.models import timestamp_date
from ..rag.session import TokenStats, discover_sessions, load_transcript

logger = logging.getLogger(__name__)


@dataclass
class AggregatedStats:
    total: TokenStats = field(default_factory=TokenStats)
    by_model: Dict[str, TokenStats] = field(default_factory=lambda: defaultdict(TokenStats))
    by_date: Dict[date, TokenStats] = field(default_factory=lambda: defaultdict(TokenStats))
    session_count: int = 0
    date_range: Optional[Tuple[date, date]] = None

    def _extend_range(self, day: date) -> None:
        if self.date_range is None:
            self.date_range = (day, day)
        else:
            low, high = self.date_range
            self.date_range = (min(low, day), max(high, day))


def collect(sessions_dir: Path, since: Optional[date] = None,
            until: Optional[date] = None) -> AggregatedStats:
    """
    Aggregate usage over every session log.

    Args:
        sessions_dir: Directory of session JSONL files
        since: Only sessions started on or after this day
        until: Only sessions started on or before this day

    Sessions without any timestamp count as started today. Unreadable
    files are logged and skipped.
    """
    stats = AggregatedStats()

    for path in discover_sessions(sessions_dir):
        try:
            transcript = load_transcript(path)
        except StorageError as e:
            logger.warning(f"Skipping session in stats: {e}")
            continue

        day = timestamp_date(transcript.first_timestamp) or date.today()
        if since and day < since:
            continue
        if until and day > until:
            continue

        stats._extend_range(day)
        stats.total.add(transcript.token_stats)
        stats.by_date[day].add(transcript.token_stats)

        for message in transcript.messages:
            if message.model and message.usage is not None:
                stats.by_model[message.model].add(message.usage)

        stats.session_count += 1

    stats.by_model = dict(stats.by_model)
    stats.by_date = dict(stats.by_date)
    return stats


def format_stats_summary(totals: TokenStats) -> str:
    """One-line markdown summary used in daily rollups"""
    return (
        f"**Tokens**: {totals.input_tokens / 1000:.1f}K in / "
        f"{totals.output_tokens / 1000:.1f}K out | "
        f"**Cache**: {totals.cache_hit_rate * 100:.0f}% | "
        f"**Cost**: ${totals.total_cost:.4f}"
    )
