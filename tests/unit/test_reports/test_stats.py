"""
Unit tests for usage statistics.
"""

from datetime import date

import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from profundo.reports.stats import collect, format_stats_summary
from profundo.rag.session import TokenStats
from conftest import session_event, write_session


def usage(input_tokens, output_tokens, cache_read=0, cost=0.0):
    return {
        "input": input_tokens,
        "output": output_tokens,
        "cacheRead": cache_read,
        "totalTokens": input_tokens + output_tokens + cache_read,
        "cost": {"total": cost},
    }


@pytest.fixture
def sessions_dir(tmp_path):
    d = tmp_path / "sessions"
    write_session(d, "monday", [
        session_event("user", "hi", "2026-01-05T10:00:00Z"),
        session_event("assistant", "hello", "2026-01-05T10:00:05Z",
                      model="model-a", usage=usage(100, 50, cache_read=300, cost=0.01)),
        session_event("user", "more", "2026-01-05T10:01:00Z"),
        session_event("assistant", "sure", "2026-01-05T10:01:05Z",
                      model="model-b", usage=usage(200, 20, cost=0.02)),
    ])
    write_session(d, "tuesday", [
        session_event("user", "hey", "2026-01-06T09:00:00Z"),
        session_event("assistant", "yo", "2026-01-06T09:00:05Z",
                      model="model-a", usage=usage(100, 30, cost=0.005)),
    ])
    return d


class TestCollect:
    """Tests for aggregation across session logs."""

    def test_totals(self, sessions_dir):
        stats = collect(sessions_dir)
        assert stats.session_count == 2
        assert stats.total.input_tokens == 400
        assert stats.total.output_tokens == 100
        assert stats.total.total_cost == pytest.approx(0.035)
        assert stats.date_range == (date(2026, 1, 5), date(2026, 1, 6))

    def test_by_model_counts_each_message(self, sessions_dir):
        stats = collect(sessions_dir)
        assert set(stats.by_model) == {"model-a", "model-b"}
        assert stats.by_model["model-a"].input_tokens == 200
        assert stats.by_model["model-a"].message_count == 2
        assert stats.by_model["model-b"].output_tokens == 20

    def test_by_date_uses_session_start(self, sessions_dir):
        stats = collect(sessions_dir)
        assert stats.by_date[date(2026, 1, 5)].input_tokens == 300
        assert stats.by_date[date(2026, 1, 6)].input_tokens == 100

    def test_date_window(self, sessions_dir):
        stats = collect(sessions_dir, since=date(2026, 1, 6), until=date(2026, 1, 6))
        assert stats.session_count == 1
        assert list(stats.by_date) == [date(2026, 1, 6)]

    def test_empty_directory(self, tmp_path):
        stats = collect(tmp_path / "nothing")
        assert stats.session_count == 0
        assert stats.date_range is None
        assert stats.total.cache_hit_rate == 0.0


class TestFormatStatsSummary:
    """Tests for the rollup summary line."""

    def test_summary(self):
        totals = TokenStats(input_tokens=1500, output_tokens=500, cache_read_tokens=500, total_cost=0.0123)
        line = format_stats_summary(totals)
        assert "1.5K in / 0.5K out" in line
        assert "**Cache**: 25%" in line
        assert "$0.0123" in line
