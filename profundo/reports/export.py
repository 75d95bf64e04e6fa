"""
Markdown export of harvested learnings.

Two outputs:
- export: one file with every session's current learnings, grouped by day
  (newest first)
- rollup: a "## Profundo" section in the workspace's daily log
  <memory_dir>/<YYYY-MM-DD>.md, replaced in place when it already exists
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Dict, List, Tuple

from ..core.config import Paths
from ..core.errors import StorageError
from ..core.models import LearningRecord
from ..harvest.learnings import LearningsLog
from .stats import collect, format_stats_summary

logger = logging.getLogger(__name__)

SECTION_HEADER = "## Profundo"
UNKNOWN_DATE = "unknown"


@dataclass
class ExportStats:
    sessions: int = 0
    decisions: int = 0
    facts: int = 0
    actions: int = 0


@dataclass
class RollupStats:
    sessions: int
    stats_sessions: int
    path: Path


def group_by_session(records: List[LearningRecord]) -> "OrderedDict[str, List[LearningRecord]]":
    grouped: "OrderedDict[str, List[LearningRecord]]" = OrderedDict()
    for record in records:
        grouped.setdefault(record.session_id, []).append(record)
    return grouped


def format_learning_bullets(records: List[LearningRecord]) -> str:
    """Markdown bullets for one session's harvest"""
    by_kind: Dict[str, List[str]] = {}
    for record in records:
        by_kind.setdefault(record.kind, []).append(record.text)

    lines = []
    if by_kind.get("topic"):
        lines.append(f"- **Topics**: {', '.join(by_kind['topic'])}")
    for summary in by_kind.get("summary", []):
        lines.append(f"- {summary}")
    for decision in by_kind.get("decision", []):
        lines.append(f"- **Decision**: {decision}")
    for fact in by_kind.get("fact", []):
        lines.append(f"- **Learned**: {fact}")
    for action in by_kind.get("action_item", []):
        lines.append(f"- [ ] {action}")
    return "\n".join(lines)


def _session_date(records: List[LearningRecord]) -> str:
    day = records[0].date
    return day.isoformat() if day else UNKNOWN_DATE


def export_markdown(learnings_path: Path, output_path: Path) -> ExportStats:
    """Write all current learnings to output_path"""
    sessions = group_by_session(LearningsLog(learnings_path).latest())
    stats = ExportStats()
    if not sessions:
        return stats

    by_date: Dict[str, List[List[LearningRecord]]] = {}
    for records in sessions.values():
        by_date.setdefault(_session_date(records), []).append(records)

    dated = sorted((d for d in by_date if d != UNKNOWN_DATE), reverse=True)
    if UNKNOWN_DATE in by_date:
        dated.append(UNKNOWN_DATE)

    parts = ["# Profundo Learnings\n\n", "Extracted insights from conversation sessions.\n\n"]
    for day in dated:
        parts.append(f"## {day}\n\n")
        for records in by_date[day]:
            parts.append(format_learning_bullets(records))
            parts.append("\n\n")
            stats.sessions += 1
            stats.decisions += sum(1 for r in records if r.kind == "decision")
            stats.facts += sum(1 for r in records if r.kind == "fact")
            stats.actions += sum(1 for r in records if r.kind == "action_item")

    try:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        Path(output_path).write_text("".join(parts), encoding="utf-8")
    except OSError as e:
        raise StorageError(f"Cannot write export {output_path}: {e}") from e

    logger.info(f"Exported {stats.sessions} sessions to {output_path}")
    return stats


def replace_profundo_section(content: str, new_section: str) -> str:
    """
    Swap the existing "## Profundo" section for new_section.

    The old section runs until the next "## " heading or end of file.
    new_section starts with a blank line and the header itself.
    """
    result: List[str] = []
    in_profundo = False
    replaced = False

    for line in content.splitlines():
        if line.startswith(SECTION_HEADER) and not replaced:
            in_profundo = True
            continue
        if in_profundo:
            if line.startswith("## "):
                in_profundo = False
                replaced = True
                result.append(new_section.strip("\n") + "\n")
                result.append(line)
            continue
        result.append(line)

    if in_profundo:
        return "\n".join(result).rstrip() + "\n" + new_section

    return "\n".join(result) + "\n"


def daily_header(day: date) -> str:
    """e.g. "# Jan 5 (Monday)" """
    return f"# {day.strftime('%b')} {day.day} ({day.strftime('%A')})\n"


def build_rollup_section(paths: Paths, day: date) -> Tuple[str, int, int]:
    records = [r for r in LearningsLog(paths.learnings_path).latest() if r.date == day]
    sessions = group_by_session(records)
    day_stats = collect(paths.sessions_dir, since=day, until=day)

    lines = [f"\n{SECTION_HEADER}\n\n"]
    if day_stats.session_count > 0:
        lines.append(
            f"{format_stats_summary(day_stats.total)} ({day_stats.session_count} sessions)\n\n"
        )
    if not sessions:
        lines.append("_No learnings harvested for this date._\n")
    else:
        for session_id, session_records in sessions.items():
            lines.append(f"### Session `{session_id[:8]}`\n\n")
            lines.append(format_learning_bullets(session_records))
            lines.append("\n\n")

    return "".join(lines), len(sessions), day_stats.session_count


def write_rollup(paths: Paths, day: date) -> RollupStats:
    """Write or replace the Profundo section of the day's log"""
    section, sessions, stats_sessions = build_rollup_section(paths, day)
    daily_log = paths.memory_dir / f"{day.isoformat()}.md"

    try:
        if daily_log.exists():
            existing = daily_log.read_text(encoding="utf-8")
            if any(line.startswith(SECTION_HEADER) for line in existing.splitlines()):
                updated = replace_profundo_section(existing, section)
            else:
                updated = existing + section
        else:
            daily_log.parent.mkdir(parents=True, exist_ok=True)
            updated = daily_header(day) + section
        daily_log.write_text(updated, encoding="utf-8")
    except OSError as e:
        raise StorageError(f"Cannot write daily log {daily_log}: {e}") from e

    logger.info(f"Wrote Profundo rollup for {day} to {daily_log}")
    return RollupStats(sessions=sessions, stats_sessions=stats_sessions, path=daily_log)
