"""
Workspace status summary for `profundo status`.
"""

from typing import Any, Dict

from ..core.config import Paths
from ..harvest.learnings import LearningsLog
from ..rag.index_state import CursorStore
from ..rag.session import discover_sessions
from ..rag.store import VectorStore


def collect_status(paths: Paths) -> Dict[str, Any]:
    """Counts for the vector store, learnings log, session logs and cursors"""
    sessions = discover_sessions(paths.sessions_dir)

    store_by_model: Dict[str, Dict[str, Any]] = {}
    last_appended = None
    if paths.db_path.exists():
        store = VectorStore(paths.db_path)
        store_by_model = store.stats_by_model()
        last_appended = store.stats()["last_appended"]

    log = LearningsLog(paths.learnings_path)
    current = log.latest()

    return {
        "sessions_dir": paths.sessions_dir,
        "memory_dir": paths.memory_dir,
        "session_files": len(sessions),
        "session_bytes": sum(p.stat().st_size for p in sessions),
        "store_by_model": store_by_model,
        "last_appended": last_appended,
        "learning_records": len(current),
        "learning_sessions": len({r.session_id for r in current}),
        "embed_cursors": len(CursorStore(paths.cursor_path)),
        "harvest_cursors": len(CursorStore(paths.harvest_cursor_path)),
    }
