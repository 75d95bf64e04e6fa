"""
Configuration management for Profundo
Resolves workspace paths and loads user settings
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

from .errors import ProviderError, StorageError

logger = logging.getLogger(__name__)

CLAWDBOT_CONFIG = Path(".clawdbot") / "clawdbot.json"
SETTINGS_FILENAME = "profundo.json"


def _read_clawdbot_config(home: Path) -> Optional[Dict[str, Any]]:
    """Read ~/.clawdbot/clawdbot.json, or None if missing/unreadable"""
    config_path = home / CLAWDBOT_CONFIG
    if not config_path.exists():
        return None
    try:
        with open(config_path) as f:
            return json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.warning(f"Ignoring unreadable {config_path}: {e}")
        return None


def _dig(data: Optional[Dict[str, Any]], *keys) -> Any:
    """Safely walk nested dictionaries"""
    result = data
    for key in keys:
        if not isinstance(result, dict):
            return None
        result = result.get(key)
    return result


@dataclass
class Paths:
    """
    Filesystem layout for one Profundo workspace.

    Everything Profundo writes lives under memory_dir; sessions_dir is
    owned by the host chat application and only ever read.
    """
    sessions_dir: Path
    memory_dir: Path

    @property
    def db_path(self) -> Path:
        return self.memory_dir / "profundo.sqlite"

    @property
    def learnings_path(self) -> Path:
        return self.memory_dir / "learnings.jsonl"

    @property
    def cursor_path(self) -> Path:
        return self.memory_dir / ".profundo-cursor"

    @property
    def harvest_cursor_path(self) -> Path:
        return self.memory_dir / ".profundo-harvest-cursor"

    @property
    def lock_path(self) -> Path:
        return self.memory_dir / ".profundo.lock"

    @property
    def log_dir(self) -> Path:
        return self.memory_dir / "logs"

    @property
    def settings_path(self) -> Path:
        return self.memory_dir / SETTINGS_FILENAME

    @classmethod
    def default(cls, home: Optional[Path] = None) -> 'Paths':
        """
        Default Clawdbot layout.

        The workspace comes from clawdbot.json (agents.defaults.workspace),
        falling back to ~/clawd.
        """
        home = Path(home) if home else Path.home()
        workspace = _dig(_read_clawdbot_config(home), "agents", "defaults", "workspace")
        workspace = Path(workspace) if workspace else home / "clawd"
        return cls(
            sessions_dir=home / ".clawdbot" / "agents" / "main" / "sessions",
            memory_dir=workspace / "memory",
        )

    @classmethod
    def with_bases(cls, sessions_dir: Optional[Path] = None,
                   memory_dir: Optional[Path] = None) -> 'Paths':
        """Override either directory, keeping the default for the other"""
        defaults = cls.default()
        return cls(
            sessions_dir=Path(sessions_dir) if sessions_dir else defaults.sessions_dir,
            memory_dir=Path(memory_dir) if memory_dir else defaults.memory_dir,
        )


class Config:
    """Settings manager for Profundo, backed by <memory_dir>/profundo.json"""

    def __init__(self, paths: Paths, home: Optional[Path] = None):
        """
        Initialize configuration manager

        Args:
            paths: Workspace paths (settings file lives in memory_dir)
            home: Home directory used for clawdbot.json lookup (defaults to ~)
        """
        self.paths = paths
        self.home = Path(home) if home else Path.home()
        self.settings_file = paths.settings_path
        self.settings = self._load_json(self.settings_file, self._default_settings())

    def _load_json(self, file_path: Path, default: Dict[str, Any]) -> Dict[str, Any]:
        """Load JSON file merged over defaults, creating it if missing"""
        if file_path.exists():
            try:
                with open(file_path, 'r') as f:
                    loaded = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                raise StorageError(f"Cannot read settings file {file_path}: {e}") from e
            return {**default, **loaded}

        self._save_json(file_path, default)
        return dict(default)

    def _save_json(self, file_path: Path, data: Dict[str, Any]) -> None:
        """Save data to JSON file"""
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            with open(file_path, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            raise StorageError(f"Cannot write settings file {file_path}: {e}") from e

    def _default_settings(self) -> Dict[str, Any]:
        """Default settings"""
        return {
            "base_url": "https://openrouter.ai/api/v1",
            "embedding_model": "openai/text-embedding-3-small",
            "chat_model": "deepseek/deepseek-v3.2",
            "request_timeout": 60.0,
            "max_attempts": 3,
            "backoff_base": 1.0,
            "backoff_max": 30.0,
            "embed_batch_size": 32,
            "embed_concurrency": 4,
            "recall_top_k": 5,
            "recall_threshold": 0.3,
            "fusion_policy": "minmax",
            "harvest_max_chars": 50000,
            "harvest_min_messages": 4,
        }

    def get(self, key: str, default: Any = None) -> Any:
        """Get a setting value"""
        return self.settings.get(key, default)

    @property
    def base_url(self) -> str:
        return os.environ.get("OPENROUTER_BASE_URL") or self.settings["base_url"]

    def get_api_key(self) -> str:
        """
        Resolve the provider API key.

        Resolution order:
        1. OPENROUTER_API_KEY environment variable
        2. models.providers.openrouter.apiKey in ~/.clawdbot/clawdbot.json

        Raises:
            ProviderError: If no key can be found (not retryable)
        """
        api_key = os.environ.get("OPENROUTER_API_KEY")
        if api_key:
            return api_key

        api_key = _dig(
            _read_clawdbot_config(self.home),
            "models", "providers", "openrouter", "apiKey",
        )
        if isinstance(api_key, str) and api_key:
            return api_key

        raise ProviderError(
            "OPENROUTER_API_KEY not set and not found in ~/.clawdbot/clawdbot.json",
            retryable=False,
        )
