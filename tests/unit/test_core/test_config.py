"""
Unit tests for the config module.
Tests workspace path resolution, settings defaults and API key lookup.
"""

import json
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent.parent.parent))

from profundo.core.config import Config, Paths
from profundo.core.errors import ProviderError, StorageError


def write_clawdbot(home: Path, data: dict) -> None:
    config_dir = home / ".clawdbot"
    config_dir.mkdir(parents=True, exist_ok=True)
    (config_dir / "clawdbot.json").write_text(json.dumps(data))


class TestPaths:
    """Tests for Paths resolution."""

    def test_default_layout_without_clawdbot_config(self, tmp_path):
        """Defaults to ~/.clawdbot sessions and ~/clawd/memory."""
        paths = Paths.default(home=tmp_path)
        assert paths.sessions_dir == tmp_path / ".clawdbot" / "agents" / "main" / "sessions"
        assert paths.memory_dir == tmp_path / "clawd" / "memory"

    def test_workspace_from_clawdbot_config(self, tmp_path):
        """agents.defaults.workspace moves the memory directory."""
        write_clawdbot(tmp_path, {"agents": {"defaults": {"workspace": str(tmp_path / "ws")}}})
        paths = Paths.default(home=tmp_path)
        assert paths.memory_dir == tmp_path / "ws" / "memory"

    def test_derived_files_live_in_memory_dir(self, tmp_path):
        """Every Profundo file is under memory_dir."""
        paths = Paths(sessions_dir=tmp_path / "s", memory_dir=tmp_path / "m")
        assert paths.db_path == tmp_path / "m" / "profundo.sqlite"
        assert paths.learnings_path == tmp_path / "m" / "learnings.jsonl"
        assert paths.cursor_path == tmp_path / "m" / ".profundo-cursor"
        assert paths.harvest_cursor_path == tmp_path / "m" / ".profundo-harvest-cursor"
        assert paths.lock_path == tmp_path / "m" / ".profundo.lock"

    def test_with_bases_overrides(self, tmp_path):
        """Explicit directories win over defaults."""
        paths = Paths.with_bases(tmp_path / "s", tmp_path / "m")
        assert paths.sessions_dir == tmp_path / "s"
        assert paths.memory_dir == tmp_path / "m"


class TestConfig:
    """Tests for the settings file."""

    def test_creates_settings_with_defaults(self, paths):
        """First load writes profundo.json with defaults."""
        config = Config(paths)
        assert paths.settings_path.exists()
        assert config.get("embedding_model") == "openai/text-embedding-3-small"
        assert config.get("recall_threshold") == 0.3
        assert config.get("fusion_policy") == "minmax"

    def test_user_settings_override_defaults(self, paths):
        """Existing keys are kept, missing keys fall back to defaults."""
        paths.memory_dir.mkdir(parents=True)
        paths.settings_path.write_text(json.dumps({"recall_top_k": 9}))
        config = Config(paths)
        assert config.get("recall_top_k") == 9
        assert config.get("harvest_min_messages") == 4

    def test_corrupt_settings_raise(self, paths):
        """A corrupt settings file is a StorageError."""
        paths.memory_dir.mkdir(parents=True)
        paths.settings_path.write_text("{not json")
        with pytest.raises(StorageError):
            Config(paths)


class TestApiKey:
    """Tests for API key resolution."""

    def test_env_var_wins(self, paths, tmp_path, monkeypatch):
        """OPENROUTER_API_KEY takes precedence."""
        monkeypatch.setenv("OPENROUTER_API_KEY", "env-key")
        write_clawdbot(tmp_path, {"models": {"providers": {"openrouter": {"apiKey": "file-key"}}}})
        assert Config(paths, home=tmp_path).get_api_key() == "env-key"

    def test_clawdbot_config_fallback(self, paths, tmp_path, monkeypatch):
        """Falls back to models.providers.openrouter.apiKey."""
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        write_clawdbot(tmp_path, {"models": {"providers": {"openrouter": {"apiKey": "file-key"}}}})
        assert Config(paths, home=tmp_path).get_api_key() == "file-key"

    def test_missing_key_is_permanent_provider_error(self, paths, tmp_path, monkeypatch):
        """No key anywhere raises a non-retryable ProviderError."""
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        with pytest.raises(ProviderError) as exc_info:
            Config(paths, home=tmp_path).get_api_key()
        assert exc_info.value.retryable is False
