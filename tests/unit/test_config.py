"""Tests for malowanko.core.config — configuration management.

Tests cover:
- Default values for all configuration fields.
- Environment variable overrides via the MALOWANKO_ prefix.
- Automatic directory creation and database path resolution.
- Pydantic validation constraints.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from malowanko.core.config import MalowankoConfig


class TestConfigDefaults:
    """Verify that MalowankoConfig provides sensible defaults."""

    def test_default_limit(self, monkeypatch, temp_dir: Path):
        monkeypatch.delenv("MALOWANKO_DAILY_GENERATION_LIMIT", raising=False)
        cfg = MalowankoConfig(data_dir=temp_dir, _env_file=None)
        assert cfg.daily_generation_limit == 100

    def test_default_models(self, monkeypatch, temp_dir: Path):
        monkeypatch.delenv("MALOWANKO_IMAGE_MODEL", raising=False)
        cfg = MalowankoConfig(data_dir=temp_dir, _env_file=None)
        assert cfg.image_model == "bytedance-seed/seedream-4.5"
        assert cfg.image_model in cfg.image_only_models
        assert cfg.openrouter_base_url == "https://openrouter.ai/api/v1"

    def test_default_timeouts(self, test_config: MalowankoConfig):
        assert test_config.text_timeout_seconds == 15.0
        assert test_config.image_timeout_seconds == 90.0

    def test_default_server(self, monkeypatch, temp_dir: Path):
        monkeypatch.delenv("MALOWANKO_SERVER_PORT", raising=False)
        cfg = MalowankoConfig(data_dir=temp_dir, _env_file=None)
        assert cfg.server_host == "0.0.0.0"
        assert cfg.server_port == 8000


class TestConfigPaths:
    def test_database_path_derived_from_data_dir(self, test_config: MalowankoConfig):
        assert test_config.database_path == test_config.data_dir / "malowanko.db"

    def test_data_dir_created(self, test_config: MalowankoConfig):
        assert test_config.data_dir.is_dir()

    def test_explicit_database_path(self, temp_dir: Path):
        cfg = MalowankoConfig(
            data_dir=temp_dir / "data",
            database_path=temp_dir / "db" / "custom.db",
            _env_file=None,
        )
        assert cfg.database_path == temp_dir / "db" / "custom.db"
        assert (temp_dir / "db").is_dir()


class TestEnvironmentOverrides:
    def test_prefixed_env_vars(self, monkeypatch, temp_dir: Path):
        monkeypatch.setenv("MALOWANKO_DAILY_GENERATION_LIMIT", "5")
        monkeypatch.setenv("MALOWANKO_OPENROUTER_API_KEY", "sk-or-test")
        monkeypatch.setenv("MALOWANKO_DATA_DIR", str(temp_dir / "env"))

        cfg = MalowankoConfig(_env_file=None)

        assert cfg.daily_generation_limit == 5
        assert cfg.openrouter_api_key == "sk-or-test"
        assert cfg.data_dir == temp_dir / "env"


class TestConfigValidation:
    @pytest.mark.parametrize(
        "overrides",
        [
            {"daily_generation_limit": 0},
            {"server_port": 80},
            {"image_timeout_seconds": 0},
            {"image_cache_size": -1},
        ],
    )
    def test_invalid_values_rejected(self, temp_dir: Path, overrides):
        with pytest.raises(ValidationError):
            MalowankoConfig(data_dir=temp_dir, _env_file=None, **overrides)
