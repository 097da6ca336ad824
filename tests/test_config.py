"""Tests for configuration loading and override behavior.

Environment variables override YAML values; a missing API key is a startup error.
"""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from src.extraction.errors import ConfigurationError, ErrorKind
from src.utils.config import Config, GeminiConfig, get_config, load_config, reset_config


@pytest.fixture(autouse=True)
def _reset_global_config(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure config singleton doesn't leak between tests."""
    for var in (
        "GEMINI_API_KEY",
        "GEMINI_MODEL",
        "GEMINI_MIN_INTERVAL_SECONDS",
        "GEMINI_MAX_ATTEMPTS",
    ):
        monkeypatch.delenv(var, raising=False)
    reset_config()
    yield
    reset_config()


def _write_yaml(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(data), encoding="utf-8")


def test_defaults_match_free_tier_quota() -> None:
    cfg = GeminiConfig(api_key="k")

    assert cfg.min_interval_seconds == 15.0
    assert cfg.max_attempts == 3
    assert cfg.model == "gemini-2.5-flash"


def test_yaml_loads_values(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(
        cfg_path,
        {"gemini": {"api_key": "yaml-key", "min_interval_seconds": 20, "max_attempts": 5}},
    )

    cfg = load_config(cfg_path)

    assert cfg.gemini.api_key == "yaml-key"
    assert cfg.gemini.min_interval_seconds == 20
    assert cfg.gemini.max_attempts == 5
    assert get_config() is cfg


def test_env_overrides_yaml(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"gemini": {"api_key": "yaml-key", "max_attempts": 5}})

    monkeypatch.setenv("GEMINI_API_KEY", "env-key")

    cfg = load_config(cfg_path)

    assert cfg.gemini.api_key == "env-key"
    assert cfg.gemini.max_attempts == 5


def test_missing_api_key_is_configuration_error(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    _write_yaml(cfg_path, {"gemini": {"model": "gemini-2.5-flash"}})

    with pytest.raises(ConfigurationError) as excinfo:
        load_config(cfg_path)

    assert excinfo.value.kind is ErrorKind.CONFIGURATION
    assert "GEMINI_API_KEY" in str(excinfo.value)


def test_invalid_yaml_root_type_raises(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(yaml.safe_dump(["not", "a", "mapping"]), encoding="utf-8")

    with pytest.raises(ValueError, match="YAML config root must be a mapping"):
        load_config(cfg_path)


def test_missing_yaml_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.yaml")


def test_get_config_requires_load() -> None:
    with pytest.raises(RuntimeError, match="not initialized"):
        get_config()


def test_max_attempts_must_be_positive() -> None:
    with pytest.raises(ValueError):
        GeminiConfig(api_key="k", max_attempts=0)


def test_prompts_path_resolves_against_project_root() -> None:
    cfg = Config(gemini=GeminiConfig(api_key="k"))

    resolved = cfg.extraction.resolve_path(cfg.extraction.prompts_path)

    assert resolved.exists()
    assert resolved.name == "extraction_prompts.yaml"
