"""Configuration management using Pydantic for validation."""

from pathlib import Path
from typing import Any, Dict, Literal

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[2]


class GeminiConfig(BaseSettings):
    """Gemini API configuration from environment variables (GEMINI_*)."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    api_key: str = Field(default="")
    model: str = Field(default="gemini-2.5-flash")
    base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta")
    timeout: float = Field(default=60.0)

    # Free tier allows 5 requests per minute: 60s / 5 = 12s, plus a 3s margin.
    min_interval_seconds: float = Field(default=15.0)
    max_attempts: int = Field(default=3)
    daily_quota_ceiling: int = Field(default=20)

    @field_validator("min_interval_seconds", "timeout")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        """Validate timing values are not negative."""
        if v < 0:
            raise ValueError("Timing values must be >= 0")
        return v

    @field_validator("max_attempts")
    @classmethod
    def validate_max_attempts(cls, v: int) -> int:
        """Validate at least one attempt is allowed."""
        if v < 1:
            raise ValueError("max_attempts must be >= 1")
        return v


class ExtractionConfig(BaseSettings):
    """Prompt and normalization configuration."""

    prompts_path: str = "config/extraction_prompts.yaml"
    vocabulary_file: str | None = None
    narrative_lines: int = 5
    date_dayfirst: bool = True

    def resolve_path(self, value: str) -> Path:
        """Resolve a config-relative path against the working dir, then the project root."""
        path = Path(value)
        if path.is_absolute() or path.exists():
            return path
        return PROJECT_ROOT / path


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["json", "text"] = "text"
    file: str | None = None
    rotation: str = "10 MB"
    retention: int = 3


class Config(BaseSettings):
    """Main configuration class."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    gemini: GeminiConfig = Field(default_factory=GeminiConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @staticmethod
    def _deep_merge_dict(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """Deep-merge two dicts (overrides win).

        This is used to apply environment-derived overrides on top of YAML defaults.
        """
        merged: Dict[str, Any] = dict(base)
        for key, value in overrides.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = Config._deep_merge_dict(merged[key], value)
            else:
                merged[key] = value
        return merged

    @classmethod
    def from_yaml(cls, yaml_path: str | Path = "config/config.yaml") -> "Config":
        """Load configuration from YAML file and environment variables.

        Precedence (highest to lowest):
        1) Environment variables / .env
        2) YAML file
        3) Model defaults

        Args:
            yaml_path: Path to YAML configuration file

        Returns:
            Config instance with loaded settings

        Raises:
            FileNotFoundError: If YAML file doesn't exist
            yaml.YAMLError: If YAML file is invalid
        """
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

        with open(yaml_path) as f:
            yaml_config = yaml.safe_load(f) or {}

        if not isinstance(yaml_config, dict):
            raise ValueError(f"YAML config root must be a mapping/dict: {yaml_path}")

        env_overrides = cls().model_dump(exclude_defaults=True)

        # Nested GeminiConfig does not see plain GEMINI_* vars through the parent
        # model, so compute its overrides separately and merge them under "gemini".
        gemini_env_overrides = GeminiConfig().model_dump(exclude_defaults=True)
        if gemini_env_overrides:
            env_overrides["gemini"] = cls._deep_merge_dict(
                (
                    yaml_config.get("gemini", {})
                    if isinstance(yaml_config.get("gemini", {}), dict)
                    else {}
                ),
                gemini_env_overrides,
            )

        merged = cls._deep_merge_dict(yaml_config, env_overrides)

        return cls(**merged)

    def validate_config(self) -> None:
        """Validate configuration settings.

        Raises:
            ConfigurationError: If the Gemini API key is missing
            ValueError: If other settings are invalid
        """
        from src.extraction.errors import ConfigurationError

        if not self.gemini.api_key.strip():
            raise ConfigurationError(
                "Gemini API key is required. Set GEMINI_API_KEY in the environment or .env file."
            )
        if self.gemini.min_interval_seconds <= 0:
            raise ValueError("gemini.min_interval_seconds must be > 0")
        if self.extraction.narrative_lines < 1:
            raise ValueError("extraction.narrative_lines must be >= 1")


# Global configuration instance
_config: Config | None = None


def get_config() -> Config:
    """Get or create global configuration instance.

    Returns:
        Global Config instance

    Raises:
        RuntimeError: If configuration hasn't been initialized
    """
    global _config
    if _config is None:
        raise RuntimeError("Configuration not initialized. Call load_config() first.")
    return _config


def load_config(yaml_path: str | Path = "config/config.yaml") -> Config:
    """Load and validate configuration.

    Args:
        yaml_path: Path to YAML configuration file

    Returns:
        Loaded and validated Config instance
    """
    global _config
    _config = Config.from_yaml(yaml_path)
    _config.validate_config()
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
