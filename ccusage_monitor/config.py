"""Configuration management for ccusage-monitor."""

import json
import logging
import os
from decimal import Decimal
from typing import Dict, List, Optional

import toml
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .models.limits import LimitsConfig, PlanLimit, default_limits_config
from .utils.error_handling import ConfigurationError

logger = logging.getLogger(__name__)


def claude_data_dirs() -> List[str]:
    """Get default Claude Code projects directories.

    The XDG location is the current default; ~/.claude is the legacy one.
    Both are scanned when present.
    """
    config_base = os.getenv("XDG_CONFIG_HOME") or os.path.join("~", ".config")
    return [
        os.path.join(config_base, "claude", "projects"),
        os.path.join("~", ".claude", "projects"),
    ]


class PathsConfig(BaseModel):
    """Configuration for file paths."""

    claude_data_dirs: List[str] = Field(default_factory=claude_data_dirs)

    @field_validator("claude_data_dirs")
    @classmethod
    def expand_paths(cls, v):
        """Expand user paths and environment variables."""
        return [os.path.expanduser(os.path.expandvars(p)) for p in v]


class QuotaConfig(BaseModel):
    """Configuration for quota estimation."""

    plan: str = Field(default="max5x", description="Plan id from limits configuration")
    limits_file: Optional[str] = Field(
        default=None, description="Explicit path to limits.yaml"
    )


class MonitorConfig(BaseModel):
    """Configuration for refresh cadence and derived views."""

    refresh_interval: int = Field(default=30, ge=5, le=600)
    watch_debounce_ms: int = Field(default=500, ge=50, le=10000)
    active_session_hours: int = Field(default=24, ge=1, le=168)
    default_period: str = Field(default="today", pattern="^(today|week|month|all)$")
    refresh_timeout: float = Field(default=30.0, gt=0)


class IndexConfig(BaseModel):
    """Configuration for the DuckDB usage index."""

    db_path: str = Field(
        default=":memory:",
        description="DuckDB database for the event index (in-memory by default)",
    )
    batch_size: int = Field(default=500, ge=10, le=10000)


class Config(BaseModel):
    """Main configuration class."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    quota: QuotaConfig = Field(default_factory=QuotaConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)


class ModelPricing(BaseModel):
    """Pricing and capacity for a model family."""

    input: Decimal = Field(description="Cost per 1M input tokens")
    output: Decimal = Field(description="Cost per 1M output tokens")
    cache_write: Decimal = Field(
        alias="cacheWrite", description="Cost per 1M cache write tokens"
    )
    cache_read: Decimal = Field(
        alias="cacheRead", description="Cost per 1M cache read tokens"
    )
    context_window: int = Field(
        alias="contextWindow", description="Maximum context window size"
    )


class ConfigManager:
    """Manages configuration loading and access."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file. If None, searches standard locations.
        """
        self.config_path = config_path or self._find_config_file()
        self._config: Optional[Config] = None
        self._pricing_data: Optional[Dict[str, ModelPricing]] = None
        self._limits_config: Optional[LimitsConfig] = None

    def _find_config_file(self) -> str:
        """Find configuration file in standard locations."""
        search_paths = [
            os.path.expanduser("~/.config/ccusage-monitor/config.toml"),
            "config.toml",
            "ccusage_monitor.toml",
        ]

        for path in search_paths:
            if os.path.exists(path):
                return path

        # Return default path even if it doesn't exist
        return search_paths[0]

    @property
    def config(self) -> Config:
        """Get configuration, loading if necessary."""
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def _load_config(self) -> Config:
        """Load configuration from TOML file."""
        if not os.path.exists(self.config_path):
            return Config()

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                config_data = toml.load(f)
            return Config(**config_data)
        except (toml.TomlDecodeError, ValidationError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid configuration file {self.config_path}: {e}"
            ) from e

    def load_pricing_data(self) -> Dict[str, ModelPricing]:
        """Load model pricing data."""
        if self._pricing_data is None:
            self._pricing_data = load_pricing_file()
        return self._pricing_data

    def reload(self):
        """Reload configuration, pricing and limits."""
        self._config = None
        self._pricing_data = None
        self._limits_config = None

    def _find_limits_file(self) -> Optional[str]:
        """Find limits configuration file."""
        explicit = self.config.quota.limits_file
        if explicit:
            return os.path.expanduser(explicit)

        search_paths = [
            os.path.expanduser("~/.config/ccusage-monitor/limits.yaml"),
            os.path.join(os.path.dirname(self.config_path), "limits.yaml"),
            "limits.yaml",
        ]

        for path in search_paths:
            if os.path.exists(path):
                return path
        return None

    def load_limits_config(self) -> LimitsConfig:
        """Load plan limits configuration (built-in defaults if none found)."""
        if self._limits_config is None:
            self._limits_config = self._load_limits_config()
        return self._limits_config

    def _load_limits_config(self) -> LimitsConfig:
        """Load limits from YAML file."""
        limits_file = self._find_limits_file()
        if not limits_file:
            return default_limits_config()

        try:
            return load_limits_file(limits_file)
        except ConfigurationError as e:
            logger.warning("%s; using built-in plan limits", e)
            return default_limits_config()

    def get_plan_limit(self, plan_id: Optional[str] = None) -> PlanLimit:
        """Get limits for the configured (or given) plan."""
        limits = self.load_limits_config()
        try:
            return limits.get_plan(plan_id or self.config.quota.plan)
        except KeyError as e:
            raise ConfigurationError(f"Unknown plan: {e.args[0]}") from e


def load_pricing_file(models_file: Optional[str] = None) -> Dict[str, ModelPricing]:
    """Load pricing data from a JSON file (bundled models.json by default).

    Raises:
        ConfigurationError: If the file exists but cannot be parsed
    """
    if models_file is None:
        models_file = os.path.join(os.path.dirname(__file__), "models.json")

    if not os.path.exists(models_file):
        return {}

    try:
        with open(models_file, "r", encoding="utf-8") as f:
            raw_data = json.load(f)

        return {
            model_name: ModelPricing(**model_data)
            for model_name, model_data in raw_data.items()
        }
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid pricing file {models_file}: {e}") from e


def load_limits_file(limits_file: str) -> LimitsConfig:
    """Parse a limits.yaml file.

    Expected shape::

        default_plan: max5x
        plans:
          - plan_id: max5x
            messages_per_window: 225
            weekly_prompt_limit: 2590
            week_limit_hours: 210
            model_limits:
              - model_pattern: "*opus*"
                messages_per_window: 100

    Raises:
        ConfigurationError: If the file cannot be read or validated
    """
    try:
        with open(limits_file, "r", encoding="utf-8") as f:
            raw_data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Could not load limits from {limits_file}: {e}") from e

    if not raw_data:
        return default_limits_config()

    try:
        return LimitsConfig(**raw_data)
    except (ValidationError, TypeError) as e:
        raise ConfigurationError(f"Invalid limits file {limits_file}: {e}") from e


# Global configuration manager instance
config_manager = ConfigManager()
