"""
Configuration management for siterules.
Loads and validates settings from YAML files and environment variables.
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, ConfigDict, Field


class GeneralConfig(BaseModel):
    """General configuration."""

    model_config = ConfigDict(extra="forbid")

    project_name: str = "siterules"
    log_level: str = "INFO"
    logs_dir: str = "logs"
    log_to_file: bool = False
    json_logs: bool = True


class CacheConfig(BaseModel):
    """Pattern match result cache configuration."""

    model_config = ConfigDict(extra="forbid")

    max_results: int = Field(default=1000, ge=1, description="Bound on cached match results")


class HeadersConfig(BaseModel):
    """Header rule configuration.

    The mobile flag selects the mobile variant of the bot user agents.
    """

    model_config = ConfigDict(extra="forbid")

    address_pool_size: int = Field(default=10, ge=1)
    mobile: bool = False


class LoaderConfig(BaseModel):
    """Catalog partition loading configuration.

    Delay between attempts is base_delay * 2^attempt, capped at max_delay.
    """

    model_config = ConfigDict(extra="forbid")

    max_attempts: int = Field(default=3, ge=1, le=10)
    base_delay: float = Field(default=0.1, gt=0)
    max_delay: float = Field(default=5.0, gt=0)
    catalog_dir: str = "data/catalog"
    base_url: str | None = None  # When set, partitions are fetched over HTTP
    request_timeout: float = 10.0


class LearningConfig(BaseModel):
    """Usage learning configuration."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = True
    promotion_threshold: int = Field(default=5, ge=1)
    persist_every: int = Field(default=10, ge=1)
    store_path: str = "data/usage.json"
    preload_promoted: bool = True


class Settings(BaseModel):
    """Main settings container."""

    model_config = ConfigDict(extra="forbid")

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    headers: HeadersConfig = Field(default_factory=HeadersConfig)
    loader: LoaderConfig = Field(default_factory=LoaderConfig)
    learning: LearningConfig = Field(default_factory=LearningConfig)


M = TypeVar("M", bound=BaseModel)


def merge_settings(base: M, overrides: dict[str, Any]) -> M:
    """Apply overrides to a settings model over its declared shape.

    Only fields declared on the model are accepted. Nested sections are
    merged field by field; any other value replaces the current one.

    Args:
        base: Settings (or settings section) to start from.
        overrides: Override values keyed by field name.

    Returns:
        New validated model instance. ``base`` is left untouched.

    Raises:
        ValueError: If an override names a field the model does not declare.
    """
    fields = type(base).model_fields
    updates: dict[str, Any] = {}

    for key, value in overrides.items():
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}' for {type(base).__name__}")

        current = getattr(base, key)
        if isinstance(current, BaseModel) and isinstance(value, dict):
            updates[key] = merge_settings(current, value)
        else:
            updates[key] = value

    data = base.model_dump()
    for key, value in updates.items():
        data[key] = value.model_dump() if isinstance(value, BaseModel) else value
    return type(base).model_validate(data)


# Cache for local.yaml content (loaded once per process and directory)
_local_overrides_cache: dict[Path, dict[str, Any]] = {}


def _load_local_overrides(config_dir: Path) -> dict[str, Any]:
    """Load local.yaml overrides (cached).

    Top-level keys correspond to config file names (without .yaml extension).

    Example local.yaml:
        settings:
          loader:
            max_attempts: 5

    Args:
        config_dir: Configuration directory path.

    Returns:
        Local overrides dictionary (cached after first load).
    """
    if config_dir not in _local_overrides_cache:
        _local_overrides_cache[config_dir] = _load_yaml(config_dir / "local.yaml")
    return _local_overrides_cache[config_dir]


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _env_overrides(prefix: str = "SITERULES_") -> dict[str, Any]:
    """Collect environment variable overrides.

    Environment variables use double underscores for nested keys.
    Values are kept as strings and converted by the section models, so
    a digit-only value for a string setting stays a string.

    Example:
        SITERULES_LOADER__MAX_ATTEMPTS=5

    Args:
        prefix: Environment variable prefix.

    Returns:
        Nested override dictionary.
    """
    overrides: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix) or "__" not in key:
            continue

        key_path = key[len(prefix) :].lower().split("__")

        current = overrides
        for part in key_path[:-1]:
            current = current.setdefault(part, {})

        current[key_path[-1]] = value

    return overrides


def load_settings(config_dir: Path | str) -> Settings:
    """Load settings from a configuration directory.

    Precedence (lowest to highest):
    1. Default values
    2. settings.yaml
    3. local.yaml (``settings`` section)
    4. Environment variables

    Args:
        config_dir: Directory holding settings.yaml / local.yaml.

    Returns:
        Settings instance.
    """
    config_dir = Path(config_dir)
    settings = Settings()

    for overrides in (
        _load_yaml(config_dir / "settings.yaml"),
        _load_local_overrides(config_dir).get("settings", {}),
        _env_overrides(),
    ):
        if overrides:
            settings = merge_settings(settings, overrides)

    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get application settings.

    The configuration directory comes from SITERULES_CONFIG_DIR (default
    ``config``).

    Returns:
        Settings instance.
    """
    config_dir = Path(os.environ.get("SITERULES_CONFIG_DIR", "config"))
    return load_settings(config_dir)


def get_project_root() -> Path:
    """Get the project root directory.

    Returns:
        Project root path.
    """
    # Assuming this file is at siterules/utils/config.py
    return Path(__file__).parent.parent.parent
