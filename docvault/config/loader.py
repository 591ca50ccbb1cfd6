"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ──────────────────────────────────────────
#
# Configuration is loaded in layers (later layers override earlier):
#
#   1. config/config.yaml  -- Static defaults checked into the repo
#   2. .env file           -- Local developer overrides (not committed)
#   3. Environment vars    -- Set at deploy time
#
# The YAML file is grouped into sections for readability:
#
#   storage:
#     data_dir: ./data
#   embedding:
#     provider: ollama
#
# Sections are flattened into Settings field names ("embedding" +
# "provider" → "embedding_provider"); top-level keys that already are
# field names are used as-is.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path
from typing import Any

import structlog
import yaml

from docvault.config.settings import Settings
from docvault.utils.errors import ConfigurationError

logger = structlog.get_logger(logger_name=__name__)

# Sections whose keys are stored without a prefix in Settings.
_UNPREFIXED_SECTIONS = frozenset({"storage", "app"})


def load_settings(path: str | Path = "config/config.yaml") -> Settings:
    """Load YAML defaults and overlay environment-based Settings.

    Environment variables (and ``.env``) win over YAML values where both
    set the same field.

    Args:
        path: Path to the YAML configuration file.  A missing file is not
            an error; the Settings defaults apply.

    Returns:
        Fully resolved, validated settings.

    Raises:
        ConfigurationError: If the YAML is malformed or a value is invalid.
    """
    yaml_values = _flatten(_read_yaml(Path(path)))

    env_settings = Settings()
    explicit = env_settings.model_dump(include=env_settings.model_fields_set)

    unknown = sorted(set(yaml_values) - set(Settings.model_fields))
    if unknown:
        logger.warning("config_unknown_keys", keys=unknown, path=str(path))
        for key in unknown:
            yaml_values.pop(key)

    try:
        return Settings(**{**yaml_values, **explicit})
    except ValueError as exc:
        raise ConfigurationError(f"Invalid configuration in {path}: {exc}") from exc


def _read_yaml(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Malformed YAML in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{config_path} must contain a mapping at the top level")
    return data


def _flatten(data: dict[str, Any]) -> dict[str, Any]:
    """Flatten one level of sections into Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                name = sub_key if key in _UNPREFIXED_SECTIONS else f"{key}_{sub_key}"
                flat[name] = sub_value
        else:
            flat[key] = value
    return flat
