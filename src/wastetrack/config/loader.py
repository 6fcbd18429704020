from copy import deepcopy
from pathlib import Path
from typing import Any, Dict

import yaml
from jsonschema import Draft202012Validator

DEFAULT_CONFIG_PATH = Path("wastetrack.config.yaml")

DEFAULT_CONFIG: Dict[str, Any] = {
    "storage": {
        "sqlite_path": "wastetrack.db",
    },
    "pagination": {
        "default_limit": 20,
        "max_limit": 1000,
    },
    "notifications": {
        "retention_days": 30,
    },
    "audit": {
        "retention_days": 365,
    },
    "logging": {
        "level": "INFO",
    },
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "properties": {
        "storage": {
            "type": "object",
            "properties": {"sqlite_path": {"type": "string", "minLength": 1}},
        },
        "pagination": {
            "type": "object",
            "properties": {
                "default_limit": {"type": "integer", "minimum": 1},
                "max_limit": {"type": "integer", "minimum": 1},
            },
        },
        "notifications": {
            "type": "object",
            "properties": {"retention_days": {"type": "integer", "minimum": 1}},
        },
        "audit": {
            "type": "object",
            "properties": {"retention_days": {"type": "integer", "minimum": 1}},
        },
        "logging": {
            "type": "object",
            "properties": {
                "level": {"enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
            },
        },
    },
}


def _merge_defaults(config: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay a user config on top of DEFAULT_CONFIG, one section deep."""
    merged = deepcopy(DEFAULT_CONFIG)
    for section, values in config.items():
        if isinstance(values, dict) and isinstance(merged.get(section), dict):
            merged[section].update(values)
        else:
            merged[section] = values
    return merged


def validate_config(config: Dict[str, Any]) -> None:
    """
    Validate a config dict against CONFIG_SCHEMA.

    Raises:
        ValueError: With every schema violation listed, one per line
    """
    validator = Draft202012Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(config), key=lambda e: list(e.absolute_path))
    if errors:
        lines = []
        for error in errors:
            location = ".".join(str(part) for part in error.absolute_path) or "$"
            lines.append(f"{location}: {error.message}")
        raise ValueError("Invalid config:\n" + "\n".join(lines))


def load_config(path: Path | None = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file and apply defaults.

    Args:
        path: Optional path to the config file. Defaults to wastetrack.config.yaml

    Returns:
        Dictionary with every DEFAULT_CONFIG section present

    Raises:
        FileNotFoundError: If the config file doesn't exist
        ValueError: If the config structure is invalid
    """
    cfg_path = path or DEFAULT_CONFIG_PATH
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ValueError("Config must be a dictionary")
    validate_config(config)

    merged = _merge_defaults(config)
    pagination = merged["pagination"]
    if pagination["default_limit"] > pagination["max_limit"]:
        raise ValueError("pagination.default_limit cannot exceed pagination.max_limit")
    return merged


def resolve_config(path: Path | None = None) -> Dict[str, Any]:
    """Load config if present, otherwise fall back to defaults (best-effort)."""
    try:
        return load_config(path)
    except FileNotFoundError:
        return deepcopy(DEFAULT_CONFIG)


def get_sqlite_path(config: Dict[str, Any] | None = None) -> str:
    config = config if config is not None else resolve_config()
    return config.get("storage", {}).get("sqlite_path", DEFAULT_CONFIG["storage"]["sqlite_path"])
