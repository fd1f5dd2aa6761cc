"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars

Files are YAML. There is no process-wide cache; callers hold on to the
config they loaded (see CommandContext).
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

from .models import DEFAULT_ID_PREFIX, GitrackConfig

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.yml"


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_user_config_path() -> Path:
    """Path to ~/.config/gitrack/config.yml (or XDG equivalent)."""
    return get_xdg_config_home() / "gitrack" / CONFIG_FILENAME


def get_project_config_path(project_root: Path) -> Path:
    """Path to .gitrack/config.yml in the project root."""
    return project_root / ".gitrack" / CONFIG_FILENAME


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Nested dicts are merged recursively; any other value in ``override``
    replaces the one in ``base``.

    Example:
        >>> deep_merge({"a": 1, "b": {"x": 10}}, {"b": {"y": 30}})
        {'a': 1, 'b': {'x': 10, 'y': 30}}
    """
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_yaml_file(path: Path) -> dict[str, Any] | None:
    """
    Load a YAML mapping, returning None if the file is absent or unreadable.

    A malformed config file is logged and ignored so that one bad user file
    does not make every command unusable.
    """
    if not path.exists():
        return None

    try:
        data = yaml.safe_load(path.read_text())
    except (yaml.YAMLError, OSError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None

    if isinstance(data, dict):
        return data
    return None


def default_id_prefix(project_root: Path | None) -> str:
    """Derive a display prefix from the project directory name."""
    if project_root is None:
        return DEFAULT_ID_PREFIX
    letters = re.sub(r"[^a-z]", "", project_root.name.lower())
    if not letters or letters == "is":
        return DEFAULT_ID_PREFIX
    return letters


def get_default_config(project_root: Path | None = None) -> dict[str, Any]:
    """Hardcoded defaults, with the display prefix derived from the project name."""
    return {
        "display": {"id_prefix": default_id_prefix(project_root)},
        "sync": {
            "branch": "gitrack-sync",
            "remote": "origin",
            "max_push_retries": 3,
            "auto_save": True,
        },
        "ids": {"min_code_length": 4},
    }


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Supported env vars:
        GITRACK_ID_PREFIX - overrides display.id_prefix
        GITRACK_SYNC_BRANCH - overrides sync.branch
        GITRACK_SYNC_REMOTE - overrides sync.remote
    """
    result = config_dict.copy()

    overrides = {
        "GITRACK_ID_PREFIX": ("display", "id_prefix"),
        "GITRACK_SYNC_BRANCH": ("sync", "branch"),
        "GITRACK_SYNC_REMOTE": ("sync", "remote"),
    }
    for env_name, (section, key) in overrides.items():
        if value := os.environ.get(env_name):
            result[section] = {**result.get(section, {}), key: value}

    return result


def load_config(project_root: Path | None = None) -> GitrackConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (GITRACK_*)
        2. Project config (.gitrack/config.yml)
        3. User config (~/.config/gitrack/config.yml)
        4. Hardcoded defaults

    Raises:
        ValidationError: If the merged config fails Pydantic validation
    """
    merged = get_default_config(project_root)

    if user_config := load_yaml_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_root is not None:
        if project_config := load_yaml_file(get_project_config_path(project_root)):
            merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    config = GitrackConfig(**merged)
    logger.debug(
        "Loaded config: prefix=%s branch=%s remote=%s",
        config.display.id_prefix,
        config.sync.branch,
        config.sync.remote,
    )
    return config


def write_project_config(project_root: Path, values: dict[str, Any]) -> Path:
    """
    Merge ``values`` into the project config file and write it back.

    Returns:
        Path of the written config file
    """
    path = get_project_config_path(project_root)
    current = load_yaml_file(path) or {}
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(deep_merge(current, values), sort_keys=False))
    return path
