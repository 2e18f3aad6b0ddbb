"""
Chart State - Config Loader

Layered configuration:
  1. Base file (chartstate.yaml)
  2. Per-environment overlay files (config/{CS_ENV}.yaml merged over base)
  3. Environment variable overrides (CS_ prefixed)

Usage:
    from chartstate.config import load_config, get_config_value

    cfg = load_config(base_path="chartstate.yaml", env="prod")
    base_url = get_config_value("short_url.base_url", cfg, "https://www.mortality.watch")

Environment variables:
    CS_ENV          active profile (dev, staging, prod)
    CS_CONFIG_DIR   directory for overlay files (default: config/)
    CS_*            overrides; CS_LOGGING_LEVEL=DEBUG sets logging.level and
                    a double underscore separates nested keys that contain
                    underscores (CS_SHORT_URL__MAX_ENTRIES=50)
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any

import yaml

from chartstate.types import ConfigurationError

logger = logging.getLogger("chartstate.config")

ENV_PREFIX = "CS_"
DEFAULT_CONFIG_PATH = "chartstate.yaml"

DEFAULTS: dict[str, Any] = {
    "logging": {"level": "INFO"},
    "short_url": {"base_url": "https://www.mortality.watch", "max_entries": 1000},
}


# ═══════════════════════════════════════════════════════════════════
# Deep Merge
# ═══════════════════════════════════════════════════════════════════

def deep_merge(base: dict, overlay: dict) -> dict:
    """
    Deep-merge overlay into base. Overlay values win.
    Lists are replaced (not appended). Dicts are recursed.
    """
    result = copy.deepcopy(base)
    for key, value in overlay.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _set_nested(d: dict, keys: list[str], value: Any):
    for key in keys[:-1]:
        d = d.setdefault(key, {})
    d[keys[-1]] = value


def _read_yaml(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")
    return data


# ═══════════════════════════════════════════════════════════════════
# Overlay Files
# ═══════════════════════════════════════════════════════════════════

def _load_overlay_file(
    base_path: str,
    env: str = "",
    config_dir: str = "",
) -> dict[str, Any]:
    """
    Load per-environment overlay file.
    Looks for {config_dir}/{env}.yaml, then config/{env}.yaml beside the
    base file. Returns empty dict if not found.
    """
    env = env or os.environ.get("CS_ENV", "")
    if not env:
        return {}

    config_dir = config_dir or os.environ.get("CS_CONFIG_DIR", "config")

    candidates = [
        Path(config_dir) / f"{env}.yaml",
        Path(config_dir) / f"{env}.yml",
        Path(os.path.dirname(base_path)) / "config" / f"{env}.yaml",
    ]

    for path in candidates:
        if path.exists():
            try:
                overlay = _read_yaml(path)
            except (OSError, yaml.YAMLError, ConfigurationError) as e:
                logger.warning("Failed to load overlay %s: %s", path, e)
                continue
            logger.info("Loaded config overlay: %s (%d keys)", path, len(overlay))
            return overlay

    logger.debug("No config overlay found for env=%s", env)
    return {}


# ═══════════════════════════════════════════════════════════════════
# Environment Variable Overrides
# ═══════════════════════════════════════════════════════════════════

def _env_path(name: str) -> list[str]:
    name = name.lower()
    if "__" in name:
        return [part for part in name.split("__") if part]
    return name.split("_", 1)


def _load_env_overrides(prefix: str = ENV_PREFIX) -> dict[str, Any]:
    """
    Load CS_ prefixed environment variables as config overrides.

    Naming convention:
      CS_SECTION_KEY=value          → {"section": {"key": value}}
      CS_SECTION__SUB__KEY_NAME=v   → {"section": {"sub": {"key_name": v}}}

    Values are parsed as YAML scalars (numbers, booleans, lists).
    CS_ENV, CS_CONFIG_DIR and CS_VERSION are meta config and excluded.
    """
    excluded = {"CS_ENV", "CS_CONFIG_DIR", "CS_VERSION"}
    overrides: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix) or key in excluded:
            continue
        path = _env_path(key[len(prefix):])
        if not path or not all(path):
            continue
        try:
            parsed = yaml.safe_load(value)
        except yaml.YAMLError:
            parsed = value
        _set_nested(overrides, path, parsed)

    if overrides:
        logger.debug("Loaded %d env var overrides", len(overrides))
    return overrides


# ═══════════════════════════════════════════════════════════════════
# Main Loader
# ═══════════════════════════════════════════════════════════════════

def load_config(
    base_path: str = DEFAULT_CONFIG_PATH,
    env: str = "",
    config_dir: str = "",
    include_env_vars: bool = True,
) -> dict[str, Any]:
    """
    Load configuration with layered merging.

    Priority (highest wins):
      1. Environment variable overrides (CS_*)
      2. Per-environment overlay file (config/{env}.yaml)
      3. Base config file (chartstate.yaml)
      4. Built-in defaults

    A missing base file is not an error; a base file that is not valid
    YAML (or not a mapping) raises ConfigurationError.
    """
    config = copy.deepcopy(DEFAULTS)
    if os.path.exists(base_path):
        try:
            config = deep_merge(config, _read_yaml(Path(base_path)))
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {base_path}: {e}") from e
        logger.debug("Loaded base config: %s", base_path)

    overlay = _load_overlay_file(base_path, env=env, config_dir=config_dir)
    if overlay:
        config = deep_merge(config, overlay)

    if include_env_vars:
        env_overrides = _load_env_overrides()
        if env_overrides:
            config = deep_merge(config, env_overrides)

    config["_active_env"] = env or os.environ.get("CS_ENV", "default")
    config["_config_source"] = base_path

    return config


def get_config_value(
    path: str,
    config: dict[str, Any] | None = None,
    default: Any = None,
) -> Any:
    """
    Get a nested config value by dotted path.

    Example:
        get_config_value("short_url.max_entries", cfg, 1000)
    """
    if config is None:
        config = load_config()

    keys = path.split(".")
    current = config
    for key in keys:
        if isinstance(current, dict) and key in current:
            current = current[key]
        else:
            return default
    return current
