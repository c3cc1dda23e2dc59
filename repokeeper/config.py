#!/usr/bin/env python3
"""
Tool settings for repokeeper.

Settings are separate from the fleet config: they describe how this
installation runs (which fleet config to read by default, which git binary
to use, log level, named remotes), not what the server should contain.
"""

import os
import json
import tomllib
from pathlib import Path

import logging
import sys

import yaml

from .exit_codes import SettingsError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr) # Default to stderr
    ]
)
logger = logging.getLogger("repokeeper")

SETTINGS_FILENAMES = ['config.yaml', 'config.yml', 'config.json', 'config.toml']


def get_config_path():
    """Get the path to the settings file.

    Checks in order:
    1. REPOKEEPER_CONFIG environment variable
    2. ~/.repokeeper/ directory
    """
    if 'REPOKEEPER_CONFIG' in os.environ:
        return Path(os.environ['REPOKEEPER_CONFIG']).expanduser()

    settings_dir = Path.home() / '.repokeeper'
    for filename in SETTINGS_FILENAMES:
        path = settings_dir / filename
        if path.exists():
            return path

    # If no file exists, return default path for saving
    return settings_dir / 'config.yaml'


def get_default_config():
    """Get default settings."""
    return {
        "general": {
            "config_file": "config.xml",
            "default_branch": "main",
            "protected": ["admin"],
            "host": "",
        },
        "git": {
            "binary": "git",
            "timeout": 60,
        },
        "logging": {
            "level": "INFO",
        },
        "remotes": {},
    }


def _read_settings(config_path):
    suffix = config_path.suffix.lower()
    if suffix == '.toml':
        with open(config_path, 'rb') as f:
            return tomllib.load(f)
    with open(config_path, 'r') as f:
        if suffix in ('.yaml', '.yml'):
            return yaml.safe_load(f)
        return json.load(f)


def load_config():
    """
    Load settings: defaults, then the settings file, then environment.

    Raises:
        SettingsError: The settings file exists but cannot be parsed
    """
    config_path = get_config_path()
    config = get_default_config()

    if config_path.exists():
        try:
            file_config = _read_settings(config_path)
        except (OSError, ValueError, yaml.YAMLError, tomllib.TOMLDecodeError) as e:
            raise SettingsError(f"Error loading settings from {config_path}: {e}") from e

        if file_config is None:
            file_config = {}
        if not isinstance(file_config, dict):
            raise SettingsError(f"Settings in {config_path} must be a mapping")
        config = merge_configs(config, file_config)

    config = apply_env_overrides(config)
    return config


def save_config(config):
    """Save settings to file (YAML or JSON by extension)."""
    config_path = get_config_path()

    try:
        config_path.parent.mkdir(parents=True, exist_ok=True)
        if config_path.suffix.lower() == '.toml':
            # tomllib is read-only; keep the data and switch format
            config_path = config_path.with_suffix('.yaml')
            logger.warning(f"TOML settings cannot be written; saving to {config_path}")

        with open(config_path, 'w') as f:
            if config_path.suffix.lower() in ('.yaml', '.yml'):
                yaml.safe_dump(config, f, default_flow_style=False)
            else:
                json.dump(config, f, indent=2)
    except OSError as e:
        raise SettingsError(f"Error saving settings to {config_path}: {e}") from e

    logger.info(f"Settings saved to {config_path}")
    return config_path


def configure_logging(config, debug=False):
    """Apply the configured log level (DEBUG when `debug`)."""
    level_name = 'DEBUG' if debug else str(config.get('logging', {}).get('level', 'INFO')).upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        logger.warning(f"Unknown log level '{level_name}', using INFO")
        level = logging.INFO
    logging.getLogger().setLevel(level)


def merge_configs(base_config, override_config):
    """
    Recursively merge two configuration dictionaries.

    Args:
        base_config (dict): Base configuration
        override_config (dict): Configuration to merge/override with

    Returns:
        dict: Merged configuration
    """
    merged = base_config.copy()

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def _coerce(value):
    if value.lower() in ('true', 'yes', 'on'):
        return True
    if value.lower() in ('false', 'no', 'off'):
        return False
    if value.isdigit():
        return int(value)
    return value


def apply_env_overrides(config):
    """
    Apply environment variable overrides to settings.
    Environment variables follow the pattern: REPOKEEPER_SECTION_KEY
    For example: REPOKEEPER_GENERAL_DEFAULT_BRANCH=trunk
    """
    env_prefix = "REPOKEEPER_"

    for env_key, value in os.environ.items():
        if not env_key.startswith(env_prefix) or env_key == 'REPOKEEPER_CONFIG':
            continue

        key_parts = env_key[len(env_prefix):].lower().split('_')
        typed_value = _coerce(value)

        current_level = config
        i = 0
        while i < len(key_parts):
            # Longest key in current_level that prefixes the remaining parts
            best_match_len = 0
            matched_key = None

            for config_key in current_level.keys():
                config_key_parts = config_key.split('_')
                if key_parts[i : i + len(config_key_parts)] == config_key_parts:
                    if len(config_key_parts) > best_match_len:
                        best_match_len = len(config_key_parts)
                        matched_key = config_key

            if matched_key is None:
                break

            if i + best_match_len == len(key_parts):
                current = current_level[matched_key]
                if isinstance(current, list) and isinstance(typed_value, str):
                    typed_value = [item.strip() for item in typed_value.split(',') if item.strip()]
                current_level[matched_key] = typed_value
                break

            if not isinstance(current_level[matched_key], dict):
                break
            current_level = current_level[matched_key]
            i += best_match_len

    return config
