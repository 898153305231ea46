"""
Settings for task scheduling, read from YAML configuration files.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Optional

import platformdirs
import yaml

from taskscope.logging import LogLevel

__all__ = [
    "APP_NAME",
    "PROJECT_CONFIG_NAME",
    "Settings",
    "ConfigError",
    "get_machine_config_path",
    "get_user_config_path",
    "get_user_tasks_path",
    "get_state_path",
    "find_project_config",
    "parse_config_file",
    "load_settings",
]

APP_NAME = "taskscope"
PROJECT_CONFIG_NAME = ".taskscope.yml"


class ConfigError(Exception):
    """
    Raised when a configuration file is invalid.
    """

    pass


@dataclass(frozen=True)
class Settings:
    """Effective settings after every config file has been applied."""

    # Rerun builds a fresh context instead of reusing the recorded one
    rerun_reevaluates_context: bool = False
    # Rerun leaves the history untouched
    rerun_omit_history: bool = False
    history_depth: int = 1
    log_level: LogLevel = LogLevel.INFO


def get_machine_config_path() -> Path:
    """
    Path to the machine-level (system-wide) configuration file (may not exist).
    """
    return Path(platformdirs.site_config_dir(APP_NAME)) / "config.yml"


def get_user_config_path() -> Path:
    """
    Path to the user-level configuration file (may not exist).
    """
    return Path(platformdirs.user_config_dir(APP_NAME)) / "config.yml"


def get_user_tasks_path() -> Path:
    """
    Path to the user-level tasks file, listed in every project.
    """
    return Path(platformdirs.user_config_dir(APP_NAME)) / "tasks.yaml"


def get_state_path() -> Path:
    """
    Path of the file that persists the last scheduled task between runs.
    """
    return Path(platformdirs.user_state_dir(APP_NAME)) / "last-task.json"


def find_project_config(start_dir: Path) -> Optional[Path]:
    """
    Walk up the directory tree from start_dir to find .taskscope.yml.

    Returns:
        Path to the config file if found, None otherwise
    """
    try:
        current = start_dir.resolve()
    except (OSError, RuntimeError):
        # resolve() raises on invalid paths and symlink loops
        return None

    # Safety limit for pathological trees
    max_depth = 100
    for _ in range(max_depth):
        try:
            config_path = current / PROJECT_CONFIG_NAME
            if config_path.exists():
                return config_path
        except OSError:
            # Unreadable directory: keep walking up
            pass

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def parse_config_file(path: Path, base: Settings = Settings()) -> Settings:
    """
    Apply one configuration file on top of `base`.

    Only keys present in the file change; a missing or empty file returns
    `base` unchanged.

    Config file example::

        tasks:
          rerun_reevaluates_context: true
          history_depth: 10
          log_level: debug

    Raises:
        ConfigError: If the file cannot be read, is malformed YAML, or has
                     values of the wrong type
    """
    if not path.exists():
        return base

    try:
        content = path.read_text()
    except OSError as e:
        raise ConfigError(f"Error reading config file '{path}': {e}") from e

    if not content.strip():
        return base

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML in config file '{path}': {e}") from e

    if data is None:
        return base
    if not isinstance(data, dict):
        raise ConfigError(f"Error in config file '{path}': top level must be a dictionary")

    section = data.get("tasks")
    if section is None:
        return base
    if not isinstance(section, dict):
        raise ConfigError(f"Error in config file '{path}': 'tasks' must be a dictionary")

    changes: dict[str, Any] = {}
    for key in ("rerun_reevaluates_context", "rerun_omit_history"):
        if key in section:
            value = section[key]
            if not isinstance(value, bool):
                raise ConfigError(f"Error in config file '{path}': Field '{key}' must be a boolean")
            changes[key] = value

    if "history_depth" in section:
        depth = section["history_depth"]
        # bool is an int subclass
        if not isinstance(depth, int) or isinstance(depth, bool) or depth < 1:
            raise ConfigError(
                f"Error in config file '{path}': Field 'history_depth' must be a positive integer"
            )
        changes["history_depth"] = depth

    if "log_level" in section:
        level = section["log_level"]
        if not isinstance(level, str):
            raise ConfigError(f"Error in config file '{path}': Field 'log_level' must be a string")
        try:
            changes["log_level"] = LogLevel.parse(level)
        except ValueError as e:
            raise ConfigError(f"Error in config file '{path}': {e}") from e

    unknown = sorted(set(section) - {"rerun_reevaluates_context", "rerun_omit_history", "history_depth", "log_level"})
    if unknown:
        raise ConfigError(f"Error in config file '{path}': Unknown field(s): {', '.join(unknown)}")

    return replace(base, **changes)


def load_settings(start_dir: Optional[Path] = None) -> Settings:
    """
    Load settings from machine, user, then project config; later files win.

    Raises:
        ConfigError: If any config file is invalid
    """
    settings = Settings()
    settings = parse_config_file(get_machine_config_path(), settings)
    settings = parse_config_file(get_user_config_path(), settings)
    if start_dir is not None:
        project_config = find_project_config(start_dir)
        if project_config is not None:
            settings = parse_config_file(project_config, settings)
    return settings
