"""Configuration hierarchy for build settings.

Settings are merged from, lowest to highest precedence: the machine config,
the user config, the project config (``.buildtree-config.yml`` found by walking
up from the project root), values from the recipe, ``BUILDTREE_*`` environment
variables and finally command-line options.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Optional

import platformdirs
import yaml

from buildtree.logging import Logger

__all__ = [
    "Settings",
    "ConfigError",
    "get_machine_config_path",
    "get_user_config_path",
    "find_project_config",
    "parse_config_file",
    "load_settings",
]

PROJECT_CONFIG_NAME = ".buildtree-config.yml"

# Environment variables that override individual settings
ENV_OVERRIDES = {
    "BUILDTREE_CONFIGURATION": "configuration",
    "BUILDTREE_ARTIFACTS_DIR": "artifacts_dir",
    "BUILDTREE_PACKAGE_SOURCE": "package_source",
    "BUILDTREE_VERSION_SUFFIX": "version_suffix",
    "BUILDTREE_TASK_OUTPUT": "task_output",
}

TASK_OUTPUT_MODES = ("all", "none", "out", "err")


class ConfigError(Exception):
    """Raised when a configuration file or value is invalid."""

    pass


@dataclass
class Settings:
    """Effective build settings for one invocation."""

    configuration: str = "Release"
    artifacts_dir: str = "artifacts"
    task_output: str = "all"
    package_source: str = ""
    api_key_env: str = "NUGET_API_KEY"
    version_suffix: str = ""
    shell: str = ""
    shell_args: list[str] = field(default_factory=list)
    tools: dict[str, str] = field(default_factory=dict)
    sources: list[str] = field(default_factory=list)

    def merge(self, values: dict[str, Any], source: str) -> None:
        """Overlay validated values; ``tools`` entries merge per tool."""
        for key, value in values.items():
            if key == "tools":
                self.tools.update(value)
            else:
                setattr(self, key, value)
        if values:
            self.sources.append(source)


# Expected type of every key a config file may set
_KEY_TYPES: dict[str, type] = {
    f.name: (list if f.name == "shell_args" else dict if f.name == "tools" else str)
    for f in fields(Settings)
    if f.name != "sources"
}


def get_machine_config_path() -> Path:
    """Path to the machine-level (system-wide) config file; may not exist."""
    return Path(platformdirs.site_config_dir("buildtree")) / "config.yml"


def get_user_config_path() -> Path:
    """Path to the user-level config file; may not exist."""
    return Path(platformdirs.user_config_dir("buildtree")) / "config.yml"


def find_project_config(start_dir: Path) -> Optional[Path]:
    """Walk up the directory tree from start_dir to find .buildtree-config.yml.

    Returns:
        Path to the config file if found, None otherwise
    """
    try:
        current = start_dir.resolve()
    except (OSError, RuntimeError):
        return None

    while True:
        config_path = current / PROJECT_CONFIG_NAME
        try:
            if config_path.exists():
                return config_path
        except OSError:
            pass

        parent = current.parent
        if parent == current:
            return None
        current = parent


def parse_config_file(path: Path) -> dict[str, Any]:
    """Read and validate one config file.

    Missing and empty files are valid and yield no values.

    Raises:
        ConfigError: If the file cannot be read, is malformed, has unknown keys
            or values of the wrong type
    """
    if not path.exists():
        return {}

    try:
        content = path.read_text()
    except OSError as e:
        raise ConfigError(f"Error reading config file '{path}': {e}") from e

    if not content.strip():
        return {}

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error parsing YAML in config file '{path}': {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Error in config file '{path}': top level must be a dictionary")

    return validate_values(data, f"config file '{path}'")


def validate_values(data: dict[str, Any], origin: str) -> dict[str, Any]:
    """Check keys and value types of a settings mapping.

    Raises:
        ConfigError: On unknown keys or values of the wrong type
    """
    values: dict[str, Any] = {}
    for key, value in data.items():
        expected = _KEY_TYPES.get(key)
        if expected is None:
            raise ConfigError(f"Error in {origin}: unknown setting '{key}'")

        if expected is str and isinstance(value, (int, float)) and not isinstance(value, bool):
            value = str(value)

        if not isinstance(value, expected):
            raise ConfigError(
                f"Error in {origin}: setting '{key}' must be a {expected.__name__}"
            )

        if key == "tools" and not all(isinstance(v, str) for v in value.values()):
            raise ConfigError(f"Error in {origin}: every 'tools' entry must be a path string")
        if key == "task_output" and value.lower() not in TASK_OUTPUT_MODES:
            raise ConfigError(
                f"Error in {origin}: 'task_output' must be one of {', '.join(TASK_OUTPUT_MODES)}"
            )

        values[key] = str(value).lower() if key == "task_output" else value
    return values


def _environment_values() -> dict[str, Any]:
    values = {
        setting: os.environ[env_name]
        for env_name, setting in ENV_OVERRIDES.items()
        if os.environ.get(env_name)
    }
    return validate_values(values, "environment")


def load_settings(
    start_dir: Path,
    recipe_values: Optional[dict[str, Any]] = None,
    cli_values: Optional[dict[str, Any]] = None,
    logger: Optional[Logger] = None,
) -> Settings:
    """Merge every configuration layer into one Settings object.

    Args:
        start_dir: Directory the project config search starts from
        recipe_values: Settings declared by the recipe itself
        cli_values: Settings given on the command line (None values ignored)
        logger: Optional logger for diagnostic output

    Raises:
        ConfigError: If any layer is invalid
    """
    settings = Settings()

    layers: list[tuple[str, dict[str, Any]]] = [
        (str(get_machine_config_path()), parse_config_file(get_machine_config_path())),
        (str(get_user_config_path()), parse_config_file(get_user_config_path())),
    ]

    project_config = find_project_config(start_dir)
    if project_config is not None:
        layers.append((str(project_config), parse_config_file(project_config)))

    layers.append(("recipe", validate_values(
        {k: v for k, v in (recipe_values or {}).items() if v}, "recipe"
    )))
    layers.append(("environment", _environment_values()))
    layers.append(("command line", validate_values(
        {k: v for k, v in (cli_values or {}).items() if v is not None}, "command line"
    )))

    for source, values in layers:
        if logger and values:
            logger.trace(f"Applying settings from {source}: {', '.join(sorted(values))}")
        settings.merge(values, source)

    return settings
