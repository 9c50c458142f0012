"""CLI command implementations and shared utilities."""

from __future__ import annotations

import os
import sys
from typing import Any, Optional

import typer

from buildtree.config import ConfigError, Settings, load_settings
from buildtree.logging import Logger
from buildtree.parser import Recipe

NO_RECIPE_MESSAGE = "[red]No recipe file found (buildtree.yaml, buildtree.yml or bt.yaml)[/red]"


def _supports_unicode() -> bool:
    """Check whether stdout can encode the tick and cross markers."""
    # Classic Windows console (conhost) renders them badly whatever the encoding
    if os.name == "nt" and "WT_SESSION" not in os.environ:
        return False

    encoding = sys.stdout.encoding
    if not encoding:
        return False

    try:
        "✓✗".encode(encoding)
        return True
    except UnicodeEncodeError:
        return False


def get_action_success_string() -> str:
    """Tick symbol, or "[ OK ]" on terminals without UTF-8."""
    return "✓" if _supports_unicode() else "[ OK ]"


def get_action_failure_string() -> str:
    """Cross symbol, or "[ FAIL ]" on terminals without UTF-8."""
    return "✗" if _supports_unicode() else "[ FAIL ]"


def format_duration(seconds: float) -> str:
    """Render a duration the way the run summary shows it.

    >>> format_duration(0.25)
    '0.25s'
    >>> format_duration(125)
    '2m 05s'
    """
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(int(round(seconds)), 60)
    return f"{minutes}m {secs:02d}s"


def get_settings(
    logger: Logger, recipe: Recipe, cli_values: Optional[dict[str, Any]] = None
) -> Settings:
    """Effective settings for a recipe; configuration errors exit non-zero."""
    recipe_values = {"artifacts_dir": recipe.workspace.artifacts_dir}
    try:
        return load_settings(recipe.project_root, recipe_values, cli_values, logger)
    except ConfigError as e:
        logger.error(f"[red]{e}[/red]")
        raise typer.Exit(1)
