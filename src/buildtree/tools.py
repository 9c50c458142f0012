"""Locate the external executables that actions invoke."""

from __future__ import annotations

import os
import shutil
from typing import Optional

from buildtree.config import Settings
from buildtree.logging import Logger


class ToolNotFoundError(Exception):
    """Raised when an external tool cannot be located."""

    pass


def tool_env_var(tool: str) -> str:
    """Name of the environment variable that overrides a tool's location.

    >>> tool_env_var("reportgenerator")
    'BUILDTREE_REPORTGENERATOR'
    """
    return "BUILDTREE_" + tool.upper().replace("-", "_").replace(".", "_")


class ToolLocator:
    """Finds tool executables: environment variable, then settings, then PATH."""

    def __init__(self, settings: Settings, logger: Optional[Logger] = None) -> None:
        self._settings = settings
        self._logger = logger
        self._cache: dict[str, str] = {}

    def locate(self, tool: str) -> str:
        """Return the executable to invoke for ``tool``.

        Raises:
            ToolNotFoundError: If no lookup location yields an executable
        """
        if tool in self._cache:
            return self._cache[tool]

        env_name = tool_env_var(tool)
        candidates = [
            (f"${env_name}", os.environ.get(env_name)),
            (f"'tools.{tool}' setting", self._settings.tools.get(tool)),
        ]

        for origin, value in candidates:
            if not value:
                continue
            resolved = shutil.which(value)
            if resolved is None:
                raise ToolNotFoundError(
                    f"Tool '{tool}' configured via {origin} as '{value}', "
                    f"but no such executable exists"
                )
            return self._remember(tool, resolved, origin)

        resolved = shutil.which(tool)
        if resolved is not None:
            return self._remember(tool, resolved, "PATH")

        raise ToolNotFoundError(
            f"Tool '{tool}' not found. Set ${env_name}, add 'tools: {{{tool}: <path>}}' "
            f"to a config file, or put it on PATH"
        )

    def _remember(self, tool: str, path: str, origin: str) -> str:
        if self._logger:
            self._logger.trace(f"Using {tool} at {path} (from {origin})")
        self._cache[tool] = path
        return path
