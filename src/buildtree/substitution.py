"""Placeholder substitution for task commands.

Supports {{ arg.name }}, {{ env.NAME }} and {{ ws.name }} placeholders. The
``ws`` prefix exposes workspace facts such as the build configuration.
"""

import os
import re
from typing import Any


# Groups: (1) prefix (arg|env|ws), (2) name (identifier)
PLACEHOLDER_PATTERN = re.compile(
    r"\{\{\s*(arg|env|ws)\s*\.\s*([a-zA-Z_][a-zA-Z0-9_]*)\s*\}\}"
)


def substitute_arguments(text: str, args: dict[str, Any]) -> str:
    """Substitute {{ arg.name }} placeholders with argument values.

    Raises:
        ValueError: If a referenced argument is not provided
    """

    def replace_match(match: re.Match) -> str:
        prefix, name = match.group(1), match.group(2)
        if prefix != "arg":
            return match.group(0)

        if name not in args:
            raise ValueError(
                f"Argument '{name}' is not defined. "
                f"Declare it in the task's 'args' list."
            )
        return str(args[name])

    return PLACEHOLDER_PATTERN.sub(replace_match, text)


def substitute_environment(text: str) -> str:
    """Substitute {{ env.NAME }} placeholders from os.environ.

    Raises:
        ValueError: If a referenced environment variable is not set

    Example:
        >>> os.environ['USER'] = 'alice'
        >>> substitute_environment("Hello {{ env.USER }}")
        'Hello alice'
    """

    def replace_match(match: re.Match) -> str:
        prefix, name = match.group(1), match.group(2)
        if prefix != "env":
            return match.group(0)

        value = os.environ.get(name)
        if value is None:
            raise ValueError(f"Environment variable '{name}' is not set")
        return value

    return PLACEHOLDER_PATTERN.sub(replace_match, text)


def substitute_workspace(text: str, workspace_values: dict[str, str]) -> str:
    """Substitute {{ ws.name }} placeholders (root, artifacts, configuration).

    Raises:
        ValueError: If the name is not a known workspace value
    """

    def replace_match(match: re.Match) -> str:
        prefix, name = match.group(1), match.group(2)
        if prefix != "ws":
            return match.group(0)

        if name not in workspace_values:
            known = ", ".join(sorted(workspace_values))
            raise ValueError(f"Unknown workspace value '{name}'. Known values: {known}")
        return workspace_values[name]

    return PLACEHOLDER_PATTERN.sub(replace_match, text)


def substitute_all(text: str, args: dict[str, Any], workspace_values: dict[str, str]) -> str:
    """Substitute every placeholder type in a single pass.

    Substituted values are never scanned again, so an argument value that
    happens to contain ``{{ ws.root }}`` is kept literally.
    """

    def replace_match(match: re.Match) -> str:
        placeholder = match.group(0)
        prefix = match.group(1)
        if prefix == "arg":
            return substitute_arguments(placeholder, args)
        if prefix == "ws":
            return substitute_workspace(placeholder, workspace_values)
        return substitute_environment(placeholder)

    return PLACEHOLDER_PATTERN.sub(replace_match, text)
