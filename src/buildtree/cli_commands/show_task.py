from __future__ import annotations

from typing import Optional

import typer
import yaml
from rich.syntax import Syntax

from buildtree.cli_commands import NO_RECIPE_MESSAGE
from buildtree.logging import Logger
from buildtree.parser import ArgSpec, Task, get_recipe


class _LiteralDumper(yaml.SafeDumper):
    """Dumper that writes multi-line strings in literal block style."""


def _literal_presenter(dumper, data):
    if "\n" in data:
        return dumper.represent_scalar("tag:yaml.org,2002:str", data, style="|")
    return dumper.represent_scalar("tag:yaml.org,2002:str", data)


_LiteralDumper.add_representer(str, _literal_presenter)


def _arg_to_yaml(spec: ArgSpec) -> str | dict:
    if spec.type == "str" and spec.default is None:
        return spec.name
    options: dict = {"type": spec.type}
    if spec.default is not None:
        options["default"] = spec.default
    return {spec.name: options}


def task_to_yaml(task: Task) -> str:
    """YAML rendering of a task definition with empty fields left out."""
    fields = {
        "desc": task.desc,
        "deps": task.deps,
        "action": task.action,
        "projects": task.projects,
        "working_dir": task.working_dir if task.working_dir != "." else "",
        "args": [_arg_to_yaml(spec) for spec in task.args],
        "private": task.private,
        "cmd": task.cmd,
    }
    if task.func is not None:
        fields["function"] = f"{task.func.__module__}.{task.func.__qualname__}"

    body = {k: v for k, v in fields.items() if v}
    return yaml.dump(
        {task.name: body}, Dumper=_LiteralDumper, default_flow_style=False, sort_keys=False
    )


def show_task(logger: Logger, task_name: str, tasks_file: Optional[str] = None):
    """
    Show task definition with syntax highlighting.
    """
    recipe = get_recipe(logger, tasks_file)
    if recipe is None:
        logger.error(NO_RECIPE_MESSAGE)
        raise typer.Exit(1)

    task = recipe.get_task(task_name)
    if task is None:
        logger.error(f"[red]Task not found: {task_name}[/red]")
        raise typer.Exit(1)

    logger.info(f"[bold]Task: {task_name}[/bold]")
    if task.source_file:
        logger.info(f"Source: {task.source_file}")
    logger.info("")

    syntax = Syntax(task_to_yaml(task), "yaml", theme="ansi_light", line_numbers=False)
    logger.info(syntax)
