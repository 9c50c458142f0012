from __future__ import annotations

from typing import Optional

import typer
from rich.table import Table

from buildtree.cli_commands import NO_RECIPE_MESSAGE
from buildtree.logging import Logger
from buildtree.parser import ArgSpec, Recipe, get_recipe


def list_tasks(logger: Logger, tasks_file: Optional[str] = None):
    """
    List all visible tasks with dependencies, arguments and descriptions.
    """
    recipe = get_recipe(logger, tasks_file)
    if recipe is None:
        logger.error(NO_RECIPE_MESSAGE)
        raise typer.Exit(1)

    logger.info(build_task_table(recipe))


def build_task_table(recipe: Recipe) -> Table:
    """Borderless table of the recipe's non-private tasks, sorted by name."""
    visible = recipe.visible_task_names()
    max_task_name_len = max((len(name) for name in visible), default=0)

    table = Table(show_edge=False, show_header=False, box=None, padding=(0, 2))
    table.add_column("Task", style="bold cyan", no_wrap=True, width=max_task_name_len)
    table.add_column("Depends on", style="dim", max_width=40)
    table.add_column("Arguments", style="white", max_width=60)
    table.add_column("Description", style="white", max_width=80)

    for task_name in visible:
        task = recipe.tasks[task_name]
        desc = task.desc
        if task_name == recipe.default_task:
            desc = f"{desc} [green](default)[/green]" if desc else "[green](default)[/green]"
        table.add_row(task_name, ", ".join(task.deps), format_task_arguments(task.args), desc)

    return table


def format_task_arguments(arg_specs: list[ArgSpec]) -> str:
    """
    Format task arguments for display in list output.

    Examples:
    [ArgSpec("mode")] -> "mode:str"
    [ArgSpec("port", "int", "8080")] -> "port:int [=8080]"
    """
    parts = []
    for spec in arg_specs:
        part = f"{spec.name}[dim]:{spec.type}[/dim]"
        if spec.default is not None:
            part += f" [dim]\\[={spec.default}][/dim]"
        parts.append(part)
    return " ".join(parts)
