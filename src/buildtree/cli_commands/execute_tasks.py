"""Execute tasks command implementation."""

from __future__ import annotations

from typing import Any, Optional

import typer
from rich.markup import escape
from rich.table import Table

from buildtree.cli_commands import (
    NO_RECIPE_MESSAGE,
    format_duration,
    get_action_failure_string,
    get_action_success_string,
    get_settings,
)
from buildtree.executor import ExecutionError, Executor, TaskResult, TaskStatus
from buildtree.logging import Logger
from buildtree.parser import Recipe, get_recipe
from buildtree.process_runner import TaskOutputTypes, make_process_runner

_STATUS_STYLES = {
    TaskStatus.SUCCEEDED: "green",
    TaskStatus.FAILED: "red",
    TaskStatus.SKIPPED: "yellow",
    TaskStatus.PLANNED: "cyan",
    TaskStatus.ALREADY_RUN: "dim",
}


def execute_tasks(
    logger: Logger,
    targets: list[str],
    raw_args: dict[str, str],
    only: bool = False,
    dry_run: bool = False,
    tasks_file: Optional[str] = None,
    task_output: Optional[str] = None,
    cli_values: Optional[dict[str, Any]] = None,
) -> None:
    """
    Execute the named tasks (or the default task) with their dependencies.

    Args:
    logger: Logger interface for output
    targets: Task names; empty means the recipe's default task
    raw_args: name=value arguments given on the command line
    only: Execute only the named tasks, skip dependencies
    dry_run: Show the plan and the commands without running anything
    tasks_file: Path to recipe file (optional)
    task_output: Control external process output (all, out, err, none)
    cli_values: Settings given as command-line options
    """
    recipe = get_recipe(logger, tasks_file)
    if recipe is None:
        logger.error(NO_RECIPE_MESSAGE)
        logger.info("Run [cyan]bt --init[/cyan] to create a starter recipe")
        raise typer.Exit(1)

    if not targets:
        if not recipe.default_task:
            _show_available_tasks(logger, recipe)
            return
        logger.debug(f"No task given, running default task '{recipe.default_task}'")
        targets = [recipe.default_task]

    missing = [name for name in targets if recipe.get_task(name) is None]
    if missing:
        logger.error(f"[red]Task not found: {', '.join(missing)}[/red]")
        logger.info("\nAvailable tasks:")
        for name in recipe.visible_task_names():
            logger.info(f"  - {name}")
        raise typer.Exit(1)

    settings = get_settings(logger, recipe, cli_values)
    executor = Executor(recipe, logger, settings, make_process_runner)

    order = executor.plan(targets, only=only)
    declared = {spec.name for name in order for spec in recipe.tasks[name].args}
    unknown = sorted(set(raw_args) - declared)
    if unknown:
        logger.error(
            f"[red]Unknown argument(s): {', '.join(unknown)} "
            f"(no task in this run declares them)[/red]"
        )
        raise typer.Exit(1)

    output_type = TaskOutputTypes(task_output.lower()) if task_output else None
    label = ", ".join(targets)

    if dry_run:
        logger.info(f"[bold]Execution plan for '{label}' ({settings.configuration}):[/bold]\n")
        try:
            executor.execute(targets, raw_args, only=only, dry_run=True, task_output=output_type)
        except Exception as e:
            logger.error(f"[red]{get_action_failure_string()} {escape(str(e))}[/red]")
            raise typer.Exit(1)
        return

    try:
        results = executor.execute(targets, raw_args, only=only, task_output=output_type)
    except ExecutionError as e:
        logger.info(build_summary_table(e.results))
        logger.error(f"[red]{get_action_failure_string()} {escape(str(e))}[/red]")
        raise typer.Exit(1)
    except Exception as e:
        logger.error(f"[red]{get_action_failure_string()} Task '{label}' failed: {escape(str(e))}[/red]")
        raise typer.Exit(1)

    logger.info(build_summary_table(results))
    noun = "Task" if len(targets) == 1 else "Tasks"
    logger.info(
        f"[green]{get_action_success_string()} {noun} '{label}' completed successfully[/green]"
    )


def _show_available_tasks(logger: Logger, recipe: Recipe) -> None:
    logger.info("[bold]Available tasks:[/bold]")
    for task_name in recipe.visible_task_names():
        logger.info(f"  - {task_name}")
    logger.info("\nUse [cyan]bt --list[/cyan] for detailed information")
    logger.info("Use [cyan]bt <task-name>[/cyan] to run a task")


def build_summary_table(results: dict[str, TaskResult]) -> Table:
    """Per-task status and duration, in execution order, with a total row."""
    table = Table(title="Task summary", show_footer=True)
    table.add_column("Task", footer="Total", no_wrap=True)
    table.add_column("Status")
    table.add_column(
        "Duration",
        justify="right",
        footer=format_duration(sum(r.duration for r in results.values())),
    )

    for result in results.values():
        style = _STATUS_STYLES[result.status]
        duration = format_duration(result.duration) if result.status in (
            TaskStatus.SUCCEEDED, TaskStatus.FAILED
        ) else "-"
        table.add_row(result.name, f"[{style}]{result.status.value}[/{style}]", duration)

    return table
