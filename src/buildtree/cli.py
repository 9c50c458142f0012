"""Command-line interface for buildtree."""

from __future__ import annotations

from typing import List, Optional

import click
import typer
from rich.console import Console

from buildtree import __version__
from buildtree.cli_commands.execute_tasks import execute_tasks
from buildtree.cli_commands.init_recipe import init_recipe
from buildtree.cli_commands.list_tasks import list_tasks
from buildtree.cli_commands.show_projects import show_projects
from buildtree.cli_commands.show_task import show_task
from buildtree.cli_commands.show_tree import show_tree
from buildtree.config import TASK_OUTPUT_MODES
from buildtree.console_logger import ConsoleLogger
from buildtree.logging import LogLevel, parse_log_level

app = typer.Typer(
    help="buildtree - orchestrate restore, build, test, coverage, pack and publish "
    "across a multi-project workspace",
    add_completion=False,
    no_args_is_help=False,
)
console = Console()

LOG_LEVEL_NAMES = [level.name.lower() for level in LogLevel]


def split_invocation(tokens: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split positional tokens into task names and ``name=value`` arguments.

    >>> split_invocation(["build", "test", "source=local"])
    (['build', 'test'], {'source': 'local'})
    """
    targets: list[str] = []
    raw_args: dict[str, str] = {}
    for token in tokens:
        if "=" in token:
            name, value = token.split("=", 1)
            raw_args[name] = value
        else:
            targets.append(token)
    return targets, raw_args


@app.command(context_settings={"help_option_names": ["--help", "-h"]})
def main(
    tokens: Optional[List[str]] = typer.Argument(
        None, metavar="[TASK]... [NAME=VALUE]...", help="Tasks to run and their arguments"
    ),
    version: bool = typer.Option(False, "--version", "-v", help="Show version"),
    list_opt: bool = typer.Option(False, "--list", "-l", help="List all available tasks"),
    show: Optional[str] = typer.Option(None, "--show", help="Show a task definition"),
    tree: Optional[str] = typer.Option(None, "--tree", help="Show a task's dependency tree"),
    projects: bool = typer.Option(False, "--projects", help="List the workspace projects"),
    init: bool = typer.Option(False, "--init", help="Create a starter buildtree.yaml"),
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show the execution plan and commands without running"
    ),
    only: bool = typer.Option(False, "--only", "-o", help="Run only the named tasks, skip dependencies"),
    tasks_file: Optional[str] = typer.Option(None, "--tasks", "-T", help="Path to the recipe file"),
    configuration: Optional[str] = typer.Option(
        None, "--configuration", "-c", help="Build configuration (e.g. Debug, Release)"
    ),
    log_level: str = typer.Option(
        "info",
        "--log-level",
        "-L",
        click_type=click.Choice(LOG_LEVEL_NAMES, case_sensitive=False),
        help="Diagnostic verbosity",
    ),
    task_output: Optional[str] = typer.Option(
        None,
        "--task-output",
        "-O",
        click_type=click.Choice(list(TASK_OUTPUT_MODES), case_sensitive=False),
        help="Which output of external tools to show",
    ),
):
    """Run workspace build tasks in dependency order."""
    logger = ConsoleLogger(console, parse_log_level(log_level))

    if version:
        logger.info(f"buildtree version {__version__}")
        return

    modes = [flag for flag, on in (
        ("--list", list_opt), ("--show", show), ("--tree", tree),
        ("--projects", projects), ("--init", init),
    ) if on]
    if len(modes) > 1:
        logger.error(f"[red]Options {' and '.join(modes)} cannot be combined[/red]")
        raise typer.Exit(1)

    cli_values = {"configuration": configuration, "task_output": task_output}

    if list_opt:
        list_tasks(logger, tasks_file)
        return

    if show:
        show_task(logger, show, tasks_file)
        return

    if tree:
        show_tree(logger, tree, tasks_file)
        return

    if projects:
        show_projects(logger, tasks_file, cli_values)
        return

    if init:
        init_recipe(logger)
        return

    targets, raw_args = split_invocation(tokens or [])
    execute_tasks(
        logger,
        targets,
        raw_args,
        only=only,
        dry_run=dry_run,
        tasks_file=tasks_file,
        task_output=task_output,
        cli_values=cli_values,
    )


def run():
    """Console-script entry point."""
    app()


if __name__ == "__main__":
    run()
