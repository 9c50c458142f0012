"""Show the projects discovered in the workspace."""

from __future__ import annotations

from typing import Any, Optional

import typer
from rich.table import Table

from buildtree.cli_commands import NO_RECIPE_MESSAGE, get_settings
from buildtree.logging import Logger
from buildtree.parser import get_recipe
from buildtree.workspace import ManifestError, Workspace, load_workspace

_CATEGORY_STYLES = {"library": "cyan", "app": "magenta", "test": "yellow"}


def show_projects(
    logger: Logger, tasks_file: Optional[str] = None, cli_values: Optional[dict[str, Any]] = None
):
    recipe = get_recipe(logger, tasks_file)
    if recipe is None:
        logger.error(NO_RECIPE_MESSAGE)
        raise typer.Exit(1)

    settings = get_settings(logger, recipe, cli_values)
    try:
        workspace = load_workspace(
            recipe.project_root,
            recipe.workspace.manifest,
            recipe.workspace.projects,
            settings.artifacts_dir,
            logger,
        )
    except ManifestError as e:
        logger.error(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not workspace.projects:
        logger.warn("[yellow]No projects found in the workspace[/yellow]")
        return

    logger.info(build_project_table(workspace))


def build_project_table(workspace: Workspace) -> Table:
    table = Table(title=f"Projects in {workspace.root}")
    table.add_column("Project", style="bold", no_wrap=True)
    table.add_column("Category")
    table.add_column("Packable")
    table.add_column("Version")
    table.add_column("Path")
    table.add_column("Packages", justify="right")
    table.add_column("References")

    for project in workspace.projects:
        category = project.category.value
        style = _CATEGORY_STYLES[category]
        try:
            rel_path = project.path.relative_to(workspace.root)
        except ValueError:
            rel_path = project.path
        table.add_row(
            project.name,
            f"[{style}]{category}[/{style}]",
            "yes" if project.packable else "no",
            project.version,
            str(rel_path),
            str(len(project.package_references)),
            ", ".join(project.project_references),
        )

    return table
