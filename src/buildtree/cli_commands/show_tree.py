from __future__ import annotations

from typing import Optional

import typer
from rich.tree import Tree

from buildtree.cli_commands import NO_RECIPE_MESSAGE
from buildtree.graph import build_dependency_tree
from buildtree.logging import Logger
from buildtree.parser import get_recipe


def show_tree(logger: Logger, task_name: str, tasks_file: Optional[str] = None):
    """
    Show dependency tree structure.
    """
    recipe = get_recipe(logger, tasks_file)
    if recipe is None:
        logger.error(NO_RECIPE_MESSAGE)
        raise typer.Exit(1)

    if recipe.get_task(task_name) is None:
        logger.error(f"[red]Task not found: {task_name}[/red]")
        raise typer.Exit(1)

    try:
        dep_tree = build_dependency_tree(recipe, task_name)
    except Exception as e:
        logger.error(f"[red]Error building dependency tree: {e}[/red]")
        raise typer.Exit(1)

    logger.info(build_rich_tree(dep_tree))


def build_rich_tree(dep_tree: dict) -> Tree:
    """
    Build a Rich Tree from a dependency tree structure.

    Tasks already shown elsewhere in the tree are dimmed; they run only once.
    """
    if dep_tree.get("seen"):
        return Tree(f"[dim]{dep_tree['name']} (already listed)[/dim]")

    tree = Tree(dep_tree["name"])
    for dep in dep_tree.get("deps", []):
        tree.add(build_rich_tree(dep))
    return tree
