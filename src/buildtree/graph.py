"""Dependency resolution over the task registry."""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from buildtree.parser import Recipe


class CycleError(Exception):
    """Raised when a dependency cycle is detected."""

    pass


class TaskNotFoundError(Exception):
    """Raised when a task or a task dependency doesn't exist."""

    pass


def resolve_execution_order(recipe: Recipe, targets: str | Iterable[str]) -> list[str]:
    """Resolve execution order for one or more targets and their dependencies.

    Dependencies come before dependents and are visited in declared order.
    Every task appears once, however many paths reach it.

    Args:
        recipe: Parsed recipe containing all tasks
        targets: Name, or names, of the tasks to execute

    Returns:
        List of task names in execution order (dependencies first)

    Raises:
        TaskNotFoundError: If a target or any dependency doesn't exist
        CycleError: If a dependency cycle is detected
    """
    if isinstance(targets, str):
        targets = [targets]

    order: list[str] = []
    done: set[str] = set()
    path: list[str] = []

    def visit(task_name: str, required_by: str | None) -> None:
        if task_name in done:
            return

        if task_name in path:
            cycle = path[path.index(task_name):] + [task_name]
            raise CycleError(f"Dependency cycle detected: {' -> '.join(cycle)}")

        task = recipe.tasks.get(task_name)
        if task is None:
            if required_by is None:
                raise TaskNotFoundError(f"Task not found: {task_name}")
            raise TaskNotFoundError(
                f"Task '{required_by}' depends on unknown task '{task_name}'"
            )

        path.append(task_name)
        for dep in task.deps:
            visit(dep, task_name)
        path.pop()

        done.add(task_name)
        order.append(task_name)

    for target in targets:
        visit(target, None)

    return order


def validate_recipe(recipe: Recipe) -> None:
    """Check that every dependency exists and that the graph has no cycles.

    Raises:
        TaskNotFoundError: If a dependency or the default task doesn't exist
        CycleError: If a dependency cycle is detected
    """
    if recipe.default_task and recipe.default_task not in recipe.tasks:
        raise TaskNotFoundError(f"Default task not found: {recipe.default_task}")

    resolve_execution_order(recipe, recipe.task_names())


def build_dependency_tree(recipe: Recipe, target_task: str) -> dict:
    """Build a nested structure describing the dependencies of a task.

    A task reached a second time is reported with ``"seen": True`` and no
    children, mirroring the once-per-invocation execution rule.

    Returns:
        Nested dictionary with ``name``, ``deps`` and ``seen`` keys
    """
    if target_task not in recipe.tasks:
        raise TaskNotFoundError(f"Task not found: {target_task}")

    expanded: set[str] = set()
    stack: list[str] = []

    def build_tree(task_name: str) -> dict:
        task = recipe.tasks.get(task_name)
        if task is None:
            raise TaskNotFoundError(f"Task not found: {task_name}")

        if task_name in stack:
            raise CycleError(
                f"Dependency cycle detected: {' -> '.join(stack[stack.index(task_name):] + [task_name])}"
            )

        if task_name in expanded:
            return {"name": task_name, "deps": [], "seen": True}

        expanded.add(task_name)
        stack.append(task_name)
        tree = {
            "name": task_name,
            "deps": [build_tree(dep) for dep in task.deps],
            "seen": False,
        }
        stack.pop()
        return tree

    return build_tree(target_task)
