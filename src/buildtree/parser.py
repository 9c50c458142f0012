"""Parse recipe YAML files into the task registry and handle imports."""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

import typer
import yaml

from buildtree.actions import available_actions
from buildtree.graph import validate_recipe
from buildtree.logging import Logger
from buildtree.types import get_click_type

RECIPE_FILENAMES = ("buildtree.yaml", "buildtree.yml", "bt.yaml")

# Top-level recipe keys that are never task names
RESERVED_KEYS = ("default", "workspace", "import", "tasks")


class CircularImportError(Exception):
    """Raised when a circular import is detected."""

    pass


class DuplicateTaskError(Exception):
    """Raised when two tasks are registered under the same name."""

    pass


@dataclass
class ArgSpec:
    """A declared task argument."""

    name: str
    type: str = "str"
    default: Optional[str] = None


@dataclass
class WorkspaceSettings:
    """Where the workspace manifest lives, or which project roots to scan."""

    manifest: str = "global.json"
    projects: list[str] = field(default_factory=list)
    artifacts_dir: str = ""


@dataclass
class Task:
    """Represents a task definition.

    A task body is at most one of ``cmd`` (shell text), ``action`` (builtin
    workspace action) or ``func`` (Python callable). A task without a body only
    sequences its dependencies.
    """

    name: str
    desc: str = ""
    deps: list[str] = field(default_factory=list)
    cmd: str = ""
    action: str = ""
    projects: list[str] = field(default_factory=list)
    args: list[ArgSpec] = field(default_factory=list)
    working_dir: str = "."
    source_file: str = ""
    private: bool = False
    func: Optional[Callable[..., Any]] = None

    def __post_init__(self):
        if isinstance(self.deps, str):
            self.deps = [self.deps]
        if isinstance(self.projects, str):
            self.projects = [self.projects]

        bodies = [kind for kind in ("cmd", "action", "func") if getattr(self, kind)]
        if len(bodies) > 1:
            raise ValueError(
                f"Task '{self.name}' may define only one of cmd, action or a function, "
                f"but defines {' and '.join(bodies)}"
            )
        if self.projects and not self.action:
            raise ValueError(f"Task '{self.name}' sets 'projects' but has no 'action'")

    @property
    def kind(self) -> str:
        if self.cmd:
            return "cmd"
        if self.action:
            return "action"
        if self.func is not None:
            return "func"
        return "group"


@dataclass
class Recipe:
    """The task registry built from a recipe file (and the Python API)."""

    tasks: dict[str, Task] = field(default_factory=dict)
    project_root: Path = field(default_factory=Path.cwd)
    default_task: str = ""
    workspace: WorkspaceSettings = field(default_factory=WorkspaceSettings)
    recipe_path: Optional[Path] = None

    def add_task(self, task: Task) -> Task:
        """Register a task.

        Raises:
            DuplicateTaskError: If a task with the same name exists
        """
        if task.name in self.tasks:
            existing = self.tasks[task.name]
            where = f" (first defined in {existing.source_file})" if existing.source_file else ""
            raise DuplicateTaskError(f"Task '{task.name}' is defined more than once{where}")
        self.tasks[task.name] = task
        return task

    def task(
        self,
        name: str | None = None,
        *,
        deps: list[str] | None = None,
        desc: str | None = None,
        default: bool = False,
        private: bool = False,
    ) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Decorator registering a Python function as a task.

        The function is called with an ActionContext when the task runs. The
        description defaults to the first line of the docstring.

        Example:
            @recipe.task(deps=["build"], default=True)
            def smoke(ctx):
                \"\"\"Run the smoke test binary.\"\"\"
                ctx.run(["./artifacts/publish/App/App", "--self-test"])
        """

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            task_name = name or func.__name__
            doc = inspect.getdoc(func) or ""
            self.add_task(
                Task(
                    name=task_name,
                    desc=desc if desc is not None else (doc.splitlines()[0] if doc else ""),
                    deps=list(deps or []),
                    private=private,
                    func=func,
                )
            )
            if default:
                self.default_task = task_name
            return func

        return decorator

    def get_task(self, name: str) -> Task | None:
        return self.tasks.get(name)

    def task_names(self) -> list[str]:
        return list(self.tasks.keys())

    def visible_task_names(self) -> list[str]:
        """Sorted names of tasks that are not private."""
        return sorted(name for name, task in self.tasks.items() if not task.private)


def find_recipe_file(start_dir: Path | None = None) -> Path | None:
    """Find a recipe file in the current or a parent directory.

    Args:
        start_dir: Directory to start searching from (defaults to cwd)

    Returns:
        Path to recipe file if found, None otherwise
    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while True:
        for filename in RECIPE_FILENAMES:
            recipe_path = current / filename
            if recipe_path.exists():
                return recipe_path

        parent = current.parent
        if parent == current:
            break
        current = parent

    return None


def parse_recipe(recipe_path: Path) -> Recipe:
    """Parse a recipe file, following imports recursively.

    Returns:
        Validated Recipe with all tasks (including imported, namespaced ones)

    Raises:
        FileNotFoundError: If the recipe or an imported file doesn't exist
        CircularImportError: If circular imports are detected
        DuplicateTaskError: If a task name is defined twice
        yaml.YAMLError: If YAML is invalid
        ValueError: If recipe structure is invalid
        CycleError: If the task dependencies contain a cycle
        TaskNotFoundError: If a dependency or the default task doesn't exist
    """
    if not recipe_path.exists():
        raise FileNotFoundError(f"Recipe file not found: {recipe_path}")

    project_root = recipe_path.parent.resolve()
    data = _load_yaml(recipe_path)

    recipe = Recipe(
        project_root=project_root,
        workspace=_parse_workspace(data.get("workspace")),
        recipe_path=recipe_path,
    )

    _parse_file(recipe, recipe_path, data, namespace=None, import_stack=[])

    default_task = data.get("default", "")
    if default_task and not isinstance(default_task, str):
        raise ValueError("'default' must be the name of a task")
    recipe.default_task = default_task or ""

    validate_recipe(recipe)
    return recipe


def _load_yaml(file_path: Path) -> dict[str, Any]:
    with open(file_path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Recipe file '{file_path}' must contain a mapping at the top level")
    return data


def _parse_workspace(workspace_data: Any) -> WorkspaceSettings:
    if workspace_data is None:
        return WorkspaceSettings()
    if not isinstance(workspace_data, dict):
        raise ValueError("'workspace' must be a dictionary")

    unknown = set(workspace_data) - {"manifest", "projects", "artifacts_dir"}
    if unknown:
        raise ValueError(f"Unknown workspace field(s): {', '.join(sorted(unknown))}")

    projects = workspace_data.get("projects", [])
    if isinstance(projects, str):
        projects = [projects]
    if not isinstance(projects, list) or not all(isinstance(p, str) for p in projects):
        raise ValueError("'workspace.projects' must be a list of directories")

    return WorkspaceSettings(
        manifest=str(workspace_data.get("manifest", "global.json")),
        projects=projects,
        artifacts_dir=str(workspace_data.get("artifacts_dir", "")),
    )


def _parse_file(
    recipe: Recipe,
    file_path: Path,
    data: dict[str, Any],
    namespace: str | None,
    import_stack: list[Path],
) -> None:
    """Register the tasks of one recipe file, processing its imports first."""
    resolved = file_path.resolve()
    if resolved in import_stack:
        chain = " → ".join(f.name for f in import_stack + [resolved])
        raise CircularImportError(f"Circular import detected: {chain}")
    import_stack = import_stack + [resolved]

    file_dir = resolved.parent
    default_working_dir = (
        str(file_dir.relative_to(recipe.project_root)) if file_dir != recipe.project_root else "."
    )

    # Track local import namespaces for dependency rewriting
    local_import_namespaces: set[str] = set()

    for import_spec in data.get("import", []) or []:
        if not isinstance(import_spec, dict) or "file" not in import_spec or "as" not in import_spec:
            raise ValueError(f"Import entries in '{file_path}' need 'file' and 'as' keys")

        child_namespace = import_spec["as"]
        local_import_namespaces.add(child_namespace)
        full_namespace = f"{namespace}.{child_namespace}" if namespace else child_namespace

        child_path = file_dir / import_spec["file"]
        if not child_path.exists():
            raise FileNotFoundError(f"Import file not found: {child_path}")

        _parse_file(recipe, child_path, _load_yaml(child_path), full_namespace, import_stack)

    tasks_data = data["tasks"] if "tasks" in data else data
    if not isinstance(tasks_data, dict):
        raise ValueError(f"'tasks' in '{file_path}' must be a dictionary")

    for task_name, task_data in tasks_data.items():
        if task_name in RESERVED_KEYS:
            continue

        if not isinstance(task_data, dict):
            raise ValueError(f"Task '{task_name}' must be a dictionary")

        action = task_data.get("action", "")
        if action and action not in available_actions():
            raise ValueError(
                f"Task '{task_name}' uses unknown action '{action}'. "
                f"Available actions: {', '.join(available_actions())}"
            )

        full_name = f"{namespace}.{task_name}" if namespace else task_name
        deps = task_data.get("deps", [])
        if isinstance(deps, str):
            deps = [deps]
        if namespace:
            deps = [_rewrite_dep(dep, namespace, local_import_namespaces) for dep in deps]

        recipe.add_task(
            Task(
                name=full_name,
                desc=task_data.get("desc", ""),
                deps=deps,
                cmd=task_data.get("cmd", ""),
                action=action,
                projects=task_data.get("projects", []),
                args=[parse_arg_spec(spec) for spec in task_data.get("args", []) or []],
                working_dir=task_data.get("working_dir", default_working_dir),
                source_file=str(file_path),
                private=bool(task_data.get("private", False)),
            )
        )


def _rewrite_dep(dep: str, namespace: str, local_import_namespaces: set[str]) -> str:
    # Simple names and references into this file's own imports are local
    if "." not in dep or dep.split(".", 1)[0] in local_import_namespaces:
        return f"{namespace}.{dep}"
    return dep


def parse_arg_spec(arg_spec: str | dict) -> ArgSpec:
    """Parse an argument specification.

    String format: ``name[:type][=default]``. Dict format:
    ``{name: {type: ..., default: ...}}``.

    Examples:
        >>> parse_arg_spec("environment")
        ArgSpec(name='environment', type='str', default=None)
        >>> parse_arg_spec("port:int=8080")
        ArgSpec(name='port', type='int', default='8080')
        >>> parse_arg_spec({"timeout": {"type": "int", "default": 30}})
        ArgSpec(name='timeout', type='int', default='30')
    """
    if isinstance(arg_spec, dict):
        if len(arg_spec) != 1:
            raise ValueError(f"Argument spec must have exactly one name: {arg_spec}")
        name, options = next(iter(arg_spec.items()))
        options = options or {}
        if not isinstance(options, dict):
            raise ValueError(f"Options for argument '{name}' must be a dictionary")
        default = options.get("default")
        if isinstance(default, bool):
            default = str(default).lower()
        elif default is not None:
            default = str(default)
        spec = ArgSpec(name=name, type=options.get("type", "str"), default=default)
    else:
        if "=" in arg_spec:
            name_type, default = arg_spec.split("=", 1)
        else:
            name_type, default = arg_spec, None

        if ":" in name_type:
            name, arg_type = name_type.split(":", 1)
        else:
            name, arg_type = name_type, "str"
        spec = ArgSpec(name=name.strip(), type=arg_type.strip(), default=default)

    # Reject unknown types early
    get_click_type(spec.type)
    return spec


def bind_task_args(arg_specs: list[ArgSpec], raw_args: dict[str, str]) -> dict[str, Any]:
    """Convert the invocation's raw ``name=value`` arguments for one task.

    Only the arguments the task declares are bound; defaults fill the gaps.

    Raises:
        ValueError: If a required argument is missing or a value is invalid
    """
    bound: dict[str, Any] = {}
    for spec in arg_specs:
        click_type = get_click_type(spec.type)
        if spec.name in raw_args:
            raw_value = raw_args[spec.name]
        elif spec.default is not None:
            raw_value = spec.default
        else:
            raise ValueError(f"Missing required argument: {spec.name}")

        try:
            bound[spec.name] = click_type.convert(raw_value, None, None)
        except Exception as e:
            raise ValueError(f"Invalid value for {spec.name}: {e}") from e
    return bound


def get_recipe(logger: Logger, tasks_file: Optional[str] = None) -> Recipe | None:
    """Locate and parse the recipe, or None if no recipe file exists.

    Parse errors are reported and turned into a non-zero exit.
    """
    if tasks_file:
        recipe_path = Path(tasks_file)
        if not recipe_path.exists():
            logger.error(f"[red]Recipe file not found: {tasks_file}[/red]")
            raise typer.Exit(1)
    else:
        recipe_path = find_recipe_file()
        if recipe_path is None:
            return None

    logger.trace(f"Parsing recipe {recipe_path}")
    try:
        return parse_recipe(recipe_path)
    except Exception as e:
        logger.error(f"[red]Error parsing recipe: {e}[/red]")
        raise typer.Exit(1)
