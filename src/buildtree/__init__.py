"""buildtree - task-graph build automation for multi-project workspaces."""

__version__ = "0.1.0"

from buildtree.actions import ActionContext, ActionError, available_actions
from buildtree.config import ConfigError, Settings, load_settings
from buildtree.executor import ExecutionError, Executor, TaskResult, TaskStatus
from buildtree.graph import (
    CycleError,
    TaskNotFoundError,
    build_dependency_tree,
    resolve_execution_order,
    validate_recipe,
)
from buildtree.parser import (
    ArgSpec,
    CircularImportError,
    DuplicateTaskError,
    Recipe,
    Task,
    find_recipe_file,
    parse_arg_spec,
    parse_recipe,
)
from buildtree.tools import ToolLocator, ToolNotFoundError
from buildtree.workspace import (
    ManifestError,
    Project,
    ProjectCategory,
    Workspace,
    load_workspace,
)

__all__ = [
    "__version__",
    "ActionContext",
    "ActionError",
    "available_actions",
    "ConfigError",
    "Settings",
    "load_settings",
    "ExecutionError",
    "Executor",
    "TaskResult",
    "TaskStatus",
    "CycleError",
    "TaskNotFoundError",
    "build_dependency_tree",
    "resolve_execution_order",
    "validate_recipe",
    "ArgSpec",
    "CircularImportError",
    "DuplicateTaskError",
    "Recipe",
    "Task",
    "find_recipe_file",
    "parse_arg_spec",
    "parse_recipe",
    "ToolLocator",
    "ToolNotFoundError",
    "ManifestError",
    "Project",
    "ProjectCategory",
    "Workspace",
    "load_workspace",
]
