"""Task execution in dependency order with once-per-invocation semantics."""

from __future__ import annotations

import enum
import os
import platform
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from rich.markup import escape

from buildtree.actions import ActionContext, ActionError, run_action
from buildtree.config import Settings
from buildtree.graph import resolve_execution_order
from buildtree.logging import Logger
from buildtree.parser import Recipe, Task, bind_task_args
from buildtree.process_runner import ProcessRunner, TaskOutputTypes, make_process_runner
from buildtree.substitution import substitute_all
from buildtree.tools import ToolLocator
from buildtree.workspace import Workspace, load_workspace

ProcessRunnerFactory = Callable[[TaskOutputTypes, Logger], ProcessRunner]


class TaskStatus(enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # not reached because an earlier task failed
    PLANNED = "planned"  # dry run
    ALREADY_RUN = "already run"  # completed earlier in the same invocation


@dataclass
class TaskResult:
    """Outcome of one task in an invocation."""

    name: str
    status: TaskStatus
    duration: float = 0.0
    error: Optional[str] = None


class ExecutionError(Exception):
    """Raised when a task fails; carries the failing task's name."""

    def __init__(self, task_name: str, message: str, results: Optional[dict[str, TaskResult]] = None):
        super().__init__(f"Task '{task_name}' failed: {message}")
        self.task_name = task_name
        self.results = results or {}


class Executor:
    """Runs tasks from a recipe.

    One Executor is one invocation: a task completed through it is never run
    again, even when later targets depend on it.
    """

    def __init__(
        self,
        recipe: Recipe,
        logger: Logger,
        settings: Optional[Settings] = None,
        process_runner_factory: ProcessRunnerFactory = make_process_runner,
        workspace_loader: Optional[Callable[[], Workspace]] = None,
    ):
        """
        Args:
            recipe: Parsed recipe containing all tasks
            logger: Logger for progress and diagnostics
            settings: Effective settings (defaults when omitted)
            process_runner_factory: Creates the runner used for external processes
            workspace_loader: Supplies the Workspace; defaults to manifest discovery
        """
        self.recipe = recipe
        self.logger = logger
        self.settings = settings or Settings()
        self._process_runner_factory = process_runner_factory
        self._workspace_loader = workspace_loader
        self._workspace: Optional[Workspace] = None
        self._tools = ToolLocator(self.settings, logger)
        self._completed: set[str] = set()

    @property
    def completed(self) -> set[str]:
        return set(self._completed)

    def get_workspace(self) -> Workspace:
        """Load the workspace on first use and reuse it for the invocation."""
        if self._workspace is None:
            if self._workspace_loader is not None:
                self._workspace = self._workspace_loader()
            else:
                ws = self.recipe.workspace
                self._workspace = load_workspace(
                    self.recipe.project_root,
                    ws.manifest,
                    ws.projects,
                    self.settings.artifacts_dir,
                    self.logger,
                )
            self.logger.debug(
                f"Workspace has {len(self._workspace.projects)} project(s) "
                f"at {self._workspace.root}"
            )
        return self._workspace

    def plan(self, targets: Iterable[str], only: bool = False) -> list[str]:
        """Execution order for targets, or just the targets when ``only`` is set.

        Raises:
            TaskNotFoundError: If a task doesn't exist
            CycleError: If a dependency cycle is detected
        """
        targets = list(targets)
        if only:
            order = resolve_execution_order(self.recipe, targets)  # validates names
            return [name for name in order if name in targets]
        return resolve_execution_order(self.recipe, targets)

    def execute(
        self,
        targets: str | Iterable[str],
        args: Optional[dict[str, str]] = None,
        only: bool = False,
        dry_run: bool = False,
        task_output: Optional[TaskOutputTypes] = None,
    ) -> dict[str, TaskResult]:
        """Execute targets and their dependencies, each task at most once.

        Args:
            targets: Name or names of the tasks to execute
            args: Raw ``name=value`` arguments; each task binds those it declares
            only: Run the targets without their dependencies
            dry_run: Report what would run without running anything
            task_output: Output mode for external processes (settings when None)

        Returns:
            Ordered mapping of task name to its result

        Raises:
            ExecutionError: If a task fails; later tasks are not run
        """
        if isinstance(targets, str):
            targets = [targets]
        raw_args = args or {}
        output_type = task_output or TaskOutputTypes(self.settings.task_output)
        process_runner = self._process_runner_factory(output_type, self.logger)

        order = self.plan(targets, only=only)
        self.logger.debug(f"Execution order: {', '.join(order)}")

        # Arguments are checked for the whole plan before anything runs
        bound_args: dict[str, dict[str, Any]] = {}
        for name in order:
            if name in self._completed:
                continue
            try:
                bound_args[name] = bind_task_args(self.recipe.tasks[name].args, raw_args)
            except ValueError as e:
                not_run = {n: self._not_run_result(n) for n in order}
                not_run[name] = TaskResult(name, TaskStatus.FAILED, error=str(e))
                raise ExecutionError(name, str(e), not_run) from e

        results: dict[str, TaskResult] = {}
        for index, name in enumerate(order):
            if name in self._completed:
                self.logger.trace(f"Skipping '{name}': already run in this invocation")
                results[name] = TaskResult(name, TaskStatus.ALREADY_RUN)
                continue

            task = self.recipe.tasks[name]
            if dry_run:
                self.logger.info(f"[cyan]{name}[/cyan] [dim]({task.kind})[/dim]")
                self._run_task(task, bound_args[name], process_runner, dry_run=True)
                results[name] = TaskResult(name, TaskStatus.PLANNED)
                continue

            self.logger.info(f"[bold]==> {name}[/bold]")
            started = time.monotonic()
            try:
                self._run_task(task, bound_args[name], process_runner, dry_run=False)
            except Exception as e:
                results[name] = TaskResult(
                    name, TaskStatus.FAILED, time.monotonic() - started, str(e)
                )
                for remaining in order[index + 1:]:
                    results[remaining] = self._not_run_result(remaining)
                raise ExecutionError(name, str(e), results) from e

            results[name] = TaskResult(name, TaskStatus.SUCCEEDED, time.monotonic() - started)
            self._completed.add(name)

        return results

    def _not_run_result(self, name: str) -> TaskResult:
        if name in self._completed:
            return TaskResult(name, TaskStatus.ALREADY_RUN)
        return TaskResult(name, TaskStatus.SKIPPED)

    def _run_task(
        self,
        task: Task,
        task_args: dict[str, Any],
        process_runner: ProcessRunner,
        dry_run: bool,
    ) -> None:
        if task.cmd:
            self._run_command(task, task_args, process_runner, dry_run)
            return

        if not task.action and task.func is None:
            return

        ctx = ActionContext(
            settings=self.settings,
            tools=self._tools,
            process_runner=process_runner,
            logger=self.logger,
            workspace_loader=self.get_workspace,
            task_name=task.name,
            args=task_args,
            projects=list(task.projects),
            dry_run=dry_run,
        )

        if task.action:
            run_action(task.action, ctx)
        elif dry_run:
            self.logger.info(f"    [dim]would call:[/dim] {task.func.__module__}.{task.func.__qualname__}")
        else:
            task.func(ctx)

    def _workspace_values(self) -> dict[str, str]:
        artifacts = Path(self.settings.artifacts_dir)
        if not artifacts.is_absolute():
            artifacts = self.recipe.project_root / artifacts
        return {
            "root": str(self.recipe.project_root),
            "artifacts": str(artifacts),
            "configuration": self.settings.configuration,
        }

    def _shell(self) -> tuple[str, list[str]]:
        if self.settings.shell:
            return self.settings.shell, list(self.settings.shell_args)
        if platform.system() == "Windows":
            return "cmd", ["/c"]
        return "bash", ["-c"]

    def _run_command(
        self,
        task: Task,
        task_args: dict[str, Any],
        process_runner: ProcessRunner,
        dry_run: bool,
    ) -> None:
        try:
            cmd = substitute_all(task.cmd, task_args, self._workspace_values())
        except ValueError as e:
            raise ActionError(f"Error in command template: {e}") from e

        working_dir = self.recipe.project_root / task.working_dir
        if dry_run:
            for line in cmd.strip().splitlines():
                self.logger.info(f"    [dim]would run:[/dim] {escape(line)}")
            return

        shell, shell_args = self._shell()
        env = dict(os.environ)
        env["BUILDTREE_CONFIGURATION"] = self.settings.configuration
        env["BUILDTREE_ARTIFACTS_DIR"] = self._workspace_values()["artifacts"]

        self.logger.debug(f"[dim]$ {escape(cmd.strip())}[/dim] (in {working_dir})")
        try:
            process_runner.run(
                [shell, *shell_args, cmd],
                cwd=working_dir,
                env=env,
                check=True,
            )
        except subprocess.CalledProcessError as e:
            raise ActionError(f"Command exited with code {e.returncode}") from e
        except OSError as e:
            raise ActionError(f"Could not start shell '{shell}': {e}") from e
