"""Builtin workspace actions.

Each action maps a build step onto the projects of one or more categories and
invokes the external tool for every selected project. Actions never decide
ordering; that is the job of the task graph.
"""

from __future__ import annotations

import os
import re
import shlex
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Optional

from rich.markup import escape

from buildtree.config import Settings
from buildtree.logging import Logger
from buildtree.process_runner import ProcessRunner
from buildtree.tools import ToolLocator, ToolNotFoundError
from buildtree.workspace import Project, ProjectCategory, Workspace

DOTNET = "dotnet"
REPORT_GENERATOR = "reportgenerator"

REDACTED = "****"


class ActionError(Exception):
    """Raised when a workspace action fails."""

    pass


@dataclass
class ActionContext:
    """Everything an action (or a Python task function) may use."""

    settings: Settings
    tools: ToolLocator
    process_runner: ProcessRunner
    logger: Logger
    workspace_loader: Callable[[], Workspace]
    task_name: str = ""
    args: dict[str, Any] = field(default_factory=dict)
    projects: list[str] = field(default_factory=list)
    dry_run: bool = False

    @property
    def workspace(self) -> Workspace:
        return self.workspace_loader()

    @property
    def artifacts_dir(self) -> Path:
        return self.workspace.artifacts_dir

    def select(self, *categories: ProjectCategory) -> list[Project]:
        """Workspace projects of the given categories, honoring the task's filters."""
        return self.workspace.select(categories or None, self.projects)

    def tool(self, name: str) -> str:
        """Resolve an external tool; a dry run falls back to the bare name."""
        try:
            return self.tools.locate(name)
        except ToolNotFoundError as e:
            if not self.dry_run:
                raise
            self.logger.warn(f"[yellow]{e}[/yellow]")
            return name

    def run(
        self,
        command: list[str],
        cwd: Optional[Path] = None,
        secrets: Iterable[str] = (),
    ) -> None:
        """Run an external command, raising ActionError on a non-zero exit.

        ``secrets`` are replaced in the echoed command line.
        """
        shown = shlex.join(command)
        for secret in secrets:
            if secret:
                shown = shown.replace(secret, REDACTED)

        if self.dry_run:
            self.logger.info(f"    [dim]would run:[/dim] {escape(shown)}")
            return

        self.logger.debug(f"[dim]$ {escape(shown)}[/dim]")
        try:
            result = self.process_runner.run(command, cwd=cwd, check=False)
        except OSError as e:
            raise ActionError(f"Could not start {Path(command[0]).name}: {e}") from e

        if result.returncode != 0:
            raise ActionError(
                f"{Path(command[0]).name} exited with code {result.returncode}: {shown}"
            )

    def remove(self, path: Path) -> None:
        """Delete a file or directory tree if it exists."""
        if not path.exists():
            return
        if self.dry_run:
            self.logger.info(f"    [dim]would remove:[/dim] {path}")
            return

        self.logger.debug(f"[dim]Removing {path}[/dim]")
        if path.is_dir():
            shutil.rmtree(path)
        else:
            path.unlink()


ActionFn = Callable[[ActionContext], None]

ACTIONS: dict[str, ActionFn] = {}


def action(name: str) -> Callable[[ActionFn], ActionFn]:
    """Register a function as the builtin action ``name``."""

    def decorator(func: ActionFn) -> ActionFn:
        ACTIONS[name] = func
        return func

    return decorator


def available_actions() -> list[str]:
    return sorted(ACTIONS)


def run_action(name: str, ctx: ActionContext) -> None:
    """Dispatch to a builtin action.

    Raises:
        ActionError: If the action is unknown or fails
    """
    func = ACTIONS.get(name)
    if func is None:
        raise ActionError(f"Unknown action '{name}'")
    func(ctx)


def _warn_empty(ctx: ActionContext, what: str) -> None:
    ctx.logger.warn(f"[yellow]No {what} selected for task '{ctx.task_name}', nothing to do[/yellow]")


def _is_package_of(file_name: str, project_name: str) -> bool:
    # <PackageId>.<version>.nupkg, where the version starts with a digit
    return re.match(rf"{re.escape(project_name)}\.\d", file_name, re.IGNORECASE) is not None


def _configuration_args(ctx: ActionContext) -> list[str]:
    return ["-c", ctx.settings.configuration]


def _version_args(ctx: ActionContext) -> list[str]:
    suffix = ctx.settings.version_suffix
    return ["--version-suffix", suffix] if suffix else []


@action("clean")
def clean(ctx: ActionContext) -> None:
    """Remove build outputs of every selected project and the artifacts directory."""
    for project in ctx.select():
        for output in ("bin", "obj"):
            ctx.remove(project.path / output)
    if not ctx.projects:
        ctx.remove(ctx.artifacts_dir)


@action("restore")
def restore(ctx: ActionContext) -> None:
    projects = ctx.select()
    if not projects:
        _warn_empty(ctx, "projects")
        return

    dotnet = ctx.tool(DOTNET)
    for project in projects:
        ctx.logger.info(f"  Restoring [cyan]{project.name}[/cyan]")
        ctx.run([dotnet, "restore", str(project.project_file)], cwd=ctx.workspace.root)


@action("build")
def build(ctx: ActionContext) -> None:
    projects = ctx.select()
    if not projects:
        _warn_empty(ctx, "projects")
        return

    dotnet = ctx.tool(DOTNET)
    for project in projects:
        ctx.logger.info(f"  Building [cyan]{project.name}[/cyan]")
        ctx.run(
            [dotnet, "build", str(project.project_file), *_configuration_args(ctx), "--no-restore"]
            + _version_args(ctx),
            cwd=ctx.workspace.root,
        )


@action("test")
def test(ctx: ActionContext) -> None:
    projects = ctx.select(ProjectCategory.TEST)
    if not projects:
        _warn_empty(ctx, "test projects")
        return

    dotnet = ctx.tool(DOTNET)
    results_dir = ctx.artifacts_dir / "test-results"
    for project in projects:
        ctx.logger.info(f"  Testing [cyan]{project.name}[/cyan]")
        ctx.run(
            [
                dotnet, "test", str(project.project_file), *_configuration_args(ctx), "--no-build",
                "--logger", f"trx;LogFileName={project.name}.trx",
                "--results-directory", str(results_dir),
            ],
            cwd=ctx.workspace.root,
        )


@action("coverage")
def coverage(ctx: ActionContext) -> None:
    """Run test projects with coverage collection and merge the results.

    The merged Cobertura XML report is written to ``<artifacts>/coverage``.
    """
    projects = ctx.select(ProjectCategory.TEST)
    if not projects:
        _warn_empty(ctx, "test projects")
        return

    dotnet = ctx.tool(DOTNET)
    report_generator = ctx.tool(REPORT_GENERATOR)
    coverage_dir = ctx.artifacts_dir / "coverage"
    raw_dir = coverage_dir / "raw"

    # Stale raw results would be merged into the new report
    ctx.remove(raw_dir)

    for project in projects:
        ctx.logger.info(f"  Collecting coverage for [cyan]{project.name}[/cyan]")
        ctx.run(
            [
                dotnet, "test", str(project.project_file), *_configuration_args(ctx), "--no-build",
                "--collect", "XPlat Code Coverage",
                "--results-directory", str(raw_dir / project.name),
            ],
            cwd=ctx.workspace.root,
        )

    ctx.logger.info("  Merging coverage reports")
    ctx.run(
        [
            report_generator,
            f"-reports:{raw_dir}/**/coverage.cobertura.xml",
            f"-targetdir:{coverage_dir}",
            "-reporttypes:Cobertura",
        ],
        cwd=ctx.workspace.root,
    )


@action("pack")
def pack(ctx: ActionContext) -> None:
    projects = [p for p in ctx.select(ProjectCategory.LIBRARY) if p.packable]
    if not projects:
        _warn_empty(ctx, "packable libraries")
        return

    dotnet = ctx.tool(DOTNET)
    packages_dir = ctx.artifacts_dir / "packages"
    for project in projects:
        ctx.logger.info(f"  Packing [cyan]{project.name}[/cyan]")
        ctx.run(
            [
                dotnet, "pack", str(project.project_file), *_configuration_args(ctx), "--no-build",
                "-o", str(packages_dir),
            ]
            + _version_args(ctx),
            cwd=ctx.workspace.root,
        )


@action("publish")
def publish(ctx: ActionContext) -> None:
    projects = ctx.select(ProjectCategory.APP)
    if not projects:
        _warn_empty(ctx, "applications")
        return

    dotnet = ctx.tool(DOTNET)
    for project in projects:
        ctx.logger.info(f"  Publishing [cyan]{project.name}[/cyan]")
        ctx.run(
            [
                dotnet, "publish", str(project.project_file), *_configuration_args(ctx), "--no-build",
                "-o", str(ctx.artifacts_dir / "publish" / project.name),
            ],
            cwd=ctx.workspace.root,
        )


@action("push")
def push(ctx: ActionContext) -> None:
    """Push built packages to the package feed.

    The feed comes from the ``source`` task argument or the ``package_source``
    setting; the API key from the environment variable named by ``api_key_env``.
    """
    source = str(ctx.args.get("source") or ctx.settings.package_source)
    if not source:
        raise ActionError(
            "No package source configured. Pass source=<url> or set 'package_source'"
        )

    api_key = os.environ.get(ctx.settings.api_key_env, "")
    if not api_key:
        if not ctx.dry_run:
            raise ActionError(
                f"No API key for {source}: environment variable "
                f"{ctx.settings.api_key_env} is not set"
            )
        ctx.logger.warn(f"[yellow]{ctx.settings.api_key_env} is not set[/yellow]")
        api_key = REDACTED

    packages_dir = ctx.artifacts_dir / "packages"
    packages = sorted(
        p for p in packages_dir.glob("*.nupkg") if not p.name.endswith(".symbols.nupkg")
    ) if packages_dir.is_dir() else []
    if ctx.projects:
        packages = [
            p for p in packages
            if any(_is_package_of(p.name, project.name) for project in ctx.select())
        ]
    if not packages:
        _warn_empty(ctx, f"packages in {packages_dir}")
        return

    dotnet = ctx.tool(DOTNET)
    for package in packages:
        ctx.logger.info(f"  Pushing [cyan]{package.name}[/cyan] to {source}")
        ctx.run(
            [
                dotnet, "nuget", "push", str(package),
                "--source", source, "--api-key", api_key, "--skip-duplicate",
            ],
            cwd=ctx.workspace.root,
            secrets=[api_key],
        )
