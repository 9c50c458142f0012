"""Create a starter buildtree recipe."""

from __future__ import annotations

from pathlib import Path

import typer

from buildtree.cli_commands import get_action_success_string
from buildtree.logging import Logger

RECIPE_TEMPLATE = """# buildtree recipe
#
# Projects are discovered from the workspace manifest (global.json by default):
#   { "projects": ["src", "test"] }

default: ci

workspace:
  manifest: global.json
  # artifacts_dir: artifacts

tasks:
  clean:
    desc: Remove build outputs and artifacts
    action: clean

  restore:
    desc: Restore package dependencies
    action: restore

  build:
    desc: Compile every project
    deps: [restore]
    action: build

  test:
    desc: Run the test projects
    deps: [build]
    action: test

  coverage:
    desc: Collect coverage into a Cobertura XML report
    deps: [build]
    action: coverage

  pack:
    desc: Package the libraries
    deps: [test]
    action: pack

  push:
    desc: Push packages to the feed (API key from $NUGET_API_KEY)
    deps: [pack]
    action: push
    args:
      - source: { default: "https://api.nuget.org/v3/index.json" }

  ci:
    desc: Full pipeline
    deps: [clean, coverage, pack]

  # hello:
  #   desc: Run a shell command
  #   args: [name=world]
  #   cmd: echo "Hello {{ arg.name }} ({{ ws.configuration }})"
"""


def init_recipe(logger: Logger):
    """
    Create a starter recipe file in the current directory.
    """
    recipe_path = Path("buildtree.yaml")
    if recipe_path.exists():
        logger.error("[red]buildtree.yaml already exists[/red]")
        raise typer.Exit(1)

    recipe_path.write_text(RECIPE_TEMPLATE)
    logger.info(f"[green]{get_action_success_string()} Created {recipe_path}[/green]")
    logger.info("Edit the file to define your tasks")
