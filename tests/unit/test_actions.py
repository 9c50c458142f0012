"""Tests for the builtin workspace actions."""

import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from buildtree.actions import (
    REDACTED,
    ActionContext,
    ActionError,
    available_actions,
    run_action,
)
from buildtree.config import Settings
from buildtree.logging import LogLevel
from buildtree.tools import ToolLocator, ToolNotFoundError
from buildtree.workspace import load_workspace
from helpers.logging import RecordingLogger
from helpers.process_runner import MockProcessRunner
from helpers.workspace import LIBRARY_PROJECT, write_project, write_sample_workspace


class FixedToolLocator(ToolLocator):
    """Resolves every tool to /tools/<name> without touching the filesystem."""

    def __init__(self, missing: tuple[str, ...] = ()):
        super().__init__(Settings())
        self.missing = missing

    def locate(self, tool: str) -> str:
        if tool in self.missing:
            raise ToolNotFoundError(f"Tool '{tool}' not found")
        return f"/tools/{tool}"


class ActionTestCase(unittest.TestCase):
    def setUp(self):
        self._tmpdir = TemporaryDirectory()
        self.root = Path(self._tmpdir.name)
        write_sample_workspace(self.root)
        self.workspace = load_workspace(self.root, "global.json", [], "artifacts")
        self.runner = MockProcessRunner()
        self.logger = RecordingLogger()
        self.settings = Settings()

    def tearDown(self):
        self._tmpdir.cleanup()

    def make_context(self, **overrides) -> ActionContext:
        values = dict(
            settings=self.settings,
            tools=FixedToolLocator(),
            process_runner=self.runner,
            logger=self.logger,
            workspace_loader=lambda: self.workspace,
            task_name="step",
        )
        values.update(overrides)
        return ActionContext(**values)

    def project_file(self, name: str) -> str:
        return str(self.workspace.get(name).project_file)


class TestRegistry(ActionTestCase):
    def test_builtin_actions_registered(self):
        self.assertEqual(
            available_actions(),
            ["build", "clean", "coverage", "pack", "publish", "push", "restore", "test"],
        )

    def test_unknown_action(self):
        with self.assertRaises(ActionError):
            run_action("deploy", self.make_context())


class TestBuildActions(ActionTestCase):
    def test_restore_every_project(self):
        run_action("restore", self.make_context())

        self.assertEqual(
            self.runner.commands,
            [
                ["/tools/dotnet", "restore", self.project_file("App")],
                ["/tools/dotnet", "restore", self.project_file("Core")],
                ["/tools/dotnet", "restore", self.project_file("Core.Tests")],
            ],
        )
        self.assertEqual(self.runner.calls[0][1]["cwd"], self.root)

    def test_build_uses_configuration_and_version_suffix(self):
        self.settings.configuration = "Debug"
        self.settings.version_suffix = "beta.1"

        run_action("build", self.make_context(projects=["Core"]))

        self.assertEqual(
            self.runner.commands,
            [[
                "/tools/dotnet", "build", self.project_file("Core"), "-c", "Debug",
                "--no-restore", "--version-suffix", "beta.1",
            ]],
        )

    def test_test_runs_only_test_projects(self):
        run_action("test", self.make_context())

        self.assertEqual(len(self.runner.commands), 1)
        command = self.runner.commands[0]
        self.assertEqual(command[:3], ["/tools/dotnet", "test", self.project_file("Core.Tests")])
        self.assertIn("trx;LogFileName=Core.Tests.trx", command)
        self.assertIn(str(self.root / "artifacts" / "test-results"), command)

    def test_pack_only_packable_libraries(self):
        run_action("pack", self.make_context())

        self.assertEqual(len(self.runner.commands), 1)
        command = self.runner.commands[0]
        self.assertEqual(command[:3], ["/tools/dotnet", "pack", self.project_file("Core")])
        self.assertEqual(command[-2:], ["-o", str(self.root / "artifacts" / "packages")])

    def test_publish_applications(self):
        run_action("publish", self.make_context())

        command = self.runner.commands[0]
        self.assertEqual(command[:3], ["/tools/dotnet", "publish", self.project_file("App")])
        self.assertIn(str(self.root / "artifacts" / "publish" / "App"), command)

    def test_coverage_collects_and_merges(self):
        stale = self.root / "artifacts" / "coverage" / "raw" / "old"
        stale.mkdir(parents=True)

        run_action("coverage", self.make_context())

        self.assertFalse(stale.exists())
        collect, merge = self.runner.commands
        self.assertEqual(collect[:3], ["/tools/dotnet", "test", self.project_file("Core.Tests")])
        self.assertIn("XPlat Code Coverage", collect)
        self.assertEqual(merge[0], "/tools/reportgenerator")
        self.assertIn("-reporttypes:Cobertura", merge)

    def test_empty_selection_warns(self):
        run_action("test", self.make_context(projects=["Core"]))

        self.assertEqual(self.runner.commands, [])
        self.assertIn(
            "No test projects selected for task 'step'",
            "\n".join(self.logger.messages(LogLevel.WARN)),
        )

    def test_failure_raises_action_error(self):
        self.runner.fail_on = {"build": 1}

        with self.assertRaises(ActionError) as cm:
            run_action("build", self.make_context())
        self.assertIn("dotnet exited with code 1", str(cm.exception))
        # First failing project stops the action
        self.assertEqual(len(self.runner.commands), 1)

    def test_missing_tool_propagates(self):
        with self.assertRaises(ToolNotFoundError):
            run_action("build", self.make_context(tools=FixedToolLocator(missing=("dotnet",))))


class TestClean(ActionTestCase):
    def test_removes_outputs_and_artifacts(self):
        core = self.workspace.get("Core")
        (core.path / "bin").mkdir()
        (core.path / "obj").mkdir()
        (self.root / "artifacts").mkdir()

        run_action("clean", self.make_context())

        self.assertFalse((core.path / "bin").exists())
        self.assertFalse((core.path / "obj").exists())
        self.assertFalse((self.root / "artifacts").exists())
        self.assertEqual(self.runner.commands, [])

    def test_filtered_clean_keeps_artifacts(self):
        (self.root / "artifacts").mkdir()

        run_action("clean", self.make_context(projects=["Core"]))

        self.assertTrue((self.root / "artifacts").exists())


class TestPush(ActionTestCase):
    def setUp(self):
        super().setUp()
        packages = self.root / "artifacts" / "packages"
        packages.mkdir(parents=True)
        (packages / "Core.1.2.0.nupkg").write_text("")
        (packages / "Core.1.2.0.symbols.nupkg").write_text("")

    def test_push_redacts_api_key(self):
        with patch.dict(os.environ, {"NUGET_API_KEY": "s3cret"}):
            run_action("push", self.make_context(args={"source": "https://feed.example/v3"}))

        self.assertEqual(
            self.runner.commands,
            [[
                "/tools/dotnet", "nuget", "push",
                str(self.root / "artifacts" / "packages" / "Core.1.2.0.nupkg"),
                "--source", "https://feed.example/v3", "--api-key", "s3cret", "--skip-duplicate",
            ]],
        )
        self.assertNotIn("s3cret", self.logger.text())

    def test_push_source_from_settings(self):
        self.settings.package_source = "https://settings.example/v3"

        with patch.dict(os.environ, {"NUGET_API_KEY": "key"}):
            run_action("push", self.make_context())

        self.assertIn("https://settings.example/v3", self.runner.commands[0])

    def test_push_without_source(self):
        with self.assertRaises(ActionError) as cm:
            run_action("push", self.make_context())
        self.assertIn("No package source", str(cm.exception))

    def test_push_without_api_key(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("NUGET_API_KEY", None)
            with self.assertRaises(ActionError) as cm:
                run_action("push", self.make_context(args={"source": "feed"}))
        self.assertIn("NUGET_API_KEY is not set", str(cm.exception))

    def test_push_filter_matches_package_id_exactly(self):
        write_project(self.root / "src", "Core.Abstractions", LIBRARY_PROJECT)
        self.workspace = load_workspace(self.root, "global.json", [], "artifacts")
        packages = self.root / "artifacts" / "packages"
        (packages / "Core.Abstractions.1.0.0.nupkg").write_text("")

        with patch.dict(os.environ, {"NUGET_API_KEY": "key"}):
            run_action("push", self.make_context(args={"source": "feed"}, projects=["Core"]))

        pushed = [Path(command[3]).name for command in self.runner.commands]
        self.assertEqual(pushed, ["Core.1.2.0.nupkg"])


class TestDryRun(ActionTestCase):
    def test_dry_run_runs_nothing(self):
        core = self.workspace.get("Core")
        (core.path / "bin").mkdir()

        run_action("clean", self.make_context(dry_run=True))
        run_action("build", self.make_context(dry_run=True))

        self.assertEqual(self.runner.commands, [])
        self.assertTrue((core.path / "bin").exists())
        text = self.logger.text()
        self.assertIn("would remove:", text)
        self.assertIn("would run:", text)

    def test_dry_run_tolerates_missing_tool(self):
        ctx = self.make_context(dry_run=True, tools=FixedToolLocator(missing=("dotnet",)))

        run_action("restore", ctx)

        self.assertIn("dotnet restore", self.logger.text())

    def test_dry_run_push_hides_key(self):
        with patch.dict(os.environ, {"NUGET_API_KEY": "s3cret"}):
            run_action("push", self.make_context(dry_run=True, args={"source": "feed"}))

        self.assertIn(f"--api-key {REDACTED}", self.logger.text())
        self.assertNotIn("s3cret", self.logger.text())


if __name__ == "__main__":
    unittest.main()
