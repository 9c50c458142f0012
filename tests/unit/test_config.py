"""Tests for the configuration hierarchy."""

import os
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from buildtree import config
from buildtree.config import (
    ConfigError,
    Settings,
    find_project_config,
    load_settings,
    parse_config_file,
    validate_values,
)


class TestParseConfigFile(unittest.TestCase):
    def test_missing_file_yields_nothing(self):
        self.assertEqual(parse_config_file(Path("/nonexistent/config.yml")), {})

    def test_empty_file_yields_nothing(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yml"
            path.write_text("   \n")
            self.assertEqual(parse_config_file(path), {})

    def test_valid_values(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yml"
            path.write_text("""
configuration: Debug
artifacts_dir: out
task_output: ERR
tools:
  dotnet: /opt/dotnet/dotnet
shell_args: ["-e", "-c"]
""")
            values = parse_config_file(path)

            self.assertEqual(values["configuration"], "Debug")
            self.assertEqual(values["artifacts_dir"], "out")
            self.assertEqual(values["task_output"], "err")
            self.assertEqual(values["tools"], {"dotnet": "/opt/dotnet/dotnet"})
            self.assertEqual(values["shell_args"], ["-e", "-c"])

    def test_malformed_yaml(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yml"
            path.write_text("configuration: [Debug\n")

            with self.assertRaises(ConfigError) as cm:
                parse_config_file(path)
            self.assertIn("Error parsing YAML", str(cm.exception))

    def test_top_level_must_be_mapping(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "config.yml"
            path.write_text("- Debug\n")

            with self.assertRaises(ConfigError):
                parse_config_file(path)


class TestValidateValues(unittest.TestCase):
    def test_unknown_key(self):
        with self.assertRaises(ConfigError) as cm:
            validate_values({"runners": {}}, "test")
        self.assertIn("unknown setting 'runners'", str(cm.exception))

    def test_wrong_type(self):
        with self.assertRaises(ConfigError):
            validate_values({"tools": ["dotnet"]}, "test")

    def test_numbers_accepted_as_strings(self):
        self.assertEqual(validate_values({"version_suffix": 42}, "test"), {"version_suffix": "42"})

    def test_invalid_task_output(self):
        with self.assertRaises(ConfigError):
            validate_values({"task_output": "some"}, "test")

    def test_tool_paths_must_be_strings(self):
        with self.assertRaises(ConfigError):
            validate_values({"tools": {"dotnet": 3}}, "test")


class TestFindProjectConfig(unittest.TestCase):
    def test_found_in_parent(self):
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / ".buildtree-config.yml").write_text("configuration: Debug\n")
            nested = root / "src" / "Core"
            nested.mkdir(parents=True)

            self.assertEqual(
                find_project_config(nested), (root / ".buildtree-config.yml").resolve()
            )


class TestLoadSettings(unittest.TestCase):
    def test_defaults(self):
        with TemporaryDirectory() as tmpdir:
            settings = load_settings(Path(tmpdir))

            self.assertEqual(settings.configuration, "Release")
            self.assertEqual(settings.artifacts_dir, "artifacts")
            self.assertEqual(settings.task_output, "all")
            self.assertEqual(settings.api_key_env, "NUGET_API_KEY")

    def test_layer_precedence(self):
        """Test machine < user < project < recipe < environment < command line."""
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            config.get_machine_config_path().write_text(
                "configuration: Machine\npackage_source: machine-feed\n"
                "version_suffix: machine\ntools:\n  dotnet: /machine/dotnet\n"
            )
            config.get_user_config_path().write_text(
                "configuration: User\ntools:\n  reportgenerator: /user/rg\n"
            )
            (root / ".buildtree-config.yml").write_text(
                "configuration: Project\nartifacts_dir: project-out\n"
            )

            with patch.dict(os.environ, {"BUILDTREE_VERSION_SUFFIX": "ci-7"}):
                settings = load_settings(
                    root,
                    recipe_values={"artifacts_dir": "recipe-out"},
                    cli_values={"configuration": "Cli", "task_output": None},
                )

            self.assertEqual(settings.configuration, "Cli")
            self.assertEqual(settings.artifacts_dir, "recipe-out")
            self.assertEqual(settings.package_source, "machine-feed")
            self.assertEqual(settings.version_suffix, "ci-7")
            self.assertEqual(
                settings.tools, {"dotnet": "/machine/dotnet", "reportgenerator": "/user/rg"}
            )
            self.assertIn("environment", settings.sources)
            self.assertIn("command line", settings.sources)

    def test_empty_recipe_values_do_not_override(self):
        with TemporaryDirectory() as tmpdir:
            root = Path(tmpdir)
            (root / ".buildtree-config.yml").write_text("artifacts_dir: project-out\n")

            settings = load_settings(root, recipe_values={"artifacts_dir": ""})

            self.assertEqual(settings.artifacts_dir, "project-out")

    def test_invalid_environment_value(self):
        with TemporaryDirectory() as tmpdir:
            with patch.dict(os.environ, {"BUILDTREE_TASK_OUTPUT": "loud"}):
                with self.assertRaises(ConfigError):
                    load_settings(Path(tmpdir))


class TestSettingsMerge(unittest.TestCase):
    def test_merge_records_source(self):
        settings = Settings()
        settings.merge({"configuration": "Debug"}, "somewhere")
        settings.merge({}, "nowhere")

        self.assertEqual(settings.configuration, "Debug")
        self.assertEqual(settings.sources, ["somewhere"])


if __name__ == "__main__":
    unittest.main()
