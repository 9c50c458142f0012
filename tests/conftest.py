"""Pytest fixtures for buildtree tests."""

import pytest

from helpers.logging import RecordingLogger


@pytest.fixture
def recording_logger() -> RecordingLogger:
    """Logger that keeps messages so tests can assert on them."""
    return RecordingLogger()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory, monkeypatch):
    """Keep machine and user config files of the host out of every test."""
    config_home = tmp_path_factory.mktemp("config-home")
    monkeypatch.setattr(
        "buildtree.config.get_machine_config_path", lambda: config_home / "machine.yml"
    )
    monkeypatch.setattr(
        "buildtree.config.get_user_config_path", lambda: config_home / "user.yml"
    )
    for name in (
        "BUILDTREE_CONFIGURATION",
        "BUILDTREE_ARTIFACTS_DIR",
        "BUILDTREE_PACKAGE_SOURCE",
        "BUILDTREE_VERSION_SUFFIX",
        "BUILDTREE_TASK_OUTPUT",
        "BUILDTREE_DOTNET",
        "BUILDTREE_REPORTGENERATOR",
    ):
        monkeypatch.delenv(name, raising=False)
