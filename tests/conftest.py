"""Pytest fixtures for taskscope tests."""

import pytest

from taskscope.logging import Logger

from helpers.logging import logger_stub


@pytest.fixture
def logger() -> Logger:
    """Provide a logger that discards all output."""
    return logger_stub


@pytest.fixture(autouse=True)
def isolated_user_dirs(tmp_path, monkeypatch):
    """Keep config, user tasks and rerun history out of the real user directories."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CONFIG_DIRS", str(tmp_path / "site-config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))
    monkeypatch.setenv("TASKSCOPE_STATE_FILE", str(tmp_path / "state" / "last-task.json"))
