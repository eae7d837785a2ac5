"""Pytest configuration and fixtures for all tests."""

import os
import stat
from pathlib import Path

import pytest

from commitlore.core import availability
from commitlore.core import dispatch
from commitlore.core.config import ProviderConfigManager
from commitlore.core.dispatch import AsyncDispatcher

_CREDENTIAL_VARS = ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY")


@pytest.fixture(scope="session", autouse=True)
def cleanup_dispatcher_after_all_tests():
    """Stop the process-wide dispatcher loop once the session ends."""
    yield

    if dispatch._dispatcher is not None:
        dispatch._dispatcher.shutdown()


@pytest.fixture
def isolated_env(tmp_path, monkeypatch):
    """Point HOME at a temp dir, clear credentials and empty the search path.

    Returns the directory that is on PATH so tests can drop fake executables
    into it.
    """
    home = tmp_path / "home"
    home.mkdir()
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("PATH", str(bin_dir))
    for name in _CREDENTIAL_VARS:
        monkeypatch.delenv(name, raising=False)
    # Nothing listens on the default Ollama port during tests.
    monkeypatch.setattr(availability, "probe_local_service", lambda descriptor: False)
    return bin_dir


@pytest.fixture
def manager(tmp_path) -> ProviderConfigManager:
    return ProviderConfigManager(tmp_path / "state" / "providers.json")


@pytest.fixture
def dispatcher():
    instance = AsyncDispatcher(default_timeout=5.0)
    yield instance
    instance.shutdown()


def write_executable(directory: Path, name: str, body: str) -> Path:
    """Create a small shell script and mark it executable."""
    path = directory / name
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def make_executable():
    return write_executable


@pytest.fixture
def posix_only():
    if os.name != "posix":
        pytest.skip("requires a POSIX shell")
