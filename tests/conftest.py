"""
Pytest configuration and shared fixtures for CMakeKits tests.
"""

import pytest
import tempfile
from pathlib import Path
from typing import Generator

# Import test fixtures to make them available to all tests
# These imports register the fixtures with pytest's fixture discovery system
# ruff: noqa: F401
from tests.fixtures.projects import (
    cmake_project,
    project_with_cache,
    project_with_variants,
)
from tests.fixtures.collaborators import (
    FakePrompter,
    ManualWatchBridge,
    RecordingErrorReporter,
)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def user_home(tmp_path: Path, monkeypatch) -> Path:
    """Point the user-global CMakeKits directory into the test's temp dir."""
    home = tmp_path / "cmakekits-home"
    home.mkdir()
    monkeypatch.setenv("CMAKEKITS_HOME", str(home))
    return home


@pytest.fixture
def prompter() -> FakePrompter:
    return FakePrompter()


@pytest.fixture
def reporter() -> RecordingErrorReporter:
    return RecordingErrorReporter()


@pytest.fixture
def watch_bridge() -> ManualWatchBridge:
    return ManualWatchBridge()
