"""Test fixtures for CMakeKits tests.

This package provides reusable pytest fixtures and fake collaborators:

- projects: CMake project trees (minimal, with a configured cache, with variants)
- collaborators: In-memory Prompter, WatchBridge and ErrorReporter

Import them in your tests using:
    from tests.fixtures.projects import cmake_project
    from tests.fixtures.collaborators import FakePrompter
"""

__all__ = [
    "projects",
    "collaborators",
]
