"""
Tests for CLI helpers and the console prompter.
"""

import pytest

from cmakekits.cli.prompt import ConsolePrompter
from cmakekits.cli.utils import exit_code, print_error, safe_print
from cmakekits.core.interfaces import PickItem


class TestOutput:
    """Tests for output helpers."""

    def test_print_error(self, capsys):
        """Test errors go to stderr with details indented."""
        print_error("Something failed", "more detail")

        err = capsys.readouterr().err
        assert "ERROR: Something failed" in err
        assert "  more detail" in err

    def test_safe_print(self, capsys):
        safe_print("GCC 13.2.0")

        assert capsys.readouterr().out == "GCC 13.2.0\n"

    @pytest.mark.parametrize("retc,expected", [(0, 0), (2, 2), (-1, 1), (None, 1)])
    def test_exit_code(self, retc, expected):
        assert exit_code(retc) == expected


class TestConsolePrompter:
    """Tests for ConsolePrompter."""

    @pytest.mark.asyncio
    async def test_non_interactive_dismisses(self):
        """Test questions are dismissed without a terminal."""
        prompter = ConsolePrompter(interactive=False)

        assert await prompter.ask("Continue?", ["Yes", "No"]) is None
        assert await prompter.pick("Select", [PickItem("a")]) is None

    @pytest.mark.asyncio
    async def test_numbered_choice(self, monkeypatch, capsys):
        """Test a numbered answer selects the matching choice."""
        monkeypatch.setattr("builtins.input", lambda prompt: "2")
        prompter = ConsolePrompter(interactive=True)

        assert await prompter.ask("Kit file missing", ["Scan", "Cancel"]) == "Cancel"
        assert "  1) Scan" in capsys.readouterr().out

    @pytest.mark.asyncio
    @pytest.mark.parametrize("answer", ["", "x", "7"])
    async def test_invalid_answer_dismisses(self, monkeypatch, answer):
        """Test empty, non-numeric and out-of-range answers dismiss."""
        monkeypatch.setattr("builtins.input", lambda prompt: answer)
        prompter = ConsolePrompter(interactive=True)

        item = await prompter.pick("Select", [PickItem("a", "desc", value=1)])

        assert item is None

    @pytest.mark.asyncio
    async def test_end_of_input(self, monkeypatch):
        """Test EOF on stdin dismisses."""

        def eof(prompt):
            raise EOFError

        monkeypatch.setattr("builtins.input", eof)

        assert await ConsolePrompter(interactive=True).ask("?", ["a"]) is None
