"""
Console implementation of the Prompter contract.

Questions are printed to stdout and answered on stdin. Input is read on a
daemon thread so a pending question never keeps the process alive once the
command has finished.
"""

import asyncio
import logging
import sys
import threading
from typing import Optional, Sequence

from cmakekits.cli.utils import print_error, safe_print
from cmakekits.core.interfaces import PickItem, Prompter

logger = logging.getLogger(__name__)


class ConsolePrompter(Prompter):
    """
    Prompter reading numbered choices from stdin.

    Attributes:
        interactive: When False every question is dismissed without asking
    """

    def __init__(self, interactive: Optional[bool] = None):
        if interactive is None:
            interactive = sys.stdin is not None and sys.stdin.isatty()
        self.interactive = interactive
        self._lock = asyncio.Lock()

    async def _readline(self, prompt: str) -> Optional[str]:
        loop = asyncio.get_running_loop()
        future = loop.create_future()

        def _deliver(line: Optional[str]) -> None:
            if not future.done():
                future.set_result(line)

        def _reader() -> None:
            try:
                line: Optional[str] = input(prompt)
            except EOFError:
                line = None
            try:
                loop.call_soon_threadsafe(_deliver, line)
            except RuntimeError:
                # Loop already closed; nobody is waiting for the answer
                pass

        threading.Thread(target=_reader, name="console-prompt", daemon=True).start()
        return await future

    async def _choose(self, header: str, labels: Sequence[str]) -> Optional[int]:
        if not self.interactive:
            logger.info(f"{header} (no interactive input, dismissed)")
            return None

        async with self._lock:
            safe_print(header)
            for index, label in enumerate(labels, start=1):
                safe_print(f"  {index}) {label}")
            answer = await self._readline("Choice (empty to dismiss): ")

        if not answer or not answer.strip():
            return None
        try:
            index = int(answer.strip())
        except ValueError:
            return None
        if 1 <= index <= len(labels):
            return index - 1
        return None

    async def ask(
        self, message: str, choices: Sequence[str], modal: bool = False
    ) -> Optional[str]:
        index = await self._choose(message, choices)
        return None if index is None else choices[index]

    async def pick(
        self, placeholder: str, items: Sequence[PickItem]
    ) -> Optional[PickItem]:
        labels = [
            f"{item.label} - {item.description}" if item.description else item.label
            for item in items
        ]
        index = await self._choose(placeholder, labels)
        return None if index is None else items[index]

    def show_error(self, message: str) -> None:
        print_error(message)


__all__ = ["ConsolePrompter"]
