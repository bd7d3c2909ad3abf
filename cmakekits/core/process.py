"""
Asynchronous subprocess execution.

Generator, build tool and test runner invocations go through ``execute``.
Output is streamed line by line to an optional consumer while the process
runs; the full output is also collected into the ``ExecutionResult``.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)


class OutputConsumer:
    """Receives process output line by line. Default implementation logs it."""

    def output(self, line: str) -> None:
        logger.info(line)

    def error(self, line: str) -> None:
        logger.warning(line)


@dataclass
class ExecutionResult:
    """Outcome of a finished subprocess."""

    retc: Optional[int]
    stdout: str = ""
    stderr: str = ""


class Subprocess:
    """Handle to a running process."""

    def __init__(self, process: asyncio.subprocess.Process, result: "asyncio.Task"):
        self.process = process
        self._result = result

    @property
    def pid(self) -> int:
        return self.process.pid

    async def wait(self) -> ExecutionResult:
        return await self._result

    def terminate(self) -> None:
        if self.process.returncode is None:
            logger.debug(f"Terminating process {self.process.pid}")
            self.process.terminate()


async def _pump(
    stream: Optional[asyncio.StreamReader], sink: List[str], emit
) -> None:
    if stream is None:
        return
    while True:
        raw = await stream.readline()
        if not raw:
            break
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        sink.append(line)
        if emit is not None:
            emit(line)


def merge_environment(*layers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Merge environment layers over ``os.environ``. Later layers win."""
    env = dict(os.environ)
    for layer in layers:
        if layer:
            env.update({k: str(v) for k, v in layer.items()})
    return env


async def execute(
    command: Union[str, Path],
    args: Sequence[str],
    consumer: Optional[OutputConsumer] = None,
    environment: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
) -> Subprocess:
    """
    Start ``command`` with ``args``.

    Args:
        command: Executable to run
        args: Arguments
        consumer: Receives stdout/stderr lines as they arrive
        environment: Variables layered over the current environment
        cwd: Working directory

    Returns:
        Subprocess handle; ``await handle.wait()`` for the result

    Raises:
        FileNotFoundError: If the executable does not exist
    """
    argv = [str(command), *[str(a) for a in args]]
    logger.debug(f"Executing: {' '.join(argv)}")

    process = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=merge_environment(environment),
        cwd=str(cwd) if cwd else None,
    )

    async def _collect() -> ExecutionResult:
        out: List[str] = []
        err: List[str] = []
        await asyncio.gather(
            _pump(process.stdout, out, consumer.output if consumer else None),
            _pump(process.stderr, err, consumer.error if consumer else None),
        )
        retc = await process.wait()
        logger.debug(f"Process {process.pid} exited with {retc}")
        return ExecutionResult(retc=retc, stdout="\n".join(out), stderr="\n".join(err))

    return Subprocess(process, asyncio.ensure_future(_collect()))


__all__ = [
    "OutputConsumer",
    "ExecutionResult",
    "Subprocess",
    "merge_environment",
    "execute",
]
