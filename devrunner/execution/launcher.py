"""Process launcher: interpreter lookup and child process start-up."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Mapping, Sequence

from devrunner.binder import ParameterError
from devrunner.settings import DEFAULT_INTERPRETERS

logger = logging.getLogger(__name__)


class LaunchError(Exception):
    """Raised when the child process cannot be started."""

    pass


class UnsupportedScriptType(ParameterError):
    """Raised when no interpreter is configured for a script's file type."""

    pass


def resolve_command(
    script_path: str | Path,
    interpreters: Mapping[str, Sequence[str]] | None = None,
) -> list[str]:
    """Get the interpreter command prefix for a script file.

    Args:
        script_path: Path to the script
        interpreters: Suffix to command-prefix mapping (defaults to the built-in map)

    Returns:
        Command prefix, e.g. ["bash"] or ["bun", "run"]
    """
    interpreters = DEFAULT_INTERPRETERS if interpreters is None else interpreters
    suffix = Path(script_path).suffix.lower()
    if suffix not in interpreters:
        raise UnsupportedScriptType(f"Unsupported script type: {Path(script_path).name}")
    return list(interpreters[suffix])


class ProcessHandle:
    """A running child process with captured stdout/stderr and no stdin."""

    def __init__(self, process: asyncio.subprocess.Process):
        self._process = process

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def stdout(self) -> asyncio.StreamReader:
        return self._process.stdout

    @property
    def stderr(self) -> asyncio.StreamReader:
        return self._process.stderr

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def wait(self) -> int:
        """Wait for the child to exit and return its exit code."""
        return await self._process.wait()

    def kill(self) -> None:
        """Forcefully terminate the child and anything it spawned.

        Safe to call more than once, and after the child already exited.
        """
        if self._process.returncode is not None:
            return
        try:
            if os.name == "posix":
                os.killpg(self._process.pid, signal.SIGKILL)
            else:
                self._process.kill()
        except ProcessLookupError:
            pass
        logger.info(f"Killed process {self._process.pid}")


async def launch(
    command: Sequence[str],
    args: Sequence[str],
    working_dir: str | Path | None = None,
) -> ProcessHandle:
    """Start a child process with piped stdout/stderr and stdin disabled.

    Args:
        command: Interpreter command plus script path
        args: Positional script arguments
        working_dir: Working directory (defaults to current directory)

    Returns:
        ProcessHandle for the running child

    Raises:
        LaunchError: The interpreter or working directory is unusable
    """
    argv = [*command, *args]
    cwd = str(working_dir) if working_dir else str(Path.cwd())

    logger.info(f"Launching: {' '.join(argv)} (cwd: {cwd})")

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            # Own process group, so kill() reaches grandchildren holding the pipes
            start_new_session=os.name == "posix",
        )
    except OSError as e:
        logger.error(f"Failed to launch {argv[0]}: {e}")
        raise LaunchError(f"Failed to start '{argv[0]}': {e}") from e

    return ProcessHandle(process)
