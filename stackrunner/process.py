"""Child process execution with inherited stdio."""

import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Mapping, Optional, Sequence

from stackrunner.console import SUCCESS
from stackrunner.errors import TestExecutionError

logger = logging.getLogger(__name__)


async def run_process(
    argv: Sequence[str],
    cwd: Path,
    env: Optional[Mapping[str, str]] = None,
    new_session: bool = False,
) -> int:
    """Run a command to completion and return its exit code.

    stdout and stderr are inherited from the orchestrator. With
    ``new_session`` the child gets its own process group and does not see
    interrupts typed at the terminal.

    Raises OSError if the command cannot be launched. If the awaiting task
    is cancelled the child (or its whole group) is terminated and the
    cancellation propagates without waiting for the child to exit.
    """
    logger.debug(f"Spawning {list(argv)} in {cwd}")
    process = await asyncio.create_subprocess_exec(
        *argv,
        cwd=str(cwd),
        env=dict(env) if env is not None else None,
        start_new_session=new_session,
    )
    try:
        return await process.wait()
    except asyncio.CancelledError:
        _terminate(process, new_session)
        raise


def _terminate(process: asyncio.subprocess.Process, group: bool) -> None:
    if process.returncode is not None:
        return
    logger.debug(f"Terminating abandoned child {process.pid}")
    try:
        if group:
            os.killpg(process.pid, signal.SIGTERM)
        else:
            process.terminate()
    except ProcessLookupError:
        pass


class TestCommand:
    """The test suite to run once the stack is ready."""

    __test__ = False  # Not a pytest test class

    def __init__(
        self,
        argv: Sequence[str],
        cwd: Path,
        env: Optional[Mapping[str, str]] = None,
    ):
        self.argv = list(argv)
        self.cwd = cwd
        self.env = env

    async def run(self) -> None:
        """Run the tests once. Raises TestExecutionError unless they exit 0."""
        logger.info(f"Running tests: {' '.join(self.argv)}")
        try:
            code = await run_process(self.argv, cwd=self.cwd, env=self.env)
        except OSError as e:
            raise TestExecutionError(f"Failed to run tests {self.argv[0]}: {e}") from e

        if code != 0:
            raise TestExecutionError(f"Tests failed with exit code: {code}", exit_code=code)
        logger.log(SUCCESS, "Tests completed successfully")
