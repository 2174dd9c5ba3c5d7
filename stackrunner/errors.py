"""Errors raised while bringing a stack up, probing it and running tests.

Each terminal error carries the ``RunOutcome`` it produces so the
orchestrator can map any failure to an exit status in one place.
"""

from typing import Optional

from stackrunner.models import RunOutcome


class StackRunnerError(Exception):
    """Base class for stack runner failures."""

    outcome = RunOutcome.ERROR


class ConfigurationError(StackRunnerError):
    """Bad or missing configuration, detected before anything is spawned."""

    outcome = RunOutcome.STACK_START_FAILED


class StackStartError(StackRunnerError):
    """The stack start command failed or could not be launched."""

    outcome = RunOutcome.STACK_START_FAILED

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code


class ReadinessTimeoutError(StackRunnerError):
    """The readiness check never succeeded within the allowed wait."""

    outcome = RunOutcome.READINESS_TIMED_OUT

    def __init__(self, url: str, max_wait: float, attempts: int = 0):
        super().__init__(
            f"Service not ready after {max_wait:g} seconds "
            f"({attempts} checks). Check if the service is running at {url}"
        )
        self.url = url
        self.max_wait = max_wait
        self.attempts = attempts


class TestExecutionError(StackRunnerError):
    """The test command exited non-zero or could not be launched."""

    __test__ = False  # Not a pytest test class

    outcome = RunOutcome.TESTS_FAILED

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code


class TeardownWarning(StackRunnerError):
    """Stack teardown did not finish cleanly. Logged, never fatal."""

    def __init__(self, message: str, exit_code: Optional[int] = None):
        super().__init__(message)
        self.exit_code = exit_code
