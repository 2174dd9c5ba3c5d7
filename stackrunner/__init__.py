# stackrunner - Run tests against a throwaway compose stack
"""
stackrunner - Bring up a docker compose stack, wait for it, run tests, tear it down.

The stack is torn down on every exit path, including SIGINT and SIGTERM.
"""

from stackrunner.config import RunConfig, Settings
from stackrunner.errors import (
    ConfigurationError,
    ReadinessTimeoutError,
    StackRunnerError,
    StackStartError,
    TeardownWarning,
    TestExecutionError,
)
from stackrunner.models import RunOutcome, StackHandle
from stackrunner.orchestrator import Orchestrator, run
from stackrunner.readiness import ReadinessPolicy, ReadinessProbe

__all__ = [
    "Orchestrator",
    "run",
    "Settings",
    "RunConfig",
    "RunOutcome",
    "StackHandle",
    "ReadinessPolicy",
    "ReadinessProbe",
    "StackRunnerError",
    "ConfigurationError",
    "StackStartError",
    "ReadinessTimeoutError",
    "TestExecutionError",
    "TeardownWarning",
]

__version__ = "0.1.0"
