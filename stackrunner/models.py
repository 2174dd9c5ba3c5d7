"""Internal models for the stack runner."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class RunOutcome(str, Enum):
    """Terminal result of one orchestrator run."""
    SUCCESS = "success"
    ERROR = "error"  # Unexpected failure inside the orchestrator itself
    STACK_START_FAILED = "stack_start_failed"
    READINESS_TIMED_OUT = "readiness_timed_out"
    TESTS_FAILED = "tests_failed"
    INTERRUPTED_BY_SIGNAL = "interrupted_by_signal"

    @property
    def exit_code(self) -> int:
        """Process exit status for this outcome."""
        return _EXIT_CODES[self]


_EXIT_CODES = {
    RunOutcome.SUCCESS: 0,
    RunOutcome.ERROR: 1,
    RunOutcome.STACK_START_FAILED: 2,
    RunOutcome.READINESS_TIMED_OUT: 3,
    RunOutcome.TESTS_FAILED: 4,
    RunOutcome.INTERRUPTED_BY_SIGNAL: 130,
}


@dataclass
class StackHandle:
    """A compose project started by this run."""
    project_name: str
    compose_file: Path
    working_dir: Path
    started: bool = True
