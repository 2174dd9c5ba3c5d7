"""Brings a dependency stack up, runs tests against it, and tears it down.

Teardown is owed as soon as the stack start has been attempted and is
carried out exactly once on every exit path: normal completion, an error in
any phase, SIGINT/SIGTERM, or an unhandled error on the event loop.
"""

import asyncio
import logging
import signal
from contextlib import contextmanager
from typing import Optional, Protocol

from stackrunner.compose import ComposeStack, detect_compose_cli
from stackrunner.config import RunConfig, Settings
from stackrunner.console import SUCCESS
from stackrunner.errors import ConfigurationError, StackRunnerError, TeardownWarning
from stackrunner.models import RunOutcome, StackHandle
from stackrunner.process import TestCommand
from stackrunner.readiness import ReadinessProbe

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

# How long to let an abandoned phase finish cancelling after teardown
ABANDON_GRACE = 1.0


class Stack(Protocol):
    async def start(self) -> StackHandle: ...

    async def stop(self) -> None: ...


class Probe(Protocol):
    async def wait(self) -> int: ...


class Tests(Protocol):
    async def run(self) -> None: ...


class Orchestrator:
    """Runs one stack test session.

    Collaborators that are not passed in are built from the resolved
    configuration. An instance is good for a single ``run``.
    """

    def __init__(
        self,
        stack: Optional[Stack] = None,
        probe: Optional[Probe] = None,
        tests: Optional[Tests] = None,
    ):
        self.stack = stack
        self.probe = probe
        self.tests = tests
        self.config: Optional[RunConfig] = None
        self.handle: Optional[StackHandle] = None
        self.outcome: Optional[RunOutcome] = None

        self._cleanup_owed = False
        self._teardown_task: Optional[asyncio.Task] = None
        self._abort: Optional[asyncio.Event] = None
        self._abort_outcome = RunOutcome.ERROR

    async def run(self, settings: Settings) -> RunOutcome:
        """Run the full lifecycle and return its outcome."""
        if self.outcome is not None:
            raise RuntimeError("Orchestrator instances are single-use")

        try:
            self.config = settings.resolve()
            await self._build_collaborators(self.config)
        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return self._finish(e.outcome)

        loop = asyncio.get_running_loop()
        self._abort = asyncio.Event()

        with self._interrupt_scope(loop):
            phases = asyncio.ensure_future(self._run_phases())
            aborted = asyncio.ensure_future(self._abort.wait())
            try:
                await asyncio.wait({phases, aborted}, return_when=asyncio.FIRST_COMPLETED)
                if phases.done():
                    outcome = self._phase_outcome(phases)
                else:
                    # Abandon the in-flight phase; stopping the stack reclaims
                    # whatever it left running.
                    phases.cancel()
                    outcome = self._abort_outcome
            finally:
                aborted.cancel()
                if not phases.done():
                    phases.cancel()
                await self.teardown()
                await asyncio.wait({phases}, timeout=ABANDON_GRACE)

        return self._finish(outcome)

    async def _build_collaborators(self, config: RunConfig) -> None:
        if self.stack is None:
            cli = config.compose_cli
            if cli is None:
                # Detection runs the CLIs' version commands synchronously
                cli = await asyncio.get_event_loop().run_in_executor(
                    None, detect_compose_cli
                )
            self.stack = ComposeStack(
                compose_file=config.compose_file,
                working_dir=config.working_dir,
                project_name=config.project_name,
                cli=cli,
                remove_volumes=config.remove_volumes,
            )
        if self.probe is None:
            self.probe = ReadinessProbe(config.check_url, config.readiness)
        if self.tests is None:
            self.tests = TestCommand(
                config.test_command,
                cwd=config.working_dir,
                env=config.test_environment(),
            )

    async def _run_phases(self) -> RunOutcome:
        try:
            await self._start_stack()
            await self.probe.wait()
            await self.tests.run()
        except StackRunnerError as e:
            logger.error(f"Error: {e}")
            return e.outcome
        return RunOutcome.SUCCESS

    async def _start_stack(self) -> None:
        if self.config.teardown_on_start_failure:
            # Compose may create some containers even when `up` fails
            self._cleanup_owed = True
        self.handle = await self.stack.start()
        self._cleanup_owed = True
        logger.log(SUCCESS, "Stack started successfully")

    def _phase_outcome(self, phases: asyncio.Future) -> RunOutcome:
        if phases.cancelled():
            return self._abort_outcome
        exc = phases.exception()
        if exc is not None:
            logger.error(
                f"Fatal error: {exc}", exc_info=(type(exc), exc, exc.__traceback__)
            )
            return RunOutcome.ERROR
        return phases.result()

    async def teardown(self) -> None:
        """Stop the stack if teardown is owed.

        Every caller shares one teardown task, so the stop command runs at
        most once per run no matter how many paths ask for it.
        """
        if not self._cleanup_owed:
            return
        if self._teardown_task is None:
            self._teardown_task = asyncio.ensure_future(self._teardown())
        await asyncio.shield(self._teardown_task)

    async def _teardown(self) -> None:
        logger.info("Cleaning up stack...")
        try:
            await self.stack.stop()
        except TeardownWarning as e:
            logger.warning(f"Teardown warning: {e}")
        except Exception as e:
            logger.warning(f"Teardown failed: {e}", exc_info=True)
        else:
            logger.log(SUCCESS, "Stack cleaned up successfully")
        finally:
            self._cleanup_owed = False

    @contextmanager
    def _interrupt_scope(self, loop: asyncio.AbstractEventLoop):
        """Route signals and unhandled loop errors to the abort event.

        Handlers are only installed for the duration of one run and the
        previous ones are restored afterwards.
        """
        previous_signals = {}
        previous_exception_handler = loop.get_exception_handler()
        try:
            for sig in HANDLED_SIGNALS:
                previous_signals[sig] = signal.getsignal(sig)
                loop.add_signal_handler(sig, self._on_signal, sig)
            loop.set_exception_handler(self._on_loop_exception)
            yield
        finally:
            loop.set_exception_handler(previous_exception_handler)
            for sig, previous in previous_signals.items():
                loop.remove_signal_handler(sig)
                if previous is not None:
                    signal.signal(sig, previous)

    def _on_signal(self, sig: int) -> None:
        name = signal.Signals(sig).name
        if self._abort.is_set():
            logger.warning(f"Received {name} again, cleanup already in progress")
            return
        logger.warning(f"Received {name}, cleaning up...")
        self._abort_outcome = RunOutcome.INTERRUPTED_BY_SIGNAL
        self._abort.set()

    def _on_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict) -> None:
        exc = context.get("exception")
        message = context.get("message", "Unhandled error")
        if exc is not None:
            logger.error(
                f"Unhandled error: {message}: {exc}",
                exc_info=(type(exc), exc, exc.__traceback__),
            )
        else:
            logger.error(f"Unhandled error: {message}")
        if not self._abort.is_set():
            self._abort_outcome = RunOutcome.ERROR
            self._abort.set()

    def _finish(self, outcome: RunOutcome) -> RunOutcome:
        self.outcome = outcome
        if outcome is RunOutcome.SUCCESS:
            logger.log(SUCCESS, "All tests completed successfully!")
        else:
            logger.error(f"Run failed: {outcome.value} (exit code {outcome.exit_code})")
        return outcome


def run(settings: Optional[Settings] = None) -> RunOutcome:
    """Synchronous entry point: run one session on a fresh event loop."""
    if settings is None:
        try:
            settings = Settings.from_env()
        except ConfigurationError as e:
            logger.error(f"Configuration error: {e}")
            return e.outcome
    return asyncio.run(Orchestrator().run(settings))
