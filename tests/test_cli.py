"""Tests for argument handling, exit codes and console output."""

import io
import logging

import pytest

from stackrunner.cli import build_parser, settings_from_args
from stackrunner.config import DEFAULT_TEST_COMMAND, Settings
from stackrunner.console import SUCCESS, ColorFormatter, configure_logging
from stackrunner.models import RunOutcome


def parse(*argv: str) -> Settings:
    return settings_from_args(build_parser().parse_args(list(argv)), Settings())


class TestArguments:
    """Command line values overlay the environment-derived settings."""

    def test_no_arguments_keeps_base(self):
        assert parse() == Settings()

    def test_test_command_after_separator(self):
        settings = parse("--max-wait", "30", "--", "pytest", "-x", "tests/e2e")
        assert settings.max_wait == 30.0
        assert settings.test_command == ("pytest", "-x", "tests/e2e")

    def test_options_override_base(self):
        base = Settings(registry_url="http://from-env:8081", remove_volumes=False)
        args = build_parser().parse_args(
            ["--registry-url", "http://cli:8081", "--remove-volumes", "--no-teardown-on-start-failure"]
        )
        settings = settings_from_args(args, base)

        assert settings.registry_url == "http://cli:8081"
        assert settings.remove_volumes is True
        assert settings.teardown_on_start_failure is False
        assert settings.test_command == DEFAULT_TEST_COMMAND

    def test_unset_flags_do_not_override(self):
        base = Settings(remove_volumes=True, teardown_on_start_failure=False)
        settings = settings_from_args(build_parser().parse_args([]), base)
        assert settings.remove_volumes is True
        assert settings.teardown_on_start_failure is False


class TestExitCodes:
    @pytest.mark.parametrize(
        "outcome, code",
        [
            (RunOutcome.SUCCESS, 0),
            (RunOutcome.ERROR, 1),
            (RunOutcome.STACK_START_FAILED, 2),
            (RunOutcome.READINESS_TIMED_OUT, 3),
            (RunOutcome.TESTS_FAILED, 4),
            (RunOutcome.INTERRUPTED_BY_SIGNAL, 130),
        ],
    )
    def test_distinct_exit_codes(self, outcome, code):
        assert outcome.exit_code == code

    def test_only_success_is_zero(self):
        assert [o for o in RunOutcome if o.exit_code == 0] == [RunOutcome.SUCCESS]


class TestConsole:
    """Colored status lines."""

    def record(self, level: int, message: str) -> logging.LogRecord:
        return logging.LogRecord("stackrunner", level, __file__, 1, message, None, None)

    def test_levels_are_colored(self):
        formatter = ColorFormatter()
        assert formatter.format(self.record(SUCCESS, "done")) == "\x1b[32mdone\x1b[0m"
        assert formatter.format(self.record(logging.ERROR, "bad")).startswith("\x1b[31m")

    def test_plain_without_color(self):
        formatter = ColorFormatter(use_color=False)
        assert formatter.format(self.record(logging.WARNING, "careful")) == "careful"

    def test_non_tty_stream_gets_no_color(self):
        stream = io.StringIO()
        configure_logging(stream=stream)
        logging.getLogger("stackrunner.test").log(SUCCESS, "Stack started successfully")
        assert stream.getvalue() == "Stack started successfully\n"
