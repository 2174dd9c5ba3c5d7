#!/usr/bin/env python3
"""
stackrunner - Run a test command against a docker compose stack.

Starts the stack, waits for the Schema Registry (or any HTTP endpoint) to
answer, runs the tests and always tears the stack down again.

Usage:
    stackrunner --compose-file docker-compose-test.yml -- npx playwright test

Environment Variables:
    SCHEMA_REGISTRY_URL: readiness base URL (default: http://localhost:8081)
    KAFKA_BOOTSTRAP_SERVERS: passed to the tests (default: localhost:9092)
    READINESS_INITIAL_DELAY / READINESS_RETRY_INTERVAL / READINESS_MAX_WAIT
    STACK_WORKING_DIR, STACK_COMPOSE_FILE, STACK_PROJECT_NAME, COMPOSE_CLI
    TEST_COMMAND: used when no command follows "--"
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from typing import Optional, Sequence

from stackrunner.config import Settings
from stackrunner.console import configure_logging
from stackrunner.errors import ConfigurationError
from stackrunner.orchestrator import Orchestrator

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stackrunner",
        description="Run tests against a docker compose stack with guaranteed teardown",
    )
    parser.add_argument("--working-dir", help="Directory relative paths are resolved against")
    parser.add_argument("--compose-file", help="Compose file (default: docker-compose-test.yml)")
    parser.add_argument("--project-name", help="Compose project name")
    parser.add_argument("--compose-cli", help='Compose CLI to use, e.g. "docker compose"')
    parser.add_argument("--registry-url", help="Base URL of the service to wait for")
    parser.add_argument("--check-path", help="Path probed under the base URL (default: /subjects)")
    parser.add_argument("--kafka-bootstrap-servers", help="Passed to the tests")
    parser.add_argument("--initial-delay", type=float, help="Seconds before the first check")
    parser.add_argument("--retry-interval", type=float, help="Seconds between checks")
    parser.add_argument("--max-wait", type=float, help="Seconds before giving up on readiness")
    parser.add_argument("--request-timeout", type=float, help="Timeout of a single check")
    parser.add_argument(
        "--remove-volumes",
        action="store_true",
        default=None,
        help="Also remove volumes on teardown",
    )
    parser.add_argument(
        "--no-teardown-on-start-failure",
        dest="teardown_on_start_failure",
        action="store_false",
        default=None,
        help="Skip teardown when the stack start command fails",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument(
        "test_command",
        nargs=argparse.REMAINDER,
        help="Test command, after -- (default: npx playwright test)",
    )
    return parser


def settings_from_args(args: argparse.Namespace, base: Settings) -> Settings:
    """Overlay command line values on settings from the environment."""
    overrides = {
        name: getattr(args, name)
        for name in (
            "working_dir",
            "compose_file",
            "project_name",
            "compose_cli",
            "registry_url",
            "check_path",
            "kafka_bootstrap_servers",
            "initial_delay",
            "retry_interval",
            "max_wait",
            "request_timeout",
            "remove_volumes",
            "teardown_on_start_failure",
        )
        if getattr(args, name) is not None
    }
    command = list(args.test_command)
    if command and command[0] == "--":
        command = command[1:]
    if command:
        overrides["test_command"] = tuple(command)
    return replace(base, **overrides)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)

    try:
        settings = settings_from_args(args, Settings.from_env())
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return e.outcome.exit_code

    outcome = asyncio.run(Orchestrator().run(settings))
    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())
