"""Configuration for a stack test run.

``Settings`` holds raw values from the environment and the command line.
``Settings.resolve()`` validates them and produces a ``RunConfig`` with
absolute paths and the derived readiness check URL.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from os import getenv
from pathlib import Path
from typing import Optional

import httpx

from stackrunner.compose import default_project_name
from stackrunner.errors import ConfigurationError
from stackrunner.readiness import ReadinessPolicy

DEFAULT_COMPOSE_FILE = "docker-compose-test.yml"
DEFAULT_REGISTRY_URL = "http://localhost:8081"
DEFAULT_CHECK_PATH = "/subjects"
DEFAULT_KAFKA_BOOTSTRAP_SERVERS = "localhost:9092"
DEFAULT_TEST_COMMAND = ("npx", "playwright", "test")

_FALSE_VALUES = {"0", "false", "no", "off", ""}


def _env_flag(name: str, default: bool) -> bool:
    value = getenv(name)
    if value is None:
        return default
    return value.strip().lower() not in _FALSE_VALUES


def _env_float(name: str, default: float) -> float:
    value = getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from None


def normalize_base_url(url: str) -> str:
    """Require a well-formed http(s) URL with a host and drop a trailing slash."""
    if not url.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"Invalid readiness URL: {url}. Must start with http:// or https://"
        )
    if any(c.isspace() for c in url):
        raise ConfigurationError(f"Invalid readiness URL: {url!r} contains whitespace")
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL as e:
        raise ConfigurationError(f"Invalid readiness URL: {url}: {e}") from None
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise ConfigurationError(f"Invalid readiness URL: {url} has no host")
    return url[:-1] if url.endswith("/") else url


@dataclass(frozen=True)
class RunConfig:
    """Resolved configuration. All paths are absolute."""

    working_dir: Path
    compose_file: Path
    project_name: str
    compose_cli: Optional[tuple[str, ...]]
    registry_url: str
    check_url: str
    kafka_bootstrap_servers: str
    readiness: ReadinessPolicy
    test_command: tuple[str, ...]
    remove_volumes: bool = False
    teardown_on_start_failure: bool = True

    def test_environment(self) -> dict[str, str]:
        """Environment for the test command: ours plus the stack endpoints."""
        env = dict(os.environ)
        env["SCHEMA_REGISTRY_URL"] = self.registry_url
        env["KAFKA_BOOTSTRAP_SERVERS"] = self.kafka_bootstrap_servers
        return env


@dataclass(frozen=True)
class Settings:
    """Unresolved settings. Relative paths are taken against ``working_dir``."""

    working_dir: Optional[str] = None
    compose_file: str = DEFAULT_COMPOSE_FILE
    project_name: Optional[str] = None
    compose_cli: Optional[str] = None
    registry_url: str = DEFAULT_REGISTRY_URL
    check_path: str = DEFAULT_CHECK_PATH
    kafka_bootstrap_servers: str = DEFAULT_KAFKA_BOOTSTRAP_SERVERS
    initial_delay: float = 5.0
    retry_interval: float = 2.0
    max_wait: float = 90.0
    request_timeout: float = 5.0
    test_command: tuple[str, ...] = field(default=DEFAULT_TEST_COMMAND)
    remove_volumes: bool = False
    teardown_on_start_failure: bool = True

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        test_command = getenv("TEST_COMMAND")
        return cls(
            working_dir=getenv("STACK_WORKING_DIR"),
            compose_file=getenv("STACK_COMPOSE_FILE", DEFAULT_COMPOSE_FILE),
            project_name=getenv("STACK_PROJECT_NAME"),
            compose_cli=getenv("COMPOSE_CLI"),
            registry_url=getenv("SCHEMA_REGISTRY_URL", DEFAULT_REGISTRY_URL),
            check_path=getenv("READINESS_CHECK_PATH", DEFAULT_CHECK_PATH),
            kafka_bootstrap_servers=getenv(
                "KAFKA_BOOTSTRAP_SERVERS", DEFAULT_KAFKA_BOOTSTRAP_SERVERS
            ),
            initial_delay=_env_float("READINESS_INITIAL_DELAY", 5.0),
            retry_interval=_env_float("READINESS_RETRY_INTERVAL", 2.0),
            max_wait=_env_float("READINESS_MAX_WAIT", 90.0),
            request_timeout=_env_float("READINESS_REQUEST_TIMEOUT", 5.0),
            test_command=(
                tuple(shlex.split(test_command)) if test_command else DEFAULT_TEST_COMMAND
            ),
            remove_volumes=_env_flag("STACK_REMOVE_VOLUMES", False),
            teardown_on_start_failure=_env_flag("STACK_TEARDOWN_ON_START_FAILURE", True),
        )

    def resolve(self) -> RunConfig:
        """Validate and resolve to absolute locations.

        Raises ConfigurationError before anything is spawned.
        """
        working_dir = Path(self.working_dir or os.getcwd()).expanduser().resolve()
        if not working_dir.is_dir():
            raise ConfigurationError(f"Working directory not found: {working_dir}")

        compose_file = (working_dir / Path(self.compose_file).expanduser()).resolve()
        if not compose_file.is_file():
            raise ConfigurationError(f"Docker Compose file not found: {compose_file}")

        if not self.test_command:
            raise ConfigurationError("No test command given")

        base_url = normalize_base_url(self.registry_url)
        check_path = self.check_path if self.check_path.startswith("/") else f"/{self.check_path}"

        compose_cli = tuple(shlex.split(self.compose_cli)) if self.compose_cli else None

        return RunConfig(
            working_dir=working_dir,
            compose_file=compose_file,
            project_name=self.project_name or default_project_name(working_dir),
            compose_cli=compose_cli or None,
            registry_url=base_url,
            check_url=f"{base_url}{check_path}",
            kafka_bootstrap_servers=self.kafka_bootstrap_servers,
            readiness=ReadinessPolicy(
                initial_delay=self.initial_delay,
                retry_interval=self.retry_interval,
                max_wait=self.max_wait,
                request_timeout=self.request_timeout,
            ),
            test_command=tuple(self.test_command),
            remove_volumes=self.remove_volumes,
            teardown_on_start_failure=self.teardown_on_start_failure,
        )
