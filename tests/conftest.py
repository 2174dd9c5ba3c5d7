"""Shared fixtures: a compose project directory and a fake compose CLI."""

import json
import logging
import sys
import textwrap
from pathlib import Path

import pytest

FAKE_COMPOSE = textwrap.dedent(
    """
    import json
    import os
    import sys

    args = sys.argv[1:]
    action = args[args.index("-p") + 2]
    with open(os.environ["FAKE_COMPOSE_LOG"], "a") as log:
        log.write(json.dumps(args) + "\\n")
    sys.exit(int(os.environ.get("FAKE_COMPOSE_" + action.upper() + "_EXIT", "0")))
    """
)


class FakeCompose:
    """A compose CLI stand-in that records its arguments."""

    def __init__(self, directory: Path):
        self.script = directory / "fake_compose.py"
        self.script.write_text(FAKE_COMPOSE)
        self.log = directory / "compose.log"
        self.cli = [sys.executable, str(self.script)]

    def calls(self) -> list[list[str]]:
        if not self.log.exists():
            return []
        return [json.loads(line) for line in self.log.read_text().splitlines()]

    def actions(self) -> list[str]:
        return [args[args.index("-p") + 2] for args in self.calls()]


class FakeContainers:
    def __init__(self, names):
        self.names = names
        self.filters = None

    def list(self, all=False, filters=None):
        self.filters = filters
        return [type("Container", (), {"name": n})() for n in self.names]


class FakeDockerClient:
    def __init__(self, leftovers=()):
        self.containers = FakeContainers(list(leftovers))
        self.closed = False

    def close(self):
        self.closed = True


@pytest.fixture
def project_dir(tmp_path):
    """A working directory holding an (opaque) compose file."""
    directory = tmp_path / "e2e-Stack"
    directory.mkdir()
    (directory / "docker-compose-test.yml").write_text("services: {}\n")
    return directory


@pytest.fixture
def fake_compose(tmp_path, monkeypatch):
    compose = FakeCompose(tmp_path)
    monkeypatch.setenv("FAKE_COMPOSE_LOG", str(compose.log))
    return compose


@pytest.fixture
def docker_client():
    return FakeDockerClient()


@pytest.fixture(autouse=True)
def restore_logging():
    """The CLI reconfigures the root logger; undo that after each test."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
