"""Docker Compose stack lifecycle.

The stack is driven through the compose CLI (``up -d`` / ``down``) so that
the compose file stays opaque to us. The docker SDK is only used after
teardown to look for containers that ``down`` left behind.
"""

import asyncio
import logging
import re
import shutil
import subprocess
from pathlib import Path
from typing import Optional, Sequence

import docker
from docker.errors import DockerException

from stackrunner.errors import ConfigurationError, StackStartError, TeardownWarning
from stackrunner.models import StackHandle
from stackrunner.process import run_process

logger = logging.getLogger(__name__)

# Label compose puts on every container it creates
PROJECT_LABEL = "com.docker.compose.project"

# Candidate CLIs in order of preference: (invocation, version probe args)
COMPOSE_CANDIDATES = [
    (["docker-compose"], ["--version"]),
    (["docker", "compose"], ["version"]),
]


def detect_compose_cli() -> list[str]:
    """Find a working compose CLI: standalone docker-compose, then the plugin."""
    for cli, version_args in COMPOSE_CANDIDATES:
        if shutil.which(cli[0]) is None:
            continue
        try:
            subprocess.run(
                [*cli, *version_args],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=True,
                timeout=30,
            )
        except (OSError, subprocess.SubprocessError):
            continue
        logger.info(f"Using compose CLI: {' '.join(cli)}")
        return list(cli)

    raise ConfigurationError(
        "Neither docker-compose nor the docker compose plugin was found. "
        "Install Docker and make sure compose is available."
    )


def default_project_name(working_dir: Path) -> str:
    """Project name compose would derive from the directory name."""
    name = re.sub(r"[^a-z0-9_-]", "", working_dir.name.lower())
    return name.lstrip("_-") or "stack"


class ComposeStack:
    """One compose project, started and stopped through the compose CLI."""

    def __init__(
        self,
        compose_file: Path,
        working_dir: Path,
        project_name: str,
        cli: Sequence[str],
        remove_volumes: bool = False,
        docker_client: Optional[docker.DockerClient] = None,
    ):
        self.compose_file = compose_file
        self.working_dir = working_dir
        self.project_name = project_name
        self.cli = list(cli)
        self.remove_volumes = remove_volumes
        self._docker_client = docker_client
        self.handle: Optional[StackHandle] = None

    def _command(self, *args: str) -> list[str]:
        return [
            *self.cli,
            "-f", str(self.compose_file),
            "-p", self.project_name,
            *args,
        ]

    async def start(self) -> StackHandle:
        """Run ``up -d`` and wait for the compose CLI to exit."""
        logger.info(f"Starting stack {self.project_name} from {self.compose_file}")
        command = self._command("up", "-d")
        try:
            code = await run_process(command, cwd=self.working_dir, new_session=True)
        except OSError as e:
            raise StackStartError(
                f"Failed to launch stack start command {command[0]}: {e}"
            ) from e

        if code != 0:
            raise StackStartError(
                f"Stack failed to start: '{' '.join(command)}' exited with code {code}",
                exit_code=code,
            )

        self.handle = StackHandle(
            project_name=self.project_name,
            compose_file=self.compose_file,
            working_dir=self.working_dir,
        )
        return self.handle

    async def stop(self) -> None:
        """Run ``down`` and wait for it. Raises TeardownWarning on failure."""
        logger.info(f"Stopping stack {self.project_name}")
        args = ["down", "--volumes"] if self.remove_volumes else ["down"]
        command = self._command(*args)
        if self.handle is not None:
            self.handle.started = False

        try:
            code = await run_process(command, cwd=self.working_dir, new_session=True)
        except OSError as e:
            raise TeardownWarning(
                f"Failed to launch stack stop command {command[0]}: {e}"
            ) from e

        if code != 0:
            raise TeardownWarning(
                f"Stack teardown '{' '.join(command)}' exited with code {code}",
                exit_code=code,
            )

        leftovers = await asyncio.get_event_loop().run_in_executor(
            None, self.leftover_containers
        )
        if leftovers:
            raise TeardownWarning(
                f"Containers still present after teardown: {', '.join(leftovers)}"
            )

    def leftover_containers(self) -> list[str]:
        """Names of containers that still carry this project's label."""
        client = self._docker_client
        try:
            if client is None:
                client = docker.from_env()
            containers = client.containers.list(
                all=True, filters={"label": f"{PROJECT_LABEL}={self.project_name}"}
            )
            return [c.name for c in containers]
        except DockerException as e:
            logger.warning(f"Could not query docker for leftover containers: {e}")
            return []
        finally:
            if client is not None and client is not self._docker_client:
                client.close()
