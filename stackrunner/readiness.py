"""Readiness probe for a service inside the dependency stack."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from stackrunner.console import SUCCESS
from stackrunner.errors import ConfigurationError, ReadinessTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadinessPolicy:
    """Probe timing, in seconds.

    The deadline runs from the start of the wait, so a ``max_wait`` shorter
    than ``initial_delay`` times out without issuing a single request.
    """

    initial_delay: float = 5.0
    retry_interval: float = 2.0
    max_wait: float = 90.0
    request_timeout: float = 5.0

    def __post_init__(self):
        if self.retry_interval <= 0:
            raise ConfigurationError(
                f"retry_interval must be positive, got {self.retry_interval}"
            )
        if self.request_timeout <= 0:
            raise ConfigurationError(
                f"request_timeout must be positive, got {self.request_timeout}"
            )
        if self.initial_delay < 0 or self.max_wait < 0:
            raise ConfigurationError(
                f"initial_delay ({self.initial_delay}) and max_wait "
                f"({self.max_wait}) must not be negative"
            )


class ReadinessProbe:
    """Polls an HTTP endpoint until it answers 2xx or the deadline passes."""

    def __init__(
        self,
        url: str,
        policy: Optional[ReadinessPolicy] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.policy = policy or ReadinessPolicy()
        self._client = client
        self.attempts = 0

    async def check(self, client: httpx.AsyncClient) -> bool:
        """Issue one GET. Transport errors count as not ready."""
        self.attempts += 1
        try:
            response = await client.get(self.url, timeout=self.policy.request_timeout)
        except httpx.TransportError as e:
            logger.info(f"Not ready yet ({type(e).__name__}), retrying...")
            return False

        if response.is_success:
            return True
        logger.info(f"Not ready yet (HTTP {response.status_code}), retrying...")
        return False

    async def wait(self) -> int:
        """Wait until ready and return the number of checks issued.

        Raises ReadinessTimeoutError once ``max_wait`` has elapsed. The
        deadline timer and the poll loop both try to settle the same future;
        whichever comes second is ignored.
        """
        loop = asyncio.get_running_loop()
        settled: asyncio.Future = loop.create_future()
        self.attempts = 0
        logger.info(f"Waiting for {self.url} to become ready...")

        def expire():
            if not settled.done():
                settled.set_exception(
                    ReadinessTimeoutError(self.url, self.policy.max_wait, self.attempts)
                )

        deadline = loop.call_later(self.policy.max_wait, expire)
        poller = asyncio.ensure_future(self._poll(settled))
        try:
            await settled
        finally:
            deadline.cancel()
            poller.cancel()

        logger.log(SUCCESS, f"{self.url} is ready after {self.attempts} checks")
        return self.attempts

    async def _poll(self, settled: asyncio.Future) -> None:
        client = self._client or httpx.AsyncClient()
        try:
            await asyncio.sleep(self.policy.initial_delay)
            while not settled.done():
                ready = await self.check(client)
                if ready and not settled.done():
                    settled.set_result(None)
                    return
                await asyncio.sleep(self.policy.retry_interval)
        except Exception as e:
            # Anything beyond a transport error is a broken probe, not "not ready"
            if not settled.done():
                settled.set_exception(e)
        finally:
            if client is not self._client:
                await client.aclose()
