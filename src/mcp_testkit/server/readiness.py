"""Readiness strategies for supervised server processes.

A strategy decides when a freshly spawned server counts as ready. The
manager bounds every strategy with its ``startup_timeout``.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import aiohttp

from mcp_testkit.core.errors import RequestAbortedError, ServerStartError, TransportError
from mcp_testkit.core.logger import get_logger
from mcp_testkit.transports.http import HTTPTransport

if TYPE_CHECKING:
    from mcp_testkit.server.manager import ServerManager

logger = get_logger(__name__)

DEFAULT_GRACE_PERIOD = 1.0
HEALTH_CHECK_TIMEOUT = 1.0


def _exited_error(manager: "ServerManager") -> ServerStartError:
    return ServerStartError(
        f"Server process exited with code {manager.returncode} during startup",
        details={"returncode": manager.returncode, "command": manager.config.command},
    )


class ReadinessStrategy(ABC):
    """Base class for readiness strategies."""

    name = "base"

    @abstractmethod
    async def wait(self, manager: "ServerManager") -> None:
        """Return once the server is ready.

        Raises:
            ServerStartError: If the process exits before becoming ready
        """


class LivenessReadiness(ReadinessStrategy):
    """Ready when the process survives a short grace window.

    This does not prove the server accepts connections; use
    :class:`HealthEndpointReadiness` when the server exposes a health route.
    """

    name = "liveness"

    def __init__(self, grace_period: float = DEFAULT_GRACE_PERIOD) -> None:
        self.grace_period = grace_period

    async def wait(self, manager: "ServerManager") -> None:
        try:
            await asyncio.wait_for(manager.wait_for_exit(), timeout=self.grace_period)
        except asyncio.TimeoutError:
            if manager.returncode is None:
                logger.debug("Server alive after %.2fs grace period", self.grace_period)
                return
        raise _exited_error(manager)


class HealthEndpointReadiness(ReadinessStrategy):
    """Ready when an HTTP health endpoint answers with a 2xx status."""

    name = "health"

    def __init__(
        self,
        url: str,
        interval: float = 1.0,
        check_timeout: float = HEALTH_CHECK_TIMEOUT,
    ) -> None:
        self.url = url
        self.interval = interval
        self.check_timeout = check_timeout

    async def check(self, transport: HTTPTransport) -> bool:
        """Issue a single health check."""
        try:
            await transport.request(self.url, response_format="text", timeout=self.check_timeout)
        except (TransportError, RequestAbortedError, aiohttp.ClientError, OSError) as exc:
            logger.debug("Health check %s failed: %s", self.url, exc)
            return False
        return True

    async def wait(self, manager: "ServerManager") -> None:
        async with HTTPTransport(default_timeout=self.check_timeout) as transport:
            while True:
                if manager.has_exited:
                    raise _exited_error(manager)
                if await self.check(transport):
                    return
                await asyncio.sleep(self.interval)


__all__ = [
    "ReadinessStrategy",
    "LivenessReadiness",
    "HealthEndpointReadiness",
]
