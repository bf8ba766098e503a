"""Process supervisor for MCP servers under test.

:class:`ServerManager` launches a server as a subprocess, waits for it to
become ready, forwards its output and tears it down deterministically
(SIGTERM, then SIGKILL after ``shutdown_timeout``).

Lifecycle::

    IDLE -> STARTING -> READY -> STOPPING -> STOPPED
                 \\          \\
                  -> FAILED   -> FAILED (exited with a positive code)

``STOPPED`` and ``FAILED`` go back to ``STARTING`` on :meth:`ServerManager.start`
or :meth:`ServerManager.restart`.
"""

import asyncio
import codecs
import inspect
import os
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Union

from mcp_testkit.core.config import ServerConfigModel
from mcp_testkit.core.errors import MCPTestError, ServerStartError, TimeoutError
from mcp_testkit.core.logger import LoggerContext, get_logger
from mcp_testkit.core.types import OutputSink
from mcp_testkit.server.readiness import (
    HEALTH_CHECK_TIMEOUT,
    DEFAULT_GRACE_PERIOD,
    HealthEndpointReadiness,
    LivenessReadiness,
    ReadinessStrategy,
)
from mcp_testkit.transports.http import HTTPTransport

logger = get_logger(__name__)

Callback = Callable[..., Union[None, Awaitable[None]]]

READ_CHUNK_SIZE = 4096
PIPE_DRAIN_TIMEOUT = 1.0


class ServerProcessState(str, Enum):
    """Lifecycle state of a supervised server process."""

    IDLE = "idle"
    STARTING = "starting"
    READY = "ready"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"


class ServerManager:
    """Launch, observe and stop an MCP server subprocess.

    Lifecycle calls are not reentrant; callers must not overlap
    :meth:`start`, :meth:`stop` and :meth:`restart`.

    Attributes:
        config: Server configuration

    Example:
        >>> manager = ServerManager(command="python", args=["server.py"], port=8000)
        >>> manager.on_error(lambda error: print(error))
        >>> async with manager:
        ...     assert manager.is_running()
    """

    def __init__(self, config: Optional[ServerConfigModel] = None, **options: Any) -> None:
        """Initialize the manager.

        Args:
            config: Server configuration
            **options: Individual settings, used to build a configuration or
                to override fields of ``config``
        """
        if config is None:
            config = ServerConfigModel(**options)
        elif options:
            config = config.model_copy(update=options)
        self.config = config
        self.readiness = self._create_readiness()

        self._process: Optional[asyncio.subprocess.Process] = None
        self._state = ServerProcessState.IDLE
        self._alive = False
        self._stopping = False
        self._exited = asyncio.Event()
        self._pumps: List["asyncio.Task[None]"] = []
        self._watcher: Optional["asyncio.Task[None]"] = None
        self._monitor: Optional["asyncio.Task[None]"] = None

        self._start_callbacks: List[Callback] = []
        self._stop_callbacks: List[Callback] = []
        self._error_callbacks: List[Callback] = []

    def _create_readiness(self) -> ReadinessStrategy:
        if self.config.readiness == "health":
            return HealthEndpointReadiness(
                self.health_url,
                interval=self.config.health_check_interval,
            )
        return LivenessReadiness(min(DEFAULT_GRACE_PERIOD, self.config.startup_timeout / 2))

    # Properties

    @property
    def state(self) -> ServerProcessState:
        return self._state

    @property
    def pid(self) -> Optional[int]:
        return self._process.pid if self._process is not None else None

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode if self._process is not None else None

    @property
    def has_exited(self) -> bool:
        return self._exited.is_set()

    @property
    def health_url(self) -> str:
        return f"http://{self.config.host}:{self.config.port}{self.config.health_check_path}"

    def is_running(self) -> bool:
        """Return True while the server is live (ready and not exited)."""
        return (
            self._alive
            and self._process is not None
            and self._process.returncode is None
        )

    async def wait_for_exit(self) -> None:
        """Wait until the current process has exited."""
        await self._exited.wait()

    # Subscribers

    def on_start(self, callback: Callback) -> None:
        """Register a callback run when the server becomes ready."""
        self._start_callbacks.append(callback)

    def on_stop(self, callback: Callback) -> None:
        """Register a callback run when the server process exits."""
        self._stop_callbacks.append(callback)

    def on_error(self, callback: Callback) -> None:
        """Register a callback run with the error on spawn failure or abnormal exit."""
        self._error_callbacks.append(callback)

    async def _notify(self, kind: str, callbacks: List[Callback], *args: Any) -> None:
        for callback in list(callbacks):
            try:
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error in %s callback", kind)

    # Lifecycle

    async def start(self) -> None:
        """Spawn the server and wait until it is ready.

        Does nothing if a live process is already held.

        Raises:
            ServerStartError: If the process cannot be spawned, exits early or
                fails its readiness check
        """
        if self._process is not None and self._process.returncode is None:
            return

        config = self.config
        self._state = ServerProcessState.STARTING
        self._exited = asyncio.Event()
        self._alive = False

        with LoggerContext(server=config.command):
            logger.info("Starting server: %s %s", config.command, " ".join(config.args))
            try:
                self._process = await asyncio.create_subprocess_exec(
                    config.command,
                    *config.args,
                    env={**os.environ, **config.env},
                    cwd=config.cwd,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as exc:
                self._state = ServerProcessState.FAILED
                error = ServerStartError(
                    f"Failed to start MCP server: {exc}",
                    cause=exc,
                    details={"command": config.command, "args": config.args},
                )
                await self._notify("error", self._error_callbacks, error)
                raise error from exc

            process = self._process
            with LoggerContext(pid=process.pid):
                logger.info("Server process spawned (pid %s)", process.pid)
                self._pumps = [
                    asyncio.ensure_future(self._pump(process.stdout, config.on_stdout)),
                    asyncio.ensure_future(self._pump(process.stderr, config.on_stderr)),
                ]
                self._watcher = asyncio.ensure_future(self._watch(process))

                try:
                    await self.wait_for_ready()
                except MCPTestError as exc:
                    logger.error("Server failed to become ready: %s", exc.message)
                    await self.stop()
                    self._state = ServerProcessState.FAILED
                    if isinstance(exc, ServerStartError):
                        raise
                    raise ServerStartError(
                        f"Failed to start MCP server: {exc.message}",
                        cause=exc,
                        details={"command": config.command},
                    ) from exc

                self._alive = True
                self._state = ServerProcessState.READY
                if isinstance(self.readiness, HealthEndpointReadiness):
                    self._monitor = asyncio.ensure_future(self._monitor_health(self.readiness))
                logger.info("Server ready")

        await self._notify("start", self._start_callbacks)

    async def wait_for_ready(self) -> None:
        """Wait for the readiness strategy, bounded by ``startup_timeout``.

        Raises:
            TimeoutError: If readiness is not reached in time
            ServerStartError: If the process exits first or was never started
        """
        if self._process is None:
            raise ServerStartError("Server process has not been started")
        try:
            await asyncio.wait_for(self.readiness.wait(self), timeout=self.config.startup_timeout)
        except asyncio.TimeoutError as exc:
            raise TimeoutError(
                f"Server did not become ready within {self.config.startup_timeout}s",
                cause=exc,
                details={
                    "startup_timeout": self.config.startup_timeout,
                    "readiness": self.readiness.name,
                },
            ) from exc

    async def stop(self) -> None:
        """Stop the server: SIGTERM, then SIGKILL after ``shutdown_timeout``.

        Never raises; failures are logged.
        """
        process = self._process
        if process is None:
            return

        self._stopping = True
        self._alive = False
        if self._state is not ServerProcessState.STARTING:
            self._state = ServerProcessState.STOPPING
        self._cancel_monitor()

        try:
            if process.returncode is None:
                logger.info("Stopping server (pid %s)", process.pid)
                self._signal(process, "terminate")
                try:
                    await asyncio.wait_for(
                        self._exited.wait(), timeout=self.config.shutdown_timeout
                    )
                except asyncio.TimeoutError:
                    logger.warning(
                        "Server did not exit within %ss, killing process (pid %s)",
                        self.config.shutdown_timeout,
                        process.pid,
                    )
                    self._signal(process, "kill")
            await self._exited.wait()
            await self._drain()
        except Exception:
            logger.exception("Error while stopping server")
        finally:
            self._process = None
            self._stopping = False
            if self._state is ServerProcessState.STOPPING:
                self._state = ServerProcessState.STOPPED

    async def restart(self) -> None:
        """Stop then start the server; start errors propagate."""
        await self.stop()
        await self.start()

    @staticmethod
    def _signal(process: asyncio.subprocess.Process, action: str) -> None:
        try:
            getattr(process, action)()
        except ProcessLookupError:
            pass

    # Observation

    async def _pump(
        self,
        stream: Optional[asyncio.StreamReader],
        sink: Optional[OutputSink],
    ) -> None:
        if stream is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            final = not chunk
            self._emit(sink, decoder.decode(chunk, final=final))
            if final:
                break

    @staticmethod
    def _emit(sink: Optional[OutputSink], text: str) -> None:
        if text and sink is not None:
            try:
                sink(text)
            except Exception:
                logger.exception("Error in output sink")

    async def _watch(self, process: asyncio.subprocess.Process) -> None:
        code = await process.wait()
        self._alive = False
        self._cancel_monitor()
        logger.info("Server process %s exited with code %s", process.pid, code)

        if not self._stopping and self._state is ServerProcessState.READY:
            self._state = ServerProcessState.FAILED if code > 0 else ServerProcessState.STOPPED
            self._process = None
        # Set before subscribers run so a slow subscriber cannot hide the exit.
        self._exited.set()

        await self._notify("stop", self._stop_callbacks)
        if code > 0:
            error = MCPTestError(
                f"MCP server exited with code {code}",
                code="SERVER_EXITED",
                details={"returncode": code, "pid": process.pid},
            )
            await self._notify("error", self._error_callbacks, error)

    async def _drain(self) -> None:
        if not self._pumps:
            return
        _, pending = await asyncio.wait(self._pumps, timeout=PIPE_DRAIN_TIMEOUT)
        for task in pending:
            task.cancel()
        self._pumps = []

    async def _monitor_health(self, readiness: HealthEndpointReadiness) -> None:
        async with HTTPTransport(default_timeout=HEALTH_CHECK_TIMEOUT) as transport:
            while True:
                await asyncio.sleep(self.config.health_check_interval)
                healthy = await readiness.check(transport)
                if healthy != self._alive:
                    logger.warning("Server health changed: %s", "healthy" if healthy else "unhealthy")
                self._alive = healthy

    def _cancel_monitor(self) -> None:
        if self._monitor is not None:
            self._monitor.cancel()
            self._monitor = None

    async def __aenter__(self) -> "ServerManager":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()


__all__ = ["ServerManager", "ServerProcessState"]
