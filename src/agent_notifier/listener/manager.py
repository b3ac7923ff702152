"""Lifecycle of the bound request listener.

Exactly one listener accepts new connections at any time. A rebind binds
the new socket first; only when that succeeds is the previous uvicorn
server told to exit. The old server stops accepting immediately but keeps
serving in-flight requests (including long permission waits, which share
the same registry) until they finish. Its drain runs in the background so
a rebind requested over the old listener itself does not deadlock.
"""

import asyncio
import contextlib
import logging
import socket
from dataclasses import dataclass
from typing import Any, Callable, Iterator

import uvicorn

from ..config import Settings
from ..errors import BindError
from ..models.bindings import HttpBindings

logger = logging.getLogger(__name__)

STARTUP_POLL_SECONDS = 0.01
LISTEN_BACKLOG = 128


class _ListenerServer(uvicorn.Server):
    """uvicorn server that leaves process signals to the notifier.

    Several servers coexist while one drains, so none of them may take
    over SIGINT/SIGTERM.
    """

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield

    def install_signal_handlers(self) -> None:
        pass


@dataclass(eq=False)
class _BoundListener:
    bindings: HttpBindings
    server: _ListenerServer
    task: asyncio.Task


def _bind_socket(bindings: HttpBindings) -> socket.socket:
    """Bind and listen on the requested address.

    Raises:
        BindError: If the address does not resolve or the port is taken
    """
    try:
        infos = socket.getaddrinfo(
            bindings.bind_address,
            bindings.port,
            type=socket.SOCK_STREAM,
            flags=socket.AI_PASSIVE,
        )
        family = infos[0][0]
        sock = socket.create_server(
            (bindings.bind_address, bindings.port),
            family=family,
            backlog=LISTEN_BACKLOG,
        )
    except OSError as e:
        raise BindError(bindings.bind_address, bindings.port, e) from e
    sock.setblocking(False)
    return sock


class ListenerManager:
    """Owns the active listener and swaps it on settings changes.

    Attributes:
        app_factory: Builds a fresh ASGI app for each bind
        settings: Application settings (timeouts)
    """

    def __init__(self, app_factory: Callable[[], Any], settings: Settings | None = None) -> None:
        """Initialize manager.

        Args:
            app_factory: Returns the ASGI application to serve on a new socket
            settings: Application settings
        """
        self.app_factory = app_factory
        self.settings = settings or Settings()
        self._active: _BoundListener | None = None
        self._draining: list[_BoundListener] = []
        self._lock = asyncio.Lock()

    @property
    def bindings(self) -> HttpBindings | None:
        """Bindings of the listener currently accepting connections."""
        return self._active.bindings if self._active else None

    @property
    def draining_count(self) -> int:
        """Number of retired listeners still finishing in-flight requests."""
        return len(self._draining)

    async def start(self, bindings: HttpBindings) -> None:
        """Bind the first listener.

        Raises:
            BindError: If the listener could not be bound or started
        """
        await self.rebind(bindings)

    async def rebind(self, bindings: HttpBindings) -> None:
        """Move the listener to new bindings.

        Serialized: concurrent calls run one after another. On failure the
        current listener keeps running untouched.

        Args:
            bindings: Address and port to bind

        Raises:
            BindError: If the new listener could not be bound or started
        """
        async with self._lock:
            if self._active and self._active.bindings == bindings:
                logger.info(f"[ListenerManager] Already listening on {bindings}")
                return

            sock = _bind_socket(bindings)
            new = await self._serve(bindings, sock)

            old, self._active = self._active, new
            if old:
                logger.info(f"[ListenerManager] Rebound {old.bindings} -> {bindings}")
                self._retire(old)

    async def stop(self) -> None:
        """Stop the active listener and any still draining.

        In-flight requests get ``shutdown_grace_seconds`` to finish before
        the servers are forced to exit.
        """
        async with self._lock:
            listeners = list(self._draining)
            if self._active:
                listeners.append(self._active)
            self._active = None
            if not listeners:
                return

            for listener in listeners:
                listener.server.should_exit = True

            tasks = [listener.task for listener in listeners]
            _, pending = await asyncio.wait(tasks, timeout=self.settings.shutdown_grace_seconds)
            if pending:
                logger.warning(
                    f"[ListenerManager] Forcing {len(pending)} listener(s) to exit "
                    f"after {self.settings.shutdown_grace_seconds}s"
                )
                for listener in listeners:
                    listener.server.force_exit = True
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("[ListenerManager] Stopped")

    async def _serve(self, bindings: HttpBindings, sock: socket.socket) -> _BoundListener:
        """Start a uvicorn server on an already bound socket.

        Raises:
            BindError: If the server does not report started in time
        """
        config = uvicorn.Config(
            app=self.app_factory(),
            host=bindings.bind_address,
            port=bindings.port,
            lifespan="on",
            log_config=None,
            access_log=False,
            proxy_headers=False,
        )
        server = _ListenerServer(config)
        task = asyncio.create_task(server.serve(sockets=[sock]), name=f"listener-{bindings}")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.bind_timeout_seconds
        while not server.started and not task.done() and loop.time() < deadline:
            await asyncio.sleep(STARTUP_POLL_SECONDS)

        if not server.started:
            server.should_exit = True
            server.force_exit = True
            if not task.done():
                task.cancel()
            (outcome,) = await asyncio.gather(task, return_exceptions=True)
            sock.close()
            cause = outcome if isinstance(outcome, Exception) else None
            raise BindError(
                bindings.bind_address,
                bindings.port,
                cause or RuntimeError("listener did not start"),
            )

        logger.info(f"[ListenerManager] Listening on http://{bindings}")
        return _BoundListener(bindings=bindings, server=server, task=task)

    def _retire(self, listener: _BoundListener) -> None:
        """Stop accepting on a listener and let it drain in the background."""
        listener.server.should_exit = True
        self._draining.append(listener)

        def _drained(task: asyncio.Task) -> None:
            if listener in self._draining:
                self._draining.remove(listener)
            if not task.cancelled() and task.exception():
                logger.error(
                    f"[ListenerManager] Listener on {listener.bindings} failed while draining: "
                    f"{task.exception()}"
                )
            else:
                logger.info(f"[ListenerManager] Listener on {listener.bindings} drained")

        listener.task.add_done_callback(_drained)
