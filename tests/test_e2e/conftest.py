"""Pytest fixtures for E2E tests.

Provides:
- running_notifier: Notifier whose listener is bound to a free loopback port
- base_url: URL of that listener
- port_blocker: Factory for sockets that hold a port so a bind fails
- wait_until: Helper that polls a condition with a deadline

These tests bind real sockets and talk HTTP over them.
"""

import asyncio
import logging
import socket
from typing import AsyncGenerator, Awaitable, Callable, Generator

import pytest

from agent_notifier.config import Settings
from agent_notifier.models.bindings import HttpBindings
from agent_notifier.server import Notifier, create_notifier
from agent_notifier.sinks.base import NotificationSink

logger = logging.getLogger(__name__)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

async def _wait_until(
    condition: Callable[[], bool],
    timeout_seconds: float = 5.0,
    poll_interval: float = 0.05,
    message: str = "condition",
) -> None:
    """Poll condition until it is true.

    Raises:
        AssertionError: If the condition stays false past the deadline
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_seconds
    while not condition():
        if loop.time() > deadline:
            raise AssertionError(f"Timed out after {timeout_seconds}s waiting for {message}")
        await asyncio.sleep(poll_interval)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    return _wait_until


@pytest.fixture
async def running_notifier(
    settings: Settings,
    recording_sink: NotificationSink,
    unused_tcp_port: int,
) -> AsyncGenerator[Notifier, None]:
    """Notifier listening on 127.0.0.1 and a free port."""
    notifier = create_notifier(
        settings,
        sink=recording_sink,
        override=HttpBindings("127.0.0.1", unused_tcp_port),
    )
    await notifier.manager.start(notifier.settings_store.get_bindings())
    logger.info(f"Notifier started on {notifier.manager.bindings}")

    yield notifier

    logger.info("Stopping notifier...")
    await notifier.manager.stop()
    await notifier.listener.flush_deliveries()
    notifier.registry.close()


@pytest.fixture
def base_url(running_notifier: Notifier) -> str:
    bindings = running_notifier.manager.bindings
    return f"http://{bindings}"


@pytest.fixture
def port_blocker() -> Generator[Callable[[int], socket.socket], None, None]:
    """Return a function that occupies a loopback port until teardown."""
    sockets: list[socket.socket] = []

    def _block(port: int) -> socket.socket:
        sock = socket.create_server(("127.0.0.1", port))
        sockets.append(sock)
        return sock

    yield _block

    for sock in sockets:
        sock.close()
