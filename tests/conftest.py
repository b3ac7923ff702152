"""Pytest fixtures shared by unit and E2E tests.

Provides:
- recording_sink: Notification sink that records instead of displaying
- settings: Settings pointing at a temporary settings file
- notifier: Fully wired notifier (nothing bound)
- http_client: httpx client talking to the listener's ASGI app in-process
- wait_for_pending: Helper that waits until permission requests are registered
"""

import asyncio
import logging
from pathlib import Path
from typing import AsyncGenerator, Awaitable, Callable

import httpx
import pytest

from agent_notifier.config import Settings
from agent_notifier.errors import SinkDeliveryError
from agent_notifier.registry.permission_registry import PermissionRegistry
from agent_notifier.server import Notifier, create_notifier

logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)


class RecordingSink:
    """Sink that records every call.

    Attributes:
        displayed: (title, body) pairs passed to display()
        prompts: (title, body, request_id) triples passed to prompt_decision()
        error: Exception raised on every call, if set
        delay: Seconds to sleep before recording
    """

    def __init__(self) -> None:
        self.displayed: list[tuple[str, str]] = []
        self.prompts: list[tuple[str, str, str]] = []
        self.error: Exception | None = None
        self.delay = 0.0

    async def display(self, title: str, body: str) -> None:
        await self._maybe_fail()
        self.displayed.append((title, body))

    async def prompt_decision(self, title: str, body: str, request_id: str) -> None:
        await self._maybe_fail()
        self.prompts.append((title, body, request_id))

    async def _maybe_fail(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def failing_sink() -> RecordingSink:
    sink = RecordingSink()
    sink.error = SinkDeliveryError("notify-send failed: no display")
    return sink


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the user's home directory and environment."""
    return Settings(
        settings_path=str(tmp_path / "settings.json"),
        sink="log",
        sink_timeout_seconds=0.5,
        resolved_retention_seconds=60.0,
        bind_timeout_seconds=5.0,
        shutdown_grace_seconds=1.0,
    )


@pytest.fixture
def notifier(settings: Settings, recording_sink: RecordingSink) -> Notifier:
    return create_notifier(settings, sink=recording_sink)


@pytest.fixture
async def http_client(notifier: Notifier) -> AsyncGenerator[httpx.AsyncClient, None]:
    """httpx client bound to the listener's ASGI app (no sockets)."""
    transport = httpx.ASGITransport(app=notifier.listener.asgi_app())
    async with httpx.AsyncClient(transport=transport, base_url="http://127.0.0.1") as client:
        yield client
    await notifier.listener.flush_deliveries()
    notifier.registry.close()


@pytest.fixture
def wait_for_pending() -> Callable[..., Awaitable[list[str]]]:
    """Return a coroutine function that waits for pending permission requests."""

    async def _wait(
        registry: PermissionRegistry, count: int = 1, timeout_seconds: float = 5.0
    ) -> list[str]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_seconds
        while len(registry.pending()) < count:
            if loop.time() > deadline:
                raise AssertionError(
                    f"Expected {count} pending request(s), found {len(registry.pending())}"
                )
            await asyncio.sleep(0.01)
        return [request.id for request in registry.pending()]

    return _wait
