"""In-memory registry of permission requests awaiting a human decision.

Each request is a small state machine:

    pending --resolve(approved)--> approved
    pending --resolve(denied)----> denied
    pending --timeout fires------> timed_out

Terminal states are absorbing. Every status change goes through
``_transition``, which runs atomically on the event loop, so an explicit
decision and a timeout racing for the same request have exactly one
winner: whichever is applied first.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..errors import NotFoundError, ValidationError
from ..models.permissions import (
    NewPermissionRequest,
    PermissionDecision,
    PermissionRequest,
    PermissionStatus,
)
from ..payloads.validator import validate_decision, validate_permission_request

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_SECONDS = 300.0


@dataclass
class _Entry:
    """Registry bookkeeping for one request.

    Attributes:
        request: The request itself
        resolved: Broadcast event, set once the status leaves PENDING
        timeout_handle: Armed auto-deny timer, if any
        release_handle: Timer that drops the entry after resolution
        awaiters: Number of coroutines currently waiting on this request
    """

    request: PermissionRequest
    resolved: asyncio.Event = field(default_factory=asyncio.Event)
    timeout_handle: asyncio.TimerHandle | None = None
    release_handle: asyncio.TimerHandle | None = None
    awaiters: int = 0


class PermissionRegistry:
    """Tracks in-flight permission requests and resolves each exactly once.

    Must be used from a single event loop. Resolved requests stay queryable
    (and idempotently resolvable) for ``retention_seconds``, then are
    released.

    Attributes:
        retention_seconds: Grace period before a resolved request is dropped
    """

    def __init__(self, retention_seconds: float = DEFAULT_RETENTION_SECONDS) -> None:
        """Initialize registry.

        Args:
            retention_seconds: Seconds a resolved request is kept before release
        """
        self.retention_seconds = retention_seconds
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def create(self, fields: NewPermissionRequest | dict[str, Any]) -> str:
        """Register a new pending permission request.

        Args:
            fields: Already validated request, or raw command, reason,
                agent, risk and optional timeoutSeconds / contextUrl

        Returns:
            Fresh request id

        Raises:
            ValidationError: If a field is missing or malformed
        """
        if isinstance(fields, NewPermissionRequest):
            result = fields
        else:
            result = validate_permission_request(fields)
            if isinstance(result, ValidationError):
                raise result

        request_id = uuid.uuid4().hex
        while request_id in self._entries:
            request_id = uuid.uuid4().hex

        entry = _Entry(request=PermissionRequest.from_new(request_id, result))
        if result.timeout_seconds:
            loop = asyncio.get_running_loop()
            entry.timeout_handle = loop.call_later(
                result.timeout_seconds, self._on_timeout, request_id
            )
        self._entries[request_id] = entry

        logger.info(
            f"[Registry] Created {request_id} from {result.agent} "
            f"(risk={result.risk.value}, timeout={result.timeout_seconds})"
        )
        return request_id

    def get(self, request_id: str) -> PermissionRequest:
        """Look up a request.

        Raises:
            NotFoundError: If the id is unknown or already released
        """
        return self._entry(request_id).request

    def pending(self) -> list[PermissionRequest]:
        """Requests still awaiting a decision, oldest first."""
        return [
            entry.request
            for entry in self._entries.values()
            if entry.request.status is PermissionStatus.PENDING
        ]

    def awaiter_count(self, request_id: str) -> int:
        """Number of coroutines currently waiting on a request."""
        return self._entry(request_id).awaiters

    async def await_resolution(self, request_id: str) -> PermissionStatus:
        """Wait until the request leaves PENDING.

        Any number of callers may wait on the same request; each observes
        the terminal status once. Cancelling a waiter only detaches it,
        the request stays resolvable.

        Args:
            request_id: Request to wait for

        Returns:
            Terminal status

        Raises:
            NotFoundError: If the id is unknown or already released
        """
        entry = self._entry(request_id)
        entry.awaiters += 1
        try:
            await entry.resolved.wait()
        finally:
            entry.awaiters -= 1
        return entry.request.status

    def resolve(
        self, request_id: str, decision: PermissionDecision | str
    ) -> PermissionStatus:
        """Apply a human decision.

        Resolving an already-resolved request is not an error: the recorded
        status is returned unchanged.

        Args:
            request_id: Request to resolve
            decision: "approved" or "denied"

        Returns:
            Status after the call (the first recorded decision wins)

        Raises:
            NotFoundError: If the id is unknown or already released
            ValidationError: If decision is not approved/denied
        """
        if not isinstance(decision, PermissionDecision):
            parsed = validate_decision(decision)
            if isinstance(parsed, ValidationError):
                raise parsed
            decision = parsed

        entry = self._entry(request_id)
        self._transition(entry, decision.to_status())
        return entry.request.status

    def close(self) -> None:
        """Cancel all timers. Pending requests are left as they are."""
        for entry in self._entries.values():
            if entry.timeout_handle:
                entry.timeout_handle.cancel()
            if entry.release_handle:
                entry.release_handle.cancel()
        logger.info(f"[Registry] Closed with {len(self.pending())} pending request(s)")

    def _entry(self, request_id: str) -> _Entry:
        entry = self._entries.get(request_id)
        if entry is None:
            raise NotFoundError(request_id)
        return entry

    def _on_timeout(self, request_id: str) -> None:
        entry = self._entries.get(request_id)
        if entry is None:
            return
        entry.timeout_handle = None
        if self._transition(entry, PermissionStatus.TIMED_OUT):
            logger.info(f"[Registry] {request_id} timed out after {entry.request.timeout_seconds}s")

    def _transition(self, entry: _Entry, status: PermissionStatus) -> bool:
        """Single mutation point for a request's status.

        Returns:
            True if this call moved the request out of PENDING
        """
        request = entry.request
        if request.status.is_terminal:
            logger.debug(
                f"[Registry] {request.id} already {request.status.value}, ignoring {status.value}"
            )
            return False

        request.status = status
        request.resolved_at = datetime.now(timezone.utc)
        if entry.timeout_handle:
            entry.timeout_handle.cancel()
            entry.timeout_handle = None
        entry.resolved.set()

        loop = asyncio.get_running_loop()
        entry.release_handle = loop.call_later(
            self.retention_seconds, self._release, request.id
        )
        logger.info(
            f"[Registry] {request.id} -> {status.value} (waking {entry.awaiters} awaiter(s))"
        )
        return True

    def _release(self, request_id: str) -> None:
        entry = self._entries.pop(request_id, None)
        if entry is not None:
            logger.debug(f"[Registry] Released {request_id}")
