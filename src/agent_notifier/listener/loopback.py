"""ASGI middleware restricting the listener to loopback clients."""

import ipaddress
import logging

from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)


def is_loopback(host: str | None) -> bool:
    """Check whether a client host is the local machine.

    Examples:
        >>> is_loopback("127.0.0.1"), is_loopback("::1"), is_loopback("10.0.0.2")
        (True, True, False)
    """
    if not host:
        return False
    if host == "localhost":
        return True
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        return False
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        address = address.ipv4_mapped
    return address.is_loopback


class LoopbackOnlyMiddleware:
    """Rejects HTTP requests that do not come from a loopback address."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        client = scope.get("client")
        host = client[0] if client else None
        if is_loopback(host):
            await self.app(scope, receive, send)
            return

        logger.warning(f"[Listener] Rejected non-loopback client {host}")
        response = JSONResponse({"message": "Only loopback clients are accepted"}, status_code=403)
        await response(scope, receive, send)
