"""Request listener package.

- RequestListener: FastMCP instance carrying the MCP tools and the
  /agent/* HTTP routes; builds one ASGI app per bound socket.

- ListenerManager: owns the bound uvicorn server and rebinds it when the
  settings store saves new bindings, without dropping in-flight requests.
"""

from .manager import ListenerManager
from .request_listener import RequestListener

__all__ = ["ListenerManager", "RequestListener"]
