"""Request surface of the notifier: HTTP routes and MCP tools.

One FastMCP instance carries both. The MCP tools (``notify`` and
``notify_permission_request``) are served over streamable HTTP at
``/mcp``; the plain HTTP routes are registered as custom routes on the
same instance:

    POST /agent/notify                         notify
    POST /agent/permissions                    request permission (blocking)
    GET  /agent/permissions                    list pending requests
    GET  /agent/permissions/{id}               one request
    POST /agent/permissions/{id}/respond       decision from the desktop UI
    GET|PUT /agent/settings/bindings           settings store client surface
    GET|PUT /agent/listening                   pause/resume (tray menu)

The listener manager calls ``asgi_app()`` once per bind, so every bound
socket gets its own ASGI application while sharing this instance's
registry and sink.
"""

import asyncio
import json
import logging
from typing import Annotated, Any, Awaitable, Literal

from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError
from pydantic import Field
from starlette.middleware import Middleware
from starlette.requests import Request
from starlette.responses import JSONResponse

from ..config import Settings
from ..errors import BindError, NotFoundError, SinkDeliveryError, ValidationError
from ..models.notifications import RenderedNotification
from ..models.permissions import PermissionStatus
from ..payloads.renderer import SOFT_CONTENT_LIMIT_CHARS, render, render_permission_prompt
from ..payloads.validator import (
    validate_decision,
    validate_notify,
    validate_permission_request,
)
from ..registry.permission_registry import PermissionRegistry
from ..sinks.base import NotificationSink
from ..storage.settings_store import SettingsStore
from .loopback import LoopbackOnlyMiddleware

logger = logging.getLogger(__name__)

# How often a blocked HTTP permission request checks for client disconnect
DISCONNECT_POLL_SECONDS = 0.5

NOT_LISTENING_MESSAGE = "Server is not listening"


def _error_response(error: ValidationError | NotFoundError | BindError) -> JSONResponse:
    """Translate a notifier error into a JSON response."""
    if isinstance(error, ValidationError):
        return JSONResponse(
            {"message": str(error), "field": error.field, "reason": error.reason},
            status_code=400,
        )
    if isinstance(error, NotFoundError):
        return JSONResponse({"message": str(error), "id": error.request_id}, status_code=404)
    return JSONResponse(
        {"message": str(error), "address": error.address, "port": error.port},
        status_code=409,
    )


async def _read_json(request: Request) -> Any:
    """Decode the request body.

    Returns:
        Decoded JSON, or ValidationError if the body is not valid JSON
    """
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return ValidationError("body", "must be valid JSON")


class RequestListener:
    """Translates external calls into registry, renderer and sink operations.

    Attributes:
        registry: Shared permission request registry
        sink: Notification sink
        settings_store: Store backing the settings routes
        settings: Application settings
        listening: When False, notify and permission operations answer 503
        mcp: FastMCP instance carrying the tools and routes
    """

    def __init__(
        self,
        registry: PermissionRegistry,
        sink: NotificationSink,
        settings_store: SettingsStore,
        settings: Settings | None = None,
    ) -> None:
        """Initialize listener.

        Args:
            registry: Shared permission request registry
            sink: Notification sink
            settings_store: Settings store for the bindings routes
            settings: Application settings
        """
        self.registry = registry
        self.sink = sink
        self.settings_store = settings_store
        self.settings = settings or Settings()
        self.listening = True
        self._deliveries: set[asyncio.Task] = set()

        self.mcp = FastMCP("agent-notifier")
        self._register_tools()
        self._register_routes()

    def asgi_app(self) -> Any:
        """Build a fresh ASGI application for one bound socket."""
        middleware = []
        if not self.settings.allow_remote_clients:
            middleware.append(Middleware(LoopbackOnlyMiddleware))
        return self.mcp.http_app(path=self.settings.mcp_path, middleware=middleware)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def notify(self, raw: Any) -> RenderedNotification:
        """Validate, render and hand a notification to the sink.

        Returns as soon as the sink call is scheduled; sink failures are
        logged and do not fail the call.

        Args:
            raw: Decoded notify payload

        Returns:
            The rendered notification

        Raises:
            ValidationError: If a required field is missing or blank
        """
        result = validate_notify(raw)
        if isinstance(result, ValidationError):
            raise result

        rendered = render(result)
        if rendered.truncated:
            logger.info(f"[Listener] Truncated notification body from {result.agent}")
        self._deliver(
            f"notification from {result.agent}",
            self.sink.display(rendered.display_title, rendered.display_body),
        )
        return rendered

    async def open_permission_request(self, raw: Any) -> str:
        """Register a permission request and prompt the human.

        Args:
            raw: Permission request fields

        Returns:
            Request id to wait on

        Raises:
            ValidationError: If a field is missing or malformed (checked
                before the registry is touched)
        """
        result = validate_permission_request(raw)
        if isinstance(result, ValidationError):
            raise result

        request_id = self.registry.create(result)
        rendered = render_permission_prompt(self.registry.get(request_id))
        self._deliver(
            f"permission prompt {request_id}",
            self.sink.prompt_decision(rendered.display_title, rendered.display_body, request_id),
        )
        return request_id

    def respond(self, request_id: str, raw_decision: Any) -> PermissionStatus:
        """Apply a decision from the UI.

        Returns:
            Status after the call; the first recorded decision wins

        Raises:
            ValidationError: If the decision is not approved/denied
            NotFoundError: If the request is unknown or already released
        """
        decision = validate_decision(raw_decision)
        if isinstance(decision, ValidationError):
            raise decision
        status = self.registry.resolve(request_id, decision)
        logger.info(f"[Listener] Response {decision.value} for {request_id} -> {status.value}")
        return status

    async def flush_deliveries(self) -> None:
        """Wait for every scheduled sink call to finish or time out."""
        while self._deliveries:
            await asyncio.gather(*self._deliveries, return_exceptions=True)

    def _deliver(self, description: str, call: Awaitable[None]) -> asyncio.Task:
        """Schedule a sink call in the background and track it until done."""
        task = asyncio.ensure_future(self._run_sink(description, call))
        self._deliveries.add(task)
        task.add_done_callback(self._deliveries.discard)
        return task

    async def _run_sink(self, description: str, call: Awaitable[None]) -> bool:
        """Run a sink call, bounded by the sink timeout; failures are only logged."""
        try:
            await asyncio.wait_for(call, timeout=self.settings.sink_timeout_seconds)
        except asyncio.TimeoutError:
            logger.error(f"[Listener] Sink timed out delivering {description}")
            return False
        except SinkDeliveryError as e:
            logger.error(f"[Listener] Sink failed delivering {description}: {e}")
            return False
        except Exception as e:
            logger.exception(f"[Listener] Unexpected sink error delivering {description}: {e}")
            return False
        return True

    # ------------------------------------------------------------------
    # MCP tools
    # ------------------------------------------------------------------

    def _register_tools(self) -> None:
        @self.mcp.tool(
            name="notify",
            annotations={
                "title": "Desktop notification",
                "readOnlyHint": False,
                "destructiveHint": False,
                "openWorldHint": False,
            },
        )
        async def notify(
            title: Annotated[str, Field(description="Notification title")],
            content: Annotated[str, Field(
                description=f"Message body; keep it under {SOFT_CONTENT_LIMIT_CHARS} characters"
            )],
            agent: Annotated[str, Field(description="Label of the reporting agent")],
        ) -> str:
            """Send a desktop notification with title, content, and agent label."""
            if not self.listening:
                raise ToolError(NOT_LISTENING_MESSAGE)
            try:
                rendered = await self.notify({"title": title, "content": content, "agent": agent})
            except ValidationError as e:
                raise ToolError(f"Invalid params: {e}") from e
            return f"Notification sent: {rendered.display_title}"

        @self.mcp.tool(
            name="notify_permission_request",
            annotations={
                "title": "Ask the user for permission",
                "readOnlyHint": True,
                "openWorldHint": False,
            },
        )
        async def notify_permission_request(
            command: Annotated[str, Field(description="Command the agent wants to run")],
            reason: Annotated[str, Field(description="Why the command is needed")],
            agent: Annotated[str, Field(description="Label of the requesting agent")],
            risk: Annotated[Literal["low", "medium", "high"], Field(description="Risk level")],
            timeoutSeconds: Annotated[int | None, Field(  # noqa: N803
                default=None,
                description="Auto-deny after this many seconds (waits indefinitely if omitted)",
            )] = None,
            contextUrl: Annotated[str | None, Field(  # noqa: N803
                default=None,
                description="Optional link with more context",
            )] = None,
            ctx: Context | None = None,
        ) -> dict[str, Any]:
            """Ask the human to approve a command. Blocks until approved, denied or timed out."""
            if not self.listening:
                raise ToolError(NOT_LISTENING_MESSAGE)
            fields = {
                "command": command,
                "reason": reason,
                "agent": agent,
                "risk": risk,
                "timeoutSeconds": timeoutSeconds,
                "contextUrl": contextUrl,
            }
            try:
                request_id = await self.open_permission_request(fields)
            except ValidationError as e:
                raise ToolError(f"Invalid params: {e}") from e

            if ctx:
                await ctx.info(f"Waiting for a decision on permission request {request_id}")
            try:
                status = await self.registry.await_resolution(request_id)
            except asyncio.CancelledError:
                logger.info(f"[Listener] Caller stopped waiting on {request_id}; request stays open")
                raise
            return {"id": request_id, "status": status.value}

    # ------------------------------------------------------------------
    # HTTP routes
    # ------------------------------------------------------------------

    def _register_routes(self) -> None:
        route = self.mcp.custom_route
        route("/agent/notify", methods=["POST"])(self._handle_notify)
        route("/agent/permissions", methods=["POST"])(self._handle_request_permission)
        route("/agent/permissions", methods=["GET"])(self._handle_list_permissions)
        route("/agent/permissions/{request_id}", methods=["GET"])(self._handle_get_permission)
        route("/agent/permissions/{request_id}/respond", methods=["POST"])(self._handle_respond)
        route("/agent/settings/bindings", methods=["GET"])(self._handle_get_bindings)
        route("/agent/settings/bindings", methods=["PUT"])(self._handle_save_bindings)
        route("/agent/listening", methods=["GET"])(self._handle_get_listening)
        route("/agent/listening", methods=["PUT"])(self._handle_set_listening)

    def _not_listening(self) -> JSONResponse | None:
        if self.listening:
            return None
        return JSONResponse({"message": NOT_LISTENING_MESSAGE}, status_code=503)

    async def _handle_notify(self, request: Request) -> JSONResponse:
        if unavailable := self._not_listening():
            return unavailable

        body = await _read_json(request)
        try:
            if isinstance(body, ValidationError):
                raise body
            rendered = await self.notify(body)
        except ValidationError as e:
            logger.info(f"[Listener] Rejected notify: {e}")
            return _error_response(e)

        return JSONResponse(
            {
                "message": "Notification dispatched",
                "body": rendered.display_body,
                "truncated": rendered.truncated,
            }
        )

    async def _handle_request_permission(self, request: Request) -> JSONResponse:
        if unavailable := self._not_listening():
            return unavailable

        body = await _read_json(request)
        try:
            if isinstance(body, ValidationError):
                raise body
            request_id = await self.open_permission_request(body)
        except ValidationError as e:
            logger.info(f"[Listener] Rejected permission request: {e}")
            return _error_response(e)

        waiter = asyncio.ensure_future(self.registry.await_resolution(request_id))
        try:
            while True:
                done, _ = await asyncio.wait({waiter}, timeout=DISCONNECT_POLL_SECONDS)
                if done:
                    status = waiter.result()
                    break
                if await request.is_disconnected():
                    logger.info(
                        f"[Listener] Client disconnected while waiting on {request_id}; "
                        f"request stays open"
                    )
                    return JSONResponse(
                        {"message": "Client disconnected", "id": request_id}, status_code=499
                    )
        finally:
            if not waiter.done():
                waiter.cancel()

        return JSONResponse({"id": request_id, "status": status.value})

    async def _handle_list_permissions(self, request: Request) -> JSONResponse:
        pending = [item.to_dict() for item in self.registry.pending()]
        return JSONResponse({"pending": pending})

    async def _handle_get_permission(self, request: Request) -> JSONResponse:
        request_id = request.path_params["request_id"]
        try:
            permission = self.registry.get(request_id)
        except NotFoundError as e:
            return _error_response(e)
        return JSONResponse(permission.to_dict())

    async def _handle_respond(self, request: Request) -> JSONResponse:
        request_id = request.path_params["request_id"]
        body = await _read_json(request)
        try:
            if isinstance(body, ValidationError):
                raise body
            if not isinstance(body, dict):
                raise ValidationError("body", "must be a JSON object")
            status = self.respond(request_id, body.get("decision"))
        except (ValidationError, NotFoundError) as e:
            return _error_response(e)
        return JSONResponse({"id": request_id, "status": status.value})

    async def _handle_get_bindings(self, request: Request) -> JSONResponse:
        return JSONResponse(self._bindings_payload())

    async def _handle_save_bindings(self, request: Request) -> JSONResponse:
        body = await _read_json(request)
        try:
            if isinstance(body, ValidationError):
                raise body
            await self.settings_store.save_bindings(body)
        except (ValidationError, BindError) as e:
            logger.warning(f"[Listener] Bindings not saved: {e}")
            return _error_response(e)
        return JSONResponse({"message": "Bindings saved", **self._bindings_payload()})

    def _bindings_payload(self) -> dict[str, Any]:
        bindings = self.settings_store.get_bindings()
        return {"bindAddress": bindings.bind_address, "port": bindings.port}

    async def _handle_get_listening(self, request: Request) -> JSONResponse:
        return JSONResponse({"listening": self.listening})

    async def _handle_set_listening(self, request: Request) -> JSONResponse:
        body = await _read_json(request)
        if not isinstance(body, dict) or not isinstance(body.get("listening"), bool):
            return _error_response(ValidationError("listening", "must be a boolean"))
        self.listening = body["listening"]
        logger.info(f"[Listener] Listening {'resumed' if self.listening else 'paused'}")
        return JSONResponse({"listening": self.listening})
