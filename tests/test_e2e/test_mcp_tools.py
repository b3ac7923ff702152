"""E2E tests for the MCP tools.

Most tests use fastmcp's in-memory transport against the listener's
FastMCP instance; the last one goes over streamable HTTP on a bound
socket, the way an agent connects.
"""

import asyncio
import json
import logging

import pytest
from fastmcp import Client
from fastmcp.exceptions import ToolError

logger = logging.getLogger(__name__)

PERMISSION = {
    "command": "terraform apply",
    "reason": "Deploy staging",
    "agent": "codex",
    "risk": "high",
}


def _payload(result) -> dict:
    return json.loads(result.content[0].text)


@pytest.fixture
async def mcp_client(notifier):
    async with Client(notifier.listener.mcp) as client:
        yield client
    await notifier.listener.flush_deliveries()
    notifier.registry.close()


# =============================================================================
# TEST: Tool listing
# =============================================================================

async def test_tools_listed(mcp_client):
    tools = {tool.name: tool for tool in await mcp_client.list_tools()}

    assert set(tools) >= {"notify", "notify_permission_request"}
    permission_args = tools["notify_permission_request"].inputSchema["properties"]
    assert {"command", "reason", "agent", "risk", "timeoutSeconds", "contextUrl"} <= set(permission_args)
    assert "ctx" not in permission_args


# =============================================================================
# TEST: notify
# =============================================================================

async def test_notify_tool(mcp_client, notifier, recording_sink):
    """notify renders and reports the title."""
    logger.info("=" * 80)
    logger.info("TEST: notify tool")
    logger.info("=" * 80)

    result = await mcp_client.call_tool(
        "notify", {"title": "Build succeeded", "content": "Done in 42s", "agent": "ci-run"}
    )

    assert result.content[0].text == "Notification sent: Build succeeded"
    await notifier.listener.flush_deliveries()
    assert recording_sink.displayed == [("Build succeeded", "ci-run: Done in 42s")]


async def test_notify_tool_blank_content(mcp_client, recording_sink):
    with pytest.raises(ToolError) as exc_info:
        await mcp_client.call_tool("notify", {"title": "t", "content": "   ", "agent": "a"})
    assert "content" in str(exc_info.value)
    assert recording_sink.displayed == []


async def test_notify_tool_while_paused(mcp_client, notifier):
    notifier.listener.listening = False
    with pytest.raises(ToolError):
        await mcp_client.call_tool("notify", {"title": "t", "content": "c", "agent": "a"})


# =============================================================================
# TEST: notify_permission_request
# =============================================================================

async def test_permission_tool_approved(mcp_client, notifier, recording_sink, wait_for_pending):
    """The tool call blocks until the UI approves."""
    logger.info("=" * 80)
    logger.info("TEST: Permission approved")
    logger.info("=" * 80)

    call = asyncio.create_task(mcp_client.call_tool("notify_permission_request", PERMISSION))
    (request_id,) = await wait_for_pending(notifier.registry)
    assert not call.done()
    await notifier.listener.flush_deliveries()
    assert recording_sink.prompts[0][0] == "Permission requested by codex"

    notifier.registry.resolve(request_id, "approved")
    result = await asyncio.wait_for(call, timeout=3)

    assert _payload(result) == {"id": request_id, "status": "approved"}


async def test_permission_tool_denied(mcp_client, notifier, wait_for_pending):
    call = asyncio.create_task(mcp_client.call_tool("notify_permission_request", PERMISSION))
    (request_id,) = await wait_for_pending(notifier.registry)

    notifier.registry.resolve(request_id, "denied")
    result = await asyncio.wait_for(call, timeout=3)

    assert _payload(result)["status"] == "denied"


@pytest.mark.slow
async def test_permission_tool_times_out(mcp_client):
    """timeoutSeconds=2 with no response ends timed_out after about 2s."""
    logger.info("=" * 80)
    logger.info("TEST: Permission timeout")
    logger.info("=" * 80)

    loop = asyncio.get_running_loop()
    started = loop.time()
    result = await asyncio.wait_for(
        mcp_client.call_tool("notify_permission_request", {**PERMISSION, "timeoutSeconds": 2}),
        timeout=5,
    )
    elapsed = loop.time() - started

    assert _payload(result)["status"] == "timed_out"
    assert 1.9 <= elapsed < 3.5


async def test_permission_tool_invalid_risk(mcp_client, notifier):
    with pytest.raises(ToolError):
        await mcp_client.call_tool("notify_permission_request", {**PERMISSION, "risk": "extreme"})
    assert len(notifier.registry) == 0


async def test_permission_tool_negative_timeout(mcp_client, notifier):
    with pytest.raises(ToolError) as exc_info:
        await mcp_client.call_tool(
            "notify_permission_request", {**PERMISSION, "timeoutSeconds": -1}
        )
    assert "timeoutSeconds" in str(exc_info.value)
    assert len(notifier.registry) == 0


async def test_permission_tool_while_paused(mcp_client, notifier):
    notifier.listener.listening = False
    with pytest.raises(ToolError):
        await mcp_client.call_tool("notify_permission_request", PERMISSION)
    assert len(notifier.registry) == 0


# =============================================================================
# TEST: Streamable HTTP
# =============================================================================

@pytest.mark.network
async def test_tools_over_http(running_notifier, base_url, recording_sink):
    """An agent connecting over the bound socket can call notify."""
    async with Client(f"{base_url}{running_notifier.settings.mcp_path}") as client:
        result = await client.call_tool(
            "notify", {"title": "Over HTTP", "content": "hello", "agent": "remote-agent"}
        )

    assert result.content[0].text == "Notification sent: Over HTTP"
    await running_notifier.listener.flush_deliveries()
    assert recording_sink.displayed == [("Over HTTP", "remote-agent: hello")]
