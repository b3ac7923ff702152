"""Agent Notifier - loopback notification relay for local agents.

Build tools, CI scripts and coding assistants report task completion or
ask a human for approval by calling a listener bound to the loopback
interface. The listener renders a desktop notification and, for
permission requests, waits for the user's decision.

Surfaces:
    POST /agent/notify                     fire-and-forget notification
    MCP tool notify_permission_request     blocks until approved/denied/timed_out
    POST /agent/permissions/{id}/respond   decision from the desktop UI

Example:
    >>> from agent_notifier.server import main
    >>> main()
"""

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = ["__version__"]
