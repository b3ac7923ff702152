"""Notification sink interface."""

from typing import Protocol


class NotificationSink(Protocol):
    """Displays notifications to the human.

    Implementations should return promptly; the listener bounds every call
    with a timeout and treats failures as non-fatal.
    """

    async def display(self, title: str, body: str) -> None:
        """Show a simple notification."""
        ...

    async def prompt_decision(self, title: str, body: str, request_id: str) -> None:
        """Show a permission prompt.

        The human's answer comes back separately, through
        POST /agent/permissions/{request_id}/respond.
        """
        ...
