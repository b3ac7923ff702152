"""Notification models.

NotifyRequest is the validated form of a POST /agent/notify body;
RenderedNotification is what the sink actually displays.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class NotifyRequest:
    """Validated notification payload.

    Attributes:
        title: Notification title, trimmed
        content: Message body, trimmed
        agent: Label of the reporting agent, trimmed
    """

    title: str
    content: str
    agent: str


@dataclass(frozen=True)
class RenderedNotification:
    """Canonical display form handed to the notification sink.

    Attributes:
        display_title: Title line
        display_body: Body text, never longer than the body limit
        truncated: Whether the body was cut to fit the limit
    """

    display_title: str
    display_body: str
    truncated: bool = False
