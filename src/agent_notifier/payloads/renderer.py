"""Rendering of validated payloads into sink-ready notifications."""

from ..models.notifications import NotifyRequest, RenderedNotification
from ..models.permissions import PermissionRequest

# Hard cap on the rendered body, in characters
MAX_NOTIFICATION_BODY_CHARS = 1000
# Advertised to callers only
SOFT_CONTENT_LIMIT_CHARS = 950
TRUNCATION_MARKER = "…"

RISK_LABELS = {
    "low": "LOW",
    "medium": "MEDIUM",
    "high": "HIGH ⚠️",
}


def _truncate(text: str, max_len: int = MAX_NOTIFICATION_BODY_CHARS) -> tuple[str, bool]:
    """Cut text to max_len characters, ending with the truncation marker.

    Args:
        text: Text to fit
        max_len: Maximum length of output

    Returns:
        Tuple of (text no longer than max_len, whether it was cut)
    """
    if len(text) <= max_len:
        return text, False
    return text[: max_len - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER, True


def render(request: NotifyRequest) -> RenderedNotification:
    """Render a notify request as "<agent>: <content>".

    Args:
        request: Validated notify payload

    Returns:
        RenderedNotification whose body never exceeds MAX_NOTIFICATION_BODY_CHARS

    Examples:
        >>> render(NotifyRequest("Build succeeded", "Done in 42s", "ci-run")).display_body
        'ci-run: Done in 42s'
    """
    body, truncated = _truncate(f"{request.agent}: {request.content}")
    return RenderedNotification(
        display_title=request.title,
        display_body=body,
        truncated=truncated,
    )


def render_permission_prompt(request: PermissionRequest) -> RenderedNotification:
    """Render the prompt shown to the human for a permission request."""
    lines = [
        f"Command: {request.command}",
        f"Reason: {request.reason}",
        f"Risk: {RISK_LABELS[request.risk.value]}",
    ]
    if request.timeout_seconds:
        lines.append(f"Auto-deny in {request.timeout_seconds}s")
    if request.context_url:
        lines.append(f"Context: {request.context_url}")

    # Only the lines above the request id are truncated
    footer = f"\nRequest: {request.id}"
    body, truncated = _truncate("\n".join(lines), MAX_NOTIFICATION_BODY_CHARS - len(footer))
    return RenderedNotification(
        display_title=f"Permission requested by {request.agent}",
        display_body=body + footer,
        truncated=truncated,
    )
