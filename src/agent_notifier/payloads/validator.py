"""Payload validation.

Every validator returns either the validated value or a ValidationError
instance describing the first offending field. Nothing here raises for
bad input; callers decide how to surface the error.
"""

from typing import Any

from ..errors import ValidationError
from ..models.bindings import HttpBindings
from ..models.notifications import NotifyRequest
from ..models.permissions import NewPermissionRequest, PermissionDecision, RiskLevel

MIN_PORT = 1
MAX_PORT = 65535


def _required_text(raw: dict[str, Any], field: str) -> str | ValidationError:
    """Fetch a required string field, trimmed.

    Args:
        raw: Payload mapping
        field: Key to read

    Returns:
        Trimmed value, or ValidationError if missing, not a string or blank
    """
    value = raw.get(field)
    if value is None:
        return ValidationError(field, "is required")
    if not isinstance(value, str):
        return ValidationError(field, "must be a string")
    value = value.strip()
    if not value:
        return ValidationError(field, "must not be empty")
    return value


def _pick(raw: dict[str, Any], *keys: str) -> Any:
    """Return the first present key's value (camelCase and snake_case aliases)."""
    for key in keys:
        if key in raw:
            return raw[key]
    return None


def _is_integer(value: Any) -> bool:
    # bool is a subclass of int; True is not a port or a timeout
    return isinstance(value, int) and not isinstance(value, bool)


def validate_notify(raw: Any) -> NotifyRequest | ValidationError:
    """Validate a notify payload.

    Args:
        raw: Decoded JSON body

    Returns:
        NotifyRequest with trimmed fields, or the first ValidationError

    Examples:
        >>> validate_notify({"title": " Done ", "content": "ok", "agent": "ci"})
        NotifyRequest(title='Done', content='ok', agent='ci')
    """
    if not isinstance(raw, dict):
        return ValidationError("body", "must be a JSON object")

    values: dict[str, str] = {}
    for field in ("title", "content", "agent"):
        result = _required_text(raw, field)
        if isinstance(result, ValidationError):
            return result
        values[field] = result

    return NotifyRequest(**values)


def validate_permission_request(raw: Any) -> NewPermissionRequest | ValidationError:
    """Validate permission request fields.

    Accepts both the tool-surface names (timeoutSeconds, contextUrl) and
    their snake_case forms.

    Args:
        raw: Decoded JSON body or tool arguments

    Returns:
        NewPermissionRequest, or the first ValidationError
    """
    if not isinstance(raw, dict):
        return ValidationError("body", "must be a JSON object")

    values: dict[str, str] = {}
    for field in ("command", "reason", "agent"):
        result = _required_text(raw, field)
        if isinstance(result, ValidationError):
            return result
        values[field] = result

    risk_raw = _required_text(raw, "risk")
    if isinstance(risk_raw, ValidationError):
        return risk_raw
    try:
        risk = RiskLevel(risk_raw.lower())
    except ValueError:
        return ValidationError("risk", "must be one of: low, medium, high")

    timeout = _pick(raw, "timeoutSeconds", "timeout_seconds")
    if timeout is not None:
        if isinstance(timeout, float) and timeout.is_integer():
            timeout = int(timeout)
        if not _is_integer(timeout) or timeout <= 0:
            return ValidationError("timeoutSeconds", "must be a positive integer")

    context_url = _pick(raw, "contextUrl", "context_url")
    if context_url is not None:
        if not isinstance(context_url, str):
            return ValidationError("contextUrl", "must be a string")
        context_url = context_url.strip() or None

    return NewPermissionRequest(
        command=values["command"],
        reason=values["reason"],
        agent=values["agent"],
        risk=risk,
        timeout_seconds=timeout,
        context_url=context_url,
    )


def validate_decision(raw: Any) -> PermissionDecision | ValidationError:
    """Validate a responder decision ("approved" or "denied")."""
    if not isinstance(raw, str) or not raw.strip():
        return ValidationError("decision", "is required")
    try:
        return PermissionDecision(raw.strip().lower())
    except ValueError:
        return ValidationError("decision", "must be one of: approved, denied")


def validate_bindings(raw: Any) -> HttpBindings | ValidationError:
    """Validate listener bind settings.

    Args:
        raw: Mapping with bindAddress (or bind_address) and port

    Returns:
        HttpBindings with a trimmed address, or the first ValidationError

    Examples:
        >>> validate_bindings({"bindAddress": "127.0.0.1", "port": 99999}).field
        'port'
    """
    if not isinstance(raw, dict):
        return ValidationError("body", "must be a JSON object")

    address = _pick(raw, "bindAddress", "bind_address")
    if not isinstance(address, str) or not address.strip():
        return ValidationError("bindAddress", "must not be empty")

    port = raw.get("port")
    if not _is_integer(port) or not MIN_PORT <= port <= MAX_PORT:
        return ValidationError("port", f"must be an integer between {MIN_PORT} and {MAX_PORT}")

    return HttpBindings(bind_address=address.strip(), port=port)
