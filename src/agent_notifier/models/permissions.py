"""Permission request models.

A permission request starts PENDING and moves exactly once to one of
APPROVED, DENIED or TIMED_OUT.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class RiskLevel(Enum):
    """Risk label supplied by the requesting agent."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class PermissionStatus(Enum):
    """Lifecycle status of a permission request."""

    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self is not PermissionStatus.PENDING


class PermissionDecision(Enum):
    """Decision a human responder may submit."""

    APPROVED = "approved"
    DENIED = "denied"

    def to_status(self) -> PermissionStatus:
        """Convert responder decision to the matching terminal status."""
        return PermissionStatus(self.value)


@dataclass(frozen=True)
class NewPermissionRequest:
    """Validated permission request fields, before an id is assigned.

    Attributes:
        command: Command the agent wants to run
        reason: Why the agent needs it
        agent: Label of the requesting agent
        risk: Agent-assessed risk level
        timeout_seconds: Auto-deny after this many seconds, if set
        context_url: Optional link with more context, passed through as-is
    """

    command: str
    reason: str
    agent: str
    risk: RiskLevel
    timeout_seconds: int | None = None
    context_url: str | None = None


@dataclass
class PermissionRequest:
    """Permission request owned by the registry.

    Attributes:
        id: Opaque unique token
        command: Command the agent wants to run
        reason: Why the agent needs it
        agent: Label of the requesting agent
        risk: Agent-assessed risk level
        timeout_seconds: Auto-deny timeout, if any
        context_url: Optional context link
        status: Current lifecycle status
        created_at: Creation time (UTC)
        resolved_at: Time the status left PENDING (UTC)
    """

    id: str
    command: str
    reason: str
    agent: str
    risk: RiskLevel
    timeout_seconds: int | None = None
    context_url: str | None = None
    status: PermissionStatus = PermissionStatus.PENDING
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    resolved_at: datetime | None = None

    @classmethod
    def from_new(cls, request_id: str, new: NewPermissionRequest) -> "PermissionRequest":
        return cls(
            id=request_id,
            command=new.command,
            reason=new.reason,
            agent=new.agent,
            risk=new.risk,
            timeout_seconds=new.timeout_seconds,
            context_url=new.context_url,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses (camelCase, like the tool arguments)."""
        return {
            "id": self.id,
            "command": self.command,
            "reason": self.reason,
            "agent": self.agent,
            "risk": self.risk.value,
            "timeoutSeconds": self.timeout_seconds,
            "contextUrl": self.context_url,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat(),
            "resolvedAt": self.resolved_at.isoformat() if self.resolved_at else None,
        }
