"""Pipeline events.

Events form the only contract between a running pipeline and its
consumer: any number of progress ticks followed by exactly one terminal
event, either complete or error.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar


@dataclass(frozen=True)
class PipelineEvent(ABC):
    """Base class for pipeline events.

    Attributes:
        event_type: String identifier for the event type (set by subclass).
        occurred_at: Timestamp when the event was produced.
    """

    event_type: ClassVar[str]
    is_terminal: ClassVar[bool] = False

    occurred_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc), compare=False
    )

    def to_dict(self) -> dict[str, Any]:
        """Convert event to dictionary for serialization.

        Returns:
            Dictionary representation of the event.
        """
        return {"type": self.event_type, **self._payload()}

    @abstractmethod
    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload data."""


@dataclass(frozen=True)
class ProgressEvent(PipelineEvent):
    """Progress tick inside a phase.

    ``total`` may be 0 while the phase has not counted its work yet.
    """

    event_type: ClassVar[str] = "progress"

    phase: str = ""
    current: int = 0
    total: int = 0
    message: str = ""

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {
            "phase": self.phase,
            "current": self.current,
            "total": self.total,
            "message": self.message,
        }


@dataclass(frozen=True)
class CompleteEvent(PipelineEvent):
    """Terminal event for a run that finished without a fatal error."""

    event_type: ClassVar[str] = "complete"
    is_terminal: ClassVar[bool] = True

    summary: dict[str, Any] = field(default_factory=dict)

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {"summary": self.summary}


@dataclass(frozen=True)
class ErrorEvent(PipelineEvent):
    """Terminal event for a run that failed."""

    event_type: ClassVar[str] = "error"
    is_terminal: ClassVar[bool] = True

    code: str = "INTERNAL_ERROR"
    message: str = ""
    phase: str | None = None

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {"code": self.code, "message": self.message, "phase": self.phase}


@dataclass(frozen=True)
class HeartbeatEvent(PipelineEvent):
    """Keep-alive emitted by stream transports while a phase is busy."""

    event_type: ClassVar[str] = "heartbeat"

    def _payload(self) -> dict[str, Any]:
        """Get event-specific payload."""
        return {"timestamp": self.occurred_at.isoformat()}
