from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional


class EdgeProbeError(Exception):
    """Base class for engine errors."""


class PlanFormatError(EdgeProbeError):
    """Raised when a plan document cannot be decoded."""


class SpecValidationError(EdgeProbeError):
    """A required target/param field is missing or invalid for a probe."""


@dataclass(frozen=True)
class RequestLog:
    """One network operation attempted by a probe (HTTP call, TCP connect, UDP send)."""
    method: str
    url: str
    status_code: Optional[int]
    duration_ms: int
    blocked: bool = False
    error: Optional[str] = None
    metadata: Dict[str, Optional[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "url": self.url,
            "statusCode": self.status_code,
            "durationMs": self.duration_ms,
            "blocked": self.blocked,
            "error": self.error,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class LogEvent:
    kind = "event"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind
        return data


@dataclass(frozen=True)
class InfoEvent(LogEvent):
    message: str
    kind = "info"


@dataclass(frozen=True)
class ErrorEvent(LogEvent):
    message: str
    kind = "error"


@dataclass(frozen=True)
class RequestEvent(LogEvent):
    log: RequestLog
    kind = "request"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "log": self.log.to_dict()}


@dataclass(frozen=True)
class SummaryEvent(LogEvent):
    message: str
    totals: Dict[str, Any] = field(default_factory=dict)
    kind = "summary"
