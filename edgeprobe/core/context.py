import threading
import logging
from typing import Callable, Dict, Optional, Any, Iterable

from ..config import EngineConfig
from ..http_client import HttpClient, RequestOutcome
from ..models import LogEvent, InfoEvent, ErrorEvent, RequestEvent, SummaryEvent, RequestLog

logger = logging.getLogger("edgeprobe.context")

Sink = Callable[[LogEvent], None]


class ProbeContext:
    """
    Everything a probe needs at runtime: the shared HTTP client, the event
    sink, engine configuration and the run-wide cancel signal.

    Sink calls are serialized, so sinks do not need to be thread-safe. Once
    the run is cancelled no further events are delivered.
    """

    def __init__(self, client: HttpClient, sink: Sink,
                 config: Optional[EngineConfig] = None,
                 cancel_event: Optional[threading.Event] = None):
        self.client = client
        self.sink = sink
        self.config = config or EngineConfig()
        self.cancel_event = cancel_event or threading.Event()
        self._emit_lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def emit(self, event: LogEvent):
        with self._emit_lock:
            if self.cancel_event.is_set():
                return
            self.sink(event)

    def info(self, message: str):
        self.emit(InfoEvent(message))

    def error(self, message: str):
        self.emit(ErrorEvent(message))

    def summary(self, message: str, **totals: Any):
        self.emit(SummaryEvent(message, totals))

    def record(self, method: str, url: str, outcome: RequestOutcome,
               blocked_codes: Iterable[int] = (),
               metadata: Optional[Dict[str, Optional[str]]] = None) -> RequestLog:
        """Turns a request outcome into a RequestLog and emits it."""
        log = RequestLog(
            method=method,
            url=url,
            status_code=outcome.status_code,
            duration_ms=outcome.duration_ms,
            blocked=outcome.status_code is not None and outcome.status_code in set(blocked_codes),
            error=outcome.error,
            metadata=dict(metadata or {}),
        )
        self.emit(RequestEvent(log))
        return log

    def sleep(self, ms: float) -> bool:
        """
        Pacing delay. Returns False (immediately) if the run was cancelled,
        True once the full delay elapsed.
        """
        if ms <= 0:
            return not self.cancelled
        return not self.cancel_event.wait(ms / 1000.0)
