import json
import sys
import threading
from typing import Callable, Dict, Any, IO, List, Optional

from colorama import init, Fore, Style

from .models import LogEvent, InfoEvent, ErrorEvent, RequestEvent, SummaryEvent, RequestLog
from .redaction import redact_metadata

init()

Sink = Callable[[LogEvent], None]


class ResultRecorder:
    """
    Persistence boundary. Receives finished request logs and summaries and
    has no way to reach back into the run.
    """

    def record_request(self, log: RequestLog):
        raise NotImplementedError

    def record_summary(self, summary: SummaryEvent):
        raise NotImplementedError

    def close(self):
        pass

    def as_sink(self) -> Sink:
        def sink(event: LogEvent):
            if isinstance(event, RequestEvent):
                self.record_request(event.log)
            elif isinstance(event, SummaryEvent):
                self.record_summary(event)
        return sink


class JsonLinesRecorder(ResultRecorder):
    """One JSON object per line; request metadata is redacted before writing."""

    def __init__(self, path: str):
        self.path = path
        self._fh: IO[str] = open(path, "w", encoding="utf-8")
        self._lock = threading.Lock()

    def _write(self, record: Dict[str, Any]):
        with self._lock:
            self._fh.write(json.dumps(record, default=str) + "\n")
            self._fh.flush()

    def record_request(self, log: RequestLog):
        data = log.to_dict()
        data["metadata"] = redact_metadata(log.metadata)
        self._write({"kind": "request", "log": data})

    def record_summary(self, summary: SummaryEvent):
        self._write({"kind": "summary", "message": summary.message, "totals": dict(summary.totals)})

    def close(self):
        with self._lock:
            if not self._fh.closed:
                self._fh.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class RecordingSink:
    """Keeps every event in memory. Handy for tests and short interactive runs."""

    def __init__(self):
        self.events: List[LogEvent] = []

    def __call__(self, event: LogEvent):
        self.events.append(event)

    def of(self, kind) -> List[LogEvent]:
        return [e for e in self.events if isinstance(e, kind)]

    @property
    def requests(self) -> List[RequestLog]:
        return [e.log for e in self.of(RequestEvent)]

    @property
    def summaries(self) -> List[SummaryEvent]:
        return self.of(SummaryEvent)

    @property
    def errors(self) -> List[ErrorEvent]:
        return self.of(ErrorEvent)

    @property
    def infos(self) -> List[InfoEvent]:
        return self.of(InfoEvent)


def tee(*sinks: Optional[Sink]) -> Sink:
    """Fans one event out to several sinks, skipping None."""
    targets = [s for s in sinks if s is not None]

    def sink(event: LogEvent):
        for target in targets:
            target(event)
    return sink


class ConsoleReporter:
    """Colored, line-per-event console output."""

    def __init__(self, stream: IO[str] = None, show_requests: bool = True):
        self.stream = stream or sys.stdout
        self.show_requests = show_requests
        self.requests = 0
        self.blocked = 0
        self.failed = 0
        self.errors = 0

    def __call__(self, event: LogEvent):
        if isinstance(event, RequestEvent):
            self._request(event.log)
        elif isinstance(event, InfoEvent):
            self._print(f"{Fore.CYAN}[*] {event.message}{Style.RESET_ALL}")
        elif isinstance(event, ErrorEvent):
            self.errors += 1
            self._print(f"{Fore.RED}[!] {event.message}{Style.RESET_ALL}")
        elif isinstance(event, SummaryEvent):
            totals = ", ".join(f"{k}={v}" for k, v in event.totals.items())
            self._print(f"{Style.BRIGHT}[=] {event.message}{Style.RESET_ALL} {totals}")

    def _request(self, log: RequestLog):
        self.requests += 1
        if log.blocked:
            self.blocked += 1
        if log.status_code is None:
            self.failed += 1
        if not self.show_requests:
            return
        if log.status_code is None:
            status = f"{Fore.RED}ERR{Style.RESET_ALL}"
        elif log.blocked:
            status = f"{Fore.YELLOW}{log.status_code} BLOCKED{Style.RESET_ALL}"
        else:
            status = f"{Fore.GREEN}{log.status_code}{Style.RESET_ALL}"
        line = f"    -> {log.method} {log.url} [{status}] {log.duration_ms}ms"
        meta = redact_metadata(log.metadata)
        if meta:
            line += " " + " ".join(f"{k}={v}" for k, v in meta.items())
        if log.error:
            line += f" {Fore.RED}({log.error}){Style.RESET_ALL}"
        self._print(line)

    def print_summary(self):
        print(f"\n{Style.BRIGHT}=== PROBE RUN REPORT ==={Style.RESET_ALL}", file=self.stream)
        print(f"Requests: {self.requests}  Blocked: {self.blocked}  "
              f"Network failures: {self.failed}  Test errors: {self.errors}", file=self.stream)

    def _print(self, text: str):
        print(text, file=self.stream)
