import queue
import logging
import threading
from typing import Iterator, Optional

from .config import EngineConfig
from .core.context import ProbeContext, Sink
from .core.registry import ProbeRegistry, default_registry
from .http_client import HttpClient
from .models import LogEvent
from .plan import TestPlan
from . import probes  # noqa: F401  (registers built-in probes)

logger = logging.getLogger("edgeprobe.engine")


class PlanRunner:
    """
    Runs the enabled specs of a plan one after another.

    A failing spec becomes one Error event and the run moves on; the run
    always ends with ``Summary("Plan finished")`` unless it was cancelled.
    """

    def __init__(self, client: Optional[HttpClient] = None,
                 config: Optional[EngineConfig] = None,
                 registry: Optional[ProbeRegistry] = None):
        self.config = config or EngineConfig()
        self.cancel_event = threading.Event()
        self.client = client or HttpClient(self.config)
        self.client.cancel_event = self.cancel_event
        self.registry = registry or default_registry

    def run(self, plan: TestPlan, sink: Sink):
        ctx = ProbeContext(self.client, sink, self.config, self.cancel_event)
        enabled = plan.enabled_tests
        total = len(enabled)

        ctx.info(f"Starting TestPlan: {plan.name}")
        logger.info("Running plan '%s': %d enabled of %d tests", plan.name, total, len(plan.tests))

        for idx, spec in enumerate(enabled, start=1):
            if ctx.cancelled:
                logger.info("Plan '%s' cancelled before test %d/%d", plan.name, idx, total)
                return
            ctx.info(f"[{idx}/{total}] {spec.category.value} - {spec.type.value}")
            try:
                self.registry.dispatch(spec, ctx)
            except Exception as e:
                # failures stay scoped to the spec that raised them
                logger.warning("Test %s/%s failed: %s", spec.category.value, spec.type.value, e,
                               exc_info=logger.isEnabledFor(logging.DEBUG))
                ctx.error(f"Test failed: {e}")

        ctx.summary("Plan finished", testsExecuted=total)

    def stream(self, plan: TestPlan) -> "EventStream":
        """Runs ``plan`` on a background thread and returns its events as an iterator."""
        return EventStream(self, plan)

    def cancel(self):
        """
        Stops the run: pacing delays return at once, the HTTP session is
        closed under in-flight calls and no further events are delivered.
        """
        logger.info("Cancelling run")
        self.cancel_event.set()
        self.client.close()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


_DONE = object()


class EventStream:
    """
    Iterator over the events of one run. Events are buffered in an unbounded
    queue, so a slow consumer never stalls the probes.
    """

    def __init__(self, runner: PlanRunner, plan: TestPlan):
        self.runner = runner
        self._queue: "queue.Queue" = queue.Queue()
        self.error: Optional[BaseException] = None
        self._thread = threading.Thread(target=self._run, args=(plan,),
                                        name="edgeprobe-run", daemon=True)
        self._thread.start()

    def _run(self, plan: TestPlan):
        try:
            self.runner.run(plan, self._queue.put)
        except Exception as e:
            logger.exception("Plan runner crashed")
            self.error = e
        finally:
            self._queue.put(_DONE)

    def __iter__(self) -> Iterator[LogEvent]:
        while True:
            item = self._queue.get()
            if item is _DONE:
                return
            yield item

    def cancel(self):
        self.runner.cancel()

    def join(self, timeout: Optional[float] = None):
        self._thread.join(timeout)
