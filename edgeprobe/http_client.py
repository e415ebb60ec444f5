import time
import logging
import threading
from dataclasses import dataclass
from http.cookiejar import DefaultCookiePolicy
from typing import Optional, Dict, Union
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
import urllib3

from .config import EngineConfig
from .core.throttler import PermitGate
from .models import EdgeProbeError
from .redaction import redact_headers

logger = logging.getLogger("edgeprobe.http")

SUPPORTED_METHODS = ("GET", "POST", "PUT", "DELETE", "HEAD", "PATCH", "OPTIONS")
CANCEL_POLL_SEC = 0.05


class RequestCancelled(EdgeProbeError):
    """The run was cancelled while a request was waiting for its answer."""


@dataclass(frozen=True)
class RequestOutcome:
    """Result of the never-raising request primitive."""
    status_code: Optional[int]
    duration_ms: int
    error: Optional[str] = None


class HttpClient:
    """
    Thin wrapper around ``requests.Session``.

    Centralizes timeout/redirect policy and exposes two capacity knobs:
    ``max_requests`` (total in-flight) and ``max_requests_per_host``. Both can
    only grow during the lifetime of a client (see ``widen``). No retries.

    With a ``cancel_event`` attached, ``send`` stops waiting as soon as the
    event is set, even while a response is still outstanding.
    """

    def __init__(self, config: Optional[EngineConfig] = None, cookies: bool = False,
                 cancel_event: Optional[threading.Event] = None):
        self.config = config or EngineConfig()
        self.cookies_enabled = cookies
        self.cancel_event = cancel_event
        self.max_requests = self.config.max_requests
        self.max_requests_per_host = self.config.max_requests_per_host
        self._lock = threading.Lock()
        self._inflight = PermitGate(self.max_requests)
        self._host_gates: Dict[str, PermitGate] = {}
        self.session = self._new_session()

        if not self.config.verify_tls:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _new_session(self) -> requests.Session:
        session = requests.Session()
        session.headers.update({"User-Agent": self.config.user_agent})
        if self.config.default_headers:
            session.headers.update(self.config.default_headers)
        if not self.cookies_enabled:
            # shared client must not carry cookies from one probe into the next
            session.cookies.set_policy(DefaultCookiePolicy(allowed_domains=[]))
        self._mount(session)
        return session

    def _mount(self, session: requests.Session):
        previous = session.adapters.get("http://")
        adapter = HTTPAdapter(
            pool_connections=max(10, self.max_requests // max(1, self.max_requests_per_host)),
            pool_maxsize=self.max_requests_per_host,
            max_retries=0,
        )
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        if previous is not None:
            previous.close()

    def widen(self, concurrency: int):
        """
        Ratchets capacity up to fit ``concurrency`` parallel requests:
        max_requests = max(current, concurrency * 2),
        max_requests_per_host = max(current, concurrency).
        """
        with self._lock:
            total = max(self.max_requests, concurrency * 2)
            per_host = max(self.max_requests_per_host, concurrency)
            if total == self.max_requests and per_host == self.max_requests_per_host:
                return
            self.max_requests = total
            self.max_requests_per_host = per_host
            self._inflight.resize(total)
            for gate in self._host_gates.values():
                gate.resize(per_host)
            self._mount(self.session)
        logger.debug("HTTP capacity widened: max_requests=%d per_host=%d", total, per_host)

    def with_cookie_jar(self) -> "HttpClient":
        """New client with the same configuration and capacity but its own cookie jar."""
        child = HttpClient(self.config, cookies=True, cancel_event=self.cancel_event)
        child.widen(self.max_requests_per_host)
        return child

    def close(self):
        self.session.close()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _host_gate(self, url: str) -> PermitGate:
        host = urlparse(url).netloc.lower()
        with self._lock:
            gate = self._host_gates.get(host)
            if gate is None:
                gate = PermitGate(self.max_requests_per_host)
                self._host_gates[host] = gate
            return gate

    def request(self, method: str, url: str, *,
                headers: Optional[Dict[str, str]] = None,
                body: Union[str, bytes, None] = None,
                content_type: Optional[str] = None) -> int:
        """
        Issues one request and returns its status code.
        Raises ``requests.RequestException`` / ``ValueError`` on failure.
        """
        method = method.upper()
        if method not in SUPPORTED_METHODS:
            raise ValueError(f"Unsupported method: {method}")

        request_headers = dict(headers or {})
        if content_type and not any(k.lower() == "content-type" for k in request_headers):
            request_headers["Content-Type"] = content_type
        if isinstance(body, str):
            body = body.encode("utf-8")

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("%s %s headers=%s", method, url, redact_headers(request_headers))

        host_gate = self._host_gate(url)
        with self._inflight, host_gate:
            resp = self.session.request(
                method=method,
                url=url,
                headers=request_headers,
                data=body,
                timeout=(self.config.connect_timeout, self.config.read_timeout),
                allow_redirects=self.config.follow_redirects,
                verify=self.config.verify_tls,
            )
            resp.close()
            return resp.status_code

    def _request_until_cancelled(self, method: str, url: str, **kwargs) -> int:
        """
        Runs ``request`` on a daemon thread and waits for it or for the
        cancel event, whichever comes first. An abandoned call finishes (or
        times out) in the background; its result is discarded.
        """
        done = threading.Event()
        result = {}

        def call():
            try:
                result["status"] = self.request(method, url, **kwargs)
            except Exception as e:
                result["error"] = e
            finally:
                done.set()

        threading.Thread(target=call, name="edgeprobe-http", daemon=True).start()
        while not done.wait(CANCEL_POLL_SEC):
            if self.cancel_event.is_set():
                raise RequestCancelled("cancelled")
        if "error" in result:
            raise result["error"]
        return result["status"]

    def send(self, method: str, url: str, *,
             headers: Optional[Dict[str, str]] = None,
             body: Union[str, bytes, None] = None,
             content_type: Optional[str] = None) -> RequestOutcome:
        """
        Request primitive used by every probe. Never raises: network and
        protocol failures come back as ``RequestOutcome(None, duration, error)``,
        as does a cancelled run (error ``"cancelled"``).
        """
        start = time.monotonic()
        if self.cancelled:
            return RequestOutcome(None, 0, "cancelled")
        try:
            if self.cancel_event is None:
                status = self.request(method, url, headers=headers, body=body, content_type=content_type)
            else:
                status = self._request_until_cancelled(method, url, headers=headers, body=body,
                                                       content_type=content_type)
        except (requests.RequestException, ValueError, OSError, RequestCancelled) as e:
            duration = int((time.monotonic() - start) * 1000)
            message = str(e) or e.__class__.__name__
            logger.debug("%s %s failed after %dms: %s", method, url, duration, message)
            return RequestOutcome(None, duration, message)
        duration = int((time.monotonic() - start) * 1000)
        logger.debug("%s %s -> %d (%dms)", method, url, status, duration)
        return RequestOutcome(status, duration, None)
