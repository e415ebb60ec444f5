import socket
import time
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("edgeprobe.sockets")


@dataclass(frozen=True)
class SocketOutcome:
    ok: bool
    duration_ms: int
    error: Optional[str] = None


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def tcp_connect(host: str, port: int, timeout_ms: int) -> SocketOutcome:
    """Clean connect + close within ``timeout_ms``. Never raises."""
    start = time.monotonic()
    try:
        conn = socket.create_connection((host, int(port)), timeout=timeout_ms / 1000.0)
    except OSError as e:
        return SocketOutcome(False, _elapsed_ms(start), str(e) or e.__class__.__name__)
    try:
        conn.close()
    except OSError:
        logger.debug("close() failed for %s:%s", host, port)
    return SocketOutcome(True, _elapsed_ms(start))


def udp_send(host: str, port: int, payload: bytes) -> SocketOutcome:
    """
    Sends one datagram. Success means the send call completed; UDP gives
    no delivery confirmation. Never raises.
    """
    start = time.monotonic()
    try:
        infos = socket.getaddrinfo(host, int(port), type=socket.SOCK_DGRAM)
        family, socktype, proto, _, addr = infos[0]
        with socket.socket(family, socktype, proto) as s:
            s.sendto(payload, addr)
    except OSError as e:
        return SocketOutcome(False, _elapsed_ms(start), str(e) or e.__class__.__name__)
    return SocketOutcome(True, _elapsed_ms(start))
