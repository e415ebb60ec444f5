"""
DoS / network-protection probes.
"""
import logging
from concurrent.futures import ThreadPoolExecutor

from ..core.context import ProbeContext
from ..core.params import DosConfig
from ..core.registry import probe
from ..core.throttler import clamp, compute_burst_delay, now_ms, sustained_loop
from ..http_client import RequestOutcome
from ..plan import TestCategory, TestType
from ..sockets import tcp_connect, udp_send

logger = logging.getLogger("edgeprobe.probes.dos")

TCP_PACING_MS = 50
DEFAULT_FLOOD_CONNECTIONS = 50


@probe(TestCategory.DDOS_PROTECTION, TestType.HTTP_SPIKE)
def http_spike(ctx: ProbeContext, cfg: DosConfig):
    """
    Burst of ``burst_requests`` GETs through a pool of at most ``burst_cap``
    workers. Each worker waits its burst delay before firing, so the delay
    pattern shapes the arrival curve at the target.
    """
    url = cfg.target_url
    total = max(0, cfg.burst_requests)
    cap = ctx.config.burst_cap
    concurrency = max(1, min(total, cap))

    ctx.client.widen(concurrency)
    if (cfg.concurrent_connections or 0) > cap:
        ctx.info(f"concurrent_connections capped to {cap} for safety")

    def fire(index: int):
        if not ctx.sleep(compute_burst_delay(index, cfg.burst_interval_ms, cfg.burst_pattern)):
            return
        outcome = ctx.client.send("GET", url, headers={"X-Test-Type": "HTTP_SPIKE"})
        ctx.record("GET", url, outcome)

    start = now_ms()
    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="http-spike") as pool:
        futures = [pool.submit(fire, i) for i in range(total)]
        if cfg.sustained_window_sec > 0:
            ctx.sleep(cfg.sustained_window_sec * 1000)
        for f in futures:
            f.result()

    ctx.summary("HTTP Spike done", total=total, elapsedMs=now_ms() - start)


@probe(TestCategory.DDOS_PROTECTION, TestType.IP_REGION_BLOCKING)
def ip_region_blocking(ctx: ProbeContext, cfg: DosConfig):
    # egress IP cannot be changed from here; only reachability is measured
    if cfg.use_vpn:
        ctx.info("VPN use requested but not applied: egress IP is unchanged, connect the VPN before running")
    outcome = ctx.client.send("GET", cfg.target_url)
    ctx.record("GET", cfg.target_url, outcome, blocked_codes=(403, 451))
    ctx.summary("IP/Region blocking check done", total=1, reachable=outcome.status_code is not None)


@probe(TestCategory.DDOS_PROTECTION, TestType.TCP_PORT_REACHABILITY)
def tcp_port_reachability(ctx: ProbeContext, cfg: DosConfig):
    """Sequential connect attempts, one per port, in list order."""
    open_ports = 0
    attempted = 0
    for port in cfg.tcp_ports:
        if ctx.cancelled:
            break
        result = tcp_connect(cfg.host, port, cfg.timeout_ms)
        attempted += 1
        metadata = {}
        if result.ok:
            open_ports += 1
        else:
            metadata["reason"] = result.error
        outcome = RequestOutcome(
            200 if result.ok else None,
            result.duration_ms,
            None if result.ok else "Connect timeout",
        )
        ctx.record("TCP_CONNECT", f"{cfg.host}:{port}", outcome, metadata=metadata)
        if not ctx.sleep(TCP_PACING_MS):
            break
    ctx.summary("TCP reachability done", total=attempted, open=open_ports)


@probe(TestCategory.DDOS_PROTECTION, TestType.UDP_REACHABILITY)
def udp_reachability(ctx: ProbeContext, cfg: DosConfig):
    """Fires one datagram. Success only means the send completed."""
    result = udp_send(cfg.host, cfg.udp_port, cfg.udp_payload.encode("utf-8"))
    outcome = RequestOutcome(200 if result.ok else None, result.duration_ms, result.error)
    ctx.record("UDP_SEND", f"{cfg.host}:{cfg.udp_port}", outcome)
    ctx.summary("UDP reachability done", total=1, sent=result.ok)


@probe(TestCategory.DDOS_PROTECTION, TestType.CONNECTION_FLOOD)
def connection_flood(ctx: ProbeContext, cfg: DosConfig):
    """
    ``concurrent_connections`` workers loop GET + sleep(1000/connect_rate)
    until ``window_sec`` elapses.
    """
    url = cfg.target_url
    cap = ctx.config.flood_cap
    requested = cfg.concurrent_connections or DEFAULT_FLOOD_CONNECTIONS
    if requested > cap:
        ctx.info(f"concurrent_connections capped to {cap} for safety")
    concurrency = clamp(requested, 1, cap)
    rate = clamp(cfg.connect_rate, 1, cap)
    window_sec = max(1, cfg.window_sec)
    pause_ms = max(1, 1000 // rate)

    ctx.client.widen(concurrency)

    def body(_worker: int):
        outcome = ctx.client.send("GET", url, headers={"X-Test-Type": "CONNECTION_FLOOD"})
        ctx.record("GET", url, outcome)
        ctx.sleep(pause_ms)

    total = sustained_loop(concurrency, window_sec, body, ctx.cancel_event, name="conn-flood")
    ctx.summary(
        "Connection Flood done",
        concurrency=concurrency, connectRate=rate, windowSec=window_sec, total=total,
    )
