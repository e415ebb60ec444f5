"""
Web-application-firewall probes.

The injection family encodes each payload once and places it at the
configured injection point. When the encoding already percent-encodes the
payload (``urlencode``) it is not encoded a second time when it lands in a
URL or form body.
"""
import logging
from typing import Dict, Optional, Tuple
from urllib.parse import quote

from ..core.context import ProbeContext
from ..core.params import WafConfig
from ..core.registry import probe
from ..core.throttler import fan_out
from ..encoding import append_query, build_large_json, encode_payload, form_body, join_url
from ..plan import TestCategory, TestType

logger = logging.getLogger("edgeprobe.probes.waf")

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
INJECTION_HEADER = "X-Injection"

BLOCKED_BY_POINT = {
    "query": (403, 406),
    "header": (403, 406),
    "path": (403,),
    "body": (403,),
}


class Injection:
    """A single placed payload: what to send and how to judge the answer."""

    def __init__(self, method: str, url: str, blocked_codes: Tuple[int, ...],
                 headers: Optional[Dict[str, str]] = None,
                 body: Optional[str] = None, content_type: Optional[str] = None):
        self.method = method
        self.url = url
        self.blocked_codes = blocked_codes
        self.headers = headers or {}
        self.body = body
        self.content_type = content_type


def _url_safe(value: str, pre_encoded: bool) -> str:
    return value if pre_encoded else quote(value, safe="")


def place_payload(base_url: str, point: str, payload: str, mode: str,
                  target_params=("q",)) -> Injection:
    """Builds the request that carries ``payload`` (already encoded with ``mode``) at ``point``."""
    pre_encoded = mode == "urlencode"
    blocked = BLOCKED_BY_POINT[point]
    if point == "query":
        url = append_query(base_url, {p: payload for p in target_params}, pre_encoded=pre_encoded)
        return Injection("GET", url, blocked)
    if point == "body":
        body = form_body({p: payload for p in target_params}, pre_encoded=pre_encoded)
        return Injection("POST", base_url, blocked, body=body, content_type=FORM_CONTENT_TYPE)
    if point == "header":
        return Injection("GET", base_url, blocked, headers={INJECTION_HEADER: payload})
    return Injection("GET", join_url(base_url, _url_safe(payload, pre_encoded)), blocked)


def _fire(ctx: ProbeContext, inj: Injection, metadata=None):
    outcome = ctx.client.send(inj.method, inj.url, headers=inj.headers,
                              body=inj.body, content_type=inj.content_type)
    return ctx.record(inj.method, inj.url, outcome, blocked_codes=inj.blocked_codes, metadata=metadata)


def _no_payloads(ctx: ProbeContext, cfg: WafConfig, label: str) -> bool:
    if cfg.payloads:
        return False
    ctx.info(f"{label}: payload_list is empty, nothing to send")
    ctx.summary(f"{label} done", total=0, blocked=0)
    return True


@probe(TestCategory.WEB_PROTECTION, TestType.SQLI_XSS_SMOKE)
def sqli_xss_smoke(ctx: ProbeContext, cfg: WafConfig):
    if _no_payloads(ctx, cfg, "SQLi/XSS smoke"):
        return
    mode = cfg.encoding_mode or "raw"
    total = blocked = 0
    for raw in cfg.payloads:
        encoded = encode_payload(raw, mode)
        inj = place_payload(cfg.target_url, cfg.injection_point, encoded, mode, cfg.target_params)
        log = _fire(ctx, inj, metadata={"injectionPoint": cfg.injection_point})
        total += 1
        blocked += log.blocked
        if not ctx.sleep(100):
            break
    ctx.summary("SQLi/XSS smoke done", total=total, blocked=blocked,
                injectionPoint=cfg.injection_point, encoding=mode)


@probe(TestCategory.WEB_PROTECTION, TestType.REFLECTED_XSS)
def reflected_xss(ctx: ProbeContext, cfg: WafConfig):
    """Query-string injection with caller header overrides; blocked on 403."""
    if _no_payloads(ctx, cfg, "Reflected XSS"):
        return
    mode = cfg.encoding_mode or "urlencode"
    total = blocked = 0
    for raw in cfg.payloads:
        encoded = encode_payload(raw, mode)
        inj = place_payload(cfg.target_url, "query", encoded, mode, cfg.target_params)
        inj.headers = dict(cfg.headers_overrides)
        inj.blocked_codes = (403,)
        log = _fire(ctx, inj)
        total += 1
        blocked += log.blocked
        if not ctx.sleep(100):
            break
    ctx.summary("Reflected XSS done", total=total, blocked=blocked, encoding=mode)


@probe(TestCategory.WEB_PROTECTION, TestType.PATH_TRAVERSAL_INJECTION_LOG4SHELL)
def traversal_injection(ctx: ProbeContext, cfg: WafConfig):
    """
    Every ``target_paths`` template x every payload, with ``{payload}``
    substituted. Without templates the payload is appended as a path segment.
    """
    if _no_payloads(ctx, cfg, "Traversal/injection"):
        return
    mode = cfg.encoding_mode or "raw"
    pre_encoded = mode == "urlencode"
    injections = []
    if cfg.target_paths:
        for path in cfg.target_paths:
            for raw in cfg.payloads:
                segment = _url_safe(encode_payload(raw, mode), pre_encoded)
                url = join_url(cfg.target_url, path.replace("{payload}", segment))
                injections.append(Injection("GET", url, (403,)))
    else:
        for raw in cfg.payloads:
            injections.append(place_payload(cfg.target_url, "path", encode_payload(raw, mode), mode))

    total = blocked = 0
    for inj in injections:
        log = _fire(ctx, inj)
        total += 1
        blocked += log.blocked
        if not ctx.sleep(80):
            break
    ctx.summary("Traversal/injection done", total=total, blocked=blocked)


@probe(TestCategory.WEB_PROTECTION, TestType.CUSTOM_RULES)
def custom_rules(ctx: ProbeContext, cfg: WafConfig):
    inj = Injection(cfg.method_override, cfg.target_url, (403,), headers=dict(cfg.headers_overrides))
    log = _fire(ctx, inj)
    ctx.summary("Custom rules done", total=1, blocked=int(log.blocked), method=cfg.method_override)


@probe(TestCategory.WEB_PROTECTION, TestType.EDGE_RATE_LIMITING)
def edge_rate_limit(ctx: ProbeContext, cfg: WafConfig):
    """``rps_target * window_sec`` GETs fired at once, no pacing. 429 means limited."""
    url = cfg.target_url
    total = cfg.rps_target * cfg.window_sec
    workers = max(1, min(total, ctx.config.burst_cap))
    ctx.client.widen(workers)
    headers = {"X-Fingerprint": cfg.fingerprint_mode}

    def fire():
        if ctx.cancelled:
            return False
        outcome = ctx.client.send("GET", url, headers=headers)
        return ctx.record("GET", url, outcome, blocked_codes=(429,)).blocked

    results = fan_out([fire] * total, workers, name="edge-rate")
    ctx.summary("Edge rate-limit test done", rps=cfg.rps_target, windowSec=cfg.window_sec,
                total=total, limited=sum(1 for r in results if r))


@probe(TestCategory.WEB_PROTECTION, TestType.OVERSIZED_PAYLOAD)
def oversized_payload(ctx: ProbeContext, cfg: WafConfig):
    body = build_large_json(cfg.field_repeats, cfg.body_size_kb)
    inj = Injection("POST", cfg.target_url, (413, 403), body=body, content_type="application/json")
    log = _fire(ctx, inj, metadata={"bodyBytes": str(len(body))})
    ctx.summary("Oversized payload done", total=1, blocked=int(log.blocked), bodyBytes=len(body))
