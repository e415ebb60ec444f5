"""
API-protection probes.
"""
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Optional

from ..core.context import ProbeContext
from ..core.params import ApiConfig
from ..core.registry import probe
from ..core.throttler import clamp, fan_out
from ..encoding import append_query, build_oversized_field, build_url, form_body
from ..plan import TestCategory, TestType
from ..redaction import mask_secret

logger = logging.getLogger("edgeprobe.probes.api")

TOKEN_CASES = ("valid", "expired", "malformed", "missing")
DEFAULT_FUZZ_CASES = ("null", "wrong_type", "oversized")
MIN_BRUTE_PACING_MS = 50


def bearer(token: Optional[str]) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"} if token and token.strip() else {}


def token_for_case(case: str, token: Optional[str]) -> Optional[str]:
    """Credential presented for one auth-matrix case; None means send nothing."""
    if case == "valid":
        return token
    if case == "expired":
        return f"{token}_expired" if token else None
    if case == "malformed":
        return "malformed"
    return None


def auth_placement(mode: str, url: str, credential: Optional[str]):
    """Returns (url, headers) carrying ``credential`` according to ``mode``."""
    if not credential:
        return url, {}
    if mode == "query":
        return append_query(url, {"access_token": credential}), {}
    headers = {}
    if mode in ("header", "both"):
        headers["Authorization"] = f"Bearer {credential}"
    if mode in ("cookie", "both"):
        headers["Cookie"] = f"auth={credential}"
    return url, headers


@probe(TestCategory.API_PROTECTION, TestType.CONTEXT_AWARE_RATE_LIMIT)
def api_rate_limit(ctx: ProbeContext, cfg: ApiConfig):
    """
    ``parallel_users`` workers, each with its own bearer token when one is
    given, doing ``total // users`` rounds over every endpoint.
    """
    cap = ctx.config.parallel_users_cap
    if cfg.parallel_users > cap:
        ctx.info(f"parallel_users capped to {cap} for safety")
    users = clamp(cfg.parallel_users, 1, cap)
    total = cfg.rps_target * cfg.window_sec
    rounds = total // users
    pause_ms = 0 if cfg.request_pattern == "burst" else 1000 // cfg.rps_target
    urls = [build_url(cfg.base_url, e) for e in cfg.endpoint_list]
    ctx.client.widen(users)

    counts = {"sent": 0, "limited": 0}
    lock = threading.Lock()

    def user(index: int):
        token = cfg.token_list[index] if index < len(cfg.token_list) else None
        headers = bearer(token)
        for _ in range(rounds):
            for url in urls:
                if ctx.cancelled:
                    return
                outcome = ctx.client.send("GET", url, headers=headers)
                log = ctx.record("GET", url, outcome, blocked_codes=(429,), metadata={"user": str(index)})
                with lock:
                    counts["sent"] += 1
                    counts["limited"] += log.blocked
            if not ctx.sleep(pause_ms):
                return

    fan_out([lambda i=i: user(i) for i in range(users)], users, name="api-rate")
    ctx.summary("Context-aware rate limit done", users=users, rps=cfg.rps_target,
                total=counts["sent"], limited=counts["limited"])


@probe(TestCategory.API_PROTECTION, TestType.AUTHENTICATION_TEST)
def api_auth_test(ctx: ProbeContext, cfg: ApiConfig):
    """endpoints x {valid, expired, malformed, missing}, sequential, 120 ms apart."""
    total = rejected = 0
    matrix = [(endpoint, case) for endpoint in cfg.request_endpoints for case in TOKEN_CASES]
    for endpoint, case in matrix:
        credential = token_for_case(case, cfg.tokens.get(case))
        url, headers = auth_placement(cfg.auth_header_mode, build_url(cfg.base_url, endpoint), credential)
        outcome = ctx.client.send("GET", url, headers=headers)
        log = ctx.record("GET", url, outcome, blocked_codes=(401, 403), metadata={"case": case})
        total += 1
        rejected += log.blocked
        if not ctx.sleep(120):
            break
    ctx.summary("Authentication test done", total=total, rejected=rejected)


@probe(TestCategory.API_PROTECTION, TestType.BRUTE_FORCE)
def api_brute_force(ctx: ProbeContext, cfg: ApiConfig):
    """
    Sprays ``password_list`` at one login endpoint. Attempts are launched
    ``60000 / attempts_per_minute`` ms apart (never less than 50 ms) and at
    most ``concurrency`` are in flight. Passwords are logged masked.
    """
    cap = ctx.config.brute_force_cap
    concurrency = clamp(cfg.concurrency, 1, cap)
    pacing_ms = max(MIN_BRUTE_PACING_MS, 60000 // cfg.attempts_per_minute)
    ctx.client.widen(concurrency)

    def attempt(password: str):
        body = form_body({"username": cfg.username, "password": password})
        outcome = ctx.client.send("POST", cfg.target_url, body=body,
                                  content_type="application/x-www-form-urlencoded")
        return ctx.record("POST", cfg.target_url, outcome, blocked_codes=(429, 423),
                          metadata={"pw": mask_secret(password)})

    futures = []
    with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="brute") as pool:
        for password in cfg.password_list:
            if ctx.cancelled:
                break
            futures.append(pool.submit(attempt, password))
            if not ctx.sleep(pacing_ms):
                break
    logs = [f.result() for f in futures]
    ctx.summary("Brute force done", total=len(logs), limited=sum(1 for log in logs if log.blocked),
                pacingMs=pacing_ms)


@probe(TestCategory.API_PROTECTION, TestType.ENUMERATION_IDOR)
def api_enumeration(ctx: ProbeContext, cfg: ApiConfig):
    headers = bearer(cfg.auth_tokens[0] if cfg.auth_tokens else None)
    total = exposed = 0
    for object_id in range(cfg.id_start, cfg.id_end + 1, cfg.step_size):
        url = build_url(cfg.base_url, cfg.enum_template.replace("{id}", str(object_id)))
        outcome = ctx.client.send("GET", url, headers=headers)
        ctx.record("GET", url, outcome, metadata={"id": str(object_id)})
        total += 1
        if outcome.status_code is not None and 200 <= outcome.status_code < 300:
            exposed += 1
        if not ctx.sleep(80):
            break
    ctx.summary("Enumeration done", total=total, accessible=exposed)


def fuzz_bodies(cfg: ApiConfig):
    """(case name, body) pairs for the schema fuzz probe."""
    cases = []
    for case in (cfg.fuzz_cases or DEFAULT_FUZZ_CASES):
        if case == "null":
            body = "null"
        elif case == "wrong_type":
            body = '"string_instead_of_object"'
        elif case == "oversized":
            body = build_oversized_field(cfg.oversized_field_length)
        else:
            body = case
        cases.append((case, body))
    if cfg.special_chars:
        cases.append(("special_chars", json.dumps({"field": "".join(cfg.special_chars)})))
    return cases


@probe(TestCategory.API_PROTECTION, TestType.SCHEMA_INPUT_VALIDATION)
def api_schema_fuzz(ctx: ProbeContext, cfg: ApiConfig):
    total = rejected = 0
    for case, body in fuzz_bodies(cfg):
        outcome = ctx.client.send("POST", cfg.target_url, body=body,
                                  headers={"Content-Type": cfg.content_type})
        log = ctx.record("POST", cfg.target_url, outcome, blocked_codes=(400, 403, 413, 415, 422),
                         metadata={"case": case})
        total += 1
        rejected += log.blocked
        if not ctx.sleep(100):
            break
    ctx.summary("Schema validation fuzz done", total=total, rejected=rejected, contentType=cfg.content_type)


@probe(TestCategory.API_PROTECTION, TestType.BUSINESS_LOGIC_ABUSE)
def api_business_logic(ctx: ProbeContext, cfg: ApiConfig):
    """
    Replays the workflow ``replay_count`` times, step by step in declared
    order. ``{iteration}`` in a body template becomes the 1-based replay index.
    """
    tokens = cfg.auth_tokens or cfg.token_list
    schedule = [
        (iteration, step_no, step)
        for iteration in range(1, cfg.replay_count + 1)
        for step_no, step in enumerate(cfg.workflow_steps, start=1)
    ]
    total = replays = 0
    for iteration, step_no, step in schedule:
        method = step.method.upper()
        url = build_url(cfg.base_url, step.endpoint)
        headers = dict(step.headers or {})
        idx = step.use_token_index
        if idx is not None and 0 <= idx < len(tokens):
            headers.update(bearer(tokens[idx]))
        body = step.body_template.replace("{iteration}", str(iteration)) if step.body_template else None
        outcome = ctx.client.send(method, url, headers=headers, body=body,
                                  content_type="application/json" if body is not None else None)
        ctx.record(method, url, outcome, metadata={"iteration": str(iteration), "step": str(step_no)})
        total += 1
        replays = iteration
        if not ctx.sleep(cfg.request_delay_ms):
            break
    ctx.summary("Business logic replay done", total=total, replays=replays)
