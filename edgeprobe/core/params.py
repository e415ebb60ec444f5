"""
Per-family configuration structs.

The generic ``Params`` bag is turned into one typed struct per probe family
at dispatch time. Defaults are resolved here, and ``validate(test_type)`` is
the single place that decides whether a spec carries what its probe needs.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..encoding import normalize_url
from ..models import SpecValidationError
from ..plan import TestCategory, TestSpec, TestType, WorkflowStep


def _first(*values):
    for v in values:
        if v is not None:
            return v
    return None


def _default(value, fallback):
    return fallback if value is None else value


FIELD_LABELS = {
    "base_url": "host or target_url",
    "tcp_ports": "port_list",
    "udp_port": "port",
}


class FamilyConfig:
    FAMILY = "generic"
    # test type -> attribute names that must be non-empty
    REQUIRED: Dict[TestType, Tuple[str, ...]] = {}

    def validate(self, test_type: TestType):
        for attr in self.REQUIRED.get(test_type, ()):
            value = getattr(self, attr)
            if value is None or (isinstance(value, (list, dict, str)) and not value):
                label = FIELD_LABELS.get(attr, attr)
                raise SpecValidationError(f"{label} required for {test_type.value}")
        self._check(test_type)
        return self

    def _check(self, test_type: TestType):
        """Extra per-type checks beyond presence."""


@dataclass
class DosConfig(FamilyConfig):
    FAMILY = "DoS"
    REQUIRED = {
        TestType.HTTP_SPIKE: ("target_url",),
        TestType.IP_REGION_BLOCKING: ("target_url",),
        TestType.TCP_PORT_REACHABILITY: ("host", "tcp_ports"),
        TestType.UDP_REACHABILITY: ("host", "udp_port"),
        TestType.CONNECTION_FLOOD: ("target_url",),
    }

    target_url: Optional[str] = None
    host: Optional[str] = None
    tcp_ports: List[int] = field(default_factory=list)
    udp_port: Optional[int] = None
    burst_requests: int = 100
    burst_interval_ms: int = 50
    sustained_window_sec: int = 0
    burst_pattern: str = "linear"
    concurrent_connections: Optional[int] = None
    use_vpn: bool = False
    timeout_ms: int = 2000
    udp_payload: str = "PING"
    connect_rate: int = 10
    window_sec: int = 10

    @classmethod
    def from_spec(cls, spec: TestSpec) -> "DosConfig":
        p, t = spec.params, spec.target
        url = _first(p.target_url, t.target_url)
        udp_ports = _first(t.port_list, p.port_list) or []
        return cls(
            target_url=normalize_url(url) if url else None,
            host=t.host,
            tcp_ports=list(_first(p.port_list, t.port_list) or []),
            udp_port=udp_ports[0] if udp_ports else None,
            burst_requests=_default(p.burst_requests, 100),
            burst_interval_ms=_default(p.burst_interval_ms, 50),
            sustained_window_sec=_default(p.sustained_window_sec, 0),
            burst_pattern=_default(p.burst_pattern, "linear"),
            concurrent_connections=p.concurrent_connections,
            use_vpn=bool(p.use_vpn),
            timeout_ms=_default(p.timeout_ms, 2000),
            udp_payload=_default(p.udp_payload, "PING"),
            connect_rate=_default(p.connect_rate, 10),
            window_sec=_default(p.window_sec, 10),
        )

    def _check(self, test_type: TestType):
        if test_type == TestType.HTTP_SPIKE and self.burst_interval_ms < 0:
            raise SpecValidationError("burst_interval_ms cannot be negative")
        if test_type == TestType.TCP_PORT_REACHABILITY and self.timeout_ms <= 0:
            raise SpecValidationError("timeout_ms must be greater than 0")


INJECTION_POINTS = ("query", "body", "header", "path")


@dataclass
class WafConfig(FamilyConfig):
    FAMILY = "WAF"
    REQUIRED = {
        TestType.SQLI_XSS_SMOKE: ("target_url",),
        TestType.REFLECTED_XSS: ("target_url",),
        TestType.PATH_TRAVERSAL_INJECTION_LOG4SHELL: ("target_url",),
        TestType.CUSTOM_RULES: ("target_url",),
        TestType.EDGE_RATE_LIMITING: ("target_url",),
        TestType.OVERSIZED_PAYLOAD: ("target_url",),
    }

    target_url: Optional[str] = None
    payloads: List[str] = field(default_factory=list)
    encoding_mode: Optional[str] = None
    injection_point: str = "query"
    target_params: List[str] = field(default_factory=lambda: ["q"])
    target_paths: List[str] = field(default_factory=list)
    headers_overrides: Dict[str, str] = field(default_factory=dict)
    method_override: str = "GET"
    rps_target: int = 10
    window_sec: int = 10
    fingerprint_mode: str = "none"
    body_size_kb: int = 64
    field_repeats: int = 10

    @classmethod
    def from_spec(cls, spec: TestSpec) -> "WafConfig":
        p, t = spec.params, spec.target
        url = _first(p.target_url, t.target_url)
        return cls(
            target_url=normalize_url(url) if url else None,
            payloads=list(p.payload_list or []),
            encoding_mode=p.encoding_mode,
            injection_point=_default(p.injection_point, "query").lower(),
            target_params=list(p.target_params or []) or ["q"],
            target_paths=list(p.target_paths or []),
            headers_overrides=dict(p.headers_overrides or {}),
            method_override=_default(p.method_override, "GET").upper(),
            rps_target=max(1, _default(p.rps_target, 10)),
            window_sec=max(1, _default(p.window_sec, 10)),
            fingerprint_mode=_default(p.fingerprint_mode, "none"),
            body_size_kb=max(1, _default(p.body_size_kb, 64)),
            field_repeats=max(1, _default(p.field_repeats, 10)),
        )

    def _check(self, test_type: TestType):
        if test_type == TestType.SQLI_XSS_SMOKE and self.injection_point not in INJECTION_POINTS:
            raise SpecValidationError(
                f"injection_point must be one of {', '.join(INJECTION_POINTS)}, got {self.injection_point!r}"
            )


@dataclass
class BotConfig(FamilyConfig):
    FAMILY = "BOT"
    REQUIRED = {
        TestType.USER_AGENT_ANOMALY: ("target_url",),
        TestType.COOKIE_JS_CHALLENGE: ("target_url",),
        TestType.WEB_CRAWLER_SIM: ("target_url",),
        TestType.CLIENT_REPUTATION: ("target_url",),
    }

    target_url: Optional[str] = None
    ua_profiles: Optional[List[str]] = None
    rotate_mode: str = "sequential"
    cookie_policy: str = "enabled"
    js_exec_mode: Optional[str] = None
    crawl_depth: int = 1
    humanization: bool = False
    ip_rotation_sec: int = 5

    @classmethod
    def from_spec(cls, spec: TestSpec) -> "BotConfig":
        p, t = spec.params, spec.target
        url = _first(p.target_url, t.target_url)
        return cls(
            target_url=normalize_url(url) if url else None,
            ua_profiles=list(p.ua_profiles) if p.ua_profiles is not None else None,
            rotate_mode=_default(p.rotate_mode, "sequential").lower(),
            cookie_policy=_default(p.cookie_policy, "enabled").lower(),
            js_exec_mode=p.js_exec_mode,
            crawl_depth=_default(p.crawl_depth, 1),
            humanization=bool(p.humanization),
            ip_rotation_sec=max(1, _default(p.ip_rotation_sec, 5)),
        )


AUTH_MODES = ("header", "cookie", "both", "query")


@dataclass
class ApiConfig(FamilyConfig):
    FAMILY = "API"
    REQUIRED = {
        TestType.CONTEXT_AWARE_RATE_LIMIT: ("base_url", "endpoint_list"),
        TestType.AUTHENTICATION_TEST: ("base_url", "request_endpoints"),
        TestType.BRUTE_FORCE: ("target_url", "password_list"),
        TestType.ENUMERATION_IDOR: ("base_url", "enum_template"),
        TestType.SCHEMA_INPUT_VALIDATION: ("target_url",),
        TestType.BUSINESS_LOGIC_ABUSE: ("base_url", "workflow_steps"),
    }

    target_url: Optional[str] = None
    base_url: Optional[str] = None
    endpoint_list: List[str] = field(default_factory=list)
    parallel_users: int = 1
    rps_target: int = 10
    window_sec: int = 10
    token_list: List[str] = field(default_factory=list)
    request_pattern: str = "steady"
    tokens: Dict[str, str] = field(default_factory=dict)
    auth_header_mode: str = "header"
    request_endpoints: List[str] = field(default_factory=list)
    username: str = "user@example.com"
    password_list: List[str] = field(default_factory=list)
    attempts_per_minute: int = 30
    concurrency: int = 1
    enum_template: Optional[str] = None
    id_start: int = 1
    id_end: int = 10
    step_size: int = 1
    auth_tokens: List[str] = field(default_factory=list)
    fuzz_cases: List[str] = field(default_factory=list)
    oversized_field_length: int = 4096
    content_type: str = "application/json"
    special_chars: List[str] = field(default_factory=list)
    replay_count: int = 1
    request_delay_ms: int = 150
    workflow_steps: List[WorkflowStep] = field(default_factory=list)

    @classmethod
    def from_spec(cls, spec: TestSpec) -> "ApiConfig":
        p, t = spec.params, spec.target
        url = _first(p.target_url, t.target_url)
        target_url = normalize_url(url) if url else None
        base_url = target_url or (normalize_url(t.host) if t.host else None)
        endpoints = list(_first(p.endpoint_list, t.endpoint_list) or [])
        id_range = list(p.id_range) if p.id_range else [1, 10]
        start = int(id_range[0])
        end = int(id_range[1]) if len(id_range) > 1 else start
        return cls(
            target_url=target_url,
            base_url=base_url,
            endpoint_list=endpoints,
            parallel_users=max(1, _default(p.parallel_users, 1)),
            rps_target=max(1, _default(p.rps_target, 10)),
            window_sec=max(1, _default(p.window_sec, 10)),
            token_list=list(p.token_list or []),
            request_pattern=_default(p.request_pattern, "steady").lower(),
            tokens=dict(p.tokens or {}),
            auth_header_mode=_default(p.auth_header_mode, "header").lower(),
            request_endpoints=list(p.request_endpoints or []) or endpoints,
            username=_default(p.username, "user@example.com"),
            password_list=list(p.password_list or []),
            attempts_per_minute=max(1, _default(p.attempts_per_minute, 30)),
            concurrency=max(1, _default(p.concurrency, 1)),
            enum_template=p.enum_template,
            id_start=start,
            id_end=end,
            step_size=int(_default(p.step_size, 1)),
            auth_tokens=list(p.auth_tokens or []),
            fuzz_cases=list(p.fuzz_cases or []),
            oversized_field_length=_default(p.oversized_field_length, 4096),
            content_type=(p.content_types or ["application/json"])[0],
            special_chars=list(p.special_chars or []),
            replay_count=max(1, _default(p.replay_count, 1)),
            request_delay_ms=max(0, _default(p.request_delay_ms, 150)),
            workflow_steps=list(p.workflow_steps or []),
        )

    def _check(self, test_type: TestType):
        if test_type == TestType.ENUMERATION_IDOR and self.step_size < 1:
            raise SpecValidationError("step_size must be at least 1")
        if test_type == TestType.AUTHENTICATION_TEST and self.auth_header_mode not in AUTH_MODES:
            raise SpecValidationError(
                f"auth_header_mode must be one of {', '.join(AUTH_MODES)}, got {self.auth_header_mode!r}"
            )


FAMILY_CONFIGS = {
    TestCategory.DDOS_PROTECTION: DosConfig,
    TestCategory.WEB_PROTECTION: WafConfig,
    TestCategory.BOT_MANAGEMENT: BotConfig,
    TestCategory.API_PROTECTION: ApiConfig,
}
