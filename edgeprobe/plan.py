import json
import logging
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Dict, Any, List, Optional, Union

import yaml

from .models import PlanFormatError

logger = logging.getLogger("edgeprobe.plan")


class TestCategory(str, Enum):
    __test__ = False

    DDOS_PROTECTION = "DDOS_PROTECTION"
    WEB_PROTECTION = "WEB_PROTECTION"
    BOT_MANAGEMENT = "BOT_MANAGEMENT"
    API_PROTECTION = "API_PROTECTION"


class TestType(str, Enum):
    __test__ = False

    # DoS / network protection
    HTTP_SPIKE = "HTTP_SPIKE"
    IP_REGION_BLOCKING = "IP_REGION_BLOCKING"
    TCP_PORT_REACHABILITY = "TCP_PORT_REACHABILITY"
    UDP_REACHABILITY = "UDP_REACHABILITY"
    CONNECTION_FLOOD = "CONNECTION_FLOOD"

    # Web protection (WAF & rules)
    SQLI_XSS_SMOKE = "SQLI_XSS_SMOKE"
    REFLECTED_XSS = "REFLECTED_XSS"
    PATH_TRAVERSAL_INJECTION_LOG4SHELL = "PATH_TRAVERSAL_INJECTION_LOG4SHELL"
    CUSTOM_RULES = "CUSTOM_RULES"
    EDGE_RATE_LIMITING = "EDGE_RATE_LIMITING"
    OVERSIZED_PAYLOAD = "OVERSIZED_PAYLOAD"

    # Bot management
    USER_AGENT_ANOMALY = "USER_AGENT_ANOMALY"
    COOKIE_JS_CHALLENGE = "COOKIE_JS_CHALLENGE"
    WEB_CRAWLER_SIM = "WEB_CRAWLER_SIM"
    CLIENT_REPUTATION = "CLIENT_REPUTATION"

    # API protection
    CONTEXT_AWARE_RATE_LIMIT = "CONTEXT_AWARE_RATE_LIMIT"
    AUTHENTICATION_TEST = "AUTHENTICATION_TEST"
    BRUTE_FORCE = "BRUTE_FORCE"
    ENUMERATION_IDOR = "ENUMERATION_IDOR"
    SCHEMA_INPUT_VALIDATION = "SCHEMA_INPUT_VALIDATION"
    BUSINESS_LOGIC_ABUSE = "BUSINESS_LOGIC_ABUSE"


@dataclass(frozen=True)
class Target:
    target_url: Optional[str] = None
    host: Optional[str] = None
    port_list: Optional[List[int]] = None
    endpoint_list: Optional[List[str]] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Target":
        data = data or {}
        return cls(
            target_url=_pick(data, "targetUrl", "target_url"),
            host=_pick(data, "host"),
            port_list=_pick(data, "portList", "port_list"),
            endpoint_list=_pick(data, "endpointList", "endpoint_list"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "targetUrl": self.target_url,
            "host": self.host,
            "portList": self.port_list,
            "endpointList": self.endpoint_list,
        })


@dataclass(frozen=True)
class WorkflowStep:
    method: str
    endpoint: str
    headers: Optional[Dict[str, str]] = None
    body_template: Optional[str] = None
    use_token_index: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkflowStep":
        if not isinstance(data, dict) or "method" not in data or "endpoint" not in data:
            raise PlanFormatError(f"workflow step needs 'method' and 'endpoint': {data!r}")
        return cls(
            method=str(data["method"]),
            endpoint=str(data["endpoint"]),
            headers=data.get("headers"),
            body_template=_pick(data, "bodyTemplate", "body_template"),
            use_token_index=_pick(data, "useTokenIndex", "use_token_index"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "method": self.method,
            "endpoint": self.endpoint,
            "headers": self.headers,
            "bodyTemplate": self.body_template,
            "useTokenIndex": self.use_token_index,
        })


@dataclass(frozen=True)
class Params:
    """Loosely-typed parameter bag. Every field is optional; probes resolve defaults."""
    # HTTP spike
    burst_requests: Optional[int] = None
    burst_interval_ms: Optional[int] = None
    sustained_window_sec: Optional[int] = None
    burst_pattern: Optional[str] = None
    target_url: Optional[str] = None

    # IP/region blocking
    use_vpn: Optional[bool] = None
    ip_rotation_sec: Optional[int] = None

    # TCP/UDP
    timeout_ms: Optional[int] = None
    port_list: Optional[List[int]] = None
    udp_payload: Optional[str] = None

    # Connection flood
    concurrent_connections: Optional[int] = None
    connect_rate: Optional[int] = None

    # WAF payloads/rules
    payload_list: Optional[List[str]] = None
    encoding_mode: Optional[str] = None
    injection_point: Optional[str] = None
    target_params: Optional[List[str]] = None
    target_paths: Optional[List[str]] = None
    headers_overrides: Optional[Dict[str, str]] = None
    method_override: Optional[str] = None
    rps_target: Optional[int] = None
    window_sec: Optional[int] = None
    fingerprint_mode: Optional[str] = None
    param_length: Optional[int] = None
    body_size_kb: Optional[int] = None
    field_repeats: Optional[int] = None

    # Bot management
    ua_profiles: Optional[List[str]] = None
    rotate_mode: Optional[str] = None
    cookie_policy: Optional[str] = None
    js_exec_mode: Optional[str] = None
    crawl_depth: Optional[int] = None
    humanization: Optional[bool] = None

    # API protection
    token_list: Optional[List[str]] = None
    request_pattern: Optional[str] = None
    parallel_users: Optional[int] = None
    endpoint_list: Optional[List[str]] = None
    tokens: Optional[Dict[str, str]] = None
    auth_header_mode: Optional[str] = None
    request_endpoints: Optional[List[str]] = None
    username: Optional[str] = None
    password_list: Optional[List[str]] = None
    attempts_per_minute: Optional[int] = None
    concurrency: Optional[int] = None
    enum_template: Optional[str] = None
    id_range: Optional[List[int]] = None
    step_size: Optional[int] = None
    auth_tokens: Optional[List[str]] = None
    fuzz_cases: Optional[List[str]] = None
    oversized_field_length: Optional[int] = None
    content_types: Optional[List[str]] = None
    special_chars: Optional[List[str]] = None
    replay_count: Optional[int] = None
    pagination_pattern: Optional[str] = None
    request_delay_ms: Optional[int] = None
    workflow_steps: Optional[List[WorkflowStep]] = None
    race_condition_test: Optional[bool] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Params":
        data = dict(data or {})
        known = {f.name for f in fields(cls)}
        unknown = sorted(k for k in data if k not in known)
        if unknown:
            logger.debug("Ignoring unknown params: %s", ", ".join(unknown))
        values = {k: v for k, v in data.items() if k in known}
        steps = values.get("workflow_steps")
        if steps is not None:
            values["workflow_steps"] = [WorkflowStep.from_dict(s) for s in steps]
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if f.name == "workflow_steps":
                value = [s.to_dict() for s in value]
            out[f.name] = value
        return out


@dataclass(frozen=True)
class TestSpec:
    __test__ = False

    category: TestCategory
    type: TestType
    target: Target = field(default_factory=Target)
    params: Params = field(default_factory=Params)
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestSpec":
        if not isinstance(data, dict):
            raise PlanFormatError(f"test entry must be a mapping, got {type(data).__name__}")
        for key in ("target", "params"):
            value = data.get(key)
            if value is not None and not isinstance(value, dict):
                raise PlanFormatError(f"test '{key}' must be a mapping, got {type(value).__name__}")
        return cls(
            category=_enum(TestCategory, data.get("category"), "category"),
            type=_enum(TestType, data.get("type"), "type"),
            target=Target.from_dict(data.get("target")),
            params=Params.from_dict(data.get("params")),
            enabled=bool(data.get("enabled", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "type": self.type.value,
            "target": self.target.to_dict(),
            "params": self.params.to_dict(),
            "enabled": self.enabled,
        }


@dataclass(frozen=True)
class TestPlan:
    __test__ = False

    name: str
    tests: List[TestSpec] = field(default_factory=list)
    description: Optional[str] = None

    @property
    def enabled_tests(self) -> List[TestSpec]:
        return [t for t in self.tests if t.enabled]

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "name": self.name,
            "description": self.description,
            "tests": [t.to_dict() for t in self.tests],
        })


def parse_plan(data: Any) -> TestPlan:
    """Builds a TestPlan from an already-decoded JSON/YAML document."""
    if not isinstance(data, dict):
        raise PlanFormatError("plan document must be a mapping")
    if "name" not in data:
        raise PlanFormatError("plan is missing 'name'")
    tests = data.get("tests")
    if not isinstance(tests, list):
        raise PlanFormatError("plan 'tests' must be a list")
    return TestPlan(
        name=str(data["name"]),
        description=data.get("description"),
        tests=[TestSpec.from_dict(t) for t in tests],
    )


def loads_plan(text: str) -> TestPlan:
    # JSON first: PyYAML (YAML 1.1) rejects tab indentation and reads 1e3 as a string
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise PlanFormatError(f"cannot parse plan: {e}") from e
    return parse_plan(data)


def load_plan(path: str) -> TestPlan:
    try:
        with open(path, "r", encoding="utf-8") as f:
            text = f.read()
    except OSError as e:
        raise PlanFormatError(f"cannot read plan {path}: {e}") from e
    plan = loads_plan(text)
    logger.info("Loaded plan '%s' from %s (%d tests)", plan.name, path, len(plan.tests))
    return plan


def dumps_plan(plan: TestPlan) -> str:
    return json.dumps(plan.to_dict(), indent=2)


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if data.get(k) is not None:
            return data[k]
    return None


def _enum(enum_cls, value: Union[str, None], name: str):
    try:
        return enum_cls(str(value).upper())
    except ValueError:
        raise PlanFormatError(f"unknown {name}: {value!r}") from None


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}
