"""
Bot-management probes. These simulate client identities; none of them
execute JavaScript or change the real egress IP.
"""
import random
import logging

from ..core.context import ProbeContext
from ..core.params import BotConfig
from ..core.registry import probe
from ..crawler import BOT_USER_AGENT, Frontier
from ..plan import TestCategory, TestType

logger = logging.getLogger("edgeprobe.probes.bot")

ANOMALY_USER_AGENTS = ["curl/7.88.0", "python-requests/2.28.1", "Googlebot/2.1"]
CHALLENGE_USER_AGENTS = ["Mozilla/5.0 (Windows NT 10.0; Win64; x64)", "curl/7.88.0", "python-requests/2.28.1"]

REPUTATION_REGIONS = ("SG", "US", "EU")
REGION_PREFIXES = {"SG": 27, "US": 3, "EU": 45}
FALLBACK_PREFIX = 52


def random_ip_for_region(region: str, rng=random) -> str:
    prefix = REGION_PREFIXES.get(region.upper(), FALLBACK_PREFIX)
    return ".".join([str(prefix)] + [str(rng.randint(1, 253)) for _ in range(3)])


def _ordered_agents(cfg: BotConfig, defaults):
    agents = list(cfg.ua_profiles) if cfg.ua_profiles is not None else list(defaults)
    if cfg.rotate_mode == "random":
        random.shuffle(agents)
    return agents


def _humanized(cfg: BotConfig, fixed_ms: int, low: int = 100, high: int = 400) -> int:
    return random.randint(low, high) if cfg.humanization else fixed_ms


@probe(TestCategory.BOT_MANAGEMENT, TestType.USER_AGENT_ANOMALY)
def user_agent_anomaly(ctx: ProbeContext, cfg: BotConfig):
    total = blocked = 0
    for ua in _ordered_agents(cfg, ANOMALY_USER_AGENTS):
        outcome = ctx.client.send("GET", cfg.target_url, headers={"User-Agent": ua})
        log = ctx.record("GET", cfg.target_url, outcome, blocked_codes=(403,), metadata={"ua": ua})
        total += 1
        blocked += log.blocked
        if not ctx.sleep(_humanized(cfg, 100)):
            break
    ctx.summary("User-Agent anomaly done", total=total, blocked=blocked)


@probe(TestCategory.BOT_MANAGEMENT, TestType.COOKIE_JS_CHALLENGE)
def cookie_js_challenge(ctx: ProbeContext, cfg: BotConfig):
    """
    Replays the UA list with a cookie jar (``cookie_policy: enabled``) so a
    challenge cookie set on the first answer is presented on later ones.
    No JavaScript is executed.
    """
    if cfg.js_exec_mode:
        ctx.info(f"js_exec_mode '{cfg.js_exec_mode}' noted; challenges are replayed without running scripts")
    use_jar = cfg.cookie_policy == "enabled"
    client = ctx.client.with_cookie_jar() if use_jar else ctx.client
    total = blocked = 0
    try:
        for ua in _ordered_agents(cfg, CHALLENGE_USER_AGENTS):
            outcome = client.send("GET", cfg.target_url, headers={"User-Agent": ua})
            log = ctx.record("GET", cfg.target_url, outcome, blocked_codes=(403, 401), metadata={"ua": ua})
            total += 1
            blocked += log.blocked
            if not ctx.sleep(_humanized(cfg, 80)):
                break
    finally:
        if client is not ctx.client:
            client.close()
    ctx.summary("Cookie/JS challenge done", total=total, blocked=blocked, cookies=use_jar)


@probe(TestCategory.BOT_MANAGEMENT, TestType.WEB_CRAWLER_SIM)
def web_crawler_sim(ctx: ProbeContext, cfg: BotConfig):
    """
    Breadth-first walk from the seed URL with a crawler User-Agent. Depth is
    clamped to [1, crawl_depth_cap]. Link discovery is a stub, so only the
    seed is ever fetched.
    """
    depth = max(1, min(cfg.crawl_depth, ctx.config.crawl_depth_cap))
    frontier = Frontier(cfg.target_url, depth, ctx.config.crawl_breadth)

    def fetch(url: str):
        if ctx.cancelled:
            return
        outcome = ctx.client.send("GET", url, headers={"User-Agent": BOT_USER_AGENT})
        ctx.record("GET", url, outcome, blocked_codes=(403,))
        if cfg.humanization:
            ctx.sleep(random.randint(150, 600))

    fetched = frontier.walk(fetch)
    ctx.summary("Web crawler simulation done", total=fetched, depth=depth)


@probe(TestCategory.BOT_MANAGEMENT, TestType.CLIENT_REPUTATION)
def client_reputation(ctx: ProbeContext, cfg: BotConfig):
    """One GET per region with a spoofed X-Forwarded-For, ``ip_rotation_sec`` apart."""
    total = blocked = 0
    for region in REPUTATION_REGIONS:
        headers = {"X-Forwarded-For": random_ip_for_region(region)}
        outcome = ctx.client.send("GET", cfg.target_url, headers=headers)
        log = ctx.record("GET", cfg.target_url, outcome, blocked_codes=(403,), metadata={"region": region})
        total += 1
        blocked += log.blocked
        if not ctx.sleep(cfg.ip_rotation_sec * 1000):
            break
    ctx.summary("Client reputation done", total=total, blocked=blocked)
