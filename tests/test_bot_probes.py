import os
import sys
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from edgeprobe.core.registry import default_registry
from edgeprobe.crawler import BOT_USER_AGENT, Frontier
from edgeprobe.probes.bot import ANOMALY_USER_AGENTS, random_ip_for_region
import edgeprobe.probes  # noqa: F401
from target_server import TargetServer, live_context, make_spec, mock_context


def bot_spec(test_type, url="http://t/", **params):
    return make_spec("BOT_MANAGEMENT", test_type, target={"targetUrl": url}, params=params)


class TestUserAgentAnomaly(unittest.TestCase):
    def test_default_agents_in_order(self):
        ctx, sink, client = mock_context(status=403)
        default_registry.dispatch(bot_spec("USER_AGENT_ANOMALY"), ctx)
        sent = [c.kwargs["headers"]["User-Agent"] for c in client.send.call_args_list]
        self.assertEqual(sent, ANOMALY_USER_AGENTS)
        self.assertEqual([log.metadata["ua"] for log in sink.requests], ANOMALY_USER_AGENTS)
        self.assertTrue(all(log.blocked for log in sink.requests))
        ctx.sleep.assert_called_with(100)

    def test_humanized_delay_range(self):
        ctx, sink, client = mock_context()
        default_registry.dispatch(bot_spec("USER_AGENT_ANOMALY", humanization=True), ctx)
        for call in ctx.sleep.call_args_list:
            self.assertTrue(100 <= call.args[0] <= 400)

    def test_random_rotation_keeps_the_same_agents(self):
        ctx, sink, client = mock_context()
        agents = ["a", "b", "c", "d"]
        default_registry.dispatch(bot_spec("USER_AGENT_ANOMALY", ua_profiles=agents, rotate_mode="random"), ctx)
        sent = [c.kwargs["headers"]["User-Agent"] for c in client.send.call_args_list]
        self.assertEqual(sorted(sent), agents)


class TestCookieChallenge(unittest.TestCase):
    def _run(self, policy):
        with TargetServer(set_cookie="__challenge=ok; Path=/") as srv:
            ctx, sink = live_context()
            spec = bot_spec("COOKIE_JS_CHALLENGE", srv.url + "/", cookie_policy=policy,
                            ua_profiles=["ua-1", "ua-2"])
            with patch.object(ctx, "sleep", return_value=True):
                default_registry.dispatch(spec, ctx)
            ctx.client.close()
        return srv, sink

    def test_enabled_policy_replays_challenge_cookie(self):
        srv, sink = self._run("enabled")
        self.assertIsNone(srv.requests[0].headers.get("Cookie"))
        self.assertEqual(srv.requests[1].headers.get("Cookie"), "__challenge=ok")
        self.assertTrue(sink.summaries[-1].totals["cookies"])

    def test_disabled_policy_sends_no_cookies(self):
        srv, sink = self._run("disabled")
        self.assertIsNone(srv.requests[1].headers.get("Cookie"))

    def test_blocked_on_401(self):
        ctx, sink, client = mock_context(status=401)
        default_registry.dispatch(bot_spec("COOKIE_JS_CHALLENGE"), ctx)
        self.assertEqual(len(sink.requests), 3)
        self.assertTrue(all(log.blocked for log in sink.requests))

    def test_js_exec_mode_is_reported(self):
        ctx, sink, client = mock_context()
        default_registry.dispatch(bot_spec("COOKIE_JS_CHALLENGE", js_exec_mode="headless"), ctx)
        self.assertIn("js_exec_mode 'headless' noted; challenges are replayed without running scripts",
                      [e.message for e in sink.infos])
        self.assertEqual(len(sink.requests), 3)


class TestCrawler(unittest.TestCase):
    def test_only_seed_is_fetched(self):
        ctx, sink, client = mock_context()
        default_registry.dispatch(bot_spec("WEB_CRAWLER_SIM", crawl_depth=9), ctx)
        self.assertEqual(client.send.call_count, 1)
        self.assertEqual(client.send.call_args.kwargs["headers"], {"User-Agent": BOT_USER_AGENT})
        self.assertEqual(sink.summaries[-1].totals, {"total": 1, "depth": 2})

    def test_frontier_depth_and_dedup(self):
        graph = {
            "/": ["/a", "/b", "/"],
            "/a": ["/b", "/c"],
            "/b": ["/d"],
            "/c": ["/e"],
        }
        fetched = []
        frontier = Frontier("/", max_depth=2, discover=lambda u: graph.get(u, []))
        frontier.walk(fetched.append)
        self.assertEqual(fetched, ["/", "/a", "/b"])

        fetched = []
        Frontier("/", max_depth=3, discover=lambda u: graph.get(u, [])).walk(fetched.append)
        self.assertEqual(fetched, ["/", "/a", "/b", "/c", "/d"])

    def test_frontier_breadth_limit(self):
        fetched = []
        links = [f"/p{i}" for i in range(10)]
        Frontier("/", 2, max_breadth=3, discover=lambda u: links if u == "/" else []).walk(fetched.append)
        self.assertEqual(fetched, ["/", "/p0", "/p1", "/p2"])


class TestClientReputation(unittest.TestCase):
    def test_regions_and_rotation(self):
        ctx, sink, client = mock_context()
        default_registry.dispatch(bot_spec("CLIENT_REPUTATION", ip_rotation_sec=2), ctx)
        self.assertEqual([log.metadata["region"] for log in sink.requests], ["SG", "US", "EU"])
        ips = [c.kwargs["headers"]["X-Forwarded-For"] for c in client.send.call_args_list]
        self.assertEqual([ip.split(".")[0] for ip in ips], ["27", "3", "45"])
        ctx.sleep.assert_called_with(2000)

    def test_random_ip_octets(self):
        for _ in range(50):
            octets = [int(o) for o in random_ip_for_region("mars").split(".")]
            self.assertEqual(octets[0], 52)
            self.assertTrue(all(1 <= o <= 253 for o in octets[1:]))


if __name__ == '__main__':
    unittest.main()
