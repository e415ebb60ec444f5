import json
import os
import sys
import unittest
from urllib.parse import parse_qs

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from edgeprobe.core.registry import default_registry
from edgeprobe.probes.waf import place_payload
import edgeprobe.probes  # noqa: F401
from target_server import TargetServer, live_context, make_spec, mock_context

SQLI = "' OR 1=1--"


def waf_spec(test_type, url, **params):
    return make_spec("WEB_PROTECTION", test_type, target={"targetUrl": url}, params=params)


class TestInjectionPlacement(unittest.TestCase):
    def test_query_placement_across_params(self):
        inj = place_payload("http://t/s", "query", "a+b", "urlencode", ["q", "id"])
        self.assertEqual(inj.url, "http://t/s?q=a+b&id=a+b")
        self.assertEqual(inj.blocked_codes, (403, 406))

    def test_raw_payload_in_query_is_encoded_once(self):
        inj = place_payload("http://t/s", "query", SQLI, "raw")
        self.assertEqual(inj.url, "http://t/s?q=%27+OR+1%3D1--")

    def test_body_placement(self):
        inj = place_payload("http://t/login", "body", "<x>", "raw")
        self.assertEqual(inj.method, "POST")
        self.assertEqual(inj.body, "q=%3Cx%3E")
        self.assertEqual(inj.content_type, "application/x-www-form-urlencoded")
        self.assertEqual(inj.blocked_codes, (403,))

    def test_header_and_path_placement(self):
        header = place_payload("http://t/", "header", "<x>", "raw")
        self.assertEqual(header.headers, {"X-Injection": "<x>"})
        self.assertEqual(header.blocked_codes, (403, 406))
        path = place_payload("http://t/", "path", "../etc/passwd", "raw")
        self.assertEqual(path.url, "http://t/..%2Fetc%2Fpasswd")
        self.assertEqual(path.blocked_codes, (403,))


class TestSqliXssSmoke(unittest.TestCase):
    def test_urlencoded_query_payload(self):
        with TargetServer() as srv:
            ctx, sink = live_context()
            spec = waf_spec("SQLI_XSS_SMOKE", srv.url + "/search", payload_list=[SQLI],
                            encoding_mode="urlencode", injection_point="query", target_params=["q"])
            default_registry.dispatch(spec, ctx)
            ctx.client.close()

        self.assertEqual(len(sink.requests), 1)
        log = sink.requests[0]
        self.assertIn("q=%27+OR+1%3D1--", log.url)
        self.assertEqual(srv.query(srv.requests[0])["q"], [SQLI])

    def test_blocked_heuristic(self):
        with TargetServer(routes={"/search": 406}) as srv:
            ctx, sink = live_context()
            spec = waf_spec("SQLI_XSS_SMOKE", srv.url + "/search", payload_list=["a", "b"])
            default_registry.dispatch(spec, ctx)
            ctx.client.close()
        self.assertTrue(all(log.blocked for log in sink.requests))
        self.assertEqual(sink.summaries[-1].totals["blocked"], 2)

    def test_body_injection_posts_form(self):
        with TargetServer() as srv:
            ctx, sink = live_context()
            spec = waf_spec("SQLI_XSS_SMOKE", srv.url + "/login", payload_list=[SQLI],
                            injection_point="body", target_params=["user"])
            default_registry.dispatch(spec, ctx)
            ctx.client.close()
        req = srv.requests[0]
        self.assertEqual(req.method, "POST")
        self.assertEqual(parse_qs(req.body.decode()), {"user": [SQLI]})

    def test_empty_payload_list(self):
        ctx, sink, client = mock_context()
        default_registry.dispatch(waf_spec("SQLI_XSS_SMOKE", "http://t/"), ctx)
        client.send.assert_not_called()
        self.assertEqual(sink.summaries[-1].totals["total"], 0)


class TestReflectedXss(unittest.TestCase):
    def test_defaults_to_urlencode_and_applies_overrides(self):
        ctx, sink, client = mock_context(status=403)
        spec = waf_spec("REFLECTED_XSS", "http://t/s", payload_list=["<script>"],
                        headers_overrides={"X-Forwarded-Host": "evil"})
        default_registry.dispatch(spec, ctx)
        args, kwargs = client.send.call_args
        self.assertEqual(args, ("GET", "http://t/s?q=%3Cscript%3E"))
        self.assertEqual(kwargs["headers"], {"X-Forwarded-Host": "evil"})
        self.assertTrue(sink.requests[0].blocked)


class TestTraversal(unittest.TestCase):
    def test_templates_times_payloads(self):
        ctx, sink, client = mock_context()
        spec = waf_spec("PATH_TRAVERSAL_INJECTION_LOG4SHELL", "http://t",
                        target_paths=["/files/{payload}", "/img?f={payload}"],
                        payload_list=["../a", "${jndi}"])
        default_registry.dispatch(spec, ctx)
        urls = [c.args[1] for c in client.send.call_args_list]
        self.assertEqual(urls, [
            "http://t/files/..%2Fa",
            "http://t/files/%24%7Bjndi%7D",
            "http://t/img?f=..%2Fa",
            "http://t/img?f=%24%7Bjndi%7D",
        ])
        ctx.sleep.assert_called_with(80)

    def test_without_templates_uses_path_injection(self):
        ctx, sink, client = mock_context()
        spec = waf_spec("PATH_TRAVERSAL_INJECTION_LOG4SHELL", "http://t/", payload_list=["x"])
        default_registry.dispatch(spec, ctx)
        self.assertEqual(client.send.call_args.args[1], "http://t/x")


class TestCustomRules(unittest.TestCase):
    def test_single_request_with_override(self):
        with TargetServer(routes={"/admin": 403}) as srv:
            ctx, sink = live_context()
            spec = waf_spec("CUSTOM_RULES", srv.url + "/admin", method_override="delete",
                            headers_overrides={"X-Rule": "r1"})
            default_registry.dispatch(spec, ctx)
            ctx.client.close()
        self.assertEqual(len(srv.requests), 1)
        self.assertEqual(srv.requests[0].method, "DELETE")
        self.assertEqual(srv.requests[0].headers["X-Rule"], "r1")
        self.assertTrue(sink.requests[0].blocked)


class TestEdgeRateLimit(unittest.TestCase):
    def test_fires_rps_times_window(self):
        with TargetServer(default_status=429) as srv:
            ctx, sink = live_context()
            spec = waf_spec("EDGE_RATE_LIMITING", srv.url + "/", rps_target=3, window_sec=2,
                            fingerprint_mode="ja3")
            default_registry.dispatch(spec, ctx)
            ctx.client.close()
        self.assertEqual(len(sink.requests), 6)
        self.assertTrue(all(log.blocked for log in sink.requests))
        self.assertEqual(srv.requests[0].headers["X-Fingerprint"], "ja3")
        summary = sink.summaries[-1]
        self.assertEqual((summary.totals["rps"], summary.totals["windowSec"], summary.totals["total"]), (3, 2, 6))


class TestOversizedPayload(unittest.TestCase):
    def test_posts_large_json(self):
        with TargetServer(default_status=413) as srv:
            ctx, sink = live_context()
            spec = waf_spec("OVERSIZED_PAYLOAD", srv.url + "/upload", body_size_kb=4, field_repeats=2)
            default_registry.dispatch(spec, ctx)
            ctx.client.close()
        req = srv.requests[0]
        self.assertEqual(req.method, "POST")
        self.assertEqual(req.headers["Content-Type"], "application/json")
        body = json.loads(req.body)
        self.assertEqual(len(body["field0"]), 2048)
        self.assertTrue(sink.requests[0].blocked)


if __name__ == '__main__':
    unittest.main()
