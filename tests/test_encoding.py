import json
import unittest
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from edgeprobe.encoding import (
    encode_payload, decode_payload, append_query, form_body, build_large_json,
    build_oversized_field, normalize_url, build_url, MAX_FIELD_CHARS,
)


class TestPayloadEncoding(unittest.TestCase):
    def test_raw_and_unknown_modes_pass_through(self):
        self.assertEqual(encode_payload("<a b>", "raw"), "<a b>")
        self.assertEqual(encode_payload("<a b>", None), "<a b>")
        self.assertEqual(encode_payload("<a b>", "rot13"), "<a b>")

    def test_urlencode_is_form_style(self):
        self.assertEqual(encode_payload("' OR 1=1--", "urlencode"), "%27+OR+1%3D1--")
        self.assertEqual(encode_payload("a/b", "URLENCODE"), "a%2Fb")

    def test_base64_recovers_original_bytes(self):
        payload = "<script>alert('é')</script>"
        encoded = encode_payload(payload, "base64")
        self.assertNotIn("\n", encoded)
        self.assertEqual(decode_payload(encoded, "base64"), payload)

    def test_urlencode_recovers_original_string(self):
        payload = "${jndi:ldap://x.example/a} & ?=+"
        self.assertEqual(decode_payload(encode_payload(payload, "urlencode"), "urlencode"), payload)

    def test_case_mix_preserves_length(self):
        out = encode_payload("select", "case-mix")
        self.assertEqual(out, "sElEcT")
        self.assertEqual(len(out), len("select"))

    def test_case_double_keeps_legacy_doubling(self):
        self.assertEqual(encode_payload("ab", "case-double"), "aAbB")

    def test_case_modes_cannot_be_decoded(self):
        with self.assertRaises(ValueError):
            decode_payload("sElEcT", "case-mix")


class TestQueryAndBodies(unittest.TestCase):
    def test_append_query_picks_separator(self):
        self.assertEqual(append_query("http://h/p", {"q": "a b"}), "http://h/p?q=a+b")
        self.assertEqual(append_query("http://h/p?x=1", {"q": "1"}), "http://h/p?x=1&q=1")
        self.assertEqual(append_query("http://h/p", {}), "http://h/p")

    def test_pre_encoded_values_are_not_encoded_twice(self):
        url = append_query("http://h/", {"q": "%27+OR"}, pre_encoded=True)
        self.assertEqual(url, "http://h/?q=%27+OR")

    def test_form_body(self):
        self.assertEqual(form_body({"username": "a@b.c", "password": "p w"}),
                         "username=a%40b.c&password=p+w")

    def test_large_json_splits_size_across_fields(self):
        body = json.loads(build_large_json(4, 8))
        self.assertEqual(sorted(body), ["field0", "field1", "field2", "field3"])
        self.assertEqual(len(body["field0"]), 2048)

    def test_large_json_caps_each_field(self):
        body = json.loads(build_large_json(1, 1024))
        self.assertEqual(len(body["field0"]), MAX_FIELD_CHARS)

    def test_oversized_field(self):
        self.assertEqual(json.loads(build_oversized_field(5)), {"field": "ZZZZZ"})


class TestUrlHelpers(unittest.TestCase):
    def test_normalize_url_adds_scheme(self):
        self.assertEqual(normalize_url("example.com/x"), "https://example.com/x")
        self.assertEqual(normalize_url("http://example.com"), "http://example.com")

    def test_build_url(self):
        self.assertEqual(build_url("https://h/", "/api/1"), "https://h/api/1")
        self.assertEqual(build_url("https://h", "http://other/x"), "http://other/x")


if __name__ == '__main__':
    unittest.main()
