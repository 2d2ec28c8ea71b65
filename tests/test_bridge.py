"""Tests for the browser bridge client."""

import unittest
from unittest import mock

import requests

from streamtally.bridge import BridgeClient, _parse_cookie_str


class TestBridgeClient(unittest.TestCase):
    """Verify credential parsing and navigation requests."""

    def setUp(self):
        self.session = mock.Mock()
        self.client = BridgeClient("http://localhost:3001", session=self.session)

    def test_get_auth_headers(self):
        self.session.post.return_value.json.return_value = {
            "success": True,
            "headers": {
                "cookieHeader": "a=1; b=2",
                "cookies": {"a": "1", "b": "2"},
                "headers": {"Cookie": "a=1; b=2", "Origin": "https://www.whatnot.com"},
            },
        }
        auth = self.client.get_auth_headers()
        self.assertEqual(auth.cookie_header, "a=1; b=2")
        self.assertEqual(auth.cookies, {"a": "1", "b": "2"})
        self.assertEqual(auth.headers["Origin"], "https://www.whatnot.com")
        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["json"], {"action": "get-auth-headers"})

    def test_cookies_parsed_from_header(self):
        self.session.post.return_value.json.return_value = {"headers": {"cookieHeader": "sid=xyz; theme=dark"}}
        self.assertEqual(self.client.get_auth_headers().cookies, {"sid": "xyz", "theme": "dark"})

    def test_navigate(self):
        self.session.post.return_value = mock.Mock(status_code=200)
        self.session.post.return_value.json.return_value = {"success": True}
        self.assertTrue(self.client.navigate("https://www.whatnot.com/dashboard/live/abc"))
        _, kwargs = self.session.post.call_args
        self.assertEqual(kwargs["json"]["action"], "scrape-url")

    def test_navigate_failures(self):
        self.session.post.return_value = mock.Mock(status_code=500)
        self.assertFalse(self.client.navigate("https://x.test"))
        self.session.post.side_effect = requests.ConnectionError()
        self.assertFalse(self.client.navigate("https://x.test"))


class TestParseCookieStr(unittest.TestCase):
    def test_parse(self):
        self.assertEqual(_parse_cookie_str("a=1; b=x=y;; junk"), {"a": "1", "b": "x=y"})


if __name__ == "__main__":
    unittest.main()
