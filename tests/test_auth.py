"""Tests for the OAuth callback listener and token exchange."""

import unittest
from concurrent.futures import Future
from unittest import mock
from urllib.parse import parse_qs, urlsplit

import requests
from conftest import FakeResponse, FakeSession

from strava_mileage import auth
from strava_mileage.errors import AuthorizationError


def _local_session() -> requests.Session:
    session = requests.Session()
    session.trust_env = False
    return session


def _hit_callback(port: int, **params) -> requests.Response:
    with _local_session() as browser:
        return browser.get(f"http://127.0.0.1:{port}/exchange_token", params=params, timeout=5)


class TestAuthorizeUrl(unittest.TestCase):
    def test_url_carries_client_redirect_and_scopes(self):
        url = auth.build_authorize_url("12345", "http://localhost:54321/exchange_token")

        parts = urlsplit(url)
        query = parse_qs(parts.query)
        self.assertEqual(f"{parts.scheme}://{parts.netloc}{parts.path}", "https://www.strava.com/oauth/authorize")
        self.assertEqual(query["client_id"], ["12345"])
        self.assertEqual(query["response_type"], ["code"])
        self.assertEqual(query["redirect_uri"], ["http://localhost:54321/exchange_token"])
        self.assertEqual(query["approval_prompt"], ["force"])
        self.assertEqual(query["scope"], ["read,activity:read"])

    def test_custom_scopes(self):
        url = auth.build_authorize_url("1", "http://localhost:1/exchange_token", "read,activity:read_all")
        self.assertIn("scope=read,activity:read_all", url)


class TestCallbackRoute(unittest.TestCase):
    """Exercise the redirect route through Flask's test client."""

    def setUp(self):
        self.future = Future()
        self.client = auth.create_callback_app(self.future).test_client()

    def test_first_code_completes_the_cell(self):
        response = self.client.get("/exchange_token?state=&code=abc123&scope=read,activity:read")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.future.result(timeout=0), "abc123")

    def test_later_requests_are_acknowledged_and_ignored(self):
        self.client.get("/exchange_token?code=first")
        second = self.client.get("/exchange_token?code=second")
        denied = self.client.get("/exchange_token?error=access_denied")

        self.assertEqual(second.status_code, 200)
        self.assertEqual(denied.status_code, 200)
        self.assertIn(b"already received", second.data)
        self.assertEqual(self.future.result(timeout=0), "first")

    def test_missing_code_is_rejected_without_completing(self):
        response = self.client.get("/exchange_token")

        self.assertEqual(response.status_code, 400)
        self.assertFalse(self.future.done())

    def test_denied_authorization_fails_the_cell(self):
        response = self.client.get("/exchange_token?error=access_denied")

        self.assertEqual(response.status_code, 400)
        with self.assertRaises(AuthorizationError):
            self.future.result(timeout=0)

    def test_other_paths_are_not_found(self):
        self.assertEqual(self.client.get("/").status_code, 404)
        self.assertFalse(self.future.done())


class TestCallbackListener(unittest.TestCase):
    """Run the real listener on a loopback ephemeral port."""

    def test_listener_binds_ephemeral_port_and_receives_code(self):
        with auth.CallbackListener() as listener:
            self.assertGreater(listener.port, 0)
            self.assertEqual(listener.redirect_uri, f"http://localhost:{listener.port}/exchange_token")

            response = _hit_callback(listener.port, code="xyz")
            self.assertEqual(response.status_code, 200)
            self.assertEqual(listener.wait_for_code(timeout=5), "xyz")

            again = _hit_callback(listener.port, code="other")
            self.assertEqual(again.status_code, 200)
            self.assertEqual(listener.wait_for_code(timeout=5), "xyz")
            port = listener.port

        self.assertFalse(listener.running)
        with self.assertRaises(requests.ConnectionError):
            _hit_callback(port, code="late")

    def test_listener_is_released_when_body_raises(self):
        with self.assertRaises(KeyError):
            with auth.CallbackListener() as listener:
                raise KeyError("boom")
        self.assertFalse(listener.running)

    def test_wait_times_out(self):
        with auth.CallbackListener() as listener:
            with self.assertRaises(AuthorizationError):
                listener.wait_for_code(timeout=0.05)

    def test_each_listener_gets_its_own_port(self):
        with auth.CallbackListener() as first, auth.CallbackListener() as second:
            self.assertNotEqual(first.port, second.port)


class TestExchangeCode(unittest.TestCase):
    def test_posts_authorization_code_grant(self):
        session = FakeSession([FakeResponse({"access_token": "tok-1", "token_type": "Bearer"})])

        token = auth.exchange_code("12345", "s3cret", "code-9", session=session)

        self.assertEqual(token, "tok-1")
        method, url, kwargs = session.calls[0]
        self.assertEqual(method, "POST")
        self.assertEqual(url, "https://www.strava.com/oauth/token")
        self.assertEqual(
            kwargs["data"],
            {
                "client_id": "12345",
                "client_secret": "s3cret",
                "code": "code-9",
                "grant_type": "authorization_code",
            },
        )

    def test_rejected_code(self):
        session = FakeSession([FakeResponse({"message": "Bad Request"}, status_code=400)])
        with self.assertRaises(AuthorizationError):
            auth.exchange_code("1", "s", "used-code", session=session)
        self.assertEqual(len(session.calls), 1)

    def test_missing_access_token(self):
        session = FakeSession([FakeResponse({"refresh_token": "r"})])
        with self.assertRaises(AuthorizationError):
            auth.exchange_code("1", "s", "c", session=session)

    def test_malformed_json(self):
        session = FakeSession([FakeResponse(json_error=ValueError("no json"), text="<html>")])
        with self.assertRaises(AuthorizationError):
            auth.exchange_code("1", "s", "c", session=session)

    def test_network_error(self):
        session = FakeSession([requests.ConnectionError("unreachable")])
        with self.assertRaises(AuthorizationError):
            auth.exchange_code("1", "s", "c", session=session)


class TestAcquireToken(unittest.TestCase):
    def test_browser_redirect_then_exchange(self):
        opened = []

        def fake_browser(url):
            opened.append(url)
            redirect = parse_qs(urlsplit(url).query)["redirect_uri"][0]
            port = urlsplit(redirect).port
            _hit_callback(port, code="from-browser")
            return True

        session = FakeSession([FakeResponse({"access_token": "bearer-abc"})])

        with mock.patch("builtins.print"):
            token = auth.acquire_token("12345", "s3cret", timeout=5, open_browser=fake_browser, session=session)

        self.assertEqual(token, "bearer-abc")
        self.assertEqual(len(opened), 1)
        self.assertEqual(session.calls[0][2]["data"]["code"], "from-browser")

    def test_timeout_releases_listener_and_skips_exchange(self):
        listeners = []

        class RecordingListener(auth.CallbackListener):
            def __enter__(self):
                listeners.append(self)
                return super().__enter__()

        session = FakeSession([])
        with mock.patch.object(auth, "CallbackListener", RecordingListener), mock.patch("builtins.print"):
            with self.assertRaises(AuthorizationError):
                auth.acquire_token("1", "s", timeout=0.05, open_browser=None, session=session)

        self.assertEqual(len(listeners), 1)
        self.assertFalse(listeners[0].running)
        self.assertEqual(session.calls, [])

    def test_denied_in_browser(self):
        def denying_browser(url):
            redirect = parse_qs(urlsplit(url).query)["redirect_uri"][0]
            _hit_callback(urlsplit(redirect).port, error="access_denied")

        with mock.patch("builtins.print"):
            with self.assertRaises(AuthorizationError):
                auth.acquire_token("1", "s", timeout=5, open_browser=denying_browser, session=FakeSession([]))


if __name__ == "__main__":
    unittest.main()
