"""Interactive OAuth authorization-code flow against Strava.

A throwaway local listener receives the browser redirect carrying the
one-time code. The code is exchanged for an access token right away and
nothing is written to disk.
"""
from __future__ import annotations

import sys
import threading
import webbrowser
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from urllib.parse import urlencode

import requests
from flask import Flask, request
from werkzeug.serving import BaseWSGIServer, make_server

from .config import CALLBACK_PATH, DEFAULT_SCOPES, STRAVA_AUTHORIZE_URL, STRAVA_TOKEN_URL
from .errors import AuthorizationError


def create_callback_app(code_future: Future) -> Flask:
    """Flask app with the single redirect route.

    The first request carrying a ``code`` completes ``code_future``. Any
    request after that is acknowledged and ignored.
    """
    app = Flask(__name__)
    lock = threading.Lock()

    @app.get(CALLBACK_PATH)
    def exchange_token():
        code = request.args.get("code", "").strip()
        error = request.args.get("error", "").strip()

        with lock:
            if code_future.done():
                return "Authorization already received. You can close this window.", 200
            if error:
                code_future.set_exception(
                    AuthorizationError(f"Strava authorization was not granted: {error}")
                )
                return f"Authorization failed: {error}", 400
            if not code:
                return "Missing 'code' query parameter.", 400
            code_future.set_result(code)

        return "Authorization received. You can close this window.", 200

    return app


class CallbackListener:
    """Local HTTP listener on an OS-assigned port, used as a context manager.

    The server runs on a daemon thread and is shut down on exit from the
    ``with`` block whatever the outcome.
    """

    def __init__(self, host: str = "127.0.0.1") -> None:
        self.host = host
        self.code_future: Future = Future()
        self.app = create_callback_app(self.code_future)
        self._server: BaseWSGIServer | None = None
        self._thread: threading.Thread | None = None

    def __enter__(self) -> CallbackListener:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def start(self) -> None:
        self._server = make_server(self.host, 0, self.app)
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="strava-oauth-callback",
            daemon=True,
        )
        self._thread.start()

    @property
    def running(self) -> bool:
        return self._server is not None

    @property
    def port(self) -> int:
        if self._server is None:
            raise RuntimeError("callback listener is not running")
        return self._server.server_port

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.port}{CALLBACK_PATH}"

    def wait_for_code(self, timeout: float | None = None) -> str:
        try:
            return self.code_future.result(timeout=timeout)
        except FutureTimeoutError as exc:
            raise AuthorizationError(
                f"No authorization code received within {timeout:g}s"
            ) from exc

    def close(self) -> None:
        server, thread = self._server, self._thread
        self._server = None
        self._thread = None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=5)


def build_authorize_url(client_id: str, redirect_uri: str, scopes: str = DEFAULT_SCOPES) -> str:
    params = {
        "client_id": client_id,
        "response_type": "code",
        "redirect_uri": redirect_uri,
        "approval_prompt": "force",
        "scope": scopes,
    }
    return f"{STRAVA_AUTHORIZE_URL}?{urlencode(params, safe=',:/')}"


def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    session: requests.Session | None = None,
) -> str:
    http = session or requests
    try:
        response = http.post(
            STRAVA_TOKEN_URL,
            data={
                "client_id": client_id,
                "client_secret": client_secret,
                "code": code,
                "grant_type": "authorization_code",
            },
            timeout=60,
        )
    except requests.RequestException as exc:
        raise AuthorizationError(f"Token exchange failed: {exc}") from exc

    if response.status_code != 200:
        raise AuthorizationError(
            f"Token exchange failed ({response.status_code}): {response.text}"
        )

    try:
        payload = response.json()
    except ValueError as exc:
        raise AuthorizationError(f"Token exchange returned malformed JSON: {exc}") from exc

    token = payload.get("access_token") if isinstance(payload, dict) else None
    if not isinstance(token, str) or not token:
        raise AuthorizationError("Token exchange response has no access_token")
    return token


def acquire_token(
    client_id: str,
    client_secret: str,
    timeout: float | None = None,
    scopes: str = DEFAULT_SCOPES,
    open_browser: Callable[[str], object] | None = webbrowser.open,
    session: requests.Session | None = None,
) -> str:
    """Run the browser authorization flow and return a bearer token."""
    with CallbackListener() as listener:
        print(f"Bound port {listener.port}")
        url = build_authorize_url(client_id, listener.redirect_uri, scopes)
        print("Authorize access to your Strava activities at:")
        print(url)
        if open_browser is not None and open_browser(url) is False:
            print("Could not open a browser; open the URL above manually.", file=sys.stderr)
        code = listener.wait_for_code(timeout)

    return exchange_code(client_id, client_secret, code, session=session)
