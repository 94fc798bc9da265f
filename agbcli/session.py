"""Logging in through the browser and logging out."""

from __future__ import annotations

import json
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict
from http.server import BaseHTTPRequestHandler, HTTPServer
from pathlib import Path
from typing import Callable, Optional, TextIO
from urllib.parse import parse_qs, urlsplit

from agbcli.formatting import CommandError
from agbcli.models import ApiError, LoginProvider, LoginTokens, Tokens
from agbcli.ports import is_port_occupied, select_available_port

_LOGIN_CLIENT = "CLI"
_OAUTH_PROVIDER = "GOOGLE_LOCALHOST"
_CALLBACK_TIMEOUT = 5 * 60.0
_TOKEN_FIELDS = ("login_token", "session_id", "keep_alive_token", "expires_at")


def _say(out: TextIO, text: str = "") -> None:
    print(text, file=out)


class TokenStore:
    """Authentication tokens kept in a JSON configuration file."""

    def __init__(self, path: Optional[os.PathLike | str] = None) -> None:
        self.path = Path(path) if path is not None else Path.home() / ".agbcloud" / "config.json"
        self.tokens: Optional[Tokens] = self._load_tokens()

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        with self.path.open(encoding="utf-8") as handle:
            data = json.load(handle)
        if not isinstance(data, dict):
            raise ValueError(f"configuration file {self.path} is not a JSON object")
        return data

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        if os.name != "nt":
            os.chmod(self.path, 0o600)

    def _load_tokens(self) -> Optional[Tokens]:
        section = self._read().get("token")
        if not isinstance(section, dict):
            return None
        return Tokens(**{name: str(section.get(name, "")) for name in _TOKEN_FIELDS})

    def save_tokens(
        self, login_token: str, session_id: str, keep_alive_token: str, expires_at: str
    ) -> None:
        """Store the tokens, keeping any other configuration in the file."""
        tokens = Tokens(login_token, session_id, keep_alive_token, expires_at)
        data = self._read()
        data["token"] = asdict(tokens)
        self._write(data)
        self.tokens = tokens

    def clear_tokens(self) -> None:
        """Remove the stored tokens."""
        data = self._read()
        data.pop("token", None)
        self._write(data)
        self.tokens = None


def wait_for_callback(port: str, timeout: float = _CALLBACK_TIMEOUT) -> str:
    """Serve http://localhost:<port>/callback until it receives an authorization code."""
    result: dict[str, str] = {}

    class _Handler(BaseHTTPRequestHandler):
        def do_GET(self) -> None:
            parts = urlsplit(self.path)
            if parts.path != "/callback":
                self._reply(404, "Not found")
                return
            params = parse_qs(parts.query)
            code = params.get("code", [""])[0]
            if code:
                result["code"] = code
                self._reply(200, "Authentication successful. You can close this window.")
            else:
                result["error"] = params.get("error", ["missing authorization code"])[0]
                self._reply(400, f"Authentication failed: {result['error']}")

        def _reply(self, status: int, text: str) -> None:
            body = text.encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format: str, *args) -> None:
            pass

    deadline = time.monotonic() + timeout
    with HTTPServer(("127.0.0.1", int(port)), _Handler) as server:
        while not result:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise CommandError("authentication timeout: please try again")
            server.timeout = remaining
            server.handle_request()

    if "error" in result:
        raise CommandError(f"authentication failed: {result['error']}")
    return result["code"]


def _oauth_call(out: TextIO, label: str, failure: str, network: str, call, *args):
    try:
        return call(*args)
    except ApiError as exc:
        _say(out, f"[ERROR] {label}: {exc}")
        if exc.status_code is not None:
            _say(out, f"[DATA] Status Code: {exc.status_code}")
        if exc.body:
            _say(out, f"[PAGE] Response Body: {exc.body.decode('utf-8', 'replace')}")
        raise CommandError(f"{failure}: {exc}") from exc
    except CommandError:
        raise
    except Exception as exc:
        raise CommandError(f"{network}: {exc}") from exc


def _choose_port(oauth_api, default_port: str, response, out: TextIO):
    provider = response.data or LoginProvider()
    if not is_port_occupied(default_port):
        _say(out, f"[OK] Default port {default_port} is available")
        return default_port, response

    _say(out, f"[WARN]  Default port {default_port} is occupied, trying alternative ports...")
    if not provider.alternative_ports:
        raise CommandError(
            f"default port {default_port} is occupied and no alternative ports provided"
        )
    try:
        port = select_available_port(default_port, provider.alternative_ports)
    except RuntimeError as exc:
        _say(out, "[ERROR] Port selection failed:")
        _say(out, f"   Default port {default_port} is occupied")
        _say(out, f"   Alternative ports provided: {provider.alternative_ports}")
        _say(out, "   All alternative ports are also occupied")
        _say(out, "[TIP] Please free up one of these ports and try again")
        raise CommandError(f"failed to find available port: {exc}") from exc

    _say(out, f"[REFRESH] Using alternative port: {port}")
    second = _oauth_call(
        out,
        "API Error on second call",
        "failed to get OAuth URL with alternative port after retries",
        "network error on second call after retries",
        oauth_api.get_login_provider_url_with_port,
        f"http://localhost:{port}",
        _LOGIN_CLIENT,
        _OAUTH_PROVIDER,
        port,
    )
    if not second.success:
        raise CommandError(f"OAuth request with alternative port failed: {second.code}")
    return port, second


def login(
    oauth_api,
    store: TokenStore,
    default_port: str = "3000",
    out: Optional[TextIO] = None,
    open_browser: Optional[Callable[[str], bool]] = None,
    wait_for_code: Callable[[str, float], str] = wait_for_callback,
) -> LoginTokens:
    """Run the browser OAuth flow and store the resulting tokens.

    ``open_browser`` is called with the login URL and returns whether a
    browser was opened; without one the URL is only shown to the user.
    """
    out = sys.stdout if out is None else out
    _say(out, "[SEC] Starting AgbCloud authentication...")
    _say(out, f"[SIGNAL] Default callback port: {default_port}")
    _say(out, "[WEB] Requesting OAuth login URL...")

    response = _oauth_call(
        out,
        "API Error",
        "failed to get OAuth URL after retries",
        "network error after retries",
        oauth_api.get_login_provider_url,
        f"http://localhost:{default_port}",
        _LOGIN_CLIENT,
        _OAUTH_PROVIDER,
    )
    if not response.success:
        raise CommandError(f"OAuth request failed: {response.code}")

    port, final = _choose_port(oauth_api, default_port, response, out)
    invoke_url = final.data.invoke_url if final.data is not None else ""
    if not invoke_url:
        raise CommandError("received empty OAuth URL from server")

    _say(out, "[OK] Successfully retrieved OAuth URL!")
    _say(out, f"[DOC] Request ID: {final.request_id}")
    _say(out, f"[SEARCH] Trace ID: {final.trace_id}")
    _say(out, f"[SIGNAL] Final callback port: {port}")
    _say(out)
    _say(out, f"[>>] Starting local callback server on port {port}...")

    with ThreadPoolExecutor(max_workers=1) as executor:
        pending = executor.submit(wait_for_code, port, _CALLBACK_TIMEOUT)

        _say(out, "[LINK] OAuth URL:")
        _say(out, f"  {invoke_url}\n")
        _say(out, "[WEB] Opening the browser for authentication...")
        _say(out)
        _say(out, "If the browser doesn't open automatically, please copy and paste the URL above.")
        if open_browser is None:
            opened, reason = False, "no browser opener available"
        else:
            try:
                opened = bool(open_browser(invoke_url))
                reason = "no browser available"
            except Exception as exc:
                opened, reason = False, str(exc)
        if opened:
            _say(out, "[OK] Browser opened successfully!")
        else:
            _say(out, f"[WARN]  Failed to open browser automatically: {reason}")
            _say(out, "[TIP] Please copy the URL above and paste it into your browser "
                      "to complete authentication.")
        _say(out, "[NOTE] Please complete the authentication process in your browser.")
        _say(out, f"[REFRESH] Waiting for callback on http://localhost:{port}/callback...")

        try:
            code = pending.result()
        except CommandError:
            raise
        except Exception as exc:
            raise CommandError(f"authentication failed: {exc}") from exc

    _say(out, "[OK] Authentication successful!")
    _say(out, f"[KEY] Received authorization code: {code[:20]}...")
    _say(out, "[REFRESH] Exchanging authorization code for access token...")

    translated = _oauth_call(
        out,
        "LoginTranslate API Error",
        "failed to exchange code for token after retries",
        "network error during token exchange after retries",
        oauth_api.login_translate_with_port,
        _LOGIN_CLIENT,
        _OAUTH_PROVIDER,
        code,
        port,
    )

    _say(out, "\n[TARGET] LoginTranslate Response Details:")
    _say(out, f"[OK] Success: {'true' if translated.success else 'false'}")
    _say(out, f"[NOTE] Code: {translated.code}")
    _say(out, f"[DOC] Request ID: {translated.request_id}")
    _say(out, f"[SEARCH] Trace ID: {translated.trace_id}")
    _say(out, f"[WEB] HTTP Status Code (from response): {translated.http_status_code}")

    if not translated.success:
        _say(out, f"\n[ERROR] Token exchange failed: {translated.code}")
        raise CommandError("token exchange was not successful")

    data = translated.data or LoginTokens()
    _say(out, "\n[KEY] Authentication Token Information:")
    for label, value in (
        ("[TICKET] Login Token", data.login_token),
        ("[ID] Session ID", data.session_id),
        ("[REFRESH] Keep Alive Token", data.keep_alive_token),
    ):
        if value:
            _say(out, f"{label}: {value}")
        else:
            _say(out, f"[WARN]  {label.split('] ', 1)[1]}: (empty)")

    _say(out, "\n[SAVE] Saving authentication tokens...")
    try:
        store.save_tokens(data.login_token, data.session_id, data.keep_alive_token, data.expires_at)
    except (OSError, ValueError) as exc:
        _say(out, f"[WARN]  Warning: Failed to save tokens: {exc}")
        _say(out, "[SUCCESS] You are logged in, but tokens were not saved to config file.")
        return data

    _say(out, "[OK] Authentication tokens saved successfully!")
    _say(out, "\n[SUCCESS] You are now logged in to AgbCloud!")
    return data


def logout(oauth_api, store: TokenStore, out: Optional[TextIO] = None) -> bool:
    """End the server session if there is one and clear local tokens.

    Returns True when an active session was found.
    """
    out = sys.stdout if out is None else out
    _say(out, "[UNLOCK] Logging out from AgbCloud...")

    tokens = store.tokens
    has_session = tokens is not None and tokens.is_complete()

    if has_session:
        _say(out, "[WEB] Invalidating server session...")
        try:
            response = oauth_api.logout(tokens.login_token, tokens.session_id)
        except Exception as exc:
            _say(out, f"[WARN]  Warning: Could not invalidate server session: {exc}")
            if isinstance(exc, ApiError) and exc.status_code is not None:
                _say(out, f"[DATA] HTTP Status: {exc.status_code}")
        else:
            if response.success:
                _say(out, "[OK] Server session invalidated successfully")
            else:
                _say(out, f"[WARN]  Warning: Server session invalidation failed "
                          f"(Code: {response.code})")
    else:
        _say(out, "[INFO]  No active session found")

    _say(out, "[CLEAN] Clearing local authentication data...")
    try:
        store.clear_tokens()
    except (OSError, ValueError) as exc:
        raise CommandError(f"failed to clear local authentication data: {exc}") from exc

    if has_session:
        _say(out, "[OK] Successfully logged out from AgbCloud")
    else:
        _say(out, "[OK] Successfully logged out from AgbCloud (local session cleared)")
    return has_session