import io
import socket
import threading
import time
import urllib.request

import pytest

from agbcli.formatting import CommandError
from agbcli.models import ApiError, ApiResponse, LoginProvider, LoginTokens, Tokens
from agbcli.session import TokenStore, login, logout, wait_for_callback


def free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return str(sock.getsockname()[1])


class FakeOAuthApi:
    def __init__(self, provider=None, second=None, translate=None, logout_result=None):
        self.calls = []
        self.provider = provider or ApiResponse(
            success=True,
            data=LoginProvider(invoke_url="https://login.example.com/auth", alternative_ports=""),
            request_id="req-1",
        )
        self.second = second
        self.translate = translate or ApiResponse(
            success=True,
            data=LoginTokens(
                login_token="token",
                session_id="session-1",
                keep_alive_token="token",
                expires_at="2030-01-01T00:00:00Z",
            ),
        )
        self.logout_result = logout_result or ApiResponse(success=True)

    @staticmethod
    def _answer(result):
        if isinstance(result, Exception):
            raise result
        return result

    def get_login_provider_url(self, redirect_url, login_client, oauth_provider):
        self.calls.append(("provider", redirect_url, login_client, oauth_provider))
        return self._answer(self.provider)

    def get_login_provider_url_with_port(self, redirect_url, login_client, oauth_provider, port):
        self.calls.append(("provider_port", redirect_url, port))
        return self._answer(self.second)

    def login_translate_with_port(self, login_client, oauth_provider, auth_code, port):
        self.calls.append(("translate", auth_code, port))
        return self._answer(self.translate)

    def logout(self, login_token, session_id):
        self.calls.append(("logout", login_token, session_id))
        return self._answer(self.logout_result)


@pytest.fixture
def store(tmp_path):
    return TokenStore(tmp_path / "config.json")


def test_token_store_round_trip(tmp_path, store):
    store.save_tokens("token", "session-1", "token", "2030-01-01T00:00:00Z")
    reloaded = TokenStore(tmp_path / "config.json")
    assert reloaded.tokens == Tokens("token", "session-1", "token", "2030-01-01T00:00:00Z")


def test_token_store_missing_file_has_no_tokens(store):
    assert store.tokens is None


def test_clear_tokens_removes_them(tmp_path, store):
    store.save_tokens("token", "session-1", "token", "")
    store.clear_tokens()
    assert store.tokens is None
    assert TokenStore(tmp_path / "config.json").tokens is None


def test_logout_with_session(store):
    store.save_tokens("token", "session-1", "token", "")
    api = FakeOAuthApi()
    out = io.StringIO()
    assert logout(api, store, out) is True
    assert api.calls == [("logout", "token", "session-1")]
    assert store.tokens is None
    assert "Server session invalidated successfully" in out.getvalue()


def test_logout_api_error_still_clears(store):
    store.save_tokens("token", "session-1", "token", "")
    api = FakeOAuthApi(logout_result=ApiError("denied", status_code=401))
    out = io.StringIO()
    assert logout(api, store, out) is True
    assert store.tokens is None
    assert "[DATA] HTTP Status: 401" in out.getvalue()


def test_logout_without_session(store):
    api = FakeOAuthApi()
    out = io.StringIO()
    assert logout(api, store, out) is False
    assert api.calls == []
    assert "(local session cleared)" in out.getvalue()


def test_login_happy_path(store):
    api = FakeOAuthApi()
    port = free_port()
    out = io.StringIO()
    opened = []
    result = login(
        api, store, port, out,
        open_browser=lambda url: opened.append(url) or True,
        wait_for_code=lambda p, timeout: "code-123",
    )
    assert result.session_id == "session-1"
    assert opened == ["https://login.example.com/auth"]
    assert api.calls[0] == ("provider", f"http://localhost:{port}", "CLI", "GOOGLE_LOCALHOST")
    assert ("translate", "code-123", port) in api.calls
    assert store.tokens.session_id == "session-1"


def test_login_without_browser_opener_shows_url(store):
    out = io.StringIO()
    result = login(
        FakeOAuthApi(), store, free_port(), out,
        wait_for_code=lambda p, timeout: "code-123",
    )
    assert result.session_id == "session-1"
    text = out.getvalue()
    assert "  https://login.example.com/auth" in text
    assert "Failed to open browser automatically" in text


def test_login_uses_alternative_port_when_default_busy(store):
    alternative = free_port()
    api = FakeOAuthApi(
        provider=ApiResponse(
            success=True,
            data=LoginProvider(invoke_url="https://login.example.com/a", alternative_ports=alternative),
        ),
        second=ApiResponse(
            success=True, data=LoginProvider(invoke_url="https://login.example.com/b")
        ),
    )
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("", 0))
        busy.listen(1)
        default = str(busy.getsockname()[1])
        login(
            api, store, default, io.StringIO(),
            open_browser=lambda url: True,
            wait_for_code=lambda p, timeout: "code-123",
        )
    assert ("provider_port", f"http://localhost:{alternative}", alternative) in api.calls
    assert ("translate", "code-123", alternative) in api.calls


def test_login_oauth_request_failed(store):
    api = FakeOAuthApi(provider=ApiResponse(success=False, code="Denied"))
    with pytest.raises(CommandError, match="OAuth request failed: Denied"):
        login(api, store, free_port(), io.StringIO())


def test_login_empty_url(store):
    api = FakeOAuthApi(provider=ApiResponse(success=True, data=LoginProvider()))
    with pytest.raises(CommandError, match="received empty OAuth URL from server"):
        login(api, store, free_port(), io.StringIO(), wait_for_code=lambda p, t: "x")


def test_login_token_exchange_failed(store):
    api = FakeOAuthApi(translate=ApiResponse(success=False, code="BadCode"))
    with pytest.raises(CommandError, match="token exchange was not successful"):
        login(
            api, store, free_port(), io.StringIO(),
            open_browser=lambda url: True,
            wait_for_code=lambda p, timeout: "code-123",
        )
    assert store.tokens is None


def test_login_browser_failure_is_not_fatal(store):
    out = io.StringIO()
    result = login(
        FakeOAuthApi(), store, free_port(), out,
        open_browser=lambda url: False,
        wait_for_code=lambda p, timeout: "code-123",
    )
    assert result.login_token == "token"
    assert "Failed to open browser automatically" in out.getvalue()


def test_login_callback_error_propagates(store):
    def failing(port, timeout):
        raise OSError("address in use")

    with pytest.raises(CommandError, match="authentication failed: address in use"):
        login(FakeOAuthApi(), store, free_port(), io.StringIO(),
              open_browser=lambda url: True, wait_for_code=failing)


def test_wait_for_callback_returns_code():
    port = free_port()
    statuses = []

    def visit_callback():
        for _ in range(100):
            try:
                with urllib.request.urlopen(
                    f"http://127.0.0.1:{port}/callback?code=abc123", timeout=2
                ) as response:
                    statuses.append(response.status)
                return
            except OSError:
                time.sleep(0.05)

    visitor = threading.Thread(target=visit_callback, daemon=True)
    visitor.start()
    try:
        code = wait_for_callback(port, 10.0)
    finally:
        visitor.join(timeout=10)
    assert code == "abc123"
    assert statuses == [200]


def test_wait_for_callback_times_out():
    with pytest.raises(CommandError, match="authentication timeout"):
        wait_for_callback(free_port(), 0.2)