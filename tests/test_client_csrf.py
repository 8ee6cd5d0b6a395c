"""
Dashgate - Client CSRF Token Manager Tests

Run with: pytest tests/test_client_csrf.py -v
"""

import httpx
import pytest

from dashgate.client.csrf import CSRFTokenManager
from dashgate.gateway.csrf import tokens_match
from tests.conftest import FakeClock


@pytest.fixture(scope="function")
def manager(clock):
    return CSRFTokenManager(httpx.Cookies(), clock=clock)


class TestCSRFTokenManager:

    @pytest.mark.parametrize("method", ["GET", "head", "OPTIONS", "TRACE"])
    def test_safe_methods(self, method):
        assert CSRFTokenManager.requires_protection(method) is False

    @pytest.mark.parametrize("method", ["POST", "put", "PATCH", "DELETE"])
    def test_unsafe_methods(self, method):
        assert CSRFTokenManager.requires_protection(method) is True

    def test_ensure_token_mints_once(self, manager):
        first = manager.ensure_token()

        assert len(first) == 64
        assert manager.ensure_token() == first
        assert manager.cookies.get("XSRF-TOKEN") == first

    def test_header_mirrors_cookie(self, manager):
        headers = manager.attach_if_required("POST", {})

        assert headers["X-CSRF-Token"] == manager.cookies.get("XSRF-TOKEN")

    def test_get_is_left_alone(self, manager):
        assert manager.attach_if_required("GET", {}) == {}
        assert manager.current_token() is None

    def test_rotate_replaces_token(self, manager):
        first = manager.ensure_token()
        second = manager.rotate()

        assert second != first
        assert manager.ensure_token() == second
        assert len([c for c in manager.cookies.jar if c.name == "XSRF-TOKEN"]) == 1

    def test_clear_removes_cookie(self, manager):
        manager.ensure_token()
        manager.clear()

        assert manager.current_token() is None
        assert manager.cookies.get("XSRF-TOKEN") is None

    def test_expired_token_is_reminted(self, manager, clock):
        first = manager.ensure_token()
        clock.advance(hours=24, seconds=1)

        assert manager.current_token() is None
        assert manager.ensure_token() != first

    def test_custom_names(self):
        manager = CSRFTokenManager(
            httpx.Cookies(), cookie_name="csrf", header_name="X-Csrf", clock=FakeClock(),
        )
        headers = manager.attach_if_required("DELETE", {})

        assert headers == {"X-Csrf": manager.cookies.get("csrf")}


class TestTokensMatch:

    def test_equal_tokens(self):
        assert tokens_match("abc", "abc") is True

    @pytest.mark.parametrize("cookie,header", [
        ("abc", "abd"),
        (None, "abc"),
        ("abc", None),
        ("", ""),
    ])
    def test_mismatch(self, cookie, header):
        assert tokens_match(cookie, header) is False
