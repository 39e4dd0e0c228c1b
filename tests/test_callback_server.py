# tests/test_callback_server.py
"""Tests for the local OAuth callback server (real loopback sockets)"""

import socket

import pytest

from conftest import http_get

from spot_control.auth.callback_server import CallbackResult, CallbackServer, is_port_available
from spot_control.core.exceptions import PortUnavailable


@pytest.fixture
def server(free_port):
    server = CallbackServer(free_port)
    server.start()
    yield server
    server.stop()


class TestCallbackServer:
    """Test callback handling and lifecycle"""

    def test_code_callback(self, server):
        """Code callback answers 200 and delivers code and state"""
        response = http_get(f"{server.callback_url}?code=ABC123&state=xyz")

        assert response.status_code == 200
        assert "Authorization Successful" in response.text
        assert server.wait_for_result(timeout=2) == CallbackResult(code="ABC123", state="xyz")

    def test_error_callback(self, server):
        response = http_get(f"{server.callback_url}?error=access_denied")

        assert response.status_code == 400
        assert "access_denied" in response.text
        result = server.wait_for_result(timeout=2)
        assert result.ok is False
        assert result.error == "access_denied"

    def test_error_is_html_escaped(self, server):
        response = http_get(server.callback_url, params={"error": "<script>x</script>"})
        assert "<script>x</script>" not in response.text

    def test_callback_without_code_or_error(self, server):
        response = http_get(server.callback_url)

        assert response.status_code == 400
        assert server.wait_for_result(timeout=2).error == "no_code"

    def test_other_path_is_ignored(self, server):
        """Requests outside the callback path get 404 and deliver nothing"""
        response = http_get(f"http://127.0.0.1:{server.port}/favicon.ico")

        assert response.status_code == 404
        assert server.wait_for_result(timeout=0.2) is None

    def test_first_callback_wins(self, server):
        http_get(f"{server.callback_url}?code=FIRST")
        second = http_get(f"{server.callback_url}?code=SECOND")

        assert second.status_code == 200
        assert server.wait_for_result(timeout=2).code == "FIRST"
        assert server.wait_for_result(timeout=0.2) is None

    def test_wait_times_out(self, server):
        assert server.wait_for_result(timeout=0.1) is None

    def test_start_twice_raises(self, server):
        with pytest.raises(RuntimeError):
            server.start()


class TestCallbackServerLifecycle:
    """Test port handling"""

    def test_stop_is_idempotent_and_frees_port(self, free_port):
        server = CallbackServer(free_port)
        server.start()
        assert is_port_available(free_port) is False

        server.stop()
        server.stop()

        assert server.is_running is False
        assert is_port_available(free_port) is True

        # Port can be bound again right away
        with CallbackServer(free_port) as again:
            assert again.is_running is True

    def test_port_in_use(self, free_port):
        """Bind failure surfaces as PortUnavailable"""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as blocker:
            blocker.bind(("127.0.0.1", free_port))
            blocker.listen(1)

            assert is_port_available(free_port) is False
            with pytest.raises(PortUnavailable) as exc_info:
                CallbackServer(free_port).start()

        assert exc_info.value.port == free_port

    def test_wait_before_start(self, free_port):
        with pytest.raises(RuntimeError):
            CallbackServer(free_port).wait_for_result(timeout=0.1)
