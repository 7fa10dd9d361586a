"""Tests for the HTTPS gateway client, with urlopen mocked out."""

import io
import json
import ssl
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

import pytest

from gateway.client import CACHE_CONTROL, GatewayClient, HttpResponse, make_ssl_context


def ok_response(body: bytes, status: int = 200):
    response = MagicMock()
    response.status = status
    response.read.return_value = body
    response.__enter__.return_value = response
    return response


@pytest.fixture
def mock_urlopen():
    with patch("gateway.client.urlopen") as urlopen:
        yield urlopen


@pytest.fixture
def client():
    return GatewayClient("control.example.com", port=8443, timeout=2.0)


class TestGatewayClient:
    """POST requests and response handling."""

    def test_base_url(self, client):
        assert client.base_url == "https://control.example.com:8443"

    def test_post_sends_json(self, client, mock_urlopen):
        mock_urlopen.return_value = ok_response(b'{"tasks": []}')

        response = client.post("/fetch", {"password": "secret", "timestamp": 1})

        assert response == HttpResponse(status=200, body=b'{"tasks": []}')
        req = mock_urlopen.call_args.args[0]
        assert req.full_url == "https://control.example.com:8443/fetch"
        assert req.get_method() == "POST"
        assert json.loads(req.data) == {"password": "secret", "timestamp": 1}
        assert req.get_header("Content-type") == "application/json"
        assert req.get_header("Cache-control") == CACHE_CONTROL
        assert mock_urlopen.call_args.kwargs["timeout"] == 2.0

    def test_http_error_returns_status_and_body(self, client, mock_urlopen):
        mock_urlopen.side_effect = HTTPError(
            "https://control.example.com:8443/fetch",
            403,
            "Forbidden",
            {},
            io.BytesIO(b'{"error": "bad password"}'),
        )

        response = client.post("/fetch", {})

        assert response.status == 403
        assert response.body == b'{"error": "bad password"}'

    def test_connection_error_returns_none(self, client, mock_urlopen, caplog):
        mock_urlopen.side_effect = URLError("Name or service not known")
        assert client.post("/fetch", {}) is None
        assert "Name or service not known" in caplog.text

    def test_timeout_returns_none(self, client, mock_urlopen):
        mock_urlopen.side_effect = TimeoutError("timed out")
        assert client.post("/fetch", {}) is None

    def test_headers_copy(self, client):
        headers = client.headers
        headers["X-Extra"] = "1"
        assert "X-Extra" not in client.headers


class TestSslContext:
    """TLS settings for the gateway connection."""

    def test_verification_disabled(self):
        context = make_ssl_context(None)
        assert context.check_hostname is False
        assert context.verify_mode == ssl.CERT_NONE

    def test_missing_certificate_warns(self, tmp_path, caplog):
        make_ssl_context(str(tmp_path / "missing.crt"))
        assert "CA certificate not found" in caplog.text
