"""
HTTPS client for the remote gateway endpoint.

Classes:
    HttpResponse: Status code and raw body of a completed request
    GatewayClient: JSON-over-HTTPS POST client
"""

import json
import logging
import ssl
from dataclasses import dataclass
from pathlib import Path
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

logger = logging.getLogger(__name__)

JSON_MIME_TYPE = "application/json"

# Keep intermediaries (e.g. a CDN in front of the endpoint) from caching responses
CACHE_CONTROL = "private,max-age=0"


@dataclass
class HttpResponse:
    """A completed HTTP exchange, successful or not."""

    status: int
    body: bytes


def make_ssl_context(certificate_path: str | None) -> ssl.SSLContext:
    """
    Build the TLS context for gateway requests.

    The CA bundle is loaded when present, but server certificate and
    hostname verification are disabled: the shared password authenticates
    the bridge.
    """
    context = ssl.create_default_context()
    if certificate_path:
        if Path(certificate_path).is_file():
            context.load_verify_locations(cafile=certificate_path)
        else:
            logger.warning(f"CA certificate not found: {certificate_path}")
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


class GatewayClient:
    """JSON POST client for the remote gateway."""

    def __init__(
        self,
        address: str,
        port: int = 443,
        certificate_path: str | None = None,
        timeout: float = 10.0,
    ):
        """
        Initialize the gateway client.

        Args:
            address: Host name of the gateway (e.g., "control.example.com")
            port: HTTPS port
            certificate_path: CA bundle file (PEM)
            timeout: HTTP request timeout in seconds
        """
        self._address = address
        self._port = port
        self._timeout = timeout
        self._base_url = f"https://{address}:{port}"
        self._ssl_context = make_ssl_context(certificate_path)
        self._headers = {
            "Content-Type": JSON_MIME_TYPE,
            "Cache-Control": CACHE_CONTROL,
        }

    @property
    def address(self) -> str:
        return self._address

    @property
    def port(self) -> int:
        return self._port

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def post(self, path: str, payload: dict) -> HttpResponse | None:
        """
        POST a JSON payload.

        Args:
            path: Endpoint path, e.g. "/fetch"
            payload: JSON-serializable request body

        Returns:
            HttpResponse for any HTTP status (including errors), or None if
            no response was received at all
        """
        data = json.dumps(payload).encode("utf-8")
        req = Request(
            f"{self._base_url}{path}",
            data=data,
            headers=self._headers,
            method="POST",
        )
        try:
            with urlopen(req, timeout=self._timeout, context=self._ssl_context) as response:
                return HttpResponse(status=response.status, body=response.read())
        except HTTPError as e:
            try:
                body = e.read()
            except OSError:
                body = b""
            return HttpResponse(status=e.code, body=body or b"")
        except URLError as e:
            logger.error(f"Connection error posting to {path}: {e.reason}")
            return None
        except (OSError, ValueError) as e:
            logger.error(f"Error posting to {path}: {e}")
            return None
