"""
Gateway package - synchronizes the device with the remote HTTPS gateway.

This package contains:
- client: JSON-over-HTTPS POST client
- session: session handshake, task polling and state broadcast thread
- server: configuration, CLI and process entry point
"""

from gateway.client import GatewayClient, HttpResponse, make_ssl_context
from gateway.session import GatewaySession

__all__ = [
    "GatewayClient",
    "GatewaySession",
    "HttpResponse",
    "make_ssl_context",
]
