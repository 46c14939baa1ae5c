"""
CertReload API Dependencies.

Shared dependencies for FastAPI routes.
Requires Python 3.11+.
"""

import asyncio
from typing import Any

from fastapi import HTTPException

from tlshost.endpoint import TLSEndpoint
from watcher.service import CertificateReloadService


# Shared state - populated by main.py lifespan
_state: dict[str, Any] = {}


def set_tls_endpoint(endpoint: TLSEndpoint | None) -> None:
    """Set the shared TLS endpoint instance."""
    _state["tls_endpoint"] = endpoint


def get_tls_endpoint() -> TLSEndpoint | None:
    """Get the shared TLS endpoint instance."""
    return _state.get("tls_endpoint")


def set_tls_server(server: asyncio.Server | None) -> None:
    """Set the shared TLS server serving the endpoint."""
    _state["tls_server"] = server


def get_tls_server() -> asyncio.Server | None:
    """Get the shared TLS server serving the endpoint."""
    return _state.get("tls_server")


def set_reload_service(service: CertificateReloadService | None) -> None:
    """Set the shared certificate reload service."""
    _state["reload_service"] = service


def get_reload_service() -> CertificateReloadService | None:
    """Get the shared certificate reload service."""
    return _state.get("reload_service")


def require_tls_endpoint() -> TLSEndpoint:
    """
    Dependency that requires an initialized TLS endpoint.

    Raises HTTPException if no certificate is configured or loading failed.
    """
    endpoint = get_tls_endpoint()
    if endpoint is None or not endpoint.is_initialized:
        raise HTTPException(
            status_code=503,
            detail="TLS endpoint unavailable",
        )
    return endpoint
