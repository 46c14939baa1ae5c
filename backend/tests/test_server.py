"""
Tests for the TLS Server.

Requires Python 3.11+.
"""

import asyncio
import contextlib
import json
import ssl
from collections.abc import Callable
from pathlib import Path

import pytest

from tlshost.endpoint import TLSEndpoint
from tlshost.server import start_tls_server


def client_context() -> ssl.SSLContext:
    """Client context accepting any certificate so swaps can be inspected."""
    context = ssl.create_default_context()
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    return context


async def fetch(port: int, server_hostname: str = "localhost") -> tuple[bytes, dict]:
    """Request the status page and return the peer certificate and body."""
    reader, writer = await asyncio.open_connection(
        "127.0.0.1",
        port,
        ssl=client_context(),
        server_hostname=server_hostname,
    )
    peer_cert = writer.get_extra_info("ssl_object").getpeercert(binary_form=True)
    writer.write(b"GET / HTTP/1.1\r\nHost: localhost\r\n\r\n")
    await writer.drain()
    response = await reader.read()
    writer.close()
    with contextlib.suppress(ConnectionError, ssl.SSLError):
        await writer.wait_closed()

    _, _, body = response.partition(b"\r\n\r\n")
    return peer_cert, json.loads(body)


def der(cert_pem: bytes) -> bytes:
    return ssl.PEM_cert_to_DER_cert(cert_pem.decode())


class TestTLSServer:
    """Test cases for serving from a reloadable endpoint."""

    @pytest.mark.asyncio
    async def test_serves_current_certificate(self, endpoint: TLSEndpoint, cert_dir: Path):
        """Clients receive the loaded certificate."""
        server = await start_tls_server(endpoint, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            peer_cert, body = await fetch(port)
        finally:
            server.close()
            await server.wait_closed()

        assert peer_cert == der((cert_dir / "cert.pem").read_bytes())
        assert body == {"generation": 1, "subjects": ["CN=localhost"]}

    @pytest.mark.asyncio
    async def test_new_connections_get_reloaded_certificate(
        self,
        endpoint: TLSEndpoint,
        cert_dir: Path,
        write_certificate: Callable[..., tuple[bytes, bytes]],
    ):
        """After a reload, new handshakes use the renewed certificate."""
        server = await start_tls_server(endpoint, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            first_cert, _ = await fetch(port)

            renewed_pem, _ = write_certificate(cert_dir, common_name="renewed.localhost")
            endpoint.reload_ssl_host_configs()

            second_cert, body = await fetch(port)
        finally:
            server.close()
            await server.wait_closed()

        assert second_cert != first_cert
        assert second_cert == der(renewed_pem)
        assert body["generation"] == 2

    @pytest.mark.asyncio
    async def test_sni_without_matching_host_uses_default(self, endpoint: TLSEndpoint, cert_dir: Path):
        """Unknown server names are answered with the default host."""
        server = await start_tls_server(endpoint, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            peer_cert, _ = await fetch(port, server_hostname="unknown.test")
        finally:
            server.close()
            await server.wait_closed()

        assert peer_cert == der((cert_dir / "cert.pem").read_bytes())
