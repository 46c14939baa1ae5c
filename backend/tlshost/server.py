"""
CertReload TLS Server.

Minimal asyncio HTTPS responder served from a reloadable endpoint.
Requires Python 3.11+.
"""

import asyncio
import json
from collections.abc import Awaitable, Callable

from tlshost.endpoint import TLSEndpoint
from utils.logger import get_logger

logger = get_logger("tlshost.server")

ConnectionHandler = Callable[[asyncio.StreamReader, asyncio.StreamWriter], Awaitable[None]]


def make_status_handler(endpoint: TLSEndpoint) -> ConnectionHandler:
    """
    Create a handler answering every request with the endpoint's status.

    The body reports the context generation and certificate subjects,
    which makes a certificate swap visible to clients.
    """

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername")
        try:
            # Read the request head; its content is not interpreted
            while True:
                line = await reader.readline()
                if not line or line in (b"\r\n", b"\n"):
                    break

            body = json.dumps(
                {
                    "generation": endpoint.generation,
                    "subjects": [info.subject for info in endpoint.certificates],
                }
            ).encode()
            writer.write(
                b"HTTP/1.1 200 OK\r\n"
                b"Content-Type: application/json\r\n"
                + f"Content-Length: {len(body)}\r\n".encode()
                + b"Connection: close\r\n\r\n"
                + body
            )
            await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.debug("connection_error", peer=peer, error=str(e))
        finally:
            writer.close()

    return handle


async def start_tls_server(
    endpoint: TLSEndpoint,
    host: str,
    port: int,
    handler: ConnectionHandler | None = None,
) -> asyncio.Server:
    """
    Start listening for TLS connections on an initialized endpoint.

    Args:
        endpoint: Endpoint providing the listening SSL context
        host: Interface to bind
        port: Port to bind (0 picks a free port)
        handler: Connection handler, defaults to the status responder

    Returns:
        The running asyncio server
    """
    server = await asyncio.start_server(
        handler or make_status_handler(endpoint),
        host,
        port,
        ssl=endpoint.server_context,
    )
    sockets = server.sockets or []
    logger.info(
        "tls_server_listening",
        addresses=[sock.getsockname() for sock in sockets],
    )
    return server
