#!/usr/bin/env python3
"""
CertReload Demo TLS Server.

Serves HTTPS from the configured certificate and swaps in renewed
certificates without restarting.
Requires Python 3.11+.

Usage:
    TLS_CERTIFICATE_FILE=certs/fullchain.pem TLS_CERTIFICATE_KEY_FILE=certs/privkey.pem \\
        python scripts/serve_tls.py --port 8443
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from tlshost.endpoint import CertificateLoadError, TLSEndpoint
from tlshost.server import start_tls_server
from utils.config import get_settings
from utils.logger import configure_logging, get_logger
from watcher.service import start_watching_and_reloading


configure_logging()
logger = get_logger("serve_tls")


async def serve(host: str, port: int, settle_delay_ms: int, live_reload: bool) -> int:
    """
    Run the TLS server until interrupted.

    Returns:
        Process exit code
    """
    settings = get_settings()
    if not settings.tls.is_configured:
        logger.error("tls_not_configured", setting="TLS_CERTIFICATE_FILE")
        return 1

    endpoint = TLSEndpoint.from_settings(settings.tls)
    try:
        endpoint.init()
    except CertificateLoadError as e:
        logger.error("tls_initialization_failed", error=str(e))
        return 1

    server = await start_tls_server(endpoint, host, port)

    service = None
    if live_reload:
        service = start_watching_and_reloading(endpoint, settle_delay_ms=settle_delay_ms)

    try:
        async with server:
            await server.serve_forever()
    except asyncio.CancelledError:
        pass
    finally:
        if service is not None:
            service.stop()
        logger.info("tls_server_stopped")

    return 0


def main() -> None:
    """Main entry point."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Serve HTTPS with live certificate reload"
    )
    parser.add_argument(
        "--host",
        default=settings.server.host,
        help="Interface to bind (default: SERVER_HOST)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.server.port,
        help="Port to bind (default: SERVER_PORT)",
    )
    parser.add_argument(
        "--delay-ms",
        type=int,
        default=settings.watcher.settle_delay_ms,
        help="Settle delay before reloading (default: WATCHER_SETTLE_DELAY_MS)",
    )
    parser.add_argument(
        "--no-reload",
        action="store_true",
        help="Disable live certificate reload",
    )

    args = parser.parse_args()

    try:
        exit_code = asyncio.run(
            serve(
                args.host,
                args.port,
                settle_delay_ms=args.delay_ms,
                live_reload=not args.no_reload and settings.watcher.enabled,
            )
        )
    except KeyboardInterrupt:
        exit_code = 0

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
