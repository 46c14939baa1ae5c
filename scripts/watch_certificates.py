#!/usr/bin/env python3
"""
CertReload Certificate Watch Script.

Watches the directory of a certificate file and runs a command once
each burst of changes has settled, e.g. to reload a reverse proxy.
Requires Python 3.11+.

Usage:
    python scripts/watch_certificates.py /etc/letsencrypt/live/example.com/fullchain.pem \\
        --command "nginx -s reload"
"""

import argparse
import shlex
import signal
import subprocess
import sys
import threading
from collections.abc import Callable
from pathlib import Path

# Add backend to path
sys.path.insert(0, str(Path(__file__).parent.parent / "backend"))

from tlshost.endpoint import TLSEndpoint
from tlshost.host_config import SSLHostConfig, SSLHostConfigCertificate
from utils.config import get_settings
from utils.logger import configure_logging, get_logger
from watcher.service import start_watching_and_reloading


configure_logging()
logger = get_logger("watch_certificates")


def make_command_reload(command: str, timeout: float) -> Callable[[], None]:
    """Create a reload operation running a shell command."""
    argv = shlex.split(command)

    def run_command() -> None:
        logger.info("running_reload_command", command=command)
        result = subprocess.run(
            argv,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=True,
        )
        if result.stdout.strip():
            logger.debug("reload_command_output", output=result.stdout.strip())

    return run_command


def main() -> None:
    """Main entry point."""
    settings = get_settings()

    parser = argparse.ArgumentParser(
        description="Run a command when certificate files change"
    )
    parser.add_argument(
        "certificate_file",
        type=str,
        help="Certificate file whose directory is watched",
    )
    parser.add_argument(
        "--command",
        required=True,
        help="Command to run after changes settle",
    )
    parser.add_argument(
        "--delay-ms",
        type=int,
        default=settings.watcher.settle_delay_ms,
        help="Settle delay before running the command (default: WATCHER_SETTLE_DELAY_MS)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=60.0,
        help="Seconds before the command is killed",
    )

    args = parser.parse_args()

    # The endpoint only resolves the watched path here; it is never loaded
    host = TLSEndpoint(
        [SSLHostConfig(certificates=[SSLHostConfigCertificate(args.certificate_file)])],
        base_dir=settings.tls.base_dir,
    )
    service = start_watching_and_reloading(
        host,
        settle_delay_ms=args.delay_ms,
        reload=make_command_reload(args.command, args.timeout),
    )

    stopped = threading.Event()
    signal.signal(signal.SIGTERM, lambda signum, frame: stopped.set())
    try:
        if service.wait_until_watching():
            # Runs until SIGTERM or Ctrl-C
            while service.is_watching and not stopped.wait(1.0):
                pass
    except KeyboardInterrupt:
        pass
    finally:
        service.stop()

    sys.exit(1 if service.watch_target is None or service.setup_error else 0)


if __name__ == "__main__":
    main()
