"""
CertReload TLS Host Configuration.

Data models describing TLS hosts and their certificates.
Requires Python 3.11+.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from utils.config import TLSSettings

DEFAULT_SSL_HOST_NAME = "_default_"


@dataclass
class SSLHostConfigCertificate:
    """A certificate/key pair served by a host."""

    certificate_file: str | None
    certificate_key_file: str | None = None
    certificate_chain_file: str | None = None
    certificate_key_password: str | None = None


@dataclass
class SSLHostConfig:
    """TLS settings for one SNI host name."""

    host_name: str = DEFAULT_SSL_HOST_NAME
    certificates: list[SSLHostConfigCertificate] = field(default_factory=list)
    minimum_version: str = "TLSv1_2"
    ciphers: str | None = None

    @property
    def is_default(self) -> bool:
        """Check if this config answers connections without a matching SNI name."""
        return self.host_name == DEFAULT_SSL_HOST_NAME

    @classmethod
    def from_settings(cls, settings: TLSSettings) -> "SSLHostConfig":
        """Build a host config from TLS settings."""
        certificates = []
        if settings.certificate_file:
            certificates.append(
                SSLHostConfigCertificate(
                    certificate_file=settings.certificate_file,
                    certificate_key_file=settings.certificate_key_file,
                    certificate_chain_file=settings.certificate_chain_file,
                    certificate_key_password=settings.certificate_key_password,
                )
            )
        return cls(
            host_name=settings.host_name,
            certificates=certificates,
            minimum_version=settings.minimum_version,
            ciphers=settings.ciphers,
        )


def adjust_relative_path(path: str, base_dir: Path) -> Path:
    """
    Resolve a configured file path the way the TLS host loads it.

    Environment variables and ``~`` are expanded; relative paths are
    taken relative to ``base_dir``.

    Args:
        path: Path as written in the configuration
        base_dir: Directory relative paths are resolved against

    Returns:
        Absolute path to the file
    """
    expanded = Path(os.path.expandvars(path)).expanduser()
    if not expanded.is_absolute():
        expanded = base_dir / expanded
    return expanded.absolute()
