"""
CertReload Test Configuration.

Pytest fixtures and configuration.
Requires Python 3.11+.
"""

import time
from collections.abc import Callable, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from tlshost.endpoint import TLSEndpoint
from tlshost.host_config import SSLHostConfig, SSLHostConfigCertificate
from utils.config import get_settings


def generate_certificate(common_name: str = "localhost") -> tuple[bytes, bytes]:
    """Create a self-signed certificate and its private key as PEM."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=30))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False)
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM)
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    return cert_pem, key_pem


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Make every test read settings from its own environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def write_certificate() -> Callable[..., tuple[bytes, bytes]]:
    """Write a fresh certificate/key pair into a directory."""

    def write(
        directory: Path,
        common_name: str = "localhost",
        cert_name: str = "cert.pem",
        key_name: str = "key.pem",
    ) -> tuple[bytes, bytes]:
        cert_pem, key_pem = generate_certificate(common_name)
        (directory / key_name).write_bytes(key_pem)
        (directory / cert_name).write_bytes(cert_pem)
        return cert_pem, key_pem

    return write


@pytest.fixture
def cert_dir(tmp_path: Path, write_certificate: Callable[..., tuple[bytes, bytes]]) -> Path:
    """Directory holding cert.pem and key.pem."""
    directory = tmp_path / "certs"
    directory.mkdir()
    write_certificate(directory)
    return directory


@pytest.fixture
def host_config(cert_dir: Path) -> SSLHostConfig:
    """Default host serving the certificate in cert_dir."""
    return SSLHostConfig(
        certificates=[
            SSLHostConfigCertificate(
                certificate_file=str(cert_dir / "cert.pem"),
                certificate_key_file=str(cert_dir / "key.pem"),
            )
        ]
    )


@pytest.fixture
def endpoint(host_config: SSLHostConfig, tmp_path: Path) -> TLSEndpoint:
    """Initialized TLS endpoint for cert_dir."""
    tls_endpoint = TLSEndpoint([host_config], base_dir=tmp_path)
    tls_endpoint.init()
    return tls_endpoint


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll a condition until it holds or the timeout expires."""

    def wait(condition: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if condition():
                return True
            time.sleep(interval)
        return condition()

    return wait
