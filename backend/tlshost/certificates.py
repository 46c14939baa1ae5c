"""
CertReload Certificate Inspection.

Reads identifying details out of PEM certificates.
Requires Python 3.11+.
"""

from dataclasses import dataclass
from datetime import datetime, timezone

from cryptography import x509
from cryptography.hazmat.primitives import hashes


@dataclass
class CertificateInfo:
    """Summary of a loaded certificate."""

    host_name: str
    path: str
    subject: str
    issuer: str
    serial_number: str
    not_valid_before: datetime
    not_valid_after: datetime
    fingerprint_sha256: str

    @property
    def days_remaining(self) -> int:
        """Whole days until the certificate expires (negative once expired)."""
        return (self.not_valid_after - datetime.now(timezone.utc)).days

    def to_dict(self) -> dict[str, str | int]:
        """Convert to dictionary for serialization."""
        return {
            "host_name": self.host_name,
            "path": self.path,
            "subject": self.subject,
            "issuer": self.issuer,
            "serial_number": self.serial_number,
            "not_valid_before": self.not_valid_before.isoformat(),
            "not_valid_after": self.not_valid_after.isoformat(),
            "days_remaining": self.days_remaining,
            "fingerprint_sha256": self.fingerprint_sha256,
        }


def parse_certificate(data: bytes, host_name: str, path: str) -> CertificateInfo:
    """
    Parse the first certificate of a PEM bundle.

    Args:
        data: PEM encoded certificate (a trailing chain is ignored)
        host_name: Host the certificate is served for
        path: File the certificate was read from

    Returns:
        CertificateInfo for the leaf certificate

    Raises:
        ValueError: If the data holds no valid PEM certificate
    """
    cert = x509.load_pem_x509_certificate(data)
    return CertificateInfo(
        host_name=host_name,
        path=path,
        subject=cert.subject.rfc4514_string(),
        issuer=cert.issuer.rfc4514_string(),
        serial_number=format(cert.serial_number, "x"),
        not_valid_before=cert.not_valid_before_utc,
        not_valid_after=cert.not_valid_after_utc,
        fingerprint_sha256=cert.fingerprint(hashes.SHA256()).hex(),
    )
