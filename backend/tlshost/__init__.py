"""
CertReload TLS Host Package.

Reloadable server-side TLS contexts built on the ssl module.
Requires Python 3.11+.
"""

from tlshost.endpoint import CertificateLoadError, TLSEndpoint
from tlshost.host_config import (
    DEFAULT_SSL_HOST_NAME,
    SSLHostConfig,
    SSLHostConfigCertificate,
    adjust_relative_path,
)

__all__ = [
    "CertificateLoadError",
    "TLSEndpoint",
    "DEFAULT_SSL_HOST_NAME",
    "SSLHostConfig",
    "SSLHostConfigCertificate",
    "adjust_relative_path",
]
