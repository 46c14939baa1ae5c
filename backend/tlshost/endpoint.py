"""
CertReload TLS Endpoint.

Builds SSL contexts from host configurations and swaps them
for new connections when certificates are reloaded.
Requires Python 3.11+.
"""

import ssl
import tempfile
import threading
import time
from pathlib import Path

from tlshost.certificates import CertificateInfo, parse_certificate
from tlshost.host_config import SSLHostConfig, SSLHostConfigCertificate, adjust_relative_path
from utils.config import TLSSettings
from utils.logger import LoggerMixin

_TLS_VERSIONS = {
    "TLSv1": ssl.TLSVersion.TLSv1,
    "TLSv1_1": ssl.TLSVersion.TLSv1_1,
    "TLSv1_2": ssl.TLSVersion.TLSv1_2,
    "TLSv1_3": ssl.TLSVersion.TLSv1_3,
}


class CertificateLoadError(Exception):
    """Raised when certificate material for a host cannot be loaded."""

    def __init__(self, host_name: str, message: str) -> None:
        super().__init__(f"{host_name}: {message}")
        self.host_name = host_name


class TLSEndpoint(LoggerMixin):
    """
    A reloadable set of server-side SSL contexts.

    Servers listen with ``server_context``. Its SNI callback hands each
    new connection the context currently registered for the requested
    host name, so a reload only affects connections accepted after the
    swap. Established connections keep the context they negotiated with.
    """

    def __init__(
        self,
        host_configs: list[SSLHostConfig],
        base_dir: Path | None = None,
    ) -> None:
        """
        Initialize the endpoint.

        Args:
            host_configs: TLS hosts served by this endpoint
            base_dir: Directory relative certificate paths are resolved against
        """
        self._host_configs = list(host_configs)
        self._base_dir = base_dir or Path.cwd()
        self._contexts: dict[str, ssl.SSLContext] = {}
        self._certificates: list[CertificateInfo] = []
        self._server_context: ssl.SSLContext | None = None
        self._generation = 0
        self._loaded_at: float | None = None
        self._swap_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: TLSSettings) -> "TLSEndpoint":
        """Create an endpoint serving the single host described by settings."""
        return cls([SSLHostConfig.from_settings(settings)], base_dir=settings.base_dir)

    def init(self) -> None:
        """
        Load all certificates and create the listening context.

        Raises:
            CertificateLoadError: If any host's certificate cannot be loaded
        """
        if not self._host_configs:
            raise CertificateLoadError("-", "No SSL host configured")

        self._swap(*self._build_contexts())

        server_context = self._build_context(self._default_host_config())
        server_context.sni_callback = self._select_context
        self._server_context = server_context

        self.log.info(
            "tls_endpoint_initialized",
            hosts=[config.host_name for config in self._host_configs],
            base_dir=str(self._base_dir),
        )

    def find_ssl_host_configs(self) -> list[SSLHostConfig]:
        """Get the configured TLS hosts."""
        return list(self._host_configs)

    def resolve_path(self, path: str) -> Path:
        """Resolve a configured certificate path the same way it is loaded."""
        return adjust_relative_path(path, self._base_dir)

    def reload_ssl_host_configs(self) -> None:
        """
        Re-read certificate material for every host and swap it in.

        All contexts are built before any is replaced; if one host fails
        the previous contexts stay in service.

        Raises:
            CertificateLoadError: If any host's certificate cannot be loaded
        """
        self.log.info("reloading_ssl_host_configs", hosts=len(self._host_configs))
        contexts, certificates = self._build_contexts()
        self._swap(contexts, certificates)
        self.log.info("ssl_host_configs_reloaded", generation=self._generation)

    def get_context(self, server_name: str | None = None) -> ssl.SSLContext:
        """
        Get the context new connections for a host name are served with.

        Falls back to the default host when the name is unknown or absent.
        """
        contexts = self._contexts
        if server_name is not None and server_name in contexts:
            return contexts[server_name]
        return contexts[self._default_host_config().host_name]

    @property
    def server_context(self) -> ssl.SSLContext:
        """Context servers should listen with."""
        if self._server_context is None:
            raise RuntimeError("TLS endpoint has not been initialized")
        return self._server_context

    @property
    def is_initialized(self) -> bool:
        return self._server_context is not None

    @property
    def generation(self) -> int:
        """Number of times the context set has been loaded."""
        return self._generation

    @property
    def loaded_at(self) -> float | None:
        return self._loaded_at

    @property
    def certificates(self) -> list[CertificateInfo]:
        """Details of the certificates currently in service."""
        return list(self._certificates)

    def _select_context(
        self,
        ssl_object: ssl.SSLObject | ssl.SSLSocket,
        server_name: str | None,
        server_context: ssl.SSLContext,
    ) -> None:
        ssl_object.context = self.get_context(server_name)

    def _swap(
        self,
        contexts: dict[str, ssl.SSLContext],
        certificates: list[CertificateInfo],
    ) -> None:
        with self._swap_lock:
            self._contexts = contexts
            self._certificates = certificates
            self._generation += 1
            self._loaded_at = time.time()

    def _default_host_config(self) -> SSLHostConfig:
        for config in self._host_configs:
            if config.is_default:
                return config
        return self._host_configs[0]

    def _build_contexts(
        self,
    ) -> tuple[dict[str, ssl.SSLContext], list[CertificateInfo]]:
        contexts: dict[str, ssl.SSLContext] = {}
        certificates: list[CertificateInfo] = []
        for config in self._host_configs:
            contexts[config.host_name] = self._build_context(config, certificates)
        return contexts, certificates

    def _build_context(
        self,
        config: SSLHostConfig,
        certificates: list[CertificateInfo] | None = None,
    ) -> ssl.SSLContext:
        """Create a server context holding every certificate of a host."""
        if not config.certificates:
            raise CertificateLoadError(config.host_name, "No certificate configured")

        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.minimum_version = _TLS_VERSIONS[config.minimum_version]
        try:
            if config.ciphers:
                context.set_ciphers(config.ciphers)
        except ssl.SSLError as e:
            raise CertificateLoadError(config.host_name, f"Invalid ciphers: {e}") from e

        for certificate in config.certificates:
            info = self._load_certificate(context, config.host_name, certificate)
            if certificates is not None:
                certificates.append(info)
        return context

    def _load_certificate(
        self,
        context: ssl.SSLContext,
        host_name: str,
        certificate: SSLHostConfigCertificate,
    ) -> CertificateInfo:
        if certificate.certificate_file is None:
            raise CertificateLoadError(host_name, "Certificate file is not set")

        cert_path = self.resolve_path(certificate.certificate_file)
        key_path = (
            self.resolve_path(certificate.certificate_key_file)
            if certificate.certificate_key_file
            else None
        )

        try:
            cert_data = cert_path.read_bytes()
            if certificate.certificate_chain_file:
                chain_path = self.resolve_path(certificate.certificate_chain_file)
                cert_data = cert_data.rstrip(b"\n") + b"\n" + chain_path.read_bytes()

            # load_cert_chain only reads from files, so the combined bundle
            # is staged in a private temporary directory
            with tempfile.TemporaryDirectory(prefix="certreload-") as staging:
                bundle = Path(staging) / "bundle.pem"
                bundle.write_bytes(cert_data)
                context.load_cert_chain(
                    certfile=str(bundle),
                    keyfile=str(key_path) if key_path else None,
                    password=certificate.certificate_key_password,
                )

            return parse_certificate(cert_data, host_name, str(cert_path))
        except (OSError, ValueError, ssl.SSLError) as e:
            self.log.debug(
                "certificate_load_failed",
                host=host_name,
                certificate=str(cert_path),
                error=str(e),
            )
            raise CertificateLoadError(
                host_name, f"Cannot load certificate {cert_path}: {e}"
            ) from e
