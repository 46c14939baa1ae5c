"""
CertReload TLS API Routes.

Status, certificate details and manual reload for the TLS endpoint.
Requires Python 3.11+.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from api.dependencies import get_reload_service, get_tls_server, require_tls_endpoint
from tlshost.endpoint import CertificateLoadError, TLSEndpoint
from utils.logger import get_logger

router = APIRouter()
logger = get_logger("api.tls")


class CertificateResponse(BaseModel):
    """Response model for a loaded certificate."""

    host_name: str
    path: str
    subject: str
    issuer: str
    serial_number: str
    not_valid_before: str
    not_valid_after: str
    days_remaining: int
    fingerprint_sha256: str


class CertificatesResponse(BaseModel):
    """Response model for the certificate listing."""

    generation: int
    certificates: list[CertificateResponse]


class ReloadStatsResponse(BaseModel):
    """Response model for reload counters."""

    attempts: int
    successes: int
    failures: int
    last_attempt_at: float | None = None
    last_success_at: float | None = None
    last_error: str | None = None


class TLSStatusResponse(BaseModel):
    """Response model for the reload status."""

    hosts: list[str]
    generation: int
    loaded_at: float | None = None
    addresses: list[str] = []
    reload_enabled: bool
    watching: bool
    watch_target: str | None = None
    setup_error: str | None = None
    reloader_state: str | None = None
    settle_delay_ms: int | None = None
    stats: ReloadStatsResponse | None = None


class ReloadResponse(BaseModel):
    """Response model for a manual reload."""

    reloaded: bool
    generation: int


@router.get("/status", response_model=TLSStatusResponse)
async def get_status(
    endpoint: TLSEndpoint = Depends(require_tls_endpoint),
) -> TLSStatusResponse:
    """Get the live reload status of the TLS endpoint."""
    status: dict[str, Any] = {
        "hosts": [config.host_name for config in endpoint.find_ssl_host_configs()],
        "generation": endpoint.generation,
        "loaded_at": endpoint.loaded_at,
        "reload_enabled": False,
        "watching": False,
    }

    server = get_tls_server()
    if server is not None:
        status["addresses"] = [
            f"{host}:{port}"
            for host, port, *_ in (sock.getsockname() for sock in server.sockets)
        ]

    service = get_reload_service()
    if service is not None:
        watch_target = service.watch_target
        setup_error = service.setup_error
        status.update(
            reload_enabled=service.is_running,
            watching=service.is_watching,
            watch_target=str(watch_target) if watch_target else None,
            setup_error=str(setup_error) if setup_error else None,
            reloader_state=service.reloader_state.value,
            settle_delay_ms=service.settle_delay_ms,
            stats=ReloadStatsResponse(**service.stats.to_dict()),
        )

    return TLSStatusResponse(**status)


@router.get("/certificates", response_model=CertificatesResponse)
async def get_certificates(
    endpoint: TLSEndpoint = Depends(require_tls_endpoint),
) -> CertificatesResponse:
    """List the certificates currently served."""
    return CertificatesResponse(
        generation=endpoint.generation,
        certificates=[
            CertificateResponse(**info.to_dict()) for info in endpoint.certificates
        ],
    )


@router.post("/reload", response_model=ReloadResponse)
def reload_certificates(
    endpoint: TLSEndpoint = Depends(require_tls_endpoint),
) -> ReloadResponse:
    """
    Reload certificates immediately.

    Goes through the reload service when it runs, so a manual reload
    never overlaps one triggered by the watcher.
    """
    logger.info("manual_reload_requested")

    service = get_reload_service()
    if service is not None:
        if not service.reload_now():
            raise HTTPException(
                status_code=500,
                detail=f"Reload failed: {service.stats.last_error}",
            )
        return ReloadResponse(reloaded=True, generation=endpoint.generation)

    try:
        endpoint.reload_ssl_host_configs()
    except CertificateLoadError as e:
        logger.error("manual_reload_failed", error=str(e))
        raise HTTPException(status_code=500, detail=f"Reload failed: {e}")

    return ReloadResponse(reloaded=True, generation=endpoint.generation)
