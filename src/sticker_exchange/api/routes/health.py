"""Health check endpoint.

Reports whether the issuer key is usable. Used by load balancers and
monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sticker_exchange import __version__
from sticker_exchange.api.deps import get_signing_authority
from sticker_exchange.domain.exceptions import SigningConfigurationError
from sticker_exchange.logging_config import get_logger
from sticker_exchange.schemas.api import HealthResponse
from sticker_exchange.seals.authority import LocalSigningAuthority

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the signing authority.",
)
async def health_check(
    authority: LocalSigningAuthority = Depends(get_signing_authority),
) -> HealthResponse:
    try:
        issuer = authority.keypair().did()
    except SigningConfigurationError as exc:
        logger.error("health.issuer_unavailable", error=exc.message)
        return HealthResponse(status="degraded", version=__version__, issuer="unconfigured")
    return HealthResponse(status="ok", version=__version__, issuer=issuer)
