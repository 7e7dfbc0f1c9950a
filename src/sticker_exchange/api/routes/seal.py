"""Signing-authority REST API.

Routes:
    POST   /api/sign-seal   — Issue a seal for a holder

The authority stamps issuer, subject, issued-at and nonce itself; only the
`info` block of the request is carried into the signed payload.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from sticker_exchange.api.deps import get_signing_authority
from sticker_exchange.logging_config import get_logger
from sticker_exchange.schemas.api import SignSealRequest, SignSealResponse
from sticker_exchange.seals.authority import LocalSigningAuthority

router = APIRouter(prefix="/api", tags=["Seals"])
logger = get_logger(__name__)


@router.post(
    "/sign-seal",
    response_model=SignSealResponse,
    response_model_by_alias=True,
    summary="Issue a seal",
    description="Sign the submitted item attributes for the given holder.",
)
async def sign_seal(
    request: SignSealRequest,
    authority: LocalSigningAuthority = Depends(get_signing_authority),
) -> SignSealResponse:
    envelope = await authority.issue(request.holder, request.payload.info)
    return SignSealResponse(
        signed_payload=envelope.signed_payload,
        signature=envelope.signature,
        issuer=envelope.issuer,
    )
