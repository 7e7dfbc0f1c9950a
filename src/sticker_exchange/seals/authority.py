"""Signing authorities.

`LocalSigningAuthority` holds the issuer key and is what the
`/api/sign-seal` service runs. `HttpSigningAuthority` is the client every
exchange participant uses to reach that service.

The authority overwrites every trust-critical claim itself:
    iss -> the issuer DID
    sub -> the holder the seal is issued to
    iat -> now (unix seconds)
    jti -> a random nonce
Only `info` comes from the caller.
"""

from __future__ import annotations

import json
import time
import uuid
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from sticker_exchange.domain.exceptions import SigningError
from sticker_exchange.logging_config import get_logger
from sticker_exchange.schemas.records import SealEnvelope, SealInfo
from sticker_exchange.seals.keys import IssuerKeypair

if TYPE_CHECKING:
    from collections.abc import Callable

logger = get_logger(__name__)

SIGN_SEAL_PATH = "/api/sign-seal"


def serialize_payload(claims: dict) -> str:
    """Compact JSON, the exact bytes that get signed."""
    return json.dumps(claims, separators=(",", ":"), ensure_ascii=False)


class LocalSigningAuthority:
    """Signs seals with an in-process issuer key."""

    def __init__(
        self,
        private_key_hex: str | None = None,
        keypair: IssuerKeypair | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._private_key_hex = private_key_hex
        self._keypair = keypair
        self._clock = clock

    def keypair(self) -> IssuerKeypair:
        """Return the issuer key, importing it on first use.

        Raises:
            SigningConfigurationError: If no usable key is configured.
        """
        if self._keypair is None:
            self._keypair = IssuerKeypair.from_hex(self._private_key_hex or "")
        return self._keypair

    async def issue(self, holder: str, info: SealInfo) -> SealEnvelope:
        key = self.keypair()
        issuer = key.did()
        claims = {
            "info": info.to_payload(),
            "iss": issuer,
            "sub": holder,
            "iat": int(self._clock()),
            "jti": str(uuid.uuid4()),
        }
        signed_payload = serialize_payload(claims)
        signature = key.sign_b64(signed_payload.encode("utf-8"))

        logger.info("seal.issued", holder=holder, model=info.model, nonce=claims["jti"])
        return SealEnvelope(signed_payload=signed_payload, signature=signature, issuer=issuer)


class HttpSigningAuthority:
    """Requests seals from a remote signing-authority service."""

    def __init__(self, base_url: str, http: httpx.AsyncClient) -> None:
        self._url = base_url.rstrip("/") + SIGN_SEAL_PATH
        self._http = http

    async def issue(self, holder: str, info: SealInfo) -> SealEnvelope:
        body = {"userDid": holder, "payload": {"info": info.to_payload()}}
        try:
            response = await self._post(body)
        except httpx.HTTPError as exc:
            logger.warning("seal.authority_unreachable", holder=holder, error=str(exc))
            raise SigningError(f"Signing authority unreachable: {exc}") from exc

        if response.status_code != 200:
            logger.warning(
                "seal.authority_rejected",
                holder=holder,
                status=response.status_code,
            )
            raise SigningError(f"Sign API error: HTTP {response.status_code}")

        try:
            return SealEnvelope.model_validate(response.json())
        except (ValidationError, ValueError) as exc:
            raise SigningError(f"Malformed signing authority reply: {exc}") from exc

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=5),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _post(self, body: dict) -> httpx.Response:
        """POST with exponential backoff on transport failures only."""
        return await self._http.post(self._url, json=body)
