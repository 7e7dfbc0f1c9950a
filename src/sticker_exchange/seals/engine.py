"""Seal Verification Engine.

Decides, without a trusted intermediary, whether a sticker found in a
repository is genuine, untampered and legitimately held there.

Verification flow (first failing step wins):
    1. No signature or payload      -> invalid, not tampered.
    2. Payload does not parse       -> invalid, tampered.
    3. payload.sub != holder        -> invalid, tampered, stolen.
    4. payload.iss not trusted      -> invalid, tampered.
    5. Sealed fields != record      -> invalid, tampered (all mismatches listed).
    6. Issuer key not resolvable    -> invalid, tampered.
    7. Signature does not verify    -> invalid, tampered.

Issuance is delegated to a SigningAuthority; this engine never holds the
private key.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from sticker_exchange.domain.exceptions import (
    DirectoryResolutionError,
    IntegrityViolationError,
    SigningError,
    StorageError,
)
from sticker_exchange.logging_config import get_logger
from sticker_exchange.schemas.records import SealEnvelope, SealInfo, SealPayload, Sticker
from sticker_exchange.seals.keys import verify_signature

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sticker_exchange.domain.protocols import DirectoryResolver, SigningAuthority
    from sticker_exchange.infrastructure.caches import ProtocolCaches

logger = get_logger(__name__)

# (key inside payload.info, Sticker attribute)
SEALED_FIELDS: tuple[tuple[str, str], ...] = (
    ("model", "model"),
    ("obtainedFrom", "obtained_from"),
    ("originalCreator", "original_owner"),
    ("name", "name"),
    ("message", "message"),
    ("shape", "shape"),
)


@dataclass(frozen=True)
class SealVerificationResult:
    """Outcome of verifying one sticker's seal.

    Attributes:
        is_valid: The seal is genuine and attests the current holder.
        is_tampered: The record or payload shows evidence of forgery.
        is_stolen: The seal was issued to a different holder.
        reason: Diagnostic text; never shown as a hard error.
        trusted_payload: The parsed payload, only set when valid.
    """

    is_valid: bool
    is_tampered: bool = False
    is_stolen: bool = False
    reason: str | None = None
    trusted_payload: SealPayload | None = None

    def raise_for_integrity(self) -> None:
        """Raise IntegrityViolationError for a stolen or tampered item."""
        if self.is_stolen or self.is_tampered:
            raise IntegrityViolationError(self.reason or "seal rejected", is_stolen=self.is_stolen)


def _invalid(reason: str, *, tampered: bool = True, stolen: bool = False) -> SealVerificationResult:
    return SealVerificationResult(
        is_valid=False, is_tampered=tampered, is_stolen=stolen, reason=reason
    )


class SealEngine:
    """Issues seals through the signing authority and verifies them locally."""

    def __init__(
        self,
        directory: DirectoryResolver,
        caches: ProtocolCaches,
        trusted_issuers: Iterable[str],
        cdn_image_template: str,
        authority: SigningAuthority | None = None,
    ) -> None:
        self._directory = directory
        self._caches = caches
        self._trusted_issuers = frozenset(trusted_issuers)
        self._cdn_image_template = cdn_image_template
        self._authority = authority

    @property
    def cdn_image_template(self) -> str:
        return self._cdn_image_template

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    async def issue(self, holder: str, info: SealInfo) -> SealEnvelope:
        """Request a seal attesting `info` for `holder`.

        Raises:
            SigningError: If no authority is configured or it fails.
        """
        if self._authority is None:
            raise SigningError("No signing authority configured")
        return await self._authority.issue(holder, info)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    async def verify(self, sticker: Sticker, claimed_holder: str) -> SealVerificationResult:
        """Verify `sticker` as found in `claimed_holder`'s repository."""
        if not sticker.signed_payload or not sticker.signature:
            return _invalid("No signature", tampered=False)

        try:
            payload = SealPayload.model_validate_json(sticker.signed_payload)
        except ValidationError:
            return _invalid("Malformed Payload")

        if payload.subject != claimed_holder:
            return _invalid(
                f"Owner mismatch: Data is for {payload.subject}, "
                f"but found in {claimed_holder}'s repo.",
                stolen=True,
            )

        if payload.issuer not in self._trusted_issuers:
            return _invalid(f"Unknown Issuer: {payload.issuer}")

        mismatches = self._field_mismatches(sticker, payload.info)
        if mismatches:
            return _invalid(f"Sealed fields mismatch: {', '.join(mismatches)}")

        key = await self._issuer_key(payload.issuer)
        if key is None:
            return _invalid("Could not resolve Issuer Key")

        try:
            signature = base64.b64decode(sticker.signature, validate=True)
        except (binascii.Error, ValueError):
            return _invalid("Malformed Signature")

        try:
            valid = verify_signature(key, sticker.signed_payload.encode("utf-8"), signature)
        except ValueError as exc:
            return _invalid(f"Crypto Error: {exc}")

        if not valid:
            return _invalid("Invalid Signature")
        return SealVerificationResult(is_valid=True, trusted_payload=payload)

    def _field_mismatches(self, sticker: Sticker, info: dict[str, Any]) -> list[str]:
        mismatches = []
        for info_key, attribute in SEALED_FIELDS:
            sealed = info.get(info_key)
            if sealed is None:
                continue
            actual = getattr(sticker, attribute)
            if actual != sealed:
                mismatches.append(f"{info_key} (sealed={sealed!r}, record={actual!r})")

        sealed_image = info.get("image")
        if sealed_image:
            actual_image = sticker.resolved_image(self._cdn_image_template)
            if actual_image != sealed_image:
                mismatches.append(f"image (sealed={sealed_image!r}, record={actual_image!r})")
        return mismatches

    async def _issuer_key(self, issuer: str) -> str | None:
        async def load() -> str | None:
            try:
                return await self._directory.resolve_signing_key(issuer)
            except (DirectoryResolutionError, StorageError) as exc:
                logger.warning("seal.issuer_key_unresolved", issuer=issuer, error=exc.message)
                return None

        return await self._caches.issuer_keys.get_or_load(issuer, load)
