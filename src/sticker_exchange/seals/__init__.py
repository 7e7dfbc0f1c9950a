"""Seal issuance and verification.

    - SealEngine:              verifies seals, delegates issuance
    - LocalSigningAuthority:   holds the issuer key (signing service side)
    - HttpSigningAuthority:    client for a remote signing service
"""

from sticker_exchange.seals.authority import (
    HttpSigningAuthority,
    LocalSigningAuthority,
    serialize_payload,
)
from sticker_exchange.seals.engine import SealEngine, SealVerificationResult
from sticker_exchange.seals.keys import (
    IssuerKeypair,
    encode_did_key,
    generate_keypair,
    parse_did_key,
    verify_signature,
)

__all__ = [
    "HttpSigningAuthority",
    "IssuerKeypair",
    "LocalSigningAuthority",
    "SealEngine",
    "SealVerificationResult",
    "encode_did_key",
    "generate_keypair",
    "parse_did_key",
    "serialize_payload",
    "verify_signature",
]
