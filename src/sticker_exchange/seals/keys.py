"""Issuer keys, `did:key` encoding and compact ECDSA signatures.

Seals are signed with secp256k1 (P-256 keys are also accepted for
verification). Signatures are the 64-byte compact `r || s` form with a low
`s` value, base64-encoded on the wire, over the SHA-256 of the exact payload
bytes. Public keys travel as `did:key` identifiers: base58btc (`z` prefix)
of the multicodec-prefixed compressed point.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass

import base58
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    decode_dss_signature,
    encode_dss_signature,
)
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from sticker_exchange.domain.exceptions import SigningConfigurationError

DID_KEY_PREFIX = "did:key:"
BASE58BTC_PREFIX = "z"


@dataclass(frozen=True)
class _Curve:
    name: str
    multicodec: bytes
    order: int

    def instance(self) -> ec.EllipticCurve:
        return ec.SECP256K1() if self.name == "secp256k1" else ec.SECP256R1()


SECP256K1 = _Curve(
    name="secp256k1",
    multicodec=b"\xe7\x01",
    order=0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141,
)
P256 = _Curve(
    name="p256",
    multicodec=b"\x80\x24",
    order=0xFFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551,
)
_CURVES = (SECP256K1, P256)


def encode_did_key(public_key: ec.EllipticCurvePublicKey) -> str:
    """Derive the `did:key` identifier of a public key."""
    curve = SECP256K1 if isinstance(public_key.curve, ec.SECP256K1) else P256
    point = public_key.public_bytes(Encoding.X962, PublicFormat.CompressedPoint)
    encoded = base58.b58encode(curve.multicodec + point).decode("ascii")
    return f"{DID_KEY_PREFIX}{BASE58BTC_PREFIX}{encoded}"


def parse_did_key(did_key: str) -> tuple[ec.EllipticCurvePublicKey, _Curve]:
    """Decode a `did:key` (or bare `z...` multibase) into a public key.

    Raises:
        ValueError: If the identifier is not a supported multibase key.
    """
    multibase = did_key.removeprefix(DID_KEY_PREFIX)
    if not multibase.startswith(BASE58BTC_PREFIX):
        raise ValueError(f"Unsupported multibase encoding: {did_key!r}")
    raw = base58.b58decode(multibase[1:])
    for curve in _CURVES:
        if raw.startswith(curve.multicodec):
            point = raw[len(curve.multicodec):]
            public_key = ec.EllipticCurvePublicKey.from_encoded_point(curve.instance(), point)
            return public_key, curve
    raise ValueError(f"Unsupported key type in {did_key!r}")


def verify_signature(did_key: str, data: bytes, signature: bytes) -> bool:
    """Verify a compact low-S signature over `data`.

    Raises:
        ValueError: If `did_key` cannot be decoded.
    """
    public_key, curve = parse_did_key(did_key)
    if len(signature) != 64:
        return False
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:], "big")
    if not (0 < r < curve.order and 0 < s <= curve.order // 2):
        return False
    try:
        public_key.verify(encode_dss_signature(r, s), data, ec.ECDSA(hashes.SHA256()))
    except InvalidSignature:
        return False
    return True


class IssuerKeypair:
    """secp256k1 keypair held only by the signing authority."""

    def __init__(self, private_key: ec.EllipticCurvePrivateKey) -> None:
        self._private_key = private_key
        self._did = encode_did_key(private_key.public_key())

    @classmethod
    def from_hex(cls, private_key_hex: str) -> IssuerKeypair:
        """Import a 32-byte private key.

        Raises:
            SigningConfigurationError: If the hex is empty or not a valid key.
        """
        if not private_key_hex:
            raise SigningConfigurationError("Server Config Error: ISSUER_PRIVATE_KEY_HEX not set")
        try:
            raw = bytes.fromhex(private_key_hex)
        except ValueError as err:
            raise SigningConfigurationError("ISSUER_PRIVATE_KEY_HEX is not valid hex") from err
        secret = int.from_bytes(raw, "big")
        if len(raw) != 32 or not 0 < secret < SECP256K1.order:
            raise SigningConfigurationError("ISSUER_PRIVATE_KEY_HEX is not a secp256k1 key")
        return cls(ec.derive_private_key(secret, ec.SECP256K1()))

    def did(self) -> str:
        return self._did

    def private_key_hex(self) -> str:
        return self._private_key.private_numbers().private_value.to_bytes(32, "big").hex()

    def sign(self, data: bytes) -> bytes:
        """Sign `data`, returning the 64-byte compact low-S signature."""
        der = self._private_key.sign(data, ec.ECDSA(hashes.SHA256()))
        r, s = decode_dss_signature(der)
        if s > SECP256K1.order // 2:
            s = SECP256K1.order - s
        return r.to_bytes(32, "big") + s.to_bytes(32, "big")

    def sign_b64(self, data: bytes) -> str:
        return base64.b64encode(self.sign(data)).decode("ascii")


def generate_keypair() -> IssuerKeypair:
    return IssuerKeypair(ec.generate_private_key(ec.SECP256K1()))
