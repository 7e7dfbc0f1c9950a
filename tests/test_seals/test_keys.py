"""Tests for issuer keys, did:key encoding and compact signatures."""

from __future__ import annotations

import pytest
from cryptography.hazmat.primitives.asymmetric import ec

from sticker_exchange.domain.exceptions import SigningConfigurationError
from sticker_exchange.seals.keys import (
    SECP256K1,
    IssuerKeypair,
    encode_did_key,
    generate_keypair,
    parse_did_key,
    verify_signature,
)


class TestDidKey:
    def test_secp256k1_prefix(self) -> None:
        did = generate_keypair().did()
        # Multicodec 0xe7 0x01 always encodes to "zQ3s" for compressed points.
        assert did.startswith("did:key:zQ3s")

    def test_p256_prefix(self) -> None:
        key = ec.generate_private_key(ec.SECP256R1()).public_key()
        assert encode_did_key(key).startswith("did:key:zDn")

    def test_parse_round_trip(self) -> None:
        keypair = generate_keypair()
        public_key, curve = parse_did_key(keypair.did())
        assert curve is SECP256K1
        assert encode_did_key(public_key) == keypair.did()

    def test_parse_bare_multibase(self) -> None:
        did = generate_keypair().did()
        _, curve = parse_did_key(did.removeprefix("did:key:"))
        assert curve is SECP256K1

    def test_parse_rejects_other_multibase(self) -> None:
        with pytest.raises(ValueError, match="Unsupported multibase"):
            parse_did_key("did:key:uAbCd")


class TestSignatures:
    def test_sign_and_verify(self) -> None:
        keypair = generate_keypair()
        signature = keypair.sign(b"payload")
        assert len(signature) == 64
        assert verify_signature(keypair.did(), b"payload", signature)

    def test_signature_is_low_s(self) -> None:
        keypair = generate_keypair()
        for i in range(20):
            signature = keypair.sign(f"payload-{i}".encode())
            s = int.from_bytes(signature[32:], "big")
            assert s <= SECP256K1.order // 2

    def test_high_s_is_rejected(self) -> None:
        keypair = generate_keypair()
        signature = keypair.sign(b"payload")
        s = int.from_bytes(signature[32:], "big")
        high = signature[:32] + (SECP256K1.order - s).to_bytes(32, "big")
        assert not verify_signature(keypair.did(), b"payload", high)

    def test_other_key_does_not_verify(self) -> None:
        signature = generate_keypair().sign(b"payload")
        assert not verify_signature(generate_keypair().did(), b"payload", signature)

    def test_wrong_length(self) -> None:
        keypair = generate_keypair()
        assert not verify_signature(keypair.did(), b"payload", b"\x01" * 63)


class TestIssuerKeypair:
    def test_hex_round_trip(self) -> None:
        keypair = generate_keypair()
        restored = IssuerKeypair.from_hex(keypair.private_key_hex())
        assert restored.did() == keypair.did()

    @pytest.mark.parametrize("value", ["", "zz", "00" * 32, "ab" * 31])
    def test_invalid_hex(self, value: str) -> None:
        with pytest.raises(SigningConfigurationError):
            IssuerKeypair.from_hex(value)
