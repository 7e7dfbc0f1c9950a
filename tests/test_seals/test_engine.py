"""Tests for the seal verification engine.

Each class covers one step of the verification flow, in the order the
engine applies them.
"""

from __future__ import annotations

import base64
import json

import pytest

from sticker_exchange.domain.exceptions import (
    IntegrityViolationError,
    SigningError,
)
from sticker_exchange.infrastructure.caches import ProtocolCaches
from sticker_exchange.infrastructure.memory import StaticDirectory
from sticker_exchange.schemas.records import BlobRef, SealInfo, Sticker
from sticker_exchange.seals.authority import LocalSigningAuthority, serialize_payload
from sticker_exchange.seals.engine import SealEngine
from sticker_exchange.seals.keys import generate_keypair
from tests.factories import ALICE, BOB, CDN, avatar_of


@pytest.fixture
def engine(issuer, authority) -> SealEngine:
    return SealEngine(
        directory=StaticDirectory(),
        caches=ProtocolCaches(),
        trusted_issuers=[issuer.did()],
        cdn_image_template=CDN,
        authority=authority,
    )


async def sealed_sticker(authority: LocalSigningAuthority, holder: str, **info) -> Sticker:
    info.setdefault("model", "default")
    info.setdefault("image", avatar_of(holder))
    seal = SealInfo(**info)
    envelope = await authority.issue(holder, seal)
    return Sticker(
        image=seal.image,
        subject_did=holder,
        original_owner=seal.original_creator or holder,
        model=seal.model,
        obtained_from=seal.obtained_from,
        name=seal.name,
        message=seal.message,
        shape=seal.shape,
        signature=envelope.signature,
        signed_payload=envelope.signed_payload,
    )


class TestValidSeal:
    @pytest.mark.asyncio
    async def test_round_trip(self, engine, authority) -> None:
        sticker = await sealed_sticker(authority, ALICE, obtained_from=BOB, shape="round")
        result = await engine.verify(sticker, ALICE)
        assert result.is_valid
        assert not result.is_tampered
        assert result.trusted_payload.subject == ALICE
        assert result.trusted_payload.info["obtainedFrom"] == BOB

    @pytest.mark.asyncio
    async def test_issuer_stamps_trusted_claims(self, authority, issuer) -> None:
        envelope = await authority.issue(ALICE, SealInfo(model="holo"))
        claims = json.loads(envelope.signed_payload)
        assert set(claims) == {"info", "iss", "sub", "iat", "jti"}
        assert claims["iss"] == issuer.did() == envelope.issuer
        assert claims["sub"] == ALICE
        assert envelope.signed_payload == serialize_payload(claims)

    @pytest.mark.asyncio
    async def test_unsealed_display_fields_may_change(self, engine, authority) -> None:
        sticker = await sealed_sticker(authority, ALICE)
        sticker = sticker.model_copy(update={"description": "edited later"})
        assert (await engine.verify(sticker, ALICE)).is_valid


class TestMissingSeal:
    @pytest.mark.asyncio
    async def test_no_signature(self, engine) -> None:
        result = await engine.verify(Sticker(model="default"), ALICE)
        assert not result.is_valid
        assert not result.is_tampered
        assert result.reason == "No signature"


class TestMalformedPayload:
    @pytest.mark.asyncio
    async def test_not_json(self, engine, authority) -> None:
        sticker = await sealed_sticker(authority, ALICE)
        sticker = sticker.model_copy(update={"signed_payload": "{not json"})
        result = await engine.verify(sticker, ALICE)
        assert result.is_tampered
        assert result.reason == "Malformed Payload"


class TestStolenSeal:
    @pytest.mark.asyncio
    async def test_copied_into_other_repo(self, engine, authority) -> None:
        sticker = await sealed_sticker(authority, ALICE)
        result = await engine.verify(sticker, BOB)
        assert not result.is_valid
        assert result.is_stolen
        assert result.is_tampered
        assert BOB in result.reason

    @pytest.mark.asyncio
    async def test_raise_for_integrity(self, engine, authority) -> None:
        sticker = await sealed_sticker(authority, ALICE)
        result = await engine.verify(sticker, BOB)
        with pytest.raises(IntegrityViolationError) as exc_info:
            result.raise_for_integrity()
        assert exc_info.value.is_stolen


class TestUnknownIssuer:
    @pytest.mark.asyncio
    async def test_self_signed_seal(self, engine) -> None:
        forger = LocalSigningAuthority(keypair=generate_keypair())
        sticker = await sealed_sticker(forger, ALICE)
        result = await engine.verify(sticker, ALICE)
        assert result.is_tampered
        assert result.reason.startswith("Unknown Issuer")


class TestFieldMismatch:
    @pytest.mark.asyncio
    async def test_every_mismatch_is_listed(self, engine, authority) -> None:
        sticker = await sealed_sticker(authority, ALICE, model="default", shape="round")
        forged = sticker.model_copy(update={"model": "holo", "shape": "star"})
        result = await engine.verify(forged, ALICE)
        assert result.is_tampered
        assert "model" in result.reason
        assert "shape" in result.reason

    @pytest.mark.asyncio
    async def test_image_swap(self, engine, authority) -> None:
        sticker = await sealed_sticker(authority, ALICE)
        forged = sticker.model_copy(update={"image": "https://evil.test/me.jpg"})
        result = await engine.verify(forged, ALICE)
        assert "image" in result.reason

    @pytest.mark.asyncio
    async def test_blob_image_compared_as_cdn_url(self, engine, authority) -> None:
        url = CDN.format(did=ALICE, cid="bafkcid")
        sticker = await sealed_sticker(authority, ALICE, image=url)
        blob = sticker.model_copy(update={"image": BlobRef(ref={"$link": "bafkcid"})})
        assert (await engine.verify(blob, ALICE)).is_valid


class TestIssuerKey:
    @pytest.mark.asyncio
    async def test_unresolvable_key(self, issuer, authority) -> None:
        directory = StaticDirectory()
        directory.unresolvable.add(issuer.did())
        engine = SealEngine(directory, ProtocolCaches(), [issuer.did()], CDN, authority)

        result = await engine.verify(await sealed_sticker(authority, ALICE), ALICE)
        assert result.is_tampered
        assert result.reason == "Could not resolve Issuer Key"

    @pytest.mark.asyncio
    async def test_key_is_resolved_once(self, issuer, authority) -> None:
        directory = StaticDirectory()
        engine = SealEngine(directory, ProtocolCaches(), [issuer.did()], CDN, authority)
        for _ in range(3):
            await engine.verify(await sealed_sticker(authority, ALICE), ALICE)
        assert directory.key_lookups == 1

    @pytest.mark.asyncio
    async def test_failed_lookup_is_not_cached(self, issuer, authority) -> None:
        directory = StaticDirectory()
        directory.unresolvable.add(issuer.did())
        engine = SealEngine(directory, ProtocolCaches(), [issuer.did()], CDN, authority)
        sticker = await sealed_sticker(authority, ALICE)

        assert not (await engine.verify(sticker, ALICE)).is_valid
        directory.unresolvable.clear()
        assert (await engine.verify(sticker, ALICE)).is_valid


class TestSignature:
    @pytest.mark.asyncio
    async def test_payload_edit_breaks_signature(self, engine, authority) -> None:
        sticker = await sealed_sticker(authority, ALICE)
        claims = json.loads(sticker.signed_payload)
        claims["iat"] += 1
        forged = sticker.model_copy(update={"signed_payload": serialize_payload(claims)})
        result = await engine.verify(forged, ALICE)
        assert result.reason == "Invalid Signature"

    @pytest.mark.asyncio
    async def test_not_base64(self, engine, authority) -> None:
        sticker = await sealed_sticker(authority, ALICE)
        forged = sticker.model_copy(update={"signature": "***"})
        assert (await engine.verify(forged, ALICE)).reason == "Malformed Signature"

    @pytest.mark.asyncio
    async def test_truncated_signature(self, engine, authority) -> None:
        sticker = await sealed_sticker(authority, ALICE)
        raw = base64.b64decode(sticker.signature)[:40]
        forged = sticker.model_copy(update={"signature": base64.b64encode(raw).decode()})
        assert (await engine.verify(forged, ALICE)).reason == "Invalid Signature"


class TestIssuance:
    @pytest.mark.asyncio
    async def test_without_authority(self, issuer) -> None:
        engine = SealEngine(StaticDirectory(), ProtocolCaches(), [issuer.did()], CDN)
        with pytest.raises(SigningError):
            await engine.issue(ALICE, SealInfo(model="default"))
