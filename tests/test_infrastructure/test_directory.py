"""Tests for DID document and handle resolution."""

from __future__ import annotations

import httpx
import pytest

from sticker_exchange.domain.exceptions import DirectoryResolutionError
from sticker_exchange.infrastructure.directory import PlcDirectoryResolver
from sticker_exchange.infrastructure.http_client import build_http_client
from sticker_exchange.seals.keys import generate_keypair

PLC_DID = "did:plc:ewvi7nxzyoun6zhxrhs64oiz"


def did_document(did: str, multibase: str) -> dict:
    return {
        "id": did,
        "verificationMethod": [
            {"id": f"{did}#other", "publicKeyMultibase": "zOther"},
            {"id": f"{did}#atproto", "publicKeyMultibase": multibase},
        ],
        "service": [
            {"id": "#atproto_pds", "type": "AtprotoPersonalDataServer",
             "serviceEndpoint": "https://pds.example.com/"},
        ],
    }


def resolver_for(handler) -> tuple[httpx.AsyncClient, PlcDirectoryResolver]:
    http = build_http_client(transport=httpx.MockTransport(handler))
    return http, PlcDirectoryResolver(http, "https://plc.test", "https://appview.test")


class TestSigningKey:
    @pytest.mark.asyncio
    async def test_did_key_is_its_own_key(self) -> None:
        did = generate_keypair().did()
        http, resolver = resolver_for(lambda request: httpx.Response(500))
        async with http:
            assert await resolver.resolve_signing_key(did) == did

    @pytest.mark.asyncio
    async def test_plc_prefers_atproto_method(self) -> None:
        urls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, json=did_document(PLC_DID, "zQ3sKey"))

        http, resolver = resolver_for(handler)
        async with http:
            assert await resolver.resolve_signing_key(PLC_DID) == "did:key:zQ3sKey"
        assert urls == [f"https://plc.test/{PLC_DID}"]

    @pytest.mark.asyncio
    async def test_did_web(self) -> None:
        urls: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            urls.append(str(request.url))
            return httpx.Response(200, json=did_document("did:web:issuer.test", "zQ3sWeb"))

        http, resolver = resolver_for(handler)
        async with http:
            assert await resolver.resolve_signing_key("did:web:issuer.test") == "did:key:zQ3sWeb"
        assert urls == ["https://issuer.test/.well-known/did.json"]

    @pytest.mark.asyncio
    async def test_document_without_keys(self) -> None:
        http, resolver = resolver_for(lambda request: httpx.Response(200, json={"id": PLC_DID}))
        async with http:
            with pytest.raises(DirectoryResolutionError):
                await resolver.resolve_signing_key(PLC_DID)

    @pytest.mark.asyncio
    async def test_unsupported_method(self) -> None:
        http, resolver = resolver_for(lambda request: httpx.Response(200, json={}))
        async with http:
            with pytest.raises(DirectoryResolutionError, match="unsupported"):
                await resolver.resolve_signing_key("did:example:123")


class TestEndpoint:
    @pytest.mark.asyncio
    async def test_pds_service(self) -> None:
        http, resolver = resolver_for(
            lambda request: httpx.Response(200, json=did_document(PLC_DID, "zQ3s"))
        )
        async with http:
            assert await resolver.resolve_endpoint(PLC_DID) == "https://pds.example.com"

    @pytest.mark.asyncio
    async def test_did_key_has_no_repository(self) -> None:
        http, resolver = resolver_for(lambda request: httpx.Response(500))
        async with http:
            with pytest.raises(DirectoryResolutionError):
                await resolver.resolve_endpoint(generate_keypair().did())

    @pytest.mark.asyncio
    async def test_directory_down(self) -> None:
        http, resolver = resolver_for(lambda request: httpx.Response(503))
        async with http:
            with pytest.raises(DirectoryResolutionError, match="HTTP 503"):
                await resolver.resolve_endpoint(PLC_DID)


class TestHandle:
    @pytest.mark.asyncio
    async def test_resolve_handle(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"did": PLC_DID})

        http, resolver = resolver_for(handler)
        async with http:
            assert await resolver.resolve_handle("hub.test") == PLC_DID
        assert requests[0].url.host == "appview.test"
        assert requests[0].url.params["handle"] == "hub.test"

    @pytest.mark.asyncio
    async def test_no_did_in_reply(self) -> None:
        http, resolver = resolver_for(lambda request: httpx.Response(200, json={}))
        async with http:
            with pytest.raises(DirectoryResolutionError):
                await resolver.resolve_handle("hub.test")
