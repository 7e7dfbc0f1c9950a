"""Identity directory resolution.

    did:key  -> self-describing; it is its own signing key and has no repository
    did:plc  -> DID document from the PLC directory
    did:web  -> DID document from https://{domain}/.well-known/did.json

The signing key is the `#atproto` verification method's multibase key,
returned in `did:key` form. The repository endpoint is the
`#atproto_pds` service.
"""

from __future__ import annotations

from typing import Any

import httpx

from sticker_exchange.domain.exceptions import DirectoryResolutionError
from sticker_exchange.logging_config import get_logger
from sticker_exchange.seals.keys import DID_KEY_PREFIX

logger = get_logger(__name__)

SIGNING_KEY_FRAGMENT = "#atproto"
PDS_SERVICE_FRAGMENT = "#atproto_pds"


class PlcDirectoryResolver:
    """DirectoryResolver backed by the PLC directory and did:web documents."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        directory_url: str,
        handle_resolver_url: str,
    ) -> None:
        self._http = http
        self._directory_url = directory_url.rstrip("/")
        self._handle_resolver_url = handle_resolver_url.rstrip("/")

    async def resolve_signing_key(self, did: str) -> str:
        if did.startswith(DID_KEY_PREFIX):
            return did

        document = await self._document(did)
        methods = [m for m in document.get("verificationMethod") or [] if isinstance(m, dict)]
        preferred = [m for m in methods if str(m.get("id", "")).endswith(SIGNING_KEY_FRAGMENT)]
        for method in preferred + methods:
            multibase = method.get("publicKeyMultibase")
            if multibase:
                return f"{DID_KEY_PREFIX}{multibase}"
        raise DirectoryResolutionError(did, "no signing key in DID document")

    async def resolve_endpoint(self, did: str) -> str:
        if did.startswith(DID_KEY_PREFIX):
            raise DirectoryResolutionError(did, "did:key identifiers have no repository")

        document = await self._document(did)
        for service in document.get("service") or []:
            if not isinstance(service, dict):
                continue
            if str(service.get("id", "")).endswith(PDS_SERVICE_FRAGMENT):
                endpoint = service.get("serviceEndpoint")
                if isinstance(endpoint, str) and endpoint:
                    return endpoint.rstrip("/")
        raise DirectoryResolutionError(did, "no repository endpoint in DID document")

    async def resolve_handle(self, handle: str) -> str:
        url = f"{self._handle_resolver_url}/xrpc/com.atproto.identity.resolveHandle"
        data = await self._get_json(handle, url, params={"handle": handle})
        did = data.get("did")
        if not isinstance(did, str) or not did:
            raise DirectoryResolutionError(handle, "resolver returned no DID")
        return did

    async def _document(self, did: str) -> dict[str, Any]:
        if did.startswith("did:plc:"):
            url = f"{self._directory_url}/{did}"
        elif did.startswith("did:web:"):
            domain = did.removeprefix("did:web:")
            url = f"https://{domain}/.well-known/did.json"
        else:
            raise DirectoryResolutionError(did, "unsupported DID method")
        return await self._get_json(did, url)

    async def _get_json(
        self, identifier: str, url: str, params: dict[str, str] | None = None
    ) -> dict[str, Any]:
        try:
            response = await self._http.get(url, params=params)
        except httpx.HTTPError as exc:
            logger.warning("directory.unreachable", identifier=identifier, error=str(exc))
            raise DirectoryResolutionError(identifier, str(exc)) from exc

        if response.status_code != 200:
            raise DirectoryResolutionError(identifier, f"HTTP {response.status_code}")
        try:
            data = response.json()
        except ValueError as exc:
            raise DirectoryResolutionError(identifier, "response is not JSON") from exc
        if not isinstance(data, dict):
            raise DirectoryResolutionError(identifier, "response is not an object")
        return data
