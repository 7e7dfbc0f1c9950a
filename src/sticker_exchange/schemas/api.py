"""Pydantic schemas for the signing-authority HTTP API.

The request/response shapes match what exchange clients already send to
`/api/sign-seal`, so the field aliases are part of the wire contract.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from sticker_exchange.schemas.records import SealInfo


class SealRequestPayload(BaseModel):
    """Client-supplied claims. Only `info` is honoured; the authority sets the rest."""

    model_config = ConfigDict(extra="allow")

    info: SealInfo


class SignSealRequest(BaseModel):
    """Request body for issuing a seal to a holder."""

    model_config = ConfigDict(populate_by_name=True)

    holder: str = Field(
        ...,
        alias="userDid",
        min_length=8,
        description="DID of the repository that will hold the sealed item",
        examples=["did:plc:ewvi7nxzyoun6zhxrhs64oiz"],
    )
    payload: SealRequestPayload


class SignSealResponse(BaseModel):
    """Response body carrying the seal envelope."""

    model_config = ConfigDict(populate_by_name=True)

    signed_payload: str = Field(alias="signedPayload")
    signature: str
    issuer: str = Field(alias="issuerDid")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    issuer: str = "unknown"
