"""Record migrations applied once at the storage boundary.

Older clients wrote a single `owner` field where current records carry
`subjectDid` (who is depicted) and `originalOwner` (who minted it). Every
sticker read from a repository passes through `migrate_sticker_record`
before validation, so protocol code only ever sees the current shape.
"""

from __future__ import annotations

from typing import Any

STICKER_SCHEMA_VERSION = 2


def sticker_schema_version(raw: dict[str, Any]) -> int:
    """Detect which record shape a raw sticker uses."""
    if "owner" in raw and not (raw.get("subjectDid") and raw.get("originalOwner")):
        return 1
    return STICKER_SCHEMA_VERSION


def migrate_sticker_record(raw: dict[str, Any]) -> dict[str, Any]:
    """Return a copy of `raw` in the current sticker shape."""
    record = dict(raw)
    if sticker_schema_version(record) >= STICKER_SCHEMA_VERSION:
        record.pop("owner", None)
        return record

    legacy_owner = record.pop("owner")
    if not record.get("subjectDid"):
        record["subjectDid"] = legacy_owner
    if not record.get("originalOwner"):
        record["originalOwner"] = legacy_owner
    record.setdefault("model", "default")
    return record
