"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject the signing
authority. Tests replace them through `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache

from sticker_exchange.config import get_settings
from sticker_exchange.seals.authority import LocalSigningAuthority


@lru_cache(maxsize=1)
def _issuer_authority() -> LocalSigningAuthority:
    # The key itself is imported lazily on the first signing request.
    return LocalSigningAuthority(private_key_hex=get_settings().issuer_private_key_hex)


def get_signing_authority() -> LocalSigningAuthority:
    """Provide the process-wide signing authority."""
    return _issuer_authority()
