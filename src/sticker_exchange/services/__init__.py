"""Application services — use case orchestration."""

from sticker_exchange.services.collection_service import (
    CollectionService,
    LikeState,
    VerifiedSticker,
)
from sticker_exchange.services.discovery import IncomingOffer, OfferDiscovery
from sticker_exchange.services.exchange_service import AcceptResult, ExchangeService, Resolution
from sticker_exchange.services.matcher import ExchangeMatcher, MatchCandidate
from sticker_exchange.services.registry import RegistryService

__all__ = [
    "AcceptResult",
    "CollectionService",
    "ExchangeMatcher",
    "ExchangeService",
    "IncomingOffer",
    "LikeState",
    "MatchCandidate",
    "OfferDiscovery",
    "RegistryService",
    "Resolution",
    "VerifiedSticker",
]
