"""Domain exceptions for the sticker exchange.

Only caller-actionable conditions are raised. "Nothing found" outcomes are
returned as empty/falsy results, and seal verification failures are data
(SealVerificationResult), not exceptions.
"""


class ExchangeError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "EXCHANGE_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- State Machine Errors ---


class InvalidStateTransitionError(ExchangeError):
    """Raised when an attempted status change is not allowed.

    Example: completed -> rejected (both are terminal).
    """

    def __init__(self, current_state: str, attempted_event: str) -> None:
        super().__init__(
            message=f"Invalid state transition: {current_state} -> {attempted_event}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_state = current_state
        self.attempted_event = attempted_event


# --- Offer Errors ---


class OfferNotFoundError(ExchangeError):
    """Raised when accept/reject finds no valid open offer from the partner."""

    def __init__(self, partner: str, offer_uri: str | None = None) -> None:
        target = offer_uri or "any open offer"
        super().__init__(
            message=f"No active exchange offer found from {partner} ({target})",
            code="OFFER_NOT_FOUND",
        )
        self.partner = partner
        self.offer_uri = offer_uri


class InvalidOfferError(ExchangeError):
    """Raised when an offer request is malformed or targets a foreign record."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="INVALID_OFFER")


# --- Collaborator Errors ---


class StorageError(ExchangeError):
    """Raised when a repository read or write fails in transport."""

    def __init__(self, message: str, repo: str | None = None) -> None:
        super().__init__(message=message, code="STORAGE_ERROR")
        self.repo = repo


class RecordNotFoundError(StorageError):
    """Raised when a repository has no record under the requested key."""

    def __init__(self, uri: str) -> None:
        super().__init__(message=f"Record not found: {uri}")
        self.code = "RECORD_NOT_FOUND"
        self.uri = uri


class BacklinkIndexError(ExchangeError):
    """Raised when the backlink index cannot be queried."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="BACKLINK_INDEX_ERROR")


class DirectoryResolutionError(ExchangeError):
    """Raised when an identifier cannot be resolved to an endpoint or key."""

    def __init__(self, identifier: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(
            message=f"Could not resolve {identifier}{detail}",
            code="DIRECTORY_RESOLUTION_ERROR",
        )
        self.identifier = identifier


# --- Seal Errors ---


class IntegrityViolationError(ExchangeError):
    """Raised when a caller demands trust in a stolen or tampered item."""

    def __init__(self, reason: str, is_stolen: bool = False) -> None:
        super().__init__(message=f"Seal integrity violation: {reason}", code="INTEGRITY_VIOLATION")
        self.reason = reason
        self.is_stolen = is_stolen


class SigningConfigurationError(ExchangeError):
    """Raised when the signing authority has no usable issuer key."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="SIGNING_CONFIGURATION_ERROR")


class SigningError(ExchangeError):
    """Raised when a seal could not be obtained from the signing authority."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message, code="SIGNING_ERROR")
