from typing import Any, Dict, Optional

from rest_framework import status


class MarketplaceError(Exception):
    """Base error for marketplace failures.

    Carries the HTTP status and the message returned in the failure
    envelope. ``extra`` is merged into the envelope next to ``error``.
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}


class MarketplaceValidationError(MarketplaceError):
    """Raised when a request is missing or carries malformed parameters."""

    status_code = status.HTTP_400_BAD_REQUEST


class PaymentVerificationError(MarketplaceValidationError):
    """Raised when a transaction cannot be confirmed on-chain."""


class MarketplaceForbiddenError(MarketplaceError):
    status_code = status.HTTP_403_FORBIDDEN


class MarketplaceNotFoundError(MarketplaceError):
    status_code = status.HTTP_404_NOT_FOUND


class MarketplaceConflictError(MarketplaceError):
    status_code = status.HTTP_409_CONFLICT


class MarketplaceGoneError(MarketplaceError):
    """Raised for tokens that were already used or have expired."""

    status_code = status.HTTP_410_GONE
