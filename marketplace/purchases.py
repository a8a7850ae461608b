"""
Purchased-token lifecycle aggregation.

Turns verified payments and the tokens issued for them into per-purchase
records and a cross-purchase summary. Everything here works on
already-fetched objects; nothing touches the database.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from loguru import logger


STATUS_ACTIVE = 'active'
STATUS_EXPIRED = 'expired'


@dataclass(frozen=True)
class TokenClassification:
    active: Tuple[Any, ...]
    used: Tuple[Any, ...]
    expired: Tuple[Any, ...]

    @property
    def total(self) -> int:
        return len(self.active) + len(self.used) + len(self.expired)

    @property
    def status(self) -> str:
        return STATUS_ACTIVE if self.active else STATUS_EXPIRED

    @property
    def expires_at(self) -> Optional[datetime]:
        """Latest expiry among the active tokens, ``None`` when none are active."""
        if not self.active:
            return None
        return max(token.expires_at for token in self.active)


def classify_tokens(tokens: Iterable[Any], now: datetime) -> TokenClassification:
    """
    Partition tokens into active, used and expired.

    A used token is used regardless of its expiry; an unused token is active
    while ``expires_at > now`` and expired from ``now`` on.
    """
    active: List[Any] = []
    used: List[Any] = []
    expired: List[Any] = []
    for token in tokens:
        if token.is_used:
            used.append(token)
        elif token.expires_at > now:
            active.append(token)
        else:
            expired.append(token)
    return TokenClassification(active=tuple(active), used=tuple(used), expired=tuple(expired))


def _epoch_millis(value: Optional[datetime]) -> Optional[int]:
    if value is None:
        return None
    return int(value.timestamp() * 1000)


@dataclass(frozen=True)
class PurchaseRecord:
    payment_id: Any
    api_id: Any
    api_name: str
    api_description: str
    api_category: str
    api_endpoint: str
    price_per_call: str
    api_currency: str
    provider_id: Any
    provider_name: str
    provider_wallet_address: str
    transaction_hash: str
    amount_paid: str
    currency: str
    tokens_purchased: int
    tokens_issued: int
    purchased_at: Optional[datetime]
    block_timestamp: Optional[datetime]
    tokens: TokenClassification

    @property
    def status(self) -> str:
        return self.tokens.status

    @property
    def expires_at(self) -> Optional[datetime]:
        return self.tokens.expires_at

    def as_dict(self) -> Dict[str, Any]:
        return {
            'id': self.payment_id,
            'apiId': self.api_id,
            'apiName': self.api_name,
            'apiDescription': self.api_description,
            'apiCategory': self.api_category,
            'apiEndpoint': self.api_endpoint,
            'pricePerCall': self.price_per_call,
            'currency': self.api_currency,
            'provider': {
                'id': self.provider_id,
                'name': self.provider_name,
                'walletAddress': self.provider_wallet_address,
            },
            'purchase': {
                'transactionHash': self.transaction_hash,
                'amountPaid': self.amount_paid,
                'currency': self.currency,
                'tokensPurchased': self.tokens_purchased,
                'tokensIssued': self.tokens_issued,
                'purchasedAt': self.purchased_at,
                'blockTimestamp': self.block_timestamp,
            },
            'tokens': {
                'total': self.tokens.total,
                'active': len(self.tokens.active),
                'used': len(self.tokens.used),
                'expired': len(self.tokens.expired),
                'available': len(self.tokens.active),
            },
            'status': self.status,
            # Epoch milliseconds, as the dashboard consumes it.
            'expiresAt': _epoch_millis(self.expires_at),
        }


def build_purchase(payment: Any, tokens: Sequence[Any], now: datetime) -> Optional[PurchaseRecord]:
    """
    Combine a verified payment, its API and provider, and its tokens.

    Returns ``None`` for a payment whose API (or the API's provider) is gone;
    such payments are left out of listings and summaries.
    """
    api = getattr(payment, 'api', None)
    if api is None:
        logger.warning('skipping payment {} without an API', payment.id)
        return None
    provider = getattr(api, 'provider', None)
    if provider is None:
        logger.warning(
            'skipping payment {}: API {} has no provider', payment.id, api.id)
        return None

    return PurchaseRecord(
        payment_id=payment.id,
        api_id=api.id,
        api_name=api.name,
        api_description=api.description,
        api_category=api.category,
        api_endpoint=api.public_path,
        price_per_call=api.price_per_call,
        api_currency=api.currency,
        provider_id=provider.id,
        provider_name=provider.name or 'Unknown Provider',
        provider_wallet_address=provider.wallet_address,
        transaction_hash=payment.transaction_hash,
        amount_paid=payment.amount,
        currency=payment.currency,
        tokens_purchased=payment.number_of_tokens,
        tokens_issued=payment.tokens_issued,
        purchased_at=payment.created_at,
        block_timestamp=payment.block_timestamp,
        tokens=classify_tokens(tokens, now),
    )


def aggregate_purchases(payments: Iterable[Any], now: datetime) -> List[PurchaseRecord]:
    """Build purchase records for ORM payments with prefetched ``tokens``."""
    purchases = []
    for payment in payments:
        purchase = build_purchase(payment, list(payment.tokens.all()), now)
        if purchase is not None:
            purchases.append(purchase)
    return purchases


@dataclass(frozen=True)
class PurchaseSummary:
    total_apis_purchased: int = 0
    total_tokens_purchased: int = 0
    active_tokens: int = 0
    used_tokens: int = 0
    expired_tokens: int = 0
    total_spent: float = 0.0
    active_apis: int = 0

    def as_dict(self) -> Dict[str, Any]:
        return {
            'totalAPIsPurchased': self.total_apis_purchased,
            'totalTokensPurchased': self.total_tokens_purchased,
            'activeTokens': self.active_tokens,
            'usedTokens': self.used_tokens,
            'expiredTokens': self.expired_tokens,
            'totalSpent': self.total_spent,
            'activeAPIs': self.active_apis,
        }


def summarize_purchases(purchases: Sequence[PurchaseRecord]) -> PurchaseSummary:
    # Amounts are decimal strings at rest; the total is a float.
    return PurchaseSummary(
        total_apis_purchased=len(purchases),
        total_tokens_purchased=sum(p.tokens.total for p in purchases),
        active_tokens=sum(len(p.tokens.active) for p in purchases),
        used_tokens=sum(len(p.tokens.used) for p in purchases),
        expired_tokens=sum(len(p.tokens.expired) for p in purchases),
        total_spent=sum((float(p.amount_paid or '0') for p in purchases), 0.0),
        active_apis=sum(1 for p in purchases if p.status == STATUS_ACTIVE),
    )
