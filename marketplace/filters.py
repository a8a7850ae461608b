"""
Named payment filters selected by the ``status`` query parameter.
"""
import enum
from datetime import datetime
from typing import Iterable, Optional

from django.db.models import Exists, OuterRef, QuerySet

from marketplace.models import Token


class PaymentFilter(enum.Enum):
    ALL = 'all'
    ACTIVE_ONLY = 'active'
    EXPIRED_ONLY = 'expired'
    VERIFIED_ONLY = 'verified'
    PENDING_ONLY = 'pending'
    FAILED_ONLY = 'failed'

    @classmethod
    def resolve(cls, value: Optional[str], allowed: Iterable['PaymentFilter']) -> 'PaymentFilter':
        """
        Map a raw ``status`` parameter to a filter.

        Values outside ``allowed`` (including a missing parameter) mean no
        filtering.
        """
        if not value:
            return cls.ALL
        try:
            candidate = cls(value.strip().lower())
        except ValueError:
            return cls.ALL
        return candidate if candidate in set(allowed) else cls.ALL

    def apply(self, queryset: QuerySet, now: datetime) -> QuerySet:
        if self is PaymentFilter.ACTIVE_ONLY:
            return queryset.filter(_has_active_token(now))
        if self is PaymentFilter.EXPIRED_ONLY:
            # No active token: every token used or expired, or no tokens at all.
            return queryset.filter(~_has_active_token(now))
        if self is PaymentFilter.VERIFIED_ONLY:
            return queryset.filter(is_verified=True)
        if self is PaymentFilter.PENDING_ONLY:
            return queryset.filter(is_verified=False, block_number__isnull=False)
        if self is PaymentFilter.FAILED_ONLY:
            return queryset.filter(is_verified=False, block_number__isnull=True)
        return queryset


PURCHASE_FILTERS = (PaymentFilter.ACTIVE_ONLY, PaymentFilter.EXPIRED_ONLY)
HISTORY_FILTERS = (
    PaymentFilter.VERIFIED_ONLY,
    PaymentFilter.PENDING_ONLY,
    PaymentFilter.FAILED_ONLY,
)


def _has_active_token(now: datetime) -> Exists:
    return Exists(
        Token.objects.filter(
            payment=OuterRef('pk'),
            is_used=False,
            expires_at__gt=now,
        )
    )
