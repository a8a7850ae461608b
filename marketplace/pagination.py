import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from marketplace.exceptions import MarketplaceValidationError

# Keeps offset = (page - 1) * limit inside a signed 64-bit integer.
MAX_QUERY_INT = 2 ** 31 - 1


def positive_int(query_params: Mapping[str, str], name: str, default: int) -> int:
    raw = query_params.get(name)
    if raw in (None, ''):
        return default
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise MarketplaceValidationError(
            f'{name} must be a positive integer') from exc
    if value < 1:
        raise MarketplaceValidationError(f'{name} must be a positive integer')
    if value > MAX_QUERY_INT:
        raise MarketplaceValidationError(f'{name} must be at most {MAX_QUERY_INT}')
    return value


@dataclass(frozen=True)
class PageRequest:
    page: int = 1
    limit: int = 10

    @classmethod
    def from_query(cls, query_params: Mapping[str, str], default_limit: int = 10) -> 'PageRequest':
        return cls(
            page=positive_int(query_params, 'page', 1),
            limit=positive_int(query_params, 'limit', default_limit),
        )

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def slice(self, queryset):
        return queryset[self.offset:self.offset + self.limit]

    def total_pages(self, total: int) -> int:
        return math.ceil(total / self.limit)

    def pagination(self, total: int) -> Dict[str, Any]:
        """Envelope used by the purchase and payment history listings."""
        return {
            'page': self.page,
            'limit': self.limit,
            'total': total,
            'totalPages': self.total_pages(total),
        }

    def meta(self, total: int) -> Dict[str, Any]:
        """Envelope used by the catalog listings."""
        return {
            'page': self.page,
            'limit': self.limit,
            'total': total,
            'pages': self.total_pages(total),
            'hasNext': self.page * self.limit < total,
            'hasPrev': self.page > 1,
        }
