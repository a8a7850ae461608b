"""
Camel-cased dictionaries for the JSON responses.

Counts and ratings come from the annotations added by ``MarketplaceStore``;
objects fetched without them report zero.
"""
from typing import Any, Dict, Iterable, List, Optional

from marketplace.models import Api, Favorite, Payment, Provider, Review, Token


def _count(instance, name: str) -> int:
    return getattr(instance, name, None) or 0


def _rating(value: Optional[float]) -> float:
    return round(value or 0, 2)


def provider_summary(provider: Provider) -> Dict[str, Any]:
    return {
        'id': provider.id,
        'name': provider.name,
        'walletAddress': provider.wallet_address,
    }


def provider_dict(provider: Provider) -> Dict[str, Any]:
    return {
        'id': provider.id,
        'walletAddress': provider.wallet_address,
        'name': provider.name,
        'description': provider.description,
        'website': provider.website,
        'avatarUrl': provider.avatar_url,
        'email': provider.email,
        'reputationScore': provider.reputation_score,
        'totalEarnings': provider.total_earnings,
        'totalCalls': provider.total_calls,
        'isActive': provider.is_active,
        'createdAt': provider.created_at,
        'updatedAt': provider.updated_at,
    }


def provider_counts(provider: Provider) -> Dict[str, int]:
    return {
        'apis': _count(provider, 'api_count'),
        'payments': _count(provider, 'payment_count'),
        'tokens': _count(provider, 'token_count'),
    }


def api_brief(api: Api) -> Dict[str, Any]:
    return {
        'id': api.id,
        'name': api.name,
        'category': api.category,
        'pricePerCall': api.price_per_call,
        'isActive': api.is_active,
        'totalCalls': api.total_calls,
        'averageResponseTime': api.average_response_time,
        'uptime': api.uptime,
    }


def api_dict(api: Api, with_provider: bool = True) -> Dict[str, Any]:
    data = {
        'id': api.id,
        'providerId': api.provider_id,
        'name': api.name,
        'description': api.description,
        'category': api.category,
        'endpoint': api.endpoint,
        'publicPath': api.public_path,
        'method': api.method,
        'pricePerCall': api.price_per_call,
        'currency': api.currency,
        'documentation': api.documentation,
        'isActive': api.is_active,
        'totalCalls': api.total_calls,
        'totalRevenue': api.total_revenue,
        'averageResponseTime': api.average_response_time,
        'uptime': api.uptime,
        'createdAt': api.created_at,
        'updatedAt': api.updated_at,
    }
    if with_provider:
        provider = api.provider
        data['provider'] = {
            **provider_summary(provider),
            'reputationScore': provider.reputation_score,
            'isActive': provider.is_active,
        }
    return data


def api_with_stats(api: Api, with_provider: bool = True) -> Dict[str, Any]:
    data = api_dict(api, with_provider=with_provider)
    data.update({
        'averageRating': _rating(getattr(api, 'average_rating', None)),
        'reviewCount': _count(api, 'review_count'),
        'favoriteCount': _count(api, 'favorite_count'),
        'paymentCount': _count(api, 'payment_count'),
        'tokenCount': _count(api, 'token_count'),
    })
    return data


def review_dict(review: Review) -> Dict[str, Any]:
    return {
        'id': review.id,
        'reviewerAddress': review.reviewer_address,
        'rating': review.rating,
        'comment': review.comment,
        'helpfulCount': review.helpful_count,
        'createdAt': review.created_at,
    }


def payment_brief(payment: Payment) -> Dict[str, Any]:
    return {
        'id': payment.id,
        'amount': payment.amount,
        'currency': payment.currency,
        'numberOfTokens': payment.number_of_tokens,
        'isVerified': payment.is_verified,
        'createdAt': payment.created_at,
    }


def payment_transaction(payment: Payment, network: str) -> Dict[str, Any]:
    """One row of a developer's payment history."""
    api = payment.api
    return {
        'id': payment.id,
        'transactionHash': payment.transaction_hash,
        'amount': payment.amount,
        'currency': payment.currency,
        'numberOfTokens': payment.tokens_issued,
        'isVerified': payment.is_verified,
        'createdAt': payment.created_at,
        'blockNumber': payment.block_number,
        'blockTimestamp': payment.block_timestamp,
        'network': network,
        'apiId': payment.api_id,
        'apiName': api.name if api is not None else 'Unknown API',
    }


def token_listing(token: Token) -> Dict[str, Any]:
    return {
        'id': token.id,
        'tokenHash': token.token_hash,
        'developerAddress': token.developer_address,
        'isUsed': token.is_used,
        'usedAt': token.used_at,
        'expiresAt': token.expires_at,
        'createdAt': token.created_at,
        'api': {
            'id': token.api.id,
            'name': token.api.name,
            'endpoint': token.api.endpoint,
        },
        'payment': {
            'id': token.payment.id,
            'transactionHash': token.payment.transaction_hash,
            'amount': token.payment.amount,
            'currency': token.payment.currency,
        },
    }


def favorites_dict(favorites: Iterable[Favorite]) -> Dict[str, List[Any]]:
    favorites = list(favorites)
    return {
        'apiIds': [favorite.api_id for favorite in favorites],
        'apis': [api_dict(favorite.api) for favorite in favorites],
    }


def favorite_dict(favorite: Favorite) -> Dict[str, Any]:
    return {
        'id': favorite.id,
        'userAddress': favorite.user_address,
        'apiId': favorite.api_id,
        'createdAt': favorite.created_at,
        'api': api_dict(favorite.api),
    }
