"""
Provider and API catalog endpoints, including the public API lookup and
user favorites.
"""
from datetime import timedelta
from typing import Any, Dict, List, Optional

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import URLValidator
from django.utils import timezone
from loguru import logger
from rest_framework import status
from web3 import Web3

from marketplace.exceptions import (
    MarketplaceConflictError,
    MarketplaceForbiddenError,
    MarketplaceNotFoundError,
    MarketplaceValidationError,
)
from marketplace.models import Api, Provider
from marketplace.pagination import PageRequest
from marketplace.presenters import (
    api_brief,
    api_dict,
    api_with_stats,
    favorite_dict,
    favorites_dict,
    payment_brief,
    provider_counts,
    provider_dict,
    review_dict,
)
from marketplace.schemas import (
    CreateApiRequest,
    CreateProviderRequest,
    FavoriteRequest,
    UpdateApiRequest,
    UpdateProviderRequest,
)
from marketplace.store import normalize_address
from marketplace.views_base import MarketplaceAPIView, parse_body, success_response


API_SORT_FIELDS = {
    'totalCalls': 'total_calls',
    'createdAt': 'created_at',
    'updatedAt': 'updated_at',
    'name': 'name',
    'category': 'category',
    'pricePerCall': 'price_per_call',
    'totalRevenue': 'total_revenue',
    'averageResponseTime': 'average_response_time',
    'uptime': 'uptime',
}

_url_validator = URLValidator(schemes=['http', 'https'])


def _wallet_address(address: Optional[str]) -> str:
    address = normalize_address(address or '')
    if len(address) != 42 or not address.startswith('0x') or not Web3.is_address(address):
        raise MarketplaceValidationError('Invalid wallet address format')
    return address


def _endpoint_url(endpoint: str) -> str:
    endpoint = endpoint.strip()
    try:
        _url_validator(endpoint)
    except DjangoValidationError as exc:
        raise MarketplaceValidationError('Invalid endpoint URL format') from exc
    return endpoint


def _price(value: str) -> str:
    try:
        price = int(value.strip())
    except ValueError as exc:
        raise MarketplaceValidationError(
            'pricePerCall must be an integer amount in wei') from exc
    if price < 1:
        raise MarketplaceValidationError('pricePerCall must be positive')
    return str(price)


def _public_path(path: str) -> str:
    path = path.strip()
    return path if path.startswith('/') else f'/{path}'


def _optional_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


def _flag(query_params, name: str) -> Optional[bool]:
    raw = query_params.get(name)
    if raw is None:
        return None
    return raw.strip().lower() == 'true'


def _int_param(query_params, name: str) -> Optional[int]:
    raw = query_params.get(name)
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise MarketplaceValidationError(f'{name} must be an integer') from exc


def _api_ordering(query_params) -> List[str]:
    sort_by = query_params.get('sortBy') or 'totalCalls'
    sort_order = (query_params.get('sortOrder') or 'desc').lower()
    field = API_SORT_FIELDS.get(sort_by)
    if field is None:
        raise MarketplaceValidationError(
            f"sortBy must be one of: {', '.join(API_SORT_FIELDS)}")
    if sort_order not in ('asc', 'desc'):
        raise MarketplaceValidationError('sortOrder must be asc or desc')
    prefix = '-' if sort_order == 'desc' else ''
    return [f'{prefix}{field}', '-created_at', '-id']


def _provider_listing(provider: Provider) -> Dict[str, Any]:
    data = provider_dict(provider)
    data['apis'] = [api_brief(api) for api in provider.apis.all()]
    data['counts'] = provider_counts(provider)
    return data


# -- providers -------------------------------------------------------------


class ProviderListView(MarketplaceAPIView):
    failure_message = 'Failed to fetch providers'
    failure_messages = {'post': 'Failed to create provider'}

    def get(self, request, *args, **kwargs):
        page = PageRequest.from_query(request.query_params)
        providers, total = self.store.list_providers(
            search=(request.query_params.get('search') or '').strip(),
            is_active=_flag(request.query_params, 'isActive'),
            page=page,
        )
        return success_response(
            [_provider_listing(provider) for provider in providers],
            meta=page.meta(total),
        )

    def post(self, request, *args, **kwargs):
        body = parse_body(CreateProviderRequest, request.data)
        wallet_address = _wallet_address(body.wallet_address)
        email = body.email.lower() if body.email else None

        if self.store.provider_exists(wallet_address, email):
            raise MarketplaceConflictError(
                'Provider with this wallet address or email already exists')

        provider = self.store.create_provider(
            wallet_address=wallet_address,
            name=body.name,
            description=_optional_text(body.description),
            website=_optional_text(body.website),
            avatar_url=_optional_text(body.avatar_url),
            email=email,
        )
        logger.info('provider {} registered for wallet {}', provider.id, wallet_address)
        return success_response(provider_dict(provider), status_code=status.HTTP_201_CREATED)


class ProviderDetailView(MarketplaceAPIView):
    failure_message = 'Failed to fetch provider'
    failure_messages = {
        'put': 'Failed to update provider',
        'delete': 'Failed to deactivate provider',
    }

    def _provider(self, provider_id: int) -> Provider:
        provider = self.store.get_provider(provider_id)
        if provider is None:
            raise MarketplaceNotFoundError('Provider not found')
        return provider

    def get(self, request, provider_id: int, *args, **kwargs):
        provider = self._provider(provider_id)
        data = provider_dict(provider)
        data['apis'] = [
            api_with_stats(api, with_provider=False)
            for api in self.store.provider_apis(provider, active_only=True)
        ]
        data['recentPayments'] = [
            payment_brief(payment)
            for payment in self.store.recent_provider_payments(provider, limit=5)
        ]
        data['counts'] = provider_counts(provider)
        return success_response(data)

    def put(self, request, provider_id: int, *args, **kwargs):
        provider = self._provider(provider_id)
        body = parse_body(UpdateProviderRequest, request.data)

        changes = body.model_dump(exclude_unset=True)
        for field in ('description', 'website', 'avatar_url'):
            if field in changes:
                changes[field] = _optional_text(changes[field])
        if not changes.get('name'):
            changes.pop('name', None)
        if changes.get('is_active') is None:
            changes.pop('is_active', None)

        provider = self.store.apply_changes(provider, changes)
        return success_response(provider_dict(provider))

    def delete(self, request, provider_id: int, *args, **kwargs):
        provider = self.store.deactivate_provider(self._provider(provider_id))
        return success_response(
            provider_dict(provider), message='Provider deactivated successfully')


class ProviderByWalletView(MarketplaceAPIView):
    failure_message = 'Failed to fetch provider'

    def get(self, request, address: str, *args, **kwargs):
        provider = self.store.get_provider_by_wallet(_wallet_address(address))
        if provider is None:
            raise MarketplaceNotFoundError('Provider not found for this wallet address')

        data = provider_dict(provider)
        data['apis'] = [
            api_with_stats(api, with_provider=False)
            for api in self.store.provider_apis(provider)
        ]
        data['recentPayments'] = [
            {**payment_brief(payment),
             'api': {'id': payment.api.id, 'name': payment.api.name} if payment.api else None}
            for payment in self.store.recent_provider_payments(provider, limit=10)
        ]
        data['counts'] = provider_counts(provider)
        return success_response(data)


# -- APIs ------------------------------------------------------------------


class ApiListView(MarketplaceAPIView):
    failure_message = 'Failed to fetch APIs'
    failure_messages = {'post': 'Failed to create API'}

    def get(self, request, *args, **kwargs):
        params = request.query_params
        page = PageRequest.from_query(params)

        filters: Dict[str, Any] = {}
        category = (params.get('category') or '').strip()
        if category:
            filters['category__icontains'] = category
        is_active = _flag(params, 'isActive')
        if is_active is not None:
            filters['is_active'] = is_active
        provider_id = _int_param(params, 'providerId')
        if provider_id is not None:
            filters['provider_id'] = provider_id

        apis, total = self.store.list_apis(
            filters=filters,
            search=(params.get('search') or '').strip(),
            ordering=_api_ordering(params),
            page=page,
        )
        return success_response([api_with_stats(api) for api in apis], meta=page.meta(total))

    def post(self, request, *args, **kwargs):
        body = parse_body(CreateApiRequest, request.data)

        provider = self.store.get_provider(body.provider_id)
        if provider is None or not provider.is_active:
            raise MarketplaceNotFoundError('Provider not found or inactive')

        public_path = _public_path(body.public_path)
        if self.store.public_path_taken(public_path):
            raise MarketplaceConflictError('API with this public path already exists')

        api = self.store.create_api(
            provider,
            name=body.name,
            description=body.description or '',
            category=body.category or 'General',
            endpoint=_endpoint_url(body.endpoint),
            public_path=public_path,
            method=(body.method or 'GET').upper(),
            price_per_call=_price(body.price_per_call),
            currency=body.currency or 'ETH',
            documentation=body.documentation or None,
        )
        logger.info('API {} published at {} by provider {}', api.id, public_path, provider.id)
        return success_response(api_dict(api), status_code=status.HTTP_201_CREATED)


class ApiDetailView(MarketplaceAPIView):
    failure_message = 'Failed to fetch API'
    failure_messages = {
        'put': 'Failed to update API',
        'delete': 'Failed to deactivate API',
    }

    def _api(self, api_id: int) -> Api:
        api = self.store.get_api(api_id)
        if api is None:
            raise MarketplaceNotFoundError('API not found')
        return api

    def get(self, request, api_id: int, *args, **kwargs):
        api = self._api(api_id)
        data = api_with_stats(api)
        data['provider'].update({
            'totalEarnings': api.provider.total_earnings,
            'website': api.provider.website,
            'avatarUrl': api.provider.avatar_url,
        })
        data['reviews'] = [review_dict(review) for review in self.store.verified_reviews(api)]
        data['recentPayments'] = [
            payment_brief(payment) for payment in self.store.recent_api_payments(api, limit=10)
        ]
        return success_response(data)

    def put(self, request, api_id: int, *args, **kwargs):
        api = self._api(api_id)
        body = parse_body(UpdateApiRequest, request.data)

        changes = body.model_dump(exclude_unset=True)
        if changes.get('endpoint') is not None:
            changes['endpoint'] = _endpoint_url(changes['endpoint'])
        if changes.get('price_per_call') is not None:
            changes['price_per_call'] = _price(changes['price_per_call'])
        if 'description' in changes:
            changes['description'] = changes['description'] or ''
        if 'category' in changes:
            changes['category'] = changes['category'] or 'General'
        if 'method' in changes:
            changes['method'] = (changes['method'] or 'GET').upper()
        if 'currency' in changes:
            changes['currency'] = changes['currency'] or 'ETH'
        for field in ('name', 'endpoint', 'price_per_call', 'is_active'):
            if field in changes and changes[field] is None:
                del changes[field]

        api = self.store.apply_changes(api, changes)
        return success_response(api_dict(api))

    def delete(self, request, api_id: int, *args, **kwargs):
        api = self._api(api_id)
        if self.store.has_unused_tokens(api):
            raise MarketplaceConflictError(
                'Cannot delete API with active tokens. Please deactivate the API instead.')
        api = self.store.deactivate_api(api)
        return success_response(
            api_dict(api, with_provider=False), message='API deactivated successfully')


class PublicApiView(MarketplaceAPIView):
    """Marketplace listing of a single API, addressed by its public path."""

    failure_message = 'Failed to fetch API'

    def get(self, request, public_path: str, *args, **kwargs):
        if not public_path.strip('/'):
            raise MarketplaceValidationError('Public path is required')
        api = self.store.get_api_by_public_path(_public_path(public_path))
        if api is None:
            raise MarketplaceNotFoundError('API not found for this public path')
        if not api.is_active or not api.provider.is_active:
            raise MarketplaceForbiddenError('API is currently inactive')

        since = timezone.now() - timedelta(hours=settings.MARKETPLACE_USAGE_WINDOW_HOURS)
        window = self.store.usage_window(api, since)
        if window.total:
            success_rate = window.successful / window.total * 100
        else:
            success_rate = api.uptime
        average_response_time = window.average_response_time
        if average_response_time is None:
            average_response_time = api.average_response_time

        provider = api.provider
        return success_response({
            'id': api.id,
            'name': api.name,
            'description': api.description,
            'category': api.category,
            'method': api.method,
            'pricePerCall': api.price_per_call,
            'currency': api.currency,
            'documentation': api.documentation,
            'provider': {
                'id': provider.id,
                'name': provider.name,
                'walletAddress': provider.wallet_address,
                'reputationScore': provider.reputation_score,
                'isActive': provider.is_active,
                'avatarUrl': provider.avatar_url,
                'website': provider.website,
            },
            'performance': {
                'averageResponseTime': round(average_response_time),
                'uptime': round(success_rate, 2),
                'totalCalls': api.total_calls,
                'recentCalls': window.total,
            },
            'engagement': {
                'averageRating': round(api.average_rating or 0, 2),
                'reviewCount': api.review_count,
                'favoriteCount': api.favorite_count,
                'activeTokens': api.token_count,
            },
            'reviews': [review_dict(review) for review in self.store.verified_reviews(api, limit=3)],
            'createdAt': api.created_at,
        })


# -- favorites -------------------------------------------------------------


class FavoriteView(MarketplaceAPIView):
    failure_message = 'Failed to create favorite'
    failure_messages = {'delete': 'Failed to delete favorite'}

    def post(self, request, *args, **kwargs):
        body = parse_body(FavoriteRequest, request.data)
        api = self.store.get_api(body.api_id)
        if api is None:
            raise MarketplaceNotFoundError('API not found')
        favorite = self.store.add_favorite(body.user_address, api)
        return success_response(favorite_dict(favorite), status_code=status.HTTP_201_CREATED)

    def delete(self, request, *args, **kwargs):
        user_address = (request.query_params.get('userAddress') or '').strip()
        if not request.query_params.get('apiId') or not user_address:
            raise MarketplaceValidationError('API ID and user address are required')
        api_id = _int_param(request.query_params, 'apiId')

        favorite = self.store.remove_favorite(user_address, api_id)
        if favorite is None:
            raise MarketplaceNotFoundError('Favorite not found')
        return success_response(favorite_dict(favorite))


class UserFavoritesView(MarketplaceAPIView):
    failure_message = 'Failed to fetch favorites'

    def get(self, request, address: str, *args, **kwargs):
        return success_response(favorites_dict(self.store.favorites_for(address)))
