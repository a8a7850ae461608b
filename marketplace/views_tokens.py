import json
from datetime import datetime

from django.utils import timezone
from loguru import logger

from marketplace.exceptions import (
    MarketplaceForbiddenError,
    MarketplaceGoneError,
    MarketplaceNotFoundError,
)
from marketplace.models import Token
from marketplace.pagination import positive_int
from marketplace.presenters import provider_summary, token_listing
from marketplace.schemas import ConsumeTokenRequest, TokenAccessRequest
from marketplace.store import normalize_address
from marketplace.views_base import MarketplaceAPIView, parse_body, success_response


def _check_access(token: Token, body: TokenAccessRequest, now: datetime) -> None:
    """
    Reject a token that cannot pay for a call to ``body.api_id``.

    Spent and expired tokens are reported before any ownership mismatch.
    """
    if token.is_used:
        raise MarketplaceGoneError(
            'Token has already been used', extra={'usedAt': token.used_at})
    if token.expires_at <= now:
        raise MarketplaceGoneError(
            'Token has expired', extra={'expiredAt': token.expires_at})
    if token.api_id != body.api_id:
        raise MarketplaceForbiddenError('Token is not valid for this API')
    if normalize_address(token.developer_address) != normalize_address(body.developer_address):
        raise MarketplaceForbiddenError('Token does not belong to this developer')
    if not token.api.is_active or not token.api.provider.is_active:
        raise MarketplaceForbiddenError('API or provider is inactive')


class TokenAccessMixin:

    def load_token(self, body: TokenAccessRequest, now: datetime) -> Token:
        token = self.store.find_token(body.token_hash)
        if token is None:
            raise MarketplaceNotFoundError('Invalid token: token not found')
        _check_access(token, body, now)
        return token


class TokenListView(MarketplaceAPIView):
    failure_message = 'Failed to fetch tokens'

    def get(self, request, *args, **kwargs):
        limit = positive_int(request.query_params, 'limit', 10)
        tokens = self.store.recent_tokens(limit)
        return success_response([token_listing(token) for token in tokens], count=len(tokens))


class TokenValidateView(TokenAccessMixin, MarketplaceAPIView):
    failure_message = 'Failed to validate token'

    def post(self, request, *args, **kwargs):
        body = parse_body(TokenAccessRequest, request.data)
        token = self.load_token(body, timezone.now())
        api = token.api
        payment = token.payment
        return success_response({
            'token': {
                'id': token.id,
                'tokenHash': token.token_hash,
                'apiId': token.api_id,
                'providerId': token.provider_id,
                'expiresAt': token.expires_at,
                'isValid': True,
            },
            'api': {
                'id': api.id,
                'name': api.name,
                'endpoint': api.endpoint,
                'method': api.method,
                'pricePerCall': api.price_per_call,
            },
            'provider': provider_summary(api.provider),
            'payment': {
                'id': payment.id,
                'transactionHash': payment.transaction_hash,
                'amount': payment.amount,
                'currency': payment.currency,
            },
        })


class TokenConsumeView(TokenAccessMixin, MarketplaceAPIView):
    """Spend a token on one API call and record the call in the usage log."""

    failure_message = 'Failed to consume token'

    def post(self, request, *args, **kwargs):
        body = parse_body(ConsumeTokenRequest, request.data)
        now = timezone.now()
        token = self.load_token(body, now)

        usage_log = self.store.consume_token(token, now, {
            'request_headers': body.request_headers,
            'request_params': body.request_params,
            'request_body': _serialize_body(body.request_body),
            'ip_address': request.META.get('REMOTE_ADDR') or 'unknown',
            'user_agent': request.META.get('HTTP_USER_AGENT') or 'unknown',
        })
        logger.info('token {} consumed for API {}', token.id, token.api_id)

        api = token.api
        return success_response({
            'consumed': True,
            'usageLogId': usage_log.id,
            'token': {
                'id': token.id,
                'tokenHash': token.token_hash,
                'usedAt': token.used_at,
            },
            'api': {
                'id': api.id,
                'name': api.name,
                'endpoint': api.endpoint,
                'method': api.method,
            },
            'provider': provider_summary(token.provider),
        })


def _serialize_body(request_body):
    if request_body is None or request_body == '':
        return None
    if isinstance(request_body, str):
        return request_body
    return json.dumps(request_body)
