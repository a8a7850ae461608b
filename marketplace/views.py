from __future__ import annotations

from datetime import timedelta

from django.conf import settings
from django.utils import timezone
from loguru import logger
from rest_framework import status

from marketplace.chain import canonical_transaction_hash, fetch_confirmed_transaction
from marketplace.exceptions import (
    MarketplaceConflictError,
    MarketplaceError,
    MarketplaceForbiddenError,
    MarketplaceNotFoundError,
    MarketplaceValidationError,
    PaymentVerificationError,
)
from marketplace.filters import HISTORY_FILTERS, PURCHASE_FILTERS, PaymentFilter
from marketplace.pagination import PageRequest
from marketplace.presenters import payment_transaction, provider_summary
from marketplace.purchases import aggregate_purchases, summarize_purchases
from marketplace.schemas import ProcessPaymentRequest
from marketplace.store import normalize_address
from marketplace.views_base import MarketplaceAPIView, parse_body, success_response


def _developer_address(request) -> str:
    developer_address = (request.query_params.get('developerAddress') or '').strip()
    if not developer_address:
        raise MarketplaceValidationError('Developer address is required')
    return developer_address


def _wei(value: str, field: str) -> int:
    try:
        amount = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise MarketplaceValidationError(
            f'{field} must be an integer amount in wei') from exc
    if amount < 0:
        raise MarketplaceValidationError(f'{field} must not be negative')
    return amount


class PurchasedApisView(MarketplaceAPIView):
    """Verified purchases of a developer with their token lifecycle."""

    failure_message = 'Failed to fetch purchased APIs'

    def get(self, request, *args, **kwargs):
        developer_address = _developer_address(request)
        page = PageRequest.from_query(request.query_params, default_limit=10)
        payment_filter = PaymentFilter.resolve(
            request.query_params.get('status'), PURCHASE_FILTERS)
        now = timezone.now()

        payments, total = self.store.purchased_payments(
            developer_address, payment_filter, now, page)
        purchases = aggregate_purchases(payments, now)
        summary = summarize_purchases(purchases)

        logger.debug('{} purchases for {} (filter={}, page={})',
                     len(purchases), developer_address, payment_filter.value, page.page)
        return success_response(
            [purchase.as_dict() for purchase in purchases],
            summary=summary.as_dict(),
            pagination=page.pagination(total),
        )


class PaymentHistoryView(MarketplaceAPIView):
    failure_message = 'Failed to fetch payment history'

    def get(self, request, *args, **kwargs):
        developer_address = _developer_address(request)
        page = PageRequest.from_query(request.query_params, default_limit=20)
        payment_filter = PaymentFilter.resolve(
            request.query_params.get('status'), HISTORY_FILTERS)

        payments, total = self.store.payment_history(
            developer_address, payment_filter, timezone.now(), page)
        network = settings.MARKETPLACE_DEFAULT_NETWORK
        return success_response(
            [payment_transaction(payment, network) for payment in payments],
            pagination=page.pagination(total),
        )


class ProcessPaymentView(MarketplaceAPIView):
    """
    Turn a confirmed on-chain payment into single-use API tokens.

    One token is issued per ``pricePerCall`` paid; any remainder is kept by
    the provider.
    """

    failure_message = 'Failed to process payment'

    def post(self, request, *args, **kwargs):
        body = parse_body(ProcessPaymentRequest, request.data)
        transaction_hash = canonical_transaction_hash(body.transaction_hash)
        developer_address = normalize_address(body.developer_address)

        existing = self.store.find_payment_by_transaction(transaction_hash)
        if existing is not None:
            raise MarketplaceConflictError(
                'Transaction already processed',
                extra={'paymentId': existing.id, 'tokensIssued': existing.tokens_issued},
            )

        api = self.store.get_api(body.api_id)
        if api is None or not api.is_active:
            raise MarketplaceNotFoundError('API not found or inactive')
        provider = api.provider
        if not provider.is_active:
            raise MarketplaceForbiddenError('Provider is inactive')

        amount = _wei(body.payment_amount, 'paymentAmount')
        price = _wei(api.price_per_call, 'pricePerCall')
        if price == 0:
            raise MarketplaceError(f'API {api.id} has no price configured')
        number_of_tokens = amount // price
        if number_of_tokens == 0:
            raise MarketplaceValidationError('Insufficient payment amount')

        network = body.network or settings.MARKETPLACE_DEFAULT_NETWORK
        confirmed = fetch_confirmed_transaction(
            transaction_hash,
            network,
            recipient=provider.wallet_address,
            minimum_value=amount,
        )
        if confirmed.sender != developer_address:
            logger.info('transaction {} was sent by {}, not {}',
                        transaction_hash, confirmed.sender, developer_address)
            raise PaymentVerificationError('Invalid transaction: wrong sender')

        expires_at = timezone.now() + timedelta(hours=settings.MARKETPLACE_TOKEN_EXPIRY_HOURS)
        payment, tokens = self.store.record_payment(
            api=api,
            developer_address=developer_address,
            transaction_hash=transaction_hash,
            amount=amount,
            currency=body.currency,
            number_of_tokens=number_of_tokens,
            block_number=confirmed.block_number,
            block_timestamp=confirmed.block_timestamp,
            token_expires_at=expires_at,
        )

        return success_response(
            {
                'payment': {
                    'id': payment.id,
                    'transactionHash': payment.transaction_hash,
                    'amount': payment.amount,
                    'currency': payment.currency,
                    'numberOfTokens': payment.number_of_tokens,
                    'tokensIssued': payment.tokens_issued,
                    'verifiedAt': payment.created_at,
                },
                'tokens': [
                    {'id': token.id, 'tokenHash': token.token_hash, 'expiresAt': token.expires_at}
                    for token in tokens
                ],
                'api': {
                    'id': api.id,
                    'name': api.name,
                    'pricePerCall': api.price_per_call,
                    'currency': api.currency,
                },
                'provider': provider_summary(provider),
            },
            status_code=status.HTTP_201_CREATED,
        )
