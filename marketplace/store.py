"""
Store handle passed to every marketplace view.

All ORM access of the request handlers goes through ``MarketplaceStore``.
One instance is built when the app is ready and handed to the views by the
URL configuration.
"""
from dataclasses import dataclass
from datetime import datetime
import secrets
from typing import Any, Dict, List, Optional, Sequence, Tuple

from django.db import IntegrityError, transaction
from django.db.models import Avg, Count, F, OuterRef, Prefetch, Q, QuerySet, Subquery
from django.db.models.functions import Coalesce
from loguru import logger

from marketplace.exceptions import MarketplaceConflictError
from marketplace.filters import PaymentFilter
from marketplace.models import Api, Favorite, Payment, Provider, Review, Token, UsageLog
from marketplace.pagination import PageRequest


def normalize_address(address: str) -> str:
    return address.strip().lower()


def _new_token_hash() -> str:
    return f'tkn_{secrets.token_hex(24)}'


@dataclass(frozen=True)
class UsageWindow:
    successful: int
    failed: int
    average_response_time: Optional[float]

    @property
    def total(self) -> int:
        return self.successful + self.failed


class MarketplaceStore:

    # -- purchases and payments -------------------------------------------

    def purchased_payments(
        self,
        developer_address: str,
        payment_filter: PaymentFilter,
        now: datetime,
        page: PageRequest,
    ) -> Tuple[List[Payment], int]:
        queryset = Payment.objects.filter(
            developer_address=normalize_address(developer_address),
            is_verified=True,
        )
        queryset = payment_filter.apply(queryset, now)
        total = queryset.count()
        payments = page.slice(
            queryset.select_related('api__provider')
            .prefetch_related(Prefetch('tokens', queryset=Token.objects.order_by('id')))
            .order_by('-created_at', '-id')
        )
        logger.debug('purchased payments for {}: {} of {}',
                     developer_address, len(payments), total)
        return list(payments), total

    def payment_history(
        self,
        developer_address: str,
        payment_filter: PaymentFilter,
        now: datetime,
        page: PageRequest,
    ) -> Tuple[List[Payment], int]:
        queryset = Payment.objects.filter(
            developer_address=normalize_address(developer_address))
        queryset = payment_filter.apply(queryset, now)
        total = queryset.count()
        payments = page.slice(queryset.select_related('api').order_by('-created_at', '-id'))
        return list(payments), total

    def find_payment_by_transaction(self, transaction_hash: str) -> Optional[Payment]:
        return Payment.objects.filter(transaction_hash=transaction_hash).first()

    def record_payment(
        self,
        api: Api,
        developer_address: str,
        transaction_hash: str,
        amount: int,
        currency: str,
        number_of_tokens: int,
        block_number: int,
        block_timestamp: datetime,
        token_expires_at: datetime,
    ) -> Tuple[Payment, List[Token]]:
        """
        Persist a verified payment and issue its single-use tokens.

        Revenue and earnings counters move in the same transaction.
        """
        developer_address = normalize_address(developer_address)
        provider = api.provider
        try:
            with transaction.atomic():
                payment = Payment.objects.create(
                    provider=provider,
                    api=api,
                    developer_address=developer_address,
                    transaction_hash=transaction_hash,
                    amount=str(amount),
                    currency=currency,
                    number_of_tokens=number_of_tokens,
                    is_verified=True,
                    block_number=block_number,
                    block_timestamp=block_timestamp,
                )
                tokens = Token.objects.bulk_create([
                    Token(
                        payment=payment,
                        api=api,
                        provider=provider,
                        developer_address=developer_address,
                        token_hash=_new_token_hash(),
                        expires_at=token_expires_at,
                    )
                    for _ in range(number_of_tokens)
                ])
                payment.tokens_issued = len(tokens)
                payment.save(update_fields=['tokens_issued', 'updated_at'])

                api.add_revenue(amount)
                api.save(update_fields=['total_revenue', 'updated_at'])
                provider.add_earnings(amount)
                provider.save(update_fields=['total_earnings', 'updated_at'])
        except IntegrityError as exc:
            logger.info('payment replay detected for transaction {}', transaction_hash)
            raise MarketplaceConflictError('Transaction already processed') from exc

        logger.info('payment {} recorded: {} tokens for API {}',
                    transaction_hash, len(tokens), api.id)
        return payment, tokens

    # -- tokens -----------------------------------------------------------

    def recent_tokens(self, limit: int) -> List[Token]:
        return list(
            Token.objects.select_related('api', 'payment').order_by('-created_at', '-id')[:limit]
        )

    def find_token(self, token_hash: str) -> Optional[Token]:
        return (
            Token.objects.select_related('api__provider', 'provider', 'payment')
            .filter(token_hash=token_hash)
            .first()
        )

    def consume_token(self, token: Token, now: datetime, usage: Dict[str, Any]) -> UsageLog:
        """
        Mark ``token`` used and log the call.

        The update only matches while the token is still unused, so of two
        concurrent consumers exactly one succeeds.
        """
        with transaction.atomic():
            updated = Token.objects.filter(pk=token.pk, is_used=False).update(
                is_used=True, used_at=now)
            if not updated:
                raise MarketplaceConflictError(
                    'Token was already used by another request')
            token.is_used = True
            token.used_at = now

            usage_log = UsageLog.objects.create(
                token=token,
                api=token.api,
                provider=token.provider,
                developer_address=token.developer_address,
                **usage,
            )
            Api.objects.filter(pk=token.api_id).update(
                total_calls=F('total_calls') + 1, updated_at=now)
            Provider.objects.filter(pk=token.provider_id).update(
                total_calls=F('total_calls') + 1, updated_at=now)
        return usage_log

    # -- providers --------------------------------------------------------

    def list_providers(
        self,
        search: str,
        is_active: Optional[bool],
        page: PageRequest,
    ) -> Tuple[List[Provider], int]:
        queryset = Provider.objects.all()
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search)
                | Q(description__icontains=search)
                | Q(wallet_address__icontains=search)
            )
        if is_active is not None:
            queryset = queryset.filter(is_active=is_active)
        total = queryset.count()
        providers = page.slice(
            _with_provider_counts(queryset)
            .prefetch_related('apis')
            .order_by('-reputation_score', '-total_calls', '-created_at', '-id')
        )
        return list(providers), total

    def provider_exists(self, wallet_address: str, email: Optional[str]) -> bool:
        condition = Q(wallet_address=normalize_address(wallet_address))
        if email:
            condition |= Q(email=email.strip().lower())
        return Provider.objects.filter(condition).exists()

    def create_provider(self, **fields: Any) -> Provider:
        try:
            return Provider.objects.create(**fields)
        except IntegrityError as exc:
            raise MarketplaceConflictError(
                'Provider with this wallet address or email already exists') from exc

    def get_provider(self, provider_id: int) -> Optional[Provider]:
        return _with_provider_counts(Provider.objects.filter(pk=provider_id)).first()

    def get_provider_by_wallet(self, wallet_address: str) -> Optional[Provider]:
        return _with_provider_counts(
            Provider.objects.filter(wallet_address=normalize_address(wallet_address))
        ).first()

    def provider_apis(self, provider: Provider, active_only: bool = False) -> List[Api]:
        queryset = provider.apis.all()
        if active_only:
            queryset = queryset.filter(is_active=True)
        return list(_with_api_stats(queryset).order_by('-total_calls', '-id'))

    def recent_provider_payments(self, provider: Provider, limit: int) -> List[Payment]:
        return list(
            provider.payments.select_related('api').order_by('-created_at', '-id')[:limit]
        )

    def apply_changes(self, instance, changes: Dict[str, Any]):
        for field, value in changes.items():
            setattr(instance, field, value)
        instance.save()
        return instance

    def deactivate_provider(self, provider: Provider) -> Provider:
        with transaction.atomic():
            provider.deactivate()
        logger.info('provider {} deactivated with its APIs', provider.id)
        return provider

    # -- APIs -------------------------------------------------------------

    def list_apis(
        self,
        filters: Dict[str, Any],
        search: str,
        ordering: Sequence[str],
        page: PageRequest,
    ) -> Tuple[List[Api], int]:
        queryset = Api.objects.filter(**filters)
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search)
                | Q(description__icontains=search)
                | Q(category__icontains=search)
            )
        total = queryset.count()
        apis = page.slice(
            _with_api_stats(queryset.select_related('provider')).order_by(*ordering)
        )
        return list(apis), total

    def public_path_taken(self, public_path: str) -> bool:
        return Api.objects.filter(public_path=public_path).exists()

    def create_api(self, provider: Provider, **fields: Any) -> Api:
        try:
            with transaction.atomic():
                api = Api.objects.create(provider=provider, **fields)
                provider.save(update_fields=['updated_at'])
        except IntegrityError as exc:
            raise MarketplaceConflictError(
                'API with this public path already exists') from exc
        return api

    def get_api(self, api_id: int) -> Optional[Api]:
        return _with_api_stats(
            Api.objects.select_related('provider').filter(pk=api_id)
        ).first()

    def get_api_by_public_path(self, public_path: str) -> Optional[Api]:
        return _with_api_stats(
            Api.objects.select_related('provider').filter(public_path=public_path)
        ).first()

    def verified_reviews(self, api: Api, limit: Optional[int] = None) -> list:
        queryset = api.reviews.filter(is_verified=True).order_by('-helpful_count', '-created_at')
        return list(queryset[:limit] if limit else queryset)

    def recent_api_payments(self, api: Api, limit: int) -> List[Payment]:
        return list(api.payments.order_by('-created_at', '-id')[:limit])

    def has_unused_tokens(self, api: Api) -> bool:
        return api.tokens.filter(is_used=False).exists()

    def deactivate_api(self, api: Api) -> Api:
        api.is_active = False
        api.save(update_fields=['is_active', 'updated_at'])
        logger.info('API {} deactivated', api.id)
        return api

    def usage_window(self, api: Api, since: datetime) -> UsageWindow:
        """Successful and failed calls since ``since``, in a single query."""
        stats = UsageLog.objects.filter(api=api, created_at__gte=since).aggregate(
            successful=Count('id', filter=Q(success=True)),
            failed=Count('id', filter=Q(success=False)),
            average_response_time=Avg('response_time', filter=Q(success=True)),
        )
        return UsageWindow(
            successful=stats['successful'] or 0,
            failed=stats['failed'] or 0,
            average_response_time=stats['average_response_time'],
        )

    # -- favorites --------------------------------------------------------

    def add_favorite(self, user_address: str, api: Api) -> Favorite:
        user_address = normalize_address(user_address)
        if Favorite.objects.filter(user_address=user_address, api=api).exists():
            raise MarketplaceConflictError('API already favorited')
        try:
            with transaction.atomic():
                return Favorite.objects.create(user_address=user_address, api=api)
        except IntegrityError as exc:
            raise MarketplaceConflictError('API already favorited') from exc

    def remove_favorite(self, user_address: str, api_id: int) -> Optional[Favorite]:
        favorite = (
            Favorite.objects.select_related('api__provider')
            .filter(user_address=normalize_address(user_address), api_id=api_id)
            .first()
        )
        if favorite is None:
            return None
        favorite_id = favorite.pk
        favorite.delete()
        favorite.pk = favorite_id
        return favorite

    def favorites_for(self, user_address: str) -> List[Favorite]:
        return list(
            Favorite.objects.select_related('api__provider')
            .filter(user_address=normalize_address(user_address))
            .order_by('-created_at', '-id')
        )


def _related_count(model, field: str, **conditions: Any) -> Coalesce:
    # Correlated subquery, so several counts never multiply each other.
    rows = (
        model.objects.filter(**{field: OuterRef('pk')}, **conditions)
        .order_by()
        .values(field)
        .annotate(total=Count('pk'))
        .values('total')
    )
    return Coalesce(Subquery(rows), 0)


def _with_provider_counts(queryset: QuerySet) -> QuerySet:
    return queryset.annotate(
        api_count=_related_count(Api, 'provider'),
        payment_count=_related_count(Payment, 'provider'),
        token_count=_related_count(Token, 'provider'),
    )


def _with_api_stats(queryset: QuerySet) -> QuerySet:
    return queryset.annotate(
        average_rating=Avg('reviews__rating', filter=Q(reviews__is_verified=True)),
        review_count=_related_count(Review, 'api', is_verified=True),
        favorite_count=_related_count(Favorite, 'api'),
        payment_count=_related_count(Payment, 'api'),
        token_count=_related_count(Token, 'api'),
    )

