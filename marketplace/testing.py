"""
Test support: object builders shared by the marketplace test modules.

Imported only from tests. Needs the ``test`` extra (``eth-account``).
"""
import itertools
from datetime import timedelta

from django.utils import timezone
from eth_account import Account

from marketplace.models import Api, Payment, Provider, Token

_sequence = itertools.count(1)


class MarketplaceFixtures:
    """Mixin for ``TestCase`` classes that need providers, APIs and payments."""

    developer_address = '0x' + 'ab' * 20

    def make_provider(self, **fields) -> Provider:
        defaults = {
            'wallet_address': Account.create().address.lower(),
            'name': f'Provider {next(_sequence)}',
        }
        defaults.update(fields)
        return Provider.objects.create(**defaults)

    def make_api(self, provider=None, **fields) -> Api:
        number = next(_sequence)
        defaults = {
            'provider': provider or self.make_provider(),
            'name': f'API {number}',
            'description': 'Test API',
            'endpoint': 'https://api.example.com/v1',
            'public_path': f'/test-api-{number}',
            'price_per_call': '1000',
        }
        defaults.update(fields)
        return Api.objects.create(**defaults)

    def make_payment(self, api=None, tokens=(), **fields) -> Payment:
        """
        Create a verified payment and one token per entry of ``tokens``.

        Each entry is ``(is_used, expires_in)``.
        """
        api = api or self.make_api()
        defaults = {
            'provider': api.provider,
            'api': api,
            'developer_address': self.developer_address,
            'transaction_hash': '0x%064x' % next(_sequence),
            'amount': '5000',
            'number_of_tokens': len(tokens),
            'tokens_issued': len(tokens),
            'is_verified': True,
            'block_number': 100,
            'block_timestamp': timezone.now(),
        }
        defaults.update(fields)
        payment = Payment.objects.create(**defaults)
        for is_used, expires_in in tokens:
            self.make_token(payment, is_used=is_used, expires_in=expires_in)
        return payment

    def make_token(self, payment, is_used=False, expires_in=timedelta(hours=1), **fields) -> Token:
        now = timezone.now()
        defaults = {
            'payment': payment,
            'api': payment.api,
            'provider': payment.provider,
            'developer_address': payment.developer_address,
            'token_hash': f'tkn_test_{next(_sequence)}',
            'is_used': is_used,
            'used_at': now if is_used else None,
            'expires_at': now + expires_in,
        }
        defaults.update(fields)
        return Token.objects.create(**defaults)
