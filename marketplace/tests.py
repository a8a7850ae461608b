import json
from datetime import datetime, timedelta, timezone as datetime_timezone
from unittest.mock import patch

from django.test import TestCase, override_settings
from django.urls import reverse

from marketplace.chain import ConfirmedTransaction
from marketplace.exceptions import PaymentVerificationError
from marketplace.testing import MarketplaceFixtures
from marketplace.models import Api, Payment, Provider, Token
from marketplace.store import MarketplaceStore

HOUR = timedelta(hours=1)


class PurchasedApisViewTests(MarketplaceFixtures, TestCase):
    @property
    def url(self):
        return reverse('marketplace:purchased-apis')

    def setUp(self):
        self.api = self.make_api(name='Weather', public_path='/weather')
        self.active = self.make_payment(
            self.api, tokens=[(False, HOUR), (True, HOUR), (False, -HOUR)], amount='10.50')
        self.expired = self.make_payment(self.api, tokens=[(True, HOUR)], amount='3.25')

    def test_requires_developer_address(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {
            'success': False, 'error': 'Developer address is required',
        })

    def test_lists_purchases_with_summary(self):
        response = self.client.get(self.url, {'developerAddress': self.developer_address})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual([item['id'] for item in body['data']], [self.expired.id, self.active.id])

        active = body['data'][1]
        self.assertEqual(active['status'], 'active')
        self.assertEqual(active['apiEndpoint'], '/weather')
        self.assertEqual(active['tokens'], {
            'total': 3, 'active': 1, 'used': 1, 'expired': 1, 'available': 1,
        })
        self.assertIsInstance(active['expiresAt'], int)
        self.assertEqual(body['data'][0]['status'], 'expired')
        self.assertIsNone(body['data'][0]['expiresAt'])

        self.assertEqual(body['summary'], {
            'totalAPIsPurchased': 2,
            'totalTokensPurchased': 4,
            'activeTokens': 1,
            'usedTokens': 2,
            'expiredTokens': 1,
            'totalSpent': 13.75,
            'activeAPIs': 1,
        })
        self.assertEqual(body['pagination'], {'page': 1, 'limit': 10, 'total': 2, 'totalPages': 1})

    def test_address_is_case_insensitive(self):
        response = self.client.get(self.url, {'developerAddress': self.developer_address.upper()})

        self.assertEqual(len(response.json()['data']), 2)

    def test_status_filter(self):
        active = self.client.get(
            self.url, {'developerAddress': self.developer_address, 'status': 'active'}).json()
        expired = self.client.get(
            self.url, {'developerAddress': self.developer_address, 'status': 'expired'}).json()
        unknown = self.client.get(
            self.url, {'developerAddress': self.developer_address, 'status': 'failed'}).json()

        self.assertEqual([item['id'] for item in active['data']], [self.active.id])
        self.assertEqual([item['id'] for item in expired['data']], [self.expired.id])
        self.assertEqual(len(unknown['data']), 2)

    def test_unverified_payments_are_not_purchases(self):
        self.make_payment(self.api, tokens=[(False, HOUR)], is_verified=False)

        body = self.client.get(self.url, {'developerAddress': self.developer_address}).json()

        self.assertEqual(body['pagination']['total'], 2)

    def test_orphaned_payment_is_skipped(self):
        orphan_api = self.make_api()
        orphan = self.make_payment(orphan_api, tokens=[(False, HOUR)])
        Payment.objects.filter(pk=orphan.pk).update(api=None)

        body = self.client.get(self.url, {'developerAddress': self.developer_address}).json()

        self.assertNotIn(orphan.id, [item['id'] for item in body['data']])
        self.assertEqual(body['summary']['totalAPIsPurchased'], 2)

    def test_pagination(self):
        self.make_payment(self.api)

        body = self.client.get(
            self.url, {'developerAddress': self.developer_address, 'page': 2, 'limit': 2}).json()

        self.assertEqual([item['id'] for item in body['data']], [self.active.id])
        self.assertEqual(body['pagination'], {'page': 2, 'limit': 2, 'total': 3, 'totalPages': 2})
        self.assertEqual(body['summary']['totalAPIsPurchased'], 1)

    def test_rejects_invalid_paging(self):
        for params in ({'page': '0'}, {'limit': 'ten'}, {'limit': '-5'},
                       {'page': '100000000000000000000'}, {'limit': '2147483648'}):
            with self.subTest(params=params):
                response = self.client.get(
                    self.url, {'developerAddress': self.developer_address, **params})
                self.assertEqual(response.status_code, 400)
                self.assertFalse(response.json()['success'])

    def test_unexpected_error_is_not_leaked(self):
        with patch.object(MarketplaceStore, 'purchased_payments',
                          side_effect=RuntimeError('connection to 10.0.0.5 refused')):
            response = self.client.get(self.url, {'developerAddress': self.developer_address})

        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {
            'success': False, 'error': 'Failed to fetch purchased APIs',
        })


class PaymentHistoryViewTests(MarketplaceFixtures, TestCase):
    @property
    def url(self):
        return reverse('marketplace:payment-history')

    def test_requires_developer_address(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()['success'])

    def test_lists_transactions(self):
        api = self.make_api(name='Geocoder')
        verified = self.make_payment(api, tokens=[(False, HOUR)])
        pending = self.make_payment(api, is_verified=False, block_number=10)
        failed = self.make_payment(api, is_verified=False, block_number=None)
        Payment.objects.filter(pk=failed.pk).update(api=None)

        body = self.client.get(self.url, {'developerAddress': self.developer_address}).json()

        self.assertEqual([row['id'] for row in body['data']], [failed.id, pending.id, verified.id])
        self.assertEqual(body['pagination'], {'page': 1, 'limit': 20, 'total': 3, 'totalPages': 1})
        first = body['data'][2]
        self.assertEqual(first['apiName'], 'Geocoder')
        self.assertEqual(first['numberOfTokens'], 1)
        self.assertEqual(first['network'], 'base-sepolia')
        self.assertEqual(body['data'][0]['apiName'], 'Unknown API')

        for state, expected in (('verified', verified), ('pending', pending), ('failed', failed)):
            with self.subTest(state=state):
                rows = self.client.get(
                    self.url, {'developerAddress': self.developer_address, 'status': state},
                ).json()['data']
                self.assertEqual([row['id'] for row in rows], [expected.id])


class ProcessPaymentViewTests(MarketplaceFixtures, TestCase):
    transaction_hash = '0x' + '1f' * 32

    @property
    def url(self):
        return reverse('marketplace:process-payment')

    def setUp(self):
        self.provider = self.make_provider()
        self.api = self.make_api(self.provider, price_per_call='1000')

        patcher = patch('marketplace.views.fetch_confirmed_transaction')
        self.fetch_transaction = patcher.start()
        self.addCleanup(patcher.stop)
        self.fetch_transaction.return_value = ConfirmedTransaction(
            transaction_hash=self.transaction_hash,
            block_number=1234,
            block_timestamp=datetime(2024, 5, 1, tzinfo=datetime_timezone.utc),
            sender=self.developer_address,
            recipient=self.provider.wallet_address,
            value=3500,
        )

    def _post(self, **overrides):
        payload = {
            'transactionHash': self.transaction_hash,
            'apiId': self.api.id,
            'developerAddress': self.developer_address.upper(),
            'paymentAmount': '3500',
        }
        payload.update(overrides)
        return self.client.post(self.url, data=json.dumps(payload), content_type='application/json')

    def test_issues_tokens(self):
        response = self._post()

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['data']['payment']['numberOfTokens'], 3)
        self.assertEqual(body['data']['payment']['tokensIssued'], 3)
        self.assertEqual(len(body['data']['tokens']), 3)
        self.assertTrue(all(t['tokenHash'].startswith('tkn_') for t in body['data']['tokens']))

        self.fetch_transaction.assert_called_once_with(
            self.transaction_hash,
            'base-sepolia',
            recipient=self.provider.wallet_address,
            minimum_value=3500,
        )

        payment = Payment.objects.get(transaction_hash=self.transaction_hash)
        self.assertEqual(payment.developer_address, self.developer_address)
        self.assertEqual(payment.block_number, 1234)
        self.assertEqual(Token.objects.filter(payment=payment, is_used=False).count(), 3)
        self.assertEqual(Api.objects.get(pk=self.api.pk).total_revenue, '3500')
        self.assertEqual(Provider.objects.get(pk=self.provider.pk).total_earnings, '3500')

    @override_settings(MARKETPLACE_TOKEN_EXPIRY_HOURS=2)
    def test_token_expiry_follows_settings(self):
        self._post()

        payment = Payment.objects.get(transaction_hash=self.transaction_hash)
        for token in payment.tokens.all():
            lifetime = token.expires_at - payment.created_at
            self.assertGreater(lifetime, timedelta(hours=1, minutes=59))
            self.assertLessEqual(lifetime, timedelta(hours=2))

    def test_replayed_transaction_conflicts(self):
        self._post()

        response = self._post()

        self.assertEqual(response.status_code, 409)
        payment = Payment.objects.get(transaction_hash=self.transaction_hash)
        self.assertEqual(response.json(), {
            'success': False,
            'error': 'Transaction already processed',
            'paymentId': payment.id,
            'tokensIssued': 3,
        })
        self.assertEqual(Token.objects.count(), 3)

    def test_missing_fields(self):
        response = self.client.post(
            self.url, data=json.dumps({'apiId': self.api.id}), content_type='application/json')

        self.assertEqual(response.status_code, 400)
        self.assertIn('transactionHash', response.json()['error'])
        self.assertIn('paymentAmount', response.json()['error'])

    def test_insufficient_amount(self):
        response = self._post(paymentAmount='999')

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Insufficient payment amount')
        self.fetch_transaction.assert_not_called()

    def test_inactive_api(self):
        Api.objects.filter(pk=self.api.pk).update(is_active=False)

        self.assertEqual(self._post().status_code, 404)
        self.assertEqual(self._post(apiId=999999).status_code, 404)

    def test_inactive_provider(self):
        Provider.objects.filter(pk=self.provider.pk).update(is_active=False)

        response = self._post()

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['error'], 'Provider is inactive')

    def test_unconfirmed_transaction(self):
        self.fetch_transaction.side_effect = PaymentVerificationError(
            'Invalid transaction: wrong recipient')

        response = self._post()

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Invalid transaction: wrong recipient')
        self.assertFalse(Payment.objects.exists())

    def test_hash_variants_are_one_transaction(self):
        self.assertEqual(self._post().status_code, 201)

        for variant in (self.transaction_hash.upper().replace('0X', '0x'), self.transaction_hash[2:]):
            with self.subTest(variant=variant):
                response = self._post(transactionHash=variant)
                self.assertEqual(response.status_code, 409)
                self.assertEqual(response.json()['tokensIssued'], 3)

        self.assertEqual(Payment.objects.count(), 1)
        self.assertEqual(Token.objects.count(), 3)
        self.assertEqual(Api.objects.get(pk=self.api.pk).total_revenue, '3500')

    def test_stores_canonical_hash(self):
        response = self._post(transactionHash=self.transaction_hash[2:].upper())

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['data']['payment']['transactionHash'], self.transaction_hash)
        self.assertEqual(self.fetch_transaction.call_args.args[0], self.transaction_hash)

    def test_malformed_hash(self):
        response = self._post(transactionHash='0x1234')

        self.assertEqual(response.status_code, 400)
        self.fetch_transaction.assert_not_called()

    def test_sender_must_be_developer(self):
        response = self._post(developerAddress='0x' + '12' * 20)

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Invalid transaction: wrong sender')
        self.assertFalse(Payment.objects.exists())
        self.assertFalse(Token.objects.exists())
