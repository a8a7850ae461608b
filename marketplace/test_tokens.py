import json
from datetime import timedelta

from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from marketplace.exceptions import MarketplaceConflictError
from marketplace.testing import MarketplaceFixtures
from marketplace.models import Api, Provider, Token, UsageLog
from marketplace.store import MarketplaceStore


class TokenViewTestCase(MarketplaceFixtures, TestCase):
    def setUp(self):
        self.api = self.make_api(name='Translate')
        self.payment = self.make_payment(self.api)
        self.token = self.make_token(self.payment, token_hash='tkn_valid')

    def post(self, name, headers=None, **overrides):
        payload = {
            'tokenHash': self.token.token_hash,
            'apiId': self.api.id,
            'developerAddress': self.developer_address,
        }
        payload.update(overrides)
        return self.client.post(
            reverse(name), data=json.dumps(payload), content_type='application/json',
            **(headers or {}))


class TokenListViewTests(TokenViewTestCase):
    def test_lists_recent_tokens(self):
        newest = self.make_token(self.payment)

        response = self.client.get(reverse('marketplace:tokens'), {'limit': 1})

        body = response.json()
        self.assertEqual(response.status_code, 200)
        self.assertEqual(body['count'], 1)
        self.assertEqual(body['data'][0]['tokenHash'], newest.token_hash)
        self.assertEqual(body['data'][0]['api']['name'], 'Translate')
        self.assertEqual(body['data'][0]['payment']['transactionHash'], self.payment.transaction_hash)


class TokenValidateViewTests(TokenViewTestCase):
    def test_valid_token(self):
        response = self.post('marketplace:validate-token')

        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertTrue(data['token']['isValid'])
        self.assertEqual(data['api']['id'], self.api.id)
        self.assertEqual(data['provider']['walletAddress'], self.api.provider.wallet_address)
        self.assertEqual(data['payment']['id'], self.payment.id)
        self.assertFalse(Token.objects.get(pk=self.token.pk).is_used)

    def test_developer_address_is_case_insensitive(self):
        response = self.post('marketplace:validate-token',
                             developerAddress=self.developer_address.upper())

        self.assertEqual(response.status_code, 200)

    def test_unknown_token(self):
        response = self.post('marketplace:validate-token', tokenHash='tkn_missing')

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'Invalid token: token not found')

    def test_used_token_is_gone(self):
        Token.objects.filter(pk=self.token.pk).update(is_used=True, used_at=timezone.now())

        response = self.post('marketplace:validate-token')

        self.assertEqual(response.status_code, 410)
        body = response.json()
        self.assertEqual(body['error'], 'Token has already been used')
        self.assertIsNotNone(body['usedAt'])

    def test_expired_token_is_gone(self):
        Token.objects.filter(pk=self.token.pk).update(
            expires_at=timezone.now() - timedelta(minutes=1))

        response = self.post('marketplace:validate-token')

        self.assertEqual(response.status_code, 410)
        self.assertIn('expiredAt', response.json())

    def test_forbidden_cases(self):
        other_api = self.make_api()
        cases = {
            'Token is not valid for this API': {'apiId': other_api.id},
            'Token does not belong to this developer': {'developerAddress': '0x' + '12' * 20},
        }
        for message, overrides in cases.items():
            with self.subTest(message=message):
                response = self.post('marketplace:validate-token', **overrides)
                self.assertEqual(response.status_code, 403)
                self.assertEqual(response.json()['error'], message)

    def test_inactive_provider(self):
        Provider.objects.filter(pk=self.api.provider_id).update(is_active=False)

        response = self.post('marketplace:validate-token')

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['error'], 'API or provider is inactive')

    def test_missing_fields(self):
        response = self.client.post(
            reverse('marketplace:validate-token'),
            data=json.dumps({'tokenHash': 'tkn_valid'}),
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn('apiId', response.json()['error'])


class TokenConsumeViewTests(TokenViewTestCase):
    def test_consumes_token_and_logs_usage(self):
        response = self.post(
            'marketplace:consume-token',
            requestParams={'q': 'hello'},
            requestBody={'text': 'hola'},
            headers={'HTTP_USER_AGENT': 'sdk/1.0'},
        )

        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertTrue(data['consumed'])

        token = Token.objects.get(pk=self.token.pk)
        self.assertTrue(token.is_used)
        self.assertIsNotNone(token.used_at)

        usage_log = UsageLog.objects.get(pk=data['usageLogId'])
        self.assertEqual(usage_log.token_id, token.pk)
        self.assertEqual(usage_log.request_params, {'q': 'hello'})
        self.assertEqual(json.loads(usage_log.request_body), {'text': 'hola'})
        self.assertEqual(usage_log.developer_address, self.developer_address)

        self.assertEqual(Api.objects.get(pk=self.api.pk).total_calls, 1)
        self.assertEqual(Provider.objects.get(pk=self.api.provider_id).total_calls, 1)

    def test_token_is_single_use(self):
        self.assertEqual(self.post('marketplace:consume-token').status_code, 200)

        response = self.post('marketplace:consume-token')

        self.assertEqual(response.status_code, 410)
        self.assertEqual(UsageLog.objects.count(), 1)

    def test_concurrent_consumer_loses(self):
        store = MarketplaceStore()
        token = store.find_token(self.token.token_hash)
        Token.objects.filter(pk=token.pk).update(is_used=True, used_at=timezone.now())

        with self.assertRaises(MarketplaceConflictError):
            store.consume_token(token, timezone.now(), {})

        self.assertFalse(UsageLog.objects.exists())
        self.assertEqual(Api.objects.get(pk=self.api.pk).total_calls, 0)
