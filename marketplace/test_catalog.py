import json
from datetime import timedelta

from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from eth_account import Account

from marketplace.testing import MarketplaceFixtures
from marketplace.models import Api, Favorite, Provider, Review, UsageLog

HOUR = timedelta(hours=1)


def post_json(client, url, payload):
    return client.post(url, data=json.dumps(payload), content_type='application/json')


def put_json(client, url, payload):
    return client.put(url, data=json.dumps(payload), content_type='application/json')


class ProviderViewTests(MarketplaceFixtures, TestCase):
    def test_create_provider(self):
        wallet = Account.create().address

        response = post_json(self.client, reverse('marketplace:providers'), {
            'walletAddress': wallet,
            'name': '  Acme APIs ',
            'email': 'Team@Acme.io',
        })

        self.assertEqual(response.status_code, 201)
        provider = Provider.objects.get()
        self.assertEqual(provider.wallet_address, wallet.lower())
        self.assertEqual(provider.name, 'Acme APIs')
        self.assertEqual(provider.email, 'team@acme.io')
        self.assertEqual(response.json()['data']['walletAddress'], wallet.lower())

    def test_create_provider_validation(self):
        url = reverse('marketplace:providers')

        missing = post_json(self.client, url, {'name': 'No wallet'})
        self.assertEqual(missing.status_code, 400)
        self.assertIn('walletAddress', missing.json()['error'])

        malformed = post_json(self.client, url, {'walletAddress': '0x1234', 'name': 'Short'})
        self.assertEqual(malformed.status_code, 400)
        self.assertEqual(malformed.json()['error'], 'Invalid wallet address format')

    def test_duplicate_provider_conflicts(self):
        provider = self.make_provider(email='dup@example.com')
        url = reverse('marketplace:providers')

        same_wallet = post_json(self.client, url, {
            'walletAddress': provider.wallet_address.upper().replace('0X', '0x'),
            'name': 'Again',
        })
        same_email = post_json(self.client, url, {
            'walletAddress': Account.create().address,
            'name': 'Again',
            'email': 'dup@example.com',
        })

        self.assertEqual(same_wallet.status_code, 409)
        self.assertEqual(same_email.status_code, 409)

    def test_list_providers(self):
        top = self.make_provider(name='Top', reputation_score=9)
        self.make_api(top)
        self.make_provider(name='Sleeping', is_active=False)

        body = self.client.get(reverse('marketplace:providers'), {'isActive': 'true'}).json()

        self.assertEqual([item['name'] for item in body['data']], ['Top'])
        self.assertEqual(body['data'][0]['counts']['apis'], 1)
        self.assertEqual(len(body['data'][0]['apis']), 1)
        self.assertEqual(body['meta'], {
            'page': 1, 'limit': 10, 'total': 1, 'pages': 1, 'hasNext': False, 'hasPrev': False,
        })

        searched = self.client.get(reverse('marketplace:providers'), {'search': 'sleep'}).json()
        self.assertEqual([item['name'] for item in searched['data']], ['Sleeping'])

    def test_provider_detail_and_update(self):
        provider = self.make_provider()
        active_api = self.make_api(provider)
        self.make_api(provider, is_active=False)
        self.make_payment(active_api, tokens=[(False, HOUR)])
        url = reverse('marketplace:provider', kwargs={'provider_id': provider.id})

        detail = self.client.get(url).json()['data']
        self.assertEqual([api['id'] for api in detail['apis']], [active_api.id])
        self.assertEqual(detail['counts'], {'apis': 2, 'payments': 1, 'tokens': 1})
        self.assertEqual(len(detail['recentPayments']), 1)

        updated = put_json(self.client, url, {'name': 'Renamed', 'website': '  '})
        self.assertEqual(updated.status_code, 200)
        provider.refresh_from_db()
        self.assertEqual(provider.name, 'Renamed')
        self.assertIsNone(provider.website)

        missing = self.client.get(reverse('marketplace:provider', kwargs={'provider_id': 999999}))
        self.assertEqual(missing.status_code, 404)

    def test_delete_deactivates_provider_and_apis(self):
        provider = self.make_provider()
        api = self.make_api(provider)

        response = self.client.delete(
            reverse('marketplace:provider', kwargs={'provider_id': provider.id}))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['message'], 'Provider deactivated successfully')
        self.assertFalse(Provider.objects.get(pk=provider.pk).is_active)
        self.assertFalse(Api.objects.get(pk=api.pk).is_active)

    def test_provider_by_wallet(self):
        provider = self.make_provider()
        url = reverse('marketplace:provider-by-wallet',
                      kwargs={'address': provider.wallet_address.upper().replace('0X', '0x')})

        self.assertEqual(self.client.get(url).json()['data']['id'], provider.id)

        invalid = self.client.get(
            reverse('marketplace:provider-by-wallet', kwargs={'address': 'not-a-wallet'}))
        self.assertEqual(invalid.status_code, 400)

        unknown = self.client.get(reverse(
            'marketplace:provider-by-wallet', kwargs={'address': Account.create().address}))
        self.assertEqual(unknown.status_code, 404)


class ApiViewTests(MarketplaceFixtures, TestCase):
    def setUp(self):
        self.provider = self.make_provider()

    def _create_payload(self, **overrides):
        payload = {
            'providerId': self.provider.id,
            'name': 'Weather',
            'endpoint': 'https://weather.example.com/v1',
            'publicPath': 'weather',
            'pricePerCall': 1000,
        }
        payload.update(overrides)
        return payload

    def test_create_api(self):
        response = post_json(self.client, reverse('marketplace:apis'), self._create_payload())

        self.assertEqual(response.status_code, 201)
        api = Api.objects.get()
        self.assertEqual(api.public_path, '/weather')
        self.assertEqual(api.price_per_call, '1000')
        self.assertEqual(api.category, 'General')
        self.assertEqual(api.method, 'GET')
        self.assertEqual(response.json()['data']['provider']['id'], self.provider.id)

    def test_create_api_rejections(self):
        url = reverse('marketplace:apis')
        self.make_api(self.provider, public_path='/taken')
        inactive = self.make_provider(is_active=False)

        cases = [
            (self._create_payload(endpoint='not a url'), 400),
            (self._create_payload(pricePerCall='0.5'), 400),
            (self._create_payload(publicPath='/taken'), 409),
            (self._create_payload(providerId=inactive.id), 404),
            ({'name': 'Incomplete'}, 400),
        ]
        for payload, expected in cases:
            with self.subTest(payload=payload):
                response = post_json(self.client, url, payload)
                self.assertEqual(response.status_code, expected)
                self.assertFalse(response.json()['success'])

    def test_list_apis_with_stats(self):
        popular = self.make_api(self.provider, name='Popular', total_calls=50, category='Data')
        quiet = self.make_api(self.provider, name='Quiet', total_calls=1, category='Data')
        self.make_api(self.provider, name='Off', is_active=False)
        Review.objects.create(api=popular, reviewer_address='0x1', rating=4, is_verified=True)
        Review.objects.create(api=popular, reviewer_address='0x2', rating=5, is_verified=True)
        Review.objects.create(api=popular, reviewer_address='0x3', rating=1, is_verified=False)
        Favorite.objects.create(api=popular, user_address='0xfan')
        self.make_payment(popular, tokens=[(False, HOUR), (True, HOUR)])

        body = self.client.get(reverse('marketplace:apis'), {
            'isActive': 'true', 'category': 'data',
        }).json()

        self.assertEqual([api['id'] for api in body['data']], [popular.id, quiet.id])
        first = body['data'][0]
        self.assertEqual(first['averageRating'], 4.5)
        self.assertEqual(first['reviewCount'], 2)
        self.assertEqual(first['favoriteCount'], 1)
        self.assertEqual(first['tokenCount'], 2)
        self.assertEqual(body['data'][1]['averageRating'], 0)

        ascending = self.client.get(reverse('marketplace:apis'), {
            'isActive': 'true', 'sortBy': 'totalCalls', 'sortOrder': 'asc',
        }).json()
        self.assertEqual([api['id'] for api in ascending['data']], [quiet.id, popular.id])

        bad_sort = self.client.get(reverse('marketplace:apis'), {'sortBy': 'password'})
        self.assertEqual(bad_sort.status_code, 400)

    def test_update_api(self):
        api = self.make_api(self.provider)
        url = reverse('marketplace:api', kwargs={'api_id': api.id})

        response = put_json(self.client, url, {'pricePerCall': '2500', 'category': ''})
        self.assertEqual(response.status_code, 200)
        api.refresh_from_db()
        self.assertEqual(api.price_per_call, '2500')
        self.assertEqual(api.category, 'General')

        invalid = put_json(self.client, url, {'endpoint': 'ftp:/broken'})
        self.assertEqual(invalid.status_code, 400)

    def test_api_detail(self):
        api = self.make_api(self.provider)
        Review.objects.create(api=api, reviewer_address='0x1', rating=3, is_verified=True)

        data = self.client.get(reverse('marketplace:api', kwargs={'api_id': api.id})).json()['data']

        self.assertEqual(data['averageRating'], 3)
        self.assertEqual(len(data['reviews']), 1)
        self.assertEqual(data['provider']['totalEarnings'], '0')
        self.assertEqual(
            self.client.get(reverse('marketplace:api', kwargs={'api_id': 999999})).status_code, 404)

    def test_delete_api_blocked_by_unused_tokens(self):
        api = self.make_api(self.provider)
        payment = self.make_payment(api, tokens=[(False, HOUR)])
        url = reverse('marketplace:api', kwargs={'api_id': api.id})

        blocked = self.client.delete(url)
        self.assertEqual(blocked.status_code, 409)
        self.assertTrue(Api.objects.get(pk=api.pk).is_active)

        payment.tokens.update(is_used=True)
        allowed = self.client.delete(url)
        self.assertEqual(allowed.status_code, 200)
        self.assertFalse(Api.objects.get(pk=api.pk).is_active)


class PublicApiViewTests(MarketplaceFixtures, TestCase):
    def setUp(self):
        self.api = self.make_api(public_path='/maps/geocode', uptime=99.0, average_response_time=80)

    def _url(self, path='maps/geocode'):
        return reverse('marketplace:public-api', kwargs={'public_path': path})

    def _log(self, success, response_time=100, age=timedelta(minutes=5)):
        UsageLog.objects.create(
            api=self.api,
            provider=self.api.provider,
            developer_address=self.developer_address,
            success=success,
            response_time=response_time,
            created_at=timezone.now() - age,
        )

    def test_performance_from_recent_usage(self):
        self._log(True, 100)
        self._log(True, 200)
        self._log(True, 300)
        self._log(False, 5000)
        self._log(False, 5000, age=timedelta(hours=30))

        response = self.client.get(self._url())

        self.assertEqual(response.status_code, 200)
        performance = response.json()['data']['performance']
        self.assertEqual(performance['recentCalls'], 4)
        self.assertEqual(performance['uptime'], 75.0)
        self.assertEqual(performance['averageResponseTime'], 200)

    def test_performance_without_usage_uses_stored_figures(self):
        performance = self.client.get(self._url()).json()['data']['performance']

        self.assertEqual(performance['recentCalls'], 0)
        self.assertEqual(performance['uptime'], 99.0)
        self.assertEqual(performance['averageResponseTime'], 80)

    @override_settings(MARKETPLACE_USAGE_WINDOW_HOURS=1)
    def test_usage_window_follows_settings(self):
        self._log(True, age=timedelta(hours=2))

        performance = self.client.get(self._url()).json()['data']['performance']

        self.assertEqual(performance['recentCalls'], 0)

    def test_inactive_or_missing(self):
        self.assertEqual(self.client.get(self._url('nope')).status_code, 404)

        Provider.objects.filter(pk=self.api.provider_id).update(is_active=False)
        response = self.client.get(self._url())
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['error'], 'API is currently inactive')


class FavoriteViewTests(MarketplaceFixtures, TestCase):
    user = '0x' + 'cd' * 20

    def setUp(self):
        self.api = self.make_api()

    def test_favorite_lifecycle(self):
        url = reverse('marketplace:favorites')

        created = post_json(self.client, url, {'apiId': self.api.id, 'userAddress': self.user.upper()})
        self.assertEqual(created.status_code, 201)

        duplicate = post_json(self.client, url, {'apiId': self.api.id, 'userAddress': self.user})
        self.assertEqual(duplicate.status_code, 409)

        listed = self.client.get(
            reverse('marketplace:user-favorites', kwargs={'address': self.user})).json()['data']
        self.assertEqual(listed['apiIds'], [self.api.id])
        self.assertEqual(listed['apis'][0]['name'], self.api.name)

        removed = self.client.delete(f'{url}?apiId={self.api.id}&userAddress={self.user}')
        self.assertEqual(removed.status_code, 200)
        self.assertFalse(Favorite.objects.exists())

        again = self.client.delete(f'{url}?apiId={self.api.id}&userAddress={self.user}')
        self.assertEqual(again.status_code, 404)

    def test_favorite_validation(self):
        url = reverse('marketplace:favorites')

        self.assertEqual(post_json(self.client, url, {'apiId': self.api.id}).status_code, 400)
        self.assertEqual(
            post_json(self.client, url, {'apiId': 999999, 'userAddress': self.user}).status_code, 404)
        self.assertEqual(self.client.delete(f'{url}?apiId={self.api.id}').status_code, 400)
