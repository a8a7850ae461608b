from datetime import datetime, timezone as datetime_timezone
from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase, override_settings
from web3.exceptions import TransactionNotFound

from marketplace.chain import canonical_transaction_hash, fetch_confirmed_transaction
from marketplace.exceptions import (
    MarketplaceError,
    MarketplaceValidationError,
    PaymentVerificationError,
)

TX_HASH = '0x' + 'aa' * 32
PROVIDER_WALLET = '0x' + '5e' * 20
BLOCK_TIME = 1714521600


@override_settings(MARKETPLACE_RPC_URLS={
    'base-sepolia': 'http://localhost:8545',
    'offline': '',
})
class FetchConfirmedTransactionTests(SimpleTestCase):
    def setUp(self):
        patcher = patch('marketplace.chain.Web3')
        web3_class = patcher.start()
        self.addCleanup(patcher.stop)

        self.web3 = MagicMock()
        web3_class.return_value = self.web3
        self.web3.is_connected.return_value = True
        self.web3.eth.get_transaction_receipt.return_value = {'status': 1, 'blockNumber': 77}
        self.web3.eth.get_transaction.return_value = {
            'from': '0x' + 'AB' * 20,
            'to': '0x' + '5E' * 20,
            'value': 5000,
        }
        self.web3.eth.get_block.return_value = {'timestamp': BLOCK_TIME}

    def fetch(self, **overrides):
        arguments = {
            'transaction_hash': TX_HASH,
            'network': 'base-sepolia',
            'recipient': PROVIDER_WALLET,
            'minimum_value': 5000,
        }
        arguments.update(overrides)
        return fetch_confirmed_transaction(**arguments)

    def test_confirms_matching_transfer(self):
        confirmed = self.fetch()

        self.assertEqual(confirmed.block_number, 77)
        self.assertEqual(
            confirmed.block_timestamp, datetime.fromtimestamp(BLOCK_TIME, tz=datetime_timezone.utc))
        self.assertEqual(confirmed.recipient, PROVIDER_WALLET)
        self.assertEqual(confirmed.sender, '0x' + 'ab' * 20)
        self.web3.eth.get_block.assert_called_once_with(77)

    def test_unknown_transaction(self):
        self.web3.eth.get_transaction_receipt.side_effect = TransactionNotFound('missing')

        with self.assertRaisesMessage(PaymentVerificationError, 'not found on-chain'):
            self.fetch()

    def test_reverted_transaction(self):
        self.web3.eth.get_transaction_receipt.return_value = {'status': 0, 'blockNumber': 77}

        with self.assertRaisesMessage(PaymentVerificationError, 'reverted'):
            self.fetch()

    def test_wrong_recipient(self):
        with self.assertRaisesMessage(PaymentVerificationError, 'wrong recipient'):
            self.fetch(recipient='0x' + '01' * 20)

    def test_underpaid(self):
        with self.assertRaisesMessage(PaymentVerificationError, 'wrong amount'):
            self.fetch(minimum_value=5001)

    def test_malformed_hash(self):
        for transaction_hash in ('0x1234', 'not-hex'):
            with self.subTest(transaction_hash=transaction_hash):
                with self.assertRaises(MarketplaceValidationError):
                    self.fetch(transaction_hash=transaction_hash)

    def test_unsupported_network(self):
        with self.assertRaisesMessage(MarketplaceValidationError, 'Unsupported network: solana'):
            self.fetch(network='solana')

    def test_unconfigured_or_unreachable_rpc(self):
        with self.assertRaises(MarketplaceError) as missing:
            self.fetch(network='offline')
        self.assertEqual(missing.exception.status_code, 500)

        self.web3.is_connected.return_value = False
        with self.assertRaises(MarketplaceError) as unreachable:
            self.fetch()
        self.assertEqual(unreachable.exception.status_code, 500)


class CanonicalTransactionHashTests(SimpleTestCase):
    def test_case_and_prefix_variants_agree(self):
        for variant in (TX_HASH, TX_HASH.upper(), TX_HASH[2:], TX_HASH[2:].upper()):
            with self.subTest(variant=variant):
                self.assertEqual(canonical_transaction_hash(variant), TX_HASH)

    def test_rejects_malformed_hash(self):
        for transaction_hash in ('0x1234', 'not-hex'):
            with self.subTest(transaction_hash=transaction_hash):
                with self.assertRaises(MarketplaceValidationError):
                    canonical_transaction_hash(transaction_hash)
