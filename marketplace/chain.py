"""
On-chain confirmation of developer payments.
"""
from dataclasses import dataclass
from datetime import datetime, timezone as datetime_timezone

from django.conf import settings
from hexbytes import HexBytes
from loguru import logger
from web3 import HTTPProvider, Web3
from web3.exceptions import TransactionNotFound

from marketplace.exceptions import (
    MarketplaceError,
    MarketplaceValidationError,
    PaymentVerificationError,
)


@dataclass(frozen=True)
class ConfirmedTransaction:
    transaction_hash: str
    block_number: int
    block_timestamp: datetime
    sender: str
    recipient: str
    value: int


def _normalize_transaction_hash(transaction_hash: str) -> HexBytes:
    try:
        hash_bytes = HexBytes(transaction_hash)
    except (ValueError, TypeError) as exc:
        raise MarketplaceValidationError(
            'Transaction hash must be hex encoded.') from exc
    if len(hash_bytes) != 32:
        raise MarketplaceValidationError('Transaction hash must be 32 bytes.')
    return hash_bytes


def canonical_transaction_hash(transaction_hash: str) -> str:
    """
    Return ``transaction_hash`` as lowercase hex with a ``0x`` prefix.

    Case and prefix variants of one hash map to the same value.
    """
    return '0x' + bytes(_normalize_transaction_hash(transaction_hash)).hex()


def _rpc_url(network: str) -> str:
    rpc_urls = getattr(settings, 'MARKETPLACE_RPC_URLS', {}) or {}
    rpc_url = rpc_urls.get(network.lower().strip())
    if rpc_url is None:
        supported = ', '.join(sorted(rpc_urls)) or 'none'
        raise MarketplaceValidationError(
            f'Unsupported network: {network}. Supported networks: {supported}')
    if not rpc_url:
        raise MarketplaceError(f'RPC URL for {network} is not configured.')
    return rpc_url


def fetch_confirmed_transaction(
    transaction_hash: str,
    network: str,
    recipient: str,
    minimum_value: int,
) -> ConfirmedTransaction:
    """
    Confirm that a transaction paid ``recipient`` at least ``minimum_value`` wei.

    Raises:
        PaymentVerificationError: the transaction is unknown, reverted, or
            does not match the expected recipient and amount.
        MarketplaceError: the RPC endpoint is missing or unreachable.
    """
    hash_bytes = _normalize_transaction_hash(transaction_hash)
    web3 = Web3(HTTPProvider(_rpc_url(network)))
    if not web3.is_connected():
        raise MarketplaceError('Unable to connect to configured RPC endpoint.')

    try:
        receipt = web3.eth.get_transaction_receipt(hash_bytes)
        transaction = web3.eth.get_transaction(hash_bytes)
    except TransactionNotFound as exc:
        raise PaymentVerificationError(
            'Invalid transaction: not found on-chain') from exc

    if receipt['status'] != 1:
        raise PaymentVerificationError('Invalid transaction: reverted on-chain')

    to_address = (transaction.get('to') or '').lower()
    if to_address != recipient.lower():
        logger.info('transaction {} paid {} instead of {}',
                    transaction_hash, to_address, recipient)
        raise PaymentVerificationError('Invalid transaction: wrong recipient')

    value = int(transaction.get('value', 0))
    if value < minimum_value:
        raise PaymentVerificationError('Invalid transaction: wrong amount')

    block = web3.eth.get_block(receipt['blockNumber'])
    block_timestamp = datetime.fromtimestamp(
        int(block['timestamp']), tz=datetime_timezone.utc)

    logger.debug('confirmed transaction {} in block {} on {}',
                 transaction_hash, receipt['blockNumber'], network)
    return ConfirmedTransaction(
        transaction_hash=transaction_hash,
        block_number=int(receipt['blockNumber']),
        block_timestamp=block_timestamp,
        sender=(transaction.get('from') or '').lower(),
        recipient=to_address,
        value=value,
    )
