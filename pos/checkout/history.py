"""Transaction history reads, normalized into records."""
import logging
from typing import Optional

from pos.checkout.backends import Backend, BackendError
from pos.checkout.records import TransactionRecord, TransactionSummary
from pos.checkout.result import Result, ErrorKind
from pos.exceptions import ValidationError

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 100


def list_transactions(backend: Backend, limit: Optional[int] = DEFAULT_LIST_LIMIT) -> Result:
    """
    Most recent transactions first.

    Args:
        backend: Backend to read from
        limit: Maximum rows; the terminal dashboard asks for 5

    Returns:
        Result with a list of TransactionSummary
    """
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 1):
        return Result.failure(ErrorKind.INVALID_INPUT, f'Invalid limit: {limit!r}')
    try:
        rows = backend.list_transactions(limit=limit)
        summaries = [TransactionSummary.from_dict(row) for row in rows]
    except BackendError as e:
        logger.error(f"[HISTORY] Listing transactions failed: {e}")
        return Result.failure(ErrorKind.NETWORK_OR_SERVER_ERROR, 'Could not load transactions')
    except ValidationError as e:
        logger.error(f"[HISTORY] Malformed transaction row: {e.message}")
        return Result.failure(ErrorKind.NETWORK_OR_SERVER_ERROR, f'Malformed transaction data: {e.message}')

    # Backends already sort; re-sort so a misbehaving one cannot reorder the list
    summaries.sort(key=lambda s: (s.created_at, _id_order(s.id)), reverse=True)
    return Result.success(summaries)


def _id_order(transaction_id: str):
    """Numeric ids compare as numbers ("10" after "9"), others as text after them."""
    if transaction_id.isdigit():
        return (0, int(transaction_id), '')
    return (1, 0, transaction_id)


def get_transaction(backend: Backend, transaction_id) -> Result:
    """Full transaction with items, NOT_FOUND when it does not exist."""
    try:
        data = backend.get_transaction(transaction_id)
    except BackendError as e:
        logger.error(f"[HISTORY] Reading transaction {transaction_id} failed: {e}")
        return Result.failure(ErrorKind.NETWORK_OR_SERVER_ERROR, 'Could not load the transaction')
    if data is None:
        return Result.failure(ErrorKind.NOT_FOUND, f'Transaction {transaction_id} not found')
    return _to_record(data)


def find_by_idempotency_key(backend: Backend, idempotency_key: str) -> Result:
    """Transaction committed with the given key, NOT_FOUND when none was."""
    try:
        data = backend.find_transaction_by_key(idempotency_key)
    except BackendError as e:
        logger.error(f"[HISTORY] Lookup by key {idempotency_key} failed: {e}")
        return Result.failure(ErrorKind.NETWORK_OR_SERVER_ERROR, 'Could not check the transaction status')
    if data is None:
        return Result.failure(ErrorKind.NOT_FOUND, 'No transaction was committed with this key')
    return _to_record(data)


def _to_record(data) -> Result:
    try:
        return Result.success(TransactionRecord.from_dict(data))
    except ValidationError as e:
        logger.error(f"[HISTORY] Malformed transaction: {e.message}")
        return Result.failure(ErrorKind.NETWORK_OR_SERVER_ERROR, f'Malformed transaction data: {e.message}')
