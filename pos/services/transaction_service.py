"""Transaction read service - history list, detail and idempotency lookups."""
from typing import List, Dict, Any, Optional
from sqlalchemy import desc
from sqlalchemy.orm import Session, selectinload
from pos.models import Transaction
from pos.exceptions import NotFoundError


def list_transactions(session: Session, limit: Optional[int] = 100) -> List[Transaction]:
    """Transactions newest first, optionally capped at `limit`."""
    query = (
        session.query(Transaction)
        .order_by(desc(Transaction.created_at), desc(Transaction.id))
    )
    if limit is not None:
        query = query.limit(max(int(limit), 0))
    return query.all()


def get_transaction(session: Session, transaction_id) -> Transaction:
    """Get a transaction with its items or raise NotFoundError."""
    try:
        tid = int(transaction_id)
    except (TypeError, ValueError):
        raise NotFoundError(f'Transaction {transaction_id} not found')
    
    transaction = (
        session.query(Transaction)
        .options(selectinload(Transaction.items))
        .filter(Transaction.id == tid)
        .first()
    )
    if not transaction:
        raise NotFoundError(f'Transaction {transaction_id} not found')
    return transaction


def find_by_idempotency_key(session: Session, idempotency_key: str) -> Optional[Transaction]:
    """Transaction committed with this idempotency key, if any."""
    if not idempotency_key:
        return None
    return session.query(Transaction).filter_by(idempotency_key=idempotency_key).first()


def serialize_transaction(transaction: Transaction, include_items: bool = True) -> Dict[str, Any]:
    """JSON-ready transaction (decimals as strings, ISO timestamps)."""
    data = {
        'id': transaction.id,
        'transaction_number': transaction.transaction_number,
        'created_at': transaction.created_at.isoformat() if transaction.created_at else None,
        'cashier_id': transaction.cashier_id,
        'cashier_name': transaction.cashier_name,
        'total_amount': str(transaction.total_amount),
        'payment_type': transaction.payment_type,
        'amount_paid': str(transaction.amount_paid),
        'change_amount': str(transaction.change_amount),
        'notes': transaction.notes,
    }
    if include_items:
        data['items'] = [
            {
                'product_id': item.product_id,
                'product_name': item.product_name,
                'quantity': item.quantity,
                'price_each': str(item.price_each),
                'subtotal': str(item.subtotal),
            }
            for item in transaction.items
        ]
    return data
