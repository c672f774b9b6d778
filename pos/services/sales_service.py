"""
Sales service with the atomic checkout commit.

commit_sale is the only writer of transactions: stock decrement, the
transaction row and its items succeed together or not at all.
"""
import hashlib
import json
import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Dict, Any, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pos.models import Product, Transaction, TransactionItem, AppUser, normalize_payment_type
from pos.services.transaction_service import find_by_idempotency_key

logger = logging.getLogger(__name__)

CENT = Decimal('0.01')
MAX_IDEMPOTENCY_KEY_LENGTH = 64


def format_transaction_number(transaction_id: int, created_at: datetime) -> str:
    """
    Human readable, unique transaction number derived from the row id.

    Examples:
        format_transaction_number(42, datetime(2026, 10, 18)) -> "TXN-20261018-000042"
    """
    return f"TXN-{created_at:%Y%m%d}-{transaction_id:06d}"


def commit_sale(
    session: Session,
    cashier_id,
    cashier_name: str,
    payment_type: str,
    amount_paid,
    lines: List[Dict[str, Any]],
    notes: Optional[str] = None,
    idempotency_key: Optional[str] = None
) -> Dict[str, Any]:
    """
    Commit a sale atomically.

    Within one database transaction: re-validates live stock for every line,
    decrements it, inserts the transaction and its items and assigns the
    transaction number. Any rejection rolls everything back.

    Args:
        session: SQLAlchemy session
        cashier_id: AppUser id of the operator (stored only if it resolves)
        cashier_name: Name printed on the receipt
        payment_type: cash | digital-wallet | card
        amount_paid: Amount tendered
        lines: [{product_id, name, quantity, unit_price}]
        notes: Optional free text
        idempotency_key: Replaying a key returns the transaction already committed with it;
            the same key with different lines or payment is rejected

    Returns:
        {'success': True, 'transaction_id', 'transaction_number', 'replayed'}
        or {'success': False, 'message'}

    Raises:
        SQLAlchemyError: on unexpected database failures (after rollback)
    """
    try:
        payment = normalize_payment_type(payment_type)
    except ValueError:
        return _rejected(f'Invalid payment type: {payment_type}')

    cashier_name = (cashier_name or '').strip()
    if not cashier_name:
        return _rejected('Cashier name is required')

    if idempotency_key is not None and len(idempotency_key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        return _rejected('Idempotency key too long')

    try:
        paid = Decimal(str(amount_paid))
    except (InvalidOperation, ValueError, TypeError):
        return _rejected('Invalid amount paid')
    if not paid.is_finite() or paid < 0:
        return _rejected('Invalid amount paid')
    paid = paid.quantize(CENT, rounding=ROUND_HALF_UP)

    parsed_lines, error = _parse_lines(lines)
    if error:
        return _rejected(error)

    request_hash = _request_fingerprint(parsed_lines, payment.value, paid)

    # 1. Idempotency check
    existing = find_by_idempotency_key(session, idempotency_key)
    if existing:
        return _replay(existing, idempotency_key, request_hash)

    try:
        # 2. Lock product rows
        products = _lock_products(session, [line['product_id'] for line in parsed_lines])

        # 3. Check-and-decrement stock per line
        for line in parsed_lines:
            product = products.get(line['product_id'])
            if product is None or not product.is_active:
                session.rollback()
                return _rejected(f'Product "{line["name"]}" is no longer available')

            result = session.execute(
                update(Product)
                .where(Product.id == product.id, Product.stock >= line['quantity'])
                .values(stock=Product.stock - line['quantity'])
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                product_id, product_name, available = product.id, product.name, product.stock
                session.rollback()
                logger.warning(
                    f"[COMMIT] Stock race lost for product {product_id}: "
                    f"available={available}, requested={line['quantity']}"
                )
                return _rejected(
                    f'Insufficient stock for "{product_name}". '
                    f'Available: {available}, requested: {line["quantity"]}'
                )

        # 4. Totals and server-side payment check
        total = sum((line['subtotal'] for line in parsed_lines), Decimal('0.00'))
        if paid < total:
            session.rollback()
            return _rejected(f'Amount paid {paid} is less than the total {total}')

        # 5. Create Transaction
        created_at = datetime.now()
        transaction = Transaction(
            total_amount=total,
            payment_type=payment.value,
            amount_paid=paid,
            change_amount=paid - total,
            cashier_id=_resolve_cashier_id(session, cashier_id),
            cashier_name=cashier_name,
            notes=(notes or '').strip() or None,
            idempotency_key=idempotency_key or None,
            request_hash=request_hash,
            created_at=created_at
        )
        session.add(transaction)
        session.flush()
        transaction.transaction_number = format_transaction_number(transaction.id, created_at)

        # 6. Create TransactionItems
        for line in parsed_lines:
            session.add(TransactionItem(
                transaction_id=transaction.id,
                product_id=line['product_id'],
                product_name=line['name'],
                quantity=line['quantity'],
                price_each=line['unit_price'],
                subtotal=line['subtotal']
            ))

        session.commit()
        logger.info(
            f"[COMMIT] {transaction.transaction_number} committed: "
            f"{len(parsed_lines)} lines, total={total}, payment={payment.value}"
        )
        return _accepted(transaction)

    except IntegrityError:
        session.rollback()
        # A concurrent submit with the same key won the insert
        existing = find_by_idempotency_key(session, idempotency_key)
        if existing:
            return _replay(existing, idempotency_key, request_hash)
        raise
    except Exception:
        session.rollback()
        raise


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _parse_lines(lines) -> Tuple[List[Dict[str, Any]], Optional[str]]:
    """Validate the commit payload lines; returns (lines, error message)."""
    if not lines:
        return [], 'Cart is empty'

    parsed = []
    seen = set()
    for raw in lines:
        try:
            product_id = int(raw['product_id'])
            name = str(raw.get('name') or '').strip()
            quantity = raw['quantity']
            unit_price = Decimal(str(raw['unit_price']))
        except (KeyError, TypeError, ValueError, InvalidOperation, AttributeError):
            return [], f'Invalid line: {raw!r}'

        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            return [], f'Quantity must be a whole number of at least 1 for "{name or product_id}"'
        if not unit_price.is_finite() or unit_price < 0:
            return [], f'Invalid unit price for "{name or product_id}"'
        if product_id in seen:
            return [], f'Product {product_id} appears more than once'
        seen.add(product_id)

        unit_price = unit_price.quantize(CENT, rounding=ROUND_HALF_UP)
        parsed.append({
            'product_id': product_id,
            'name': name or f'Product {product_id}',
            'quantity': quantity,
            'unit_price': unit_price,
            'subtotal': (unit_price * quantity).quantize(CENT, rounding=ROUND_HALF_UP)
        })
    return parsed, None


def _lock_products(session: Session, product_ids: List[int]) -> Dict[int, Product]:
    """Lock product rows FOR UPDATE (in id order) and return them by id."""
    if not product_ids:
        return {}
    products = (
        session.query(Product)
        .filter(Product.id.in_(product_ids))
        .order_by(Product.id)
        .with_for_update()
        .all()
    )
    return {product.id: product for product in products}


def _resolve_cashier_id(session: Session, cashier_id) -> Optional[int]:
    """AppUser id when the cashier exists, None otherwise."""
    try:
        uid = int(cashier_id)
    except (TypeError, ValueError):
        return None
    return uid if session.get(AppUser, uid) else None


def _request_fingerprint(parsed_lines: List[Dict[str, Any]], payment_type: str, amount_paid: Decimal) -> str:
    """
    sha256 of what a commit sells: product, quantity and unit price of every
    line (in product order) plus the payment.
    """
    canonical = {
        'lines': sorted(
            [line['product_id'], line['quantity'], str(line['unit_price'])]
            for line in parsed_lines
        ),
        'payment_type': payment_type,
        'amount_paid': str(amount_paid),
    }
    encoded = json.dumps(canonical, sort_keys=True, separators=(',', ':')).encode('utf-8')
    return hashlib.sha256(encoded).hexdigest()


def _replay(existing: Transaction, idempotency_key: str, request_hash: str) -> Dict[str, Any]:
    """Answer a repeated key with its transaction, unless it now carries a different sale."""
    if existing.request_hash and existing.request_hash != request_hash:
        logger.warning(
            f"[COMMIT] Key {idempotency_key} reused for a different sale "
            f"(already committed as {existing.transaction_number})"
        )
        return _rejected(
            f'This checkout key was already used for sale {existing.transaction_number} '
            f'with different items or payment. Clear the cart and ring it up again.'
        )
    logger.info(f"[COMMIT] Replayed idempotency key {idempotency_key} -> {existing.transaction_number}")
    return _accepted(existing, replayed=True)


def _accepted(transaction: Transaction, replayed: bool = False) -> Dict[str, Any]:
    return {
        'success': True,
        'transaction_id': transaction.id,
        'transaction_number': transaction.transaction_number,
        'replayed': replayed
    }


def _rejected(message: str) -> Dict[str, Any]:
    return {'success': False, 'message': message}
