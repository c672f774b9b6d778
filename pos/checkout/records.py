"""
Fixed schemas for records crossing the backend boundary.

Backend payloads (service dicts or JSON bodies) are validated here once;
the rest of the checkout core works with these frozen records and never
re-checks field presence.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Optional, Tuple

from pos.exceptions import ValidationError
from pos.models.transaction import PaymentType, normalize_payment_type

CENT = Decimal('0.01')


def to_money(value: Any, field_name: str = 'amount') -> Decimal:
    """
    Convert a raw amount to a two-decimal Decimal.

    Floats go through str() so 0.1 stays 0.10 and not its binary expansion.

    Raises:
        ValidationError: if the value is missing, not numeric or negative.
    """
    if value is None or value == '':
        raise ValidationError(f'{field_name} is required')
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f'{field_name} is not a valid amount: {value!r}')
    if not amount.is_finite():
        raise ValidationError(f'{field_name} is not a valid amount: {value!r}')
    if amount < 0:
        raise ValidationError(f'{field_name} cannot be negative')
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_count(value: Any, field_name: str = 'quantity') -> int:
    """Convert a raw stock/quantity value to a non-negative int."""
    if isinstance(value, bool):
        raise ValidationError(f'{field_name} must be an integer')
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ValidationError(f'{field_name} must be an integer')
    if not number.is_finite() or number != number.to_integral_value():
        raise ValidationError(f'{field_name} must be an integer')
    if number < 0:
        raise ValidationError(f'{field_name} cannot be negative')
    return int(number)


def to_datetime(value: Any, field_name: str = 'created_at') -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace('Z', '+00:00'))
        except ValueError:
            pass
    raise ValidationError(f'{field_name} is not a valid timestamp: {value!r}')


def _require(data: Dict[str, Any], key: str) -> Any:
    if key not in data or data[key] is None:
        raise ValidationError(f'Missing field: {key}')
    return data[key]


@dataclass(frozen=True)
class ProductRecord:
    """Product as seen by the cart: read-only, price and stock at read time."""
    id: str
    name: str
    price: Decimal
    stock: int
    category: str = ''
    brand: str = ''
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProductRecord':
        name = str(_require(data, 'name')).strip()
        if not name:
            raise ValidationError('Product name cannot be empty')
        return cls(
            id=str(_require(data, 'id')),
            name=name,
            price=to_money(_require(data, 'price'), 'price'),
            stock=to_count(_require(data, 'stock'), 'stock'),
            category=data.get('category') or '',
            brand=data.get('brand') or '',
            is_active=bool(data.get('is_active', True)),
        )


@dataclass(frozen=True)
class CashierIdentity:
    id: Optional[str]
    name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CashierIdentity':
        name = str(_require(data, 'name')).strip()
        if not name:
            raise ValidationError('Cashier name cannot be empty')
        cashier_id = data.get('id')
        return cls(id=str(cashier_id) if cashier_id is not None else None, name=name)


@dataclass(frozen=True)
class PaymentInput:
    payment_type: PaymentType
    amount_paid: Optional[Decimal]

    @classmethod
    def from_raw(cls, payment_type: Any, amount_paid: Any) -> 'PaymentInput':
        """
        Build a payment from operator input.

        An empty amount is kept as None so the orchestrator can report it
        as an insufficient payment rather than a malformed one.
        """
        try:
            kind = normalize_payment_type(payment_type)
        except ValueError:
            raise ValidationError(f'Unknown payment type: {payment_type!r}')
        amount = None if amount_paid is None or amount_paid == '' else to_money(amount_paid, 'amount_paid')
        return cls(payment_type=kind, amount_paid=amount)


@dataclass(frozen=True)
class CommitLine:
    """Line as sent to the atomic commit."""
    product_id: str
    name: str
    quantity: int
    unit_price: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            'product_id': self.product_id,
            'name': self.name,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
        }


@dataclass(frozen=True)
class CommitOutcome:
    """Answer of the atomic commit: accepted with ids, or rejected with a message."""
    success: bool
    transaction_id: Optional[str] = None
    transaction_number: Optional[str] = None
    message: str = ''
    replayed: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CommitOutcome':
        if not isinstance(data, dict) or 'success' not in data:
            raise ValidationError('Commit response without success flag')
        if not data['success']:
            return cls(success=False, message=str(data.get('message') or 'Checkout rejected'))
        return cls(
            success=True,
            transaction_id=str(_require(data, 'transaction_id')),
            transaction_number=str(_require(data, 'transaction_number')),
            replayed=bool(data.get('replayed', False)),
        )


@dataclass(frozen=True)
class TransactionItemRecord:
    product_id: Optional[str]
    product_name: str
    quantity: int
    price_each: Decimal
    subtotal: Decimal

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransactionItemRecord':
        product_id = data.get('product_id')
        return cls(
            product_id=str(product_id) if product_id is not None else None,
            product_name=str(_require(data, 'product_name')),
            quantity=to_count(_require(data, 'quantity')),
            price_each=to_money(_require(data, 'price_each'), 'price_each'),
            subtotal=to_money(_require(data, 'subtotal'), 'subtotal'),
        )


@dataclass(frozen=True)
class TransactionRecord:
    """Normalized committed transaction, the input of the receipt builder."""
    id: str
    transaction_number: str
    created_at: datetime
    cashier_name: str
    total_amount: Decimal
    payment_type: str
    amount_paid: Decimal
    change_amount: Decimal
    items: Tuple[TransactionItemRecord, ...] = field(default_factory=tuple)
    cashier_id: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransactionRecord':
        items = data.get('items')
        if items is None:
            items = []
        if not isinstance(items, (list, tuple)):
            raise ValidationError('items must be a list')
        cashier_id = data.get('cashier_id')
        # change_amount is signed, unlike the other amounts
        try:
            change = Decimal(str(_require(data, 'change_amount'))).quantize(CENT, rounding=ROUND_HALF_UP)
        except InvalidOperation:
            raise ValidationError('change_amount is not a valid amount')
        return cls(
            id=str(_require(data, 'id')),
            transaction_number=str(_require(data, 'transaction_number')),
            created_at=to_datetime(_require(data, 'created_at')),
            cashier_name=str(_require(data, 'cashier_name')),
            total_amount=to_money(_require(data, 'total_amount'), 'total_amount'),
            payment_type=str(_require(data, 'payment_type')),
            amount_paid=to_money(_require(data, 'amount_paid'), 'amount_paid'),
            change_amount=change,
            items=tuple(TransactionItemRecord.from_dict(item) for item in items),
            cashier_id=str(cashier_id) if cashier_id is not None else None,
            notes=data.get('notes') or None,
        )

    @property
    def items_total(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal('0.00'))


@dataclass(frozen=True)
class TransactionSummary:
    """Row of the history list (no items)."""
    id: str
    transaction_number: str
    created_at: datetime
    total_amount: Decimal
    payment_type: str
    cashier_name: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TransactionSummary':
        return cls(
            id=str(_require(data, 'id')),
            transaction_number=str(_require(data, 'transaction_number')),
            created_at=to_datetime(_require(data, 'created_at')),
            total_amount=to_money(_require(data, 'total_amount'), 'total_amount'),
            payment_type=str(_require(data, 'payment_type')),
            cashier_name=str(data.get('cashier_name') or ''),
        )


@dataclass(frozen=True)
class StoreIdentity:
    """Store header and footer printed on receipts."""
    name: str
    address: str = ''
    phone: str = ''
    email: str = ''
    footer: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StoreIdentity':
        name = str(data.get('store_name') or '').strip()
        if not name:
            raise ValidationError('Settings without store_name')
        return cls(
            name=name,
            address=data.get('store_address') or '',
            phone=data.get('store_phone') or '',
            email=data.get('store_email') or '',
            footer=data.get('receipt_footer') or '',
        )
