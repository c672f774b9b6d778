"""
Cart engine.

The cart is an explicit immutable value: every operation takes a Cart and
returns a Result whose data is the new Cart, so a failed operation can
never leave a half-applied mutation behind. Stock checks run against the
CatalogSnapshot taken when the cart was built (local pre-flight); the
atomic commit re-checks live stock on the backend.
"""
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Optional, Tuple

from pos.checkout.catalog import CatalogSnapshot
from pos.checkout.records import ProductRecord, CommitLine, to_money, to_count
from pos.checkout.result import Result, ErrorKind
from pos.exceptions import ValidationError

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


@dataclass(frozen=True)
class CartLine:
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_commit_line(self) -> CommitLine:
        return CommitLine(
            product_id=self.product_id,
            name=self.name,
            quantity=self.quantity,
            unit_price=self.unit_price
        )


@dataclass(frozen=True)
class Cart:
    """Ordered cart lines, at most one per product. Order only matters for display."""
    lines: Tuple[CartLine, ...] = field(default_factory=tuple)

    def get(self, product_id: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.product_id == str(product_id):
                return line
        return None

    def __contains__(self, product_id: str) -> bool:
        return self.get(product_id) is not None

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[CartLine]:
        return iter(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self.lines)

    def _with_line(self, new_line: CartLine) -> 'Cart':
        if new_line.product_id in self:
            return Cart(tuple(
                new_line if line.product_id == new_line.product_id else line
                for line in self.lines
            ))
        return Cart(self.lines + (new_line,))

    def _without(self, product_id: str) -> 'Cart':
        return Cart(tuple(line for line in self.lines if line.product_id != str(product_id)))

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the Flask session (Decimals as strings)."""
        return {
            'lines': [
                {
                    'product_id': line.product_id,
                    'name': line.name,
                    'unit_price': str(line.unit_price),
                    'quantity': line.quantity,
                }
                for line in self.lines
            ]
        }

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Cart':
        """
        Rebuild a cart from its session form.

        Malformed lines and duplicates are dropped rather than failing the
        whole request.
        """
        lines = []
        seen = set()
        for raw in (data or {}).get('lines', []):
            try:
                line = CartLine(
                    product_id=str(raw['product_id']),
                    name=str(raw['name']),
                    unit_price=to_money(raw['unit_price'], 'unit_price'),
                    quantity=to_count(raw['quantity'])
                )
            except (KeyError, TypeError, ValidationError) as e:
                logger.warning(f"[CART] Dropping malformed session line {raw!r}: {e}")
                continue
            if line.quantity < 1 or line.product_id in seen:
                continue
            seen.add(line.product_id)
            lines.append(line)
        return cls(tuple(lines))


def add_item(cart: Cart, product: ProductRecord) -> Result:
    """
    Add one unit of a product.

    Creates a line with quantity 1 when the product is not in the cart yet,
    otherwise increments the existing line. Fails without touching the cart
    when the snapshot stock cannot cover the new quantity.
    """
    if not product.is_active:
        return Result.failure(ErrorKind.INVALID_INPUT, f'"{product.name}" is not available for sale')

    line = cart.get(product.id)
    if line is None:
        if product.stock < 1:
            return Result.failure(ErrorKind.OUT_OF_STOCK, f'"{product.name}" is out of stock')
        return Result.success(cart._with_line(CartLine(
            product_id=product.id,
            name=product.name,
            unit_price=product.price,
            quantity=1
        )))

    if line.quantity + 1 > product.stock:
        return Result.failure(
            ErrorKind.INSUFFICIENT_STOCK,
            f'Only {product.stock} of "{product.name}" available'
        )
    return Result.success(cart._with_line(replace(line, quantity=line.quantity + 1)))


def set_quantity(cart: Cart, product_id: str, new_quantity: int, snapshot: CatalogSnapshot) -> Result:
    """
    Replace the quantity of a line.

    A quantity below 1 removes the line. A quantity above the snapshot stock
    fails with INSUFFICIENT_STOCK and leaves the line as it was.
    """
    product_id = str(product_id)
    if isinstance(new_quantity, bool) or not isinstance(new_quantity, int):
        return Result.failure(ErrorKind.INVALID_INPUT, f'Quantity must be a whole number, got {new_quantity!r}')

    if new_quantity < 1:
        return remove_item(cart, product_id)

    line = cart.get(product_id)
    if line is None:
        return Result.failure(ErrorKind.NOT_FOUND, f'Product {product_id} is not in the cart')

    stock = snapshot.stock_of(product_id)
    if new_quantity > stock:
        return Result.failure(
            ErrorKind.INSUFFICIENT_STOCK,
            f'Only {stock} of "{line.name}" available'
        )
    return Result.success(cart._with_line(replace(line, quantity=new_quantity)))


def remove_item(cart: Cart, product_id: str) -> Result:
    """Remove a line. Removing a product that is not in the cart is a no-op."""
    return Result.success(cart._without(product_id))


def compute_total(cart: Cart) -> Decimal:
    """Sum of unit_price x quantity over all lines, recomputed on every call."""
    return sum((line.subtotal for line in cart.lines), ZERO)


def compute_change(cart: Cart, amount_paid: Decimal) -> Decimal:
    """amount_paid - total. Negative means the payment does not cover the cart."""
    return Decimal(str(amount_paid)) - compute_total(cart)


def fit_to_catalog(cart: Cart, snapshot: CatalogSnapshot) -> Tuple[Cart, List[str]]:
    """
    Clamp a cart to a freshly loaded snapshot.

    Lines above the new stock are reduced to it; lines whose product is gone
    or out of stock are dropped. Unit prices stay as captured at add time.

    Returns:
        (new cart, human readable list of adjustments)
    """
    lines = []
    adjustments = []
    for line in cart.lines:
        stock = snapshot.stock_of(line.product_id)
        if stock < 1:
            adjustments.append(f'"{line.name}" removed: no longer in stock')
            continue
        if line.quantity > stock:
            adjustments.append(f'"{line.name}" reduced from {line.quantity} to {stock}')
            line = replace(line, quantity=stock)
        lines.append(line)
    return Cart(tuple(lines)), adjustments
