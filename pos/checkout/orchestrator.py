"""
Checkout orchestrator.

submit() turns a cart and a payment into a committed transaction through
one atomic backend call, then reads the persisted transaction back.
CheckoutSession wraps it for one register: it owns the cart, the catalog
snapshot, the idempotency key of the current cart and the busy flag.

Stock is checked twice on purpose: the cart pre-flights against the
snapshot so the operator gets immediate feedback, and the commit re-checks
live stock under row locks so two registers can never oversell.
"""
import logging
import threading
import uuid
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set

from pos.checkout import cart as cart_engine
from pos.checkout.backends import Backend, BackendError
from pos.checkout.cart import Cart
from pos.checkout.catalog import CatalogSnapshot, load_catalog, lookup_product
from pos.checkout.history import find_by_idempotency_key, get_transaction
from pos.checkout.records import CashierIdentity, CommitOutcome, PaymentInput, TransactionRecord
from pos.checkout.result import Result, ErrorKind
from pos.exceptions import ValidationError

logger = logging.getLogger(__name__)

UNKNOWN_OUTCOME_MESSAGE = (
    'Could not confirm whether the sale went through. '
    'Check the transaction history before submitting again.'
)


def new_idempotency_key() -> str:
    return uuid.uuid4().hex


def submit(
    backend: Backend,
    cart: Cart,
    payment: PaymentInput,
    cashier: CashierIdentity,
    notes: Optional[str] = None,
    idempotency_key: Optional[str] = None
) -> Result:
    """
    Commit a cart as a sale.

    Pre-flight (no backend call): the cart must not be empty and the amount
    paid must cover the total. Then the atomic commit runs, and on success
    the full transaction is read back by id.

    Returns:
        Result with the TransactionRecord. Failure kinds:
        EMPTY_CART, INSUFFICIENT_PAYMENT (local), COMMIT_REJECTED (nothing
        was written, message from the backend), NETWORK_OR_SERVER_ERROR
        (outcome unknown, or committed but not readable; in the latter case
        data carries the CommitOutcome).
    """
    if cart.is_empty:
        return Result.failure(ErrorKind.EMPTY_CART, 'Cart is empty')

    total = cart_engine.compute_total(cart)
    if payment.amount_paid is None:
        return Result.failure(ErrorKind.INSUFFICIENT_PAYMENT, 'Enter the amount paid')
    if payment.amount_paid < total:
        return Result.failure(
            ErrorKind.INSUFFICIENT_PAYMENT,
            f'Amount paid {payment.amount_paid} is less than the total {total}'
        )

    lines = [line.to_commit_line().to_dict() for line in cart]
    logger.info(
        f"[CHECKOUT] Submitting {len(lines)} lines, total={total}, "
        f"payment={payment.payment_type.value}, key={idempotency_key}"
    )

    try:
        raw = backend.commit_sale(
            cashier_id=cashier.id,
            cashier_name=cashier.name,
            payment_type=payment.payment_type.value,
            amount_paid=str(payment.amount_paid),
            lines=lines,
            notes=notes,
            idempotency_key=idempotency_key
        )
        outcome = CommitOutcome.from_dict(raw)
    except BackendError as e:
        logger.error(f"[CHECKOUT] Commit outcome unknown for key {idempotency_key}: {e}")
        return Result.failure(ErrorKind.NETWORK_OR_SERVER_ERROR, UNKNOWN_OUTCOME_MESSAGE)
    except ValidationError as e:
        logger.error(f"[CHECKOUT] Unreadable commit response for key {idempotency_key}: {e.message}")
        return Result.failure(ErrorKind.NETWORK_OR_SERVER_ERROR, UNKNOWN_OUTCOME_MESSAGE)

    if not outcome.success:
        logger.warning(f"[CHECKOUT] Commit rejected: {outcome.message}")
        return Result.failure(ErrorKind.COMMIT_REJECTED, outcome.message)

    read = get_transaction(backend, outcome.transaction_id)
    if not read.ok:
        logger.error(
            f"[CHECKOUT] {outcome.transaction_number} committed but could not be read back: {read.message}"
        )
        return Result.failure(
            ErrorKind.NETWORK_OR_SERVER_ERROR,
            f'Sale {outcome.transaction_number} was recorded but could not be loaded. '
            f'Check the transaction history.',
            data=outcome
        )

    logger.info(f"[CHECKOUT] {outcome.transaction_number} completed (replayed={outcome.replayed})")
    return Result.success(read.data)


class CheckoutSession:
    """
    One register's checkout state.

    The busy flag is shared by every session of the process through the
    in-flight idempotency keys, so two requests carrying the same cart
    cannot both be submitting.
    """

    _in_flight: Set[str] = set()
    _in_flight_lock = threading.Lock()

    def __init__(
        self,
        backend: Backend,
        cashier: CashierIdentity,
        cart: Optional[Cart] = None,
        idempotency_key: Optional[str] = None,
        pending: bool = False
    ):
        self.backend = backend
        self.cashier = cashier
        self.cart = cart or Cart()
        self.idempotency_key = idempotency_key or new_idempotency_key()
        self.pending = pending
        self.snapshot: Optional[CatalogSnapshot] = None
        self.adjustments: List[str] = []
        self.last_transaction: Optional[TransactionRecord] = None

    # =====================================================
    # STATE
    # =====================================================

    @property
    def busy(self) -> bool:
        with self._in_flight_lock:
            return self.idempotency_key in self._in_flight

    def _acquire(self) -> bool:
        with self._in_flight_lock:
            if self.idempotency_key in self._in_flight:
                return False
            self._in_flight.add(self.idempotency_key)
            return True

    def _release(self, key: str) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(key)

    def to_state(self) -> Dict[str, Any]:
        """Serializable state for the Flask session (the snapshot is reloaded per request)."""
        return {
            'cart': self.cart.to_dict(),
            'idempotency_key': self.idempotency_key,
            'pending': self.pending,
        }

    @classmethod
    def from_state(cls, backend: Backend, cashier: CashierIdentity, state: Optional[Dict[str, Any]]) -> 'CheckoutSession':
        state = state or {}
        return cls(
            backend=backend,
            cashier=cashier,
            cart=Cart.from_dict(state.get('cart')),
            idempotency_key=state.get('idempotency_key'),
            pending=bool(state.get('pending', False))
        )

    # =====================================================
    # CATALOG
    # =====================================================

    def load_catalog(self) -> Result:
        """
        Replace the snapshot with a fresh catalog read.

        The cart is clamped to the new stock (see adjustments) and, when that
        changes it, gets a new idempotency key. A pending cart, or one being
        submitted by another request, is left as it was submitted. On failure
        the snapshot is dropped and cart operations are refused until a
        reload succeeds.
        """
        result = load_catalog(self.backend)
        if not result.ok:
            self.snapshot = None
            return result
        self.snapshot = result.data
        if self.pending or self.busy:
            return result

        fitted, adjustments = cart_engine.fit_to_catalog(self.cart, self.snapshot)
        if adjustments:
            for adjustment in adjustments:
                logger.info(f"[CHECKOUT] Cart adjusted after catalog reload: {adjustment}")
            self.cart = fitted
            self.adjustments = self.adjustments + adjustments
            self._rotate_key()
        return result

    def _guard_mutation(self) -> Optional[Result]:
        if self.snapshot is None:
            return Result.failure(ErrorKind.CATALOG_UNAVAILABLE, 'Product catalog is unavailable')
        if self.pending:
            return Result.failure(ErrorKind.UNRESOLVED_OUTCOME, UNKNOWN_OUTCOME_MESSAGE)
        if self.busy:
            return Result.failure(ErrorKind.CHECKOUT_IN_PROGRESS, 'Checkout already in progress')
        return None

    def _apply(self, result: Result) -> Result:
        if result.ok and result.data != self.cart:
            self.cart = result.data
            self._rotate_key()
        return result

    def _rotate_key(self) -> None:
        # A key identifies one exact cart; a changed cart is a different sale
        self.idempotency_key = new_idempotency_key()

    # =====================================================
    # CART
    # =====================================================

    def add_item(self, product_id) -> Result:
        blocked = self._guard_mutation()
        if blocked:
            return blocked
        product = lookup_product(self.snapshot, product_id)
        if not product.ok:
            return product
        return self._apply(cart_engine.add_item(self.cart, product.data))

    def set_quantity(self, product_id, quantity) -> Result:
        blocked = self._guard_mutation()
        if blocked:
            return blocked
        return self._apply(cart_engine.set_quantity(self.cart, product_id, quantity, self.snapshot))

    def remove_item(self, product_id) -> Result:
        blocked = self._guard_mutation()
        if blocked:
            return blocked
        return self._apply(cart_engine.remove_item(self.cart, product_id))

    def clear(self) -> Result:
        """
        Empty the cart and start over with a new idempotency key.

        Clearing while an outcome is pending abandons it; the operator has
        to check the history for that sale.
        """
        if self.busy:
            return Result.failure(ErrorKind.CHECKOUT_IN_PROGRESS, 'Checkout already in progress')
        if self.pending:
            logger.warning(f"[CHECKOUT] Cart cleared with unresolved outcome for key {self.idempotency_key}")
        self.cart = Cart()
        self.pending = False
        self.idempotency_key = new_idempotency_key()
        return Result.success(self.cart)

    def total(self) -> Decimal:
        return cart_engine.compute_total(self.cart)

    def change(self, amount_paid) -> Decimal:
        return cart_engine.compute_change(self.cart, amount_paid)

    # =====================================================
    # CHECKOUT
    # =====================================================

    def submit(self, payment: PaymentInput, notes: Optional[str] = None) -> Result:
        """
        Submit the cart.

        Success clears the cart, issues a new idempotency key and reloads the
        catalog. A rejection keeps everything as it was. An unknown outcome
        keeps the cart and marks it pending until reconcile() runs.

        A cart that the last catalog reload clamped is refused once with
        INSUFFICIENT_STOCK (data: the adjustments), so the reduced cart is
        only sold after the operator has seen it.
        """
        if self.pending:
            return Result.failure(ErrorKind.UNRESOLVED_OUTCOME, UNKNOWN_OUTCOME_MESSAGE)
        if self.snapshot is None:
            return Result.failure(ErrorKind.CATALOG_UNAVAILABLE, 'Product catalog is unavailable')
        if self.adjustments:
            # The operator has not seen the clamped cart yet
            adjustments, self.adjustments = self.adjustments, []
            logger.warning(f"[CHECKOUT] Submit refused, cart changed on reload: {'; '.join(adjustments)}")
            return Result.failure(
                ErrorKind.INSUFFICIENT_STOCK,
                'Stock changed since the cart was shown: ' + '; '.join(adjustments)
                + '. Review the cart and submit again.',
                data=adjustments
            )

        key = self.idempotency_key
        if not self._acquire():
            return Result.failure(ErrorKind.CHECKOUT_IN_PROGRESS, 'Checkout already in progress')
        try:
            result = submit(self.backend, self.cart, payment, self.cashier, notes=notes, idempotency_key=key)
        finally:
            self._release(key)

        if result.ok:
            self._complete(result.data)
        elif result.kind == ErrorKind.NETWORK_OR_SERVER_ERROR:
            self.pending = True
        return result

    def reconcile(self) -> Result:
        """
        Resolve a pending unknown outcome by looking up the idempotency key.

        Found: the sale happened; completes it like a successful submit.
        Not found: the sale did not happen; the cart is kept and may be
        submitted again. Backend still unreachable: stays pending.
        """
        if not self.pending:
            return Result.failure(ErrorKind.INVALID_INPUT, 'No checkout is awaiting confirmation')

        lookup = find_by_idempotency_key(self.backend, self.idempotency_key)
        if lookup.ok:
            logger.info(f"[CHECKOUT] Reconciled key {self.idempotency_key} -> {lookup.data.transaction_number}")
            self._complete(lookup.data)
            return lookup
        if lookup.kind == ErrorKind.NOT_FOUND:
            logger.info(f"[CHECKOUT] Reconciled key {self.idempotency_key}: no sale recorded")
            self.pending = False
            return Result.failure(
                ErrorKind.NOT_FOUND,
                'The sale was not recorded. The cart was kept and can be submitted again.'
            )
        return lookup

    def _complete(self, transaction: TransactionRecord) -> None:
        self.last_transaction = transaction
        self.cart = Cart()
        self.pending = False
        self.idempotency_key = new_idempotency_key()
        reload = self.load_catalog()
        if not reload.ok:
            logger.warning(f"[CHECKOUT] Catalog reload after {transaction.transaction_number} failed: {reload.message}")
