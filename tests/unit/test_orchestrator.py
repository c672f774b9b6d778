"""
Unit tests for the checkout orchestrator and CheckoutSession, against the
in-memory backend.
"""
from decimal import Decimal

import pytest

from pos.checkout import (
    Cart, CashierIdentity, CheckoutSession, CommitOutcome, ErrorKind, PaymentInput, add_item, submit
)
from pos.exceptions import ValidationError

CASHIER = CashierIdentity(id='7', name='Ana Cruz')


def cash(amount):
    return PaymentInput.from_raw('cash', amount)


def build(snapshot, *quantities):
    cart = Cart()
    for product_id, quantity in quantities:
        for _ in range(quantity):
            cart = add_item(cart, snapshot.get(product_id)).unwrap()
    return cart


class TestSubmitPreflight:
    """Local checks fail fast without calling the backend."""

    def test_empty_cart(self, backend):
        result = submit(backend, Cart(), cash('100'), CASHIER)

        assert result.kind == ErrorKind.EMPTY_CART
        assert backend.commit_calls == 0

    def test_payment_below_total(self, backend, snapshot):
        cart = build(snapshot, ('p1', 2), ('p2', 1))

        result = submit(backend, cart, cash('249'), CASHIER)

        assert result.kind == ErrorKind.INSUFFICIENT_PAYMENT
        assert backend.commit_calls == 0

    def test_missing_amount(self, backend, snapshot):
        cart = build(snapshot, ('p2', 1))

        result = submit(backend, cart, cash(''), CASHIER)

        assert result.kind == ErrorKind.INSUFFICIENT_PAYMENT
        assert backend.commit_calls == 0

    def test_unknown_payment_type_is_rejected_at_the_boundary(self):
        with pytest.raises(ValidationError):
            PaymentInput.from_raw('bitcoin', '10')

    def test_negative_amount_is_rejected_at_the_boundary(self):
        with pytest.raises(ValidationError):
            PaymentInput.from_raw('cash', '-5')


class TestSubmit:
    """Atomic commit, read-back and failure classification."""

    def test_reference_scenario(self, backend, snapshot):
        cart = build(snapshot, ('p1', 2), ('p2', 1))

        result = submit(backend, cart, cash('300'), CASHIER, notes='Suki')

        assert result.ok
        txn = result.data
        assert txn.total_amount == Decimal('250.00')
        assert txn.change_amount == Decimal('50.00')
        assert txn.amount_paid - txn.total_amount == txn.change_amount
        assert txn.items_total == txn.total_amount
        assert [(i.product_id, i.quantity) for i in txn.items] == [('p1', 2), ('p2', 1)]
        assert txn.cashier_name == 'Ana Cruz'
        assert txn.notes == 'Suki'
        assert backend.products['p1']['stock'] == 1
        assert len(backend.transactions) == 1

    def test_exact_payment_gives_zero_change(self, backend, snapshot):
        cart = build(snapshot, ('p4', 1))

        result = submit(backend, cart, PaymentInput.from_raw('gcash', '8'), CASHIER)

        assert result.data.change_amount == 0
        assert result.data.payment_type == 'digital-wallet'

    def test_stock_race_is_commit_rejected(self, backend, snapshot):
        first = build(snapshot, ('p4', 1))
        second = build(snapshot, ('p4', 1))

        one = submit(backend, first, cash('10'), CASHIER)
        two = submit(backend, second, cash('10'), CASHIER)

        assert one.ok
        assert two.kind == ErrorKind.COMMIT_REJECTED
        assert 'Insufficient stock' in two.message
        assert backend.products['p4']['stock'] == 0
        assert len(backend.transactions) == 1

    def test_transport_failure_is_unknown_outcome(self, backend, snapshot):
        backend.fail_commit = True
        cart = build(snapshot, ('p2', 1))

        result = submit(backend, cart, cash('50'), CASHIER)

        assert result.kind == ErrorKind.NETWORK_OR_SERVER_ERROR
        assert 'Could not confirm' in result.message

    def test_malformed_commit_response_is_unknown_outcome(self, backend, snapshot):
        backend.commit_sale = lambda **kwargs: ['not', 'a', 'dict']
        cart = build(snapshot, ('p2', 1))

        result = submit(backend, cart, cash('50'), CASHIER)

        assert result.kind == ErrorKind.NETWORK_OR_SERVER_ERROR

    def test_committed_but_unreadable_carries_outcome(self, backend, snapshot):
        backend.fail_read = True
        cart = build(snapshot, ('p2', 1))

        result = submit(backend, cart, cash('50'), CASHIER)

        assert result.kind == ErrorKind.NETWORK_OR_SERVER_ERROR
        assert isinstance(result.data, CommitOutcome)
        assert result.data.transaction_number == 'TXN-20261018-000001'

    def test_same_key_replays_instead_of_selling_twice(self, backend, snapshot):
        cart = build(snapshot, ('p2', 2))

        first = submit(backend, cart, cash('100'), CASHIER, idempotency_key='k1')
        second = submit(backend, cart, cash('100'), CASHIER, idempotency_key='k1')

        assert first.data.id == second.data.id
        assert backend.products['p2']['stock'] == 8
        assert len(backend.transactions) == 1


@pytest.fixture
def checkout(backend):
    session = CheckoutSession(backend, CASHIER)
    assert session.load_catalog().ok
    return session


class TestCheckoutSession:
    """Session-level state: cart ownership, busy flag, pending outcomes."""

    def test_cart_operations_require_catalog(self, backend):
        backend.fail_catalog = True
        session = CheckoutSession(backend, CASHIER)

        load = session.load_catalog()

        assert load.kind == ErrorKind.CATALOG_UNAVAILABLE
        assert session.add_item('p1').kind == ErrorKind.CATALOG_UNAVAILABLE
        assert session.submit(cash('10')).kind == ErrorKind.CATALOG_UNAVAILABLE

    def test_add_unknown_product(self, checkout):
        assert checkout.add_item('nope').kind == ErrorKind.NOT_FOUND

    def test_failed_operation_keeps_cart(self, checkout):
        checkout.add_item('p4')
        before = checkout.cart

        result = checkout.add_item('p4')

        assert result.kind == ErrorKind.INSUFFICIENT_STOCK
        assert checkout.cart is before

    def test_success_clears_cart_and_rotates_key(self, checkout, backend):
        checkout.add_item('p1')
        checkout.add_item('p1')
        checkout.add_item('p2')
        key = checkout.idempotency_key

        result = checkout.submit(cash('300'))

        assert result.ok
        assert checkout.cart.is_empty
        assert checkout.idempotency_key != key
        assert checkout.last_transaction == result.data
        # Catalog reloaded after the sale
        assert checkout.snapshot.stock_of('p1') == 1

    def test_rejection_keeps_cart(self, checkout, backend):
        checkout.add_item('p4')
        backend.products['p4']['stock'] = 0

        result = checkout.submit(cash('10'))

        assert result.kind == ErrorKind.COMMIT_REJECTED
        assert checkout.cart.get('p4').quantity == 1
        assert not checkout.pending

    def test_busy_flag_rejects_duplicate_submit(self, checkout, backend):
        checkout.add_item('p2')
        observed = {}
        original_commit = backend.commit_sale

        def commit_while_resubmitting(**kwargs):
            observed['busy'] = checkout.busy
            observed['second'] = checkout.submit(cash('50'))
            observed['mutation'] = checkout.add_item('p1')
            return original_commit(**kwargs)

        backend.commit_sale = commit_while_resubmitting

        result = checkout.submit(cash('50'))

        assert result.ok
        assert observed['busy'] is True
        assert observed['second'].kind == ErrorKind.CHECKOUT_IN_PROGRESS
        assert observed['mutation'].kind == ErrorKind.CHECKOUT_IN_PROGRESS
        assert len(backend.transactions) == 1
        assert not checkout.busy

    def test_busy_flag_is_shared_by_sessions_with_the_same_key(self, backend):
        first = CheckoutSession(backend, CASHIER)
        first.load_catalog()
        first.add_item('p2')
        # A second request restored from the same saved state
        second = CheckoutSession.from_state(backend, CASHIER, first.to_state())
        second.load_catalog()
        observed = {}
        original_commit = backend.commit_sale

        def commit_with_concurrent_request(**kwargs):
            observed['second'] = second.submit(cash('50'))
            return original_commit(**kwargs)

        backend.commit_sale = commit_with_concurrent_request

        assert first.submit(cash('50')).ok
        assert observed['second'].kind == ErrorKind.CHECKOUT_IN_PROGRESS

    def test_unknown_outcome_blocks_until_reconciled(self, checkout, backend):
        checkout.add_item('p2')
        backend.lose_commit_response = True

        result = checkout.submit(cash('50'))

        assert result.kind == ErrorKind.NETWORK_OR_SERVER_ERROR
        assert checkout.pending
        assert checkout.cart.get('p2').quantity == 1
        assert checkout.submit(cash('50')).kind == ErrorKind.UNRESOLVED_OUTCOME
        assert checkout.add_item('p2').kind == ErrorKind.UNRESOLVED_OUTCOME

        reconciled = checkout.reconcile()

        assert reconciled.ok
        assert reconciled.data.transaction_number == 'TXN-20261018-000001'
        assert checkout.cart.is_empty
        assert not checkout.pending
        assert len(backend.transactions) == 1

    def test_reconcile_when_sale_did_not_happen(self, checkout, backend):
        checkout.add_item('p2')
        backend.fail_commit = True
        checkout.submit(cash('50'))
        backend.fail_commit = False

        reconciled = checkout.reconcile()

        assert reconciled.kind == ErrorKind.NOT_FOUND
        assert not checkout.pending
        assert checkout.cart.get('p2').quantity == 1
        assert checkout.submit(cash('50')).ok
        assert len(backend.transactions) == 1

    def test_reconcile_while_backend_still_down(self, checkout, backend):
        checkout.add_item('p2')
        backend.fail_commit = True
        checkout.submit(cash('50'))
        backend.fail_read = True

        reconciled = checkout.reconcile()

        assert reconciled.kind == ErrorKind.NETWORK_OR_SERVER_ERROR
        assert checkout.pending

    def test_reconcile_without_pending_outcome(self, checkout):
        assert checkout.reconcile().kind == ErrorKind.INVALID_INPUT

    def test_clear_abandons_pending_outcome_with_new_key(self, checkout, backend):
        checkout.add_item('p2')
        backend.fail_commit = True
        checkout.submit(cash('50'))
        key = checkout.idempotency_key

        checkout.clear()

        assert checkout.cart.is_empty
        assert not checkout.pending
        assert checkout.idempotency_key != key

    def test_reload_clamps_cart(self, checkout, backend):
        checkout.add_item('p1')
        checkout.add_item('p1')
        key = checkout.idempotency_key
        backend.products['p1']['stock'] = 1

        checkout.load_catalog()

        assert checkout.cart.get('p1').quantity == 1
        assert checkout.adjustments
        assert checkout.idempotency_key != key

    def test_reload_without_changes_keeps_key(self, checkout):
        checkout.add_item('p2')
        key = checkout.idempotency_key

        checkout.load_catalog()

        assert checkout.idempotency_key == key
        assert checkout.adjustments == []

    def test_clamped_cart_is_not_sold_unseen(self, checkout, backend):
        for _ in range(3):
            checkout.add_item('p1')
        backend.products['p1']['stock'] = 1
        checkout.load_catalog()

        refused = checkout.submit(cash('300'))

        assert refused.kind == ErrorKind.INSUFFICIENT_STOCK
        assert refused.data == ['"Rice 5kg" reduced from 3 to 1']
        assert backend.commit_calls == 0
        assert checkout.cart.get('p1').quantity == 1

        # Submitting again sells the reduced cart the operator was shown
        sold = checkout.submit(cash('100'))

        assert sold.ok
        assert [(i.product_id, i.quantity) for i in sold.data.items] == [('p1', 1)]
        assert backend.products['p1']['stock'] == 0

    def test_pending_cart_is_not_clamped(self, checkout, backend):
        checkout.add_item('p4')
        backend.lose_commit_response = True
        checkout.submit(cash('8'))
        key, cart = checkout.idempotency_key, checkout.cart

        # The lost commit took the last unit
        checkout.load_catalog()

        assert checkout.cart == cart
        assert checkout.idempotency_key == key
        assert checkout.adjustments == []
        assert checkout.reconcile().ok

    def test_cart_being_submitted_elsewhere_is_not_clamped(self, checkout, backend):
        checkout.add_item('p1')
        checkout.add_item('p2')
        state = checkout.to_state()
        CheckoutSession._in_flight.add(state['idempotency_key'])
        try:
            # The in-flight commit already took the rice
            backend.products['p1']['stock'] = 0
            second = CheckoutSession.from_state(backend, CASHIER, state)
            second.load_catalog()

            assert second.cart == checkout.cart
            assert second.submit(cash('150')).kind == ErrorKind.CHECKOUT_IN_PROGRESS
        finally:
            CheckoutSession._in_flight.discard(state['idempotency_key'])

    def test_editing_the_cart_issues_a_new_key(self, checkout):
        checkout.add_item('p2')
        after_add = checkout.idempotency_key

        checkout.set_quantity('p2', 3)
        after_update = checkout.idempotency_key
        checkout.set_quantity('p2', 3)

        assert after_update != after_add
        assert checkout.idempotency_key == after_update
        checkout.remove_item('p2')
        assert checkout.idempotency_key != after_update

    def test_sale_landing_after_not_found_does_not_swallow_edited_cart(self, checkout, backend):
        checkout.add_item('p1')
        backend.fail_commit = True
        checkout.submit(cash('100'))
        backend.fail_commit = False
        old_key = checkout.idempotency_key
        assert checkout.reconcile().kind == ErrorKind.NOT_FOUND

        # The first attempt reaches the store late
        late = backend.commit_sale(
            cashier_id='7', cashier_name='Ana Cruz', payment_type='cash', amount_paid='100.00',
            lines=[checkout.cart.get('p1').to_commit_line().to_dict()], idempotency_key=old_key
        )
        assert late['success']
        checkout.add_item('p2')

        result = checkout.submit(cash('150'))

        assert result.ok
        assert checkout.idempotency_key != old_key
        assert [(i.product_id, i.quantity) for i in result.data.items] == [('p1', 1), ('p2', 1)]
        assert backend.products['p2']['stock'] == 9
        assert len(backend.transactions) == 2

    def test_state_round_trip(self, checkout, backend):
        checkout.add_item('p2')
        checkout.pending = True

        restored = CheckoutSession.from_state(backend, CASHIER, checkout.to_state())

        assert restored.cart == checkout.cart
        assert restored.idempotency_key == checkout.idempotency_key
        assert restored.pending

    def test_total_and_change(self, checkout):
        checkout.add_item('p1')
        checkout.add_item('p2')

        assert checkout.total() == Decimal('150.00')
        assert checkout.change(Decimal('200')) == Decimal('50.00')
