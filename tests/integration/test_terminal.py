"""
Integration tests for the register terminal flow (session-authenticated).
"""
from unittest.mock import patch

import pytest

from pos.checkout import BackendError, CheckoutSession, LocalBackend
from pos.models import AppUser, Product, Transaction
from pos.services.auth_service import deactivate_user


def add(client, product_id, times=1):
    response = None
    for _ in range(times):
        response = client.post('/pos/cart/add', json={'product_id': product_id})
    return response


class TestAuth:

    def test_login_and_logout(self, client, cashier):
        response = client.post('/auth/login', json={'username': 'ana', 'password': 'secret123'})

        assert response.status_code == 200
        assert response.get_json()['user']['name'] == 'Ana Cruz'
        assert client.get('/pos/cart').status_code == 200

        client.post('/auth/logout')
        assert client.get('/pos/cart').status_code == 401

    def test_wrong_password(self, client, cashier):
        response = client.post('/auth/login', json={'username': 'ana', 'password': 'wrong'})

        assert response.status_code == 401

    def test_missing_credentials(self, client, session):
        assert client.post('/auth/login', json={'username': 'ana'}).status_code == 400

    def test_terminal_requires_login(self, client, session):
        assert client.post('/pos/cart/add', json={'product_id': 1}).status_code == 401

    def test_deactivated_cashier_is_logged_out(self, authenticated_client, session):
        cashier_id = session.query(AppUser).filter_by(username='ana').one().id
        assert authenticated_client.get('/pos/cart').status_code == 200

        deactivate_user(session, cashier_id)

        assert authenticated_client.get('/pos/cart').status_code == 401
        login = authenticated_client.post('/auth/login', json={'username': 'ana', 'password': 'secret123'})
        assert login.status_code == 401



class TestCsrf:
    """Session POSTs with CSRF protection switched on, as in production."""

    @pytest.fixture
    def csrf_client(self, app, client, monkeypatch):
        monkeypatch.setitem(app.config, 'WTF_CSRF_ENABLED', True)
        return client

    def test_login_without_token_is_refused(self, csrf_client, cashier):
        response = csrf_client.post('/auth/login', json={'username': 'ana', 'password': 'secret123'})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'csrf_error'

    def test_token_flow_through_login_and_cart(self, csrf_client, cashier, products):
        p2_id = products['p2'].id
        token = csrf_client.get('/auth/csrf').get_json()['csrf_token']

        login = csrf_client.post(
            '/auth/login', json={'username': 'ana', 'password': 'secret123'},
            headers={'X-CSRFToken': token}
        )
        assert login.status_code == 200
        token = login.get_json()['csrf_token']

        added = csrf_client.post('/pos/cart/add', json={'product_id': p2_id}, headers={'X-CSRFToken': token})
        assert added.status_code == 200
        assert added.get_json()['item_count'] == 1

        unsigned = csrf_client.post('/pos/cart/add', json={'product_id': p2_id})
        assert unsigned.status_code == 400

class TestCatalog:

    def test_search_and_category_counts(self, authenticated_client, products):
        data = authenticated_client.get('/pos/catalog?q=oil').get_json()

        assert [p['name'] for p in data['products']] == ['Cooking Oil 1L']
        assert data['categories'][0] == {'name': 'all', 'count': 3}
        assert {'name': 'Hardware', 'count': 1} in data['categories']

    def test_catalog_unavailable(self, authenticated_client, products):
        with patch.object(LocalBackend, 'list_products', side_effect=BackendError('down')):
            response = authenticated_client.get('/pos/catalog')

        assert response.status_code == 503
        assert response.get_json()['error'] == 'catalog_unavailable'


class TestCart:

    def test_add_update_remove(self, authenticated_client, products):
        p1_id, p2_id = str(products['p1'].id), str(products['p2'].id)

        add(authenticated_client, p1_id, times=2)
        add(authenticated_client, p2_id)
        cart = authenticated_client.get('/pos/cart').get_json()
        assert cart['total'] == '250.00'
        assert cart['item_count'] == 3

        cart = authenticated_client.post('/pos/cart/update', json={'product_id': p2_id, 'quantity': '4'}).get_json()
        assert cart['total'] == '400.00'

        cart = authenticated_client.post('/pos/cart/remove', json={'product_id': p1_id}).get_json()
        assert [line['product_id'] for line in cart['lines']] == [p2_id]

    def test_out_of_stock(self, authenticated_client, products):
        response = add(authenticated_client, products['p3'].id)

        assert response.status_code == 409
        assert response.get_json()['error'] == 'out_of_stock'

    def test_insufficient_stock_keeps_quantity(self, authenticated_client, products):
        p1_id = str(products['p1'].id)
        add(authenticated_client, p1_id)

        response = authenticated_client.post('/pos/cart/update', json={'product_id': p1_id, 'quantity': 10})

        assert response.status_code == 409
        assert response.get_json()['error'] == 'insufficient_stock'
        assert authenticated_client.get('/pos/cart').get_json()['lines'][0]['quantity'] == 1

    def test_invalid_quantity(self, authenticated_client, products):
        p1_id = str(products['p1'].id)
        add(authenticated_client, p1_id)

        response = authenticated_client.post('/pos/cart/update', json={'product_id': p1_id, 'quantity': 'two'})

        assert response.status_code == 400

    def test_remove_missing_is_noop(self, authenticated_client, products):
        assert authenticated_client.post('/pos/cart/remove', json={'product_id': '999'}).status_code == 200

    def test_cart_clamped_when_stock_drops(self, authenticated_client, session, products):
        p1_id = products['p1'].id
        add(authenticated_client, p1_id, times=3)

        session.get(Product, p1_id).stock = 1
        session.commit()
        cart = authenticated_client.get('/pos/cart').get_json()

        assert cart['lines'][0]['quantity'] == 1
        assert cart['adjustments']

    def test_clear(self, authenticated_client, products):
        add(authenticated_client, products['p2'].id)

        cart = authenticated_client.post('/pos/cart/clear').get_json()

        assert cart['lines'] == []


class TestCheckout:

    def test_checkout_reference_scenario(self, authenticated_client, session, products, store_settings):
        p1_id, p2_id = products['p1'].id, products['p2'].id
        add(authenticated_client, p1_id, times=2)
        add(authenticated_client, p2_id)

        response = authenticated_client.post('/pos/checkout', json={
            'payment_type': 'cash', 'amount_paid': '300', 'notes': 'Suki'
        })

        assert response.status_code == 200
        data = response.get_json()
        txn = data['transaction']
        assert txn['total_amount'] == '250.00'
        assert txn['change_amount'] == '50.00'
        assert txn['cashier_name'] == 'Ana Cruz'
        assert sum(float(item['subtotal']) for item in txn['items']) == 250.0
        assert 'SARI-SARI CENTRAL' in data['receipt']
        assert 'Salamat po!' in data['receipt']
        assert data['cart']['lines'] == []
        assert session.get(Product, p1_id).stock == 1
        assert session.query(Transaction).count() == 1

    def test_empty_cart(self, authenticated_client, products):
        response = authenticated_client.post('/pos/checkout', json={'payment_type': 'cash', 'amount_paid': '10'})

        assert response.status_code == 400
        assert response.get_json()['error'] == 'empty_cart'

    def test_insufficient_payment(self, authenticated_client, products):
        add(authenticated_client, products['p2'].id)

        response = authenticated_client.post('/pos/checkout', json={'payment_type': 'cash', 'amount_paid': '49'})

        assert response.get_json()['error'] == 'insufficient_payment'

    def test_invalid_payment_type(self, authenticated_client, products):
        add(authenticated_client, products['p2'].id)

        response = authenticated_client.post('/pos/checkout', json={'payment_type': 'iou', 'amount_paid': '50'})

        assert response.status_code == 400

    def test_commit_rejected_keeps_cart(self, authenticated_client, session, products):
        p1_id = products['p1'].id
        add(authenticated_client, p1_id, times=2)

        # Another register sells the stock after the cart was checked
        original = LocalBackend.list_products
        session.get(Product, p1_id).stock = 1
        session.commit()
        with patch.object(LocalBackend, 'list_products', autospec=True,
                          side_effect=lambda self, active_only=True: [
                              dict(p, stock=3) for p in original(self, active_only)
                          ]):
            response = authenticated_client.post('/pos/checkout', json={'payment_type': 'cash', 'amount_paid': '200'})

        assert response.status_code == 409
        assert response.get_json()['error'] == 'commit_rejected'
        assert session.query(Transaction).count() == 0

    def test_stock_drop_before_checkout_is_reported_not_sold(self, authenticated_client, session, products):
        p1_id = products['p1'].id
        add(authenticated_client, p1_id, times=3)
        session.get(Product, p1_id).stock = 1
        session.commit()

        response = authenticated_client.post('/pos/checkout', json={'payment_type': 'cash', 'amount_paid': '300'})

        assert response.status_code == 409
        data = response.get_json()
        assert data['error'] == 'insufficient_stock'
        assert data['adjustments'] == ['"Rice 5kg" reduced from 3 to 1']
        assert data['cart']['lines'][0]['quantity'] == 1
        assert session.query(Transaction).count() == 0

        # The operator has now seen the reduced cart
        again = authenticated_client.post('/pos/checkout', json={'payment_type': 'cash', 'amount_paid': '100'})

        assert again.status_code == 200
        assert again.get_json()['transaction']['items'][0]['quantity'] == 1
        assert session.get(Product, p1_id).stock == 0

    def test_refused_double_submit_leaves_session_cookie_alone(self, authenticated_client, products):
        add(authenticated_client, products['p2'].id)
        with authenticated_client.session_transaction() as sess:
            key = sess['checkout']['idempotency_key']

        # First click still being processed
        CheckoutSession._in_flight.add(key)
        try:
            response = authenticated_client.post('/pos/checkout', json={'payment_type': 'cash', 'amount_paid': '50'})
        finally:
            CheckoutSession._in_flight.discard(key)

        assert response.status_code == 409
        assert response.get_json()['error'] == 'checkout_in_progress'
        assert 'Set-Cookie' not in response.headers

    def test_unknown_outcome_then_reconcile(self, authenticated_client, session, products):
        p2_id = products['p2'].id
        add(authenticated_client, p2_id)

        with patch.object(LocalBackend, 'get_transaction', side_effect=BackendError('timeout')):
            response = authenticated_client.post('/pos/checkout', json={'payment_type': 'card', 'amount_paid': '50'})

        assert response.status_code == 503
        assert response.get_json()['error'] == 'network_or_server_error'
        assert authenticated_client.get('/pos/cart').get_json()['pending'] is True

        blocked = authenticated_client.post('/pos/checkout', json={'payment_type': 'card', 'amount_paid': '50'})
        assert blocked.status_code == 409
        assert blocked.get_json()['error'] == 'unresolved_outcome'

        reconciled = authenticated_client.post('/pos/checkout/reconcile')
        assert reconciled.status_code == 200
        assert reconciled.get_json()['cart']['pending'] is False
        assert session.query(Transaction).count() == 1
        assert session.get(Product, p2_id).stock == 9


class TestHistory:

    @pytest.fixture
    def sales(self, authenticated_client, products):
        p2_id = products['p2'].id
        numbers = []
        for _ in range(6):
            add(authenticated_client, p2_id)
            response = authenticated_client.post('/pos/checkout', json={'payment_type': 'cash', 'amount_paid': '50'})
            numbers.append(response.get_json()['transaction'])
        return numbers

    def test_recent_transactions_default_to_five(self, authenticated_client, sales):
        data = authenticated_client.get('/pos/transactions').get_json()

        assert [t['transaction_number'] for t in data['transactions']] == [
            t['transaction_number'] for t in reversed(sales[1:])
        ]

    def test_receipt_reprint_layouts(self, authenticated_client, sales):
        txn_id = sales[0]['id']

        thermal = authenticated_client.get(f'/pos/transactions/{txn_id}/receipt?layout=thermal')
        page = authenticated_client.get(f'/pos/transactions/{txn_id}/receipt?layout=page')

        assert thermal.status_code == page.status_code == 200
        assert thermal.mimetype == 'text/plain'
        assert sales[0]['transaction_number'] in thermal.get_data(as_text=True)
        assert 'Test Store'.upper() in page.get_data(as_text=True)
        assert max(len(l) for l in thermal.get_data(as_text=True).splitlines()) <= 32

    def test_receipt_pdf(self, authenticated_client, sales):
        response = authenticated_client.get(f"/pos/transactions/{sales[0]['id']}/receipt?format=pdf")

        assert response.mimetype == 'application/pdf'
        assert response.data.startswith(b'%PDF')

    def test_receipt_not_found(self, authenticated_client, session):
        assert authenticated_client.get('/pos/transactions/999/receipt').status_code == 404

    def test_unknown_layout(self, authenticated_client, sales):
        response = authenticated_client.get(f"/pos/transactions/{sales[0]['id']}/receipt?layout=a5")

        assert response.status_code == 400


def test_metrics_counts_checkouts(authenticated_client, products):
    add(authenticated_client, products['p2'].id)
    authenticated_client.post('/pos/checkout', json={'payment_type': 'cash', 'amount_paid': '50'})

    body = authenticated_client.get('/metrics').get_data(as_text=True)

    assert 'pos_checkouts_total{outcome="success"}' in body
    assert 'pos_catalog_loads_total{status="ok"}' in body
    assert 'pos_http_request_seconds_bucket{endpoint="terminal.checkout_submit"' in body
