import pytest
from datetime import datetime
from decimal import Decimal

from pos.checkout import Backend, BackendError, CatalogSnapshot, ProductRecord


class FakeBackend(Backend):
    """
    In-memory backend honouring the commit contract: live stock re-check,
    all-or-nothing writes, idempotency key replay (refused when the key
    comes back with a different sale).

    Failure switches:
        fail_catalog / fail_commit / fail_read / fail_settings: raise BackendError
        lose_commit_response: commit succeeds, then BackendError is raised
    """

    def __init__(self, products=None, settings=None):
        self.products = {p['id']: dict(p) for p in (products or [])}
        self.settings = settings
        self.transactions = {}
        self.next_id = 1
        self.commit_calls = 0
        self.fail_catalog = False
        self.fail_commit = False
        self.fail_read = False
        self.fail_settings = False
        self.lose_commit_response = False

    def list_products(self, active_only=True):
        if self.fail_catalog:
            raise BackendError('catalog down')
        return [dict(p) for p in self.products.values() if p.get('is_active', True) or not active_only]

    def get_product(self, product_id):
        product = self.products.get(str(product_id))
        return dict(product) if product else None

    def commit_sale(self, cashier_id, cashier_name, payment_type, amount_paid, lines,
                    notes=None, idempotency_key=None):
        self.commit_calls += 1
        if self.fail_commit:
            raise BackendError('connection reset')

        signature = _signature(lines, payment_type, amount_paid)
        if idempotency_key:
            for txn in self.transactions.values():
                if txn['idempotency_key'] == idempotency_key:
                    if txn['signature'] != signature:
                        return {'success': False,
                                'message': f'Key already used for sale {txn["transaction_number"]}'}
                    return {'success': True, 'transaction_id': txn['id'],
                            'transaction_number': txn['transaction_number'], 'replayed': True}

        for line in lines:
            product = self.products.get(line['product_id'])
            if product is None or product['stock'] < line['quantity']:
                available = product['stock'] if product else 0
                return {'success': False,
                        'message': f'Insufficient stock for "{line["name"]}". Available: {available}'}

        total = sum((Decimal(l['unit_price']) * l['quantity'] for l in lines), Decimal('0.00'))
        if Decimal(amount_paid) < total:
            return {'success': False, 'message': 'Amount paid is less than the total'}

        for line in lines:
            self.products[line['product_id']]['stock'] -= line['quantity']

        txn_id = str(self.next_id)
        self.next_id += 1
        self.transactions[txn_id] = {
            'id': txn_id,
            'transaction_number': f'TXN-20261018-{int(txn_id):06d}',
            'created_at': datetime(2026, 10, 18, 14, 5, int(txn_id) % 60).isoformat(),
            'cashier_id': cashier_id,
            'cashier_name': cashier_name,
            'total_amount': str(total),
            'payment_type': payment_type,
            'amount_paid': str(amount_paid),
            'change_amount': str(Decimal(amount_paid) - total),
            'notes': notes,
            'idempotency_key': idempotency_key,
            'signature': signature,
            'items': [
                {
                    'product_id': l['product_id'],
                    'product_name': l['name'],
                    'quantity': l['quantity'],
                    'price_each': l['unit_price'],
                    'subtotal': str(Decimal(l['unit_price']) * l['quantity']),
                }
                for l in lines
            ],
        }
        if self.lose_commit_response:
            raise BackendError('read timeout')
        return {'success': True, 'transaction_id': txn_id,
                'transaction_number': self.transactions[txn_id]['transaction_number']}

    def get_transaction(self, transaction_id):
        if self.fail_read:
            raise BackendError('read failed')
        return self.transactions.get(str(transaction_id))

    def list_transactions(self, limit=None):
        if self.fail_read:
            raise BackendError('read failed')
        rows = sorted(self.transactions.values(), key=lambda t: int(t['id']), reverse=True)
        return rows[:limit] if limit else rows

    def find_transaction_by_key(self, idempotency_key):
        if self.fail_read:
            raise BackendError('read failed')
        for txn in self.transactions.values():
            if txn['idempotency_key'] == idempotency_key:
                return txn
        return None

    def get_settings(self):
        if self.fail_settings:
            raise BackendError('settings down')
        return self.settings


def _signature(lines, payment_type, amount_paid):
    return (
        sorted((l['product_id'], l['quantity'], Decimal(l['unit_price'])) for l in lines),
        payment_type,
        Decimal(amount_paid),
    )


PRODUCTS = [
    {'id': 'p1', 'name': 'Rice 5kg', 'price': '100.00', 'stock': 3, 'category': 'Groceries', 'brand': 'Dinorado'},
    {'id': 'p2', 'name': 'Cooking Oil 1L', 'price': '50.00', 'stock': 10, 'category': 'Groceries', 'brand': 'Minola'},
    {'id': 'p3', 'name': 'Batteries AA', 'price': '55.00', 'stock': 0, 'category': 'Hardware', 'brand': 'Eveready'},
    {'id': 'p4', 'name': 'Shampoo Sachet', 'price': '8.00', 'stock': 1, 'category': 'Personal Care', 'brand': 'Palmolive'},
]


@pytest.fixture
def backend():
    return FakeBackend(PRODUCTS, settings={
        'store_name': 'Sari-Sari Central',
        'store_address': '12 Rizal St',
        'store_phone': '0917 000 0000',
        'store_email': 'hello@sarisari.test',
        'receipt_footer': 'Salamat po!',
    })


@pytest.fixture
def snapshot():
    return CatalogSnapshot.from_products(ProductRecord.from_dict(p) for p in PRODUCTS)
