"""
Register terminal blueprint.

Operator flow for one logged-in cashier: browse the catalog, build the
cart, check out, reprint receipts. The checkout state (cart, idempotency
key, pending flag) lives in the Flask session; the catalog snapshot is
re-read on each request.
"""
from typing import Any, Dict

from flask import Blueprint, request, session, jsonify, current_app, g, send_file

from pos.blueprints.metrics import record_checkout, record_catalog_load
from pos.checkout import (
    CheckoutSession, CashierIdentity, PaymentInput, StoreIdentity, LocalBackend, HttpBackend,
    Result, ErrorKind, TransactionRecord, build_receipt, load_store_identity, get_layout,
    render_receipt, render_receipt_pdf, receipt_for_transaction, list_transactions
)
from pos.database import get_session
from pos.exceptions import ValidationError, BackendUnavailableError
from pos.middleware import require_login
from pos.utils.results import raise_for_result

terminal_bp = Blueprint('terminal', __name__, url_prefix='/pos')

STATE_KEY = 'checkout'


# =====================================================
# HELPERS
# =====================================================

def get_backend():
    """HttpBackend when BACKEND_URL is configured, otherwise the in-process services."""
    config = current_app.config
    if config.get('BACKEND_URL'):
        return HttpBackend(
            config['BACKEND_URL'],
            token=config.get('API_TOKEN', ''),
            timeout=config.get('BACKEND_TIMEOUT', 10)
        )
    return LocalBackend(get_session)


def fallback_store() -> StoreIdentity:
    config = current_app.config
    return StoreIdentity(
        name=config.get('BUSINESS_NAME') or 'My Store',
        address=config.get('BUSINESS_ADDRESS', ''),
        phone=config.get('BUSINESS_PHONE', ''),
        email=config.get('BUSINESS_EMAIL', ''),
        footer=config.get('RECEIPT_FOOTER', '')
    )


def get_checkout() -> CheckoutSession:
    """Checkout session of the current cashier with a freshly loaded catalog."""
    checkout = CheckoutSession.from_state(
        get_backend(),
        CashierIdentity(id=str(g.user.id), name=g.user.name),
        session.get(STATE_KEY)
    )
    record_catalog_load(checkout.load_catalog())
    return checkout


def save_checkout(checkout: CheckoutSession, result: Result = None) -> None:
    """
    Store the checkout state in the Flask session.

    Skipped while another request is submitting the same cart, or when
    this request was refused for that reason; the submitting request saves
    the state.
    """
    if checkout.busy or (result is not None and result.kind == ErrorKind.CHECKOUT_IN_PROGRESS):
        return
    session[STATE_KEY] = checkout.to_state()
    session.modified = True


def _request_data() -> Dict[str, Any]:
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def _layout(name: str = None):
    config = current_app.config
    name = (name or config.get('RECEIPT_LAYOUT') or 'thermal').lower()
    width = config.get('THERMAL_WIDTH') if name == 'thermal' else config.get('PAGE_WIDTH')
    try:
        return get_layout(name, width=width, currency_symbol=config.get('CURRENCY_SYMBOL', '₱'))
    except ValueError as e:
        raise ValidationError(str(e))


def _cart_payload(checkout: CheckoutSession) -> Dict[str, Any]:
    return {
        'lines': [
            {
                'product_id': line.product_id,
                'name': line.name,
                'unit_price': str(line.unit_price),
                'quantity': line.quantity,
                'subtotal': str(line.subtotal),
            }
            for line in checkout.cart
        ],
        'total': str(checkout.total()),
        'item_count': checkout.cart.item_count,
        'pending': checkout.pending,
        'adjustments': checkout.adjustments,
    }


def _transaction_payload(transaction: TransactionRecord) -> Dict[str, Any]:
    return {
        'id': transaction.id,
        'transaction_number': transaction.transaction_number,
        'created_at': transaction.created_at.isoformat(),
        'cashier_name': transaction.cashier_name,
        'payment_type': transaction.payment_type,
        'total_amount': str(transaction.total_amount),
        'amount_paid': str(transaction.amount_paid),
        'change_amount': str(transaction.change_amount),
        'notes': transaction.notes,
        'items': [
            {
                'product_id': item.product_id,
                'product_name': item.product_name,
                'quantity': item.quantity,
                'price_each': str(item.price_each),
                'subtotal': str(item.subtotal),
            }
            for item in transaction.items
        ],
    }


def _completed_sale(checkout: CheckoutSession, transaction: TransactionRecord):
    store = load_store_identity(checkout.backend, fallback_store())
    receipt = build_receipt(transaction, store)
    return jsonify({
        'status': 'ok',
        'transaction': _transaction_payload(transaction),
        'receipt': render_receipt(receipt, _layout()),
        'cart': _cart_payload(checkout),
    })


def _parse_quantity(raw):
    """Form values arrive as strings; anything non-integral is passed through for the cart to reject."""
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError:
            return raw
    return raw


# =====================================================
# CATALOG
# =====================================================

@terminal_bp.route('/catalog')
@require_login
def catalog():
    """Product grid: search by name/category/brand, filter by category."""
    checkout = get_checkout()
    if checkout.snapshot is None:
        raise BackendUnavailableError('Product catalog is unavailable', payload={'error': 'catalog_unavailable'})

    query = request.args.get('q', '')
    category = request.args.get('category', 'all')
    products = checkout.snapshot.search(query, category)
    return jsonify({
        'products': [
            {
                'id': p.id,
                'name': p.name,
                'brand': p.brand,
                'category': p.category,
                'price': str(p.price),
                'stock': p.stock,
                'in_cart': checkout.cart.get(p.id).quantity if p.id in checkout.cart else 0,
            }
            for p in products
        ],
        'categories': [{'name': name, 'count': count} for name, count in checkout.snapshot.category_counts()],
        'loaded_at': checkout.snapshot.loaded_at.isoformat(),
    })


# =====================================================
# CART
# =====================================================

@terminal_bp.route('/cart')
@require_login
def cart_view():
    checkout = get_checkout()
    save_checkout(checkout)
    return jsonify(_cart_payload(checkout))


@terminal_bp.route('/cart/add', methods=['POST'])
@require_login
def cart_add():
    data = _request_data()
    checkout = get_checkout()
    result = checkout.add_item(data.get('product_id'))
    save_checkout(checkout, result)
    raise_for_result(result)
    return jsonify(_cart_payload(checkout))


@terminal_bp.route('/cart/update', methods=['POST'])
@require_login
def cart_update():
    data = _request_data()
    checkout = get_checkout()
    result = checkout.set_quantity(data.get('product_id'), _parse_quantity(data.get('quantity')))
    save_checkout(checkout, result)
    raise_for_result(result)
    return jsonify(_cart_payload(checkout))


@terminal_bp.route('/cart/remove', methods=['POST'])
@require_login
def cart_remove():
    data = _request_data()
    checkout = get_checkout()
    result = checkout.remove_item(data.get('product_id'))
    save_checkout(checkout, result)
    raise_for_result(result)
    return jsonify(_cart_payload(checkout))


@terminal_bp.route('/cart/clear', methods=['POST'])
@require_login
def cart_clear():
    checkout = get_checkout()
    result = checkout.clear()
    save_checkout(checkout, result)
    raise_for_result(result)
    return jsonify(_cart_payload(checkout))


# =====================================================
# CHECKOUT
# =====================================================

@terminal_bp.route('/checkout', methods=['POST'])
@require_login
def checkout_submit():
    """
    Submit the cart.

    The state is saved before errors are raised so an unknown outcome
    stays pending across requests. A cart clamped by this request's
    catalog reload is refused with 409 insufficient_stock, listing the
    adjustments and the cart as it now stands.
    """
    data = _request_data()
    payment = PaymentInput.from_raw(data.get('payment_type', 'cash'), data.get('amount_paid'))

    checkout = get_checkout()
    result = checkout.submit(payment, notes=data.get('notes'))
    save_checkout(checkout, result)
    record_checkout(result)
    if result.kind == ErrorKind.INSUFFICIENT_STOCK:
        raise_for_result(result, adjustments=result.data, cart=_cart_payload(checkout))
    transaction = raise_for_result(result)

    current_app.logger.info(f"[CHECKOUT] {transaction.transaction_number} by {g.user.username}")
    return _completed_sale(checkout, transaction)


@terminal_bp.route('/checkout/reconcile', methods=['POST'])
@require_login
def checkout_reconcile():
    """Resolve a checkout whose outcome could not be confirmed."""
    checkout = get_checkout()
    result = checkout.reconcile()
    save_checkout(checkout, result)
    transaction = raise_for_result(result)
    return _completed_sale(checkout, transaction)


# =====================================================
# HISTORY & REPRINT
# =====================================================

@terminal_bp.route('/transactions')
@require_login
def transactions_list():
    raw_limit = request.args.get('limit')
    try:
        limit = int(raw_limit) if raw_limit else current_app.config.get('RECENT_TRANSACTIONS_LIMIT', 5)
    except ValueError:
        raise ValidationError('limit must be an integer')

    summaries = raise_for_result(list_transactions(get_backend(), limit=limit))
    return jsonify({
        'transactions': [
            {
                'id': s.id,
                'transaction_number': s.transaction_number,
                'created_at': s.created_at.isoformat(),
                'total_amount': str(s.total_amount),
                'payment_type': s.payment_type,
                'cashier_name': s.cashier_name,
            }
            for s in summaries
        ]
    })


@terminal_bp.route('/transactions/<transaction_id>/receipt')
@require_login
def transaction_receipt(transaction_id):
    """Reprint: ?layout=thermal|page&format=text|pdf"""
    output = request.args.get('format', 'text')
    if output not in ('text', 'pdf'):
        raise ValidationError('format must be text or pdf')
    layout = _layout(request.args.get('layout'))

    receipt = raise_for_result(receipt_for_transaction(get_backend(), transaction_id, fallback_store()))
    if output == 'pdf':
        return send_file(
            render_receipt_pdf(receipt),
            mimetype='application/pdf',
            as_attachment=False,
            download_name=f'{receipt.transaction_number}.pdf'
        )
    return current_app.response_class(render_receipt(receipt, layout), mimetype='text/plain')
