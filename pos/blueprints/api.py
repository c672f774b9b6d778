"""
Backend JSON API.

Consumed by HttpBackend when the terminal runs against a remote store.
Every route requires the configured bearer token.
"""
import hmac
from datetime import datetime, timedelta
from typing import Optional

from flask import Blueprint, request, jsonify, current_app

from pos.database import get_session
from pos.exceptions import ValidationError, NotFoundError, UnauthorizedError
from pos.services.catalog_service import get_product, list_products, list_low_stock_products, serialize_product
from pos.services.report_service import get_sales_summary, get_top_selling_products, get_dashboard_stats
from pos.services.sales_service import commit_sale
from pos.services.settings_service import get_settings, serialize_settings
from pos.services.transaction_service import (
    get_transaction, list_transactions, find_by_idempotency_key, serialize_transaction
)

api_bp = Blueprint('api', __name__, url_prefix='/api')

MAX_LIST_LIMIT = 500


@api_bp.before_request
def check_token():
    """Require 'Authorization: Bearer <API_TOKEN>' when a token is configured."""
    expected = current_app.config.get('API_TOKEN')
    if not expected:
        return
    header = request.headers.get('Authorization', '')
    scheme, _, token = header.partition(' ')
    if scheme.lower() != 'bearer' or not hmac.compare_digest(token.strip(), expected):
        current_app.logger.warning(f"[API] Rejected token for {request.method} {request.path}")
        raise UnauthorizedError('Invalid or missing API token', status_code=401)


def _int_arg(name: str, default: Optional[int], minimum: int = 1, maximum: int = MAX_LIST_LIMIT) -> Optional[int]:
    raw = request.args.get(name)
    if raw is None or raw == '':
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError(f'{name} must be an integer')
    if value < minimum or value > maximum:
        raise ValidationError(f'{name} must be between {minimum} and {maximum}')
    return value


def _date_arg(name: str, end_of_range: bool = False) -> Optional[datetime]:
    """
    ISO date or datetime query argument.

    A date-only end of range covers that whole day (end=2026-10-18 includes
    sales made on the 18th); a full datetime is used as given.
    """
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        value = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f'{name} must be an ISO date (YYYY-MM-DD)')
    if end_of_range and len(raw) == 10:
        value += timedelta(days=1)
    return value


# =====================================================
# CATALOG
# =====================================================

@api_bp.route('/products')
def products_list():
    active_only = request.args.get('active', '1') != '0'
    products = list_products(get_session(), active_only=active_only)
    return jsonify({'products': [serialize_product(p) for p in products]})


@api_bp.route('/products/low-stock')
def products_low_stock():
    threshold = _int_arg('threshold', None, minimum=0, maximum=1_000_000)
    products = list_low_stock_products(get_session(), threshold=threshold)
    return jsonify({'products': [serialize_product(p) for p in products]})


@api_bp.route('/products/<int:product_id>')
def product_detail(product_id: int):
    return jsonify(serialize_product(get_product(get_session(), product_id)))


# =====================================================
# TRANSACTIONS
# =====================================================

@api_bp.route('/transactions/commit', methods=['POST'])
def transactions_commit():
    """
    Atomic checkout commit.

    201 with {success, transaction_id, transaction_number} on a new sale,
    200 when the idempotency key replays an earlier one, 409 with
    {success: false, message} when rejected.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('JSON body required')

    outcome = commit_sale(
        get_session(),
        cashier_id=data.get('cashier_id'),
        cashier_name=data.get('cashier_name'),
        payment_type=data.get('payment_type'),
        amount_paid=data.get('amount_paid'),
        lines=data.get('lines') or [],
        notes=data.get('notes'),
        idempotency_key=data.get('idempotency_key') or None
    )
    if not outcome['success']:
        current_app.logger.info(f"[API] Commit rejected: {outcome['message']}")
        return jsonify(outcome), 409
    return jsonify(outcome), 200 if outcome.get('replayed') else 201


@api_bp.route('/transactions')
def transactions_list():
    limit = _int_arg('limit', current_app.config.get('TRANSACTION_LIST_LIMIT', 100))
    transactions = list_transactions(get_session(), limit=limit)
    return jsonify({'transactions': [serialize_transaction(t, include_items=False) for t in transactions]})


@api_bp.route('/transactions/<int:transaction_id>')
def transaction_detail(transaction_id: int):
    return jsonify(serialize_transaction(get_transaction(get_session(), transaction_id)))


@api_bp.route('/transactions/by-key/<key>')
def transaction_by_key(key: str):
    transaction = find_by_idempotency_key(get_session(), key)
    if transaction is None:
        raise NotFoundError('No transaction for this idempotency key')
    return jsonify(serialize_transaction(transaction))


# =====================================================
# SETTINGS & REPORTS
# =====================================================

@api_bp.route('/settings')
def settings_detail():
    settings = get_settings(get_session())
    if settings is None:
        raise NotFoundError('Store settings not configured')
    return jsonify(serialize_settings(settings))


@api_bp.route('/reports/summary')
def reports_summary():
    summary = get_sales_summary(
        get_session(),
        start=_date_arg('start'),
        end=_date_arg('end', end_of_range=True)
    )
    return jsonify({
        'transaction_count': summary['transaction_count'],
        'gross_sales': str(summary['gross_sales']),
        'average_sale': str(summary['average_sale']),
    })


@api_bp.route('/reports/top-products')
def reports_top_products():
    rows = get_top_selling_products(
        get_session(),
        limit=_int_arg('limit', 10, maximum=100),
        start=_date_arg('start'),
        end=_date_arg('end', end_of_range=True)
    )
    return jsonify({'products': [dict(row, revenue=str(row['revenue'])) for row in rows]})


@api_bp.route('/reports/dashboard')
def reports_dashboard():
    stats = get_dashboard_stats(get_session())
    return jsonify({key: str(value) if key.endswith('_sales') else value for key, value in stats.items()})
