"""
Back-office blueprint (admin role only).

Dashboard numbers, product and category maintenance, and operator
accounts. Session-authenticated like the terminal, so POSTs need the
CSRF token from /auth/csrf.
"""
from flask import Blueprint, request, jsonify, current_app, g

from pos.database import get_session
from pos.exceptions import BusinessLogicError, ValidationError
from pos.middleware import require_admin
from pos.services import catalog_service
from pos.services.auth_service import create_user, deactivate_user, list_users, serialize_user, update_user
from pos.services.report_service import get_dashboard_stats

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('JSON body required')
    return data


# =====================================================
# DASHBOARD
# =====================================================

@admin_bp.route('/dashboard')
@require_admin
def dashboard():
    stats = get_dashboard_stats(get_session())
    low_stock = catalog_service.list_low_stock_products(get_session())
    return jsonify({
        'stats': {key: str(value) if key.endswith('_sales') else value for key, value in stats.items()},
        'low_stock_products': [catalog_service.serialize_product(p) for p in low_stock[:10]],
    })


# =====================================================
# PRODUCTS
# =====================================================

@admin_bp.route('/products')
@require_admin
def products_list():
    """Every product, inactive ones included unless ?active=1."""
    active_only = request.args.get('active') == '1'
    products = catalog_service.list_products(get_session(), active_only=active_only)
    return jsonify({'products': [catalog_service.serialize_product(p) for p in products]})


@admin_bp.route('/products', methods=['POST'])
@require_admin
def products_create():
    product = catalog_service.create_product(get_session(), _json_body())
    current_app.logger.info(f"[ADMIN] {g.user.username} created product {product.id}")
    return jsonify(catalog_service.serialize_product(product)), 201


@admin_bp.route('/products/<int:product_id>', methods=['PATCH'])
@require_admin
def products_update(product_id: int):
    product = catalog_service.update_product(get_session(), product_id, _json_body())
    current_app.logger.info(f"[ADMIN] {g.user.username} updated product {product_id}")
    return jsonify(catalog_service.serialize_product(product))


@admin_bp.route('/products/<int:product_id>', methods=['DELETE'])
@require_admin
def products_delete(product_id: int):
    """Deletes the product, or only deactivates it when it was ever sold."""
    deleted = catalog_service.delete_product(get_session(), product_id)
    current_app.logger.info(
        f"[ADMIN] {g.user.username} {'deleted' if deleted else 'deactivated'} product {product_id}"
    )
    return jsonify({'status': 'ok', 'deleted': deleted, 'deactivated': not deleted})


# =====================================================
# CATEGORIES
# =====================================================

@admin_bp.route('/categories')
@require_admin
def categories_list():
    include_inactive = request.args.get('all') == '1'
    return jsonify({'categories': catalog_service.list_categories(get_session(), include_inactive=include_inactive)})


@admin_bp.route('/categories', methods=['POST'])
@require_admin
def categories_create():
    data = _json_body()
    category = catalog_service.add_category(
        get_session(), data.get('name'), description=data.get('description'), icon=data.get('icon')
    )
    return jsonify({'id': category.id, 'name': category.name, 'is_active': category.is_active}), 201


@admin_bp.route('/categories/<int:category_id>', methods=['DELETE'])
@require_admin
def categories_delete(category_id: int):
    deleted = catalog_service.delete_category(get_session(), category_id)
    return jsonify({'status': 'ok', 'deleted': deleted, 'deactivated': not deleted})


# =====================================================
# USERS
# =====================================================

@admin_bp.route('/users')
@require_admin
def users_list():
    return jsonify({'users': [serialize_user(u) for u in list_users(get_session())]})


@admin_bp.route('/users', methods=['POST'])
@require_admin
def users_create():
    data = _json_body()
    user = create_user(
        get_session(),
        username=data.get('username'),
        password=data.get('password'),
        name=data.get('name'),
        role=data.get('role') or 'employee'
    )
    current_app.logger.info(f"[ADMIN] {g.user.username} created user {user.username}")
    return jsonify(serialize_user(user)), 201


@admin_bp.route('/users/<int:user_id>', methods=['PATCH'])
@require_admin
def users_update(user_id: int):
    data = _json_body()
    if user_id == g.user.id and (data.get('is_active') is False or data.get('role', 'admin') != 'admin'):
        raise BusinessLogicError('You cannot deactivate or demote your own account')
    user = update_user(get_session(), user_id, data)
    return jsonify(serialize_user(user))


@admin_bp.route('/users/<int:user_id>/deactivate', methods=['POST'])
@require_admin
def users_deactivate(user_id: int):
    if user_id == g.user.id:
        raise BusinessLogicError('You cannot deactivate your own account')
    user = deactivate_user(get_session(), user_id)
    current_app.logger.info(f"[ADMIN] {g.user.username} deactivated user {user.username}")
    return jsonify(serialize_user(user))
