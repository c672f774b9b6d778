"""
Catalog service.

Product reads for the terminal and the backend API, plus product and
category maintenance for admins.
"""
import logging
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import List, Dict, Any, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session
from pos.models import Product, ProductCategory, TransactionItem
from pos.exceptions import BusinessLogicError, NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = 'General'


def list_products(session: Session, active_only: bool = True) -> List[Product]:
    """
    List products ordered by name.

    Args:
        session: SQLAlchemy session
        active_only: Only products flagged as sellable
    """
    query = session.query(Product)
    if active_only:
        query = query.filter(Product.is_active == True)  # noqa: E712
    return query.order_by(Product.name, Product.id).all()


def get_product(session: Session, product_id) -> Product:
    """Get a product by id or raise NotFoundError."""
    try:
        pid = int(product_id)
    except (TypeError, ValueError):
        raise NotFoundError(f'Product {product_id} not found')
    
    product = session.get(Product, pid)
    if not product:
        raise NotFoundError(f'Product {product_id} not found')
    return product


def list_low_stock_products(session: Session, threshold: Optional[int] = None) -> List[Product]:
    """
    Active products at or below their restock threshold.

    Args:
        threshold: Global threshold overriding each product's own min_stock_threshold
    """
    query = session.query(Product).filter(Product.is_active == True)  # noqa: E712
    if threshold is not None:
        query = query.filter(Product.stock <= threshold)
    else:
        query = query.filter(Product.stock <= Product.min_stock_threshold)
    return query.order_by(Product.stock, Product.name).all()


def serialize_product(product: Product) -> Dict[str, Any]:
    """JSON-ready product (decimals as strings)."""
    return {
        'id': product.id,
        'name': product.name,
        'brand': product.brand or '',
        'category': product.category or '',
        'price': str(product.price),
        'stock': product.stock,
        'min_stock_threshold': product.min_stock_threshold,
        'description': product.description,
        'image_url': product.image_url,
        'is_active': product.is_active,
    }


# =====================================================
# PRODUCT MAINTENANCE (admin)
# =====================================================

def _validate_product_fields(data: Dict[str, Any], partial: bool = False) -> Tuple[Dict[str, Any], List[str]]:
    """Validate product input; returns (cleaned values, list of errors)."""
    errors = []
    values = {}

    if 'name' in data or not partial:
        name = str(data.get('name') or '').strip()
        if not name:
            errors.append('Name is required')
        elif len(name) > 200:
            errors.append('Name must be at most 200 characters')
        values['name'] = name

    if 'price' in data or not partial:
        try:
            price = Decimal(str(data.get('price')))
            if not price.is_finite() or price < 0:
                errors.append('Price must be greater than or equal to 0')
            values['price'] = price.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
        except (InvalidOperation, ValueError):
            errors.append('Price must be a valid number')

    for field in ('stock', 'min_stock_threshold'):
        if field not in data:
            continue
        value = data.get(field)
        if isinstance(value, bool):
            value = None
        try:
            number = int(str(value).strip())
        except (TypeError, ValueError):
            errors.append(f'{field} must be a whole number')
            continue
        if number < 0:
            errors.append(f'{field} must be greater than or equal to 0')
        values[field] = number

    for field in ('brand', 'description', 'image_url'):
        if field in data:
            values[field] = str(data.get(field) or '').strip() or None

    if 'category' in data:
        values['category'] = str(data.get('category') or '').strip() or DEFAULT_CATEGORY
    elif not partial:
        values['category'] = DEFAULT_CATEGORY

    if 'is_active' in data:
        values['is_active'] = bool(data.get('is_active'))

    return values, errors


def create_product(session: Session, data: Dict[str, Any]) -> Product:
    """
    Create a product.

    Raises:
        BusinessLogicError: with every validation error joined
    """
    values, errors = _validate_product_fields(data)
    if errors:
        raise BusinessLogicError(', '.join(errors))

    product = Product(**values)
    session.add(product)
    session.commit()
    logger.info(f"Created product {product.id}: {product.name}")
    return product


def update_product(session: Session, product_id, data: Dict[str, Any]) -> Product:
    """
    Update the given fields of a product.

    Setting stock here is a manual count correction; sales only change
    stock through the checkout commit.
    """
    product = get_product(session, product_id)
    values, errors = _validate_product_fields(data, partial=True)
    if errors:
        raise BusinessLogicError(', '.join(errors))

    for field, value in values.items():
        setattr(product, field, value)
    session.commit()
    logger.info(f"Updated product {product.id}: {', '.join(sorted(values)) or 'no changes'}")
    return product


def delete_product(session: Session, product_id) -> bool:
    """
    Delete a product, or deactivate it when it appears on past sales.

    Returns:
        True when the row was deleted, False when it was deactivated
    """
    product = get_product(session, product_id)
    sold = session.query(TransactionItem.id).filter(TransactionItem.product_id == product.id).first()
    if sold:
        product.is_active = False
        session.commit()
        logger.info(f"Deactivated product {product.id} (has sales history)")
        return False

    session.delete(product)
    session.commit()
    logger.info(f"Deleted product {product_id}")
    return True


# =====================================================
# CATEGORIES (admin)
# =====================================================

def list_categories(session: Session, include_inactive: bool = False) -> List[Dict[str, Any]]:
    """Categories by name with the number of active products using each."""
    counts = dict(
        session.query(Product.category, func.count(Product.id))
        .filter(Product.is_active == True)  # noqa: E712
        .group_by(Product.category)
        .all()
    )
    query = session.query(ProductCategory)
    if not include_inactive:
        query = query.filter(ProductCategory.is_active == True)  # noqa: E712
    return [
        {
            'id': category.id,
            'name': category.name,
            'description': category.description,
            'icon': category.icon,
            'is_active': category.is_active,
            'product_count': counts.get(category.name, 0),
        }
        for category in query.order_by(ProductCategory.name).all()
    ]


def add_category(session: Session, name: str, description: Optional[str] = None, icon: Optional[str] = None) -> ProductCategory:
    """
    Add a category, or reactivate a deactivated one with the same name.

    Raises:
        BusinessLogicError: on empty or duplicate name
    """
    name = (name or '').strip()
    if not name:
        raise BusinessLogicError('Category name is required')

    existing = session.query(ProductCategory).filter(func.lower(ProductCategory.name) == name.lower()).first()
    if existing and existing.is_active:
        raise BusinessLogicError(f'Category "{existing.name}" already exists')
    if existing:
        existing.is_active = True
        existing.description = (description or '').strip() or existing.description
        existing.icon = icon or existing.icon
        session.commit()
        logger.info(f"Reactivated category: {existing.name}")
        return existing

    category = ProductCategory(name=name, description=(description or '').strip() or None, icon=icon or None)
    session.add(category)
    session.commit()
    logger.info(f"Created category: {name}")
    return category


def delete_category(session: Session, category_id) -> bool:
    """
    Delete a category, or deactivate it while products still use it.

    Returns:
        True when deleted, False when deactivated
    """
    try:
        category = session.get(ProductCategory, int(category_id))
    except (TypeError, ValueError):
        category = None
    if category is None:
        raise NotFoundError(f'Category {category_id} not found')

    in_use = session.query(Product.id).filter(Product.category == category.name).first()
    if in_use:
        category.is_active = False
        session.commit()
        logger.info(f"Deactivated category {category.name} (still in use)")
        return False

    session.delete(category)
    session.commit()
    logger.info(f"Deleted category {category_id}")
    return True
