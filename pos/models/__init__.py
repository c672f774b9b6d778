"""Models package - exports all SQLAlchemy models."""
from pos.models.app_user import AppUser, UserRole
from pos.models.app_settings import AppSettings
from pos.models.category import ProductCategory
from pos.models.product import Product
from pos.models.transaction import Transaction, TransactionItem, PaymentType, normalize_payment_type

__all__ = [
    'AppUser', 'UserRole', 'AppSettings',
    'ProductCategory', 'Product',
    'Transaction', 'TransactionItem', 'PaymentType', 'normalize_payment_type',
]
