"""Transaction (committed sale) model."""
from sqlalchemy import Column, BigInteger, Integer, String, Numeric, DateTime, Text, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from pos.database import Base
import enum


class PaymentType(str, enum.Enum):
    """Accepted payment types."""
    CASH = 'cash'
    DIGITAL_WALLET = 'digital-wallet'
    CARD = 'card'


def normalize_payment_type(value):
    """
    Normalize a raw payment type string to a PaymentType.

    Accepts enum names and values in any case; 'gcash' and 'wallet' are
    legacy aliases of the digital wallet option.

    Raises:
        ValueError: if the value is not a known payment type.
    """
    if isinstance(value, PaymentType):
        return value
    raw = str(value or '').strip().lower().replace('_', '-')
    aliases = {'gcash': PaymentType.DIGITAL_WALLET, 'wallet': PaymentType.DIGITAL_WALLET}
    if raw in aliases:
        return aliases[raw]
    return PaymentType(raw)


class Transaction(Base):
    """Committed sale. Rows are written only by the atomic commit and never edited."""
    
    __tablename__ = 'pos_transaction'
    
    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    # Assigned from the id inside the commit, hence nullable at column level
    transaction_number = Column(String(32), unique=True, nullable=True, index=True)
    total_amount = Column(Numeric(12, 2), nullable=False)
    payment_type = Column(String(20), nullable=False)
    amount_paid = Column(Numeric(12, 2), nullable=False)
    change_amount = Column(Numeric(12, 2), nullable=False)
    cashier_id = Column(BigInteger().with_variant(Integer, 'sqlite'), ForeignKey('app_user.id'), nullable=True)
    cashier_name = Column(String(200), nullable=False)
    notes = Column(Text, nullable=True)
    
    # Idempotency key to prevent duplicate sales on retried submits
    idempotency_key = Column(String(64), unique=True, nullable=True, index=True)
    # sha256 of the committed lines and payment; a replayed key must match it
    request_hash = Column(String(64), nullable=True)
    
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    # Relationships
    cashier = relationship('AppUser')
    items = relationship(
        'TransactionItem',
        back_populates='transaction',
        cascade='all, delete-orphan',
        order_by='TransactionItem.id'
    )
    
    def __repr__(self):
        return f"<Transaction(id={self.id}, number='{self.transaction_number}', total={self.total_amount})>"


class TransactionItem(Base):
    """Immutable line of a committed sale."""
    
    __tablename__ = 'transaction_item'
    
    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    transaction_id = Column(
        BigInteger().with_variant(Integer, 'sqlite'),
        ForeignKey('pos_transaction.id', ondelete='CASCADE'),
        nullable=False,
        index=True
    )
    product_id = Column(
        BigInteger().with_variant(Integer, 'sqlite'),
        ForeignKey('product.id', ondelete='SET NULL'),
        nullable=True
    )
    product_name = Column(String(200), nullable=False)
    quantity = Column(Integer, nullable=False)
    price_each = Column(Numeric(12, 2), nullable=False)
    subtotal = Column(Numeric(12, 2), nullable=False)
    
    # Relationships
    transaction = relationship('Transaction', back_populates='items')
    product = relationship('Product')
    
    def __repr__(self):
        return f"<TransactionItem(id={self.id}, product_id={self.product_id}, qty={self.quantity})>"
