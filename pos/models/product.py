"""Product model."""
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, Numeric, DateTime, Text, CheckConstraint
from sqlalchemy.sql import func
from pos.database import Base


class Product(Base):
    """Sellable product with its authoritative on-hand stock."""
    
    __tablename__ = 'product'
    __table_args__ = (
        CheckConstraint('stock >= 0', name='ck_product_stock_non_negative'),
        CheckConstraint('price >= 0', name='ck_product_price_non_negative'),
    )
    
    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    brand = Column(String(100), nullable=True)
    category = Column(String(100), nullable=False, default='General')
    price = Column(Numeric(12, 2), nullable=False)
    stock = Column(Integer, nullable=False, default=0, server_default='0')
    min_stock_threshold = Column(Integer, nullable=False, default=5, server_default='5')
    description = Column(Text, nullable=True)
    image_url = Column(String(255), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    def __repr__(self):
        return f"<Product(id={self.id}, name='{self.name}', stock={self.stock})>"
    
    @property
    def is_low_stock(self):
        """Stock at or below the product's own threshold."""
        return self.stock <= self.min_stock_threshold
