"""ProductCategory model."""
from sqlalchemy import Column, BigInteger, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from pos.database import Base


class ProductCategory(Base):
    """
    Category offered when creating products.

    Products store the category name, so a category still in use is
    deactivated instead of deleted.
    """
    
    __tablename__ = 'product_category'
    
    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False, unique=True)
    description = Column(String(255), nullable=True)
    icon = Column(String(16), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    
    def __repr__(self):
        return f"<ProductCategory(id={self.id}, name='{self.name}')>"
