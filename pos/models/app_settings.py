"""Store settings model (single row)."""
from sqlalchemy import Column, BigInteger, Integer, String, Text, DateTime
from sqlalchemy.sql import func
from pos.database import Base


class AppSettings(Base):
    """Store identity and receipt footer printed on every receipt."""
    
    __tablename__ = 'app_settings'
    
    id = Column(BigInteger().with_variant(Integer, 'sqlite'), primary_key=True, autoincrement=True)
    store_name = Column(String(200), nullable=False)
    store_address = Column(String(255), nullable=True)
    store_phone = Column(String(50), nullable=True)
    store_email = Column(String(255), nullable=True)
    receipt_footer = Column(Text, nullable=True)
    default_low_stock_threshold = Column(Integer, nullable=False, default=5, server_default='5')
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    
    def __repr__(self):
        return f"<AppSettings(id={self.id}, store_name='{self.store_name}')>"
