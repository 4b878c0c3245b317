"""SpecialOffer model - rep-selectable promotional offers."""
from sqlalchemy import Column, String, Text, Numeric, Integer, Boolean, DateTime
from sqlalchemy.sql import func
from proposaldesk.database import Base, PrimaryKeyType


class SpecialOffer(Base):
    """
    Special offer catalog entry.

    Discount shape is one of: fixed amount (discount_amount), percentage
    (discount_percentage) or free item (free_product_service).
    """

    __tablename__ = 'special_offer'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(80), nullable=True, index=True)
    discount_amount = Column(Numeric(14, 2), nullable=True)
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    free_product_service = Column(String(200), nullable=True)
    expiration_type = Column(String(10), nullable=False, default='days')  # 'hours' or 'days'
    expiration_value = Column(Integer, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<SpecialOffer(id={self.id}, name='{self.name}', active={self.is_active})>"
