"""BundleRule model - discounts triggered by a set of services."""
from sqlalchemy import Column, String, Text, Numeric, Integer, Boolean, JSON, DateTime
from sqlalchemy.sql import func
from proposaldesk.database import Base, PrimaryKeyType


class BundleRule(Base):
    """
    Bundle rule catalog entry.

    Applies automatically when every service in required_services is selected
    on a proposal.
    """

    __tablename__ = 'bundle_rule'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    required_services = Column(JSON, nullable=False, default=list)  # list of service names
    discount_type = Column(String(20), nullable=False, default='fixed')  # 'fixed', 'percentage', 'free_service'
    discount_value = Column(Numeric(14, 2), nullable=True)
    free_service = Column(String(200), nullable=True)
    priority = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    def __repr__(self):
        return f"<BundleRule(id={self.id}, name='{self.name}', priority={self.priority})>"
