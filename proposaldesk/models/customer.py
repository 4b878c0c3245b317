"""Customer model."""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from proposaldesk.database import Base, PrimaryKeyType


class Customer(Base):
    """
    Customer (homeowner receiving proposals).

    Email is the identity key: a second proposal for the same email updates
    the contact fields instead of creating another customer.
    """

    __tablename__ = 'customer'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now())

    # Relationships
    user = relationship('AppUser')
    proposals = relationship('Proposal', back_populates='customer')

    def __repr__(self):
        return f"<Customer(id={self.id}, email='{self.email}')>"
