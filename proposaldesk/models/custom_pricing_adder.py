"""CustomPricingAdder model - ad hoc cost lines on a proposal."""
from sqlalchemy import Column, BigInteger, String, Numeric, ForeignKey
from sqlalchemy.orm import relationship
from proposaldesk.database import Base, PrimaryKeyType


class CustomPricingAdder(Base):
    """Ad hoc line item (e.g. permit fee, extra tear-off layer)."""

    __tablename__ = 'custom_pricing_adder'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    proposal_id = Column(BigInteger, ForeignKey('proposal.id', ondelete='CASCADE'), nullable=False, index=True)
    product_category = Column(String(80), nullable=False)
    description = Column(String(500), nullable=False)
    cost = Column(Numeric(14, 2), nullable=False, default=0)

    # Relationships
    proposal = relationship('Proposal', back_populates='custom_adders')

    def __repr__(self):
        return f"<CustomPricingAdder(id={self.id}, category='{self.product_category}', cost={self.cost})>"
