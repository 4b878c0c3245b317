"""ProposalProduct model - per-service product configuration."""
from sqlalchemy import Column, BigInteger, Text, JSON, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from proposaldesk.database import Base, PrimaryKeyType


class ProposalProduct(Base):
    """
    Product configuration for one service on one proposal.

    product_data holds the free-form form payload (materials, colors, sizes);
    scope notes are kept in their own column.
    """

    __tablename__ = 'proposal_product'
    __table_args__ = (
        UniqueConstraint('proposal_id', 'service_id', name='uq_proposal_product'),
    )

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    proposal_id = Column(BigInteger, ForeignKey('proposal.id', ondelete='CASCADE'), nullable=False, index=True)
    service_id = Column(BigInteger, ForeignKey('service.id'), nullable=False)
    product_data = Column(JSON, nullable=False, default=dict)
    scope_notes = Column(Text, nullable=True)

    # Relationships
    proposal = relationship('Proposal', back_populates='products')
    service = relationship('Service')

    def __repr__(self):
        return f"<ProposalProduct(proposal_id={self.proposal_id}, service_id={self.service_id})>"
