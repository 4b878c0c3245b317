"""ProposalService model - services selected on a proposal."""
from sqlalchemy import Column, BigInteger, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from proposaldesk.database import Base, PrimaryKeyType


class ProposalService(Base):
    """
    Join row between a proposal and a catalog service.

    Replaced wholesale on every save (delete + reinsert), never diffed.
    """

    __tablename__ = 'proposal_service'
    __table_args__ = (
        UniqueConstraint('proposal_id', 'service_id', name='uq_proposal_service'),
    )

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    proposal_id = Column(BigInteger, ForeignKey('proposal.id', ondelete='CASCADE'), nullable=False, index=True)
    service_id = Column(BigInteger, ForeignKey('service.id'), nullable=False)

    # Relationships
    proposal = relationship('Proposal', back_populates='services')
    service = relationship('Service')

    def __repr__(self):
        return f"<ProposalService(proposal_id={self.proposal_id}, service_id={self.service_id})>"
