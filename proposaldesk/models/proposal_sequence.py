"""ProposalSequence model - named counters for human-readable numbers."""
from sqlalchemy import Column, String, BigInteger
from proposaldesk.database import Base


class ProposalSequence(Base):
    """Named monotonic counter (one row per sequence name)."""

    __tablename__ = 'proposal_sequence'

    name = Column(String(50), primary_key=True)
    last_value = Column(BigInteger, nullable=False)

    def __repr__(self):
        return f"<ProposalSequence(name='{self.name}', last_value={self.last_value})>"
