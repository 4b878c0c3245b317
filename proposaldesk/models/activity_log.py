"""
Activity Log model for the proposal audit trail.
"""
from sqlalchemy import Column, BigInteger, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
import enum

from proposaldesk.database import Base, PrimaryKeyType
from proposaldesk.utils.dates import utcnow


class ActivityAction(enum.Enum):
    """Enumeration of auditable proposal actions."""
    PROPOSAL_CREATED = "create_proposal"
    STATUS_CHANGED = "update_status"
    DUPLICATE_DRAFT_REUSED = "reuse_draft"
    DRAFT_ABANDONED = "abandon_draft"


class ActivityLog(Base):
    """
    Audit log row for proposal changes.

    user_id is NULL for system-initiated actions.
    """
    __tablename__ = 'activity_log'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    proposal_id = Column(BigInteger, ForeignKey('proposal.id', ondelete='CASCADE'), nullable=True, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    action = Column(String(64), nullable=False, index=True)
    details = Column(Text)  # JSON with additional details
    ip_address = Column(String(45))  # IPv4 or IPv6
    user_agent = Column(String(255))
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Relationships
    proposal = relationship('Proposal')

    def __repr__(self):
        return f"<ActivityLog {self.action} on proposal {self.proposal_id} at {self.created_at}>"
