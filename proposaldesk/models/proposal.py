"""Proposal model - the aggregate root of the write path."""
import enum
from sqlalchemy import (
    Column, BigInteger, String, Numeric, Integer, Boolean, DateTime, Text, JSON, ForeignKey
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from proposaldesk.database import Base, PrimaryKeyType


class ProposalStatus(enum.Enum):
    """Proposal lifecycle status."""
    DRAFT_IN_PROGRESS = "draft_in_progress"
    DRAFT_COMPLETE = "draft_complete"
    SENT = "sent"
    VIEWED = "viewed"
    SIGNED = "signed"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


DRAFT_STATUSES = (ProposalStatus.DRAFT_IN_PROGRESS.value, ProposalStatus.DRAFT_COMPLETE.value)

# Content can no longer change once the customer has signed
LOCKED_STATUSES = (
    ProposalStatus.SIGNED.value,
    ProposalStatus.COMPLETED.value,
    ProposalStatus.ABANDONED.value,
)

# Forward-only ordering; both draft states share a rank so they can swap freely
_STATUS_RANK = {
    ProposalStatus.DRAFT_IN_PROGRESS.value: 0,
    ProposalStatus.DRAFT_COMPLETE.value: 0,
    ProposalStatus.SENT.value: 1,
    ProposalStatus.VIEWED.value: 2,
    ProposalStatus.SIGNED.value: 3,
    ProposalStatus.COMPLETED.value: 4,
}

# Status -> column stamped the first time the proposal enters it
STATUS_TIMESTAMP_FIELDS = {
    ProposalStatus.SENT.value: 'sent_at',
    ProposalStatus.VIEWED.value: 'viewed_at',
    ProposalStatus.SIGNED.value: 'signed_at',
    ProposalStatus.COMPLETED.value: 'completed_at',
}


def normalize_status(value):
    """Return the status string for a raw value, or None if it is unknown."""
    if value is None:
        return None
    if isinstance(value, ProposalStatus):
        return value.value
    candidate = str(value).strip().lower()
    try:
        return ProposalStatus(candidate).value
    except ValueError:
        return None


def is_transition_allowed(current: str, requested: str) -> bool:
    """
    Check a status change against the lifecycle.

    Same-status is always allowed (no-op). Drafts move freely between each
    other, drafts may be abandoned, and everything else only moves forward.
    """
    if current == requested:
        return True
    if requested == ProposalStatus.ABANDONED.value:
        return current in DRAFT_STATUSES
    if current == ProposalStatus.ABANDONED.value:
        return False
    return _STATUS_RANK[requested] >= _STATUS_RANK[current]


class Proposal(Base):
    """
    Proposal (sales proposal for one customer).

    Child row sets (services, products, custom adders) are replaced wholesale
    on every save; applied offers are upserted. The proposal number is assigned
    once at creation and never regenerated.
    """

    __tablename__ = 'proposal'

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    proposal_number = Column(String(32), nullable=False, unique=True)
    customer_id = Column(BigInteger, ForeignKey('customer.id'), nullable=False, index=True)
    user_id = Column(BigInteger, ForeignKey('app_user.id'), nullable=False, index=True)
    created_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)
    status = Column(String(32), nullable=False, default=ProposalStatus.DRAFT_IN_PROGRESS.value, index=True)

    # Pricing snapshot
    subtotal = Column(Numeric(14, 2), nullable=False, default=0)
    discount = Column(Numeric(14, 2), nullable=False, default=0)
    total = Column(Numeric(14, 2), nullable=False, default=0)
    monthly_payment = Column(Numeric(14, 2), nullable=False, default=0)
    show_line_items = Column(Boolean, nullable=False, default=True)

    # Financing terms
    financing_term = Column(Integer, nullable=True)
    interest_rate = Column(Numeric(6, 3), nullable=True)
    financing_plan_id = Column(BigInteger, nullable=True)
    financing_plan_name = Column(String(200), nullable=True)
    merchant_fee = Column(Numeric(8, 3), nullable=True)
    financing_notes = Column(Text, nullable=True)

    # Discount types, adder totals and computation trace
    pricing_breakdown = Column(JSON, nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now(), onupdate=func.now(), index=True)
    sent_at = Column(DateTime, nullable=True)
    viewed_at = Column(DateTime, nullable=True)
    signed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Relationships
    customer = relationship('Customer', back_populates='proposals')
    user = relationship('AppUser', foreign_keys=[user_id])
    services = relationship('ProposalService', back_populates='proposal', cascade='all, delete-orphan')
    products = relationship('ProposalProduct', back_populates='proposal', cascade='all, delete-orphan')
    custom_adders = relationship('CustomPricingAdder', back_populates='proposal', cascade='all, delete-orphan')
    applied_offers = relationship('AppliedOffer', back_populates='proposal', cascade='all, delete-orphan')

    def __repr__(self):
        return f"<Proposal(id={self.id}, number='{self.proposal_number}', status='{self.status}', total={self.total})>"

    @property
    def is_draft(self):
        return self.status in DRAFT_STATUSES

    @property
    def is_locked(self):
        """Signed, completed or abandoned proposals reject content edits."""
        return self.status in LOCKED_STATUSES
