"""AppliedOffer model - offers and bundles attached to a proposal."""
import enum
from sqlalchemy import (
    Column, BigInteger, String, Text, Numeric, Boolean, DateTime, ForeignKey, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from proposaldesk.database import Base, PrimaryKeyType


class OfferType(enum.Enum):
    """Kind of catalog entry an applied offer points to."""
    SPECIAL_OFFER = "special_offer"
    BUNDLE_RULE = "bundle_rule"


class AppliedOfferStatus(enum.Enum):
    """Applied offer status."""
    ACTIVE = "active"
    WITHDRAWN = "withdrawn"


class AppliedOffer(Base):
    """
    Record that a special offer or bundle rule is applied to a proposal.

    At most one row per (proposal, offer_type, offer_id), enforced by the
    unique constraint and written with INSERT .. ON CONFLICT. offer_id is
    polymorphic over special_offer / bundle_rule, so it carries no foreign key.
    """

    __tablename__ = 'applied_offer'
    __table_args__ = (
        UniqueConstraint('proposal_id', 'offer_type', 'offer_id', name='uq_applied_offer'),
    )

    id = Column(PrimaryKeyType, primary_key=True, autoincrement=True)
    proposal_id = Column(BigInteger, ForeignKey('proposal.id', ondelete='CASCADE'), nullable=False, index=True)
    offer_type = Column(String(20), nullable=False)
    offer_id = Column(BigInteger, nullable=False)
    discount_amount = Column(Numeric(14, 2), nullable=False, default=0)
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    free_item = Column(String(200), nullable=True)
    expiration_date = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default=AppliedOfferStatus.ACTIVE.value)

    # Per-proposal customization (overrides the catalog values)
    is_customized = Column(Boolean, nullable=False, default=False)
    custom_name = Column(String(200), nullable=True)
    custom_description = Column(Text, nullable=True)
    customized_by = Column(BigInteger, ForeignKey('app_user.id'), nullable=True)

    created_at = Column(DateTime, nullable=False, server_default=func.now())
    updated_at = Column(DateTime, nullable=False, server_default=func.now())

    # Relationships
    proposal = relationship('Proposal', back_populates='applied_offers')

    def __repr__(self):
        return (
            f"<AppliedOffer(proposal_id={self.proposal_id}, type='{self.offer_type}', "
            f"offer_id={self.offer_id}, status='{self.status}')>"
        )

    @property
    def is_active(self):
        return self.status == AppliedOfferStatus.ACTIVE.value
