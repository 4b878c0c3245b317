"""Models package - exports all SQLAlchemy models."""
# Actors and customers
from proposaldesk.models.app_user import AppUser
from proposaldesk.models.customer import Customer

# Catalogs
from proposaldesk.models.service import Service
from proposaldesk.models.special_offer import SpecialOffer
from proposaldesk.models.bundle_rule import BundleRule

# Proposal aggregate
from proposaldesk.models.proposal import (
    Proposal, ProposalStatus, DRAFT_STATUSES, LOCKED_STATUSES, STATUS_TIMESTAMP_FIELDS,
    normalize_status, is_transition_allowed
)
from proposaldesk.models.proposal_service import ProposalService
from proposaldesk.models.proposal_product import ProposalProduct
from proposaldesk.models.custom_pricing_adder import CustomPricingAdder
from proposaldesk.models.applied_offer import AppliedOffer, AppliedOfferStatus, OfferType
from proposaldesk.models.proposal_sequence import ProposalSequence

# Audit
from proposaldesk.models.activity_log import ActivityLog, ActivityAction

__all__ = [
    'AppUser', 'Customer',
    'Service', 'SpecialOffer', 'BundleRule',
    'Proposal', 'ProposalStatus', 'DRAFT_STATUSES', 'LOCKED_STATUSES', 'STATUS_TIMESTAMP_FIELDS',
    'normalize_status', 'is_transition_allowed',
    'ProposalService', 'ProposalProduct', 'CustomPricingAdder',
    'AppliedOffer', 'AppliedOfferStatus', 'OfferType', 'ProposalSequence',
    'ActivityLog', 'ActivityAction',
]
