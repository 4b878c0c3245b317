"""
Offer/Bundle auto-assignment.

Decides which special offers (explicitly chosen by the rep, optionally
customized) and which bundle rules (implied by the selected services) are
attached to a proposal. Runs in the proposal's transaction, after its service
rows have been flushed, and writes with INSERT .. ON CONFLICT so re-running on
every autosave never duplicates rows.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from proposaldesk.database import dialect_insert
from proposaldesk.exceptions import ValidationError
from proposaldesk.models import (
    AppliedOffer, AppliedOfferStatus, BundleRule, OfferType, Proposal, ProposalService, Service,
    SpecialOffer
)
from proposaldesk.services.offer_catalog_service import (
    get_applicable_bundle_rules, get_live_special_offer, resolve_discount_amount
)
from proposaldesk.utils.dates import add_expiration, utcnow
from proposaldesk.utils.number_format import parse_decimal, parse_int

logger = logging.getLogger(__name__)

BUNDLE_EXPIRATION_DAYS = 7
MAX_BUNDLES = 3
ACTIVE = AppliedOfferStatus.ACTIVE.value
WITHDRAWN = AppliedOfferStatus.WITHDRAWN.value


@dataclass
class OfferCustomization:
    """Per-proposal override of a special offer, stored verbatim."""
    offer_id: int
    name: Optional[str] = None
    description: Optional[str] = None
    discount_amount: Optional[Decimal] = None
    discount_percentage: Optional[Decimal] = None
    free_product_service: Optional[str] = None
    expiration_type: Optional[str] = None
    expiration_value: Optional[int] = None

    @classmethod
    def from_payload(cls, raw: dict) -> 'OfferCustomization':
        if not isinstance(raw, dict):
            raise ValidationError('Customized offer is malformed')
        offer_id = parse_int(raw.get('originalOfferId', raw.get('offer_id')))
        if offer_id is None:
            raise ValidationError('Customized offer is missing its original offer id')

        def optional_decimal(value):
            return None if value in (None, '') else parse_decimal(value)

        return cls(
            offer_id=offer_id,
            name=raw.get('name') or None,
            description=raw.get('description') or None,
            discount_amount=optional_decimal(raw.get('discount_amount')),
            discount_percentage=optional_decimal(raw.get('discount_percentage')),
            free_product_service=raw.get('free_product_service') or None,
            expiration_type=raw.get('expiration_type') or None,
            expiration_value=parse_int(raw.get('expiration_value')),
        )


@dataclass
class AssignmentResult:
    special_offer_ids: List[int] = field(default_factory=list)
    bundle_rule_ids: List[int] = field(default_factory=list)
    withdrawn: int = 0


def selected_service_names(session: Session, proposal_id: int) -> List[str]:
    """Service names as currently stored for the proposal (post-replacement)."""
    rows = (
        session.query(Service.name)
        .join(ProposalService, ProposalService.service_id == Service.id)
        .filter(ProposalService.proposal_id == proposal_id)
        .order_by(Service.name)
        .all()
    )
    return [row.name for row in rows]


def _existing_rows(session: Session, proposal_id: int) -> Dict[Tuple[str, int], Tuple[datetime, str]]:
    rows = session.query(
        AppliedOffer.offer_type, AppliedOffer.offer_id, AppliedOffer.created_at, AppliedOffer.status
    ).filter(AppliedOffer.proposal_id == proposal_id).all()
    return {(r.offer_type, r.offer_id): (r.created_at, r.status) for r in rows}


def _anchor(existing, offer_type: str, offer_id: int, now: datetime) -> datetime:
    """Expirations count from the first (still active) assignment, so re-runs are stable."""
    found = existing.get((offer_type, offer_id))
    if found and found[1] == ACTIVE and found[0] is not None:
        return found[0]
    return now


def _upsert_special_offer(session: Session, values: dict) -> None:
    stmt = dialect_insert(session, AppliedOffer).values(**values)
    overwrite = [
        'discount_amount', 'discount_percentage', 'free_item', 'expiration_date', 'status',
        'is_customized', 'custom_name', 'custom_description', 'customized_by', 'created_at', 'updated_at',
    ]
    stmt = stmt.on_conflict_do_update(
        index_elements=['proposal_id', 'offer_type', 'offer_id'],
        set_={name: getattr(stmt.excluded, name) for name in overwrite}
    )
    session.execute(stmt)


def _upsert_bundle_rule(session: Session, values: dict) -> None:
    stmt = dialect_insert(session, AppliedOffer).values(**values)
    # Active bundle rows stay untouched; only a withdrawn row is revived
    stmt = stmt.on_conflict_do_update(
        index_elements=['proposal_id', 'offer_type', 'offer_id'],
        set_={
            'status': stmt.excluded.status,
            'discount_amount': stmt.excluded.discount_amount,
            'discount_percentage': stmt.excluded.discount_percentage,
            'free_item': stmt.excluded.free_item,
            'expiration_date': stmt.excluded.expiration_date,
            'updated_at': stmt.excluded.updated_at,
        },
        where=(AppliedOffer.status != ACTIVE)
    )
    session.execute(stmt)


def _withdraw_others(session: Session, proposal_id: int, offer_type: str, keep_ids: List[int], now: datetime) -> int:
    query = session.query(AppliedOffer).filter(
        AppliedOffer.proposal_id == proposal_id,
        AppliedOffer.offer_type == offer_type,
        AppliedOffer.status == ACTIVE
    )
    if keep_ids:
        query = query.filter(AppliedOffer.offer_id.notin_(keep_ids))
    return query.update({'status': WITHDRAWN, 'updated_at': now}, synchronize_session=False)


def _apply_explicit_offers(
    session: Session,
    proposal: Proposal,
    offer_ids: List[int],
    customizations: Dict[int, OfferCustomization],
    actor_id: Optional[int],
    existing,
    now: datetime
) -> List[int]:
    offer_type = OfferType.SPECIAL_OFFER.value
    applied = []

    for offer_id in offer_ids:
        custom = customizations.get(offer_id)
        anchor = _anchor(existing, offer_type, offer_id, now)
        base = {
            'proposal_id': proposal.id,
            'offer_type': offer_type,
            'offer_id': offer_id,
            'status': ACTIVE,
            'created_at': anchor,
            'updated_at': now,
        }

        if custom is not None:
            values = dict(base,
                discount_amount=resolve_discount_amount(
                    custom.discount_amount, custom.discount_percentage, proposal.subtotal
                ),
                discount_percentage=custom.discount_percentage,
                free_item=custom.free_product_service,
                expiration_date=add_expiration(anchor, custom.expiration_type, custom.expiration_value),
                is_customized=True,
                custom_name=custom.name,
                custom_description=custom.description,
                customized_by=actor_id,
            )
        else:
            offer = get_live_special_offer(session, offer_id)
            if offer is None:
                logger.info(f"Offer {offer_id} is inactive or missing; not applied to proposal {proposal.id}")
                continue
            values = dict(base,
                discount_amount=resolve_discount_amount(
                    offer.discount_amount, offer.discount_percentage, proposal.subtotal
                ),
                discount_percentage=offer.discount_percentage,
                free_item=offer.free_product_service,
                expiration_date=add_expiration(anchor, offer.expiration_type, offer.expiration_value),
                is_customized=False,
                custom_name=None,
                custom_description=None,
                customized_by=None,
            )

        _upsert_special_offer(session, values)
        applied.append(offer_id)

    return applied


def _apply_bundle_rules(
    session: Session,
    proposal: Proposal,
    services: List[str],
    existing,
    now: datetime,
    expiration_days: int,
    max_bundles: int
) -> List[int]:
    if len(services) < 2:
        return []

    offer_type = OfferType.BUNDLE_RULE.value
    applied = []
    for rule in get_applicable_bundle_rules(session, services, limit=max_bundles):
        if rule.discount_type == 'percentage':
            amount = resolve_discount_amount(None, rule.discount_value, proposal.subtotal)
            percentage = rule.discount_value
        elif rule.discount_type == 'fixed':
            amount = resolve_discount_amount(rule.discount_value, None, proposal.subtotal)
            percentage = None
        else:
            amount = Decimal('0.00')
            percentage = None

        _upsert_bundle_rule(session, {
            'proposal_id': proposal.id,
            'offer_type': offer_type,
            'offer_id': rule.id,
            'discount_amount': amount,
            'discount_percentage': percentage,
            'free_item': rule.free_service,
            'expiration_date': now + timedelta(days=expiration_days),
            'status': ACTIVE,
            'is_customized': False,
            'created_at': now,
            'updated_at': now,
        })
        applied.append(rule.id)

    return applied


def assign_offers(
    session: Session,
    proposal: Proposal,
    selected_offer_ids: Optional[Iterable[int]] = None,
    customizations: Optional[Iterable[OfferCustomization]] = None,
    actor_id: Optional[int] = None,
    clock: Callable[[], datetime] = utcnow,
    bundle_expiration_days: int = BUNDLE_EXPIRATION_DAYS,
    max_bundles: int = MAX_BUNDLES
) -> AssignmentResult:
    """
    (Re)assign special offers and bundle rules to a proposal.

    Explicit offers are the union of the selected ids and the customized ids;
    a customization is stored verbatim, otherwise the live catalog row is
    re-read and must still be active. Bundle rules are only considered with
    two or more services. Offers no longer selected and bundles no longer
    qualifying are withdrawn.
    """
    now = clock()
    custom_by_id = {c.offer_id: c for c in (customizations or [])}

    offer_ids = []
    for raw_id in list(selected_offer_ids or []) + list(custom_by_id.keys()):
        offer_id = parse_int(raw_id)
        if offer_id is not None and offer_id not in offer_ids:
            offer_ids.append(offer_id)

    existing = _existing_rows(session, proposal.id)
    services = selected_service_names(session, proposal.id)

    result = AssignmentResult()
    result.special_offer_ids = _apply_explicit_offers(
        session, proposal, offer_ids, custom_by_id, actor_id, existing, now
    )
    result.bundle_rule_ids = _apply_bundle_rules(
        session, proposal, services, existing, now, bundle_expiration_days, max_bundles
    )

    result.withdrawn += _withdraw_others(
        session, proposal.id, OfferType.SPECIAL_OFFER.value, result.special_offer_ids, now
    )
    result.withdrawn += _withdraw_others(
        session, proposal.id, OfferType.BUNDLE_RULE.value, result.bundle_rule_ids, now
    )

    session.flush()
    logger.info(
        f"Offers assigned to proposal {proposal.id}: special={result.special_offer_ids} "
        f"bundles={result.bundle_rule_ids} withdrawn={result.withdrawn}"
    )
    return result


def get_active_applied_offers(session: Session, proposal_id: int) -> List[AppliedOffer]:
    """Active applied offers for a proposal, special offers first."""
    return (
        session.query(AppliedOffer)
        .filter(AppliedOffer.proposal_id == proposal_id, AppliedOffer.status == ACTIVE)
        .order_by(AppliedOffer.offer_type.desc(), AppliedOffer.offer_id)
        .all()
    )


def describe_applied_offers(session: Session, proposal_id: int) -> List[Dict]:
    """Active applied offers with catalog names; a customized name wins."""
    rows = get_active_applied_offers(session, proposal_id)
    special_ids = [r.offer_id for r in rows if r.offer_type == OfferType.SPECIAL_OFFER.value]
    bundle_ids = [r.offer_id for r in rows if r.offer_type == OfferType.BUNDLE_RULE.value]

    names = {}
    if special_ids:
        for offer in session.query(SpecialOffer).filter(SpecialOffer.id.in_(special_ids)):
            names[(OfferType.SPECIAL_OFFER.value, offer.id)] = (offer.name, offer.description)
    if bundle_ids:
        for rule in session.query(BundleRule).filter(BundleRule.id.in_(bundle_ids)):
            names[(OfferType.BUNDLE_RULE.value, rule.id)] = (rule.name, rule.description)

    described = []
    for row in rows:
        catalog_name, catalog_description = names.get((row.offer_type, row.offer_id), (None, None))
        described.append({
            'id': row.id,
            'offerType': row.offer_type,
            'offerId': row.offer_id,
            'name': row.custom_name or catalog_name,
            'description': row.custom_description or catalog_description,
            'discountAmount': float(row.discount_amount or 0),
            'discountPercentage': float(row.discount_percentage) if row.discount_percentage is not None else None,
            'freeItem': row.free_item,
            'expirationDate': row.expiration_date.isoformat() if row.expiration_date else None,
            'isCustomized': bool(row.is_customized),
            'status': row.status,
        })
    return described
