"""
Proposal transaction engine.

Writes a proposal and everything that hangs off it (customer, services,
product configuration, custom adders, applied offers, audit row) as one unit
of work, and drives the proposal status lifecycle.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from proposaldesk.blueprints.metrics import proposal_saves_total, duplicate_drafts_total
from proposaldesk.database import dialect_insert
from proposaldesk.exceptions import (
    ProposalDeskError, ValidationError, BusinessLogicError, InvalidTransitionError,
    NotFoundError, TransientIOError, UnauthorizedError
)
from proposaldesk.models import (
    Proposal, ProposalStatus, Customer, Service, ProposalService, ProposalProduct,
    CustomPricingAdder, ActivityAction, DRAFT_STATUSES, STATUS_TIMESTAMP_FIELDS,
    normalize_status, is_transition_allowed
)
from proposaldesk.services.audit_service import log_activity
from proposaldesk.services.best_effort import run_best_effort
from proposaldesk.services.draft_finder_service import DraftKey, find_existing_draft, normalize_email
from proposaldesk.services.offer_assignment_service import OfferCustomization, assign_offers
from proposaldesk.services.pricing_snapshot_service import PricingSnapshot, build_pricing_snapshot
from proposaldesk.services.sequence_service import ProposalNumberSequence, get_sequence
from proposaldesk.utils.dates import utcnow
from proposaldesk.utils.number_format import parse_int

logger = logging.getLogger(__name__)


def _setting(name: str, default):
    if has_app_context():
        return current_app.config.get(name, default)
    return default


# ---------------------------------------------------------------------------
# Payload
# ---------------------------------------------------------------------------

def _text(value: Any, label: str) -> str:
    if value is None:
        return ''
    if not isinstance(value, str):
        raise ValidationError(f'{label} must be text')
    return value.strip()


def _items(data: Dict[str, Any], key: str, label: str) -> list:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f'{label} must be a list')
    return value


@dataclass
class CustomerInput:
    name: str = ''
    email: str = ''
    phone: Optional[str] = None
    address: Optional[str] = None


@dataclass
class ProposalPayload:
    """Parsed wizard payload (camelCase JSON in, snake_case fields out)."""
    proposal_id: Optional[int] = None
    customer: CustomerInput = field(default_factory=CustomerInput)
    services: List[str] = field(default_factory=list)
    products: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    pricing: Dict[str, Any] = field(default_factory=dict)
    custom_adders: List[Dict[str, Any]] = field(default_factory=list)
    selected_offer_ids: List[int] = field(default_factory=list)
    customized_offers: List[OfferCustomization] = field(default_factory=list)
    status: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ProposalPayload':
        if not isinstance(data, dict):
            raise ValidationError('Proposal payload must be a JSON object')

        raw_customer = data.get('customer') or {}
        if not isinstance(raw_customer, dict):
            raise ValidationError('Customer block is malformed')
        customer = CustomerInput(
            name=_text(raw_customer.get('name'), 'Customer name'),
            email=normalize_email(_text(raw_customer.get('email'), 'Customer email')),
            phone=_text(raw_customer.get('phone'), 'Customer phone') or None,
            address=_text(raw_customer.get('address'), 'Customer address') or None,
        )

        services = []
        for name in _items(data, 'services', 'Services'):
            cleaned = str(name).strip()
            if cleaned and cleaned not in services:
                services.append(cleaned)

        products = data.get('products') or {}
        if not isinstance(products, dict):
            raise ValidationError('Products must be keyed by service name')

        pricing = data.get('pricing') or {}
        if not isinstance(pricing, dict):
            raise ValidationError('Pricing must be an object')

        customized = []
        for index, raw in enumerate(_items(data, 'customizedOffers', 'Customized offers')):
            if not isinstance(raw, dict):
                raise ValidationError(f'Customized offer #{index + 1} is malformed')
            customized.append(OfferCustomization.from_payload(raw))

        raw_status = data.get('status')
        status = None
        if raw_status not in (None, ''):
            status = normalize_status(raw_status)
            if status is None:
                raise ValidationError(f"Unknown proposal status '{raw_status}'")

        proposal_id = data.get('id', data.get('proposalId'))
        if proposal_id not in (None, ''):
            proposal_id = parse_int(proposal_id)
            if proposal_id is None:
                raise ValidationError('Proposal id must be an integer')
        else:
            proposal_id = None

        return cls(
            proposal_id=proposal_id,
            customer=customer,
            services=services,
            products=products,
            pricing=pricing,
            custom_adders=data.get('customAdders') or data.get('custom_adders') or [],
            selected_offer_ids=[
                i for i in (parse_int(v) for v in _items(data, 'selectedOffers', 'Selected offers')) if i is not None
            ],
            customized_offers=customized,
            status=status,
        )


@dataclass
class UpsertResult:
    proposal_id: int
    proposal_number: str


@dataclass
class SaveResult:
    proposal_id: int
    proposal_number: str
    is_duplicate: bool = False


@dataclass
class StatusChange:
    proposal_id: int
    previous_status: str
    status: str
    changed: bool


# ---------------------------------------------------------------------------
# Write helpers (run inside the caller's transaction)
# ---------------------------------------------------------------------------

def _require_customer(customer: CustomerInput) -> None:
    if not customer.name or not customer.email:
        raise ValidationError('Customer name and email are required')


def _upsert_customer(session: Session, customer: CustomerInput, actor_id: int, now: datetime) -> int:
    """Insert or refresh the customer keyed by email; returns its id."""
    stmt = dialect_insert(session, Customer).values(
        name=customer.name,
        email=customer.email,
        phone=customer.phone,
        address=customer.address,
        user_id=actor_id,
        created_at=now,
        updated_at=now
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=['email'],
        set_={
            'name': stmt.excluded.name,
            'phone': stmt.excluded.phone,
            'address': stmt.excluded.address,
            'updated_at': stmt.excluded.updated_at,
        }
    )
    session.execute(stmt)
    return session.query(Customer.id).filter(Customer.email == customer.email).scalar()


def _resolve_services(session: Session, names: List[str]) -> List[Service]:
    if not names:
        return []
    found = {s.name: s for s in session.query(Service).filter(Service.name.in_(names)).all()}
    unknown = [name for name in names if name not in found]
    if unknown:
        raise ValidationError(f"Unknown services: {', '.join(unknown)}")
    return [found[name] for name in names]


def _apply_status(proposal: Proposal, new_status: str, now: datetime) -> bool:
    """Set the status and stamp its timestamp the first time it is entered."""
    previous = proposal.status
    proposal.status = new_status
    stamp_field = STATUS_TIMESTAMP_FIELDS.get(new_status)
    if stamp_field and getattr(proposal, stamp_field) is None:
        setattr(proposal, stamp_field, now)
    return previous != new_status


def _replace_children(
    session: Session,
    proposal: Proposal,
    services: List[Service],
    products: Dict[str, Dict[str, Any]],
    snapshot: PricingSnapshot
) -> None:
    """Delete and re-insert services, products and custom adders."""
    for model in (ProposalService, ProposalProduct, CustomPricingAdder):
        session.query(model).filter(model.proposal_id == proposal.id).delete(synchronize_session=False)
    session.expire(proposal, ['services', 'products', 'custom_adders'])

    for service in services:
        session.add(ProposalService(proposal_id=proposal.id, service_id=service.id))

        product = products.get(service.name)
        if product is None:
            continue
        if not isinstance(product, dict):
            raise ValidationError(f"Product configuration for '{service.name}' is malformed")
        product_data = dict(product)
        scope_notes = product_data.pop('scopeNotes', None)
        session.add(ProposalProduct(
            proposal_id=proposal.id,
            service_id=service.id,
            product_data=product_data,
            scope_notes=scope_notes or None
        ))

    for line in snapshot.custom_adders:
        session.add(CustomPricingAdder(
            proposal_id=proposal.id,
            product_category=line.product_category,
            description=line.description,
            cost=line.cost
        ))

    # Offer assignment reads the service rows back from the database
    session.flush()


def _create_header(
    session: Session,
    data: ProposalPayload,
    snapshot: PricingSnapshot,
    actor_id: int,
    sequence: ProposalNumberSequence,
    now: datetime
) -> Proposal:
    status = data.status or ProposalStatus.DRAFT_IN_PROGRESS.value
    if not is_transition_allowed(ProposalStatus.DRAFT_IN_PROGRESS.value, status):
        raise InvalidTransitionError(ProposalStatus.DRAFT_IN_PROGRESS.value, status)

    customer_id = _upsert_customer(session, data.customer, actor_id, now)
    proposal = Proposal(
        proposal_number=sequence.next_number(session),
        customer_id=customer_id,
        user_id=actor_id,
        created_by=actor_id,
        created_at=now,
        updated_at=now,
        **snapshot.header_values()
    )
    _apply_status(proposal, status, now)
    session.add(proposal)
    session.flush()
    return proposal


def _update_header(
    session: Session,
    data: ProposalPayload,
    snapshot: PricingSnapshot,
    actor_id: int,
    now: datetime
) -> Tuple[Proposal, str]:
    proposal = session.query(Proposal).filter(
        Proposal.id == data.proposal_id
    ).with_for_update().populate_existing().first()
    if not proposal:
        raise NotFoundError(f'Proposal {data.proposal_id} not found')
    if proposal.is_locked:
        raise BusinessLogicError(
            f"Proposal {proposal.proposal_number} is {proposal.status} and can no longer be edited"
        )

    previous_status = proposal.status
    new_status = data.status or previous_status
    if not is_transition_allowed(previous_status, new_status):
        raise InvalidTransitionError(previous_status, new_status)

    if data.customer.email:
        if not data.customer.name:
            raise ValidationError('Customer name is required')
        proposal.customer_id = _upsert_customer(session, data.customer, actor_id, now)

    for column, value in snapshot.header_values().items():
        setattr(proposal, column, value)
    _apply_status(proposal, new_status, now)
    proposal.updated_at = now
    session.flush()
    return proposal, previous_status


def _write_proposal(
    session: Session,
    data: ProposalPayload,
    actor_id: int,
    sequence: Optional[ProposalNumberSequence],
    clock: Callable[[], datetime],
    reused_draft: bool = False
) -> UpsertResult:
    if actor_id is None:
        raise UnauthorizedError()
    if data.proposal_id is None:
        _require_customer(data.customer)

    snapshot = build_pricing_snapshot(
        data.pricing,
        data.custom_adders,
        default_term=_setting('DEFAULT_FINANCING_TERM', 60),
        default_rate=Decimal(str(_setting('DEFAULT_INTEREST_RATE', '5.99')))
    )
    sequence = sequence or get_sequence()
    now = clock()
    created = data.proposal_id is None

    try:
        session.begin_nested()

        services = _resolve_services(session, data.services)

        if created:
            proposal = _create_header(session, data, snapshot, actor_id, sequence, now)
            previous_status = None
        else:
            proposal, previous_status = _update_header(session, data, snapshot, actor_id, now)

        _replace_children(session, proposal, services, data.products, snapshot)

        run_best_effort(
            session, 'offer_assignment', assign_offers,
            session, proposal, data.selected_offer_ids, data.customized_offers,
            actor_id=actor_id,
            clock=lambda: now,
            bundle_expiration_days=_setting('BUNDLE_EXPIRATION_DAYS', 7),
            max_bundles=_setting('MAX_BUNDLES_PER_PROPOSAL', 3)
        )

        if created:
            log_activity(session, ActivityAction.PROPOSAL_CREATED, proposal.id, actor_id, {
                'proposal_number': proposal.proposal_number,
                'customer_email': data.customer.email,
                'status': proposal.status,
            }, created_at=now)
        else:
            if reused_draft:
                log_activity(session, ActivityAction.DUPLICATE_DRAFT_REUSED, proposal.id, actor_id, {
                    'proposal_number': proposal.proposal_number,
                    'customer_email': data.customer.email,
                }, created_at=now)
            if previous_status != proposal.status:
                log_activity(session, ActivityAction.STATUS_CHANGED, proposal.id, actor_id, {
                    'from': previous_status,
                    'to': proposal.status,
                }, created_at=now)

        result = UpsertResult(proposal_id=proposal.id, proposal_number=proposal.proposal_number)
        session.commit()
    except ProposalDeskError:
        session.rollback()
        proposal_saves_total.labels(outcome='failed').inc()
        raise
    except OperationalError as e:
        session.rollback()
        proposal_saves_total.labels(outcome='failed').inc()
        logger.error(f"Database unavailable while saving proposal: {e}")
        raise TransientIOError('Database temporarily unavailable, please retry') from e
    except Exception:
        session.rollback()
        proposal_saves_total.labels(outcome='failed').inc()
        raise

    outcome = 'created' if created else ('reused_draft' if reused_draft else 'updated')
    proposal_saves_total.labels(outcome=outcome).inc()
    logger.info(f"Proposal {result.proposal_number} (id={result.proposal_id}) {outcome} by user {actor_id}")
    return result


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def upsert_proposal(
    session: Session,
    payload,
    actor_id: int,
    sequence: Optional[ProposalNumberSequence] = None,
    clock: Optional[Callable[[], datetime]] = None
) -> UpsertResult:
    """
    Create or update a proposal atomically.

    Without an id a new proposal (and proposal number) is created; creation is
    not idempotent here, use save_proposal() for wizard saves. With an id the
    existing proposal is updated: header overwritten, child rows replaced,
    offers re-assigned, status advanced forward only.

    Raises:
        ValidationError: missing customer on create, unknown services or status
        NotFoundError: id does not exist
        BusinessLogicError: proposal is locked or the status would move backwards
        TransientIOError: database unavailable
    """
    data = payload if isinstance(payload, ProposalPayload) else ProposalPayload.from_dict(payload)
    return _write_proposal(session, data, actor_id, sequence, clock or utcnow)


def save_proposal(
    session: Session,
    payload,
    actor_id: int,
    sequence: Optional[ProposalNumberSequence] = None,
    clock: Optional[Callable[[], datetime]] = None,
    draft_window: Optional[timedelta] = None
) -> SaveResult:
    """
    Wizard save: like upsert_proposal, but a save without an id first looks for
    a recent draft for the same customer and actor and updates that instead.
    """
    data = payload if isinstance(payload, ProposalPayload) else ProposalPayload.from_dict(payload)
    clock = clock or utcnow
    if actor_id is None:
        raise UnauthorizedError()

    reused = False
    if data.proposal_id is None:
        _require_customer(data.customer)
        window = draft_window or timedelta(minutes=_setting('DRAFT_WINDOW_MINUTES', 120))
        draft = find_existing_draft(session, DraftKey.build(data.customer.email, actor_id), window=window, clock=clock)
        if draft:
            logger.info(f"Reusing draft {draft.proposal_number} for {data.customer.email} (user {actor_id})")
            duplicate_drafts_total.inc()
            data.proposal_id = draft.proposal_id
            reused = True

    result = _write_proposal(session, data, actor_id, sequence, clock, reused_draft=reused)
    return SaveResult(
        proposal_id=result.proposal_id,
        proposal_number=result.proposal_number,
        is_duplicate=reused
    )


def update_proposal_status(
    session: Session,
    proposal_id: int,
    status: str,
    actor_id: Optional[int] = None,
    clock: Optional[Callable[[], datetime]] = None
) -> StatusChange:
    """Move a proposal to a new status, stamping sent/viewed/signed/completed once."""
    new_status = normalize_status(status)
    if new_status is None:
        raise ValidationError(f"Unknown proposal status '{status}'")
    now = (clock or utcnow)()

    try:
        session.begin_nested()
        proposal = session.query(Proposal).filter(
            Proposal.id == proposal_id
        ).with_for_update().populate_existing().first()
        if not proposal:
            raise NotFoundError(f'Proposal {proposal_id} not found')

        previous = proposal.status
        if not is_transition_allowed(previous, new_status):
            raise InvalidTransitionError(previous, new_status)

        changed = _apply_status(proposal, new_status, now)
        if changed:
            proposal.updated_at = now
            session.flush()
            log_activity(session, ActivityAction.STATUS_CHANGED, proposal.id, actor_id, {
                'from': previous,
                'to': new_status,
            }, created_at=now)

        session.commit()
    except ProposalDeskError:
        session.rollback()
        raise
    except OperationalError as e:
        session.rollback()
        raise TransientIOError('Database temporarily unavailable, please retry') from e
    except Exception:
        session.rollback()
        raise

    if changed:
        logger.info(f"Proposal {proposal_id} moved {previous} -> {new_status}")
    return StatusChange(proposal_id=proposal_id, previous_status=previous, status=new_status, changed=changed)


def abandon_stale_drafts(
    session: Session,
    days: int = 7,
    clock: Optional[Callable[[], datetime]] = None
) -> int:
    """Mark drafts untouched for `days` days as abandoned. Returns how many."""
    now = (clock or utcnow)()
    cutoff = now - timedelta(days=days)

    try:
        session.begin_nested()
        stale = session.query(Proposal).filter(
            Proposal.status.in_(DRAFT_STATUSES),
            Proposal.updated_at < cutoff
        ).with_for_update().all()

        for proposal in stale:
            previous = proposal.status
            _apply_status(proposal, ProposalStatus.ABANDONED.value, now)
            proposal.updated_at = now
            session.flush()
            log_activity(session, ActivityAction.DRAFT_ABANDONED, proposal.id, None, {
                'from': previous,
                'idle_days': days,
            }, created_at=now)

        session.commit()
    except Exception:
        session.rollback()
        raise

    if stale:
        logger.info(f"Abandoned {len(stale)} drafts idle since {cutoff.isoformat()}")
    return len(stale)


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

def _money(value) -> float:
    return float(value) if value is not None else 0.0


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def get_proposal(session: Session, proposal_id: int) -> Proposal:
    proposal = session.query(Proposal).filter(Proposal.id == proposal_id).first()
    if not proposal:
        raise NotFoundError(f'Proposal {proposal_id} not found')
    return proposal


def get_proposal_detail(session: Session, proposal_id: int) -> Dict[str, Any]:
    """The proposal in the shape the wizard's form state uses."""
    proposal = get_proposal(session, proposal_id)
    customer = proposal.customer

    selected = sorted(proposal.services, key=lambda s: s.id)
    products = {}
    for product in proposal.products:
        entry = dict(product.product_data or {})
        entry['scopeNotes'] = product.scope_notes or ''
        products[product.service.name] = entry

    return {
        'id': proposal.id,
        'proposalNumber': proposal.proposal_number,
        'customer': {
            'name': customer.name,
            'email': customer.email,
            'phone': customer.phone,
            'address': customer.address,
        },
        'services': [s.service.name for s in selected],
        'serviceNames': [s.service.display_name for s in selected],
        'products': products,
        'pricing': {
            'subtotal': _money(proposal.subtotal),
            'discount': _money(proposal.discount),
            'total': _money(proposal.total),
            'monthlyPayment': _money(proposal.monthly_payment),
            'showLineItems': proposal.show_line_items is not False,
            'financingTerm': proposal.financing_term or _setting('DEFAULT_FINANCING_TERM', 60),
            'interestRate': float(proposal.interest_rate) if proposal.interest_rate is not None
            else float(_setting('DEFAULT_INTEREST_RATE', '5.99')),
            'financingPlanId': proposal.financing_plan_id,
            'financingPlanName': proposal.financing_plan_name,
            'merchantFee': float(proposal.merchant_fee) if proposal.merchant_fee is not None else None,
            'financingNotes': proposal.financing_notes,
        },
        'customAdders': [
            {
                'id': adder.id,
                'productCategory': adder.product_category,
                'description': adder.description,
                'cost': _money(adder.cost),
            }
            for adder in sorted(proposal.custom_adders, key=lambda a: a.id)
        ],
        'status': proposal.status,
        'createdAt': _iso(proposal.created_at),
        'updatedAt': _iso(proposal.updated_at),
        'sentAt': _iso(proposal.sent_at),
        'viewedAt': _iso(proposal.viewed_at),
        'signedAt': _iso(proposal.signed_at),
        'completedAt': _iso(proposal.completed_at),
    }
