"""
Draft finder - locates a recent editable draft to prevent duplicate proposals.

The wizard has no durable session identifier across reloads, duplicated tabs
or network retries, so (customer email, actor) plus a short recency window is
the correlation key.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy import text, bindparam, BigInteger, DateTime, String
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from proposaldesk.models import Proposal, Customer, DRAFT_STATUSES
from proposaldesk.utils.dates import utcnow

logger = logging.getLogger(__name__)

DEFAULT_DRAFT_WINDOW = timedelta(hours=2)


@dataclass(frozen=True)
class DraftKey:
    customer_email: str
    actor_id: int

    @classmethod
    def build(cls, customer_email: str, actor_id: int) -> 'DraftKey':
        return cls(customer_email=normalize_email(customer_email), actor_id=actor_id)


@dataclass(frozen=True)
class DraftRef:
    proposal_id: int
    proposal_number: str
    updated_at: Optional[datetime] = None


def normalize_email(email: Optional[str]) -> str:
    return (email or '').strip().lower()


def _query_recent_draft(session: Session, key: DraftKey, cutoff: datetime) -> Optional[DraftRef]:
    """Primary lookup through the ORM."""
    row = (
        session.query(Proposal.id, Proposal.proposal_number, Proposal.updated_at)
        .join(Customer, Proposal.customer_id == Customer.id)
        .filter(
            Customer.email == key.customer_email,
            Proposal.user_id == key.actor_id,
            Proposal.status.in_(DRAFT_STATUSES),
            Proposal.updated_at >= cutoff
        )
        .order_by(Proposal.updated_at.desc(), Proposal.id.desc())
        .first()
    )
    if row is None:
        return None
    return DraftRef(proposal_id=row.id, proposal_number=row.proposal_number, updated_at=row.updated_at)


_FALLBACK_SQL = text("""
    SELECT p.id, p.proposal_number, p.updated_at
    FROM proposal p
    JOIN customer c ON p.customer_id = c.id
    WHERE c.email = :email
      AND p.user_id = :actor_id
      AND p.status IN :statuses
      AND p.updated_at >= :cutoff
    ORDER BY p.updated_at DESC, p.id DESC
    LIMIT 1
""").bindparams(
    bindparam('statuses', expanding=True),
    bindparam('cutoff', type_=DateTime)
).columns(id=BigInteger, proposal_number=String, updated_at=DateTime)


def _query_recent_draft_direct(session: Session, key: DraftKey, cutoff: datetime) -> Optional[DraftRef]:
    """Equivalent lookup with plain SQL, used when the ORM path errors."""
    row = session.execute(_FALLBACK_SQL, {
        'email': key.customer_email,
        'actor_id': key.actor_id,
        'statuses': list(DRAFT_STATUSES),
        'cutoff': cutoff,
    }).first()
    if row is None:
        return None
    return DraftRef(proposal_id=row[0], proposal_number=row[1], updated_at=row[2])


def find_existing_draft(
    session: Session,
    key: DraftKey,
    window: timedelta = DEFAULT_DRAFT_WINDOW,
    clock: Callable[[], datetime] = utcnow
) -> Optional[DraftRef]:
    """
    Return the most recently updated draft for this customer/actor inside the window.

    Errors never block the caller: a failing ORM lookup falls back to a direct
    query, and if that fails too the answer is "no draft" (a possible
    duplicate is preferred over a blocked save).
    """
    if not key.customer_email or key.actor_id is None:
        return None

    cutoff = clock() - window

    # Each attempt runs in a savepoint so a failed statement does not abort
    # the caller's transaction on PostgreSQL.
    try:
        with session.begin_nested():
            return _query_recent_draft(session, key, cutoff)
    except SQLAlchemyError as e:
        logger.warning(f"Draft lookup failed for {key.customer_email}, retrying with direct query: {e}")

    try:
        with session.begin_nested():
            return _query_recent_draft_direct(session, key, cutoff)
    except SQLAlchemyError as e:
        logger.error(f"Draft lookup fallback failed for {key.customer_email}: {e}")
        return None
