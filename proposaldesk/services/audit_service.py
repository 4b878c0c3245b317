"""
Activity logging service for the proposal audit trail.
"""
from proposaldesk.models.activity_log import ActivityLog, ActivityAction
from proposaldesk.services.best_effort import run_best_effort
from proposaldesk.utils.dates import utcnow
from flask import request, has_request_context
import json
import logging

logger = logging.getLogger(__name__)


def _serialize_details(details):
    if not details:
        return None
    try:
        return json.dumps(details, default=str)
    except Exception as e:
        logger.warning(f"Failed to serialize activity details: {e}")
        return str(details)


def _add_entry(session, action, proposal_id, user_id, details, created_at):
    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = request.headers.get('User-Agent', '')[:255] or None

    entry = ActivityLog(
        proposal_id=proposal_id,
        user_id=user_id,
        action=action.value,
        details=_serialize_details(details),
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=created_at or utcnow()
    )
    session.add(entry)
    return entry


def log_activity(
    session,
    action: ActivityAction,
    proposal_id: int = None,
    user_id: int = None,
    details: dict = None,
    created_at=None
) -> bool:
    """
    Write an activity row inside the caller's transaction.

    Best-effort: the row is written in a savepoint and any failure is logged
    and swallowed, so audit problems never roll back the proposal write.
    The caller is responsible for committing the session.

    Args:
        session: Database session
        action: ActivityAction enum value
        proposal_id: Proposal affected
        user_id: Acting user, None for system actions
        details: Dict with additional details (JSON encoded)

    Returns:
        True if the row was written
    """
    ok, _ = run_best_effort(
        session, f'activity_log:{action.value}',
        _add_entry, session, action, proposal_id, user_id, details, created_at
    )
    if ok:
        logger.info(f"Activity logged: {action.value} by user {user_id or 'system'} on proposal {proposal_id}")
    return ok
