"""Proposals JSON API used by the proposal wizard."""
from datetime import timedelta
from flask import Blueprint, request, jsonify, current_app, g
from proposaldesk.database import get_session
from proposaldesk.exceptions import ValidationError
from proposaldesk.middleware import require_actor
from proposaldesk.services.draft_finder_service import DraftKey, find_existing_draft
from proposaldesk.services.offer_assignment_service import describe_applied_offers
from proposaldesk.services.offer_catalog_service import list_special_offers, list_bundle_rules
from proposaldesk.services.proposal_service import (
    save_proposal,
    update_proposal_status,
    get_proposal,
    get_proposal_detail
)

proposals_bp = Blueprint('proposals', __name__, url_prefix='/api')


@proposals_bp.route('/proposals/check-draft')
@require_actor
def check_draft():
    """Look for a recent draft for this customer email owned by the current user."""
    email = request.args.get('email', '')
    if not email.strip():
        raise ValidationError('Email is required')

    window = timedelta(minutes=current_app.config.get('DRAFT_WINDOW_MINUTES', 120))
    draft = find_existing_draft(get_session(), DraftKey.build(email, g.user_id), window=window)

    return jsonify({
        'success': True,
        'found': draft is not None,
        'draft': {'id': draft.proposal_id, 'proposalNumber': draft.proposal_number} if draft else None,
    })


@proposals_bp.route('/proposals', methods=['POST'])
@require_actor
def save():
    """Create or update a proposal from the full wizard payload."""
    payload = request.get_json(silent=True)
    result = save_proposal(get_session(), payload, g.user_id)

    return jsonify({
        'success': True,
        'proposalId': result.proposal_id,
        'proposalNumber': result.proposal_number,
        'isDuplicate': result.is_duplicate,
    })


@proposals_bp.route('/proposals/<int:proposal_id>')
@require_actor
def detail(proposal_id):
    """Proposal in wizard shape, used when resuming by explicit id."""
    return jsonify({
        'success': True,
        'proposal': get_proposal_detail(get_session(), proposal_id),
    })


@proposals_bp.route('/proposals/<int:proposal_id>/status', methods=['POST'])
@require_actor
def change_status(proposal_id):
    data = request.get_json(silent=True) or {}
    change = update_proposal_status(get_session(), proposal_id, data.get('status'), actor_id=g.user_id)

    return jsonify({
        'success': True,
        'status': change.status,
        'changed': change.changed,
    })


@proposals_bp.route('/proposals/<int:proposal_id>/offers')
@require_actor
def applied_offers(proposal_id):
    db_session = get_session()
    get_proposal(db_session, proposal_id)

    return jsonify({
        'success': True,
        'offers': describe_applied_offers(db_session, proposal_id),
    })


@proposals_bp.route('/offers')
@require_actor
def offers():
    """
    Offer catalog reads.

    Query params:
        type: 'special' or 'bundle' (both when omitted)
        category: special offer category filter
        services: comma-separated service names; restricts bundles to qualifying ones
    """
    db_session = get_session()
    offer_type = request.args.get('type', '').strip().lower()
    if offer_type not in ('', 'special', 'bundle'):
        raise ValidationError(f"Unknown offer type '{offer_type}'")

    category = request.args.get('category', '').strip() or None
    services = [s.strip() for s in request.args.get('services', '').split(',') if s.strip()]

    response = {'success': True}
    if offer_type in ('', 'special'):
        response['specialOffers'] = list_special_offers(db_session, category)
    if offer_type in ('', 'bundle'):
        response['bundleRules'] = list_bundle_rules(db_session, services)
    return jsonify(response)
