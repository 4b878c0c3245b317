"""
Integration tests for the proposal transaction engine (create, update, status).
"""

import pytest
from decimal import Decimal

from proposaldesk.exceptions import (
    BusinessLogicError, InvalidTransitionError, NotFoundError, UnauthorizedError, ValidationError
)
from proposaldesk.models import (
    ActivityLog, Customer, CustomPricingAdder, Proposal, ProposalProduct, ProposalService
)
from proposaldesk.services.proposal_service import (
    abandon_stale_drafts, get_proposal_detail, update_proposal_status, upsert_proposal
)
from proposaldesk.services.sequence_service import DatabaseSequence


def _child_counts(session, proposal_id):
    return (
        session.query(ProposalService).filter_by(proposal_id=proposal_id).count(),
        session.query(ProposalProduct).filter_by(proposal_id=proposal_id).count(),
        session.query(CustomPricingAdder).filter_by(proposal_id=proposal_id).count(),
    )


class TestCreate:

    def test_create_writes_whole_aggregate(self, session, actor_id, catalog, clock, payload_factory):
        payload = payload_factory(
            services=['roofing', 'hvac'],
            products={
                'roofing': {'material': 'Tile', 'scopeNotes': 'Replace flashing'},
                'hvac': {'tonnage': 3},
            },
            customAdders=[{'productCategory': 'roofing', 'description': 'Permit', 'cost': 150}],
        )

        result = upsert_proposal(session, payload, actor_id, clock=clock)

        assert result.proposal_number == 'PRO-10001'
        proposal = session.get(Proposal, result.proposal_id)
        assert proposal.status == 'draft_in_progress'
        assert proposal.user_id == actor_id
        assert proposal.created_by == actor_id
        assert proposal.subtotal == Decimal('12000.00')
        assert proposal.created_at == clock.now
        assert _child_counts(session, proposal.id) == (2, 2, 1)

        roofing = session.query(ProposalProduct).filter_by(
            proposal_id=proposal.id, service_id=catalog['services']['roofing']
        ).one()
        assert roofing.scope_notes == 'Replace flashing'
        assert 'scopeNotes' not in roofing.product_data

        log = session.query(ActivityLog).filter_by(proposal_id=proposal.id).one()
        assert log.action == 'create_proposal'
        assert log.user_id == actor_id

    def test_monthly_payment_is_derived_when_missing(self, session, actor_id, catalog, clock, payload_factory):
        payload = payload_factory(pricing={'subtotal': 1200, 'total': 1200, 'financingTerm': 12, 'interestRate': 0})
        result = upsert_proposal(session, payload, actor_id, clock=clock)
        assert session.get(Proposal, result.proposal_id).monthly_payment == Decimal('100.00')

    @pytest.mark.parametrize('customer', [
        {'name': '', 'email': 'jane@example.com'},
        {'name': 'Jane', 'email': '   '},
    ])
    def test_missing_customer_fields_fail_without_side_effects(self, session, actor_id, catalog, clock, payload_factory, customer):
        with pytest.raises(ValidationError):
            upsert_proposal(session, payload_factory(customer=customer), actor_id, clock=clock)

        assert session.query(Proposal).count() == 0
        assert session.query(Customer).count() == 0

    def test_requires_actor(self, session, catalog, clock, payload_factory):
        with pytest.raises(UnauthorizedError):
            upsert_proposal(session, payload_factory(), None, clock=clock)

    def test_customer_is_upserted_by_email(self, session, actor_id, catalog, clock, payload_factory):
        upsert_proposal(session, payload_factory(), actor_id, clock=clock)
        upsert_proposal(session, payload_factory(customer={
            'name': 'Jane H. Owner', 'email': 'JANE@example.com', 'phone': '555-0199'
        }), actor_id, clock=clock)

        customers = session.query(Customer).all()
        assert len(customers) == 1
        assert customers[0].name == 'Jane H. Owner'
        assert customers[0].phone == '555-0199'
        assert session.query(Proposal).count() == 2

    def test_database_sequence_numbers_are_sequential(self, session, actor_id, catalog, clock, payload_factory):
        sequence = DatabaseSequence(prefix='PRO', start=20000)
        first = upsert_proposal(session, payload_factory(), actor_id, sequence=sequence, clock=clock)
        second = upsert_proposal(session, payload_factory(), actor_id, sequence=sequence, clock=clock)

        assert first.proposal_number == 'PRO-20001'
        assert second.proposal_number == 'PRO-20002'


class TestAtomicity:

    def test_unknown_service_rolls_back_everything(self, session, actor_id, catalog, clock, payload_factory):
        with pytest.raises(ValidationError):
            upsert_proposal(session, payload_factory(services=['roofing', 'pool']), actor_id, clock=clock)

        assert session.query(Proposal).count() == 0
        assert session.query(Customer).count() == 0
        assert session.query(ProposalService).count() == 0
        assert session.query(ActivityLog).count() == 0

    def test_failure_mid_write_keeps_previous_state(self, session, actor_id, catalog, clock, payload_factory, monkeypatch):
        created = upsert_proposal(session, payload_factory(), actor_id, clock=clock)

        import proposaldesk.services.proposal_service as engine

        def broken_replace(*args, **kwargs):
            raise RuntimeError('disk full')

        monkeypatch.setattr(engine, '_replace_children', broken_replace)
        with pytest.raises(RuntimeError):
            upsert_proposal(session, payload_factory(
                id=created.proposal_id,
                pricing={'subtotal': 1, 'total': 1},
            ), actor_id, clock=clock)

        proposal = session.get(Proposal, created.proposal_id)
        assert proposal.subtotal == Decimal('12000.00')
        assert _child_counts(session, created.proposal_id) == (1, 1, 0)

    def test_audit_failure_does_not_block_save(self, session, actor_id, catalog, clock, payload_factory, monkeypatch):
        import proposaldesk.services.audit_service as audit

        def broken_entry(*args, **kwargs):
            raise RuntimeError('audit sink down')

        monkeypatch.setattr(audit, '_add_entry', broken_entry)
        result = upsert_proposal(session, payload_factory(), actor_id, clock=clock)

        assert session.get(Proposal, result.proposal_id) is not None
        assert session.query(ActivityLog).count() == 0


class TestUpdate:

    def test_update_is_idempotent(self, session, actor_id, catalog, clock, payload_factory):
        payload = payload_factory(
            services=['roofing', 'hvac'],
            products={'roofing': {'material': 'Tile'}, 'hvac': {'tonnage': 3}},
            customAdders=[{'productCategory': 'hvac', 'description': 'Haul away', 'cost': 80}],
            selectedOffers=[catalog['offers']['Spring Roofing Promo']],
        )
        created = upsert_proposal(session, payload, actor_id, clock=clock)
        payload['id'] = created.proposal_id

        first = upsert_proposal(session, payload, actor_id, clock=clock)
        snapshot_one = get_proposal_detail(session, created.proposal_id)
        second = upsert_proposal(session, payload, actor_id, clock=clock)
        snapshot_two = get_proposal_detail(session, created.proposal_id)

        assert first == second
        assert first.proposal_number == created.proposal_number
        assert snapshot_one == snapshot_two
        assert _child_counts(session, created.proposal_id) == (2, 2, 1)
        assert session.query(Proposal).count() == 1

    def test_update_replaces_children(self, session, actor_id, catalog, clock, payload_factory):
        created = upsert_proposal(session, payload_factory(services=['roofing', 'hvac']), actor_id, clock=clock)

        upsert_proposal(session, payload_factory(id=created.proposal_id, services=['paint'], products={}), actor_id, clock=clock)

        detail = get_proposal_detail(session, created.proposal_id)
        assert detail['services'] == ['paint']
        assert detail['products'] == {}

    def test_missing_proposal_is_not_found(self, session, actor_id, catalog, clock, payload_factory):
        with pytest.raises(NotFoundError):
            upsert_proposal(session, payload_factory(id=9999), actor_id, clock=clock)

    def test_status_is_kept_when_not_supplied(self, session, actor_id, catalog, clock, payload_factory):
        created = upsert_proposal(session, payload_factory(status='draft_complete'), actor_id, clock=clock)
        upsert_proposal(session, payload_factory(id=created.proposal_id), actor_id, clock=clock)

        assert session.get(Proposal, created.proposal_id).status == 'draft_complete'

    def test_reverse_transition_is_rejected(self, session, actor_id, catalog, clock, payload_factory):
        created = upsert_proposal(session, payload_factory(status='sent'), actor_id, clock=clock)

        with pytest.raises(InvalidTransitionError) as exc_info:
            upsert_proposal(session, payload_factory(id=created.proposal_id, status='draft_complete'), actor_id, clock=clock)

        assert exc_info.value.status_code == 409
        assert session.get(Proposal, created.proposal_id).status == 'sent'

    def test_signed_proposal_cannot_be_edited(self, session, actor_id, catalog, clock, payload_factory):
        created = upsert_proposal(session, payload_factory(), actor_id, clock=clock)
        update_proposal_status(session, created.proposal_id, 'signed', actor_id, clock=clock)

        with pytest.raises(BusinessLogicError):
            upsert_proposal(session, payload_factory(id=created.proposal_id, services=['paint']), actor_id, clock=clock)

    def test_unknown_status_is_a_validation_error(self, session, actor_id, catalog, clock, payload_factory):
        with pytest.raises(ValidationError):
            upsert_proposal(session, payload_factory(status='maybe'), actor_id, clock=clock)


class TestStatusTransitions:

    def test_timestamps_are_stamped_once(self, session, actor_id, catalog, clock, payload_factory):
        created = upsert_proposal(session, payload_factory(), actor_id, clock=clock)

        clock.advance(hours=1)
        change = update_proposal_status(session, created.proposal_id, 'sent', actor_id, clock=clock)
        sent_at = clock.now
        assert change.changed is True

        clock.advance(hours=1)
        again = update_proposal_status(session, created.proposal_id, 'sent', actor_id, clock=clock)
        assert again.changed is False

        proposal = session.get(Proposal, created.proposal_id)
        assert proposal.sent_at == sent_at

    def test_skipping_forward_stamps_only_the_target(self, session, actor_id, catalog, clock, payload_factory):
        created = upsert_proposal(session, payload_factory(status='sent'), actor_id, clock=clock)

        clock.advance(days=1)
        update_proposal_status(session, created.proposal_id, 'signed', actor_id, clock=clock)

        proposal = session.get(Proposal, created.proposal_id)
        assert proposal.signed_at == clock.now
        assert proposal.viewed_at is None
        assert proposal.sent_at is not None

    def test_status_change_is_audited(self, session, actor_id, catalog, clock, payload_factory):
        created = upsert_proposal(session, payload_factory(), actor_id, clock=clock)
        update_proposal_status(session, created.proposal_id, 'draft_complete', actor_id, clock=clock)

        actions = [row.action for row in session.query(ActivityLog).order_by(ActivityLog.id)]
        assert actions == ['create_proposal', 'update_status']

    def test_backwards_status_is_rejected(self, session, actor_id, catalog, clock, payload_factory):
        created = upsert_proposal(session, payload_factory(status='viewed'), actor_id, clock=clock)

        with pytest.raises(InvalidTransitionError):
            update_proposal_status(session, created.proposal_id, 'sent', actor_id, clock=clock)

    def test_missing_proposal(self, session, actor_id, clock):
        with pytest.raises(NotFoundError):
            update_proposal_status(session, 404, 'sent', actor_id, clock=clock)


class TestAbandonStaleDrafts:

    def test_only_idle_drafts_are_abandoned(self, session, actor_id, catalog, clock, payload_factory):
        idle = upsert_proposal(session, payload_factory(), actor_id, clock=clock)
        sent = upsert_proposal(session, payload_factory(status='sent'), actor_id, clock=clock)
        clock.advance(days=6)
        recent = upsert_proposal(session, payload_factory(), actor_id, clock=clock)

        clock.advance(days=2)
        count = abandon_stale_drafts(session, days=7, clock=clock)

        assert count == 1
        assert session.get(Proposal, idle.proposal_id).status == 'abandoned'
        assert session.get(Proposal, sent.proposal_id).status == 'sent'
        assert session.get(Proposal, recent.proposal_id).status == 'draft_in_progress'
        assert session.query(ActivityLog).filter_by(action='abandon_draft').count() == 1

    def test_abandoned_proposal_is_locked(self, session, actor_id, catalog, clock, payload_factory):
        created = upsert_proposal(session, payload_factory(), actor_id, clock=clock)
        clock.advance(days=8)
        abandon_stale_drafts(session, days=7, clock=clock)

        with pytest.raises(BusinessLogicError):
            upsert_proposal(session, payload_factory(id=created.proposal_id), actor_id, clock=clock)
