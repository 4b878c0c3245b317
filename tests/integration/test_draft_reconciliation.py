"""
Integration tests for duplicate-draft prevention (save_proposal + draft finder).
"""

import pytest
from datetime import timedelta
from sqlalchemy.exc import OperationalError

import proposaldesk.services.draft_finder_service as finder
from proposaldesk.models import ActivityLog, Proposal
from proposaldesk.services.draft_finder_service import DraftKey, find_existing_draft
from proposaldesk.services.proposal_service import save_proposal, update_proposal_status


def _boom(*args, **kwargs):
    raise OperationalError('SELECT proposal', {}, Exception('connection reset'))


class TestSaveProposalReuse:

    def test_second_save_reuses_recent_draft(self, session, actor_id, catalog, clock, payload_factory):
        first = save_proposal(session, payload_factory(), actor_id, clock=clock)
        clock.advance(minutes=30)
        second = save_proposal(session, payload_factory(services=['roofing', 'hvac']), actor_id, clock=clock)

        assert first.is_duplicate is False
        assert second.is_duplicate is True
        assert second.proposal_id == first.proposal_id
        assert second.proposal_number == first.proposal_number
        assert session.query(Proposal).count() == 1
        assert session.query(ActivityLog).filter_by(action='reuse_draft').count() == 1

    def test_email_match_ignores_case_and_whitespace(self, session, actor_id, catalog, clock, payload_factory):
        first = save_proposal(session, payload_factory(), actor_id, clock=clock)
        second = save_proposal(session, payload_factory(customer={
            'name': 'Jane Homeowner', 'email': '  JANE@Example.com '
        }), actor_id, clock=clock)

        assert second.is_duplicate is True
        assert second.proposal_id == first.proposal_id

    def test_draft_exactly_at_window_edge_is_reused(self, session, actor_id, catalog, clock, payload_factory):
        first = save_proposal(session, payload_factory(), actor_id, clock=clock)
        clock.advance(hours=2)
        second = save_proposal(session, payload_factory(), actor_id, clock=clock)

        assert second.proposal_id == first.proposal_id

    def test_draft_just_outside_window_is_not_reused(self, session, actor_id, catalog, clock, payload_factory):
        first = save_proposal(session, payload_factory(), actor_id, clock=clock)
        clock.advance(hours=2, seconds=1)
        second = save_proposal(session, payload_factory(), actor_id, clock=clock)

        assert second.is_duplicate is False
        assert second.proposal_id != first.proposal_id
        assert session.query(Proposal).count() == 2

    def test_each_save_extends_the_window(self, session, actor_id, catalog, clock, payload_factory):
        first = save_proposal(session, payload_factory(), actor_id, clock=clock)
        clock.advance(minutes=90)
        save_proposal(session, payload_factory(), actor_id, clock=clock)
        clock.advance(minutes=90)
        third = save_proposal(session, payload_factory(), actor_id, clock=clock)

        assert third.proposal_id == first.proposal_id

    def test_custom_window(self, session, actor_id, catalog, clock, payload_factory):
        save_proposal(session, payload_factory(), actor_id, clock=clock)
        clock.advance(minutes=20)
        second = save_proposal(session, payload_factory(), actor_id, clock=clock, draft_window=timedelta(minutes=15))

        assert second.is_duplicate is False

    def test_other_actor_gets_own_proposal(self, session, actor_id, other_actor_id, catalog, clock, payload_factory):
        mine = save_proposal(session, payload_factory(), actor_id, clock=clock)
        theirs = save_proposal(session, payload_factory(), other_actor_id, clock=clock)

        assert theirs.is_duplicate is False
        assert theirs.proposal_id != mine.proposal_id

    def test_other_customer_gets_own_proposal(self, session, actor_id, catalog, clock, payload_factory):
        save_proposal(session, payload_factory(), actor_id, clock=clock)
        other = save_proposal(session, payload_factory(customer={
            'name': 'Sam Neighbor', 'email': 'sam@example.com'
        }), actor_id, clock=clock)

        assert other.is_duplicate is False
        assert session.query(Proposal).count() == 2

    def test_sent_proposal_is_not_a_draft(self, session, actor_id, catalog, clock, payload_factory):
        first = save_proposal(session, payload_factory(), actor_id, clock=clock)
        update_proposal_status(session, first.proposal_id, 'sent', actor_id, clock=clock)

        second = save_proposal(session, payload_factory(), actor_id, clock=clock)

        assert second.is_duplicate is False
        assert second.proposal_id != first.proposal_id
        assert session.get(Proposal, first.proposal_id).status == 'sent'

    def test_draft_complete_is_still_reused(self, session, actor_id, catalog, clock, payload_factory):
        first = save_proposal(session, payload_factory(status='draft_complete'), actor_id, clock=clock)
        second = save_proposal(session, payload_factory(), actor_id, clock=clock)

        assert second.proposal_id == first.proposal_id
        assert session.get(Proposal, first.proposal_id).status == 'draft_complete'

    def test_explicit_id_skips_lookup(self, session, actor_id, catalog, clock, payload_factory, monkeypatch):
        first = save_proposal(session, payload_factory(), actor_id, clock=clock)
        monkeypatch.setattr(finder, '_query_recent_draft', _boom)
        monkeypatch.setattr(finder, '_query_recent_draft_direct', _boom)

        second = save_proposal(session, payload_factory(id=first.proposal_id), actor_id, clock=clock)

        assert second.proposal_id == first.proposal_id
        assert second.is_duplicate is False


class TestFinderFallback:

    def test_direct_query_used_when_orm_lookup_fails(self, session, actor_id, catalog, clock, payload_factory, monkeypatch):
        created = save_proposal(session, payload_factory(), actor_id, clock=clock)
        monkeypatch.setattr(finder, '_query_recent_draft', _boom)

        draft = find_existing_draft(session, DraftKey.build('jane@example.com', actor_id), clock=clock)

        assert draft.proposal_id == created.proposal_id
        assert draft.proposal_number == created.proposal_number

    def test_both_lookups_failing_means_no_draft(self, session, actor_id, catalog, clock, payload_factory, monkeypatch):
        save_proposal(session, payload_factory(), actor_id, clock=clock)
        monkeypatch.setattr(finder, '_query_recent_draft', _boom)
        monkeypatch.setattr(finder, '_query_recent_draft_direct', _boom)

        assert find_existing_draft(session, DraftKey.build('jane@example.com', actor_id), clock=clock) is None

        # A failed lookup degrades to a new proposal rather than a blocked save
        second = save_proposal(session, payload_factory(), actor_id, clock=clock)
        assert second.is_duplicate is False
        assert session.query(Proposal).count() == 2

    @pytest.mark.parametrize('email,actor', [('', 1), ('jane@example.com', None)])
    def test_incomplete_key_finds_nothing(self, session, clock, email, actor):
        assert find_existing_draft(session, DraftKey.build(email, actor), clock=clock) is None
