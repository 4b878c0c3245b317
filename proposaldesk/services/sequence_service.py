"""Proposal number generation as an injectable sequence capability."""
import threading
from typing import Optional

from flask import current_app, has_app_context
from sqlalchemy.orm import Session

from proposaldesk.database import dialect_insert
from proposaldesk.models import ProposalSequence


class ProposalNumberSequence:
    """Produces human-readable proposal numbers (PRO-10001, PRO-10002, ...)."""

    def __init__(self, prefix: str = 'PRO'):
        self.prefix = prefix

    def format(self, value: int) -> str:
        return f"{self.prefix}-{value:05d}"

    def next_number(self, session: Session) -> str:
        raise NotImplementedError


class DatabaseSequence(ProposalNumberSequence):
    """
    Counter row in proposal_sequence, incremented under a row lock.

    Runs inside the caller's transaction, so a rolled-back proposal also
    gives its number back.
    """

    def __init__(self, name: str = 'proposal', prefix: str = 'PRO', start: int = 10000):
        super().__init__(prefix)
        self.name = name
        self.start = start

    def next_number(self, session: Session) -> str:
        # Make sure the counter row exists; concurrent creators race harmlessly
        stmt = dialect_insert(session, ProposalSequence).values(
            name=self.name, last_value=self.start
        ).on_conflict_do_nothing(index_elements=['name'])
        session.execute(stmt)

        counter = session.query(ProposalSequence).filter(
            ProposalSequence.name == self.name
        ).with_for_update().populate_existing().one()
        counter.last_value = counter.last_value + 1
        session.flush()
        return self.format(counter.last_value)


class CounterSequence(ProposalNumberSequence):
    """In-process monotonic counter, for tests and single-process tools."""

    def __init__(self, prefix: str = 'PRO', start: int = 10000):
        super().__init__(prefix)
        self._value = start
        self._lock = threading.Lock()

    def next_number(self, session: Optional[Session] = None) -> str:
        with self._lock:
            self._value += 1
            return self.format(self._value)


def init_sequence(app) -> None:
    """Register the default proposal-number sequence on the app."""
    if not hasattr(app, 'extensions'):
        app.extensions = {}
    app.extensions.setdefault('proposal_sequence', DatabaseSequence(
        prefix=app.config.get('PROPOSAL_NUMBER_PREFIX', 'PRO'),
        start=app.config.get('PROPOSAL_NUMBER_START', 10000)
    ))


def get_sequence() -> ProposalNumberSequence:
    """Get the sequence registered on the current app (database-backed fallback)."""
    if has_app_context() and 'proposal_sequence' in current_app.extensions:
        return current_app.extensions['proposal_sequence']
    return DatabaseSequence()
