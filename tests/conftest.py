import pytest
from datetime import datetime, timedelta

from proposaldesk import create_app
from proposaldesk.database import create_schema, drop_schema, get_session
from proposaldesk.models import AppUser, Service, SpecialOffer, BundleRule
from proposaldesk.services.sequence_service import CounterSequence
from proposaldesk.cli_commands import seed_catalog


class FixedClock:
    """Deterministic clock for the engine, draft finder and offer expirations."""

    def __init__(self, start=datetime(2024, 3, 1, 9, 0, 0)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing."""
    return create_app('config.TestConfig')


@pytest.fixture(autouse=True)
def schema(app):
    """Fresh in-memory schema for every test."""
    with app.app_context():
        create_schema()
        yield
        get_session().remove()
        drop_schema()


@pytest.fixture(autouse=True)
def sequence(app):
    """In-process proposal number sequence (PRO-10001, PRO-10002, ...)."""
    counter = CounterSequence(prefix='PRO', start=10000)
    previous = app.extensions.get('proposal_sequence')
    app.extensions['proposal_sequence'] = counter
    yield counter
    app.extensions['proposal_sequence'] = previous


@pytest.fixture(scope='function')
def clock():
    return FixedClock()


@pytest.fixture(scope='function')
def session():
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def actor_id(session):
    """Sales rep acting on proposals."""
    user = AppUser(email='rep@example.com', full_name='Rep One', active=True)
    session.add(user)
    session.commit()
    return user.id


@pytest.fixture(scope='function')
def other_actor_id(session):
    user = AppUser(email='rep2@example.com', full_name='Rep Two', active=True)
    session.add(user)
    session.commit()
    return user.id


@pytest.fixture(scope='function')
def catalog(session):
    """Default services, special offers and bundle rules; returns ids by name."""
    seed_catalog(session)
    return {
        'services': {s.name: s.id for s in session.query(Service).all()},
        'offers': {o.name: o.id for o in session.query(SpecialOffer).all()},
        'bundles': {b.name: b.id for b in session.query(BundleRule).all()},
    }


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def authenticated_client(client, actor_id):
    """Test client logged in as the default actor."""
    with client.session_transaction() as sess:
        sess['user_id'] = actor_id
    return client


def make_payload(**overrides):
    """Minimal valid wizard payload; keyword overrides replace top-level keys."""
    payload = {
        'customer': {
            'name': 'Jane Homeowner',
            'email': 'jane@example.com',
            'phone': '555-0100',
            'address': '12 Elm St',
        },
        'services': ['roofing'],
        'products': {
            'roofing': {'material': 'Architectural Shingles', 'squares': 24, 'scopeNotes': 'Tear off one layer'},
        },
        'pricing': {
            'subtotal': 12000,
            'discount': 0,
            'total': 12000,
            'monthlyPayment': 0,
            'financingTerm': 60,
            'interestRate': 5.99,
        },
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def payload_factory():
    return make_payload
