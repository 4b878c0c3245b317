"""Database configuration and initialization."""
from sqlalchemy import create_engine, event, BigInteger, Integer
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# SQLite only autoincrements INTEGER PRIMARY KEY columns
PrimaryKeyType = BigInteger().with_variant(Integer, 'sqlite')

# Global session and engine
engine = None
db_session = None


def _build_engine(database_uri: str, echo: bool):
    """Create the engine, with SQLite tuned for tests and local runs."""
    if database_uri.startswith('sqlite'):
        sqlite_engine = create_engine(
            database_uri,
            echo=echo,
            connect_args={'check_same_thread': False},
            poolclass=StaticPool
        )

        # pysqlite does not emit BEGIN itself, which breaks SAVEPOINT.
        # Take over transaction control so begin_nested() behaves like on PostgreSQL.
        @event.listens_for(sqlite_engine, 'connect')
        def _disable_pysqlite_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(sqlite_engine, 'begin')
        def _emit_begin(conn):
            conn.exec_driver_sql('BEGIN')

        return sqlite_engine

    return create_engine(
        database_uri,
        echo=echo,
        pool_pre_ping=True,  # Enable connection health checks
        pool_size=10,
        max_overflow=20
    )


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    # Models must be imported so Base.metadata knows every table
    import proposaldesk.models  # noqa: F401

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = _build_engine(database_uri, app.config.get('SQLALCHEMY_ECHO', False))

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_schema():
    """Create all tables (used by `flask init-db` and the test suite)."""
    Base.metadata.create_all(bind=engine)


def drop_schema():
    """Drop all tables."""
    Base.metadata.drop_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session


def dialect_insert(session, model):
    """
    Return an INSERT construct that supports ON CONFLICT for the bound dialect.

    Both PostgreSQL and SQLite expose on_conflict_do_update / on_conflict_do_nothing
    with the same signature, so callers stay dialect-agnostic.
    """
    dialect_name = session.get_bind().dialect.name
    if dialect_name == 'postgresql':
        return postgresql.insert(model)
    if dialect_name == 'sqlite':
        return sqlite.insert(model)
    raise NotImplementedError(f'Upsert not supported for dialect {dialect_name}')
