"""Database configuration and initialization."""
import uuid

from sqlalchemy import create_engine, event
from sqlalchemy.orm import scoped_session, sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

# Create SQLAlchemy base
Base = declarative_base()

# Global session and engine
engine = None
db_session = None


def new_uuid() -> str:
    """Primary key default for all tables."""
    return str(uuid.uuid4())


def _engine_options(database_uri: str, echo: bool) -> dict:
    options = {'echo': echo}
    if database_uri.startswith('sqlite'):
        options['connect_args'] = {'check_same_thread': False}
        if database_uri in ('sqlite://', 'sqlite:///:memory:'):
            # One shared connection, otherwise each checkout sees an empty database
            options['poolclass'] = StaticPool
    else:
        options.update(
            pool_pre_ping=True,  # Enable connection health checks
            pool_size=10,
            max_overflow=20
        )
    return options


def _enable_sqlite_savepoints(sqlite_engine):
    """Let SQLAlchemy emit BEGIN itself so SAVEPOINT (begin_nested) works on pysqlite."""

    @event.listens_for(sqlite_engine, 'connect')
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sqlite_engine, 'begin')
    def do_begin(conn):
        conn.exec_driver_sql('BEGIN')


def init_db(app):
    """Initialize database connection."""
    global engine, db_session

    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    engine = create_engine(
        database_uri,
        **_engine_options(database_uri, app.config.get('SQLALCHEMY_ECHO', False))
    )

    if database_uri.startswith('sqlite'):
        _enable_sqlite_savepoints(engine)

    db_session = scoped_session(
        sessionmaker(autocommit=False, autoflush=False, bind=engine)
    )

    Base.query = db_session.query_property()

    if app.config.get('DB_CREATE_ALL'):
        create_all()

    # Register teardown
    @app.teardown_appcontext
    def shutdown_session(exception=None):
        """Close database session and rollback on error."""
        if exception:
            db_session.rollback()
        db_session.remove()


def create_all():
    """Create every table known to the models package."""
    import salesorder.models  # noqa: F401  (registers the tables on Base)
    Base.metadata.create_all(bind=engine)


def get_session():
    """Get database session."""
    return db_session
