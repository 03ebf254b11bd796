"""Engine and transaction helpers for the SQL user service."""

from typing import Any, Generator
from contextlib import contextmanager
import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session
from sqlalchemy.pool import StaticPool

from ...exceptions import Unavailable
from .models import Base

logger = logging.getLogger(__name__)


def new_engine(uri: str, echo: bool = False) -> Engine:
    """
    Create an engine for ``uri``.

    SQLite connections open every transaction with ``BEGIN IMMEDIATE``, so
    that concurrent writers queue on the busy timeout rather than failing
    while upgrading a read lock. In-memory SQLite databases share a single
    connection so that every session sees the same data.
    """
    if not uri.startswith('sqlite'):
        return create_engine(uri, echo=echo, pool_pre_ping=True)

    kwargs: dict = {
        'connect_args': {'check_same_thread': False, 'timeout': 30}
    }
    if uri in ('sqlite://', 'sqlite:///:memory:'):
        kwargs['poolclass'] = StaticPool
    engine = create_engine(uri, echo=echo, **kwargs)

    @event.listens_for(engine, 'connect')
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        # Let SQLAlchemy, not pysqlite, decide when transactions begin.
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, 'begin')
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql('BEGIN IMMEDIATE')

    return engine


def new_session_factory(engine: Engine) -> sessionmaker:
    """Create a session factory bound to ``engine``."""
    return sessionmaker(bind=engine, autoflush=True)


@contextmanager
def transaction(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Context manager for database transaction.

    Commits when the block exits normally and rolls back otherwise.
    Operational errors (lost connections, lock timeouts) are raised as
    :class:`.Unavailable`; everything else propagates unchanged.
    """
    session = session_factory()
    try:
        yield session
        session.commit()
    except OperationalError as e:
        logger.error('Commit failed, rolling back: %s', str(e))
        session.rollback()
        raise Unavailable('Database is temporarily unavailable') from e
    except Exception as e:
        logger.error('Commit failed, rolling back: %s', str(e))
        session.rollback()
        raise
    finally:
        session.close()


def create_all(engine: Engine) -> None:
    """Create all tables in the database."""
    Base.metadata.create_all(engine)


def drop_all(engine: Engine) -> None:
    """Drop all tables in the database."""
    Base.metadata.drop_all(engine)


def is_available(engine: Engine) -> bool:
    """Check our connection to the database."""
    try:
        with engine.connect() as connection:
            connection.execute(text('SELECT 1'))
    except Exception as e:
        logger.error('Encountered an error talking to database: %s', e)
        return False
    return True
