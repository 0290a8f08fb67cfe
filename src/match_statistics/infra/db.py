# Directory: src/match_statistics/infra/db.py
import math

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy_utils import database_exists, create_database

from match_statistics.config.settings import AggregatorConfig
from match_statistics.infra.models import Base


def build_engine(config: AggregatorConfig) -> Engine:
    """
    Create an engine for config.database_url. Connecting, checking out a pooled
    connection and (on Postgres) every statement are bounded by the store
    timeout. Overruns surface as OperationalError, which the store treats as
    transient.
    """
    if config.database_url.startswith('sqlite'):
        # sqlite has no pool timeout; the busy timeout plays the same role
        return create_engine(
            config.database_url,
            echo=False,
            connect_args={'timeout': config.store_timeout_seconds, 'check_same_thread': False}
        )
    connect_args = {}
    if config.database_url.startswith('postgresql'):
        connect_args = {
            # libpq only takes whole seconds here
            'connect_timeout': max(1, math.ceil(config.store_timeout_seconds)),
            'options': f"-c statement_timeout={int(config.store_timeout_seconds * 1000)}",
        }
    return create_engine(
        config.database_url,
        echo=False,
        pool_timeout=config.store_timeout_seconds,
        pool_pre_ping=True,
        connect_args=connect_args
    )


def init_db(engine: Engine, create_missing_database: bool = False) -> None:
    """Create the database (optionally) and all tables, if they don't exist."""
    if create_missing_database and not database_exists(engine.url):
        create_database(engine.url)
    Base.metadata.create_all(bind=engine)


def build_session_factory(engine: Engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
