# tests/aggregator_tests/conftest.py

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from match_statistics.config.settings import AggregatorConfig
from match_statistics.domain.records import EventRecord
from match_statistics.infra.models import Base
from match_statistics.infra.repo.aggregate_store.local import LocalAggregateStore
from match_statistics.infra.repo.aggregate_store.postgres import SQLAggregateStore


@pytest.fixture
def config():
    """Memory-backed config with no waiting between retries."""
    return AggregatorConfig(
        store_backend='memory',
        max_attempts=3,
        backoff_base_seconds=0,
        backoff_max_seconds=0,
        max_workers=8,
    )


@pytest.fixture
def local_store():
    return LocalAggregateStore()


@pytest.fixture
def test_engine():
    """
    In-memory SQLite engine shared by every session of one test.
    Creates all tables up front and drops them at the end.
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        poolclass=StaticPool,
        connect_args={'check_same_thread': False}
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sql_store(test_engine):
    return SQLAggregateStore(session_factory=sessionmaker(bind=test_engine))


@pytest.fixture
def make_record():
    def _make_record(event_id: str, match_id: str = "M1", team: str = "Lions", opponent: str = "Tigers"):
        return EventRecord(id=event_id, match_id=match_id, team=team, opponent=opponent, event_type="goal")
    return _make_record
