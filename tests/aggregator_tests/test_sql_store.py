import pytest
from sqlalchemy.exc import OperationalError, ProgrammingError
from sqlalchemy.orm import Session

from match_statistics.domain.aggregates.match_statistics import MatchStatistics, IncrementOutcome
from match_statistics.domain.errors import (
    AggregateExistsError,
    PermanentStoreError,
    TransientStoreError,
)
from match_statistics.infra.db import build_engine, build_session_factory, init_db
from match_statistics.infra.models import AppliedEventModel, MatchStatisticsModel
from match_statistics.infra.repo.aggregate_store.postgres import SQLAggregateStore
from match_statistics.services.consumer import ChangeFeedConsumer, NotificationStatus

from feed_helpers import goal_image, notification


def first_goal(event_id="e1"):
    return MatchStatistics("M1", "Lions", "Tigers", 1, frozenset({event_id}))


def test_create_and_get(sql_store):
    sql_store.create(first_goal())

    assert sql_store.get("M1") == first_goal()
    assert sql_store.get("M2") is None


def test_second_create_conflicts(sql_store):
    sql_store.create(first_goal("e1"))

    with pytest.raises(AggregateExistsError):
        sql_store.create(first_goal("e2"))
    # the losing create left nothing behind
    assert sql_store.get("M1").applied_ids == {"e1"}


def test_increment_records_event_in_same_transaction(sql_store):
    sql_store.create(first_goal("e1"))

    assert sql_store.increment("M1", "e2") is IncrementOutcome.APPLIED

    statistics = sql_store.get("M1")
    assert statistics.total_goals == 2
    assert statistics.applied_ids == {"e1", "e2"}


def test_duplicate_increment_rolls_back_counter(sql_store):
    sql_store.create(first_goal("e1"))
    sql_store.increment("M1", "e2")

    assert sql_store.increment("M1", "e2") is IncrementOutcome.DUPLICATE
    assert sql_store.increment("M1", "e1") is IncrementOutcome.DUPLICATE
    assert sql_store.get("M1").total_goals == 2


def test_increment_missing_match(sql_store):
    assert sql_store.increment("M404", "e1") is IncrementOutcome.MISSING
    assert sql_store.get("M404") is None


def test_tables_hold_one_row_per_applied_event(sql_store, test_engine):
    sql_store.create(first_goal("e1"))
    sql_store.increment("M1", "e2")
    sql_store.increment("M1", "e2")

    with Session(test_engine) as session:
        assert session.query(MatchStatisticsModel).count() == 1
        assert session.query(AppliedEventModel).filter_by(match_id="M1").count() == 2


def test_consumer_scenarios_on_sql_store(sql_store, config):
    # single worker: the shared in-memory sqlite connection can't run transactions side by side
    consumer = ChangeFeedConsumer(sql_store, config.with_overrides(max_workers=1))

    consumer.process_batch([
        notification(goal_image("e1")),
        notification(goal_image("e2")),
        notification(goal_image("e1"), sequence_number="redelivered"),
    ])

    assert sql_store.get("M1").to_dict() == {
        "matchId": "M1", "team": "Lions", "opponent": "Tigers",
        "totalGoals": 2, "appliedIds": ["e1", "e2"],
    }


def test_operational_errors_are_transient(mocker):
    session = mocker.Mock()
    session.get.side_effect = OperationalError("SELECT", {}, Exception("database is locked"))
    store = SQLAggregateStore(session_factory=lambda: session)

    with pytest.raises(TransientStoreError):
        store.get("M1")
    session.close.assert_called_once()


def test_programming_errors_are_permanent(mocker):
    session = mocker.Mock()
    session.execute.side_effect = ProgrammingError("UPDATE", {}, Exception("no such column"))
    store = SQLAggregateStore(session_factory=lambda: session)

    with pytest.raises(PermanentStoreError):
        store.increment("M1", "e1")
    session.rollback.assert_called_once()


def test_statement_timeouts_are_transient(mocker):
    session = mocker.Mock()
    session.execute.side_effect = OperationalError(
        "UPDATE", {}, Exception("canceling statement due to statement timeout")
    )
    store = SQLAggregateStore(session_factory=lambda: session)

    with pytest.raises(TransientStoreError):
        store.increment("M1", "e1")


def test_postgres_engine_bounds_every_statement(config, mocker):
    create_engine = mocker.patch("match_statistics.infra.db.create_engine")
    config = config.with_overrides(
        database_url="postgresql://stats@localhost:5432/statistics",
        store_timeout_seconds=2.5,
    )

    build_engine(config)

    kwargs = create_engine.call_args.kwargs
    assert kwargs["pool_timeout"] == 2.5
    assert kwargs["connect_args"] == {
        "connect_timeout": 3,
        "options": "-c statement_timeout=2500",
    }


def test_sqlite_engine_uses_busy_timeout(config, mocker):
    create_engine = mocker.patch("match_statistics.infra.db.create_engine")

    build_engine(config.with_overrides(database_url="sqlite:///stats.db", store_timeout_seconds=4))

    assert create_engine.call_args.kwargs["connect_args"] == {"timeout": 4, "check_same_thread": False}


@pytest.fixture
def file_sql_store(tmp_path, config):
    """SQL store on a file database, so every worker gets its own connection."""
    engine = build_engine(config.with_overrides(database_url=f"sqlite:///{tmp_path / 'statistics.db'}"))
    init_db(engine)
    yield SQLAggregateStore(session_factory=build_session_factory(engine))
    engine.dispose()


def test_concurrent_first_events_converge_on_sql_store(file_sql_store, config):
    # losing creates must hit the primary key and fall back to the increment
    consumer = ChangeFeedConsumer(file_sql_store, config.with_overrides(max_workers=8, max_attempts=10))
    batch = [notification(goal_image(f"e{i}", match_id="M9")) for i in range(12)]

    report = consumer.process_batch(batch)

    statuses = [r.status for r in report.results]
    assert statuses.count(NotificationStatus.CREATED) == 1
    assert statuses.count(NotificationStatus.INCREMENTED) == 11
    statistics = file_sql_store.get("M9")
    assert statistics.total_goals == 12
    assert statistics.applied_ids == {f"e{i}" for i in range(12)}


def test_concurrent_increments_are_not_lost_on_sql_store(file_sql_store, config):
    consumer = ChangeFeedConsumer(file_sql_store, config.with_overrides(max_workers=8, max_attempts=10))
    consumer.process_batch([notification(goal_image("e0"))])

    # every event twice: duplicates racing each other must count once
    batch = [notification(goal_image(f"e{i}"), sequence_number=f"{i}-{copy}")
             for i in range(1, 9) for copy in range(2)]
    report = consumer.process_batch(batch)

    assert report.failed == []
    assert file_sql_store.get("M1").total_goals == 9
