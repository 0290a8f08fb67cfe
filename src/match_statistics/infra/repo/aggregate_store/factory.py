from match_statistics.config.settings import AggregatorConfig
from match_statistics.infra.db import build_engine, build_session_factory, init_db
from match_statistics.infra.repo.aggregate_store.base import AggregateStore
from match_statistics.infra.repo.aggregate_store.dynamodb import DynamoAggregateStore
from match_statistics.infra.repo.aggregate_store.local import LocalAggregateStore
from match_statistics.infra.repo.aggregate_store.postgres import SQLAggregateStore


def build_store(config: AggregatorConfig, create_tables: bool = False) -> AggregateStore:
    """Build the aggregate store selected by config.store_backend."""
    if config.store_backend == 'dynamodb':
        return DynamoAggregateStore(config)

    if config.store_backend == 'sql':
        engine = build_engine(config)
        if create_tables:
            init_db(engine, create_missing_database=True)
        return SQLAggregateStore(session_factory=build_session_factory(engine))

    return LocalAggregateStore()
