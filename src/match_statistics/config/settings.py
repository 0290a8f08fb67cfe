import os
from dataclasses import dataclass, field, replace
from typing import FrozenSet, Optional

from match_statistics.constants import GOAL_EVENT_TYPE, MATCH_ID_ATTR

STORE_BACKENDS = ('dynamodb', 'sql', 'memory')


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


@dataclass(frozen=True)
class AggregatorConfig:
    """
    Everything the aggregator needs to know about its surroundings.
    Built once by an entry point (usually via from_env) and passed down
    explicitly; nothing below the entry points reads the environment.
    """
    # aggregate store
    store_backend: str = 'dynamodb'
    statistics_table: str = 'statistics'
    statistics_key: str = MATCH_ID_ATTR
    aws_region: str = 'us-east-1'
    dynamodb_endpoint_url: Optional[str] = None
    database_url: str = 'sqlite:///statistics.db'

    # record decoding
    primary_key: str = 'id'
    record_attribute: Optional[str] = None
    counted_event_types: FrozenSet[str] = field(
        default_factory=lambda: frozenset({GOAL_EVENT_TYPE})
    )

    # retry / timeouts
    max_attempts: int = 5
    backoff_base_seconds: float = 0.1
    backoff_max_seconds: float = 5.0
    store_timeout_seconds: float = 3.0
    max_merge_transitions: int = 4

    # consumer
    max_workers: int = 4
    sqs_queue_url: Optional[str] = None

    log_level: str = 'INFO'

    def __post_init__(self):
        if self.store_backend not in STORE_BACKENDS:
            raise ValueError(
                f"Unknown store backend {self.store_backend!r}, expected one of {STORE_BACKENDS}"
            )
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.max_merge_transitions < 2:
            # need at least one create attempt plus one increment attempt
            raise ValueError("max_merge_transitions must be at least 2")

    @classmethod
    def from_env(cls) -> 'AggregatorConfig':
        """Read configuration from environment variables, falling back to defaults."""
        counted = os.getenv('COUNTED_EVENT_TYPES', GOAL_EVENT_TYPE)
        return cls(
            store_backend=os.getenv('STORE_BACKEND', 'dynamodb').lower(),
            statistics_table=os.getenv('STATISTICS_TABLE', 'statistics'),
            statistics_key=os.getenv('STATISTICS_KEY', MATCH_ID_ATTR),
            aws_region=os.getenv('AWS_REGION', 'us-east-1'),
            dynamodb_endpoint_url=os.getenv('DYNAMODB_ENDPOINT_URL') or None,
            database_url=os.getenv('DATABASE_URL', 'sqlite:///statistics.db'),
            primary_key=os.getenv('PRIMARY_KEY', 'id'),
            record_attribute=os.getenv('RECORD_ATTRIBUTE') or None,
            counted_event_types=frozenset(
                t.strip().lower() for t in counted.split(',') if t.strip()
            ),
            max_attempts=_env_int('MAX_ATTEMPTS', 5),
            backoff_base_seconds=_env_float('BACKOFF_BASE_SECONDS', 0.1),
            backoff_max_seconds=_env_float('BACKOFF_MAX_SECONDS', 5.0),
            store_timeout_seconds=_env_float('STORE_TIMEOUT_SECONDS', 3.0),
            max_merge_transitions=_env_int('MAX_MERGE_TRANSITIONS', 4),
            max_workers=_env_int('MAX_WORKERS', 4),
            sqs_queue_url=os.getenv('SQS_QUEUE_URL') or None,
            log_level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        )

    def with_overrides(self, **changes) -> 'AggregatorConfig':
        return replace(self, **changes)
