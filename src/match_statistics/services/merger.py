import logging
from enum import Enum
from typing import Callable, Optional, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from match_statistics.config.settings import AggregatorConfig
from match_statistics.domain.aggregates.match_statistics import MatchStatistics, IncrementOutcome
from match_statistics.domain.errors import AggregateExistsError, TransientStoreError
from match_statistics.domain.records import EventRecord
from match_statistics.infra.repo.aggregate_store.base import AggregateStore

logger = logging.getLogger(__name__)

T = TypeVar('T')


class MergeOutcome(Enum):
    CREATED = 'created'
    INCREMENTED = 'incremented'
    DUPLICATE = 'duplicate'


class AggregateMerger:
    """
    Merges one EventRecord into the statistics of its match.

    A small state machine over the two states a match can be in:
      absent  -> conditional create (first event of the match)
      present -> conditional increment + add event id, in one write
    A create that loses the race to another worker moves straight to the
    increment. Correctness comes from the store's conditional writes; the
    merger keeps no state between records and takes no locks.
    """
    def __init__(
        self,
        store: AggregateStore,
        config: AggregatorConfig,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.store = store
        self.max_attempts = config.max_attempts
        self.backoff_base = config.backoff_base_seconds
        self.backoff_max = config.backoff_max_seconds
        self.max_transitions = config.max_merge_transitions
        # injectable so tests don't actually wait between retries
        self._sleep = sleep

    def merge(self, record: EventRecord) -> MergeOutcome:
        """
        Apply a record to its match. Raises TransientStoreError once retries are
        exhausted, PermanentStoreError straight away.
        """
        match_id = record.match_id
        known_present = False

        for _ in range(self.max_transitions):
            if not known_present:
                current = self._with_retries(self.store.get, match_id)
                if current is None:
                    try:
                        self._with_retries(self.store.create, MatchStatistics.first_from(record))
                        logger.info(f"Created statistics for match {match_id} from event {record.id}")
                        return MergeOutcome.CREATED
                    except AggregateExistsError:
                        # another worker created it between our read and our write
                        logger.debug(f"Lost create race for match {match_id}, incrementing instead")
                        known_present = True
                        continue
                if current.has_applied(record.id):
                    logger.info(f"Event {record.id} already counted for match {match_id}, skipping")
                    return MergeOutcome.DUPLICATE

            outcome = self._with_retries(self.store.increment, match_id, record.id)
            if outcome is IncrementOutcome.APPLIED:
                logger.info(f"Incremented goals for match {match_id} with event {record.id}")
                return MergeOutcome.INCREMENTED
            if outcome is IncrementOutcome.DUPLICATE:
                logger.info(f"Event {record.id} already counted for match {match_id}, skipping")
                return MergeOutcome.DUPLICATE

            # MISSING: documents are never deleted here, so start over from a fresh read
            logger.warning(f"Statistics for match {match_id} vanished before increment, re-reading")
            known_present = False

        raise TransientStoreError(
            f"Merge for event {record.id} of match {match_id} did not settle "
            f"after {self.max_transitions} state transitions"
        )

    def _with_retries(self, operation: Callable[..., T], *args) -> T:
        """Run one store call, retrying transient failures with exponential backoff."""
        retrying_kwargs = dict(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            retry=retry_if_exception_type(TransientStoreError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        if self._sleep is not None:
            retrying_kwargs['sleep'] = self._sleep
        return Retrying(**retrying_kwargs)(operation, *args)
