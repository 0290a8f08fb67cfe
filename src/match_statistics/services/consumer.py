import logging
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from match_statistics.config.settings import AggregatorConfig
from match_statistics.domain.errors import (
    MalformedRecordError,
    PermanentStoreError,
    TransientStoreError,
)
from match_statistics.domain.events import ChangeNotification
from match_statistics.infra.repo.aggregate_store.base import AggregateStore
from match_statistics.services.extractor import FieldExtractor
from match_statistics.services.merger import AggregateMerger, MergeOutcome

logger = logging.getLogger(__name__)


class NotificationStatus(Enum):
    CREATED = 'created'
    INCREMENTED = 'incremented'
    DUPLICATE = 'duplicate'
    IGNORED = 'ignored'             # not an insert, or an event type we don't count
    MALFORMED = 'malformed'         # skipped for good
    PERMANENT_ERROR = 'permanent_error'   # skipped for good
    FAILED = 'failed'               # left for the feed to redeliver

    @property
    def acknowledged(self) -> bool:
        return self is not NotificationStatus.FAILED


_MERGE_TO_STATUS = {
    MergeOutcome.CREATED: NotificationStatus.CREATED,
    MergeOutcome.INCREMENTED: NotificationStatus.INCREMENTED,
    MergeOutcome.DUPLICATE: NotificationStatus.DUPLICATE,
}


@dataclass(frozen=True)
class NotificationResult:
    notification: ChangeNotification
    status: NotificationStatus
    match_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BatchReport:
    """Per-notification results of one batch, in the order they were received."""
    results: List[NotificationResult] = field(default_factory=list)

    @property
    def counts(self) -> Dict[NotificationStatus, int]:
        return Counter(result.status for result in self.results)

    @property
    def failed(self) -> List[NotificationResult]:
        return [r for r in self.results if not r.status.acknowledged]

    def batch_item_failures(self) -> Dict[str, List[Dict[str, str]]]:
        """
        Partial batch response: only the notifications listed here are
        redelivered by the feed.
        """
        return {
            'batchItemFailures': [
                {'itemIdentifier': r.notification.reference} for r in self.failed
            ]
        }

    def summary(self) -> str:
        counts = self.counts
        return ", ".join(
            f"{status.value}={counts[status]}" for status in NotificationStatus if counts[status]
        ) or "empty"


class ChangeFeedConsumer:
    """
    Consumes batches of change notifications and merges each inserted goal
    event into the statistics of its match.

    Notifications are processed independently: whatever happens to one of
    them is recorded in its own NotificationResult and never stops the rest
    of the batch. With max_workers > 1 they are merged in parallel, which
    includes several events of the same match at once.
    """
    def __init__(
        self,
        store: AggregateStore,
        config: AggregatorConfig,
        merger: Optional[AggregateMerger] = None,
        extractor: Optional[FieldExtractor] = None,
    ):
        self.config = config
        self.extractor = extractor or FieldExtractor(config)
        self.merger = merger or AggregateMerger(store, config)
        self.counted_event_types = {t.lower() for t in config.counted_event_types}
        self.max_workers = config.max_workers

    def process_stream_event(self, event: Dict) -> BatchReport:
        """Process a DynamoDB Streams invocation event: {"Records": [...]}."""
        records = event.get('Records') or []
        return self.process_batch(ChangeNotification.from_stream_record(r) for r in records)

    def process_batch(self, notifications: Iterable[ChangeNotification]) -> BatchReport:
        notifications = list(notifications)
        if not notifications:
            return BatchReport()

        logger.info(f"Processing batch of {len(notifications)} notifications")
        if self.max_workers == 1 or len(notifications) == 1:
            results = [self.process_notification(n) for n in notifications]
        else:
            workers = min(self.max_workers, len(notifications))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='merge') as pool:
                # map keeps input order in the results
                results = list(pool.map(self.process_notification, notifications))

        report = BatchReport(results=results)
        logger.info(f"Batch done: {report.summary()}")
        return report

    def process_notification(self, notification: ChangeNotification) -> NotificationResult:
        """Extract and merge a single notification. Never raises."""
        if not notification.is_insert:
            logger.debug(f"Ignoring {notification.event_name} notification {notification.reference}")
            return NotificationResult(notification, NotificationStatus.IGNORED)

        try:
            record = self.extractor.extract(notification)
        except MalformedRecordError as e:
            logger.warning(
                f"Skipping malformed notification {notification.reference}: {e} "
                f"(new image: {notification.new_image})"
            )
            return NotificationResult(notification, NotificationStatus.MALFORMED, error=str(e))
        except Exception as e:
            # decoding is deterministic, so redelivery would fail the same way
            logger.warning(
                f"Skipping undecodable notification {notification.reference}: {e!r} "
                f"(new image: {notification.new_image})",
                exc_info=True
            )
            return NotificationResult(notification, NotificationStatus.MALFORMED, error=repr(e))

        if record.event_type.lower() not in self.counted_event_types:
            logger.debug(f"Ignoring {record.event_type} event {record.id} for match {record.match_id}")
            return NotificationResult(notification, NotificationStatus.IGNORED, match_id=record.match_id)

        try:
            outcome = self.merger.merge(record)
            return NotificationResult(notification, _MERGE_TO_STATUS[outcome], match_id=record.match_id)
        except TransientStoreError as e:
            logger.error(
                f"Giving up on event {record.id} for match {record.match_id} "
                f"(notification {notification.reference}), leaving it for redelivery: {e}"
            )
            return NotificationResult(
                notification, NotificationStatus.FAILED, match_id=record.match_id, error=str(e)
            )
        except PermanentStoreError as e:
            logger.error(
                f"Skipping event {record.id} for match {record.match_id} "
                f"(notification {notification.reference}) after permanent store error: {e}"
            )
            return NotificationResult(
                notification, NotificationStatus.PERMANENT_ERROR, match_id=record.match_id, error=str(e)
            )
        except Exception as e:
            # unknown failure: keep the batch going and let the feed try again later
            logger.error(
                f"Unexpected error merging event {record.id} (notification {notification.reference}): {e}",
                exc_info=True
            )
            return NotificationResult(
                notification, NotificationStatus.FAILED, match_id=record.match_id, error=str(e)
            )
