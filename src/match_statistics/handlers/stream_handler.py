# Directory: src/match_statistics/handlers/stream_handler.py
import logging
from typing import Any, Dict, Optional

from match_statistics.config.logging import setup_logging
from match_statistics.config.settings import AggregatorConfig
from match_statistics.infra.repo.aggregate_store.factory import build_store
from match_statistics.services.consumer import ChangeFeedConsumer

logger = logging.getLogger(__name__)

# built on the first invocation and reused while the container stays warm
_consumer: Optional[ChangeFeedConsumer] = None


def get_consumer() -> ChangeFeedConsumer:
    global _consumer
    if _consumer is None:
        config = AggregatorConfig.from_env()
        setup_logging(config.log_level)
        _consumer = ChangeFeedConsumer(build_store(config), config)
    return _consumer


def handler(event: Dict[str, Any], context: Any = None) -> Dict[str, Any]:
    """
    Entry point for the change-feed trigger of the event record table.

    Returns the partial batch response, so only notifications that failed
    transiently get redelivered. Malformed records and permanent errors are
    acknowledged, since retrying them can never succeed.
    """
    consumer = get_consumer()
    records = event.get('Records') or []
    logger.debug(f"Received {len(records)} stream records")

    report = consumer.process_stream_event(event)
    if report.failed:
        logger.warning(f"{len(report.failed)} of {len(records)} notifications left for redelivery")
    return report.batch_item_failures()
