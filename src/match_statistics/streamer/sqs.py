import json
import logging
import time
from typing import Dict, Optional, Tuple

import boto3

from match_statistics.config.settings import AggregatorConfig
from match_statistics.constants import (
    DEFAULT_MAX_MESSAGES,
    DEFAULT_WAIT_TIME,
    DEFAULT_VISIBILITY_TIMEOUT,
    SQS_RECEIVED_KEYWORD,
    SQS_PROCESSED_AND_DELETED_KEYWORD,
)
from match_statistics.domain.events import ChangeNotification
from match_statistics.services.consumer import BatchReport, ChangeFeedConsumer

logger = logging.getLogger(__name__)


class SQSError(Exception):
    """Base exception for SQS operations"""
    pass


class SQSClient:
    def __init__(self, sqs_url: str, region_name: str = 'us-east-1', client=None):
        """Initialize SQS client"""
        self.sqs_url = sqs_url
        self.region_name = region_name
        self.sqs_client = client
        self._ensure_connection()

    def _connect(self) -> None:
        """Establish SQS connection"""
        try:
            self.sqs_client = boto3.client('sqs', region_name=self.region_name)
        except Exception as e:
            raise SQSError(f"Failed to initialize SQS client: {str(e)}") from e

    def receive_messages(
        self,
        max_messages: int = DEFAULT_MAX_MESSAGES,
        wait_time: int = DEFAULT_WAIT_TIME,
        visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT
    ) -> list:
        """
        Receive messages from SQS queue
        Args:
            max_messages: Maximum number of messages to receive (1-10)
            wait_time: Long polling wait time in seconds
            visibility_timeout: Time in seconds message is invisible after receipt.
                A message we don't delete reappears after this, which is how
                failed notifications get redelivered.
        Returns:
            list: List of received messages
        """
        self._ensure_connection()
        try:
            response = self.sqs_client.receive_message(
                QueueUrl=self.sqs_url,
                MaxNumberOfMessages=min(max_messages, 10),  # SQS limit is 10
                WaitTimeSeconds=wait_time,
                AttributeNames=['All'],
                MessageAttributeNames=['All'],
                VisibilityTimeout=visibility_timeout
            )
            return response.get('Messages', [])
        except Exception as e:
            raise SQSError(f"Failed to receive messages: {str(e)}") from e

    def delete_message(self, receipt_handle: str) -> bool:
        """Delete a message from the queue after processing"""
        self._ensure_connection()
        try:
            self.sqs_client.delete_message(
                QueueUrl=self.sqs_url,
                ReceiptHandle=receipt_handle
            )
            return True
        except Exception as e:
            raise SQSError(f"Failed to delete message: {str(e)}") from e

    def _ensure_connection(self) -> None:
        """Ensure SQS connection is established"""
        if not self.sqs_client:
            self._connect()


class SQSChangeFeed:
    """
    Change feed relayed through an SQS queue: every message body is one
    stream record. Acknowledging means deleting the message; anything left
    undeleted comes back after the visibility timeout.
    """
    def __init__(
        self,
        consumer: ChangeFeedConsumer,
        sqs: SQSClient,
        wait_time: int = DEFAULT_WAIT_TIME,
        visibility_timeout: int = DEFAULT_VISIBILITY_TIMEOUT,
    ):
        self.consumer = consumer
        self.sqs = sqs
        self.wait_time = wait_time
        self.visibility_timeout = visibility_timeout
        self._stopped = False

    @classmethod
    def from_config(cls, consumer: ChangeFeedConsumer, config: AggregatorConfig) -> 'SQSChangeFeed':
        if not config.sqs_queue_url:
            raise SQSError("SQS_QUEUE_URL is not configured")
        return cls(consumer, SQSClient(config.sqs_queue_url, region_name=config.aws_region))

    def poll_once(self) -> Optional[BatchReport]:
        """Receive one batch, merge it and delete the acknowledged messages."""
        messages = self.sqs.receive_messages(
            wait_time=self.wait_time,
            visibility_timeout=self.visibility_timeout
        )
        if not messages:
            return None

        pairs = [self._to_notification(message) for message in messages]
        for message, notification in pairs:
            logger.debug(f"{SQS_RECEIVED_KEYWORD} {message.get('MessageId')} ({notification.reference})")

        report = self.consumer.process_batch(notification for _, notification in pairs)

        # results come back in input order
        for (message, _), result in zip(pairs, report.results):
            if result.status.acknowledged:
                self.sqs.delete_message(message['ReceiptHandle'])
                logger.debug(f"{message.get('MessageId')} {SQS_PROCESSED_AND_DELETED_KEYWORD}")
            else:
                logger.warning(
                    f"Message {message.get('MessageId')} not deleted, "
                    f"will be redelivered after {self.visibility_timeout}s"
                )
        return report

    def run(self, idle_sleep: float = 1.0, max_batches: Optional[int] = None) -> None:
        """Poll until stop() is called (or max_batches batches were handled)."""
        handled = 0
        logger.info(f"Consuming change feed from {self.sqs.sqs_url}")
        while not self._stopped:
            try:
                report = self.poll_once()
            except SQSError as e:
                logger.error(f"Error polling {self.sqs.sqs_url}: {e}", exc_info=True)
                report = None
                time.sleep(idle_sleep)

            if report is not None:
                handled += 1
                if max_batches is not None and handled >= max_batches:
                    break
        logger.info("Change feed consumer stopped")

    def stop(self) -> None:
        self._stopped = True

    def _to_notification(self, message: Dict) -> Tuple[Dict, ChangeNotification]:
        try:
            record = json.loads(message.get('Body') or '')
        except ValueError:
            record = None

        if not isinstance(record, dict):
            # nothing to decode; the consumer will report it as malformed
            return message, ChangeNotification(
                new_image=None,
                event_id=message.get('MessageId'),
                source=self.sqs.sqs_url,
                raw=message
            )

        notification = ChangeNotification.from_stream_record(record)
        if notification.reference == '<unknown>':
            notification = ChangeNotification(
                new_image=notification.new_image,
                event_id=message.get('MessageId'),
                event_name=notification.event_name,
                source=self.sqs.sqs_url,
                raw=record
            )
        return message, notification
