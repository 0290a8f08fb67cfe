import logging
from typing import Dict, Optional

import boto3
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from match_statistics.config.settings import AggregatorConfig
from match_statistics.constants import (
    CONDITIONAL_CHECK_FAILED,
    TRANSIENT_DYNAMO_ERRORS,
    TEAM_ATTR,
    OPPONENT_ATTR,
    TOTAL_GOALS_ATTR,
    APPLIED_IDS_ATTR,
)
from match_statistics.domain.aggregates.match_statistics import MatchStatistics, IncrementOutcome
from match_statistics.domain.errors import (
    AggregateExistsError,
    PermanentStoreError,
    TransientStoreError,
)
from match_statistics.infra.repo.aggregate_store.base import AggregateStore

logger = logging.getLogger(__name__)

TRANSIENT_BOTOCORE_ERRORS = (
    ConnectTimeoutError,
    ReadTimeoutError,
    EndpointConnectionError,
    ConnectionClosedError,
)

CREATE_CONDITION = 'attribute_not_exists(#pk)'
INCREMENT_EXPRESSION = 'ADD #total :one, #applied :ids'
INCREMENT_CONDITION = 'attribute_exists(#pk) AND NOT contains(#applied, :id)'


def build_dynamodb_client(config: AggregatorConfig):
    """
    Low-level DynamoDB client with bounded timeouts. botocore's own retries are
    switched off: the merge step retries transient failures itself.
    """
    return boto3.client(
        'dynamodb',
        region_name=config.aws_region,
        endpoint_url=config.dynamodb_endpoint_url,
        config=Config(
            connect_timeout=config.store_timeout_seconds,
            read_timeout=config.store_timeout_seconds,
            retries={'max_attempts': 1, 'mode': 'standard'},
        )
    )


class DynamoAggregateStore(AggregateStore):
    """
    Aggregate store on a DynamoDB table keyed by match id.

    The counter and the applied-ids string set are changed by a single
    UpdateItem with an ADD action, guarded by a condition that the item exists
    and doesn't already contain the event id.
    """
    def __init__(self, config: AggregatorConfig, client=None):
        self.table_name = config.statistics_table
        self.key_name = config.statistics_key
        self.client = client or build_dynamodb_client(config)
        self._serializer = TypeSerializer()
        self._deserializer = TypeDeserializer()

    def get(self, match_id: str) -> Optional[MatchStatistics]:
        try:
            response = self.client.get_item(
                TableName=self.table_name,
                Key=self._key(match_id),
                ConsistentRead=True
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, 'get', match_id) from e

        item = response.get('Item')
        if not item:
            return None
        return self._to_statistics(item)

    def create(self, statistics: MatchStatistics) -> None:
        item = {
            self.key_name: statistics.match_id,
            TOTAL_GOALS_ATTR: statistics.total_goals,
            APPLIED_IDS_ATTR: set(statistics.applied_ids),
        }
        # DynamoDB string attributes can't be empty; leave unknown participants out
        if statistics.team:
            item[TEAM_ATTR] = statistics.team
        if statistics.opponent:
            item[OPPONENT_ATTR] = statistics.opponent

        try:
            self.client.put_item(
                TableName=self.table_name,
                Item=self._serialize(item),
                ConditionExpression=CREATE_CONDITION,
                ExpressionAttributeNames={'#pk': self.key_name}
            )
        except ClientError as e:
            if _error_code(e) == CONDITIONAL_CHECK_FAILED:
                raise AggregateExistsError(statistics.match_id) from e
            raise self._translate(e, 'create', statistics.match_id) from e
        except BotoCoreError as e:
            raise self._translate(e, 'create', statistics.match_id) from e

    def increment(self, match_id: str, event_id: str) -> IncrementOutcome:
        try:
            self.client.update_item(
                TableName=self.table_name,
                Key=self._key(match_id),
                UpdateExpression=INCREMENT_EXPRESSION,
                ConditionExpression=INCREMENT_CONDITION,
                ExpressionAttributeNames={
                    '#pk': self.key_name,
                    '#total': TOTAL_GOALS_ATTR,
                    '#applied': APPLIED_IDS_ATTR,
                },
                ExpressionAttributeValues={
                    ':one': {'N': '1'},
                    ':ids': {'SS': [event_id]},
                    ':id': {'S': event_id},
                },
                ReturnValuesOnConditionCheckFailure='ALL_OLD'
            )
            return IncrementOutcome.APPLIED
        except ClientError as e:
            if _error_code(e) != CONDITIONAL_CHECK_FAILED:
                raise self._translate(e, 'increment', match_id) from e
            # the old item (if any) tells us which half of the condition failed
            old_item = e.response.get('Item')
            if not old_item:
                return IncrementOutcome.MISSING
            return IncrementOutcome.DUPLICATE
        except BotoCoreError as e:
            raise self._translate(e, 'increment', match_id) from e

    # -------------- Internal helpers --------------

    def _key(self, match_id: str) -> Dict:
        return {self.key_name: {'S': match_id}}

    def _serialize(self, item: Dict) -> Dict:
        return {k: self._serializer.serialize(v) for k, v in item.items()}

    def _to_statistics(self, item: Dict) -> MatchStatistics:
        data = {k: self._deserializer.deserialize(v) for k, v in item.items()}
        try:
            return MatchStatistics.from_dict(data, key_name=self.key_name)
        except (KeyError, TypeError, ValueError) as e:
            raise PermanentStoreError(
                f"Stored statistics for {item.get(self.key_name)} have an unexpected shape: {e}"
            ) from e

    def _translate(self, error: Exception, operation: str, match_id: str):
        """Map a boto error onto the transient/permanent split."""
        if isinstance(error, ClientError):
            code = _error_code(error)
            message = f"DynamoDB {operation} for match {match_id} failed with {code}: {error}"
            if code in TRANSIENT_DYNAMO_ERRORS:
                return TransientStoreError(message)
            return PermanentStoreError(message)

        message = f"DynamoDB {operation} for match {match_id} failed: {error}"
        if isinstance(error, TRANSIENT_BOTOCORE_ERRORS):
            return TransientStoreError(message)
        return PermanentStoreError(message)


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')
