import boto3
import pytest
from botocore.exceptions import EndpointConnectionError, ReadTimeoutError
from botocore.stub import Stubber

from match_statistics.domain.aggregates.match_statistics import MatchStatistics, IncrementOutcome
from match_statistics.domain.errors import (
    AggregateExistsError,
    PermanentStoreError,
    TransientStoreError,
)
from match_statistics.infra.repo.aggregate_store.dynamodb import (
    CREATE_CONDITION,
    INCREMENT_CONDITION,
    INCREMENT_EXPRESSION,
    DynamoAggregateStore,
)
from match_statistics.services.merger import AggregateMerger, MergeOutcome

STORED_ITEM = {
    "matchId": {"S": "M1"},
    "team": {"S": "Lions"},
    "opponent": {"S": "Tigers"},
    "totalGoals": {"N": "2"},
    "appliedIds": {"SS": ["e1", "e2"]},
}


@pytest.fixture
def dynamodb_client():
    return boto3.client(
        "dynamodb",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )


@pytest.fixture
def stubbed(dynamodb_client, config):
    store = DynamoAggregateStore(config, client=dynamodb_client)
    with Stubber(dynamodb_client) as stubber:
        yield store, stubber
        stubber.assert_no_pending_responses()


def increment_params(event_id):
    return {
        "TableName": "statistics",
        "Key": {"matchId": {"S": "M1"}},
        "UpdateExpression": INCREMENT_EXPRESSION,
        "ConditionExpression": INCREMENT_CONDITION,
        "ExpressionAttributeNames": {"#pk": "matchId", "#total": "totalGoals", "#applied": "appliedIds"},
        "ExpressionAttributeValues": {
            ":one": {"N": "1"},
            ":ids": {"SS": [event_id]},
            ":id": {"S": event_id},
        },
        "ReturnValuesOnConditionCheckFailure": "ALL_OLD",
    }


def test_get_returns_statistics(stubbed):
    store, stubber = stubbed
    stubber.add_response(
        "get_item",
        {"Item": STORED_ITEM},
        {"TableName": "statistics", "Key": {"matchId": {"S": "M1"}}, "ConsistentRead": True},
    )

    statistics = store.get("M1")

    assert statistics == MatchStatistics(
        match_id="M1", team="Lions", opponent="Tigers", total_goals=2,
        applied_ids=frozenset({"e1", "e2"})
    )


def test_get_returns_none_when_absent(stubbed):
    store, stubber = stubbed
    stubber.add_response("get_item", {})

    assert store.get("M404") is None


def test_create_is_conditional(stubbed):
    store, stubber = stubbed
    stubber.add_response(
        "put_item",
        {},
        {
            "TableName": "statistics",
            "Item": {
                "matchId": {"S": "M1"},
                "team": {"S": "Lions"},
                "opponent": {"S": "Tigers"},
                "totalGoals": {"N": "1"},
                "appliedIds": {"SS": ["e1"]},
            },
            "ConditionExpression": CREATE_CONDITION,
            "ExpressionAttributeNames": {"#pk": "matchId"},
        },
    )

    store.create(MatchStatistics("M1", "Lions", "Tigers", 1, frozenset({"e1"})))


def test_create_conflict_raises_exists(stubbed):
    store, stubber = stubbed
    stubber.add_client_error("put_item", service_error_code="ConditionalCheckFailedException")

    with pytest.raises(AggregateExistsError):
        store.create(MatchStatistics("M1", "Lions", "Tigers", 1, frozenset({"e1"})))


def test_increment_applies(stubbed):
    store, stubber = stubbed
    stubber.add_response("update_item", {}, increment_params("e3"))

    assert store.increment("M1", "e3") is IncrementOutcome.APPLIED


def test_increment_of_applied_id_is_duplicate(stubbed):
    store, stubber = stubbed
    stubber.add_client_error(
        "update_item",
        service_error_code="ConditionalCheckFailedException",
        expected_params=increment_params("e1"),
        modeled_fields={"Item": STORED_ITEM},
    )

    assert store.increment("M1", "e1") is IncrementOutcome.DUPLICATE


def test_increment_of_missing_document(stubbed):
    store, stubber = stubbed
    stubber.add_client_error("update_item", service_error_code="ConditionalCheckFailedException")

    assert store.increment("M1", "e1") is IncrementOutcome.MISSING


@pytest.mark.parametrize("code", [
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "InternalServerError",
])
def test_throttling_is_transient(stubbed, code):
    store, stubber = stubbed
    stubber.add_client_error("update_item", service_error_code=code, http_status_code=500)

    with pytest.raises(TransientStoreError):
        store.increment("M1", "e1")


def test_validation_error_is_permanent(stubbed):
    store, stubber = stubbed
    stubber.add_client_error("get_item", service_error_code="ValidationException")

    with pytest.raises(PermanentStoreError):
        store.get("M1")


@pytest.mark.parametrize("error", [
    ReadTimeoutError(endpoint_url="http://localhost:8000"),
    EndpointConnectionError(endpoint_url="http://localhost:8000"),
])
def test_timeouts_are_transient(config, mocker, error):
    client = mocker.Mock()
    client.get_item.side_effect = error

    with pytest.raises(TransientStoreError):
        DynamoAggregateStore(config, client=client).get("M1")


def test_stored_item_with_wrong_shape_is_permanent(stubbed):
    store, stubber = stubbed
    stubber.add_response("get_item", {"Item": {"matchId": {"S": "M1"}, "totalGoals": {"S": "many"}}})

    with pytest.raises(PermanentStoreError):
        store.get("M1")


def test_merge_recovers_from_lost_create_race(stubbed, config, make_record):
    store, stubber = stubbed
    stubber.add_response("get_item", {})
    stubber.add_client_error("put_item", service_error_code="ConditionalCheckFailedException")
    stubber.add_response("update_item", {}, increment_params("e3"))

    outcome = AggregateMerger(store, config).merge(make_record("e3"))

    assert outcome is MergeOutcome.INCREMENTED
