from __future__ import annotations

import boto3
from botocore.stub import Stubber

from app.services.rate_limiter_dynamo import DynamoRateLimiter

TABLE = "resume-access-rate-limits"

INCREMENT = (
    "SET window_start = :window_start, #count = if_not_exists(#count, :zero) + :inc, "
    "expires_at = :expires_at"
)
SAME_WINDOW = "attribute_not_exists(window_start) OR window_start = :window_start"


def _client():
    return boto3.client("dynamodb", region_name="us-east-1")


def _increment_params(identifier: str, sk: str, window_start: int, expires_at: int) -> dict:
    return {
        "TableName": TABLE,
        "Key": {"pk": {"S": identifier}, "sk": {"S": sk}},
        "UpdateExpression": INCREMENT,
        "ConditionExpression": SAME_WINDOW,
        "ExpressionAttributeNames": {"#count": "count"},
        "ExpressionAttributeValues": {
            ":window_start": {"N": str(window_start)},
            ":expires_at": {"N": str(expires_at)},
            ":inc": {"N": "1"},
            ":zero": {"N": "0"},
        },
        "ReturnValues": "ALL_NEW",
    }


def _attributes(count: int, window_start: int, expires_at: int) -> dict:
    return {
        "Attributes": {
            "count": {"N": str(count)},
            "window_start": {"N": str(window_start)},
            "expires_at": {"N": str(expires_at)},
        }
    }


def test_counts_within_the_window():
    client = _client()
    limiter = DynamoRateLimiter(client, table_name=TABLE, ttl_buffer_seconds=5)
    stubber = Stubber(client)

    # 100 falls in the [60, 120) window
    stubber.add_response(
        "update_item",
        _attributes(1, 60, 125),
        _increment_params("user:1", "route:resume_upload_url:window:60", 60, 125),
    )

    with stubber:
        result = limiter.check(
            identifier="user:1",
            route_key="resume_upload_url",
            limit=5,
            window_seconds=60,
            now=100,
        )

    assert result.allowed
    assert result.remaining == 4
    assert result.retry_after_seconds == 0
    assert result.window_reset_epoch == 120
    stubber.assert_no_pending_responses()


def test_company_access_budget_blocks_past_the_limit():
    client = _client()
    limiter = DynamoRateLimiter(client, table_name=TABLE, ttl_buffer_seconds=5)
    stubber = Stubber(client)

    stubber.add_response(
        "update_item",
        _attributes(51, 3600, 7205),
        _increment_params("company:7", "route:resume_access:42:window:3600", 3600, 7205),
    )

    with stubber:
        result = limiter.check(
            identifier="company:7",
            route_key="resume_access:42",
            limit=50,
            window_seconds=3600,
            now=4000,
        )

    assert not result.allowed
    assert result.count == 51
    assert result.remaining == 0
    assert result.retry_after_seconds == 7200 - 4000


def test_stale_window_restarts_the_count():
    client = _client()
    limiter = DynamoRateLimiter(client, table_name=TABLE, ttl_buffer_seconds=5)
    stubber = Stubber(client)

    stubber.add_client_error(
        "update_item",
        service_error_code="ConditionalCheckFailedException",
        service_message="stale window",
        expected_params=_increment_params("user:99", "route:resume_signed_url:window:60", 180, 245),
    )
    stubber.add_response(
        "update_item",
        _attributes(1, 180, 245),
        {
            "TableName": TABLE,
            "Key": {"pk": {"S": "user:99"}, "sk": {"S": "route:resume_signed_url:window:60"}},
            "UpdateExpression": "SET window_start = :window_start, #count = :one, expires_at = :expires_at",
            "ExpressionAttributeNames": {"#count": "count"},
            "ExpressionAttributeValues": {
                ":window_start": {"N": "180"},
                ":one": {"N": "1"},
                ":expires_at": {"N": "245"},
            },
            "ReturnValues": "ALL_NEW",
        },
    )

    with stubber:
        result = limiter.check(
            identifier="user:99",
            route_key="resume_signed_url",
            limit=5,
            window_seconds=60,
            now=181,
        )

    assert result.allowed
    assert result.remaining == 4
    stubber.assert_no_pending_responses()


def test_non_positive_limit_never_touches_the_table():
    client = _client()
    limiter = DynamoRateLimiter(client, table_name=TABLE)
    stubber = Stubber(client)

    with stubber:
        result = limiter.check(identifier="user:1", route_key="resume_discover", limit=0, window_seconds=60, now=10)

    assert result.allowed
    stubber.assert_no_pending_responses()
