from __future__ import annotations

from datetime import datetime, timezone

import boto3
from botocore.stub import Stubber

from app.services.upload_tokens import UploadSlotBinding
from app.services.upload_tokens_dynamo import DynamoUploadTokenStore

TABLE = "resume-upload-tokens"
TOKEN_HASH = "ab" * 32
EXPIRES = datetime(2026, 10, 18, 12, 30, tzinfo=timezone.utc)
KEY = {"pk": {"S": f"token:{TOKEN_HASH}"}}


def _store():
    client = boto3.client("dynamodb", region_name="us-east-1")
    return DynamoUploadTokenStore(client, table_name=TABLE), Stubber(client)


def _item():
    return {
        "pk": {"S": f"token:{TOKEN_HASH}"},
        "owner_id": {"N": "12"},
        "object_key": {"S": "resumes/12/1760788800000-abc"},
        "expires_at": {"N": str(int(EXPIRES.timestamp()))},
        "item_type": {"S": "upload_token"},
    }


def test_put_refuses_to_overwrite_an_existing_token():
    store, stubber = _store()
    stubber.add_response(
        "put_item",
        {},
        {"TableName": TABLE, "Item": _item(), "ConditionExpression": "attribute_not_exists(pk)"},
    )

    with stubber:
        store.put(
            TOKEN_HASH,
            UploadSlotBinding(owner_id=12, object_key="resumes/12/1760788800000-abc", expires_at=EXPIRES),
        )

    stubber.assert_no_pending_responses()


def test_get_returns_live_binding():
    store, stubber = _store()
    stubber.add_response(
        "get_item",
        {"Item": _item()},
        {"TableName": TABLE, "Key": KEY, "ConsistentRead": True},
    )

    with stubber:
        binding = store.get(TOKEN_HASH, now=datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc))

    assert binding == UploadSlotBinding(owner_id=12, object_key="resumes/12/1760788800000-abc", expires_at=EXPIRES)


def test_get_hides_expired_item_that_ttl_has_not_removed_yet():
    store, stubber = _store()
    stubber.add_response(
        "get_item",
        {"Item": _item()},
        {"TableName": TABLE, "Key": KEY, "ConsistentRead": True},
    )

    with stubber:
        assert store.get(TOKEN_HASH, now=EXPIRES) is None


def test_get_unknown_token():
    store, stubber = _store()
    stubber.add_response("get_item", {}, {"TableName": TABLE, "Key": KEY, "ConsistentRead": True})

    with stubber:
        assert store.get(TOKEN_HASH, now=EXPIRES) is None


def test_consume_is_single_use():
    store, stubber = _store()
    expected = {"TableName": TABLE, "Key": KEY, "ConditionExpression": "attribute_exists(pk)"}
    stubber.add_response("delete_item", {}, expected)
    stubber.add_client_error(
        "delete_item",
        service_error_code="ConditionalCheckFailedException",
        service_message="already consumed",
        expected_params=expected,
    )

    with stubber:
        assert store.consume(TOKEN_HASH) is True
        assert store.consume(TOKEN_HASH) is False


def test_sweep_is_left_to_table_ttl():
    store, _ = _store()

    assert store.sweep(now=EXPIRES) == 0
