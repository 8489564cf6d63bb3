from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from botocore.client import BaseClient
from botocore.exceptions import ClientError

from app.services.upload_tokens import UploadSlotBinding, UploadTokenStore

ITEM_TYPE = "upload_token"


@dataclass(frozen=True)
class DynamoUploadTokenStore(UploadTokenStore):
    """
    Upload slots in DynamoDB with `expires_at` as the table's TTL attribute.
    DynamoDB deletes expired items lazily (up to days later), so reads still
    compare against the clock.
    """

    client: BaseClient
    table_name: str

    def put(self, token_hash: str, binding: UploadSlotBinding) -> None:
        self.client.put_item(
            TableName=self.table_name,
            Item={
                "pk": {"S": f"token:{token_hash}"},
                "owner_id": {"N": str(binding.owner_id)},
                "object_key": {"S": binding.object_key},
                "expires_at": {"N": str(int(binding.expires_at.timestamp()))},
                "item_type": {"S": ITEM_TYPE},
            },
            ConditionExpression="attribute_not_exists(pk)",
        )

    def get(self, token_hash: str, *, now: datetime) -> UploadSlotBinding | None:
        response = self.client.get_item(
            TableName=self.table_name,
            Key={"pk": {"S": f"token:{token_hash}"}},
            ConsistentRead=True,
        )
        item = response.get("Item")
        if not item:
            return None
        expires_epoch = int(item.get("expires_at", {}).get("N", "0"))
        if expires_epoch <= int(now.timestamp()):
            return None
        return UploadSlotBinding(
            owner_id=int(item["owner_id"]["N"]),
            object_key=item["object_key"]["S"],
            expires_at=datetime.fromtimestamp(expires_epoch, tz=timezone.utc),
        )

    def consume(self, token_hash: str) -> bool:
        try:
            self.client.delete_item(
                TableName=self.table_name,
                Key={"pk": {"S": f"token:{token_hash}"}},
                ConditionExpression="attribute_exists(pk)",
            )
        except ClientError as err:
            if err.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                return False
            raise
        return True

    def sweep(self, *, now: datetime) -> int:
        # Native TTL handles removal.
        return 0
