from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from botocore.client import BaseClient
from botocore.exceptions import ClientError

from app.services.rate_limiter import RateLimitResult, RateLimiter


@dataclass(frozen=True)
class DynamoRateLimiter(RateLimiter):
    """
    Fixed-window counter. One item per (identifier, route_key, window size); the
    `expires_at` attribute is the table's TTL so stale windows disappear on their own.
    """

    client: BaseClient
    table_name: str
    ttl_buffer_seconds: int = 5

    def check(
        self,
        *,
        identifier: str,
        route_key: str,
        limit: int,
        window_seconds: int,
        now: int | None = None,
    ) -> RateLimitResult:
        now_ts = int(now or time.time())
        limiter_key = f"route:{route_key}:window:{window_seconds}"

        if limit <= 0 or window_seconds <= 0:
            return RateLimitResult(
                allowed=True,
                retry_after_seconds=0,
                limit=limit,
                remaining=0,
                count=0,
                window_reset_epoch=now_ts + max(window_seconds, 0),
                limiter_key=limiter_key,
                window_seconds=window_seconds,
            )

        window_start = now_ts - (now_ts % window_seconds)
        window_end = window_start + window_seconds
        item_key = {"pk": {"S": identifier}, "sk": {"S": limiter_key}}
        values = {
            ":window_start": {"N": str(window_start)},
            ":expires_at": {"N": str(window_end + self.ttl_buffer_seconds)},
        }

        try:
            attributes = self._update(
                item_key,
                expression="SET window_start = :window_start, #count = if_not_exists(#count, :zero) + :inc, "
                "expires_at = :expires_at",
                values={**values, ":inc": {"N": "1"}, ":zero": {"N": "0"}},
                condition="attribute_not_exists(window_start) OR window_start = :window_start",
            )
        except ClientError as err:
            if err.response.get("Error", {}).get("Code") != "ConditionalCheckFailedException":
                raise
            # Item belongs to an older window: start over at one.
            attributes = self._update(
                item_key,
                expression="SET window_start = :window_start, #count = :one, expires_at = :expires_at",
                values={**values, ":one": {"N": "1"}},
            )

        count = int(attributes.get("count", {}).get("N", "0"))
        allowed = count <= limit
        return RateLimitResult(
            allowed=allowed,
            retry_after_seconds=0 if allowed else max(1, window_end - now_ts),
            limit=limit,
            remaining=max(0, limit - count),
            count=count,
            window_reset_epoch=window_end,
            limiter_key=limiter_key,
            window_seconds=window_seconds,
        )

    def _update(
        self,
        item_key: dict[str, Any],
        *,
        expression: str,
        values: dict[str, Any],
        condition: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {
            "TableName": self.table_name,
            "Key": item_key,
            "UpdateExpression": expression,
            "ExpressionAttributeNames": {"#count": "count"},
            "ExpressionAttributeValues": values,
            "ReturnValues": "ALL_NEW",
        }
        if condition:
            params["ConditionExpression"] = condition
        response = self.client.update_item(**params)
        return response.get("Attributes", {})
