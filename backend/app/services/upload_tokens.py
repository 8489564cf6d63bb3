from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import boto3
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.timeutils import as_utc
from app.models.upload_token import UploadToken

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadSlotBinding:
    owner_id: int
    object_key: str
    expires_at: datetime


class UploadTokenStore(Protocol):
    """
    Transient token -> pending upload binding, keyed by the token's sha256.

    `get` must never return an expired binding, even if the backend hasn't
    physically removed it yet. `consume` is the single-use gate: it returns
    True for exactly one caller.
    """

    def put(self, token_hash: str, binding: UploadSlotBinding) -> None:
        ...

    def get(self, token_hash: str, *, now: datetime) -> UploadSlotBinding | None:
        ...

    def consume(self, token_hash: str) -> bool:
        ...

    def sweep(self, *, now: datetime) -> int:
        ...


class SqlUploadTokenStore:
    """
    Durable table with an expiry column. Expired rows are purged by the
    `upload_tokens.sweep_expired` beat task; lookups also check expiry lazily.
    Writes are flushed; the caller owns the commit.
    """

    def __init__(self, db: Session):
        self.db = db

    def put(self, token_hash: str, binding: UploadSlotBinding) -> None:
        self.db.add(
            UploadToken(
                token_hash=token_hash,
                owner_id=binding.owner_id,
                object_key=binding.object_key,
                expires_at=binding.expires_at,
            )
        )
        self.db.flush()

    def get(self, token_hash: str, *, now: datetime) -> UploadSlotBinding | None:
        row = self.db.get(UploadToken, token_hash)
        if row is None:
            return None
        expires_at = as_utc(row.expires_at)
        if expires_at <= now:
            return None
        return UploadSlotBinding(owner_id=row.owner_id, object_key=row.object_key, expires_at=expires_at)

    def consume(self, token_hash: str) -> bool:
        deleted = (
            self.db.query(UploadToken)
            .filter(UploadToken.token_hash == token_hash)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return deleted == 1

    def sweep(self, *, now: datetime) -> int:
        deleted = (
            self.db.query(UploadToken)
            .filter(UploadToken.expires_at <= now)
            .delete(synchronize_session=False)
        )
        self.db.flush()
        return int(deleted or 0)


def get_upload_token_store(db: Session) -> UploadTokenStore:
    backend = settings.UPLOAD_TOKEN_BACKEND
    if backend == "dynamodb":
        if not settings.DDB_UPLOAD_TOKEN_TABLE:
            logger.warning("UPLOAD_TOKEN_BACKEND=dynamodb but DDB_UPLOAD_TOKEN_TABLE is unset; using SQL store")
            return SqlUploadTokenStore(db)
        from app.services.upload_tokens_dynamo import DynamoUploadTokenStore

        client = boto3.client("dynamodb", region_name=settings.AWS_REGION or None)
        return DynamoUploadTokenStore(client, table_name=settings.DDB_UPLOAD_TOKEN_TABLE)
    if backend != "sql":
        logger.warning("Unknown UPLOAD_TOKEN_BACKEND=%s; using SQL store", backend)
    return SqlUploadTokenStore(db)
