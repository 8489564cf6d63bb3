from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.services.errors import StorageUnavailable

logger = logging.getLogger(__name__)

# Allowed MIME type -> short label shown to users. Stored keys never carry an extension or user input.
RESUME_MIME_EXTENSIONS = {
    "application/pdf": "pdf",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
}


@dataclass(frozen=True)
class PresignUploadResult:
    object_key: str
    upload_url: str
    expires_in: int


def _client():
    config = Config(
        connect_timeout=settings.STORAGE_CONNECT_TIMEOUT_SECONDS,
        read_timeout=settings.STORAGE_READ_TIMEOUT_SECONDS,
        retries={"max_attempts": settings.STORAGE_MAX_ATTEMPTS, "mode": "standard"},
        signature_version="s3v4",
    )
    return boto3.client("s3", region_name=settings.AWS_REGION or None, config=config)


def _bucket() -> str:
    return settings.S3_BUCKET_NAME


def build_resume_key(owner_id: int, *, now_ms: int | None = None) -> str:
    """
    <prefix>/resumes/<owner_id>/<epoch_ms>-<16 hex>
    Owner + random component only, so filenames can't traverse paths or collide.
    """
    stamp = int(now_ms if now_ms is not None else time.time() * 1000)
    suffix = secrets.token_hex(8)
    key = f"resumes/{owner_id}/{stamp}-{suffix}"
    if settings.S3_PREFIX:
        key = f"{settings.S3_PREFIX}/{key}"
    return key


def key_belongs_to_owner(object_key: str, owner_id: int) -> bool:
    parts = [p for p in (object_key or "").split("/") if p]
    try:
        idx = parts.index("resumes")
    except ValueError:
        return False
    return len(parts) == idx + 3 and parts[idx + 1] == str(owner_id)


def presign_upload(object_key: str, *, expires_in: int, content_type: str | None = None) -> PresignUploadResult:
    params = {"Bucket": _bucket(), "Key": object_key}
    if content_type:
        params["ContentType"] = content_type
    try:
        url = _client().generate_presigned_url(
            ClientMethod="put_object",
            Params=params,
            ExpiresIn=expires_in,
        )
    except (BotoCoreError, ClientError) as exc:
        logger.exception("Failed to presign upload for key=%s", object_key)
        raise StorageUnavailable("Failed to generate upload URL") from exc
    return PresignUploadResult(object_key=object_key, upload_url=url, expires_in=expires_in)


def presign_download(
    object_key: str,
    *,
    expires_in: int,
    access_type: str = "view",
    filename: str | None = None,
) -> str:
    params = {"Bucket": _bucket(), "Key": object_key}
    if access_type == "download":
        safe = (filename or "resume").replace('"', "")
        params["ResponseContentDisposition"] = f'attachment; filename="{safe}"'
    else:
        params["ResponseContentDisposition"] = "inline"
    try:
        return _client().generate_presigned_url(
            ClientMethod="get_object",
            Params=params,
            ExpiresIn=expires_in,
        )
    except (BotoCoreError, ClientError) as exc:
        logger.exception("Failed to presign download for key=%s", object_key)
        raise StorageUnavailable() from exc


def head_object(object_key: str) -> dict | None:
    """
    Returns object metadata, or None when the object doesn't exist (yet).
    """
    try:
        return _client().head_object(Bucket=_bucket(), Key=object_key)
    except ClientError as exc:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code in {"404", "NoSuchKey", "NotFound"}:
            return None
        raise StorageUnavailable() from exc
    except BotoCoreError as exc:
        raise StorageUnavailable() from exc


def delete_object(object_key: str) -> None:
    try:
        _client().delete_object(Bucket=_bucket(), Key=object_key)
    except (BotoCoreError, ClientError) as exc:
        raise StorageUnavailable("Failed to delete stored file") from exc


def delete_object_best_effort(object_key: str) -> bool:
    """
    Used on cleanup paths: never raises, failures are only logged.
    """
    try:
        delete_object(object_key)
        return True
    except StorageUnavailable:
        logger.exception("Best-effort delete failed for key=%s", object_key)
        return False
