from __future__ import annotations

import logging

from fastapi import Header, HTTPException, status

from app.core.config import settings
from app.core.security import constant_time_equals

logger = logging.getLogger(__name__)


def require_internal_token(
    x_internal_token: str | None = Header(default=None, alias="x-internal-token"),
) -> None:
    """
    Shared-secret auth for service-to-service callbacks (malware scanner,
    application pipeline).
    """
    if not settings.INTERNAL_SHARED_SECRET:
        raise HTTPException(status_code=500, detail="Server missing INTERNAL_SHARED_SECRET")

    if not constant_time_equals(x_internal_token, settings.INTERNAL_SHARED_SECRET):
        logger.warning("Rejected internal callback with bad or missing x-internal-token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
