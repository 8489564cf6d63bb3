from __future__ import annotations

from fastapi import Depends, HTTPException, status

from app.auth.identity import Actor
from app.dependencies.auth import get_current_actor


def require_admin_actor(actor: Actor = Depends(get_current_actor)) -> Actor:
    """
    Ensure the authenticated actor has admin privileges.
    """
    if not actor.is_admin:
        raise HTTPException(status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return actor
