"""Auth dependencies shared by the curriculum routers."""

import logging

from fastapi import Depends, Header, HTTPException

from app.core.deps import get_store, get_supabase_client
from app.core.errors import StoreError

logger = logging.getLogger(__name__)


def get_current_user_id(
    authorization: str = Header(None),
    supabase=Depends(get_supabase_client),
) -> str:
    """Extract user_id from the bearer token via the auth provider."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")
    token = authorization.replace("Bearer ", "", 1)
    try:
        resp = supabase.auth.get_user(token)
        if not resp or not resp.user:
            raise HTTPException(status_code=401, detail="Invalid token")
        return resp.user.id
    except HTTPException:
        raise
    except Exception as exc:
        raise HTTPException(status_code=401, detail=f"Authentication failed: {exc}")


def require_admin(
    user_id: str = Depends(get_current_user_id),
    store=Depends(get_store),
) -> str:
    """Raise 403 unless the caller's user record carries the admin flag."""
    try:
        row = store.query_one("SELECT is_admin FROM users WHERE uid = ?", [user_id])
    except StoreError as exc:
        logger.error("[auth.require_admin] DB error for user %s: %s", user_id, exc)
        raise HTTPException(status_code=500, detail="Database error verifying admin status")
    if not row or not row.get("is_admin"):
        raise HTTPException(status_code=403, detail="Forbidden: Admins only")
    return user_id
