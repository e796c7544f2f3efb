# server/app/dependencies/auth.py
from typing import Optional

from fastapi import Depends, HTTPException, Request

from ..config import Settings, get_settings


def require_auth(request: Request, settings: Settings = Depends(get_settings)) -> bool:
    """
    Dependency that requires a bearer token for protected routes.
    If API_AUTH_TOKEN is not set, authentication is disabled.
    """
    expected = (settings.API_AUTH_TOKEN or "").strip()
    if not expected:
        return True

    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="unauthorized")

    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0] != "Bearer":
        raise HTTPException(status_code=401, detail="unauthorized")

    if parts[1].strip() != expected:
        raise HTTPException(status_code=401, detail="unauthorized")

    return True


def current_user_id(request: Request) -> Optional[str]:
    """Caller identity forwarded by the upstream gateway (None when anonymous)."""
    user_id = request.headers.get("x-user-id", "").strip()
    return user_id or None
