from typing import Optional

from fastapi import APIRouter, Depends, Query

from server.app.dependencies.auth import current_user_id, require_auth
from server.app.services.ai_logs import AiLogStore, clamp_limit, get_ai_log_store

router = APIRouter(tags=["logs"])


@router.get("/logs")
def list_logs(
    limit: Optional[str] = Query(None),
    _: bool = Depends(require_auth),
    store: AiLogStore = Depends(get_ai_log_store),
    user_id: Optional[str] = Depends(current_user_id),
):
    """Newest-first AI diagnostic rows belonging to the `x-user-id` caller."""
    if not user_id:
        # rows carry raw provider error text; anonymous callers own none of them
        return {"logs": []}
    return {"logs": store.list(user_id=user_id, limit=clamp_limit(limit))}
