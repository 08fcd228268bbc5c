"""FastAPI dependencies for caller identity.

Taskgate sits behind the platform's auth gateway, which verifies credentials
and forwards the authenticated user id in a header (``X-Actor-ID`` by
default, see ``settings.auth.actor_header``). Requests without the header are
unauthenticated: resolvers deny them and ``require_actor`` rejects them.
"""

from fastapi import Depends, HTTPException, Request, status

from taskgate.config import settings
from taskgate.logging_config import get_logger

logger = get_logger(__name__)


async def get_current_actor_id(request: Request) -> str | None:
    """Acting user id forwarded by the gateway, or None."""
    actor_id = request.headers.get(settings.auth.actor_header, "").strip()
    return actor_id or None


async def require_actor(actor_id: str | None = Depends(get_current_actor_id)) -> str:
    """Require an authenticated caller."""
    if actor_id is None:
        logger.debug("Rejected unauthenticated request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return actor_id
