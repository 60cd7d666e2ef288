"""Request identity for FastAPI.

Authentication happens upstream: the identity gateway validates the session and
forwards the opaque user id in a trusted header. This module only reads it.
"""

from dataclasses import dataclass

from fastapi import HTTPException, Request

from app.core.config import get_settings


@dataclass(frozen=True)
class AuthUser:
    """Authenticated user as forwarded by the identity gateway."""

    user_id: str


async def require_auth(request: Request) -> AuthUser:
    """FastAPI dependency that extracts the forwarded user id.

    Usage::

        @router.get("/protected")
        async def protected(user: AuthUser = Depends(require_auth)):
            ...
    """
    header = get_settings().user_id_header
    user_id = (request.headers.get(header) or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail=f"Missing {header} header")

    # Set user_id on request state for downstream use (error handlers, audit logging)
    request.state.user_id = user_id

    return AuthUser(user_id=user_id)
