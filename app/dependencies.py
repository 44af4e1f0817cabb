from typing import Annotated

from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.security import Identity, verify_token
from app.services import user_service

# auto_error=False: a missing header must reach our own Unauthenticated
# handler (empty 401 body) and must not break optional-auth routes.
bearer = HTTPBearer(auto_error=False)


class PaginationParams:
    """
    Reusable FastAPI dependency that parses ``limit`` / ``offset`` query
    parameters for article listings.

    Attributes
    ----------
    limit:
        Maximum number of articles returned, clamped to
        ``settings.MAX_LIMIT`` regardless of the value supplied.
    offset:
        Number of articles to skip from the newest.
    """

    def __init__(
        self,
        limit: int = Query(
            settings.DEFAULT_LIMIT,
            ge=1,
            description="Maximum number of articles to return.",
        ),
        offset: int = Query(
            0,
            ge=0,
            description="Number of articles to skip.",
        ),
    ) -> None:
        self.limit = min(limit, settings.MAX_LIMIT)
        self.offset = offset


async def get_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Identity:
    """
    Resolve the bearer token into an ``Identity``.

    Raises ``Unauthenticated`` for a missing or invalid token and for a
    token whose user no longer exists.
    """
    identity = verify_token(credentials.credentials if credentials else None)
    await user_service.get_identity_user(db, identity)
    return identity


async def get_optional_identity(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> Identity | None:
    """Like ``get_identity`` but anonymous requests resolve to ``None``."""
    if credentials is None:
        return None
    return await get_identity(credentials, db)


CurrentIdentity = Annotated[Identity, Depends(get_identity)]
OptionalIdentity = Annotated[Identity | None, Depends(get_optional_identity)]
Session = Annotated[AsyncSession, Depends(get_db)]
