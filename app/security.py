"""
Credential & token service.

Passwords are hashed with bcrypt through passlib; session tokens are
HS256-signed JWTs (PyJWT) whose ``sub`` claim is the user id.  Tokens are
self-contained: verifying one needs only ``SECRET_KEY``, never a session
table.  No expiry is enforced.

Hashing and verification are CPU-bound; async callers run them through
``run_in_threadpool``, off the event loop.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import jwt
from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.config import settings
from app.errors import InvalidCredentials, Unauthenticated
from app.models import User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.PASSWORD_HASH_ROUNDS,
)


@dataclass(frozen=True)
class Identity:
    """The authenticated caller, passed explicitly into every service call."""

    user_id: int
    token: str


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------

def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Unrecognised or corrupt hash in storage.
        return False


async def authenticate(db: AsyncSession, email: str, password: str) -> User:
    """
    Return the user owning *email* if *password* matches.

    Raises ``InvalidCredentials`` for an unknown email and for a wrong
    password alike, so callers cannot tell the two apart.
    """
    result = await db.execute(select(User).where(User.email == email))
    user = result.scalar_one_or_none()
    if user is None or not await run_in_threadpool(
        verify_password, password, user.password_hash
    ):
        logger.info("Rejected login for email=%r", email)
        raise InvalidCredentials()
    return user


# ---------------------------------------------------------------------------
# Tokens
# ---------------------------------------------------------------------------

def issue_token(user_id: int) -> str:
    payload = {
        "sub": str(user_id),
        "iat": datetime.now(timezone.utc),
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str | None) -> Identity:
    """
    Decode *token* and return the identity it carries.

    Raises ``Unauthenticated`` when the token is missing, malformed,
    signed with another key, or carries a non-integer subject.
    """
    if not token:
        raise Unauthenticated()
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"require": ["sub"], "verify_exp": False},
        )
        user_id = int(payload["sub"])
    except (jwt.InvalidTokenError, ValueError) as exc:
        logger.debug("Token rejected: %s", exc)
        raise Unauthenticated() from exc
    return Identity(user_id=user_id, token=token)
