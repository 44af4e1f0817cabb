"""
User service — registration, login, self-update, public profiles and the
follow relation.

Usernames and emails are unique.  Both are checked before writing so the
common case yields a precise ``Conflict``; the database unique constraints
catch the concurrent case, which is reported the same way.

Follow edges form a set: following an already-followed user and
unfollowing a user you do not follow both succeed without changing state.
"""
import logging
from typing import Iterable, Mapping

from pydantic import BaseModel
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from app.dialects import insert_ignore
from app.errors import Conflict, InvalidOperation, NotFound, Unauthenticated
from app.models import User, follows, utcnow
from app.security import Identity, authenticate, hash_password
from app.validation import EMAIL_PATTERN, FieldRule, validate

logger = logging.getLogger(__name__)

REGISTRATION_RULES = (
    FieldRule("username", max_length=100),
    FieldRule("email", max_length=255, pattern=EMAIL_PATTERN),
    FieldRule("password"),
)

LOGIN_RULES = (
    FieldRule("email"),
    FieldRule("password"),
)

# Blank username/email/password is rejected; blank bio/image clears the field.
UPDATE_RULES = (
    FieldRule("username", required=False, max_length=100),
    FieldRule("email", required=False, max_length=255, pattern=EMAIL_PATTERN),
    FieldRule("password", required=False),
    FieldRule("bio", required=False, allow_blank=True),
    FieldRule("image", required=False, allow_blank=True, max_length=500),
)


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def render_user(user: User, token: str) -> dict:
    """Serialise the authenticated user's own account."""
    return {
        "email": user.email,
        "token": token,
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
    }


def render_profile(user: User, following: bool = False) -> dict:
    """Serialise *user* as seen by somebody else."""
    return {
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
        "following": following,
    }


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_by_username(db: AsyncSession, username: str) -> User | None:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def get_identity_user(db: AsyncSession, identity: Identity) -> User:
    """Load the user behind *identity*; a token for a vanished user is rejected."""
    user = await db.get(User, identity.user_id)
    if user is None:
        raise Unauthenticated()
    return user


async def following_ids(
    db: AsyncSession, follower_id: int, candidate_ids: Iterable[int]
) -> set[int]:
    """Return the subset of *candidate_ids* that *follower_id* follows."""
    ids = set(candidate_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(follows.c.followee_id).where(
            follows.c.follower_id == follower_id,
            follows.c.followee_id.in_(ids),
        )
    )
    return set(result.scalars().all())


async def _ensure_available(
    db: AsyncSession,
    username: str | None = None,
    email: str | None = None,
    exclude_id: int | None = None,
) -> None:
    """Raise ``Conflict`` naming every identifier already held by another user."""
    clauses = []
    if username is not None:
        clauses.append(User.username == username)
    if email is not None:
        clauses.append(User.email == email)
    if not clauses:
        return

    q = select(User.username, User.email).where(or_(*clauses))
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    taken = []
    for row in (await db.execute(q)).all():
        if username is not None and row.username == username and "username" not in taken:
            taken.append("username")
        if email is not None and row.email == email and "email" not in taken:
            taken.append("email")
    if taken:
        raise Conflict(*taken)


async def _flush_unique(db: AsyncSession, *fields: str) -> None:
    try:
        await db.flush()
    except IntegrityError as exc:
        raise Conflict(*fields) from exc


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def register(db: AsyncSession, payload: Mapping | BaseModel | None) -> User:
    """
    Create a user account.

    The caller issues the session token; registration itself only
    persists the user.
    """
    data = validate(payload, REGISTRATION_RULES)
    await _ensure_available(db, username=data["username"], email=data["email"])

    user = User(
        username=data["username"],
        email=data["email"],
        password_hash=await run_in_threadpool(hash_password, data["password"]),
    )
    db.add(user)
    await _flush_unique(db, "username", "email")
    logger.info("Registered user id=%s username=%r", user.id, user.username)
    return user


async def login(db: AsyncSession, payload: Mapping | BaseModel | None) -> User:
    """
    Check an email/password pair.

    Presence of both fields is validated before any credential check so a
    request missing either reports the missing fields, not bad credentials.
    """
    data = validate(payload, LOGIN_RULES)
    return await authenticate(db, data["email"], data["password"])


async def get_current_user(db: AsyncSession, identity: Identity) -> User:
    return await get_identity_user(db, identity)


async def update_user(
    db: AsyncSession, identity: Identity, patch: Mapping | BaseModel | None
) -> User:
    """
    Apply the fields present in *patch* to the caller's account.

    Omitted and null fields are left unchanged.  An empty ``bio`` or
    ``image`` clears it.
    """
    data = validate(patch, UPDATE_RULES)
    user = await get_identity_user(db, identity)

    username = data.get("username")
    email = data.get("email")
    await _ensure_available(
        db,
        username=username if username != user.username else None,
        email=email if email != user.email else None,
        exclude_id=user.id,
    )

    if username is not None:
        user.username = username
    if email is not None:
        user.email = email
    if "password" in data:
        user.password_hash = await run_in_threadpool(hash_password, data["password"])
    for field in ("bio", "image"):
        if field in data:
            setattr(user, field, data[field] or None)

    if data:
        user.updated_at = utcnow()
        await _flush_unique(db, *[f for f in ("username", "email") if f in data])
        logger.info("Updated user id=%s fields=%s", user.id, sorted(data))
    return user


async def get_profile(
    db: AsyncSession, username: str, viewer: Identity | None = None
) -> dict:
    user = await get_by_username(db, username)
    if user is None:
        raise NotFound("profile")
    following = False
    if viewer is not None:
        following = user.id in await following_ids(db, viewer.user_id, [user.id])
    return render_profile(user, following)


async def follow(db: AsyncSession, identity: Identity, username: str) -> dict:
    target = await get_by_username(db, username)
    if target is None:
        raise NotFound("profile")
    if target.id == identity.user_id:
        raise InvalidOperation("username", "cannot follow yourself")

    await db.execute(
        insert_ignore(db, follows, {"follower_id": identity.user_id, "followee_id": target.id})
    )
    logger.info("User id=%s follows id=%s", identity.user_id, target.id)
    return render_profile(target, following=True)


async def unfollow(db: AsyncSession, identity: Identity, username: str) -> dict:
    target = await get_by_username(db, username)
    if target is None:
        raise NotFound("profile")
    if target.id == identity.user_id:
        raise InvalidOperation("username", "cannot unfollow yourself")

    await db.execute(
        delete(follows).where(
            follows.c.follower_id == identity.user_id,
            follows.c.followee_id == target.id,
        )
    )
    logger.info("User id=%s unfollowed id=%s", identity.user_id, target.id)
    return render_profile(target, following=False)
