"""
Comment service — comments on an article.

Any authenticated user may comment; only a comment's author may delete
it.  A comment is addressed through its article's slug, and a comment id
that belongs to a different article is treated as unknown.
"""
import logging
from typing import Mapping

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from app.errors import Forbidden, NotFound
from app.models import Article, Comment
from app.security import Identity
from app.services import article_service, user_service
from app.validation import FieldRule, validate

logger = logging.getLogger(__name__)

COMMENT_RULES = (FieldRule("body"),)

# Comment ids are 32-bit serials; anything outside never names a row.
MAX_COMMENT_ID = 2**31 - 1


def _comment_to_dict(comment: Comment, following: bool) -> dict:
    return {
        "id": comment.id,
        "body": comment.body,
        "createdAt": article_service.isoformat(comment.created_at),
        "updatedAt": article_service.isoformat(comment.updated_at),
        "author": user_service.render_profile(comment.author, following),
    }


async def _get_article_id(db: AsyncSession, slug: str) -> int:
    result = await db.execute(select(Article.id).where(Article.slug == slug))
    article_id = result.scalar_one_or_none()
    if article_id is None:
        raise NotFound("article")
    return article_id


async def add_comment(
    db: AsyncSession,
    identity: Identity,
    slug: str,
    payload: Mapping | BaseModel | None,
) -> dict:
    """Append a comment by *identity* to the article at *slug*."""
    article_id = await _get_article_id(db, slug)
    data = validate(payload, COMMENT_RULES)
    author = await user_service.get_identity_user(db, identity)

    comment = Comment(body=data["body"], article_id=article_id, author=author)
    db.add(comment)
    await db.flush()

    logger.info("Comment id=%s added to slug=%r", comment.id, slug)
    # Nobody follows themselves.
    return _comment_to_dict(comment, following=False)


async def get_comments(
    db: AsyncSession, slug: str, viewer: Identity | None = None
) -> list[dict]:
    """Return the article's comments oldest first."""
    article_id = await _get_article_id(db, slug)
    result = await db.execute(
        select(Comment)
        .where(Comment.article_id == article_id)
        .options(joinedload(Comment.author))
        .order_by(Comment.created_at.asc(), Comment.id.asc())
    )
    comments = result.scalars().all()

    following: set[int] = set()
    if viewer is not None:
        following = await user_service.following_ids(
            db, viewer.user_id, {c.author_id for c in comments}
        )
    return [_comment_to_dict(c, c.author_id in following) for c in comments]


async def delete_comment(
    db: AsyncSession, identity: Identity, slug: str, comment_id: int
) -> None:
    article_id = await _get_article_id(db, slug)
    if not 1 <= comment_id <= MAX_COMMENT_ID:
        raise NotFound("comment")
    result = await db.execute(
        select(Comment.article_id, Comment.author_id).where(Comment.id == comment_id)
    )
    row = result.first()
    if row is None or row.article_id != article_id:
        raise NotFound("comment")
    if row.author_id != identity.user_id:
        raise Forbidden("comment")

    await db.execute(delete(Comment).where(Comment.id == comment_id))
    logger.info("Comment id=%s deleted from slug=%r", comment_id, slug)
