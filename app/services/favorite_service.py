"""
Favorite service — the (user, article) favorite edge set.

``favoritesCount`` is never stored; it is always the number of edges for
the article.  Adding an edge that exists, or removing one that does not,
is a successful no-op.
"""
import logging
from typing import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.dialects import insert_ignore
from app.models import favorites
from app.security import Identity
from app.services import article_service

logger = logging.getLogger(__name__)


async def favorite_counts(db: AsyncSession, article_ids: Iterable[int]) -> dict[int, int]:
    """Map each article id that has favorites to its edge count."""
    ids = list(article_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(favorites.c.article_id, func.count())
        .where(favorites.c.article_id.in_(ids))
        .group_by(favorites.c.article_id)
    )
    return {article_id: count for article_id, count in result.all()}


async def favorited_ids(
    db: AsyncSession, user_id: int, article_ids: Iterable[int]
) -> set[int]:
    """Return the subset of *article_ids* that *user_id* has favorited."""
    ids = list(article_ids)
    if not ids:
        return set()
    result = await db.execute(
        select(favorites.c.article_id).where(
            favorites.c.user_id == user_id,
            favorites.c.article_id.in_(ids),
        )
    )
    return set(result.scalars().all())


async def favorite(db: AsyncSession, identity: Identity, slug: str) -> dict:
    article = await article_service.get_article_model(db, slug)
    await db.execute(
        insert_ignore(db, favorites, {"user_id": identity.user_id, "article_id": article.id})
    )
    logger.info("User id=%s favorited slug=%r", identity.user_id, slug)
    return await article_service.render_article(db, article, identity)


async def unfavorite(db: AsyncSession, identity: Identity, slug: str) -> dict:
    article = await article_service.get_article_model(db, slug)
    await db.execute(
        delete(favorites).where(
            favorites.c.user_id == identity.user_id,
            favorites.c.article_id == article.id,
        )
    )
    logger.info("User id=%s unfavorited slug=%r", identity.user_id, slug)
    return await article_service.render_article(db, article, identity)
