"""
Article service — business logic for the Article aggregate.

Design notes
------------
- The slug is derived from the title once, at creation, and never
  recomputed.  A colliding slug gets an ``-<8 hex>`` suffix taken from a
  fresh UUID.  The row is written with ``INSERT ... ON CONFLICT DO
  NOTHING``, so a concurrent create that takes the slug first only costs
  another suffix; ``Conflict`` is raised once ``SLUG_ATTEMPTS`` run out.
- Only the author may update or delete an article.  Deletion removes the
  article's comments, favorite edges and tag links explicitly, each with a
  bulk ``DELETE`` inside the request transaction, so a retried delete
  finds nothing left to remove instead of failing.
- Rendering an article needs the viewer's favorite set and follow set;
  those come from ``favorite_service`` and ``user_service`` in one query
  each per page, never per article.
- Service functions flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency in the router layer.
"""
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Mapping, Sequence

from pydantic import BaseModel
from sqlalchemy import Select, delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from app.dialects import insert_ignore
from app.errors import Conflict, Forbidden, NotFound
from app.models import Article, Comment, Tag, User, article_tags, favorites, follows, utcnow
from app.security import Identity
from app.services import favorite_service, user_service
from app.validation import FieldRule, clean_tags, validate

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

SLUG_ATTEMPTS = 5

CREATE_RULES = (
    FieldRule("title", max_length=300),
    FieldRule("description"),
    FieldRule("body"),
    FieldRule("tagList", required=False, kind=list, max_length=100),
)

UPDATE_RULES = (
    FieldRule("title", required=False, max_length=300),
    FieldRule("description", required=False),
    FieldRule("body", required=False),
    FieldRule("tagList", required=False, kind=list, max_length=100),
)


def slugify(text: str) -> str:
    """Return a URL-safe, lowercase slug derived from *text*."""
    text = _SLUG_STRIP_RE.sub("", text.lower().strip())
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def _slug_suffix() -> str:
    return uuid.uuid4().hex[:8]


def _suffixed(base: str) -> str:
    return f"{base}-{_slug_suffix()}" if base else _slug_suffix()


def isoformat(value: datetime | None) -> str | None:
    """Render a timestamp as ISO-8601 UTC with millisecond precision."""
    if value is None:
        return None
    if value.tzinfo is None:
        # SQLite hands back naive datetimes; everything is stored as UTC.
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


async def _slug_taken(db: AsyncSession, slug: str) -> bool:
    result = await db.execute(select(Article.id).where(Article.slug == slug))
    return result.first() is not None


async def _unique_slug(db: AsyncSession, title: str) -> str:
    base = slugify(title)
    slug = base or _slug_suffix()
    while await _slug_taken(db, slug):
        slug = _suffixed(base)
    return slug


async def _resolve_tags(db: AsyncSession, tag_names: list[str]) -> list[Tag]:
    """
    Return Tag ORM instances for each name in *tag_names*, creating any
    that do not yet exist.  Inserts skip names another request created
    concurrently.
    """
    if not tag_names:
        return []
    for name in tag_names:
        await db.execute(insert_ignore(db, Tag.__table__, {"name": name}))
    result = await db.execute(select(Tag).where(Tag.name.in_(tag_names)))
    by_name = {tag.name: tag for tag in result.scalars().all()}
    return [by_name[name] for name in tag_names]


def _with_relations(q: Select) -> Select:
    return q.options(joinedload(Article.author), selectinload(Article.tags))


async def get_article_model(db: AsyncSession, slug: str) -> Article:
    """Load the article for *slug* with author and tags, or raise ``NotFound``."""
    result = await db.execute(_with_relations(select(Article).where(Article.slug == slug)))
    article = result.unique().scalar_one_or_none()
    if article is None:
        raise NotFound("article")
    return article


# ---------------------------------------------------------------------------
# Serialisation helpers
# ---------------------------------------------------------------------------

def _article_to_dict(
    article: Article, favorited: bool, favorites_count: int, following: bool
) -> dict:
    return {
        "slug": article.slug,
        "title": article.title,
        "description": article.description,
        "body": article.body,
        "tagList": sorted(tag.name for tag in article.tags),
        "createdAt": isoformat(article.created_at),
        "updatedAt": isoformat(article.updated_at),
        "favorited": favorited,
        "favoritesCount": favorites_count,
        "author": user_service.render_profile(article.author, following),
    }


async def render_articles(
    db: AsyncSession, articles: Sequence[Article], viewer: Identity | None = None
) -> list[dict]:
    """Serialise *articles* relative to *viewer* with three queries at most."""
    ids = [a.id for a in articles]
    counts = await favorite_service.favorite_counts(db, ids)
    favorited: set[int] = set()
    following: set[int] = set()
    if viewer is not None and ids:
        favorited = await favorite_service.favorited_ids(db, viewer.user_id, ids)
        following = await user_service.following_ids(
            db, viewer.user_id, {a.author_id for a in articles}
        )
    return [
        _article_to_dict(
            a,
            favorited=a.id in favorited,
            favorites_count=counts.get(a.id, 0),
            following=a.author_id in following,
        )
        for a in articles
    ]


async def render_article(
    db: AsyncSession, article: Article, viewer: Identity | None = None
) -> dict:
    return (await render_articles(db, [article], viewer))[0]


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def _list(
    db: AsyncSession,
    q: Select,
    limit: int,
    offset: int,
    viewer: Identity | None,
) -> dict:
    """Count and page *q* newest-first; ties fall back to insertion order."""
    total: int = (
        await db.execute(select(func.count()).select_from(q.subquery()))
    ).scalar_one()

    page_q = (
        _with_relations(q)
        .order_by(Article.created_at.desc(), Article.id.desc())
        .offset(offset)
        .limit(limit)
    )
    articles = (await db.execute(page_q)).unique().scalars().all()
    return {
        "articles": await render_articles(db, articles, viewer),
        "articlesCount": total,
    }


async def list_articles(
    db: AsyncSession,
    tag: str | None = None,
    author: str | None = None,
    favorited: str | None = None,
    limit: int = 20,
    offset: int = 0,
    viewer: Identity | None = None,
) -> dict:
    """
    Return articles matching every given filter.

    *tag* is a tag name, *author* the author's username and *favorited*
    the username of a user who favorited the article.
    """
    q = select(Article)
    if tag:
        q = q.where(Article.tags.any(Tag.name == tag))
    if author:
        q = q.where(Article.author.has(User.username == author))
    if favorited:
        q = q.where(
            Article.id.in_(
                select(favorites.c.article_id)
                .join(User, User.id == favorites.c.user_id)
                .where(User.username == favorited)
            )
        )
    return await _list(db, q, limit, offset, viewer)


async def feed(
    db: AsyncSession, identity: Identity, limit: int = 20, offset: int = 0
) -> dict:
    """Articles written by the users *identity* follows, newest first."""
    followed = select(follows.c.followee_id).where(follows.c.follower_id == identity.user_id)
    q = select(Article).where(Article.author_id.in_(followed))
    return await _list(db, q, limit, offset, identity)


async def get_article(
    db: AsyncSession, slug: str, viewer: Identity | None = None
) -> dict:
    article = await get_article_model(db, slug)
    return await render_article(db, article, viewer)


async def _insert_article(db: AsyncSession, values: dict) -> int | None:
    """Insert one article row; ``None`` when its slug is already taken."""
    stmt = insert_ignore(db, Article.__table__, values).returning(Article.id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def create_article(
    db: AsyncSession, identity: Identity, payload: Mapping | BaseModel | None
) -> dict:
    """Create an article owned by *identity* and return it rendered."""
    data = validate(payload, CREATE_RULES)
    author = await user_service.get_identity_user(db, identity)
    tags = await _resolve_tags(db, clean_tags(data.get("tagList")))

    base = slugify(data["title"])
    slug = await _unique_slug(db, data["title"])
    values = {
        "title": data["title"],
        "description": data["description"],
        "body": data["body"],
        "author_id": author.id,
    }
    for _ in range(SLUG_ATTEMPTS):
        article_id = await _insert_article(db, {**values, "slug": slug})
        if article_id is not None:
            break
        logger.info("Slug %r taken concurrently, retrying", slug)
        slug = _suffixed(base)
    else:
        raise Conflict("slug")

    if tags:
        await db.execute(
            article_tags.insert(),
            [{"article_id": article_id, "tag_id": tag.id} for tag in tags],
        )

    logger.info("Article created slug=%r author_id=%s", slug, author.id)
    return await render_article(db, await get_article_model(db, slug), identity)


async def update_article(
    db: AsyncSession, identity: Identity, slug: str, patch: Mapping | BaseModel | None
) -> dict:
    """
    Partially update the article at *slug*.

    Only the author may update.  The slug is kept even when the title
    changes, so links to the article stay valid.
    """
    data = validate(patch, UPDATE_RULES)
    article = await get_article_model(db, slug)
    if article.author_id != identity.user_id:
        raise Forbidden("article")

    for field in ("title", "description", "body"):
        if field in data:
            setattr(article, field, data[field])
    if "tagList" in data:
        article.tags = await _resolve_tags(db, clean_tags(data["tagList"]))

    if data:
        article.updated_at = utcnow()
        await db.flush()
        logger.info("Article updated slug=%r fields=%s", slug, sorted(data))
    return await render_article(db, article, identity)


async def delete_article(db: AsyncSession, identity: Identity, slug: str) -> None:
    """Delete the article at *slug* together with its comments and edges."""
    result = await db.execute(select(Article).where(Article.slug == slug))
    article = result.scalar_one_or_none()
    if article is None:
        raise NotFound("article")
    if article.author_id != identity.user_id:
        raise Forbidden("article")

    article_id = article.id
    await db.execute(delete(Comment).where(Comment.article_id == article_id))
    await db.execute(delete(favorites).where(favorites.c.article_id == article_id))
    await db.execute(delete(article_tags).where(article_tags.c.article_id == article_id))
    await db.execute(delete(Article).where(Article.id == article_id))
    logger.info("Article deleted slug=%r", slug)


async def get_tags(db: AsyncSession) -> list[str]:
    """Distinct names of tags attached to at least one article, ascending."""
    q = (
        select(Tag.name)
        .join(article_tags, article_tags.c.tag_id == Tag.id)
        .distinct()
        .order_by(Tag.name)
    )
    return list((await db.execute(q)).scalars().all())
