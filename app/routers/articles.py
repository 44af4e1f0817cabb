from fastapi import APIRouter, Depends, Response

from app.config import settings
from app.dependencies import CurrentIdentity, OptionalIdentity, PaginationParams, Session
from app.schemas import (
    ArticleCreateRequest,
    ArticleResponse,
    ArticleUpdateRequest,
    CommentCreateRequest,
    CommentResponse,
    MultipleArticlesResponse,
    MultipleCommentsResponse,
)
from app.services import article_service, comment_service, favorite_service

router = APIRouter(prefix=f"{settings.API_PREFIX}/articles", tags=["articles"])


@router.get("", response_model=MultipleArticlesResponse)
async def list_articles(
    viewer: OptionalIdentity,
    db: Session,
    tag: str | None = None,
    author: str | None = None,
    favorited: str | None = None,
    pagination: PaginationParams = Depends(),
):
    return await article_service.list_articles(
        db,
        tag=tag,
        author=author,
        favorited=favorited,
        limit=pagination.limit,
        offset=pagination.offset,
        viewer=viewer,
    )


# Declared before "/{slug}" so "feed" is not taken for a slug.
@router.get("/feed", response_model=MultipleArticlesResponse)
async def feed(
    identity: CurrentIdentity,
    db: Session,
    pagination: PaginationParams = Depends(),
):
    return await article_service.feed(db, identity, pagination.limit, pagination.offset)


@router.post("", response_model=ArticleResponse)
async def create_article(data: ArticleCreateRequest, identity: CurrentIdentity, db: Session):
    return {"article": await article_service.create_article(db, identity, data.article)}


@router.get("/{slug}", response_model=ArticleResponse)
async def get_article(slug: str, viewer: OptionalIdentity, db: Session):
    return {"article": await article_service.get_article(db, slug, viewer)}


@router.put("/{slug}", response_model=ArticleResponse)
async def update_article(
    slug: str, data: ArticleUpdateRequest, identity: CurrentIdentity, db: Session
):
    return {"article": await article_service.update_article(db, identity, slug, data.article)}


@router.delete("/{slug}", status_code=204)
async def delete_article(slug: str, identity: CurrentIdentity, db: Session):
    await article_service.delete_article(db, identity, slug)
    return Response(status_code=204)


# --- Favorites ---

@router.post("/{slug}/favorite", response_model=ArticleResponse)
async def favorite_article(slug: str, identity: CurrentIdentity, db: Session):
    return {"article": await favorite_service.favorite(db, identity, slug)}


@router.delete("/{slug}/favorite", response_model=ArticleResponse)
async def unfavorite_article(slug: str, identity: CurrentIdentity, db: Session):
    return {"article": await favorite_service.unfavorite(db, identity, slug)}


# --- Comments ---

@router.get("/{slug}/comments", response_model=MultipleCommentsResponse)
async def list_comments(slug: str, viewer: OptionalIdentity, db: Session):
    return {"comments": await comment_service.get_comments(db, slug, viewer)}


@router.post("/{slug}/comments", response_model=CommentResponse)
async def add_comment(
    slug: str, data: CommentCreateRequest, identity: CurrentIdentity, db: Session
):
    return {"comment": await comment_service.add_comment(db, identity, slug, data.comment)}


@router.delete("/{slug}/comments/{comment_id}", status_code=204)
async def delete_comment(slug: str, comment_id: int, identity: CurrentIdentity, db: Session):
    await comment_service.delete_comment(db, identity, slug, comment_id)
    return Response(status_code=204)
