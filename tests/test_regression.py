"""
Regression tests for consistency issues found during review.

1. A lost uniqueness race on registration must surface as a Conflict (not 500)
2. A lost slug race on article creation retries with another suffix
3. Rendering a page of articles must not issue one query per article
4. "feed" must never be resolved as an article slug
5. CORS must not set allow_credentials=true with allow_origins=*
6. End-to-end walk through the public API
"""
import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.errors import Conflict
from app.security import Identity, issue_token
from app.services import article_service, user_service


# ---------------------------------------------------------------------------
# 1. Registration race -> Conflict
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_registration_race_is_a_conflict(db_session: AsyncSession, monkeypatch):
    """
    Two registrations for the same email can both pass the pre-check.
    The loser is rejected by the unique constraint and must get Conflict.
    """
    await user_service.register(db_session, {
        "username": "winner", "email": "race@example.com", "password": "secret",
    })

    async def _pre_check_passes(*args, **kwargs):
        return None

    monkeypatch.setattr(user_service, "_ensure_available", _pre_check_passes)
    with pytest.raises(Conflict) as exc_info:
        await user_service.register(db_session, {
            "username": "loser", "email": "race@example.com", "password": "secret",
        })
    assert exc_info.value.status_code == 422
    assert "email" in exc_info.value.errors


# ---------------------------------------------------------------------------
# 2. Slug race -> retry
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_slug_race_retries_with_fresh_suffix(db_session: AsyncSession, monkeypatch):
    """
    Two creates with the same title can both see the slug as free.  The
    loser's insert is skipped and it retries with a suffixed slug.
    """
    user = await user_service.register(db_session, {
        "username": "racer", "email": "racer@example.com", "password": "secret",
    })
    identity = Identity(user_id=user.id, token=issue_token(user.id))
    payload = {"title": "Same title", "description": "d", "body": "b", "tagList": ["race"]}

    first = await article_service.create_article(db_session, identity, payload)

    async def _never_taken(db, slug):
        return False

    monkeypatch.setattr(article_service, "_slug_taken", _never_taken)
    second = await article_service.create_article(db_session, identity, payload)

    assert first["slug"] == "same-title"
    assert second["slug"].startswith("same-title-")
    assert second["tagList"] == ["race"]


@pytest.mark.asyncio
async def test_slug_race_gives_up_after_repeated_collisions(db_session: AsyncSession, monkeypatch):
    user = await user_service.register(db_session, {
        "username": "unlucky", "email": "unlucky@example.com", "password": "secret",
    })
    identity = Identity(user_id=user.id, token=issue_token(user.id))
    payload = {"title": "Same title", "description": "d", "body": "b"}

    await article_service.create_article(db_session, identity, payload)
    monkeypatch.setattr(article_service, "_slug_suffix", lambda: "deadbeef")
    await article_service.create_article(db_session, identity, payload)

    async def _never_taken(db, slug):
        return False

    monkeypatch.setattr(article_service, "_slug_taken", _never_taken)
    with pytest.raises(Conflict) as exc_info:
        await article_service.create_article(db_session, identity, payload)
    assert exc_info.value.errors == {"slug": ["has already been taken"]}


# ---------------------------------------------------------------------------
# 3. Query count does not grow with page size
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_article_list_query_count_is_constant(async_client: AsyncClient, jake_headers):
    one = await async_client.get("/api/articles", params={"limit": 1}, headers=jake_headers)
    four = await async_client.get("/api/articles", params={"limit": 4}, headers=jake_headers)
    assert len(one.json()["articles"]) == 1
    assert len(four.json()["articles"]) == 4
    assert one.headers["x-query-count"] == four.headers["x-query-count"]


@pytest.mark.asyncio
async def test_comment_list_query_count_is_constant(async_client: AsyncClient, jake_headers):
    before = await async_client.get("/api/articles/articleslug-1/comments", headers=jake_headers)
    for i in range(3):
        await async_client.post(
            "/api/articles/articleslug-1/comments",
            headers=jake_headers,
            json={"comment": {"body": f"extra {i}"}},
        )
    after = await async_client.get("/api/articles/articleslug-1/comments", headers=jake_headers)
    assert len(after.json()["comments"]) == len(before.json()["comments"]) + 3
    assert before.headers["x-query-count"] == after.headers["x-query-count"]


# ---------------------------------------------------------------------------
# 4. /articles/feed is not a slug
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_article_titled_feed_does_not_shadow_the_feed(async_client: AsyncClient, register):
    headers = await register("feeder")
    created = await async_client.post("/api/articles", headers=headers, json={"article": {
        "title": "Feed", "description": "d", "body": "b",
    }})
    assert created.json()["article"]["slug"] == "feed"

    resp = await async_client.get("/api/articles/feed")
    assert resp.status_code == 401

    resp = await async_client.get("/api/articles/feed", headers=headers)
    assert resp.status_code == 200
    assert "articles" in resp.json()


# ---------------------------------------------------------------------------
# 5. CORS headers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cors_no_credentials_with_wildcard_origin(async_client: AsyncClient):
    """
    When allow_origins=["*"], the response must NOT include
    Access-Control-Allow-Credentials: true, per the CORS specification.
    """
    resp = await async_client.options(
        "/api/articles",
        headers={
            "Origin": "https://example.com",
            "Access-Control-Request-Method": "GET",
        },
    )
    cred_header = resp.headers.get("access-control-allow-credentials", "").lower()
    assert cred_header != "true", (
        "CORS must not combine allow_origins=* with allow_credentials=true"
    )


# ---------------------------------------------------------------------------
# 6. End to end
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_end_to_end_walkthrough(async_client: AsyncClient):
    resp = await async_client.post("/api/users", json={"user": {
        "username": "jake", "email": "jake@jake.jake", "password": "jakejake",
    }})
    assert resp.status_code == 200
    jake = {"Authorization": f"Bearer {resp.json()['user']['token']}"}

    resp = await async_client.post("/api/users", json={"user": {
        "username": "reader", "email": "reader@example.com", "password": "readreads",
    }})
    reader = {"Authorization": f"Bearer {resp.json()['user']['token']}"}

    resp = await async_client.post("/api/articles", headers=jake, json={"article": {
        "title": "How to train your dragon",
        "description": "Ever wonder how?",
        "body": "You have to believe",
        "tagList": ["reactjs", "angularjs", "dragons"],
    }})
    slug = resp.json()["article"]["slug"]
    assert slug == "how-to-train-your-dragon"

    await async_client.post("/api/profiles/jake/follow", headers=reader)
    await async_client.post(f"/api/articles/{slug}/favorite", headers=reader)
    resp = await async_client.post(f"/api/articles/{slug}/comments", headers=reader, json={
        "comment": {"body": "Thank you so much!"},
    })
    comment_id = resp.json()["comment"]["id"]

    resp = await async_client.get("/api/articles/feed", headers=reader)
    article = resp.json()["articles"][0]
    assert article["slug"] == slug
    assert article["favorited"] is True
    assert article["favoritesCount"] == 1
    assert article["author"]["following"] is True

    resp = await async_client.get("/api/tags")
    assert resp.json()["tags"] == ["angularjs", "dragons", "reactjs"]

    # Only the comment's author may remove it; only the article's author
    # may remove the article, taking the comment with it.
    resp = await async_client.delete(f"/api/articles/{slug}/comments/{comment_id}", headers=jake)
    assert resp.status_code == 403
    resp = await async_client.delete(f"/api/articles/{slug}", headers=reader)
    assert resp.status_code == 403
    resp = await async_client.delete(f"/api/articles/{slug}", headers=jake)
    assert resp.status_code == 204

    resp = await async_client.get("/api/articles/feed", headers=reader)
    assert resp.json() == {"articles": [], "articlesCount": 0}
    resp = await async_client.get("/api/tags")
    assert resp.json() == {"tags": []}


@pytest.mark.asyncio
async def test_register_login_create_favorite_twice(async_client: AsyncClient):
    await async_client.post("/api/users", json={"user": {
        "username": "jake", "email": "jake@jake.jake", "password": "jakejake",
    }})
    resp = await async_client.post("/api/users/login", json={"user": {
        "email": "jake@jake.jake", "password": "jakejake",
    }})
    assert resp.status_code == 200
    headers = {"Authorization": f"Bearer {resp.json()['user']['token']}"}

    resp = await async_client.post("/api/articles", headers=headers, json={"article": {
        "title": "How to train your dragon",
        "description": "Ever wonder how?",
        "body": "You have to believe",
    }})
    assert resp.json()["article"]["favoritesCount"] == 0

    slug = resp.json()["article"]["slug"]
    resp = await async_client.post(f"/api/articles/{slug}/favorite", headers=headers)
    assert resp.json()["article"]["favoritesCount"] == 1
    resp = await async_client.post(f"/api/articles/{slug}/favorite", headers=headers)
    assert resp.json()["article"]["favoritesCount"] == 1
