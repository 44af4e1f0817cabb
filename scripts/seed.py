"""Database seeder for local development and tests.

Rows are inserted straight through the ORM, bypassing the service layer:
no validation, explicit timestamps, fixed slugs.  The service layer must
cope with data that never went through its own create operations.

Demo accounts (password in parentheses):

    jake       jake@jake.jake         (jakejake)
    johnjacob  john@jacob.com         (johnnyjacob)
    celeste    celeste@example.com    (celestial)

Articles are ``articleslug-1`` .. ``articleslug-N``; the odd ones are
Jake's, the even ones John's.  Jake follows John.
"""
import argparse
import asyncio
import random
import time
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from app.database import Base, engine, session_scope
from app.models import Article, Comment, Tag, User, favorites, follows
from app.security import hash_password

TAGS = ["dragons", "training", "reactjs", "angularjs", "python", "fastapi",
        "postgresql", "testing", "devops", "security"]

USERS = [
    {"username": "jake", "email": "jake@jake.jake", "password": "jakejake",
     "bio": "I work at statefarm", "image": "https://i.stack.imgur.com/xHWG8.jpg"},
    {"username": "johnjacob", "email": "john@jacob.com", "password": "johnnyjacob",
     "bio": None, "image": None},
    {"username": "celeste", "email": "celeste@example.com", "password": "celestial",
     "bio": "Stargazer", "image": None},
]

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


async def seed_demo_data(session: AsyncSession, num_articles: int = 4, comments_per_article: int = 2) -> dict:
    """
    Insert the demo users, articles, tags, comments and edges into
    *session* and flush.  Returns the created objects keyed by kind.
    """
    rng = random.Random(42)

    users = [
        User(
            username=u["username"],
            email=u["email"],
            password_hash=hash_password(u["password"]),
            bio=u["bio"],
            image=u["image"],
            created_at=EPOCH,
            updated_at=EPOCH,
        )
        for u in USERS
    ]
    session.add_all(users)

    tags = [Tag(name=name) for name in TAGS]
    session.add_all(tags)
    await session.flush()

    jake, john = users[0], users[1]
    articles = []
    for i in range(1, num_articles + 1):
        created = EPOCH + timedelta(hours=i)
        article = Article(
            slug=f"articleslug-{i}",
            title=f"Article title {i}",
            description=f"Article description {i}",
            body=f"Article body {i}",
            author_id=(jake if i % 2 else john).id,
            created_at=created,
            updated_at=created,
        )
        article.tags = rng.sample(tags, k=rng.randint(1, 3))
        articles.append(article)
    session.add_all(articles)
    await session.flush()

    comments = []
    for article in articles:
        for j in range(comments_per_article):
            created = article.created_at + timedelta(minutes=j + 1)
            comments.append(
                Comment(
                    body=f"Comment {j + 1} on {article.slug}",
                    article_id=article.id,
                    author_id=users[j % len(users)].id,
                    created_at=created,
                    updated_at=created,
                )
            )
    session.add_all(comments)

    await session.execute(follows.insert().values(follower_id=jake.id, followee_id=john.id))
    if articles:
        await session.execute(
            favorites.insert().values(user_id=john.id, article_id=articles[0].id)
        )
    await session.flush()

    return {"users": users, "tags": tags, "articles": articles, "comments": comments}


async def seed(num_articles: int, comments_per_article: int) -> None:
    print(f"Seeding: {len(USERS)} users, {num_articles} articles, "
          f"{num_articles * comments_per_article} comments")
    start = time.perf_counter()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with session_scope() as session:
        await seed_demo_data(session, num_articles, comments_per_article)

    await engine.dispose()
    print(f"Seeding complete in {time.perf_counter() - start:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Seed the Conduit database with demo data")
    parser.add_argument("--articles", type=int, default=20, help="Number of articles to create")
    parser.add_argument("--comments", type=int, default=2, help="Comments per article")
    args = parser.parse_args()
    asyncio.run(seed(args.articles, args.comments))


if __name__ == "__main__":
    main()
