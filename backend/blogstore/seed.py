from __future__ import annotations

import argparse
import asyncio
import logging
import random
import time
import uuid

from faker import Faker
from sqlalchemy.ext.asyncio import AsyncSession

from blogstore import store
from blogstore.db import create_schema, make_engine, make_session_factory
from blogstore.errors import UniqueConstraintViolation
from blogstore.logging_setup import setup_logging
from blogstore.settings import settings

logger = logging.getLogger("seed")

fake = Faker()


async def seed(
    database_url: str,
    *,
    num_users: int,
    num_posts: int,
    num_comments: int,
    num_likes: int,
    create_tables: bool = False,
) -> dict[str, int]:
    engine = make_engine(database_url)
    try:
        if create_tables:
            await create_schema(engine)
        async with make_session_factory(engine)() as db:
            return await _populate(
                db, num_users=num_users, num_posts=num_posts, num_comments=num_comments, num_likes=num_likes
            )
    finally:
        await engine.dispose()


async def _populate(
    db: AsyncSession, *, num_users: int, num_posts: int, num_comments: int, num_likes: int
) -> dict[str, int]:
    counts = {"users": 0, "posts": 0, "comments": 0, "likes": 0}

    user_ids: list[uuid.UUID] = []
    post_ids: list[uuid.UUID] = []
    logger.info("Seeding %d users...", num_users)
    for _ in range(num_users):
        user = await store.create_user(
            db,
            name=fake.name(),
            username=fake.unique.user_name(),
            email=fake.unique.email(),
            bio=fake.sentence() if random.random() < 0.5 else None,
            # Placeholder credential; real ones are encoded by the caller.
            password=fake.sha256(),
        )
        user_ids.append(user.id)
    counts["users"] = len(user_ids)

    if user_ids:
        logger.info("Seeding %d posts...", num_posts)
        for _ in range(num_posts):
            post = await store.create_post(
                db,
                author_id=random.choice(user_ids),
                title=fake.sentence(nb_words=6).rstrip("."),
                content=fake.text(),
            )
            post_ids.append(post.id)
    counts["posts"] = len(post_ids)

    if post_ids:
        logger.info("Seeding %d comments...", num_comments)
        for _ in range(num_comments):
            await store.create_comment(
                db, post_id=random.choice(post_ids), user_id=random.choice(user_ids), content=fake.paragraph()
            )
            counts["comments"] += 1

        logger.info("Seeding up to %d likes...", num_likes)
        for _ in range(num_likes):
            try:
                await store.create_like(db, user_id=random.choice(user_ids), post_id=random.choice(post_ids))
            except UniqueConstraintViolation:
                # Random pairs repeat; the store rejects them and we move on.
                continue
            counts["likes"] += 1

    return counts


def main() -> None:
    parser = argparse.ArgumentParser(description="Fill the blog database with fake users, posts, comments and likes.")
    parser.add_argument("--database-url", default=settings.database_url)
    parser.add_argument("--users", type=int, default=20)
    parser.add_argument("--posts", type=int, default=100)
    parser.add_argument("--comments", type=int, default=300)
    parser.add_argument("--likes", type=int, default=500)
    parser.add_argument("--create-tables", action="store_true", help="create tables from the models before seeding")
    args = parser.parse_args()

    setup_logging(settings.log_level)
    start_time = time.time()
    counts = asyncio.run(
        seed(
            args.database_url,
            num_users=args.users,
            num_posts=args.posts,
            num_comments=args.comments,
            num_likes=args.likes,
            create_tables=args.create_tables,
        )
    )
    logger.info("Seeded %s in %.2f seconds", counts, time.time() - start_time)


if __name__ == "__main__":
    main()
