"""Read/write operations over users, posts, comments and likes.

Every write takes the caller's ``AsyncSession``, runs inside a SAVEPOINT and
ends by committing the session's transaction. A failed write rolls back only
its own savepoint, so objects the caller already holds stay loaded, and the
error surfaces as a :mod:`blogstore.errors` type.

Updates are single ``UPDATE .. RETURNING`` statements and deletes single
``DELETE`` statements; deletes rely on the schema's ``ON DELETE CASCADE``
foreign keys, so a parent and all of its dependents go away together or not
at all.

Reads refresh objects already present in the session, so a long-lived
session sees rows written by other sessions once its own transaction has
ended.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, delete, desc, func, insert, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from blogstore.errors import NotFound, StoreError, translate_integrity_error
from blogstore.models import Comment, Like, Post, User

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


# Marks an update argument the caller did not pass, so that None can still mean "clear".
UNSET: Any = _Unset()


def _now_utc() -> datetime:
    return datetime.now(tz=timezone.utc)


def _page_bounds(page: int, limit: int) -> tuple[int, int]:
    limit = max(1, min(limit, MAX_PAGE_SIZE))
    page = max(1, page)
    return (page - 1) * limit, limit


def _fresh(q: Select) -> Select:
    return q.execution_options(populate_existing=True)


@asynccontextmanager
async def _transaction(db: AsyncSession, action: str) -> AsyncIterator[None]:
    try:
        async with db.begin_nested():
            yield
            await db.flush()
    except IntegrityError as e:
        err = translate_integrity_error(e)
        logger.warning("%s failed: %s", action, err)
        await db.commit()
        raise err from e
    except StoreError:
        await db.commit()
        raise
    except Exception:
        await db.rollback()
        raise
    await db.commit()


# Users


async def create_user(
    db: AsyncSession,
    *,
    name: str,
    username: str,
    email: str,
    password: str,
    bio: str | None = None,
) -> User:
    user = User(name=name, username=username, email=email, password=password, bio=bio)
    async with _transaction(db, f"create user {username!r}"):
        db.add(user)
    await db.refresh(user)
    logger.info("Created user %s (%s)", user.id, user.username)
    return user


async def get_user(
    db: AsyncSession,
    *,
    user_id: uuid.UUID | None = None,
    username: str | None = None,
    email: str | None = None,
) -> User | None:
    if user_id is not None:
        q = select(User).where(User.id == user_id)
    elif username is not None:
        q = select(User).where(User.username == username)
    elif email is not None:
        q = select(User).where(User.email == email)
    else:
        return None
    return await db.scalar(_fresh(q.limit(1)))


async def list_users(db: AsyncSession, *, page: int = 1, limit: int = 10) -> list[User]:
    offset, limit = _page_bounds(page, limit)
    result = await db.scalars(
        _fresh(select(User).order_by(desc(User.created_at), desc(User.id)).offset(offset).limit(limit))
    )
    return list(result.all())


async def _update_user_row(db: AsyncSession, user_id: uuid.UUID, action: str, values: dict[str, Any]) -> User:
    stmt = update(User).where(User.id == user_id).values(**values, updated_at=_now_utc()).returning(User)
    async with _transaction(db, action):
        user = (await db.scalars(stmt)).one_or_none()
        if user is None:
            raise NotFound("user", user_id)
    return user


async def update_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    name: str = UNSET,
    username: str = UNSET,
    email: str = UNSET,
    bio: str | None = UNSET,
) -> User:
    changes = {
        field: value
        for field, value in (("name", name), ("username", username), ("email", email), ("bio", bio))
        if value is not UNSET
    }
    user = await _update_user_row(db, user_id, f"update user {user_id}", changes)
    logger.info("Updated user %s (%s)", user_id, ", ".join(sorted(changes)) or "touch")
    return user


async def update_user_password(db: AsyncSession, user_id: uuid.UUID, password: str) -> User:
    user = await _update_user_row(db, user_id, f"update password for user {user_id}", {"password": password})
    logger.info("Updated credential for user %s", user_id)
    return user


async def delete_user(db: AsyncSession, user_id: uuid.UUID) -> None:
    async with _transaction(db, f"delete user {user_id}"):
        result = await db.execute(delete(User).where(User.id == user_id))
        if result.rowcount == 0:
            raise NotFound("user", user_id)
    logger.info("Deleted user %s with posts, comments and likes", user_id)


# Posts


async def create_post(db: AsyncSession, *, author_id: uuid.UUID, title: str, content: str) -> Post:
    post = Post(author_id=author_id, title=title, content=content)
    async with _transaction(db, f"create post by {author_id}"):
        db.add(post)
    await db.refresh(post)
    logger.info("Created post %s by %s", post.id, author_id)
    return post


async def get_post(db: AsyncSession, post_id: uuid.UUID) -> Post | None:
    return await db.scalar(_fresh(select(Post).where(Post.id == post_id)))


async def list_posts(db: AsyncSession, *, page: int = 1, limit: int = 10) -> list[Post]:
    offset, limit = _page_bounds(page, limit)
    result = await db.scalars(
        _fresh(select(Post).order_by(desc(Post.created_at), desc(Post.id)).offset(offset).limit(limit))
    )
    return list(result.all())


async def list_user_posts(db: AsyncSession, author_id: uuid.UUID) -> list[Post]:
    result = await db.scalars(
        _fresh(select(Post).where(Post.author_id == author_id).order_by(desc(Post.created_at), desc(Post.id)))
    )
    return list(result.all())


async def update_post(
    db: AsyncSession,
    post_id: uuid.UUID,
    *,
    title: str = UNSET,
    content: str = UNSET,
    author_id: uuid.UUID | None = None,
) -> Post:
    """Change a post's title and/or content.

    With ``author_id`` the post must belong to that user; a post owned by
    someone else is reported as ``NotFound`` rather than revealing it exists.
    """
    values: dict[str, Any] = {"updated_at": _now_utc()}
    if title is not UNSET:
        values["title"] = title
    if content is not UNSET:
        values["content"] = content

    stmt = update(Post).where(Post.id == post_id)
    if author_id is not None:
        stmt = stmt.where(Post.author_id == author_id)
    stmt = stmt.values(**values).returning(Post)

    async with _transaction(db, f"update post {post_id}"):
        post = (await db.scalars(stmt)).one_or_none()
        if post is None:
            raise NotFound("post", post_id)
    logger.info("Updated post %s", post_id)
    return post


async def delete_post(db: AsyncSession, post_id: uuid.UUID, *, author_id: uuid.UUID | None = None) -> None:
    q = delete(Post).where(Post.id == post_id)
    if author_id is not None:
        q = q.where(Post.author_id == author_id)
    async with _transaction(db, f"delete post {post_id}"):
        result = await db.execute(q)
        if result.rowcount == 0:
            raise NotFound("post", post_id)
    logger.info("Deleted post %s with comments and likes", post_id)


# Comments


async def create_comment(
    db: AsyncSession, *, post_id: uuid.UUID, user_id: uuid.UUID, content: str
) -> Comment:
    comment = Comment(post_id=post_id, user_id=user_id, content=content)
    async with _transaction(db, f"create comment on post {post_id}"):
        db.add(comment)
    await db.refresh(comment)
    logger.info("Created comment %s on post %s by %s", comment.id, post_id, user_id)
    return comment


async def list_comments(db: AsyncSession, post_id: uuid.UUID) -> list[Comment]:
    result = await db.scalars(
        _fresh(
            select(Comment)
            .where(Comment.post_id == post_id)
            .order_by(Comment.created_at.asc(), Comment.id.asc())
        )
    )
    return list(result.all())


async def update_comment(db: AsyncSession, comment_id: uuid.UUID, *, content: str) -> Comment:
    stmt = (
        update(Comment)
        .where(Comment.id == comment_id)
        .values(content=content, updated_at=_now_utc())
        .returning(Comment)
    )
    async with _transaction(db, f"update comment {comment_id}"):
        comment = (await db.scalars(stmt)).one_or_none()
        if comment is None:
            raise NotFound("comment", comment_id)
    logger.info("Updated comment %s", comment_id)
    return comment


async def delete_comment(db: AsyncSession, comment_id: uuid.UUID) -> None:
    async with _transaction(db, f"delete comment {comment_id}"):
        result = await db.execute(delete(Comment).where(Comment.id == comment_id))
        if result.rowcount == 0:
            raise NotFound("comment", comment_id)
    logger.info("Deleted comment %s", comment_id)


# Likes


async def create_like(db: AsyncSession, *, user_id: uuid.UUID, post_id: uuid.UUID) -> Like:
    # INSERT .. RETURNING so a repeated pair fails in the database, not in the identity map.
    stmt = insert(Like).values(user_id=user_id, post_id=post_id).returning(Like)
    async with _transaction(db, f"like post {post_id} by {user_id}"):
        like = (await db.scalars(stmt)).one()
    logger.info("User %s liked post %s", user_id, post_id)
    return like


async def delete_like(db: AsyncSession, *, user_id: uuid.UUID, post_id: uuid.UUID) -> None:
    async with _transaction(db, f"unlike post {post_id} by {user_id}"):
        result = await db.execute(delete(Like).where(Like.user_id == user_id, Like.post_id == post_id))
        if result.rowcount == 0:
            raise NotFound("like", (user_id, post_id))
    logger.info("User %s unliked post %s", user_id, post_id)


async def count_likes(db: AsyncSession, post_id: uuid.UUID) -> int:
    count = await db.scalar(select(func.count()).select_from(Like).where(Like.post_id == post_id))
    return int(count or 0)


async def has_liked(db: AsyncSession, *, user_id: uuid.UUID, post_id: uuid.UUID) -> bool:
    found = await db.scalar(
        select(Like.user_id).where(Like.user_id == user_id, Like.post_id == post_id).limit(1)
    )
    return found is not None
