"""Basic sqla-wired usage examples.

Demonstrates mapper creation, relation filters, simple loads, dotted paths,
load clauses and pivot attachments.

NOTE: This file is illustrative, it won't do anything useful without
seeded data.
"""

from __future__ import annotations

from sqla_wired import Mapper

from .models import Post, Role, User, metadata


# ── 1. Create a mapper ───────────────────────────────────────────────

mapper = Mapper.create({"url": "sqlite:///blog.db", "pool_pre_ping": True})


def setup() -> None:
    metadata.create_all(mapper.engine)


# ── 2. Filter by relations ───────────────────────────────────────────


def get_authors() -> list[User]:
    return mapper.model(User).where_relation("posts").get()


def get_users_without_roles() -> list[User]:
    return mapper.model(User).where_no_relation("roles").get()


def get_admins_posts() -> list[Post]:
    return mapper.model(Post).where_relation("author.roles", lambda q: q.filter_by(name="admin")).get()


# ── 3. Simple loads ──────────────────────────────────────────────────


def get_users_with_posts() -> list[User]:
    users = mapper.model(User).get()
    mapper.load(users, "posts")  # one query whatever the users count is
    return users


def get_users_with_all() -> list[User]:
    users = mapper.model(User).get()
    for name in ("posts", "roles", "profile"):
        mapper.load(users, name)
    return users


# ── 4. Dotted paths ─────────────────────────────────────────────────


def get_posts_with_author_profiles() -> list[Post]:
    posts = mapper.model(Post).get()
    mapper.load(posts, "author.profile")
    return posts


# ── 5. Clauses ───────────────────────────────────────────────────────


def get_users_with_senior_roles() -> list[User]:
    users = mapper.model(User).get()
    mapper.load(users, "roles", lambda q: q.where(q.c.level > 3))  # noqa: PLR2004
    return users


def get_users_with_sorted_posts() -> list[User]:
    users = mapper.model(User).get()
    mapper.load(users, "posts", lambda q: q.order_by("title"))
    return users


# ── 6. Attachments ──────────────────────────────────────────────────


def grant(users: list[User], role: Role, granted_by: str) -> None:
    mapper.attach(users, "roles", role, lambda user, role, user_index, role_index: {"granted_by": granted_by})


def replace_roles(user: User, roles: list[Role]) -> None:
    # existing rows of the kept roles stay, so granted_by survives
    mapper.set_attachments(user, "roles", roles)


def revoke_all(user: User) -> None:
    mapper.detach_all(user, "roles")
