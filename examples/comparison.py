"""Before/after comparison: raw SQLAlchemy Core vs sqla-wired.

Shows how loading users with their posts and roles looks with manual
grouping versus a couple of load calls.
"""

from __future__ import annotations

from typing import Any, Literal

import sqlalchemy as sa

from sqla_wired import Mapper

from .models import User, posts, roles, user_roles, users


UserLoad = Literal["posts", "roles"]


def get_users_raw(engine: sa.Engine, *loads: UserLoad) -> list[dict[str, Any]]:
    with engine.connect() as conn:
        result = [dict(row) for row in conn.execute(sa.select(users)).mappings()]
        ids = [row["id"] for row in result]

        if "posts" in loads:
            grouped: dict[int, list[dict[str, Any]]] = {}
            for row in conn.execute(sa.select(posts).where(posts.c.author_id.in_(ids))).mappings():
                grouped.setdefault(row["author_id"], []).append(dict(row))
            for user in result:
                user["posts"] = grouped.get(user["id"], [])

        if "roles" in loads:
            grouped = {}
            query = (
                sa.select(roles, user_roles.c.user_id)
                .join(user_roles, user_roles.c.role_id == roles.c.id)
                .where(user_roles.c.user_id.in_(ids))
            )
            for row in conn.execute(query).mappings():
                fields = dict(row)
                grouped.setdefault(fields.pop("user_id"), []).append(fields)
            for user in result:
                user["roles"] = grouped.get(user["id"], [])

    return result


def get_users_wired(mapper: Mapper, *loads: UserLoad) -> list[User]:
    result = mapper.model(User).get()
    for name in loads:
        mapper.load(result, name)
    return result
