"""Minimal models for sqla-wired examples."""

from __future__ import annotations

import sqlalchemy as sa

from sqla_wired import BelongsTo, BelongsToMany, CompareColumns, HasMany, HasOne, Model, relation


metadata = sa.MetaData()

users = sa.Table(
    "users",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("name", sa.String(100)),
)

profiles = sa.Table(
    "profiles",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("user_id", sa.ForeignKey("users.id")),
    sa.Column("bio", sa.Text),
)

categories = sa.Table(
    "categories",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("parent_id", sa.Integer),
    sa.Column("title", sa.String(100)),
)

posts = sa.Table(
    "posts",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("title", sa.String(200)),
    sa.Column("author_id", sa.ForeignKey("users.id")),
    sa.Column("category_id", sa.ForeignKey("categories.id")),
    sa.Column("published_at", sa.DateTime),
)

roles = sa.Table(
    "roles",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("name", sa.String(50)),
    sa.Column("level", sa.Integer, default=0),
)

user_roles = sa.Table(
    "user_roles",
    metadata,
    sa.Column("id", sa.Integer, primary_key=True),
    sa.Column("user_id", sa.ForeignKey("users.id")),
    sa.Column("role_id", sa.ForeignKey("roles.id")),
    sa.Column("granted_by", sa.String(100)),
)


class User(Model):
    __table__ = users

    posts = relation(lambda: HasMany(Post, "author_id"))
    profile = relation(lambda: HasOne(Profile, "user_id"))
    roles = relation(lambda: BelongsToMany(Role, "user_id", "user_roles", "role_id"))


class Profile(Model):
    __table__ = profiles

    user = relation(lambda: BelongsTo(User, "user_id"))


class Category(Model):
    __table__ = categories

    parent = relation(lambda: BelongsTo(Category, "parent_id"))
    children = relation(lambda: HasMany(Category, "parent_id"))
    posts = relation(lambda: HasMany(Post, "category_id"))


class Post(Model):
    __table__ = posts

    author = relation(lambda: BelongsTo(User, "author_id"))
    category = relation(lambda: BelongsTo(Category, "category_id"))
    # everything published after this post
    newer = relation(lambda: CompareColumns("published_at", "<", Post, "published_at"))


class Role(Model):
    __table__ = roles

    users = relation(lambda: BelongsToMany(User, "role_id", user_roles, "user_id"))
