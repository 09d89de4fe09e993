from __future__ import annotations

import pytest
import sqlalchemy as sa

from sqla_wired import (
    BelongsTo,
    HasMany,
    IncorrectModelError,
    InvalidReturnValueError,
    Model,
    NotModelError,
    RelationError,
    relation,
)

from ..models import Category, Post, Profile, Tag, User, posts


class TestFields:
    def test_columns_default_to_none(self) -> None:
        post = Post(text="Hello")

        assert post.text == "Hello"
        assert post.id is None
        assert post.author_id is None

    def test_create_from_row(self) -> None:
        user = User.create_from_row({"id": 3, "name": "Bob", "email": None, "extra": 1})

        assert user.id == 3
        assert user.name == "Bob"
        assert user.extra == 1

    def test_convert_to_row_has_table_columns_only(self) -> None:
        user = User(id=3, name="Bob")
        user.nickname = "bobby"

        assert user.convert_to_row() == {"id": 3, "name": "Bob", "email": None}

    def test_does_exist_in_database(self) -> None:
        assert User(id=1).does_exist_in_database()
        assert not User.create_empty().does_exist_in_database()

    def test_table_and_identifier(self) -> None:
        assert Post.get_table() is posts
        assert Post.get_identifier_field() == "id"

    def test_model_without_table(self) -> None:
        class Abstract(Model):
            pass

        with pytest.raises(IncorrectModelError, match="doesn't have a table"):
            Abstract()

    def test_identity_equality(self) -> None:
        assert User(id=1) != User(id=1)


class TestRelationRegistry:
    def test_relations_collected(self) -> None:
        assert set(Post.relation_names()) == {"author", "category", "tags", "later_posts"}

    def test_factories_removed_from_class(self) -> None:
        assert "author" not in vars(Post)

    def test_get_relation_is_cached(self) -> None:
        first = Post.get_relation("author")

        assert isinstance(first, BelongsTo)
        assert Post.get_relation("author") is first

    def test_missing_relation(self) -> None:
        assert Post.get_relation("fubar") is None

    def test_missing_relation_or_fail(self) -> None:
        with pytest.raises(RelationError, match=r"The relation `fubar` is not defined in the tests\.models\.Post model"):
            Post.get_relation_or_fail("fubar")

    def test_inherited_relations(self) -> None:
        class FeaturedPost(Post):
            @relation
            def co_author() -> BelongsTo:
                return BelongsTo(User, "author_id")

        assert set(FeaturedPost.relation_names()) == {"author", "category", "tags", "later_posts", "co_author"}
        assert "co_author" not in Post.__relations__

    def test_overridden_relation(self) -> None:
        class PinnedPost(Post):
            author = relation(lambda: BelongsTo(Profile, "author_id"))

        found = PinnedPost.get_relation_or_fail("author")
        assert isinstance(found, BelongsTo)
        assert found.child_model is Profile

    def test_factory_must_return_relation(self) -> None:
        class Broken(Model):
            __table__ = sa.Table("broken", sa.MetaData(), sa.Column("id", sa.Integer, primary_key=True))

            nothing = relation(lambda: "nope")

        with pytest.raises(InvalidReturnValueError):
            Broken.get_relation("nothing")

    def test_relation_requires_callable(self) -> None:
        with pytest.raises(TypeError):
            relation(42)  # type: ignore[arg-type]

    def test_relation_target_must_be_model(self) -> None:
        with pytest.raises(NotModelError):
            HasMany(dict, "author_id")  # type: ignore[arg-type]


class TestLoadedRelatives:
    def test_set_and_get(self) -> None:
        user = User(id=1)
        post = Post(id=2)
        user.set_loaded_relatives("posts", [post])

        assert user.does_have_loaded_relatives("posts")
        assert user.get_loaded_relatives("posts") == [post]
        assert user.posts == [post]

    def test_none_counts_as_loaded(self) -> None:
        post = Post(id=2)
        post.set_loaded_relatives("author", None)

        assert post.does_have_loaded_relatives("author")
        assert post.author is None

    def test_unset(self) -> None:
        post = Post(id=2)
        post.set_loaded_relatives("author", None)
        post.unset_loaded_relatives("author")

        assert not post.does_have_loaded_relatives("author")
        assert post.get_loaded_relatives("author") is None

    def test_not_loaded_relation_attribute(self) -> None:
        with pytest.raises(AttributeError, match="not loaded"):
            Post(id=2).author  # noqa: B018

    def test_unknown_attribute(self) -> None:
        with pytest.raises(AttributeError):
            Post(id=2).fubar  # noqa: B018


class TestAssociate:
    def test_associate(self) -> None:
        post = Post(id=1)
        author = User(id=6)
        post.associate("author", author)

        assert post.author_id == 6
        assert post.author is author

    def test_dissociate(self) -> None:
        post = Post(id=1, author_id=6)
        post.dissociate("author")

        assert post.author_id is None
        assert post.does_have_loaded_relatives("author")
        assert post.author is None

    def test_associate_unsaved_model(self) -> None:
        with pytest.raises(IncorrectModelError, match="perhaps it is not saved to the database"):
            Post(id=1).associate("author", User(name="Nobody"))

    def test_associate_wrong_class(self) -> None:
        with pytest.raises(IncorrectModelError):
            Post(id=1).associate("author", Tag(id=1))

    def test_associate_not_associable(self) -> None:
        with pytest.raises(
            RelationError,
            match=r"Associating is not available for the `children` relation of the tests\.models\.Category model",
        ):
            Category(id=1).associate("children", Category(id=2))
