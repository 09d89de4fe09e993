from __future__ import annotations

import pytest
import sqlalchemy as sa

from sqla_wired import (
    DatabaseError,
    IncorrectModelError,
    InvalidArgumentError,
    Mapper,
    MapperConfig,
    NotModelError,
    RelationError,
)

from ..models import Category, Post, User


class TestCreate:
    def test_from_url(self) -> None:
        mapper = Mapper.create("sqlite://")

        assert isinstance(mapper.engine, sa.Engine)
        assert mapper.engine.url.drivername == "sqlite"

    def test_from_mapping(self) -> None:
        mapper = Mapper.create({"url": "sqlite://", "echo": True})
        assert mapper.engine.echo is True

    def test_from_config(self) -> None:
        mapper = Mapper.create(MapperConfig(url="sqlite://"))
        assert mapper.fetch_scalar(sa.select(sa.literal(1))) == 1

    def test_wrong_config_type(self) -> None:
        with pytest.raises(InvalidArgumentError):
            Mapper.create(5)  # type: ignore[arg-type]

    def test_malformed_url(self) -> None:
        with pytest.raises(InvalidArgumentError):
            Mapper.create("not a database url")

    def test_not_a_model(self) -> None:
        with pytest.raises(NotModelError):
            Mapper.create("sqlite://").model(dict)  # type: ignore[type-var]


@pytest.mark.usefixtures("seed_data")
class TestSave:
    def test_insert(self, mapper: Mapper) -> None:
        post = Post(author_id=1, text="Hello", created_at=900)
        mapper.save(post)

        assert post.id is not None
        assert post.does_exist_in_database()
        saved = mapper.model(Post).find(post.id)
        assert saved.text == "Hello"
        assert saved.author_id == 1

    def test_update(self, mapper: Mapper) -> None:
        anny = mapper.model(User).find(1)
        anny.name = "Ann"
        mapper.save(anny)

        assert mapper.model(User).find(1).name == "Ann"
        assert mapper.model(User).count() == 5

    def test_insert_with_identifier(self, mapper: Mapper) -> None:
        mapper.save(User(id=50, name="Zed"))

        assert mapper.model(User).find(50).name == "Zed"

    def test_several(self, mapper: Mapper) -> None:
        new = [Category(title="Chess", parent_id=4), Category(title="Tennis", parent_id=4)]
        mapper.save(new)

        sport = mapper.model(Category).find(4)
        mapper.load(sport, "children")
        assert sorted(child.title for child in sport.children) == ["Chess", "Football", "Hockey", "Tennis"]

    def test_associate_then_save(self, mapper: Mapper) -> None:
        post = mapper.model(Post).find(3)
        hockey = mapper.model(Category).find(5)
        post.associate("category", hockey)
        mapper.save(post)

        assert post.category is hockey
        assert mapper.model(Post).find(3).category_id == 5

    def test_associate_unsaved(self) -> None:
        with pytest.raises(IncorrectModelError, match="not saved"):
            Post(id=3).associate("category", Category(title="New"))

    def test_associate_not_associable(self) -> None:
        with pytest.raises(RelationError, match="Associating is not available"):
            User(id=1).associate("posts", Post(id=1))


@pytest.mark.usefixtures("seed_data")
class TestDelete:
    def test_delete(self, mapper: Mapper) -> None:
        susan = mapper.model(User).find(19)
        mapper.delete(susan)

        assert susan.id is None
        assert mapper.model(User).find(19) is None
        assert mapper.model(User).count() == 4

    def test_delete_unsaved(self, mapper: Mapper, statements: list[str]) -> None:
        statements.clear()
        mapper.delete([User(name="Nobody")])

        assert statements == []


@pytest.mark.usefixtures("seed_data")
class TestRawStatements:
    def test_execute(self, mapper: Mapper) -> None:
        table = User.get_table()
        mapper.execute(sa.update(table).where(table.c.email.is_(None)).values(email="-"))

        assert mapper.model(User).filter_by(email="-").count() == 2

    def test_database_error(self, mapper: Mapper) -> None:
        with pytest.raises(DatabaseError) as info:
            mapper.fetch_rows(sa.text("SELECT * FROM nowhere"))

        assert isinstance(info.value.__cause__, sa.exc.DBAPIError)
        assert info.value.sql == "SELECT * FROM nowhere"
