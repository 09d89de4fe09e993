from __future__ import annotations

from typing import Any

import pytest

from sqla_wired import IncorrectQueryError, InvalidArgumentError, Mapper

from ..models import Post, User, post_tags, users


def _ids(models: list[Any]) -> list[int]:
    return sorted(model.id for model in models)


@pytest.mark.usefixtures("seed_data")
class TestFind:
    def test_find_one(self, mapper: Mapper) -> None:
        user = mapper.model(User).find(6)

        assert isinstance(user, User)
        assert user.name == "Frank"

    def test_find_many(self, mapper: Mapper) -> None:
        assert _ids(mapper.model(User).find([1, 19, 1000])) == [1, 19]

    def test_find_missing(self, mapper: Mapper) -> None:
        assert mapper.model(User).find(1000) is None

    def test_find_keeps_query_criteria(self, mapper: Mapper) -> None:
        query = mapper.model(User).filter_by(email=None)

        assert query.find(6) is None
        assert query.find(11) is not None

    def test_first(self, mapper: Mapper) -> None:
        user = mapper.model(User).order_by(users.c.name.desc()).first()

        assert user is not None
        assert user.name == "Susan"

    def test_first_of_nothing(self, mapper: Mapper) -> None:
        assert mapper.model(User).where_in("id", []).first() is None


@pytest.mark.usefixtures("seed_data")
class TestFilters:
    def test_filter_by_null(self, mapper: Mapper) -> None:
        assert _ids(mapper.model(User).filter_by(email=None).get()) == [11, 19]

    def test_or_where(self, mapper: Mapper) -> None:
        query = mapper.model(User).where(users.c.id > 10).or_where(users.c.name == "Anny")
        assert _ids(query.get()) == [1, 11, 17, 19]

    def test_empty_where_in(self, mapper: Mapper) -> None:
        assert mapper.model(Post).where_in("author_id", []).get() == []

    def test_apply(self, mapper: Mapper) -> None:
        def written_by_frank(query):  # type: ignore[no-untyped-def]
            query.filter_by(author_id=6)

        assert _ids(mapper.model(Post).apply(written_by_frank).get()) == [1, 2, 3]


@pytest.mark.usefixtures("seed_data")
class TestPagination:
    def test_count(self, mapper: Mapper) -> None:
        assert mapper.model(User).count() == 5
        assert mapper.model(Post).filter_by(author_id=6).count() == 3

    def test_count_ignores_order(self, mapper: Mapper) -> None:
        assert mapper.model(Post).order_by("created_at").limit(2).count() == 2

    def test_limit_offset(self, mapper: Mapper) -> None:
        page = mapper.model(User).order_by("id").offset(1).limit(2).get()
        assert [user.id for user in page] == [6, 11]

    def test_chunk(self, mapper: Mapper) -> None:
        chunks = list(mapper.model(User).chunk(2))
        assert [[user.id for user in chunk] for chunk in chunks] == [[1, 6], [11, 17], [19]]

    def test_chunk_respects_limit(self, mapper: Mapper) -> None:
        chunks = list(mapper.model(User).limit(3).chunk(2))
        assert [[user.id for user in chunk] for chunk in chunks] == [[1, 6], [11]]

    def test_chunk_size(self, mapper: Mapper) -> None:
        with pytest.raises(InvalidArgumentError):
            next(mapper.model(User).chunk(0))


@pytest.mark.usefixtures("seed_data")
class TestTableQuery:
    def test_rows(self, mapper: Mapper) -> None:
        rows = mapper.table(post_tags).filter_by(post_id=1).order_by("id").rows()

        assert [(row["tag_id"], row["note"]) for row in rows] == [(1, None), (2, "main")]

    def test_no_models(self, mapper: Mapper) -> None:
        with pytest.raises(IncorrectQueryError):
            mapper.table(post_tags).get()
