from __future__ import annotations

import os
from collections.abc import Iterator
from typing import Any, Final

import pytest
import sqlalchemy as sa
from sqlalchemy import event, pool

from sqla_wired import Mapper, wired_cache_clear

from .models import categories, metadata, post_tags, posts, profiles, tags, users


SEED: Final[dict[str, list[dict[str, Any]]]] = {
    "users": [
        {"id": 1, "name": "Anny", "email": "anny@example.com"},
        {"id": 6, "name": "Frank", "email": "frank@example.com"},
        {"id": 11, "name": "Kenny", "email": None},
        {"id": 17, "name": "Quentin", "email": "quentin@example.com"},
        {"id": 19, "name": "Susan", "email": None},
    ],
    "profiles": [
        {"id": 1, "user_id": 6, "bio": "Frank writes about sport"},
        {"id": 2, "user_id": 11, "bio": "Kenny writes tips"},
    ],
    "categories": [
        {"id": 1, "parent_id": None, "title": "News"},
        {"id": 3, "parent_id": 1, "title": "Economics"},
        {"id": 4, "parent_id": 1, "title": "Sport"},
        {"id": 5, "parent_id": 4, "title": "Hockey"},
        {"id": 6, "parent_id": 4, "title": "Football"},
        {"id": 7, "parent_id": None, "title": "Lifehacks"},
        {"id": 9, "parent_id": 10, "title": "Tick"},
        {"id": 10, "parent_id": 9, "title": "Tack"},
        {"id": 11, "parent_id": 11, "title": "Selfish"},
    ],
    "posts": [
        {"id": 1, "author_id": 6, "category_id": 5, "text": "Hockey is cool", "created_at": 100},
        {"id": 2, "author_id": 6, "category_id": 3, "text": "Markets are down", "created_at": 200},
        {"id": 3, "author_id": 6, "category_id": None, "text": "Draft", "created_at": 300},
        {"id": 6, "author_id": 11, "category_id": 6, "text": "What a goal", "created_at": 400},
        {"id": 12, "author_id": 11, "category_id": 7, "text": "Fold your shirts", "created_at": 500},
        {"id": 14, "author_id": 17, "category_id": 3, "text": "Buy stocks", "created_at": 600},
        {"id": 15, "author_id": None, "category_id": 4, "text": "Anonymous", "created_at": 700},
        {"id": 16, "author_id": 99, "category_id": None, "text": "Orphan", "created_at": 800},
    ],
    "tags": [
        {"id": 1, "name": "python"},
        {"id": 2, "name": "sql"},
        {"id": 3, "name": "misc"},
    ],
    "post_tags": [
        {"id": 1, "post_id": 1, "tag_id": 1, "note": None},
        {"id": 2, "post_id": 1, "tag_id": 2, "note": "main"},
        {"id": 3, "post_id": 2, "tag_id": 1, "note": None},
        {"id": 4, "post_id": 6, "tag_id": 3, "note": None},
    ],
}

SEED_TABLES: Final[tuple[sa.Table, ...]] = (users, profiles, categories, posts, tags, post_tags)


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--db",
        default="sqlite",
        choices=["sqlite", "postgres"],
        help="Database backend to test against",
    )


@pytest.fixture(scope="session")
def db_backend(request: pytest.FixtureRequest) -> str:
    value: str = request.config.getoption("--db")

    return value


@pytest.fixture(scope="session")
def db_url(db_backend: str) -> Iterator[str]:
    match db_backend:
        case "postgres":
            from testcontainers.postgres import PostgresContainer

            pg = PostgresContainer(image="postgres:16-alpine")
            if os.name == "nt":
                pg.get_container_host_ip = lambda: "127.0.0.1"
            with pg:
                host = pg.get_container_host_ip()
                dsn = (
                    f"postgresql+psycopg://{pg.username}:{pg.password}"
                    f"@{host}:{pg.get_exposed_port(pg.port)}/{pg.dbname}"
                )
                yield dsn

        case "sqlite":
            yield "sqlite://"


@pytest.fixture(scope="session")
def engine(db_url: str, db_backend: str) -> Iterator[sa.Engine]:
    if db_backend == "sqlite":
        # one shared in-memory database for every connection
        engine = sa.create_engine(
            db_url,
            poolclass=pool.StaticPool,
            connect_args={"check_same_thread": False},
        )
    else:
        engine = sa.create_engine(db_url)

    yield engine
    engine.dispose()


@pytest.fixture
def mapper(engine: sa.Engine) -> Iterator[Mapper]:
    metadata.create_all(engine)
    yield Mapper(engine)
    metadata.drop_all(engine)


@pytest.fixture
def seed_data(mapper: Mapper) -> dict[str, list[dict[str, Any]]]:
    with mapper.engine.begin() as conn:
        for table in SEED_TABLES:
            conn.execute(table.insert(), SEED[table.name])

        if conn.dialect.name == "postgresql":
            # explicit ids don't move the serial sequences
            for table in SEED_TABLES:
                conn.execute(
                    sa.text(
                        f"SELECT setval(pg_get_serial_sequence('{table.name}', 'id'), "
                        f"(SELECT MAX(id) FROM {table.name}))"
                    )
                )

    return SEED


@pytest.fixture
def statements(engine: sa.Engine) -> Iterator[list[str]]:
    """Collect the SQL statements executed during a test."""
    collected: list[str] = []

    def before_cursor_execute(
        conn: sa.Connection,
        cursor: Any,
        statement: str,
        parameters: Any,
        context: Any,
        executemany: bool,
    ) -> None:
        collected.append(statement)

    event.listen(engine, "before_cursor_execute", before_cursor_execute)
    yield collected
    event.remove(engine, "before_cursor_execute", before_cursor_execute)


@pytest.fixture(autouse=True)
def clear_lru_caches() -> Iterator[None]:
    yield
    wired_cache_clear()
