from __future__ import annotations

import pytest

from sqla_wired import InvalidArgumentError, MapperConfig, frozendict


class TestMapperConfig:
    def test_defaults(self) -> None:
        config = MapperConfig(url="sqlite://")

        assert config.echo is False
        assert config.engine_options == {}

    def test_options_are_frozen(self) -> None:
        config = MapperConfig(url="sqlite://", engine_options={"pool_pre_ping": True})  # type: ignore[arg-type]

        assert isinstance(config.engine_options, frozendict)
        assert hash(config) == hash(MapperConfig(url="sqlite://", engine_options=frozendict(pool_pre_ping=True)))

    @pytest.mark.parametrize("url", ["", None, 5])
    def test_bad_url(self, url: object) -> None:
        with pytest.raises(InvalidArgumentError):
            MapperConfig(url=url)  # type: ignore[arg-type]

    def test_from_mapping(self) -> None:
        config = MapperConfig.from_mapping({"url": "sqlite://", "echo": 1, "pool_pre_ping": True})

        assert config.url == "sqlite://"
        assert config.echo is True
        assert config.engine_options == {"pool_pre_ping": True}

    def test_from_mapping_without_url(self) -> None:
        with pytest.raises(InvalidArgumentError, match="`url`"):
            MapperConfig.from_mapping({"echo": True})
