from __future__ import annotations

import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from .datastructures import frozendict
from .exceptions import InvalidArgumentError


if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self


@dataclass(slots=True, frozen=True)
class MapperConfig:
    """Settings for :meth:`sqla_wired.Mapper.create`.

    Attributes:
        url: SQLAlchemy database URL, e.g. ``sqlite:///app.db``.
        echo: Log every statement through the ``sqlalchemy.engine`` logger.
        engine_options: Extra keyword arguments for ``sa.create_engine``.
    """

    url: str
    echo: bool = False
    engine_options: frozendict[str, Any] = field(default_factory=frozendict)

    def __post_init__(self) -> None:
        if not isinstance(self.url, str) or not self.url:
            raise InvalidArgumentError(f"The database URL must be a non-empty string, {self.url!r} given")
        if not isinstance(self.engine_options, frozendict):
            object.__setattr__(self, "engine_options", frozendict(self.engine_options))

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> Self:
        """Make a config from a plain mapping.

        ``url`` and ``echo`` are read as is, every other key is passed to the
        engine.
        """
        if "url" not in values:
            raise InvalidArgumentError("The database config has no `url` item")

        options = {key: value for key, value in values.items() if key not in ("url", "echo")}
        return cls(url=values["url"], echo=bool(values.get("echo", False)), engine_options=frozendict(options))
