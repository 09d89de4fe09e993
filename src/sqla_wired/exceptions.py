"""Exceptions raised by sqla_wired.

Every error derives from :class:`WiredError`, so callers can catch the whole
family with one ``except`` clause.  Errors coming from SQLAlchemy are never
leaked as is: :func:`wrap_exception` turns them into the matching wired error
and keeps the original one as ``__cause__``.
"""

from __future__ import annotations

from typing import Any

import sqlalchemy as sa


class WiredError(Exception):
    """Base exception for all sqla_wired errors."""

    def __init__(self, message: str = "", context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}


class NotModelError(WiredError, TypeError):
    """A value that must be a model (or a model class) is something else."""


class RelationError(WiredError):
    """A relation is not defined or can not be used the requested way."""


class IncorrectModelError(WiredError):
    """A model has a wrong class or a state that can't be handled."""


class IncorrectQueryError(WiredError):
    """A query can't be used for the requested operation."""


class InvalidArgumentError(WiredError, ValueError):
    """An argument has an unsupported type or value."""


class InvalidReturnValueError(WiredError):
    """A user-supplied callback returned an unexpected value."""


class DatabaseError(WiredError):
    """An error reported by the database or the driver."""

    def __init__(self, message: str = "", sql: str | None = None) -> None:
        super().__init__(message, {"sql": sql} if sql else None)
        self.sql = sql


def wrap_exception(exc: Exception) -> Exception:
    """Convert a third-party exception into a sqla_wired one.

    Exceptions that are already ``WiredError`` and exceptions which don't
    come from SQLAlchemy are returned unchanged.

    Args:
        exc: The exception to convert.

    Returns:
        The exception to raise. Raise it ``from exc`` to keep the chain.
    """
    if isinstance(exc, WiredError) or not isinstance(exc, sa.exc.SQLAlchemyError):
        return exc

    if isinstance(exc, (sa.exc.ArgumentError, sa.exc.CompileError)):
        return InvalidArgumentError(str(exc))

    if isinstance(exc, sa.exc.DBAPIError):
        return DatabaseError(str(exc.orig), sql=exc.statement)

    return DatabaseError(str(exc))
