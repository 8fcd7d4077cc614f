"""
Database Base Model Module.

Defines the declarative base and common column types.
Every table (primary and mirror store alike) is registered on this Base so a
single metadata can be created against both databases.
"""

from datetime import datetime, timezone
from typing import Annotated

from sqlalchemy import BigInteger, DateTime, Integer, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


# BIGSERIAL on PostgreSQL; SQLite only autoincrements INTEGER PRIMARY KEY
IntPrimaryKey = Annotated[
    int,
    mapped_column(
        BigInteger().with_variant(Integer, "sqlite"),
        primary_key=True,
        autoincrement=True,
    ),
]

CreatedAt = Annotated[
    datetime,
    mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
    ),
]

UpdatedAt = Annotated[
    datetime,
    mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
    ),
]


class Base(DeclarativeBase):
    """
    Declarative base class for all SQLAlchemy models.
    """
    pass


class TimestampMixin:
    """
    Mixin that adds created_at and updated_at timestamp columns.

    Usage:
        class MyModel(Base, TimestampMixin):
            __tablename__ = "my_table"
            ...
    """

    created_at: Mapped[CreatedAt]
    updated_at: Mapped[UpdatedAt]
