"""Declarative base and shared column helpers."""
import enum

from sqlalchemy import Enum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def str_enum(enum_cls: type[enum.Enum]) -> Enum:
    """Store a str enum by value ('pending', not 'PENDING') as a plain VARCHAR."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=16,
    )
