"""Shared SQLAlchemy base declarative class and model imports."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for ORM models."""


# Import model modules so metadata is populated before create_all.
from canteen_engine.models import account as _account  # noqa: E402,F401
from canteen_engine.models import loan as _loan  # noqa: E402,F401
from canteen_engine.models import menu as _menu  # noqa: E402,F401
from canteen_engine.models import order as _order  # noqa: E402,F401
from canteen_engine.models import restaurant as _restaurant  # noqa: E402,F401
from canteen_engine.models import user as _user  # noqa: E402,F401
