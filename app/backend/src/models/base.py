"""SQLAlchemy declarative base."""

from sqlalchemy import MetaData
from sqlalchemy.orm import DeclarativeBase

# Check constraints are named explicitly on each model.
NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    """Base for the payroll models."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)
