"""
Declarative base.

All models inherit from Base so that metadata is shared by migrations
and by the test schema bootstrap.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
