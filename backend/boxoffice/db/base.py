"""
Declarative base and shared column mixins.
"""

import uuid

from sqlalchemy import Column, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class UUIDPrimaryKeyMixin:
    id = Column(String(36), primary_key=True, default=new_id)


class TimestampMixin:
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


class SoftDeleteMixin:
    """Logical deletion: rows with deleted_at set are invisible to the core."""

    deleted_at = Column(DateTime(timezone=True), nullable=True)
