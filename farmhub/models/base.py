"""
Base model classes and mixins
"""
import uuid

from sqlalchemy import Column, DateTime, Uuid

from farmhub.core.database import Base
from farmhub.utils.date import utc_now


class UUIDPrimaryKeyMixin:
    """Mixin for a UUID primary key"""

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


class TimestampMixin:
    """Mixin for created_at and updated_at timestamps"""

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)


__all__ = ["Base", "UUIDPrimaryKeyMixin", "TimestampMixin"]
