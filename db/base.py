"""
db/base.py

Declarative base, column types and mixins shared by the royalty models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import DateTime, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Declarative base for every table in the royalty schema.

    ``uuid.UUID`` and ``dict`` annotations map to native PostgreSQL types.
    """

    type_annotation_map: dict[Any, Any] = {
        uuid.UUID: UUID(as_uuid=True),
        dict[str, Any]: JSONB,
    }


class CreatedAtMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


class TimestampMixin(CreatedAtMixin):
    """
    Adds ``updated_at``, refreshed by the ORM on every UPDATE.

    Bulk ``ON CONFLICT DO UPDATE`` statements bypass ``onupdate`` and must set
    the column explicitly.
    """

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=lambda: datetime.now(timezone.utc),
    )
