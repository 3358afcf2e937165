"""SQLAlchemy models (2.x style) for stored flow submissions.

Flow-specific payloads are kept as JSON documents so filters can reach
into them (``tailored_questions ->> key``, ``general_questions ->> contact``).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Index, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class UserFlow(Base):
    """One submitted flow (bespoke demo request or page config update)."""
    __tablename__ = settings.db.table_name

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    flow_type: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    bespoke_option: Mapped[Any | None] = mapped_column(JSON(none_as_null=True))
    agency_counter_inputs: Mapped[Any | None] = mapped_column(JSON(none_as_null=True))
    landing_page_selection: Mapped[Any | None] = mapped_column(JSON(none_as_null=True))
    tailored_questions: Mapped[Any | None] = mapped_column(JSON(none_as_null=True))
    general_questions: Mapped[Any | None] = mapped_column(JSON(none_as_null=True))
    update_page_details: Mapped[Any | None] = mapped_column(JSON(none_as_null=True))
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(f"ix_{settings.db.table_name}_submitted_at", "submitted_at"),
    )

    def to_row(self) -> dict[str, Any]:
        """Column values keyed by column name, as the shapers expect."""
        return {column.name: getattr(self, column.key) for column in self.__table__.columns}
