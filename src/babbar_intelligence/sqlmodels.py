"""SQLAlchemy models for the persistent response cache.

Only successful read-style responses are stored, keyed by request signature.
Rows older than the cache TTL are ignored on read and overwritten on the next
successful write.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class CachedResponse(Base):
    """One cached response envelope."""

    __tablename__ = "cached_responses"

    key: Mapped[str] = mapped_column(String(2048), primary_key=True)
    endpoint: Mapped[str] = mapped_column(String(200), nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)
    inserted_at: Mapped[float] = mapped_column(Float, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_cached_endpoint", "endpoint"),
        Index("ix_cached_inserted_at", "inserted_at"),
    )
