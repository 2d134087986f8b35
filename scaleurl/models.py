"""SQLAlchemy ORM models for the Code Store.

Data Model Layout
=================
::
    short_links table
    ├─ id (SERIAL PRIMARY KEY)
    ├─ short_code (VARCHAR(32) UNIQUE, INDEXED)
    ├─ original_url (TEXT NOT NULL, INDEXED)
    ├─ visit_count (INTEGER DEFAULT 0)
    └─ created_at (TIMESTAMPTZ, DEFAULT NOW())

    ix_short_links_created_visits (created_at DESC, visit_count DESC)

Key Behaviours
===============
- short_code is unique and indexed for equality lookups on the redirect path.
- The compound index serves the top-N ranking: range on created_at, order by visit_count.
- visit_count only grows; the accounting consumer issues ``visit_count + 1`` updates.
- original_url and created_at are never modified after insert.

Classes:
    ShortLink:  One short code and its destination, visit counter and creation time.
"""

import datetime

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from scaleurl.database import Base

__all__ = ["ShortLink"]


class ShortLink(Base):
    __tablename__ = "short_links"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    short_code: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    original_url: Mapped[str] = mapped_column(Text, index=True, nullable=False)
    visit_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<ShortLink(id={self.id}, short_code='{self.short_code}', visit_count={self.visit_count})>"


Index("ix_short_links_created_visits", ShortLink.created_at.desc(), ShortLink.visit_count.desc())
