"""Code Store: the system of record for short links.

Key Behaviours
===============
- ``get_by_code`` is an equality lookup on the unique ``short_code`` index.
- ``increment_visit_count`` is one ``UPDATE ... SET visit_count = visit_count + 1``;
  the database applies it atomically, so concurrent increments never lose updates.
  It returns False when no row matched (unknown or deleted code).
- ``top_by_visits`` filters ``created_at`` to a half-open ``[start, end)`` range and
  orders by ``visit_count`` descending. Ties come back in whatever order the
  database produces; callers must not rely on it.
- ``insert`` raises ``ShortCodeConflict`` when the unique index rejects the code.
"""

import datetime
from abc import ABC, abstractmethod

from sqlalchemy import select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from scaleurl.exceptions import ShortCodeConflict
from scaleurl.models import ShortLink

__all__ = ["CodeStore", "SQLAlchemyCodeStore"]


class CodeStore(ABC):
    @abstractmethod
    async def ping(self) -> None: ...

    @abstractmethod
    async def get_by_code(self, short_code: str) -> ShortLink | None: ...

    @abstractmethod
    async def insert(self, short_code: str, original_url: str) -> ShortLink: ...

    @abstractmethod
    async def increment_visit_count(self, short_code: str, delta: int = 1) -> bool: ...

    @abstractmethod
    async def top_by_visits(
        self, start: datetime.datetime, end: datetime.datetime, limit: int
    ) -> list[ShortLink]: ...


class SQLAlchemyCodeStore(CodeStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def ping(self) -> None:
        async with self._session_factory() as session:
            await session.execute(text("SELECT 1"))

    async def get_by_code(self, short_code: str) -> ShortLink | None:
        async with self._session_factory() as session:
            result = await session.execute(select(ShortLink).where(ShortLink.short_code == short_code))
            return result.scalar_one_or_none()

    async def insert(self, short_code: str, original_url: str) -> ShortLink:
        async with self._session_factory() as session:
            link = ShortLink(short_code=short_code, original_url=original_url, visit_count=0)
            session.add(link)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise ShortCodeConflict(short_code) from exc
            await session.refresh(link)
            return link

    async def increment_visit_count(self, short_code: str, delta: int = 1) -> bool:
        assert delta > 0, f"delta must be positive, got {delta!r}"
        async with self._session_factory() as session:
            result = await session.execute(
                update(ShortLink)
                .where(ShortLink.short_code == short_code)
                .values(visit_count=ShortLink.visit_count + delta)
            )
            await session.commit()
            return result.rowcount > 0

    async def top_by_visits(
        self, start: datetime.datetime, end: datetime.datetime, limit: int
    ) -> list[ShortLink]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ShortLink)
                .where(ShortLink.created_at >= start, ShortLink.created_at < end)
                .order_by(ShortLink.visit_count.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
