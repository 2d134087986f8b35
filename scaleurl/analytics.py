"""Analytics query layer: read-only views over the Code Store.

Never reads the cache or the queue, so counts reflect only what the
accounting consumer has applied so far (eventually consistent with redirects).

Time windows, in local time:
    today:  [00:00 today, 00:00 tomorrow)
    week:   [Monday 00:00 of this week, now)
    month:  [1st of this month 00:00, 1st of next month 00:00)
"""

import datetime

from scaleurl.enums import TimeRange
from scaleurl.exceptions import InvalidArgument, NotFound
from scaleurl.models import ShortLink
from scaleurl.store import CodeStore

__all__ = ["AnalyticsService", "time_range_bounds"]


def _local_now() -> datetime.datetime:
    return datetime.datetime.now().astimezone()


def time_range_bounds(
    time_range: TimeRange, now: datetime.datetime
) -> tuple[datetime.datetime, datetime.datetime]:
    """Return the half-open ``[start, end)`` interval for ``time_range`` around ``now``."""
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    if time_range is TimeRange.TODAY:
        return midnight, midnight + datetime.timedelta(days=1)
    if time_range is TimeRange.WEEK:
        return midnight - datetime.timedelta(days=now.weekday()), now
    first_of_month = midnight.replace(day=1)
    first_of_next = (first_of_month + datetime.timedelta(days=32)).replace(day=1)
    return first_of_month, first_of_next


class AnalyticsService:
    def __init__(self, store: CodeStore, default_limit: int = 10, max_limit: int = 100) -> None:
        self._store = store
        self._default_limit = default_limit
        self._max_limit = max_limit

    async def get_by_code(self, short_code: str) -> ShortLink:
        link = await self._store.get_by_code(short_code)
        if link is None:
            raise NotFound(short_code)
        return link

    async def get_top(
        self,
        time_range: str,
        limit: int | str | None = None,
        now: datetime.datetime | None = None,
    ) -> list[ShortLink]:
        """Most visited links created within ``time_range``, highest count first.

        Order among equal visit counts is whatever the store returns.

        Raises:
            InvalidArgument: Unknown ``time_range``, or ``limit`` that is not an
                integer in ``1..max_limit``.
        """
        try:
            window = TimeRange(time_range)
        except ValueError as exc:
            allowed = ", ".join(member.value for member in TimeRange)
            raise InvalidArgument(f"Invalid time range '{time_range}', expected one of: {allowed}") from exc

        limit = self._parse_limit(limit)
        if not 1 <= limit <= self._max_limit:
            raise InvalidArgument(f"limit must be between 1 and {self._max_limit}, got {limit}")

        start, end = time_range_bounds(window, now or _local_now())
        return await self._store.top_by_visits(start, end, limit)

    def _parse_limit(self, limit: int | str | None) -> int:
        if limit is None:
            return self._default_limit
        try:
            return int(limit)
        except ValueError as exc:
            raise InvalidArgument(f"limit must be an integer, got {limit!r}") from exc
