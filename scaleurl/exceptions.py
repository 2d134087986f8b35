"""Exceptions raised by the scaleurl core.

Classes:
    ScaleURLError:
        Generic base class for scaleurl exceptions.

    NotFound:
        Raised when a short code has no record in the Code Store.

    TooManyRequests:
        Raised when a short code exceeded its fixed-window request budget.

    InvalidArgument:
        Raised for malformed client input (unknown time range, bad limit).

    BackendUnavailable:
        Raised by key/value backends when the transport fails. Callers on the
        redirect path recover locally (fail-open); it never reaches a client.

    StaleTarget:
        Raised when a dequeued visit event names a code with no record.

    InvalidVisitEvent:
        Raised when a queue payload cannot be decoded into a VisitEvent.

    ShortCodeConflict:
        Raised by the creation path when a short code is already taken.

Example:
    >>> from scaleurl.exceptions import NotFound
    >>> raise NotFound("abc1")
    Traceback (most recent call last):
        ...
    scaleurl.exceptions.NotFound: Short code 'abc1' not found
"""

__all__ = [
    "ScaleURLError",
    "NotFound",
    "TooManyRequests",
    "InvalidArgument",
    "BackendUnavailable",
    "StaleTarget",
    "InvalidVisitEvent",
    "ShortCodeConflict",
]


class ScaleURLError(Exception):
    """Generic base class for scaleurl exceptions."""

    pass


class NotFound(ScaleURLError):
    """Exception raised when a short code is unknown."""

    def __init__(self, short_code: str) -> None:
        super().__init__(f"Short code '{short_code}' not found")
        self.short_code = short_code


class TooManyRequests(ScaleURLError):
    """Exception raised when the per-code rate window is exhausted."""

    def __init__(self, short_code: str, retry_after: int | None = None) -> None:
        super().__init__(f"Rate limit exceeded for '{short_code}'")
        self.short_code = short_code
        self.retry_after = retry_after


class InvalidArgument(ScaleURLError):
    """Exception raised for malformed client input."""

    pass


class BackendUnavailable(ScaleURLError):
    """Exception raised when the cache/limiter/queue transport fails."""

    pass


class StaleTarget(ScaleURLError):
    """Exception raised when a visit event targets a code with no record."""

    def __init__(self, short_code: str) -> None:
        super().__init__(f"No record for short code '{short_code}'")
        self.short_code = short_code


class InvalidVisitEvent(ScaleURLError):
    """Exception raised when a queue payload is not a valid visit event."""

    pass


class ShortCodeConflict(ScaleURLError):
    """Exception raised when a short code is already taken."""

    def __init__(self, short_code: str) -> None:
        super().__init__(f"Short code '{short_code}' is already taken")
        self.short_code = short_code
