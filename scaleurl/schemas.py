"""Pydantic schemas for request/response validation and the visit event wire format.

Schema Hierarchy
=================
::
    ShortenRequest (Input)
    ├─ url: str (absolute http/https URL)
    └─ custom_code: str | None (3-20 alphanumerics)

    ShortenResponse (Output)
    ├─ message, short_url, short_code, original_url

    LinkAnalytics (Output)
    ├─ original_url, short_code, visit_count, created_at

    AnalyticsResponse / TopLinksResponse (Output envelopes)

    VisitEvent (Queue message)
    ├─ short_code  (wire: "shortCode")
    └─ timestamp   (epoch milliseconds)

Key Behaviours
===============
- URL validation uses the validators library; only http and https schemes pass.
- VisitEvent serializes with camelCase aliases and accepts either spelling on input.
- Analytics models read straight from ShortLink rows (from_attributes).
"""

import datetime
import time

import validators
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from scaleurl.enums import HealthStatus
from scaleurl.exceptions import InvalidVisitEvent

__all__ = [
    "ShortenRequest",
    "ShortenResponse",
    "LinkAnalytics",
    "AnalyticsResponse",
    "TopLinksResponse",
    "HealthResponse",
    "VisitEvent",
]

ALLOWED_SCHEMES = ("http://", "https://")


class ShortenRequest(BaseModel):
    url: str
    custom_code: str | None = None

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        if not v.lower().startswith(ALLOWED_SCHEMES) or not validators.url(v):
            raise ValueError("Invalid URL provided")
        return v

    @field_validator("custom_code")
    @classmethod
    def validate_custom_code(cls, v: str | None) -> str | None:
        if v is not None:
            if len(v) < 3 or len(v) > 20:
                raise ValueError("Custom code must be between 3 and 20 characters")
            if not v.isalnum():
                raise ValueError("Custom code must be alphanumeric")
        return v


class ShortenResponse(BaseModel):
    message: str = "Short URL created successfully"
    short_url: str
    short_code: str
    original_url: str


class LinkAnalytics(BaseModel):
    original_url: str
    short_code: str
    visit_count: int
    created_at: datetime.datetime

    model_config = ConfigDict(from_attributes=True)


class AnalyticsResponse(BaseModel):
    success: bool = True
    analytics: LinkAnalytics


class TopLinksResponse(BaseModel):
    success: bool = True
    count: int
    top_urls: list[LinkAnalytics]


class HealthResponse(BaseModel):
    status: HealthStatus
    database: HealthStatus
    cache: HealthStatus


def _now_ms() -> int:
    return int(time.time() * 1000)


class VisitEvent(BaseModel):
    """One redirect, as handed from the redirect path to the accounting consumer."""

    short_code: str = Field(..., alias="shortCode", min_length=1)
    timestamp: int = Field(default_factory=_now_ms, description="Epoch milliseconds of the redirect.")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_wire(cls, raw: str | bytes) -> "VisitEvent":
        try:
            return cls.model_validate_json(raw)
        except ValidationError as exc:
            raise InvalidVisitEvent(f"Undecodable visit event: {raw!r}") from exc
