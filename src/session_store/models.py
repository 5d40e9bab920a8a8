"""Session record models.

A :class:`SessionRecord` carries the two fields the store itself relies on
(the cookie deadline and ``lastModified``) plus any application fields, which
are kept as pydantic extras and round-trip untouched.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class Cookie(BaseModel):
    """Session cookie. Only ``expires`` is interpreted; the rest passes through."""

    model_config = ConfigDict(extra="allow")

    expires: datetime | None = Field(default=None)

    @field_validator("expires")
    @classmethod
    def _normalise_expires(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)


class SessionRecord(BaseModel):
    """A stored session: cookie, write stamp and arbitrary application fields."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    cookie: Cookie = Field(default_factory=Cookie)
    last_modified: datetime | None = Field(default=None, alias="lastModified")

    @field_validator("last_modified")
    @classmethod
    def _normalise_last_modified(cls, v: datetime | None) -> datetime | None:
        return _as_utc(v)

    @property
    def expires(self) -> datetime | None:
        """Absolute deadline requested by the caller, if any."""
        return self.cookie.expires

    def application_fields(self) -> dict[str, Any]:
        """Fields owned by the application (everything but cookie and lastModified)."""
        return self.model_dump(by_alias=True, exclude={"cookie", "last_modified"})


class SessionComparison(BaseModel):
    """Outcome of comparing a candidate session with the stored one."""

    existing: SessionRecord | None = Field(
        description="Stored session, or None if absent/destroyed"
    )
    concurrent: bool = Field(
        description="Stored lastModified differs from the candidate's"
    )
    consistent: bool = Field(
        description="Application fields deep-equal the stored ones"
    )
