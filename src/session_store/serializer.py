"""Encoding of session records to and from Redis string values."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol, runtime_checkable

from pydantic import ValidationError

from session_store.exceptions import MalformedRecordError
from session_store.models import SessionRecord


@runtime_checkable
class Serializer(Protocol):
    """Encoder/decoder pair for session records. Implementation-agnostic."""

    def stringify(self, record: SessionRecord) -> str:
        """Encode a record into a string value."""
        ...

    def parse(self, text: str) -> SessionRecord:
        """Decode a string value. Raises MalformedRecordError on invalid input."""
        ...


_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_MILLISECOND = timedelta(milliseconds=1)


def _to_millis(value: datetime | None) -> int | None:
    if value is None:
        return None
    return (value - _EPOCH) // _MILLISECOND


def _from_millis(value: Any, field: str) -> datetime | None:
    if value is None:
        return None
    # bool is an int subclass but never a valid timestamp
    if isinstance(value, bool) or not isinstance(value, int | float):
        raise MalformedRecordError(
            f"{field} must be epoch milliseconds, got {type(value).__name__}"
        )
    try:
        return _EPOCH + timedelta(milliseconds=value)
    except (OverflowError, ValueError) as e:
        raise MalformedRecordError(f"{field} is out of range: {value!r}") from e


class JsonSerializer:
    """JSON encoding with ``cookie.expires`` and ``lastModified`` as epoch ms."""

    def stringify(self, record: SessionRecord) -> str:
        data = record.model_dump(mode="json", by_alias=True)
        data["cookie"]["expires"] = _to_millis(record.cookie.expires)
        data["lastModified"] = _to_millis(record.last_modified)
        return json.dumps(data, separators=(",", ":"))

    def parse(self, text: str) -> SessionRecord:
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise MalformedRecordError(f"Invalid JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedRecordError(
                f"Expected a JSON object, got {type(data).__name__}"
            )

        cookie = data.get("cookie")
        if cookie is None:
            cookie = {}
        if not isinstance(cookie, dict):
            raise MalformedRecordError("cookie must be a JSON object")
        data["cookie"] = {
            **cookie,
            "expires": _from_millis(cookie.get("expires"), "cookie.expires"),
        }
        data["lastModified"] = _from_millis(data.get("lastModified"), "lastModified")

        try:
            return SessionRecord.model_validate(data)
        except ValidationError as e:
            raise MalformedRecordError(str(e)) from e


default_serializer = JsonSerializer()
