from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from devkit.timezone import ensure_utc

MAX_COMMENT_LENGTH = 500


class EventDecodeError(ValueError):
    """Raised when a message body is not a valid event payload."""


class RatingCreatedEvent(BaseModel):
    """Fact published once a rating is stored; the message body on the wire."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    id: UUID
    service_provider_id: UUID
    customer_id: UUID
    score: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=MAX_COMMENT_LENGTH)
    created_at: datetime

    @field_validator("created_at")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    def to_json(self) -> bytes:
        return self.model_dump_json(by_alias=True).encode("utf-8")

    @classmethod
    def from_json(cls, body: bytes) -> RatingCreatedEvent:
        try:
            return cls.model_validate_json(body.decode("utf-8"))
        except (UnicodeDecodeError, ValidationError) as exc:
            raise EventDecodeError(str(exc)) from exc
