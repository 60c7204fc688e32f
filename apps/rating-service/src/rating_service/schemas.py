from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel


class RatingCreateRequest(BaseModel):
    service_provider_id: UUID
    customer_id: UUID
    score: int
    comment: str | None = None
