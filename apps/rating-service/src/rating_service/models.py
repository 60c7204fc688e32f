from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from devkit.timezone import now_utc


@dataclass
class Rating:
    id: UUID
    service_provider_id: UUID
    customer_id: UUID
    score: int
    comment: str | None = None
    created_at: datetime = field(default_factory=now_utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "service_provider_id": str(self.service_provider_id),
            "customer_id": str(self.customer_id),
            "score": self.score,
            "comment": self.comment,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class AverageRating:
    subject_id: UUID
    average_score: float
    total_ratings: int
