from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from devkit.timezone import now_utc


@dataclass
class Notification:
    id: UUID
    service_provider_id: UUID
    message: str
    created_at: datetime = field(default_factory=now_utc)
    is_read: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "service_provider_id": str(self.service_provider_id),
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "is_read": self.is_read,
        }
