# src/steeb_core/push/push_models.py

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class AdaptiveStrategy(StrEnum):
    LEARNED = "learned"
    EXPLORATION = "exploration"


def registration_id_for(endpoint: str) -> str:
    """Stable id derived from the endpoint, so re-registering overwrites instead of colliding."""
    return hashlib.sha256(endpoint.encode("utf-8")).hexdigest()


@dataclass(slots=True)
class PushRegistration:
    id: str
    subscription: dict[str, Any]
    metadata: dict[str, Any]
    created_at: float
    updated_at: float
    last_daily_sent_key: str | None = None
    adaptive_strategy: AdaptiveStrategy | None = None
    last_adaptive_hour: int | None = None

    @property
    def endpoint(self) -> str:
        return str(self.subscription.get("endpoint") or "")

    @property
    def user_id(self) -> str | None:
        uid = self.metadata.get("userId") or self.metadata.get("user_id")
        return str(uid) if uid else None

    @property
    def timezone(self) -> str | None:
        tz = self.metadata.get("timezone")
        return str(tz) if tz else None


@dataclass(frozen=True, slots=True)
class PushPayload:
    title: str
    body: str
    tag: str
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "body": self.body, "tag": self.tag, "data": dict(self.data)}


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    delivered: bool
    permanent_failure: bool = False
    detail: str | None = None
