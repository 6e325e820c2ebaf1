# src/steeb_core/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage/push providers swappable and makes testing easier.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Any, Awaitable, Protocol

if TYPE_CHECKING:
    from ..engagement.store import EngagementProfile
    from ..push.push_models import DeliveryResult, PushPayload, PushRegistration


class TaskStorage(Protocol):
    """
    Whole-collection persistence for task records.

    save() returns False when the write was skipped for a known benign reason
    (read-only filesystem) and raises StorageUnavailable for anything else.
    """

    def load(self) -> list[dict[str, Any]]: ...
    def save(self, records: list[dict[str, Any]]) -> bool: ...


class EngagementRepo(Protocol):
    def record_event(self, user_id: str, timezone: str | None, occurred_at: datetime | None = None) -> None: ...
    def get_profile(self, user_id: str) -> EngagementProfile | None: ...


class PushRegistrationRepo(Protocol):
    def list_all(self) -> list[PushRegistration]: ...
    def remove(self, registration_id: str) -> None: ...
    def try_claim_daily(
            self,
            registration_id: str,
            *,
            date_key: str,
            strategy: str,
            hour: int,
    ) -> bool: ...
    def release_daily_claim(
            self,
            registration_id: str,
            *,
            date_key: str,
            previous_key: str | None,
            previous_strategy: str | None = None,
            previous_hour: int | None = None,
    ) -> None: ...


class PushDeliverer(Protocol):
    """
    Push-side port: how the scheduler hands a notification to a delivery channel.

    The channel reports permanent endpoint failures via DeliveryResult.permanent_failure
    (or by raising DeliveryGone); everything else is treated as transient.
    """

    def deliver(self, subscription: dict[str, Any], payload: PushPayload) -> Awaitable[DeliveryResult]: ...
