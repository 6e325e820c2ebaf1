# src/steeb_core/push/push_scheduler.py

from __future__ import annotations

"""
Adaptive daily push scheduler.

A small polling loop that, for every push registration:
- works out the local date/hour/minute in the registration's timezone,
- skips it if today's push was already claimed (last_daily_sent_key),
- picks a target hour: the user's most engaged hour once enough engagement exists
  ("learned"), otherwise a probe hour that rotates day by day ("exploration"),
- once the local time reaches the target hour + minute offset, claims the day in the
  registry and then delivers,
- deletes registrations whose endpoint is gone; other failures release the claim so the
  next tick retries.

Delivery transport belongs to the injected deliverer, not the scheduler.
"""

import asyncio
import contextlib
import logging
import threading
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..core.ports import EngagementRepo, PushDeliverer, PushRegistrationRepo
from ..engagement.store import EngagementProfile
from ..errors import DeliveryFailure, DeliveryGone
from .push_models import AdaptiveStrategy, DeliveryResult, PushPayload, PushRegistration

logger = logging.getLogger(__name__)

DEFAULT_PROBE_HOURS: tuple[int, ...] = (9, 11, 13, 16, 19, 21)

DAILY_TITLE = "STEEB - Buenos dias"
DAILY_TAG = "daily-motivation"
TEST_TAG = "test-push"

DAILY_MESSAGES: tuple[str, ...] = (
    "Buenos dias! STEEB aqui. Es momento de hacer que este dia cuente.",
    "Nuevo dia, nuevas oportunidades. Que vas a lograr hoy?",
    "La innovacion distingue entre un lider y un seguidor. Lidera tu dia!",
    "Tu tiempo es limitado, no lo desperdicies. Haz que importe!",
    "La calidad nunca es un accidente. Haz todo con excelencia hoy!",
)


@dataclass(slots=True, frozen=True)
class LocalSlot:
    local_date: date
    hour: int
    minute: int

    @property
    def date_key(self) -> str:
        return self.local_date.isoformat()


def resolve_zone(name: str | None, fallback: str) -> ZoneInfo:
    for candidate in (name, fallback):
        if not candidate:
            continue
        try:
            return ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r", candidate)
    return ZoneInfo("UTC")


def local_slot(now: datetime, tz: ZoneInfo) -> LocalSlot:
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    local = now.astimezone(tz)
    return LocalSlot(local_date=local.date(), hour=local.hour, minute=local.minute)


def days_since_created(created_at: float, today: date, tz: ZoneInfo) -> int:
    created_local = datetime.fromtimestamp(created_at, tz=UTC).astimezone(tz).date()
    return max(0, (today - created_local).days)


def choose_target_hour(
    *,
    profile: EngagementProfile | None,
    days_since_creation: int,
    probe_hours: Sequence[int] = DEFAULT_PROBE_HOURS,
    min_learning_events: int = 3,
) -> tuple[int, AdaptiveStrategy]:
    """
    Learned: the most engaged hour once total_events >= min_learning_events.
    Exploration: probe_hours[days_since_creation % len(probe_hours)].
    """
    if profile is not None and profile.total_events >= min_learning_events:
        best = profile.preferred_hour()
        if best is not None:
            return best, AdaptiveStrategy.LEARNED

    hours = list(probe_hours) or list(DEFAULT_PROBE_HOURS)
    return hours[days_since_creation % len(hours)], AdaptiveStrategy.EXPLORATION


def is_due(slot: LocalSlot, target_hour: int, minute_offset: int = 0) -> bool:
    # Late is fine (process restarted after the slot); early is not.
    if slot.hour < target_hour:
        return False
    if slot.hour == target_hour and slot.minute < minute_offset:
        return False
    return True


def build_daily_payload(local_date: date, click_url: str = "/") -> PushPayload:
    body = DAILY_MESSAGES[local_date.toordinal() % len(DAILY_MESSAGES)]
    return PushPayload(title=DAILY_TITLE, body=body, tag=DAILY_TAG, data={"url": click_url})


@dataclass(slots=True)
class TickReport:
    total: int = 0
    sent: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class PushScheduler:
    """Per-registration daily state machine: pending -> sent (until the local date rolls over)."""

    def __init__(
        self,
        registry: PushRegistrationRepo,
        engagement: EngagementRepo,
        deliverer: PushDeliverer,
        *,
        default_timezone: str = "America/Argentina/Buenos_Aires",
        probe_hours: Sequence[int] = DEFAULT_PROBE_HOURS,
        min_learning_events: int = 3,
        daily_minute: int = 0,
        click_url: str = "/",
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self.registry = registry
        self.engagement = engagement
        self.deliverer = deliverer
        self.default_timezone = default_timezone
        self.probe_hours = tuple(h for h in probe_hours if 0 <= int(h) <= 23) or DEFAULT_PROBE_HOURS
        self.min_learning_events = max(1, int(min_learning_events))
        self.daily_minute = min(59, max(0, int(daily_minute)))
        self.click_url = click_url
        self._clock = clock
        self._tick_lock = asyncio.Lock()

    async def _deliver(self, reg: PushRegistration, payload: PushPayload) -> DeliveryResult:
        try:
            return await self.deliverer.deliver(reg.subscription, payload)
        except DeliveryGone as e:
            return DeliveryResult(delivered=False, permanent_failure=True, detail=str(e))
        except DeliveryFailure as e:
            return DeliveryResult(delivered=False, detail=str(e))

    def _handle_failure(self, reg: PushRegistration, result: DeliveryResult, report: TickReport) -> None:
        if result.permanent_failure:
            logger.info(
                "Push endpoint gone, removing registration id=%s (%s)",
                reg.id[:12],
                result.detail,
                extra={"console": True},
            )
            self.registry.remove(reg.id)
            report.removed.append(reg.id)
        else:
            logger.warning("Push delivery failed id=%s (%s); will retry next tick", reg.id[:12], result.detail)
            report.failed.append(reg.id)

    def _release(self, reg: PushRegistration, date_key: str) -> None:
        try:
            self.registry.release_daily_claim(
                reg.id,
                date_key=date_key,
                previous_key=reg.last_daily_sent_key,
                previous_strategy=reg.adaptive_strategy.value if reg.adaptive_strategy else None,
                previous_hour=reg.last_adaptive_hour,
            )
        except Exception:
            logger.exception("Failed to release daily claim id=%s; today's push is skipped", reg.id[:12])

    async def _process(self, reg: PushRegistration, now: datetime, report: TickReport) -> None:
        tz = resolve_zone(reg.timezone, self.default_timezone)
        slot = local_slot(now, tz)

        if reg.last_daily_sent_key == slot.date_key:
            return

        profile = self.engagement.get_profile(reg.user_id) if reg.user_id else None
        target_hour, strategy = choose_target_hour(
            profile=profile,
            days_since_creation=days_since_created(reg.created_at, slot.local_date, tz),
            probe_hours=self.probe_hours,
            min_learning_events=self.min_learning_events,
        )
        if not is_due(slot, target_hour, self.daily_minute):
            return

        # Claim the day first: a failed write here means no push, never a second one.
        claimed = self.registry.try_claim_daily(
            reg.id, date_key=slot.date_key, strategy=strategy.value, hour=target_hour
        )
        if not claimed:
            return

        try:
            result = await self._deliver(reg, build_daily_payload(slot.local_date, self.click_url))
        except Exception:
            self._release(reg, slot.date_key)
            raise
        if not result.delivered:
            if not result.permanent_failure:
                self._release(reg, slot.date_key)
            self._handle_failure(reg, result, report)
            return

        report.sent.append(reg.id)
        logger.info(
            "Daily push sent id=%s user=%s strategy=%s hour=%s date=%s",
            reg.id[:12],
            reg.user_id,
            strategy.value,
            target_hour,
            slot.date_key,
            extra={"console": True},
        )

    async def tick(self, now: datetime | None = None) -> TickReport | None:
        """
        One scheduler pass over every registration.

        Returns None when the previous tick is still running (overlapping ticks are skipped)
        or when registrations could not be read.
        """
        if self._tick_lock.locked():
            logger.warning("Previous push tick still running; skipping this one")
            return None

        async with self._tick_lock:
            now = now or self._clock()
            try:
                registrations = self.registry.list_all()
            except Exception:
                logger.exception("Failed to read push registrations; tick skipped")
                return None

            report = TickReport(total=len(registrations))
            for reg in registrations:
                try:
                    await self._process(reg, now, report)
                except Exception:
                    logger.exception("Push processing failed id=%s", reg.id[:12])
                    report.failed.append(reg.id)

            if report.sent or report.removed or report.failed:
                logger.info(
                    "Push tick: sent=%d removed=%d failed=%d total=%d",
                    len(report.sent),
                    len(report.removed),
                    len(report.failed),
                    report.total,
                )
            return report

    async def send_push_to_all(self, payload: PushPayload) -> tuple[int, int]:
        """Broadcast outside the daily cycle; does not touch the daily-sent state."""
        registrations = self.registry.list_all()
        report = TickReport(total=len(registrations))
        for reg in registrations:
            try:
                result = await self._deliver(reg, payload)
            except Exception:
                logger.exception("Broadcast push failed id=%s", reg.id[:12])
                continue
            if result.delivered:
                report.sent.append(reg.id)
            else:
                self._handle_failure(reg, result, report)
        return len(report.sent), report.total

    async def send_test_push(self, title: str = "STEEB test", body: str = "Push de prueba") -> tuple[int, int]:
        return await self.send_push_to_all(
            PushPayload(title=title, body=body, tag=TEST_TAG, data={"url": self.click_url})
        )


def build_push_scheduler(state) -> PushScheduler:
    settings = state.settings
    return PushScheduler(
        state.push_registry,
        state.engagement,
        state.deliverer,
        default_timezone=getattr(settings, "push_timezone", "America/Argentina/Buenos_Aires"),
        probe_hours=getattr(settings, "push_probe_hours", DEFAULT_PROBE_HOURS),
        min_learning_events=getattr(settings, "push_min_learning_events", 3),
        daily_minute=getattr(settings, "push_daily_minute", 0),
        click_url=getattr(settings, "push_click_url", "/"),
    )


async def run_push_scheduler(
        scheduler: PushScheduler,
        *,
        interval_seconds: float = 60.0,
        stop_event: asyncio.Event | None = None,
) -> None:
    """
    Run scheduler.tick() every interval_seconds (first tick immediately).

    Stops when stop_event is set; otherwise cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while True:
        try:
            await scheduler.tick()
        except Exception:
            logger.exception("Push scheduler tick crashed")

        if stop_event is None:
            await asyncio.sleep(sleep_s)
            continue

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=sleep_s)
        except TimeoutError:
            continue
        logger.info("Push scheduler stopped.")
        return


@dataclass
class SchedulerBackgroundRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal push scheduler stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_scheduler_in_background(
        scheduler: PushScheduler,
        *,
        interval_seconds: float = 60.0,
) -> SchedulerBackgroundRunner | None:
    """
    Start the push scheduler in a background thread (so the console REPL can run in parallel).

    The console REPL is blocking (input()); the scheduler is async and wants its own event loop.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(
                run_push_scheduler(scheduler, interval_seconds=interval_seconds, stop_event=stop_event)
            )
        finally:
            with contextlib.suppress(Exception):
                loop.stop()
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="push-scheduler", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Push scheduler thread did not initialize properly.")
        return None

    logger.info("Push scheduler background thread started (interval=%ss).", interval_seconds)
    return SchedulerBackgroundRunner(thread=t, loop=loop, stop_event=stop_event)
