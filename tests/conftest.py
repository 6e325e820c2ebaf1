# tests/conftest.py

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

from steeb_core.core.state import AppState
from steeb_core.engagement.store import EngagementStore
from steeb_core.push.registry import PushRegistry
from steeb_core.tasks.task_storage import InMemoryTaskStorage
from steeb_core.tasks.task_store import TaskStore

from .fakes import FakeClock, FakeDeliverer

BUENOS_AIRES = "America/Argentina/Buenos_Aires"


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and core modules.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        data_dir=tmp_path,
        tasks_path=tmp_path / "tasks.json",
        engagement_db_path=tmp_path / "engagement.sqlite3",
        push_db_path=tmp_path / "push.sqlite3",
        push_enabled=False,
        push_relay_url="",
        push_relay_token=None,
        push_timezone=BUENOS_AIRES,
        push_daily_minute=0,
        push_tick_seconds=60.0,
        push_probe_hours=[9, 11, 13, 16, 19, 21],
        push_min_learning_events=3,
        push_click_url="/",
        engagement_decay_threshold=1000,
        task_tree_max_depth=3,
    )


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=UTC))


@pytest.fixture()
def storage() -> InMemoryTaskStorage:
    return InMemoryTaskStorage()


@pytest.fixture()
def task_store(storage: InMemoryTaskStorage, clock: FakeClock) -> TaskStore:
    return TaskStore(storage, clock=clock)


@pytest.fixture()
def engagement(settings: SimpleNamespace) -> EngagementStore:
    return EngagementStore(settings.engagement_db_path)


@pytest.fixture()
def push_registry(settings: SimpleNamespace) -> PushRegistry:
    return PushRegistry(settings.push_db_path)


@pytest.fixture()
def deliverer() -> FakeDeliverer:
    return FakeDeliverer()


@pytest.fixture()
def state(
    settings: SimpleNamespace,
    task_store: TaskStore,
    engagement: EngagementStore,
    push_registry: PushRegistry,
    deliverer: FakeDeliverer,
) -> AppState:
    """AppState wired with real SQLite stores and a fake delivery channel."""
    return AppState(
        settings=settings,
        task_store=task_store,
        engagement=engagement,
        push_registry=push_registry,
        deliverer=deliverer,
    )
