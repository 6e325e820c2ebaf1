# src/steeb_core/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (tasks/engagement/push).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.state import AppState
from ..engagement.store import EngagementStore
from ..push.delivery import build_deliverer
from ..push.registry import PushRegistry
from ..tasks.task_storage import JsonFileTaskStorage
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.tasks_path.parent.mkdir(parents=True, exist_ok=True)
    settings.engagement_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.push_db_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    return AppState(
        settings=settings,
        task_store=TaskStore(
            JsonFileTaskStorage(settings.tasks_path),
            default_max_depth=getattr(settings, "task_tree_max_depth", 3),
        ),
        engagement=EngagementStore(
            settings.engagement_db_path,
            decay_threshold=getattr(settings, "engagement_decay_threshold", 1000),
        ),
        push_registry=PushRegistry(settings.push_db_path),
        deliverer=build_deliverer(settings),
    )
