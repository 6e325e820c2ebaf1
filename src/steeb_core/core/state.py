# src/steeb_core/core/state.py

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..engagement.store import EngagementStore
from ..push.registry import PushRegistry
from ..tasks.task_store import TaskStore
from .ports import PushDeliverer


@dataclass
class AppState:
    """
    Everything the process shares, built once by the composition root.

    No module-level singletons: stores and the delivery channel are passed around
    through this object so tests can wire fakes.
    """

    settings: Any

    task_store: TaskStore
    engagement: EngagementStore
    push_registry: PushRegistry
    deliverer: PushDeliverer

    lock: threading.RLock = field(default_factory=threading.RLock)
