# src/steeb_core/cli/commands.py

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import cast

from ..core.state import AppState
from ..push.push_scheduler import build_push_scheduler
from ..tasks.task_models import Task

CommandEmitter = Callable[[str], None]
CommandHandler2 = Callable[[AppState, list[str]], str]
CommandHandler3 = Callable[[AppState, list[str], CommandEmitter | None], str]
CommandHandler = CommandHandler2 | CommandHandler3

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the operator console (/help, /tasks, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except Exception:
            nparams = 3

        if nparams >= 3:
            h3 = cast(CommandHandler3, handler)
            return h3(state, args, emit)

        h2 = cast(CommandHandler2, handler)
        return h2(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def _short(task_id: str) -> str:
    return task_id[:8]


def _render_tree(task: Task, depth: int = 0) -> list[str]:
    qa = " QA" if task.qa.approved else ""
    lines = [f"{'  ' * depth}- [{task.status.value} {task.progress}%{qa}] {task.title} ({_short(task.task_id)})"]
    for child in task.children:
        lines.extend(_render_tree(child, depth + 1))
    return lines


def _find_task_id(state: AppState, prefix: str) -> str | None:
    matches = [t.task_id for t in state.task_store.all_tasks() if t.task_id.startswith(prefix)]
    return matches[0] if len(matches) == 1 else None


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    settings = state.settings
    relay = "HTTP relay" if getattr(settings, "push_relay_url", "") else "dry-run"
    hours = ", ".join(str(h) for h in getattr(settings, "push_probe_hours", []) or [])
    return (
        "Status:\n"
        f"  Tasks: {state.task_store.count_tasks()}\n"
        f"  Push registrations: {state.push_registry.count()}\n"
        f"  Push scheduler: {'ON' if getattr(settings, 'push_enabled', False) else 'OFF'} ({relay})\n"
        f"  Default timezone: {getattr(settings, 'push_timezone', '?')}\n"
        f"  Probe hours: {hours}"
    )


def cmd_tasks(state: AppState, args: list[str]) -> str:
    """
    /tasks             -> root task trees
    /tasks <id-prefix> -> children of one task
    """
    parent_id = None
    if args:
        parent_id = _find_task_id(state, args[0])
        if parent_id is None:
            return f"No unique task matches {args[0]!r}."

    trees = state.task_store.list_tasks(parent_task_id=parent_id)
    if not trees:
        return "No tasks."
    lines: list[str] = []
    for tree in trees:
        lines.extend(_render_tree(tree))
    return "\n".join(lines)


def cmd_task(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /task <id-prefix>"
    task_id = _find_task_id(state, args[0])
    task = state.task_store.get_task(task_id, max_depth=1) if task_id else None
    if task is None:
        return f"No unique task matches {args[0]!r}."

    done_items = sum(1 for c in task.checklist if c.checked)
    met = sum(1 for c in task.acceptance_criteria if c.satisfied)
    return (
        f"{task.title} ({task.task_id})\n"
        f"  Status: {task.status.value} (requested {task.requested_status.value}), progress {task.progress}%\n"
        f"  QA approved: {task.qa.approved} by {task.qa.qa_user or '-'}\n"
        f"  Checklist: {done_items}/{len(task.checklist)}  Criteria: {met}/{len(task.acceptance_criteria)}\n"
        f"  Subtasks: {len(task.children)}  Dependencies: {', '.join(map(_short, task.dependencies)) or '-'}\n"
        f"  Schedule changes: {len(task.schedule_log)}  Completed at: {task.audit.completed_at or '-'}"
    )


def cmd_engagement(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /engagement <user_id>"
    profile = state.engagement.get_profile(args[0])
    if profile is None:
        return f"No engagement recorded for {args[0]}."
    top = sorted(profile.hourly_scores.items(), key=lambda kv: (-kv[1], kv[0]))[:5]
    top_s = ", ".join(f"{h:02d}h={c}" for h, c in top) or "-"
    return (
        f"Engagement for {profile.user_id}:\n"
        f"  Events: {profile.total_events}  Preferred hour: {profile.preferred_hour()}\n"
        f"  Top hours: {top_s}"
    )


def cmd_push(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /push list -> registrations with their daily state
    /push test -> send a test notification to every registration
    """
    sub = args[0].lower() if args else "list"

    if sub == "list":
        regs = state.push_registry.list_all()
        if not regs:
            return "No push registrations."
        lines = ["Push registrations:"]
        for r in regs:
            lines.append(
                f"  {r.id[:12]} user={r.user_id or '-'} tz={r.timezone or '-'} "
                f"last_sent={r.last_daily_sent_key or '-'} "
                f"strategy={r.adaptive_strategy.value if r.adaptive_strategy else '-'} "
                f"hour={r.last_adaptive_hour if r.last_adaptive_hour is not None else '-'}"
            )
        return "\n".join(lines)

    if sub == "test":
        if emit:
            emit("[PUSH] Sending test push...")
        sent, total = asyncio.run(build_push_scheduler(state).send_test_push())
        return f"Test push delivered to {sent}/{total} registrations."

    return "Usage: /push list | /push test"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show store counts and push settings.")
registry.register("tasks", cmd_tasks, help_text="Task trees: /tasks [parent-id-prefix].")
registry.register("task", cmd_task, help_text="Task details: /task <id-prefix>.")
registry.register("engagement", cmd_engagement, help_text="Engagement profile: /engagement <user_id>.")
registry.register("push", cmd_push, help_text="Push registrations: /push list | /push test.")
