# src/steeb_core/tasks/task_propagation.py

from __future__ import annotations

"""
Status propagation.

recompute() derives status/progress for the whole task forest:
- children are computed before their parent (post-order)
- a blocked requested status is pushed down to non-done descendants
- a blocked child makes every non-done ancestor blocked
- "done" only holds for QA-approved leaves, or QA-approved parents whose children are all done
- audit.completed_at is stamped the first time a task derives "done" and is never cleared

The function never raises. Orphans (parent id pointing to a missing task) and tasks
caught in a parent cycle are treated as roots; cycle breaking is logged.
"""

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

from .task_models import Audit, Task, TaskStatus, iso, utc_now

logger = logging.getLogger(__name__)

IN_PROGRESS_FLOOR = 25


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


@dataclass(slots=True, frozen=True)
class _Forest:
    by_id: dict[str, Task]
    order: list[str]
    children: dict[str, list[str]]
    roots: list[str]


def _index(tasks: Iterable[Task]) -> tuple[dict[str, Task], list[str]]:
    by_id: dict[str, Task] = {}
    order: list[str] = []
    for t in tasks:
        if t.task_id in by_id:
            logger.warning("Duplicate task_id=%s ignored during recompute", t.task_id)
            continue
        by_id[t.task_id] = t
        order.append(t.task_id)
    return by_id, order


def _build_forest(tasks: Iterable[Task]) -> _Forest:
    by_id, order = _index(tasks)

    children: dict[str, list[str]] = {tid: [] for tid in order}
    roots: list[str] = []
    for tid in order:
        parent = by_id[tid].parent_task_id
        if parent and parent in by_id and parent != tid:
            children[parent].append(tid)
        else:
            # No parent, orphan, or self-parented.
            roots.append(tid)

    # Anything unreachable from the roots sits on a parent cycle.
    reachable: set[str] = set()
    stack = list(roots)
    while stack:
        tid = stack.pop()
        if tid in reachable:
            continue
        reachable.add(tid)
        stack.extend(children[tid])

    for tid in order:
        if tid in reachable:
            continue
        logger.warning(
            "Parent cycle detected at task_id=%s (parent=%s); treating it as a root",
            tid,
            by_id[tid].parent_task_id,
        )
        roots.append(tid)
        parent = by_id[tid].parent_task_id
        if parent in children and tid in children[parent]:
            children[parent].remove(tid)
        stack = [tid]
        while stack:
            cur = stack.pop()
            if cur in reachable:
                continue
            reachable.add(cur)
            stack.extend(children[cur])

    return _Forest(by_id=by_id, order=order, children=children, roots=roots)


def root_ids(tasks: Iterable[Task]) -> list[str]:
    """Ids treated as roots: parentless tasks, orphans, then cycle breakers."""
    return list(_build_forest(tasks).roots)


def _checklist_progress(task: Task) -> int:
    if not task.checklist:
        return 0
    done = sum(1 for item in task.checklist if item.checked)
    return _round_half_up(done / len(task.checklist) * 100)


def _derive(task: Task, base: TaskStatus, kids: Sequence[Task], now_iso: str) -> Task:
    status = base

    if kids:
        all_done = all(k.status == TaskStatus.DONE for k in kids)
        any_blocked = any(k.status == TaskStatus.BLOCKED for k in kids)
        if all_done and task.qa.approved:
            status = TaskStatus.DONE
        else:
            if status == TaskStatus.DONE:
                status = TaskStatus.IN_PROGRESS
            if any_blocked:
                status = TaskStatus.BLOCKED
    elif status == TaskStatus.DONE and not task.qa.approved:
        status = TaskStatus.IN_PROGRESS

    if task.status == TaskStatus.DONE and status != TaskStatus.DONE:
        logger.info("Task %s no longer satisfies done; derived status is now %s", task.task_id, status.value)

    checklist_progress = _checklist_progress(task)
    if status == TaskStatus.DONE:
        progress = 100
    elif kids:
        avg = sum(k.progress for k in kids) / len(kids)
        progress = max(_round_half_up(avg), checklist_progress)
    else:
        floor = IN_PROGRESS_FLOOR if status == TaskStatus.IN_PROGRESS else 0
        progress = max(checklist_progress, floor)

    audit = Audit(
        created_at=task.audit.created_at,
        updated_at=task.audit.updated_at,
        completed_at=task.audit.completed_at,
        updated_by=task.audit.updated_by,
    )
    if status == TaskStatus.DONE and not audit.completed_at:
        audit.completed_at = now_iso

    return replace(task, status=status, progress=progress, audit=audit, children=[])


def recompute(tasks: Iterable[Task], *, now_iso: str | None = None) -> list[Task]:
    """
    Return a new list with derived fields refreshed, in input order.

    Pure and idempotent: recompute(recompute(x)) == recompute(x).
    """
    now_iso = now_iso or iso(utc_now())
    forest = _build_forest(tasks)
    computed: dict[str, Task] = {}

    for root in forest.roots:
        # Iterative post-order; entries are (task_id, inherited base status, expanded?).
        stack: list[tuple[str, TaskStatus, bool]] = [(root, forest.by_id[root].requested_status, False)]
        while stack:
            tid, base, expanded = stack.pop()
            if tid in computed:
                continue
            kid_ids = [k for k in forest.children[tid] if k not in computed]
            if not expanded and kid_ids:
                stack.append((tid, base, True))
                for kid in reversed(kid_ids):
                    kid_base = forest.by_id[kid].requested_status
                    if base == TaskStatus.BLOCKED and kid_base != TaskStatus.DONE:
                        kid_base = TaskStatus.BLOCKED
                    stack.append((kid, kid_base, False))
                continue
            kids = [computed[k] for k in forest.children[tid] if k in computed]
            computed[tid] = _derive(forest.by_id[tid], base, kids, now_iso)

    return [computed[tid] for tid in forest.order if tid in computed]


def build_tree(tasks: Sequence[Task], task_id: str, *, max_depth: int = 3) -> Task | None:
    """
    Nest children under task_id down to max_depth levels.

    A node at the depth limit is kept with an empty children list.
    """
    forest = _build_forest(tasks)
    if task_id not in forest.by_id:
        return None

    def _node(tid: str, depth: int, path: frozenset[str]) -> Task:
        task = forest.by_id[tid]
        if depth >= max_depth:
            return replace(task, children=[])
        kids = [
            _node(k, depth + 1, path | {k})
            for k in forest.children[tid]
            if k not in path
        ]
        return replace(task, children=kids)

    return _node(task_id, 0, frozenset({task_id}))
