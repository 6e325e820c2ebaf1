# src/steeb_core/tasks/task_store.py

from __future__ import annotations

import copy
import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from datetime import datetime
from typing import Any

from ..core.ports import TaskStorage
from ..errors import (
    REASON_QA_NOT_APPROVED,
    REASON_SUBTASKS_INCOMPLETE,
    InvalidTransition,
    NotFound,
)
from .task_models import (
    DEFAULT_TITLE,
    AcceptanceCriterion,
    SCHEDULE_FIELDS,
    Audit,
    QAState,
    ScheduleLogEntry,
    Task,
    TaskStatus,
    iso,
    new_id,
    normalize_acceptance_criteria,
    normalize_checklist,
    normalize_schedule_log,
    unique_strings,
    utc_now,
)
from .task_propagation import build_tree, recompute, root_ids

logger = logging.getLogger(__name__)

_QA_FIELDS = ("approved", "evidence", "notes", "qa_user", "qa_at")


def _parse_status(raw: Any) -> TaskStatus:
    try:
        return TaskStatus(str(raw))
    except ValueError:
        raise ValueError(f"Unknown task status: {raw!r}") from None


def _is_collection(value: Any) -> bool:
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes, Mapping))


class TaskStore:
    """
    Hierarchical task/QA tracker over a load()/save() persistence collaborator.

    The whole collection is kept in memory and recomputed (status/progress propagation)
    after every mutation and before every read, so callers never see stale derived fields.

    Thread-safety:
    - one re-entrant lock serializes read-validate-write sequences (the done-gate is checked
      against the same snapshot that gets committed)
    - a failed save (other than a read-only filesystem) raises StorageUnavailable and
      leaves the in-memory state untouched
    """

    def __init__(
        self,
        storage: TaskStorage,
        *,
        clock: Callable[[], datetime] = utc_now,
        default_max_depth: int = 3,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._default_max_depth = max(0, int(default_max_depth))
        self._lock = threading.RLock()

        now_iso = self._now_iso()
        loaded = [Task.from_record(r, now_iso=now_iso) for r in storage.load()]
        self._tasks: list[Task] = recompute(loaded, now_iso=now_iso)
        logger.info("TaskStore ready total=%s", len(self._tasks))

    # ---- low-level helpers ----

    def _now_iso(self) -> str:
        return iso(self._clock())

    def _index_of(self, task_id: str) -> int:
        for i, t in enumerate(self._tasks):
            if t.task_id == task_id:
                return i
        raise NotFound(task_id)

    def _commit(self, updated: list[Task], now_iso: str) -> list[Task]:
        computed = recompute(updated, now_iso=now_iso)
        saved = self._storage.save([t.to_record() for t in computed])
        if not saved:
            logger.warning("Task state kept in memory only (storage skipped the write)")
        self._tasks = computed
        return computed

    def _replace_and_commit(self, index: int, task: Task, now_iso: str) -> Task:
        updated = list(self._tasks)
        updated[index] = task
        computed = self._commit(updated, now_iso)
        return copy.deepcopy(computed[index])

    def _touch(self, task: Task, actor: str | None, now_iso: str) -> None:
        task.audit = Audit(
            created_at=task.audit.created_at,
            updated_at=now_iso,
            completed_at=task.audit.completed_at,
            updated_by=actor or task.audit.updated_by,
        )

    def _check_done_gate(self, task: Task, incoming_qa: Mapping[str, Any] | None) -> None:
        children = [t for t in self._tasks if t.parent_task_id == task.task_id and t.task_id != task.task_id]

        incoming_approved = (incoming_qa or {}).get("approved")
        qa_approved = bool(incoming_approved) if incoming_approved is not None else task.qa.approved

        if children and not all(c.status == TaskStatus.DONE and c.qa.approved for c in children):
            raise InvalidTransition(task.task_id, REASON_SUBTASKS_INCOMPLETE)
        if not qa_approved:
            raise InvalidTransition(task.task_id, REASON_QA_NOT_APPROVED)

    # ---- public API ----

    def count_tasks(self) -> int:
        with self._lock:
            return len(self._tasks)

    def create_task(self, payload: Mapping[str, Any], actor: str | None = None) -> Task:
        with self._lock:
            now_iso = self._now_iso()
            task_id = str(payload.get("task_id") or new_id())
            if any(t.task_id == task_id for t in self._tasks):
                raise ValueError(f"task_id already exists: {task_id}")

            requested = _parse_status(payload["status"]) if payload.get("status") else TaskStatus.TODO
            title = str(payload.get("title") or "").strip() or DEFAULT_TITLE

            audit_raw = payload.get("audit")
            if audit_raw:
                audit = Audit.from_record(audit_raw, now_iso)
            else:
                audit = Audit.fresh(now_iso, actor or payload.get("owner"))

            task = Task(
                task_id=task_id,
                parent_task_id=payload.get("parent_task_id") or None,
                title=title,
                description=str(payload.get("description") or ""),
                owner=payload.get("owner"),
                estimate=payload.get("estimate"),
                labels=unique_strings(payload.get("labels") or []),
                type=payload.get("type"),
                status=requested,
                requested_status=requested,
                progress=0,
                checklist=normalize_checklist(payload.get("checklist") or []),
                acceptance_criteria=normalize_acceptance_criteria(payload.get("acceptance_criteria") or []),
                qa=QAState.from_record(payload.get("qa")),
                dependencies=unique_strings(payload.get("dependencies") or []),
                scheduled_date=payload.get("scheduled_date"),
                scheduled_time=payload.get("scheduled_time"),
                scheduled_with_time=bool(payload.get("scheduled_with_time", False)),
                next_schedule_time=payload.get("next_schedule_time"),
                timezone=payload.get("timezone"),
                schedule_log=normalize_schedule_log(payload.get("schedule_log") or [], now_iso=now_iso),
                audit=audit,
            )

            computed = self._commit([*self._tasks, task], now_iso)
            logger.debug("Task created id=%s parent=%s", task_id, task.parent_task_id)
            return copy.deepcopy(next(t for t in computed if t.task_id == task_id))

    def update_task(self, task_id: str, updates: Mapping[str, Any], actor: str | None = None) -> Task:
        """
        Partial update: only supplied fields change.

        status="done" must pass the done-gate first (children done and QA-approved,
        own QA approved after this update), otherwise InvalidTransition is raised
        and nothing is written.
        """
        with self._lock:
            index = self._index_of(task_id)
            task = copy.deepcopy(self._tasks[index])
            now_iso = self._now_iso()
            actor = actor or updates.get("updated_by")

            incoming_qa = updates.get("qa") if isinstance(updates.get("qa"), Mapping) else None

            if updates.get("status"):
                requested = _parse_status(updates["status"])
                if requested == TaskStatus.DONE:
                    self._check_done_gate(task, incoming_qa)
                task.requested_status = requested

            title = str(updates.get("title") or "").strip()
            if title:
                task.title = title
            for name in ("description", "owner", "estimate", "type"):
                if updates.get(name) is not None:
                    setattr(task, name, updates[name])
            if _is_collection(updates.get("labels")):
                task.labels = unique_strings(updates["labels"])
            if _is_collection(updates.get("dependencies")):
                task.dependencies = unique_strings(updates["dependencies"])
            if updates.get("checklist") is not None:
                task.checklist = normalize_checklist(updates["checklist"])
            if updates.get("acceptance_criteria") is not None:
                task.acceptance_criteria = normalize_acceptance_criteria(updates["acceptance_criteria"])

            before = task.schedule_snapshot()
            for name in SCHEDULE_FIELDS:
                if name not in updates:
                    continue
                value = updates[name]
                if name == "scheduled_with_time":
                    value = bool(value)
                setattr(task, name, value)
            after = task.schedule_snapshot()
            if after != before:
                task.schedule_log = [
                    *task.schedule_log,
                    ScheduleLogEntry(
                        id=new_id(),
                        type="schedule_update",
                        note=updates.get("schedule_note"),
                        from_=before,
                        to=after,
                        updated_by=actor or task.audit.updated_by,
                        at=now_iso,
                    ),
                ]
                logger.info("Task %s rescheduled by %s", task_id, actor)

            if incoming_qa is not None:
                for name in _QA_FIELDS:
                    if incoming_qa.get(name) is None:
                        continue
                    value = incoming_qa[name]
                    if name == "approved":
                        value = bool(value)
                    elif name == "evidence":
                        value = [str(e) for e in value]
                    setattr(task.qa, name, value)

            self._touch(task, actor, now_iso)
            return self._replace_and_commit(index, task, now_iso)

    def set_acceptance(self, task_id: str, payload: Mapping[str, Any], actor: str | None = None) -> Task:
        """
        Record QA results.

        Incoming criteria update the stored list by id, falling back to label; unknown
        criteria are appended. When "approved" is not given explicitly, the task is
        auto-approved once every criterion is satisfied.
        """
        with self._lock:
            index = self._index_of(task_id)
            task = copy.deepcopy(self._tasks[index])
            now_iso = self._now_iso()

            qa_in: dict[str, Any] = dict(payload.get("qa") or {}) if isinstance(payload.get("qa"), Mapping) else {}
            for name in _QA_FIELDS:
                if name in payload:
                    qa_in[name] = payload[name]

            incoming = payload.get("acceptance_criteria")
            if incoming is not None:
                task.acceptance_criteria = _merge_criteria(task.acceptance_criteria, incoming)

            explicit = qa_in.get("approved")
            approved = bool(explicit) if explicit is not None else task.qa.approved
            if explicit is None and all(c.satisfied for c in task.acceptance_criteria):
                approved = True

            evidence = qa_in.get("evidence")
            task.qa = QAState(
                approved=approved,
                evidence=[str(e) for e in evidence] if evidence is not None else task.qa.evidence,
                notes=qa_in["notes"] if qa_in.get("notes") is not None else task.qa.notes,
                qa_user=qa_in.get("qa_user") or payload.get("updated_by") or task.qa.qa_user or actor,
                qa_at=now_iso,
            )

            self._touch(task, actor or payload.get("updated_by"), now_iso)
            logger.info("QA for task %s set approved=%s by %s", task_id, approved, task.qa.qa_user)
            return self._replace_and_commit(index, task, now_iso)

    def set_dependencies(self, task_id: str, dependency_ids: Iterable[str], actor: str | None = None) -> Task:
        """Replace the dependency set. Informational only: no cycle checks, no effect on status."""
        with self._lock:
            index = self._index_of(task_id)
            task = copy.deepcopy(self._tasks[index])
            now_iso = self._now_iso()
            task.dependencies = unique_strings(dependency_ids)
            self._touch(task, actor, now_iso)
            return self._replace_and_commit(index, task, now_iso)

    def list_tasks(self, parent_task_id: str | None = None, max_depth: int | None = None) -> list[Task]:
        """Root trees (or the children of parent_task_id), nested down to max_depth."""
        depth = self._default_max_depth if max_depth is None else max(0, int(max_depth))
        with self._lock:
            self._tasks = recompute(self._tasks, now_iso=self._now_iso())
            if parent_task_id:
                ids = [t.task_id for t in self._tasks if t.parent_task_id == parent_task_id]
            else:
                ids = root_ids(self._tasks)
            trees = [build_tree(self._tasks, tid, max_depth=depth) for tid in ids]
            return copy.deepcopy([t for t in trees if t is not None])

    def get_task(self, task_id: str, max_depth: int | None = None) -> Task | None:
        depth = self._default_max_depth if max_depth is None else max(0, int(max_depth))
        with self._lock:
            self._tasks = recompute(self._tasks, now_iso=self._now_iso())
            return copy.deepcopy(build_tree(self._tasks, task_id, max_depth=depth))

    def all_tasks(self) -> list[Task]:
        """Flat snapshot of every task (derived fields current)."""
        with self._lock:
            self._tasks = recompute(self._tasks, now_iso=self._now_iso())
            return copy.deepcopy(self._tasks)


def _merge_criteria(
    stored: list[AcceptanceCriterion], incoming: Iterable[Any]
) -> list[AcceptanceCriterion]:
    merged = normalize_acceptance_criteria(stored)
    extra: list[Any] = []
    for item in incoming:
        if isinstance(item, str):
            if not any(c.label == item for c in merged):
                extra.append(item)
            continue
        if not isinstance(item, Mapping):
            continue
        match = None
        if item.get("id"):
            match = next((c for c in merged if c.id == item["id"]), None)
        if match is None and item.get("label"):
            match = next((c for c in merged if c.label == item["label"]), None)
        if match is None:
            extra.append(item)
        elif item.get("satisfied") is not None:
            match.satisfied = bool(item["satisfied"])

    if extra:
        added = normalize_acceptance_criteria(extra)
        for offset, c in enumerate(added):
            c.order = len(merged) + offset
        merged.extend(added)
    return merged
