# src/steeb_core/tasks/task_models.py

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

SCHEDULE_FIELDS: tuple[str, ...] = (
    "scheduled_date",
    "scheduled_time",
    "scheduled_with_time",
    "next_schedule_time",
    "timezone",
)

DEFAULT_TITLE = "Untitled task"


def new_id() -> str:
    return str(uuid.uuid4())


def iso(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC).isoformat()


def utc_now() -> datetime:
    return datetime.now(UTC)


class TaskStatus(StrEnum):
    """
    Task status.

    Stored twice on every task:
    - requested_status: what a caller last asked for (input of recomputation)
    - status: what recomputation derived from children, checklist and QA
    """

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"

    @classmethod
    def from_raw(cls, raw: Any) -> TaskStatus:
        if not raw:
            return cls.TODO
        try:
            return cls(str(raw))
        except ValueError:
            return cls.TODO


@dataclass(slots=True)
class ChecklistItem:
    id: str
    label: str
    checked: bool
    order: int

    def to_record(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "checked": self.checked, "order": self.order}


@dataclass(slots=True)
class AcceptanceCriterion:
    id: str
    label: str
    satisfied: bool
    order: int

    def to_record(self) -> dict[str, Any]:
        return {"id": self.id, "label": self.label, "satisfied": self.satisfied, "order": self.order}


@dataclass(slots=True)
class QAState:
    approved: bool = False
    evidence: list[str] = field(default_factory=list)
    notes: str | None = None
    qa_user: str | None = None
    qa_at: str | None = None

    @classmethod
    def from_record(cls, raw: Any) -> QAState:
        if isinstance(raw, QAState):
            return QAState(
                approved=raw.approved,
                evidence=list(raw.evidence),
                notes=raw.notes,
                qa_user=raw.qa_user,
                qa_at=raw.qa_at,
            )
        if not isinstance(raw, Mapping):
            return cls()
        return cls(
            approved=bool(raw.get("approved", False)),
            evidence=[str(e) for e in (raw.get("evidence") or [])],
            notes=raw.get("notes"),
            qa_user=raw.get("qa_user"),
            qa_at=raw.get("qa_at"),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "approved": self.approved,
            "evidence": list(self.evidence),
            "notes": self.notes,
            "qa_user": self.qa_user,
            "qa_at": self.qa_at,
        }


@dataclass(frozen=True, slots=True)
class ScheduleLogEntry:
    """One rescheduling event. Entries are never edited once appended."""

    id: str
    type: str
    note: str | None
    from_: dict[str, Any] | None
    to: dict[str, Any] | None
    updated_by: str | None
    at: str

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "note": self.note,
            "from": dict(self.from_) if self.from_ is not None else None,
            "to": dict(self.to) if self.to is not None else None,
            "updated_by": self.updated_by,
            "at": self.at,
        }


@dataclass(slots=True)
class Audit:
    created_at: str
    updated_at: str
    completed_at: str | None = None
    updated_by: str | None = None

    @classmethod
    def fresh(cls, now_iso: str, updated_by: str | None) -> Audit:
        return cls(created_at=now_iso, updated_at=now_iso, completed_at=None, updated_by=updated_by)

    @classmethod
    def from_record(cls, raw: Any, now_iso: str) -> Audit:
        if isinstance(raw, Audit):
            return Audit(raw.created_at, raw.updated_at, raw.completed_at, raw.updated_by)
        if not isinstance(raw, Mapping):
            return cls.fresh(now_iso, None)
        created = raw.get("created_at") or now_iso
        return cls(
            created_at=created,
            updated_at=raw.get("updated_at") or created,
            completed_at=raw.get("completed_at"),
            updated_by=raw.get("updated_by"),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "completed_at": self.completed_at,
            "updated_by": self.updated_by,
        }


@dataclass(slots=True)
class Task:
    task_id: str
    parent_task_id: str | None
    title: str
    description: str
    owner: str | None
    estimate: Any
    labels: list[str]
    type: str | None

    status: TaskStatus
    requested_status: TaskStatus
    progress: int

    checklist: list[ChecklistItem]
    acceptance_criteria: list[AcceptanceCriterion]
    qa: QAState
    dependencies: list[str]

    scheduled_date: str | None
    scheduled_time: str | None
    scheduled_with_time: bool
    next_schedule_time: str | None
    timezone: str | None
    schedule_log: list[ScheduleLogEntry]

    audit: Audit

    # Filled only on tree views; never persisted.
    children: list[Task] = field(default_factory=list)

    def schedule_snapshot(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in SCHEDULE_FIELDS}

    @classmethod
    def from_record(cls, raw: Mapping[str, Any], *, now_iso: str | None = None) -> Task:
        """Tolerant loader for stored records (older files may miss fields)."""
        now_iso = now_iso or iso(utc_now())
        status = TaskStatus.from_raw(raw.get("status"))
        requested = TaskStatus.from_raw(raw.get("requested_status") or raw.get("status"))
        try:
            progress = int(raw.get("progress") or 0)
        except (TypeError, ValueError):
            progress = 0
        return cls(
            task_id=str(raw.get("task_id") or new_id()),
            parent_task_id=raw.get("parent_task_id") or None,
            title=str(raw.get("title") or DEFAULT_TITLE),
            description=str(raw.get("description") or ""),
            owner=raw.get("owner"),
            estimate=raw.get("estimate"),
            labels=unique_strings(raw.get("labels") or []),
            type=raw.get("type"),
            status=status,
            requested_status=requested,
            progress=max(0, min(100, progress)),
            checklist=normalize_checklist(raw.get("checklist") or []),
            acceptance_criteria=normalize_acceptance_criteria(raw.get("acceptance_criteria") or []),
            qa=QAState.from_record(raw.get("qa")),
            dependencies=unique_strings(raw.get("dependencies") or []),
            scheduled_date=raw.get("scheduled_date"),
            scheduled_time=raw.get("scheduled_time"),
            scheduled_with_time=bool(raw.get("scheduled_with_time", False)),
            next_schedule_time=raw.get("next_schedule_time"),
            timezone=raw.get("timezone"),
            schedule_log=normalize_schedule_log(raw.get("schedule_log") or [], now_iso=now_iso),
            audit=Audit.from_record(raw.get("audit"), now_iso),
        )

    def to_record(self, *, include_children: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {
            "task_id": self.task_id,
            "parent_task_id": self.parent_task_id,
            "title": self.title,
            "description": self.description,
            "owner": self.owner,
            "estimate": self.estimate,
            "labels": list(self.labels),
            "type": self.type,
            "status": self.status.value,
            "requested_status": self.requested_status.value,
            "progress": self.progress,
            "checklist": [c.to_record() for c in self.checklist],
            "acceptance_criteria": [c.to_record() for c in self.acceptance_criteria],
            "qa": self.qa.to_record(),
            "dependencies": list(self.dependencies),
            "scheduled_date": self.scheduled_date,
            "scheduled_time": self.scheduled_time,
            "scheduled_with_time": self.scheduled_with_time,
            "next_schedule_time": self.next_schedule_time,
            "timezone": self.timezone,
            "schedule_log": [e.to_record() for e in self.schedule_log],
            "audit": self.audit.to_record(),
        }
        if include_children:
            out["children"] = [c.to_record(include_children=True) for c in self.children]
        return out


# ---- shorthand normalization ----


def unique_strings(values: Iterable[Any]) -> list[str]:
    """Set semantics with stable order."""
    out: list[str] = []
    seen: set[str] = set()
    for v in values:
        s = str(v)
        if s in seen:
            continue
        seen.add(s)
        out.append(s)
    return out


def _order(raw: Any, index: int) -> int:
    try:
        return int(raw) if raw is not None else index
    except (TypeError, ValueError):
        return index


def normalize_checklist(items: Iterable[Any]) -> list[ChecklistItem]:
    """
    Accept plain strings or structured items, return structured items only.

    "Write docs" -> ChecklistItem(id=<uuid>, label="Write docs", checked=False, order=<position>)
    """
    out: list[ChecklistItem] = []
    for index, item in enumerate(items):
        if isinstance(item, ChecklistItem):
            out.append(ChecklistItem(item.id, item.label, item.checked, item.order))
        elif isinstance(item, str):
            out.append(ChecklistItem(id=new_id(), label=item, checked=False, order=index))
        elif isinstance(item, Mapping):
            out.append(
                ChecklistItem(
                    id=str(item.get("id") or new_id()),
                    label=str(item.get("label") or item.get("text") or f"Item {index + 1}"),
                    checked=bool(item.get("checked", False)),
                    order=_order(item.get("order"), index),
                )
            )
    return out


def normalize_acceptance_criteria(items: Iterable[Any]) -> list[AcceptanceCriterion]:
    out: list[AcceptanceCriterion] = []
    for index, item in enumerate(items):
        if isinstance(item, AcceptanceCriterion):
            out.append(AcceptanceCriterion(item.id, item.label, item.satisfied, item.order))
        elif isinstance(item, str):
            out.append(AcceptanceCriterion(id=new_id(), label=item, satisfied=False, order=index))
        elif isinstance(item, Mapping):
            out.append(
                AcceptanceCriterion(
                    id=str(item.get("id") or new_id()),
                    label=str(item.get("label") or item.get("text") or f"Criterion {index + 1}"),
                    satisfied=bool(item.get("satisfied", False)),
                    order=_order(item.get("order"), index),
                )
            )
    return out


def normalize_schedule_log(events: Iterable[Any], *, now_iso: str) -> list[ScheduleLogEntry]:
    out: list[ScheduleLogEntry] = []
    for event in events:
        if isinstance(event, ScheduleLogEntry):
            out.append(event)
            continue
        if not isinstance(event, Mapping):
            continue
        out.append(
            ScheduleLogEntry(
                id=str(event.get("id") or new_id()),
                type=str(event.get("type") or "update"),
                note=event.get("note"),
                from_=event.get("from"),
                to=event.get("to"),
                updated_by=event.get("updated_by"),
                at=str(event.get("at") or now_iso),
            )
        )
    return out
