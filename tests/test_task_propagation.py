# tests/test_task_propagation.py

from __future__ import annotations

import logging
from typing import Any

import pytest

from steeb_core.tasks.task_models import Task, TaskStatus
from steeb_core.tasks.task_propagation import build_tree, recompute, root_ids

NOW = "2024-03-01T12:00:00+00:00"
LATER = "2024-03-02T12:00:00+00:00"


def make(task_id: str, parent: str | None = None, **fields: Any) -> Task:
    record: dict[str, Any] = {"task_id": task_id, "parent_task_id": parent, "title": task_id}
    record.update(fields)
    return Task.from_record(record, now_iso=NOW)


def by_id(tasks: list[Task]) -> dict[str, Task]:
    return {t.task_id: t for t in tasks}


def test_leaf_done_requires_qa_approval() -> None:
    out = by_id(
        recompute(
            [
                make("a", status="done"),
                make("b", status="done", qa={"approved": True}),
            ],
            now_iso=NOW,
        )
    )
    assert out["a"].status == TaskStatus.IN_PROGRESS
    assert out["a"].progress == 25
    assert out["b"].status == TaskStatus.DONE
    assert out["b"].progress == 100
    assert out["b"].audit.completed_at == NOW


def test_blocked_leaf_blocks_every_ancestor() -> None:
    tasks = [
        make("root"),
        make("mid", "root", status="in_progress"),
        make("low", "mid"),
        make("leaf", "low", status="blocked"),
        make("sibling", "root"),
    ]
    out = by_id(recompute(tasks, now_iso=NOW))
    assert out["leaf"].status == TaskStatus.BLOCKED
    assert out["low"].status == TaskStatus.BLOCKED
    assert out["mid"].status == TaskStatus.BLOCKED
    assert out["root"].status == TaskStatus.BLOCKED
    assert out["sibling"].status == TaskStatus.TODO


def test_blocked_parent_blocks_open_descendants_but_not_done_ones() -> None:
    tasks = [
        make("root", status="blocked"),
        make("open", "root", status="in_progress"),
        make("finished", "root", status="done", qa={"approved": True}),
    ]
    out = by_id(recompute(tasks, now_iso=NOW))
    assert out["open"].status == TaskStatus.BLOCKED
    assert out["finished"].status == TaskStatus.DONE
    assert out["root"].status == TaskStatus.BLOCKED


def test_progress_rules() -> None:
    checklist = [{"label": "a", "checked": True}, {"label": "b", "checked": True}, {"label": "c"}]
    tasks = [
        make("parent"),
        make("c1", "parent", checklist=checklist),
        make("c2", "parent", status="in_progress"),
        make("c3", "parent", status="done", qa={"approved": True}),
        make("solo", checklist=["x", "y"]),
    ]
    out = by_id(recompute(tasks, now_iso=NOW))
    assert out["c1"].progress == 67
    assert out["c2"].progress == 25
    assert out["c3"].progress == 100
    # (67 + 25 + 100) / 3 = 64
    assert out["parent"].progress == 64
    assert out["solo"].progress == 0


def test_parent_checklist_progress_wins_when_higher() -> None:
    tasks = [
        make("parent", checklist=[{"label": "a", "checked": True}]),
        make("child", "parent"),
    ]
    out = by_id(recompute(tasks, now_iso=NOW))
    assert out["parent"].progress == 100
    assert out["parent"].status == TaskStatus.TODO


def test_parent_done_needs_children_done_and_own_qa() -> None:
    tasks = [
        make("root", status="done", qa={"approved": True}),
        make("a", "root", status="done", qa={"approved": True}),
        make("b", "root", status="todo"),
    ]
    out = by_id(recompute(tasks, now_iso=NOW))
    assert out["root"].status == TaskStatus.IN_PROGRESS
    assert out["root"].audit.completed_at is None


def test_parent_auto_completes_when_children_done_and_qa_approved() -> None:
    tasks = [
        make("root", qa={"approved": True}),
        make("a", "root", status="done", qa={"approved": True}),
    ]
    out = by_id(recompute(tasks, now_iso=NOW))
    assert out["root"].status == TaskStatus.DONE
    assert out["root"].progress == 100


def test_completed_at_survives_degradation() -> None:
    tasks = [make("a", status="done", qa={"approved": True})]
    first = recompute(tasks, now_iso=NOW)
    assert first[0].audit.completed_at == NOW

    first[0].qa.approved = False
    second = recompute(first, now_iso=LATER)
    assert second[0].status == TaskStatus.IN_PROGRESS
    assert second[0].audit.completed_at == NOW

    second[0].qa.approved = True
    third = recompute(second, now_iso=LATER)
    assert third[0].status == TaskStatus.DONE
    assert third[0].audit.completed_at == NOW


def test_recompute_is_idempotent() -> None:
    tasks = [
        make("r1", status="done", qa={"approved": True}),
        make("a", "r1", status="done", qa={"approved": True}, checklist=[{"label": "x", "checked": True}]),
        make("b", "r1", status="blocked"),
        make("c", "b", status="in_progress", checklist=["p", {"label": "q", "checked": True}]),
        make("r2", status="blocked"),
        make("d", "r2"),
        make("orphan", "missing", status="done"),
    ]
    once = recompute(tasks, now_iso=NOW)
    twice = recompute(once, now_iso=LATER)
    assert [t.to_record() for t in once] == [t.to_record() for t in twice]


def test_orphan_is_treated_as_root() -> None:
    tasks = [make("child", "ghost", status="blocked"), make("grandchild", "child")]
    out = by_id(recompute(tasks, now_iso=NOW))
    assert set(out) == {"child", "grandchild"}
    assert out["grandchild"].status == TaskStatus.BLOCKED
    assert root_ids(tasks) == ["child"]


def test_parent_cycle_is_broken_without_looping(caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.WARNING, logger="steeb_core.tasks.task_propagation")
    tasks = [
        make("a", "c"),
        make("b", "a", status="blocked"),
        make("c", "b"),
        make("free"),
    ]
    out = recompute(tasks, now_iso=NOW)
    assert [t.task_id for t in out] == ["a", "b", "c", "free"]
    roots = root_ids(tasks)
    assert roots[0] == "free"
    assert "a" in roots
    assert by_id(out)["a"].status == TaskStatus.BLOCKED

    warnings = [r for r in caplog.records if "Parent cycle detected" in r.getMessage()]
    assert warnings
    assert all(r.levelno == logging.WARNING for r in warnings)
    assert "task_id=a" in warnings[0].getMessage()


def test_deep_chain_does_not_hit_recursion_limit() -> None:
    tasks = [make("n0")]
    for i in range(1, 3000):
        tasks.append(make(f"n{i}", f"n{i - 1}"))
    tasks[-1] = make("n2999", "n2998", status="blocked")
    out = recompute(tasks, now_iso=NOW)
    assert out[0].status == TaskStatus.BLOCKED


def test_build_tree_truncates_at_max_depth() -> None:
    tasks = recompute(
        [make("root"), make("a", "root"), make("b", "a"), make("c", "b")],
        now_iso=NOW,
    )
    tree = build_tree(tasks, "root", max_depth=2)
    assert tree is not None
    assert tree.children[0].task_id == "a"
    b = tree.children[0].children[0]
    assert b.task_id == "b"
    assert b.children == []
    assert build_tree(tasks, "nope") is None
