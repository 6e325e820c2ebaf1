# tests/test_commands.py

from __future__ import annotations

from steeb_core.cli.commands import CommandRegistry, registry
from steeb_core.core.state import AppState

from .fakes import FakeDeliverer


def test_non_command_returns_none(state: AppState) -> None:
    assert registry.handle(state, "hello") is None


def test_unknown_and_empty_commands(state: AppState) -> None:
    assert registry.handle(state, "/nope").startswith("Unknown command: /nope")
    assert registry.handle(state, "/").startswith("Empty command")


def test_help_lists_commands_and_aliases(state: AppState) -> None:
    out = registry.handle(state, "/help")
    assert out is not None
    assert "/tasks" in out
    assert "/push" in out
    assert registry.handle(state, "/?") == out


def test_handler_arity_and_emit(state: AppState) -> None:
    local = CommandRegistry()
    emitted: list[str] = []

    def two(_state: AppState, args: list[str]) -> str:
        return "two:" + ",".join(args)

    def three(_state: AppState, args: list[str], emit) -> str:
        emit("working")
        return "three"

    local.register("two", two, help_text="")
    local.register("three", three, help_text="")

    assert local.handle(state, "/TWO a b") == "two:a,b"
    assert local.handle(state, "/three", emit=emitted.append) == "three"
    assert emitted == ["working"]


def test_tasks_renders_tree(state: AppState) -> None:
    assert registry.handle(state, "/tasks") == "No tasks."

    root = state.task_store.create_task({"task_id": "aaaa1111-root", "title": "Ship feature"})
    state.task_store.create_task({"task_id": "bbbb2222-kid", "title": "Backend", "parent_task_id": root.task_id})

    out = registry.handle(state, "/tasks")
    assert out == "- [todo 0%] Ship feature (aaaa1111)\n  - [todo 0%] Backend (bbbb2222)"

    kids = registry.handle(state, "/tasks aaaa")
    assert kids == "- [todo 0%] Backend (bbbb2222)"
    assert "No unique task" in (registry.handle(state, "/tasks zzz") or "")


def test_task_details(state: AppState) -> None:
    state.task_store.create_task({"task_id": "cccc3333", "title": "Leaf", "checklist": ["a", "b"]})
    state.task_store.set_acceptance("cccc3333", {"approved": True, "qa_user": "lu"})

    out = registry.handle(state, "/task cccc") or ""
    assert out.startswith("Leaf (cccc3333)")
    assert "QA approved: True by lu" in out
    assert "Checklist: 0/2" in out
    assert registry.handle(state, "/task") == "Usage: /task <id-prefix>"


def test_engagement_command(state: AppState) -> None:
    assert "No engagement" in (registry.handle(state, "/engagement u1") or "")
    state.engagement.record_event("u1", "UTC")
    out = registry.handle(state, "/engagement u1") or ""
    assert "Events: 1" in out


def test_status_command(state: AppState) -> None:
    out = registry.handle(state, "/status") or ""
    assert "Tasks: 0" in out
    assert "Push registrations: 0" in out
    assert "dry-run" in out


def test_push_list_and_test(state: AppState, deliverer: FakeDeliverer) -> None:
    assert registry.handle(state, "/push") == "No push registrations."

    state.push_registry.register({"endpoint": "https://push.example/1"}, {"userId": "u1", "timezone": "UTC"})
    listing = registry.handle(state, "/push list") or ""
    assert "user=u1 tz=UTC last_sent=-" in listing

    emitted: list[str] = []
    out = registry.handle(state, "/push test", emit=emitted.append)
    assert out == "Test push delivered to 1/1 registrations."
    assert emitted == ["[PUSH] Sending test push..."]
    assert len(deliverer.sent) == 1

    assert registry.handle(state, "/push bogus") == "Usage: /push list | /push test"
