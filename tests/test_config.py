# tests/test_config.py

from __future__ import annotations

from pathlib import Path

import pytest

from steeb_core.config import DEFAULT_PROBE_HOURS, Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("STEEB_DATA_DIR", "STEEB_TASKS_PATH", "STEEB_PUSH_PROBE_HOURS", "STEEB_PUSH_ENABLED", "STEEB_PUSH_RELAY_TOKEN"):
        monkeypatch.delenv(name, raising=False)

    s = Settings.from_env()

    assert s.data_dir == Path(".local/steeb")
    assert s.tasks_path == Path(".local/steeb/tasks.json")
    assert s.push_probe_hours == DEFAULT_PROBE_HOURS
    assert s.push_enabled is False
    assert s.push_relay_token is None


def test_env_overrides(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("STEEB_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("STEEB_TASKS_PATH", raising=False)
    monkeypatch.setenv("STEEB_PUSH_ENABLED", "yes")
    monkeypatch.setenv("STEEB_PUSH_PROBE_HOURS", "8, 25, x 20")
    monkeypatch.setenv("STEEB_PUSH_DAILY_MINUTE", "90")
    monkeypatch.setenv("STEEB_PUSH_MIN_LEARNING_EVENTS", "not-a-number")

    s = Settings.from_env()

    assert s.tasks_path == tmp_path / "tasks.json"
    assert s.push_enabled is True
    assert s.push_probe_hours == [8, 20]
    assert s.push_daily_minute == 59
    assert s.push_min_learning_events == 3
