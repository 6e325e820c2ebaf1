# tests/test_engagement_store.py

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from steeb_core.engagement.store import EngagementProfile, EngagementStore, local_hour

from .conftest import BUENOS_AIRES


def _at(hour: int) -> datetime:
    return datetime(2024, 3, 1, hour, 15, tzinfo=ZoneInfo(BUENOS_AIRES))


def test_record_event_counts_local_hours(engagement: EngagementStore) -> None:
    engagement.record_event("u1", BUENOS_AIRES, _at(10))
    engagement.record_event("u1", BUENOS_AIRES, _at(10))
    # 13:00 UTC is 10:00 in Buenos Aires
    engagement.record_event("u1", BUENOS_AIRES, datetime(2024, 3, 2, 13, 0, tzinfo=UTC))
    engagement.record_event("u1", BUENOS_AIRES, _at(18))

    profile = engagement.get_profile("u1")
    assert profile is not None
    assert profile.hourly_scores == {10: 3, 18: 1}
    assert profile.total_events == 4
    assert profile.timezone == BUENOS_AIRES
    assert profile.preferred_hour() == 10
    assert engagement.count_users() == 1


def test_missing_profile_is_none(engagement: EngagementStore) -> None:
    assert engagement.get_profile("nobody") is None
    assert engagement.get_profile("") is None


def test_record_event_requires_user(engagement: EngagementStore) -> None:
    with pytest.raises(ValueError):
        engagement.record_event("", BUENOS_AIRES, _at(9))


def test_timezone_is_kept_when_later_events_omit_it(engagement: EngagementStore) -> None:
    engagement.record_event("u1", BUENOS_AIRES, _at(9))
    engagement.record_event("u1", None, datetime(2024, 3, 1, 12, 0, tzinfo=UTC))

    profile = engagement.get_profile("u1")
    assert profile is not None
    assert profile.timezone == BUENOS_AIRES
    # The second event had no timezone and was counted in UTC.
    assert profile.hourly_scores == {9: 1, 12: 1}


def test_scores_decay_past_threshold(tmp_path: Path) -> None:
    store = EngagementStore(tmp_path / "e.sqlite3", decay_threshold=4)
    for _ in range(4):
        store.record_event("u1", BUENOS_AIRES, _at(8))
    store.record_event("u1", BUENOS_AIRES, _at(20))

    profile = store.get_profile("u1")
    assert profile is not None
    # 4 + 1 = 5 > 4, so every hour is halved and hours that reach zero disappear.
    assert profile.hourly_scores == {8: 2}
    assert profile.total_events == 2
    assert profile.preferred_hour() == 8


def test_profiles_survive_reopen(tmp_path: Path) -> None:
    path = tmp_path / "e.sqlite3"
    EngagementStore(path).record_event("u1", BUENOS_AIRES, _at(7))
    profile = EngagementStore(path).get_profile("u1")
    assert profile is not None
    assert profile.hourly_scores == {7: 1}


def test_preferred_hour_prefers_earliest_on_tie() -> None:
    profile = EngagementProfile(
        user_id="u1",
        hourly_scores={21: 2, 9: 2, 3: 1},
        total_events=5,
        timezone=None,
        created_at=0.0,
        updated_at=0.0,
    )
    assert profile.preferred_hour() == 9

    empty = EngagementProfile("u2", {}, 0, None, 0.0, 0.0)
    assert empty.preferred_hour() is None


def test_local_hour_falls_back_to_utc() -> None:
    moment = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)
    assert local_hour(moment, "Not/AZone") == 12
    assert local_hour(datetime(2024, 3, 1, 12, 0), BUENOS_AIRES) == 9
