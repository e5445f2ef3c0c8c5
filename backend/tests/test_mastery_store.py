"""
Tests for the mastery tracker: the pure transition and the three backends.
"""
import threading
from unittest.mock import MagicMock

import pytest

from app.core.errors import StoreError
from app.services.mastery_store import (
    COMPLETED,
    MASTERY_STORE,
    STARTED,
    InMemoryMasteryStore,
    MasteryRecord,
    SqlMasteryStore,
    SupabaseMasteryStore,
    apply_graded_event,
    get_mastery_store,
    parse_curriculum_category,
    points_for_answer,
    record_graded_event,
)

NOW = "2026-01-01T00:00:00+00:00"


# ---------------------------------------------------------------------------
# Pure transition
# ---------------------------------------------------------------------------

class TestApplyGradedEvent:
    def test_first_event_starts_node(self):
        r = apply_graded_event(None, "u1", 279, 5, now=NOW)
        assert (r.status, r.mastery_level, r.last_activity) == (STARTED, 5, NOW)

    def test_scenario_reaches_completed(self):
        r = apply_graded_event(None, "u1", 279, 5)
        assert (r.status, r.mastery_level) == (STARTED, 5)
        r = apply_graded_event(r, "u1", 279, 5)
        assert (r.status, r.mastery_level) == (STARTED, 10)
        r = apply_graded_event(r, "u1", 279, 90)
        assert (r.status, r.mastery_level) == (COMPLETED, 100)

    def test_overshoot_is_clamped(self):
        r = MasteryRecord("u1", 1, STARTED, 98)
        r = apply_graded_event(r, "u1", 1, 5)
        assert (r.status, r.mastery_level) == (COMPLETED, 100)

    def test_completed_is_sticky(self):
        done = MasteryRecord("u1", 1, COMPLETED, 100, "old")
        r = apply_graded_event(done, "u1", 1, -2, now=NOW)
        assert (r.status, r.mastery_level, r.last_activity) == (COMPLETED, 100, NOW)

    def test_wrong_answer_never_goes_below_zero(self):
        r = apply_graded_event(None, "u1", 1, -2)
        assert (r.status, r.mastery_level) == (STARTED, 0)
        r = apply_graded_event(MasteryRecord("u1", 1, STARTED, 1), "u1", 1, -2)
        assert r.mastery_level == 0

    @pytest.mark.parametrize("points", [5, -2, 37, 100, 250, -500])
    def test_level_always_in_range_and_status_consistent(self, points):
        r = None
        for _ in range(5):
            r = apply_graded_event(r, "u1", 1, points)
            assert 0 <= r.mastery_level <= 100
            assert (r.status == COMPLETED) == (r.mastery_level == 100)


def test_points_for_answer():
    assert points_for_answer(True) == 5
    assert points_for_answer(False) == -2


@pytest.mark.parametrize("category,expected", [
    ("curriculum-279", 279),
    ("curriculum-12-extra", 12),
    ("curriculum-", None),
    ("curriculum-abc", None),
    ("kopfrechnen", None),
    ("", None),
    (None, None),
])
def test_parse_curriculum_category(category, expected):
    assert parse_curriculum_category(category) == expected


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class TestInMemory:
    def test_record_and_list(self):
        s = InMemoryMasteryStore()
        s.record_event("u1", 1, 5)
        s.record_event("u1", 1, 5)
        s.record_event("u1", 2, 5)
        s.record_event("u2", 1, 5)
        assert s.get("u1", 1).mastery_level == 10
        assert sorted(r.node_id for r in s.list_user("u1")) == [1, 2]
        assert s.get("u3", 1) is None


class TestSqlBackend:
    def test_scenario(self, store):
        s = SqlMasteryStore(store)
        assert (s.record_event("u1", 279, 5).mastery_level, s.get("u1", 279).status) == (5, STARTED)
        assert s.record_event("u1", 279, 5).mastery_level == 10
        r = s.record_event("u1", 279, 90)
        assert (r.status, r.mastery_level) == (COMPLETED, 100)

    def test_completed_stays_completed(self, store):
        s = SqlMasteryStore(store)
        s.record_event("u1", 1, 100)
        r = s.record_event("u1", 1, -2)
        assert (r.status, r.mastery_level) == (COMPLETED, 100)

    def test_floor_at_zero(self, store):
        s = SqlMasteryStore(store)
        s.record_event("u1", 1, 5)
        r = s.record_event("u1", 1, -2)
        assert r.mastery_level == 3
        r = s.record_event("u1", 1, -2)
        r = s.record_event("u1", 1, -2)
        assert (r.status, r.mastery_level) == (STARTED, 0)

    def test_one_row_per_user_node(self, store):
        s = SqlMasteryStore(store)
        for _ in range(3):
            s.record_event("u1", 1, 5)
        n = store.query_one("SELECT COUNT(*) AS n FROM user_curriculum_progress")["n"]
        assert n == 1

    def test_concurrent_events_do_not_lose_updates(self, store):
        s = SqlMasteryStore(store)

        def worker():
            for _ in range(5):
                s.record_event("u1", 1, 1)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert s.get("u1", 1).mastery_level == 20

    def test_upsert_and_list(self, store):
        s = SqlMasteryStore(store)
        s.upsert(MasteryRecord("u1", 2, STARTED, 40, NOW))
        s.upsert(MasteryRecord("u1", 1, COMPLETED, 100, NOW))
        assert [(r.node_id, r.mastery_level) for r in s.list_user("u1")] == [(1, 100), (2, 40)]


class TestSupabaseBackend:
    def _client(self, existing=None):
        sb = MagicMock()
        table = sb.table.return_value
        chain = table.select.return_value.eq.return_value.eq.return_value.maybe_single.return_value
        chain.execute.return_value = MagicMock(data=existing)
        return sb, table

    def test_first_event_upserts_started_row(self):
        sb, table = self._client(existing=None)
        r = SupabaseMasteryStore(sb).record_event("u1", 279, 5)
        assert (r.status, r.mastery_level) == (STARTED, 5)
        payload = table.upsert.call_args.args[0]
        assert payload["user_uid"] == "u1"
        assert payload["curriculum_node_id"] == 279
        assert payload["mastery_level"] == 5
        assert table.upsert.call_args.kwargs["on_conflict"] == "user_uid,curriculum_node_id"

    def test_existing_row_is_incremented(self):
        sb, table = self._client(existing={
            "user_uid": "u1", "curriculum_node_id": 279, "status": "started",
            "mastery_level": 95, "last_activity": None,
        })
        r = SupabaseMasteryStore(sb).record_event("u1", 279, 5)
        assert (r.status, r.mastery_level) == (COMPLETED, 100)

    def test_client_error_becomes_store_error(self):
        sb = MagicMock()
        sb.table.side_effect = RuntimeError("connection refused")
        with pytest.raises(StoreError):
            SupabaseMasteryStore(sb).record_event("u1", 1, 5)


class TestFactory:
    def test_sql_backend_with_store(self, store):
        assert isinstance(get_mastery_store("sql", store), SqlMasteryStore)

    def test_sql_without_store_falls_back_to_memory(self):
        assert get_mastery_store("sql") is MASTERY_STORE

    def test_unknown_backend_falls_back_to_memory(self):
        assert get_mastery_store("redis") is MASTERY_STORE

    def test_record_graded_event_returns_record(self, store):
        r = record_graded_event(SqlMasteryStore(store), "u1", 5, 5)
        assert r.to_dict() == {
            "user_id": "u1", "node_id": 5, "status": STARTED,
            "mastery_level": 5, "last_activity": r.last_activity,
        }
