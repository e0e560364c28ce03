"""
Tests for snapshot persistence.
"""

import json

import pytest

from history_guesser.constants import SNAPSHOT_MAX_AGE_MS, SNAPSHOT_STORAGE_KEY
from history_guesser.errors import PersistenceError
from history_guesser.models.game import GameSnapshot
from history_guesser.services.scoring import score_round
from history_guesser.services.storage import (
    FileKeyValueStore,
    MemoryKeyValueStore,
    SnapshotStore,
    epoch_ms,
)

from .conftest import SUBJECTS, BrokenKeyValueStore, FakeClock


def make_snapshot(clock: FakeClock, rounds_played: int = 2) -> GameSnapshot:
    results = []
    for i in range(rounds_played):
        subject = SUBJECTS[i]
        results.append(score_round(subject, i, subject.true_coordinates, subject.true_year - 3, 0, 20.5))
    return GameSnapshot(
        session_id="session-1",
        round_subjects=SUBJECTS,
        round_results=results,
        hints_allowed_per_game=10,
        round_timer_seconds=60,
        total_accuracy=sum(r.accuracy_percent for r in results) / max(1, len(results)),
        total_xp=sum(r.xp_earned for r in results),
        hints_used_total=3,
        saved_at_epoch_ms=epoch_ms(clock),
    )


class TestSnapshotStore:
    @pytest.fixture
    def clock(self):
        return FakeClock()

    @pytest.fixture
    def kv(self):
        return MemoryKeyValueStore()

    @pytest.fixture
    def store(self, kv, clock):
        return SnapshotStore(kv, clock=clock)

    def test_load_empty(self, store):
        assert store.load() is None

    def test_round_trip(self, store, clock):
        snapshot = make_snapshot(clock)
        store.save(snapshot)
        clock.advance(60 * 60)

        assert store.load() == snapshot

    def test_save_overwrites_single_slot(self, store, kv, clock):
        store.save(make_snapshot(clock, rounds_played=1))
        second = make_snapshot(clock, rounds_played=3)
        store.save(second)

        assert store.load() == second
        assert list(kv._data) == [SNAPSHOT_STORAGE_KEY]

    def test_stale_snapshot_dropped(self, store, kv, clock):
        store.save(make_snapshot(clock))
        clock.advance(SNAPSHOT_MAX_AGE_MS / 1000)

        assert store.load() is None
        assert kv.get(SNAPSHOT_STORAGE_KEY) is None

    def test_just_under_staleness_window(self, store, clock):
        snapshot = make_snapshot(clock)
        store.save(snapshot)
        clock.advance(SNAPSHOT_MAX_AGE_MS / 1000 - 1)

        assert store.load() == snapshot

    def test_unparsable_snapshot_dropped(self, store, kv):
        kv.set(SNAPSHOT_STORAGE_KEY, "{not json")

        assert store.load() is None
        assert kv.get(SNAPSHOT_STORAGE_KEY) is None

    def test_out_of_range_result_dropped(self, store, kv, clock):
        data = json.loads(make_snapshot(clock).model_dump_json())
        data["round_results"][0]["accuracy_percent"] = 140
        kv.set(SNAPSHOT_STORAGE_KEY, json.dumps(data))

        assert store.load() is None
        assert kv.get(SNAPSHOT_STORAGE_KEY) is None

    def test_missing_subject_field_dropped(self, store, kv, clock):
        data = json.loads(make_snapshot(clock).model_dump_json())
        del data["round_subjects"][1]["true_year"]
        kv.set(SNAPSHOT_STORAGE_KEY, json.dumps(data))

        assert store.load() is None

    def test_misnumbered_rounds_dropped(self, store, kv, clock):
        data = json.loads(make_snapshot(clock).model_dump_json())
        data["round_results"][1]["round_index"] = 4
        kv.set(SNAPSHOT_STORAGE_KEY, json.dumps(data))

        assert store.load() is None

    def test_write_failure_raises_persistence_error(self, clock):
        store = SnapshotStore(BrokenKeyValueStore(), clock=clock)
        with pytest.raises(PersistenceError):
            store.save(make_snapshot(clock))

    def test_clear(self, store, clock):
        store.save(make_snapshot(clock))
        store.clear()
        assert store.load() is None


class TestFileKeyValueStore:
    def test_set_get_remove(self, tmp_path):
        kv = FileKeyValueStore(tmp_path / "snapshots")

        assert kv.get("slot") is None
        kv.set("slot", "value")
        assert kv.get("slot") == "value"
        kv.remove("slot")
        assert kv.get("slot") is None
        kv.remove("slot")

    def test_snapshot_survives_new_store_instance(self, tmp_path):
        clock = FakeClock()
        snapshot = make_snapshot(clock)
        SnapshotStore(FileKeyValueStore(tmp_path), clock=clock).save(snapshot)

        assert SnapshotStore(FileKeyValueStore(tmp_path), clock=clock).load() == snapshot

    def test_undecodable_snapshot_file_dropped(self, tmp_path):
        path = tmp_path / f"{SNAPSHOT_STORAGE_KEY}.json"
        path.write_bytes(b"\xff\xfe{bad")
        store = SnapshotStore(FileKeyValueStore(tmp_path), clock=FakeClock())

        assert store.load() is None
        assert not path.exists()
