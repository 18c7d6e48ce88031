"""추적 레코드 스토어 단위 테스트."""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from adcycle.storage import FileSessionStorage, MemorySessionStorage
from adcycle.tracking import (
    INITIAL_PREROLL_FLAG,
    TRACKING_KEY,
    AdCycleTracking,
    CycleKind,
    TrackingStore,
)


def test_get_absent_returns_none(store):
    assert store.get() is None


def test_update_creates_default_and_merges(store, storage):
    record = store.update({"vignetteCount": 2}, last_vignette_time=123)
    assert record.vignette_count == 2
    assert record.last_vignette_time == 123
    assert record.preroll_count == 0
    assert record.current_cycle is CycleKind.VIGNETTE

    persisted = json.loads(storage.get_item(TRACKING_KEY))
    assert persisted == {
        "vignetteCount": 2,
        "prerollCount": 0,
        "lastVignetteTime": 123,
        "missedVignetteCount": 0,
        "totalVignetteCount": 0,
        "totalPrerollCount": 0,
        "currentCycle": "vignette",
    }


def test_update_keeps_unrelated_fields(store):
    store.update(total_preroll_count=5, current_cycle=CycleKind.PREROLL)
    record = store.update(missed_vignette_count=1)
    assert record.total_preroll_count == 5
    assert record.current_cycle is CycleKind.PREROLL
    assert store.get() == record


def test_reset_then_update_synthesizes_default(store):
    store.update(vignette_count=2, total_vignette_count=7)
    store.reset()
    assert store.get() is None

    record = store.update({})
    assert record == AdCycleTracking()


def test_malformed_record_treated_as_absent(storage):
    storage.set_item(TRACKING_KEY, "{not json")
    store = TrackingStore(storage)
    assert store.get() is None
    assert store.update(prerollCount=1).preroll_count == 1


def test_negative_counter_in_storage_treated_as_absent(storage):
    storage.set_item(TRACKING_KEY, json.dumps({"vignetteCount": -1}))
    assert TrackingStore(storage).get() is None


def test_mutate_reads_current_record(store):
    store.update(missed_vignette_count=1)
    record = store.mutate(lambda t: {"missed_vignette_count": t.missed_vignette_count + 1})
    assert record.missed_vignette_count == 2
    assert store.get().missed_vignette_count == 2


def test_unknown_field_rejected(store):
    with pytest.raises(KeyError):
        store.update(bogus=1)


def test_ensure_is_idempotent(store):
    first = store.ensure()
    store.update(vignette_count=1)
    assert store.ensure().vignette_count == 1
    assert first.vignette_count == 0


def test_flags(store):
    assert store.is_flag_set(INITIAL_PREROLL_FLAG) is False
    store.set_flag(INITIAL_PREROLL_FLAG)
    assert store.is_flag_set(INITIAL_PREROLL_FLAG) is True
    store.clear_flag(INITIAL_PREROLL_FLAG)
    assert store.is_flag_set(INITIAL_PREROLL_FLAG) is False


def test_file_session_storage_persists_across_instances(tmp_path):
    TrackingStore(FileSessionStorage(str(tmp_path), session_id="s1")).update(total_vignette_count=4)

    reopened = TrackingStore(FileSessionStorage(str(tmp_path), session_id="s1"))
    assert reopened.get().total_vignette_count == 4
    assert TrackingStore(FileSessionStorage(str(tmp_path), session_id="s2")).get() is None


def test_file_session_storage_corrupt_file(tmp_path):
    storage = FileSessionStorage(str(tmp_path), session_id="s1")
    storage.path.write_text("garbage", encoding="utf-8")
    assert storage.get_item(TRACKING_KEY) is None

    storage.set_item("k", "v")
    assert storage.get_item("k") == "v"
    storage.clear()
    assert not storage.path.exists()


def test_memory_storage_stringifies_values():
    storage = MemorySessionStorage()
    storage.set_item("flag", True)
    assert storage.get_item("flag") == "True"
    storage.remove_item("flag")
    storage.remove_item("missing")
    assert len(storage) == 0
