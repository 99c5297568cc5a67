"""Tests for snapshot stores, the background writer and the snapshot scheduler."""
from __future__ import annotations

import threading
from datetime import date, datetime, timedelta
from pathlib import Path

import pytest

from aumos_agent_telemetry.persistence.snapshots import SnapshotScheduler
from aumos_agent_telemetry.persistence.store import FileSnapshotStore, InMemorySnapshotStore
from aumos_agent_telemetry.persistence.writer import BackgroundWriter


@pytest.fixture()
def store(tmp_path: Path) -> FileSnapshotStore:
    return FileSnapshotStore(tmp_path / "data", max_snapshots=3)


# ---------------------------------------------------------------------------
# FileSnapshotStore
# ---------------------------------------------------------------------------


class TestFileSnapshotStore:
    def test_latest_snapshot_none_when_empty(self, store: FileSnapshotStore) -> None:
        assert store.load_latest_snapshot() is None

    def test_save_and_load_latest(self, store: FileSnapshotStore, base_time: datetime) -> None:
        store.save_snapshot({"n": 1}, base_time)
        path = store.save_snapshot({"n": 2}, base_time + timedelta(hours=1))
        assert Path(path).name == "snapshot-2024-03-14T13-00-00.json"
        assert store.load_latest_snapshot() == {"n": 2}

    def test_snapshots_pruned(self, store: FileSnapshotStore, base_time: datetime) -> None:
        for i in range(5):
            store.save_snapshot({"n": i}, base_time + timedelta(hours=i))
        files = store.snapshot_files()
        assert len(files) == 3
        assert store.load_latest_snapshot() == {"n": 4}

    def test_unreadable_snapshot_skipped(self, store: FileSnapshotStore, base_time: datetime) -> None:
        store.save_snapshot({"n": 1}, base_time)
        (store.metrics_dir / "snapshot-2099-01-01T00-00-00.json").write_text("{not json", encoding="utf-8")
        assert store.load_latest_snapshot() == {"n": 1}

    def test_alerts_by_day(self, store: FileSnapshotStore) -> None:
        store.append_alert({"id": "a", "timestamp": "2024-03-13T10:00:00+00:00"})
        store.append_alert({"id": "b", "timestamp": "2024-03-14T10:00:00+00:00"})
        store.append_alert({"id": "c", "timestamp": "2024-03-14T11:00:00+00:00"})
        assert sorted(p.name for p in store.alerts_dir.iterdir()) == [
            "alerts-2024-03-13.jsonl",
            "alerts-2024-03-14.jsonl",
        ]
        assert [a["id"] for a in store.load_recent_alerts(days=1)] == ["b", "c"]
        assert len(store.load_recent_alerts(days=7)) == 3

    def test_malformed_alert_lines_skipped(self, store: FileSnapshotStore) -> None:
        store.append_alert({"id": "a", "timestamp": "2024-03-14T10:00:00+00:00"})
        with (store.alerts_dir / "alerts-2024-03-14.jsonl").open("a", encoding="utf-8") as fh:
            fh.write("garbage\n\n")
        assert [a["id"] for a in store.load_recent_alerts()] == ["a"]

    def test_clear_old_alerts(self, store: FileSnapshotStore) -> None:
        store.append_alert({"id": "old", "timestamp": "2024-01-01T00:00:00+00:00"})
        store.append_alert({"id": "new", "timestamp": "2024-03-10T00:00:00+00:00"})
        assert store.clear_old_alerts(days=30, today=date(2024, 3, 14)) == 1
        assert [a["id"] for a in store.load_recent_alerts()] == ["new"]

    def test_cost_report_replaced_per_day(self, store: FileSnapshotStore) -> None:
        store.save_cost_report({"date": "2024-03-14", "v": 1})
        path = store.save_cost_report({"date": "2024-03-14", "v": 2})
        assert Path(path).name == "daily-cost-2024-03-14.json"
        assert len(list(store.costs_dir.iterdir())) == 1


class TestInMemorySnapshotStore:
    def test_round_trip(self, base_time: datetime) -> None:
        store = InMemorySnapshotStore()
        store.save_snapshot({"when": base_time})
        assert store.load_latest_snapshot() == {"when": base_time.isoformat(sep=" ")}

    def test_clear_old_alerts(self) -> None:
        store = InMemorySnapshotStore()
        store.append_alert({"id": "old", "timestamp": "2024-01-01T00:00:00+00:00"})
        assert store.clear_old_alerts(days=30, today=date(2024, 3, 14)) == 1
        assert store.load_recent_alerts() == []


# ---------------------------------------------------------------------------
# BackgroundWriter
# ---------------------------------------------------------------------------


class TestBackgroundWriter:
    def test_writes_run_in_order(self) -> None:
        writer = BackgroundWriter()
        seen: list[int] = []
        for i in range(20):
            writer.submit(seen.append, i)
        assert writer.flush()
        writer.close()
        assert seen == list(range(20))

    def test_runs_off_caller_thread(self) -> None:
        writer = BackgroundWriter()
        threads: list[str] = []
        writer.submit(lambda: threads.append(threading.current_thread().name))
        writer.close()
        assert threads and threads[0] != threading.current_thread().name

    def test_failure_is_swallowed(self) -> None:
        writer = BackgroundWriter(synchronous=True)

        def broken() -> None:
            raise OSError("nope")

        writer.submit(broken)
        assert writer.flush()

    def test_submit_after_close_runs_inline(self) -> None:
        writer = BackgroundWriter()
        writer.close()
        seen: list[int] = []
        writer.submit(seen.append, 1)
        assert seen == [1]


# ---------------------------------------------------------------------------
# SnapshotScheduler
# ---------------------------------------------------------------------------


class TestSnapshotScheduler:
    def test_save_now(self, base_time: datetime) -> None:
        store = InMemorySnapshotStore()
        scheduler = SnapshotScheduler(lambda: {"n": 1}, store)
        assert scheduler.save_now(base_time) == "memory://snapshot/1"
        assert store.load_latest_snapshot() == {"n": 1}

    def test_producer_failure_returns_none(self) -> None:
        def broken() -> dict[str, object]:
            raise RuntimeError("no state")

        assert SnapshotScheduler(broken, InMemorySnapshotStore()).save_now() is None

    def test_stop_writes_final_snapshot(self) -> None:
        store = InMemorySnapshotStore()
        scheduler = SnapshotScheduler(lambda: {"n": 1}, store, interval_seconds=3600)
        scheduler.start()
        assert scheduler.running
        scheduler.stop(final_snapshot=True)
        assert not scheduler.running
        assert len(store.snapshots) == 1
