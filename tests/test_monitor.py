import os
import shutil
import threading
import time
from unittest.mock import patch

import pytest

from sshdeploy.config import ConfigurationError
from sshdeploy.monitor import FileSystemMonitor, enumerate_files
from sshdeploy.snapshot import ChangeEvent, ChangeKind, FileEntry, Snapshot


def _write(path, content="x"):
    with open(path, "w", encoding="utf-8") as handle:
        handle.write(content)


def _monitor_for(root):
    monitor = FileSystemMonitor()
    monitor.root_path = str(root)
    monitor.initialize()
    return monitor


class TestSnapshot:
    def test_lookup_ignores_case(self):
        snapshot = Snapshot()
        snapshot.put(FileEntry(path="/Build/App.EXE", size=3, created_at=1.0, modified_at=2.0))

        assert "/build/app.exe" in snapshot
        assert snapshot.get("/BUILD/app.exe").size == 3

    def test_put_replaces_entry_with_same_key(self):
        snapshot = Snapshot()
        snapshot.put(FileEntry(path="/a/File.txt", size=1, created_at=1.0, modified_at=1.0))
        snapshot.put(FileEntry(path="/a/file.TXT", size=2, created_at=1.0, modified_at=1.0))

        assert len(snapshot) == 1
        assert snapshot.get("/a/file.txt").size == 2

    def test_change_event_text(self):
        assert str(ChangeEvent(ChangeKind.ADDED, "/src/a.dll")) == "Added: /src/a.dll"


class TestPolling:
    def test_existing_files_are_baseline(self, tmp_path):
        _write(tmp_path / "a.txt")
        (tmp_path / "sub").mkdir()
        _write(tmp_path / "sub" / "b.txt")

        monitor = _monitor_for(tmp_path)

        assert len(monitor.snapshot) == 2
        assert monitor.poll() == []

    def test_new_file_is_added(self, tmp_path):
        monitor = _monitor_for(tmp_path)
        path = str(tmp_path / "new.bin")
        _write(path)

        events = monitor.poll()

        assert events == [ChangeEvent(ChangeKind.ADDED, path)]
        assert monitor.poll() == []

    def test_size_change_is_modified(self, tmp_path):
        path = str(tmp_path / "app.dll")
        _write(path, "short")
        monitor = _monitor_for(tmp_path)

        _write(path, "a much longer payload")

        assert monitor.poll() == [ChangeEvent(ChangeKind.MODIFIED, path)]

    def test_timestamp_change_is_modified(self, tmp_path):
        path = str(tmp_path / "sshdeploy.ready")
        _write(path)
        monitor = _monitor_for(tmp_path)

        stamp = os.stat(path).st_mtime + 30
        os.utime(path, (stamp, stamp))

        assert monitor.poll() == [ChangeEvent(ChangeKind.MODIFIED, path)]

    def test_deleted_file_is_removed(self, tmp_path):
        path = str(tmp_path / "old.txt")
        _write(path)
        monitor = _monitor_for(tmp_path)

        os.remove(path)

        assert monitor.poll() == [ChangeEvent(ChangeKind.REMOVED, path)]
        assert path not in monitor.snapshot

    def test_removals_are_reported_before_additions(self, tmp_path):
        old = str(tmp_path / "z-old.txt")
        _write(old)
        monitor = _monitor_for(tmp_path)

        os.remove(old)
        new = str(tmp_path / "a-new.txt")
        _write(new)

        events = monitor.poll()

        assert [event.kind for event in events] == [ChangeKind.REMOVED, ChangeKind.ADDED]

    def test_listener_failure_does_not_stop_other_listeners(self, tmp_path):
        progress = []
        monitor = FileSystemMonitor(on_progress=lambda percent, state: progress.append((percent, state)))
        monitor.root_path = str(tmp_path)
        monitor.initialize()

        received = []

        def broken(event):
            raise RuntimeError("listener exploded")

        monitor.subscribe(broken)
        monitor.subscribe(received.append)
        _write(tmp_path / "file.txt")

        monitor.poll()

        assert len(received) == 1
        assert progress[0][0] == 0
        assert isinstance(progress[0][1], RuntimeError)

    def test_unsubscribe(self, tmp_path):
        monitor = _monitor_for(tmp_path)
        received = []
        unsubscribe = monitor.subscribe(received.append)
        unsubscribe()

        _write(tmp_path / "file.txt")
        monitor.poll()

        assert received == []

    def test_enumerate_missing_root_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            enumerate_files(str(tmp_path / "gone"))

    def test_repeated_scans_without_changes_stay_silent(self, tmp_path):
        _write(tmp_path / "app.dll", "binary")
        (tmp_path / "lib").mkdir()
        _write(tmp_path / "lib" / "native.so")
        monitor = _monitor_for(tmp_path)

        for _ in range(5):
            assert monitor.poll() == []

    def test_unreadable_file_is_skipped_for_that_cycle_only(self, tmp_path):
        monitor = _monitor_for(tmp_path)
        locked = str(tmp_path / "locked.bin")
        fresh = str(tmp_path / "fresh.txt")
        _write(locked)
        _write(fresh)
        real_from_path = FileEntry.from_path

        def from_path(path):
            if path == locked:
                raise PermissionError(f"access denied: {path}")
            return real_from_path(path)

        with patch.object(FileEntry, "from_path", side_effect=from_path):
            events = monitor.poll()

        assert events == [ChangeEvent(ChangeKind.ADDED, fresh)]
        assert locked not in monitor.snapshot
        assert monitor.poll() == [ChangeEvent(ChangeKind.ADDED, locked)]

    def test_names_differing_only_by_case_do_not_flap(self, tmp_path):
        _write(tmp_path / "A.txt", "1")
        if os.path.exists(tmp_path / "a.txt"):
            pytest.skip("file system is case-insensitive")
        _write(tmp_path / "a.txt", "22")
        kept = str(tmp_path / "A.txt")
        monitor = _monitor_for(tmp_path)

        assert monitor.snapshot.paths() == [kept]
        for _ in range(3):
            assert monitor.poll() == []

        _write(kept, "333")
        assert monitor.poll() == [ChangeEvent(ChangeKind.MODIFIED, kept)]


class TestLifecycle:
    @pytest.mark.parametrize("interval", [0, 61, -5])
    def test_interval_out_of_range(self, tmp_path, interval):
        with pytest.raises(ConfigurationError):
            FileSystemMonitor().start(str(tmp_path), interval)

    def test_missing_folder(self, tmp_path):
        with pytest.raises(ConfigurationError):
            FileSystemMonitor().start(str(tmp_path / "missing"), 1)

    def test_start_detects_change_and_stop_blocks(self, tmp_path):
        monitor = FileSystemMonitor()
        seen = threading.Event()
        events = []

        def listener(event):
            events.append(event)
            seen.set()

        monitor.subscribe(listener)
        monitor.start(str(tmp_path), 1)
        try:
            assert monitor.is_running
            with pytest.raises(RuntimeError):
                monitor.start(str(tmp_path), 1)

            time.sleep(0.1)
            _write(tmp_path / "sshdeploy.ready")
            assert seen.wait(5.0)
        finally:
            monitor.stop()

        assert not monitor.is_running
        assert len(monitor.snapshot) == 0
        assert events[0].kind == ChangeKind.ADDED

    def test_stop_when_not_started_is_noop(self):
        FileSystemMonitor().stop()

    def test_cycle_failure_is_reported_and_polling_continues(self, tmp_path):
        root = tmp_path / "out"
        root.mkdir()
        _write(root / "old.txt")
        failures = []
        failed = threading.Event()
        added = threading.Event()

        def on_progress(percent, state):
            if percent == 0:
                failures.append(state)
                failed.set()

        def listener(event):
            if event.kind == ChangeKind.ADDED:
                added.set()

        monitor = FileSystemMonitor(on_progress=on_progress)
        monitor.subscribe(listener)
        monitor.start(str(root), 1)
        try:
            shutil.rmtree(root)
            assert failed.wait(5.0)
            assert isinstance(failures[0], FileNotFoundError)
            assert monitor.is_running

            root.mkdir()
            _write(root / "sshdeploy.ready")
            assert added.wait(5.0)
        finally:
            monitor.stop()
