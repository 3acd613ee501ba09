"""Polling file-system change detector.

Rescans a directory tree on a fixed interval and compares each file's size,
creation time and modification time against the previous scan. Meant for
build output folders, not for whole drives or very large trees.
"""

import os
import time
import threading
from datetime import datetime
from typing import Any, Callable, List, Optional, Set

from sshdeploy.config import (
    POLL_QUANTUM, ConfigurationError, validate_poll_interval
)
from sshdeploy.snapshot import ChangeEvent, ChangeKind, FileEntry, Snapshot, path_key
from sshdeploy.utils import log_error, log_debug, log_warning

ChangeListener = Callable[[ChangeEvent], None]
ProgressCallback = Callable[[int, Any], None]


def enumerate_files(root_path: str) -> List[str]:
    """All files under root_path, recursively, in a stable order."""
    if not os.path.isdir(root_path):
        raise FileNotFoundError(f"monitored folder is gone: {root_path}")
    files: List[str] = []
    for current, dirs, names in os.walk(root_path):
        dirs.sort()
        for name in sorted(names):
            files.append(os.path.join(current, name))
    return files


def _default_progress(percent: int, state: Any) -> None:
    if isinstance(state, BaseException):
        log_error(f"monitor cycle failed: {type(state).__name__}: {state}")


class FileSystemMonitor:
    def __init__(self, on_progress: Optional[ProgressCallback] = None):
        self.root_path = ""
        self.interval_seconds = 0
        self.on_progress = on_progress or _default_progress

        self.snapshot = Snapshot()
        self.listeners: List[ChangeListener] = []
        self._ignored_duplicates: Set[str] = set()
        self.lock = threading.Lock()

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        with self.lock:
            self.listeners.append(listener)

        def unsubscribe() -> None:
            with self.lock:
                if listener in self.listeners:
                    self.listeners.remove(listener)

        return unsubscribe

    def start(self, root_path: str, interval_seconds: int) -> None:
        if self.is_running:
            raise RuntimeError("File system monitor is already running.")
        validate_poll_interval(interval_seconds)
        if not os.path.isdir(root_path):
            raise ConfigurationError(f"Monitored path '{root_path}' does not point to a valid folder")

        self.root_path = os.path.abspath(root_path)
        self.interval_seconds = interval_seconds

        # Files present before start are baseline, never changes.
        self.initialize()

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, name="sshdeploy-monitor", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Signal cancellation and block until the loop has observed it."""
        thread = self._thread
        if thread is None:
            return
        self._stop_event.set()
        if thread is not threading.current_thread():
            thread.join()
        self._thread = None
        self.snapshot.clear()

    def _scan(self) -> List[str]:
        """Enumerate the tree keeping only the first path per case-insensitive key."""
        files: List[str] = []
        seen = set()
        for path in enumerate_files(self.root_path):
            key = path_key(path)
            if key in seen:
                if path not in self._ignored_duplicates:
                    self._ignored_duplicates.add(path)
                    log_warning(f"ignoring '{path}': its name differs only by case from another monitored file")
                continue
            seen.add(key)
            files.append(path)
        return files

    def initialize(self) -> None:
        self.snapshot.clear()
        for path in self._scan():
            try:
                self.snapshot.put(FileEntry.from_path(path))
            except OSError as exc:
                log_debug(f"skipping unreadable file {path}: {exc}")

    def poll(self) -> List[ChangeEvent]:
        """Run one diff cycle against the snapshot and notify listeners."""
        files = self._scan()
        present = {path_key(path) for path in files}
        events: List[ChangeEvent] = []

        for existing in self.snapshot.paths():
            if path_key(existing) not in present:
                self.snapshot.remove(existing)
                events.append(ChangeEvent(ChangeKind.REMOVED, existing))

        for path in files:
            try:
                entry = FileEntry.from_path(path)
            except OSError as exc:
                log_debug(f"skipping unreadable file {path}: {exc}")
                continue

            previous = self.snapshot.get(path)
            if previous is None:
                self.snapshot.put(entry)
                events.append(ChangeEvent(ChangeKind.ADDED, path))
            elif not previous.same_metadata(entry):
                self.snapshot.put(entry)
                events.append(ChangeEvent(ChangeKind.MODIFIED, path))

        for event in events:
            self._dispatch(event)
        return events

    def _dispatch(self, event: ChangeEvent) -> None:
        with self.lock:
            listeners = list(self.listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception as exc:
                self.on_progress(0, exc)

    def _poll_loop(self) -> None:
        last_poll = time.monotonic()
        while not self._stop_event.is_set():
            try:
                if time.monotonic() - last_poll >= self.interval_seconds:
                    last_poll = time.monotonic()
                    self.poll()
                    self.on_progress(1, datetime.now())
            except Exception as exc:
                self.on_progress(0, exc)
            finally:
                self._stop_event.wait(POLL_QUANTUM)
