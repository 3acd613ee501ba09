"""Pytest bootstrap and shared fixtures.

Puts the repository root on sys.path so ``import sshdeploy`` resolves to the
local sources, and provides an in-memory stand-in for a remote session.
"""

import os
import sys
import posixpath
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
PROJECT_ROOT_STR = str(PROJECT_ROOT)

if PROJECT_ROOT_STR not in sys.path:
    sys.path.insert(0, PROJECT_ROOT_STR)

from sshdeploy.config import config  # noqa: E402
from sshdeploy.remote import CommandResult, RemoteEntry  # noqa: E402


class FakeRemote:
    """Remote file system and command service kept in dictionaries."""

    def __init__(self):
        self.directories = {"/"}
        self.files = {}
        self.calls = []
        self.commands = []
        self.exit_statuses = {}
        self.fail_delete = set()
        self.fail_upload = set()
        self.on_command = None

    def _children(self, path):
        names = set()
        for candidate in list(self.directories) + list(self.files):
            if candidate != path and posixpath.dirname(candidate) == path:
                names.add(candidate)
        return sorted(names)

    def is_directory(self, path):
        self.calls.append(("is_directory", path))
        return path in self.directories

    def exists(self, path):
        return path in self.directories or path in self.files

    def list_directory(self, path):
        self.calls.append(("list_directory", path))
        if path not in self.directories:
            raise FileNotFoundError(path)
        return [
            RemoteEntry(name=posixpath.basename(child), full_name=child, is_directory=child in self.directories)
            for child in self._children(path)
        ]

    def create_directory(self, path):
        self.calls.append(("create_directory", path))
        if self.exists(path):
            raise OSError(f"already exists: {path}")
        if posixpath.dirname(path) not in self.directories:
            raise FileNotFoundError(path)
        self.directories.add(path)

    def delete(self, entry):
        self.calls.append(("delete", entry.full_name))
        if entry.full_name in self.fail_delete:
            raise PermissionError(f"permission denied: {entry.full_name}")
        if entry.is_directory:
            if self._children(entry.full_name):
                raise OSError(f"directory not empty: {entry.full_name}")
            self.directories.discard(entry.full_name)
        else:
            self.files.pop(entry.full_name, None)

    def upload(self, local_path, remote_path):
        self.calls.append(("upload", remote_path))
        if remote_path in self.fail_upload:
            raise OSError(f"upload failed: {remote_path}")
        if posixpath.dirname(remote_path) not in self.directories:
            raise FileNotFoundError(remote_path)
        with open(local_path, "rb") as handle:
            self.files[remote_path] = handle.read()

    def run_command(self, command):
        self.calls.append(("run_command", command))
        self.commands.append(command)
        if self.on_command is not None:
            self.on_command(command)
        return CommandResult(command=command, exit_status=self.exit_statuses.get(command, 0), stdout="ok\n", stderr="")


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch):
    """Keep the process-wide settings object and SSHDEPLOY_* env vars from leaking between tests."""
    saved = dict(vars(config))
    saved["EXCLUDE_SUFFIXES"] = list(config.EXCLUDE_SUFFIXES)
    for name in list(os.environ):
        if name.startswith("SSHDEPLOY_"):
            monkeypatch.delenv(name)
    yield config
    vars(config).clear()
    vars(config).update(saved)
