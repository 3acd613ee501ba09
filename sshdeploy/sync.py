import os
import posixpath
from typing import List, Sequence

from sshdeploy.config import REMOTE_SEPARATOR
from sshdeploy.monitor import enumerate_files
from sshdeploy.utils import log_warning, log_event

LINUX_CURRENT_DIRECTORY = "."
LINUX_PARENT_DIRECTORY = ".."


def is_excluded(path: str, suffixes: Sequence[str]) -> bool:
    # Exact, case-sensitive trailing match; never a glob.
    return any(path.endswith(suffix) for suffix in suffixes if suffix)


def select_upload_files(source_root: str, suffixes: Sequence[str]) -> List[str]:
    return [path for path in enumerate_files(source_root) if not is_excluded(path, suffixes)]


def remote_path_for(local_path: str, source_root: str, target_root: str) -> str:
    """Map a local file under source_root to its remote path, keeping subfolders."""
    relative = os.path.relpath(local_path, source_root)
    relative = relative.replace(os.sep, REMOTE_SEPARATOR).replace("\\", REMOTE_SEPARATOR)
    return posixpath.join(target_root, relative)


class RemotePathSynchronizer:
    def __init__(self, remote):
        self.remote = remote

    def ensure_directory(self, path: str) -> None:
        if not path.startswith(REMOTE_SEPARATOR):
            raise ValueError(f"Argument path must start with {REMOTE_SEPARATOR}: {path!r}")

        normalized = posixpath.normpath(path)
        if normalized.startswith("//"):
            normalized = normalized[1:]
        if normalized == REMOTE_SEPARATOR:
            return
        # Every check is a live query; nothing about remote state is cached.
        if self.remote.is_directory(normalized):
            return

        parent = posixpath.dirname(normalized)
        if parent != REMOTE_SEPARATOR:
            self.ensure_directory(parent)
        self.remote.create_directory(normalized)
        log_event("remote_mkdir", path=normalized)

    def delete_tree(self, path: str) -> List[str]:
        """Best-effort removal of everything under path. Returns paths that could not be deleted."""
        failures: List[str] = []
        for entry in self.remote.list_directory(path):
            if entry.name in (LINUX_CURRENT_DIRECTORY, LINUX_PARENT_DIRECTORY):
                continue
            try:
                if entry.is_directory:
                    failures.extend(self.delete_tree(entry.full_name))
                self.remote.delete(entry)
            except Exception as exc:
                log_warning(f"Failed to delete file or folder '{entry.full_name}': {exc}")
                failures.append(entry.full_name)
        return failures
