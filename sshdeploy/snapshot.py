import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Optional


class ChangeKind(Enum):
    ADDED = "Added"
    REMOVED = "Removed"
    MODIFIED = "Modified"


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    path: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.path}"


@dataclass(frozen=True)
class FileEntry:
    path: str
    size: int
    created_at: float
    modified_at: float

    @classmethod
    def from_path(cls, path: str) -> "FileEntry":
        info = os.stat(path)
        created = getattr(info, "st_birthtime", None)
        if created is None:
            created = info.st_ctime
        return cls(path=path, size=info.st_size, created_at=created, modified_at=info.st_mtime)

    def same_metadata(self, other: "FileEntry") -> bool:
        return (
            self.size == other.size
            and self.created_at == other.created_at
            and self.modified_at == other.modified_at
        )


def path_key(path: str) -> str:
    return path.casefold()


class Snapshot:
    """Last known FileEntry per path. Keys compare case-insensitively; insertion order is kept."""

    def __init__(self):
        self._entries: Dict[str, FileEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return path_key(path) in self._entries

    def __iter__(self) -> Iterator[FileEntry]:
        return iter(list(self._entries.values()))

    def get(self, path: str) -> Optional[FileEntry]:
        return self._entries.get(path_key(path))

    def put(self, entry: FileEntry) -> None:
        self._entries[path_key(entry.path)] = entry

    def remove(self, path: str) -> Optional[FileEntry]:
        return self._entries.pop(path_key(path), None)

    def paths(self) -> List[str]:
        return [entry.path for entry in self._entries.values()]

    def clear(self) -> None:
        self._entries.clear()
