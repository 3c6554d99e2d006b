"""File system access used by the compiler."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod


class FileSystem(ABC):
    """Read-only view of the project tree."""

    @abstractmethod
    def exists(self, path: str) -> bool: ...

    @abstractmethod
    def read_text(self, path: str) -> str: ...

    @abstractmethod
    def list_files(self, directory: str, suffix: str) -> list[str]: ...


class LocalFileSystem(FileSystem):
    """Concrete file system backed by the local disk."""

    def exists(self, path: str) -> bool:
        return os.path.isfile(path)

    def read_text(self, path: str) -> str:
        with open(path, encoding="utf-8") as f:
            return f.read()

    def list_files(self, directory: str, suffix: str) -> list[str]:
        found = []
        for dirpath, _dirnames, filenames in os.walk(directory):
            found.extend(
                os.path.join(dirpath, name)
                for name in sorted(filenames)
                if name.endswith(suffix)
            )
        return sorted(found)


class MemoryFileSystem(FileSystem):
    """In-memory file system for hosts that keep sources in buffers."""

    def __init__(self, files: dict[str, str] | None = None):
        self.files: dict[str, str] = dict(files or {})

    def exists(self, path: str) -> bool:
        return os.path.normpath(path) in self._normalized()

    def read_text(self, path: str) -> str:
        normalized = self._normalized()
        key = os.path.normpath(path)
        if key not in normalized:
            raise FileNotFoundError(path)
        return normalized[key]

    def list_files(self, directory: str, suffix: str) -> list[str]:
        root = os.path.normpath(directory) + os.sep
        return sorted(
            path
            for path in self._normalized()
            if path.startswith(root) and path.endswith(suffix)
        )

    def write(self, path: str, text: str) -> None:
        self.files[path] = text

    def remove(self, path: str) -> None:
        key = os.path.normpath(path)
        for original in list(self.files):
            if os.path.normpath(original) == key:
                del self.files[original]

    def _normalized(self) -> dict[str, str]:
        return {os.path.normpath(p): text for p, text in self.files.items()}
