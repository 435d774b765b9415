"""
Resource Handle Module.

Provides the change-marker + read-stream capability consumed by the
artifact cache, backed by files on disk or by an in-memory store.
"""

from __future__ import annotations

import hashlib
import io
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Protocol, runtime_checkable

from .errors import ResourceUnavailableError


@runtime_checkable
class Resource(Protocol):
    """Capability required from a watched resource."""

    @property
    def identity(self) -> str: ...

    def change_marker(self) -> Any:
        """Return an ordered value that grows whenever the contents change.

        Raises:
            ResourceUnavailableError: if the resource does not exist
        """
        ...

    def open_stream(self) -> BinaryIO:
        """Open the current contents for reading.

        Raises:
            ResourceUnavailableError: if the contents cannot be read
        """
        ...


def _unavailable(path: Path, error: Exception) -> ResourceUnavailableError:
    if isinstance(error, FileNotFoundError):
        reason = "file not found"
    elif isinstance(error, PermissionError):
        reason = "permission denied"
    elif isinstance(error, OSError):
        reason = error.strerror or str(error)
    else:
        # ValueError: the path itself is unusable (embedded null byte)
        reason = str(error)
    return ResourceUnavailableError(str(path), reason)


def _open_file(path: Path) -> BinaryIO:
    try:
        return open(path, "rb")
    except (OSError, ValueError) as e:
        raise _unavailable(path, e) from e


@dataclass(frozen=True)
class FileResource:
    """ファイルの mtime (ns) を変更マーカーとするリソース"""

    path: Path

    @property
    def identity(self) -> str:
        return str(self.path)

    def change_marker(self) -> int:
        try:
            return os.stat(self.path).st_mtime_ns
        except (OSError, ValueError) as e:
            raise _unavailable(self.path, e) from e

    def open_stream(self) -> BinaryIO:
        return _open_file(self.path)


@dataclass
class DigestFileResource:
    """
    File resource whose marker is a content-digest generation.

    Each change of the SHA-1 of the file contents advances the generation
    by one, so the marker stays monotonic even where mtimes are coarse or
    unreliable (network filesystems, virtualized clocks).
    """

    path: Path
    generation: int = 0
    _digest: str | None = field(default=None, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def identity(self) -> str:
        return str(self.path)

    def change_marker(self) -> int:
        try:
            data = self.path.read_bytes()
        except (OSError, ValueError) as e:
            raise _unavailable(self.path, e) from e
        h = hashlib.sha1(data).hexdigest()
        with self._lock:
            if self._digest != h:
                self._digest = h
                self.generation += 1
            return self.generation

    def open_stream(self) -> BinaryIO:
        return _open_file(self.path)


@dataclass
class MemoryResource:
    """In-memory resource store entry, versioned by a revision counter."""

    key: str
    data: bytes | None = None
    revision: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    @property
    def identity(self) -> str:
        return self.key

    def write(self, data: bytes | str) -> None:
        """Replace the contents and advance the revision."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._lock:
            self.data = data
            self.revision += 1

    def delete(self) -> None:
        """Drop the contents; reads fail until the next write."""
        with self._lock:
            self.data = None
            self.revision += 1

    def change_marker(self) -> int:
        with self._lock:
            if self.data is None:
                raise ResourceUnavailableError(self.key, "no such resource")
            return self.revision

    def open_stream(self) -> BinaryIO:
        with self._lock:
            data = self.data
        if data is None:
            raise ResourceUnavailableError(self.key, "no such resource")
        return io.BytesIO(data)
