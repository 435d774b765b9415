"""
Watched Artifact Cache Module.

Keeps one compiled artifact for one resource and recompiles it only when
the resource reports a newer change marker.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, BinaryIO, Generic, TypeVar

from .resource import Resource

T = TypeVar("T")


@dataclass(frozen=True)
class _Snapshot(Generic[T]):
    """artifact と、それをコンパイルした時点のマーカーの組"""

    artifact: T
    marker: Any


class WatchedArtifactCache(Generic[T]):
    """
    Lazily compiled artifact that follows changes of its resource.

    Hits read a single immutable snapshot without locking. Misses are
    serialized behind one lock and re-check staleness once inside it, so a
    change is compiled at most once however many callers notice it; the
    others wait and return the freshly swapped artifact.

    Failures (``CompileError``, ``ResourceUnavailableError``) propagate to
    the caller and leave the previous snapshot in place. The next ``get()``
    retries.
    """

    def __init__(self, resource: Resource, compiler: Callable[[BinaryIO], T]):
        self._resource = resource
        self._compiler = compiler
        self._snapshot: _Snapshot[T] | None = None
        self._lock = threading.Lock()
        self._compile_count = 0

    @property
    def resource(self) -> Resource:
        return self._resource

    @property
    def marker(self) -> Any:
        """Marker of the cached artifact, or None before the first compile."""
        snapshot = self._snapshot
        return snapshot.marker if snapshot is not None else None

    @property
    def compile_count(self) -> int:
        """Number of successful compiles so far."""
        return self._compile_count

    def last_good(self) -> T | None:
        """Return the last successfully compiled artifact without checking."""
        snapshot = self._snapshot
        return snapshot.artifact if snapshot is not None else None

    def is_stale(self) -> bool:
        """True if the next get() would compile."""
        return self._is_stale(self._snapshot, self._resource.change_marker())

    def get(self) -> T:
        """
        Return an artifact at least as fresh as the resource right now.

        Raises:
            CompileError: the current contents do not compile
            ResourceUnavailableError: the resource cannot be read
        """
        live = self._resource.change_marker()
        snapshot = self._snapshot
        if not self._is_stale(snapshot, live):
            return snapshot.artifact

        with self._lock:
            # Another caller may have finished the reload while we waited
            live = self._resource.change_marker()
            snapshot = self._snapshot
            if not self._is_stale(snapshot, live):
                return snapshot.artifact
            snapshot = self._compile(live)
            self._snapshot = snapshot
            self._compile_count += 1
            return snapshot.artifact

    def _compile(self, marker: Any) -> _Snapshot[T]:
        # marker is read before opening, so a concurrent edit can only make
        # the snapshot look older than its contents, never newer
        with self._resource.open_stream() as stream:
            artifact = self._compiler(stream)
        return _Snapshot(artifact=artifact, marker=marker)

    @staticmethod
    def _is_stale(snapshot: _Snapshot[T] | None, live: Any) -> bool:
        # Equal markers mean unchanged (clock resolution ties included)
        return snapshot is None or snapshot.marker < live

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(identity={self._resource.identity!r}, "
            f"marker={self.marker!r})"
        )
